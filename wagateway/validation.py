from __future__ import annotations

import re
from typing import Optional


TENANT_ID_MAX_LENGTH = 64
TENANT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,%d}$" % TENANT_ID_MAX_LENGTH)

DESTINATION_MIN_DIGITS = 10
DESTINATION_MAX_DIGITS = 15
MAX_BODY_LENGTH = 4096

_NON_DIGITS = re.compile(r"\D+")


def is_valid_tenant_id(value: object) -> bool:
    if not isinstance(value, str):
        return False
    return bool(TENANT_ID_RE.fullmatch(value))


def normalize_destination(raw: str) -> Optional[str]:
    """Strip everything but digits; ``None`` when the length is out of range."""

    digits = _NON_DIGITS.sub("", raw or "")
    if not DESTINATION_MIN_DIGITS <= len(digits) <= DESTINATION_MAX_DIGITS:
        return None
    return digits


__all__ = [
    "DESTINATION_MAX_DIGITS",
    "DESTINATION_MIN_DIGITS",
    "MAX_BODY_LENGTH",
    "TENANT_ID_MAX_LENGTH",
    "is_valid_tenant_id",
    "normalize_destination",
]
