from __future__ import annotations

import pytest

from wagateway.validation import (
    MAX_BODY_LENGTH,
    TENANT_ID_MAX_LENGTH,
    is_valid_tenant_id,
    normalize_destination,
)


@pytest.mark.parametrize(
    "tenant",
    ["t1", "tenant-1", "Tenant_ABC", "a" * TENANT_ID_MAX_LENGTH],
)
def test_valid_tenant_ids(tenant: str) -> None:
    assert is_valid_tenant_id(tenant)


@pytest.mark.parametrize(
    "tenant",
    ["", "a" * (TENANT_ID_MAX_LENGTH + 1), "bad.id", "with space", "slash/id", "ünï", None, 42],
)
def test_invalid_tenant_ids(tenant: object) -> None:
    assert not is_valid_tenant_id(tenant)


def test_tenant_id_rejects_trailing_newline() -> None:
    assert not is_valid_tenant_id("t1\n")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("12345678901", "12345678901"),
        ("+1 (234) 567-8901", "12345678901"),
        ("1234567890", "1234567890"),
        ("123456789012345", "123456789012345"),
    ],
)
def test_normalize_destination(raw: str, expected: str) -> None:
    assert normalize_destination(raw) == expected


@pytest.mark.parametrize("raw", ["", "123", "123456789", "1234567890123456", "no digits"])
def test_normalize_destination_rejects_out_of_range(raw: str) -> None:
    assert normalize_destination(raw) is None


def test_body_limit_constant() -> None:
    assert MAX_BODY_LENGTH == 4096
