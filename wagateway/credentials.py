"""Directory-per-tenant credential storage."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from .validation import is_valid_tenant_id


LOGGER = logging.getLogger("wagateway")

SESSION_DIR_PREFIX = "session-"


class FileCredentialStore:
    """Opaque per-tenant credential blobs kept under ``root/session-<tenant>``.

    The adapter owns the directory contents; the store only answers whether a
    blob exists, lists the tenants that have one and wipes it on logout.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, tenant_id: str) -> Path:
        return self.root / f"{SESSION_DIR_PREFIX}{tenant_id}"

    def prepare(self, tenant_id: str) -> Path:
        path = self.path_for(tenant_id)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning(
                "event=credential_dir_prepare_failed tenant_id=%s path=%s error=%s",
                tenant_id,
                path,
                exc,
            )
            return path
        try:
            os.chmod(path, 0o700)
        except OSError as exc:
            LOGGER.warning(
                "event=credential_dir_chmod_failed tenant_id=%s path=%s error=%s",
                tenant_id,
                path,
                exc,
            )
        return path

    def exists(self, tenant_id: str) -> bool:
        path = self.path_for(tenant_id)
        if not path.is_dir():
            return False
        return any(path.iterdir())

    def enumerate(self) -> set[str]:
        if not self.root.is_dir():
            return set()
        tenants: set[str] = set()
        for entry in self.root.iterdir():
            if not entry.is_dir() or not entry.name.startswith(SESSION_DIR_PREFIX):
                continue
            tenant = entry.name[len(SESSION_DIR_PREFIX):]
            if not is_valid_tenant_id(tenant):
                LOGGER.warning("event=credential_dir_skipped path=%s", entry)
                continue
            if self.exists(tenant):
                tenants.add(tenant)
        return tenants

    def delete(self, tenant_id: str) -> bool:
        """Remove the tenant's blob; ``False`` when there was nothing to remove."""

        path = self.path_for(tenant_id)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return False
        LOGGER.info("stage=credentials_deleted tenant_id=%s", tenant_id)
        return True


__all__ = ["FileCredentialStore", "SESSION_DIR_PREFIX"]
