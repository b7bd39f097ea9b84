from __future__ import annotations

import stat
from pathlib import Path

from wagateway.credentials import FileCredentialStore


def _seed(store: FileCredentialStore, tenant: str) -> Path:
    path = store.path_for(tenant)
    path.mkdir(parents=True, exist_ok=True)
    (path / "Default").mkdir()
    (path / "Default" / "Cookies").write_bytes(b"blob")
    return path


def test_path_layout(tmp_path: Path) -> None:
    store = FileCredentialStore(tmp_path)
    assert store.path_for("acme") == tmp_path / "session-acme"


def test_exists_requires_content(tmp_path: Path) -> None:
    store = FileCredentialStore(tmp_path)
    assert not store.exists("acme")

    store.prepare("acme")
    assert not store.exists("acme")

    _seed(store, "acme")
    assert store.exists("acme")


def test_prepare_restricts_permissions(tmp_path: Path) -> None:
    store = FileCredentialStore(tmp_path / "auth")
    path = store.prepare("acme")

    assert path.is_dir()
    assert stat.S_IMODE(path.stat().st_mode) == 0o700


def test_enumerate_lists_only_valid_tenants_with_credentials(tmp_path: Path) -> None:
    store = FileCredentialStore(tmp_path)
    _seed(store, "acme")
    _seed(store, "tenant_2")
    (tmp_path / "session-").mkdir()
    (tmp_path / "session-bad.name").mkdir()
    (tmp_path / "session-empty").mkdir()
    (tmp_path / "session-file").write_text("not a dir")
    (tmp_path / "other").mkdir()

    assert store.enumerate() == {"acme", "tenant_2"}


def test_enumerate_missing_root(tmp_path: Path) -> None:
    store = FileCredentialStore(tmp_path / "missing")
    assert store.enumerate() == set()


def test_delete_is_idempotent(tmp_path: Path) -> None:
    store = FileCredentialStore(tmp_path)
    _seed(store, "acme")

    assert store.delete("acme") is True
    assert not store.path_for("acme").exists()
    assert store.delete("acme") is False
