import pytest

from medialib_backend import deps as deps_mod
from medialib_backend.shared import Result


def test_resolve_db_path_default_and_custom(monkeypatch):
    monkeypatch.setattr(deps_mod, "INDEX_DB", "/data/default.sqlite")
    assert deps_mod._resolve_db_path(None) == "/data/default.sqlite"
    assert deps_mod._resolve_db_path("/tmp/x.sqlite") == "/tmp/x.sqlite"


def test_init_db_or_error_failure(monkeypatch):
    class _BadSqlite:
        def __init__(self, *_args, **_kwargs):
            raise RuntimeError("boom")

    monkeypatch.setattr(deps_mod, "Sqlite", _BadSqlite)
    out = deps_mod._init_db_or_error("/tmp/db.sqlite")
    assert out.ok is False
    assert out.code == "DB_ERROR"


@pytest.mark.asyncio
async def test_migrate_db_or_error_failure(monkeypatch):
    async def _migrate(_db):
        return Result.Err("DB_ERROR", "migrate failed")

    monkeypatch.setattr(deps_mod, "migrate_schema", _migrate)
    out = await deps_mod._migrate_db_or_error(object())
    assert out.ok is False
    assert "migrate failed" in out.error


@pytest.mark.asyncio
async def test_build_services_migration_failure_closes_db(monkeypatch, tmp_path):
    closed = {"value": False}

    class _Sqlite:
        def __init__(self, *_args, **_kwargs):
            pass

        async def aclose(self):
            closed["value"] = True

    async def _migrate(_db):
        return Result.Err("DB_ERROR", "bad schema")

    monkeypatch.setattr(deps_mod, "Sqlite", _Sqlite)
    monkeypatch.setattr(deps_mod, "migrate_schema", _migrate)

    out = await deps_mod.build_services(str(tmp_path / "x.db"))
    assert out.ok is False
    assert out.code == "DB_ERROR"
    assert closed["value"] is True


@pytest.mark.asyncio
async def test_build_services_creates_data_directory(tmp_path):
    db_path = tmp_path / "nested" / "dir" / "media.sqlite"
    out = await deps_mod.build_services(str(db_path), public_dir=str(tmp_path / "public"))
    assert out.ok, out.error
    try:
        assert db_path.exists()
        assert set(out.data) == {"db", "media"}
        assert out.data["media"].deletion_guard.public_dir == tmp_path / "public"
    finally:
        await out.data["db"].aclose()
