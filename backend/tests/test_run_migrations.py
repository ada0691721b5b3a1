from __future__ import annotations

import types
from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect

from scripts import backfill_json_storage
from scripts import run_migrations as runner
from support_plus.storage import DatabaseStorage, JsonFileStorage, MemoryStorage


def _sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'support_plus.sqlite'}"


def test_resolve_database_url_prefers_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SUPPORT_PLUS_DATABASE_URL", _sqlite_url(tmp_path))
    config = runner.get_alembic_config(str(runner.BACKEND_ROOT / "alembic.ini"))

    assert runner.resolve_database_url(config) == _sqlite_url(tmp_path)
    assert config.get_main_option("sqlalchemy.url") == _sqlite_url(tmp_path)


def test_resolve_database_url_requires_configuration(monkeypatch) -> None:
    monkeypatch.delenv("SUPPORT_PLUS_DATABASE_URL", raising=False)
    config = runner.get_alembic_config(str(runner.BACKEND_ROOT / "alembic.ini"))

    with pytest.raises(RuntimeError):
        runner.resolve_database_url(config)


def test_wait_for_database_succeeds_with_sqlite(tmp_path: Path) -> None:
    runner.wait_for_database(_sqlite_url(tmp_path), timeout=2, poll_interval=0.1)


def test_wait_for_database_times_out(monkeypatch) -> None:
    class DummyEngine:
        def connect(self) -> types.SimpleNamespace:
            raise runner.OperationalError("SELECT 1", {}, Exception("boom"))

        def dispose(self) -> None:
            pass

    monkeypatch.setattr(runner, "create_engine", lambda *_, **__: DummyEngine())
    with pytest.raises(RuntimeError):
        runner.wait_for_database("postgresql://example", timeout=0, poll_interval=0)


def test_migrations_create_storage_table(monkeypatch, tmp_path: Path) -> None:
    url = _sqlite_url(tmp_path)
    monkeypatch.setenv("SUPPORT_PLUS_DATABASE_URL", url)

    runner.run_migrations("head", timeout=2, poll_interval=0.1)

    engine = create_engine(url, future=True)
    try:
        assert "local_storage_entries" in inspect(engine).get_table_names()
        storage = DatabaseStorage(engine=engine)
        storage.set_item("support-plus-storage", "{}")
        assert storage.get_item("support-plus-storage") == "{}"
    finally:
        engine.dispose()


def test_backfill_copies_missing_keys(tmp_path: Path) -> None:
    source = JsonFileStorage(tmp_path / "local_storage.json")
    source.set_item("support-plus-manual-user", '{"kind": "pseudo", "id": "sms:+1234567890"}')
    source.set_item("support-plus-storage", '{"version": 1}')
    target = MemoryStorage({"support-plus-storage": '{"version": 1, "partitions": {}}'})

    imported = backfill_json_storage.backfill_storage(source, target)

    assert imported == 1
    assert target.get_item("support-plus-manual-user") == source.get_item("support-plus-manual-user")
    assert target.get_item("support-plus-storage") == '{"version": 1, "partitions": {}}'
    assert backfill_json_storage.backfill_storage(source, target, overwrite=True) == 2
