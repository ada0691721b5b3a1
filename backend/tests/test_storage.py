from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from support_plus.config import Settings
from support_plus.db.models import Base
from support_plus.db.session import build_engine
from support_plus.storage import DatabaseStorage, JsonFileStorage, MemoryStorage, build_storage


@pytest.fixture
def sqlite_storage() -> DatabaseStorage:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield DatabaseStorage(engine=engine)
    engine.dispose()


def _exercise(storage) -> None:
    assert storage.get_item("missing") is None
    storage.set_item("a", "1")
    storage.set_item("b", "2")
    storage.set_item("a", "3")
    assert storage.get_item("a") == "3"
    assert sorted(storage.keys()) == ["a", "b"]
    storage.remove_item("a")
    storage.remove_item("a")
    assert storage.get_item("a") is None
    assert storage.keys() == ["b"]


def test_memory_storage_roundtrip() -> None:
    _exercise(MemoryStorage())


def test_json_file_storage_roundtrip(tmp_path: Path) -> None:
    storage = JsonFileStorage(tmp_path / "nested" / "storage.json")
    _exercise(storage)
    assert JsonFileStorage(storage.path).get_item("b") == "2"


def test_json_file_storage_ignores_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "storage.json"
    path.write_text("[1, 2", encoding="utf-8")
    storage = JsonFileStorage(path)

    assert storage.get_item("a") is None
    storage.set_item("a", "1")
    assert storage.get_item("a") == "1"


def test_database_storage_roundtrip(sqlite_storage: DatabaseStorage) -> None:
    _exercise(sqlite_storage)


def test_build_storage_defaults_to_json_file(tmp_path: Path) -> None:
    settings = Settings(storage_path=tmp_path / "local.json")
    storage = build_storage(settings)

    assert isinstance(storage, JsonFileStorage)
    assert storage.path == tmp_path / "local.json"


def test_build_engine_requires_database_url() -> None:
    with pytest.raises(RuntimeError):
        build_engine(Settings(storage_backend="database"))


def test_build_engine_for_sqlite_file(tmp_path: Path) -> None:
    engine = build_engine(Settings(database_url=f"sqlite:///{tmp_path / 'local.db'}"))
    Base.metadata.create_all(engine)
    storage = DatabaseStorage(engine=engine)

    storage.set_item("support-plus-storage", "{}")

    assert storage.keys() == ["support-plus-storage"]
    engine.dispose()
