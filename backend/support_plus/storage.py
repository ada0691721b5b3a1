"""Local durable key/value storage used for identities and cached catalog data."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session, sessionmaker

from .config import Settings
from .db.models import LocalStorageEntryModel
from .db.session import build_session_factory, get_engine, get_session_factory, session_scope

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    """String-keyed storage that survives a process restart."""

    def get_item(self, key: str) -> Optional[str]:  # pragma: no cover - protocol definition
        ...

    def set_item(self, key: str, value: str) -> None:  # pragma: no cover - protocol definition
        ...

    def remove_item(self, key: str) -> None:  # pragma: no cover - protocol definition
        ...

    def keys(self) -> List[str]:  # pragma: no cover - protocol definition
        ...


class MemoryStorage:
    """Process-local storage; contents are lost on restart."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._items: Dict[str, str] = dict(initial or {})
        self._lock = threading.RLock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items.keys())


class JsonFileStorage:
    """JSON document on disk holding every key; rewritten atomically on change."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _load_unlocked(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, ValueError):
            logger.exception("Failed to read local storage file %s; starting empty", self._path)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed local storage file %s", self._path)
            return {}
        return {str(key): value for key, value in raw.items() if isinstance(value, str)}

    def _write_unlocked(self, items: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(items, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except Exception:  # noqa: BLE001
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load_unlocked().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._load_unlocked()
            items[key] = value
            self._write_unlocked(items)

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._load_unlocked()
            if key not in items:
                return
            items.pop(key)
            self._write_unlocked(items)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._load_unlocked().keys())


class DatabaseStorage:
    """Rows in ``local_storage_entries``; the schema is managed by the Alembic migrations."""

    def __init__(
        self,
        engine: Optional[Engine] = None,
        session_factory: Optional[sessionmaker[Session]] = None,
    ) -> None:
        self._engine = engine or get_engine()
        self._factory = session_factory or (
            build_session_factory(engine) if engine is not None else get_session_factory()
        )

    def get_item(self, key: str) -> Optional[str]:
        with session_scope(commit=False, factory=self._factory) as session:
            model = session.get(LocalStorageEntryModel, key)
            return model.value if model else None

    def set_item(self, key: str, value: str) -> None:
        with session_scope(factory=self._factory) as session:
            model = session.get(LocalStorageEntryModel, key)
            if model is None:
                session.add(LocalStorageEntryModel(key=key, value=value))
            else:
                model.value = value

    def remove_item(self, key: str) -> None:
        with session_scope(factory=self._factory) as session:
            session.execute(delete(LocalStorageEntryModel).where(LocalStorageEntryModel.key == key))

    def keys(self) -> List[str]:
        with session_scope(commit=False, factory=self._factory) as session:
            return list(session.execute(select(LocalStorageEntryModel.key)).scalars().all())


def build_storage(settings: Settings) -> KeyValueStorage:
    if settings.storage_backend == "database":
        return DatabaseStorage()
    return JsonFileStorage(settings.storage_path)


__all__ = [
    "DatabaseStorage",
    "JsonFileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "build_storage",
]
