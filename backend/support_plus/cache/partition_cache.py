"""Catalog working-set partitioned by identity and persisted in local storage."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..models import Benefit, Medicine, Offer
from ..storage import KeyValueStorage
from ..telemetry import emit_event

logger = logging.getLogger(__name__)

CACHE_STORAGE_KEY = "support-plus-storage"
CACHE_SCHEMA_VERSION = 1


class CachePartition(BaseModel):
    benefits: List[Benefit] = Field(default_factory=list)
    offers: List[Offer] = Field(default_factory=list)
    medicines: List[Medicine] = Field(default_factory=list)
    hidden_benefit_ids: List[str] = Field(default_factory=list)


class _CacheDocument(BaseModel):
    version: int = CACHE_SCHEMA_VERSION
    active_identity_id: Optional[str] = None
    partitions: Dict[str, CachePartition] = Field(default_factory=dict)


CacheListener = Callable[[Optional[str], CachePartition], None]


class CacheStore:
    """Per-identity cache of benefits, offers, medicines and hidden benefit ids.

    Exactly one slice is visible at a time. While an identity is active every
    mutation is written both to the visible slice and to that identity's
    durable partition; with no active identity mutations only touch the
    transient visible slice. Partitions of inactive identities are kept so a
    returning user sees their last known data before a remote refetch.
    """

    def __init__(self, storage: KeyValueStorage, *, storage_key: str = CACHE_STORAGE_KEY) -> None:
        self._storage = storage
        self._storage_key = storage_key
        self._lock = threading.RLock()
        self._visible = CachePartition()
        self._active_id: Optional[str] = None
        self._listeners: List[CacheListener] = []

    def _load_unlocked(self) -> _CacheDocument:
        raw = self._storage.get_item(self._storage_key)
        if not raw:
            return _CacheDocument()
        try:
            document = _CacheDocument.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cache document %s", self._storage_key)
            return _CacheDocument()
        if document.version != CACHE_SCHEMA_VERSION:
            logger.warning(
                "Discarding cache document %s with unsupported version %s",
                self._storage_key,
                document.version,
            )
            return _CacheDocument()
        return document

    def _write_unlocked(self, document: _CacheDocument) -> None:
        self._storage.set_item(self._storage_key, document.model_dump_json())

    def _notify(self) -> None:
        with self._lock:
            active_id = self._active_id
            snapshot = self._visible.model_copy(deep=True)
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(active_id, snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("Cache listener failed")

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def init(self) -> None:
        """Restore the last active identity's slice from durable storage."""
        with self._lock:
            document = self._load_unlocked()
            active_id = document.active_identity_id
        if active_id:
            self.activate(active_id)

    @property
    def active_identity_id(self) -> Optional[str]:
        with self._lock:
            return self._active_id

    @property
    def visible_benefits(self) -> List[Benefit]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._visible.benefits]

    @property
    def visible_offers(self) -> List[Offer]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._visible.offers]

    @property
    def visible_medicines(self) -> List[Medicine]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._visible.medicines]

    @property
    def hidden_ids(self) -> List[str]:
        with self._lock:
            return list(self._visible.hidden_benefit_ids)

    def snapshot(self) -> CachePartition:
        with self._lock:
            return self._visible.model_copy(deep=True)

    def partition_ids(self) -> List[str]:
        with self._lock:
            return list(self._load_unlocked().partitions.keys())

    def activate(self, identity_id: Optional[str]) -> None:
        created = False
        with self._lock:
            document = self._load_unlocked()
            if identity_id is None:
                self._visible = CachePartition()
                self._active_id = None
                document.active_identity_id = None
            else:
                partition = document.partitions.get(identity_id)
                if partition is None:
                    partition = CachePartition()
                    document.partitions[identity_id] = partition
                    created = True
                self._visible = partition.model_copy(deep=True)
                self._active_id = identity_id
                document.active_identity_id = identity_id
            self._write_unlocked(document)
        if identity_id is not None:
            emit_event("cache_partition_activated", identity_id=identity_id, created=created)
        self._notify()

    def logout(self) -> None:
        """Hide the current slice without deleting any stored partition."""
        self.activate(None)

    def forget(self, identity_id: str) -> bool:
        """Delete one identity's partition; deactivates it first when it is visible."""
        if self.active_identity_id == identity_id:
            self.activate(None)
        with self._lock:
            document = self._load_unlocked()
            removed = document.partitions.pop(identity_id, None) is not None
            if removed:
                self._write_unlocked(document)
            return removed

    def _replace(self, field: str, items: List[BaseModel]) -> None:
        copies = [item.model_copy(deep=True) for item in items]
        with self._lock:
            setattr(self._visible, field, copies)
            if self._active_id is not None:
                document = self._load_unlocked()
                partition = document.partitions.setdefault(self._active_id, CachePartition())
                setattr(partition, field, [item.model_copy(deep=True) for item in copies])
                self._write_unlocked(document)
        self._notify()

    def replace_benefits(self, benefits: List[Benefit]) -> None:
        self._replace("benefits", list(benefits))

    def replace_offers(self, offers: List[Offer]) -> None:
        self._replace("offers", list(offers))

    def replace_medicines(self, medicines: List[Medicine]) -> None:
        self._replace("medicines", list(medicines))

    def toggle_hidden(self, benefit_id: str) -> List[str]:
        """Hide ``benefit_id`` if visible, unhide it if hidden. Returns the new hidden ids."""
        with self._lock:
            if self._active_id is None:
                current = list(self._visible.hidden_benefit_ids)
                updated = _toggled(current, benefit_id)
            else:
                document = self._load_unlocked()
                partition = document.partitions.setdefault(self._active_id, CachePartition())
                updated = _toggled(partition.hidden_benefit_ids, benefit_id)
                partition.hidden_benefit_ids = updated
                self._write_unlocked(document)
            self._visible.hidden_benefit_ids = list(updated)
        self._notify()
        return list(updated)


def _toggled(hidden: List[str], benefit_id: str) -> List[str]:
    if benefit_id in hidden:
        return [existing for existing in hidden if existing != benefit_id]
    return [*hidden, benefit_id]


__all__ = ["CACHE_STORAGE_KEY", "CACHE_SCHEMA_VERSION", "CachePartition", "CacheListener", "CacheStore"]
