"""Structured events emitted by the identity resolver and the cache store.

Every event is logged as a single ``TELEMETRY {json}`` line and handed to the
registered listeners. Unverified identity ids may embed a phone number
(``sms:+79123456789``); those digits are masked before anything leaves the
process.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, List

from .identity import is_verified_id

logger = logging.getLogger("support_plus.telemetry")

TelemetryListener = Callable[["TelemetryEvent"], None]

_IDENTITY_FIELDS = frozenset({"identity_id", "previous_identity_id"})
_PHONE_DIGITS = re.compile(r"\d{5,}(?=\d{2})")


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]


_listeners: List[TelemetryListener] = []
_lock = RLock()


def register_listener(listener: TelemetryListener) -> Callable[[], None]:
    """Subscribe to events; returns a callable that removes the listener again."""
    with _lock:
        _listeners.append(listener)

    def unregister() -> None:
        with _lock:
            if listener in _listeners:
                _listeners.remove(listener)

    return unregister


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


def emit_event(name: str, **fields: Any) -> None:
    event = TelemetryEvent(name=name, payload=_sanitize(fields))

    with _lock:
        listeners = list(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    logger.info("TELEMETRY %s", json.dumps({"event": name, **event.payload}, default=str, ensure_ascii=False))


def mask_identity_id(value: str) -> str:
    """Hide the phone digits of an unverified id; verified ids pass through."""
    if is_verified_id(value):
        return value
    return _PHONE_DIGITS.sub(lambda match: "*" * len(match.group()), value)


def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        elif key in _IDENTITY_FIELDS and isinstance(value, str):
            value = mask_identity_id(value)
        sanitized[key] = value
    return sanitized


__all__ = [
    "TelemetryEvent",
    "TelemetryListener",
    "clear_listeners",
    "emit_event",
    "mask_identity_id",
    "register_listener",
]
