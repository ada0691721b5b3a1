"""Database utilities for Support+."""

from .models import Base, LocalStorageEntryModel
from .session import (
    build_engine,
    build_session_factory,
    dispose_engine,
    get_engine,
    get_session_factory,
    session_scope,
)

__all__ = [
    "Base",
    "LocalStorageEntryModel",
    "build_engine",
    "build_session_factory",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
