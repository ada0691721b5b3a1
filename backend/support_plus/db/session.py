"""Engines and sessions for the ``database`` storage backend.

The process-wide engine is built lazily from ``SUPPORT_PLUS_DATABASE_URL``.
Storage instances created with an explicit engine (tests, the backfill script)
get their own session factory via :func:`build_session_factory`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None


def build_engine(settings: Settings) -> Engine:
    if not settings.database_url:
        raise RuntimeError("SUPPORT_PLUS_DATABASE_URL must be set when SUPPORT_PLUS_STORAGE_BACKEND=database.")

    url = make_url(settings.database_url)
    options: Dict[str, Any] = {"echo": settings.database_echo, "pool_pre_ping": True}
    if url.get_backend_name() == "sqlite":
        # storage calls arrive from the event loop and from FastAPI's threadpool
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow

    logger.info("Opening local storage database %s", url.render_as_string(hide_password=True))
    return create_engine(url, **options)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_engine() -> Engine:
    global _engine, _session_factory
    if _engine is None:
        _engine = build_engine(get_settings())
        _session_factory = build_session_factory(_engine)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        get_engine()
    assert _session_factory is not None
    return _session_factory


@contextmanager
def session_scope(
    *,
    commit: bool = True,
    factory: Optional[sessionmaker[Session]] = None,
) -> Iterator[Session]:
    """One unit of work; rolled back and re-raised on any error."""
    session = (factory or get_session_factory())()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
        logger.info("Local storage database engine disposed")
    _engine = None
    _session_factory = None


__all__ = [
    "build_engine",
    "build_session_factory",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
