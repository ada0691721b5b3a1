import logging
import os
from logging.config import dictConfig
from typing import Dict, Optional

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# chatty libraries stay at WARNING unless their debug flag is set
_LIBRARY_LOGGERS: Dict[str, str] = {
    "httpx": "SUPPORT_PLUS_DEBUG_HTTP",
    "httpcore": "SUPPORT_PLUS_DEBUG_HTTP",
    "sqlalchemy.engine": "SUPPORT_PLUS_DEBUG_SQL",
    "alembic": "SUPPORT_PLUS_DEBUG_SQL",
}


def _flag(name: str) -> bool:
    return os.getenv(name, "0").lower() in {"1", "true", "yes"}


def configure_logging(level: Optional[str] = None) -> None:
    """Route the root logger to stderr; ``SUPPORT_PLUS_LOG_LEVEL`` sets the app level."""
    app_level = (level or os.getenv("SUPPORT_PLUS_LOG_LEVEL", "INFO")).upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": DEFAULT_LOG_FORMAT},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "support_plus": {"level": app_level},
                **{
                    name: {"level": "DEBUG" if _flag(flag) else "WARNING"}
                    for name, flag in _LIBRARY_LOGGERS.items()
                },
            },
            "root": {
                "handlers": ["default"],
                "level": app_level,
            },
        }
    )

    if _flag("SUPPORT_PLUS_DEBUG_HTTP"):
        logging.getLogger("uvicorn.access").setLevel(logging.DEBUG)
