"""Helpers shared by the JSON microservice clients."""

from __future__ import annotations

from typing import Any, Optional

import httpx


def error_message(response: httpx.Response, default: str) -> str:
    """Return the ``message`` field of an error body, or ``default``."""
    try:
        payload: Any = response.json()
    except ValueError:
        return default
    if isinstance(payload, dict):
        message: Optional[Any] = payload.get("message")
        if isinstance(message, str) and message.strip():
            return message
    return default


__all__ = ["error_message"]
