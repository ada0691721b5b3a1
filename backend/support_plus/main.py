"""FastAPI entry point: `uvicorn support_plus.main:app`."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import developer_routes, routes
from .config import get_settings
from .db.session import dispose_engine
from .logging_config import configure_logging
from .services import AppServices


configure_logging()
logger = logging.getLogger(__name__)

_app_services: Optional[AppServices] = None


def get_app_services() -> AppServices:
    global _app_services
    if _app_services is None:
        _app_services = AppServices()
    return _app_services


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    global _app_services
    services = get_app_services()
    logger.info(
        "Backend starting with storage=%s auth configured=%s",
        services.settings.storage_backend,
        bool(services.settings.auth_url),
    )
    await services.init()
    try:
        yield
    finally:
        await services.aclose()
        if services.settings.storage_backend == "database":
            dispose_engine()
        _app_services = None


app = FastAPI(title="Support+ Backend", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(routes.router)
if get_settings().debug_endpoints:
    app.include_router(developer_routes.router)


@app.get("/healthz")
def health() -> Dict[str, str]:
    return {"status": "ok"}
