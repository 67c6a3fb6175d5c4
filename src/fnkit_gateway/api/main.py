from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from fnkit_gateway import __version__
from fnkit_gateway.api.http_logging import install_http_logging
from fnkit_gateway.api.routes.health import SERVICE_NAME
from fnkit_gateway.api.routes.health import router as health_router
from fnkit_gateway.api.routes.orchestrate import router as orchestrate_router
from fnkit_gateway.api.routes.proxy import router as proxy_router
from fnkit_gateway.backends import BackendClient
from fnkit_gateway.config import GatewaySettings
from fnkit_gateway.errors import GatewayError
from fnkit_gateway.pipeline.cache import PipelineCache
from fnkit_gateway.pipeline.engine import PipelineEngine
from fnkit_gateway.pipeline.store import PipelineStore, S3PipelineStore

logger = logging.getLogger(__name__)


def _load_env_files() -> None:
    # `.env` then `.env.local`; real environment variables always win.
    cwd = Path.cwd()
    load_dotenv(cwd / ".env", override=False)
    load_dotenv(cwd / ".env.local", override=False)


def create_app(
    settings: Optional[GatewaySettings] = None,
    *,
    store: Optional[PipelineStore] = None,
    backend_transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Callable[[], float]] = None,
) -> FastAPI:
    if settings is None:
        _load_env_files()
        settings = GatewaySettings.from_env()

    cache = PipelineCache(
        store if store is not None else S3PipelineStore(settings.store),
        ttl_seconds=settings.cache_ttl_seconds,
        clock=clock or time.monotonic,
    )
    backends = BackendClient(port=settings.backend_port, transport=backend_transport)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if settings.auth_enabled:
            logger.info("%s starting with token authentication enabled", SERVICE_NAME)
        else:
            logger.warning("%s starting in OPEN mode (no authentication)", SERVICE_NAME)
        try:
            yield
        finally:
            await backends.aclose()

    app = FastAPI(title=SERVICE_NAME, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.cache = cache
    app.state.backends = backends
    app.state.engine = PipelineEngine(cache, backends)

    @app.exception_handler(GatewayError)
    async def _gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(exc) or "Internal server error"})

    # Order matters: exact info paths, then the reserved prefix, then backend names.
    app.include_router(health_router)
    app.include_router(orchestrate_router)
    app.include_router(proxy_router)

    install_http_logging(app, settings)
    return app
