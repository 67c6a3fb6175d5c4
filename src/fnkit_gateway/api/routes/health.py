from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from fnkit_gateway.api.utils import PROXY_METHODS

router = APIRouter(tags=["health"])

SERVICE_NAME = "fnkit-gateway"


# Both paths answer any method and never check credentials.
@router.api_route("/health", methods=PROXY_METHODS, response_class=PlainTextResponse)
async def health() -> str:
    return "OK"


@router.api_route("/", methods=PROXY_METHODS)
async def index(request: Request) -> Dict[str, Any]:
    return {
        "service": SERVICE_NAME,
        "usage": "GET /<container-name>[/path]",
        "orchestrate": "ANY /orchestrate/<pipeline>[/path]",
        "network": request.app.state.settings.network,
    }
