from __future__ import annotations

from urllib.parse import unquote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from fnkit_gateway.api.auth import require_bearer_token
from fnkit_gateway.api.utils import PROXY_METHODS, request_query, request_raw_path
from fnkit_gateway.backends import StepCall
from fnkit_gateway.pipeline.engine import (
    DEFAULT_CONTENT_TYPE,
    DEFAULT_METHOD,
    PipelineEngine,
    parse_orchestrate_path,
)

router = APIRouter(tags=["orchestrate"], dependencies=[Depends(require_bearer_token)])


@router.api_route("/orchestrate", methods=PROXY_METHODS, include_in_schema=False)
@router.api_route("/orchestrate/{rest:path}", methods=PROXY_METHODS)
async def orchestrate(request: Request) -> Response:
    """
    Run the pipeline named by the first segment after `/orchestrate/`.

    The remaining path (percent-escapes intact) and the query string are
    forwarded to every step.
    """
    name, sub_path = parse_orchestrate_path(request_raw_path(request))
    call = StepCall(
        sub_path=sub_path,
        query=request_query(request),
        method=request.method or DEFAULT_METHOD,
        body=await request.body(),
        content_type=request.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
    )
    engine: PipelineEngine = request.app.state.engine
    return await engine.run(unquote(name), call)
