from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from fnkit_gateway.api.auth import require_bearer_token
from fnkit_gateway.api.utils import PROXY_METHODS, forwarded_headers, request_path, request_query, request_raw_path
from fnkit_gateway.backends import BackendClient, strip_hop_by_hop
from fnkit_gateway.errors import RouteNotFound
from fnkit_gateway.schemas.pipeline import BACKEND_NAME_RE

logger = logging.getLogger(__name__)

router = APIRouter(tags=["proxy"], dependencies=[Depends(require_bearer_token)])


@router.api_route("/{backend}", methods=PROXY_METHODS, include_in_schema=False)
@router.api_route("/{backend}/{rest:path}", methods=PROXY_METHODS)
async def proxy(request: Request, backend: str) -> Response:
    """
    Forward `/<backend>[/path][?query]` to `http://<backend>:<port>[/path][?query]`.

    Status and body come back untouched; only hop-by-hop and re-encoded
    framing headers are dropped from the upstream response.
    """
    if not BACKEND_NAME_RE.match(backend):
        raise RouteNotFound("Not found")

    # Undecoded path minus the backend segment; %2F and %3F go out as sent.
    _, sep, rest = request_raw_path(request).lstrip("/").partition("/")
    sub_path = sep + rest
    backends: BackendClient = request.app.state.backends
    upstream = await backends.forward(
        backend,
        path=sub_path,
        query=request_query(request),
        method=request.method,
        headers=forwarded_headers(request),
        body=await request.body(),
    )
    logger.debug("proxied %s %s -> %s status=%s", request.method, request_path(request), backend, upstream.status_code)

    # httpx already decoded the body, so its length/encoding headers no longer apply;
    # Date and Server are set by this server.
    headers = strip_hop_by_hop(
        upstream.headers.multi_items(), "content-length", "content-encoding", "date", "server"
    )
    response = Response(content=upstream.content, status_code=upstream.status_code)
    for k, v in headers:
        response.headers.append(k, v)
    # No body on HEAD, so the upstream length is the real one.
    if request.method == "HEAD" and "content-length" in upstream.headers:
        response.headers["content-length"] = upstream.headers["content-length"]
    return response
