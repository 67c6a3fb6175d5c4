from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from fnkit_gateway.config import GatewaySettings

logger = logging.getLogger("fnkit_gateway.http")


_SENSITIVE_HEADERS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
}


def _decode_headers(headers: Optional[Iterable[Tuple[bytes, bytes]]]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for k, v in headers or ():
        key = k.decode("latin-1").lower()
        out[key] = "***" if key in _SENSITIVE_HEADERS else v.decode("latin-1")
    return out


def _route_kind(path: str) -> str:
    if path in {"/", "/health"}:
        return "info"
    if path == "/orchestrate" or path.startswith("/orchestrate/"):
        return "pipeline"
    return "backend"


def _get_request_id(scope: Scope) -> Optional[str]:
    for k, v in scope.get("headers") or ():
        if k.lower() == b"x-request-id":
            return v.decode("latin-1")
    return None


class HttpLoggingMiddleware:
    """One JSON line per HTTP request on the `fnkit_gateway.http` logger."""

    def __init__(self, app: ASGIApp, *, log_headers: bool) -> None:
        self.app = app
        self.log_headers = log_headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        started_at = time.perf_counter()
        request_id = _get_request_id(scope) or uuid.uuid4().hex[:12]
        res_status: Optional[int] = None
        res_headers_list: List[Tuple[bytes, bytes]] = []

        async def send_wrapped(message: Message) -> None:
            nonlocal res_status, res_headers_list
            if message.get("type") == "http.response.start":
                res_status = int(message.get("status") or 0)
                res_headers_list = list(message.get("headers") or [])
            await send(message)

        err: Optional[BaseException] = None
        try:
            await self.app(scope, receive, send_wrapped)
        except BaseException as e:  # noqa: BLE001 - logged, then re-raised
            err = e
            raise
        finally:
            path = str(scope.get("path") or "")
            record: Dict[str, Any] = {
                "id": request_id,
                "method": str(scope.get("method") or "").upper(),
                "path": path,
                "query": (scope.get("query_string") or b"").decode("latin-1", errors="ignore"),
                "kind": _route_kind(path),
                "status": res_status,
                "dur_ms": int((time.perf_counter() - started_at) * 1000),
            }
            if self.log_headers:
                record["request_headers"] = _decode_headers(scope.get("headers"))
                record["response_headers"] = _decode_headers(res_headers_list)
            if err is not None:
                record["error"] = {"type": type(err).__name__, "message": str(err)}
            logger.info(json.dumps(record, ensure_ascii=False, separators=(",", ":")))


def install_http_logging(app: Any, settings: GatewaySettings) -> None:
    """
    Enable access logging from settings.

    - `FNKIT_HTTP_LOG=1` enables the middleware
    - `FNKIT_HTTP_LOG_HEADERS=1` adds request/response headers (credentials redacted)
    """
    if not settings.http_log:
        return
    app.add_middleware(HttpLoggingMiddleware, log_headers=settings.http_log_headers)
