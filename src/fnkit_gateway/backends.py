"""
Outbound calls to backends on the private network.

A backend named `<name>` is reached at `http://<name>:<port>`; name resolution
is left to the network's DNS. Every call runs under the same fixed timeouts
and is never retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import httpx

from fnkit_gateway.config import CONNECT_TIMEOUT, DEFAULT_BACKEND_PORT, READ_TIMEOUT, WRITE_TIMEOUT
from fnkit_gateway.errors import UpstreamFailure

logger = logging.getLogger(__name__)

# Methods that some HTTP transports refuse to send with a body.
BODYLESS_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

UPSTREAM_TIMEOUT = httpx.Timeout(READ_TIMEOUT, connect=CONNECT_TIMEOUT, read=READ_TIMEOUT, write=WRITE_TIMEOUT)


def effective_method(method: str, has_body: bool) -> str:
    """
    Method used for an outgoing step call.

    A non-empty body forces POST when the inbound method cannot carry one;
    entity-bearing methods (PUT, PATCH, DELETE, ...) are kept as they are.
    """
    m = (method or "POST").upper()
    if has_body and m in BODYLESS_METHODS:
        return "POST"
    return m


def backend_url(name: str, path: str = "", query: str = "", *, port: int = DEFAULT_BACKEND_PORT) -> str:
    if path and not path.startswith("/"):
        path = "/" + path
    q = query.lstrip("?")
    return f"http://{name}:{port}{path}" + (f"?{q}" if q else "")


def strip_hop_by_hop(headers: Iterable[Tuple[str, str]], *extra: str) -> List[Tuple[str, str]]:
    drop = HOP_BY_HOP_HEADERS | {h.lower() for h in extra}
    return [(k, v) for k, v in headers if k.lower() not in drop]


@dataclass(frozen=True)
class StepCall:
    """What a single pipeline step is sent."""

    sub_path: str
    query: str
    method: str
    body: bytes
    content_type: str


@dataclass(frozen=True)
class StepResult:
    step: str
    status_code: int
    body: bytes
    content_type: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class BackendClient:
    def __init__(
        self,
        *,
        port: int = DEFAULT_BACKEND_PORT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: httpx.Timeout = UPSTREAM_TIMEOUT,
    ) -> None:
        self.port = port
        self._client = httpx.AsyncClient(transport=transport, timeout=timeout, follow_redirects=False)

    async def aclose(self) -> None:
        await self._client.aclose()

    def url_for(self, name: str, path: str = "", query: str = "") -> str:
        return backend_url(name, path, query, port=self.port)

    async def invoke(self, step: str, call: StepCall) -> StepResult:
        """Call one pipeline step and read its whole response."""
        has_body = len(call.body) > 0
        method = effective_method(call.method, has_body)
        headers = {"accept": "application/json"}
        if call.content_type:
            headers["content-type"] = call.content_type
        url = self.url_for(step, call.sub_path, call.query)
        try:
            resp = await self._client.request(method, url, headers=headers, content=call.body if has_body else None)
        except httpx.TransportError as e:
            logger.warning("step %s unreachable at %s: %r", step, url, e)
            raise UpstreamFailure(f"Backend unreachable: {step}", step=step, detail=str(e) or type(e).__name__) from e
        return StepResult(
            step=step,
            status_code=resp.status_code,
            body=resp.content,
            content_type=resp.headers.get("content-type", ""),
        )

    async def forward(
        self,
        name: str,
        *,
        path: str,
        query: str,
        method: str,
        headers: List[Tuple[str, str]],
        body: bytes,
    ) -> httpx.Response:
        """Proxy a request verbatim; the caller decides which headers go through."""
        url = self.url_for(name, path, query)
        try:
            return await self._client.request(method, url, headers=headers, content=body or None)
        except httpx.TransportError as e:
            logger.warning("backend %s unreachable at %s: %r", name, url, e)
            raise UpstreamFailure("Function not found or not running", container=name) from e
