from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

_REPO_ROOT = Path(__file__).resolve().parents[1]
_SRC = _REPO_ROOT / "src"
if _SRC.exists():
    sys.path.insert(0, str(_SRC))

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from fnkit_gateway.api.main import create_app  # noqa: E402
from fnkit_gateway.config import GatewaySettings  # noqa: E402
from fnkit_gateway.errors import StoreFailure  # noqa: E402


class FakeStore:
    """In-memory pipeline store; records every fetch."""

    def __init__(self, docs: Optional[Dict[str, Any]] = None) -> None:
        self.docs: Dict[str, Any] = dict(docs or {})
        self.calls: List[str] = []

    async def fetch(self, name: str) -> bytes:
        self.calls.append(name)
        if name not in self.docs:
            raise StoreFailure(f"Pipeline not found: {name}")
        doc = self.docs[name]
        if isinstance(doc, Exception):
            raise doc
        if isinstance(doc, bytes):
            return doc
        return json.dumps(doc).encode("utf-8")


class ManualClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Handler = Callable[[httpx.Request], Union[httpx.Response, Awaitable[httpx.Response]]]


class FakeBackends:
    """
    Stand-in for the private network, used as an `httpx.MockTransport` handler.

    Backends are keyed by host name; unknown hosts fail like a DNS miss.
    """

    def __init__(self) -> None:
        self.handlers: Dict[str, Handler] = {}
        self.requests: List[httpx.Request] = []

    def on(
        self,
        name: str,
        *,
        status: int = 200,
        json_body: Any = None,
        content: Union[bytes, str, None] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        def _respond(request: httpx.Request) -> httpx.Response:
            if json_body is not None:
                return httpx.Response(status, json=json_body, headers=headers)
            return httpx.Response(status, content=content or b"", headers=headers)

        self.handlers[name] = _respond

    def on_handler(self, name: str, handler: Handler) -> None:
        self.handlers[name] = handler

    def hosts_called(self) -> List[str]:
        return [r.url.host for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get(request.url.host)
        if handler is None:
            raise httpx.ConnectError(f"[Errno -2] Name or service not known: {request.url.host}", request=request)
        return handler(request)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def backends() -> FakeBackends:
    return FakeBackends()


@pytest.fixture
def make_client(store: FakeStore, clock: ManualClock, backends: FakeBackends) -> Callable[..., TestClient]:
    def _make(settings: Optional[GatewaySettings] = None, **overrides: Any) -> TestClient:
        if settings is None:
            settings = GatewaySettings(**overrides)
        app = create_app(
            settings,
            store=store,
            backend_transport=httpx.MockTransport(backends),
            clock=clock,
        )
        return TestClient(app)

    return _make
