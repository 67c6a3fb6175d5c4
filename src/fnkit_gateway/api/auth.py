from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Request

from fnkit_gateway.config import GatewaySettings
from fnkit_gateway.errors import AuthError


def _authorization_header(request: Request) -> Optional[bytes]:
    # Raw bytes, so the comparison below is exact (no decoding or case folding).
    for k, v in request.headers.raw:
        if k.lower() == b"authorization":
            return v
    return None


def bearer_matches(presented: Optional[bytes], token: str) -> bool:
    if presented is None:
        return False
    expected = f"Bearer {token}".encode("utf-8")
    return hmac.compare_digest(presented, expected)


def require_bearer_token(request: Request) -> None:
    """
    Route dependency enforcing `Authorization: Bearer <token>`.

    No-op in open mode (no token configured).
    """
    settings: GatewaySettings = request.app.state.settings
    if not settings.auth_enabled:
        return
    if not bearer_matches(_authorization_header(request), settings.auth_token):
        raise AuthError()
