from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_BACKEND_PORT = 8080
DEFAULT_GATEWAY_PORT = 8080
DEFAULT_NETWORK = "fnkit-network"
DEFAULT_S3_REGION = "us-east-1"
DEFAULT_CACHE_TTL_MS = 30_000

# Upstream timeouts (seconds). Applied to proxied calls and pipeline steps alike.
CONNECT_TIMEOUT = 10.0
READ_TIMEOUT = 60.0
WRITE_TIMEOUT = 60.0


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or "").strip() or default


def _env_bool(name: str, default: bool = False) -> bool:
    v = (os.getenv(name) or "").strip().lower()
    if not v:
        return default
    return v in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class StoreSettings:
    bucket: str = ""
    endpoint: str = ""
    region: str = DEFAULT_S3_REGION
    access_key: str = ""
    secret_key: str = ""


@dataclass(frozen=True)
class GatewaySettings:
    """
    Process-wide configuration, read once at startup.

    An empty `auth_token` means the gateway runs in open mode.
    """

    auth_token: str = ""
    store: StoreSettings = field(default_factory=StoreSettings)
    network: str = DEFAULT_NETWORK
    backend_port: int = DEFAULT_BACKEND_PORT
    cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS
    http_log: bool = False
    http_log_headers: bool = False

    @property
    def auth_enabled(self) -> bool:
        return bool(self.auth_token)

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_ms / 1000.0

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        return cls(
            # The token is compared byte-for-byte, so it is not stripped.
            auth_token=os.getenv("FNKIT_AUTH_TOKEN") or "",
            store=store_settings_from_env(),
            network=_env_str("FNKIT_NETWORK", DEFAULT_NETWORK),
            backend_port=_env_int("FNKIT_BACKEND_PORT", DEFAULT_BACKEND_PORT),
            cache_ttl_ms=max(0, _env_int("FNKIT_PIPELINE_CACHE_TTL_MS", DEFAULT_CACHE_TTL_MS)),
            http_log=_env_bool("FNKIT_HTTP_LOG", default=False),
            http_log_headers=_env_bool("FNKIT_HTTP_LOG_HEADERS", default=False),
        )


def store_settings_from_env(
    *,
    bucket: Optional[str] = None,
    endpoint: Optional[str] = None,
    region: Optional[str] = None,
) -> StoreSettings:
    return StoreSettings(
        bucket=bucket or _env_str("S3_BUCKET"),
        endpoint=endpoint or _env_str("S3_ENDPOINT"),
        region=region or _env_str("S3_REGION", DEFAULT_S3_REGION),
        access_key=_env_str("S3_ACCESS_KEY"),
        secret_key=_env_str("S3_SECRET_KEY"),
    )
