from __future__ import annotations

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """
    Base error for everything the gateway reports to a caller.

    Each subclass maps to one HTTP status; `to_payload()` renders the uniform
    JSON envelope (`{"error": ..., **extra}`).
    """

    status_code: int = 500

    def __init__(self, message: str, *, status_code: Optional[int] = None, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra: Dict[str, Any] = {k: v for k, v in extra.items() if v is not None}

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class AuthError(GatewayError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized - Invalid or missing Bearer token") -> None:
        super().__init__(message)


class RouteNotFound(GatewayError):
    status_code = 404


class UpstreamFailure(GatewayError):
    status_code = 502


class StepFailed(UpstreamFailure):
    """A sequential step answered outside 2xx; the step's own status is returned."""

    def __init__(self, step: str, status: int, body: str) -> None:
        super().__init__("Step failed", status_code=status, step=step, status=status, body=body)
        self.step = step


class StoreFailure(GatewayError):
    status_code = 500


class ConfigurationError(GatewayError):
    status_code = 400
