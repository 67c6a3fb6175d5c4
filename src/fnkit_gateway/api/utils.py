from __future__ import annotations

from typing import List, Tuple

from fastapi import Request

from fnkit_gateway.backends import strip_hop_by_hop

# Every method a backend might implement; routes that proxy accept them all.
PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def request_path(request: Request) -> str:
    return str(request.scope.get("path") or "/")


def request_raw_path(request: Request) -> str:
    """Path as the client sent it, percent-escapes intact."""
    raw = request.scope.get("raw_path")
    if not raw:
        return request_path(request)
    return raw.decode("latin-1")


def request_query(request: Request) -> str:
    qs = request.scope.get("query_string") or b""
    return qs.decode("latin-1")


def client_ip(request: Request) -> str:
    return request.client.host if request.client else ""


def forwarded_headers(request: Request) -> List[Tuple[str, str]]:
    """
    Inbound headers as a backend should see them.

    Hop-by-hop headers and Content-Length are dropped (the outgoing client
    recomputes it); X-Real-IP, X-Forwarded-For and X-Forwarded-Proto are set
    the way an nginx-style reverse proxy sets them.
    """
    skip = ("content-length", "x-real-ip", "x-forwarded-for", "x-forwarded-proto")
    headers = strip_hop_by_hop(request.headers.items(), *skip)

    ip = client_ip(request)
    prior = request.headers.get("x-forwarded-for")
    chain = ", ".join(p for p in (prior, ip) if p)
    if ip:
        headers.append(("x-real-ip", ip))
    if chain:
        headers.append(("x-forwarded-for", chain))
    headers.append(("x-forwarded-proto", request.url.scheme))
    return headers
