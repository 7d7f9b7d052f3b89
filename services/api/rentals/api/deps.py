from __future__ import annotations

from fastapi import Request

from rentals.services.factory import Engine, get_engine


def get_client_key(request: Request) -> str:
    # Honour the first hop of X-Forwarded-For when behind a proxy.
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first
    if request.client is not None:
        return request.client.host
    return "unknown"


def engine_dep() -> Engine:
    return get_engine()
