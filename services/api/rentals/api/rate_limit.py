from __future__ import annotations

import time
from typing import Callable, cast

from fastapi import Depends, HTTPException
from redis import Redis

from rentals.api.deps import get_client_key
from rentals.core.redis_client import get_redis


def rate_limiter(
    scope: str,
    *,
    limit: int,
    window_seconds: int,
) -> Callable[..., None]:
    """Simple fixed-window rate limiter using Redis INCR + EXPIRE.

    Keyed per client address. If Redis is unavailable, the limiter becomes
    a no-op (fail open).
    """

    def _dep(client_key: str = Depends(get_client_key)) -> None:
        r = get_redis()
        if r is None:
            return

        now = int(time.time())
        bucket = now // window_seconds
        key = f"rl:{scope}:{client_key}:{bucket}"

        try:
            count = cast(int, cast(Redis, r).incr(key))
            if count == 1:
                cast(Redis, r).expire(key, window_seconds)
        except Exception:
            # If Redis errors, don't block bookings.
            return

        if count > limit:
            retry_after = max(1, window_seconds - (now % window_seconds))
            raise HTTPException(
                status_code=429,
                detail="Too many booking attempts. Please try again shortly.",
                headers={"Retry-After": str(retry_after)},
            )

    return _dep
