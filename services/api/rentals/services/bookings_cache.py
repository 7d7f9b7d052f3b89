from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from rentals.clients.errors import RateLimitedError, TableNotConfiguredError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class BookingsSource(Protocol):
    async def list_bookings(self, *, limit: int) -> list[dict[str, Any]]: ...


class wait_at_least_retry_after(wait_base):
    """Wrapped wait strategy, raised to a 429's Retry-After when it is longer."""

    def __init__(self, wait: wait_base):
        self.wait = wait

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self.wait(retry_state)
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        if isinstance(exc, RateLimitedError) and exc.retry_after:
            return max(delay, exc.retry_after)
        return delay


def bookings_fetch_wait(base_delay_secs: float) -> wait_base:
    """base, 2*base, 4*base, ... between attempts, honouring Retry-After."""
    return wait_at_least_retry_after(wait_exponential(multiplier=base_delay_secs))


@dataclass(frozen=True)
class BookingsSnapshot:
    """Rows are copied from the fetch at capture time and shared with every
    reader afterwards; treat them as read-only."""

    records: tuple[dict[str, Any], ...]
    captured_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class BookingsCache:
    """Time-boxed copy of every booking record.

    Behavior:
    - Serves the snapshot without I/O while it is fresh.
    - Otherwise refetches with exponential backoff.
    - On a successful refetch, replaces the snapshot and tells listeners
      (the per-product index) to drop derived data.
    - If every attempt fails, serves the old snapshot even when expired,
      or an empty list when there never was one. Never raises.
    """

    def __init__(
        self,
        source: BookingsSource,
        *,
        ttl_secs: float = 300.0,
        fetch_limit: int = 1000,
        max_attempts: int = 3,
        base_delay_secs: float = 1.0,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self._source = source
        self._ttl = ttl_secs
        self._fetch_limit = fetch_limit
        self._max_attempts = max_attempts
        self._base_delay = base_delay_secs
        self._clock = clock
        self._sleep = sleep
        self._snapshot: BookingsSnapshot | None = None
        self._listeners: list[Callable[[], None]] = []

    @property
    def snapshot(self) -> BookingsSnapshot | None:
        return self._snapshot

    def add_invalidation_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def invalidate(self) -> None:
        """Force the next read to refetch; the old snapshot stays as fallback."""
        if self._snapshot is not None:
            self._snapshot = dataclasses.replace(self._snapshot, expires_at=self._clock())

    async def get_all_bookings(self, force_refresh: bool = False) -> list[dict[str, Any]]:
        snap = self._snapshot
        if snap is not None and not force_refresh and not snap.is_expired(self._clock()):
            return list(snap.records)

        refreshed = await self._refresh()
        if refreshed is not None:
            return list(refreshed.records)

        if self._snapshot is not None:
            logger.warning(
                "serving stale bookings snapshot (%d records, captured %.0fs ago): degraded service",
                len(self._snapshot.records),
                self._clock() - self._snapshot.captured_at,
            )
            return list(self._snapshot.records)

        logger.warning("no bookings snapshot available; availability details will be empty")
        return []

    async def _refresh(self) -> BookingsSnapshot | None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=bookings_fetch_wait(self._base_delay),
                # Missing configuration cannot heal between attempts.
                retry=retry_if_exception_type(Exception)
                & retry_if_not_exception_type(TableNotConfiguredError),
                sleep=self._sleep,
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    records = await self._source.list_bookings(limit=self._fetch_limit)
        except TableNotConfiguredError as exc:
            logger.error("bookings fetch skipped: %s", exc)
            return None
        except Exception as exc:
            logger.error("bookings fetch failed after %d attempts: %s", self._max_attempts, exc)
            return None

        now = self._clock()
        snap = BookingsSnapshot(
            records=tuple(dict(row) for row in records if isinstance(row, dict)),
            captured_at=now,
            expires_at=now + self._ttl,
        )
        self._snapshot = snap
        for listener in self._listeners:
            listener()
        return snap

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        logger.warning(
            "bookings fetch attempt %d/%d failed (%s); retrying in %.1fs",
            retry_state.attempt_number,
            self._max_attempts,
            outcome.exception() if outcome is not None else None,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
        )
