from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from rentals.services.bookings_cache import BookingsCache, Clock, Sleep
from rentals.services.product_index import ProductBookingIndex

logger = logging.getLogger(__name__)


@dataclass
class BatchRequest:
    product_id: Any
    future: asyncio.Future[list[dict[str, Any]]]
    enqueued_at: float = field(default=0.0)


class RequestBatcher:
    """Coalesce per-product booking lookups into bounded batches.

    Each batch reads the bookings cache once and resolves every member from
    that one snapshot, so members of a batch always agree. Batches run
    back-to-back with `interval_secs` between them until the queue is empty,
    then the batcher goes idle until the next enqueue.
    """

    def __init__(
        self,
        cache: BookingsCache,
        index: ProductBookingIndex,
        *,
        batch_size: int = 10,
        interval_secs: float = 0.3,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self._cache = cache
        self._index = index
        self.batch_size = batch_size
        self._interval = interval_secs
        self._clock = clock
        self._sleep = sleep
        self._queue: deque[BatchRequest] = deque()
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def queue_product_for_processing(self, product_id: Any) -> list[dict[str, Any]]:
        loop = asyncio.get_running_loop()
        req = BatchRequest(product_id=product_id, future=loop.create_future(), enqueued_at=self._clock())
        self._queue.append(req)
        if not self._running:
            self._running = True
            self._task = loop.create_task(self._run())
        return await req.future

    async def _run(self) -> None:
        try:
            while self._queue:
                batch = [self._queue.popleft() for _ in range(min(self.batch_size, len(self._queue)))]
                try:
                    await self._process(batch)
                except Exception as exc:
                    logger.exception("booking batch of %d failed", len(batch))
                    for req in batch:
                        if not req.future.done():
                            req.future.set_exception(exc)
                if not self._queue:
                    break
                await self._sleep(self._interval)
        finally:
            self._running = False
            self._task = None

    async def _process(self, batch: list[BatchRequest]) -> None:
        bookings = await self._cache.get_all_bookings()
        logger.debug("processing batch of %d against %d bookings", len(batch), len(bookings))
        for req in batch:
            if req.future.done():
                # Caller went away (cancelled).
                continue
            try:
                result = await self._index.get_bookings_for_product(req.product_id, bookings=bookings)
            except Exception as exc:
                logger.warning("booking lookup failed for product %s: %s", req.product_id, exc)
                req.future.set_exception(exc)
            else:
                req.future.set_result(result)
