from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Sequence

from rentals.domain.records import product_ref_id
from rentals.services.bookings_cache import BookingsCache, Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductBookingIndexEntry:
    records: tuple[dict[str, Any], ...]
    expires_at: float


def filter_bookings_for_product(
    bookings: Sequence[dict[str, Any]], product_id: str
) -> list[dict[str, Any]]:
    wanted = str(product_id).strip()
    return [b for b in bookings if product_ref_id(b) == wanted]


class ProductBookingIndex:
    """Per-product slices of the bookings snapshot, each with its own TTL."""

    def __init__(self, cache: BookingsCache, *, ttl_secs: float = 300.0, clock: Clock = time.monotonic):
        self._cache = cache
        self._ttl = ttl_secs
        self._clock = clock
        self._entries: dict[str, ProductBookingIndexEntry] = {}
        cache.add_invalidation_listener(self.clear)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    async def get_bookings_for_product(
        self,
        product_id: Any,
        bookings: Sequence[dict[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        """Bookings referencing `product_id`.

        `bookings` lets a caller that already holds the snapshot (the batcher)
        filter that exact copy instead of reading the cache again.
        """
        if product_id is None or isinstance(product_id, bool):
            return []
        key = str(product_id).strip()
        if not key:
            return []

        entry = self._entries.get(key)
        if entry is not None and self._clock() < entry.expires_at:
            return list(entry.records)

        if bookings is None:
            bookings = await self._cache.get_all_bookings()

        matching = filter_bookings_for_product(bookings, key)
        self._entries[key] = ProductBookingIndexEntry(
            records=tuple(matching),
            expires_at=self._clock() + self._ttl,
        )
        logger.debug("found %d bookings for product %s", len(matching), key)
        return matching
