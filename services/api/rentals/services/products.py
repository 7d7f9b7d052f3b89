from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Protocol

from rentals.clients.errors import RateLimitedError, TableClientError
from rentals.clients.table_client import ProductsPageResult
from rentals.domain.records import (
    product_available_qty,
    product_id,
    product_name,
    product_total_qty,
)
from rentals.services.availability import (
    DEFAULT_TZ,
    AvailabilitySummary,
    compute_availability,
    empty_summary,
)
from rentals.services.batcher import RequestBatcher
from rentals.services.bookings_cache import BookingsCache, Clock

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "Too many requests to the database. Please try again in a few minutes."


class ProductsSource(Protocol):
    async def list_products(
        self, *, offset: int, limit: int, search: str | None = None
    ) -> ProductsPageResult: ...


@dataclass(frozen=True)
class PageInfo:
    current_page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool
    search_term: str


@dataclass(frozen=True)
class ProductAvailability:
    id: str | None
    name: str
    record: dict[str, Any]
    availability: AvailabilitySummary


@dataclass(frozen=True)
class ProductsPage:
    products: list[ProductAvailability]
    page_info: PageInfo
    error: str | None = None


@dataclass(frozen=True)
class _CachedPage:
    page: ProductsPage
    expires_at: float


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProductsPageAssembler:
    """Paginated product listing with per-product availability attached."""

    source: ProductsSource
    bookings: BookingsCache
    batcher: RequestBatcher
    name_field: str = "Produkt"
    ttl_secs: float = 300.0
    error_ttl_secs: float = 30.0
    tz: tzinfo = DEFAULT_TZ
    clock: Clock = time.monotonic
    now: Callable[[], datetime] = _utcnow
    _pages: dict[tuple[int, int, str], _CachedPage] = field(default_factory=dict, init=False, repr=False)

    def invalidate(self) -> None:
        self._pages.clear()

    async def fetch_products(
        self,
        *,
        limit: int = 25,
        page: int = 1,
        search: str = "",
        force_refresh: bool = False,
    ) -> ProductsPage:
        limit = max(int(limit), 1)
        page = max(int(page), 1)
        search = search or ""
        key = (limit, page, search)

        cached = self._pages.get(key)
        if cached is not None and not force_refresh and self.clock() < cached.expires_at:
            return cached.page

        offset = (page - 1) * limit
        try:
            result = await self.source.list_products(
                offset=offset, limit=limit, search=search if search.strip() else None
            )
        except TableClientError as exc:
            logger.error("products fetch failed (page=%d, search=%r): %s", page, search, exc)
            out = self._error_page(limit=limit, page=page, search=search, exc=exc)
            self._pages[key] = _CachedPage(out, self.clock() + self.error_ttl_secs)
            return out

        if force_refresh:
            await self.bookings.get_all_bookings(force_refresh=True)

        now = self.now()
        products = await asyncio.gather(
            *(self._with_availability(p, now) for p in result.records)
        )

        out = ProductsPage(
            products=list(products),
            page_info=PageInfo(
                current_page=page,
                page_size=limit,
                total_items=result.total_rows,
                total_pages=math.ceil(result.total_rows / limit),
                has_next_page=result.is_last_page is False,
                has_previous_page=page > 1,
                search_term=search,
            ),
        )
        self._pages[key] = _CachedPage(out, self.clock() + self.ttl_secs)
        return out

    async def _with_availability(self, product: dict[str, Any], now: datetime) -> ProductAvailability:
        pid = product_id(product)
        name = product_name(product, self.name_field)
        total = product_total_qty(product)
        available = product_available_qty(product)

        if available >= total:
            summary = empty_summary(total, available)
        elif pid is None:
            logger.debug("product %r is partly booked but has no id", name)
            summary = empty_summary(total, available)
        else:
            try:
                rows = await self.batcher.queue_product_for_processing(pid)
            except Exception as exc:
                logger.warning("could not load bookings for product %s (%s): %s", pid, name, exc)
                summary = dataclasses.replace(
                    empty_summary(total, available),
                    booking_error=str(exc) or "Failed to load booking information",
                )
            else:
                summary = compute_availability(total, available, rows, now, self.tz)
                out_on_loan = total - available
                if summary.booked != out_on_loan:
                    logger.info(
                        "product %s (%s): %d units out per product record, bookings account for %d",
                        pid,
                        name,
                        out_on_loan,
                        summary.booked,
                    )

        return ProductAvailability(id=pid, name=name, record=product, availability=summary)

    def _error_page(self, *, limit: int, page: int, search: str, exc: TableClientError) -> ProductsPage:
        message = RATE_LIMITED_MESSAGE if isinstance(exc, RateLimitedError) else str(exc)
        return ProductsPage(
            products=[],
            page_info=PageInfo(
                current_page=page,
                page_size=limit,
                total_items=0,
                total_pages=1,
                has_next_page=False,
                has_previous_page=page > 1,
                search_term=search,
            ),
            error=message,
        )
