from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from zoneinfo import ZoneInfo

from rentals.clients.table_client import TableClient
from rentals.core.config import Settings, settings
from rentals.services.batcher import RequestBatcher
from rentals.services.booking_submission import BookingSubmitter
from rentals.services.bookings_cache import BookingsCache
from rentals.services.product_index import ProductBookingIndex
from rentals.services.products import ProductsPageAssembler


@dataclass(frozen=True)
class Engine:
    """The process-wide set of caches and services behind the API."""

    client: TableClient
    bookings: BookingsCache
    index: ProductBookingIndex
    batcher: RequestBatcher
    products: ProductsPageAssembler
    submitter: BookingSubmitter

    async def aclose(self) -> None:
        await self.client.aclose()


def build_engine(cfg: Settings, client: TableClient | None = None) -> Engine:
    tz = ZoneInfo(cfg.display_timezone)
    if client is None:
        client = TableClient(
            products_url=cfg.products_table_url,
            bookings_url=cfg.booking_table_url,
            api_token=cfg.nocodb_api_token,
            search_field=cfg.products_search_field,
            timeout=cfg.table_timeout_secs,
        )

    bookings = BookingsCache(
        client,
        ttl_secs=cfg.bookings_cache_ttl_secs,
        fetch_limit=cfg.bookings_fetch_limit,
        max_attempts=cfg.bookings_fetch_attempts,
        base_delay_secs=cfg.bookings_retry_base_delay_secs,
    )
    index = ProductBookingIndex(bookings, ttl_secs=cfg.product_index_ttl_secs)
    batcher = RequestBatcher(
        bookings,
        index,
        batch_size=cfg.batch_size,
        interval_secs=cfg.batch_interval_secs,
    )
    products = ProductsPageAssembler(
        source=client,
        bookings=bookings,
        batcher=batcher,
        name_field=cfg.products_search_field,
        ttl_secs=cfg.products_cache_ttl_secs,
        error_ttl_secs=cfg.products_error_cache_ttl_secs,
        tz=tz,
    )

    def _after_write() -> None:
        bookings.invalidate()
        products.invalidate()

    submitter = BookingSubmitter(
        client,
        max_rental_days=cfg.max_rental_days,
        tz=tz,
        on_written=_after_write,
    )
    return Engine(
        client=client,
        bookings=bookings,
        index=index,
        batcher=batcher,
        products=products,
        submitter=submitter,
    )


@lru_cache
def get_engine() -> Engine:
    return build_engine(settings)
