from datetime import datetime, timedelta, timezone

import httpx
import pytest

from rentals.clients.errors import MalformedResponseError, RateLimitedError
from rentals.clients.table_client import TableClient
from rentals.services.batcher import RequestBatcher
from rentals.services.bookings_cache import BookingsCache
from rentals.services.product_index import ProductBookingIndex
from rentals.services.products import RATE_LIMITED_MESSAGE, ProductsPageAssembler

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


async def _no_sleep(_secs):
    return None


class CountingBatcher:
    def __init__(self, inner, fail_for=()):
        self.inner = inner
        self.fail_for = set(fail_for)
        self.requested = []

    async def queue_product_for_processing(self, product_id):
        self.requested.append(product_id)
        if product_id in self.fail_for:
            raise RuntimeError("bookings unavailable")
        return await self.inner.queue_product_for_processing(product_id)


def _assembler(fake_client, clock, fail_for=()):
    cache = BookingsCache(fake_client, clock=clock, sleep=_no_sleep)
    index = ProductBookingIndex(cache, clock=clock)
    batcher = CountingBatcher(
        RequestBatcher(cache, index, interval_secs=0.0, sleep=_no_sleep), fail_for=fail_for
    )
    assembler = ProductsPageAssembler(
        source=fake_client,
        bookings=cache,
        batcher=batcher,  # type: ignore[arg-type]
        clock=clock,
        now=lambda: NOW,
    )
    return assembler, batcher


def _products(n):
    return [{"Id": i, "Produkt": f"Kajak {i}", "Totalantal": 2, "Antal tillgängliga": 2} for i in range(1, n + 1)]


@pytest.mark.asyncio
async def test_page_info_and_offset(fake_client, clock):
    fake_client.products = _products(7)
    assembler, _ = _assembler(fake_client, clock)

    page = await assembler.fetch_products(limit=3, page=2)

    assert fake_client.product_calls[-1] == {"offset": 3, "limit": 3, "search": None}
    assert [p.id for p in page.products] == ["4", "5", "6"]
    info = page.page_info
    assert (info.current_page, info.page_size, info.total_items, info.total_pages) == (2, 3, 7, 3)
    assert info.has_next_page is True
    assert info.has_previous_page is True
    assert page.error is None


@pytest.mark.asyncio
async def test_search_is_passed_and_echoed(fake_client, clock):
    fake_client.products = _products(3) + [{"Id": 10, "Produkt": "Paddel", "Totalantal": 1, "Antal tillgängliga": 1}]
    assembler, _ = _assembler(fake_client, clock)

    page = await assembler.fetch_products(search="Paddel")
    assert fake_client.product_calls[-1]["search"] == "Paddel"
    assert [p.name for p in page.products] == ["Paddel"]
    assert page.page_info.search_term == "Paddel"
    assert page.page_info.has_next_page is False


@pytest.mark.asyncio
async def test_fully_available_products_skip_the_batcher(fake_client, clock):
    fake_client.products = _products(3)
    fake_client.products[1]["Antal tillgängliga"] = 1
    fake_client.bookings = [
        {"Id": 1, "Product": {"Id": 2}, "Return date-time": (NOW + timedelta(days=1)).isoformat(), "Quantity": 1},
    ]
    assembler, batcher = _assembler(fake_client, clock)

    page = await assembler.fetch_products()

    assert batcher.requested == ["2"]
    by_id = {p.id: p.availability for p in page.products}
    assert by_id["1"].booked == 0 and by_id["1"].next_available is None
    assert by_id["2"].booked == 1
    assert by_id["2"].returning_quantity == 1
    assert by_id["2"].available == 1


@pytest.mark.asyncio
async def test_results_are_cached_for_five_minutes(fake_client, clock):
    fake_client.products = _products(2)
    assembler, _ = _assembler(fake_client, clock)

    first = await assembler.fetch_products(limit=10, page=1)
    clock.advance(299)
    assert await assembler.fetch_products(limit=10, page=1) is first
    assert len(fake_client.product_calls) == 1

    await assembler.fetch_products(limit=10, page=1, search="Kajak")
    assert len(fake_client.product_calls) == 2

    clock.advance(2)
    await assembler.fetch_products(limit=10, page=1)
    assert len(fake_client.product_calls) == 3


@pytest.mark.asyncio
async def test_errors_are_reported_and_cached_briefly(fake_client, clock):
    fake_client.product_error = MalformedResponseError("Expecting value")
    assembler, _ = _assembler(fake_client, clock)

    page = await assembler.fetch_products(page=2)
    assert page.products == []
    assert page.error == "Error parsing response: Expecting value"
    assert page.page_info.total_items == 0
    assert page.page_info.has_previous_page is True

    clock.advance(29)
    await assembler.fetch_products(page=2)
    assert len(fake_client.product_calls) == 1

    fake_client.product_error = None
    fake_client.products = _products(30)
    clock.advance(2)
    page = await assembler.fetch_products(page=2)
    assert page.error is None
    assert len(fake_client.product_calls) == 2


@pytest.mark.asyncio
async def test_rate_limit_gets_friendly_message(fake_client, clock):
    fake_client.product_error = RateLimitedError()
    assembler, _ = _assembler(fake_client, clock)
    page = await assembler.fetch_products()
    assert page.error == RATE_LIMITED_MESSAGE


@pytest.mark.asyncio
async def test_booking_lookup_failure_degrades_single_product(fake_client, clock):
    fake_client.products = _products(2)
    for p in fake_client.products:
        p["Antal tillgängliga"] = 0
    assembler, _ = _assembler(fake_client, clock, fail_for={"1"})

    page = await assembler.fetch_products()

    by_id = {p.id: p.availability for p in page.products}
    assert by_id["1"].booking_error == "bookings unavailable"
    assert by_id["1"].available == 0
    assert by_id["2"].booking_error is None
    assert page.error is None


@pytest.mark.asyncio
async def test_force_refresh_bypasses_cache_and_refetches_bookings(fake_client, clock):
    fake_client.products = _products(1)
    fake_client.products[0]["Antal tillgängliga"] = 1
    assembler, _ = _assembler(fake_client, clock)

    await assembler.fetch_products()
    assert fake_client.booking_calls == 1

    fake_client.bookings = [
        {"Id": 9, "Product": 1, "Return date-time": (NOW - timedelta(days=1)).isoformat(), "Quantity": 1}
    ]
    page = await assembler.fetch_products(force_refresh=True)
    assert len(fake_client.product_calls) == 2
    assert fake_client.booking_calls == 2
    assert page.products[0].availability.has_overdue_returns is True
    assert page.products[0].availability.days_overdue == 1


@pytest.mark.asyncio
async def test_non_object_product_rows_become_error_page(clock):
    client = TableClient(
        products_url="http://nocodb.test/api/v2/tables/p1/records",
        bookings_url="http://nocodb.test/api/v2/tables/b1/records",
        api_token="secret",
        transport=httpx.MockTransport(
            lambda r: httpx.Response(200, json={"list": ["oops"], "pageInfo": {"totalRows": 1}})
        ),
    )
    assembler, batcher = _assembler(client, clock)
    try:
        page = await assembler.fetch_products(limit=5, page=1)
    finally:
        await client.aclose()

    assert page.products == []
    assert page.error is not None
    assert "not JSON objects" in page.error
    assert batcher.requested == []
