from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from rentals.api import rate_limit
from rentals.api.deps import engine_dep
from rentals.clients.table_client import ProductsPageResult
from rentals.core.config import settings
from rentals.main import app
from rentals.services.factory import build_engine


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, secs: float) -> None:
        self.now += secs


class FakeTableClient:
    """In-memory stand-in for TableClient with failure injection."""

    products_url = "http://nocodb.test/api/v2/tables/products/records"
    bookings_url = "http://nocodb.test/api/v2/tables/bookings/records"
    bookings_configured = True

    def __init__(self) -> None:
        self.products: list[dict[str, Any]] = []
        self.bookings: list[dict[str, Any]] = []
        self.product_error: Exception | None = None
        self.booking_errors: list[Exception] = []
        self.create_errors: dict[str, Exception] = {}
        self.product_calls: list[dict[str, Any]] = []
        self.booking_calls = 0
        self.created: list[dict[str, Any]] = []

    async def list_products(
        self, *, offset: int, limit: int, search: str | None = None
    ) -> ProductsPageResult:
        self.product_calls.append({"offset": offset, "limit": limit, "search": search})
        if self.product_error is not None:
            raise self.product_error
        rows = [p for p in self.products if not search or search in str(p.get("Produkt", ""))]
        return ProductsPageResult(
            records=rows[offset : offset + limit],
            total_rows=len(rows),
            is_last_page=offset + limit >= len(rows),
        )

    async def list_bookings(self, *, limit: int) -> list[dict[str, Any]]:
        self.booking_calls += 1
        if self.booking_errors:
            raise self.booking_errors.pop(0)
        return list(self.bookings[:limit])

    async def create_booking_record(self, record: dict[str, Any]) -> dict[str, Any]:
        err = self.create_errors.get(str(record["Product"]))
        if err is not None:
            raise err
        self.created.append(record)
        return {"Id": len(self.created)}

    async def aclose(self) -> None:
        return None


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def fake_client():
    return FakeTableClient()


@pytest.fixture()
def engine(fake_client):
    cfg = settings.model_copy(
        update={
            "bookings_retry_base_delay_secs": 0.0,
            "batch_interval_secs": 0.0,
        }
    )
    return build_engine(cfg, client=fake_client)  # type: ignore[arg-type]


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    # Rate limiting fails open without Redis; tests opt back in explicitly.
    monkeypatch.setattr(rate_limit, "get_redis", lambda: None)


@pytest.fixture()
def client(engine):
    app.dependency_overrides[engine_dep] = lambda: engine
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
