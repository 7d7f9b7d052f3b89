from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from rentals.clients.errors import (
    MalformedResponseError,
    RateLimitedError,
    TableNotConfiguredError,
    UpstreamHTTPError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductsPageResult:
    records: list[dict[str, Any]]
    total_rows: int
    is_last_page: bool | None


def _strip_query(url: str | None) -> str | None:
    if not url:
        return None
    return url.split("?", 1)[0]


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _record_list(data: dict[str, Any]) -> list[Any]:
    rows = data.get("list")
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise MalformedResponseError(f"expected list to be an array, got {type(rows).__name__}")
    return rows


class TableClient:
    """Authenticated reads/writes against the Products and Bookings tables.

    Holds no state beyond the underlying httpx client. Every call returns
    parsed JSON or raises a `TableClientError` subclass.
    """

    def __init__(
        self,
        *,
        products_url: str | None,
        bookings_url: str | None,
        api_token: str | None,
        search_field: str = "Produkt",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.products_url = _strip_query(products_url)
        self.bookings_url = _strip_query(bookings_url)
        self.search_field = search_field
        self._api_token = api_token
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "xc-token": api_token or "",
                "Content-Type": "application/json",
            },
        )

    @property
    def bookings_configured(self) -> bool:
        return bool(self.bookings_url and self._api_token)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_products(
        self, *, offset: int, limit: int, search: str | None = None
    ) -> ProductsPageResult:
        url = self._require(self.products_url, "PRODUCTS_TABLE_URL")
        params: dict[str, Any] = {"offset": offset, "limit": limit, "fields": "*"}
        if search and search.strip():
            # httpx encodes '%' as %25, giving NocoDB's like-wildcard on the wire.
            params["where"] = f"({self.search_field},like,%{search}%)"

        data = await self._request("GET", url, params=params, empty={"list": []})
        records = _record_list(data)
        bad = sum(1 for row in records if not isinstance(row, dict))
        if bad:
            raise MalformedResponseError(f"{bad} product rows are not JSON objects")
        page_info = data.get("pageInfo") or {}
        if not isinstance(page_info, dict):
            raise MalformedResponseError(
                f"expected pageInfo to be an object, got {type(page_info).__name__}"
            )
        total_rows = page_info.get("totalRows") or 0
        try:
            total_rows = int(total_rows)
        except (TypeError, ValueError):
            total_rows = 0
        return ProductsPageResult(
            records=records,
            total_rows=total_rows,
            is_last_page=page_info.get("isLastPage"),
        )

    async def list_bookings(self, *, limit: int) -> list[dict[str, Any]]:
        url = self._require(self.bookings_url, "BOOKING_TABLE_URL")
        data = await self._request("GET", url, params={"limit": limit}, empty={"list": []})
        rows = _record_list(data)
        records = [row for row in rows if isinstance(row, dict)]
        if len(records) != len(rows):
            logger.warning("dropped %d booking rows that are not JSON objects", len(rows) - len(records))
        logger.debug("fetched %d booking records", len(records))
        return records

    async def create_booking_record(self, record: dict[str, Any]) -> dict[str, Any]:
        url = self._require(self.bookings_url, "BOOKING_TABLE_URL")
        return await self._request("POST", url, json_body=record, empty={})

    def _require(self, url: str | None, name: str) -> str:
        if not url or not self._api_token:
            missing = name if not url else "NOCODB_API_TOKEN"
            raise TableNotConfiguredError(f"Server configuration error: {missing} is not set")
        return url

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        empty: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, url, params=params, json=json_body)
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"NocoDB request failed: {exc}") from exc

        if resp.status_code == 429:
            raise RateLimitedError(_parse_retry_after(resp.headers.get("Retry-After")))
        if resp.is_error:
            raise UpstreamHTTPError(resp.status_code, resp.reason_phrase)

        text = resp.text
        if not text.strip():
            return dict(empty)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(str(exc)) from exc
        if not isinstance(data, dict):
            raise MalformedResponseError(f"expected a JSON object, got {type(data).__name__}")
        return data
