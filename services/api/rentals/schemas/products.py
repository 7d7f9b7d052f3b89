from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AvailabilityOut(_CamelModel):
    total: int
    booked: int
    available: int
    next_available: str | None
    next_return_timestamp: int
    returning_quantity: int
    has_overdue_returns: bool
    overdue_quantity: int
    overdue_date: str | None
    days_overdue: int
    booking_error: str | None = None


class ProductOut(_CamelModel):
    id: str | None
    name: str
    record: dict[str, Any]
    availability: AvailabilityOut


class PageInfoOut(_CamelModel):
    current_page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool
    search_term: str


class ProductsPageOut(_CamelModel):
    products: list[ProductOut]
    page_info: PageInfoOut
    error: str | None = None
