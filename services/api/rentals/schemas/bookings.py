from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BookingItemIn(BaseModel):
    id: int | str
    quantity: int = Field(default=1, ge=1)
    name: str | None = None


class BookingSubmissionIn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    full_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    notes: str | None = None
    pickup_date_time_formatted: str | None = None
    return_date_time_formatted: str | None = None
    booking_items: list[BookingItemIn] = Field(default_factory=list)


class BookingSuccessOut(BaseModel):
    success: bool = True
    message: str
    count: int


class BookingFailureOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    error: str
    details: list[dict[str, Any]]
    partial_success: bool
    successful_bookings: list[dict[str, Any]]
