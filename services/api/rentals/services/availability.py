from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Mapping, Sequence
from zoneinfo import ZoneInfo

from rentals.domain.records import (
    booking_quantity,
    booking_return_raw,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

DEFAULT_TZ = ZoneInfo("Europe/Stockholm")

_SV_MONTHS = (
    "januari",
    "februari",
    "mars",
    "april",
    "maj",
    "juni",
    "juli",
    "augusti",
    "september",
    "oktober",
    "november",
    "december",
)

_SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class AvailabilitySummary:
    total: int
    booked: int
    available: int
    next_available: str | None = None
    next_return_timestamp: int = 0
    returning_quantity: int = 0
    has_overdue_returns: bool = False
    overdue_quantity: int = 0
    overdue_date: str | None = None
    days_overdue: int = 0
    booking_error: str | None = None


def empty_summary(total_qty: int, available_qty: int) -> AvailabilitySummary:
    """Summary for a product with nothing out on loan."""
    return AvailabilitySummary(total=total_qty, booked=0, available=available_qty)


def format_return_date(dt: datetime, tz: tzinfo = DEFAULT_TZ) -> str:
    """Swedish long form used on the product list, e.g. "04 mars 2025 15:00"."""
    local = dt.astimezone(tz)
    return f"{local.day:02d} {_SV_MONTHS[local.month - 1]} {local.year} {local:%H:%M}"


@dataclass(frozen=True)
class _Return:
    at: datetime
    quantity: int


def compute_availability(
    total_qty: int,
    available_qty: int,
    bookings: Sequence[Mapping[str, Any]],
    now: datetime,
    tz: tzinfo = DEFAULT_TZ,
) -> AvailabilitySummary:
    """Explain a product's available count from its booking rows.

    `available` is passed through as reported by the product record; the
    bookings only attribute it (who has the rest, when it comes back, what
    is overdue). Rows whose return date cannot be read are skipped.

    NOTE: pure function, `now` must be supplied by the caller.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    future: list[_Return] = []
    overdue: list[_Return] = []

    for booking in bookings or ():
        if not isinstance(booking, Mapping):
            continue
        raw = booking_return_raw(booking)
        if raw is None:
            continue
        at = parse_timestamp(raw, tz)
        if at is None:
            logger.debug("skipping booking %s: unparseable return date %r", booking.get("Id"), raw)
            continue
        entry = _Return(at=at, quantity=booking_quantity(booking))
        if at <= now:
            overdue.append(entry)
        else:
            future.append(entry)

    booked = sum(r.quantity for r in future) + sum(r.quantity for r in overdue)

    next_available: str | None = None
    next_return_timestamp = 0
    returning_quantity = 0
    if future:
        nxt = min(future, key=lambda r: r.at)
        next_available = format_return_date(nxt.at, tz)
        next_return_timestamp = int(nxt.at.timestamp() * 1000)
        returning_quantity = nxt.quantity

    overdue_quantity = 0
    overdue_date: str | None = None
    days_overdue = 0
    if overdue:
        oldest = min(overdue, key=lambda r: r.at)
        overdue_quantity = sum(r.quantity for r in overdue)
        overdue_date = format_return_date(oldest.at, tz)
        days_overdue = int((now - oldest.at).total_seconds() // _SECONDS_PER_DAY)

    return AvailabilitySummary(
        total=total_qty,
        booked=booked,
        available=available_qty,
        next_available=next_available,
        next_return_timestamp=next_return_timestamp,
        returning_quantity=returning_quantity,
        has_overdue_returns=bool(overdue),
        overdue_quantity=overdue_quantity,
        overdue_date=overdue_date,
        days_overdue=days_overdue,
    )
