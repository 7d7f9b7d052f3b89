from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Protocol

from rentals.schemas.bookings import BookingSubmissionIn
from rentals.services.availability import DEFAULT_TZ

logger = logging.getLogger(__name__)

FORM_DATETIME_FORMAT = "%d-%m-%Y %H:%M"
_form_datetime_re = re.compile(r"^\d{2}-\d{2}-\d{4} \d{2}:\d{2}$")


class BookingValidationError(ValueError):
    """A booking the renter has to correct; the message is user-facing."""


class BookingWriter(Protocol):
    async def create_booking_record(self, record: dict[str, Any]) -> dict[str, Any]: ...


@dataclass
class SubmissionResult:
    successes: list[dict[str, Any]] = field(default_factory=list)
    failures: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def partial_success(self) -> bool:
        return bool(self.failures) and bool(self.successes)


def parse_form_datetime(raw: str, label: str, tz: tzinfo) -> datetime:
    text = (raw or "").strip()
    if not _form_datetime_re.match(text):
        raise BookingValidationError(f"Invalid {label} format. Expected DD-MM-YYYY HH:mm")
    try:
        return datetime.strptime(text, FORM_DATETIME_FORMAT).replace(tzinfo=tz)
    except ValueError:
        raise BookingValidationError(f"Invalid {label}: {text}")


def validate_booking_window(
    pickup_raw: str | None,
    return_raw: str | None,
    *,
    now: datetime,
    tz: tzinfo = DEFAULT_TZ,
    max_days: int = 7,
) -> tuple[datetime, datetime]:
    if not pickup_raw or not return_raw:
        raise BookingValidationError("Please select both pickup and return dates")

    pickup = parse_form_datetime(pickup_raw, "pickup date", tz)
    return_at = parse_form_datetime(return_raw, "return date", tz)

    # The form has minute resolution; a pickup in the current minute is fine.
    if pickup < now.replace(second=0, microsecond=0):
        raise BookingValidationError("Pickup date cannot be in the past")
    if return_at <= pickup:
        raise BookingValidationError("Return date must be after pickup date")
    if return_at - pickup > timedelta(days=max_days):
        raise BookingValidationError(
            f"Booking period is too long: the maximum {max_days} days rental is allowed"
        )
    return pickup, return_at


def build_booking_records(payload: BookingSubmissionIn) -> list[dict[str, Any]]:
    """One remote record per booked item, sharing the renter fields."""
    return [
        {
            "Name": payload.full_name,
            "Email": payload.email,
            "Phone": payload.phone,
            "Address": payload.address,
            "Pickup date-time": payload.pickup_date_time_formatted,
            "Return date-time": payload.return_date_time_formatted,
            "Notes": payload.notes or "",
            # Linked-record field: the product id, not its name.
            "Product": item.id,
            "Quantity": item.quantity,
        }
        for item in payload.booking_items
    ]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingSubmitter:
    def __init__(
        self,
        writer: BookingWriter,
        *,
        max_rental_days: int = 7,
        tz: tzinfo = DEFAULT_TZ,
        now: Callable[[], datetime] = _utcnow,
        on_written: Callable[[], None] | None = None,
    ):
        self._writer = writer
        self._max_days = max_rental_days
        self._tz = tz
        self._now = now
        self._on_written = on_written

    def validate(self, payload: BookingSubmissionIn) -> None:
        if not payload.booking_items:
            raise BookingValidationError(
                "Invalid booking data. Please make sure you have items in your booking."
            )
        validate_booking_window(
            payload.pickup_date_time_formatted,
            payload.return_date_time_formatted,
            now=self._now().astimezone(self._tz),
            tz=self._tz,
            max_days=self._max_days,
        )

    async def submit(self, payload: BookingSubmissionIn) -> SubmissionResult:
        """Validate, then write. Raises BookingValidationError before any write."""
        self.validate(payload)
        return await self.write(payload)

    async def write(self, payload: BookingSubmissionIn) -> SubmissionResult:
        """Write each item of an already validated payload in order.

        A failed item does not stop the others; the result lists both sides.
        """
        records = build_booking_records(payload)
        logger.info("submitting %d booking records", len(records))

        result = SubmissionResult()
        for record in records:
            try:
                data = await self._writer.create_booking_record(record)
            except Exception as exc:
                logger.warning("booking write failed for product %s: %s", record["Product"], exc)
                failure: dict[str, Any] = {"product": record["Product"], "error": str(exc)}
                status_code = getattr(exc, "status_code", None)
                if status_code is not None:
                    failure["error"] = f"Failed with status {status_code}"
                    failure["details"] = {"message": str(exc)}
                result.failures.append(failure)
            else:
                result.successes.append({"product": record["Product"], "success": True, "data": data})

        if result.successes and self._on_written is not None:
            self._on_written()
        return result
