from __future__ import annotations

import re
from datetime import datetime, tzinfo
from typing import Any, Mapping

_leading_int = re.compile(r"^\s*([+-]?\d+)")

TOTAL_QTY_FIELDS = ("Totalantal", "TotalAntal", "Total")
AVAILABLE_QTY_FIELDS = ("Antal tillgängliga", "Antal tillgangliga", "Available", "Quantity")
BOOKING_QTY_FIELDS = ("Quantity", "quantity", "Antal")
RETURN_DATE_FIELDS = (
    "Return date-time",
    "ReturnDateTime",
    "returnDateTime",
    "Return datetime",
    "return_date",
)

# Formats the table store (or our own booking form) may hand back.
_DATETIME_FORMATS = ("%d-%m-%Y %H:%M", "%Y-%m-%d %H:%M", "%d-%m-%Y")


def _first_present(record: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    # Empty strings, zero and None fall through to the next spelling.
    for k in keys:
        v = record.get(k)
        if v:
            return v
    return None


def parse_int(value: Any) -> int | None:
    """Leading-integer parse: 3 -> 3, "2 st" -> 2, "x" -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    m = _leading_int.match(str(value))
    return int(m.group(1)) if m else None


def _id_text(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    s = str(value).strip()
    return s or None


def product_ref_id(booking: Mapping[str, Any]) -> str | None:
    """Canonical string id of the product a booking references.

    The `Product` link arrives as a bare id, or as an object keyed `id` or
    `Id`. Linked-record lists are reduced to their first element.
    """
    ref = booking.get("Product")
    if isinstance(ref, list):
        ref = ref[0] if ref else None
    if isinstance(ref, Mapping):
        for key in ("id", "Id"):
            found = _id_text(ref.get(key))
            if found:
                return found
        return None
    return _id_text(ref)


def product_id(product: Mapping[str, Any]) -> str | None:
    return _id_text(product.get("Id")) or _id_text(product.get("id"))


def product_name(product: Mapping[str, Any], name_field: str = "Produkt") -> str:
    name = product.get(name_field) or product.get("Title") or product.get("Name")
    return str(name) if name else ""


def product_total_qty(product: Mapping[str, Any]) -> int:
    return parse_int(_first_present(product, TOTAL_QTY_FIELDS)) or 0


def product_available_qty(product: Mapping[str, Any]) -> int:
    return parse_int(_first_present(product, AVAILABLE_QTY_FIELDS)) or 0


def booking_quantity(booking: Mapping[str, Any]) -> int:
    return parse_int(_first_present(booking, BOOKING_QTY_FIELDS)) or 1


def booking_return_raw(booking: Mapping[str, Any]) -> str | None:
    raw = _first_present(booking, RETURN_DATE_FIELDS)
    if isinstance(raw, Mapping):
        raw = raw.get("value")
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return None


def parse_timestamp(raw: str, tz: tzinfo) -> datetime | None:
    """Parse a table-store datetime string; naive values are read in `tz`."""
    text = raw.strip()
    dt: datetime | None = None
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        for fmt in _DATETIME_FORMATS:
            try:
                dt = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


def booking_return_timestamp(booking: Mapping[str, Any], tz: tzinfo) -> datetime | None:
    raw = booking_return_raw(booking)
    if raw is None:
        return None
    return parse_timestamp(raw, tz)
