from datetime import datetime, timedelta, timezone

from rentals.services.availability import (
    DEFAULT_TZ,
    compute_availability,
    format_return_date,
)

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def _booking(returns_at: datetime, quantity=1, **extra):
    row = {"Product": {"id": 7}, "Return date-time": returns_at.isoformat(), "Quantity": quantity}
    row.update(extra)
    return row


def test_overdue_and_upcoming_returns():
    tomorrow = NOW + timedelta(days=1)
    bookings = [
        _booking(NOW - timedelta(days=3), quantity=2),
        _booking(tomorrow, quantity=1),
    ]

    s = compute_availability(5, 3, bookings, NOW)

    assert s.total == 5
    assert s.booked == 3
    assert s.available == 3
    assert s.next_available == format_return_date(tomorrow, DEFAULT_TZ)
    assert s.next_return_timestamp == int(tomorrow.timestamp() * 1000)
    assert s.returning_quantity == 1
    assert s.has_overdue_returns is True
    assert s.overdue_quantity == 2
    assert s.days_overdue == 3


def test_next_return_quantity_is_earliest_booking_only():
    bookings = [
        _booking(NOW + timedelta(days=4), quantity=5),
        _booking(NOW + timedelta(hours=2), quantity=2),
        _booking(NOW + timedelta(days=2), quantity=3),
    ]
    s = compute_availability(10, 0, bookings, NOW)

    assert s.returning_quantity == 2
    assert s.booked == 10
    assert s.has_overdue_returns is False
    assert s.overdue_quantity == 0
    assert s.overdue_date is None


def test_overdue_quantity_sums_and_date_is_most_overdue():
    oldest = NOW - timedelta(days=6, hours=5)
    bookings = [
        _booking(NOW - timedelta(days=1), quantity=1),
        _booking(oldest, quantity=2),
        _booking(NOW, quantity=4),  # due exactly now counts as overdue
    ]
    s = compute_availability(8, 1, bookings, NOW)

    assert s.overdue_quantity == 7
    assert s.overdue_date == format_return_date(oldest, DEFAULT_TZ)
    assert s.days_overdue == 6
    assert s.next_available is None
    assert s.next_return_timestamp == 0


def test_available_is_passed_through_unmodified():
    bookings = [_booking(NOW + timedelta(days=1), quantity=4)]
    s = compute_availability(5, 5, bookings, NOW)
    assert s.available == 5
    assert s.booked == 4


def test_unparseable_and_missing_dates_are_skipped():
    bookings = [
        {"Product": 7, "Return date-time": "soon", "Quantity": 3},
        {"Product": 7, "Quantity": 2},
        {"Product": 7, "Return date-time": {"value": "not a date"}},
        "garbage",
    ]
    s = compute_availability(5, 0, bookings, NOW)  # type: ignore[arg-type]

    assert s.booked == 0
    assert s.next_available is None
    assert s.has_overdue_returns is False


def test_alternate_field_spellings_and_wrapped_values():
    bookings = [
        {"ReturnDateTime": {"value": (NOW + timedelta(days=2)).isoformat()}, "quantity": "2"},
        {"return_date": "2025-03-13T08:00:00Z", "Antal": "x"},
    ]
    s = compute_availability(5, 2, bookings, NOW)

    assert s.booked == 3
    assert s.returning_quantity == 2


def test_form_style_dates_are_read_in_display_timezone():
    # 11-03-2025 10:00 Stockholm == 09:00 UTC
    s = compute_availability(2, 1, [{"Return date-time": "11-03-2025 10:00", "Quantity": 1}], NOW)
    assert s.next_return_timestamp == int(datetime(2025, 3, 11, 9, 0, tzinfo=timezone.utc).timestamp() * 1000)
    assert s.next_available == "11 mars 2025 10:00"


def test_same_inputs_same_summary():
    bookings = [_booking(NOW - timedelta(days=1), quantity=2), _booking(NOW + timedelta(days=1))]
    assert compute_availability(5, 2, bookings, NOW) == compute_availability(5, 2, bookings, NOW)


def test_no_bookings_gives_zeroed_summary():
    s = compute_availability(3, 3, [], NOW)
    assert (s.booked, s.returning_quantity, s.overdue_quantity, s.days_overdue) == (0, 0, 0, 0)
    assert s.next_available is None


def test_format_return_date_swedish_long_form():
    assert format_return_date(datetime(2025, 3, 4, 14, 0, tzinfo=timezone.utc)) == "04 mars 2025 15:00"
    # Summer time
    assert format_return_date(datetime(2025, 7, 1, 6, 30, tzinfo=timezone.utc)) == "01 juli 2025 08:30"
