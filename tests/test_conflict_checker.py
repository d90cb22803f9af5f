"""
Tests for BookingConflictChecker.
"""

import pendulum

from slotbooker.domain.conflict_checker import BookingConflictChecker
from slotbooker.domain.models import Booking, BookingStatus, TimeRange

TZ = "America/Sao_Paulo"


def _range(start: str, end: str) -> TimeRange:
    return TimeRange(
        start=pendulum.parse(f"2024-11-25 {start}", tz=TZ),
        end=pendulum.parse(f"2024-11-25 {end}", tz=TZ),
    )


def _booking(booking_id: str, start: str, end: str, status=BookingStatus.CONFIRMED, resource_id="ana") -> Booking:
    return Booking(
        id=booking_id,
        resource_id=resource_id,
        range=_range(start, end),
        status=status,
        client_id="client",
    )


class TestBookingConflictChecker:
    """Tests for candidate conflict detection."""

    def setup_method(self):
        self.checker = BookingConflictChecker()
        self.bookings = [_booking("b1", "10:00", "11:00")]

    def test_overlapping_candidate_conflicts(self):
        conflicts = self.checker.find_conflicts(_range("10:30", "11:30"), self.bookings)

        assert [b.id for b in conflicts] == ["b1"]
        assert self.checker.has_conflict(_range("10:30", "11:30"), self.bookings)

    def test_back_to_back_is_allowed(self):
        assert not self.checker.has_conflict(_range("11:00", "12:00"), self.bookings)
        assert not self.checker.has_conflict(_range("09:00", "10:00"), self.bookings)

    def test_one_minute_overlap_conflicts(self):
        assert self.checker.has_conflict(_range("10:59", "11:59"), self.bookings)
        assert self.checker.has_conflict(_range("09:01", "10:01"), self.bookings)

    def test_canceled_bookings_are_ignored(self):
        bookings = [_booking("b1", "10:00", "11:00", status=BookingStatus.CANCELED)]

        assert not self.checker.has_conflict(_range("10:00", "11:00"), bookings)

    def test_pending_bookings_conflict(self):
        bookings = [_booking("b1", "10:00", "11:00", status=BookingStatus.PENDING)]

        assert self.checker.has_conflict(_range("10:00", "11:00"), bookings)

    def test_resource_filter(self):
        bookings = [_booking("b2", "10:00", "11:00", resource_id="bruno")]

        assert not self.checker.has_conflict(_range("10:00", "11:00"), bookings, resource_id="ana")
        assert self.checker.has_conflict(_range("10:00", "11:00"), bookings)

    def test_returns_every_conflict(self):
        bookings = [
            _booking("b1", "09:00", "10:00"),
            _booking("b2", "10:00", "11:00"),
            _booking("b3", "12:00", "13:00"),
        ]

        conflicts = self.checker.find_conflicts(_range("09:30", "10:30"), bookings)

        assert [b.id for b in conflicts] == ["b1", "b2"]

    def test_no_bookings(self):
        assert self.checker.find_conflicts(_range("10:00", "11:00"), []) == []
