"""
Conflict detection between a candidate range and existing bookings.
"""

from typing import Iterable, List, Optional

from .models import Booking, TimeRange
from .overlap import overlaps


class BookingConflictChecker:
    """
    Checks a candidate range against bookings that occupy time.

    The bookings passed in may be a stale read, so a negative answer is
    only a hint; the commit guard re-checks against live data.
    """

    def find_conflicts(
        self,
        candidate: TimeRange,
        bookings: Iterable[Booking],
        resource_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Return the live bookings overlapping ``candidate``.

        Args:
            candidate: The range to test
            bookings: Existing bookings
            resource_id: Restrict to bookings of this resource when given
        """
        return [
            booking for booking in bookings
            if booking.is_active
            and (resource_id is None or booking.resource_id == resource_id)
            and overlaps(candidate, booking.range)
        ]

    def has_conflict(
        self,
        candidate: TimeRange,
        bookings: Iterable[Booking],
        resource_id: Optional[str] = None,
    ) -> bool:
        """Check whether any live booking overlaps ``candidate``."""
        return bool(self.find_conflicts(candidate, bookings, resource_id))
