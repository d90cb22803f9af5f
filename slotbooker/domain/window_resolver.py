"""
Resolution of a resource's free windows for a single calendar date.

Pure domain logic: the caller supplies the blocks and bookings it read
from the store.
"""

import logging
from datetime import date
from typing import Iterable, List

from .models import BlockedRange, Booking, Resource, TimeRange
from .overlap import overlaps

logger = logging.getLogger(__name__)


class AvailabilityWindowResolver:
    """
    Turns working hours, blocks and bookings into free windows.

    Algorithm:
    1. Look up the resource's hours for the weekday (closed -> no windows)
    2. Convert open/close to UTC instants in the resource's timezone
    3. Subtract the day's break, every block and every live booking
    4. Return the remaining pieces ordered by start
    """

    def resolve(
        self,
        resource: Resource,
        day: date,
        blocks: Iterable[BlockedRange],
        bookings: Iterable[Booking],
    ) -> List[TimeRange]:
        """
        Compute the free windows of ``resource`` on ``day``.

        Args:
            resource: The resource whose hours and timezone are used
            day: Calendar date in the resource's timezone
            blocks: Blocked ranges (business-wide blocks included)
            bookings: Bookings of the resource; canceled ones are ignored

        Returns:
            Free windows sorted by start. Empty when closed or fully booked.
        """
        hours = resource.working_hours.for_date(day)
        if hours is None:
            return []

        base = hours.to_range(day, resource.timezone)

        obstacles: List[TimeRange] = []
        break_range = hours.break_range(day, resource.timezone)
        if break_range is not None:
            obstacles.append(break_range)

        obstacles.extend(
            block.range for block in blocks
            if block.applies_to(resource.id)
        )
        obstacles.extend(
            booking.range for booking in bookings
            if booking.is_active and booking.resource_id == resource.id
        )

        windows = self.subtract_all(base, obstacles)

        logger.debug(
            "Resolved %d window(s) for %s on %s", len(windows), resource.id, day.isoformat()
        )
        return windows

    @staticmethod
    def subtract_all(base: TimeRange, obstacles: Iterable[TimeRange]) -> List[TimeRange]:
        """
        Subtract every obstacle from ``base``.

        Example:
        Base: 09:00 - 17:00
        Obstacles: [10:00-11:00, 14:00-15:00]
        Result: [09:00-10:00, 11:00-14:00, 15:00-17:00]

        Adjoining remainders are kept as separate windows.
        """
        windows: List[TimeRange] = [base]

        for obstacle in obstacles:
            if not overlaps(base, obstacle):
                continue
            windows = [
                piece
                for window in windows
                for piece in window.subtract(obstacle)
            ]
            if not windows:
                break

        return sorted(windows, key=lambda window: window.start)
