"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .conflict_checker import BookingConflictChecker
from .models import (
    BlockedRange,
    Booking,
    BookingStatus,
    DayHours,
    Resource,
    ServiceSpec,
    Slot,
    TimeRange,
    WorkingHours,
)
from .overlap import overlaps
from .slot_generator import SlotGenerator
from .window_resolver import AvailabilityWindowResolver

__all__ = [
    "AvailabilityWindowResolver",
    "BlockedRange",
    "Booking",
    "BookingConflictChecker",
    "BookingStatus",
    "DayHours",
    "Resource",
    "ServiceSpec",
    "Slot",
    "SlotGenerator",
    "TimeRange",
    "WorkingHours",
    "overlaps",
]
