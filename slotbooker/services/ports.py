"""
Store port consumed by the availability service and the commit guard.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Protocol

from ..domain.models import (
    BlockedRange,
    Booking,
    BookingStatus,
    Resource,
    ServiceSpec,
    TimeRange,
    WorkingHours,
)


class BookingStoreProtocol(Protocol):
    """
    Protocol describing the store behaviour needed by the engine.

    Reads may be stale. ``insert_booking_if_free`` must be atomic with
    respect to overlapping live bookings of the same resource. Writes
    honour the caller-supplied timeout and raise ``StoreUnavailableError``
    when it expires.
    """

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        """Return the resource, or None if unknown."""

    def get_working_hours(self, resource_id: str) -> WorkingHours:
        """Return the effective weekly hours of the resource."""

    def get_service(self, service_id: str) -> Optional[ServiceSpec]:
        """Return the service, or None if unknown."""

    def get_blocked_ranges(self, resource_id: str, day: date) -> List[BlockedRange]:
        """Return the blocks touching the resource's local ``day``."""

    def get_bookings(self, resource_id: str, day: date) -> List[Booking]:
        """Return the bookings touching the resource's local ``day``."""

    def insert_booking_if_free(
        self,
        resource_id: str,
        time_range: TimeRange,
        client_id: str,
        service_id: Optional[str],
        status: BookingStatus,
        timeout: float,
    ) -> Booking:
        """Insert a booking unless a live booking overlaps; raise BookingConflictError otherwise."""

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Return a booking by id, or None if unknown."""

    def update_booking_status(
        self,
        booking_id: str,
        status: BookingStatus,
        timeout: float,
    ) -> Booking:
        """Persist a status change, re-validating the transition against live data."""
