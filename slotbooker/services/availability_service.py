"""
Application service answering "which slots are offerable" and "book this slot".

The service coordinates store reads and delegates the calculation to the
domain-level resolver, generator and conflict checker. Writes go through the
``BookingCommitGuard``. The store is injected as a protocol so tests can run
against the in-memory store.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, List, Optional

import pendulum
from pendulum import Date, DateTime

from ..config import BookingPolicy
from ..domain.conflict_checker import BookingConflictChecker
from ..domain.exceptions import BookingConflictError, InvalidInputError
from ..domain.models import (
    Booking,
    BookingStatus,
    Resource,
    ServiceSpec,
    Slot,
    TimeRange,
    parse_date,
    parse_instant,
)
from ..domain.slot_generator import SlotGenerator
from ..domain.window_resolver import AvailabilityWindowResolver
from .commit_guard import BookingCommitGuard
from .ports import BookingStoreProtocol

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Orchestrates slot computation and booking.

    Every call takes the resource id explicitly; the service holds no
    per-business state besides its collaborators and policy.
    """

    def __init__(
        self,
        store: BookingStoreProtocol,
        policy: Optional[BookingPolicy] = None,
        *,
        resolver: Optional[AvailabilityWindowResolver] = None,
        slot_generator: Optional[SlotGenerator] = None,
        conflict_checker: Optional[BookingConflictChecker] = None,
        commit_guard: Optional[BookingCommitGuard] = None,
        now: Callable[[], DateTime] = pendulum.now,
    ) -> None:
        self._store = store
        self._policy = policy or BookingPolicy()
        self._resolver = resolver or AvailabilityWindowResolver()
        self._slot_generator = slot_generator or SlotGenerator()
        self._conflict_checker = conflict_checker or BookingConflictChecker()
        self._commit_guard = commit_guard or BookingCommitGuard(
            store, timeout_seconds=self._policy.store_timeout_seconds
        )
        self._now = now

    @property
    def policy(self) -> BookingPolicy:
        return self._policy

    def compute_slots(self, resource_id: str, day: Any, service_id: str) -> List[Slot]:
        """
        Compute the offerable slots of a resource for a date.

        Args:
            resource_id: The resource to look at
            day: Calendar date (``YYYY-MM-DD`` or date) in the resource's timezone
            service_id: The service to fit

        Returns:
            Slots ordered by start. Empty if nothing is offerable.

        Raises:
            InvalidInputError: If the date, resource or service is invalid
            StoreUnavailableError: If the store cannot be read
        """
        target_day = parse_date(day)
        resource = self._require_resource(resource_id)
        service = self._effective_service(resource, service_id)

        if not self._within_horizon(resource, target_day):
            logger.debug("%s is outside the booking horizon for %s", target_day, resource_id)
            return []

        blocks = self._store.get_blocked_ranges(resource_id, target_day)
        bookings = self._store.get_bookings(resource_id, target_day)

        windows = self._resolver.resolve(resource, target_day, blocks, bookings)
        slots = self._slot_generator.generate(
            windows, service, self._policy.slot_interval_minutes
        )

        earliest = self._earliest_start()
        offered = [slot for slot in slots if slot.start >= earliest]

        logger.debug(
            "%d slot(s) for %s/%s on %s", len(offered), resource_id, service_id, target_day
        )
        return offered

    def book(
        self,
        resource_id: str,
        service_id: str,
        slot_start: Any,
        client_id: str,
        timeout: Optional[float] = None,
    ) -> Booking:
        """
        Book a slot.

        Args:
            resource_id: The resource to book
            service_id: The service to book
            slot_start: ISO-8601 instant or datetime; naive values and strings
                without an offset are read in the resource's timezone
            client_id: The client making the booking
            timeout: Store timeout in seconds for the commit

        Returns:
            The created booking

        Raises:
            InvalidInputError: If the request is malformed or the slot is not offered
            BookingConflictError: If the range is already taken
            StoreUnavailableError: If the store fails or times out
        """
        resource = self._require_resource(resource_id)
        service = self._effective_service(resource, service_id)
        start = parse_instant(slot_start, tz=resource.timezone)
        candidate = TimeRange.from_start(start, service.duration_minutes)
        day = start.in_timezone(resource.timezone).date()

        if not self._within_horizon(resource, day) or start < self._earliest_start():
            raise InvalidInputError(
                f"Slot {start.to_iso8601_string()} is outside the booking horizon",
                details={"resource_id": resource_id, "start": start.to_iso8601_string()},
            )

        self._ensure_within_hours(resource, service, day, start)

        # Fast-path rejection against a possibly stale read.
        bookings = self._store.get_bookings(resource_id, day)
        conflicts = self._conflict_checker.find_conflicts(candidate, bookings, resource_id)
        if conflicts:
            raise BookingConflictError(
                f"Slot {start.to_iso8601_string()} is no longer available",
                details={
                    "resource_id": resource_id,
                    "conflicting_booking_ids": [booking.id for booking in conflicts],
                },
            )

        status = BookingStatus.PENDING if self._policy.require_payment else BookingStatus.CONFIRMED
        return self._commit_guard.commit(
            resource_id=resource_id,
            candidate=candidate,
            client_id=client_id,
            service=service,
            status=status,
            timeout=timeout,
        )

    def confirm_booking(self, booking_id: str) -> Booking:
        """Confirm a pending booking."""
        return self._commit_guard.transition(booking_id, BookingStatus.CONFIRMED)

    def cancel_booking(self, booking_id: str) -> Booking:
        """Cancel a pending or confirmed booking, freeing its time."""
        return self._commit_guard.transition(booking_id, BookingStatus.CANCELED)

    def _require_resource(self, resource_id: str) -> Resource:
        resource = self._store.get_resource(resource_id) if resource_id else None
        if resource is None:
            raise InvalidInputError(
                f"Unknown resource: {resource_id}", details={"resource_id": resource_id}
            )
        return resource

    def _effective_service(self, resource: Resource, service_id: str) -> ServiceSpec:
        """Load the service, applying the resource's buffer override."""
        service = self._store.get_service(service_id) if service_id else None
        if service is None:
            raise InvalidInputError(
                f"Unknown service: {service_id}", details={"service_id": service_id}
            )
        if resource.buffer_minutes is not None:
            return service.with_buffer(resource.buffer_minutes)
        return service

    def _today(self, resource: Resource) -> Date:
        return self._now().in_timezone(resource.timezone).date()

    def _within_horizon(self, resource: Resource, day: date) -> bool:
        today = self._today(resource)
        if day < today:
            return False
        if day == today and not self._policy.allow_same_day:
            return False
        return day <= today.add(days=self._policy.max_advance_days)

    def _earliest_start(self) -> DateTime:
        return self._now().in_timezone("UTC").add(hours=self._policy.min_advance_hours)

    def _ensure_within_hours(
        self,
        resource: Resource,
        service: ServiceSpec,
        day: date,
        start: DateTime,
    ) -> None:
        """Reject starts that fall outside hours, breaks or blocks."""
        blocks = self._store.get_blocked_ranges(resource.id, day)
        offered = self._resolver.resolve(resource, day, blocks, bookings=[])
        occupied = TimeRange.from_start(start, service.occupied_minutes)

        if not any(window.contains(occupied) for window in offered):
            raise InvalidInputError(
                f"Slot {start.to_iso8601_string()} is not within the offered hours of {resource.id}",
                details={"resource_id": resource.id, "start": start.to_iso8601_string()},
            )
