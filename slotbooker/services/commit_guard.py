"""
Atomic booking commit.

This is the only place where two simultaneous requests can race. The guard
validates the request, then hands the check-and-insert to the store in a
single conditional write. It never retries: on conflict the caller has to
recompute availability and let the user choose again.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from ..domain.exceptions import (
    BookingConflictError,
    InvalidInputError,
    StoreUnavailableError,
    UnknownBookingError,
)
from ..domain.models import Booking, BookingStatus, ServiceSpec, TimeRange
from .ports import BookingStoreProtocol

logger = logging.getLogger(__name__)

DEFAULT_STORE_TIMEOUT_SECONDS = 5.0


class BookingCommitGuard:
    """Performs validated, atomic booking creation and status transitions."""

    def __init__(
        self,
        store: BookingStoreProtocol,
        timeout_seconds: float = DEFAULT_STORE_TIMEOUT_SECONDS,
    ) -> None:
        if timeout_seconds <= 0:
            raise InvalidInputError(f"Store timeout must be positive, got {timeout_seconds}")
        self._store = store
        self._timeout = timeout_seconds

    def commit(
        self,
        resource_id: str,
        candidate: TimeRange,
        client_id: str,
        service: ServiceSpec,
        status: BookingStatus = BookingStatus.CONFIRMED,
        timeout: Optional[float] = None,
    ) -> Booking:
        """
        Create a booking if no live booking of the resource overlaps it.

        Args:
            resource_id: The resource to book
            candidate: The service time to reserve
            client_id: The client the booking belongs to
            service: The booked service; its duration must match the candidate
            status: Initial status (pending or confirmed)
            timeout: Store timeout in seconds, defaults to the guard's timeout

        Returns:
            The created booking

        Raises:
            InvalidInputError: If the request is malformed (store is not touched)
            BookingConflictError: If an overlapping live booking exists
            StoreUnavailableError: If the store fails or times out
        """
        self._validate(resource_id, candidate, client_id, service, status)

        try:
            booking = self._store.insert_booking_if_free(
                resource_id=resource_id,
                time_range=candidate,
                client_id=client_id,
                service_id=service.id,
                status=status,
                timeout=self._timeout if timeout is None else timeout,
            )
        except BookingConflictError as exc:
            logger.warning(
                "Booking conflict for %s at %s: %s", resource_id, candidate, exc.message
            )
            raise
        except StoreUnavailableError as exc:
            logger.error("Store unavailable while booking %s: %s", resource_id, exc.message)
            raise

        logger.info(
            "Committed booking %s for %s at %s (%s)",
            booking.id, resource_id, candidate, booking.status.value,
        )
        return booking

    def transition(
        self,
        booking_id: str,
        status: BookingStatus,
        timeout: Optional[float] = None,
    ) -> Booking:
        """
        Move a booking to a new status.

        Raises:
            UnknownBookingError: If the booking does not exist
            InvalidTransitionError: If the state machine forbids the change
            StoreUnavailableError: If the store fails or times out
        """
        booking = self._store.get_booking(booking_id)
        if booking is None:
            raise UnknownBookingError(f"Unknown booking: {booking_id}", details={"booking_id": booking_id})

        # Fail fast on a forbidden change; the store re-checks against live data.
        booking.with_status(status)

        updated = self._store.update_booking_status(
            booking_id,
            status,
            timeout=self._timeout if timeout is None else timeout,
        )
        logger.info("Booking %s is now %s", booking_id, updated.status.value)
        return updated

    @staticmethod
    def _validate(
        resource_id: str,
        candidate: TimeRange,
        client_id: str,
        service: ServiceSpec,
        status: BookingStatus,
    ) -> None:
        if not resource_id:
            raise InvalidInputError("resource_id must not be empty")
        if not client_id:
            raise InvalidInputError("client_id must not be empty")
        if not isinstance(candidate, TimeRange):
            raise InvalidInputError(f"Expected a TimeRange, got {candidate!r}")
        if not status.occupies_time:
            raise InvalidInputError(f"New bookings cannot start as {status.value}")
        if service.duration_minutes <= 0:
            raise InvalidInputError(
                f"Service duration must be positive, got {service.duration_minutes}"
            )
        if candidate.end - candidate.start != timedelta(minutes=service.duration_minutes):
            raise InvalidInputError(
                f"Range lasts {candidate.duration_minutes()} minutes but service "
                f"{service.id} lasts {service.duration_minutes}",
                details={"service_id": service.id, "range": candidate.to_dict()},
            )
