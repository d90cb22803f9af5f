"""
In-memory booking store.

Used by the tests and by the CLI when no remote store is configured. The
check-and-insert runs under a per-resource lock, so concurrent bookings of
one resource are serialized while other resources never wait.
"""

import json
import logging
import threading
import uuid
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import (
    BookingConflictError,
    InvalidInputError,
    StoreUnavailableError,
    UnknownBookingError,
)
from ..domain.models import (
    BlockedRange,
    Booking,
    BookingStatus,
    Resource,
    ServiceSpec,
    TimeRange,
    WorkingHours,
    day_bounds,
    parse_instant,
)
from ..domain.overlap import overlaps

logger = logging.getLogger(__name__)

MOCK_DATA_FILE = Path(__file__).parent / "mock_schedule_data.json"


def _new_booking_id() -> str:
    return uuid.uuid4().hex


class InMemoryBookingStore:
    """Thread-safe store keeping resources, services, blocks and bookings in dicts."""

    def __init__(
        self,
        resources: Iterable[Resource] = (),
        services: Iterable[ServiceSpec] = (),
        blocks: Iterable[BlockedRange] = (),
        bookings: Iterable[Booking] = (),
        id_factory: Callable[[], str] = _new_booking_id,
        clock: Callable[[], DateTime] = pendulum.now,
    ):
        self._resources: Dict[str, Resource] = {r.id: r for r in resources}
        self._services: Dict[str, ServiceSpec] = {s.id: s for s in services}
        self._blocks: List[BlockedRange] = list(blocks)
        self._bookings: Dict[str, Booking] = {b.id: b for b in bookings}
        self._id_factory = id_factory
        self._clock = clock

        self._data_lock = threading.Lock()
        self._registry_lock = threading.Lock()
        self._resource_locks: Dict[str, threading.Lock] = {}

    @classmethod
    def from_config(cls, config, data_file: Optional[Path] = None, **kwargs) -> "InMemoryBookingStore":
        """
        Build a store from an AppConfig, seeding blocks and bookings from JSON.

        Args:
            config: AppConfig providing resources and services
            data_file: JSON file with ``blocks`` and ``bookings``; the bundled
                mock data is used when omitted
        """
        store = cls(
            resources=config.build_resources(),
            services=config.build_services(),
            **kwargs,
        )
        store.load_json(data_file or MOCK_DATA_FILE)
        return store

    def _lock_for(self, resource_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._resource_locks.get(resource_id)
            if lock is None:
                lock = threading.Lock()
                self._resource_locks[resource_id] = lock
            return lock

    def _acquire(self, resource_id: str, timeout: float) -> threading.Lock:
        lock = self._lock_for(resource_id)
        if not lock.acquire(timeout=timeout):
            raise StoreUnavailableError(
                f"Timed out after {timeout}s waiting for the booking lock of {resource_id}",
                details={"resource_id": resource_id, "timeout": timeout},
            )
        return lock

    def _snapshot(self) -> List[Booking]:
        with self._data_lock:
            return list(self._bookings.values())

    def _day_range(self, resource_id: str, day: date) -> TimeRange:
        resource = self._resources.get(resource_id)
        if resource is None:
            raise InvalidInputError(f"Unknown resource: {resource_id}")
        return day_bounds(day, resource.timezone)

    # Reads

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        return self._resources.get(resource_id)

    def get_working_hours(self, resource_id: str) -> WorkingHours:
        resource = self._resources.get(resource_id)
        if resource is None:
            raise InvalidInputError(f"Unknown resource: {resource_id}")
        return resource.working_hours

    def get_service(self, service_id: str) -> Optional[ServiceSpec]:
        return self._services.get(service_id)

    def list_resources(self) -> List[Resource]:
        return list(self._resources.values())

    def list_services(self) -> List[ServiceSpec]:
        return list(self._services.values())

    def get_blocked_ranges(self, resource_id: str, day: date) -> List[BlockedRange]:
        bounds = self._day_range(resource_id, day)
        with self._data_lock:
            blocks = list(self._blocks)
        return [
            block for block in blocks
            if block.applies_to(resource_id) and overlaps(block.range, bounds)
        ]

    def get_bookings(self, resource_id: str, day: date) -> List[Booking]:
        bounds = self._day_range(resource_id, day)
        bookings = [
            booking for booking in self._snapshot()
            if booking.resource_id == resource_id and overlaps(booking.range, bounds)
        ]
        return sorted(bookings, key=lambda booking: booking.range.start)

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._data_lock:
            return self._bookings.get(booking_id)

    def list_bookings(self, resource_id: Optional[str] = None) -> List[Booking]:
        bookings = [
            booking for booking in self._snapshot()
            if resource_id is None or booking.resource_id == resource_id
        ]
        return sorted(bookings, key=lambda booking: booking.range.start)

    # Writes

    def add_block(self, block: BlockedRange) -> None:
        with self._data_lock:
            self._blocks.append(block)

    def insert_booking_if_free(
        self,
        resource_id: str,
        time_range: TimeRange,
        client_id: str,
        service_id: Optional[str],
        status: BookingStatus,
        timeout: float,
    ) -> Booking:
        """
        Atomically insert a booking unless a live booking overlaps it.

        Raises:
            BookingConflictError: If an overlapping live booking exists
            StoreUnavailableError: If the resource lock is not acquired in time
        """
        if resource_id not in self._resources:
            raise InvalidInputError(f"Unknown resource: {resource_id}")

        lock = self._acquire(resource_id, timeout)
        try:
            conflicts = [
                booking.id for booking in self._snapshot()
                if booking.resource_id == resource_id
                and booking.is_active
                and overlaps(booking.range, time_range)
            ]
            if conflicts:
                raise BookingConflictError(
                    f"{resource_id} is already booked during {time_range}",
                    details={"resource_id": resource_id, "conflicting_booking_ids": conflicts},
                )

            booking = Booking(
                id=self._id_factory(),
                resource_id=resource_id,
                range=time_range,
                status=status,
                client_id=client_id,
                service_id=service_id,
                created_at=self._clock().in_timezone("UTC"),
            )
            with self._data_lock:
                self._bookings[booking.id] = booking
            return booking
        finally:
            lock.release()

    def update_booking_status(
        self,
        booking_id: str,
        status: BookingStatus,
        timeout: float,
    ) -> Booking:
        current = self.get_booking(booking_id)
        if current is None:
            raise UnknownBookingError(f"Unknown booking: {booking_id}")

        lock = self._acquire(current.resource_id, timeout)
        try:
            # Re-read under the lock; another caller may have moved it meanwhile.
            updated = self.get_booking(booking_id).with_status(status)
            with self._data_lock:
                self._bookings[booking_id] = updated
            return updated
        finally:
            lock.release()

    # Persistence

    def load_json(self, data_file: Path) -> None:
        """
        Load blocks and bookings from a JSON file.

        Format::

            {
                "blocks": [{"id": "...", "resource_id": "ana", "start": "...", "end": "...", "reason": "..."}],
                "bookings": [{"id": "...", "resource_id": "ana", "client_id": "...", "start": "...", "end": "...", "status": "confirmed"}]
            }

        A missing file leaves the store empty. Block entries without
        ``resource_id`` block the whole business.

        Raises:
            ValueError: If the file is not valid JSON or a record is malformed
        """
        if not data_file.exists():
            logger.info("No schedule data at %s, starting empty", data_file)
            return

        try:
            with open(data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {data_file}: {exc}") from exc

        try:
            blocks = [
                BlockedRange(
                    id=str(item.get("id") or f"block-{index}"),
                    range=TimeRange(start=parse_instant(item["start"]), end=parse_instant(item["end"])),
                    resource_id=item.get("resource_id"),
                    reason=item.get("reason"),
                )
                for index, item in enumerate(data.get("blocks", []))
            ]
        except KeyError as exc:
            raise ValueError(f"Block in {data_file} is missing field {exc}") from exc

        bookings = [Booking.from_dict(item) for item in data.get("bookings", [])]

        with self._data_lock:
            self._blocks.extend(blocks)
            for booking in bookings:
                self._bookings[booking.id] = booking

        logger.debug("Loaded %d block(s) and %d booking(s) from %s", len(blocks), len(bookings), data_file)

    def save_json(self, data_file: Path) -> None:
        """Write blocks and bookings to a JSON file in the ``load_json`` format."""
        with self._data_lock:
            blocks = list(self._blocks)
            bookings = list(self._bookings.values())

        data = {
            "blocks": [
                {
                    "id": block.id,
                    "resource_id": block.resource_id,
                    "reason": block.reason,
                    **block.range.to_dict(),
                }
                for block in blocks
            ],
            "bookings": [
                booking.to_dict()
                for booking in sorted(bookings, key=lambda b: b.range.start)
            ],
        }

        with open(data_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
