"""
Enumeration of offerable start times inside free windows.
"""

from typing import Iterable, List

from .exceptions import InvalidInputError
from .models import ServiceSpec, Slot, TimeRange


class SlotGenerator:
    """
    Generates slot start times on a display grid.

    The cursor advances by the display interval, not by the service
    duration, so neighbouring slots may describe overlapping service
    times. Only committed bookings are mutually exclusive.
    """

    def generate(
        self,
        windows: Iterable[TimeRange],
        service: ServiceSpec,
        slot_interval: int,
    ) -> List[Slot]:
        """
        Enumerate the slots that fit into the given windows.

        A slot is offered when the service plus its buffer ends no later
        than the end of its window.

        Args:
            windows: Free windows, ordered by start
            service: Service duration and buffer
            slot_interval: Display grid in minutes

        Returns:
            Slots in window order

        Raises:
            InvalidInputError: If the interval or the duration is not positive
        """
        if slot_interval <= 0:
            raise InvalidInputError(f"Slot interval must be positive, got {slot_interval}")
        if service.duration_minutes <= 0:
            raise InvalidInputError(
                f"Service duration must be positive, got {service.duration_minutes}"
            )
        if service.buffer_minutes < 0:
            raise InvalidInputError(
                f"Service buffer must not be negative, got {service.buffer_minutes}"
            )

        slots: List[Slot] = []
        for window in windows:
            slots.extend(self._slots_in_window(window, service, slot_interval))
        return slots

    @staticmethod
    def _slots_in_window(window: TimeRange, service: ServiceSpec, slot_interval: int) -> List[Slot]:
        slots: List[Slot] = []
        cursor = window.start

        # The cursor only grows, so the first miss ends the window.
        while cursor.add(minutes=service.occupied_minutes) <= window.end:
            slots.append(Slot(start=cursor))
            cursor = cursor.add(minutes=slot_interval)

        return slots
