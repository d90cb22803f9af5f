"""
Domain models for time ranges, working hours, services and bookings.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import Date, DateTime

from .exceptions import InvalidInputError, InvalidTransitionError

UTC = "UTC"

WEEKDAY_NAMES = [
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
]


def to_utc(value: datetime) -> DateTime:
    """Normalize an aware datetime (or naive UTC datetime) to a UTC DateTime."""
    if not isinstance(value, datetime):
        raise InvalidInputError(f"Expected a datetime, got {value!r}")
    return pendulum.instance(value).in_timezone(UTC)


def parse_instant(value: Any, tz: str = UTC) -> DateTime:
    """
    Parse an ISO-8601 instant.

    Strings without an offset and naive datetimes are both read as wall
    time in ``tz``.

    Raises:
        InvalidInputError: If the value is not a valid instant
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = pendulum.datetime(
                value.year, value.month, value.day,
                value.hour, value.minute, value.second, value.microsecond,
                tz=tz,
            )
        return to_utc(value)

    try:
        parsed = pendulum.parse(str(value), tz=tz)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid ISO-8601 instant: {value!r}") from exc

    if not isinstance(parsed, DateTime):
        raise InvalidInputError(f"Invalid ISO-8601 instant: {value!r}")

    return parsed.in_timezone(UTC)


def parse_date(value: Any) -> Date:
    """
    Parse a calendar date given as ``YYYY-MM-DD`` or a date object.

    Raises:
        InvalidInputError: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return pendulum.date(value.year, value.month, value.day)

    try:
        return pendulum.from_format(str(value), "YYYY-MM-DD").date()
    except ValueError as exc:
        raise InvalidInputError(f"Invalid calendar date: {value!r}") from exc


def local_instant(day: date, wall_time: time, timezone: str) -> DateTime:
    """Convert a business-local wall-clock time on ``day`` to a UTC instant."""
    local = pendulum.datetime(
        day.year, day.month, day.day, wall_time.hour, wall_time.minute, tz=timezone
    )
    return local.in_timezone(UTC)


def day_bounds(day: date, timezone: str) -> "TimeRange":
    """Return the full local calendar day as a UTC range."""
    next_day = day + timedelta(days=1)
    return TimeRange(
        start=local_instant(day, time(0, 0), timezone),
        end=local_instant(next_day, time(0, 0), timezone),
    )


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable, half-open time range [start, end).

    Both endpoints are normalized to UTC.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        object.__setattr__(self, "start", to_utc(self.start))
        object.__setattr__(self, "end", to_utc(self.end))
        if self.start >= self.end:
            raise InvalidInputError(
                f"Start time {self.start} must be before end time {self.end}",
                details={"start": self.start.to_iso8601_string(), "end": self.end.to_iso8601_string()},
            )

    @classmethod
    def from_start(cls, start: datetime, minutes: int) -> "TimeRange":
        """Build a range starting at ``start`` lasting ``minutes``."""
        if minutes <= 0:
            raise InvalidInputError(f"Duration must be positive, got {minutes}")
        start_utc = to_utc(start)
        return cls(start=start_utc, end=start_utc.add(minutes=minutes))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and other.start < self.end

    def contains(self, other: "TimeRange") -> bool:
        """Check if ``other`` lies completely inside this range."""
        return self.start <= other.start and other.end <= self.end

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return TimeRange(start=start, end=end)

    def subtract(self, other: "TimeRange") -> List["TimeRange"]:
        """
        Remove ``other`` from this range.

        Yields zero, one or two remainders (left and right of ``other``).
        """
        if not self.overlaps(other):
            return [self]

        remainders: List[TimeRange] = []
        if self.start < other.start:
            remainders.append(TimeRange(start=self.start, end=other.start))
        if other.end < self.end:
            remainders.append(TimeRange(start=other.end, end=self.end))
        return remainders

    def to_dict(self) -> Dict[str, str]:
        return {
            "start": self.start.to_iso8601_string(),
            "end": self.end.to_iso8601_string(),
        }

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')} UTC"


def _minutes_of(wall_time: time) -> int:
    return wall_time.hour * 60 + wall_time.minute


def _time_of(minutes: int) -> time:
    if minutes >= 24 * 60:
        return time(0, 0)
    return time(minutes // 60, minutes % 60)


@dataclass(frozen=True)
class DayHours:
    """
    Opening hours for a single weekday.

    A ``close`` of 00:00 means midnight at the end of the day.
    An optional break (e.g. lunch) must lie inside the opening hours.
    """
    open: time
    close: time
    break_start: Optional[time] = None
    break_end: Optional[time] = None

    def __post_init__(self):
        if self.open_minutes >= self.close_minutes:
            raise InvalidInputError(f"Opening time {self.open} must be before closing time {self.close}")

        if (self.break_start is None) != (self.break_end is None):
            raise InvalidInputError("break_start and break_end must be given together")

        if self.break_start is not None:
            break_start = _minutes_of(self.break_start)
            break_end = _minutes_of(self.break_end)
            if not self.open_minutes <= break_start < break_end <= self.close_minutes:
                raise InvalidInputError(
                    f"Break {self.break_start}-{self.break_end} must lie within {self.open}-{self.close}"
                )

    @property
    def open_minutes(self) -> int:
        return _minutes_of(self.open)

    @property
    def close_minutes(self) -> int:
        minutes = _minutes_of(self.close)
        return minutes if minutes > 0 else 24 * 60

    def to_range(self, day: date, timezone: str) -> TimeRange:
        """Get the opening hours of ``day`` as a UTC range."""
        start = local_instant(day, self.open, timezone)
        if self.close_minutes == 24 * 60:
            end = local_instant(day + timedelta(days=1), time(0, 0), timezone)
        else:
            end = local_instant(day, self.close, timezone)
        return TimeRange(start=start, end=end)

    def break_range(self, day: date, timezone: str) -> Optional[TimeRange]:
        """Get the break of ``day`` as a UTC range, if one is configured."""
        if self.break_start is None:
            return None
        return TimeRange(
            start=local_instant(day, self.break_start, timezone),
            end=local_instant(day, self.break_end, timezone),
        )

    def intersect(self, other: "DayHours") -> Optional["DayHours"]:
        """
        Return the more restrictive hours of the two, or None if they do not overlap.

        The break of ``self`` wins over the break of ``other``; it is clipped to
        the resulting hours and dropped when nothing of it remains.
        """
        open_minutes = max(self.open_minutes, other.open_minutes)
        close_minutes = min(self.close_minutes, other.close_minutes)
        if open_minutes >= close_minutes:
            return None

        source = self if self.break_start is not None else other
        break_start = break_end = None
        if source.break_start is not None:
            clipped_start = max(_minutes_of(source.break_start), open_minutes)
            clipped_end = min(_minutes_of(source.break_end), close_minutes)
            if clipped_start < clipped_end:
                break_start = _time_of(clipped_start)
                break_end = _time_of(clipped_end)

        return DayHours(
            open=_time_of(open_minutes),
            close=_time_of(close_minutes),
            break_start=break_start,
            break_end=break_end,
        )


@dataclass(frozen=True)
class WorkingHours:
    """
    Weekly working hours keyed by weekday (0=Monday, 6=Sunday).

    A weekday without an entry is closed.
    """
    days: Dict[int, DayHours] = field(default_factory=dict)

    def __post_init__(self):
        invalid = [day for day in self.days if day not in range(7)]
        if invalid:
            raise InvalidInputError(f"Weekdays must be between 0 and 6, got {invalid}")

    def for_date(self, day: date) -> Optional[DayHours]:
        """Get the hours for the weekday of ``day``."""
        return self.days.get(day.weekday())

    def is_working_day(self, day: date) -> bool:
        """Check if a given date falls on a working day."""
        return self.for_date(day) is not None

    def get_working_hours_for_day(self, day: date, timezone: str) -> TimeRange | None:
        """
        Get the working hours range for a specific day.
        Returns None if it's not a working day.
        """
        hours = self.for_date(day)
        if hours is None:
            return None
        return hours.to_range(day, timezone)

    def intersect(self, other: "WorkingHours") -> "WorkingHours":
        """Combine two schedules, keeping only the time both are open."""
        days: Dict[int, DayHours] = {}
        for weekday, hours in self.days.items():
            other_hours = other.days.get(weekday)
            if other_hours is None:
                continue
            combined = hours.intersect(other_hours)
            if combined is not None:
                days[weekday] = combined
        return WorkingHours(days=days)


@dataclass(frozen=True)
class Resource:
    """A bookable professional with a schedule and a business timezone."""
    id: str
    name: str
    timezone: str
    working_hours: WorkingHours
    buffer_minutes: Optional[int] = None


@dataclass(frozen=True)
class ServiceSpec:
    """A bookable service. The buffer is idle time required after the service."""
    id: str
    duration_minutes: int
    buffer_minutes: int = 0
    name: str = ""

    @property
    def occupied_minutes(self) -> int:
        return self.duration_minutes + self.buffer_minutes

    def with_buffer(self, buffer_minutes: int) -> "ServiceSpec":
        return replace(self, buffer_minutes=buffer_minutes)


@dataclass(frozen=True)
class BlockedRange:
    """
    Time during which a resource is unavailable (time off, holiday, event).

    A block without ``resource_id`` applies to the whole business.
    """
    id: str
    range: TimeRange
    resource_id: Optional[str] = None
    reason: Optional[str] = None

    def applies_to(self, resource_id: str) -> bool:
        return self.resource_id is None or self.resource_id == resource_id


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"

    @property
    def occupies_time(self) -> bool:
        """Pending and confirmed bookings block the resource."""
        return self in (BookingStatus.PENDING, BookingStatus.CONFIRMED)

    def can_transition_to(self, target: "BookingStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELED}),
    BookingStatus.CANCELED: frozenset(),
}


@dataclass(frozen=True)
class Booking:
    """A committed reservation of a resource's time."""
    id: str
    resource_id: str
    range: TimeRange
    status: BookingStatus
    client_id: str
    service_id: Optional[str] = None
    created_at: Optional[DateTime] = None

    @property
    def is_active(self) -> bool:
        return self.status.occupies_time

    def with_status(self, status: BookingStatus) -> "Booking":
        """
        Return a copy with a new status.

        Raises:
            InvalidTransitionError: If the state machine forbids the change
        """
        if not self.status.can_transition_to(status):
            raise InvalidTransitionError(
                f"Booking {self.id} cannot move from {self.status.value} to {status.value}",
                details={"booking_id": self.id, "from": self.status.value, "to": status.value},
            )
        return replace(self, status=status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "resource_id": self.resource_id,
            "client_id": self.client_id,
            "service_id": self.service_id,
            "status": self.status.value,
            **self.range.to_dict(),
            "created_at": self.created_at.to_iso8601_string() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Booking":
        """
        Build a booking from its wire representation.

        Raises:
            InvalidInputError: If a field is missing or malformed
        """
        try:
            created_at = data.get("created_at")
            return cls(
                id=str(data["id"]),
                resource_id=str(data["resource_id"]),
                range=TimeRange(start=parse_instant(data["start"]), end=parse_instant(data["end"])),
                status=BookingStatus(data.get("status", BookingStatus.CONFIRMED.value)),
                client_id=str(data["client_id"]),
                service_id=data.get("service_id"),
                created_at=parse_instant(created_at) if created_at else None,
            )
        except (KeyError, ValueError) as exc:
            if isinstance(exc, InvalidInputError):
                raise
            raise InvalidInputError(f"Invalid booking record: {exc}") from exc


@dataclass(frozen=True)
class Slot:
    """An offered, non-binding start time. The end is implied by the service."""
    start: DateTime

    def __post_init__(self):
        object.__setattr__(self, "start", to_utc(self.start))

    def to_range(self, service: ServiceSpec) -> TimeRange:
        """The time the service itself would occupy (without buffer)."""
        return TimeRange.from_start(self.start, service.duration_minutes)

    def to_iso(self) -> str:
        return self.start.to_iso8601_string()

    def format_local(self, timezone: str) -> str:
        return self.start.in_timezone(timezone).format("HH:mm")
