"""
PostgREST (Supabase-style) booking store.

Reads go to the ``professionals``, ``services``, ``time_blocks`` and
``appointments`` tables. Tenants share those tables, so every read and write
carries the store's ``business_id``. The atomic write is the
``insert_booking_if_free`` RPC, backed by an exclusion constraint on
(professional_id, tstzrange) so the database rejects overlapping live
appointments with HTTP 409.
"""

import logging
from datetime import date, time
from typing import Any, Dict, List, Optional

import requests

from ..domain.exceptions import (
    BookingConflictError,
    InvalidInputError,
    InvalidTransitionError,
    StoreUnavailableError,
)
from ..domain.models import (
    BlockedRange,
    Booking,
    BookingStatus,
    DayHours,
    Resource,
    ServiceSpec,
    TimeRange,
    WorkingHours,
    day_bounds,
    parse_instant,
)

logger = logging.getLogger(__name__)

_STATUS_FROM_WIRE = {
    "pending": BookingStatus.PENDING,
    "confirmed": BookingStatus.CONFIRMED,
    "completed": BookingStatus.CONFIRMED,
    "cancelled": BookingStatus.CANCELED,
    "canceled": BookingStatus.CANCELED,
}

_STATUS_TO_WIRE = {
    BookingStatus.PENDING: "pending",
    BookingStatus.CONFIRMED: "confirmed",
    BookingStatus.CANCELED: "cancelled",
}

APPOINTMENT_FIELDS = "id,professional_id,client_id,service_id,start_datetime,end_datetime,status,created_at"


def _parse_wall_time(value: str) -> time:
    # Columns come back as "HH:mm" or "HH:mm:ss".
    return time.fromisoformat(value)


def parse_work_schedule(items: List[Dict[str, Any]]) -> WorkingHours:
    """
    Parse a ``work_schedule`` JSON list into working hours.

    Items use JavaScript weekday numbering (0=Sunday), e.g.
    ``{"dayOfWeek": 1, "startTime": "09:00", "endTime": "18:00",
    "breakStart": "12:00", "breakEnd": "13:00", "active": true}``.
    """
    days: Dict[int, DayHours] = {}
    for item in items:
        if not item.get("active", True):
            continue
        weekday = (int(item["dayOfWeek"]) - 1) % 7
        break_start = item.get("breakStart")
        break_end = item.get("breakEnd")
        days[weekday] = DayHours(
            open=_parse_wall_time(item["startTime"]),
            close=_parse_wall_time(item["endTime"]),
            break_start=_parse_wall_time(break_start) if break_start and break_end else None,
            break_end=_parse_wall_time(break_end) if break_start and break_end else None,
        )
    return WorkingHours(days=days)


class RestBookingStore:
    """
    Store adapter for a PostgREST API.

    Every call carries a timeout; transport errors, timeouts and 5xx
    responses surface as ``StoreUnavailableError``.
    """

    REST_PATH = "/rest/v1"

    def __init__(
        self,
        base_url: str,
        business_id: str,
        api_key: Optional[str] = None,
        default_timezone: str = "America/Sao_Paulo",
        business_hours: Optional[WorkingHours] = None,
        default_buffer_minutes: int = 15,
        read_timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the REST store.

        Args:
            base_url: Project URL, e.g. https://xyz.supabase.co
            business_id: Business whose rows are read and written; every query is scoped to it
            api_key: API key sent as ``apikey`` and bearer token
            default_timezone: Timezone of professionals without one
            business_hours: Business opening hours; professional schedules are narrowed to them
            default_buffer_minutes: Buffer of services without their own
            read_timeout: Timeout in seconds for reads
            session: Optional preconfigured requests session
        """
        if not business_id:
            raise InvalidInputError("business_id is required for the REST store")
        self.base_url = base_url.rstrip("/")
        self.business_id = business_id
        self.default_timezone = default_timezone
        self.business_hours = business_hours
        self.default_buffer_minutes = default_buffer_minutes
        self.read_timeout = read_timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        if api_key:
            self.session.headers.update({
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
            })

    def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{self.REST_PATH}/{path}"

        try:
            response = self.session.request(
                method, url, params=params, json=payload, timeout=timeout
            )
        except requests.exceptions.Timeout as exc:
            raise StoreUnavailableError(
                f"Store request to {path} timed out after {timeout}s",
                details={"path": path, "timeout": timeout},
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise StoreUnavailableError(f"Store request to {path} failed: {exc}") from exc

        if response.status_code == 409:
            raise BookingConflictError(
                self._error_message(response, "Requested range is already booked"),
                details={"path": path},
            )
        if response.status_code >= 500:
            raise StoreUnavailableError(
                f"Store returned {response.status_code} for {path}",
                details={"path": path, "status_code": response.status_code},
            )
        if response.status_code >= 400:
            raise InvalidInputError(
                self._error_message(response, f"Store rejected request to {path}"),
                details={"path": path, "status_code": response.status_code},
            )

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_message(response: requests.Response, fallback: str) -> str:
        try:
            body = response.json()
        except ValueError:
            return fallback
        if isinstance(body, dict):
            return body.get("message") or fallback
        return fallback

    def _get_rows(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        params = {"business_id": f"eq.{self.business_id}", **params}
        rows = self._request("GET", table, params=params, timeout=self.read_timeout)
        return rows or []

    # Reads

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        rows = self._get_rows("professionals", {
            "id": f"eq.{resource_id}",
            "select": "id,name,timezone,work_schedule,custom_buffer,buffer_minutes",
        })
        if not rows:
            return None
        return self._parse_resource(rows[0])

    def _parse_resource(self, row: Dict[str, Any]) -> Resource:
        schedule = row.get("work_schedule") or []
        if schedule:
            hours = parse_work_schedule(schedule)
            if self.business_hours is not None:
                hours = hours.intersect(self.business_hours)
        else:
            # No personal schedule: the professional works business hours.
            hours = self.business_hours or WorkingHours()

        return Resource(
            id=str(row["id"]),
            name=row.get("name") or str(row["id"]),
            timezone=row.get("timezone") or self.default_timezone,
            working_hours=hours,
            buffer_minutes=row.get("buffer_minutes") if row.get("custom_buffer") else None,
        )

    def get_working_hours(self, resource_id: str) -> WorkingHours:
        resource = self.get_resource(resource_id)
        if resource is None:
            raise InvalidInputError(f"Unknown resource: {resource_id}")
        return resource.working_hours

    def get_service(self, service_id: str) -> Optional[ServiceSpec]:
        rows = self._get_rows("services", {
            "id": f"eq.{service_id}",
            "select": "id,name,duration_minutes,buffer_minutes",
        })
        if not rows:
            return None
        row = rows[0]
        buffer_minutes = row.get("buffer_minutes")
        return ServiceSpec(
            id=str(row["id"]),
            name=row.get("name") or "",
            duration_minutes=int(row["duration_minutes"]),
            buffer_minutes=self.default_buffer_minutes if buffer_minutes is None else int(buffer_minutes),
        )

    def _day_range(self, resource_id: str, day: date) -> TimeRange:
        resource = self.get_resource(resource_id)
        timezone = resource.timezone if resource else self.default_timezone
        return day_bounds(day, timezone)

    def get_blocked_ranges(self, resource_id: str, day: date) -> List[BlockedRange]:
        bounds = self._day_range(resource_id, day)
        rows = self._get_rows("time_blocks", {
            "or": f"(professional_id.is.null,professional_id.eq.{resource_id})",
            "start_datetime": f"lt.{bounds.end.to_iso8601_string()}",
            "end_datetime": f"gt.{bounds.start.to_iso8601_string()}",
            "select": "id,professional_id,start_datetime,end_datetime,reason",
        })
        return [
            BlockedRange(
                id=str(row["id"]),
                range=TimeRange(
                    start=parse_instant(row["start_datetime"]),
                    end=parse_instant(row["end_datetime"]),
                ),
                resource_id=row.get("professional_id"),
                reason=row.get("reason"),
            )
            for row in rows
        ]

    def get_bookings(self, resource_id: str, day: date) -> List[Booking]:
        bounds = self._day_range(resource_id, day)
        rows = self._get_rows("appointments", {
            "professional_id": f"eq.{resource_id}",
            "start_datetime": f"lt.{bounds.end.to_iso8601_string()}",
            "end_datetime": f"gt.{bounds.start.to_iso8601_string()}",
            "select": APPOINTMENT_FIELDS,
            "order": "start_datetime.asc",
        })
        return [self._parse_booking(row) for row in rows]

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        rows = self._get_rows("appointments", {
            "id": f"eq.{booking_id}",
            "select": APPOINTMENT_FIELDS,
        })
        if not rows:
            return None
        return self._parse_booking(rows[0])

    def _parse_booking(self, row: Dict[str, Any]) -> Booking:
        wire_status = str(row.get("status", "")).lower()
        status = _STATUS_FROM_WIRE.get(wire_status)
        if status is None:
            # Unknown statuses keep occupying time so they cannot be double-booked.
            logger.warning("Unknown appointment status %r on %s", wire_status, row.get("id"))
            status = BookingStatus.CONFIRMED

        created_at = row.get("created_at")
        return Booking(
            id=str(row["id"]),
            resource_id=str(row["professional_id"]),
            range=TimeRange(
                start=parse_instant(row["start_datetime"]),
                end=parse_instant(row["end_datetime"]),
            ),
            status=status,
            client_id=str(row.get("client_id") or ""),
            service_id=row.get("service_id"),
            created_at=parse_instant(created_at) if created_at else None,
        )

    @staticmethod
    def _single_row(data: Any) -> Dict[str, Any]:
        if isinstance(data, list):
            if not data:
                raise StoreUnavailableError("Store returned an empty result for a write")
            return data[0]
        if not isinstance(data, dict):
            raise StoreUnavailableError(f"Unexpected store response: {data!r}")
        return data

    # Writes

    def insert_booking_if_free(
        self,
        resource_id: str,
        time_range: TimeRange,
        client_id: str,
        service_id: Optional[str],
        status: BookingStatus,
        timeout: float,
    ) -> Booking:
        data = self._request(
            "POST",
            "rpc/insert_booking_if_free",
            timeout=timeout,
            payload={
                "p_business_id": self.business_id,
                "p_professional_id": resource_id,
                "p_start": time_range.start.to_iso8601_string(),
                "p_end": time_range.end.to_iso8601_string(),
                "p_client_id": client_id,
                "p_service_id": service_id,
                "p_status": _STATUS_TO_WIRE[status],
            },
        )
        if data == []:
            # The RPC inserts nothing when the professional belongs to another business.
            raise InvalidInputError(
                f"Unknown resource: {resource_id}",
                details={"resource_id": resource_id, "business_id": self.business_id},
            )
        return self._parse_booking(self._single_row(data))

    def update_booking_status(
        self,
        booking_id: str,
        status: BookingStatus,
        timeout: float,
    ) -> Booking:
        try:
            data = self._request(
                "POST",
                "rpc/update_booking_status",
                timeout=timeout,
                payload={
                    "p_business_id": self.business_id,
                    "p_appointment_id": booking_id,
                    "p_status": _STATUS_TO_WIRE[status],
                },
            )
        except (BookingConflictError, InvalidInputError) as exc:
            # The RPC raises when the stored status forbids the change.
            raise InvalidTransitionError(
                f"Booking {booking_id} cannot move to {status.value}: {exc.message}",
                details={"booking_id": booking_id, "to": status.value},
            ) from exc
        return self._parse_booking(self._single_row(data))
