"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import time
from pathlib import Path
from typing import Dict, List, Literal, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import WEEKDAY_NAMES, DayHours, Resource, ServiceSpec, WorkingHours


def _coerce_wall_time(value):
    # YAML 1.1 reads unquoted 10:00 as the base-60 integer 600.
    if isinstance(value, int) and not isinstance(value, bool):
        return time(hour=value // 60, minute=value % 60)
    return value


def _validate_timezone(value: str) -> str:
    try:
        pendulum.timezone(value)
    except (ValueError, KeyError) as exc:
        raise ValueError(f"Unknown timezone: {value}") from exc
    return value


class DayHoursConfig(BaseModel):
    """Opening hours of one weekday."""
    open: time
    close: time
    break_start: Optional[time] = None
    break_end: Optional[time] = None

    @field_validator("open", "close", "break_start", "break_end", mode="before")
    @classmethod
    def coerce_time(cls, value):
        return _coerce_wall_time(value)

    @model_validator(mode="after")
    def validate_hours(self) -> "DayHoursConfig":
        """Ensure the day opens before it closes and the break fits inside."""
        self.to_domain()
        return self

    def to_domain(self) -> DayHours:
        return DayHours(
            open=self.open,
            close=self.close,
            break_start=self.break_start,
            break_end=self.break_end,
        )


WeeklyHoursConfig = Dict[str, Optional[DayHoursConfig]]


def _default_business_hours() -> Dict[str, Optional[DayHoursConfig]]:
    hours: Dict[str, Optional[DayHoursConfig]] = {
        name: DayHoursConfig(open=time(9, 0), close=time(18, 0))
        for name in WEEKDAY_NAMES[:6]
    }
    hours["sunday"] = None
    return hours


def _normalize_weekly_hours(value):
    if not isinstance(value, dict):
        return value
    normalized = {}
    for day, hours in value.items():
        key = str(day).lower()
        if key not in WEEKDAY_NAMES:
            raise ValueError(f"Unknown weekday '{day}', expected one of {', '.join(WEEKDAY_NAMES)}")
        if isinstance(hours, str) and hours.lower() == "closed":
            hours = None
        normalized[key] = hours
    return normalized


def build_working_hours(hours: WeeklyHoursConfig) -> WorkingHours:
    """Convert weekday-name keyed hours into domain working hours."""
    return WorkingHours(days={
        WEEKDAY_NAMES.index(day): day_hours.to_domain()
        for day, day_hours in hours.items()
        if day_hours is not None
    })


class BusinessConfig(BaseModel):
    """The business and its opening hours."""
    id: Optional[str] = None
    name: str = "My Salon"
    timezone: str = "America/Sao_Paulo"
    hours: WeeklyHoursConfig = Field(default_factory=_default_business_hours)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        return _validate_timezone(value)

    @field_validator("hours", mode="before")
    @classmethod
    def normalize_hours(cls, value):
        return _normalize_weekly_hours(value)


class BookingPolicy(BaseModel):
    """Rules that decide which slots are offered and how bookings start."""
    slot_interval_minutes: int = 60
    buffer_minutes: int = 15
    min_advance_hours: int = 0
    max_advance_days: int = 30
    allow_same_day: bool = True
    require_payment: bool = False
    store_timeout_seconds: float = 5.0

    @field_validator("slot_interval_minutes")
    @classmethod
    def validate_interval(cls, value: int) -> int:
        """Ensure the display grid is positive."""
        if value <= 0:
            raise ValueError("slot_interval_minutes must be greater than zero")
        return value

    @field_validator("buffer_minutes", "min_advance_hours", "max_advance_days")
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"Value must not be negative, got {value}")
        return value

    @field_validator("store_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("store_timeout_seconds must be greater than zero")
        return value


class StoreConfig(BaseModel):
    """Where bookings live."""
    backend: Literal["memory", "rest"] = "memory"
    data_file: Optional[Path] = None
    url: Optional[str] = None
    api_key: Optional[str] = None

    @model_validator(mode="after")
    def validate_backend(self) -> "StoreConfig":
        if self.backend == "rest" and not self.url:
            raise ValueError("store.url is required for the rest backend")
        return self


class ResourceConfig(BaseModel):
    """Professional/Resource configuration."""
    id: str
    name: str
    timezone: Optional[str] = None
    buffer_minutes: Optional[int] = None
    hours: Optional[WeeklyHoursConfig] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        return _validate_timezone(value) if value is not None else None

    @field_validator("buffer_minutes")
    @classmethod
    def validate_buffer(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("buffer_minutes must not be negative")
        return value

    @field_validator("hours", mode="before")
    @classmethod
    def normalize_hours(cls, value):
        return _normalize_weekly_hours(value)


class ServiceConfig(BaseModel):
    """Service catalogue entry."""
    id: str
    name: str = ""
    duration_minutes: int
    buffer_minutes: Optional[int] = None

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure service duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    @field_validator("buffer_minutes")
    @classmethod
    def validate_buffer(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("buffer_minutes must not be negative")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    business: BusinessConfig = Field(default_factory=BusinessConfig)
    booking: BookingPolicy = Field(default_factory=BookingPolicy)
    store: StoreConfig = Field(default_factory=StoreConfig)
    resources: List[ResourceConfig] = Field(default_factory=list)
    services: List[ServiceConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_business_scope(self) -> "AppConfig":
        """Ensure the rest backend knows which business to query."""
        if self.store.backend == "rest" and not self.business.id:
            raise ValueError("business.id is required for the rest backend")
        return self

    @field_validator("resources")
    @classmethod
    def validate_resources(cls, value: List[ResourceConfig]) -> List[ResourceConfig]:
        """Ensure resource ids are unique."""
        seen: set[str] = set()
        for resource in value:
            key = resource.id.lower()
            if key in seen:
                raise ValueError(f"Duplicate resource id detected: {resource.id}")
            seen.add(key)
        return value

    @field_validator("services")
    @classmethod
    def validate_services(cls, value: List[ServiceConfig]) -> List[ServiceConfig]:
        """Ensure service ids are unique."""
        seen: set[str] = set()
        for service in value:
            key = service.id.lower()
            if key in seen:
                raise ValueError(f"Duplicate service id detected: {service.id}")
            seen.add(key)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)

        # Relative data files are resolved next to the config file.
        data_file = config.store.data_file
        if data_file is not None and not data_file.is_absolute():
            config.store.data_file = config_path.parent / data_file

        return config

    def find_resource(self, identifier: str) -> ResourceConfig | None:
        """Find a resource by id or name (case-insensitive)."""
        for resource in self.resources:
            if identifier.lower() in (resource.id.lower(), resource.name.lower()):
                return resource
        return None

    def find_service(self, identifier: str) -> ServiceConfig | None:
        """Find a service by id or name (case-insensitive)."""
        for service in self.services:
            if identifier.lower() in (service.id.lower(), service.name.lower()):
                return service
        return None

    def resolve_resource_id(self, identifier: str) -> str:
        """
        Resolve a resource identifier (id or name) to its id.

        Raises:
            ValueError: If identifier cannot be resolved
        """
        resource = self.find_resource(identifier)
        if resource is None:
            raise ValueError(
                f"Unknown resource identifier: '{identifier}'. "
                f"Use a configured id or name."
            )
        return resource.id

    def resolve_service_id(self, identifier: str) -> str:
        """
        Resolve a service identifier (id or name) to its id.

        Raises:
            ValueError: If identifier cannot be resolved
        """
        service = self.find_service(identifier)
        if service is None:
            raise ValueError(
                f"Unknown service identifier: '{identifier}'. "
                f"Use a configured id or name."
            )
        return service.id

    def business_working_hours(self) -> WorkingHours:
        return build_working_hours(self.business.hours)

    def build_resources(self) -> List[Resource]:
        """
        Build domain resources.

        A resource's own hours are narrowed to the business hours; a
        resource without hours works whenever the business is open.
        """
        business_hours = self.business_working_hours()
        resources: List[Resource] = []
        for resource in self.resources:
            if resource.hours is None:
                hours = business_hours
            else:
                hours = build_working_hours(resource.hours).intersect(business_hours)
            resources.append(Resource(
                id=resource.id,
                name=resource.name,
                timezone=resource.timezone or self.business.timezone,
                working_hours=hours,
                buffer_minutes=resource.buffer_minutes,
            ))
        return resources

    def build_services(self) -> List[ServiceSpec]:
        """Build domain services, falling back to the policy buffer."""
        return [
            ServiceSpec(
                id=service.id,
                name=service.name,
                duration_minutes=service.duration_minutes,
                buffer_minutes=(
                    service.buffer_minutes
                    if service.buffer_minutes is not None
                    else self.booking.buffer_minutes
                ),
            )
            for service in self.services
        ]


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of slotbooker/)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
