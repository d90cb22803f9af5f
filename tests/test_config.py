"""
Tests for configuration loading.
"""

from datetime import time
from pathlib import Path

import pytest
from pydantic import ValidationError

from slotbooker.config import AppConfig, BookingPolicy, DayHoursConfig
from slotbooker.domain.models import DayHours

EXAMPLE_CONFIG = Path(__file__).parent.parent / "config.example.yaml"


def _write(tmp_path: Path, text: str) -> Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(text, encoding="utf-8")
    return config_path


class TestLoadFromYaml:
    """Tests for reading config files."""

    def test_example_config_loads(self):
        config = AppConfig.load_from_yaml(EXAMPLE_CONFIG)

        assert config.business.timezone == "America/Sao_Paulo"
        assert config.business.hours["sunday"] is None
        assert config.booking.slot_interval_minutes == 30
        assert [r.id for r in config.resources] == ["ana", "bruno"]
        assert config.store.data_file == EXAMPLE_CONFIG.parent / "schedule.json"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AppConfig.load_from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        config_path = _write(tmp_path, "business: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            AppConfig.load_from_yaml(config_path)

    def test_root_must_be_mapping(self, tmp_path):
        config_path = _write(tmp_path, "- a\n- b\n")

        with pytest.raises(ValueError):
            AppConfig.load_from_yaml(config_path)

    def test_empty_file_uses_defaults(self, tmp_path):
        config = AppConfig.load_from_yaml(_write(tmp_path, ""))

        assert config.booking == BookingPolicy()
        assert config.store.backend == "memory"
        assert config.resources == []

    def test_unquoted_times(self, tmp_path):
        """YAML reads 10:00 as a base-60 integer; it still becomes a wall time."""
        config_path = _write(tmp_path, """
business:
  hours:
    monday: {open: 10:00, close: 18:30}
""")

        config = AppConfig.load_from_yaml(config_path)

        assert config.business.hours["monday"].open == time(10, 0)
        assert config.business.hours["monday"].close == time(18, 30)

    def test_absolute_data_file_is_kept(self, tmp_path):
        data_file = tmp_path / "data" / "schedule.json"
        config_path = _write(tmp_path, f"store:\n  data_file: {data_file}\n")

        assert AppConfig.load_from_yaml(config_path).store.data_file == data_file


class TestValidation:
    """Tests for config validation rules."""

    def test_duplicate_resource_ids(self):
        with pytest.raises(ValidationError, match="Duplicate resource id"):
            AppConfig(resources=[{"id": "ana", "name": "Ana"}, {"id": "ANA", "name": "Other"}])

    def test_duplicate_service_ids(self):
        with pytest.raises(ValidationError, match="Duplicate service id"):
            AppConfig(services=[
                {"id": "haircut", "duration_minutes": 60},
                {"id": "haircut", "duration_minutes": 30},
            ])

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            AppConfig(business={"timezone": "Mars/Olympus_Mons"})

    def test_unknown_weekday(self):
        with pytest.raises(ValidationError, match="Unknown weekday"):
            AppConfig(business={"hours": {"funday": {"open": "09:00", "close": "18:00"}}})

    def test_closed_keyword(self):
        config = AppConfig(business={"hours": {"Monday": "closed"}})

        assert config.business.hours == {"monday": None}

    def test_break_outside_hours(self):
        with pytest.raises(ValidationError):
            DayHoursConfig(open="09:00", close="18:00", break_start="18:00", break_end="19:00")

    @pytest.mark.parametrize("field,value", [
        ("slot_interval_minutes", 0),
        ("buffer_minutes", -1),
        ("min_advance_hours", -1),
        ("max_advance_days", -1),
        ("store_timeout_seconds", 0),
    ])
    def test_invalid_policy(self, field, value):
        with pytest.raises(ValidationError):
            BookingPolicy(**{field: value})

    def test_non_positive_service_duration(self):
        with pytest.raises(ValidationError):
            AppConfig(services=[{"id": "broken", "duration_minutes": 0}])

    def test_rest_backend_requires_url(self):
        with pytest.raises(ValidationError, match="store.url"):
            AppConfig(store={"backend": "rest"})

    def test_rest_backend_requires_business_id(self):
        with pytest.raises(ValidationError, match="business.id"):
            AppConfig(store={"backend": "rest", "url": "https://example.supabase.co"})

        config = AppConfig(
            business={"id": "biz-1"},
            store={"backend": "rest", "url": "https://example.supabase.co"},
        )
        assert config.business.id == "biz-1"


class TestDomainBuilding:
    """Tests for turning config into domain objects."""

    def setup_method(self):
        self.config = AppConfig.load_from_yaml(EXAMPLE_CONFIG)

    def test_resource_hours_are_narrowed_to_business_hours(self):
        ana = next(r for r in self.config.build_resources() if r.id == "ana")

        assert ana.working_hours.days[0] == DayHours(
            open=time(10, 0), close=time(19, 0), break_start=time(13, 0), break_end=time(14, 0)
        )
        assert 1 not in ana.working_hours.days  # Tuesday not in her schedule
        assert ana.timezone == "America/Sao_Paulo"

    def test_resource_without_hours_uses_business_hours(self):
        bruno = next(r for r in self.config.build_resources() if r.id == "bruno")

        assert bruno.working_hours == self.config.business_working_hours()
        assert bruno.buffer_minutes == 10
        assert 6 not in bruno.working_hours.days  # Sunday closed

    def test_services_fall_back_to_policy_buffer(self):
        services = {s.id: s for s in self.config.build_services()}

        assert services["haircut"].buffer_minutes == 15
        assert services["beard"].buffer_minutes == 5
        assert services["color"].occupied_minutes == 120

    def test_default_business_hours(self):
        hours = AppConfig().business_working_hours()

        assert set(hours.days) == {0, 1, 2, 3, 4, 5}
        assert hours.days[5] == DayHours(open=time(9, 0), close=time(18, 0))


class TestLookups:
    """Tests for resolving ids and names."""

    def setup_method(self):
        self.config = AppConfig.load_from_yaml(EXAMPLE_CONFIG)

    def test_resolve_by_id_and_name(self):
        assert self.config.resolve_resource_id("ana") == "ana"
        assert self.config.resolve_resource_id("BRUNO") == "bruno"
        assert self.config.resolve_service_id("Corte") == "haircut"

    def test_unknown_identifier(self):
        with pytest.raises(ValueError, match="Unknown resource identifier"):
            self.config.resolve_resource_id("carla")

        with pytest.raises(ValueError, match="Unknown service identifier"):
            self.config.resolve_service_id("massage")

    def test_find_returns_none(self):
        assert self.config.find_resource("carla") is None
        assert self.config.find_service("massage") is None
