"""
Tests for SlotGenerator.
"""

import pendulum
import pytest

from slotbooker.domain.exceptions import InvalidInputError
from slotbooker.domain.models import ServiceSpec, TimeRange
from slotbooker.domain.slot_generator import SlotGenerator

TZ = "America/Sao_Paulo"


def _local(text: str):
    return pendulum.parse(f"2024-11-25 {text}", tz=TZ)


def _window(start: str, end: str) -> TimeRange:
    return TimeRange(start=_local(start), end=_local(end))


def _starts(slots):
    return [slot.format_local(TZ) for slot in slots]


class TestSlotGenerator:
    """Tests for slot enumeration."""

    def setup_method(self):
        self.generator = SlotGenerator()

    def test_full_day_hourly_grid(self):
        """09:00-18:00, 60 minutes, no buffer, hourly grid: nine slots ending at 17:00."""
        service = ServiceSpec(id="haircut", duration_minutes=60, buffer_minutes=0)

        slots = self.generator.generate([_window("09:00", "18:00")], service, 60)

        assert _starts(slots) == [
            "09:00", "10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00", "17:00"
        ]

    @pytest.mark.parametrize("interval", [60, 30])
    def test_buffer_must_fit_inside_window(self, interval):
        """90 minutes plus 15 buffer in a 09:00-11:00 window only fits at 09:00."""
        service = ServiceSpec(id="color", duration_minutes=90, buffer_minutes=15)

        slots = self.generator.generate([_window("09:00", "11:00")], service, interval)

        assert _starts(slots) == ["09:00"]

    def test_buffer_consumes_short_window(self):
        service = ServiceSpec(id="haircut", duration_minutes=60, buffer_minutes=15)

        assert self.generator.generate([_window("09:00", "10:00")], service, 60) == []

    def test_window_shorter_than_service(self):
        service = ServiceSpec(id="haircut", duration_minutes=60)

        assert self.generator.generate([_window("09:00", "09:45")], service, 15) == []

    def test_interval_finer_than_duration(self):
        """Offered slots may describe overlapping service times."""
        service = ServiceSpec(id="haircut", duration_minutes=60)

        slots = self.generator.generate([_window("09:00", "11:00")], service, 30)

        assert _starts(slots) == ["09:00", "09:30", "10:00"]

    def test_each_window_starts_its_own_grid(self):
        service = ServiceSpec(id="beard", duration_minutes=30)

        slots = self.generator.generate(
            [_window("09:00", "10:00"), _window("10:45", "12:00")], service, 30
        )

        assert _starts(slots) == ["09:00", "09:30", "10:45", "11:15"]

    def test_slots_are_utc(self):
        service = ServiceSpec(id="beard", duration_minutes=30)

        slots = self.generator.generate([_window("09:00", "09:30")], service, 30)

        assert slots[0].to_iso() == "2024-11-25T12:00:00Z"

    def test_every_slot_fits_its_window(self):
        windows = [_window("09:00", "10:10"), _window("11:05", "13:00"), _window("14:00", "18:00")]

        for duration, buffer, interval in [(30, 0, 15), (45, 10, 30), (60, 15, 20), (90, 30, 60)]:
            service = ServiceSpec(id="s", duration_minutes=duration, buffer_minutes=buffer)
            for slot in self.generator.generate(windows, service, interval):
                end = slot.start.add(minutes=duration + buffer)
                assert any(w.start <= slot.start and end <= w.end for w in windows)

    def test_generation_is_repeatable(self):
        service = ServiceSpec(id="haircut", duration_minutes=60, buffer_minutes=15)
        windows = [_window("09:00", "12:00"), _window("13:00", "18:00")]

        assert self.generator.generate(windows, service, 30) == self.generator.generate(windows, service, 30)

    def test_no_windows(self):
        service = ServiceSpec(id="haircut", duration_minutes=60)

        assert self.generator.generate([], service, 60) == []

    @pytest.mark.parametrize("interval", [0, -15])
    def test_invalid_interval(self, interval):
        service = ServiceSpec(id="haircut", duration_minutes=60)

        with pytest.raises(InvalidInputError):
            self.generator.generate([_window("09:00", "18:00")], service, interval)

    def test_invalid_duration(self):
        service = ServiceSpec(id="broken", duration_minutes=0)

        with pytest.raises(InvalidInputError):
            self.generator.generate([_window("09:00", "18:00")], service, 60)

    def test_negative_buffer(self):
        service = ServiceSpec(id="broken", duration_minutes=30, buffer_minutes=-5)

        with pytest.raises(InvalidInputError):
            self.generator.generate([_window("09:00", "18:00")], service, 60)
