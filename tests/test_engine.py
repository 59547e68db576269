"""
Test Suite for the Schedule Engine

End-to-end queries over the bundled rotation table and plant calendar,
with the template cache backed by a temporary directory.
"""

import pytest
import sys
from datetime import date
from pathlib import Path
import json

import requests

# Setup import path for src
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_rotation.config import EngineSettings
from shift_rotation.engine import ScheduleEngine
from shift_rotation.exceptions import InvalidRotationInputError
from shift_rotation.models import StopInterval, Team
from shift_rotation.template_cache import TemplateSource


class StubResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        return self.payload


class StubSession:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = 0

    def get(self, url, headers=None, timeout=None):
        self.calls += 1
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome

    def close(self):
        pass


@pytest.fixture
def settings(tmp_path):
    return EngineSettings(cache_file=str(tmp_path / "template_cache.json"))


@pytest.fixture
def engine(settings):
    engine = ScheduleEngine(settings)
    engine.start()
    yield engine
    engine.close()


def test_start_without_endpoint_uses_defaults(engine, settings):
    assert engine.cache.source is TemplateSource.DEFAULTS
    assert [t.name for t in engine.get_all_templates()] == ["Morning", "Afternoon", "Night"]
    assert Path(settings.cache_file).exists()


def test_start_with_endpoint_loads_remote(settings):
    settings.remote_endpoint = "https://config.example.test/shifts"
    session = StubSession(StubResponse({"shifts": [
        {"name": "Day", "startHour": 6, "durationHours": 12},
        {"name": "Night", "startHour": 18, "durationHours": 12}
    ]}))
    with ScheduleEngine(settings, session=session) as engine:
        result = engine.start()
        assert result.source is TemplateSource.REMOTE
        day = engine.get_day_for(date(2018, 11, 7))
        assert [s.name for s in day.shifts] == ["Day", "Night"]
        assert [s.team for s in day.shifts] == [Team("A", "B"), Team("C", "D")]


def test_start_with_unreachable_endpoint_falls_back(settings):
    settings.remote_endpoint = "https://config.example.test/shifts"
    session = StubSession(requests.exceptions.ConnectionError("offline"))
    with ScheduleEngine(settings, session=session) as engine:
        result = engine.start()
        assert result.success
        assert result.used_defaults
        assert session.calls == 1


def test_get_month_applies_plant_stops(engine):
    month = engine.get_month_for(2019, 8)
    assert len(month.days) == 31
    assert month.day(13).shifts[2].is_stop
    assert all(s.is_stop for s in month.day(20).shifts)
    assert not month.day(21).has_stop


def test_get_day_for_matches_month(engine):
    day = engine.get_day_for(date(2019, 4, 20))
    assert all(s.is_stop for s in day.shifts)
    assert [s.team.name for s in day.shifts] == [
        s.team.name for s in engine.get_month_for(2019, 4).day(20).shifts]


def test_stops_hidden_when_disabled(settings):
    settings.show_stops = False
    with ScheduleEngine(settings) as engine:
        engine.start()
        assert engine.stops == []
        assert not engine.get_day_for(date(2019, 4, 20)).has_stop


def test_injected_stops_replace_calendar(settings):
    stops = [StopInterval(2024, 3, 1, 1, 2024, 3, 2, 1)]
    with ScheduleEngine(settings, stops=stops) as engine:
        engine.start()
        assert engine.get_day_for(date(2024, 3, 1)).has_stop
        assert not engine.get_day_for(date(2019, 4, 20)).has_stop


def test_invalid_month_is_rejected(engine):
    with pytest.raises(InvalidRotationInputError):
        engine.get_month_for(2024, 0)


def test_find_next_shift_skips_stopped_slots(engine):
    # A is due on the night of 2019-08-13 but the plant is stopped until the 21st
    shift = engine.find_next_shift("A", date(2019, 8, 13))
    assert shift.date >= date(2019, 8, 21)
    assert not shift.is_stop
    assert shift.has_half_team("A")


def test_find_next_shift_crosses_month_boundary(engine):
    shift = engine.find_next_shift("A", date(2024, 1, 31), horizon_days=10)
    assert shift is not None
    assert shift.has_half_team("A")


def test_find_next_shift_unknown_half_team(engine):
    with pytest.raises(InvalidRotationInputError):
        engine.find_next_shift("X", date(2024, 1, 1))


def test_events_for_day(engine):
    events = engine.events_for_day(date(2018, 11, 7), viewer="E")
    assert [e.title for e in events] == ["Morning - Team AB", "Afternoon - Team CD", "Night - Team EF"]
    assert [e.is_user_relevant for e in events] == [False, False, True]


def test_refresh_without_endpoint_reports_failure(engine):
    result = engine.refresh_templates().result(timeout=1)
    assert not result.success


def test_custom_pattern_file_and_reference_date(tmp_path):
    pattern_file = tmp_path / "pattern.json"
    pattern_file.write_text(json.dumps({
        "name": "Pairs",
        "cycleLength": 2,
        "days": [["AB", "CD", "EF"], ["CD", "EF", "AB"]]
    }))
    settings = EngineSettings(
        cache_file=str(tmp_path / "cache.json"),
        pattern_file=str(pattern_file),
        reference_date=date(2024, 1, 1),
        show_stops=False
    )
    with ScheduleEngine(settings) as engine:
        engine.start()
        assert engine.get_day_for(date(2024, 1, 2)).shifts[0].team == Team("C", "D")
        assert engine.get_day_for(date(2024, 1, 3)).shifts[0].team == Team("A", "B")
