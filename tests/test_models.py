"""
Test Suite for the Value Objects

Covers shift template timing, color normalization, half-team interning,
team canonicalisation and stop interval coverage.
"""

import pytest
import sys
from datetime import date, time, timedelta
from pathlib import Path
import json

# Setup import path for src
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_rotation.exceptions import InvalidRotationInputError, InvalidStopIntervalError, InvalidTemplateError
from shift_rotation.models import HalfTeam, ShiftTemplate, StopInterval, Team, load_stops, normalize_color


def test_template_end_time_and_midnight_crossing():
    night = ShiftTemplate("Night", start_hour=22, duration_hours=8)
    assert night.end_time == time(6, 0)
    assert night.crosses_midnight
    assert night.formatted_start_time == "22:00"
    assert night.formatted_end_time == "06:00"

    morning = ShiftTemplate("Morning", start_hour=6, duration_hours=8)
    assert morning.end_time == time(14, 0)
    assert not morning.crosses_midnight
    assert morning.duration == timedelta(hours=8)


def test_template_ending_exactly_at_midnight_crosses():
    late = ShiftTemplate("Late", start_hour=16, duration_hours=8)
    assert late.end_time == time(0, 0)
    assert late.crosses_midnight


def test_template_includes_wraps_midnight():
    night = ShiftTemplate("Night", start_hour=22, duration_hours=8)
    assert night.includes(time(23, 30))
    assert night.includes(time(3, 0))
    assert night.includes(time(6, 0))
    assert not night.includes(time(12, 0))


@pytest.mark.parametrize("kwargs", [
    {"start_hour": 24},
    {"start_hour": -1},
    {"start_minute": 60},
    {"duration_minutes": 75},
    {"duration_hours": -2},
    {"duration_hours": 0},
])
def test_template_rejects_invalid_timing(kwargs):
    with pytest.raises(InvalidTemplateError):
        ShiftTemplate("Bad", **kwargs)


def test_rest_template_may_have_zero_duration():
    rest = ShiftTemplate("Rest", duration_hours=0, is_rest=True)
    assert rest.total_minutes == 0
    assert not rest.crosses_midnight


def test_template_requires_name():
    with pytest.raises(InvalidTemplateError):
        ShiftTemplate("   ")


def test_template_ids_are_generated_and_kept_by_with_changes():
    first = ShiftTemplate("Morning", start_hour=6)
    second = ShiftTemplate("Morning", start_hour=6)
    assert first.id and second.id and first.id != second.id

    updated = first.with_changes(start_hour=7, id="ignored")
    assert updated.id == first.id
    assert updated.start_hour == 7
    assert first.start_hour == 6


def test_template_dict_uses_wire_keys():
    template = ShiftTemplate("Night", start_hour=22, start_minute=30, duration_hours=7, color="#abc")
    data = template.to_dict()
    assert data["startHour"] == 22
    assert data["startMinute"] == 30
    assert data["durationHours"] == 7
    assert data["color"] == "#AABBCC"
    assert data["restType"] is False
    assert ShiftTemplate.from_dict(data) == template


@pytest.mark.parametrize("value,expected", [
    ("#b3e5fc", "#B3E5FC"),
    ("#fff", "#FFFFFF"),
    ("#80FF0000", "#FF0000"),
    (0xFFB3E5FC, "#B3E5FC"),
    (-4987396, "#B3E5FC"),
])
def test_normalize_color(value, expected):
    assert normalize_color(value) == expected


@pytest.mark.parametrize("value", ["B3E5FC", "#12345", "#GGGGGG", None, True])
def test_normalize_color_rejects_garbage(value):
    with pytest.raises(InvalidTemplateError):
        normalize_color(value)


def test_half_teams_are_interned():
    assert HalfTeam.of("a") is HalfTeam.of("A")
    assert HalfTeam.of(" b ") is HalfTeam.of(HalfTeam("B"))
    assert HalfTeam.of("A") < HalfTeam.of("B")


def test_half_team_rejects_empty_name():
    with pytest.raises(InvalidRotationInputError):
        HalfTeam.of("")


def test_team_is_canonicalised():
    """
    Why this is important: lookups and comparisons across the rotation table
    rely on a crew pair having exactly one representation.
    """
    assert Team("B", "A") == Team("A", "B")
    assert hash(Team("B", "A")) == hash(Team("A", "B"))
    team = Team("H", "A")
    assert team.primary.name == "A"
    assert team.name == "AH"
    assert team.team_id == "TEAM_AH"
    assert team.long_name == "Team AH (A + H)"
    assert team.description == "Work team composed of half-teams A and H"


def test_team_rejects_same_half_team_twice():
    with pytest.raises(InvalidRotationInputError):
        Team("A", "a")


def test_team_membership_helpers():
    team = Team("A", "B")
    assert team.contains("a")
    assert not team.contains("C")
    assert not team.contains(None)
    assert team.shares_half_team_with(Team("B", "C"))
    assert not team.shares_half_team_with(Team("C", "D"))
    assert team.other_half_team("A") is HalfTeam.of("B")
    assert team.other_half_team("Z") is None


def test_team_from_half_teams_needs_exactly_two():
    assert Team.from_half_teams(["B", "A"]) == Team("A", "B")
    assert Team.from_half_teams(["A"]) is None
    assert Team.from_half_teams(["A", "B", "C"]) is None
    assert Team.from_half_teams(["A", "a"]) is None


def test_stop_interval_rolls_day_overflow():
    stop = StopInterval(2018, 12, 21, 3, 2018, 12, 32, 1)
    assert stop.start_date == date(2018, 12, 21)
    assert stop.end_date == date(2019, 1, 1)
    assert stop.last_covered_date == date(2018, 12, 31)


def test_stop_interval_coverage_is_end_exclusive():
    stop = StopInterval(2019, 4, 19, 3, 2019, 4, 23, 1)
    assert not stop.contains(date(2019, 4, 19), 2)
    assert stop.contains(date(2019, 4, 19), 3)
    assert stop.contains(date(2019, 4, 22), 3)
    assert not stop.contains(date(2019, 4, 23), 1)
    assert stop.contains(date(2019, 4, 20))
    assert not stop.contains(date(2019, 4, 23))


def test_stop_interval_overlaps_and_starts_in():
    stop = StopInterval(2019, 6, 20, 3, 2019, 6, 25, 1)
    assert stop.starts_in(2019, 6)
    assert not stop.starts_in(2019, 7)
    assert stop.overlaps(date(2019, 6, 24), date(2019, 7, 1))
    assert not stop.overlaps(date(2019, 6, 25), date(2019, 7, 1))
    assert not stop.overlaps(date(2019, 6, 1), date(2019, 6, 19))


@pytest.mark.parametrize("values", [
    (2019, 4, 23, 1, 2019, 4, 19, 3),
    (2019, 13, 1, 1, 2019, 12, 2, 1),
    (2019, 4, 19, 0, 2019, 4, 23, 1),
    (2019, 4, 0, 1, 2019, 4, 23, 1),
])
def test_stop_interval_rejects_invalid_values(values):
    with pytest.raises(InvalidStopIntervalError):
        StopInterval(*values)


def test_load_stops_skips_malformed_entries(tmp_path):
    stops_file = tmp_path / "stops.json"
    stops_file.write_text(json.dumps({"stops": [
        [2019, 1, 1, 1, 2019, 1, 3, 1],
        {"start": {"year": 2019, "month": 4, "day": 19, "slot": 3},
         "end": {"year": 2019, "month": 4, "day": 23, "slot": 1}},
        [2019, 1, 3, 1],
        [2019, 5, 10, 1, 2019, 5, 1, 1]
    ]}))

    stops = load_stops(stops_file)
    assert len(stops) == 2
    assert stops[1].start_date == date(2019, 4, 19)
