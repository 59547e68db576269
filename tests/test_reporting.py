import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_rotation.models import ShiftTemplate, StopInterval
from shift_rotation.reporting import STATISTICS_COLUMNS, crew_statistics, month_frame
from shift_rotation.rotation import RotationCalculator, load_default_pattern
from shift_rotation.schedule import Month
from shift_rotation.template_cache import build_default_templates


@pytest.fixture
def calculator():
    return RotationCalculator(load_default_pattern(), templates=build_default_templates(3))


def test_month_frame_has_one_row_per_day(calculator):
    month = Month(2018, 11).generate_days(calculator)
    df = month_frame(month)

    assert len(df) == 30
    assert list(df.columns) == ["date", "weekday", "Morning", "Afternoon", "Night",
                                "stop_Morning", "stop_Afternoon", "stop_Night", "off_work"]
    row = df[df["date"] == "2018-11-07"].iloc[0]
    assert row["weekday"] == "Wednesday"
    assert (row["Morning"], row["Afternoon"], row["Night"]) == ("AB", "CD", "EF")
    assert row["off_work"] == "GHI"
    assert not df["stop_Night"].any()


def test_month_frame_shows_stops(calculator):
    month = Month(2018, 12).generate_days(calculator)
    month.set_stops([StopInterval(2018, 12, 21, 3, 2018, 12, 32, 1)])
    df = month_frame(month)

    assert df["stop_Night"].sum() == 11
    assert df["stop_Morning"].sum() == 10


def test_crew_statistics_over_one_month(calculator):
    """
    Why this is important: every slot of every day is worked by exactly two
    half-teams, so the totals must add up to the calendar without gaps.
    """
    months = [Month(2018, 11).generate_days(calculator)]
    df = crew_statistics(months)

    assert list(df.columns) == STATISTICS_COLUMNS + ["Morning", "Afternoon", "Night"]
    assert list(df["half_team"]) == list("ABCDEFGHI")
    # 30 days: three slots, two half-teams each
    assert df["shifts_worked"].sum() == 30 * 6
    assert df["hours_worked"].sum() == 30 * 6 * 8
    assert (df["shifts_worked"] + df["rest_days"] == 30).all()
    assert (df["stop_shifts"] == 0).all()


def test_crew_statistics_counts_stops_separately(calculator):
    month = Month(2019, 1).generate_days(calculator)
    month.set_stops([StopInterval(2019, 1, 1, 1, 2019, 1, 3, 1)])
    df = crew_statistics([month]).set_index("half_team")

    assert df["stop_shifts"].sum() == 2 * 3 * 2
    assert df["shifts_worked"].sum() == 29 * 6
    assert (df["shifts_worked"] + df["rest_days"] == 31).all()


def test_crew_statistics_ignores_rest_templates(calculator):
    templates = build_default_templates(3)[:2] + [ShiftTemplate("Rest", duration_hours=0, is_rest=True)]
    rest_calculator = RotationCalculator(calculator.pattern, templates=templates)
    df = crew_statistics([Month(2018, 11).generate_days(rest_calculator)])

    assert "Rest" not in df.columns or (df["Rest"] == 0).all()
    assert df["shifts_worked"].sum() == 30 * 4


def test_crew_statistics_empty():
    df = crew_statistics([])
    assert df.empty
    assert list(df.columns) == STATISTICS_COLUMNS
