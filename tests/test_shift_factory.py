import pytest
import sys
from datetime import date
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_rotation.exceptions import InvalidTemplateError
from shift_rotation.models import ShiftTemplate, Team
from shift_rotation.rotation import RotationCalculator, load_default_pattern
from shift_rotation.schedule import Month
from shift_rotation.shift_factory import ShiftFactory
from shift_rotation.store import MemoryTemplateStore
from shift_rotation.template_cache import ShiftTemplateCache

DAY = date(2024, 3, 15)


@pytest.fixture
def cache():
    cache = ShiftTemplateCache(MemoryTemplateStore(), session=object())
    cache.initialize(3)
    yield cache
    cache.close()


@pytest.fixture
def factory(cache):
    return ShiftFactory(cache)


def test_create_shift_by_index(factory):
    shift = factory.create_shift(2, DAY)
    assert shift.name == "Night"
    assert shift.date == DAY
    assert shift.half_teams == frozenset()
    assert factory.create_shift(3, DAY) is None
    assert factory.create_shift(-1, DAY) is None


def test_create_named_shifts(factory):
    assert factory.create_named_shift("Afternoon", DAY).template.start_hour == 14
    assert factory.create_named_shift("Lunch", DAY) is None

    shifts = factory.create_named_shifts(DAY, "Night", "Lunch", "Morning")
    assert [s.name for s in shifts] == ["Night", "Morning"]


def test_create_daily_shifts_follow_template_order(factory, cache):
    shifts = factory.create_daily_shifts(DAY)
    assert [s.template for s in shifts] == list(cache.get_all_templates())
    assert all(s.date == DAY and not s.is_stop for s in shifts)


def test_create_custom_shift(factory):
    template = ShiftTemplate("Maintenance", start_hour=8, duration_hours=4)
    shift = factory.create_custom_shift(template, DAY, is_stop=True, half_teams=["C", "D"])
    assert shift.is_stop
    assert shift.team == Team("C", "D")
    assert factory.create_shift_for_template(template, DAY).template is template

    with pytest.raises(InvalidTemplateError):
        factory.create_custom_shift(None, DAY)


def test_standard_shift_is_one_based_and_deprecated(factory):
    with pytest.warns(DeprecationWarning):
        shift = factory.create_standard_shift(1, DAY)
    assert shift.name == "Morning"

    with pytest.warns(DeprecationWarning):
        assert factory.create_standard_shift(3, DAY).name == "Night"


@pytest.mark.parametrize("ordinal", [0, -1, 4])
def test_standard_shift_rejects_out_of_range(factory, ordinal):
    with pytest.warns(DeprecationWarning):
        with pytest.raises(ValueError):
            factory.create_standard_shift(ordinal, DAY)


def test_builder_resolves_templates(factory):
    shift = factory.builder().with_name("Night").for_date(DAY).add_team(Team("E", "F")).build()
    assert shift.name == "Night"
    assert shift.team == Team("E", "F")

    by_index = factory.builder().with_index(0).for_date(DAY).as_stop().build()
    assert by_index.name == "Morning"
    assert by_index.is_stop


@pytest.mark.parametrize("configure", [
    lambda b: b.with_name("Lunch").for_date(DAY),
    lambda b: b.with_index(7).for_date(DAY),
    lambda b: b.with_index(0),
    lambda b: b.for_date(DAY),
])
def test_builder_returns_none_when_unresolvable(factory, configure):
    assert configure(factory.builder()).build() is None


def test_readiness_and_info(factory, cache):
    assert factory.is_ready()
    info = factory.available_shifts_info()
    assert "0: Morning (06:00-14:00)" in info
    assert "2: Night (22:00-06:00)" in info


def test_not_ready_before_initialization():
    cache = ShiftTemplateCache(MemoryTemplateStore(), session=object())
    try:
        assert not ShiftFactory(cache).is_ready()
    finally:
        cache.close()


def test_create_daily_shifts_from_given_templates(factory):
    templates = [ShiftTemplate("Early", start_hour=5, duration_hours=12)]
    shifts = factory.create_daily_shifts(DAY, templates)
    assert [s.name for s in shifts] == ["Early"]


def test_month_keeps_one_template_set_while_cache_changes(factory, cache, monkeypatch):
    """
    Why this is important: a runtime template change landing halfway through
    a month must not leave days of the same month with different slot counts.
    """
    calculator = RotationCalculator(load_default_pattern(), shift_factory=factory)
    original = factory.create_daily_shifts
    calls = []

    def create_and_change_cache(shift_date, templates=None):
        calls.append(shift_date)
        if len(calls) == 15:
            cache.add_template(ShiftTemplate("Extra", start_hour=10, duration_hours=4))
        return original(shift_date, templates)

    monkeypatch.setattr(factory, "create_daily_shifts", create_and_change_cache)
    month = Month(2024, 3).generate_days(calculator)

    assert len(calls) == 31
    assert cache.template_count == 4
    assert {day.slot_count for day in month.days} == {3}
    assert [s.name for s in month.day(31).shifts] == ["Morning", "Afternoon", "Night"]

    # the next month picks up the new template
    april = Month(2024, 4).generate_days(calculator)
    assert {day.slot_count for day in april.days} == {4}
