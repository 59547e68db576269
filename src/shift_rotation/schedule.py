"""
Calendar Model for the Shift Rotation Engine

Shift instances, days and months. Days are produced by the rotation
calculator; months aggregate them and apply plant-halt stop intervals.
"""

import calendar
import logging
from datetime import date, timedelta
from typing import FrozenSet, Iterable, List, Optional

from .exceptions import InvalidRotationInputError, InvalidTemplateError, StopApplicationError
from .models import HalfTeam, HalfTeamLike, ShiftTemplate, StopInterval, Team

logger = logging.getLogger(__name__)


class Shift:
    """One occurrence of a shift template on a date, with its crew"""

    def __init__(self, template: ShiftTemplate, shift_date: Optional[date] = None,
                 is_stop: bool = False, half_teams: Iterable[HalfTeamLike] = ()):
        if template is None:
            raise InvalidTemplateError("A shift requires a template")
        self.template = template
        self.date = shift_date
        self.is_stop = is_stop
        self._half_teams = {HalfTeam.of(ht) for ht in half_teams}

    @staticmethod
    def builder() -> "ShiftBuilder":
        return ShiftBuilder()

    @property
    def name(self) -> str:
        return self.template.name

    @property
    def half_teams(self) -> FrozenSet[HalfTeam]:
        return frozenset(self._half_teams)

    @property
    def team(self) -> Optional[Team]:
        """The crew pair when exactly two half-teams are assigned"""
        return Team.from_shift(self)

    def has_half_team(self, half_team: HalfTeamLike) -> bool:
        return HalfTeam.of(half_team) in self._half_teams

    def add_half_team(self, half_team: HalfTeamLike):
        self._half_teams.add(HalfTeam.of(half_team))

    def add_team(self, team: Team):
        self._half_teams.update(team.half_teams)

    def remove_half_team(self, half_team: HalfTeamLike):
        self._half_teams.discard(HalfTeam.of(half_team))

    def clear_crew(self):
        self._half_teams.clear()

    def clone(self) -> "Shift":
        return Shift(self.template, self.date, self.is_stop, self._half_teams)

    def crew_label(self) -> str:
        return "".join(ht.name for ht in sorted(self._half_teams))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Shift):
            return NotImplemented
        return (self.template == other.template and self.date == other.date
                and self.is_stop == other.is_stop and self._half_teams == other._half_teams)

    def __hash__(self):
        # Only the immutable identity; crew and stop flag change after construction
        return hash((self.template.id, self.date))

    def __repr__(self) -> str:
        stop = " stop" if self.is_stop else ""
        return f"Shift({self.template.name} {self.date} [{self.crew_label()}]{stop})"


class ShiftBuilder:
    """Fluent assembly of a Shift"""

    def __init__(self):
        self._template: Optional[ShiftTemplate] = None
        self._date: Optional[date] = None
        self._is_stop = False
        self._half_teams: List[HalfTeam] = []

    def with_template(self, template: ShiftTemplate) -> "ShiftBuilder":
        self._template = template
        return self

    def for_date(self, shift_date: date) -> "ShiftBuilder":
        self._date = shift_date
        return self

    def as_stop(self, is_stop: bool = True) -> "ShiftBuilder":
        self._is_stop = is_stop
        return self

    def add_half_team(self, half_team: HalfTeamLike) -> "ShiftBuilder":
        self._half_teams.append(HalfTeam.of(half_team))
        return self

    def add_half_teams(self, *half_teams: HalfTeamLike) -> "ShiftBuilder":
        for half_team in half_teams:
            self.add_half_team(half_team)
        return self

    def add_team(self, team: Team) -> "ShiftBuilder":
        return self.add_half_teams(team.primary, team.secondary)

    def build(self) -> Shift:
        if self._template is None:
            raise InvalidTemplateError("Shift builder has no template")
        return Shift(self._template, self._date, self._is_stop, self._half_teams)


class Day:
    """A calendar date with one shift per configured template"""

    def __init__(self, day_date: date, shifts: Optional[List[Shift]] = None,
                 roster: Iterable[HalfTeamLike] = (), today: Optional[date] = None):
        self.date = day_date
        self.shifts: List[Shift] = list(shifts or [])
        self.roster: FrozenSet[HalfTeam] = frozenset(HalfTeam.of(ht) for ht in roster)
        self.is_today = day_date == (today or date.today())

    @property
    def slot_count(self) -> int:
        return len(self.shifts)

    @property
    def working_half_teams(self) -> FrozenSet[HalfTeam]:
        working = set()
        for shift in self.shifts:
            working.update(shift.half_teams)
        return frozenset(working)

    @property
    def off_work_half_teams(self) -> List[HalfTeam]:
        """Roster members not assigned to any slot, in name order"""
        return sorted(self.roster - self.working_half_teams)

    @property
    def has_stop(self) -> bool:
        return any(shift.is_stop for shift in self.shifts)

    def shift(self, slot_index: int) -> Optional[Shift]:
        if 0 <= slot_index < len(self.shifts):
            return self.shifts[slot_index]
        return None

    def slot_of(self, half_team: HalfTeamLike) -> Optional[int]:
        """Zero-based slot worked by a half-team, None when off work"""
        target = HalfTeam.of(half_team)
        for index, shift in enumerate(self.shifts):
            if target in shift.half_teams:
                return index
        return None

    def mark_stop(self, slot_index: int):
        if not 0 <= slot_index < len(self.shifts):
            raise StopApplicationError(
                f"Slot {slot_index} out of range for {self.date} ({len(self.shifts)} slots)")
        self.shifts[slot_index].is_stop = True

    def refresh_today(self, today: Optional[date] = None):
        self.is_today = self.date == (today or date.today())

    def clone(self) -> "Day":
        copy = Day(self.date, [shift.clone() for shift in self.shifts], self.roster)
        copy.is_today = self.is_today
        return copy

    def __repr__(self) -> str:
        return f"Day({self.date}, {self.shifts!r})"


class Month:
    """All days of one calendar month"""

    def __init__(self, year: int, month: int, today: Optional[date] = None):
        if not 1 <= month <= 12:
            raise InvalidRotationInputError(f"Invalid month: {month}")
        self.first_day = date(year, month, 1)
        self.days: List[Day] = []
        today = today or date.today()
        self.is_current = (today.year, today.month) == (year, month)

    @property
    def year(self) -> int:
        return self.first_day.year

    @property
    def month(self) -> int:
        return self.first_day.month

    @property
    def length(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    def generate_days(self, calculator) -> "Month":
        self.set_days(calculator.generate_days(self.first_day, self.length))
        return self

    def set_days(self, days: List[Day]):
        if len(days) != self.length:
            raise InvalidRotationInputError(
                f"{self.first_day:%Y-%m} needs {self.length} days, got {len(days)}")
        for offset, day in enumerate(days):
            expected = self.first_day + timedelta(days=offset)
            if day.date != expected:
                raise InvalidRotationInputError(f"Day {offset + 1} has date {day.date}, expected {expected}")
        self.days = list(days)

    def day(self, number: int) -> Optional[Day]:
        """Day by 1-based day-of-month"""
        if 1 <= number <= len(self.days):
            return self.days[number - 1]
        return None

    def set_stops(self, stops: Iterable[StopInterval]) -> int:
        """
        Mark the slots covered by stop intervals starting in this month.

        Each stop is applied on its own; a failing stop is logged and
        skipped. Returns the number of stops applied.
        """
        applied = 0
        for stop in stops:
            if not stop.starts_in(self.year, self.month):
                continue
            try:
                self._apply_stop(stop)
                applied += 1
            except StopApplicationError as e:
                logger.warning(f"Skipping stop {stop} for {self.first_day:%Y-%m}: {e}")
        if applied:
            logger.debug(f"Applied {applied} stops to {self.first_day:%Y-%m}")
        return applied

    def _apply_stop(self, stop: StopInterval):
        if not self.days:
            raise StopApplicationError("Month has no generated days")
        first = self.days[stop.start_date.day - 1]
        if stop.start_slot > first.slot_count:
            raise StopApplicationError(
                f"Start slot {stop.start_slot} exceeds the {first.slot_count} configured slots")

        current = stop.start_date
        slot = stop.start_slot
        while current.month == self.month and current.year == self.year:
            day = self.days[current.day - 1]
            for ordinal in range(slot, day.slot_count + 1):
                if not stop.contains(current, ordinal):
                    return
                day.mark_stop(ordinal - 1)
            current += timedelta(days=1)
            slot = 1

    def refresh_today(self, today: Optional[date] = None):
        today = today or date.today()
        self.is_current = (today.year, today.month) == (self.year, self.month)
        for day in self.days:
            day.refresh_today(today)

    def __repr__(self) -> str:
        return f"Month({self.first_day:%Y-%m}, {len(self.days)} days)"
