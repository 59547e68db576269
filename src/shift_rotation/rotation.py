"""
Rotation Pattern and Calculator

A rotation pattern is a table mapping (cycle position, slot index) to the
crew pair on duty. The calculator anchors the pattern at a reference date
and produces days with their crews for any calendar date, past or future.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from .exceptions import InvalidRotationInputError
from .models import HalfTeam, HalfTeamLike, ShiftTemplate, Team
from .schedule import Day, Shift

logger = logging.getLogger(__name__)

DEFAULT_PATTERN_FILE = Path(__file__).parent / "data" / "quattrodue.json"


def _parse_team(value: Union[str, Sequence[str]]) -> Team:
    """Parse "AB" or ["A", "B"] into a Team"""
    if isinstance(value, str):
        if len(value) != 2:
            raise InvalidRotationInputError(f"Team code must be two half-team letters: {value!r}")
        return Team(value[0], value[1])
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return Team(value[0], value[1])
    raise InvalidRotationInputError(f"Invalid team entry: {value!r}")


@dataclass
class RotationPattern:
    """Repeating rotation table"""
    name: str
    cycle_length: int
    table: Dict[Tuple[int, int], Team]
    roster: FrozenSet[HalfTeam] = field(default_factory=frozenset)
    reference_date: Optional[date] = None

    def __post_init__(self):
        if isinstance(self.cycle_length, bool) or not isinstance(self.cycle_length, int) \
                or self.cycle_length <= 0:
            raise InvalidRotationInputError(f"Cycle length must be a positive integer: {self.cycle_length!r}")
        for (position, slot) in self.table:
            if not 0 <= position < self.cycle_length:
                raise InvalidRotationInputError(
                    f"Cycle position {position} outside 0..{self.cycle_length - 1}")
            if slot < 0:
                raise InvalidRotationInputError(f"Negative slot index {slot}")

        derived = set()
        for team in self.table.values():
            derived.update(team.half_teams)
        roster = frozenset(HalfTeam.of(ht) for ht in self.roster) if self.roster else frozenset(derived)
        if not roster:
            raise InvalidRotationInputError(f"Rotation pattern '{self.name}' has an empty roster")
        unknown = derived - roster
        if unknown:
            names = ", ".join(sorted(ht.name for ht in unknown))
            raise InvalidRotationInputError(f"Half-teams {names} are not in the roster")
        self.roster = roster

    @property
    def slot_count(self) -> int:
        if not self.table:
            return 0
        return max(slot for _, slot in self.table) + 1

    def team_for(self, position: int, slot: int) -> Optional[Team]:
        return self.table.get((position, slot))

    def to_dict(self) -> Dict[str, Any]:
        days = []
        for position in range(self.cycle_length):
            days.append([
                team.name if team else None
                for team in (self.team_for(position, slot) for slot in range(self.slot_count))
            ])
        data = {
            "name": self.name,
            "cycleLength": self.cycle_length,
            "halfTeams": sorted(ht.name for ht in self.roster),
            "days": days
        }
        if self.reference_date:
            data["referenceDate"] = self.reference_date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RotationPattern":
        """
        Build a pattern from its JSON form.

        ``days`` holds one list per cycle position, one team code (or null)
        per slot.
        """
        try:
            days = data["days"]
            cycle_length = data.get("cycleLength", len(days))
            if len(days) > cycle_length:
                raise InvalidRotationInputError(
                    f"Pattern has {len(days)} days but a cycle length of {cycle_length}")
            table = {}
            for position, slots in enumerate(days):
                for slot, code in enumerate(slots):
                    if code:
                        table[(position, slot)] = _parse_team(code)
            reference = data.get("referenceDate")
            return cls(
                name=data.get("name", "Rotation"),
                cycle_length=cycle_length,
                table=table,
                roster=frozenset(HalfTeam.of(name) for name in data.get("halfTeams", [])),
                reference_date=date.fromisoformat(reference) if reference else None
            )
        except InvalidRotationInputError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidRotationInputError(f"Malformed rotation pattern: {e}")


def load_pattern(path: Union[str, Path]) -> RotationPattern:
    with open(path, "r", encoding="utf-8") as f:
        pattern = RotationPattern.from_dict(json.load(f))
    logger.info(f"Loaded rotation pattern '{pattern.name}' ({pattern.cycle_length} day cycle) from {path}")
    return pattern


def load_default_pattern() -> RotationPattern:
    return load_pattern(DEFAULT_PATTERN_FILE)


class RotationCalculator:
    """Maps calendar dates to cycle positions and crews"""

    def __init__(self, pattern: RotationPattern, reference_date: Optional[date] = None,
                 templates: Sequence[ShiftTemplate] = (), shift_factory=None):
        reference_date = reference_date or pattern.reference_date
        if reference_date is None:
            raise InvalidRotationInputError(f"No reference date for pattern '{pattern.name}'")
        if shift_factory is None and not templates:
            raise InvalidRotationInputError("Rotation calculator needs templates or a shift factory")
        self.pattern = pattern
        self.reference_date = reference_date
        self.templates = tuple(templates)
        self.shift_factory = shift_factory

    @property
    def cycle_length(self) -> int:
        return self.pattern.cycle_length

    def days_since_reference(self, on_date: date) -> int:
        return (on_date - self.reference_date).days

    def cycle_position_for(self, on_date: date) -> int:
        """Position in the cycle, always in 0..cycle_length-1"""
        return self.days_since_reference(on_date) % self.pattern.cycle_length

    def assigned_team_for(self, position: int, slot: int) -> Optional[Team]:
        return self.pattern.team_for(position, slot)

    def current_templates(self) -> Tuple[ShiftTemplate, ...]:
        """The template set days are built from right now"""
        if self.shift_factory is not None:
            return tuple(self.shift_factory.cache.get_all_templates())
        return self.templates

    def _shifts_for(self, on_date: date, templates: Sequence[ShiftTemplate]) -> List[Shift]:
        if self.shift_factory is not None:
            return self.shift_factory.create_daily_shifts(on_date, templates)
        return [Shift(template, on_date) for template in templates]

    def generate_day(self, on_date: date, today: Optional[date] = None,
                     templates: Optional[Sequence[ShiftTemplate]] = None) -> Day:
        """Build the day with one shift per template and the assigned crews"""
        if templates is None:
            templates = self.current_templates()
        position = self.cycle_position_for(on_date)
        shifts = self._shifts_for(on_date, templates)
        for slot, shift in enumerate(shifts):
            team = self.assigned_team_for(position, slot)
            if team is not None:
                shift.add_team(team)
        return Day(on_date, shifts, self.pattern.roster, today)

    def generate_days(self, first_date: date, count: int, today: Optional[date] = None) -> List[Day]:
        """Consecutive days, all built from one template snapshot"""
        if count < 0:
            raise InvalidRotationInputError(f"Day count must not be negative: {count}")
        templates = self.current_templates()
        return [self.generate_day(first_date + timedelta(days=offset), today, templates)
                for offset in range(count)]

    def find_next_shift(self, half_team: HalfTeamLike, from_date: date,
                        horizon_days: Optional[int] = None) -> Optional[Shift]:
        """First shift on or after from_date worked by the half-team"""
        target = HalfTeam.of(half_team)
        if target not in self.pattern.roster:
            raise InvalidRotationInputError(f"Half-team {target.name} is not in the roster")
        horizon = horizon_days if horizon_days is not None else self.pattern.cycle_length
        templates = self.current_templates()
        for offset in range(horizon):
            day = self.generate_day(from_date + timedelta(days=offset), templates=templates)
            slot = day.slot_of(target)
            if slot is not None:
                return day.shifts[slot]
        return None
