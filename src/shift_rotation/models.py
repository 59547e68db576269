"""
Value Objects for the Shift Rotation Engine

Immutable building blocks shared by the template cache, the rotation
calculator and the calendar model: shift templates, half-teams, teams
(crew pairs) and plant-halt stop intervals.
"""

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, time, timedelta
from pathlib import Path
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, List, Optional, Sequence, Union

from .exceptions import InvalidRotationInputError, InvalidStopIntervalError, InvalidTemplateError

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
TIME_FORMAT = "%H:%M"


def normalize_color(value: Union[str, int]) -> str:
    """
    Normalize a display color to the ``#RRGGBB`` form.

    Accepts ``#RGB``, ``#RRGGBB`` and ``#AARRGGBB`` strings as well as
    ARGB integers (signed or unsigned); the alpha channel is dropped.
    """
    if isinstance(value, bool):
        raise InvalidTemplateError(f"Invalid color value: {value!r}")
    if isinstance(value, int):
        return f"#{value & 0xFFFFFF:06X}"
    if not isinstance(value, str):
        raise InvalidTemplateError(f"Invalid color value: {value!r}")

    text = value.strip()
    if not text.startswith("#"):
        raise InvalidTemplateError(f"Color must start with '#': {value!r}")
    digits = text[1:]
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    elif len(digits) == 8:
        digits = digits[2:]
    elif len(digits) != 6:
        raise InvalidTemplateError(f"Invalid color length: {value!r}")
    try:
        int(digits, 16)
    except ValueError:
        raise InvalidTemplateError(f"Invalid hex color: {value!r}")
    return f"#{digits.upper()}"


def _new_template_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ShiftTemplate:
    """Immutable description of one daily shift slot"""
    name: str
    description: str = ""
    start_hour: int = 0
    start_minute: int = 0
    duration_hours: int = 8
    duration_minutes: int = 0
    color: str = "#B3E5FC"
    is_rest: bool = False
    id: str = field(default_factory=_new_template_id)

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidTemplateError("Template name must be a non-empty string")
        if not self.id:
            object.__setattr__(self, "id", _new_template_id())
        for label, value in (("start_hour", self.start_hour), ("start_minute", self.start_minute),
                             ("duration_hours", self.duration_hours),
                             ("duration_minutes", self.duration_minutes)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidTemplateError(f"{label} must be an integer, got {value!r}")
        if not 0 <= self.start_hour <= 23:
            raise InvalidTemplateError(f"start_hour out of range: {self.start_hour}")
        if not 0 <= self.start_minute <= 59:
            raise InvalidTemplateError(f"start_minute out of range: {self.start_minute}")
        if self.duration_hours < 0 or not 0 <= self.duration_minutes <= 59:
            raise InvalidTemplateError(
                f"Invalid duration {self.duration_hours}h{self.duration_minutes}m for '{self.name}'")
        if self.total_minutes == 0 and not self.is_rest:
            raise InvalidTemplateError(f"Working template '{self.name}' must have a positive duration")
        object.__setattr__(self, "color", normalize_color(self.color))

    @property
    def start_time(self) -> time:
        return time(self.start_hour, self.start_minute)

    @property
    def total_minutes(self) -> int:
        return self.duration_hours * 60 + self.duration_minutes

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.total_minutes)

    @property
    def end_time(self) -> time:
        """End of the shift; wraps past midnight"""
        end = (self.start_hour * 60 + self.start_minute + self.total_minutes) % MINUTES_PER_DAY
        return time(end // 60, end % 60)

    @property
    def crosses_midnight(self) -> bool:
        start = self.start_hour * 60 + self.start_minute
        return self.total_minutes > 0 and start + self.total_minutes >= MINUTES_PER_DAY

    @property
    def formatted_start_time(self) -> str:
        return self.start_time.strftime(TIME_FORMAT)

    @property
    def formatted_end_time(self) -> str:
        return self.end_time.strftime(TIME_FORMAT)

    def includes(self, moment: time) -> bool:
        """Check whether a wall-clock time falls inside this shift (inclusive)"""
        if self.total_minutes >= MINUTES_PER_DAY:
            return True
        start = self.start_hour * 60 + self.start_minute
        offset = (moment.hour * 60 + moment.minute - start) % MINUTES_PER_DAY
        return offset <= self.total_minutes

    def with_changes(self, **changes) -> "ShiftTemplate":
        """Return an updated copy that keeps this template's id"""
        changes.pop("id", None)
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "startHour": self.start_hour,
            "startMinute": self.start_minute,
            "durationHours": self.duration_hours,
            "durationMinutes": self.duration_minutes,
            "color": self.color,
            "restType": self.is_rest
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShiftTemplate":
        kwargs = dict(
            name=data["name"],
            description=data.get("description", ""),
            start_hour=data["startHour"],
            start_minute=data.get("startMinute", 0),
            duration_hours=data["durationHours"],
            duration_minutes=data.get("durationMinutes", 0),
            color=data.get("color", "#B3E5FC"),
            is_rest=bool(data.get("restType", False))
        )
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        return cls(**kwargs)

    def __str__(self) -> str:
        return f"ShiftTemplate{{{self.name} {self.formatted_start_time}-{self.formatted_end_time}}}"


@dataclass(frozen=True, order=True)
class HalfTeam:
    """Half-crew identified by a short upper-case name"""
    name: str
    description: str = field(default="", compare=False)

    _registry: ClassVar[Dict[str, "HalfTeam"]] = {}
    _registry_lock: ClassVar[threading.Lock] = threading.Lock()

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidRotationInputError(f"Half-team name must be a non-empty string, got {self.name!r}")
        object.__setattr__(self, "name", self.name.strip().upper())

    @classmethod
    def of(cls, value: Union[str, "HalfTeam"]) -> "HalfTeam":
        """Return the interned half-team for a name"""
        name = value.name if isinstance(value, HalfTeam) else value
        if not isinstance(name, str) or not name.strip():
            raise InvalidRotationInputError(f"Half-team name must be a non-empty string, got {name!r}")
        key = name.strip().upper()
        with cls._registry_lock:
            half_team = cls._registry.get(key)
            if half_team is None:
                half_team = cls(key, f"Half-team {key}")
                cls._registry[key] = half_team
            return half_team

    def __str__(self) -> str:
        return self.name


HalfTeamLike = Union[str, HalfTeam]


@dataclass(frozen=True, order=True)
class Team:
    """
    Crew pair made of two distinct half-teams.

    The pair is stored in canonical order (lexicographically smaller name
    first) so that Team("B", "A") == Team("A", "B").
    """
    primary: HalfTeam
    secondary: HalfTeam

    def __post_init__(self):
        first = HalfTeam.of(self.primary)
        second = HalfTeam.of(self.secondary)
        if first == second:
            raise InvalidRotationInputError(f"Half-teams must be different: {first.name}")
        if second < first:
            first, second = second, first
        object.__setattr__(self, "primary", first)
        object.__setattr__(self, "secondary", second)

    @property
    def name(self) -> str:
        return self.primary.name + self.secondary.name

    @property
    def team_id(self) -> str:
        return f"TEAM_{self.name}"

    @property
    def half_teams(self) -> FrozenSet[HalfTeam]:
        return frozenset((self.primary, self.secondary))

    @property
    def long_name(self) -> str:
        return f"Team {self.name} ({self.primary.name} + {self.secondary.name})"

    @property
    def description(self) -> str:
        return f"Work team composed of half-teams {self.primary.name} and {self.secondary.name}"

    def contains(self, half_team: Optional[HalfTeamLike]) -> bool:
        if half_team is None:
            return False
        try:
            candidate = HalfTeam.of(half_team)
        except InvalidRotationInputError:
            return False
        return candidate in (self.primary, self.secondary)

    def shares_half_team_with(self, other: Optional["Team"]) -> bool:
        if other is None:
            return False
        return bool(self.half_teams & other.half_teams)

    def other_half_team(self, half_team: HalfTeamLike) -> Optional[HalfTeam]:
        candidate = HalfTeam.of(half_team)
        if candidate == self.primary:
            return self.secondary
        if candidate == self.secondary:
            return self.primary
        return None

    @classmethod
    def from_half_teams(cls, half_teams: Iterable[HalfTeamLike]) -> Optional["Team"]:
        """Build a team from exactly two distinct half-teams, else None"""
        members = {HalfTeam.of(ht) for ht in half_teams if ht is not None}
        if len(members) != 2:
            return None
        return cls(*sorted(members))

    @classmethod
    def from_shift(cls, shift) -> Optional["Team"]:
        return cls.from_half_teams(shift.half_teams)

    def __str__(self) -> str:
        return self.name


def _rolled_date(year: int, month: int, day: int) -> date:
    # Day values past the end of the month roll into the following month
    return date(year, month, 1) + timedelta(days=day - 1)


@dataclass(frozen=True)
class StopInterval:
    """
    Plant-halt window.

    Slots are 1-based ordinals. The interval covers every (date, slot) pair
    from the start inclusive up to the end exclusive, the end being the first
    slot back at work.
    """
    start_year: int
    start_month: int
    start_day: int
    start_slot: int
    end_year: int
    end_month: int
    end_day: int
    end_slot: int
    start_date: date = field(init=False, repr=False, compare=False)
    end_date: date = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        values = (self.start_year, self.start_month, self.start_day, self.start_slot,
                  self.end_year, self.end_month, self.end_day, self.end_slot)
        if any(isinstance(v, bool) or not isinstance(v, int) for v in values):
            raise InvalidStopIntervalError(f"Stop interval fields must be integers: {values}")
        if not (1 <= self.start_month <= 12 and 1 <= self.end_month <= 12):
            raise InvalidStopIntervalError(f"Invalid month in stop interval: {values}")
        if self.start_day < 1 or self.end_day < 1:
            raise InvalidStopIntervalError(f"Invalid day in stop interval: {values}")
        if self.start_slot < 1 or self.end_slot < 1:
            raise InvalidStopIntervalError(f"Slots are 1-based: {values}")
        try:
            start = _rolled_date(self.start_year, self.start_month, self.start_day)
            end = _rolled_date(self.end_year, self.end_month, self.end_day)
        except (ValueError, OverflowError) as e:
            raise InvalidStopIntervalError(f"Invalid stop interval dates {values}: {e}")
        if (end, self.end_slot) < (start, self.start_slot):
            raise InvalidStopIntervalError(f"Stop interval ends before it starts: {values}")
        object.__setattr__(self, "start_date", start)
        object.__setattr__(self, "end_date", end)

    @property
    def is_empty(self) -> bool:
        return (self.start_date, self.start_slot) == (self.end_date, self.end_slot)

    @property
    def last_covered_date(self) -> Optional[date]:
        """Last calendar date with at least one stopped slot"""
        if self.is_empty:
            return None
        if self.end_slot > 1:
            return self.end_date
        return self.end_date - timedelta(days=1)

    def starts_in(self, year: int, month: int) -> bool:
        return self.start_date.year == year and self.start_date.month == month

    def contains(self, on_date: date, slot: Optional[int] = None) -> bool:
        """Check whether a date (or a specific 1-based slot on it) is stopped"""
        if slot is None:
            last = self.last_covered_date
            return last is not None and self.start_date <= on_date <= last
        point = (on_date, slot)
        return (self.start_date, self.start_slot) <= point < (self.end_date, self.end_slot)

    def overlaps(self, start: date, end: date) -> bool:
        """Check whether any stopped date falls inside [start, end]"""
        last = self.last_covered_date
        if last is None:
            return False
        return self.start_date <= end and start <= last

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": {"year": self.start_year, "month": self.start_month,
                      "day": self.start_day, "slot": self.start_slot},
            "end": {"year": self.end_year, "month": self.end_month,
                    "day": self.end_day, "slot": self.end_slot}
        }

    @classmethod
    def from_dict(cls, data: Union[Dict[str, Any], Sequence[int]]) -> "StopInterval":
        """Build from the nested dict form or the flat eight-integer form"""
        if isinstance(data, dict):
            try:
                start, end = data["start"], data["end"]
                return cls(start["year"], start["month"], start["day"], start["slot"],
                           end["year"], end["month"], end["day"], end["slot"])
            except (KeyError, TypeError) as e:
                raise InvalidStopIntervalError(f"Malformed stop interval {data!r}: {e}")
        if len(data) != 8:
            raise InvalidStopIntervalError(f"Flat stop interval needs 8 values, got {len(data)}")
        return cls(*data)

    def __str__(self) -> str:
        return f"Stop{{{self.start_date}#{self.start_slot} -> {self.end_date}#{self.end_slot}}}"


def load_stops(path: Union[str, Path]) -> List[StopInterval]:
    """
    Load a plant-halt calendar from a JSON file.

    Malformed entries are logged and skipped so that one bad line does not
    hide the rest of the calendar.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    stops = []
    for entry in data.get("stops", []):
        try:
            stops.append(StopInterval.from_dict(entry))
        except InvalidStopIntervalError as e:
            logger.warning(f"Skipping stop interval in {path}: {e}")
    logger.info(f"Loaded {len(stops)} stop intervals from {path}")
    return stops
