"""
Schedule Engine

Wires the template cache, the shift factory, the rotation calculator and
the plant-halt calendar together behind one query surface.
"""

import logging
from concurrent.futures import Future
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

from .config import EngineSettings
from .events import WorkScheduleEvent, WorkScheduleEventProjector
from .exceptions import InvalidRotationInputError
from .models import HalfTeam, HalfTeamLike, ShiftTemplate, StopInterval, load_stops
from .rotation import RotationCalculator, RotationPattern, load_default_pattern, load_pattern
from .schedule import Day, Month, Shift
from .shift_factory import ShiftFactory
from .store import JsonTemplateStore
from .template_cache import CacheLoadResult, ShiftTemplateCache

logger = logging.getLogger(__name__)


class ScheduleEngine:
    """Query surface for days, months and next shifts"""

    def __init__(self, settings: Optional[EngineSettings] = None,
                 cache: Optional[ShiftTemplateCache] = None,
                 pattern: Optional[RotationPattern] = None,
                 stops: Optional[Sequence[StopInterval]] = None,
                 session=None):
        self.settings = settings or EngineSettings()

        if pattern is None:
            if self.settings.pattern_file:
                pattern = load_pattern(self.settings.pattern_file)
            else:
                pattern = load_default_pattern()
        self.pattern = pattern

        self.cache = cache or ShiftTemplateCache(
            JsonTemplateStore(self.settings.cache_file),
            session=session,
            strict=self.settings.strict_parsing,
            timeout=self.settings.request_timeout,
            max_cache_age=self.settings.max_cache_age
        )
        self.stops: List[StopInterval] = list(stops) if stops is not None else self._load_stops()

        self.shift_factory = ShiftFactory(self.cache)
        self.calculator = RotationCalculator(
            self.pattern,
            self.settings.reference_date or self.pattern.reference_date,
            shift_factory=self.shift_factory
        )
        self.projector = WorkScheduleEventProjector(self.calculator)

    def _load_stops(self) -> List[StopInterval]:
        if not self.settings.show_stops:
            return []
        stops_file = self.settings.resolved_stops_file
        try:
            return load_stops(stops_file)
        except (OSError, ValueError) as e:
            logger.error(f"Could not load stop calendar {stops_file}: {e}")
            return []

    def start(self) -> CacheLoadResult:
        """Populate the template cache, remote first when an endpoint is configured"""
        if self.settings.remote_endpoint:
            result = self.cache.initialize_from_remote(self.settings.remote_endpoint).result()
        else:
            result = self.cache.initialize(self.settings.template_count)
        logger.info(f"Engine started with {result.template_count} templates from "
                    f"{result.source.value if result.source else 'nowhere'}")
        return result

    def get_all_templates(self) -> Tuple[ShiftTemplate, ...]:
        return self.cache.get_all_templates()

    def refresh_templates(self, endpoint: Optional[str] = None) -> "Future[CacheLoadResult]":
        return self.cache.refresh(endpoint or self.settings.remote_endpoint)

    def get_month_for(self, year: int, month: int) -> Month:
        if not 1 <= month <= 12:
            raise InvalidRotationInputError(f"Invalid month: {month}")
        result = Month(year, month).generate_days(self.calculator)
        if self.settings.show_stops and self.stops:
            result.set_stops(self.stops)
        return result

    def get_day_for(self, on_date: date) -> Day:
        """The day as it appears in its month, stops included"""
        return self.get_month_for(on_date.year, on_date.month).day(on_date.day)

    def find_next_shift(self, half_team: HalfTeamLike, from_date: Optional[date] = None,
                        horizon_days: Optional[int] = None) -> Optional[Shift]:
        """First working (non-stopped) shift of a half-team on or after from_date"""
        target = HalfTeam.of(half_team)
        if target not in self.pattern.roster:
            raise InvalidRotationInputError(f"Half-team {target.name} is not in the roster")
        current = from_date or date.today()
        horizon = horizon_days if horizon_days is not None else 2 * self.pattern.cycle_length
        end = current + timedelta(days=horizon)

        month = None
        while current < end:
            if month is None or (month.year, month.month) != (current.year, current.month):
                month = self.get_month_for(current.year, current.month)
            for shift in month.day(current.day).shifts:
                if not shift.is_stop and shift.has_half_team(target):
                    return shift.clone()
            current += timedelta(days=1)
        logger.info(f"No shift for half-team {target.name} within {horizon} days")
        return None

    def events_for_day(self, on_date: date, viewer: Optional[HalfTeamLike] = None,
                       only_relevant: bool = False,
                       include_unassigned: bool = False) -> List[WorkScheduleEvent]:
        return self.projector.events_for_day(self.get_day_for(on_date), viewer, only_relevant,
                                             include_unassigned)

    def close(self):
        self.cache.close()

    def __enter__(self) -> "ScheduleEngine":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
