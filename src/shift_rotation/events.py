"""
Work Schedule Events

Read-only projections of shifts into calendar-style events, ready to be
handed to whatever renders or exports the schedule.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from .models import HalfTeam, HalfTeamLike, ShiftTemplate, Team
from .schedule import Day, Shift

logger = logging.getLogger(__name__)

GENERATOR_NAME = "ShiftRotationEngine"


@dataclass(frozen=True)
class WorkScheduleEvent:
    """One shift occurrence as seen by a calendar"""
    source_id: str
    date: date
    start_time: time
    end_time: time
    template: ShiftTemplate
    team: Optional[Team]
    is_stop: bool
    title: str
    description: str
    color: str
    pattern_name: str
    day_in_cycle: int
    days_from_reference: int
    viewer: Optional[HalfTeam] = None
    is_user_relevant: bool = False
    generated_by: str = GENERATOR_NAME
    generated_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def crosses_midnight(self) -> bool:
        return self.template.crosses_midnight

    @property
    def start_datetime(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def end_datetime(self) -> datetime:
        end_date = self.date + timedelta(days=1) if self.crosses_midnight else self.date
        return datetime.combine(end_date, self.end_time)

    @property
    def duration_minutes(self) -> int:
        return int((self.end_datetime - self.start_datetime).total_seconds() // 60)

    @property
    def has_team_assignment(self) -> bool:
        return self.team is not None


class WorkScheduleEventProjector:
    def __init__(self, calculator, generated_by: str = GENERATOR_NAME):
        self.calculator = calculator
        self.generated_by = generated_by

    def project(self, for_date: date, shift: Shift, team: Optional[Team] = None,
                viewer: Optional[HalfTeamLike] = None) -> WorkScheduleEvent:
        template = shift.template
        team = team or shift.team
        viewer_ht = HalfTeam.of(viewer) if viewer is not None else None

        time_line = f"Time: {template.formatted_start_time} - {template.formatted_end_time}"
        if template.crosses_midnight:
            time_line += " (+1 day)"
        lines = [time_line]
        if team is not None:
            lines.append(f"Team: {team.name}")
        if shift.is_stop:
            lines.append("Plant stop")

        position = self.calculator.cycle_position_for(for_date)
        team_code = team.name if team else "NONE"
        return WorkScheduleEvent(
            source_id=f"WS_{for_date.isoformat()}_{team_code}_{template.name.replace(' ', '')}_{position}",
            date=for_date,
            start_time=template.start_time,
            end_time=template.end_time,
            template=template,
            team=team,
            is_stop=shift.is_stop,
            title=f"{template.name} - Team {team.name}" if team else template.name,
            description="\n".join(lines),
            color=template.color,
            pattern_name=self.calculator.pattern.name,
            day_in_cycle=position,
            days_from_reference=self.calculator.days_since_reference(for_date),
            viewer=viewer_ht,
            is_user_relevant=bool(viewer_ht and team and team.contains(viewer_ht)),
            generated_by=self.generated_by
        )

    def events_for_day(self, day: Day, viewer: Optional[HalfTeamLike] = None,
                       only_relevant: bool = False,
                       include_unassigned: bool = False) -> List[WorkScheduleEvent]:
        """
        Events for the shifts of a day.

        Shifts without a crew are left out unless `include_unassigned` is
        set; their events have no team and `has_team_assignment` False.
        """
        events = []
        for shift in day.shifts:
            if shift.team is None and not include_unassigned:
                continue
            event = self.project(day.date, shift, viewer=viewer)
            if only_relevant and not event.is_user_relevant:
                continue
            events.append(event)
        logger.debug(f"Projected {len(events)} events for {day.date}")
        return events
