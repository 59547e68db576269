"""
Reporting Module for the Shift Rotation Engine

Summarises generated months as pandas DataFrames: a day-by-day rotation
table and per half-team workload statistics.
"""

import logging
from typing import Dict, Iterable, List

import pandas as pd

from .schedule import Month

logger = logging.getLogger(__name__)

STATISTICS_COLUMNS = ["half_team", "shifts_worked", "hours_worked", "stop_shifts", "rest_days"]


def month_frame(month: Month) -> pd.DataFrame:
    """One row per day with the crew of every slot"""
    data = []
    for day in month.days:
        row = {
            "date": day.date.isoformat(),
            "weekday": day.date.strftime("%A")
        }
        for shift in day.shifts:
            team = shift.team
            row[shift.template.name] = team.name if team else shift.crew_label()
        for shift in day.shifts:
            row[f"stop_{shift.template.name}"] = shift.is_stop
        row["off_work"] = "".join(ht.name for ht in day.off_work_half_teams)
        data.append(row)

    return pd.DataFrame(data)


def crew_statistics(months: Iterable[Month]) -> pd.DataFrame:
    """
    Workload per half-team over the given months.

    Stopped shifts count as stop shifts, not as worked shifts. A rest day is
    a day on which the half-team works no (non-stopped) slot.
    """
    stats: Dict[str, Dict[str, float]] = {}
    template_names: List[str] = []

    def entry(name: str) -> Dict[str, float]:
        if name not in stats:
            stats[name] = {"half_team": name, "shifts_worked": 0, "hours_worked": 0.0,
                           "stop_shifts": 0, "rest_days": 0}
        return stats[name]

    for month in months:
        for day in month.days:
            worked_today = set()
            for shift in day.shifts:
                template = shift.template
                if template.name not in template_names:
                    template_names.append(template.name)
                for half_team in shift.half_teams:
                    row = entry(half_team.name)
                    if shift.is_stop:
                        row["stop_shifts"] += 1
                        continue
                    if template.is_rest:
                        continue
                    row["shifts_worked"] += 1
                    row["hours_worked"] += template.total_minutes / 60
                    row[template.name] = row.get(template.name, 0) + 1
                    worked_today.add(half_team.name)
            for half_team in day.roster:
                row = entry(half_team.name)
                if half_team.name not in worked_today:
                    row["rest_days"] += 1

    columns = STATISTICS_COLUMNS + template_names
    if not stats:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(sorted(stats.values(), key=lambda row: row["half_team"]), columns=columns)
    if template_names:
        df[template_names] = df[template_names].fillna(0).astype(int)
    logger.debug(f"Computed statistics for {len(df)} half-teams")
    return df
