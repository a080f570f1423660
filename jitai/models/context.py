"""
Snapshot of the situation in which an intervention is being considered.

Built by the caller (session monitor, API layer) and passed read-only to
the content selector and the rate limiter.
"""

from __future__ import annotations

from dataclasses import dataclass

LATE_NIGHT_START_HOUR = 22
LATE_NIGHT_END_HOUR = 5
EARLY_MORNING_HOURS = range(3, 6)  # 03:00-05:59


def is_late_night_hour(hour: int) -> bool:
    return hour >= LATE_NIGHT_START_HOUR or hour <= LATE_NIGHT_END_HOUR


@dataclass(frozen=True)
class InterventionContext:
    """Usage context at the moment of a potential intervention."""

    time_of_day: int  # hour 0-23
    day_of_week: int  # 1 = Monday ... 7 = Sunday
    is_weekend: bool
    target_app: str
    current_session_minutes: int = 0
    session_count_this_bout: int = 1
    last_session_end_time: int | None = None  # epoch ms
    time_since_last_session: int | None = None  # ms
    quick_reopen_attempt: bool = False
    total_usage_today: int = 0  # minutes
    total_usage_yesterday: int = 0  # minutes
    weekly_average: int = 0  # minutes per day
    goal_minutes: int | None = None
    is_over_goal: bool = False
    streak_days: int = 0
    friction_level: int = 0
    days_since_install: int = 0
    best_session_minutes: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.time_of_day <= 23:
            raise ValueError(f"time_of_day must be in [0, 23], got {self.time_of_day}")

    @property
    def is_late_night(self) -> bool:
        return is_late_night_hour(self.time_of_day)

    @property
    def is_early_morning(self) -> bool:
        return self.time_of_day in EARLY_MORNING_HOURS

    @property
    def is_first_session(self) -> bool:
        return self.session_count_this_bout == 1
