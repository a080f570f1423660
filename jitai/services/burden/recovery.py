"""
Fatigue recovery.

When a burdened user gets a break (far fewer interventions in the last
24 hours than their 7-day daily average), part of their burden score is
forgiven. Consistently positive recent responses qualify for relief.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from jitai.services.outcome_store import OutcomeStore, read_recent_safely, read_results_safely

logger = logging.getLogger(__name__)

HOUR_MS = 3_600_000


def _now_ms() -> int:
    return int(time.time() * 1000)


class FatigueRecoveryTracker:
    """Recovery credit and burden relief from recent intervention volume."""

    # (max interventions in 24h, min 7-day daily average, credit)
    BREAK_TIERS: tuple[tuple[int, float, float], ...] = (
        (3, 10.0, 0.3),  # significant break
        (5, 8.0, 0.2),   # moderate break
    )
    SMALL_BREAK_RATIO = 0.5
    SMALL_BREAK_CREDIT = 0.1

    RELIEF_WINDOW = 10
    RELIEF_GO_BACK_RATE = 0.7

    def __init__(self, outcome_store: OutcomeStore, clock: Callable[[], int] = _now_ms) -> None:
        self._store = outcome_store
        self._clock = clock

    async def calculate_recovery_credit(self) -> float:
        """Fraction of the burden score to forgive, in {0.0, 0.1, 0.2, 0.3}."""
        now = self._clock()
        week = await read_results_safely(self._store, now - 7 * 24 * HOUR_MS, now)
        last_24h = sum(1 for r in week if r.timestamp >= now - 24 * HOUR_MS)
        avg_daily = len(week) / 7.0
        return self.credit_for(last_24h, avg_daily)

    def credit_for(self, interventions_last_24h: int, avg_daily: float) -> float:
        for max_recent, min_average, credit in self.BREAK_TIERS:
            if interventions_last_24h < max_recent and avg_daily >= min_average:
                return credit
        if interventions_last_24h < avg_daily * self.SMALL_BREAK_RATIO:
            return self.SMALL_BREAK_CREDIT
        return 0.0

    async def should_grant_burden_relief(self) -> bool:
        """True when at least 70% of the last 10 outcomes were GO_BACK."""
        recent = await read_recent_safely(self._store, self.RELIEF_WINDOW)
        if len(recent) < self.RELIEF_WINDOW:
            return False
        go_back_rate = sum(1 for r in recent if r.went_back) / len(recent)
        return go_back_rate >= self.RELIEF_GO_BACK_RATE

    @staticmethod
    def apply_recovery_credit(burden_score: int, recovery_credit: float) -> int:
        """Reduce a score by the truncated credit fraction, never below zero."""
        reduction = int(burden_score * recovery_credit)
        return max(0, burden_score - reduction)
