"""
Burden trend monitoring.

Keeps the last few burden scores in the key-value store and compares a
new score against them to detect rising burden before it turns
critical.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import StrEnum

from jitai.services.preference_store import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "burden_score_history"
HISTORY_SIZE = 7


class TrendDirection(StrEnum):
    INCREASING = "INCREASING"
    STABLE = "STABLE"
    DECREASING = "DECREASING"


@dataclass(frozen=True)
class BurdenTrend:
    """A burden score compared with the previous one."""
    current_score: int
    previous_score: int
    direction: TrendDirection
    change_percentage: float
    is_escalating: bool  # three consecutive increases ending at current_score


class BurdenTrendMonitor:
    """Rolling burden score history and trend analysis."""

    CHANGE_THRESHOLD = 2
    ESCALATION_RUN = 3
    ESCALATION_WARNING_SCORE = 10
    JUMP_WARNING_PERCENT = 50.0
    JUMP_WARNING_SCORE = 8

    def __init__(
        self,
        store: KeyValueStore,
        history_key: str = HISTORY_KEY,
        history_size: int = HISTORY_SIZE,
    ) -> None:
        self._store = store
        self._history_key = history_key
        self._history_size = history_size

    async def get_history(self) -> list[int]:
        """Stored scores, oldest first. Unreadable history is treated as empty."""
        raw = await self._store.get(self._history_key)
        if not raw:
            return []
        try:
            values = json.loads(raw)
            return [int(v) for v in values]
        except (ValueError, TypeError):
            logger.warning("Discarding unreadable burden history under %s", self._history_key)
            return []

    async def record_burden_score(self, score: int) -> None:
        history = await self.get_history()
        history.append(score)
        await self._store.set(self._history_key, json.dumps(history[-self._history_size:]))

    async def analyze_trend(self, current_score: int) -> BurdenTrend:
        """Compare current_score with the most recently recorded score."""
        history = await self.get_history()
        if not history:
            return BurdenTrend(
                current_score=current_score,
                previous_score=current_score,
                direction=TrendDirection.STABLE,
                change_percentage=0.0,
                is_escalating=False,
            )

        previous = history[-1]
        change = current_score - previous
        change_percentage = change / previous * 100.0 if previous > 0 else 0.0

        if change > self.CHANGE_THRESHOLD:
            direction = TrendDirection.INCREASING
        elif change < -self.CHANGE_THRESHOLD:
            direction = TrendDirection.DECREASING
        else:
            direction = TrendDirection.STABLE

        run = [*history[-(self.ESCALATION_RUN - 1):], current_score]
        is_escalating = len(run) >= self.ESCALATION_RUN and all(b > a for a, b in zip(run, run[1:]))

        return BurdenTrend(
            current_score=current_score,
            previous_score=previous,
            direction=direction,
            change_percentage=change_percentage,
            is_escalating=is_escalating,
        )

    def should_show_burden_warning(self, trend: BurdenTrend) -> bool:
        if trend.is_escalating and trend.current_score >= self.ESCALATION_WARNING_SCORE:
            return True
        return (
            trend.change_percentage > self.JUMP_WARNING_PERCENT
            and trend.current_score >= self.JUMP_WARNING_SCORE
        )
