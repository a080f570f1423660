"""
Online timing pattern learner.

Keeps a rolling success rate per hour of day as outcomes arrive, next to
the batch analysis of ContextualTimingOptimizer. Each outcome updates
three patterns: the plain hour, the hour for the target app, and the
hour for weekends or weekdays. Rates are exponential moving averages:

    rate = rate * (1 - learning_rate) + observation * learning_rate

with the first observation taken as-is. A pattern is trusted after
three observations.

All patterns live in one JSON blob in the key-value store, written
under an asyncio.Lock.

Usage:
    learner = TimingPatternLearner(store)
    await learner.record_timing_outcome(23, False, "com.example.social", is_weekend=False)
    pattern = await learner.get_timing_pattern(23, target_app="com.example.social")
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass

from jitai.services.preference_store import KeyValueStore

logger = logging.getLogger(__name__)

STATE_KEY = "timing_patterns_v1"
LEARNING_RATE = 0.15
MIN_OBSERVATIONS = 3
MIN_RELIABLE_HOURS = 12  # has_reliable_data


def _now_ms() -> int:
    return int(time.time() * 1000)


def _hour_key(hour: int) -> str:
    return f"hour:{hour}"


def _app_key(target_app: str, hour: int) -> str:
    return f"app:{target_app}:hour:{hour}"


def _day_type_key(is_weekend: bool, hour: int) -> str:
    return f"{'weekend' if is_weekend else 'weekday'}:hour:{hour}"


@dataclass(frozen=True)
class TimingPattern:
    """Learned success rate for one hour in one context."""
    success_rate: float = 0.5
    observations: int = 0
    last_updated_ms: int = 0

    @property
    def is_reliable(self) -> bool:
        return self.observations >= MIN_OBSERVATIONS

    @property
    def effectiveness_level(self) -> str:
        if not self.is_reliable:
            return "Insufficient Data"
        if self.success_rate >= 0.60:
            return "High"
        if self.success_rate >= 0.40:
            return "Moderate"
        return "Low"

    def observe(self, was_successful: bool, learning_rate: float, now_ms: int) -> TimingPattern:
        observation = 1.0 if was_successful else 0.0
        if self.observations == 0:
            rate = observation
        else:
            rate = self.success_rate * (1.0 - learning_rate) + observation * learning_rate
        return TimingPattern(rate, self.observations + 1, now_ms)


class TimingPatternLearner:
    """Exponential-moving-average success rates per hour, app and day type."""

    def __init__(
        self,
        store: KeyValueStore,
        state_key: str = STATE_KEY,
        learning_rate: float = LEARNING_RATE,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        if not 0.0 < learning_rate <= 1.0:
            raise ValueError(f"learning_rate must be in (0, 1], got {learning_rate}")
        self._store = store
        self._state_key = state_key
        self._learning_rate = learning_rate
        self._clock = clock
        self._lock = asyncio.Lock()

    @staticmethod
    def _check_hour(hour: int) -> None:
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be in 0..23, got {hour}")

    async def _load(self) -> dict[str, TimingPattern]:
        blob = await self._store.get(self._state_key)
        if not blob:
            return {}
        try:
            payload = json.loads(blob)
            return {key: TimingPattern(**values) for key, values in payload.items()}
        except (ValueError, TypeError, AttributeError):
            logger.warning("Discarding unreadable timing patterns under %s", self._state_key, exc_info=True)
            return {}

    async def record_timing_outcome(
        self,
        hour: int,
        was_successful: bool,
        target_app: str,
        is_weekend: bool,
    ) -> None:
        """Fold one outcome into the hour, app-hour and day-type patterns."""
        self._check_hour(hour)
        async with self._lock:
            patterns = await self._load()
            now = self._clock()
            for key in (_hour_key(hour), _app_key(target_app, hour), _day_type_key(is_weekend, hour)):
                current = patterns.get(key, TimingPattern())
                patterns[key] = current.observe(was_successful, self._learning_rate, now)
            blob = json.dumps({key: asdict(pattern) for key, pattern in patterns.items()}, sort_keys=True)
            await self._store.set(self._state_key, blob)
        logger.debug("Recorded timing outcome at %02d:00 for %s (success=%s)", hour, target_app, was_successful)

    async def get_timing_pattern(
        self,
        hour: int,
        target_app: str | None = None,
        is_weekend: bool | None = None,
    ) -> TimingPattern | None:
        """
        Most specific reliable pattern for the hour.

        Tries the app-specific pattern, then the weekend/weekday pattern,
        then the plain hourly pattern.

        Returns:
            The pattern, or None while no candidate is reliable yet
        """
        self._check_hour(hour)
        patterns = await self._load()
        candidates = []
        if target_app is not None:
            candidates.append(_app_key(target_app, hour))
        if is_weekend is not None:
            candidates.append(_day_type_key(is_weekend, hour))
        candidates.append(_hour_key(hour))

        for key in candidates:
            pattern = patterns.get(key)
            if pattern is not None and pattern.is_reliable:
                return pattern
        return None

    async def get_effectiveness_summary(self) -> dict[int, float]:
        """Learned success rate of every hour with a reliable pattern."""
        patterns = await self._load()
        summary: dict[int, float] = {}
        for hour in range(24):
            pattern = patterns.get(_hour_key(hour))
            if pattern is not None and pattern.is_reliable:
                summary[hour] = pattern.success_rate
        return summary

    async def has_reliable_data(self) -> bool:
        return len(await self.get_effectiveness_summary()) >= MIN_RELIABLE_HOURS

    async def clear_patterns(self) -> None:
        async with self._lock:
            await self._store.delete(self._state_key)
        logger.info("Cleared learned timing patterns")
