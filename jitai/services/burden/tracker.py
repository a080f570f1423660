"""
Intervention burden tracker.

Computes BurdenMetrics from the outcome store, caches the current
snapshot for ten minutes, and combines it with fatigue recovery and
trend monitoring.

Usage:
    tracker = InterventionBurdenTracker(outcome_store, recovery, trend_monitor)
    assessment = await tracker.assess_burden()
    if assessment.reliable and assessment.level is BurdenLevel.CRITICAL:
        ...
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from jitai.lib.ttl_cache import TTLCache
from jitai.models.enums import BurdenLevel, Trend, UserChoice, UserFeedback
from jitai.models.intervention_result import InterventionOutcomeRecord
from jitai.services.burden.metrics import COOLDOWN_MULTIPLIERS, BurdenMetrics, level_for_score
from jitai.services.burden.recovery import FatigueRecoveryTracker
from jitai.services.burden.trend import BurdenTrend, BurdenTrendMonitor, TrendDirection
from jitai.services.outcome_store import OutcomeStore, read_results_safely

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

# Engagement trend: first half vs second half GO_BACK rate
ENGAGEMENT_MIN_SAMPLES = 20
ENGAGEMENT_DELTA = 0.10

# Effectiveness trend: regression slope over the most recent outcomes
EFFECTIVENESS_MIN_SAMPLES = 10
EFFECTIVENESS_WINDOW = 30
EFFECTIVENESS_SLOPE = 0.02

RECENT_GO_BACK_WINDOW = 20
DEFAULT_SPACING_MINUTES = 30.0


def _now_ms() -> int:
    return int(time.time() * 1000)


def _go_back_rate(records: Sequence[InterventionOutcomeRecord]) -> float:
    if not records:
        return 0.0
    return sum(1 for r in records if r.went_back) / len(records)


# ============================================================================
# Metric computation
# ============================================================================


def engagement_trend(records: Sequence[InterventionOutcomeRecord]) -> Trend:
    """Compare GO_BACK rate of the older half with the newer half (oldest-first input)."""
    if len(records) < ENGAGEMENT_MIN_SAMPLES:
        return Trend.STABLE
    midpoint = len(records) // 2
    difference = _go_back_rate(records[midpoint:]) - _go_back_rate(records[:midpoint])
    if difference > ENGAGEMENT_DELTA:
        return Trend.INCREASING
    if difference < -ENGAGEMENT_DELTA:
        return Trend.DECLINING
    return Trend.STABLE


def effectiveness_trend(records: Sequence[InterventionOutcomeRecord]) -> Trend:
    """Least-squares slope of GO_BACK (1/0) over the last 30 outcomes."""
    if len(records) < EFFECTIVENESS_MIN_SAMPLES:
        return Trend.STABLE
    window = records[-EFFECTIVENESS_WINDOW:]
    n = len(window)
    xs = range(n)
    ys = [1.0 if r.went_back else 0.0 for r in window]
    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_x2 = sum(x * x for x in xs)
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)
    if slope > EFFECTIVENESS_SLOPE:
        return Trend.INCREASING
    if slope < -EFFECTIVENESS_SLOPE:
        return Trend.DECLINING
    return Trend.STABLE


def compute_burden_metrics(records: Sequence[InterventionOutcomeRecord], now_ms: int) -> BurdenMetrics:
    """Derive BurdenMetrics from outcome records; defaults when there are none."""
    if not records:
        return BurdenMetrics(sample_size=0, calculated_at=now_ms)

    ordered = sorted(records, key=lambda r: r.timestamp)
    size = len(ordered)

    helpful = sum(1 for r in ordered if r.user_feedback is UserFeedback.HELPFUL)
    disruptive = sum(1 for r in ordered if r.user_feedback is UserFeedback.DISRUPTIVE)
    total_feedback = helpful + disruptive

    spacings = [
        (later.timestamp - earlier.timestamp) / MINUTE_MS
        for earlier, later in zip(ordered, ordered[1:])
    ]

    last_week = [r for r in ordered if r.timestamp >= now_ms - 7 * DAY_MS]

    return BurdenMetrics(
        avg_response_time_ms=sum(r.time_to_decision_ms for r in ordered) / size,
        dismiss_rate=sum(1 for r in ordered if r.user_choice is UserChoice.DISMISS) / size,
        timeout_rate=sum(1 for r in ordered if r.user_choice is UserChoice.TIMEOUT) / size,
        snooze_frequency=sum(1 for r in ordered if r.was_snoozed),
        recent_go_back_rate=_go_back_rate(ordered[-RECENT_GO_BACK_WINDOW:]),
        engagement_trend=engagement_trend(ordered),
        helpful_feedback_count=helpful,
        disruptive_feedback_count=disruptive,
        helpfulness_ratio=helpful / total_feedback if total_feedback else 0.5,
        effectiveness_rolling_7d=_go_back_rate(last_week),
        effectiveness_trend=effectiveness_trend(ordered),
        interventions_last_24h=sum(1 for r in ordered if r.timestamp >= now_ms - DAY_MS),
        interventions_last_7d=len(last_week),
        avg_intervention_spacing_minutes=sum(spacings) / len(spacings) if spacings else DEFAULT_SPACING_MINUTES,
        min_intervention_spacing_minutes=min(spacings) if spacings else DEFAULT_SPACING_MINUTES,
        sample_size=size,
        calculated_at=now_ms,
    )


# ============================================================================
# Tracker
# ============================================================================


@dataclass(frozen=True)
class BurdenAssessment:
    """Current burden with fatigue recovery applied."""
    metrics: BurdenMetrics
    raw_score: int
    recovery_credit: float
    adjusted_score: int
    level: BurdenLevel  # from adjusted_score
    reliable: bool

    @property
    def is_critical(self) -> bool:
        return self.reliable and self.level is BurdenLevel.CRITICAL

    @property
    def cooldown_multiplier(self) -> float:
        """Cooldown scale for the adjusted level; 1.0 while data is unreliable."""
        if not self.reliable:
            return 1.0
        return COOLDOWN_MULTIPLIERS[self.level]


class InterventionBurdenTracker:
    """Burden metrics over recent outcomes, with recovery and trend hooks."""

    CACHE_KEY = "current"

    def __init__(
        self,
        outcome_store: OutcomeStore,
        recovery_tracker: FatigueRecoveryTracker | None = None,
        trend_monitor: BurdenTrendMonitor | None = None,
        cache_minutes: int = 10,
        lookback_days: int = 7,
        clock: Callable[[], int] = _now_ms,
        cache_clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            outcome_store: Source of intervention outcomes
            recovery_tracker: Applies break credit; None disables recovery
            trend_monitor: Score history; None reports every trend as stable
            cache_minutes: Lifetime of the cached current snapshot
            lookback_days: Window of the current snapshot
            clock: Epoch-millisecond clock for analysis windows
            cache_clock: Seconds clock for cache expiry
        """
        self._store = outcome_store
        self._recovery = recovery_tracker
        self._trend_monitor = trend_monitor
        self._lookback_ms = lookback_days * DAY_MS
        self._clock = clock
        self._cache: TTLCache[str, BurdenMetrics] = TTLCache(cache_minutes * 60, clock=cache_clock)

    async def calculate_current_burden_metrics(self, force_refresh: bool = False) -> BurdenMetrics:
        """Metrics over the lookback window, cached for the configured lifetime."""

        async def compute() -> BurdenMetrics:
            now = self._clock()
            return await self.calculate_burden_metrics(now - self._lookback_ms, now)

        return await self._cache.get_or_compute(self.CACHE_KEY, compute, force_refresh=force_refresh)

    async def calculate_burden_metrics(self, start_ms: int, end_ms: int | None = None) -> BurdenMetrics:
        """Uncached metrics over an explicit window."""
        end = self._clock() if end_ms is None else end_ms
        records = await read_results_safely(self._store, start_ms, end)
        return compute_burden_metrics(records, end)

    def invalidate_cache(self) -> None:
        self._cache.invalidate()

    async def is_high_burden(self) -> bool:
        metrics = await self.calculate_current_burden_metrics()
        return metrics.burden_level() in (BurdenLevel.HIGH, BurdenLevel.CRITICAL)

    async def get_recommended_cooldown_adjustment(self) -> float:
        """Cooldown multiplier for the current burden; 1.0 while data is unreliable."""
        metrics = await self.calculate_current_burden_metrics()
        if not metrics.is_reliable():
            return 1.0
        return metrics.recommended_cooldown_multiplier()

    async def get_burden_summary(self) -> str:
        metrics = await self.calculate_current_burden_metrics()
        return metrics.summary()

    async def assess_burden(self) -> BurdenAssessment:
        """Current metrics with recovery credit applied to the score."""
        metrics = await self.calculate_current_burden_metrics()
        raw_score = metrics.burden_score()
        credit = 0.0
        adjusted = raw_score
        if self._recovery is not None and raw_score > 0:
            credit = await self._recovery.calculate_recovery_credit()
            adjusted = self._recovery.apply_recovery_credit(raw_score, credit)
        return BurdenAssessment(
            metrics=metrics,
            raw_score=raw_score,
            recovery_credit=credit,
            adjusted_score=adjusted,
            level=level_for_score(adjusted),
            reliable=metrics.is_reliable(),
        )

    async def calculate_burden_with_recovery(self) -> int:
        return (await self.assess_burden()).adjusted_score

    async def get_burden_trend(self) -> BurdenTrend:
        """Analyse the current adjusted score against history, then record it."""
        score = await self.calculate_burden_with_recovery()
        if self._trend_monitor is None:
            return BurdenTrend(score, score, TrendDirection.STABLE, 0.0, False)
        trend = await self._trend_monitor.analyze_trend(score)
        await self._trend_monitor.record_burden_score(score)
        return trend

    async def should_show_burden_warning(self) -> bool:
        trend = await self.get_burden_trend()
        if self._trend_monitor is None:
            return False
        return self._trend_monitor.should_show_burden_warning(trend)

    async def should_grant_burden_relief(self) -> bool:
        if self._recovery is None:
            return False
        return await self._recovery.should_grant_burden_relief()
