"""
Contextual timing optimizer.

Learns, per target app, which hours of the day interventions tend to
work (the user goes back) and which they tend to fail, and turns that
into a recommendation for the current hour: intervene now, or wait for
a better hour.

Analysis reads the last 30 days of outcomes for the app. Hours with
fewer than 5 samples are unreliable and never recommended; with fewer
than 20 samples overall the optimizer makes no timing claims at all.
Hour arithmetic is modular: 23:00 -> 02:00 is a 3 hour forward delay.

Usage:
    optimizer = ContextualTimingOptimizer(outcome_store)
    rec = await optimizer.get_optimal_timing("com.example.social", current_hour=23, is_weekend=False)
    if rec.should_delay:
        schedule_in(rec.recommended_delay_ms)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from jitai.lib.ttl_cache import TTLCache
from jitai.models.enums import TimingConfidence
from jitai.models.intervention_result import InterventionOutcomeRecord
from jitai.services.outcome_store import OutcomeStore, read_results_safely

logger = logging.getLogger(__name__)

HOUR_MS = 3_600_000
DAY_MS = 24 * HOUR_MS


def hours_until(current_hour: int, target_hour: int) -> int:
    """
    Forward distance in hours from current_hour to target_hour, in [1, 24].

    The same hour is a full day away.
    """
    delta = (target_hour - current_hour) % 24
    return delta or 24


def _now_ms() -> int:
    return int(time.time() * 1000)


# ============================================================================
# Dataclass Models
# ============================================================================


@dataclass(frozen=True)
class HourlyStats:
    """Outcome statistics for one hour of the day."""
    hour: int
    sample_size: int
    success_count: int

    @property
    def success_rate(self) -> float:
        return self.success_count / self.sample_size if self.sample_size else 0.0

    @property
    def is_reliable(self) -> bool:
        return self.sample_size >= ContextualTimingOptimizer.MIN_HOUR_SAMPLES


@dataclass(frozen=True)
class TimeWindowStats:
    """Outcome statistics for a named block of hours."""
    name: str
    hours: tuple[int, ...]
    sample_size: int
    success_rate: float

    @property
    def is_reliable(self) -> bool:
        return self.sample_size >= ContextualTimingOptimizer.MIN_WINDOW_SAMPLES


@dataclass(frozen=True)
class TimingAnalysis:
    """Timing patterns for one target app."""
    target_app: str
    total_samples: int
    hourly_stats: dict[int, HourlyStats]
    window_stats: list[TimeWindowStats]
    weekend_success_rate: float
    weekday_success_rate: float
    overall_success_rate: float

    @property
    def has_sufficient_data(self) -> bool:
        return self.total_samples >= ContextualTimingOptimizer.MIN_DATA_POINTS

    def reliable_hours(self) -> list[HourlyStats]:
        return [stats for stats in self.hourly_stats.values() if stats.is_reliable]


@dataclass(frozen=True)
class TimingRecommendation:
    """What to do at the current hour."""
    should_intervene_now: bool
    should_delay: bool
    confidence: TimingConfidence
    reason: str
    recommended_delay_ms: int = 0
    alternative_hours: list[int] = field(default_factory=list)


# Named windows; night wraps past midnight
TIME_WINDOWS: dict[str, tuple[int, ...]] = {
    "Night": (22, 23, 0, 1, 2, 3, 4, 5),
    "Morning": tuple(range(6, 12)),
    "Afternoon": tuple(range(12, 18)),
    "Evening": tuple(range(18, 22)),
}


# ============================================================================
# Service Implementation
# ============================================================================


class ContextualTimingOptimizer:
    """Hour-of-day success analysis and timing recommendations."""

    MIN_DATA_POINTS = 20
    MIN_HOUR_SAMPLES = 5
    MIN_WINDOW_SAMPLES = 10
    HIGH_SUCCESS_RATE = 0.60
    LOW_SUCCESS_RATE = 0.30
    ACCEPTABLE_SUCCESS_RATE = 0.40
    MAX_RANKED_HOURS = 3
    DEFAULT_DELAY_HOURS = 2

    def __init__(
        self,
        outcome_store: OutcomeStore,
        cache_minutes: int = 15,
        lookback_days: int = 30,
        clock: Callable[[], int] = _now_ms,
        cache_clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            outcome_store: Source of intervention outcomes
            cache_minutes: Lifetime of cached recommendations
            lookback_days: Analysis window
            clock: Epoch-millisecond clock used for the analysis window
            cache_clock: Seconds clock used for cache expiry
        """
        self._store = outcome_store
        self._lookback_ms = lookback_days * DAY_MS
        self._clock = clock
        self._cache: TTLCache[tuple[str, int, bool], TimingRecommendation] = TTLCache(
            ttl_seconds=cache_minutes * 60, clock=cache_clock,
        )

    # ------------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------------

    async def get_optimal_timing(
        self,
        target_app: str,
        current_hour: int,
        is_weekend: bool,
        force_refresh: bool = False,
    ) -> TimingRecommendation:
        """
        Recommendation for intervening at current_hour.

        Cached per (target_app, current_hour, is_weekend). force_refresh
        recomputes for this call and replaces only that entry.
        """
        if not 0 <= current_hour <= 23:
            raise ValueError(f"current_hour must be in [0, 23], got {current_hour}")

        async def compute() -> TimingRecommendation:
            analysis = await self.analyze_timing_patterns(target_app)
            return self.recommend(analysis, current_hour)

        return await self._cache.get_or_compute(
            (target_app, current_hour, is_weekend), compute, force_refresh=force_refresh,
        )

    async def analyze_timing_patterns(self, target_app: str) -> TimingAnalysis:
        """Hourly, window and weekday/weekend statistics for the lookback window."""
        now = self._clock()
        records = await read_results_safely(self._store, now - self._lookback_ms, now)
        app_records = [r for r in records if r.target_app == target_app]
        return build_analysis(target_app, app_records)

    def invalidate_cache(self) -> None:
        self._cache.invalidate()

    # ------------------------------------------------------------------------
    # Decision table
    # ------------------------------------------------------------------------

    def recommend(self, analysis: TimingAnalysis, current_hour: int) -> TimingRecommendation:
        """Turn an analysis into a recommendation for current_hour."""
        if not analysis.has_sufficient_data:
            return TimingRecommendation(
                should_intervene_now=True,
                should_delay=False,
                confidence=TimingConfidence.LOW,
                reason=(
                    f"Insufficient data ({analysis.total_samples} samples, "
                    f"need {self.MIN_DATA_POINTS}), no timing preference"
                ),
            )

        best_hours = self.best_hours(analysis, current_hour)
        alternatives = [h for h in best_hours if h != current_hour][: self.MAX_RANKED_HOURS]
        current = analysis.hourly_stats.get(current_hour)

        if current is None or not current.is_reliable:
            sample_size = current.sample_size if current else 0
            return TimingRecommendation(
                should_intervene_now=True,
                should_delay=False,
                confidence=TimingConfidence.LOW,
                reason=f"Only {sample_size} samples at {current_hour}:00, timing unknown",
                alternative_hours=alternatives,
            )

        if current_hour in best_hours:
            return TimingRecommendation(
                should_intervene_now=True,
                should_delay=False,
                confidence=TimingConfidence.HIGH,
                reason=f"{current_hour}:00 is a high-success hour ({current.success_rate:.0%})",
                alternative_hours=alternatives,
            )

        if current_hour in self.worst_hours(analysis, current_hour):
            target = self._next_better_hour(analysis, current, best_hours)
            delay_hours = hours_until(current_hour, target) if target is not None else self.DEFAULT_DELAY_HOURS
            return TimingRecommendation(
                should_intervene_now=False,
                should_delay=True,
                confidence=TimingConfidence.HIGH,
                reason=(
                    f"{current_hour}:00 is a low-success hour ({current.success_rate:.0%}), "
                    f"wait {delay_hours}h"
                ),
                recommended_delay_ms=delay_hours * HOUR_MS,
                alternative_hours=alternatives,
            )

        if current.success_rate >= self.ACCEPTABLE_SUCCESS_RATE:
            return TimingRecommendation(
                should_intervene_now=True,
                should_delay=False,
                confidence=TimingConfidence.MEDIUM,
                reason=f"{current_hour}:00 has acceptable success ({current.success_rate:.0%})",
                alternative_hours=alternatives[:2],
            )

        target = self._next_better_hour(analysis, current, best_hours)
        delay_ms = hours_until(current_hour, target) * HOUR_MS if target is not None else 0
        return TimingRecommendation(
            should_intervene_now=True,
            should_delay=False,
            confidence=TimingConfidence.MEDIUM,
            reason=(
                f"{current_hour}:00 has below-average success ({current.success_rate:.0%}), "
                "a later hour may work better"
            ),
            recommended_delay_ms=delay_ms,
            alternative_hours=alternatives,
        )

    def best_hours(self, analysis: TimingAnalysis, current_hour: int) -> list[int]:
        """Reliable high-success hours, best first; ties go to the sooner hour."""
        ranked = sorted(
            (s for s in analysis.reliable_hours() if s.success_rate >= self.HIGH_SUCCESS_RATE),
            key=lambda s: (-s.success_rate, hours_until(current_hour, s.hour)),
        )
        return [s.hour for s in ranked[: self.MAX_RANKED_HOURS]]

    def worst_hours(self, analysis: TimingAnalysis, current_hour: int) -> list[int]:
        """Reliable low-success hours, worst first; ties go to the sooner hour."""
        ranked = sorted(
            (s for s in analysis.reliable_hours() if s.success_rate <= self.LOW_SUCCESS_RATE),
            key=lambda s: (s.success_rate, hours_until(current_hour, s.hour)),
        )
        return [s.hour for s in ranked[: self.MAX_RANKED_HOURS]]

    def _next_better_hour(
        self,
        analysis: TimingAnalysis,
        current: HourlyStats,
        best_hours: Sequence[int],
    ) -> int | None:
        """Nearest forward best hour, else the nearest reliable hour that beats the current one."""
        candidates = [h for h in best_hours if h != current.hour]
        if not candidates:
            candidates = [
                s.hour for s in analysis.reliable_hours()
                if s.hour != current.hour and s.success_rate > current.success_rate
            ]
        if not candidates:
            return None
        return min(candidates, key=lambda h: hours_until(current.hour, h))


# ============================================================================
# Analysis helpers
# ============================================================================


def _success_rate(records: Sequence[InterventionOutcomeRecord]) -> float:
    if not records:
        return 0.0
    return sum(1 for r in records if r.went_back) / len(records)


def build_analysis(target_app: str, records: Sequence[InterventionOutcomeRecord]) -> TimingAnalysis:
    """Aggregate outcome records for one app into a TimingAnalysis."""
    samples: dict[int, int] = {}
    successes: dict[int, int] = {}
    for record in records:
        samples[record.hour_of_day] = samples.get(record.hour_of_day, 0) + 1
        if record.went_back:
            successes[record.hour_of_day] = successes.get(record.hour_of_day, 0) + 1

    hourly = {
        hour: HourlyStats(hour=hour, sample_size=count, success_count=successes.get(hour, 0))
        for hour, count in samples.items()
    }

    windows = []
    for name, hours in TIME_WINDOWS.items():
        window_records = [r for r in records if r.hour_of_day in hours]
        windows.append(
            TimeWindowStats(
                name=name,
                hours=hours,
                sample_size=len(window_records),
                success_rate=_success_rate(window_records),
            )
        )

    return TimingAnalysis(
        target_app=target_app,
        total_samples=len(records),
        hourly_stats=hourly,
        window_stats=windows,
        weekend_success_rate=_success_rate([r for r in records if r.is_weekend]),
        weekday_success_rate=_success_rate([r for r in records if not r.is_weekend]),
        overall_success_rate=_success_rate(records),
    )
