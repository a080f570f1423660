"""
Tests for ContextualTimingOptimizer.

Covers:
- Modular hour distance
- Analysis: hourly, window and weekend/weekday statistics, app and lookback filtering
- Decision table for best, worst, acceptable, below-average and unknown hours
- Delays across midnight; unreliable hours never offered as alternatives
- Recommendation cache (TTL, force refresh, weekend key, invalidation)
- Storage failures degrade to "insufficient data"
"""

import pytest

from jitai.lib.exceptions import StorageError
from jitai.models.enums import TimingConfidence, UserChoice
from jitai.services.timing_optimizer import (
    HOUR_MS,
    ContextualTimingOptimizer,
    build_analysis,
    hours_until,
)

APP = "com.example.social"


async def _add(store, make_record, hour, total, successes, **overrides) -> None:
    for i in range(total):
        choice = UserChoice.GO_BACK if i < successes else UserChoice.CONTINUE
        await store.add_result(make_record(choice, minutes_ago=60 + i, hour_of_day=hour, **overrides))


@pytest.fixture
def optimizer(outcome_store, clock, cache_clock) -> ContextualTimingOptimizer:
    return ContextualTimingOptimizer(outcome_store, clock=clock, cache_clock=cache_clock)


@pytest.fixture
async def patterned_store(outcome_store, make_record):
    """31 samples: 9:00 great, 23:00 bad, 14:00 acceptable, 18:00 below average."""
    await _add(outcome_store, make_record, hour=9, total=10, successes=8)
    await _add(outcome_store, make_record, hour=23, total=10, successes=1)
    await _add(outcome_store, make_record, hour=14, total=5, successes=2)
    await _add(outcome_store, make_record, hour=18, total=6, successes=2)
    return outcome_store


# =============================================================================
# Hour arithmetic
# =============================================================================


@pytest.mark.parametrize(
    ("current", "target", "expected"),
    [(23, 2, 3), (2, 23, 21), (10, 11, 1), (5, 5, 24), (0, 23, 23)],
)
def test_hours_until_wraps_midnight(current, target, expected) -> None:
    assert hours_until(current, target) == expected


# =============================================================================
# Analysis
# =============================================================================


class TestAnalysis:
    @pytest.mark.asyncio
    async def test_hourly_stats(self, optimizer, patterned_store) -> None:
        analysis = await optimizer.analyze_timing_patterns(APP)
        assert analysis.total_samples == 31
        assert analysis.has_sufficient_data
        nine = analysis.hourly_stats[9]
        assert nine.sample_size == 10
        assert nine.success_rate == pytest.approx(0.8)
        assert nine.is_reliable
        assert {s.hour for s in analysis.reliable_hours()} == {9, 23, 14, 18}

    @pytest.mark.asyncio
    async def test_window_stats(self, optimizer, patterned_store) -> None:
        analysis = await optimizer.analyze_timing_patterns(APP)
        windows = {w.name: w for w in analysis.window_stats}
        assert windows["Morning"].sample_size == 10
        assert windows["Morning"].success_rate == pytest.approx(0.8)
        assert windows["Night"].sample_size == 10
        assert windows["Night"].is_reliable
        assert windows["Afternoon"].sample_size == 5
        assert not windows["Afternoon"].is_reliable

    def test_weekend_and_weekday_rates(self, make_record) -> None:
        records = [
            make_record(UserChoice.GO_BACK, is_weekend=True),
            make_record(UserChoice.DISMISS, is_weekend=True),
            make_record(UserChoice.GO_BACK),
        ]
        analysis = build_analysis(APP, records)
        assert analysis.weekend_success_rate == pytest.approx(0.5)
        assert analysis.weekday_success_rate == pytest.approx(1.0)
        assert analysis.overall_success_rate == pytest.approx(2 / 3)

    def test_only_go_back_counts_as_success(self, make_record) -> None:
        records = [make_record(UserChoice.CONTINUE, user_feedback="HELPFUL")]
        assert build_analysis(APP, records).hourly_stats[14].success_count == 0

    @pytest.mark.asyncio
    async def test_filters_other_apps_and_old_records(self, optimizer, outcome_store, make_record) -> None:
        await outcome_store.add_result(make_record(target_app="com.example.video"))
        await outcome_store.add_result(make_record(minutes_ago=31 * 24 * 60))
        await outcome_store.add_result(make_record())
        analysis = await optimizer.analyze_timing_patterns(APP)
        assert analysis.total_samples == 1


# =============================================================================
# Decision table
# =============================================================================


class TestRecommendations:
    @pytest.mark.asyncio
    async def test_insufficient_data_allows_with_low_confidence(self, optimizer, outcome_store, make_record) -> None:
        await _add(outcome_store, make_record, hour=23, total=10, successes=0)
        rec = await optimizer.get_optimal_timing(APP, 23, is_weekend=False)
        assert rec.should_intervene_now
        assert not rec.should_delay
        assert rec.confidence is TimingConfidence.LOW
        assert rec.alternative_hours == []
        assert rec.reason.startswith("Insufficient data")

    @pytest.mark.asyncio
    async def test_best_hour_allows_with_high_confidence(self, optimizer, patterned_store) -> None:
        rec = await optimizer.get_optimal_timing(APP, 9, is_weekend=False)
        assert rec.should_intervene_now
        assert rec.confidence is TimingConfidence.HIGH
        assert 9 not in rec.alternative_hours

    @pytest.mark.asyncio
    async def test_worst_hour_delays_to_next_best(self, optimizer, patterned_store) -> None:
        rec = await optimizer.get_optimal_timing(APP, 23, is_weekend=False)
        assert not rec.should_intervene_now
        assert rec.should_delay
        assert rec.confidence is TimingConfidence.HIGH
        assert rec.recommended_delay_ms == 10 * HOUR_MS  # 23:00 -> 09:00
        assert rec.alternative_hours == [9]

    @pytest.mark.asyncio
    async def test_acceptable_hour(self, optimizer, patterned_store) -> None:
        rec = await optimizer.get_optimal_timing(APP, 14, is_weekend=False)
        assert rec.should_intervene_now
        assert rec.confidence is TimingConfidence.MEDIUM
        assert rec.recommended_delay_ms == 0
        assert len(rec.alternative_hours) <= 2

    @pytest.mark.asyncio
    async def test_below_average_hour_suggests_delay_but_allows(self, optimizer, patterned_store) -> None:
        rec = await optimizer.get_optimal_timing(APP, 18, is_weekend=False)
        assert rec.should_intervene_now
        assert not rec.should_delay
        assert rec.confidence is TimingConfidence.MEDIUM
        assert rec.recommended_delay_ms == 15 * HOUR_MS  # 18:00 -> 09:00

    @pytest.mark.asyncio
    async def test_unknown_hour_allows_with_low_confidence(self, optimizer, patterned_store) -> None:
        rec = await optimizer.get_optimal_timing(APP, 3, is_weekend=False)
        assert rec.should_intervene_now
        assert rec.confidence is TimingConfidence.LOW
        assert rec.alternative_hours == [9]

    @pytest.mark.asyncio
    async def test_worst_hour_without_better_hour_uses_default_delay(
        self, optimizer, outcome_store, make_record,
    ) -> None:
        await _add(outcome_store, make_record, hour=22, total=20, successes=2)
        rec = await optimizer.get_optimal_timing(APP, 22, is_weekend=False)
        assert rec.should_delay
        assert rec.recommended_delay_ms == ContextualTimingOptimizer.DEFAULT_DELAY_HOURS * HOUR_MS

    @pytest.mark.asyncio
    async def test_delay_wraps_past_midnight(self, optimizer, outcome_store, make_record) -> None:
        await _add(outcome_store, make_record, hour=23, total=10, successes=1)
        await _add(outcome_store, make_record, hour=2, total=10, successes=8)
        rec = await optimizer.get_optimal_timing(APP, 23, is_weekend=False)
        assert rec.should_delay
        assert rec.confidence is TimingConfidence.HIGH
        assert rec.recommended_delay_ms == 3 * HOUR_MS
        assert rec.alternative_hours == [2]

    @pytest.mark.asyncio
    async def test_unreliable_hour_never_an_alternative(self, optimizer, outcome_store, make_record) -> None:
        await _add(outcome_store, make_record, hour=23, total=10, successes=1)
        await _add(outcome_store, make_record, hour=2, total=10, successes=8)
        await _add(outcome_store, make_record, hour=12, total=4, successes=4)
        for hour in (23, 12, 5):
            rec = await optimizer.get_optimal_timing(APP, hour, is_weekend=False)
            assert 12 not in rec.alternative_hours
            assert hour not in rec.alternative_hours
        worst = await optimizer.get_optimal_timing(APP, 23, is_weekend=False)
        assert worst.recommended_delay_ms == 3 * HOUR_MS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("hour", [-1, 24])
    async def test_invalid_hour_raises(self, optimizer, hour) -> None:
        with pytest.raises(ValueError):
            await optimizer.get_optimal_timing(APP, hour, is_weekend=False)


# =============================================================================
# Cache
# =============================================================================


class TestCache:
    @pytest.mark.asyncio
    async def test_cached_until_ttl(self, optimizer, outcome_store, make_record, cache_clock) -> None:
        first = await optimizer.get_optimal_timing(APP, 23, is_weekend=False)
        assert first.confidence is TimingConfidence.LOW

        await _add(outcome_store, make_record, hour=23, total=25, successes=0)
        assert await optimizer.get_optimal_timing(APP, 23, is_weekend=False) is first

        cache_clock.advance(15 * 60)
        refreshed = await optimizer.get_optimal_timing(APP, 23, is_weekend=False)
        assert refreshed.should_delay

    @pytest.mark.asyncio
    async def test_force_refresh_recomputes(self, optimizer, outcome_store, make_record) -> None:
        await optimizer.get_optimal_timing(APP, 23, is_weekend=False)
        await _add(outcome_store, make_record, hour=23, total=25, successes=0)
        rec = await optimizer.get_optimal_timing(APP, 23, is_weekend=False, force_refresh=True)
        assert rec.should_delay

    @pytest.mark.asyncio
    async def test_weekend_is_part_of_cache_key(self, optimizer, outcome_store, make_record) -> None:
        await optimizer.get_optimal_timing(APP, 23, is_weekend=False)
        await _add(outcome_store, make_record, hour=23, total=25, successes=0)
        weekend = await optimizer.get_optimal_timing(APP, 23, is_weekend=True)
        assert weekend.should_delay

    @pytest.mark.asyncio
    async def test_invalidate_cache(self, optimizer, outcome_store, make_record) -> None:
        await optimizer.get_optimal_timing(APP, 23, is_weekend=False)
        await _add(outcome_store, make_record, hour=23, total=25, successes=0)
        optimizer.invalidate_cache()
        assert (await optimizer.get_optimal_timing(APP, 23, is_weekend=False)).should_delay


# =============================================================================
# Storage failures
# =============================================================================


class FailingStore:
    async def get_results_in_range(self, start_ms, end_ms):
        raise StorageError("database unavailable")

    async def get_recent_results(self, limit):
        raise StorageError("database unavailable")

    async def add_result(self, record):
        raise StorageError("database unavailable")


@pytest.mark.asyncio
async def test_storage_failure_degrades_to_no_data(clock, cache_clock) -> None:
    optimizer = ContextualTimingOptimizer(FailingStore(), clock=clock, cache_clock=cache_clock)
    rec = await optimizer.get_optimal_timing(APP, 23, is_weekend=False)
    assert rec.should_intervene_now
    assert rec.confidence is TimingConfidence.LOW
