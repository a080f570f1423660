"""
Tests for the Thompson sampling engine.

Covers:
- Selection over non-excluded arms and the all-excluded fallback
- Fractional posterior updates and input validation
- Persistence as one JSON blob, reload, corrupt-state recovery
- Cancelled or failed writes leaving memory and storage unchanged
- Arm statistics (estimate, uncertainty, confidence interval)
- Total pulls, sufficiency and reset
"""

import asyncio
import json
from collections import Counter

import numpy as np
import pytest

from jitai.lib.exceptions import InvalidArmError, InvalidRewardError, SerializationError, StorageError
from jitai.models.enums import ContentArm
from jitai.services.thompson_sampling import (
    FALLBACK_ARM,
    STATE_KEY,
    ArmState,
    ThompsonSamplingEngine,
    default_arms,
    deserialize_state,
    serialize_state,
)


@pytest.fixture
def bandit(kv_store) -> ThompsonSamplingEngine:
    return ThompsonSamplingEngine(kv_store, rng=np.random.default_rng(42))


# =============================================================================
# ArmState
# =============================================================================


class TestArmState:
    def test_prior(self) -> None:
        state = ArmState(ContentArm.QUOTE)
        assert state.mean == 0.5
        assert state.confidence() == 0.0

    def test_confidence_grows_with_pulls(self) -> None:
        few = ArmState(ContentArm.QUOTE, alpha=3.0, beta=3.0, total_pulls=4)
        many = ArmState(ContentArm.QUOTE, alpha=31.0, beta=31.0, total_pulls=60)
        assert 0.0 < few.confidence() < many.confidence() < 1.0


# =============================================================================
# Selection
# =============================================================================


class TestSelectArm:
    @pytest.mark.asyncio
    async def test_selects_a_known_arm(self, bandit) -> None:
        selection = await bandit.select_arm()
        assert selection.arm_id in ContentArm
        assert selection.strategy == "thompson_sampling"
        assert 0.0 <= selection.sampled_value <= 1.0
        assert selection.total_pulls == 0

    @pytest.mark.asyncio
    async def test_never_selects_excluded_arm(self, bandit) -> None:
        excluded = {ContentArm.QUOTE, ContentArm.GAMIFICATION, ContentArm.BREATHING}
        for _ in range(200):
            selection = await bandit.select_arm(excluded_arms=excluded)
            assert selection.arm_id not in excluded

    @pytest.mark.asyncio
    async def test_excluded_arms_accept_raw_ids(self, bandit) -> None:
        keep = ContentArm.USAGE_STATS
        excluded = [arm.value for arm in ContentArm if arm is not keep]
        selection = await bandit.select_arm(excluded_arms=excluded)
        assert selection.arm_id is keep
        assert selection.strategy == "thompson_sampling"

    @pytest.mark.asyncio
    async def test_all_excluded_returns_fallback(self, bandit) -> None:
        selection = await bandit.select_arm(excluded_arms=list(ContentArm))
        assert selection.arm_id is FALLBACK_ARM
        assert selection.strategy == "fallback"
        assert selection.confidence == 0.0

    @pytest.mark.asyncio
    async def test_unknown_excluded_arm_raises(self, bandit) -> None:
        with pytest.raises(InvalidArmError):
            await bandit.select_arm(excluded_arms=["Haiku"])

    @pytest.mark.asyncio
    async def test_prefers_arm_with_strong_posterior(self, bandit) -> None:
        for _ in range(50):
            await bandit.update_arm(ContentArm.BREATHING, 1.0)
        for arm in ContentArm:
            if arm is not ContentArm.BREATHING:
                for _ in range(20):
                    await bandit.update_arm(arm, 0.0)

        picks = Counter([(await bandit.select_arm()).arm_id for _ in range(100)])
        assert picks[ContentArm.BREATHING] >= 95

    @pytest.mark.asyncio
    async def test_all_successes_beat_all_failures(self, bandit) -> None:
        for _ in range(100):
            await bandit.update_arm(ContentArm.QUOTE, 1.0)
            await bandit.update_arm(ContentArm.REFLECTION, 0.0)
        excluded = [arm for arm in ContentArm if arm not in (ContentArm.QUOTE, ContentArm.REFLECTION)]

        picks = Counter([(await bandit.select_arm(excluded_arms=excluded)).arm_id for _ in range(100)])
        assert picks[ContentArm.QUOTE] >= 99
        winner = await bandit.get_arm_stats(ContentArm.QUOTE)
        loser = await bandit.get_arm_stats(ContentArm.REFLECTION)
        assert winner.estimated_success_rate == pytest.approx(101 / 102)
        assert loser.estimated_success_rate == pytest.approx(1 / 102)

    @pytest.mark.asyncio
    async def test_seeded_rng_is_reproducible(self, kv_store) -> None:
        first = ThompsonSamplingEngine(kv_store, state_key="a", rng=np.random.default_rng(7))
        second = ThompsonSamplingEngine(kv_store, state_key="b", rng=np.random.default_rng(7))
        picks_a = [(await first.select_arm()).arm_id for _ in range(20)]
        picks_b = [(await second.select_arm()).arm_id for _ in range(20)]
        assert picks_a == picks_b


# =============================================================================
# Updates
# =============================================================================


class TestUpdateArm:
    @pytest.mark.asyncio
    async def test_fractional_update(self, bandit) -> None:
        state = await bandit.update_arm(ContentArm.QUOTE, 0.7)
        assert state.alpha == pytest.approx(1.7)
        assert state.beta == pytest.approx(1.3)
        assert state.total_pulls == 1

    @pytest.mark.asyncio
    async def test_alpha_beta_track_pulls(self, bandit) -> None:
        for reward in (0.0, 0.25, 1.0, 0.4, 0.9):
            state = await bandit.update_arm("Gamification", reward)
        assert state.alpha + state.beta - 2.0 == pytest.approx(state.total_pulls)
        assert state.total_pulls == 5

    @pytest.mark.asyncio
    async def test_returned_state_is_a_copy(self, bandit) -> None:
        state = await bandit.update_arm(ContentArm.QUOTE, 1.0)
        state.alpha = 100.0
        stats = await bandit.get_arm_stats(ContentArm.QUOTE)
        assert stats.alpha == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_unknown_arm_raises(self, bandit) -> None:
        with pytest.raises(InvalidArmError) as exc_info:
            await bandit.update_arm("Haiku", 0.5)
        assert exc_info.value.arm_id == "Haiku"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reward", [-0.1, 1.5, float("nan"), float("inf"), True, "0.5"])
    async def test_invalid_reward_raises(self, bandit, reward) -> None:
        with pytest.raises(InvalidRewardError):
            await bandit.update_arm(ContentArm.QUOTE, reward)
        assert await bandit.get_total_pulls() == 0

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_not_lost(self, bandit) -> None:
        await asyncio.gather(*(bandit.update_arm(ContentArm.QUOTE, 0.5) for _ in range(50)))
        stats = await bandit.get_arm_stats(ContentArm.QUOTE)
        assert stats.total_pulls == 50
        assert stats.alpha == pytest.approx(26.0)


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:
    @pytest.mark.asyncio
    async def test_update_persists_single_blob(self, bandit, kv_store) -> None:
        await bandit.update_arm(ContentArm.QUOTE, 1.0)
        blob = await kv_store.get(STATE_KEY)
        payload = json.loads(blob)
        assert set(payload) == {arm.value for arm in ContentArm}
        assert payload["Quote"] == {"alpha": 2.0, "beta": 1.0, "total_pulls": 1}

    @pytest.mark.asyncio
    async def test_state_survives_new_engine(self, bandit, kv_store) -> None:
        await bandit.update_arm(ContentArm.QUOTE, 0.5)
        await bandit.update_arm(ContentArm.QUOTE, 0.5)

        reloaded = ThompsonSamplingEngine(kv_store)
        stats = await reloaded.get_arm_stats(ContentArm.QUOTE)
        assert stats.total_pulls == 2
        assert stats.alpha == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_corrupt_state_falls_back_to_priors(self, kv_store) -> None:
        await kv_store.set(STATE_KEY, "{not json")
        engine = ThompsonSamplingEngine(kv_store)
        assert await engine.get_total_pulls() == 0
        await engine.update_arm(ContentArm.QUOTE, 1.0)
        assert json.loads(await kv_store.get(STATE_KEY))["Quote"]["total_pulls"] == 1

    def test_roundtrip_keeps_values(self) -> None:
        arms = default_arms()
        arms[ContentArm.QUOTE] = ArmState(ContentArm.QUOTE, alpha=4.5, beta=2.5, total_pulls=5)
        restored = deserialize_state(serialize_state(arms))
        assert restored[ContentArm.QUOTE] == arms[ContentArm.QUOTE]

    def test_deserialize_ignores_unknown_arms_and_fills_missing(self) -> None:
        blob = json.dumps({"Haiku": {"alpha": 3, "beta": 1, "total_pulls": 2},
                           "Quote": {"alpha": 3, "beta": 1, "total_pulls": 2}})
        arms = deserialize_state(blob)
        assert set(arms) == set(ContentArm)
        assert arms[ContentArm.QUOTE].total_pulls == 2
        assert arms[ContentArm.BREATHING].total_pulls == 0

    @pytest.mark.parametrize(
        "blob",
        ["[]", "null", '{"Quote": {"alpha": 0.5, "beta": 1, "total_pulls": 0}}', '{"Quote": {}}'],
    )
    def test_deserialize_rejects_invalid_state(self, blob) -> None:
        with pytest.raises(SerializationError):
            deserialize_state(blob)


# =============================================================================
# Statistics
# =============================================================================


class TestArmStats:
    @pytest.mark.asyncio
    async def test_prior_stats(self, bandit) -> None:
        stats = await bandit.get_arm_stats(ContentArm.QUOTE)
        assert stats.estimated_success_rate == pytest.approx(0.5)
        assert stats.uncertainty == pytest.approx(0.5 / 3**0.5)
        low, high = stats.confidence_interval
        assert low == pytest.approx(0.025)
        assert high == pytest.approx(0.975)
        assert stats.display_name == "Inspirational Quotes"

    @pytest.mark.asyncio
    async def test_interval_contains_estimate(self, bandit) -> None:
        for _ in range(15):
            await bandit.update_arm(ContentArm.QUOTE, 1.0)
        stats = await bandit.get_arm_stats(ContentArm.QUOTE)
        low, high = stats.confidence_interval
        assert 0.0 <= low <= stats.estimated_success_rate <= high <= 1.0

    @pytest.mark.asyncio
    async def test_uncertainty_shrinks_with_pulls(self, bandit) -> None:
        previous = (await bandit.get_arm_stats(ContentArm.QUOTE)).uncertainty
        for reward in (1.0, 0.0, 1.0, 0.0, 0.5):
            await bandit.update_arm(ContentArm.QUOTE, reward)
            current = (await bandit.get_arm_stats(ContentArm.QUOTE)).uncertainty
            assert current < previous
            previous = current

    @pytest.mark.asyncio
    async def test_all_stats_in_arm_order(self, bandit) -> None:
        stats = await bandit.get_all_arm_stats()
        assert [s.arm_id for s in stats] == list(ContentArm)

    @pytest.mark.asyncio
    async def test_stats_for_unknown_arm_raises(self, bandit) -> None:
        with pytest.raises(InvalidArmError):
            await bandit.get_arm_stats("Haiku")


# =============================================================================
# Totals and reset
# =============================================================================


class TestTotalsAndReset:
    @pytest.mark.asyncio
    async def test_sufficient_data_threshold(self, kv_store) -> None:
        engine = ThompsonSamplingEngine(kv_store, min_total_pulls=3)
        await engine.update_arm(ContentArm.QUOTE, 1.0)
        await engine.update_arm(ContentArm.BREATHING, 0.0)
        assert await engine.get_total_pulls() == 2
        assert not await engine.has_sufficient_data()
        await engine.update_arm(ContentArm.BREATHING, 0.0)
        assert await engine.has_sufficient_data()

    @pytest.mark.asyncio
    async def test_reset_restores_priors_and_persists(self, bandit, kv_store) -> None:
        await bandit.update_arm(ContentArm.QUOTE, 1.0)
        await bandit.reset_all_arms()
        assert await bandit.get_total_pulls() == 0
        payload = json.loads(await kv_store.get(STATE_KEY))
        assert all(values["total_pulls"] == 0 for values in payload.values())


# =============================================================================
# Interrupted writes
# =============================================================================


class BlockingStore:
    """Key-value store whose writes wait until released."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.writing = asyncio.Event()
        self.release = asyncio.Event()

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.writing.set()
        await self.release.wait()
        self.values[key] = value

    async def delete(self, key: str) -> None:
        self.values.pop(key, None)


class FailingStore(BlockingStore):
    async def set(self, key: str, value: str) -> None:
        raise StorageError("Redis SET failed")


class TestInterruptedWrites:
    @pytest.mark.asyncio
    async def test_cancelled_update_changes_nothing(self) -> None:
        store = BlockingStore()
        engine = ThompsonSamplingEngine(store)
        task = asyncio.create_task(engine.update_arm(ContentArm.QUOTE, 1.0))
        await store.writing.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        stats = await engine.get_arm_stats(ContentArm.QUOTE)
        assert stats.alpha == 1.0
        assert stats.total_pulls == 0
        assert store.values == {}

    @pytest.mark.asyncio
    async def test_update_after_cancellation_lands_once(self) -> None:
        store = BlockingStore()
        engine = ThompsonSamplingEngine(store)
        task = asyncio.create_task(engine.update_arm(ContentArm.QUOTE, 1.0))
        await store.writing.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        store.release.set()
        state = await engine.update_arm(ContentArm.QUOTE, 1.0)
        assert state.alpha == 2.0
        assert state.total_pulls == 1
        assert json.loads(store.values[STATE_KEY])["Quote"]["total_pulls"] == 1

    @pytest.mark.asyncio
    async def test_failed_write_keeps_previous_state(self) -> None:
        engine = ThompsonSamplingEngine(FailingStore())
        with pytest.raises(StorageError):
            await engine.update_arm(ContentArm.QUOTE, 1.0)
        assert await engine.get_total_pulls() == 0

    @pytest.mark.asyncio
    async def test_failed_reset_keeps_learned_state(self) -> None:
        store = BlockingStore()
        store.release.set()
        engine = ThompsonSamplingEngine(store)
        await engine.update_arm(ContentArm.QUOTE, 1.0)

        async def refuse(key: str, value: str) -> None:
            raise StorageError("Redis SET failed")

        store.set = refuse
        with pytest.raises(StorageError):
            await engine.reset_all_arms()
        assert await engine.get_total_pulls() == 1
