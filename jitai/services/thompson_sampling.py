"""
Thompson sampling over the content arms.

Each arm keeps a Beta(alpha, beta) posterior of its success rate,
starting from the uniform prior Beta(1, 1). Rewards are fractional:
a reward r in [0, 1] adds r to alpha and 1 - r to beta, so
alpha + beta - 2 always equals the number of updates.

State is owned by one engine instance. Every read-modify-write runs
under an asyncio.Lock and the whole state is persisted as a single
JSON blob; the in-memory state is replaced only after that write
succeeds, so a failed or cancelled update leaves both untouched.

Usage:
    engine = ThompsonSamplingEngine(store)
    selection = await engine.select_arm(excluded_arms={ContentArm.QUOTE})
    await engine.update_arm(selection.arm_id, reward=0.8)
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, replace

import numpy as np
from scipy import stats

from jitai.lib.exceptions import InvalidArmError, InvalidRewardError, SerializationError
from jitai.models.enums import ContentArm
from jitai.services.preference_store import KeyValueStore

logger = logging.getLogger(__name__)

STATE_KEY = "thompson_sampling_state_v1"
FALLBACK_ARM = ContentArm.REFLECTION

# Standard deviation of the uniform prior Beta(1, 1)
PRIOR_STD = math.sqrt(1.0 / 12.0)


# ============================================================================
# State and result types
# ============================================================================


@dataclass
class ArmState:
    """Posterior parameters for one arm."""
    arm_id: ContentArm
    alpha: float = 1.0
    beta: float = 1.0
    total_pulls: int = 0

    @property
    def mean(self) -> float:
        return self.alpha / (self.alpha + self.beta)

    @property
    def std(self) -> float:
        a, b = self.alpha, self.beta
        return math.sqrt(a * b / ((a + b) ** 2 * (a + b + 1)))

    def confidence(self) -> float:
        """
        Confidence in the arm's estimate, in [0, 1).

        Product of a pull factor n / (n + 10) and how much the posterior
        has narrowed relative to the prior. Zero before the first pull.
        """
        pull_factor = self.total_pulls / (self.total_pulls + 10)
        spread_factor = max(0.0, 1.0 - self.std / PRIOR_STD)
        return pull_factor * spread_factor


@dataclass(frozen=True)
class ArmSelection:
    """Result of one arm selection."""
    arm_id: ContentArm
    confidence: float
    strategy: str  # "thompson_sampling" or "fallback"
    sampled_value: float
    total_pulls: int


@dataclass(frozen=True)
class ArmStats:
    """Read-only statistics for one arm."""
    arm_id: ContentArm
    alpha: float
    beta: float
    total_pulls: int
    estimated_success_rate: float
    uncertainty: float  # 0.5 / sqrt(alpha + beta + 1), shrinks with every pull
    posterior_std: float
    confidence_interval: tuple[float, float]  # 95%, always contains the estimate

    @property
    def display_name(self) -> str:
        return self.arm_id.display_name


# ============================================================================
# Serialization
# ============================================================================


def default_arms() -> dict[ContentArm, ArmState]:
    return {arm: ArmState(arm_id=arm) for arm in ContentArm}


def serialize_state(arms: dict[ContentArm, ArmState]) -> str:
    """Encode arm states as the persisted JSON blob."""
    payload = {
        arm.value: {"alpha": state.alpha, "beta": state.beta, "total_pulls": state.total_pulls}
        for arm, state in arms.items()
    }
    return json.dumps(payload, sort_keys=True)


def deserialize_state(blob: str) -> dict[ContentArm, ArmState]:
    """
    Decode a persisted blob. Arms missing from the blob get the prior;
    unknown arm ids are ignored.

    Raises:
        SerializationError: If the blob is not valid state JSON
    """
    try:
        payload = json.loads(blob)
        if not isinstance(payload, dict):
            raise TypeError("state blob must be a JSON object")
        arms = default_arms()
        for arm_id, values in payload.items():
            arm = ContentArm.from_id(arm_id)
            if arm is None:
                logger.warning("Ignoring unknown arm %r in persisted bandit state", arm_id)
                continue
            state = ArmState(
                arm_id=arm,
                alpha=float(values["alpha"]),
                beta=float(values["beta"]),
                total_pulls=int(values["total_pulls"]),
            )
            if state.alpha < 1.0 or state.beta < 1.0 or state.total_pulls < 0:
                raise ValueError(f"invalid posterior for {arm_id}: {values}")
            arms[arm] = state
        return arms
    except (ValueError, TypeError, KeyError) as exc:
        raise SerializationError("Corrupt Thompson sampling state") from exc


# ============================================================================
# Engine
# ============================================================================


class ThompsonSamplingEngine:
    """Beta-Bernoulli Thompson sampling bandit over ContentArm."""

    MIN_TOTAL_PULLS = 30  # has_sufficient_data
    CONFIDENCE_LEVEL = 0.95

    def __init__(
        self,
        store: KeyValueStore,
        state_key: str = STATE_KEY,
        rng: np.random.Generator | None = None,
        min_total_pulls: int = MIN_TOTAL_PULLS,
    ) -> None:
        """
        Args:
            store: Persistence for the state blob
            state_key: Key the blob is stored under
            rng: Random generator (seed it for reproducible selections)
            min_total_pulls: Pulls needed before has_sufficient_data() is True
        """
        self._store = store
        self._state_key = state_key
        self._rng = rng or np.random.default_rng()
        self._min_total_pulls = min_total_pulls
        self._arms: dict[ContentArm, ArmState] | None = None
        self._lock = asyncio.Lock()

    async def _load(self) -> dict[ContentArm, ArmState]:
        """Load persisted state once; fall back to priors when absent or corrupt."""
        if self._arms is not None:
            return self._arms
        blob = await self._store.get(self._state_key)
        if blob is None:
            self._arms = default_arms()
        else:
            try:
                self._arms = deserialize_state(blob)
            except SerializationError:
                logger.warning("Discarding corrupt bandit state under %s", self._state_key, exc_info=True)
                self._arms = default_arms()
        return self._arms

    async def _persist(self, arms: dict[ContentArm, ArmState]) -> None:
        await self._store.set(self._state_key, serialize_state(arms))

    @staticmethod
    def _parse_arm(arm_id: ContentArm | str) -> ContentArm:
        arm = arm_id if isinstance(arm_id, ContentArm) else ContentArm.from_id(arm_id)
        if arm is None:
            raise InvalidArmError(arm_id)
        return arm

    async def select_arm(
        self,
        excluded_arms: Iterable[ContentArm | str] = (),
    ) -> ArmSelection:
        """
        Sample every non-excluded arm's posterior and pick the highest draw.

        Args:
            excluded_arms: Arms that must not be chosen

        Returns:
            ArmSelection; the fallback arm with strategy "fallback" when
            every arm is excluded
        """
        excluded = {self._parse_arm(arm) for arm in excluded_arms}
        async with self._lock:
            arms = await self._load()
            candidates = [state for arm, state in arms.items() if arm not in excluded]

            if not candidates:
                fallback = arms[FALLBACK_ARM]
                logger.info("All arms excluded, using fallback arm %s", FALLBACK_ARM)
                return ArmSelection(
                    arm_id=FALLBACK_ARM,
                    confidence=fallback.confidence(),
                    strategy="fallback",
                    sampled_value=fallback.mean,
                    total_pulls=fallback.total_pulls,
                )

            samples = [float(self._rng.beta(state.alpha, state.beta)) for state in candidates]
            best_index = int(np.argmax(samples))
            best = candidates[best_index]

            return ArmSelection(
                arm_id=best.arm_id,
                confidence=best.confidence(),
                strategy="thompson_sampling",
                sampled_value=samples[best_index],
                total_pulls=best.total_pulls,
            )

    async def update_arm(self, arm_id: ContentArm | str, reward: float) -> ArmState:
        """
        Apply one fractional reward to an arm and persist the new state.

        Raises:
            InvalidArmError: If arm_id is not a known arm
            InvalidRewardError: If reward is not a finite number in [0, 1]
        """
        arm = self._parse_arm(arm_id)
        if isinstance(reward, bool) or not isinstance(reward, (int, float)):
            raise InvalidRewardError(reward)
        if not math.isfinite(reward) or not 0.0 <= reward <= 1.0:
            raise InvalidRewardError(reward)

        async with self._lock:
            arms = await self._load()
            current = arms[arm]
            state = replace(
                current,
                alpha=current.alpha + reward,
                beta=current.beta + 1.0 - reward,
                total_pulls=current.total_pulls + 1,
            )
            updated = {**arms, arm: state}
            # Memory only changes once the write has succeeded
            await self._persist(updated)
            self._arms = updated
            logger.debug(
                "Updated arm %s with reward %.2f (alpha=%.2f beta=%.2f pulls=%d)",
                arm, reward, state.alpha, state.beta, state.total_pulls,
            )
            return ArmState(arm, state.alpha, state.beta, state.total_pulls)

    def _stats_for(self, state: ArmState) -> ArmStats:
        estimate = state.mean
        tail = (1.0 - self.CONFIDENCE_LEVEL) / 2.0
        lower, upper = stats.beta.ppf([tail, 1.0 - tail], state.alpha, state.beta)
        lower = min(float(lower), estimate)
        upper = max(float(upper), estimate)
        return ArmStats(
            arm_id=state.arm_id,
            alpha=state.alpha,
            beta=state.beta,
            total_pulls=state.total_pulls,
            estimated_success_rate=estimate,
            uncertainty=0.5 / math.sqrt(state.alpha + state.beta + 1.0),
            posterior_std=state.std,
            confidence_interval=(lower, upper),
        )

    async def get_arm_stats(self, arm_id: ContentArm | str) -> ArmStats:
        arm = self._parse_arm(arm_id)
        async with self._lock:
            arms = await self._load()
            return self._stats_for(arms[arm])

    async def get_all_arm_stats(self) -> list[ArmStats]:
        """Statistics for every arm, in ContentArm order."""
        async with self._lock:
            arms = await self._load()
            return [self._stats_for(arms[arm]) for arm in ContentArm]

    async def get_total_pulls(self) -> int:
        async with self._lock:
            arms = await self._load()
            return sum(state.total_pulls for state in arms.values())

    async def has_sufficient_data(self) -> bool:
        return await self.get_total_pulls() >= self._min_total_pulls

    async def reset_all_arms(self) -> None:
        """Reset every arm to Beta(1, 1) and persist."""
        async with self._lock:
            priors = default_arms()
            await self._persist(priors)
            self._arms = priors
            logger.info("Reset all bandit arms to uniform priors")
