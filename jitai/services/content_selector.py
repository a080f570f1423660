"""
Adaptive content selection.

Chooses which kind of intervention content to show by asking the
Thompson sampling bandit for an arm, after filtering out arms that do
not fit the moment (breathing exercises at 2am, guilt-based appeals for
new users, and so on). Outcomes flow back through record_outcome, which
turns the user's response into a reward for the arm that was shown.

Usage:
    selector = AdaptiveContentSelector(bandit)
    selection = await selector.select_content_type(context, persona=UserPersona.NEW_USER)
    selector.record_intervention_selection(intervention_id, selection.content_type)
    ...
    await selector.record_outcome(intervention_id, UserChoice.GO_BACK)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from jitai.models.context import InterventionContext
from jitai.models.enums import ContentArm, OpportunityLevel, UserChoice, UserFeedback, UserPersona
from jitai.services.reward import RewardCalculator
from jitai.services.thompson_sampling import ArmStats, ThompsonSamplingEngine
from jitai.services.timing_learner import TimingPatternLearner
from jitai.services.timing_optimizer import ContextualTimingOptimizer, TimingRecommendation

logger = logging.getLogger(__name__)

InterventionId = int | str

# Arms that never fit a given persona
PERSONA_EXCLUSIONS: dict[UserPersona, frozenset[ContentArm]] = {
    UserPersona.PROBLEMATIC_PATTERN_USER: frozenset({ContentArm.QUOTE, ContentArm.GAMIFICATION}),
    UserPersona.CASUAL_USER: frozenset({ContentArm.EMOTIONAL_APPEAL}),
    UserPersona.NEW_USER: frozenset({ContentArm.EMOTIONAL_APPEAL, ContentArm.USAGE_STATS}),
}


def build_excluded_arms(
    context: InterventionContext,
    persona: UserPersona | None = None,
    opportunity: OpportunityLevel | None = None,
) -> frozenset[ContentArm]:
    """Union of every context, persona and opportunity exclusion rule."""
    excluded: set[ContentArm] = set()

    if context.is_late_night:
        excluded |= {ContentArm.BREATHING, ContentArm.GAMIFICATION}
    if context.is_early_morning:
        excluded |= {ContentArm.USAGE_STATS, ContentArm.EMOTIONAL_APPEAL}
    if persona is not None:
        excluded |= PERSONA_EXCLUSIONS.get(persona, frozenset())
    if context.is_first_session:
        excluded.add(ContentArm.USAGE_STATS)
    if context.quick_reopen_attempt:
        excluded |= {ContentArm.QUOTE, ContentArm.GAMIFICATION}
    if opportunity is OpportunityLevel.POOR:
        excluded.add(ContentArm.EMOTIONAL_APPEAL)

    return frozenset(excluded)


@dataclass(frozen=True)
class ContentSelection:
    """The content type to show and why."""
    content_type: ContentArm
    confidence: float
    strategy: str
    reason: str
    excluded_arms: frozenset[ContentArm] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ContentEffectiveness:
    """Learned effectiveness of one content type."""
    content_type: ContentArm
    display_name: str
    total_shown: int
    estimated_success_rate: float
    uncertainty: float
    confidence_interval: tuple[float, float]

    @classmethod
    def from_stats(cls, stats: ArmStats) -> ContentEffectiveness:
        return cls(
            content_type=stats.arm_id,
            display_name=stats.display_name,
            total_shown=stats.total_pulls,
            estimated_success_rate=stats.estimated_success_rate,
            uncertainty=stats.uncertainty,
            confidence_interval=stats.confidence_interval,
        )

    def format(self) -> str:
        """E.g. "Breathing Exercises: 72% (61-81%) n=40"."""
        low, high = self.confidence_interval
        return (
            f"{self.display_name}: {int(self.estimated_success_rate * 100)}% "
            f"({int(low * 100)}-{int(high * 100)}%) n={self.total_shown}"
        )


class AdaptiveContentSelector:
    """Context-filtered Thompson sampling over content types."""

    MIN_PULLS_FOR_FREQUENCY = 20
    HIGH_CONFIDENCE = 0.75
    MEDIUM_CONFIDENCE = 0.50

    # (min weighted success rate, cooldown multiplier), best first
    FREQUENCY_TIERS: tuple[tuple[float, float], ...] = (
        (0.60, 0.8),
        (0.45, 1.0),
        (0.30, 1.3),
    )
    LOWEST_FREQUENCY_MULTIPLIER = 1.5

    # Oldest tracked selections are dropped beyond this many pending outcomes
    MAX_PENDING_INTERVENTIONS = 500

    def __init__(
        self,
        bandit: ThompsonSamplingEngine,
        reward_calculator: RewardCalculator | None = None,
        timing_optimizer: ContextualTimingOptimizer | None = None,
        timing_learner: TimingPatternLearner | None = None,
        max_pending: int = MAX_PENDING_INTERVENTIONS,
    ) -> None:
        """
        Args:
            bandit: Arm posteriors
            reward_calculator: Turns responses into rewards
            timing_optimizer: Backs recommend_timing
            timing_learner: Learns hourly success from outcomes that carry
                their app, hour and day type
            max_pending: Cap on selections waiting for an outcome
        """
        if max_pending < 1:
            raise ValueError(f"max_pending must be positive, got {max_pending}")
        self._bandit = bandit
        self._rewards = reward_calculator or RewardCalculator()
        self._timing = timing_optimizer
        self._learner = timing_learner
        self._max_pending = max_pending
        # Insertion-ordered, oldest first
        self._intervention_arms: dict[InterventionId, ContentArm] = {}

    async def select_content_type(
        self,
        context: InterventionContext,
        persona: UserPersona | None = None,
        opportunity: OpportunityLevel | None = None,
    ) -> ContentSelection:
        excluded = build_excluded_arms(context, persona, opportunity)
        selection = await self._bandit.select_arm(excluded)
        reason = self._build_reason(selection.arm_id, selection.confidence, len(excluded))
        logger.info(
            "Selected content %s (%s, confidence %.2f, %d excluded)",
            selection.arm_id, selection.strategy, selection.confidence, len(excluded),
        )
        return ContentSelection(
            content_type=selection.arm_id,
            confidence=selection.confidence,
            strategy=selection.strategy,
            reason=reason,
            excluded_arms=excluded,
        )

    def _build_reason(self, arm: ContentArm, confidence: float, excluded_count: int) -> str:
        parts = [f"Selected {arm.display_name}"]
        if confidence >= self.HIGH_CONFIDENCE:
            parts.append("high confidence")
        elif confidence >= self.MEDIUM_CONFIDENCE:
            parts.append("medium confidence")
        else:
            parts.append("exploring")
        if excluded_count:
            parts.append(f"{excluded_count} filtered by context")
        return ", ".join(parts)

    def record_intervention_selection(self, intervention_id: InterventionId, content_type: ContentArm | str) -> None:
        """
        Remember which arm an intervention showed, until its outcome arrives.

        At most max_pending selections are kept; the oldest is forgotten
        when a new one would exceed the cap, and its late outcome is then
        ignored like any untracked outcome.
        """
        arm = content_type if isinstance(content_type, ContentArm) else ContentArm.from_id(content_type)
        if arm is None:
            logger.warning("Not tracking intervention %s with unknown content type %r", intervention_id, content_type)
            return
        self._intervention_arms.pop(intervention_id, None)
        self._intervention_arms[intervention_id] = arm
        while len(self._intervention_arms) > self._max_pending:
            stale = next(iter(self._intervention_arms))
            del self._intervention_arms[stale]
            logger.warning("Dropping pending intervention %s, no outcome before the cap", stale)

    def pending_interventions(self) -> int:
        return len(self._intervention_arms)

    async def record_outcome(
        self,
        intervention_id: InterventionId,
        user_choice: UserChoice | str,
        feedback: UserFeedback | str | None = None,
        session_continued: bool | None = None,
        session_duration_after_ms: int | None = None,
        quick_reopen: bool | None = None,
        reopen_delay_ms: int | None = None,
        target_app: str | None = None,
        hour_of_day: int | None = None,
        is_weekend: bool | None = None,
    ) -> float | None:
        """
        Reward the arm shown for intervention_id.

        The mapping is removed before the bandit update, so a repeated
        outcome for the same intervention is a no-op. When target_app,
        hour_of_day and is_weekend are all given, the outcome also feeds
        the timing learner.

        Returns:
            The applied reward, or None if the intervention was not tracked
        """
        arm = self._intervention_arms.pop(intervention_id, None)
        if arm is None:
            logger.debug("No tracked selection for intervention %s, ignoring outcome", intervention_id)
            return None

        reward = self._rewards.calculate_reward(
            user_choice,
            feedback,
            session_continued=session_continued,
            session_duration_after_ms=session_duration_after_ms,
            quick_reopen=quick_reopen,
            reopen_delay_ms=reopen_delay_ms,
        )
        await self._bandit.update_arm(arm, reward)
        logger.info("Recorded outcome %s for %s: reward %.2f", user_choice, arm, reward)

        if self._learner is not None and None not in (target_app, hour_of_day, is_weekend):
            await self._learner.record_timing_outcome(
                hour_of_day,
                self._rewards.is_successful_outcome(user_choice, feedback),
                target_app,
                is_weekend,
            )
        return reward

    async def get_content_effectiveness(self) -> list[ContentEffectiveness]:
        """Per-arm effectiveness, most effective first."""
        stats = await self._bandit.get_all_arm_stats()
        return sorted(
            (ContentEffectiveness.from_stats(s) for s in stats),
            key=lambda e: e.estimated_success_rate,
            reverse=True,
        )

    async def get_frequency_multiplier(self) -> float:
        """
        Cooldown multiplier from overall learned effectiveness.

        Below 1.0 means intervene more often. Neutral (1.0) until the
        bandit has seen enough outcomes.
        """
        stats = await self._bandit.get_all_arm_stats()
        total_pulls = sum(s.total_pulls for s in stats)
        if total_pulls < self.MIN_PULLS_FOR_FREQUENCY:
            return 1.0

        weighted = sum(s.estimated_success_rate * s.total_pulls for s in stats) / total_pulls
        for min_rate, multiplier in self.FREQUENCY_TIERS:
            if weighted >= min_rate:
                return multiplier
        return self.LOWEST_FREQUENCY_MULTIPLIER

    async def has_sufficient_data(self) -> bool:
        return await self._bandit.has_sufficient_data()

    async def reset_learning(self) -> None:
        await self._bandit.reset_all_arms()
        self._intervention_arms.clear()

    async def recommend_timing(
        self,
        target_app: str,
        current_hour: int,
        is_weekend: bool,
    ) -> TimingRecommendation | None:
        if self._timing is None:
            return None
        return await self._timing.get_optimal_timing(target_app, current_hour, is_weekend)

    async def get_timing_effectiveness(self) -> dict[int, float] | None:
        """Learned success rate per reliable hour; None without a timing learner."""
        if self._learner is None:
            return None
        return await self._learner.get_effectiveness_summary()

    async def has_reliable_timing_data(self) -> bool:
        if self._learner is None:
            return False
        return await self._learner.has_reliable_data()
