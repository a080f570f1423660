"""
JITAI engine facade.

One object exposing the decision core to callers (the HTTP layer, a
session monitor): gate the intervention, pick its content, record that
it was shown, and feed the outcome back.

Usage:
    engine = build_engine(outcome_store, key_value_store)
    decision = await engine.can_show_intervention(context, InterventionType.REMINDER, session_ms)
    if decision.allowed:
        selection = await engine.select_content_type(context, intervention_id=42)
        engine.record_intervention(InterventionType.REMINDER)
    ...
    await engine.record_outcome(42, UserChoice.GO_BACK)
"""

from __future__ import annotations

import logging

import numpy as np

from jitai.config.settings import JitaiSettings
from jitai.models.context import InterventionContext
from jitai.models.enums import InterventionType, UserChoice, UserFeedback
from jitai.models.intervention_result import InterventionOutcomeRecord
from jitai.services.burden import (
    BurdenTrend,
    BurdenTrendMonitor,
    FatigueRecoveryTracker,
    InterventionBurdenTracker,
)
from jitai.services.collaborators import (
    BaseRateLimiter,
    OpportunityDetection,
    OpportunityDetector,
    PersonaDetection,
    PersonaDetector,
)
from jitai.services.content_selector import AdaptiveContentSelector, ContentEffectiveness, ContentSelection, InterventionId
from jitai.services.cooldown_limiter import CooldownRateLimiter
from jitai.services.outcome_store import OutcomeStore
from jitai.services.preference_store import KeyValueStore
from jitai.services.rate_limiter import AdaptiveInterventionRateLimiter, RateLimitResult
from jitai.services.reward import RewardCalculator
from jitai.services.thompson_sampling import ThompsonSamplingEngine
from jitai.services.timing_learner import TimingPatternLearner
from jitai.services.timing_optimizer import ContextualTimingOptimizer

logger = logging.getLogger(__name__)


class JitaiEngine:
    """Facade over content selection, rate limiting and burden tracking."""

    def __init__(
        self,
        content_selector: AdaptiveContentSelector,
        rate_limiter: AdaptiveInterventionRateLimiter,
        burden_tracker: InterventionBurdenTracker,
        outcome_store: OutcomeStore,
        timing_optimizer: ContextualTimingOptimizer | None = None,
    ) -> None:
        self.content_selector = content_selector
        self.rate_limiter = rate_limiter
        self.burden_tracker = burden_tracker
        self.outcome_store = outcome_store
        self.timing_optimizer = timing_optimizer

    async def can_show_intervention(
        self,
        context: InterventionContext,
        intervention_type: InterventionType,
        session_duration_ms: int,
        persona: PersonaDetection | None = None,
        opportunity: OpportunityDetection | None = None,
    ) -> RateLimitResult:
        return await self.rate_limiter.can_show_intervention(
            context, intervention_type, session_duration_ms, persona=persona, opportunity=opportunity,
        )

    async def select_content_type(
        self,
        context: InterventionContext,
        persona: PersonaDetection | None = None,
        opportunity: OpportunityDetection | None = None,
        intervention_id: InterventionId | None = None,
    ) -> ContentSelection:
        """Pick content; with an intervention_id the selection is tracked for its outcome."""
        selection = await self.content_selector.select_content_type(
            context,
            persona=persona.persona if persona else None,
            opportunity=opportunity.level if opportunity else None,
        )
        if intervention_id is not None:
            self.content_selector.record_intervention_selection(intervention_id, selection.content_type)
        return selection

    def record_intervention_selection(self, intervention_id: InterventionId, content_type: str) -> None:
        self.content_selector.record_intervention_selection(intervention_id, content_type)

    def record_intervention(self, intervention_type: InterventionType) -> None:
        self.rate_limiter.record_intervention(intervention_type)

    async def record_outcome(
        self,
        intervention_id: InterventionId,
        user_choice: UserChoice | str,
        feedback: UserFeedback | str | None = None,
        session_continued: bool | None = None,
        session_duration_after_ms: int | None = None,
        quick_reopen: bool | None = None,
        reopen_delay_ms: int | None = None,
        context: InterventionContext | None = None,
    ) -> float | None:
        """
        Reward the tracked arm and let explicit feedback tune the cooldown.

        With the context the intervention was shown in, the outcome also
        trains the timing learner.
        """
        reward = await self.content_selector.record_outcome(
            intervention_id,
            user_choice,
            feedback,
            session_continued=session_continued,
            session_duration_after_ms=session_duration_after_ms,
            quick_reopen=quick_reopen,
            reopen_delay_ms=reopen_delay_ms,
            target_app=context.target_app if context is not None else None,
            hour_of_day=context.time_of_day if context is not None else None,
            is_weekend=context.is_weekend if context is not None else None,
        )
        if reward is not None and feedback is not None:
            self.rate_limiter.adjust_cooldown_for_feedback(feedback)
        return reward

    async def add_outcome_record(self, record: InterventionOutcomeRecord) -> None:
        """Append to the outcome store and drop analysis caches that it affects."""
        await self.outcome_store.add_result(record)
        self.burden_tracker.invalidate_cache()
        if self.timing_optimizer is not None:
            self.timing_optimizer.invalidate_cache()

    async def get_content_effectiveness(self) -> list[ContentEffectiveness]:
        return await self.content_selector.get_content_effectiveness()

    async def get_frequency_multiplier(self) -> float:
        return await self.content_selector.get_frequency_multiplier()

    async def get_timing_effectiveness(self) -> dict[int, float] | None:
        return await self.content_selector.get_timing_effectiveness()

    async def has_reliable_timing_data(self) -> bool:
        return await self.content_selector.has_reliable_timing_data()

    async def get_burden_trend(self) -> BurdenTrend:
        return await self.burden_tracker.get_burden_trend()


def build_engine(
    outcome_store: OutcomeStore,
    key_value_store: KeyValueStore,
    settings: JitaiSettings | None = None,
    base_rate_limiter: BaseRateLimiter | None = None,
    persona_detector: PersonaDetector | None = None,
    opportunity_detector: OpportunityDetector | None = None,
) -> JitaiEngine:
    """Wire every component with its settings."""
    settings = settings or JitaiSettings()

    bandit = ThompsonSamplingEngine(
        key_value_store,
        state_key=settings.bandit.state_key,
        rng=np.random.default_rng(settings.bandit.random_seed),
        min_total_pulls=settings.bandit.min_total_pulls,
    )
    timing = ContextualTimingOptimizer(
        outcome_store,
        cache_minutes=settings.timing.cache_minutes,
        lookback_days=settings.timing.lookback_days,
    )
    burden = InterventionBurdenTracker(
        outcome_store,
        recovery_tracker=FatigueRecoveryTracker(outcome_store),
        trend_monitor=BurdenTrendMonitor(
            key_value_store,
            history_key=settings.burden.history_key,
            history_size=settings.burden.history_size,
        ),
        cache_minutes=settings.burden.cache_minutes,
        lookback_days=settings.burden.lookback_days,
    )
    learner = TimingPatternLearner(
        key_value_store,
        state_key=settings.timing.learner_state_key,
        learning_rate=settings.timing.learning_rate,
    )
    selector = AdaptiveContentSelector(bandit, RewardCalculator(), timing_optimizer=timing, timing_learner=learner)
    rate_limiter = AdaptiveInterventionRateLimiter(
        base_rate_limiter or CooldownRateLimiter(settings.cooldown),
        persona_detector=persona_detector,
        opportunity_detector=opportunity_detector,
        burden_tracker=burden,
        timing_optimizer=timing,
        global_cooldown_ms=settings.cooldown.global_cooldown_minutes * 60_000,
    )
    logger.info("JITAI engine wired (bandit state key %s)", settings.bandit.state_key)
    return JitaiEngine(selector, rate_limiter, burden, outcome_store, timing_optimizer=timing)
