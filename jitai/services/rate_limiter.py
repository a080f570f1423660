"""
Adaptive intervention rate limiter.

The single gate that decides whether an intervention may be shown
right now. It layers the adaptive signals over the base cooldown
limiter, and the first blocking stage wins:

1. Persona and opportunity detection (diagnostics, always populated)
2. Critical burden (reliable data only) -> skip, with a burden-scaled
   cooldown
3. Timing optimizer says wait, with high confidence -> wait
4. Base rate limiter denies -> skip; an adjustable base limiter gets its
   global cooldown scaled by the burden multiplier
5. Otherwise -> intervene now

Every result carries the deciding stage (decision_source) and a
human-readable reason.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from jitai.config.settings import CooldownConfig
from jitai.models.context import InterventionContext
from jitai.models.enums import (
    BurdenLevel,
    ConfidenceLevel,
    DecisionSource,
    InterventionDecision,
    InterventionType,
    OpportunityLevel,
    TimingConfidence,
    UserFeedback,
    UserPersona,
)
from jitai.services.burden.tracker import BurdenAssessment, InterventionBurdenTracker
from jitai.services.collaborators import (
    AdjustableRateLimiter,
    BaseRateLimiter,
    OpportunityDetection,
    OpportunityDetector,
    PersonaDetection,
    PersonaDetector,
)
from jitai.services.timing_optimizer import ContextualTimingOptimizer, TimingRecommendation

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000


@dataclass(frozen=True)
class RateLimitResult:
    """Decision plus the diagnostics gathered on the way."""

    allowed: bool
    decision: InterventionDecision
    decision_source: DecisionSource
    reason: str
    cooldown_remaining_ms: int = 0

    # Diagnostics
    opportunity_score: int | None = None
    opportunity_level: OpportunityLevel | None = None
    persona: UserPersona | None = None
    persona_confidence: ConfidenceLevel | None = None
    burden_level: BurdenLevel | None = None
    burden_reliable: bool | None = None
    timing_confidence: TimingConfidence | None = None


class AdaptiveInterventionRateLimiter:
    """Burden-, timing- and cooldown-aware intervention gate."""

    def __init__(
        self,
        base_rate_limiter: BaseRateLimiter,
        persona_detector: PersonaDetector | None = None,
        opportunity_detector: OpportunityDetector | None = None,
        burden_tracker: InterventionBurdenTracker | None = None,
        timing_optimizer: ContextualTimingOptimizer | None = None,
        global_cooldown_ms: int = CooldownConfig().global_cooldown_minutes * MINUTE_MS,
    ) -> None:
        """
        Args:
            base_rate_limiter: Fixed cooldown and volume limits
            persona_detector: Detects the user's persona when none is supplied
            opportunity_detector: Scores the moment when no score is supplied
            burden_tracker: Enables the critical-burden stage
            timing_optimizer: Enables the timing stage
            global_cooldown_ms: Unscaled global cooldown, the basis of the
                cooldown reported on a critical-burden skip
        """
        self._base = base_rate_limiter
        self._persona_detector = persona_detector
        self._opportunity_detector = opportunity_detector
        self._burden = burden_tracker
        self._timing = timing_optimizer
        self._global_cooldown_ms = global_cooldown_ms

    async def _detect(
        self,
        context: InterventionContext,
        persona: PersonaDetection | None,
        opportunity: OpportunityDetection | None,
    ) -> tuple[PersonaDetection | None, OpportunityDetection | None]:
        if persona is None and self._persona_detector is not None:
            persona = await self._persona_detector.detect_persona(context)
        if opportunity is None and self._opportunity_detector is not None:
            opportunity = await self._opportunity_detector.detect_opportunity(context)
        return persona, opportunity

    async def can_show_intervention(
        self,
        context: InterventionContext,
        intervention_type: InterventionType,
        session_duration_ms: int,
        persona: PersonaDetection | None = None,
        opportunity: OpportunityDetection | None = None,
    ) -> RateLimitResult:
        """
        Decide whether to intervene now.

        Args:
            context: Current usage context
            intervention_type: Kind of intervention being considered
            session_duration_ms: Length of the current session so far
            persona: Pre-computed persona; detected when omitted
            opportunity: Pre-computed opportunity; detected when omitted

        Returns:
            RateLimitResult with decision, source, reason and diagnostics
        """
        persona, opportunity = await self._detect(context, persona, opportunity)

        assessment: BurdenAssessment | None = None
        if self._burden is not None:
            assessment = await self._burden.assess_burden()

        timing: TimingRecommendation | None = None
        if self._timing is not None:
            timing = await self._timing.get_optimal_timing(
                context.target_app, context.time_of_day, context.is_weekend,
            )

        diagnostics = {
            "opportunity_score": opportunity.score if opportunity else None,
            "opportunity_level": opportunity.level if opportunity else None,
            "persona": persona.persona if persona else None,
            "persona_confidence": persona.confidence if persona else None,
            "burden_level": assessment.level if assessment else None,
            "burden_reliable": assessment.reliable if assessment else None,
            "timing_confidence": timing.confidence if timing else None,
        }

        if assessment is not None and assessment.is_critical:
            return self._decide(
                allowed=False,
                decision=InterventionDecision.SKIP_INTERVENTION,
                source=DecisionSource.CRITICAL_BURDEN,
                reason=f"Critical intervention burden (score {assessment.adjusted_score})",
                cooldown_remaining_ms=int(self._global_cooldown_ms * assessment.cooldown_multiplier),
                **diagnostics,
            )

        if timing is not None and timing.should_delay and timing.confidence is TimingConfidence.HIGH:
            return self._decide(
                allowed=False,
                decision=InterventionDecision.WAIT_FOR_BETTER_OPPORTUNITY,
                source=DecisionSource.TIMING_OPTIMIZATION,
                reason=timing.reason,
                cooldown_remaining_ms=timing.recommended_delay_ms,
                **diagnostics,
            )

        burden_multiplier = assessment.cooldown_multiplier if assessment is not None else 1.0
        if burden_multiplier != 1.0 and isinstance(self._base, AdjustableRateLimiter):
            base = self._base.can_show_intervention(
                intervention_type, session_duration_ms, burden_multiplier=burden_multiplier,
            )
        else:
            base = self._base.can_show_intervention(intervention_type, session_duration_ms)
        if not base.allowed:
            return self._decide(
                allowed=False,
                decision=InterventionDecision.SKIP_INTERVENTION,
                source=DecisionSource.BASIC_RATE_LIMIT,
                reason=base.reason,
                cooldown_remaining_ms=base.cooldown_remaining_ms,
                **diagnostics,
            )

        return self._decide(
            allowed=True,
            decision=InterventionDecision.INTERVENE_NOW,
            source=DecisionSource.JITAI_APPROVED,
            reason="All adaptive checks passed",
            **diagnostics,
        )

    def _decide(
        self,
        allowed: bool,
        decision: InterventionDecision,
        source: DecisionSource,
        reason: str,
        cooldown_remaining_ms: int = 0,
        **diagnostics: object,
    ) -> RateLimitResult:
        logger.info("Intervention decision %s from %s: %s", decision, source, reason)
        return RateLimitResult(
            allowed=allowed,
            decision=decision,
            decision_source=source,
            reason=reason,
            cooldown_remaining_ms=cooldown_remaining_ms,
            **diagnostics,  # type: ignore[arg-type]
        )

    def record_intervention(self, intervention_type: InterventionType) -> None:
        self._base.record_intervention(intervention_type)

    def adjust_cooldown_for_feedback(self, feedback: UserFeedback | str) -> None:
        if isinstance(self._base, AdjustableRateLimiter):
            self._base.adjust_cooldown_for_feedback(feedback)

    def escalate_cooldown(self) -> None:
        if isinstance(self._base, AdjustableRateLimiter):
            self._base.escalate_cooldown()

    def reset_cooldown(self) -> None:
        if isinstance(self._base, AdjustableRateLimiter):
            self._base.reset_cooldown()
