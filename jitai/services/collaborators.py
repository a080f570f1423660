"""
Interfaces of the collaborators the decision core consumes but does not
implement: persona detection, opportunity detection and the base rate
limiter. Their results are plain value objects so callers can also pass
pre-computed signals directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from jitai.models.context import InterventionContext
from jitai.models.enums import ConfidenceLevel, InterventionType, OpportunityLevel, UserFeedback, UserPersona

# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class PersonaDetection:
    """Behavioural persona and how sure the detector is."""
    persona: UserPersona
    confidence: ConfidenceLevel = ConfidenceLevel.LOW


@dataclass(frozen=True)
class OpportunityDetection:
    """Receptivity score (0-100) for the current moment."""
    score: int
    level: OpportunityLevel
    factors: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_score(cls, score: int, factors: dict[str, int] | None = None) -> OpportunityDetection:
        clamped = max(0, min(100, score))
        return cls(score=clamped, level=OpportunityLevel.from_score(clamped), factors=factors or {})


@dataclass(frozen=True)
class BaseRateLimitResult:
    """Decision of the base (non-adaptive) rate limiter."""
    allowed: bool
    reason: str
    cooldown_remaining_ms: int = 0


# ============================================================================
# Protocols
# ============================================================================


class PersonaDetector(Protocol):
    async def detect_persona(self, context: InterventionContext) -> PersonaDetection: ...


class OpportunityDetector(Protocol):
    async def detect_opportunity(self, context: InterventionContext) -> OpportunityDetection: ...


class BaseRateLimiter(Protocol):
    """Fixed cooldown and volume limits applied after the adaptive stages."""

    def can_show_intervention(
        self,
        intervention_type: InterventionType,
        session_duration_ms: int,
    ) -> BaseRateLimitResult: ...

    def record_intervention(self, intervention_type: InterventionType) -> None: ...


@runtime_checkable
class AdjustableRateLimiter(BaseRateLimiter, Protocol):
    """Base limiter whose cooldowns react to feedback and intervention burden."""

    def can_show_intervention(
        self,
        intervention_type: InterventionType,
        session_duration_ms: int,
        burden_multiplier: float = 1.0,
    ) -> BaseRateLimitResult: ...

    def escalate_cooldown(self) -> None: ...

    def reset_cooldown(self) -> None: ...

    def adjust_cooldown_for_feedback(self, feedback: UserFeedback | str) -> None: ...
