"""Data model: enums, context snapshot and persisted outcome records."""

from jitai.models.base import Base
from jitai.models.context import InterventionContext
from jitai.models.enums import (
    BurdenLevel,
    ConfidenceLevel,
    ContentArm,
    DecisionSource,
    InterventionDecision,
    InterventionType,
    OpportunityLevel,
    TimingConfidence,
    Trend,
    UserChoice,
    UserFeedback,
    UserPersona,
)
from jitai.models.intervention_result import InterventionOutcomeRecord, InterventionResult

__all__ = [
    "Base",
    "BurdenLevel",
    "ConfidenceLevel",
    "ContentArm",
    "DecisionSource",
    "InterventionContext",
    "InterventionDecision",
    "InterventionOutcomeRecord",
    "InterventionResult",
    "InterventionType",
    "OpportunityLevel",
    "TimingConfidence",
    "Trend",
    "UserChoice",
    "UserFeedback",
    "UserPersona",
]
