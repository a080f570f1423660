"""
Closed enumerations used across the engine.

Raw strings coming from the UI or the outcome store are parsed into
these types once, at the boundary; everything past that point matches
on enum members.
"""

from __future__ import annotations

from enum import StrEnum


class ContentArm(StrEnum):
    """The eight intervention content types the bandit chooses between."""

    REFLECTION = "ReflectionQuestion"
    TIME_ALTERNATIVE = "TimeAlternative"
    BREATHING = "BreathingExercise"
    USAGE_STATS = "UsageStats"
    EMOTIONAL_APPEAL = "EmotionalAppeal"
    QUOTE = "Quote"
    GAMIFICATION = "Gamification"
    ACTIVITY_SUGGESTION = "ActivitySuggestion"

    @property
    def display_name(self) -> str:
        return _ARM_DISPLAY_NAMES[self]

    @classmethod
    def from_id(cls, arm_id: str) -> ContentArm | None:
        """Return the arm with this id, or None if the id is unknown."""
        try:
            return cls(arm_id)
        except ValueError:
            return None


_ARM_DISPLAY_NAMES: dict[ContentArm, str] = {
    ContentArm.REFLECTION: "Reflection Questions",
    ContentArm.TIME_ALTERNATIVE: "Time Alternatives",
    ContentArm.BREATHING: "Breathing Exercises",
    ContentArm.USAGE_STATS: "Usage Statistics",
    ContentArm.EMOTIONAL_APPEAL: "Emotional Appeals",
    ContentArm.QUOTE: "Inspirational Quotes",
    ContentArm.GAMIFICATION: "Gamification",
    ContentArm.ACTIVITY_SUGGESTION: "Activity Suggestions",
}


class UserChoice(StrEnum):
    """What the user did when shown an intervention."""

    GO_BACK = "GO_BACK"
    CONTINUE = "CONTINUE"
    DISMISS = "DISMISS"
    TIMEOUT = "TIMEOUT"
    OTHER = "OTHER"  # unknown or empty raw value

    @classmethod
    def parse(cls, raw: str | UserChoice | None) -> UserChoice:
        if isinstance(raw, UserChoice):
            return raw
        try:
            return cls(raw)
        except ValueError:
            return cls.OTHER


class UserFeedback(StrEnum):
    """Explicit feedback on an intervention. Parsing is case-sensitive."""

    HELPFUL = "HELPFUL"
    DISRUPTIVE = "DISRUPTIVE"
    NONE = "NONE"

    @classmethod
    def parse(cls, raw: str | UserFeedback | None) -> UserFeedback:
        if isinstance(raw, UserFeedback):
            return raw
        try:
            return cls(raw)
        except ValueError:
            return cls.NONE


class Trend(StrEnum):
    INCREASING = "INCREASING"
    STABLE = "STABLE"
    DECLINING = "DECLINING"


class BurdenLevel(StrEnum):
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TimingConfidence(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class InterventionDecision(StrEnum):
    INTERVENE_NOW = "INTERVENE_NOW"
    INTERVENE_WITH_CONSIDERATION = "INTERVENE_WITH_CONSIDERATION"
    WAIT_FOR_BETTER_OPPORTUNITY = "WAIT_FOR_BETTER_OPPORTUNITY"
    SKIP_INTERVENTION = "SKIP_INTERVENTION"


class DecisionSource(StrEnum):
    """Which stage of the rate limiter produced the decision."""

    CRITICAL_BURDEN = "CRITICAL_BURDEN"
    TIMING_OPTIMIZATION = "TIMING_OPTIMIZATION"
    BASIC_RATE_LIMIT = "BASIC_RATE_LIMIT"
    JITAI_APPROVED = "JITAI_APPROVED"


class OpportunityLevel(StrEnum):
    EXCELLENT = "EXCELLENT"  # score >= 70
    GOOD = "GOOD"            # score >= 50
    MODERATE = "MODERATE"    # score >= 30
    POOR = "POOR"

    @classmethod
    def from_score(cls, score: int) -> OpportunityLevel:
        if score >= 70:
            return cls.EXCELLENT
        if score >= 50:
            return cls.GOOD
        if score >= 30:
            return cls.MODERATE
        return cls.POOR


class UserPersona(StrEnum):
    HEAVY_COMPULSIVE_USER = "HEAVY_COMPULSIVE_USER"
    HEAVY_BINGE_USER = "HEAVY_BINGE_USER"
    MODERATE_BALANCED_USER = "MODERATE_BALANCED_USER"
    CASUAL_USER = "CASUAL_USER"
    PROBLEMATIC_PATTERN_USER = "PROBLEMATIC_PATTERN_USER"
    NEW_USER = "NEW_USER"


class ConfidenceLevel(StrEnum):
    """Confidence of a persona detection."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class InterventionType(StrEnum):
    REMINDER = "REMINDER"
    TIMER = "TIMER"
    CUSTOM = "CUSTOM"
