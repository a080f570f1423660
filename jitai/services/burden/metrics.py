"""
Intervention burden metrics and scoring.

A BurdenMetrics snapshot summarizes how a user has been responding to
interventions (dismissals, timeouts, snoozes, feedback, spacing). The
burden score is the sum of fixed-point rules over those signals; the
score maps to a BurdenLevel and a cooldown multiplier.

Scoring rules (points):
- dismiss rate > 40%: 3
- timeout rate > 30%: 3
- more than 5 snoozes: 2
- declining engagement: 4
- more than 15 interventions in 24h: 2
- 7-day effectiveness < 35%: 3
- declining effectiveness: 4
- helpfulness < 30% with at least 5 feedback responses: 5
- average spacing < 10 min: 2
- minimum spacing < 3 min: 3

Levels: >= 15 CRITICAL, >= 10 HIGH, >= 5 MODERATE, else LOW.
"""

from __future__ import annotations

from dataclasses import dataclass

from jitai.models.enums import BurdenLevel, Trend

# Score thresholds per level, highest first
LEVEL_THRESHOLDS: tuple[tuple[int, BurdenLevel], ...] = (
    (15, BurdenLevel.CRITICAL),
    (10, BurdenLevel.HIGH),
    (5, BurdenLevel.MODERATE),
)

COOLDOWN_MULTIPLIERS: dict[BurdenLevel, float] = {
    BurdenLevel.LOW: 1.0,
    BurdenLevel.MODERATE: 1.5,
    BurdenLevel.HIGH: 2.5,
    BurdenLevel.CRITICAL: 4.0,
}


def level_for_score(score: int) -> BurdenLevel:
    for threshold, level in LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return BurdenLevel.LOW


@dataclass(frozen=True)
class BurdenFactor:
    """One scoring rule that fired."""
    name: str
    points: int
    description: str


@dataclass(frozen=True)
class BurdenMetrics:
    """
    Derived burden signals over an analysis window.

    Defaults describe a user with no history: neutral rates, relaxed
    spacing and no firing rules.
    """

    # Response signals
    avg_response_time_ms: float = 5000.0
    dismiss_rate: float = 0.0
    timeout_rate: float = 0.0
    snooze_frequency: int = 0

    # Engagement
    recent_go_back_rate: float = 0.5
    engagement_trend: Trend = Trend.STABLE

    # Explicit feedback
    helpful_feedback_count: int = 0
    disruptive_feedback_count: int = 0
    helpfulness_ratio: float = 0.5  # neutral when no feedback

    # Effectiveness
    effectiveness_rolling_7d: float = 0.5
    effectiveness_trend: Trend = Trend.STABLE

    # Volume and spacing
    interventions_last_24h: int = 0
    interventions_last_7d: int = 0
    avg_intervention_spacing_minutes: float = 30.0
    min_intervention_spacing_minutes: float = 30.0

    sample_size: int = 0
    calculated_at: int = 0  # epoch ms

    MIN_RELIABLE_SAMPLES = 10
    MIN_FEEDBACK_RESPONSES = 5

    @property
    def total_feedback_count(self) -> int:
        return self.helpful_feedback_count + self.disruptive_feedback_count

    def is_reliable(self) -> bool:
        return self.sample_size >= self.MIN_RELIABLE_SAMPLES

    def burden_factors(self) -> list[BurdenFactor]:
        """Every scoring rule that fired, in rule order."""
        factors: list[BurdenFactor] = []

        def fire(condition: bool, name: str, points: int, description: str) -> None:
            if condition:
                factors.append(BurdenFactor(name, points, description))

        fire(self.dismiss_rate > 0.40, "high_dismiss_rate", 3,
             f"Dismissing {self.dismiss_rate:.0%} of interventions")
        fire(self.timeout_rate > 0.30, "high_timeout_rate", 3,
             f"Ignoring {self.timeout_rate:.0%} of interventions")
        fire(self.snooze_frequency > 5, "frequent_snoozing", 2,
             f"Snoozed {self.snooze_frequency} times")
        fire(self.engagement_trend is Trend.DECLINING, "declining_engagement", 4,
             "Engagement is declining")
        fire(self.interventions_last_24h > 15, "high_daily_volume", 2,
             f"{self.interventions_last_24h} interventions in the last 24h")
        fire(self.effectiveness_rolling_7d < 0.35, "low_effectiveness", 3,
             f"Only {self.effectiveness_rolling_7d:.0%} effective this week")
        fire(self.effectiveness_trend is Trend.DECLINING, "declining_effectiveness", 4,
             "Effectiveness is declining")
        fire(
            self.total_feedback_count >= self.MIN_FEEDBACK_RESPONSES and self.helpfulness_ratio < 0.30,
            "negative_feedback", 5,
            f"Only {self.helpfulness_ratio:.0%} of feedback is positive",
        )
        fire(self.avg_intervention_spacing_minutes < 10, "tight_average_spacing", 2,
             f"Interventions {self.avg_intervention_spacing_minutes:.1f} min apart on average")
        fire(self.min_intervention_spacing_minutes < 3, "tight_minimum_spacing", 3,
             f"Interventions as close as {self.min_intervention_spacing_minutes:.1f} min apart")
        return factors

    def burden_score(self) -> int:
        return sum(factor.points for factor in self.burden_factors())

    def burden_level(self) -> BurdenLevel:
        return level_for_score(self.burden_score())

    def effective_burden_level(self) -> BurdenLevel:
        """Burden level to act on; MODERATE while the sample is too small to trust."""
        if not self.is_reliable():
            return BurdenLevel.MODERATE
        return self.burden_level()

    def recommended_cooldown_multiplier(self) -> float:
        return COOLDOWN_MULTIPLIERS[self.burden_level()]

    def should_reduce_interventions(self) -> bool:
        return self.is_reliable() and self.burden_level() in (BurdenLevel.HIGH, BurdenLevel.CRITICAL)

    def summary(self) -> str:
        """One-line summary with the firing factors."""
        if not self.is_reliable():
            return f"Insufficient data ({self.sample_size} interventions)"
        level = self.burden_level()
        factors = self.burden_factors()
        if not factors:
            return f"Burden {level} (score 0)"
        details = "; ".join(factor.description for factor in factors)
        return f"Burden {level} (score {self.burden_score()}): {details}"
