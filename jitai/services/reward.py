"""
Reward calculation for intervention outcomes.

Maps what the user did (and how the session continued) to a scalar
reward in [0, 1] that feeds the Thompson sampling bandit.

Reward composition:
- Base reward from the user's choice (GO_BACK best, DISMISS worst)
- Explicit feedback adjusts it (HELPFUL up, DISRUPTIVE down)
- Session behaviour after the intervention adjusts it further
- The sum is clamped to [0, 1]

Usage:
    calculator = RewardCalculator()
    reward = calculator.calculate_reward(UserChoice.GO_BACK, feedback=UserFeedback.HELPFUL)
"""

from __future__ import annotations

from dataclasses import dataclass

from jitai.models.enums import UserChoice, UserFeedback
from jitai.models.intervention_result import InterventionOutcomeRecord

MINUTE_MS = 60_000


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class RewardTerm:
    """One additive term of a reward, for explanations."""
    label: str
    amount: float

    def format(self) -> str:
        return f"{self.label} ({self.amount:+.1f})"


class RewardCalculator:
    """
    Stateless reward function.

    Choice and feedback may be passed as enums or raw strings; raw
    strings are parsed (unknown choices get the neutral base reward,
    feedback is matched case-sensitively).
    """

    BASE_REWARDS: dict[UserChoice, float] = {
        UserChoice.GO_BACK: 1.0,
        UserChoice.CONTINUE: 0.3,
        UserChoice.TIMEOUT: 0.1,
        UserChoice.DISMISS: 0.0,
    }
    NEUTRAL_BASE_REWARD = 0.5

    HELPFUL_BONUS = 0.2
    DISRUPTIVE_PENALTY = -0.3

    SHORT_SESSION_MS = 5 * MINUTE_MS
    LONG_SESSION_MS = 15 * MINUTE_MS
    SHORT_SESSION_BONUS = 0.1
    LONG_SESSION_PENALTY = -0.1
    SESSION_ENDED_BONUS = 0.1

    QUICK_REOPEN_PENALTY = -0.2
    QUICK_REOPEN_THRESHOLD_MS = 2 * MINUTE_MS
    LATE_REOPEN_THRESHOLD_MS = 5 * MINUTE_MS
    LATE_REOPEN_BONUS = 0.1

    # Confidence bonus ceiling for calculate_normalized_reward
    LOW_CONFIDENCE_BONUS = 0.1

    def reward_terms(
        self,
        user_choice: UserChoice | str | None,
        feedback: UserFeedback | str | None = None,
        session_continued: bool | None = None,
        session_duration_after_ms: int | None = None,
        quick_reopen: bool | None = None,
        reopen_delay_ms: int | None = None,
    ) -> list[RewardTerm]:
        """
        Every term that contributes to the reward, base first.

        The quick-reopen flag and an explicit short reopen delay are
        independent terms; when both are present both apply.
        """
        choice = UserChoice.parse(user_choice)
        terms = [RewardTerm(choice.value, self.BASE_REWARDS.get(choice, self.NEUTRAL_BASE_REWARD))]

        parsed_feedback = UserFeedback.parse(feedback)
        if parsed_feedback is UserFeedback.HELPFUL:
            terms.append(RewardTerm("Helpful feedback", self.HELPFUL_BONUS))
        elif parsed_feedback is UserFeedback.DISRUPTIVE:
            terms.append(RewardTerm("Disruptive feedback", self.DISRUPTIVE_PENALTY))

        if session_continued is False:
            terms.append(RewardTerm("Session ended", self.SESSION_ENDED_BONUS))

        if session_duration_after_ms is not None:
            if session_duration_after_ms > self.LONG_SESSION_MS:
                terms.append(RewardTerm("Long session after", self.LONG_SESSION_PENALTY))
            elif session_duration_after_ms <= self.SHORT_SESSION_MS:
                terms.append(RewardTerm("Short session after", self.SHORT_SESSION_BONUS))

        if quick_reopen is True:
            terms.append(RewardTerm("Quick reopen", self.QUICK_REOPEN_PENALTY))

        if reopen_delay_ms is not None:
            if reopen_delay_ms < self.QUICK_REOPEN_THRESHOLD_MS:
                terms.append(RewardTerm("Reopened within 2 min", self.QUICK_REOPEN_PENALTY))
            elif reopen_delay_ms > self.LATE_REOPEN_THRESHOLD_MS:
                terms.append(RewardTerm("Stayed away > 5 min", self.LATE_REOPEN_BONUS))

        return terms

    def calculate_reward(
        self,
        user_choice: UserChoice | str | None,
        feedback: UserFeedback | str | None = None,
        session_continued: bool | None = None,
        session_duration_after_ms: int | None = None,
        quick_reopen: bool | None = None,
        reopen_delay_ms: int | None = None,
    ) -> float:
        """
        Reward in [0, 1] for one intervention outcome.

        Args:
            user_choice: GO_BACK / CONTINUE / DISMISS / TIMEOUT (anything else is neutral)
            feedback: HELPFUL / DISRUPTIVE, exact case
            session_continued: False when the user left the app afterwards
            session_duration_after_ms: How long the session lasted after the intervention
            quick_reopen: True when the user reopened the app right away
            reopen_delay_ms: Time until the app was reopened

        Returns:
            Clamped reward
        """
        terms = self.reward_terms(
            user_choice,
            feedback,
            session_continued,
            session_duration_after_ms,
            quick_reopen,
            reopen_delay_ms,
        )
        return _clamp(sum(term.amount for term in terms))

    def calculate_reward_from_record(self, record: InterventionOutcomeRecord) -> float:
        """Reward for a stored outcome record."""
        duration_after: int | None = None
        if record.final_session_duration_ms is not None:
            duration_after = max(0, record.final_session_duration_ms - record.session_duration_at_show_ms)
        session_continued = None
        if record.session_ended_normally is not None:
            session_continued = not record.session_ended_normally
        return self.calculate_reward(
            record.user_choice,
            record.user_feedback,
            session_continued=session_continued,
            session_duration_after_ms=duration_after,
        )

    def calculate_binary_reward(self, user_choice: UserChoice | str | None) -> float:
        """1.0 for GO_BACK, 0.0 for everything else."""
        return 1.0 if UserChoice.parse(user_choice) is UserChoice.GO_BACK else 0.0

    def is_successful_outcome(
        self,
        user_choice: UserChoice | str | None,
        feedback: UserFeedback | str | None = None,
    ) -> bool:
        """GO_BACK, or any choice the user explicitly marked HELPFUL."""
        return (
            UserChoice.parse(user_choice) is UserChoice.GO_BACK
            or UserFeedback.parse(feedback) is UserFeedback.HELPFUL
        )

    def calculate_normalized_reward(self, base_reward: float, confidence: float) -> float:
        """Add a small bonus for low-confidence selections, then clamp."""
        return _clamp(base_reward + (1.0 - confidence) * self.LOW_CONFIDENCE_BONUS)

    def explain_reward(
        self,
        user_choice: UserChoice | str | None,
        feedback: UserFeedback | str | None = None,
        session_continued: bool | None = None,
        session_duration_after_ms: int | None = None,
        quick_reopen: bool | None = None,
        reopen_delay_ms: int | None = None,
    ) -> str:
        """Human-readable breakdown, e.g. "GO_BACK (+1.0) + Helpful feedback (+0.2) = 1.00"."""
        terms = self.reward_terms(
            user_choice,
            feedback,
            session_continued,
            session_duration_after_ms,
            quick_reopen,
            reopen_delay_ms,
        )
        total = _clamp(sum(term.amount for term in terms))
        return " + ".join(term.format() for term in terms) + f" = {total:.2f}"
