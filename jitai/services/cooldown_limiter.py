"""
Base cooldown rate limiter.

The fixed, non-adaptive limits that always apply after the adaptive
stages have approved an intervention:

- sessions shorter than 2 minutes are never interrupted
- global cooldown of 5 minutes between any interventions, scaled by a
  cooldown multiplier that feedback can raise or lower and by the burden
  multiplier the adaptive gate passes in
- per-type cooldowns (reminders 10 minutes, timers 15 minutes)
- at most 4 interventions per sliding hour and 20 per sliding day

State is in-process; windows slide over recorded timestamps the same
way the API's in-memory request limiter does.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from jitai.config.settings import CooldownConfig
from jitai.models.enums import InterventionType, UserFeedback
from jitai.services.collaborators import BaseRateLimitResult

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


def _now_ms() -> int:
    return int(time.time() * 1000)


class CooldownRateLimiter:
    """Session, cooldown and volume limits for interventions."""

    MIN_MULTIPLIER = 0.5
    MAX_MULTIPLIER = 3.0
    ESCALATION_FACTOR = 1.5
    HELPFUL_FACTOR = 0.9
    DISRUPTIVE_FACTOR = 1.2

    def __init__(
        self,
        config: CooldownConfig | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config or CooldownConfig()
        self._clock = clock
        self._cooldown_multiplier = 1.0
        self._last_any: int | None = None
        self._last_by_type: dict[InterventionType, int] = {}
        self._history: list[int] = []  # shown timestamps within the last day

    @property
    def cooldown_multiplier(self) -> float:
        return self._cooldown_multiplier

    def _type_cooldown_ms(self, intervention_type: InterventionType) -> int:
        if intervention_type is InterventionType.TIMER:
            return self._config.timer_cooldown_minutes * MINUTE_MS
        return self._config.reminder_cooldown_minutes * MINUTE_MS

    @staticmethod
    def _type_key(intervention_type: InterventionType) -> InterventionType:
        # Custom interventions share the reminder cooldown
        if intervention_type is InterventionType.CUSTOM:
            return InterventionType.REMINDER
        return intervention_type

    def _prune(self, now: int) -> None:
        cutoff = now - DAY_MS
        self._history = [ts for ts in self._history if ts > cutoff]

    def can_show_intervention(
        self,
        intervention_type: InterventionType,
        session_duration_ms: int,
        burden_multiplier: float = 1.0,
    ) -> BaseRateLimitResult:
        """
        Check every fixed limit in order; the first failing one decides.

        Args:
            intervention_type: Kind of intervention being considered
            session_duration_ms: Length of the current session so far
            burden_multiplier: Extra scale on the global cooldown from the
                current intervention burden

        Returns:
            BaseRateLimitResult with the blocking reason and how long until
            that limit clears
        """
        now = self._clock()
        min_session_ms = self._config.min_session_minutes * MINUTE_MS

        if session_duration_ms < min_session_ms:
            return BaseRateLimitResult(
                allowed=False,
                reason=f"Session too short ({session_duration_ms // 1000}s < {self._config.min_session_minutes}min)",
                cooldown_remaining_ms=min_session_ms - session_duration_ms,
            )

        multiplier = self._cooldown_multiplier * burden_multiplier
        global_cooldown = int(self._config.global_cooldown_minutes * MINUTE_MS * multiplier)
        if self._last_any is not None and now - self._last_any < global_cooldown:
            remaining = global_cooldown - (now - self._last_any)
            return BaseRateLimitResult(
                allowed=False,
                reason=(
                    f"Global cooldown active ({remaining // 1000}s remaining, "
                    f"{multiplier:.2f}x multiplier)"
                ),
                cooldown_remaining_ms=remaining,
            )

        type_key = self._type_key(intervention_type)
        last_type = self._last_by_type.get(type_key)
        type_cooldown = self._type_cooldown_ms(type_key)
        if last_type is not None and now - last_type < type_cooldown:
            remaining = type_cooldown - (now - last_type)
            return BaseRateLimitResult(
                allowed=False,
                reason=f"{type_key} cooldown active ({remaining // 1000}s remaining)",
                cooldown_remaining_ms=remaining,
            )

        self._prune(now)
        last_hour = [ts for ts in self._history if ts > now - HOUR_MS]
        if len(last_hour) >= self._config.max_per_hour:
            return BaseRateLimitResult(
                allowed=False,
                reason=f"Hourly limit reached ({len(last_hour)}/{self._config.max_per_hour})",
                cooldown_remaining_ms=last_hour[0] + HOUR_MS - now,
            )

        if len(self._history) >= self._config.max_per_day:
            return BaseRateLimitResult(
                allowed=False,
                reason=f"Daily limit reached ({len(self._history)}/{self._config.max_per_day})",
                cooldown_remaining_ms=self._history[0] + DAY_MS - now,
            )

        return BaseRateLimitResult(allowed=True, reason="Rate limit checks passed")

    def record_intervention(self, intervention_type: InterventionType) -> None:
        now = self._clock()
        self._last_any = now
        self._last_by_type[self._type_key(intervention_type)] = now
        self._prune(now)
        self._history.append(now)
        logger.debug("Recorded %s intervention at %d", intervention_type, now)

    def _set_multiplier(self, value: float) -> None:
        previous = self._cooldown_multiplier
        self._cooldown_multiplier = max(self.MIN_MULTIPLIER, min(self.MAX_MULTIPLIER, value))
        logger.info("Cooldown multiplier %.2fx -> %.2fx", previous, self._cooldown_multiplier)

    def escalate_cooldown(self) -> None:
        self._set_multiplier(self._cooldown_multiplier * self.ESCALATION_FACTOR)

    def reset_cooldown(self) -> None:
        self._set_multiplier(1.0)

    def adjust_cooldown_for_feedback(self, feedback: UserFeedback | str) -> None:
        """HELPFUL shortens cooldowns by 10%, DISRUPTIVE lengthens them by 20%."""
        parsed = UserFeedback.parse(feedback)
        if parsed is UserFeedback.HELPFUL:
            self._set_multiplier(self._cooldown_multiplier * self.HELPFUL_FACTOR)
        elif parsed is UserFeedback.DISRUPTIVE:
            self._set_multiplier(self._cooldown_multiplier * self.DISRUPTIVE_FACTOR)
