"""
Shared test fixtures for the JITAI engine.

This module provides common fixtures used across all test modules:
- Environment setup (dev mode, no Redis)
- A fixed epoch-millisecond clock
- An outcome record factory
- In-memory outcome and key-value stores

Usage:
    All fixtures are automatically available to any test in the tests/ directory.
"""

from __future__ import annotations

import os

import pytest

# ---------------------------------------------------------------------------
# 1. Environment setup -- must run before any application imports
# ---------------------------------------------------------------------------

os.environ.setdefault("JITAI_DEV_MODE", "1")
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/15")

# ---------------------------------------------------------------------------
# Application imports (after env vars are set)
# ---------------------------------------------------------------------------

from jitai.models.enums import UserChoice, UserFeedback  # noqa: E402
from jitai.models.intervention_result import InterventionOutcomeRecord  # noqa: E402
from jitai.services.outcome_store import InMemoryOutcomeStore  # noqa: E402
from jitai.services.preference_store import PreferenceStore  # noqa: E402

# Fixed "now" for every clock-driven test
NOW_MS = 1_760_000_000_000
MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS


class FixedClock:
    """Epoch-millisecond clock that tests advance by hand."""

    def __init__(self, now_ms: int = NOW_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class SecondsClock:
    """Seconds clock for cache expiry."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# 2. Clocks
# ---------------------------------------------------------------------------


@pytest.fixture()
def now_ms() -> int:
    return NOW_MS


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def cache_clock() -> SecondsClock:
    return SecondsClock()


# ---------------------------------------------------------------------------
# 3. Records
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_record():
    """
    Factory for InterventionOutcomeRecord with sensible defaults.

    Keyword arguments override any field; `minutes_ago` sets the timestamp
    relative to NOW_MS.
    """

    def _make(
        user_choice: UserChoice | str = UserChoice.GO_BACK,
        minutes_ago: float = 60,
        **overrides,
    ) -> InterventionOutcomeRecord:
        fields = {
            "session_id": 1,
            "target_app": "com.example.social",
            "intervention_type": "REMINDER",
            "content_type": "ReflectionQuestion",
            "hour_of_day": 14,
            "day_of_week": 4,
            "is_weekend": False,
            "user_choice": UserChoice.parse(user_choice),
            "timestamp": int(NOW_MS - minutes_ago * MINUTE_MS),
            "time_to_decision_ms": 4000,
            "user_feedback": UserFeedback.NONE,
        }
        fields.update(overrides)
        return InterventionOutcomeRecord(**fields)

    return _make


# ---------------------------------------------------------------------------
# 4. Stores
# ---------------------------------------------------------------------------


@pytest.fixture()
def outcome_store() -> InMemoryOutcomeStore:
    return InMemoryOutcomeStore()


@pytest.fixture()
def kv_store() -> PreferenceStore:
    """Key-value store without a Redis backend."""
    return PreferenceStore(redis_service=None)
