"""
Custom exception hierarchy for the JITAI engine.

All exceptions inherit from JitaiException, so callers can catch every
engine-specific error at once or pick out specific types.

Data sparsity is never an error: components return neutral defaults
when there is not enough history. These exceptions cover programming
errors (bad arm ids, out-of-range rewards), configuration problems and
storage failures.
"""

from __future__ import annotations


class JitaiException(Exception):
    """Base exception for all JITAI engine errors."""


class ConfigurationError(JitaiException):
    """Invalid environment variables or settings values."""


class ValidationError(JitaiException):
    """Input validation, parsing, or type conversion failures."""


class InvalidArmError(ValidationError, ValueError):
    """An arm id outside the closed set of content arms."""

    def __init__(self, arm_id: object) -> None:
        super().__init__(f"Unknown content arm: {arm_id!r}")
        self.arm_id = arm_id


class InvalidRewardError(ValidationError, ValueError):
    """A reward that is not a finite number in [0, 1]."""

    def __init__(self, reward: object) -> None:
        super().__init__(f"Reward must be a finite number in [0, 1], got {reward!r}")
        self.reward = reward


class StorageError(JitaiException):
    """Outcome store or key-value store read/write failures."""


class SerializationError(JitaiException):
    """JSON encode/decode failures for persisted state."""
