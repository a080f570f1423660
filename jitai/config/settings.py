"""
Runtime settings for the JITAI engine.

Scoring thresholds live next to the code that applies them (as class
constants); this module holds the operational knobs that deployments
change: cache lifetimes, lookback windows, persistence keys and the
database URL. Every value can be overridden with a JITAI_* environment
variable.

Usage:
    from jitai.config.settings import load_settings

    settings = load_settings()
    settings.timing.cache_minutes  # 15
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from jitai.lib.exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./jitai.db"


@dataclass(frozen=True)
class BanditConfig:
    """Thompson sampling persistence and seeding."""
    state_key: str = "thompson_sampling_state_v1"
    min_total_pulls: int = 30  # has_sufficient_data threshold
    random_seed: int | None = None


@dataclass(frozen=True)
class TimingConfig:
    """Timing optimizer analysis window and cache, and the online pattern learner."""
    cache_minutes: int = 15
    lookback_days: int = 30
    learner_state_key: str = "timing_patterns_v1"
    learning_rate: float = 0.15


@dataclass(frozen=True)
class BurdenConfig:
    """Burden tracker analysis window, cache and trend history."""
    cache_minutes: int = 10
    lookback_days: int = 7
    history_key: str = "burden_score_history"
    history_size: int = 7


@dataclass(frozen=True)
class CooldownConfig:
    """Base rate limiter cooldowns and volume caps."""
    global_cooldown_minutes: int = 5
    reminder_cooldown_minutes: int = 10
    timer_cooldown_minutes: int = 15
    min_session_minutes: int = 2
    max_per_hour: int = 4
    max_per_day: int = 20


@dataclass(frozen=True)
class StorageConfig:
    """Outcome store connection."""
    database_url: str = DEFAULT_DATABASE_URL
    page_size: int = 500


@dataclass(frozen=True)
class JitaiSettings:
    """All engine settings."""
    bandit: BanditConfig = field(default_factory=BanditConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    burden: BurdenConfig = field(default_factory=BurdenConfig)
    cooldown: CooldownConfig = field(default_factory=CooldownConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


def _int_env(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> JitaiSettings:
    """
    Build settings from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        JitaiSettings with overrides applied

    Raises:
        ConfigurationError: If a numeric variable is malformed or out of range
    """
    env = os.environ if env is None else env

    seed_raw = env.get("JITAI_RANDOM_SEED")
    random_seed = _int_env(env, "JITAI_RANDOM_SEED", 0, minimum=0) if seed_raw else None

    return JitaiSettings(
        bandit=BanditConfig(
            state_key=env.get("JITAI_BANDIT_STATE_KEY", BanditConfig.state_key),
            random_seed=random_seed,
        ),
        timing=TimingConfig(
            cache_minutes=_int_env(env, "JITAI_TIMING_CACHE_MINUTES", TimingConfig.cache_minutes),
            lookback_days=_int_env(env, "JITAI_TIMING_LOOKBACK_DAYS", TimingConfig.lookback_days),
        ),
        burden=BurdenConfig(
            cache_minutes=_int_env(env, "JITAI_BURDEN_CACHE_MINUTES", BurdenConfig.cache_minutes),
            lookback_days=_int_env(env, "JITAI_BURDEN_LOOKBACK_DAYS", BurdenConfig.lookback_days),
        ),
        storage=StorageConfig(
            database_url=env.get("JITAI_DATABASE_URL", DEFAULT_DATABASE_URL),
            page_size=_int_env(env, "JITAI_STORE_PAGE_SIZE", StorageConfig.page_size),
        ),
    )
