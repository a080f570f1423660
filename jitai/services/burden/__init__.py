"""
Intervention burden: metrics, tracking, fatigue recovery and trends.

Usage:
    from jitai.services.burden import InterventionBurdenTracker
"""

from jitai.services.burden.metrics import BurdenFactor, BurdenMetrics, level_for_score
from jitai.services.burden.recovery import FatigueRecoveryTracker
from jitai.services.burden.tracker import (
    BurdenAssessment,
    InterventionBurdenTracker,
    compute_burden_metrics,
)
from jitai.services.burden.trend import BurdenTrend, BurdenTrendMonitor, TrendDirection

__all__ = [
    "BurdenAssessment",
    "BurdenFactor",
    "BurdenMetrics",
    "BurdenTrend",
    "BurdenTrendMonitor",
    "FatigueRecoveryTracker",
    "InterventionBurdenTracker",
    "TrendDirection",
    "compute_burden_metrics",
    "level_for_score",
]
