"""
SLO (Service Level Objective) tracking.

This module handles rolling metric windows, error budget evaluation,
burn-rate projection and SLO compliance tracking.
"""

from burnwatch.slos.evaluator import SLOEvaluator
from burnwatch.slos.manager import DisabledSLOManager, SLOManager
from burnwatch.slos.models import (
    MetricKind,
    MetricSample,
    SLOState,
    SLOStatus,
    SLOSummary,
    SLOTarget,
    SLOViolation,
    Trend,
    target_key,
)
from burnwatch.slos.window import MetricWindow

__all__ = [
    "DisabledSLOManager",
    "MetricKind",
    "MetricSample",
    "MetricWindow",
    "SLOEvaluator",
    "SLOManager",
    "SLOState",
    "SLOStatus",
    "SLOSummary",
    "SLOTarget",
    "SLOViolation",
    "Trend",
    "target_key",
]
