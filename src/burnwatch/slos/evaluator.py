"""
SLO evaluator.

Turns the samples of one target into an SLOStatus: current value, error budget
consumption, burn rate, projected exhaustion, status and trend.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Sequence

from burnwatch.slos.models import (
    MetricKind,
    MetricSample,
    SLOState,
    SLOStatus,
    SLOTarget,
    Trend,
)

CRITICAL_BUDGET_FRACTION = 0.9
WARNING_BUDGET_FRACTION = 0.75
WARNING_EXHAUSTION_HOURS = 24.0
FAST_BURN_EXHAUSTION_HOURS = 6.0
TREND_SENSITIVITY = 0.01


class SLOEvaluator:
    """Stateless evaluator for SLO targets."""

    def evaluate(
        self,
        target: SLOTarget,
        samples: Sequence[MetricSample],
        previous: SLOStatus,
        now: datetime,
    ) -> SLOStatus:
        """
        Evaluate a target against the samples inside its window.

        Args:
            target: The SLO target being evaluated
            samples: Samples inside the target's window
            previous: Status from the previous evaluation (burn rate and trend baseline)
            now: Evaluation time

        Returns:
            A new SLOStatus; ``previous`` is not modified
        """
        current_value = self.calculate_value(target.kind, samples)
        used = self.calculate_budget_used(target, current_value)
        remaining = target.error_budget - used

        burn_rate = self.calculate_burn_rate(previous, used, now)
        time_to_exhaustion = self.project_exhaustion_hours(remaining, burn_rate)

        return SLOStatus(
            target=target,
            current_value=current_value,
            error_budget_used=used,
            error_budget_remaining=remaining,
            status=self.classify(target, used, time_to_exhaustion),
            trend=self.calculate_trend(target, current_value, previous.current_value),
            burn_rate=burn_rate,
            time_to_exhaustion_hours=time_to_exhaustion,
            last_updated=now,
            sample_count=len(samples),
        )

    @staticmethod
    def calculate_value(kind: MetricKind | None, samples: Sequence[MetricSample]) -> float:
        """Aggregate sample values; an empty window evaluates to 0."""
        if not samples:
            return 0.0

        if kind in (MetricKind.RATIO_GOOD, MetricKind.RATIO_BAD):
            # Samples are 0/1 indicators; for RATIO_BAD a 1 marks a failure
            hits = sum(1 for s in samples if s.value == 1)
            return hits / len(samples) * 100

        if kind is MetricKind.PERCENTILE:
            values = sorted(s.value for s in samples)
            return values[math.floor(len(values) * 0.95)]

        return sum(s.value for s in samples) / len(samples)

    @staticmethod
    def calculate_budget_used(target: SLOTarget, current_value: float) -> float:
        if target.kind is MetricKind.RATIO_BAD:
            return max(0.0, current_value)

        shortfall = max(0.0, target.target - current_value)
        return shortfall / target.target * target.error_budget

    @staticmethod
    def calculate_burn_rate(previous: SLOStatus, used: float, now: datetime) -> float:
        """Budget units consumed per hour since the previous evaluation."""
        hours = (now - previous.last_updated).total_seconds() / 3600
        if hours == 0:
            return 0.0
        return (used - previous.error_budget_used) / hours

    @staticmethod
    def project_exhaustion_hours(remaining: float, burn_rate: float) -> float | None:
        if burn_rate <= 0:
            return None
        # An already exhausted budget projects to zero, not a negative time
        return max(0.0, remaining) / burn_rate * 24

    @staticmethod
    def classify(target: SLOTarget, used: float, time_to_exhaustion: float | None) -> SLOState:
        if used >= target.error_budget * CRITICAL_BUDGET_FRACTION:
            return SLOState.CRITICAL
        if used >= target.error_budget * WARNING_BUDGET_FRACTION:
            return SLOState.WARNING
        if time_to_exhaustion is not None and time_to_exhaustion < WARNING_EXHAUSTION_HOURS:
            return SLOState.WARNING
        return SLOState.HEALTHY

    @staticmethod
    def calculate_trend(target: SLOTarget, current: float, previous: float) -> Trend:
        delta = current - previous
        if abs(delta) <= target.target * TREND_SENSITIVITY:
            return Trend.STABLE

        improved = delta < 0 if target.kind and target.kind.lower_is_better else delta > 0
        return Trend.IMPROVING if improved else Trend.DEGRADING

    @staticmethod
    def is_fast_burn(status: SLOStatus) -> bool:
        tte = status.time_to_exhaustion_hours
        return tte is not None and tte < FAST_BURN_EXHAUSTION_HOURS
