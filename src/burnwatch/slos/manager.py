"""
SLO manager.

Holds one rolling window and one derived status per registered target,
re-evaluates on every write and on the periodic tick, and turns status
transitions into alerts and violation records.
"""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timedelta
from typing import Any

import structlog

from burnwatch.alerts.dispatcher import AlertSink
from burnwatch.alerts.models import AlertSeverity, AlertType
from burnwatch.core.timeutils import Clock, ensure_utc, utcnow
from burnwatch.slos.evaluator import SLOEvaluator
from burnwatch.slos.models import (
    SLOState,
    SLOStatus,
    SLOSummary,
    SLOTarget,
    SLOViolation,
    target_key,
)
from burnwatch.slos.window import MetricWindow

logger = structlog.get_logger()

WORST_PERFORMING_LIMIT = 5


class SLOManager:
    """Tracks SLO compliance for registered targets."""

    def __init__(
        self,
        alerts: AlertSink | None = None,
        *,
        clock: Clock = utcnow,
        evaluator: SLOEvaluator | None = None,
        max_violations: int = 1000,
    ) -> None:
        self.alerts = alerts
        self.clock = clock
        self.evaluator = evaluator or SLOEvaluator()
        self.max_violations = max_violations

        self._lock = threading.RLock()
        self._targets: dict[str, SLOTarget] = {}
        self._windows: dict[str, MetricWindow] = {}
        self._statuses: dict[str, SLOStatus] = {}
        self._violations: list[SLOViolation] = []
        self._open_alerts: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def add_target(self, target: SLOTarget | dict[str, Any]) -> SLOTarget:
        """Register a target, replacing any existing target with the same key."""
        if isinstance(target, dict):
            target = SLOTarget.from_dict(target)

        now = self.clock()
        key = target.key
        with self._lock:
            window = MetricWindow(target.window_delta)
            previous = self._windows.get(key)
            if previous is not None:
                for sample in previous.snapshot():
                    window.insert(sample.value, sample.timestamp, sample.tags, now=now)

            self._targets[key] = target
            self._windows[key] = window
            self._statuses[key] = SLOStatus.initial(target, now)

        logger.info(
            "slo_target_added",
            service=target.service,
            metric=target.metric,
            target=target.target,
            window=target.window,
            kind=target.kind.value if target.kind else None,
        )
        return target

    def remove_target(self, service: str, metric: str) -> bool:
        key = target_key(service, metric)
        with self._lock:
            if self._targets.pop(key, None) is None:
                return False
            self._windows.pop(key, None)
            self._statuses.pop(key, None)
            alert_id = self._open_alerts.pop(key, None)

        if alert_id and self.alerts is not None:
            self.alerts.resolve_alert(alert_id, "SLO target removed")
        logger.info("slo_target_removed", service=service, metric=metric)
        return True

    def get_targets(self) -> list[SLOTarget]:
        with self._lock:
            return list(self._targets.values())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_metric(
        self,
        service: str,
        metric: str,
        value: float,
        timestamp: datetime | None = None,
        tags: dict[str, str] | None = None,
    ) -> SLOStatus | None:
        """
        Record a sample and re-evaluate its target.

        Samples for unregistered targets are ignored.

        Returns:
            The updated status, or None when no target matches
        """
        key = target_key(service, metric)
        now = self.clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                logger.debug("slo_metric_ignored", service=service, metric=metric)
                return None

            window.insert(value, ensure_utc(timestamp) if timestamp else now, tags, now=now)
            status = self._evaluate(key, now)
            return copy.copy(status)

    def record_health(
        self,
        service: str,
        healthy: bool,
        details: dict[str, Any] | None = None,
    ) -> SLOStatus | None:
        """Record a health-check result as an availability sample."""
        tags = {k: str(v) for k, v in (details or {}).items()}
        return self.record_metric(service, "availability", 1.0 if healthy else 0.0, tags=tags)

    def tick(self) -> None:
        """Prune windows, re-evaluate every target and cap violation history."""
        now = self.clock()
        with self._lock:
            pruned = 0
            for key, window in self._windows.items():
                pruned += window.prune(now)
                self._evaluate(key, now)

            overflow = len(self._violations) - self.max_violations
            if overflow > 0:
                self._violations.sort(key=lambda v: v.timestamp)
                del self._violations[:overflow]

            count = len(self._targets)

        logger.debug("slo_tick", targets=count, samples_pruned=pruned)

    def _evaluate(self, key: str, now: datetime) -> SLOStatus:
        target = self._targets[key]
        previous = self._statuses[key]
        samples = self._windows[key].samples_in_window(now)

        current = self.evaluator.evaluate(target, samples, previous, now)
        self._statuses[key] = current
        self._handle_transition(target, previous, current, now)
        return current

    def _handle_transition(
        self,
        target: SLOTarget,
        previous: SLOStatus,
        current: SLOStatus,
        now: datetime,
    ) -> None:
        key = target.key
        if current.status is not SLOState.HEALTHY and current.status.rank > previous.status.rank:
            self._open_episode(target, previous, current, now)
        elif current.status is SLOState.HEALTHY and previous.status is not SLOState.HEALTHY:
            self._close_episode(key, now)

        if self.evaluator.is_fast_burn(current) and self.alerts is not None:
            self.alerts.trigger_alert(
                AlertType.SLO_FAST_BURN.value,
                AlertSeverity.WARNING,
                (
                    f"{target.service} {target.metric} is burning error budget fast: "
                    f"exhaustion in {current.time_to_exhaustion_hours:.1f}h"
                ),
                _alert_metadata(target, current),
            )

    def _open_episode(
        self,
        target: SLOTarget,
        previous: SLOStatus,
        current: SLOStatus,
        now: datetime,
    ) -> None:
        key = target.key
        critical = current.status is SLOState.CRITICAL

        self._violations.append(
            SLOViolation(
                id=f"violation_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}",
                target_key=key,
                timestamp=now,
                severity=current.status,
                current_value=current.current_value,
                threshold=target.target,
                error_budget_used=current.error_budget_used,
            )
        )
        logger.warning(
            "slo_status_changed",
            service=target.service,
            metric=target.metric,
            previous=previous.status.value,
            current=current.status.value,
            error_budget_used=current.error_budget_used,
        )

        if self.alerts is None:
            return

        alert_id = self.alerts.trigger_alert(
            (AlertType.SLO_VIOLATION if critical else AlertType.SLO_WARNING).value,
            AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING,
            (
                f"SLO {'violation' if critical else 'warning'}: {target.service} "
                f"{target.metric} is {current.current_value:.3f} (target {target.target}), "
                f"{current.error_budget_used:.4f} of {target.error_budget} budget used"
            ),
            _alert_metadata(target, current),
        )

        escalated_from = self._open_alerts.get(key)
        if escalated_from and escalated_from != alert_id:
            self.alerts.resolve_alert(escalated_from, "Escalated to critical")
        if alert_id:
            self._open_alerts[key] = alert_id

    def _close_episode(self, key: str, now: datetime) -> None:
        for violation in self._violations:
            if violation.target_key == key and not violation.resolved:
                violation.resolved = True
                violation.resolved_at = now

        alert_id = self._open_alerts.pop(key, None)
        if alert_id and self.alerts is not None:
            self.alerts.resolve_alert(alert_id, "SLO recovered to healthy")
        logger.info("slo_recovered", target_key=key)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_slo_status(self, service: str | None = None) -> list[SLOStatus]:
        with self._lock:
            return [
                copy.copy(status)
                for status in self._statuses.values()
                if service is None or status.target.service == service
            ]

    def get_status(self, service: str, metric: str) -> SLOStatus | None:
        with self._lock:
            status = self._statuses.get(target_key(service, metric))
            return copy.copy(status) if status else None

    def get_slo_summary(self) -> SLOSummary:
        statuses = self.get_slo_status()
        counts = {state: 0 for state in SLOState}
        for status in statuses:
            counts[status.status] += 1

        worst = sorted(
            (s for s in statuses if s.status is not SLOState.HEALTHY),
            key=lambda s: s.error_budget_used,
            reverse=True,
        )[:WORST_PERFORMING_LIMIT]

        return SLOSummary(
            total=len(statuses),
            healthy=counts[SLOState.HEALTHY],
            warning=counts[SLOState.WARNING],
            critical=counts[SLOState.CRITICAL],
            avg_error_budget_used=(
                sum(s.error_budget_used for s in statuses) / len(statuses) if statuses else 0.0
            ),
            worst_performing=worst,
        )

    def get_violations(self, window: timedelta | None = None) -> list[SLOViolation]:
        """Violations newest first, optionally limited to the trailing ``window``."""
        cutoff = self.clock() - window if window is not None else None
        with self._lock:
            violations = [
                copy.copy(v) for v in self._violations if cutoff is None or v.timestamp > cutoff
            ]
        return sorted(violations, key=lambda v: v.timestamp, reverse=True)

    def resolve_violation(self, violation_id: str) -> bool:
        now = self.clock()
        with self._lock:
            for violation in self._violations:
                if violation.id == violation_id and not violation.resolved:
                    violation.resolved = True
                    violation.resolved_at = now
                    logger.info("slo_violation_resolved", violation_id=violation_id)
                    return True
        return False


class DisabledSLOManager:
    """No-op SLO manager used when monitoring is switched off."""

    def add_target(self, target: SLOTarget | dict[str, Any]) -> SLOTarget:
        return target if isinstance(target, SLOTarget) else SLOTarget.from_dict(target)

    def remove_target(self, service: str, metric: str) -> bool:
        return False

    def get_targets(self) -> list[SLOTarget]:
        return []

    def record_metric(
        self,
        service: str,
        metric: str,
        value: float,
        timestamp: datetime | None = None,
        tags: dict[str, str] | None = None,
    ) -> SLOStatus | None:
        return None

    def record_health(
        self,
        service: str,
        healthy: bool,
        details: dict[str, Any] | None = None,
    ) -> SLOStatus | None:
        return None

    def tick(self) -> None:
        return None

    def get_slo_status(self, service: str | None = None) -> list[SLOStatus]:
        return []

    def get_status(self, service: str, metric: str) -> SLOStatus | None:
        return None

    def get_slo_summary(self) -> SLOSummary:
        return SLOSummary(0, 0, 0, 0, 0.0, [])

    def get_violations(self, window: timedelta | None = None) -> list[SLOViolation]:
        return []

    def resolve_violation(self, violation_id: str) -> bool:
        return False


def _alert_metadata(target: SLOTarget, status: SLOStatus) -> dict[str, Any]:
    return {
        "service": target.service,
        "metric": target.metric,
        "target_key": target.key,
        "target": target.target,
        "current_value": status.current_value,
        "error_budget_used": status.error_budget_used,
        "burn_rate": status.burn_rate,
        "time_to_exhaustion_hours": status.time_to_exhaustion_hours,
        "status": status.status.value,
    }
