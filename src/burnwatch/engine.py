"""
Monitoring engine.

The single handle that owns the SLO manager, cost tracker and alert
dispatcher, wires them together and runs their periodic ticks. Build it once
with ``create_engine`` and pass it to whatever records metrics and costs.
"""

from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import structlog

from burnwatch.alerts.dispatcher import AlertDispatcher, DisabledAlertDispatcher
from burnwatch.alerts.models import Alert, AlertRule, AlertStats
from burnwatch.alerts.notifiers import NotifierRegistry
from burnwatch.config.loader import MonitoringConfig, load_config
from burnwatch.config.settings import Settings, get_settings
from burnwatch.core.errors import ConfigurationError
from burnwatch.core.timeutils import Clock, utcnow
from burnwatch.costs.models import CostBreakdown, CostEvent, CostProjection
from burnwatch.costs.tracker import CostTracker, DisabledCostTracker
from burnwatch.defaults import default_config
from burnwatch.scheduling import PeriodicTask
from burnwatch.slos.manager import DisabledSLOManager, SLOManager
from burnwatch.slos.models import SLOStatus, SLOSummary

logger = structlog.get_logger()

SHUTDOWN_TIMEOUT = 30.0


class MonitoringEngine:
    """Owns and wires every monitoring component."""

    def __init__(
        self,
        slos: SLOManager | DisabledSLOManager,
        costs: CostTracker | DisabledCostTracker,
        alerts: AlertDispatcher | DisabledAlertDispatcher,
        settings: Settings,
        *,
        enabled: bool = True,
    ) -> None:
        self.slos = slos
        self.costs = costs
        self.alerts = alerts
        self.settings = settings
        self.enabled = enabled

        self.tasks = [
            PeriodicTask("slo_tick", slos.tick, settings.slo_tick_interval),
            PeriodicTask("cost_tick", costs.tick, settings.cost_tick_interval),
            PeriodicTask("alert_cleanup", alerts.cleanup, settings.alert_cleanup_interval),
        ]
        self._worker: asyncio.Task | None = None

    @classmethod
    def disabled(cls, settings: Settings) -> MonitoringEngine:
        return cls(
            DisabledSLOManager(),
            DisabledCostTracker(),
            DisabledAlertDispatcher(),
            settings,
            enabled=False,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return any(task.running for task in self.tasks)

    async def start(self) -> None:
        """Start the delivery worker and periodic ticks on the running loop."""
        if not self.enabled or self.running:
            return

        self._worker = asyncio.create_task(self.alerts.run_delivery_worker(), name="burnwatch-delivery")
        for task in self.tasks:
            task.start()
        logger.info("monitoring_started", environment=self.settings.environment)

    async def shutdown(self, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """Stop every timer, deliver what is queued and return."""
        for task in self.tasks:
            await task.stop()

        worker, self._worker = self._worker, None
        if worker is not None:
            try:
                await asyncio.wait_for(self.alerts.join(), timeout)
            except asyncio.TimeoutError:
                logger.warning("delivery_queue_not_drained", pending=self.alerts.pending_deliveries)
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker

        drained = await self.alerts.drain()
        logger.info("monitoring_stopped", drained=drained)

    async def __aenter__(self) -> MonitoringEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    def tick(self) -> None:
        """Run every periodic job once, in order."""
        for task in self.tasks:
            task.run_once()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def record_metric(
        self,
        service: str,
        metric: str,
        value: float,
        timestamp: datetime | None = None,
        tags: dict[str, str] | None = None,
    ) -> SLOStatus | None:
        return self.slos.record_metric(service, metric, value, timestamp, tags)

    def check_metric(self, metric: str, value: float, tags: dict[str, str] | None = None) -> list[str]:
        """Evaluate threshold rules against an ad hoc metric value."""
        return self.alerts.check_metric(metric, value, tags)

    def record_cost(
        self,
        service: str,
        operation: str,
        cost: float,
        currency: str = "USD",
        timestamp: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CostEvent | None:
        return self.costs.record_cost(service, operation, cost, currency, timestamp, metadata)

    def record_health(
        self,
        service: str,
        healthy: bool,
        details: dict[str, Any] | None = None,
    ) -> SLOStatus | None:
        return self.slos.record_health(service, healthy, details)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def get_slo_status(self, service: str | None = None) -> list[SLOStatus]:
        return self.slos.get_slo_status(service)

    def get_slo_summary(self) -> SLOSummary:
        return self.slos.get_slo_summary()

    def get_cost_breakdown(self, window: timedelta = timedelta(days=1)) -> CostBreakdown:
        return self.costs.get_cost_breakdown(window)

    def get_cost_projection(self, service: str) -> CostProjection:
        return self.costs.get_cost_projection(service)

    def get_active_alerts(self) -> list[Alert]:
        return self.alerts.get_active_alerts()

    def get_alert_history(self, limit: int = 100) -> list[Alert]:
        return self.alerts.get_alert_history(limit)

    def get_alert_stats(self, window: timedelta = timedelta(hours=24)) -> AlertStats:
        return self.alerts.get_alert_stats(window)

    def add_rule(self, rule: AlertRule | dict[str, Any]) -> AlertRule:
        return self.alerts.add_rule(rule)

    def update_rule(self, rule_id: str, patch: dict[str, Any]) -> bool:
        return self.alerts.update_rule(rule_id, patch)

    def remove_rule(self, rule_id: str) -> bool:
        return self.alerts.remove_rule(rule_id)

    def resolve_alert(self, alert_id: str, note: str | None = None) -> bool:
        return self.alerts.resolve_alert(alert_id, note)

    def status_report(self) -> dict[str, Any]:
        """Snapshot of every component for CLI and API output."""
        return {
            "enabled": self.enabled,
            "slo_summary": self.get_slo_summary().to_dict(),
            "slos": [s.to_dict() for s in self.get_slo_status()],
            "costs": [s.to_dict() for s in self.costs.get_cost_summary()],
            "cost_breakdown": self.get_cost_breakdown().to_dict(),
            "alert_stats": self.get_alert_stats().to_dict(),
            "active_alerts": [a.to_dict() for a in self.get_active_alerts()],
            "delivery": self.alerts.delivery_stats.to_dict(),
        }


def create_engine(
    settings: Settings | None = None,
    *,
    config: MonitoringConfig | None = None,
    config_path: str | Path | None = None,
    notifiers: NotifierRegistry | None = None,
    clock: Clock = utcnow,
    fallback_to_disabled: bool = True,
) -> MonitoringEngine:
    """
    Build a MonitoringEngine from settings and an optional config file.

    Args:
        settings: Engine settings (defaults to ``get_settings()``)
        config: Targets, budgets and rules merged over the built-in defaults
        config_path: YAML config file loaded before ``config`` is applied
        notifiers: Channel notifiers (defaults to those configured in settings)
        clock: Time source shared by every component
        fallback_to_disabled: Return a disabled engine instead of raising
            when construction fails with a ConfigurationError

    Returns:
        A wired engine; call ``start()`` inside an event loop to run ticks
    """
    settings = settings or get_settings()
    if not settings.enabled:
        logger.info("monitoring_disabled")
        return MonitoringEngine.disabled(settings)

    try:
        if config_path is not None:
            loaded = load_config(config_path)
            config = loaded.merge(config) if config is not None else loaded
        return _build(settings, config, notifiers, clock)
    except ConfigurationError as exc:
        if not fallback_to_disabled:
            raise
        logger.error("monitoring_init_failed", error=exc.message, **exc.details)
        return MonitoringEngine.disabled(settings)


def _build(
    settings: Settings,
    config: MonitoringConfig | None,
    notifiers: NotifierRegistry | None,
    clock: Clock,
) -> MonitoringEngine:
    merged = default_config() if settings.load_defaults else MonitoringConfig()
    if config is not None:
        merged = merged.merge(config)

    alerts = AlertDispatcher(
        notifiers if notifiers is not None else NotifierRegistry.from_settings(settings),
        rules=merged.rules,
        clock=clock,
        delivery_enabled=settings.alerting_enabled,
        default_cooldown_minutes=settings.default_cooldown_minutes,
        max_history=settings.max_alert_history,
    )

    slos = SLOManager(alerts, clock=clock, max_violations=settings.max_violations)
    for target in merged.targets:
        slos.add_target(target)

    costs: CostTracker | DisabledCostTracker
    if settings.cost_tracking_enabled:
        costs = CostTracker(
            alerts,
            clock=clock,
            budgets=merged.budgets,
            high_cost_threshold=settings.high_cost_threshold,
            retention_days=settings.cost_retention_days,
            budget_alert_retention_days=settings.budget_alert_retention_days,
        )
    else:
        costs = DisabledCostTracker()

    logger.info(
        "monitoring_initialized",
        targets=len(merged.targets),
        budgets=len(merged.budgets),
        rules=len(merged.rules),
        alerting=settings.alerting_enabled,
        cost_tracking=settings.cost_tracking_enabled,
    )
    return MonitoringEngine(slos, costs, alerts, settings)
