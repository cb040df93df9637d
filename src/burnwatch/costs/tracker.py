"""
Cost tracker.

Records cost events, keeps a day/month spend summary per budgeted service
(plus the ``total`` budget across services) and raises budget and high-cost
alerts.

Budget thresholds use a trigger band: a threshold fraction ``f`` fires while
the spend percentage sits in ``[f*100, f*100 + 5)``. Each
``(service, period, threshold)`` fires once and re-arms only after the
percentage falls back below ``f*100``, which normally happens at day or month
rollover. Above 100% the bands stay quiet and a single critical over-budget
alert fires instead, re-arming once spend is back at or under the limit.
"""

from __future__ import annotations

import copy
import threading
from datetime import datetime, timedelta
from typing import Any

import structlog

from burnwatch.alerts.dispatcher import AlertSink
from burnwatch.alerts.models import AlertSeverity, AlertType
from burnwatch.core.errors import ValidationError
from burnwatch.core.timeutils import (
    Clock,
    days_remaining_in_month,
    ensure_utc,
    start_of_day,
    start_of_month,
    utcnow,
)
from burnwatch.costs.ledger import BudgetLedger
from burnwatch.costs.models import (
    TOTAL_BUDGET,
    BudgetAlert,
    BudgetConfig,
    BudgetPeriod,
    CostBreakdown,
    CostEvent,
    CostProjection,
    CostSummary,
    CostTrend,
    OperationCost,
    SpendWindow,
)

logger = structlog.get_logger()

BAND_WIDTH = 5.0
MAX_EXHAUSTION_DAYS = 31
DAYS_PER_MONTH = 30

# Threshold marker for the over-budget alert in the fired-band bookkeeping
OVER_BUDGET = None


class CostTracker:
    """Tracks spend against budgets and raises budget alerts."""

    def __init__(
        self,
        alerts: AlertSink | None = None,
        *,
        clock: Clock = utcnow,
        budgets: list[BudgetConfig] | None = None,
        enabled: bool = True,
        high_cost_threshold: float = 10.0,
        retention_days: int = 30,
        budget_alert_retention_days: int = 30,
    ) -> None:
        self.alerts = alerts
        self.clock = clock
        self.enabled = enabled
        self.high_cost_threshold = high_cost_threshold
        self.retention = timedelta(days=retention_days)
        self.budget_alert_retention = timedelta(days=budget_alert_retention_days)

        self._lock = threading.RLock()
        self._ledger = BudgetLedger()
        self._budgets: dict[str, BudgetConfig] = {}
        self._summaries: dict[str, CostSummary] = {}
        self._budget_alerts: list[BudgetAlert] = []
        self._fired: set[tuple[str, BudgetPeriod, float | None]] = set()

        for budget in budgets or []:
            self.set_budget(budget)

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    def set_budget(self, budget: BudgetConfig | dict[str, Any]) -> BudgetConfig:
        if isinstance(budget, dict):
            budget = BudgetConfig.from_dict(budget)

        with self._lock:
            self._budgets[budget.service] = budget
            self._refresh_summary(budget.service, self.clock())

        logger.info(
            "budget_configured",
            service=budget.service,
            daily_limit=budget.daily_limit,
            monthly_limit=budget.monthly_limit,
            currency=budget.currency,
        )
        return budget

    def get_budget(self, service: str) -> BudgetConfig | None:
        with self._lock:
            return self._budgets.get(service)

    def get_budgets(self) -> list[BudgetConfig]:
        with self._lock:
            return list(self._budgets.values())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_cost(
        self,
        service: str,
        operation: str,
        cost: float,
        currency: str = "USD",
        timestamp: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CostEvent | None:
        """
        Record a cost event and check budgets for the service and ``total``.

        Returns:
            The recorded event, or None when cost tracking is disabled

        Raises:
            ValidationError: If the cost is negative
        """
        if not self.enabled:
            return None
        if cost < 0:
            raise ValidationError("Cost must not be negative", {"service": service, "cost": cost})

        now = self.clock()
        event = CostEvent(
            service=service,
            operation=operation,
            cost=cost,
            currency=currency,
            timestamp=ensure_utc(timestamp) if timestamp else now,
            metadata=dict(metadata or {}),
        )

        with self._lock:
            self._ledger.append(event)
            for name in dict.fromkeys((service, TOTAL_BUDGET)):
                if name in self._budgets:
                    summary = self._refresh_summary(name, now)
                    self._check_budget(name, summary, now)

        logger.debug("cost_recorded", service=service, operation=operation, cost=cost, currency=currency)

        if cost > self.high_cost_threshold and self.alerts is not None:
            self.alerts.trigger_alert(
                AlertType.HIGH_COST_OPERATION.value,
                AlertSeverity.WARNING,
                f"High cost operation: {service}.{operation} cost {currency} {cost:.2f}",
                {
                    "service": service,
                    "operation": operation,
                    "cost": cost,
                    "currency": currency,
                    "threshold": self.high_cost_threshold,
                    "metadata": event.metadata,
                },
            )
        return event

    def tick(self) -> None:
        """Refresh every summary, re-check bands and prune old data."""
        now = self.clock()
        with self._lock:
            for name in list(self._budgets):
                summary = self._refresh_summary(name, now)
                self._check_budget(name, summary, now)

            pruned = self._ledger.prune(now - self.retention)
            cutoff = now - self.budget_alert_retention
            self._budget_alerts = [a for a in self._budget_alerts if a.timestamp > cutoff]

        logger.debug("cost_tick", budgets=len(self._budgets), events_pruned=pruned)

    def _refresh_summary(self, name: str, now: datetime) -> CostSummary:
        budget = self._budgets[name]
        service = None if name == TOTAL_BUDGET else name

        daily = self._ledger.total_between(service, start_of_day(now), now)
        monthly = self._ledger.total_between(service, start_of_month(now), now)

        summary = CostSummary(
            service=name,
            daily=SpendWindow(cost=daily, percentage=daily / budget.daily_limit * 100),
            monthly=SpendWindow(cost=monthly, percentage=monthly / budget.monthly_limit * 100),
            currency=budget.currency,
            last_updated=now,
        )
        self._summaries[name] = summary
        return summary

    def _check_budget(self, name: str, summary: CostSummary, now: datetime) -> None:
        budget = self._budgets[name]
        for period, spend in ((BudgetPeriod.DAILY, summary.daily), (BudgetPeriod.MONTHLY, summary.monthly)):
            percentage = spend.percentage

            for fraction in budget.alert_thresholds:
                key = (name, period, fraction)
                lower = fraction * 100
                if percentage < lower:
                    self._fired.discard(key)
                elif percentage < lower + BAND_WIDTH and percentage <= 100 and key not in self._fired:
                    self._fired.add(key)
                    self._fire(budget, period, fraction, spend, AlertSeverity.WARNING, now)

            over_key = (name, period, OVER_BUDGET)
            if percentage <= 100:
                self._fired.discard(over_key)
            elif over_key not in self._fired:
                self._fired.add(over_key)
                self._fire(budget, period, 1.0, spend, AlertSeverity.CRITICAL, now)

    def _fire(
        self,
        budget: BudgetConfig,
        period: BudgetPeriod,
        threshold: float,
        spend: SpendWindow,
        severity: AlertSeverity,
        now: datetime,
    ) -> None:
        limit = budget.limit_for(period)
        record = BudgetAlert(
            service=budget.service,
            period=period,
            threshold=threshold,
            current_spend=spend.cost,
            budget_limit=limit,
            percentage=spend.percentage,
            severity=severity,
            timestamp=now,
        )

        if self.alerts is not None:
            record.alert_id = self.alerts.trigger_alert(
                AlertType.BUDGET_ALERT.value,
                severity,
                (
                    f"{budget.service} {period.value} spend is {spend.percentage:.1f}% of budget "
                    f"({budget.currency} {spend.cost:.2f} / {limit:.2f})"
                ),
                record.to_dict() | {"currency": budget.currency},
            )
        self._budget_alerts.append(record)

        logger.warning(
            "budget_threshold_reached",
            service=budget.service,
            period=period.value,
            threshold=threshold,
            percentage=spend.percentage,
            severity=severity.value,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_cost_summary(self, service: str | None = None) -> list[CostSummary]:
        with self._lock:
            return [
                copy.deepcopy(s)
                for name, s in self._summaries.items()
                if service is None or name == service
            ]

    def get_cost_projection(self, service: str) -> CostProjection:
        """
        Extrapolate the last 24 hours of spend.

        With a budget the monthly projection covers the rest of the month and
        an exhaustion date is given when it falls within 31 days.
        """
        now = self.clock()
        scope = None if service == TOTAL_BUDGET else service
        with self._lock:
            daily = self._ledger.total_between(scope, now - timedelta(hours=24), now)
            budget = self._budgets.get(service)
            month_spend = self._ledger.total_between(scope, start_of_month(now), now)

        if budget is None:
            return CostProjection(service, daily, daily * DAYS_PER_MONTH)

        exhaustion = None
        if daily > 0:
            days = (budget.monthly_limit - month_spend) / daily
            if 0 < days <= MAX_EXHAUSTION_DAYS:
                exhaustion = now + timedelta(days=days)

        return CostProjection(
            service=service,
            daily_projection=daily,
            monthly_projection=daily * days_remaining_in_month(now),
            budget_exhaustion_date=exhaustion,
        )

    def get_cost_breakdown(self, window: timedelta = timedelta(days=1)) -> CostBreakdown:
        now = self.clock()
        with self._lock:
            return self._ledger.breakdown(window, now)

    def get_top_cost_operations(
        self,
        limit: int = 10,
        window: timedelta = timedelta(days=1),
    ) -> list[OperationCost]:
        now = self.clock()
        with self._lock:
            return self._ledger.top_operations(limit, window, now)

    def get_budget_alerts(self, window: timedelta | None = None) -> list[BudgetAlert]:
        """Fired budget alerts newest first."""
        cutoff = self.clock() - window if window is not None else None
        with self._lock:
            alerts = [copy.copy(a) for a in self._budget_alerts if cutoff is None or a.timestamp > cutoff]
        return sorted(alerts, key=lambda a: a.timestamp, reverse=True)


class DisabledCostTracker:
    """No-op cost tracker used when cost tracking is switched off."""

    enabled = False

    def set_budget(self, budget: BudgetConfig | dict[str, Any]) -> BudgetConfig:
        return budget if isinstance(budget, BudgetConfig) else BudgetConfig.from_dict(budget)

    def get_budget(self, service: str) -> BudgetConfig | None:
        return None

    def get_budgets(self) -> list[BudgetConfig]:
        return []

    def record_cost(
        self,
        service: str,
        operation: str,
        cost: float,
        currency: str = "USD",
        timestamp: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CostEvent | None:
        return None

    def tick(self) -> None:
        return None

    def get_cost_summary(self, service: str | None = None) -> list[CostSummary]:
        return []

    def get_cost_projection(self, service: str) -> CostProjection:
        return CostProjection(service, 0.0, 0.0)

    def get_cost_breakdown(self, window: timedelta = timedelta(days=1)) -> CostBreakdown:
        return CostBreakdown({}, {}, 0.0, CostTrend.STABLE)

    def get_top_cost_operations(
        self,
        limit: int = 10,
        window: timedelta = timedelta(days=1),
    ) -> list[OperationCost]:
        return []

    def get_budget_alerts(self, window: timedelta | None = None) -> list[BudgetAlert]:
        return []
