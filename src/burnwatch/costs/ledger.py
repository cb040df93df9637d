"""Append-only log of cost events with time-range aggregation."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta

from burnwatch.costs.models import CostBreakdown, CostEvent, CostTrend, OperationCost

# Relative change against the previous period that counts as a trend
TREND_CHANGE = 0.1


class BudgetLedger:
    """
    Cost events in arrival order.

    Not synchronised; the owning tracker serialises access.
    """

    def __init__(self) -> None:
        self._events: list[CostEvent] = []

    def __len__(self) -> int:
        return len(self._events)

    def append(self, event: CostEvent) -> None:
        self._events.append(event)

    def total_between(self, service: str | None, start: datetime, end: datetime) -> float:
        """Sum of costs with ``start <= timestamp <= end``; ``service=None`` sums every service."""
        return sum(
            e.cost
            for e in self._events
            if start <= e.timestamp <= end and (service is None or e.service == service)
        )

    def events_since(self, cutoff: datetime) -> list[CostEvent]:
        return [e for e in self._events if e.timestamp > cutoff]

    def prune(self, cutoff: datetime) -> int:
        before = len(self._events)
        self._events = [e for e in self._events if e.timestamp >= cutoff]
        return before - len(self._events)

    def breakdown(self, window: timedelta, now: datetime) -> CostBreakdown:
        """Spend per service and per operation over the trailing window."""
        start = now - window
        by_service: dict[str, float] = defaultdict(float)
        by_operation: dict[str, float] = defaultdict(float)
        previous_total = 0.0

        for event in self._events:
            if start < event.timestamp <= now:
                by_service[event.service] += event.cost
                by_operation[f"{event.service}.{event.operation}"] += event.cost
            elif start - window < event.timestamp <= start:
                previous_total += event.cost

        total = sum(by_service.values())
        return CostBreakdown(
            by_service=dict(by_service),
            by_operation=dict(by_operation),
            total=total,
            trend=_trend(total, previous_total),
        )

    def top_operations(self, limit: int, window: timedelta, now: datetime) -> list[OperationCost]:
        start = now - window
        totals: dict[tuple[str, str], OperationCost] = {}
        for event in self._events:
            if not start < event.timestamp <= now:
                continue
            key = (event.service, event.operation)
            entry = totals.get(key)
            if entry is None:
                entry = totals[key] = OperationCost(event.service, event.operation, 0.0, 0)
            entry.total_cost += event.cost
            entry.count += 1

        return sorted(totals.values(), key=lambda o: o.total_cost, reverse=True)[:limit]


def _trend(current: float, previous: float) -> CostTrend:
    if previous == 0:
        return CostTrend.INCREASING if current > 0 else CostTrend.STABLE

    change = (current - previous) / previous
    if change > TREND_CHANGE:
        return CostTrend.INCREASING
    if change < -TREND_CHANGE:
        return CostTrend.DECREASING
    return CostTrend.STABLE
