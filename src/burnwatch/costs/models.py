"""
Cost and budget data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from burnwatch.alerts.models import AlertSeverity
from burnwatch.core.errors import ConfigurationError

# Budget name covering every service's spend
TOTAL_BUDGET = "total"


class BudgetPeriod(str, Enum):
    DAILY = "daily"
    MONTHLY = "monthly"


class CostTrend(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


@dataclass(frozen=True)
class BudgetConfig:
    """Daily and monthly spend limits for one service (or ``total``)."""

    service: str
    daily_limit: float
    monthly_limit: float
    currency: str = "USD"
    alert_thresholds: tuple[float, ...] = (0.5, 0.75, 0.9)

    def __post_init__(self) -> None:
        if not self.service:
            raise ConfigurationError("Budget requires a service")
        if self.daily_limit <= 0 or self.monthly_limit <= 0:
            raise ConfigurationError("Budget limits must be positive", {"service": self.service})

        thresholds = tuple(float(t) for t in self.alert_thresholds)
        if any(not 0 < t <= 1 for t in thresholds):
            raise ConfigurationError(
                "Budget alert thresholds must be fractions in (0, 1]",
                {"service": self.service, "thresholds": list(thresholds)},
            )
        if list(thresholds) != sorted(thresholds):
            raise ConfigurationError(
                "Budget alert thresholds must be ascending",
                {"service": self.service, "thresholds": list(thresholds)},
            )
        object.__setattr__(self, "alert_thresholds", thresholds)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BudgetConfig:
        """Create a budget from a config mapping (camelCase or snake_case keys)."""
        try:
            return cls(
                service=data["service"],
                daily_limit=float(data.get("daily_limit", data.get("dailyLimit"))),
                monthly_limit=float(data.get("monthly_limit", data.get("monthlyLimit"))),
                currency=data.get("currency", "USD"),
                alert_thresholds=tuple(
                    data.get("alert_thresholds", data.get("alertThresholds", (0.5, 0.75, 0.9)))
                ),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid budget: {exc}", {"budget": data}) from exc

    def limit_for(self, period: BudgetPeriod) -> float:
        return self.daily_limit if period is BudgetPeriod.DAILY else self.monthly_limit

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "daily_limit": self.daily_limit,
            "monthly_limit": self.monthly_limit,
            "currency": self.currency,
            "alert_thresholds": list(self.alert_thresholds),
        }


@dataclass(slots=True)
class CostEvent:
    service: str
    operation: str
    cost: float
    timestamp: datetime
    currency: str = "USD"
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SpendWindow:
    cost: float = 0.0
    percentage: float = 0.0


@dataclass
class CostSummary:
    """Current-day and current-month spend against a budget."""

    service: str
    daily: SpendWindow
    monthly: SpendWindow
    currency: str
    last_updated: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "daily": {"cost": self.daily.cost, "percentage": self.daily.percentage},
            "monthly": {"cost": self.monthly.cost, "percentage": self.monthly.percentage},
            "currency": self.currency,
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass
class BudgetAlert:
    """Record of a budget threshold alert that fired."""

    service: str
    period: BudgetPeriod
    threshold: float
    current_spend: float
    budget_limit: float
    percentage: float
    severity: AlertSeverity
    timestamp: datetime
    alert_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "period": self.period.value,
            "threshold": self.threshold,
            "current_spend": self.current_spend,
            "budget_limit": self.budget_limit,
            "percentage": self.percentage,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "alert_id": self.alert_id,
        }


@dataclass
class CostProjection:
    service: str
    daily_projection: float
    monthly_projection: float
    budget_exhaustion_date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "daily_projection": self.daily_projection,
            "monthly_projection": self.monthly_projection,
            "budget_exhaustion_date": (
                self.budget_exhaustion_date.isoformat() if self.budget_exhaustion_date else None
            ),
        }


@dataclass
class OperationCost:
    service: str
    operation: str
    total_cost: float
    count: int

    @property
    def avg_cost(self) -> float:
        return self.total_cost / self.count if self.count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "operation": self.operation,
            "total_cost": self.total_cost,
            "count": self.count,
            "avg_cost": self.avg_cost,
        }


@dataclass
class CostBreakdown:
    by_service: dict[str, float]
    by_operation: dict[str, float]
    total: float
    trend: CostTrend

    def to_dict(self) -> dict[str, Any]:
        return {
            "by_service": self.by_service,
            "by_operation": self.by_operation,
            "total": self.total,
            "trend": self.trend.value,
        }
