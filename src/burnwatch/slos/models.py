"""
SLO data models.

Targets are immutable registration-time config; statuses are recomputed on
every write and tick; violations are append-only records of status crossings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from burnwatch.core.errors import ConfigurationError
from burnwatch.core.timeutils import parse_duration, utcnow


class SLOState(str, Enum):
    """SLO compliance status."""

    HEALTHY = "healthy"      # < 75% budget used and no imminent exhaustion
    WARNING = "warning"      # >= 75% budget used, or exhaustion within 24h
    CRITICAL = "critical"    # >= 90% budget used

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]


_STATE_RANK = {SLOState.HEALTHY: 0, SLOState.WARNING: 1, SLOState.CRITICAL: 2}


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"


class MetricKind(str, Enum):
    """How samples of a metric are aggregated and how they consume budget."""

    RATIO_GOOD = "ratio_good"    # share of successes, higher is better
    RATIO_BAD = "ratio_bad"      # share of failures, value is already budget units
    PERCENTILE = "percentile"    # p95 of raw values
    AVERAGE = "average"          # arithmetic mean

    @classmethod
    def from_metric_name(cls, metric: str) -> MetricKind:
        """Resolve the kind of a metric from its conventional name."""
        name = metric.lower()
        if name in ("availability", "success_rate"):
            return cls.RATIO_GOOD
        if name == "latency_p95":
            return cls.PERCENTILE
        if "error" in name or "failure" in name:
            return cls.RATIO_BAD
        return cls.AVERAGE

    @property
    def lower_is_better(self) -> bool:
        return self is MetricKind.RATIO_BAD


@dataclass(frozen=True)
class SLOTarget:
    """
    Service Level Objective target.

    Identity is ``(service, metric)``. ``target`` and ``error_budget`` share a
    scale (e.g. 99.9 and 0.1 percent for availability).
    """

    service: str
    metric: str
    target: float
    window: str
    error_budget: float
    alert_threshold: float = 0.0
    description: str = ""
    kind: MetricKind | None = None

    def __post_init__(self) -> None:
        if not self.service or not self.metric:
            raise ConfigurationError("SLO target requires service and metric")
        if self.target <= 0:
            raise ConfigurationError(
                "SLO target must be positive", {"service": self.service, "metric": self.metric}
            )
        if self.error_budget <= 0:
            raise ConfigurationError(
                "SLO error budget must be positive",
                {"service": self.service, "metric": self.metric},
            )
        # Validates the window eagerly
        parse_duration(self.window)
        if self.kind is None:
            object.__setattr__(self, "kind", MetricKind.from_metric_name(self.metric))

    @property
    def key(self) -> str:
        return target_key(self.service, self.metric)

    @property
    def window_delta(self) -> timedelta:
        return parse_duration(self.window)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SLOTarget:
        """Create a target from a config mapping (camelCase or snake_case keys)."""
        try:
            kind = data.get("kind")
            return cls(
                service=data["service"],
                metric=data["metric"],
                target=float(data["target"]),
                window=str(data.get("window", "30d")),
                error_budget=float(data.get("error_budget", data.get("errorBudget", 0))),
                alert_threshold=float(data.get("alert_threshold", data.get("alertThreshold", 0))),
                description=data.get("description", ""),
                kind=MetricKind(kind) if kind else None,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid SLO target: {exc}", {"target": data}) from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "metric": self.metric,
            "target": self.target,
            "window": self.window,
            "error_budget": self.error_budget,
            "alert_threshold": self.alert_threshold,
            "description": self.description,
            "kind": self.kind.value if self.kind else None,
        }


def target_key(service: str, metric: str) -> str:
    return f"{service}_{metric}"


@dataclass(slots=True)
class MetricSample:
    value: float
    timestamp: datetime
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class SLOStatus:
    """Derived SLO state for one target."""

    target: SLOTarget
    current_value: float = 0.0
    error_budget_used: float = 0.0
    error_budget_remaining: float = 0.0
    status: SLOState = SLOState.HEALTHY
    trend: Trend = Trend.STABLE
    burn_rate: float = 0.0
    time_to_exhaustion_hours: float | None = None
    last_updated: datetime = field(default_factory=utcnow)
    sample_count: int = 0

    @classmethod
    def initial(cls, target: SLOTarget, now: datetime) -> SLOStatus:
        return cls(
            target=target,
            error_budget_remaining=target.error_budget,
            last_updated=now,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API/CLI output."""
        return {
            "service": self.target.service,
            "metric": self.target.metric,
            "target": self.target.target,
            "window": self.target.window,
            "current_value": self.current_value,
            "error_budget": self.target.error_budget,
            "error_budget_used": self.error_budget_used,
            "error_budget_remaining": self.error_budget_remaining,
            "status": self.status.value,
            "trend": self.trend.value,
            "burn_rate": self.burn_rate,
            "time_to_exhaustion_hours": self.time_to_exhaustion_hours,
            "last_updated": self.last_updated.isoformat(),
            "sample_count": self.sample_count,
        }


@dataclass
class SLOViolation:
    """Record of a target crossing into warning or critical."""

    id: str
    target_key: str
    timestamp: datetime
    severity: SLOState
    current_value: float
    threshold: float
    error_budget_used: float
    resolved: bool = False
    resolved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "target_key": self.target_key,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "current_value": self.current_value,
            "threshold": self.threshold,
            "error_budget_used": self.error_budget_used,
            "resolved": self.resolved,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass
class SLOSummary:
    total: int
    healthy: int
    warning: int
    critical: int
    avg_error_budget_used: float
    worst_performing: list[SLOStatus]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "healthy": self.healthy,
            "warning": self.warning,
            "critical": self.critical,
            "avg_error_budget_used": self.avg_error_budget_used,
            "worst_performing": [s.to_dict() for s in self.worst_performing],
        }
