"""
Alert rules, channels and alert instances.

Rules are user-managed and immutable once built (updates replace the rule);
an Alert is one firing episode.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from burnwatch.core.errors import ConfigurationError
from burnwatch.core.timeutils import utcnow


class AlertSeverity(str, Enum):
    """Alert severity levels."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertCondition(str, Enum):
    GT = "gt"
    LT = "lt"
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"

    def holds(self, value: float, threshold: float) -> bool:
        if self is AlertCondition.GT:
            return value > threshold
        if self is AlertCondition.GTE:
            return value >= threshold
        if self is AlertCondition.LT:
            return value < threshold
        if self is AlertCondition.LTE:
            return value <= threshold
        return value == threshold


class ChannelType(str, Enum):
    SLACK = "slack"
    EMAIL = "email"
    PAGERDUTY = "pagerduty"
    WEBHOOK = "webhook"


class AlertType(str, Enum):
    """Alert types raised by the engine itself."""

    SLO_VIOLATION = "slo_violation"
    SLO_WARNING = "slo_warning"
    SLO_FAST_BURN = "slo_fast_burn"
    BUDGET_ALERT = "budget_alert"
    HIGH_COST_OPERATION = "high_cost_operation"
    METRIC_THRESHOLD = "metric_threshold"


# Routing used when no rule matches an alert
SEVERITY_CHANNELS: dict[AlertSeverity, tuple[ChannelType, ...]] = {
    AlertSeverity.CRITICAL: (ChannelType.SLACK, ChannelType.EMAIL, ChannelType.PAGERDUTY),
    AlertSeverity.WARNING: (ChannelType.SLACK, ChannelType.EMAIL),
    AlertSeverity.INFO: (ChannelType.SLACK,),
}


@dataclass(frozen=True)
class AlertChannel:
    """A delivery channel attached to a rule, with optional per-rule overrides."""

    type: ChannelType
    config: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any] | str) -> AlertChannel:
        if isinstance(data, str):
            data = {"type": data}
        try:
            return cls(
                type=ChannelType(data["type"]),
                config=dict(data.get("config") or {}),
                enabled=bool(data.get("enabled", True)),
            )
        except (KeyError, ValueError) as exc:
            raise ConfigurationError(f"Invalid alert channel: {data!r}") from exc

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "config": dict(self.config), "enabled": self.enabled}


_RULE_FIELD_ALIASES = {"cooldownMinutes": "cooldown_minutes", "cooldown": "cooldown_minutes"}


@dataclass(frozen=True)
class AlertRule:
    """Alert rule definition."""

    id: str
    name: str
    metric: str
    condition: AlertCondition
    threshold: float
    severity: AlertSeverity
    enabled: bool = True
    cooldown_minutes: float = 15
    channels: tuple[AlertChannel, ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ConfigurationError("Alert rule requires an id")
        if not self.metric:
            raise ConfigurationError("Alert rule requires a metric", {"rule_id": self.id})
        if not isinstance(self.condition, AlertCondition):
            raise ConfigurationError("Unknown alert condition", {"rule_id": self.id})
        if not isinstance(self.severity, AlertSeverity):
            raise ConfigurationError("Unknown alert severity", {"rule_id": self.id})
        if self.cooldown_minutes < 0:
            raise ConfigurationError("Cooldown must not be negative", {"rule_id": self.id})
        for channel in self.channels:
            if not isinstance(channel, AlertChannel):
                raise ConfigurationError("Invalid alert channel", {"rule_id": self.id})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AlertRule:
        """Build a rule from config, rejecting malformed input."""
        try:
            return cls(
                id=data["id"],
                name=data.get("name", data["id"]),
                metric=data["metric"],
                condition=AlertCondition(data.get("condition", "gt")),
                threshold=float(data.get("threshold", 0)),
                severity=AlertSeverity(data.get("severity", "warning")),
                enabled=bool(data.get("enabled", True)),
                cooldown_minutes=float(
                    data.get("cooldown_minutes", data.get("cooldownMinutes", data.get("cooldown", 15)))
                ),
                channels=tuple(AlertChannel.from_dict(c) for c in data.get("channels", [])),
                description=data.get("description", ""),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid alert rule: {exc}", {"rule": data}) from exc

    @classmethod
    def normalize_patch(cls, patch: dict[str, Any]) -> dict[str, Any]:
        """Map config spellings onto ``to_dict`` keys; unknown fields raise ConfigurationError."""
        normalized: dict[str, Any] = {}
        for key, value in patch.items():
            name = _RULE_FIELD_ALIASES.get(key, key)
            if name not in cls.__dataclass_fields__:
                raise ConfigurationError(f"Unknown alert rule field: {key}", {"field": key})
            normalized[name] = value
        return normalized

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "metric": self.metric,
            "condition": self.condition.value,
            "threshold": self.threshold,
            "severity": self.severity.value,
            "enabled": self.enabled,
            "cooldown_minutes": self.cooldown_minutes,
            "channels": [c.to_dict() for c in self.channels],
            "description": self.description,
        }


@dataclass
class Alert:
    """One firing episode of an alert."""

    id: str
    type: str
    severity: AlertSeverity
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    resolved: bool = False
    resolved_at: datetime | None = None
    resolution: str | None = None
    rule_id: str | None = None
    suppressed: bool = False
    duplicate_of: str | None = None
    delivered_channels: tuple[AlertChannel, ...] = ()

    @property
    def title(self) -> str:
        return f"{self.severity.value.upper()} Alert: {self.type}"

    @property
    def duration_seconds(self) -> float | None:
        if self.resolved_at is None:
            return None
        return (self.resolved_at - self.created_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity.value,
            "message": self.message,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "resolved": self.resolved,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolution": self.resolution,
            "rule_id": self.rule_id,
            "suppressed": self.suppressed,
            "duplicate_of": self.duplicate_of,
            "channels": [c.type.value for c in self.delivered_channels],
        }


@dataclass
class AlertStats:
    total: int
    by_severity: dict[str, int]
    by_type: dict[str, int]
    avg_resolution_seconds: float
    unresolved_count: int
    suppressed_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_severity": self.by_severity,
            "by_type": self.by_type,
            "avg_resolution_seconds": self.avg_resolution_seconds,
            "unresolved_count": self.unresolved_count,
            "suppressed_count": self.suppressed_count,
        }


def format_duration(seconds: float) -> str:
    """Render a duration as ``1h 5m``, ``3m 20s`` or ``45s``."""
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
