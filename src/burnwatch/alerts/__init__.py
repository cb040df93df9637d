"""
Alerting: rules, cooldown-based deduplication and channel delivery.
"""

from burnwatch.alerts.dispatcher import AlertDispatcher, AlertSink, DisabledAlertDispatcher
from burnwatch.alerts.models import (
    SEVERITY_CHANNELS,
    Alert,
    AlertChannel,
    AlertCondition,
    AlertRule,
    AlertSeverity,
    AlertStats,
    AlertType,
    ChannelType,
)
from burnwatch.alerts.notifiers import (
    EmailNotifier,
    Notifier,
    NotifierRegistry,
    PagerDutyNotifier,
    SlackNotifier,
    WebhookNotifier,
)

__all__ = [
    "Alert",
    "AlertChannel",
    "AlertCondition",
    "AlertDispatcher",
    "AlertRule",
    "AlertSeverity",
    "AlertSink",
    "AlertStats",
    "AlertType",
    "ChannelType",
    "DisabledAlertDispatcher",
    "EmailNotifier",
    "Notifier",
    "NotifierRegistry",
    "PagerDutyNotifier",
    "SEVERITY_CHANNELS",
    "SlackNotifier",
    "WebhookNotifier",
]
