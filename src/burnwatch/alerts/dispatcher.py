"""
Alert dispatcher.

Owns alert rules, active alerts, alert history and per-rule cooldown state,
and fans alerts out to notification channels. Every other component raises
notifications through ``trigger_alert``/``resolve_alert``.

Per rule the lifecycle is armed -> firing -> cooldown -> armed. Inside the
cooldown an alert is still written to history for audit, but no channel is
notified and an open episode for the same rule and target (or budget) is reused
instead of creating a duplicate.
"""

from __future__ import annotations

import asyncio
import copy
import threading
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

import structlog

from burnwatch.alerts.models import (
    SEVERITY_CHANNELS,
    Alert,
    AlertChannel,
    AlertRule,
    AlertSeverity,
    AlertStats,
    AlertType,
)
from burnwatch.alerts.notifiers import NotifierRegistry
from burnwatch.alerts.queue import DeliveryAction, DeliveryJob, DeliveryQueue
from burnwatch.core.errors import ConfigurationError, DeliveryError
from burnwatch.core.timeutils import Clock, utcnow

logger = structlog.get_logger()

COOLDOWN_STATE_TTL = timedelta(hours=24)

# Metadata fields naming what an alert is about when it carries no target_key
_SCOPE_FIELDS = ("service", "operation", "period", "threshold")


class AlertSink(Protocol):
    """The part of the dispatcher that SLO and cost components depend on."""

    def trigger_alert(
        self,
        type: str,
        severity: AlertSeverity | str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> str: ...

    def resolve_alert(self, alert_id: str, note: str | None = None) -> bool: ...


@dataclass
class CooldownState:
    last_fired: datetime
    alert_id: str
    cooldown: timedelta
    count: int = 1


@dataclass
class DeliveryStats:
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    suppressed: int = 0
    failures_by_channel: Counter = field(default_factory=Counter)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "suppressed": self.suppressed,
            "failures_by_channel": dict(self.failures_by_channel),
        }


class AlertDispatcher:
    """Rule-driven alert state machine with cooldown and channel fan-out."""

    def __init__(
        self,
        notifiers: NotifierRegistry | None = None,
        *,
        rules: list[AlertRule] | None = None,
        clock: Clock = utcnow,
        delivery_enabled: bool = True,
        default_cooldown_minutes: float = 15,
        max_history: int = 1000,
    ) -> None:
        self.notifiers = notifiers or NotifierRegistry()
        self.clock = clock
        self.delivery_enabled = delivery_enabled
        self.default_cooldown_minutes = default_cooldown_minutes
        self.max_history = max_history
        self.delivery_stats = DeliveryStats()

        self._lock = threading.RLock()
        self._rules: dict[str, AlertRule] = {}
        self._active: dict[str, Alert] = {}
        self._history: list[Alert] = []
        self._cooldowns: dict[str, CooldownState] = {}
        self._queue = DeliveryQueue()

        for rule in rules or []:
            self.add_rule(rule)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def add_rule(self, rule: AlertRule | dict[str, Any]) -> AlertRule:
        """Add or replace a rule; malformed rules raise ConfigurationError."""
        if isinstance(rule, dict):
            rule = AlertRule.from_dict(rule)
        if not isinstance(rule, AlertRule):
            raise ConfigurationError("Alert rule must be an AlertRule or mapping")

        with self._lock:
            replaced = rule.id in self._rules
            self._rules[rule.id] = rule

        logger.info("alert_rule_added", rule_id=rule.id, metric=rule.metric, replaced=replaced)
        return rule

    def update_rule(self, rule_id: str, patch: dict[str, Any]) -> bool:
        """Apply a partial update; unknown ids return False."""
        with self._lock:
            current = self._rules.get(rule_id)
            if current is None:
                return False
            changes = AlertRule.normalize_patch({k: v for k, v in patch.items() if k != "id"})
            merged = current.to_dict() | changes
            self._rules[rule_id] = AlertRule.from_dict(merged)

        logger.info("alert_rule_updated", rule_id=rule_id, fields=sorted(patch))
        return True

    def remove_rule(self, rule_id: str) -> bool:
        with self._lock:
            removed = self._rules.pop(rule_id, None) is not None
            for key in [k for k in self._cooldowns if k == rule_id or k.startswith(f"{rule_id}:")]:
                del self._cooldowns[key]

        if removed:
            logger.info("alert_rule_deleted", rule_id=rule_id)
        return removed

    def get_rules(self) -> list[AlertRule]:
        with self._lock:
            return list(self._rules.values())

    def get_rule(self, rule_id: str) -> AlertRule | None:
        with self._lock:
            return self._rules.get(rule_id)

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def trigger_alert(
        self,
        type: str,
        severity: AlertSeverity | str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """
        Record an alert and schedule channel delivery unless in cooldown.

        Returns:
            The id of the alert episode this trigger belongs to
        """
        severity = AlertSeverity(severity)
        metadata = dict(metadata or {})
        now = self.clock()

        with self._lock:
            rule = self._match_rule(type, metadata)
            key = _cooldown_key(type, severity, rule, metadata)
            cooldown = timedelta(
                minutes=rule.cooldown_minutes if rule else self.default_cooldown_minutes
            )

            alert = Alert(
                id=_new_alert_id(now),
                type=type,
                severity=severity,
                message=message,
                metadata=metadata,
                created_at=now,
                rule_id=rule.id if rule else None,
            )

            state = self._cooldowns.get(key)
            if state is not None and now - state.last_fired < cooldown:
                return self._record_suppressed(alert, state, key)

            channels = self._channels_for(rule, severity)
            alert.delivered_channels = channels
            self._active[alert.id] = alert
            self._history.append(alert)
            self._cooldowns[key] = CooldownState(
                last_fired=now,
                alert_id=alert.id,
                cooldown=cooldown,
                count=state.count + 1 if state else 1,
            )
            for channel in channels:
                self._queue.put(DeliveryJob(alert=alert, channel=channel))

        logger.info(
            "alert_triggered",
            alert_id=alert.id,
            type=type,
            severity=severity.value,
            rule_id=alert.rule_id,
            channels=[c.type.value for c in channels],
        )
        return alert.id

    def _record_suppressed(self, alert: Alert, state: CooldownState, key: str) -> str:
        alert.suppressed = True
        self._history.append(alert)
        self.delivery_stats.suppressed += 1
        state.count += 1

        episode = self._active.get(state.alert_id)
        if episode is not None and not episode.resolved:
            alert.duplicate_of = episode.id
            logger.info("alert_suppressed", alert_id=alert.id, episode_id=episode.id, key=key)
            return episode.id

        # Previous episode already resolved: open a new one, still without delivery
        self._active[alert.id] = alert
        state.alert_id = alert.id
        logger.info("alert_suppressed", alert_id=alert.id, episode_id=alert.id, key=key)
        return alert.id

    def _match_rule(self, type: str, metadata: dict[str, Any]) -> AlertRule | None:
        rule_id = metadata.get("rule")
        if rule_id and rule_id in self._rules:
            return self._rules[rule_id]
        for rule in self._rules.values():
            if rule.metric == type:
                return rule
        return None

    def _channels_for(self, rule: AlertRule | None, severity: AlertSeverity) -> tuple[AlertChannel, ...]:
        if not self.delivery_enabled:
            return ()
        if rule is not None:
            if not rule.enabled:
                logger.info("alert_rule_disabled", rule_id=rule.id)
                return ()
            candidates = tuple(c for c in rule.channels if c.enabled)
        else:
            candidates = tuple(AlertChannel(type=t) for t in SEVERITY_CHANNELS[severity])

        channels = tuple(c for c in candidates if self.notifiers.get(c.type) is not None)
        skipped = len(candidates) - len(channels)
        if skipped:
            self.delivery_stats.skipped += skipped
        return channels

    def resolve_alert(self, alert_id: str, note: str | None = None) -> bool:
        """Resolve an active alert; unknown or already resolved ids return False."""
        now = self.clock()
        with self._lock:
            alert = self._active.pop(alert_id, None)
            if alert is None or alert.resolved:
                return False

            alert.resolved = True
            alert.resolved_at = now
            alert.resolution = note
            for channel in alert.delivered_channels:
                self._queue.put(
                    DeliveryJob(alert=alert, channel=channel, action=DeliveryAction.RESOLVE, note=note)
                )

        logger.info(
            "alert_resolved",
            alert_id=alert_id,
            note=note,
            duration_seconds=alert.duration_seconds,
        )
        return True

    def check_metric(
        self,
        metric: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> list[str]:
        """Evaluate threshold rules on ``metric`` and trigger those that hold."""
        with self._lock:
            rules = [r for r in self._rules.values() if r.enabled and r.metric == metric]

        triggered = []
        for rule in rules:
            if not rule.condition.holds(value, rule.threshold):
                continue
            triggered.append(
                self.trigger_alert(
                    AlertType.METRIC_THRESHOLD.value,
                    rule.severity,
                    f"{rule.name}: {metric} is {value} (threshold: {rule.threshold})",
                    {
                        "rule": rule.id,
                        "metric": metric,
                        "value": value,
                        "threshold": rule.threshold,
                        "condition": rule.condition.value,
                        "tags": dict(tags or {}),
                    },
                )
            )
        return triggered

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_active_alerts(self) -> list[Alert]:
        with self._lock:
            return [copy.copy(a) for a in self._active.values()]

    def get_alert(self, alert_id: str) -> Alert | None:
        with self._lock:
            for alert in self._history:
                if alert.id == alert_id:
                    return copy.copy(alert)
        return None

    def get_alert_history(self, limit: int = 100) -> list[Alert]:
        with self._lock:
            history = sorted(self._history, key=lambda a: a.created_at, reverse=True)
            return [copy.copy(a) for a in history[:limit]]

    def get_alert_stats(self, window: timedelta = timedelta(hours=24)) -> AlertStats:
        cutoff = self.clock() - window
        with self._lock:
            recent = [a for a in self._history if a.created_at > cutoff]

        by_severity: Counter = Counter(a.severity.value for a in recent)
        by_type: Counter = Counter(a.type for a in recent)
        durations = [a.duration_seconds for a in recent if a.duration_seconds is not None]

        return AlertStats(
            total=len(recent),
            by_severity=dict(by_severity),
            by_type=dict(by_type),
            avg_resolution_seconds=sum(durations) / len(durations) if durations else 0.0,
            unresolved_count=sum(1 for a in recent if not a.resolved and a.duplicate_of is None),
            suppressed_count=sum(1 for a in recent if a.suppressed),
        )

    def cleanup(self) -> None:
        """Cap history and forget cooldown state older than a day."""
        now = self.clock()
        with self._lock:
            if len(self._history) > self.max_history:
                self._history.sort(key=lambda a: a.created_at)
                self._history = self._history[-self.max_history:]

            stale = [
                key
                for key, state in self._cooldowns.items()
                if now - state.last_fired > max(COOLDOWN_STATE_TTL, state.cooldown)
            ]
            for key in stale:
                del self._cooldowns[key]

        logger.debug("alert_cleanup", history=len(self._history), cooldowns_dropped=len(stale))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    @property
    def pending_deliveries(self) -> int:
        return self._queue.size()

    async def drain(self) -> int:
        """Deliver everything queued so far; returns the number of jobs processed."""
        jobs = []
        while (job := self._queue.get_nowait()) is not None:
            jobs.append(job)

        await asyncio.gather(*(self._deliver(job) for job in jobs))
        for _ in jobs:
            self._queue.task_done()
        return len(jobs)

    async def join(self) -> None:
        """Wait until every queued job has been handled by the worker."""
        await self._queue.join()

    async def run_delivery_worker(self) -> None:
        """Consume the delivery queue until cancelled."""
        self._queue.bind(asyncio.get_running_loop())
        logger.info("delivery_worker_started")
        while True:
            job = await self._queue.get()
            try:
                await self._deliver(job)
            finally:
                self._queue.task_done()

    async def _deliver(self, job: DeliveryJob) -> None:
        notifier = self.notifiers.get(job.channel.type)
        channel = job.channel.type.value
        if notifier is None:
            self.delivery_stats.skipped += 1
            return

        try:
            if job.action is DeliveryAction.RESOLVE:
                await notifier.send_resolution(job.alert, job.note, job.channel.config)
            else:
                await notifier.send_alert(job.alert, job.channel.config)
        except DeliveryError as exc:
            self._count_failure(channel)
            logger.warning(
                "alert_delivery_failed",
                alert_id=job.alert.id,
                channel=channel,
                action=job.action.value,
                error=exc.message,
            )
        except Exception:
            self._count_failure(channel)
            logger.exception("alert_delivery_crashed", alert_id=job.alert.id, channel=channel)
        else:
            self.delivery_stats.sent += 1

    def _count_failure(self, channel: str) -> None:
        self.delivery_stats.failed += 1
        self.delivery_stats.failures_by_channel[channel] += 1


class DisabledAlertDispatcher:
    """No-op dispatcher used when monitoring is switched off."""

    pending_deliveries = 0

    def __init__(self) -> None:
        self.delivery_stats = DeliveryStats()

    def add_rule(self, rule: AlertRule | dict[str, Any]) -> AlertRule:
        return rule if isinstance(rule, AlertRule) else AlertRule.from_dict(rule)

    def update_rule(self, rule_id: str, patch: dict[str, Any]) -> bool:
        return False

    def remove_rule(self, rule_id: str) -> bool:
        return False

    def get_rules(self) -> list[AlertRule]:
        return []

    def get_rule(self, rule_id: str) -> AlertRule | None:
        return None

    def trigger_alert(
        self,
        type: str,
        severity: AlertSeverity | str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        return ""

    def resolve_alert(self, alert_id: str, note: str | None = None) -> bool:
        return False

    def check_metric(self, metric: str, value: float, tags: dict[str, str] | None = None) -> list[str]:
        return []

    def get_active_alerts(self) -> list[Alert]:
        return []

    def get_alert(self, alert_id: str) -> Alert | None:
        return None

    def get_alert_history(self, limit: int = 100) -> list[Alert]:
        return []

    def get_alert_stats(self, window: timedelta = timedelta(hours=24)) -> AlertStats:
        return AlertStats(0, {}, {}, 0.0, 0, 0)

    def cleanup(self) -> None:
        return None

    async def drain(self) -> int:
        return 0

    async def join(self) -> None:
        return None

    async def run_delivery_worker(self) -> None:
        return None


def _new_alert_id(now: datetime) -> str:
    return f"alert_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


def _cooldown_key(type: str, severity: AlertSeverity, rule: AlertRule | None, metadata: dict[str, Any]) -> str:
    """Rule id (or type and severity) followed by the SLO target or budget the alert is about."""
    if metadata.get("target_key"):
        scope = [str(metadata["target_key"])]
    else:
        scope = [str(metadata[name]) for name in _SCOPE_FIELDS if metadata.get(name) is not None]
    prefix = [rule.id] if rule is not None else [type, severity.value]
    return ":".join([*prefix, *scope])
