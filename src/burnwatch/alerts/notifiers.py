"""
Notification handlers for alerts.

Sends alerts and resolutions to Slack, email, PagerDuty and generic webhooks.
Each notifier raises DeliveryError on failure; the dispatcher counts and logs
it. Nothing here retries: the next threshold crossing is the retry.
"""

from __future__ import annotations

import asyncio
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import TYPE_CHECKING, Any, Protocol

import httpx
import structlog
from circuitbreaker import CircuitBreaker, CircuitBreakerError

from burnwatch.alerts.models import Alert, AlertSeverity, ChannelType, format_duration
from burnwatch.core.errors import DeliveryError

if TYPE_CHECKING:
    from burnwatch.config.settings import Settings

logger = structlog.get_logger()

FOOTER = "burnwatch"

SLACK_COLORS = {
    AlertSeverity.INFO: "good",
    AlertSeverity.WARNING: "warning",
    AlertSeverity.CRITICAL: "danger",
}


class Notifier(Protocol):
    channel: ChannelType

    async def send_alert(self, alert: Alert, config: dict[str, Any]) -> dict[str, Any]: ...

    async def send_resolution(
        self, alert: Alert, note: str | None, config: dict[str, Any]
    ) -> dict[str, Any]: ...


class HTTPNotifier:
    """Shared POST logic with a circuit breaker per notifier."""

    channel: ChannelType

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
    ) -> None:
        self.timeout = timeout
        self._breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            expected_exception=DeliveryError,
            name=f"notifier-{self.channel.value}",
        )
        self._guarded_post = self._breaker(self._post_raw)

    async def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        try:
            return await self._guarded_post(url, payload)
        except CircuitBreakerError as exc:
            raise DeliveryError(
                f"{self.channel.value} circuit open", {"channel": self.channel.value}
            ) from exc

    async def _post_raw(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                return response
        except httpx.HTTPError as exc:
            raise DeliveryError(
                f"Failed to deliver {self.channel.value} notification: {exc}",
                {"channel": self.channel.value},
            ) from exc


class SlackNotifier(HTTPNotifier):
    """Send notifications to Slack via incoming webhook."""

    channel = ChannelType.SLACK

    def __init__(
        self,
        webhook_url: str | None,
        *,
        slack_channel: str | None = None,
        username: str = FOOTER,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.webhook_url = webhook_url
        self.slack_channel = slack_channel
        self.username = username

    async def send_alert(self, alert: Alert, config: dict[str, Any]) -> dict[str, Any]:
        """
        Send alert to Slack.

        Raises:
            DeliveryError: If no webhook is configured or the post fails
        """
        url = self._webhook(config)
        logger.info("sending_slack_alert", alert_id=alert.id, severity=alert.severity.value)
        await self._post(url, self.format_alert(alert, config))
        logger.info("slack_alert_sent", alert_id=alert.id)
        return {"status": "sent", "channel": "slack"}

    async def send_resolution(
        self, alert: Alert, note: str | None, config: dict[str, Any]
    ) -> dict[str, Any]:
        url = self._webhook(config)
        await self._post(url, self.format_resolution(alert, note, config))
        logger.info("slack_resolution_sent", alert_id=alert.id)
        return {"status": "sent", "channel": "slack"}

    def _webhook(self, config: dict[str, Any]) -> str:
        url = config.get("webhook_url") or self.webhook_url
        if not url:
            raise DeliveryError("Slack webhook URL not configured", {"channel": "slack"})
        return url

    def _envelope(self, config: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {"username": config.get("username", self.username)}
        channel = config.get("channel", self.slack_channel)
        if channel:
            payload["channel"] = channel
        return payload

    def format_alert(self, alert: Alert, config: dict[str, Any] | None = None) -> dict[str, Any]:
        """Format alert as a Slack attachment with severity color and fields."""
        payload = self._envelope(config or {})
        payload["text"] = alert.title
        payload["attachments"] = [
            {
                "color": SLACK_COLORS.get(alert.severity, "#808080"),
                "title": f"🚨 {alert.severity.value.upper()} Alert",
                "text": alert.message,
                "fields": [
                    {"title": "Type", "value": alert.type, "short": True},
                    {"title": "Severity", "value": alert.severity.value, "short": True},
                    {"title": "Time", "value": alert.created_at.isoformat(), "short": True},
                    {"title": "Alert ID", "value": alert.id, "short": True},
                ],
                "footer": FOOTER,
                "ts": int(alert.created_at.timestamp()),
            }
        ]
        return payload

    def format_resolution(
        self, alert: Alert, note: str | None, config: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        duration = alert.duration_seconds
        resolved_at = alert.resolved_at or alert.created_at
        payload = self._envelope(config or {})
        payload["text"] = f"Resolved: {alert.title}"
        payload["attachments"] = [
            {
                "color": "good",
                "title": "✅ Alert Resolved",
                "text": f"{alert.message} - {note}" if note else alert.message,
                "fields": [
                    {
                        "title": "Duration",
                        "value": format_duration(duration) if duration is not None else "Unknown",
                        "short": True,
                    },
                    {"title": "Alert ID", "value": alert.id, "short": True},
                ],
                "footer": FOOTER,
                "ts": int(resolved_at.timestamp()),
            }
        ]
        return payload


class PagerDutyNotifier(HTTPNotifier):
    """Send notifications to the PagerDuty Events API v2."""

    channel = ChannelType.PAGERDUTY

    def __init__(
        self,
        integration_key: str | None,
        *,
        api_url: str = "https://events.pagerduty.com/v2/enqueue",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.integration_key = integration_key
        self.api_url = api_url

    async def send_alert(self, alert: Alert, config: dict[str, Any]) -> dict[str, Any]:
        payload = self.format_event(alert, config)
        logger.info("sending_pagerduty_alert", alert_id=alert.id, severity=alert.severity.value)
        response = await self._post(self.api_url, payload)
        dedup_key = _json_field(response, "dedup_key")
        logger.info("pagerduty_alert_sent", alert_id=alert.id, dedup_key=dedup_key)
        return {"status": "sent", "channel": "pagerduty", "dedup_key": dedup_key}

    async def send_resolution(
        self, alert: Alert, note: str | None, config: dict[str, Any]
    ) -> dict[str, Any]:
        payload = {
            "routing_key": self._routing_key(config),
            "event_action": "resolve",
            "dedup_key": alert.id,
        }
        await self._post(self.api_url, payload)
        logger.info("pagerduty_resolution_sent", alert_id=alert.id)
        return {"status": "sent", "channel": "pagerduty"}

    def _routing_key(self, config: dict[str, Any]) -> str:
        key = config.get("integration_key") or self.integration_key
        if not key:
            raise DeliveryError("PagerDuty integration key not configured", {"channel": "pagerduty"})
        return key

    def format_event(self, alert: Alert, config: dict[str, Any] | None = None) -> dict[str, Any]:
        """Format alert as a PagerDuty trigger event; the alert id is the dedup key."""
        return {
            "routing_key": self._routing_key(config or {}),
            "event_action": "trigger",
            "dedup_key": alert.id,
            "payload": {
                "summary": alert.message,
                "severity": alert.severity.value,
                "source": f"burnwatch-{alert.metadata.get('service', 'engine')}",
                "component": alert.type,
                "custom_details": alert.metadata,
            },
        }


class WebhookNotifier(HTTPNotifier):
    """POST the alert as JSON to an arbitrary endpoint."""

    channel = ChannelType.WEBHOOK

    def __init__(self, url: str | None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.url = url

    async def send_alert(self, alert: Alert, config: dict[str, Any]) -> dict[str, Any]:
        await self._post(self._url(config), {"action": "trigger", "alert": alert.to_dict()})
        logger.info("webhook_alert_sent", alert_id=alert.id)
        return {"status": "sent", "channel": "webhook"}

    async def send_resolution(
        self, alert: Alert, note: str | None, config: dict[str, Any]
    ) -> dict[str, Any]:
        await self._post(
            self._url(config), {"action": "resolve", "note": note, "alert": alert.to_dict()}
        )
        return {"status": "sent", "channel": "webhook"}

    def _url(self, config: dict[str, Any]) -> str:
        url = config.get("url") or self.url
        if not url:
            raise DeliveryError("Webhook URL not configured", {"channel": "webhook"})
        return url


class EmailNotifier:
    """SMTP email notifier; the blocking send runs in a worker thread."""

    channel = ChannelType.EMAIL

    def __init__(
        self,
        smtp_host: str | None,
        *,
        smtp_port: int = 587,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        from_address: str | None = None,
        to_addresses: list[str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address
        self.to_addresses = list(to_addresses or [])
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_address and self.to_addresses)

    async def send_alert(self, alert: Alert, config: dict[str, Any]) -> dict[str, Any]:
        subject = f"[{alert.severity.value.upper()}] {alert.type}: {alert.message}"
        await asyncio.to_thread(self._send, subject, self.format_body(alert), config)
        logger.info("email_alert_sent", alert_id=alert.id)
        return {"status": "sent", "channel": "email"}

    async def send_resolution(
        self, alert: Alert, note: str | None, config: dict[str, Any]
    ) -> dict[str, Any]:
        subject = f"[RESOLVED] {alert.type}: {alert.message}"
        body = self.format_body(alert)
        if note:
            body += f"\nResolution: {note}\n"
        await asyncio.to_thread(self._send, subject, body, config)
        return {"status": "sent", "channel": "email"}

    @staticmethod
    def format_body(alert: Alert) -> str:
        lines = [
            alert.message,
            "",
            f"Type: {alert.type}",
            f"Severity: {alert.severity.value}",
            f"Time: {alert.created_at.isoformat()}",
            f"Alert ID: {alert.id}",
        ]
        if alert.metadata:
            lines.append("")
            lines.extend(f"{key}: {value}" for key, value in alert.metadata.items())
        return "\n".join(lines) + "\n"

    def _send(self, subject: str, body: str, config: dict[str, Any]) -> None:
        recipients = list(config.get("to") or self.to_addresses)
        if not (self.smtp_host and self.from_address and recipients):
            raise DeliveryError("Email channel not configured", {"channel": "email"})

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((FOOTER, self.from_address))
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText(body, "plain", "utf-8"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.sendmail(self.from_address, recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"Failed to send email: {exc}", {"channel": "email"}) from exc


class NotifierRegistry:
    """Notifiers keyed by channel type."""

    def __init__(self, notifiers: dict[ChannelType, Notifier] | None = None) -> None:
        self.notifiers: dict[ChannelType, Notifier] = dict(notifiers or {})

    def register(self, notifier: Notifier) -> None:
        self.notifiers[notifier.channel] = notifier

    def get(self, channel: ChannelType) -> Notifier | None:
        return self.notifiers.get(channel)

    @classmethod
    def from_settings(cls, settings: Settings) -> NotifierRegistry:
        """Build notifiers for every channel with configuration present."""
        http_kwargs = {
            "timeout": settings.http_timeout,
            "failure_threshold": settings.circuit_failure_threshold,
            "recovery_timeout": settings.circuit_recovery_timeout,
        }
        registry = cls()
        if settings.slack_webhook_url:
            registry.register(
                SlackNotifier(
                    settings.slack_webhook_url,
                    slack_channel=settings.slack_channel,
                    username=settings.slack_username,
                    **http_kwargs,
                )
            )
        if settings.pagerduty_integration_key:
            registry.register(
                PagerDutyNotifier(
                    settings.pagerduty_integration_key,
                    api_url=settings.pagerduty_events_url,
                    **http_kwargs,
                )
            )
        # Webhook rules may carry their own URL, so the notifier is always present
        registry.register(WebhookNotifier(settings.webhook_url, **http_kwargs))
        if settings.smtp_host:
            registry.register(
                EmailNotifier(
                    settings.smtp_host,
                    smtp_port=settings.smtp_port,
                    username=settings.smtp_username,
                    password=settings.smtp_password,
                    use_tls=settings.smtp_use_tls,
                    from_address=settings.alert_email_from,
                    to_addresses=settings.alert_email_to,
                    timeout=settings.http_timeout,
                )
            )

        logger.info("notifiers_configured", channels=[c.value for c in registry.notifiers])
        return registry


def _json_field(response: httpx.Response, name: str) -> Any:
    try:
        return response.json().get(name)
    except ValueError:
        return None
