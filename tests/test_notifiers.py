"""Tests for alerts/notifiers.py."""

import json
from datetime import timedelta

import httpx
import pytest
import respx

from burnwatch.alerts.models import Alert, AlertSeverity, ChannelType
from burnwatch.alerts.notifiers import (
    EmailNotifier,
    NotifierRegistry,
    PagerDutyNotifier,
    SlackNotifier,
    WebhookNotifier,
)
from burnwatch.config.settings import Settings
from burnwatch.core.errors import DeliveryError

SLACK_WEBHOOK = "https://hooks.slack.com/services/T/B/X"
PAGERDUTY_URL = "https://events.pagerduty.com/v2/enqueue"


@pytest.fixture
def alert(clock):
    return Alert(
        id="alert_1_abc",
        type="budget_alert",
        severity=AlertSeverity.CRITICAL,
        message="ahrefs over daily budget",
        metadata={"service": "ahrefs", "percentage": 120.0},
        created_at=clock(),
    )


def _capture(captured):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content))
        return httpx.Response(202, json={"status": "success", "dedup_key": "alert_1_abc"})

    return handler


class TestSlackNotifier:
    """Tests for Slack delivery."""

    @respx.mock
    async def test_send_alert_posts_attachment(self, alert):
        captured = []
        route = respx.post(SLACK_WEBHOOK).mock(side_effect=_capture(captured))

        result = await SlackNotifier(SLACK_WEBHOOK, slack_channel="#ops").send_alert(alert, {})

        assert route.called
        assert result == {"status": "sent", "channel": "slack"}
        payload = captured[0]
        assert payload["channel"] == "#ops"
        assert payload["text"] == "CRITICAL Alert: budget_alert"
        attachment = payload["attachments"][0]
        assert attachment["color"] == "danger"
        assert attachment["text"] == "ahrefs over daily budget"

    @respx.mock
    async def test_rule_config_overrides_webhook(self, alert):
        override = "https://hooks.slack.com/services/T/B/OTHER"
        route = respx.post(override).mock(return_value=httpx.Response(200, text="ok"))

        await SlackNotifier(SLACK_WEBHOOK).send_alert(alert, {"webhook_url": override})

        assert route.called

    @respx.mock
    async def test_resolution_includes_duration(self, alert):
        captured = []
        respx.post(SLACK_WEBHOOK).mock(side_effect=_capture(captured))
        alert.resolved = True
        alert.resolved_at = alert.created_at + timedelta(minutes=65)

        await SlackNotifier(SLACK_WEBHOOK).send_resolution(alert, "spend reset", {})

        attachment = captured[0]["attachments"][0]
        assert attachment["color"] == "good"
        assert attachment["text"] == "ahrefs over daily budget - spend reset"
        assert attachment["fields"][0]["value"] == "1h 5m"

    @respx.mock
    async def test_server_error_raises_delivery_error(self, alert):
        respx.post(SLACK_WEBHOOK).mock(return_value=httpx.Response(500))

        with pytest.raises(DeliveryError):
            await SlackNotifier(SLACK_WEBHOOK).send_alert(alert, {})

    async def test_missing_webhook_raises(self, alert):
        with pytest.raises(DeliveryError, match="not configured"):
            await SlackNotifier(None).send_alert(alert, {})

    @respx.mock
    async def test_circuit_opens_after_failures(self, alert):
        route = respx.post(SLACK_WEBHOOK).mock(return_value=httpx.Response(503))
        notifier = SlackNotifier(SLACK_WEBHOOK, failure_threshold=2, recovery_timeout=60)

        for _ in range(2):
            with pytest.raises(DeliveryError):
                await notifier.send_alert(alert, {})

        with pytest.raises(DeliveryError, match="circuit open"):
            await notifier.send_alert(alert, {})
        assert route.call_count == 2


class TestPagerDutyNotifier:
    """Tests for PagerDuty Events API delivery."""

    @respx.mock
    async def test_trigger_uses_alert_id_as_dedup_key(self, alert):
        captured = []
        respx.post(PAGERDUTY_URL).mock(side_effect=_capture(captured))

        result = await PagerDutyNotifier("routing-key").send_alert(alert, {})

        event = captured[0]
        assert event["event_action"] == "trigger"
        assert event["routing_key"] == "routing-key"
        assert event["dedup_key"] == "alert_1_abc"
        assert event["payload"]["severity"] == "critical"
        assert event["payload"]["source"] == "burnwatch-ahrefs"
        assert result["dedup_key"] == "alert_1_abc"

    @respx.mock
    async def test_resolution_sends_resolve_event(self, alert):
        captured = []
        respx.post(PAGERDUTY_URL).mock(side_effect=_capture(captured))

        await PagerDutyNotifier("routing-key").send_resolution(alert, None, {})

        assert captured[0] == {
            "routing_key": "routing-key",
            "event_action": "resolve",
            "dedup_key": "alert_1_abc",
        }

    async def test_missing_key_raises(self, alert):
        with pytest.raises(DeliveryError):
            await PagerDutyNotifier(None).send_alert(alert, {})


class TestWebhookNotifier:
    """Tests for generic webhook delivery."""

    @respx.mock
    async def test_posts_alert_json(self, alert):
        captured = []
        respx.post("https://hooks.example.com/alerts").mock(side_effect=_capture(captured))

        await WebhookNotifier(None).send_alert(alert, {"url": "https://hooks.example.com/alerts"})

        assert captured[0]["action"] == "trigger"
        assert captured[0]["alert"]["id"] == "alert_1_abc"
        assert captured[0]["alert"]["metadata"] == {"service": "ahrefs", "percentage": 120.0}


class TestEmailNotifier:
    """Tests for email formatting and configuration."""

    def test_body_lists_metadata(self, alert):
        body = EmailNotifier.format_body(alert)

        assert body.startswith("ahrefs over daily budget\n")
        assert "Severity: critical" in body
        assert "service: ahrefs" in body

    async def test_unconfigured_email_raises(self, alert):
        notifier = EmailNotifier("smtp.example.com")

        assert not notifier.is_configured()
        with pytest.raises(DeliveryError):
            await notifier.send_alert(alert, {})


class TestNotifierRegistry:
    """Tests for building notifiers from settings."""

    def test_only_configured_channels_registered(self):
        settings = Settings(_env_file=None, slack_webhook_url=SLACK_WEBHOOK)

        registry = NotifierRegistry.from_settings(settings)

        assert isinstance(registry.get(ChannelType.SLACK), SlackNotifier)
        assert isinstance(registry.get(ChannelType.WEBHOOK), WebhookNotifier)
        assert registry.get(ChannelType.PAGERDUTY) is None
        assert registry.get(ChannelType.EMAIL) is None

    def test_all_channels(self):
        settings = Settings(
            _env_file=None,
            slack_webhook_url=SLACK_WEBHOOK,
            pagerduty_integration_key="routing-key",
            smtp_host="smtp.example.com",
            alert_email_from="alerts@example.com",
            alert_email_to=["oncall@example.com"],
        )

        registry = NotifierRegistry.from_settings(settings)

        assert set(registry.notifiers) == set(ChannelType)
        assert registry.get(ChannelType.EMAIL).is_configured()
