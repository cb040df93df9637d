"""Root test configuration."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
import structlog

from burnwatch.alerts.dispatcher import AlertDispatcher
from burnwatch.alerts.models import ChannelType
from burnwatch.alerts.notifiers import NotifierRegistry
from burnwatch.core.errors import DeliveryError


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        self.now += delta if delta is not None else timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    """Notifier that records what it was asked to send."""

    def __init__(self, channel: ChannelType, fail: bool = False) -> None:
        self.channel = channel
        self.fail = fail
        self.sent: list = []
        self.resolved: list = []

    async def send_alert(self, alert, config):
        if self.fail:
            raise DeliveryError("channel down", {"channel": self.channel.value})
        self.sent.append(alert)
        return {"status": "sent", "channel": self.channel.value}

    async def send_resolution(self, alert, note, config):
        if self.fail:
            raise DeliveryError("channel down", {"channel": self.channel.value})
        self.resolved.append((alert, note))
        return {"status": "sent", "channel": self.channel.value}


# Mid-month, mid-day so day and month windows have room on both sides
START = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def slack():
    return RecordingNotifier(ChannelType.SLACK)


@pytest.fixture
def email():
    return RecordingNotifier(ChannelType.EMAIL)


@pytest.fixture
def pagerduty():
    return RecordingNotifier(ChannelType.PAGERDUTY)


@pytest.fixture
def notifiers(slack, email, pagerduty):
    registry = NotifierRegistry()
    for notifier in (slack, email, pagerduty):
        registry.register(notifier)
    return registry


@pytest.fixture
def dispatcher(notifiers, clock):
    return AlertDispatcher(notifiers, clock=clock)
