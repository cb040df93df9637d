"""Tests for engine.py: construction, wiring and lifecycle."""

import pytest

from burnwatch.config.loader import parse_config
from burnwatch.config.settings import Settings
from burnwatch.core.errors import ConfigurationError
from burnwatch.costs.tracker import DisabledCostTracker
from burnwatch.defaults import DEFAULT_ALERT_RULES, DEFAULT_BUDGETS, DEFAULT_SLO_TARGETS
from burnwatch.engine import MonitoringEngine, create_engine
from burnwatch.slos.models import SLOState


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def engine(settings, notifiers, clock):
    config = parse_config(
        {
            "targets": [
                {"service": "worker", "metric": "error_rate", "target": 1, "window": "1h", "errorBudget": 5}
            ],
            "budgets": [{"service": "ahrefs", "dailyLimit": 50, "monthlyLimit": 1000}],
        }
    )
    return create_engine(settings, config=config, notifiers=notifiers, clock=clock)


class TestCreateEngine:
    """Tests for create_engine."""

    def test_disabled_settings_give_disabled_engine(self):
        engine = create_engine(Settings(_env_file=None, enabled=False))

        assert engine.enabled is False
        assert engine.record_metric("api", "availability", 1) is None
        assert engine.record_cost("ahrefs", "keywords", 100) is None
        assert engine.get_active_alerts() == []

    def test_bad_config_falls_back_to_disabled(self, settings, tmp_path):
        config_file = tmp_path / "burnwatch.yaml"
        config_file.write_text("targets:\n  - service: api\n    metric: availability\n    target: 0\n")

        engine = create_engine(settings, config_path=config_file)

        assert engine.enabled is False

    def test_bad_config_raises_without_fallback(self, settings, tmp_path):
        config_file = tmp_path / "burnwatch.yaml"
        config_file.write_text("rules: [{id: broken}]\n")

        with pytest.raises(ConfigurationError) as exc_info:
            create_engine(settings, config_path=config_file, fallback_to_disabled=False)

        assert exc_info.value.details["errors"][0].startswith("rules[0]:")

    def test_defaults_loaded_on_request(self, notifiers, clock):
        engine = create_engine(Settings(_env_file=None, load_defaults=True), notifiers=notifiers, clock=clock)

        assert len(engine.get_slo_status()) == len(DEFAULT_SLO_TARGETS)
        assert len(engine.alerts.get_rules()) == len(DEFAULT_ALERT_RULES)
        assert len(engine.costs.get_budgets()) == len(DEFAULT_BUDGETS)

    def test_config_overrides_defaults(self, notifiers, clock):
        config = parse_config({"budgets": [{"service": "ahrefs", "daily_limit": 5, "monthly_limit": 100}]})

        engine = create_engine(
            Settings(_env_file=None, load_defaults=True), config=config, notifiers=notifiers, clock=clock
        )

        assert engine.costs.get_budget("ahrefs").daily_limit == 5
        assert len(engine.costs.get_budgets()) == len(DEFAULT_BUDGETS)

    def test_cost_tracking_switch(self, notifiers):
        engine = create_engine(Settings(_env_file=None, cost_tracking_enabled=False), notifiers=notifiers)

        assert isinstance(engine.costs, DisabledCostTracker)
        assert engine.record_cost("ahrefs", "keywords", 1) is None

    def test_alerting_switch_records_without_delivery(self, notifiers, clock):
        engine = create_engine(
            Settings(_env_file=None, alerting_enabled=False), notifiers=notifiers, clock=clock
        )

        engine.alerts.trigger_alert("disk_full", "critical", "disk at 99%")

        assert engine.alerts.pending_deliveries == 0
        assert len(engine.get_active_alerts()) == 1


class TestEngineFacade:
    """Tests for metric and cost entry points."""

    def test_record_metric_updates_slo(self, engine):
        for value in [0] * 24 + [1]:
            status = engine.record_metric("worker", "error_rate", value)

        assert status.status is SLOState.WARNING
        assert [a.type for a in engine.get_active_alerts()] == ["slo_warning"]

    def test_record_metric_does_not_evaluate_rules(self, engine):
        engine.add_rule({"id": "errors", "metric": "error_rate", "threshold": 0.5})

        engine.record_metric("worker", "error_rate", 0)

        assert engine.get_alert_history() == []
        assert len(engine.check_metric("error_rate", 1)) == 1

    def test_record_cost_raises_budget_alert(self, engine):
        for _ in range(5):
            engine.record_cost("ahrefs", "keywords", 5)

        [alert] = engine.get_active_alerts()
        assert alert.type == "budget_alert"
        assert alert.metadata["service"] == "ahrefs"

    def test_rule_management(self, engine):
        engine.add_rule({"id": "queue", "metric": "queue_depth", "threshold": 1000})

        assert engine.update_rule("queue", {"threshold": 500}) is True
        assert engine.check_metric("queue_depth", 750)
        assert engine.remove_rule("queue") is True
        assert engine.remove_rule("queue") is False

    def test_status_report(self, engine):
        engine.record_cost("ahrefs", "keywords", 5)

        report = engine.status_report()

        assert report["enabled"] is True
        assert report["slo_summary"]["total"] == 1
        assert report["cost_breakdown"]["total"] == 5
        assert set(report["delivery"]) >= {"sent", "failed", "suppressed"}


class TestAlertsPerTarget:
    """Tests that concurrent alerts for different targets and budgets are each delivered."""

    @pytest.fixture
    def engine(self, settings, notifiers, clock):
        target = {"metric": "error_rate", "target": 1, "window": "1h", "errorBudget": 5}
        config = parse_config(
            {
                "targets": [{"service": "worker", **target}, {"service": "billing", **target}],
                "budgets": [
                    {"service": "ahrefs", "dailyLimit": 50, "monthlyLimit": 1000},
                    {"service": "total", "dailyLimit": 50, "monthlyLimit": 1000},
                ],
            }
        )
        return create_engine(settings, config=config, notifiers=notifiers, clock=clock)

    async def test_two_targets_in_warning(self, engine, slack):
        for service in ("worker", "billing"):
            for value in [0] * 24 + [1]:
                engine.record_metric(service, "error_rate", value)
        await engine.alerts.drain()

        assert sorted(a.metadata["service"] for a in slack.sent) == ["billing", "worker"]
        assert sorted(a.metadata["service"] for a in engine.get_active_alerts()) == ["billing", "worker"]

        for value in [0] * 500:
            engine.record_metric("worker", "error_rate", value)

        [remaining] = engine.get_active_alerts()
        assert remaining.metadata["service"] == "billing"

    async def test_service_and_total_budgets(self, engine, slack):
        for _ in range(5):
            engine.record_cost("ahrefs", "keywords", 5)
        await engine.alerts.drain()

        fired = engine.costs.get_budget_alerts()
        assert sorted(a.service for a in fired) == ["ahrefs", "total"]
        assert len({a.alert_id for a in fired}) == 2
        assert sorted(a.metadata["service"] for a in slack.sent) == ["ahrefs", "total"]


class TestLifecycle:
    """Tests for start/shutdown."""

    async def test_shutdown_delivers_queued_alerts(self, engine, slack, pagerduty):
        await engine.start()
        assert engine.running

        engine.alerts.trigger_alert("disk_full", "critical", "disk at 99%")
        await engine.shutdown()

        assert not engine.running
        assert len(slack.sent) == 1
        assert len(pagerduty.sent) == 1
        assert engine.alerts.pending_deliveries == 0

    async def test_context_manager(self, engine):
        async with engine:
            assert engine.running

        assert not engine.running

    async def test_disabled_engine_never_starts(self, settings):
        engine = MonitoringEngine.disabled(settings)

        await engine.start()

        assert not engine.running
        await engine.shutdown()

    def test_tick_runs_every_job(self, engine, clock):
        engine.record_cost("ahrefs", "keywords", 1, timestamp=clock())
        clock.advance(days=40)

        engine.tick()

        assert [task.runs for task in engine.tasks] == [1, 1, 1]
        assert engine.get_cost_breakdown().total == 0
