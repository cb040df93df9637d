"""
Built-in SLO targets, budgets and alert rules.

Loaded when ``Settings.load_defaults`` is true; a config file passed to the
engine is merged on top.
"""

from __future__ import annotations

from typing import Any

from burnwatch.config.loader import MonitoringConfig, parse_config

DEFAULT_SLO_TARGETS: list[dict[str, Any]] = [
    {
        "service": "api",
        "metric": "availability",
        "target": 99.9,
        "window": "30d",
        "error_budget": 0.1,
        "alert_threshold": 0.05,
        "description": "API availability target",
    },
    {
        "service": "api",
        "metric": "latency_p95",
        "target": 95,
        "window": "7d",
        "error_budget": 5,
        "alert_threshold": 2,
        "description": "API latency p95 target (under 2 seconds)",
    },
    {
        "service": "keyword-processing",
        "metric": "success_rate",
        "target": 99.5,
        "window": "24h",
        "error_budget": 0.5,
        "alert_threshold": 0.25,
        "description": "Keyword processing success rate",
    },
    {
        "service": "data-quality",
        "metric": "relevance_score",
        "target": 90,
        "window": "7d",
        "error_budget": 10,
        "alert_threshold": 5,
        "description": "Keyword relevance quality target",
    },
]

DEFAULT_BUDGETS: list[dict[str, Any]] = [
    {"service": "ahrefs", "daily_limit": 50, "monthly_limit": 1000, "alert_thresholds": [0.5, 0.75, 0.9]},
    {"service": "anthropic", "daily_limit": 30, "monthly_limit": 600, "alert_thresholds": [0.6, 0.8, 0.95]},
    {"service": "infrastructure", "daily_limit": 20, "monthly_limit": 500, "alert_thresholds": [0.7, 0.85, 0.95]},
    {"service": "total", "daily_limit": 100, "monthly_limit": 2000, "alert_thresholds": [0.6, 0.8, 0.9]},
]

DEFAULT_ALERT_RULES: list[dict[str, Any]] = [
    {
        "id": "high-error-rate",
        "name": "High Error Rate",
        "metric": "error_rate",
        "condition": "gt",
        "threshold": 0.1,
        "severity": "critical",
        "cooldown_minutes": 15,
        "channels": ["slack"],
        "description": "Error rate exceeds 10%",
    },
    {
        "id": "slow-response-time",
        "name": "Slow Response Time",
        "metric": "avg_response_time",
        "condition": "gt",
        "threshold": 5000,
        "severity": "warning",
        "cooldown_minutes": 10,
        "channels": ["slack"],
        "description": "Average response time exceeds 5 seconds",
    },
    {
        "id": "high-api-cost",
        "name": "High API Cost",
        "metric": "api_cost_per_hour",
        "condition": "gt",
        "threshold": 10,
        "severity": "warning",
        "cooldown_minutes": 60,
        "channels": ["email"],
        "description": "API costs exceed $10/hour",
    },
    {
        "id": "budget-exceeded",
        "name": "Budget Exceeded",
        "metric": "budget_percentage",
        "condition": "gt",
        "threshold": 90,
        "severity": "critical",
        "cooldown_minutes": 30,
        "channels": ["slack", "email"],
        "description": "Budget usage exceeds 90%",
    },
    {
        "id": "low-data-quality",
        "name": "Low Data Quality",
        "metric": "data_quality_score",
        "condition": "lt",
        "threshold": 0.85,
        "severity": "warning",
        "cooldown_minutes": 30,
        "channels": ["slack"],
        "description": "Data quality score below 85%",
    },
    {
        "id": "queue-backup",
        "name": "Queue Backup",
        "metric": "queue_depth",
        "condition": "gt",
        "threshold": 1000,
        "severity": "warning",
        "cooldown_minutes": 15,
        "channels": ["slack"],
        "description": "Queue depth exceeds 1000 items",
    },
]


def default_config() -> MonitoringConfig:
    return parse_config(
        {
            "targets": DEFAULT_SLO_TARGETS,
            "budgets": DEFAULT_BUDGETS,
            "rules": DEFAULT_ALERT_RULES,
        }
    )
