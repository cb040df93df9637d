"""
Cost tracking: spend ledger, budgets and budget alerts.
"""

from burnwatch.costs.ledger import BudgetLedger
from burnwatch.costs.models import (
    TOTAL_BUDGET,
    BudgetAlert,
    BudgetConfig,
    BudgetPeriod,
    CostBreakdown,
    CostEvent,
    CostProjection,
    CostSummary,
    CostTrend,
    OperationCost,
    SpendWindow,
)
from burnwatch.costs.tracker import CostTracker, DisabledCostTracker

__all__ = [
    "BudgetAlert",
    "BudgetConfig",
    "BudgetLedger",
    "BudgetPeriod",
    "CostBreakdown",
    "CostEvent",
    "CostProjection",
    "CostSummary",
    "CostTracker",
    "CostTrend",
    "DisabledCostTracker",
    "OperationCost",
    "SpendWindow",
    "TOTAL_BUDGET",
]
