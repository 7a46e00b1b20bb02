"""Reconciliation service and payoff evaluation."""

from payplan.service.payoff import display_status, evaluate_settlement, is_single_slip_plan
from payplan.service.reconciliation import (
    RecreateSummary,
    ReconciliationService,
    ScheduleCache,
)

__all__ = [
    "RecreateSummary",
    "ReconciliationService",
    "ScheduleCache",
    "display_status",
    "evaluate_settlement",
    "is_single_slip_plan",
]
