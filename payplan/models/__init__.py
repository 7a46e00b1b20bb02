"""Domain models for payment-plan reconciliation."""

from payplan.models.base import Event
from payplan.models.enums import (
    DisplayStatus,
    InstallmentStatus,
    PaymentMethod,
    ScheduleState,
    SourceKind,
)
from payplan.models.financial import (
    ExtractedTerms,
    FinancialRecord,
    Installment,
    NextInstallment,
    Schedule,
    ScheduledInstallment,
    SubjectDocument,
)

__all__ = [
    "DisplayStatus",
    "Event",
    "ExtractedTerms",
    "FinancialRecord",
    "Installment",
    "InstallmentStatus",
    "NextInstallment",
    "PaymentMethod",
    "Schedule",
    "ScheduleState",
    "ScheduledInstallment",
    "SourceKind",
    "SubjectDocument",
]
