"""Payment-plan models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from payplan.models.enums import InstallmentStatus, PaymentMethod, SourceKind

ZERO = Decimal("0.00")


@dataclass
class FinancialRecord:
    """Canonical payment terms of one subject document (dados financeiros)."""

    id: str
    subject_document_id: str
    payment_method: PaymentMethod
    installment_count: int
    total_amount: Decimal
    net_premium: Decimal
    gross_premium: Decimal
    last_updated_at: datetime | None
    source_kind: SourceKind = SourceKind.FROM_DOCUMENT
    confirmed: bool = False
    edited_by: str | None = None
    document_type: str | None = None  # apolice, proposta, endosso


@dataclass
class Installment:
    """One scheduled payment (parcela)."""

    id: str
    financial_record_id: str
    installment_number: int  # 1, 2, 3, ...
    amount: Decimal
    due_date: date | None
    payment_date: date | None = None
    status: InstallmentStatus = InstallmentStatus.PENDING
    details: dict | None = None


@dataclass
class ScheduledInstallment:
    """Installment produced by the generator, before it has a store id."""

    installment_number: int
    amount: Decimal
    due_date: date
    status: InstallmentStatus = InstallmentStatus.PENDING


@dataclass
class ExtractedTerms:
    """Financial terms resolved from a document payload."""

    payment_method: PaymentMethod
    installment_count: int
    total_amount: Decimal
    net_premium: Decimal = ZERO
    gross_premium: Decimal = ZERO
    iof: Decimal = ZERO
    installment_amounts: list[Decimal] = field(default_factory=list)
    effective_date: date | None = None
    source: str = "unknown"


@dataclass
class NextInstallment:
    """Cached "next installment" projection carried on a subject document."""

    number: int
    total: int
    status: InstallmentStatus
    due_date: date | None = None


@dataclass
class SubjectDocument:
    """Proposal, policy or endorsement whose payment plan is reconciled."""

    id: str
    document_type: str
    payload: dict
    status: str | None = None
    next_installment: NextInstallment | None = None


@dataclass
class Schedule:
    """A financial record together with its installments, ascending by number."""

    record: FinancialRecord
    installments: list[Installment] = field(default_factory=list)

    def total(self) -> Decimal:
        return sum((i.amount for i in self.installments), ZERO)

    def find(self, installment_id: str) -> Installment | None:
        for installment in self.installments:
            if installment.id == installment_id:
                return installment
        return None
