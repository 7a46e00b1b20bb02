"""Enumeration types for payment plans."""

from enum import Enum


class PaymentMethod(str, Enum):
    BOLETO_OR_BOOKLET = "BOLETO_OR_BOOKLET"
    DIRECT_DEBIT = "DIRECT_DEBIT"
    CREDIT_CARD = "CREDIT_CARD"

    @property
    def label(self) -> str:
        return _PAYMENT_METHOD_LABELS[self]


_PAYMENT_METHOD_LABELS = {
    PaymentMethod.BOLETO_OR_BOOKLET: "Boleto / Carnê",
    PaymentMethod.DIRECT_DEBIT: "Débito em Conta",
    PaymentMethod.CREDIT_CARD: "Cartão de Crédito",
}


class SourceKind(str, Enum):
    FROM_DOCUMENT = "FROM_DOCUMENT"
    MANUAL = "MANUAL"
    MIXED = "MIXED"


class InstallmentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELED = "CANCELED"


class DisplayStatus(str, Enum):
    """Presentation-only status, derived and never stored."""

    PAID = "PAID"
    CANCELED = "CANCELED"
    OVERDUE = "OVERDUE"
    DUE_TODAY = "DUE_TODAY"
    UPCOMING = "UPCOMING"
    PENDING = "PENDING"  # pending without a due date

    @property
    def label(self) -> str:
        return _DISPLAY_STATUS_LABELS[self]


_DISPLAY_STATUS_LABELS = {
    DisplayStatus.PAID: "Pago",
    DisplayStatus.CANCELED: "Cancelado",
    DisplayStatus.OVERDUE: "Atrasado",
    DisplayStatus.DUE_TODAY: "Vence hoje",
    DisplayStatus.UPCOMING: "A vencer",
    DisplayStatus.PENDING: "Pendente",
}


class ScheduleState(str, Enum):
    ABSENT = "ABSENT"
    MATERIALIZING = "MATERIALIZING"
    READY = "READY"
    EDITING = "EDITING"
    RECREATING = "RECREATING"
    FAILED = "FAILED"
