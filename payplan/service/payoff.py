"""Display status and "fully settled" evaluation."""

from datetime import date

from payplan.models.enums import DisplayStatus, InstallmentStatus, PaymentMethod
from payplan.models.financial import Installment, NextInstallment
from payplan.parsing.money import fold_accents

_PASSTHROUGH = {
    InstallmentStatus.PAID: DisplayStatus.PAID,
    InstallmentStatus.CANCELED: DisplayStatus.CANCELED,
    InstallmentStatus.OVERDUE: DisplayStatus.OVERDUE,
}


def display_status(
    status: InstallmentStatus,
    due_date: date | None,
    today: date | None = None,
) -> DisplayStatus:
    """Presentation status of an installment.

    Pending installments are refined by comparing the due date to today
    (calendar days, timezone-naive). The stored status is never changed.
    """
    if status in _PASSTHROUGH:
        return _PASSTHROUGH[status]
    if due_date is None:
        return DisplayStatus.PENDING

    today = today or date.today()
    if due_date == today:
        return DisplayStatus.DUE_TODAY
    if due_date > today:
        return DisplayStatus.UPCOMING
    return DisplayStatus.OVERDUE


def is_single_slip_plan(
    raw_method_text: str | None,
    next_installment: NextInstallment | None,
) -> bool:
    """Whether the plan is a single "ficha de compensação" slip.

    The slip wording only counts while the projection does not announce
    more than one installment.
    """
    if next_installment is not None and next_installment.total > 1:
        return False
    if raw_method_text and "ficha" in fold_accents(raw_method_text):
        return True
    return next_installment is not None and next_installment.total == 1


def evaluate_settlement(
    payment_method: PaymentMethod,
    installments: list[Installment] | None,
    next_installment: NextInstallment | None,
    single_slip: bool = False,
) -> bool:
    """Decide whether a document's payment plan is fully settled.

    Parameters
    ----------
    payment_method : PaymentMethod
        Canonical method of the record (or of the document's terms).
    installments : list[Installment] | None
        Stored installments of the record, if any exist.
    next_installment : NextInstallment | None
        Cached projection carried on the subject document.
    single_slip : bool
        Plan is paid with a single "ficha de compensação".

    Returns
    -------
    bool
        ``True`` only when settlement can be proven; unknown is ``False``.
    """
    # Card installments are managed by the issuer
    if payment_method == PaymentMethod.CREDIT_CARD:
        return False

    if installments:
        return all(i.status == InstallmentStatus.PAID for i in installments)

    if next_installment is not None:
        paid = next_installment.status == InstallmentStatus.PAID
        if paid and next_installment.number == next_installment.total:
            return True
        # The sole known installment must be the whole plan
        if paid and single_slip and next_installment.total <= 1:
            return True

    return False
