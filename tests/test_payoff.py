"""Tests for display status and settlement evaluation."""

from datetime import date
from decimal import Decimal

import pytest

from payplan.models.enums import DisplayStatus, InstallmentStatus, PaymentMethod
from payplan.models.financial import Installment, NextInstallment
from payplan.service.payoff import display_status, evaluate_settlement, is_single_slip_plan

TODAY = date(2025, 3, 10)


def installments(*statuses: InstallmentStatus) -> list[Installment]:
    return [
        Installment(
            id=f"inst-{n}",
            financial_record_id="rec-1",
            installment_number=n,
            amount=Decimal("100.00"),
            due_date=date(2025, n, 1),
            status=status,
        )
        for n, status in enumerate(statuses, start=1)
    ]


PAID = InstallmentStatus.PAID
PENDING = InstallmentStatus.PENDING


class TestDisplayStatus:
    """Tests for display_status."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            (InstallmentStatus.PAID, DisplayStatus.PAID),
            (InstallmentStatus.CANCELED, DisplayStatus.CANCELED),
            (InstallmentStatus.OVERDUE, DisplayStatus.OVERDUE),
        ],
    )
    def test_passthrough(self, status: InstallmentStatus, expected: DisplayStatus) -> None:
        """Test that non-pending statuses ignore the due date."""
        assert display_status(status, date(2099, 1, 1), today=TODAY) == expected

    @pytest.mark.parametrize(
        "due_date,expected",
        [
            (date(2025, 3, 10), DisplayStatus.DUE_TODAY),
            (date(2025, 3, 11), DisplayStatus.UPCOMING),
            (date(2025, 3, 9), DisplayStatus.OVERDUE),
            (None, DisplayStatus.PENDING),
        ],
    )
    def test_pending_refined_by_due_date(self, due_date: date | None, expected: DisplayStatus) -> None:
        assert display_status(PENDING, due_date, today=TODAY) == expected

    def test_labels(self) -> None:
        assert DisplayStatus.DUE_TODAY.label == "Vence hoje"
        assert DisplayStatus.OVERDUE.label == "Atrasado"


class TestEvaluateSettlement:
    """Tests for evaluate_settlement."""

    @pytest.mark.parametrize(
        "statuses",
        [(PAID, PAID, PAID), (PAID, PENDING), ()],
    )
    def test_credit_card_never_settled(self, statuses: tuple) -> None:
        projection = NextInstallment(number=3, total=3, status=PAID)
        assert not evaluate_settlement(
            PaymentMethod.CREDIT_CARD, installments(*statuses), projection, single_slip=True
        )

    def test_boleto_all_paid(self) -> None:
        assert evaluate_settlement(
            PaymentMethod.BOLETO_OR_BOOKLET, installments(PAID, PAID, PAID), None
        )

    def test_boleto_one_pending(self) -> None:
        assert not evaluate_settlement(
            PaymentMethod.BOLETO_OR_BOOKLET, installments(PAID, PENDING, PAID), None
        )

    def test_installments_take_precedence_over_projection(self) -> None:
        projection = NextInstallment(number=2, total=2, status=PAID)
        assert not evaluate_settlement(
            PaymentMethod.DIRECT_DEBIT, installments(PAID, PENDING), projection
        )

    def test_projection_last_installment_paid(self) -> None:
        projection = NextInstallment(number=4, total=4, status=PAID)
        assert evaluate_settlement(PaymentMethod.DIRECT_DEBIT, [], projection)

    @pytest.mark.parametrize(
        "projection",
        [
            NextInstallment(number=3, total=4, status=PAID),
            NextInstallment(number=4, total=4, status=PENDING),
        ],
    )
    def test_projection_not_settled(self, projection: NextInstallment) -> None:
        assert not evaluate_settlement(PaymentMethod.BOLETO_OR_BOOKLET, None, projection)

    def test_single_slip_plan(self) -> None:
        projection = NextInstallment(number=1, total=0, status=PAID)
        assert evaluate_settlement(
            PaymentMethod.BOLETO_OR_BOOKLET, None, projection, single_slip=True
        )

    def test_single_slip_needs_projection_to_cover_plan(self) -> None:
        projection = NextInstallment(number=1, total=10, status=PAID)
        single_slip = is_single_slip_plan("Ficha de Compensação", projection)

        assert not single_slip
        assert not evaluate_settlement(
            PaymentMethod.BOLETO_OR_BOOKLET, None, projection, single_slip=single_slip
        )
        assert not evaluate_settlement(
            PaymentMethod.BOLETO_OR_BOOKLET, None, projection, single_slip=True
        )

    def test_nothing_known_is_not_settled(self) -> None:
        assert not evaluate_settlement(PaymentMethod.BOLETO_OR_BOOKLET, None, None)


class TestSingleSlipPlan:
    """Tests for is_single_slip_plan."""

    def test_ficha_text(self) -> None:
        assert is_single_slip_plan("Ficha de Compensação", None)

    def test_single_installment_projection(self) -> None:
        assert is_single_slip_plan(None, NextInstallment(number=1, total=1, status=PENDING))

    def test_regular_plan(self) -> None:
        assert not is_single_slip_plan("Boleto", NextInstallment(number=1, total=5, status=PAID))

    def test_ficha_text_with_unknown_total(self) -> None:
        assert is_single_slip_plan("ficha", NextInstallment(number=1, total=0, status=PAID))

    def test_ficha_text_with_multi_installment_projection(self) -> None:
        assert not is_single_slip_plan(
            "Ficha de Compensação", NextInstallment(number=1, total=10, status=PAID)
        )
