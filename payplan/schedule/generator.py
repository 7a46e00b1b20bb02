"""Installment schedule generator."""

from datetime import date, timedelta
from typing import Iterator

from payplan.models.enums import InstallmentStatus
from payplan.models.financial import ExtractedTerms, ScheduledInstallment
from payplan.parsing.money import split_amount

DEFAULT_CADENCE_DAYS = 30


class ScheduleGenerator:
    """Build concrete installments (amount + due date) from extracted terms.

    Due dates follow a fixed day cadence, not calendar months: installment 1
    is due ``cadence_days`` after the anchor and each following one
    ``cadence_days`` after the previous.

    Parameters
    ----------
    cadence_days : int
        Days between consecutive due dates (default 30).
    """

    def __init__(self, cadence_days: int = DEFAULT_CADENCE_DAYS) -> None:
        self.cadence_days = cadence_days

    def generate(
        self,
        terms: ExtractedTerms,
        anchor: date | None = None,
        today: date | None = None,
    ) -> list[ScheduledInstallment]:
        """Generate the full schedule for ``terms``.

        Parameters
        ----------
        terms : ExtractedTerms
            Resolved financial terms.
        anchor : date | None
            Schedule anchor; defaults to the terms' effective date, then today.
        today : date | None
            Reference "today" (default ``date.today()``).

        Returns
        -------
        list[ScheduledInstallment]
            Exactly ``terms.installment_count`` pending installments.
        """
        anchor = anchor or terms.effective_date or today or date.today()
        count = max(terms.installment_count, 1)
        return list(self._generate_installments(terms, anchor, count))

    def _generate_installments(
        self, terms: ExtractedTerms, anchor: date, count: int
    ) -> Iterator[ScheduledInstallment]:
        uniform = split_amount(terms.total_amount, count)
        amounts = terms.installment_amounts

        for number, due_date in enumerate(self.due_dates(anchor + self.step, count), start=1):
            amount = amounts[number - 1] if number <= len(amounts) else None
            # Zero or missing figures fall back to the uniform share
            if not amount:
                amount = uniform[number - 1]

            yield ScheduledInstallment(
                installment_number=number,
                amount=amount,
                due_date=due_date,
                status=InstallmentStatus.PENDING,
            )

    @property
    def step(self) -> timedelta:
        return timedelta(days=self.cadence_days)

    def due_dates(self, first_due: date, count: int) -> list[date]:
        """Due dates for ``count`` installments starting at ``first_due``."""
        return [first_due + self.step * i for i in range(count)]

    def next_due_date(self, last_due: date | None, anchor: date) -> date:
        """Due date for an installment appended after ``last_due``."""
        return (last_due or anchor) + self.step
