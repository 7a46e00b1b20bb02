"""Reconciliation service: load, materialize, edit and settle payment plans."""

from __future__ import annotations

import copy
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable

from payplan.config import AuditConfig, EngineConfig
from payplan.exceptions import (
    ConfirmationRequiredError,
    InvalidTransitionError,
    PartialWriteFailureError,
    PayPlanError,
    RecordNotFoundError,
    SinkError,
    StoreUnavailableError,
    ValidationFailedError,
)
from payplan.extraction.resolver import (
    TermsResolver,
    effective_date,
    raw_payment_method,
)
from payplan.logging import get_logger
from payplan.models.base import Event
from payplan.models.enums import InstallmentStatus, ScheduleState, SourceKind
from payplan.models.financial import FinancialRecord, Installment, Schedule, SubjectDocument
from payplan.parsing.money import CENTS, normalize_payment_method, parse_amount
from payplan.schedule.generator import ScheduleGenerator
from payplan.service.payoff import evaluate_settlement, is_single_slip_plan
from payplan.store.base import DocumentStore
from payplan.store.financial import FinancialRecordStore, order_by_recency

logger = logging.getLogger(__name__)

EVENT_SOURCE = "payplan.reconciliation"
RECREATE_DOCUMENT_TYPES = ("apolice", "proposta")


@dataclass
class RecreateSummary:
    """Outcome of a bulk recreate run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)


class ScheduleCache:
    """Schedules loaded during one session, keyed by subject id.

    Holds an installment-id index so single-installment actions can find
    their subject without a store round trip. Entries are dropped on write.
    """

    def __init__(self) -> None:
        self._schedules: dict[str, Schedule] = {}
        self._subjects: dict[str, str] = {}

    def get(self, subject_id: str) -> Schedule | None:
        return self._schedules.get(subject_id)

    def put(self, subject_id: str, schedule: Schedule) -> None:
        self.invalidate(subject_id)
        self._schedules[subject_id] = schedule
        for installment in schedule.installments:
            self._subjects[installment.id] = subject_id

    def subject_for(self, installment_id: str) -> str | None:
        return self._subjects.get(installment_id)

    def invalidate(self, subject_id: str) -> None:
        schedule = self._schedules.pop(subject_id, None)
        if schedule is not None:
            for installment in schedule.installments:
                self._subjects.pop(installment.id, None)

    def clear(self) -> None:
        self._schedules.clear()
        self._subjects.clear()

    def __contains__(self, subject_id: str) -> bool:
        return subject_id in self._schedules


class ReconciliationService:
    """Keep one canonical installment schedule per subject document.

    Each public operation is a bounded sequence of store calls; callers are
    expected to serialize operations per subject. Concurrent sessions can
    still race, which duplicate healing on load corrects.

    Parameters
    ----------
    store : DocumentStore
        Backend for records, installments and subject documents.
    config : EngineConfig | None
        Engine settings (cadence, placeholder terms, save concurrency).
    audit_sink : Any | None
        Object with ``write_batch(topic, records)`` receiving audit events.
    clock : Callable[[], datetime] | None
        Source of "now" (default ``datetime.now``).
    audit_topic : str
        Topic or file name that audit events are written to.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: EngineConfig | None = None,
        audit_sink: Any | None = None,
        clock: Callable[[], datetime] | None = None,
        audit_topic: str = AuditConfig.topic,
    ) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self.audit_sink = audit_sink
        self.audit_topic = audit_topic
        self.clock = clock or datetime.now
        self.records = FinancialRecordStore(store, clock=self.clock)
        self.resolver = TermsResolver(placeholder=self.config.placeholder_terms)
        self.generator = ScheduleGenerator(self.config.cadence_days)
        self.cache = ScheduleCache()
        self._states: dict[str, ScheduleState] = {}

    # State
    def state(self, subject_id: str) -> ScheduleState:
        return self._states.get(subject_id, ScheduleState.ABSENT)

    def _set_state(self, subject_id: str, state: ScheduleState) -> None:
        previous = self.state(subject_id)
        self._states[subject_id] = state
        if previous != state:
            logger.debug(
                "Subject %s: %s -> %s",
                subject_id,
                previous.value,
                state.value,
                extra={"subject_id": subject_id},
            )

    def _require(self, subject_id: str, operation: str, *allowed: ScheduleState) -> None:
        current = self.state(subject_id)
        if current not in allowed:
            raise InvalidTransitionError(
                f"Cannot {operation} subject {subject_id} in state {current.value}"
            )

    def _today(self) -> date:
        return self.clock().date()

    # Loading
    def get_or_create_schedule(self, subject_id: str) -> Schedule:
        """Load the subject's schedule, materializing it from the document if absent.

        Also the "retry load" action for subjects in ``FAILED``.
        """
        self._require(
            subject_id,
            "load",
            ScheduleState.ABSENT,
            ScheduleState.READY,
            ScheduleState.EDITING,
            ScheduleState.FAILED,
        )
        cached = self.cache.get(subject_id)
        if cached is not None and self.state(subject_id) != ScheduleState.FAILED:
            return cached

        try:
            schedule, report = self.records.load_schedule(subject_id)
        except StoreUnavailableError:
            self._set_state(subject_id, ScheduleState.FAILED)
            raise

        if schedule is None:
            return self._materialize(subject_id, "schedule.created")

        if report.healed:
            self._emit(
                "schedule.healed",
                subject_id,
                {
                    "removed_records": report.removed_records,
                    "removed_installments": report.removed_installments,
                },
            )
        if self.state(subject_id) != ScheduleState.EDITING:
            self._set_state(subject_id, ScheduleState.READY)
        self.cache.put(subject_id, schedule)
        return schedule

    def _materialize(self, subject_id: str, event_type: str) -> Schedule:
        previous = self.state(subject_id)
        self._set_state(subject_id, ScheduleState.MATERIALIZING)
        try:
            subject = self.records.get_subject_document(subject_id)
            if subject is None:
                raise RecordNotFoundError(f"Subject document {subject_id} not found")

            terms = self.resolver.resolve(subject.payload)
            scheduled = self.generator.generate(terms, today=self._today())
            schedule = self.records.create_schedule(subject, terms, scheduled)
        except StoreUnavailableError:
            self._set_state(subject_id, ScheduleState.FAILED)
            raise
        except RecordNotFoundError:
            self._set_state(
                subject_id,
                ScheduleState.FAILED if previous == ScheduleState.FAILED else ScheduleState.ABSENT,
            )
            raise
        except Exception as e:
            logger.error(
                "Materializing schedule for subject %s failed: %s",
                subject_id,
                e,
                extra={"subject_id": subject_id},
            )
            self._set_state(subject_id, ScheduleState.FAILED)
            raise

        logger.info(
            "Materialized %d installments for subject %s from %s terms",
            len(schedule.installments),
            subject_id,
            terms.source,
            extra={"subject_id": subject_id, "record_id": schedule.record.id},
        )
        self._set_state(subject_id, ScheduleState.READY)
        self.cache.put(subject_id, schedule)
        self._emit(
            event_type,
            subject_id,
            {
                "record_id": schedule.record.id,
                "terms_source": terms.source,
                "installment_count": len(schedule.installments),
                "total_amount": schedule.record.total_amount,
            },
        )
        return schedule

    def _locate(self, installment_id: str) -> str:
        """Subject id owning an installment."""
        subject_id = self.cache.subject_for(installment_id)
        if subject_id is not None:
            return subject_id
        installment = self.records.get_installment(installment_id)
        return self.records.get_record(installment.financial_record_id).subject_document_id

    # Editing
    def begin_edit(self, subject_id: str) -> Schedule:
        """Open the edit form; returns a working copy of the schedule."""
        self._require(subject_id, "edit", ScheduleState.READY)
        schedule = self.get_or_create_schedule(subject_id)
        self._set_state(subject_id, ScheduleState.EDITING)
        return copy.deepcopy(schedule)

    def cancel_edit(self, subject_id: str) -> None:
        self._require(subject_id, "cancel editing", ScheduleState.EDITING)
        self.cache.invalidate(subject_id)
        self._set_state(subject_id, ScheduleState.READY)

    def _validate(
        self,
        subject_id: str,
        record: FinancialRecord | None,
        installments: list[Installment],
    ) -> None:
        if record is None or not record.id:
            raise ValidationFailedError("No financial record to save")
        if record.subject_document_id != subject_id:
            raise ValidationFailedError(
                f"Record {record.id} does not belong to subject {subject_id}"
            )
        for installment in installments:
            if not installment.id:
                raise ValidationFailedError("Installment without id; add it before saving")
            if installment.financial_record_id != record.id:
                raise ValidationFailedError(
                    f"Installment {installment.id} does not belong to record {record.id}"
                )
            if installment.installment_number < 1:
                raise ValidationFailedError(
                    f"Invalid installment number {installment.installment_number}"
                )
            installment.amount = parse_amount(installment.amount)
            if installment.amount < 0:
                raise ValidationFailedError(
                    f"Installment {installment.installment_number} has a negative amount"
                )

    def save_schedule(
        self,
        subject_id: str,
        record: FinancialRecord | None,
        installments: list[Installment],
        edited_by: str | None = None,
    ) -> Schedule:
        """Persist the edited schedule and return to ``READY``.

        ``installments`` is merged with the rows currently stored for the
        record: rows removed since the working copy was taken are dropped and
        rows added since are kept unchanged. The record total becomes the sum
        of the installment amounts and the record is marked confirmed. On stores without transactions the
        installment rows are written concurrently and a failure of any of
        them raises ``PartialWriteFailureError``; rows already written stay
        written and the subject stays in ``EDITING``.

        Raises
        ------
        ValidationFailedError
            Missing record or invalid installments.
        PartialWriteFailureError
            Some installment updates failed on a non-transactional store.
        StoreUnavailableError
            The record update (or the whole transaction) failed.
        """
        self._require(subject_id, "save", ScheduleState.EDITING)
        installments = list(installments)
        self._validate(subject_id, record, installments)
        installments = self._merge_stored(record, installments)

        installments, _ = self.records.heal_duplicate_installments(record, installments)
        installments.sort(key=lambda i: i.installment_number)

        patch = {
            "total_amount": sum((i.amount for i in installments), Decimal("0.00")),
            "installment_count": max(len(installments), 1),
            "confirmed": True,
            "source_kind": (
                SourceKind.MANUAL if record.source_kind == SourceKind.MANUAL else SourceKind.MIXED
            ),
            "last_updated_at": self.clock(),
            "edited_by": edited_by,
            "payment_method": record.payment_method,
            "net_premium": record.net_premium,
            "gross_premium": record.gross_premium,
        }

        self.cache.invalidate(subject_id)
        if self.store.supports_transactions:
            with self.store.transaction():
                saved_record = self.records.update_record(record.id, patch)
                saved = [self.records.update_installment(i) for i in installments]
        else:
            saved_record = self.records.update_record(record.id, patch)
            saved = self._update_concurrently(record, installments)

        schedule = Schedule(record=saved_record, installments=saved)
        self._set_state(subject_id, ScheduleState.READY)
        self.cache.put(subject_id, schedule)
        self._emit(
            "schedule.saved",
            subject_id,
            {
                "record_id": saved_record.id,
                "installment_count": saved_record.installment_count,
                "total_amount": saved_record.total_amount,
                "edited_by": edited_by,
            },
        )
        return schedule

    def _merge_stored(
        self, record: FinancialRecord, installments: list[Installment]
    ) -> list[Installment]:
        stored = self.records.list_installments(record.id)
        stored_ids = {i.id for i in stored}
        listed_ids = {i.id for i in installments}

        merged = [i for i in installments if i.id in stored_ids]
        added = [i for i in stored if i.id not in listed_ids]
        dropped = len(installments) - len(merged)
        if dropped or added:
            logger.warning(
                "Saving record %s: ignoring %d removed installments, keeping %d added ones",
                record.id,
                dropped,
                len(added),
                extra={"record_id": record.id},
            )
        return merged + added

    def _update_concurrently(
        self, record: FinancialRecord, installments: list[Installment]
    ) -> list[Installment]:
        saved: dict[int, Installment] = {}
        failed: list[int] = []

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = {
                executor.submit(self.records.update_installment, i): i.installment_number
                for i in installments
            }
            for future in as_completed(futures):
                number = futures[future]
                try:
                    saved[number] = future.result()
                except PayPlanError as e:
                    logger.error(
                        "Failed to save installment %d of record %s: %s",
                        number,
                        record.id,
                        e,
                        extra={"record_id": record.id},
                    )
                    failed.append(number)

        if failed:
            raise PartialWriteFailureError(
                f"{len(failed)} of {len(installments)} installments were not saved",
                failed_numbers=failed,
            )
        return [saved[number] for number in sorted(saved)]

    def add_installment(self, subject_id: str) -> Installment:
        """Append an installment after the last one and persist it immediately."""
        self._require(subject_id, "add an installment to", ScheduleState.EDITING)
        schedule = self.get_or_create_schedule(subject_id)
        record = schedule.record
        existing = schedule.installments

        number = max((i.installment_number for i in existing), default=0) + 1
        last_due = existing[-1].due_date if existing else None
        if last_due is None:
            subject = self.records.get_subject_document(subject_id)
            anchor = (subject and effective_date(subject.payload)) or self._today()
        else:
            anchor = last_due
        if existing:
            amount = (sum(i.amount for i in existing) / len(existing)).quantize(
                CENTS, rounding=ROUND_HALF_UP
            )
        else:
            amount = record.total_amount

        installment = self.records.insert_installment(
            record.id, number, amount, self.generator.next_due_date(last_due, anchor)
        )
        healed, _ = self.records.heal_duplicate_installments(record, [*existing, installment])
        self.records.set_installment_count(record, len(healed))
        self.cache.invalidate(subject_id)

        self._emit(
            "installment.added",
            subject_id,
            {"installment_id": installment.id, "installment_number": number, "amount": amount},
        )
        return installment

    def remove_installment(self, installment_id: str, confirmed: bool = False) -> None:
        """Delete one installment immediately (destructive)."""
        if not confirmed:
            raise ConfirmationRequiredError(f"Removing installment {installment_id} needs confirmation")

        subject_id = self._locate(installment_id)
        self._require(subject_id, "remove an installment from", ScheduleState.EDITING)
        schedule = self.get_or_create_schedule(subject_id)
        installment = schedule.find(installment_id)
        if installment is None:
            raise RecordNotFoundError(f"Installment {installment_id} not found")

        self.records.delete_installment(installment_id)
        self.records.set_installment_count(schedule.record, len(schedule.installments) - 1)
        self.cache.invalidate(subject_id)

        self._emit(
            "installment.removed",
            subject_id,
            {"installment_id": installment_id, "installment_number": installment.installment_number},
        )

    def toggle_installment_paid(self, installment_id: str) -> Installment:
        """Flip an installment between paid and pending, written immediately.

        Any non-paid status becomes paid with today's payment date; paid
        goes back to pending and clears the payment date. When the write
        fails the cached installment is restored and the error propagates.
        """
        subject_id = self._locate(installment_id)
        if self.state(subject_id) == ScheduleState.ABSENT:
            self.get_or_create_schedule(subject_id)
        self._require(subject_id, "toggle an installment of", ScheduleState.READY)

        schedule = self.get_or_create_schedule(subject_id)
        installment = schedule.find(installment_id)
        if installment is None:
            raise RecordNotFoundError(f"Installment {installment_id} not found")

        previous = (installment.status, installment.payment_date)
        if installment.status == InstallmentStatus.PAID:
            installment.status = InstallmentStatus.PENDING
            installment.payment_date = None
        else:
            installment.status = InstallmentStatus.PAID
            installment.payment_date = self._today()

        try:
            updated = self.records.update_installment(installment)
        except PayPlanError:
            installment.status, installment.payment_date = previous
            raise

        self.cache.invalidate(subject_id)
        self._emit(
            "installment.toggled",
            subject_id,
            {
                "installment_id": installment_id,
                "installment_number": updated.installment_number,
                "status": updated.status,
                "previous_status": previous[0],
            },
        )
        return updated

    def recreate_schedule(self, subject_id: str, confirmed: bool = False) -> Schedule:
        """Discard the subject's schedule and regenerate it from the document."""
        if not confirmed:
            raise ConfirmationRequiredError(f"Recreating subject {subject_id} needs confirmation")
        self._require(
            subject_id,
            "recreate",
            ScheduleState.ABSENT,
            ScheduleState.READY,
            ScheduleState.FAILED,
        )

        self._set_state(subject_id, ScheduleState.RECREATING)
        self.cache.invalidate(subject_id)
        try:
            removed = self.records.delete_subject_records(subject_id)
        except Exception:
            self._set_state(subject_id, ScheduleState.FAILED)
            raise

        logger.info(
            "Recreating schedule for subject %s (%d records discarded)",
            subject_id,
            len(removed),
            extra={"subject_id": subject_id},
        )
        return self._materialize(subject_id, "schedule.recreated")

    # Settlement
    def _settled(
        self,
        subject: SubjectDocument,
        record: FinancialRecord | None,
        installments: list[Installment] | None,
    ) -> bool:
        raw_method = raw_payment_method(subject.payload)
        method = record.payment_method if record else normalize_payment_method(raw_method)
        return evaluate_settlement(
            method,
            installments,
            subject.next_installment,
            single_slip=is_single_slip_plan(raw_method, subject.next_installment),
        )

    def is_fully_settled(self, subject_id: str) -> bool:
        """Whether every installment of the subject is paid (read-only).

        Unknown or unreachable data counts as not settled.
        """
        try:
            subject = self.records.get_subject_document(subject_id)
            if subject is None:
                return False

            cached = self.cache.get(subject_id)
            if cached is not None:
                return self._settled(subject, cached.record, cached.installments)

            records = order_by_recency(self.records.find_records(subject_id))
            record = records[0] if records else None
            installments = self.records.list_installments(record.id) if record else None
        except StoreUnavailableError as e:
            logger.warning(
                "Settlement of subject %s unknown: %s", subject_id, e, extra={"subject_id": subject_id}
            )
            return False

        return self._settled(subject, record, installments)

    def settlement_statuses(self, subject_ids: list[str]) -> dict[str, bool]:
        """Settlement flag for many subjects with a fixed number of store calls."""
        statuses = {subject_id: False for subject_id in subject_ids}
        subjects = self.records.get_subject_documents(list(statuses))

        newest: dict[str, FinancialRecord] = {}
        for record in order_by_recency(self.records.find_records_for_subjects(list(statuses))):
            newest.setdefault(record.subject_document_id, record)
        installments = self.records.list_installments_for_records(
            [r.id for r in newest.values()]
        )

        for subject in subjects:
            record = newest.get(subject.id)
            statuses[subject.id] = self._settled(
                subject, record, installments.get(record.id) if record else None
            )
        return statuses

    def recreate_all_schedules(
        self, document_types: tuple[str, ...] = RECREATE_DOCUMENT_TYPES
    ) -> RecreateSummary:
        """Recreate the schedule of every non-canceled document of the given types."""
        summary = RecreateSummary()
        for subject in self.records.list_subject_documents(document_types):
            if subject.status and subject.status.lower().startswith("cancel"):
                continue
            summary.total += 1
            try:
                self.recreate_schedule(subject.id, confirmed=True)
            except PayPlanError as e:
                get_logger(__name__, subject_id=subject.id).error(
                    "Recreate failed for subject %s: %s", subject.id, e
                )
                summary.failed += 1
                summary.errors[subject.id] = str(e)
            else:
                summary.succeeded += 1

        logger.info(
            "Recreated %d of %d schedules (%d failed)",
            summary.succeeded,
            summary.total,
            summary.failed,
        )
        return summary

    # Audit
    def _emit(self, event_type: str, subject_id: str, data: dict) -> None:
        if self.audit_sink is None:
            return
        event = Event(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            event_time=self.clock(),
            source=EVENT_SOURCE,
            subject=subject_id,
            data=data,
        )
        try:
            self.audit_sink.write_batch(self.audit_topic, [event])
        except SinkError as e:
            logger.error(
                "Audit event %s for subject %s was not written: %s",
                event_type,
                subject_id,
                e,
                extra={"subject_id": subject_id},
            )
