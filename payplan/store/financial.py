"""Financial record store adapter with duplicate healing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable

from payplan.exceptions import RecordNotFoundError
from payplan.models.enums import InstallmentStatus, SourceKind
from payplan.models.financial import (
    ExtractedTerms,
    FinancialRecord,
    Installment,
    NextInstallment,
    Schedule,
    ScheduledInstallment,
    SubjectDocument,
)
from payplan.parsing.money import normalize_payment_method, parse_amount, parse_date
from payplan.store.base import (
    FINANCIAL_RECORDS,
    INSTALLMENTS,
    SUBJECT_DOCUMENTS,
    DocumentStore,
    Row,
)

logger = logging.getLogger(__name__)

# Values written by earlier versions of the application
_LEGACY_SOURCE_KINDS = {
    "documento": SourceKind.FROM_DOCUMENT,
    "manual": SourceKind.MANUAL,
    "misto": SourceKind.MIXED,
}
_LEGACY_STATUSES = {
    "pendente": InstallmentStatus.PENDING,
    "pago": InstallmentStatus.PAID,
    "atrasado": InstallmentStatus.OVERDUE,
    "cancelado": InstallmentStatus.CANCELED,
}


def _source_kind(value: Any) -> SourceKind:
    if isinstance(value, SourceKind):
        return value
    text = str(value or "").strip()
    if text.lower() in _LEGACY_SOURCE_KINDS:
        return _LEGACY_SOURCE_KINDS[text.lower()]
    try:
        return SourceKind(text.upper())
    except ValueError:
        return SourceKind.FROM_DOCUMENT


def installment_status(value: Any) -> InstallmentStatus:
    """Read a stored status, accepting the legacy Portuguese values."""
    if isinstance(value, InstallmentStatus):
        return value
    text = str(value or "").strip()
    if text.lower() in _LEGACY_STATUSES:
        return _LEGACY_STATUSES[text.lower()]
    try:
        return InstallmentStatus(text.upper())
    except ValueError:
        return InstallmentStatus.PENDING


def _timestamp(value: Any) -> datetime | None:
    """Naive UTC timestamp from a datetime or ISO string."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def record_from_row(row: Row) -> FinancialRecord:
    return FinancialRecord(
        id=str(row["id"]),
        subject_document_id=str(row["subject_document_id"]),
        payment_method=normalize_payment_method(row.get("payment_method")),
        installment_count=max(int(row.get("installment_count") or 1), 1),
        total_amount=parse_amount(row.get("total_amount")),
        net_premium=parse_amount(row.get("net_premium")),
        gross_premium=parse_amount(row.get("gross_premium")),
        last_updated_at=_timestamp(row.get("last_updated_at")),
        source_kind=_source_kind(row.get("source_kind")),
        confirmed=bool(row.get("confirmed")),
        edited_by=row.get("edited_by"),
        document_type=row.get("document_type"),
    )


def record_to_row(record: FinancialRecord) -> Row:
    return {
        "subject_document_id": record.subject_document_id,
        "payment_method": record.payment_method.value,
        "installment_count": record.installment_count,
        "total_amount": record.total_amount,
        "net_premium": record.net_premium,
        "gross_premium": record.gross_premium,
        "last_updated_at": record.last_updated_at,
        "source_kind": record.source_kind.value,
        "confirmed": record.confirmed,
        "edited_by": record.edited_by,
        "document_type": record.document_type,
    }


def installment_from_row(row: Row) -> Installment:
    return Installment(
        id=str(row["id"]),
        financial_record_id=str(row["financial_record_id"]),
        installment_number=int(row["installment_number"]),
        amount=parse_amount(row.get("amount")),
        due_date=parse_date(row.get("due_date")),
        payment_date=parse_date(row.get("payment_date")),
        status=installment_status(row.get("status")),
        details=row.get("details"),
    )


def installment_patch(installment: Installment) -> Row:
    """Columns a save or toggle writes back."""
    return {
        "amount": installment.amount,
        "due_date": installment.due_date,
        "payment_date": installment.payment_date,
        "status": installment.status.value,
    }


def subject_from_row(row: Row) -> SubjectDocument:
    projection = row.get("next_installment")
    next_installment = None
    if isinstance(projection, dict) and projection.get("number") is not None:
        next_installment = NextInstallment(
            number=int(projection["number"]),
            total=int(projection.get("total") or projection["number"]),
            status=installment_status(projection.get("status")),
            due_date=parse_date(projection.get("due_date")),
        )
    payload = row.get("payload")
    return SubjectDocument(
        id=str(row["id"]),
        document_type=row.get("document_type") or "",
        payload=payload if isinstance(payload, dict) else {},
        status=row.get("status"),
        next_installment=next_installment,
    )


def subject_to_row(subject: SubjectDocument) -> Row:
    """Row for seeding the (otherwise read-only) subject documents table."""
    projection = subject.next_installment
    return {
        "id": subject.id,
        "document_type": subject.document_type,
        "status": subject.status,
        "payload": subject.payload,
        "next_installment": (
            {
                "number": projection.number,
                "total": projection.total,
                "status": projection.status.value,
                "due_date": projection.due_date.isoformat() if projection.due_date else None,
            }
            if projection
            else None
        ),
    }


def order_by_recency(records: list[FinancialRecord]) -> list[FinancialRecord]:
    """Newest ``last_updated_at`` first, undated records last."""
    # Stable sort keeps load order among equal timestamps
    dated = sorted(
        (r for r in records if r.last_updated_at is not None),
        key=lambda r: r.last_updated_at,
        reverse=True,
    )
    return dated + [r for r in records if r.last_updated_at is None]


@dataclass
class HealingReport:
    """Rows removed while restoring the one-record / unique-number invariants."""

    removed_records: list[str] = field(default_factory=list)
    removed_installments: list[str] = field(default_factory=list)

    @property
    def healed(self) -> bool:
        return bool(self.removed_records or self.removed_installments)


class FinancialRecordStore:
    """Read and write financial records and installments.

    Parameters
    ----------
    store : DocumentStore
        Backend implementing the structured-query interface.
    clock : Callable[[], datetime] | None
        Source of "now" for ``last_updated_at`` (default ``datetime.now``).
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.clock = clock or datetime.now

    # Subject documents
    def get_subject_document(self, subject_id: str) -> SubjectDocument | None:
        rows = self.store.find(SUBJECT_DOCUMENTS, {"id": subject_id})
        return subject_from_row(rows[0]) if rows else None

    def get_subject_documents(self, subject_ids: list[str]) -> list[SubjectDocument]:
        if not subject_ids:
            return []
        rows = self.store.find(SUBJECT_DOCUMENTS, {"id": list(subject_ids)})
        return [subject_from_row(r) for r in rows]

    def list_subject_documents(
        self, document_types: tuple[str, ...] | None = None
    ) -> list[SubjectDocument]:
        filters = {"document_type": list(document_types)} if document_types else None
        return [subject_from_row(r) for r in self.store.find(SUBJECT_DOCUMENTS, filters)]

    # Financial records
    def find_records(self, subject_id: str) -> list[FinancialRecord]:
        rows = self.store.find(FINANCIAL_RECORDS, {"subject_document_id": subject_id})
        return [record_from_row(r) for r in rows]

    def find_records_for_subjects(self, subject_ids: list[str]) -> list[FinancialRecord]:
        if not subject_ids:
            return []
        rows = self.store.find(FINANCIAL_RECORDS, {"subject_document_id": list(subject_ids)})
        return [record_from_row(r) for r in rows]

    def get_record(self, record_id: str) -> FinancialRecord:
        rows = self.store.find(FINANCIAL_RECORDS, {"id": record_id})
        if not rows:
            raise RecordNotFoundError(f"Financial record {record_id} not found")
        return record_from_row(rows[0])

    def update_record(self, record_id: str, patch: Row) -> FinancialRecord:
        encoded = {k: v.value if isinstance(v, Enum) else v for k, v in patch.items()}
        return record_from_row(self.store.update(FINANCIAL_RECORDS, record_id, encoded))

    def set_installment_count(self, record: FinancialRecord, count: int) -> FinancialRecord:
        updated = self.update_record(
            record.id, {"installment_count": max(count, 1), "last_updated_at": self.clock()}
        )
        record.installment_count = updated.installment_count
        record.last_updated_at = updated.last_updated_at
        return updated

    def delete_record(self, record_id: str) -> None:
        """Delete a record, children first."""
        self.store.delete(INSTALLMENTS, {"financial_record_id": record_id})
        self.store.delete(FINANCIAL_RECORDS, {"id": record_id})

    def delete_subject_records(self, subject_id: str) -> list[str]:
        """Delete every record (and its installments) of a subject."""
        removed = []
        for record in self.find_records(subject_id):
            self.delete_record(record.id)
            removed.append(record.id)
        return removed

    # Installments
    def list_installments(self, record_id: str) -> list[Installment]:
        rows = self.store.find(
            INSTALLMENTS, {"financial_record_id": record_id}, order_by="installment_number"
        )
        return [installment_from_row(r) for r in rows]

    def list_installments_for_records(self, record_ids: list[str]) -> dict[str, list[Installment]]:
        grouped: dict[str, list[Installment]] = {rid: [] for rid in record_ids}
        if not record_ids:
            return grouped
        rows = self.store.find(
            INSTALLMENTS, {"financial_record_id": list(record_ids)}, order_by="installment_number"
        )
        for row in rows:
            installment = installment_from_row(row)
            grouped.setdefault(installment.financial_record_id, []).append(installment)
        return grouped

    def get_installment(self, installment_id: str) -> Installment:
        rows = self.store.find(INSTALLMENTS, {"id": installment_id})
        if not rows:
            raise RecordNotFoundError(f"Installment {installment_id} not found")
        return installment_from_row(rows[0])

    def insert_installment(
        self,
        record_id: str,
        number: int,
        amount: Any,
        due_date: date | None,
        status: InstallmentStatus = InstallmentStatus.PENDING,
    ) -> Installment:
        row = {
            "financial_record_id": record_id,
            "installment_number": number,
            "amount": amount,
            "due_date": due_date,
            "payment_date": None,
            "status": status.value,
        }
        return installment_from_row(self.store.insert(INSTALLMENTS, [row])[0])

    def update_installment(self, installment: Installment) -> Installment:
        row = self.store.update(INSTALLMENTS, installment.id, installment_patch(installment))
        return installment_from_row(row)

    def delete_installment(self, installment_id: str) -> None:
        self.store.delete(INSTALLMENTS, {"id": installment_id})

    # Creation
    def create_schedule(
        self,
        subject: SubjectDocument,
        terms: ExtractedTerms,
        scheduled: list[ScheduledInstallment],
    ) -> Schedule:
        """Persist a new record and its generated installments."""
        record = FinancialRecord(
            id="",
            subject_document_id=subject.id,
            payment_method=terms.payment_method,
            installment_count=len(scheduled),
            total_amount=terms.total_amount,
            net_premium=terms.net_premium,
            gross_premium=terms.gross_premium,
            last_updated_at=self.clock(),
            source_kind=SourceKind.FROM_DOCUMENT,
            confirmed=False,
            document_type=subject.document_type or None,
        )
        with self.store.transaction():
            record = record_from_row(self.store.insert(FINANCIAL_RECORDS, [record_to_row(record)])[0])
            rows = self.store.insert(
                INSTALLMENTS,
                [
                    {
                        "financial_record_id": record.id,
                        "installment_number": item.installment_number,
                        "amount": item.amount,
                        "due_date": item.due_date,
                        "payment_date": None,
                        "status": item.status.value,
                    }
                    for item in scheduled
                ],
            )
        installments = sorted(
            (installment_from_row(r) for r in rows), key=lambda i: i.installment_number
        )
        return Schedule(record=record, installments=installments)

    # Healing
    def heal_duplicate_records(self, subject_id: str) -> tuple[FinancialRecord | None, list[str]]:
        """Keep only the most recently updated record of a subject.

        Returns
        -------
        tuple[FinancialRecord | None, list[str]]
            The surviving record (``None`` if the subject has none) and the
            ids of the records removed.
        """
        records = self.find_records(subject_id)
        if len(records) <= 1:
            return (records[0] if records else None), []

        survivor, *stale = order_by_recency(records)

        logger.warning(
            "Subject %s has %d financial records; keeping %s",
            subject_id,
            len(records),
            survivor.id,
            extra={"subject_id": subject_id},
        )
        removed = []
        for record in stale:
            self.delete_record(record.id)
            removed.append(record.id)
        return survivor, removed

    def heal_duplicate_installments(
        self, record: FinancialRecord, installments: list[Installment]
    ) -> tuple[list[Installment], list[str]]:
        """Drop repeated installment numbers, keeping the first occurrence.

        Returns
        -------
        tuple[list[Installment], list[str]]
            The healed list (original order) and the ids deleted.
        """
        seen: set[int] = set()
        kept: list[Installment] = []
        duplicates: list[Installment] = []
        for installment in installments:
            if installment.installment_number in seen:
                duplicates.append(installment)
            else:
                seen.add(installment.installment_number)
                kept.append(installment)

        if not duplicates:
            return installments, []

        logger.warning(
            "Record %s has %d duplicated installments; removing",
            record.id,
            len(duplicates),
            extra={"record_id": record.id},
        )
        kept_ids = {i.id for i in kept}
        removed = []
        for duplicate in duplicates:
            # The same row listed twice is dropped from the list only
            if duplicate.id in kept_ids:
                continue
            self.delete_installment(duplicate.id)
            removed.append(duplicate.id)
        self.set_installment_count(record, len(kept))
        return kept, removed

    def load_record(self, subject_id: str) -> FinancialRecord | None:
        """The subject's single financial record, after duplicate healing."""
        return self.heal_duplicate_records(subject_id)[0]

    def load_schedule(self, subject_id: str) -> tuple[Schedule | None, HealingReport]:
        """Load the subject's schedule, healing duplicates on the way."""
        report = HealingReport()
        record, report.removed_records = self.heal_duplicate_records(subject_id)
        if record is None:
            return None, report

        installments = self.list_installments(record.id)
        installments, report.removed_installments = self.heal_duplicate_installments(
            record, installments
        )
        return Schedule(record=record, installments=installments), report
