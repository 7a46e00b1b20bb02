"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta
from typing import Any, Callable

import pytest

from payplan.config import EngineConfig
from payplan.models.financial import NextInstallment, SubjectDocument
from payplan.service.reconciliation import ReconciliationService
from payplan.store.base import SUBJECT_DOCUMENTS
from payplan.store.financial import FinancialRecordStore, subject_to_row
from payplan.store.memory import InMemoryDocumentStore


class FakeClock:
    """Settable "now" for deterministic timestamps."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSink:
    """Audit sink keeping events in memory."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def write_batch(self, topic: str, records: list[Any]) -> None:
        self.events.extend((topic, r) for r in records)

    @property
    def types(self) -> list[str]:
        return [event.event_type for _, event in self.events]

    def close(self) -> None:
        pass


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2025-03-10 09:30."""
    return FakeClock(datetime(2025, 3, 10, 9, 30))


@pytest.fixture
def store() -> InMemoryDocumentStore:
    """Non-transactional store, like the hosted REST backend."""
    return InMemoryDocumentStore()


@pytest.fixture
def records(store: InMemoryDocumentStore, clock: FakeClock) -> FinancialRecordStore:
    return FinancialRecordStore(store, clock=clock)


@pytest.fixture
def add_subject(store: InMemoryDocumentStore) -> Callable[..., str]:
    """Insert a subject document and return its id."""
    counter = iter(range(1, 10_000))

    def _add(
        payload: dict,
        document_type: str = "apolice",
        status: str | None = "ativo",
        next_installment: NextInstallment | None = None,
    ) -> str:
        subject = SubjectDocument(
            id=f"doc-{next(counter):03d}",
            document_type=document_type,
            payload=payload,
            status=status,
            next_installment=next_installment,
        )
        store.insert(SUBJECT_DOCUMENTS, [subject_to_row(subject)])
        return subject.id

    return _add


@pytest.fixture
def audit_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def service(
    store: InMemoryDocumentStore, clock: FakeClock, audit_sink: RecordingSink
) -> ReconciliationService:
    """Service over the in-memory store with a recording audit sink."""
    return ReconciliationService(store, EngineConfig(), audit_sink=audit_sink, clock=clock)


@pytest.fixture
def boleto_payload() -> dict:
    """Three boleto installments of 100,00."""
    return {
        "valores": {
            "preco_total": "300,00",
            "parcelamento": {"quantidade": "3", "valor_parcela": "100,00"},
            "forma_pagamento": "Boleto Bancário",
        },
        "proposta": {"vigencia_inicial": "01/03/2025"},
    }


@pytest.fixture
def card_payload() -> dict:
    """Ten installments on a credit card."""
    return {
        "valores": {
            "preco_total": "1.625,93",
            "parcelamento": {"quantidade": "10", "valor_parcela": "162,59"},
            "forma_pagamento": "Cartão de Crédito",
        }
    }
