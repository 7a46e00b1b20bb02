"""Store interface, backends and the financial record adapter."""

from payplan.store.base import (
    FINANCIAL_RECORDS,
    INSTALLMENTS,
    SUBJECT_DOCUMENTS,
    DocumentStore,
)
from payplan.store.financial import FinancialRecordStore, HealingReport
from payplan.store.memory import InMemoryDocumentStore

__all__ = [
    "FINANCIAL_RECORDS",
    "INSTALLMENTS",
    "SUBJECT_DOCUMENTS",
    "DocumentStore",
    "FinancialRecordStore",
    "HealingReport",
    "InMemoryDocumentStore",
]
