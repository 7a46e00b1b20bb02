"""Generic structured-query interface to the document/financial store."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable

FINANCIAL_RECORDS = "financial_records"
INSTALLMENTS = "installments"
SUBJECT_DOCUMENTS = "subject_documents"

TABLES = (FINANCIAL_RECORDS, INSTALLMENTS, SUBJECT_DOCUMENTS)

Row = dict[str, Any]


@runtime_checkable
class DocumentStore(Protocol):
    """Row-level access to the hosted store.

    Implementations raise ``StoreUnavailableError`` on I/O failures and
    ``RecordNotFoundError`` when ``update`` targets a missing id.
    """

    supports_transactions: bool

    def find(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        """Rows whose columns equal ``filters``; a list value means "in"."""
        ...

    def insert(self, table: str, rows: list[Row]) -> list[Row]:
        """Insert rows, returning them with their assigned ``id``."""
        ...

    def update(self, table: str, row_id: str, patch: Row) -> Row:
        """Apply ``patch`` to one row and return the updated row."""
        ...

    def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete every row matching ``filters``."""
        ...

    def transaction(self) -> AbstractContextManager[Any]:
        """Group writes atomically where the backend supports it."""
        ...
