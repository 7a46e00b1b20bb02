"""In-memory document store used for tests and local runs."""

import copy
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from payplan.exceptions import RecordNotFoundError, StoreUnavailableError
from payplan.store.base import TABLES, Row


@dataclass
class _FailureRule:
    operation: str
    table: str
    row_id: str | None
    remaining: int


@dataclass
class InMemoryDocumentStore:
    """Dict-backed store with the same contract as the hosted one.

    Rows are copied on the way in and out so callers never share state with
    the store. Failures can be injected per operation to exercise the
    engine's error paths.

    Parameters
    ----------
    transactional : bool
        Whether ``transaction()`` is atomic (snapshot/restore). The hosted
        REST store is not, so the default is ``False``.
    """

    transactional: bool = False
    tables: dict[str, list[Row]] = field(default_factory=lambda: {t: [] for t in TABLES})
    operations: list[tuple[str, str, Any]] = field(default_factory=list)
    _failures: list[_FailureRule] = field(default_factory=list)
    _lock: threading.RLock = field(default_factory=threading.RLock)

    @property
    def supports_transactions(self) -> bool:
        return self.transactional

    def inject_failure(
        self,
        operation: str,
        table: str,
        row_id: str | None = None,
        times: int = 1,
    ) -> None:
        """Make the next ``times`` matching calls raise ``StoreUnavailableError``.

        Parameters
        ----------
        operation : str
            One of: find, insert, update, delete.
        table : str
            Target table.
        row_id : str | None
            Only fail updates of this row (``update`` only).
        times : int
            Number of calls to fail.
        """
        self._failures.append(_FailureRule(operation, table, row_id, times))

    def _maybe_fail(self, operation: str, table: str, row_id: str | None = None) -> None:
        for rule in self._failures:
            if rule.remaining <= 0 or rule.operation != operation or rule.table != table:
                continue
            if rule.row_id is not None and rule.row_id != row_id:
                continue
            rule.remaining -= 1
            raise StoreUnavailableError(f"{operation} on {table} failed (injected)")

    def _table(self, table: str) -> list[Row]:
        if table not in self.tables:
            raise StoreUnavailableError(f"Unknown table {table}")
        return self.tables[table]

    @staticmethod
    def _matches(row: Row, filters: dict[str, Any] | None) -> bool:
        for column, expected in (filters or {}).items():
            value = row.get(column)
            if isinstance(expected, (list, tuple, set)):
                if value not in expected:
                    return False
            elif value != expected:
                return False
        return True

    def find(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        """Find rows matching ``filters``."""
        with self._lock:
            self.operations.append(("find", table, filters))
            self._maybe_fail("find", table)
            rows = [copy.deepcopy(r) for r in self._table(table) if self._matches(r, filters)]

        if order_by:
            present = [r for r in rows if r.get(order_by) is not None]
            missing = [r for r in rows if r.get(order_by) is None]
            present.sort(key=lambda r: r[order_by], reverse=descending)
            rows = present + missing
        return rows

    def insert(self, table: str, rows: list[Row]) -> list[Row]:
        """Insert rows, assigning ids where missing."""
        with self._lock:
            self.operations.append(("insert", table, len(rows)))
            self._maybe_fail("insert", table)
            inserted = []
            for row in rows:
                stored = copy.deepcopy(row)
                stored.setdefault("id", str(uuid.uuid4()))
                self._table(table).append(stored)
                inserted.append(copy.deepcopy(stored))
            return inserted

    def update(self, table: str, row_id: str, patch: Row) -> Row:
        """Update one row by id."""
        with self._lock:
            self.operations.append(("update", table, row_id))
            self._maybe_fail("update", table, row_id)
            for row in self._table(table):
                if row.get("id") == row_id:
                    row.update(copy.deepcopy(patch))
                    return copy.deepcopy(row)
            raise RecordNotFoundError(f"{table} row {row_id} not found")

    def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete rows matching ``filters``."""
        with self._lock:
            self.operations.append(("delete", table, filters))
            self._maybe_fail("delete", table)
            self.tables[table] = [r for r in self._table(table) if not self._matches(r, filters)]

    @contextmanager
    def transaction(self) -> Iterator["InMemoryDocumentStore"]:
        """Snapshot tables and restore them if the block raises."""
        if not self.transactional:
            yield self
            return

        with self._lock:
            snapshot = copy.deepcopy(self.tables)
            try:
                yield self
            except BaseException:
                self.tables = snapshot
                raise

    def count(self, table: str) -> int:
        """Number of rows in ``table`` (ignores injected failures)."""
        return len(self._table(table))
