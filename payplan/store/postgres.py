"""PostgreSQL-backed document store (psycopg 3)."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from payplan.config import PostgresConfig
from payplan.exceptions import RecordNotFoundError, StoreUnavailableError
from payplan.store.base import Row

logger = logging.getLogger(__name__)

JSON_COLUMNS = frozenset({"payload", "details", "next_installment"})

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS subject_documents (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    document_type TEXT NOT NULL,
    status TEXT,
    payload JSONB NOT NULL DEFAULT '{}'::jsonb,
    next_installment JSONB
);

CREATE TABLE IF NOT EXISTS financial_records (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    subject_document_id UUID NOT NULL REFERENCES subject_documents(id),
    payment_method TEXT NOT NULL,
    installment_count INTEGER NOT NULL CHECK (installment_count >= 1),
    total_amount NUMERIC(15, 2) NOT NULL DEFAULT 0,
    net_premium NUMERIC(15, 2) NOT NULL DEFAULT 0,
    gross_premium NUMERIC(15, 2) NOT NULL DEFAULT 0,
    last_updated_at TIMESTAMP,
    edited_by TEXT,
    source_kind TEXT NOT NULL,
    confirmed BOOLEAN NOT NULL DEFAULT FALSE,
    document_type TEXT
);

CREATE TABLE IF NOT EXISTS installments (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    financial_record_id UUID NOT NULL REFERENCES financial_records(id),
    installment_number INTEGER NOT NULL CHECK (installment_number >= 1),
    amount NUMERIC(15, 2) NOT NULL DEFAULT 0,
    due_date DATE,
    payment_date DATE,
    status TEXT NOT NULL,
    details JSONB
);

CREATE INDEX IF NOT EXISTS idx_financial_records_subject
    ON financial_records (subject_document_id);
CREATE INDEX IF NOT EXISTS idx_installments_record
    ON installments (financial_record_id, installment_number);
"""


class PostgresDocumentStore:
    """Document store over a PostgreSQL database.

    Every statement autocommits unless it runs inside ``transaction()``,
    which maps onto a real database transaction.

    Parameters
    ----------
    config : PostgresConfig | str
        Connection configuration or a conninfo string.
    connection : psycopg.Connection | None
        Pre-opened connection (must use ``dict_row``).
    """

    supports_transactions = True

    def __init__(
        self,
        config: PostgresConfig | str,
        connection: psycopg.Connection | None = None,
    ) -> None:
        if isinstance(config, PostgresConfig):
            config = config.connection_string
        self._conninfo = config
        self._conn = connection

    @property
    def connection(self) -> psycopg.Connection:
        if self._conn is None or self._conn.closed:
            try:
                self._conn = psycopg.connect(self._conninfo, autocommit=True, row_factory=dict_row)
            except psycopg.Error as e:
                raise StoreUnavailableError(f"Could not connect to PostgreSQL: {e}") from e
        return self._conn

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        try:
            with self.connection.cursor() as cur:
                yield cur
        except psycopg.Error as e:
            logger.error("PostgreSQL call failed: %s", e)
            raise StoreUnavailableError(str(e)) from e

    def create_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self._cursor() as cur:
            cur.execute(SCHEMA_SQL)

    @staticmethod
    def _where(filters: dict[str, Any] | None) -> tuple[sql.Composable, list[Any]]:
        if not filters:
            return sql.SQL(""), []
        clauses = []
        params: list[Any] = []
        for column, value in filters.items():
            if isinstance(value, (list, tuple, set)):
                clauses.append(sql.SQL("{} = ANY(%s)").format(sql.Identifier(column)))
                params.append(list(value))
            else:
                clauses.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
                params.append(value)
        return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params

    @staticmethod
    def _encode(row: Row) -> Row:
        return {k: Jsonb(v) if k in JSON_COLUMNS and v is not None else v for k, v in row.items()}

    @staticmethod
    def _decode(row: Row) -> Row:
        return {k: str(v) if isinstance(v, uuid.UUID) else v for k, v in row.items()}

    def find(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        """Select rows matching ``filters``."""
        where, params = self._where(filters)
        query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(table)) + where
        if order_by:
            query += sql.SQL(" ORDER BY {} {} NULLS LAST").format(
                sql.Identifier(order_by), sql.SQL("DESC" if descending else "ASC")
            )
        with self._cursor() as cur:
            cur.execute(query, params)
            return [self._decode(r) for r in cur.fetchall()]

    def insert(self, table: str, rows: list[Row]) -> list[Row]:
        """Insert rows one statement each, returning the stored rows."""
        inserted = []
        with self._cursor() as cur:
            for row in rows:
                encoded = self._encode(row)
                query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
                    sql.Identifier(table),
                    sql.SQL(", ").join(sql.Identifier(c) for c in encoded),
                    sql.SQL(", ").join(sql.Placeholder() for _ in encoded),
                )
                cur.execute(query, list(encoded.values()))
                inserted.append(self._decode(cur.fetchone()))
        return inserted

    def update(self, table: str, row_id: str, patch: Row) -> Row:
        """Update one row by id."""
        encoded = self._encode(patch)
        query = sql.SQL("UPDATE {} SET {} WHERE id = %s RETURNING *").format(
            sql.Identifier(table),
            sql.SQL(", ").join(
                sql.SQL("{} = %s").format(sql.Identifier(c)) for c in encoded
            ),
        )
        with self._cursor() as cur:
            cur.execute(query, [*encoded.values(), row_id])
            row = cur.fetchone()
        if row is None:
            raise RecordNotFoundError(f"{table} row {row_id} not found")
        return self._decode(row)

    def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete rows matching ``filters`` (filters are mandatory)."""
        if not filters:
            raise ValueError("delete requires at least one filter")
        where, params = self._where(filters)
        with self._cursor() as cur:
            cur.execute(sql.SQL("DELETE FROM {}").format(sql.Identifier(table)) + where, params)

    @contextmanager
    def transaction(self) -> Iterator[PostgresDocumentStore]:
        """Run the enclosed calls in one database transaction."""
        try:
            with self.connection.transaction():
                yield self
        except psycopg.Error as e:
            raise StoreUnavailableError(f"Transaction failed: {e}") from e

    def close(self) -> None:
        if self._conn is not None and not self._conn.closed:
            self._conn.close()
