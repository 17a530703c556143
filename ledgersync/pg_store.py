"""Postgres-backed record store.

Rows map one-to-one onto the tables in ``SCHEMA_SQL``.  Identifiers are
composed with ``psycopg.sql`` and checked against the known table set, so
filter keys can never inject SQL.
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from ledgersync.errors import PersistenceError
from ledgersync.models import HISTORY_TABLE, IMPORTS_TABLE, INVENTORY_TABLE, ORGANIZATIONS_TABLE

logger = logging.getLogger(__name__)

_TABLES = {INVENTORY_TABLE, HISTORY_TABLE, ORGANIZATIONS_TABLE, IMPORTS_TABLE}

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS organizations (
    id TEXT PRIMARY KEY,
    name TEXT,
    shopify_store_domain TEXT,
    shopify_access_token TEXT,
    bigcommerce_store_hash TEXT,
    bigcommerce_client_id TEXT,
    bigcommerce_access_token TEXT,
    clover_merchant_id TEXT,
    clover_access_token TEXT,
    clover_environment TEXT DEFAULT 'us',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS inventory_items (
    id TEXT PRIMARY KEY DEFAULT md5(random()::text || clock_timestamp()::text),
    org_id TEXT NOT NULL REFERENCES organizations(id),
    name TEXT NOT NULL,
    sku TEXT,
    quantity INTEGER NOT NULL DEFAULT 0,
    reorder_threshold INTEGER NOT NULL DEFAULT 0,
    category TEXT,
    ai_label TEXT,
    invoice TEXT,
    expiration_date TEXT,
    shopify_product_id TEXT,
    shopify_variant_id TEXT,
    bigcommerce_product_id TEXT,
    bigcommerce_variant_id TEXT,
    clover_item_id TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS inventory_items_org_sku ON inventory_items (org_id, sku);
CREATE INDEX IF NOT EXISTS inventory_items_org_name ON inventory_items (org_id, name);

CREATE TABLE IF NOT EXISTS inventory_history (
    id TEXT PRIMARY KEY DEFAULT md5(random()::text || clock_timestamp()::text),
    org_id TEXT NOT NULL,
    item_id TEXT NOT NULL,
    item_name TEXT,
    sku TEXT,
    previous_quantity INTEGER NOT NULL,
    new_quantity INTEGER NOT NULL,
    quantity_change INTEGER NOT NULL,
    change_type TEXT NOT NULL CHECK (change_type IN ('sync', 'webhook', 'manual')),
    source TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS inventory_history_dedup
    ON inventory_history (org_id, item_id, new_quantity, source, created_at);

CREATE TABLE IF NOT EXISTS imports (
    id TEXT PRIMARY KEY DEFAULT md5(random()::text || clock_timestamp()::text),
    org_id TEXT NOT NULL,
    source TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""


def _table(name: str) -> sql.Identifier:
    if name not in _TABLES:
        raise PersistenceError(f"Unknown table: {name}")
    return sql.Identifier(name)


def build_where(where: dict[str, Any], gte: dict[str, Any] | None = None) -> tuple[sql.Composable, list[Any]]:
    """Compose a WHERE clause of equality and lower-bound predicates."""
    clauses: list[sql.Composable] = []
    params: list[Any] = []
    for column, value in where.items():
        if value is None:
            clauses.append(sql.SQL("{} IS NULL").format(sql.Identifier(column)))
        else:
            clauses.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
            params.append(value)
    for column, value in (gte or {}).items():
        clauses.append(sql.SQL("{} >= %s").format(sql.Identifier(column)))
        params.append(value)
    if not clauses:
        return sql.SQL(""), params
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params


class PostgresRecordStore:
    """``RecordStore`` over a Postgres DSN (one short-lived connection per call)."""

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def _connect(self) -> psycopg.Connection:
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        try:
            with self._connect() as conn:
                conn.execute(SCHEMA_SQL)
        except psycopg.Error as e:
            raise PersistenceError(f"Schema initialisation failed: {e}") from e

    def find(
        self,
        table: str,
        where: dict[str, Any],
        *,
        gte: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        clause, params = build_where(where, gte)
        query = sql.SQL("SELECT * FROM {}").format(_table(table)) + clause
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(limit)
        try:
            with self._connect() as conn:
                return list(conn.execute(query, params).fetchall())
        except psycopg.Error as e:
            raise PersistenceError(f"Select from {table} failed: {e}") from e

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        columns = list(row)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            _table(table),
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )
        try:
            with self._connect() as conn:
                return conn.execute(query, [row[c] for c in columns]).fetchone()
        except psycopg.Error as e:
            raise PersistenceError(f"Insert into {table} failed: {e}") from e

    def update(self, table: str, where: dict[str, Any], values: dict[str, Any]) -> int:
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(c)) for c in values
        )
        clause, params = build_where(where)
        query = (
            sql.SQL("UPDATE {} SET {}, updated_at = now()").format(_table(table), assignments)
            + clause
        )
        try:
            with self._connect() as conn:
                return conn.execute(query, [*values.values(), *params]).rowcount
        except psycopg.Error as e:
            raise PersistenceError(f"Update of {table} failed: {e}") from e

    def delete(self, table: str, where: dict[str, Any]) -> int:
        if not where:
            raise PersistenceError("Refusing unfiltered delete")
        clause, params = build_where(where)
        query = sql.SQL("DELETE FROM {}").format(_table(table)) + clause
        try:
            with self._connect() as conn:
                return conn.execute(query, params).rowcount
        except psycopg.Error as e:
            raise PersistenceError(f"Delete from {table} failed: {e}") from e
