"""Org-scoped record store interface and the in-memory backend.

The reconciliation engine and webhook pipeline only ever talk to a
``RecordStore``: select / insert / update / delete by equality filter, with
an optional lower bound on columns (used for the history dedup window).
``InMemoryRecordStore`` is the default backend for development and tests;
``ledgersync.pg_store.PostgresRecordStore`` is the durable one.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Row = dict[str, Any]


@runtime_checkable
class RecordStore(Protocol):
    """Persistence contract consumed by the engine and webhook pipeline."""

    def find(
        self,
        table: str,
        where: dict[str, Any],
        *,
        gte: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        """Return rows matching every ``where`` equality and ``gte`` bound."""
        ...

    def insert(self, table: str, row: Row) -> Row:
        """Insert a row; returns it with ``id`` and ``created_at`` populated."""
        ...

    def update(self, table: str, where: dict[str, Any], values: dict[str, Any]) -> int:
        """Update matching rows; returns the number changed."""
        ...

    def delete(self, table: str, where: dict[str, Any]) -> int:
        """Delete matching rows; returns the number removed."""
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _matches(row: Row, where: dict[str, Any], gte: dict[str, Any] | None) -> bool:
    for column, expected in where.items():
        if row.get(column) != expected:
            return False
    for column, bound in (gte or {}).items():
        value = row.get(column)
        if value is None or value < bound:
            return False
    return True


class InMemoryRecordStore:
    """Thread-safe dict-of-lists store.

    Rows are deep-copied on the way in and out so callers never alias
    stored state.  Insertion order is preserved, so ``limit=1`` returns the
    oldest match, like an unordered SQL select usually would.
    """

    def __init__(self) -> None:
        self._tables: dict[str, list[Row]] = {}
        self._lock = threading.RLock()

    def find(
        self,
        table: str,
        where: dict[str, Any],
        *,
        gte: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        with self._lock:
            rows = [
                copy.deepcopy(row)
                for row in self._tables.get(table, [])
                if _matches(row, where, gte)
            ]
        return rows[:limit] if limit is not None else rows

    def insert(self, table: str, row: Row) -> Row:
        stored = copy.deepcopy(row)
        stored.setdefault("id", uuid.uuid4().hex)
        now = _utcnow()
        stored.setdefault("created_at", now)
        stored.setdefault("updated_at", now)
        with self._lock:
            self._tables.setdefault(table, []).append(stored)
        return copy.deepcopy(stored)

    def update(self, table: str, where: dict[str, Any], values: dict[str, Any]) -> int:
        changed = 0
        with self._lock:
            for row in self._tables.get(table, []):
                if _matches(row, where, None):
                    row.update(copy.deepcopy(values))
                    row["updated_at"] = _utcnow()
                    changed += 1
        return changed

    def delete(self, table: str, where: dict[str, Any]) -> int:
        with self._lock:
            rows = self._tables.get(table, [])
            kept = [row for row in rows if not _matches(row, where, None)]
            removed = len(rows) - len(kept)
            self._tables[table] = kept
        if removed:
            logger.debug("Deleted %d row(s) from %s", removed, table)
        return removed

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._tables.get(table, []))


def create_store(database_url: str = "") -> RecordStore:
    """Build the configured store: Postgres when a DSN is set, else in-memory."""
    if database_url:
        from ledgersync.pg_store import PostgresRecordStore

        return PostgresRecordStore(database_url)
    logger.warning("No database_url configured; using in-memory record store")
    return InMemoryRecordStore()
