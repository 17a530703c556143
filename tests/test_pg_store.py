"""Tests for the Postgres record store that need no running database."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import psycopg
import pytest

from ledgersync.errors import PersistenceError
from ledgersync.models import INVENTORY_TABLE
from ledgersync.pg_store import SCHEMA_SQL, PostgresRecordStore, build_where
from ledgersync.store import InMemoryRecordStore, create_store


class TestBuildWhere:
    def test_equality_and_null_params(self):
        _, params = build_where({"org_id": "o", "sku": None, "name": "A"})
        # IS NULL carries no parameter
        assert params == ["o", "A"]

    def test_lower_bounds_follow_equalities(self):
        _, params = build_where({"org_id": "o"}, gte={"created_at": "2026-01-01"})
        assert params == ["o", "2026-01-01"]

    def test_empty(self):
        _, params = build_where({})
        assert params == []


class TestPostgresRecordStore:
    def test_unknown_table_rejected(self):
        with pytest.raises(PersistenceError, match="Unknown table"):
            PostgresRecordStore("postgresql://unused").find("pg_shadow", {})

    def test_unfiltered_delete_refused(self):
        with pytest.raises(PersistenceError, match="unfiltered"):
            PostgresRecordStore("postgresql://unused").delete(INVENTORY_TABLE, {})

    @patch("ledgersync.pg_store.psycopg.connect")
    def test_driver_errors_wrapped(self, mock_connect):
        mock_connect.side_effect = psycopg.OperationalError("connection refused")
        with pytest.raises(PersistenceError, match="Select from inventory_items failed"):
            PostgresRecordStore("postgresql://db").find(INVENTORY_TABLE, {"org_id": "o"})

    @patch("ledgersync.pg_store.psycopg.connect")
    def test_delete_returns_rowcount(self, mock_connect):
        conn = MagicMock()
        conn.__enter__.return_value = conn
        conn.execute.return_value.rowcount = 3
        mock_connect.return_value = conn

        assert PostgresRecordStore("postgresql://db").delete(INVENTORY_TABLE, {"org_id": "o"}) == 3
        _, params = conn.execute.call_args[0]
        assert params == ["o"]

    @patch("ledgersync.pg_store.psycopg.connect")
    def test_init_schema_runs_ddl(self, mock_connect):
        conn = MagicMock()
        conn.__enter__.return_value = conn
        mock_connect.return_value = conn

        PostgresRecordStore("postgresql://db").init_schema()

        conn.execute.assert_called_once_with(SCHEMA_SQL)

    @patch("ledgersync.pg_store.psycopg.connect")
    def test_init_schema_failure_wrapped(self, mock_connect):
        mock_connect.side_effect = psycopg.OperationalError("connection refused")
        with pytest.raises(PersistenceError, match="Schema initialisation failed"):
            PostgresRecordStore("postgresql://db").init_schema()


def test_create_store():
    assert isinstance(create_store(""), InMemoryRecordStore)
    assert isinstance(create_store("postgresql://db"), PostgresRecordStore)
