"""Tests for two-stage identity resolution."""

from __future__ import annotations

from ledgersync.matching import MatchKind, resolve_identity
from ledgersync.models import INVENTORY_TABLE


def test_sku_match_wins_over_name(store):
    by_sku = store.insert(INVENTORY_TABLE, {"org_id": "o", "name": "Old name", "sku": "S-1"})
    store.insert(INVENTORY_TABLE, {"org_id": "o", "name": "New name", "sku": None})

    result = resolve_identity(store, "o", "New name", "S-1")

    assert result.kind is MatchKind.SKU
    assert result.row["id"] == by_sku["id"]


def test_falls_back_to_name(store):
    row = store.insert(INVENTORY_TABLE, {"org_id": "o", "name": "Widget", "sku": "OTHER"})

    result = resolve_identity(store, "o", "Widget", "S-404")

    assert result.kind is MatchKind.NAME
    assert result.row["id"] == row["id"]


def test_not_found(store):
    result = resolve_identity(store, "o", "Nothing", None)
    assert result.kind is MatchKind.NOT_FOUND
    assert result.found is False
    assert result.row is None


def test_tenant_scoped(store):
    store.insert(INVENTORY_TABLE, {"org_id": "other", "name": "Widget", "sku": "S-1"})
    assert resolve_identity(store, "o", "Widget", "S-1").found is False


def test_empty_sku_skips_sku_stage(store):
    store.insert(INVENTORY_TABLE, {"org_id": "o", "name": "Blank", "sku": ""})
    store.insert(INVENTORY_TABLE, {"org_id": "o", "name": "Widget", "sku": ""})

    result = resolve_identity(store, "o", "Widget", "")

    assert result.kind is MatchKind.NAME
    assert result.row["name"] == "Widget"
