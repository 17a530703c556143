"""Tests for the generic JSON import: items-path resolution and field mapping."""

from __future__ import annotations

import json

import httpx
import pytest

from ledgersync.errors import MissingFieldError, ShapeError, UpstreamProviderError
from ledgersync.integrations.generic import (
    DEFAULT_FIELD_MAPPING,
    GenericAdapter,
    get_nested_value,
    map_fields,
    resolve_items,
)


class TestResolveItems:
    def test_array_payload_used_as_is(self):
        assert resolve_items([{"name": "A"}]) == [{"name": "A"}]

    def test_dot_path(self):
        """Nested items path resolves to the array."""
        payload = {"data": {"products": [{"name": "A"}, {"name": "B"}]}}
        assert len(resolve_items(payload, "data.products")) == 2

    def test_dot_path_to_non_array(self):
        """A path landing on a non-array raises ShapeError."""
        with pytest.raises(ShapeError, match='Items path "data.count" did not resolve'):
            resolve_items({"data": {"count": 3}}, "data.count")

    def test_default_items_key(self):
        assert resolve_items({"items": [{"name": "A"}]}) == [{"name": "A"}]

    def test_no_items_found(self):
        with pytest.raises(ShapeError, match="No inventory items found"):
            resolve_items({"results": []})

    def test_scalar_payload(self):
        with pytest.raises(ShapeError, match="must be an array"):
            resolve_items("hello")

    def test_blank_path_falls_back_to_items(self):
        assert resolve_items({"items": [1]}, "   ") == [1]


class TestMapFields:
    def test_defaults(self):
        [item] = map_fields(
            [{"name": " Tee ", "sku": "T-1", "quantity": "12 units", "reorder_threshold": None, "invoice": 99}]
        )
        assert item.name == "Tee"
        assert item.sku == "T-1"
        assert item.quantity == 12
        assert item.reorder_threshold == 0
        assert item.invoice == "99"
        assert item.expiration_date is None

    def test_custom_mapping_merged_over_defaults(self):
        raw = [{"title": "Mug", "stock": {"on_hand": 7}, "sku": "M-1"}]
        [item] = map_fields(raw, {"name": "title", "quantity": "stock.on_hand"})
        assert (item.name, item.quantity, item.sku) == ("Mug", 7, "M-1")

    def test_missing_name(self):
        with pytest.raises(MissingFieldError, match='Item 2 is missing the "title" field.'):
            map_fields([{"title": "ok"}, {"title": "  "}], {"name": "title"})

    def test_non_object_item(self):
        with pytest.raises(ShapeError, match="Item 1 is not a valid object."):
            map_fields(["just a string"])

    def test_unparseable_quantity_is_zero(self):
        [item] = map_fields([{"name": "A", "quantity": "lots"}])
        assert item.quantity == 0

    def test_default_mapping_keys(self):
        assert set(DEFAULT_FIELD_MAPPING) == {
            "name",
            "sku",
            "quantity",
            "invoice",
            "reorder_threshold",
            "expiration_date",
        }


def test_get_nested_value():
    assert get_nested_value({"a": {"b": {"c": 1}}}, "a.b.c") == 1
    assert get_nested_value({"a": 1}, "a.b") is None
    assert get_nested_value({"a": 1}, None) is None


class TestGenericAdapter:
    def _adapter(self, handler) -> GenericAdapter:
        return GenericAdapter(client=httpx.Client(transport=httpx.MockTransport(handler)), max_retries=0)

    def test_fetch_sends_bearer(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"items": [{"name": "A"}]})

        payload = self._adapter(handler).fetch("https://erp.example.com/api", " key-1 ")
        assert payload == {"items": [{"name": "A"}]}
        assert seen["auth"] == "Bearer key-1"

    def test_fetch_without_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json=[])

        self._adapter(handler).fetch("https://erp.example.com/api")
        assert seen["auth"] is None

    def test_non_2xx_is_upstream_error(self):
        adapter = self._adapter(lambda request: httpx.Response(403, text="forbidden"))
        with pytest.raises(UpstreamProviderError) as exc:
            adapter.fetch("https://erp.example.com/api")
        assert exc.value.upstream_status == 403

    def test_fetch_catalog(self):
        body = json.dumps({"data": {"rows": [{"label": "Bolt", "qty": 4}]}})
        adapter = self._adapter(lambda request: httpx.Response(200, text=body))
        [item] = adapter.fetch_catalog(
            {
                "api_url": "https://erp.example.com/api",
                "items_path": "data.rows",
                "field_mapping": {"name": "label", "quantity": "qty"},
            }
        )
        assert (item.name, item.quantity) == ("Bolt", 4)
