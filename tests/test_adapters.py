"""Tests for platform adapters: variant naming, pagination, error mapping."""

from __future__ import annotations

from unittest.mock import patch

import httpx
import pytest

from ledgersync.errors import ConfigError, UpstreamProviderError
from ledgersync.integrations import bigcommerce, clover, shopify
from ledgersync.integrations.bigcommerce import BigCommerceAdapter, BigCommerceCredentials
from ledgersync.integrations.clover import CloverAdapter, CloverCredentials
from ledgersync.integrations.shopify import ShopifyAdapter, ShopifyCredentials

SHOP = ShopifyCredentials(store_domain="teststore", access_token="shpat_test")
BC = BigCommerceCredentials(store_hash="abc123", client_id="client-1", access_token="bc-token")
CLOVER = CloverCredentials(merchant_id="MERCHANT1", access_token="clover-token")


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


# ── Variant naming ────────────────────────────────────────────────────────


class TestShopifyNaming:
    OPTIONS = [{"name": "Size"}, {"name": "Color"}]

    def test_default_title_collapses(self):
        assert shopify.build_variant_name("Tee", {"title": "Default Title", "option1": "Default Title"}, []) == "Tee"

    def test_default_title_kept_when_product_has_several_variants(self):
        variant = {"title": "Default Title", "option1": "Default Title"}
        name = shopify.build_variant_name("Tee", variant, [{"name": "Title"}], variant_count=2)
        assert name == "Tee (Title: Default Title)"
        assert shopify.build_variant_name("Tee", {"title": "Default Title"}, [], variant_count=2) == "Tee"

    def test_product_variant_count_drives_collapse(self):
        product = {
            "id": 1,
            "title": "Tee",
            "options": [{"name": "Title"}],
            "variants": [
                {"id": 11, "title": "Default Title", "option1": "Default Title"},
                {"id": 12, "title": "Large", "option1": "Large"},
            ],
        }
        names = [item.name for item in shopify.product_to_items(product)]
        assert names == ["Tee (Title: Default Title)", "Tee (Title: Large)"]

    def test_options(self):
        variant = {"title": "L / Red", "option1": "L", "option2": "Red"}
        assert shopify.build_variant_name("Tee", variant, self.OPTIONS) == "Tee (Size: L, Color: Red)"

    def test_falls_back_to_variant_title(self):
        assert shopify.build_variant_name("Tee", {"title": "Limited"}, []) == "Tee (Limited)"

    def test_bare_title(self):
        assert shopify.build_variant_name("Tee", {}, None) == "Tee"

    def test_normalize_store_domain(self):
        assert shopify.normalize_store_domain("https://MyStore.myshopify.com/") == "mystore.myshopify.com"
        assert shopify.normalize_store_domain("mystore") == "mystore.myshopify.com"

    def test_product_to_items_filters_variant(self):
        product = {
            "id": 1,
            "title": "Tee",
            "options": self.OPTIONS,
            "variants": [
                {"id": 11, "title": "S", "option1": "S", "sku": "T-S", "inventory_quantity": 3},
                {"id": 12, "title": "M", "option1": "M", "sku": "T-M", "inventory_quantity": 5},
            ],
        }
        [item] = shopify.product_to_items(product, variant_id="12")
        assert item.name == "Tee (Size: M)"
        assert item.quantity == 5
        assert item.provider_ids == {"shopify_product_id": "1", "shopify_variant_id": "12"}


class TestBigCommerceNaming:
    def test_option_values(self):
        variant = {
            "option_values": [
                {"option_display_name": "Size", "label": "L"},
                {"option_display_name": "Color", "label": ""},
            ]
        }
        assert bigcommerce.build_variant_name({"name": "Mug"}, variant) == "Mug (Size: L)"

    def test_distinct_sku(self):
        assert bigcommerce.build_variant_name({"name": "Mug", "sku": "M"}, {"sku": "M-BLUE"}) == "Mug (M-BLUE)"

    def test_same_sku_is_bare(self):
        assert bigcommerce.build_variant_name({"name": "Mug", "sku": "M"}, {"sku": "M"}) == "Mug"

    def test_product_without_variants(self):
        [item] = bigcommerce.product_to_items(
            {"id": 5, "name": "Mug", "sku": "M", "inventory_level": 9, "inventory_warning_level": 2}
        )
        assert (item.name, item.quantity, item.reorder_threshold) == ("Mug", 9, 2)
        assert item.provider_ids == {"bigcommerce_product_id": "5"}


def test_clover_item_mapping():
    item = clover.map_item({"id": "I1", "name": " Latte ", "code": "0123", "itemStock": {"stockCount": 4}})
    assert (item.name, item.sku, item.quantity) == ("Latte", "0123", 4)
    assert clover.map_item({"id": "I2", "name": "Tea", "stockCount": 2}).quantity == 2


# ── Pagination ────────────────────────────────────────────────────────────


class TestShopifyAdapter:
    def test_since_id_pagination(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(dict(request.url.params))
            assert request.headers["x-shopify-access-token"] == "shpat_test"
            since_id = int(request.url.params["since_id"])
            if since_id == 0:
                products = [
                    {"id": i, "title": f"P{i}", "variants": [{"id": i * 10, "title": "Default Title"}]}
                    for i in range(1, shopify.PAGE_LIMIT + 1)
                ]
            else:
                products = [{"id": 999, "title": "Last", "variants": [{"id": 9990, "title": "Default Title"}]}]
            return httpx.Response(200, json={"products": products})

        items = ShopifyAdapter(client=_client(handler), max_retries=0).fetch_catalog(SHOP)

        assert len(items) == shopify.PAGE_LIMIT + 1
        assert [c["since_id"] for c in calls] == ["0", str(shopify.PAGE_LIMIT)]

    def test_resolve_inventory_item(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith("/graphql.json")
            return httpx.Response(
                200,
                json={
                    "data": {
                        "inventoryItem": {"variant": {"legacyResourceId": "12", "product": {"legacyResourceId": "1"}}}
                    }
                },
            )

        adapter = ShopifyAdapter(client=_client(handler), max_retries=0)
        assert adapter.resolve_inventory_item(SHOP, 555) == ("1", "12")

    def test_resolve_unknown_inventory_item(self):
        adapter = ShopifyAdapter(
            client=_client(lambda request: httpx.Response(200, json={"data": {"inventoryItem": None}})),
            max_retries=0,
        )
        assert adapter.resolve_inventory_item(SHOP, 555) is None

    def test_upstream_error_carries_status(self):
        adapter = ShopifyAdapter(client=_client(lambda request: httpx.Response(401, text="bad token")), max_retries=0)
        with pytest.raises(UpstreamProviderError) as exc:
            adapter.fetch_catalog(SHOP)
        assert exc.value.upstream_status == 401
        assert exc.value.status_code == 502
        assert "Shopify request failed (401)" in exc.value.message

    def test_transient_errors_retried(self):
        responses = iter([httpx.Response(503), httpx.Response(200, json={"products": []})])
        adapter = ShopifyAdapter(client=_client(lambda request: next(responses)), max_retries=2)
        with patch("ledgersync.integrations.retry.time.sleep") as sleep:
            assert adapter.fetch_catalog(SHOP) == []
        sleep.assert_called_once()

    def test_retry_after_beyond_budget_gives_up(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, headers={"Retry-After": "30"})

        adapter = ShopifyAdapter(client=_client(handler), max_retries=3, retry_budget=5.0)
        with patch("ledgersync.integrations.retry.time.sleep") as sleep:
            with pytest.raises(UpstreamProviderError) as exc:
                adapter.fetch_catalog(SHOP)
        assert exc.value.upstream_status == 503
        assert len(calls) == 1
        sleep.assert_not_called()

    def test_retry_after_within_budget_waits(self):
        responses = iter(
            [httpx.Response(503, headers={"Retry-After": "1"}), httpx.Response(200, json={"products": []})]
        )
        adapter = ShopifyAdapter(client=_client(lambda request: next(responses)), max_retries=1, retry_budget=5.0)
        with patch("ledgersync.integrations.retry.time.sleep") as sleep:
            assert adapter.fetch_catalog(SHOP) == []
        sleep.assert_called_once_with(1.0)

    def test_attempt_timeout_shrinks_to_budget(self):
        timeouts = []

        def handler(request):
            timeouts.append(request.extensions["timeout"]["read"])
            return httpx.Response(200, json={"products": []})

        ShopifyAdapter(client=_client(handler), timeout=15.0, max_retries=0, retry_budget=2.0).fetch_catalog(SHOP)
        assert 0 < timeouts[0] <= 2.0

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        adapter = ShopifyAdapter(client=_client(handler), max_retries=0)
        with pytest.raises(UpstreamProviderError):
            adapter.fetch_catalog(SHOP)

    def test_credentials_missing(self):
        with pytest.raises(ConfigError) as exc:
            ShopifyAdapter.credentials_from_org({"id": "o"}, lambda token: token)
        assert exc.value.status_code == 400
        assert "Reconnect" in exc.value.hint


class TestBigCommerceAdapter:
    def test_page_pagination(self):
        pages = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["x-auth-token"] == "bc-token"
            assert request.headers["x-auth-client"] == "client-1"
            page = int(request.url.params["page"])
            pages.append(page)
            product = {"id": page, "name": f"P{page}", "variants": [{"id": page * 10, "inventory_level": page}]}
            return httpx.Response(200, json={"data": [product], "meta": {"pagination": {"total_pages": 3}}})

        items = BigCommerceAdapter(client=_client(handler), max_retries=0).fetch_catalog(BC)

        assert pages == [1, 2, 3]
        assert [i.quantity for i in items] == [1, 2, 3]

    def test_fetch_entity_single_variant(self):
        product = {
            "id": 7,
            "name": "Mug",
            "sku": "M",
            "variants": [{"id": 70, "sku": "M-S", "inventory_level": 1}, {"id": 71, "sku": "M-L", "inventory_level": 2}],
        }
        adapter = BigCommerceAdapter(
            client=_client(lambda request: httpx.Response(200, json={"data": product})), max_retries=0
        )
        [item] = adapter.fetch_entity(BC, 7, 71)
        assert (item.name, item.quantity) == ("Mug (M-L)", 2)
        assert len(adapter.fetch_entity(BC, 7)) == 2


class TestCloverAdapter:
    def test_offset_pagination_skips_hidden(self):
        offsets = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["authorization"] == "Bearer clover-token"
            offset = int(request.url.params["offset"])
            offsets.append(offset)
            if offset == 0:
                elements = [{"id": f"I{i}", "name": f"Item {i}", "stockCount": 1} for i in range(clover.PAGE_LIMIT)]
                elements[0]["hidden"] = True
            else:
                elements = [{"id": "last", "name": "Last"}]
            return httpx.Response(200, json={"elements": elements})

        items = CloverAdapter(client=_client(handler), max_retries=0, page_throttle=0).fetch_catalog(CLOVER)

        assert offsets == [0, clover.PAGE_LIMIT]
        assert len(items) == clover.PAGE_LIMIT

    def test_eu_environment(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["host"] = request.url.host
            return httpx.Response(200, json={"id": "I1", "name": "Tea"})

        creds = CloverCredentials(merchant_id="M", access_token="t", environment="eu")
        items = CloverAdapter(client=_client(handler), max_retries=0).fetch_entity(creds, "I1")
        assert seen["host"] == "api.eu.clover.com"
        assert len(items) == 1

    def test_fetch_entity_not_found(self):
        adapter = CloverAdapter(client=_client(lambda request: httpx.Response(404)), max_retries=0)
        assert adapter.fetch_entity(CLOVER, "gone") == []
