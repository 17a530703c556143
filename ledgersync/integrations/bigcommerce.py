"""BigCommerce v3 catalog adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from ledgersync.integrations.base import ProviderAdapter, missing_credentials
from ledgersync.models import ExternalItem, parse_int

logger = logging.getLogger(__name__)

API_BASE = "https://api.bigcommerce.com/stores"
PAGE_LIMIT = 250
MAX_PAGES = 100

WEBHOOK_SCOPES = [
    "store/product/created",
    "store/product/updated",
    "store/product/deleted",
    "store/product/inventory/updated",
    "store/product/variant/created",
    "store/product/variant/updated",
    "store/product/variant/deleted",
]


@dataclass(frozen=True)
class BigCommerceCredentials:
    store_hash: str
    client_id: str
    access_token: str


def build_variant_name(product: dict[str, Any], variant: dict[str, Any] | None) -> str:
    """``"Name (Size: L, Color: Red)"``, else ``"Name (SKU)"`` for a distinct SKU, else the bare name."""
    name = product.get("name") or ""
    if not variant:
        return name

    summary = ", ".join(
        f"{value['option_display_name']}: {value['label']}"
        for value in variant.get("option_values") or []
        if value.get("option_display_name") and value.get("label")
    )
    if summary:
        return f"{name} ({summary})"

    variant_sku = variant.get("sku")
    if variant_sku and variant_sku != product.get("sku"):
        return f"{name} ({variant_sku})"
    return name


def map_product_variant(product: dict[str, Any], variant: dict[str, Any] | None = None) -> ExternalItem:
    quantity_source = variant if variant is not None else product
    provider_ids = {"bigcommerce_product_id": str(product.get("id"))}
    if variant is not None and variant.get("id") is not None:
        provider_ids["bigcommerce_variant_id"] = str(variant["id"])
    return ExternalItem(
        name=build_variant_name(product, variant),
        sku=(variant or {}).get("sku") or product.get("sku") or None,
        quantity=parse_int(quantity_source.get("inventory_level")),
        reorder_threshold=parse_int(quantity_source.get("inventory_warning_level")),
        provider_ids=provider_ids,
    )


def product_to_items(product: dict[str, Any], variant_id: Any = None) -> list[ExternalItem]:
    """One item per variant; a variant filter yields at most one; no variants -> the product itself."""
    variants = product.get("variants") or []
    if variant_id is not None:
        match = [v for v in variants if str(v.get("id")) == str(variant_id)]
        return [map_product_variant(product, match[0])] if match else []
    if not variants:
        return [map_product_variant(product)]
    return [map_product_variant(product, v) for v in variants]


class BigCommerceAdapter(ProviderAdapter):
    provider = "bigcommerce"

    def _url(self, credentials: BigCommerceCredentials, endpoint: str) -> str:
        return f"{API_BASE}/{credentials.store_hash}/v3{endpoint}"

    def _headers(self, credentials: BigCommerceCredentials) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Auth-Token": credentials.access_token,
            "X-Auth-Client": credentials.client_id,
        }

    @classmethod
    def credentials_from_org(cls, org: dict[str, Any], decrypt: Callable[[str], str]) -> BigCommerceCredentials:
        store_hash = org.get("bigcommerce_store_hash")
        client_id = org.get("bigcommerce_client_id")
        token = org.get("bigcommerce_access_token")
        if not store_hash or not client_id or not token:
            raise missing_credentials("bigcommerce", "store hash, client id or access token missing")
        return BigCommerceCredentials(store_hash=store_hash, client_id=client_id, access_token=decrypt(token))

    def fetch_catalog(self, credentials: BigCommerceCredentials) -> list[ExternalItem]:
        items: list[ExternalItem] = []
        page = 1

        while page <= MAX_PAGES:
            data = self.request_json(
                "GET",
                self._url(credentials, "/catalog/products"),
                headers=self._headers(credentials),
                params={"include": "variants", "limit": PAGE_LIMIT, "page": page},
            ) or {}

            for product in data.get("data") or []:
                items.extend(product_to_items(product))

            total_pages = ((data.get("meta") or {}).get("pagination") or {}).get("total_pages") or page
            if page >= total_pages:
                break
            page += 1
        else:
            logger.warning(
                "BigCommerce pagination hit safety limit of %d pages (%d items fetched)", MAX_PAGES, len(items)
            )

        return items

    def fetch_entity(self, credentials: BigCommerceCredentials, product_id: Any, variant_id: Any = None) -> list[ExternalItem]:
        data = self.request_json(
            "GET",
            self._url(credentials, f"/catalog/products/{product_id}"),
            headers=self._headers(credentials),
            params={"include": "variants"},
        ) or {}
        product = data.get("data")
        if not product:
            return []
        return product_to_items(product, variant_id)

    # ── Webhook subscriptions ─────────────────────────────────────────────

    def list_subscriptions(self, credentials: BigCommerceCredentials) -> list[dict[str, Any]]:
        data = self.request_json("GET", self._url(credentials, "/hooks"), headers=self._headers(credentials)) or {}
        return [
            {"id": h.get("id"), "scope": h.get("scope"), "destination": h.get("destination")}
            for h in data.get("data") or []
        ]

    def register_subscription(self, credentials: BigCommerceCredentials, scope: str, destination: str) -> dict[str, Any]:
        data = self.request_json(
            "POST",
            self._url(credentials, "/hooks"),
            headers=self._headers(credentials),
            json={"scope": scope, "destination": destination, "is_active": True},
        ) or {}
        hook = data.get("data") or {}
        return {"id": hook.get("id"), "scope": hook.get("scope", scope), "destination": destination}

    def delete_subscription(self, credentials: BigCommerceCredentials, subscription_id: Any) -> None:
        self.request_json("DELETE", self._url(credentials, f"/hooks/{subscription_id}"), headers=self._headers(credentials))
