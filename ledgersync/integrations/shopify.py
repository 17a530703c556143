"""Shopify Admin API adapter.

Catalog reads use the REST products endpoint (``since_id`` pagination);
the inventory-item -> variant lookup needed for ``inventory_levels/update``
deliveries goes through the GraphQL Admin API, which is the only place that
relation is exposed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from ledgersync.integrations.base import ProviderAdapter, missing_credentials
from ledgersync.models import ExternalItem, parse_int

logger = logging.getLogger(__name__)

SHOPIFY_API_VERSION = "2024-01"
PAGE_LIMIT = 250  # Shopify max per page
MAX_PAGES = 100  # Safety limit to prevent infinite loops
DEFAULT_VARIANT_TITLE = "Default Title"

# Topics registered for automatic inventory sync
WEBHOOK_TOPICS = [
    "products/create",
    "products/update",
    "products/delete",
    "inventory_levels/update",
]


@dataclass(frozen=True)
class ShopifyCredentials:
    store_domain: str
    access_token: str


def normalize_store_domain(domain: str) -> str:
    """Normalize a store domain: ``mystore`` / ``https://mystore.myshopify.com/`` -> ``mystore.myshopify.com``."""
    normalized = domain.strip().lower()
    normalized = re.sub(r"^https?://", "", normalized)
    normalized = normalized.rstrip("/")
    if ".myshopify.com" not in normalized:
        normalized = f"{normalized}.myshopify.com"
    return normalized


def build_variant_name(
    product_title: str,
    variant: dict[str, Any],
    options: list[dict[str, Any]] | None,
    variant_count: int = 1,
) -> str:
    """Descriptive item name for a variant.

    A product's only variant, when titled "Default Title", collapses to the
    product title; otherwise option names and values are listed, falling
    back to the variant title.
    """
    variant_title = variant.get("title")
    if variant_count == 1 and variant_title == DEFAULT_VARIANT_TITLE:
        return product_title

    options = options or []
    parts = []
    for position in range(3):
        value = variant.get(f"option{position + 1}")
        if value and position < len(options):
            parts.append(f"{options[position].get('name')}: {value}")

    if parts:
        return f"{product_title} ({', '.join(parts)})"
    if variant_title and variant_title != DEFAULT_VARIANT_TITLE:
        return f"{product_title} ({variant_title})"
    return product_title


def map_variant(product: dict[str, Any], variant: dict[str, Any]) -> ExternalItem:
    """Map one product variant to a canonical item (Shopify has no reorder threshold)."""
    return ExternalItem(
        name=build_variant_name(
            product.get("title") or "",
            variant,
            product.get("options"),
            variant_count=len(product.get("variants") or []) or 1,
        ),
        sku=variant.get("sku") or None,
        quantity=parse_int(variant.get("inventory_quantity")),
        reorder_threshold=0,
        provider_ids={
            "shopify_product_id": str(product.get("id")),
            "shopify_variant_id": str(variant.get("id")),
        },
    )


def product_to_items(product: dict[str, Any], variant_id: Any = None) -> list[ExternalItem]:
    """Flatten a product payload into one item per variant (optionally just one)."""
    variants = product.get("variants") or []
    if variant_id is not None:
        variants = [v for v in variants if str(v.get("id")) == str(variant_id)]
    return [map_variant(product, v) for v in variants]


class ShopifyAdapter(ProviderAdapter):
    """REST/GraphQL Admin API client for one store at a time."""

    provider = "shopify"

    def _url(self, credentials: ShopifyCredentials, endpoint: str) -> str:
        domain = normalize_store_domain(credentials.store_domain)
        return f"https://{domain}/admin/api/{SHOPIFY_API_VERSION}{endpoint}"

    def _headers(self, credentials: ShopifyCredentials) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": credentials.access_token,
        }

    def _get(self, credentials: ShopifyCredentials, endpoint: str, params: dict | None = None) -> Any:
        return self.request_json("GET", self._url(credentials, endpoint), headers=self._headers(credentials), params=params)

    @classmethod
    def credentials_from_org(cls, org: dict[str, Any], decrypt: Callable[[str], str]) -> ShopifyCredentials:
        domain = org.get("shopify_store_domain")
        token = org.get("shopify_access_token")
        if not domain or not token:
            raise missing_credentials("shopify", "store domain or access token missing")
        return ShopifyCredentials(store_domain=domain, access_token=decrypt(token))

    def fetch_catalog(self, credentials: ShopifyCredentials) -> list[ExternalItem]:
        items: list[ExternalItem] = []
        since_id = 0
        pages = 0

        while pages < MAX_PAGES:
            pages += 1
            data = self._get(credentials, "/products.json", {"limit": PAGE_LIMIT, "since_id": since_id})
            products = (data or {}).get("products") or []
            if not products:
                break

            for product in products:
                items.extend(product_to_items(product))
                since_id = max(since_id, int(product.get("id") or 0))

            if len(products) < PAGE_LIMIT:
                break
        else:
            logger.warning(
                "Shopify pagination hit safety limit of %d pages (%d items fetched)", MAX_PAGES, len(items)
            )

        return items

    def fetch_entity(self, credentials: ShopifyCredentials, product_id: Any, variant_id: Any = None) -> list[ExternalItem]:
        data = self._get(credentials, f"/products/{product_id}.json")
        product = (data or {}).get("product")
        if not product:
            return []
        return product_to_items(product, variant_id)

    def resolve_inventory_item(self, credentials: ShopifyCredentials, inventory_item_id: Any) -> tuple[str, str] | None:
        """Find ``(product_id, variant_id)`` owning an inventory item, or None."""
        query = """
        query ($id: ID!) {
          inventoryItem(id: $id) {
            variant {
              legacyResourceId
              product { legacyResourceId }
            }
          }
        }
        """
        data = self.request_json(
            "POST",
            self._url(credentials, "/graphql.json"),
            headers=self._headers(credentials),
            json={"query": query, "variables": {"id": f"gid://shopify/InventoryItem/{inventory_item_id}"}},
        )
        variant = (((data or {}).get("data") or {}).get("inventoryItem") or {}).get("variant")
        if not variant:
            return None
        return str(variant["product"]["legacyResourceId"]), str(variant["legacyResourceId"])

    # ── Webhook subscriptions ─────────────────────────────────────────────

    def list_subscriptions(self, credentials: ShopifyCredentials) -> list[dict[str, Any]]:
        data = self._get(credentials, "/webhooks.json")
        return [
            {"id": w.get("id"), "scope": w.get("topic"), "destination": w.get("address")}
            for w in (data or {}).get("webhooks") or []
        ]

    def register_subscription(self, credentials: ShopifyCredentials, scope: str, destination: str) -> dict[str, Any]:
        data = self.request_json(
            "POST",
            self._url(credentials, "/webhooks.json"),
            headers=self._headers(credentials),
            json={"webhook": {"topic": scope, "address": destination, "format": "json"}},
        )
        webhook = (data or {}).get("webhook") or {}
        return {"id": webhook.get("id"), "scope": webhook.get("topic", scope), "destination": destination}

    def delete_subscription(self, credentials: ShopifyCredentials, subscription_id: Any) -> None:
        self.request_json(
            "DELETE", self._url(credentials, f"/webhooks/{subscription_id}.json"), headers=self._headers(credentials)
        )
