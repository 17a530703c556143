"""Webhook payload parsing and scope filtering.

Turns a verified, JSON-decoded delivery into a normalized ``WebhookDelivery``
holding one or more ``WebhookEvent`` records.  Scopes outside the per-provider
allow-list yield ``None`` so the caller can acknowledge and ignore them.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any

from ledgersync.errors import ValidationError

logger = logging.getLogger(__name__)

DELETE = "delete"
UPSERT = "upsert"

SHOPIFY_SCOPES: dict[str, str] = {
    "products/create": UPSERT,
    "products/update": UPSERT,
    "products/delete": DELETE,
    "inventory_levels/update": UPSERT,
}

BIGCOMMERCE_SCOPES: dict[str, str] = {
    "store/product/created": UPSERT,
    "store/product/updated": UPSERT,
    "store/product/deleted": DELETE,
    "store/product/inventory/updated": UPSERT,
    "store/product/variant/created": UPSERT,
    "store/product/variant/updated": UPSERT,
    "store/product/variant/deleted": DELETE,
}

CLOVER_SCOPES: dict[str, str] = {
    "CREATE": UPSERT,
    "UPDATE": UPSERT,
    "DELETE": DELETE,
}

# Clover object ids are type-prefixed ("I:ABC123"); "I" is an inventory item
_CLOVER_ITEM_PREFIX = "I"


@dataclass
class WebhookEvent:
    """One ledger-relevant change announced by a platform."""

    scope: str
    action: str  # upsert | delete
    product_id: str | None = None
    variant_id: str | None = None
    inventory_item_id: str | None = None
    # Tenant identity as the platform presents it
    tenant_key: str | None = None
    org_id: str | None = None
    # Full product state when the platform pushes it (Shopify product topics)
    product: dict[str, Any] | None = None

    @property
    def is_delete(self) -> bool:
        return self.action == DELETE


@dataclass
class WebhookDelivery:
    provider: str
    scope: str
    delivery_id: str
    events: list[WebhookEvent] = field(default_factory=list)


def _str_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _parse_shopify(payload: dict[str, Any], headers: dict[str, str]) -> WebhookDelivery | None:
    topic = headers.get("x-shopify-topic", "")
    action = SHOPIFY_SCOPES.get(topic)
    if action is None:
        return None

    event = WebhookEvent(scope=topic, action=action, tenant_key=headers.get("x-shopify-shop-domain") or None)
    if topic == "inventory_levels/update":
        event.inventory_item_id = _str_or_none(payload.get("inventory_item_id"))
        if event.inventory_item_id is None:
            raise ValidationError("Missing inventory_item_id in webhook payload")
    else:
        event.product_id = _str_or_none(payload.get("id"))
        if event.product_id is None:
            raise ValidationError("Missing product id in webhook payload")
        if action == UPSERT and payload.get("variants"):
            event.product = payload

    return WebhookDelivery(
        provider="shopify",
        scope=topic,
        delivery_id=headers.get("x-shopify-webhook-id", ""),
        events=[event],
    )


def _parse_bigcommerce(payload: dict[str, Any], headers: dict[str, str]) -> WebhookDelivery | None:
    scope = payload.get("scope") or ""
    action = BIGCOMMERCE_SCOPES.get(scope)
    if action is None:
        return None

    data = payload.get("data") or {}
    inventory = data.get("inventory") or {}
    variant = data.get("variant") or {}

    if "/variant/" in scope:
        product_id = data.get("product_id") or variant.get("product_id")
        variant_id = data.get("variant_id") or data.get("id")
    elif scope == "store/product/inventory/updated":
        product_id = inventory.get("product_id") or data.get("product_id") or data.get("id")
        variant_id = inventory.get("variant_id") or data.get("variant_id")
    else:
        product_id = data.get("id") or data.get("product_id")
        variant_id = None

    # Variant deletes only need the variant id
    if product_id is None and not (action == DELETE and variant_id is not None):
        raise ValidationError("Missing product id in webhook payload")

    producer = payload.get("producer") or ""
    store_hash = producer.split("/", 1)[1] if "/" in producer else payload.get("store_id")

    event = WebhookEvent(
        scope=scope,
        action=action,
        product_id=_str_or_none(product_id),
        variant_id=_str_or_none(variant_id),
        tenant_key=_str_or_none(store_hash),
        org_id=_str_or_none(payload.get("org_id")),
    )
    return WebhookDelivery(
        provider="bigcommerce",
        scope=scope,
        delivery_id=str(payload.get("hash") or ""),
        events=[event],
    )


def _parse_clover(payload: dict[str, Any], headers: dict[str, str]) -> WebhookDelivery | None:
    merchants = payload.get("merchants")
    if not isinstance(merchants, dict):
        raise ValidationError("Invalid payload format: missing merchants")

    events: list[WebhookEvent] = []
    fingerprint: list[str] = []
    for merchant_id, updates in merchants.items():
        for update in updates or []:
            if not isinstance(update, dict):
                continue
            event_type = update.get("type") or ""
            action = CLOVER_SCOPES.get(event_type)
            object_id = update.get("objectId") or ""
            if action is None or not object_id:
                continue
            prefix, sep, item_id = str(object_id).partition(":")
            if sep:
                if prefix != _CLOVER_ITEM_PREFIX:
                    continue
            else:
                item_id = prefix
            events.append(WebhookEvent(scope=event_type, action=action, product_id=item_id, tenant_key=merchant_id))
            fingerprint.append(f"{merchant_id}:{object_id}:{event_type}:{update.get('ts', '')}")

    if not events:
        return None

    delivery_id = hashlib.sha256("|".join(sorted(fingerprint)).encode("utf-8")).hexdigest()
    scope = events[0].scope if len({e.scope for e in events}) == 1 else "MIXED"
    return WebhookDelivery(provider="clover", scope=scope, delivery_id=delivery_id, events=events)


_PARSERS = {
    "shopify": _parse_shopify,
    "bigcommerce": _parse_bigcommerce,
    "clover": _parse_clover,
}


def parse_delivery(provider: str, payload: dict[str, Any], headers: dict[str, str]) -> WebhookDelivery | None:
    """Parse a payload into a delivery, or None if its scope is not handled.

    Raises:
        ValidationError: an in-scope payload lacks the identifiers needed
            to act on it.
    """
    parser = _PARSERS.get(provider)
    if parser is None:
        return None
    delivery = parser(payload, headers)
    if delivery is None:
        logger.info("Unhandled webhook scope for %s - ignoring", provider)
    return delivery
