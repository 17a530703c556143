"""Map a platform's view of identity (shop domain, store hash, merchant id) to a tenant row."""

from __future__ import annotations

import logging
from typing import Any

from ledgersync.errors import NotFoundError, ValidationError
from ledgersync.integrations.shopify import normalize_store_domain
from ledgersync.models import ORGANIZATIONS_TABLE
from ledgersync.store import RecordStore
from ledgersync.webhooks.events import WebhookEvent

logger = logging.getLogger(__name__)

_IDENTITY_COLUMNS = {
    "shopify": "shopify_store_domain",
    "bigcommerce": "bigcommerce_store_hash",
    "clover": "clover_merchant_id",
}

_MISSING_IDENTITY = {
    "shopify": "Missing shop domain",
    "bigcommerce": "Missing store hash",
    "clover": "Missing merchant id",
}


def _find_one(store: RecordStore, where: dict[str, Any]) -> dict[str, Any] | None:
    rows = store.find(ORGANIZATIONS_TABLE, where, limit=1)
    return rows[0] if rows else None


def resolve_tenant(
    store: RecordStore,
    provider: str,
    event: WebhookEvent,
    default_org_id: str = "",
) -> dict[str, Any]:
    """Return the organizations row a delivery belongs to.

    BigCommerce deliveries may name their tenant explicitly (``org_id``) or
    fall back to the configured default tenant before the store-hash lookup.

    Raises:
        ValidationError: the delivery carries no tenant identity.
        NotFoundError: no tenant matches.
    """
    if provider == "bigcommerce":
        explicit = event.org_id or default_org_id
        if explicit:
            org = _find_one(store, {"id": explicit})
            if org is None:
                raise NotFoundError("Organization not found")
            return org

    key = event.tenant_key
    if not key:
        raise ValidationError(_MISSING_IDENTITY.get(provider, "Missing tenant identity"))
    if provider == "shopify":
        key = normalize_store_domain(key)

    org = _find_one(store, {_IDENTITY_COLUMNS[provider]: key})
    if org is None:
        logger.warning("No organization found for %s identity %s", provider, key)
        raise NotFoundError("Organization not found")
    return org
