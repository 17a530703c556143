"""Webhook subscription management for platforms that support it (Shopify, BigCommerce)."""

from __future__ import annotations

import logging
from typing import Any

from ledgersync.errors import UpstreamProviderError, ValidationError
from ledgersync.integrations.base import ProviderAdapter
from ledgersync.integrations.bigcommerce import WEBHOOK_SCOPES
from ledgersync.integrations.shopify import WEBHOOK_TOPICS

logger = logging.getLogger(__name__)

DESIRED_SCOPES: dict[str, list[str]] = {
    "shopify": WEBHOOK_TOPICS,
    "bigcommerce": WEBHOOK_SCOPES,
}

CREATED = "created"
ALREADY_EXISTS = "already_exists"
FAILED = "failed"


def _require_support(provider: str) -> list[str]:
    scopes = DESIRED_SCOPES.get(provider)
    if scopes is None:
        raise ValidationError(f"Webhook registration is not supported for {provider}")
    return scopes


def destination_for(provider: str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/webhooks/{provider}"


def register_webhooks(adapter: ProviderAdapter, credentials: Any, base_url: str) -> dict[str, Any]:
    """Subscribe every desired scope to this service, skipping ones already present.

    A failed registration is reported per scope rather than aborting the rest.
    """
    scopes = _require_support(adapter.provider)
    destination = destination_for(adapter.provider, base_url)
    existing = {
        sub["scope"]: sub
        for sub in adapter.list_subscriptions(credentials)
        if sub.get("destination") == destination
    }

    results: list[dict[str, Any]] = []
    for scope in scopes:
        if scope in existing:
            results.append({"scope": scope, "status": ALREADY_EXISTS, "id": existing[scope].get("id")})
            continue
        try:
            created = adapter.register_subscription(credentials, scope, destination)
        except UpstreamProviderError as e:
            logger.warning("Failed to register %s webhook %s: %s", adapter.provider, scope, e.message)
            results.append({"scope": scope, "status": FAILED})
            continue
        results.append({"scope": scope, "status": CREATED, "id": created.get("id")})

    counts = {status: sum(1 for r in results if r["status"] == status) for status in (CREATED, ALREADY_EXISTS, FAILED)}
    return {
        "success": counts[FAILED] == 0,
        "message": (
            f"Webhooks registered: {counts[CREATED]} created, "
            f"{counts[ALREADY_EXISTS]} already existed, {counts[FAILED]} failed"
        ),
        "destination": destination,
        "results": results,
    }


def list_webhooks(adapter: ProviderAdapter, credentials: Any) -> dict[str, Any]:
    _require_support(adapter.provider)
    return {"success": True, "webhooks": adapter.list_subscriptions(credentials)}


def delete_webhooks(adapter: ProviderAdapter, credentials: Any) -> dict[str, Any]:
    """Remove every subscription on the platform account; individual failures are skipped."""
    _require_support(adapter.provider)
    deleted = 0
    for sub in adapter.list_subscriptions(credentials):
        try:
            adapter.delete_subscription(credentials, sub["id"])
        except UpstreamProviderError as e:
            logger.warning("Failed to delete %s webhook %s: %s", adapter.provider, sub["id"], e.message)
            continue
        deleted += 1
    return {"success": True, "message": f"Deleted {deleted} webhooks", "deleted": deleted}
