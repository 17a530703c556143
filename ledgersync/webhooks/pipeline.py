"""Webhook ingestion pipeline: one delivery in, one acknowledgement out.

States per delivery::

    RECEIVED -> SIGNATURE_VERIFIED -> SCOPE_FILTERED -> TENANT_RESOLVED
             -> DELETE_PATH | UPSERT_PATH -> ACKNOWLEDGED

with terminal REJECTED (bad signature, bad payload, unknown tenant,
upstream failure), IGNORED (scope outside the allow-list) and DUPLICATE
(delivery id already processed).  A rejected signature never reaches the
record store.

Every delivery produces exactly one ``WEBHOOK_AUDIT`` log line.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ledgersync.config import Settings
from ledgersync.errors import AuthError, LedgerSyncError
from ledgersync.integrations.base import ProviderAdapter
from ledgersync.integrations.shopify import product_to_items
from ledgersync.models import INVENTORY_TABLE, ChangeType, ExternalItem
from ledgersync.reconcile import ReconciliationEngine
from ledgersync.store import RecordStore
from ledgersync.vault import CredentialVault
from ledgersync.webhooks.events import WebhookDelivery, WebhookEvent, parse_delivery
from ledgersync.webhooks.idempotency import NullDeliveryLog
from ledgersync.webhooks.tenants import resolve_tenant
from ledgersync.webhooks.verification import verify_webhook

logger = logging.getLogger(__name__)

NO_MATCHING_ITEMS = "No matching items found"

# Provider -> ledger column holding the platform product / variant id
_PRODUCT_COLUMNS = {
    "shopify": ("shopify_product_id", "shopify_variant_id"),
    "bigcommerce": ("bigcommerce_product_id", "bigcommerce_variant_id"),
    "clover": ("clover_item_id", None),
}


class DeliveryState(str, Enum):
    RECEIVED = "received"
    SIGNATURE_VERIFIED = "signature_verified"
    SCOPE_FILTERED = "scope_filtered"
    TENANT_RESOLVED = "tenant_resolved"
    DELETE_PATH = "delete_path"
    UPSERT_PATH = "upsert_path"
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass
class WebhookOutcome:
    status_code: int
    body: dict[str, Any]
    state: DeliveryState


@dataclass
class _Tally:
    removed: int | None = None
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    reconciled: bool = False

    def result(self) -> dict[str, Any] | None:
        result: dict[str, Any] = {}
        if self.removed is not None:
            result["removed"] = self.removed
        if self.reconciled:
            result.update(created=self.created, updated=self.updated, failed=self.failed, errors=self.errors)
        return result or None


class WebhookPipeline:
    """Runs deliveries for every provider against one store and engine."""

    def __init__(
        self,
        store: RecordStore,
        engine: ReconciliationEngine,
        vault: CredentialVault,
        adapters: dict[str, ProviderAdapter],
        settings: Settings,
        delivery_log: Any = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.vault = vault
        self.adapters = adapters
        self.settings = settings
        self.delivery_log = delivery_log or NullDeliveryLog()

    def _secret(self, provider: str) -> str:
        return getattr(self.settings, f"{provider}_webhook_secret", "")

    # ── Entry point ───────────────────────────────────────────────────────

    def process(self, provider: str, body: bytes, headers: dict[str, str]) -> WebhookOutcome:
        """Run one delivery through the pipeline.

        Args:
            provider: 'shopify', 'bigcommerce' or 'clover'
            body: Raw request body (signature is computed over these bytes)
            headers: Request headers with lowercase keys
        """
        start = time.time()
        scope, delivery_id = "unknown", ""

        # RECEIVED -> SIGNATURE_VERIFIED
        if not verify_webhook(
            provider,
            body,
            headers,
            self._secret(provider),
            require_secret=self.settings.require_webhook_secret,
        ):
            rejected = AuthError("Invalid signature")
            return self._finish(
                provider, scope, delivery_id, rejected.status_code, rejected.to_dict(), DeliveryState.REJECTED
            )

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return self._finish(provider, scope, delivery_id, 400, {"error": "Invalid JSON payload"}, DeliveryState.REJECTED)
        if not isinstance(payload, dict):
            return self._finish(provider, scope, delivery_id, 400, {"error": "Invalid payload format"}, DeliveryState.REJECTED)

        # SCOPE_FILTERED
        try:
            delivery = parse_delivery(provider, payload, headers)
        except LedgerSyncError as e:
            return self._finish(provider, scope, delivery_id, e.status_code, e.to_dict(), DeliveryState.REJECTED)
        if delivery is None:
            scope = headers.get("x-shopify-topic") or str(payload.get("scope") or "unknown")
            return self._finish(
                provider, scope, delivery_id, 200, {"success": True, "message": "Event ignored"}, DeliveryState.IGNORED
            )
        scope, delivery_id = delivery.scope, delivery.delivery_id

        # TENANT_RESOLVED: every event's tenant is known before anything is written
        try:
            tenants = [
                resolve_tenant(self.store, provider, event, self.settings.bigcommerce_default_org_id)
                for event in delivery.events
            ]
        except LedgerSyncError as e:
            return self._finish(provider, scope, delivery_id, e.status_code, e.to_dict(), DeliveryState.REJECTED)

        if self.delivery_log.is_duplicate(provider, delivery_id):
            return self._finish(
                provider,
                scope,
                delivery_id,
                200,
                {"success": True, "message": "Duplicate delivery ignored"},
                DeliveryState.DUPLICATE,
            )

        try:
            outcome = self._apply(delivery, tenants)
        except LedgerSyncError as e:
            self.delivery_log.release(provider, delivery_id)
            return self._finish(provider, scope, delivery_id, e.status_code, e.to_dict(), DeliveryState.REJECTED)
        except Exception:
            self.delivery_log.release(provider, delivery_id)
            logger.exception("Webhook processing failed: %s/%s", provider, scope)
            self._audit(provider, scope, delivery_id, DeliveryState.REJECTED, 500)
            raise

        logger.debug("Webhook processed in %.1fms: %s/%s", (time.time() - start) * 1000, provider, scope)
        return self._finish(provider, scope, delivery_id, 200, outcome, DeliveryState.ACKNOWLEDGED)

    # ── Paths ─────────────────────────────────────────────────────────────

    def _apply(self, delivery: WebhookDelivery, tenants: list[dict[str, Any]]) -> dict[str, Any]:
        tally = _Tally()
        for event, org in zip(delivery.events, tenants):
            if event.is_delete:
                removed = self._delete(delivery.provider, org["id"], event)
                tally.removed = (tally.removed or 0) + removed
            else:
                self._upsert(delivery.provider, org, event, tally)

        if len(delivery.events) > 1:
            message = f"Processed {len(delivery.events)} events"
        elif tally.removed is not None:
            message = f"Removed {tally.removed} item(s)"
        elif not tally.reconciled:
            message = NO_MATCHING_ITEMS
        else:
            message = "Product synced"

        body: dict[str, Any] = {"success": tally.failed == 0, "message": message}
        result = tally.result()
        if result is not None:
            body["result"] = result
        return body

    def _delete(self, provider: str, org_id: str, event: WebhookEvent) -> int:
        """DELETE_PATH: drop ledger rows linked to the platform entity.  No history."""
        product_column, variant_column = _PRODUCT_COLUMNS[provider]
        if variant_column and event.variant_id and "variant" in event.scope:
            where = {"org_id": org_id, variant_column: event.variant_id}
        else:
            where = {"org_id": org_id, product_column: event.product_id}
        removed = self.store.delete(INVENTORY_TABLE, where)
        logger.info("Removed %d item(s) for org=%s via %s %s", removed, org_id, provider, event.scope)
        return removed

    def _upsert(self, provider: str, org: dict[str, Any], event: WebhookEvent, tally: _Tally) -> None:
        """UPSERT_PATH: reconcile pushed state, fetching it first when the payload is identifier-only."""
        items = self._items_for(provider, org, event)
        if not items:
            logger.info("No matching items for %s %s (org=%s)", provider, event.scope, org["id"])
            return

        outcome = self.engine.reconcile(org["id"], provider, items, change_type=ChangeType.WEBHOOK)
        tally.reconciled = True
        tally.created += outcome.created
        tally.updated += outcome.updated
        tally.failed += outcome.failed
        tally.errors.extend(outcome.errors)

    def _items_for(self, provider: str, org: dict[str, Any], event: WebhookEvent) -> list[ExternalItem]:
        if event.product is not None:
            return product_to_items(event.product)

        adapter = self.adapters[provider]
        credentials = adapter.credentials_from_org(org, self.vault.decrypt_token)

        if event.inventory_item_id is not None:
            owner = adapter.resolve_inventory_item(credentials, event.inventory_item_id)
            if owner is None:
                return []
            product_id, variant_id = owner
            return adapter.fetch_entity(credentials, product_id, variant_id)

        return adapter.fetch_entity(credentials, event.product_id, event.variant_id)

    # ── Audit ─────────────────────────────────────────────────────────────

    def _finish(
        self,
        provider: str,
        scope: str,
        delivery_id: str,
        status_code: int,
        body: dict[str, Any],
        state: DeliveryState,
    ) -> WebhookOutcome:
        self._audit(provider, scope, delivery_id, state, status_code)
        return WebhookOutcome(status_code=status_code, body=body, state=state)

    @staticmethod
    def _audit(provider: str, scope: str, delivery_id: str, state: DeliveryState, status_code: int) -> None:
        logger.info(
            "WEBHOOK_AUDIT provider=%s scope=%s id=%s state=%s status=%d",
            provider,
            scope,
            delivery_id or "-",
            state.value,
            status_code,
        )
