"""Inventory sync, platform import and webhook-subscription endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from ledgersync.errors import NotFoundError, ShapeError, ValidationError
from ledgersync.integrations import get_adapter
from ledgersync.integrations.generic import map_fields, resolve_items
from ledgersync.models import ORGANIZATIONS_TABLE, SyncOutcome
from ledgersync.security.middleware import check_rate_limit
from ledgersync.webhooks import subscriptions

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request models ────────────────────────────────────────────────────────
# Required fields default to empty so the engine reports missing ones with
# its own messages rather than a schema error.


class SyncRequest(BaseModel):
    org_id: str = ""
    source: str = ""
    items: Any = None
    enable_ai_labeling: bool = False


class PlatformSyncRequest(BaseModel):
    org_id: str = ""
    enable_ai_labeling: bool = False


class ImportProxyRequest(BaseModel):
    org_id: str = ""
    source: str = ""
    apiUrl: str = ""
    apiKey: str | None = None
    itemsPath: str | None = None
    fieldMapping: dict[str, str] | None = None
    enable_ai_labeling: bool = False


class WebhookRegistrationRequest(BaseModel):
    org_id: str = ""
    base_url: str | None = None


# ── Helpers ───────────────────────────────────────────────────────────────


def _batch_response(outcome: SyncOutcome, **extra: Any) -> JSONResponse | dict[str, Any]:
    """200 with a partial-failure report, or 422 when nothing succeeded."""
    if outcome.failed and not (outcome.created or outcome.updated):
        return JSONResponse(
            {
                "success": False,
                "error": "All items failed to sync",
                "results": outcome.results(),
                "summary": outcome.summary,
                **extra,
            },
            status_code=422,
        )
    return {**outcome.to_response(), **extra}


def _load_org(request: Request, org_id: str) -> dict[str, Any]:
    if not org_id:
        raise ValidationError("org_id is required")
    rows = request.app.state.store.find(ORGANIZATIONS_TABLE, {"id": org_id}, limit=1)
    if not rows:
        raise NotFoundError("Organization not found")
    return rows[0]


def _platform_credentials(request: Request, provider: str, org_id: str):
    adapter = get_adapter(request.app.state.adapters, provider)
    org = _load_org(request, org_id)
    credentials = adapter.credentials_from_org(org, request.app.state.vault.decrypt_token)
    return adapter, credentials


# ── Inventory sync ────────────────────────────────────────────────────────


def _run_sync(request: Request, body: SyncRequest):
    check_rate_limit(request, "standard", body.org_id)
    outcome = request.app.state.engine.reconcile(body.org_id, body.source, body.items, body.enable_ai_labeling)
    return _batch_response(outcome)


@router.post("/inventory/sync")
async def sync_inventory(body: SyncRequest, request: Request):
    """Reconcile a caller-supplied batch of items into the tenant ledger."""
    return await run_in_threadpool(_run_sync, request, body)


def _run_platform_sync(request: Request, provider: str, body: PlatformSyncRequest):
    check_rate_limit(request, "standard", body.org_id)
    adapter, credentials = _platform_credentials(request, provider, body.org_id)
    items = adapter.fetch_catalog(credentials)
    logger.info("Fetched %d item(s) from %s for org=%s", len(items), provider, body.org_id)
    if not items:
        return {**SyncOutcome().to_response(), "imported": 0}
    outcome = request.app.state.engine.reconcile(body.org_id, provider, items, body.enable_ai_labeling)
    return _batch_response(outcome, imported=len(items))


@router.post("/integrations/{provider}/sync")
async def sync_platform(provider: str, body: PlatformSyncRequest, request: Request):
    """Pull the tenant's full catalog from a platform and reconcile it."""
    return await run_in_threadpool(_run_platform_sync, request, provider, body)


def _run_import_proxy(request: Request, body: ImportProxyRequest):
    check_rate_limit(request, "standard", body.org_id)
    if not body.org_id or not body.source or not body.apiUrl:
        raise ValidationError("org_id, source, and apiUrl are required.")

    adapter = request.app.state.generic_adapter
    payload = adapter.fetch(body.apiUrl, body.apiKey)
    raw_items = resolve_items(payload, body.itemsPath)
    if not raw_items:
        raise ShapeError(
            "No inventory items found in the external API response. Adjust the items path or response shape."
        )
    items = map_fields(raw_items, body.fieldMapping)

    outcome = request.app.state.engine.reconcile(body.org_id, body.source, items, body.enable_ai_labeling)
    response = _batch_response(outcome)
    if isinstance(response, JSONResponse):
        return response
    return {
        "success": True,
        "fetched": len(items),
        "summary": outcome.summary,
        "results": outcome.results(),
    }


@router.post("/inventory/import-proxy")
async def import_proxy(body: ImportProxyRequest, request: Request):
    """Fetch a generic JSON API, map its records and reconcile them."""
    return await run_in_threadpool(_run_import_proxy, request, body)


# ── Webhook subscriptions ─────────────────────────────────────────────────


@router.post("/integrations/{provider}/webhooks")
async def register_webhooks(provider: str, body: WebhookRegistrationRequest, request: Request):
    def run():
        check_rate_limit(request, "standard", body.org_id)
        adapter, credentials = _platform_credentials(request, provider, body.org_id)
        base_url = body.base_url or request.app.state.settings.app_url
        return subscriptions.register_webhooks(adapter, credentials, base_url)

    return await run_in_threadpool(run)


@router.get("/integrations/{provider}/webhooks")
async def list_webhooks(provider: str, request: Request, org_id: str = ""):
    def run():
        check_rate_limit(request, "standard")
        adapter, credentials = _platform_credentials(request, provider, org_id)
        return subscriptions.list_webhooks(adapter, credentials)

    return await run_in_threadpool(run)


@router.delete("/integrations/{provider}/webhooks")
async def delete_webhooks(provider: str, request: Request, org_id: str = ""):
    def run():
        check_rate_limit(request, "standard")
        adapter, credentials = _platform_credentials(request, provider, org_id)
        return subscriptions.delete_webhooks(adapter, credentials)

    return await run_in_threadpool(run)


@router.get("/health")
async def health():
    return {"status": "ok"}
