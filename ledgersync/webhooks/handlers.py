"""Webhook HTTP handlers: FastAPI routes for inbound platform deliveries.

Each handler reads the raw body (needed for HMAC verification), lower-cases
the headers and hands both to the ``WebhookPipeline`` on ``app.state``.  The
pipeline is synchronous, so it runs in the threadpool.
"""

from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ledgersync.security.middleware import rate_limit

logger = logging.getLogger(__name__)

PROVIDERS = ("shopify", "bigcommerce", "clover")


async def _handle_webhook(request: Request, provider: str) -> JSONResponse:
    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}
    pipeline = request.app.state.webhook_pipeline
    outcome = await run_in_threadpool(pipeline.process, provider, body, headers)
    return JSONResponse(outcome.body, status_code=outcome.status_code)


def _health(provider: str) -> dict[str, str]:
    return {"status": "ok", "message": f"{provider.capitalize()} webhook endpoint is active"}


def register_webhook_routes(app: FastAPI) -> None:
    """Register webhook receiver and health routes on the FastAPI app."""
    limited = [Depends(rate_limit("webhook"))]

    @app.post("/webhooks/shopify", dependencies=limited)
    async def shopify_webhook(request: Request):
        """Receive Shopify webhooks (signature-verified)."""
        return await _handle_webhook(request, "shopify")

    @app.post("/webhooks/bigcommerce", dependencies=limited)
    async def bigcommerce_webhook(request: Request):
        """Receive BigCommerce webhooks (signature-verified)."""
        return await _handle_webhook(request, "bigcommerce")

    @app.post("/webhooks/clover", dependencies=limited)
    async def clover_webhook(request: Request):
        """Receive Clover webhooks (signature-verified)."""
        return await _handle_webhook(request, "clover")

    @app.get("/webhooks/shopify")
    async def shopify_webhook_health():
        return _health("shopify")

    @app.get("/webhooks/bigcommerce")
    async def bigcommerce_webhook_health():
        return _health("bigcommerce")

    @app.get("/webhooks/clover")
    async def clover_webhook_health():
        return _health("clover")

    logger.info("Webhook routes registered: /webhooks/{shopify,bigcommerce,clover}")
