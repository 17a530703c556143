"""FastAPI application factory.

Wires settings, the record store, vault, adapters, reconciliation engine,
webhook pipeline and rate limiter onto ``app.state``.  Collaborators can be
injected for tests; anything not given is built from settings.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from ledgersync.config import Settings, get_settings
from ledgersync.integrations import build_adapters
from ledgersync.integrations.base import ProviderAdapter
from ledgersync.integrations.generic import GenericAdapter
from ledgersync.labeling import Labeler
from ledgersync.logging_setup import configure_logging
from ledgersync.ratelimit import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from ledgersync.reconcile import ReconciliationEngine
from ledgersync.routes import router
from ledgersync.security.middleware import install_security_middleware
from ledgersync.store import RecordStore, create_store
from ledgersync.vault import CredentialVault
from ledgersync.webhooks.handlers import register_webhook_routes
from ledgersync.webhooks.idempotency import DeliveryLog, NullDeliveryLog
from ledgersync.webhooks.pipeline import WebhookPipeline

logger = logging.getLogger(__name__)


def _build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.rate_limit_backend == "redis":
        return RedisRateLimiter(settings.redis_url)
    return InMemoryRateLimiter(sweep_interval=settings.rate_limit_sweep_seconds)


def create_app(
    settings: Settings | None = None,
    *,
    store: RecordStore | None = None,
    adapters: dict[str, ProviderAdapter] | None = None,
    webhook_adapters: dict[str, ProviderAdapter] | None = None,
    generic_adapter: GenericAdapter | None = None,
    rate_limiter: RateLimiter | None = None,
    delivery_log: Any = None,
    labeler: Labeler | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(
            settings.log_level,
            secrets=(
                settings.encryption_key,
                settings.api_token,
                settings.shopify_webhook_secret,
                settings.bigcommerce_webhook_secret,
                settings.clover_webhook_secret,
            ),
        )

    store = store if store is not None else create_store(settings.database_url)
    vault = CredentialVault(settings.encryption_key, legacy_plaintext=settings.legacy_plaintext_tokens)
    if not vault.configured:
        logger.warning("LEDGERSYNC_ENCRYPTION_KEY not set - provider tokens are stored unencrypted")

    if adapters is None:
        adapters = build_adapters(
            timeout=settings.http_timeout_seconds,
            max_retries=settings.http_max_retries,
            retry_budget=settings.http_retry_budget_seconds,
        )
        if webhook_adapters is None:
            webhook_adapters = build_adapters(
                timeout=settings.http_timeout_seconds,
                max_retries=settings.webhook_fetch_max_retries,
                retry_budget=settings.webhook_fetch_budget_seconds,
            )
    # Injected adapters serve both paths unless webhook ones are given too
    webhook_adapters = webhook_adapters if webhook_adapters is not None else adapters
    generic_adapter = generic_adapter or GenericAdapter(
        timeout=settings.http_timeout_seconds,
        max_retries=settings.http_max_retries,
        retry_budget=settings.http_retry_budget_seconds,
    )
    rate_limiter = rate_limiter or _build_rate_limiter(settings)
    if delivery_log is None:
        delivery_log = DeliveryLog(settings.redis_url) if settings.redis_url else NullDeliveryLog()

    engine = ReconciliationEngine(
        store,
        labeler,
        dedup_seconds=settings.history_dedup_seconds,
        max_workers=settings.reconcile_workers,
    )
    pipeline = WebhookPipeline(store, engine, vault, webhook_adapters, settings, delivery_log)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_schema = getattr(store, "init_schema", None)
        if init_schema is not None:
            await run_in_threadpool(init_schema)
        rate_limiter.start()
        logger.info("ledgersync started")
        try:
            yield
        finally:
            rate_limiter.stop()
            owned = {id(a): a for a in [*adapters.values(), *webhook_adapters.values(), generic_adapter]}
            for adapter in owned.values():
                adapter.close()
            logger.info("ledgersync stopped")

    app = FastAPI(title="ledgersync", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.vault = vault
    app.state.adapters = adapters
    app.state.generic_adapter = generic_adapter
    app.state.engine = engine
    app.state.webhook_pipeline = pipeline
    app.state.rate_limiter = rate_limiter

    app.include_router(router)
    register_webhook_routes(app)
    install_security_middleware(app, settings)
    return app


def main() -> None:
    import uvicorn

    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)
