"""ledgersync configuration."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Environment-driven settings for the reconciliation service."""

    # Credential vault master secret (hashed to a 256-bit AES key)
    encryption_key: str = ""
    # Accept stored tokens that fail to decrypt as pre-migration plaintext
    legacy_plaintext_tokens: bool = True

    # Platform-level webhook shared secrets
    shopify_webhook_secret: str = ""
    bigcommerce_webhook_secret: str = ""
    clover_webhook_secret: str = ""
    # Reject deliveries outright when the platform secret is not configured
    require_webhook_secret: bool = False
    # BigCommerce deliveries cannot embed tenant identity on their own
    bigcommerce_default_org_id: str = ""

    redis_url: str = "redis://localhost:6379/0"
    database_url: str = ""  # empty -> in-memory record store

    http_timeout_seconds: float = 15.0
    http_max_retries: int = 3
    # Total wall time per outbound call on sync routes, retries included
    http_retry_budget_seconds: float = 60.0
    # Webhook receivers re-fetch inside the platform's delivery timeout
    webhook_fetch_max_retries: int = 1
    webhook_fetch_budget_seconds: float = 5.0
    history_dedup_seconds: int = 60
    reconcile_workers: int = 1
    rate_limit_sweep_seconds: int = 300
    rate_limit_backend: str = "memory"  # memory | redis

    # Shared service token for non-webhook routes (empty disables the check)
    api_token: str = ""
    app_url: str = "http://localhost:8000"
    cors_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    model_config = {"env_prefix": "LEDGERSYNC_", "env_file": ".env", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
