"""Provider adapters keyed by platform name."""

from __future__ import annotations

from ledgersync.errors import NotFoundError
from ledgersync.integrations.base import ProviderAdapter
from ledgersync.integrations.bigcommerce import BigCommerceAdapter
from ledgersync.integrations.clover import CloverAdapter
from ledgersync.integrations.generic import GenericAdapter
from ledgersync.integrations.shopify import ShopifyAdapter

ADAPTERS: dict[str, type[ProviderAdapter]] = {
    "shopify": ShopifyAdapter,
    "bigcommerce": BigCommerceAdapter,
    "clover": CloverAdapter,
}


def build_adapters(
    timeout: float = 15.0,
    max_retries: int = 3,
    retry_budget: float | None = None,
) -> dict[str, ProviderAdapter]:
    """One adapter instance per catalog platform."""
    return {
        name: cls(timeout=timeout, max_retries=max_retries, retry_budget=retry_budget)
        for name, cls in ADAPTERS.items()
    }


def get_adapter(adapters: dict[str, ProviderAdapter], provider: str) -> ProviderAdapter:
    try:
        return adapters[provider]
    except KeyError:
        raise NotFoundError(f"Unknown provider: {provider}") from None


__all__ = [
    "ADAPTERS",
    "BigCommerceAdapter",
    "CloverAdapter",
    "GenericAdapter",
    "ProviderAdapter",
    "ShopifyAdapter",
    "build_adapters",
    "get_adapter",
]
