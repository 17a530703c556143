"""Shared HTTP plumbing for provider adapters.

Adapters are pure fetch-and-normalize: they turn platform records into
``ExternalItem`` lists and never touch the ledger.  Every outbound call has
a bounded timeout; non-2xx responses and transport failures surface as
``UpstreamProviderError`` after transient retries.
"""

from __future__ import annotations

import abc
import logging
from typing import Any

import httpx

from ledgersync.errors import ConfigError, UpstreamProviderError
from ledgersync.integrations.retry import RetryPolicy, send_with_retry
from ledgersync.models import ExternalItem

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
_MAX_ERROR_BODY = 300

RECONNECT_HINT = "Reconnect your {provider} credentials in Settings."


def missing_credentials(provider: str, detail: str = "") -> ConfigError:
    """ConfigError for a tenant whose platform credentials are absent."""
    message = f"{provider.capitalize()} is not connected"
    if detail:
        message = f"{message}: {detail}"
    return ConfigError(message, status_code=400, hint=RECONNECT_HINT.format(provider=provider.capitalize()))


class ProviderAdapter(abc.ABC):
    """Base class for platform adapters."""

    provider: str = ""

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        retry_budget: float | None = None,
    ) -> None:
        self._client = client or httpx.Client(timeout=timeout)
        self._timeout = timeout
        self._retry = RetryPolicy(max_retries=max_retries, budget_seconds=retry_budget)

    def close(self) -> None:
        self._client.close()

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        def attempt(remaining: float | None) -> httpx.Response:
            timeout = self._timeout if remaining is None else min(self._timeout, remaining)
            response = self._client.request(method, url, timeout=timeout, **kwargs)
            response.raise_for_status()
            return response

        return send_with_retry(attempt, self._retry, label=f"{self.provider} {method}")

    def request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        """Perform a request and decode the JSON body.

        Raises:
            UpstreamProviderError: non-2xx status, transport failure, or a
                body that is not JSON.
        """
        try:
            response = self._send(method, url, **kwargs)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text[:_MAX_ERROR_BODY] or e.response.reason_phrase
            raise UpstreamProviderError(
                f"{self.provider.capitalize()} request failed ({status}): {body}",
                provider=self.provider,
                upstream_status=status,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamProviderError(
                f"{self.provider.capitalize()} request failed: {type(e).__name__}",
                provider=self.provider,
            ) from e

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamProviderError(
                f"{self.provider.capitalize()} returned a non-JSON response",
                provider=self.provider,
                upstream_status=response.status_code,
            ) from e

    @abc.abstractmethod
    def fetch_catalog(self, credentials: Any) -> list[ExternalItem]:
        """Fetch the full catalog, flattened across pages."""

    def fetch_entity(self, credentials: Any, product_id: Any, variant_id: Any = None) -> list[ExternalItem]:
        """Fetch current state for one platform entity."""
        raise NotImplementedError(f"{self.provider} does not support per-entity lookups")

    @classmethod
    @abc.abstractmethod
    def credentials_from_org(cls, org: dict[str, Any], decrypt: Any) -> Any:
        """Build credentials from a tenant row, decrypting secrets via ``decrypt``."""
