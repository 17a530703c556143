"""Clover POS adapter.

Clover items carry their stock either on an expanded ``itemStock`` object
or directly as ``stockCount``.  Hidden items are archived and skipped.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from ledgersync.errors import UpstreamProviderError
from ledgersync.integrations.base import ProviderAdapter, missing_credentials
from ledgersync.models import ExternalItem, parse_int

logger = logging.getLogger(__name__)

PAGE_LIMIT = 100
MAX_PAGES = 100
PAGE_THROTTLE_SECONDS = 0.5

API_URLS = {
    "us": "https://api.clover.com",
    "eu": "https://api.eu.clover.com",
}


@dataclass(frozen=True)
class CloverCredentials:
    merchant_id: str
    access_token: str
    environment: str = "us"


def map_item(item: dict[str, Any]) -> ExternalItem:
    stock = (item.get("itemStock") or {}).get("stockCount")
    if stock is None:
        stock = item.get("stockCount")
    return ExternalItem(
        name=(item.get("name") or "").strip(),
        sku=item.get("sku") or item.get("code") or None,  # code is the barcode
        quantity=parse_int(stock),
        reorder_threshold=0,
        provider_ids={"clover_item_id": str(item.get("id"))},
    )


class CloverAdapter(ProviderAdapter):
    provider = "clover"

    def __init__(self, *args: Any, page_throttle: float = PAGE_THROTTLE_SECONDS, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._page_throttle = page_throttle

    def _url(self, credentials: CloverCredentials, endpoint: str) -> str:
        base = API_URLS.get(credentials.environment, API_URLS["us"])
        return f"{base}/v3/merchants/{credentials.merchant_id}{endpoint}"

    def _headers(self, credentials: CloverCredentials) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {credentials.access_token}",
        }

    @classmethod
    def credentials_from_org(cls, org: dict[str, Any], decrypt: Callable[[str], str]) -> CloverCredentials:
        merchant_id = org.get("clover_merchant_id")
        token = org.get("clover_access_token")
        if not merchant_id or not token:
            raise missing_credentials("clover", "merchant id or access token missing")
        return CloverCredentials(
            merchant_id=merchant_id,
            access_token=decrypt(token),
            environment=org.get("clover_environment") or "us",
        )

    def fetch_catalog(self, credentials: CloverCredentials) -> list[ExternalItem]:
        items: list[ExternalItem] = []
        offset = 0

        for page in range(1, MAX_PAGES + 1):
            data = self.request_json(
                "GET",
                self._url(credentials, "/items"),
                headers=self._headers(credentials),
                params={"expand": "itemStock", "limit": PAGE_LIMIT, "offset": offset},
            ) or {}
            elements = data.get("elements") or []
            items.extend(map_item(e) for e in elements if not e.get("hidden"))

            if len(elements) < PAGE_LIMIT:
                break
            offset += PAGE_LIMIT
            # Clover rate-limits aggressive pagination
            if self._page_throttle:
                time.sleep(self._page_throttle)
        else:
            logger.warning(
                "Clover pagination hit safety limit of %d pages (%d items fetched)", MAX_PAGES, len(items)
            )

        return items

    def fetch_entity(self, credentials: CloverCredentials, product_id: Any, variant_id: Any = None) -> list[ExternalItem]:
        """Fetch one Clover item; hidden or missing items yield an empty list."""
        try:
            item = self.request_json(
                "GET",
                self._url(credentials, f"/items/{product_id}"),
                headers=self._headers(credentials),
                params={"expand": "itemStock"},
            )
        except UpstreamProviderError as e:
            if e.upstream_status == 404:
                return []
            raise
        if not item or item.get("hidden"):
            return []
        return [map_item(item)]
