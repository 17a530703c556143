"""Generic JSON API import.

Fetches an arbitrary JSON endpoint, locates the item array (top-level array
or a dot-path such as ``data.products``) and maps each record onto the
canonical item through a user-supplied field mapping.
"""

from __future__ import annotations

import logging
from typing import Any

from ledgersync.errors import MissingFieldError, ShapeError
from ledgersync.integrations.base import ProviderAdapter
from ledgersync.models import ExternalItem, parse_int

logger = logging.getLogger(__name__)

DEFAULT_FIELD_MAPPING: dict[str, str] = {
    "name": "name",
    "sku": "sku",
    "quantity": "quantity",
    "invoice": "invoice",
    "reorder_threshold": "reorder_threshold",
    "expiration_date": "expiration_date",
}


def get_nested_value(source: Any, path: str | None) -> Any:
    """Resolve ``a.b.c`` against nested dicts; None when any hop is missing."""
    if not path:
        return None
    current = source
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def resolve_items(payload: Any, items_path: str | None = None) -> list[Any]:
    """Locate the item array in an API response.

    Raises:
        ShapeError: the payload is neither an array nor an object holding one
            at ``items_path`` (default ``items``).
    """
    if isinstance(payload, list):
        return payload

    if not isinstance(payload, dict):
        raise ShapeError("API response must be an array or an object containing an items array.")

    path = (items_path or "").strip()
    if path:
        value = get_nested_value(payload, path)
        if isinstance(value, list):
            return value
        raise ShapeError(f'Items path "{path}" did not resolve to an array of items.')

    fallback = get_nested_value(payload, "items")
    if isinstance(fallback, list):
        return fallback

    raise ShapeError("No inventory items found in the API response. Adjust the Items Path or response format.")


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def map_fields(raw_items: list[Any], mapping: dict[str, str] | None = None) -> list[ExternalItem]:
    """Apply a field mapping (merged over the defaults) to raw records.

    Raises:
        ShapeError: a record is not an object.
        MissingFieldError: a record has no value for the mapped name field.
    """
    effective = {**DEFAULT_FIELD_MAPPING, **{k: v for k, v in (mapping or {}).items() if v}}
    items: list[ExternalItem] = []

    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ShapeError(f"Item {index + 1} is not a valid object.")

        name = get_nested_value(raw, effective["name"])
        if name is None or not str(name).strip():
            raise MissingFieldError(f'Item {index + 1} is missing the "{effective["name"]}" field.')

        items.append(
            ExternalItem(
                name=str(name).strip(),
                sku=_optional_str(get_nested_value(raw, effective["sku"])),
                quantity=parse_int(get_nested_value(raw, effective["quantity"])),
                reorder_threshold=parse_int(get_nested_value(raw, effective["reorder_threshold"])),
                invoice=_optional_str(get_nested_value(raw, effective["invoice"])),
                expiration_date=_optional_str(get_nested_value(raw, effective["expiration_date"])),
            )
        )

    return items


class GenericAdapter(ProviderAdapter):
    """Fetch-only adapter for user-supplied JSON endpoints."""

    provider = "custom"

    @classmethod
    def credentials_from_org(cls, org: dict[str, Any], decrypt: Any) -> None:
        # Generic imports carry their API key on the request, not the tenant row
        return None

    def fetch(self, api_url: str, api_key: str | None = None) -> Any:
        headers = {"Accept": "application/json"}
        if api_key and api_key.strip():
            headers["Authorization"] = f"Bearer {api_key.strip()}"
        return self.request_json("GET", api_url, headers=headers)

    def fetch_catalog(self, credentials: Any) -> list[ExternalItem]:
        """``credentials`` is ``{"api_url", "api_key"?, "items_path"?, "field_mapping"?}``."""
        payload = self.fetch(credentials["api_url"], credentials.get("api_key"))
        raw_items = resolve_items(payload, credentials.get("items_path"))
        if not raw_items:
            raise ShapeError(
                "No inventory items found in the external API response. Adjust the items path or response shape."
            )
        return map_fields(raw_items, credentials.get("field_mapping"))
