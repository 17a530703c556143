"""Domain records: ledger rows, audit history, and the canonical transfer item.

Store rows are plain dicts keyed by column name; the dataclasses here are
the typed view used by adapters and the reconciliation engine.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

# Table names used against the record store
INVENTORY_TABLE = "inventory_items"
HISTORY_TABLE = "inventory_history"
ORGANIZATIONS_TABLE = "organizations"
IMPORTS_TABLE = "imports"

KNOWN_SOURCES = {"shopify", "square", "custom", "bigcommerce", "clover"}

# Provider linkage columns carried on inventory rows
PROVIDER_ID_FIELDS = (
    "shopify_product_id",
    "shopify_variant_id",
    "bigcommerce_product_id",
    "bigcommerce_variant_id",
    "clover_item_id",
)


class ChangeType(str, Enum):
    """Why a history entry was written."""

    SYNC = "sync"
    WEBHOOK = "webhook"
    MANUAL = "manual"


def parse_int(value: Any) -> int:
    """Coerce a loosely typed quantity to int; missing or unparseable -> 0.

    Mirrors parseInt semantics: leading integer digits of a string are used
    ("12 units" -> 12), floats are truncated toward zero.
    """
    if value is None or value == "" or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return 0
        return int(value)
    text = str(value).strip()
    digits = ""
    for index, char in enumerate(text):
        if char.isdigit() or (index == 0 and char in "+-"):
            digits += char
        else:
            break
    try:
        return int(digits)
    except ValueError:
        return 0


def normalize_source(source: str) -> str:
    """Lower-case known source labels, keep custom labels verbatim."""
    lowered = source.lower()
    return lowered if lowered in KNOWN_SOURCES else source


@dataclass
class ExternalItem:
    """Canonical item produced by every provider adapter and the field mapper."""

    name: str
    sku: str | None = None
    quantity: int = 0
    reorder_threshold: int = 0
    invoice: str | None = None
    expiration_date: str | None = None
    category: str | None = None
    ai_label: str | None = None
    provider_ids: dict[str, str] = field(default_factory=dict)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ExternalItem:
        """Build an item from a loosely typed request payload.

        Name is kept as given (possibly empty) so the engine can report it;
        provider ids are read from their flat column names.
        """
        raw_name = data.get("name")
        name = str(raw_name).strip() if raw_name is not None else ""
        provider_ids = {
            key: str(data[key])
            for key in PROVIDER_ID_FIELDS
            if data.get(key) not in (None, "")
        }
        sku = data.get("sku")
        return ExternalItem(
            name=name,
            sku=str(sku) if sku not in (None, "") else None,
            quantity=parse_int(data.get("quantity")),
            reorder_threshold=parse_int(data.get("reorder_threshold")),
            invoice=data.get("invoice") or None,
            expiration_date=data.get("expiration_date") or None,
            category=data.get("category") or None,
            ai_label=data.get("ai_label") or None,
            provider_ids=provider_ids,
        )


@dataclass
class HistoryEntry:
    """Append-only audit record of a quantity change."""

    org_id: str
    item_id: str
    item_name: str
    sku: str | None
    previous_quantity: int
    new_quantity: int
    quantity_change: int
    change_type: ChangeType
    source: str

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["change_type"] = self.change_type.value
        return row


@dataclass
class SyncOutcome:
    """Aggregate result of one reconciliation batch."""

    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        return f"Created: {self.created}, Updated: {self.updated}, Failed: {self.failed}"

    @property
    def success(self) -> bool:
        return self.failed == 0

    def results(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "errors": list(self.errors),
        }

    def to_response(self) -> dict[str, Any]:
        return {"success": self.success, "results": self.results(), "summary": self.summary}
