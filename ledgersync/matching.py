"""Two-stage identity resolution for ledger rows.

SKU is the preferred key but is not unique; name is the fallback and may
collide.  The resolver returns a tagged result so callers (and tests) can
see which stage matched instead of inferring it from nested lookups.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ledgersync.models import INVENTORY_TABLE
from ledgersync.store import RecordStore


class MatchKind(str, Enum):
    SKU = "matched_by_sku"
    NAME = "matched_by_name"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class MatchResult:
    kind: MatchKind
    row: dict[str, Any] | None = None

    @property
    def found(self) -> bool:
        return self.kind is not MatchKind.NOT_FOUND


NOT_FOUND = MatchResult(kind=MatchKind.NOT_FOUND)


def resolve_identity(store: RecordStore, org_id: str, name: str, sku: str | None) -> MatchResult:
    """Find the ledger row for an item: by (org, SKU), then by (org, name)."""
    if sku:
        rows = store.find(INVENTORY_TABLE, {"org_id": org_id, "sku": sku}, limit=1)
        if rows:
            return MatchResult(kind=MatchKind.SKU, row=rows[0])

    if name:
        rows = store.find(INVENTORY_TABLE, {"org_id": org_id, "name": name}, limit=1)
        if rows:
            return MatchResult(kind=MatchKind.NAME, row=rows[0])

    return NOT_FOUND
