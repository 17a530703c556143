"""Reconciliation engine: merge external item state into the tenant ledger.

For every item: resolve identity (SKU, then name), update-or-insert, and
append a history entry for any non-zero quantity delta.  Items are
independent; one item's failure is recorded in the batch report and the
batch carries on.

Known limitation: two concurrent reconciliations of the same item (a
webhook retry racing a manual sync) can both read the same prior quantity.
Each writes a history entry with a correct individual delta but the final
stored quantity is last-writer-wins.  There is no row versioning here.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from ledgersync.errors import LedgerSyncError, ValidationError
from ledgersync.labeling import Labeler, NullLabeler
from ledgersync.matching import resolve_identity
from ledgersync.models import (
    HISTORY_TABLE,
    IMPORTS_TABLE,
    INVENTORY_TABLE,
    ChangeType,
    ExternalItem,
    HistoryEntry,
    SyncOutcome,
    normalize_source,
    parse_int,
)
from ledgersync.store import RecordStore

logger = logging.getLogger(__name__)

_CREATED = "created"
_UPDATED = "updated"
_FAILED = "failed"

# Optional columns only written when the incoming item carries a value,
# so a sparse source never blanks out data another source filled in.
_OPTIONAL_FIELDS = ("invoice", "expiration_date", "category", "ai_label")


class ReconciliationEngine:
    """Match-or-create with delta accounting against one record store."""

    def __init__(
        self,
        store: RecordStore,
        labeler: Labeler | None = None,
        *,
        dedup_seconds: int = 60,
        max_workers: int = 1,
    ) -> None:
        self.store = store
        self.labeler = labeler or NullLabeler()
        self.dedup_seconds = dedup_seconds
        self.max_workers = max(1, max_workers)

    # ── Public API ────────────────────────────────────────────────────────

    def reconcile(
        self,
        tenant_id: str,
        source: str,
        items: Iterable[ExternalItem | dict[str, Any]],
        enable_labeling: bool = False,
        change_type: ChangeType = ChangeType.SYNC,
    ) -> SyncOutcome:
        """Reconcile a batch of items for one tenant.

        Raises:
            ValidationError: missing tenant id or source, or an empty batch.
        """
        if not tenant_id:
            raise ValidationError("org_id is required for inventory sync")
        if not source:
            raise ValidationError("source is required for inventory sync")
        if not isinstance(items, Iterable) or isinstance(items, (str, bytes, dict)):
            raise ValidationError("items must be a non-empty array")
        batch = list(items)
        if not batch:
            raise ValidationError("items must be a non-empty array")

        source_label = normalize_source(source)

        def run(item: ExternalItem | dict[str, Any]) -> tuple[str, str | None]:
            return self._reconcile_one(tenant_id, source_label, item, enable_labeling, change_type)

        if self.max_workers > 1 and len(batch) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="reconcile") as pool:
                outcomes = list(pool.map(run, batch))
        else:
            outcomes = [run(item) for item in batch]

        outcome = SyncOutcome()
        for status, error in outcomes:
            if status == _CREATED:
                outcome.created += 1
            elif status == _UPDATED:
                outcome.updated += 1
            else:
                outcome.failed += 1
                outcome.errors.append(error or "Unknown: Failed to sync item")

        self._log_import(tenant_id, source_label, outcome)
        logger.info(
            "Reconciled %d item(s) for org=%s source=%s: %s",
            len(batch),
            tenant_id,
            source_label,
            outcome.summary,
        )
        return outcome

    # ── Per-item processing ───────────────────────────────────────────────

    def _reconcile_one(
        self,
        org_id: str,
        source: str,
        raw: ExternalItem | dict[str, Any],
        enable_labeling: bool,
        change_type: ChangeType,
    ) -> tuple[str, str | None]:
        if isinstance(raw, dict):
            item = ExternalItem.from_dict(raw)
        elif isinstance(raw, ExternalItem):
            item = raw
        else:
            return _FAILED, "Unknown: item is not an object"

        if not item.name or not item.name.strip():
            return _FAILED, "Unknown: item is missing a name"

        try:
            if enable_labeling and not item.category and not item.ai_label:
                self._enrich(item)
            return self._upsert(org_id, source, item, change_type), None
        except LedgerSyncError as e:
            logger.warning("Failed to sync item %r for org=%s: %s", item.name, org_id, e.message)
            return _FAILED, f"{item.name}: {e.message}"
        except Exception as e:
            logger.warning("Failed to sync item %r for org=%s", item.name, org_id, exc_info=True)
            return _FAILED, f"{item.name}: {str(e) or 'Failed to sync item'}"

    def _enrich(self, item: ExternalItem) -> None:
        """Merge category/label from the labeler; never blocks the sync."""
        try:
            result = self.labeler.label(item.name)
        except Exception:
            logger.warning("Labeling failed for %r; continuing without enrichment", item.name, exc_info=True)
            return
        if result.ok:
            item.category = result.category or None
            item.ai_label = result.label or None

    def _upsert(self, org_id: str, source: str, item: ExternalItem, change_type: ChangeType) -> str:
        match = resolve_identity(self.store, org_id, item.name, item.sku)
        new_quantity = item.quantity

        if match.found:
            existing = match.row
            previous_quantity = parse_int(existing.get("quantity"))
            delta = new_quantity - previous_quantity

            values: dict[str, Any] = {
                "name": item.name,
                "quantity": new_quantity,
                "reorder_threshold": item.reorder_threshold,
            }
            if item.sku:
                values["sku"] = item.sku
            values.update(self._optional_values(item))
            self.store.update(INVENTORY_TABLE, {"id": existing["id"], "org_id": org_id}, values)

            if delta != 0 and not self._is_duplicate_history(org_id, existing["id"], new_quantity, source):
                self._append_history(
                    HistoryEntry(
                        org_id=org_id,
                        item_id=existing["id"],
                        item_name=item.name,
                        sku=item.sku or existing.get("sku"),
                        previous_quantity=previous_quantity,
                        new_quantity=new_quantity,
                        quantity_change=delta,
                        change_type=change_type,
                        source=source,
                    )
                )
            logger.debug("Updated %r (%s) delta=%d", item.name, match.kind.value, delta)
            return _UPDATED

        row: dict[str, Any] = {
            "org_id": org_id,
            "name": item.name,
            "sku": item.sku,
            "quantity": new_quantity,
            "reorder_threshold": item.reorder_threshold,
        }
        row.update(self._optional_values(item))
        inserted = self.store.insert(INVENTORY_TABLE, row)

        if new_quantity > 0:
            self._append_history(
                HistoryEntry(
                    org_id=org_id,
                    item_id=inserted["id"],
                    item_name=item.name,
                    sku=item.sku,
                    previous_quantity=0,
                    new_quantity=new_quantity,
                    quantity_change=new_quantity,
                    change_type=change_type,
                    source=source,
                )
            )
        return _CREATED

    @staticmethod
    def _optional_values(item: ExternalItem) -> dict[str, Any]:
        values = {name: getattr(item, name) for name in _OPTIONAL_FIELDS if getattr(item, name)}
        values.update({k: str(v) for k, v in item.provider_ids.items() if v not in (None, "")})
        return values

    # ── History ───────────────────────────────────────────────────────────

    def _is_duplicate_history(self, org_id: str, item_id: str, new_quantity: int, source: str) -> bool:
        """True if the same outcome was logged inside the dedup window.

        Fails open: if the lookup errors, the entry is written.
        """
        since = datetime.now(timezone.utc) - timedelta(seconds=self.dedup_seconds)
        try:
            rows = self.store.find(
                HISTORY_TABLE,
                {"org_id": org_id, "item_id": item_id, "new_quantity": new_quantity, "source": source},
                gte={"created_at": since},
                limit=1,
            )
        except Exception:
            logger.warning("History dedup lookup failed for item %s - writing entry", item_id, exc_info=True)
            return False
        if rows:
            logger.info("Suppressed duplicate history entry for item %s (qty=%d)", item_id, new_quantity)
            return True
        return False

    def _append_history(self, entry: HistoryEntry) -> None:
        self.store.insert(HISTORY_TABLE, entry.to_row())

    def _log_import(self, org_id: str, source: str, outcome: SyncOutcome) -> None:
        try:
            self.store.insert(
                IMPORTS_TABLE,
                {
                    "org_id": org_id,
                    "source": source,
                    "status": "completed" if outcome.failed == 0 else "completed_with_errors",
                },
            )
        except Exception:
            logger.warning("Failed to record import for org=%s source=%s", org_id, source, exc_info=True)
