"""
Append-only activity log for purchase orders.

Entries are written by the direct PO mutation paths (``created``,
``status_changed``) and by the automation engine (``created_from_invoice``).
There is no update or delete here; ``RecordStore.reset`` is
the only way entries disappear.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .models import ActivityLog, PurchaseOrder
from .status import Action
from .store import RecordStore

ENTITY_PURCHASE_ORDER = "purchase_order"


class ActivityLogger:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def with_store(self, store: RecordStore) -> "ActivityLogger":
        """Return a logger writing through ``store`` (e.g. a transaction)."""
        return ActivityLogger(store)

    def append(self, po_id: str, action: Action, details: Optional[Dict[str, Any]] = None, **extra: Any) -> ActivityLog:
        return self.store.create(
            ActivityLog,
            entity_type=ENTITY_PURCHASE_ORDER,
            entity_id=po_id,
            action=action,
            details=details,
            purchase_order_id=po_id,
            **extra,
        )

    def log_created(self, po: PurchaseOrder, **extra: Any) -> ActivityLog:
        return self.append(po.id, Action.CREATED, {"vendor": po.vendor, "total": float(po.total)}, **extra)

    def log_status_change(self, po: PurchaseOrder, from_status: str, to_status: str, **extra: Any) -> ActivityLog:
        return self.append(
            po.id,
            Action.STATUS_CHANGED,
            {"from": str(getattr(from_status, "value", from_status)), "to": str(getattr(to_status, "value", to_status))},
            **extra,
        )

    def log_created_from_invoice(self, po: PurchaseOrder, invoice_id: str) -> ActivityLog:
        return self.append(
            po.id,
            Action.CREATED_FROM_INVOICE,
            {"invoiceId": invoice_id, "vendor": po.vendor, "total": float(po.total)},
        )

    def recent(self, limit: int = 20, include: tuple = ()) -> List[ActivityLog]:
        return self.store.find_many(ActivityLog, order_by="-timestamp", take=limit, include=include)

    def for_purchase_order(self, po_id: str) -> List[ActivityLog]:
        return self.store.find_many(ActivityLog, where={"purchase_order_id": po_id}, order_by="-timestamp")
