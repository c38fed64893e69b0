"""
Direct purchase order operations used by the API and the seeder.

Every status change made here is paired with exactly one ``status_changed``
activity entry and a ``po:status_changed`` event; other edits publish
``po:updated``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from .activity import ActivityLogger
from .errors import NotFound
from .events import PO_CREATED, PO_STATUS_CHANGED, PO_UPDATED, EventBus
from .models import PurchaseOrder
from .schemas import LineItem, PurchaseOrderOut, dump_line_items, sum_line_totals
from .status import POStatus
from .store import RecordStore

logger = logging.getLogger(__name__)


def serialize_po(po: PurchaseOrder) -> Dict[str, Any]:
    """JSON-ready representation used as the event payload."""
    return PurchaseOrderOut.model_validate(po).model_dump(mode="json", by_alias=True, exclude_none=True)


class PurchaseOrderService:
    def __init__(self, store: RecordStore, bus: EventBus, activity: Optional[ActivityLogger] = None) -> None:
        self.store = store
        self.bus = bus
        self.activity = activity or ActivityLogger(store)

    def list(self) -> List[PurchaseOrder]:
        return self.store.find_many(PurchaseOrder, order_by="-created_at", include=("activity_logs",))

    def get(self, po_id: str) -> PurchaseOrder:
        po = self.store.find_by_id(PurchaseOrder, po_id, include=("activity_logs",))
        if po is None:
            raise NotFound("Purchase order not found")
        return po

    def create(
        self,
        vendor: str,
        items: List[Union[LineItem, Dict[str, Any]]],
        status: Union[str, POStatus] = POStatus.PENDING,
    ) -> PurchaseOrder:
        parsed = [li if isinstance(li, LineItem) else LineItem.model_validate(li) for li in items]
        with self.store.transaction() as tx:
            po = tx.create(
                PurchaseOrder,
                vendor=vendor,
                items=dump_line_items(parsed),
                total=sum_line_totals(parsed),
                status=POStatus(status),
            )
            self.activity.with_store(tx).log_created(po)
        logger.info("Created purchase order %s for %s", po.id, vendor)
        self.bus.publish(PO_CREATED, serialize_po(po))
        return po

    def update(
        self,
        po_id: str,
        vendor: Optional[str] = None,
        items: Optional[List[Union[LineItem, Dict[str, Any]]]] = None,
        status: Union[str, POStatus, None] = None,
    ) -> PurchaseOrder:
        """Patch a purchase order.

        Status may be set to any legal value here (manual correction); only
        an actual change of status is logged and announced as such.
        """
        current = self.store.find_by_id(PurchaseOrder, po_id)
        if current is None:
            raise NotFound("Purchase order not found")
        patch: Dict[str, Any] = {}
        if vendor is not None:
            patch["vendor"] = vendor
        if items is not None:
            parsed = [li if isinstance(li, LineItem) else LineItem.model_validate(li) for li in items]
            patch["items"] = dump_line_items(parsed)
            patch["total"] = sum_line_totals(parsed)
        new_status = POStatus(status) if status is not None else None
        status_changed = new_status is not None and new_status.value != current.status
        if status_changed:
            patch["status"] = new_status

        with self.store.transaction() as tx:
            updated = tx.update(PurchaseOrder, po_id, **patch)
            if status_changed:
                self.activity.with_store(tx).log_status_change(updated, current.status, new_status)

        if status_changed:
            logger.info("Purchase order %s moved %s -> %s", po_id, current.status, new_status.value)
            self.bus.publish(
                PO_STATUS_CHANGED,
                {"purchaseOrder": serialize_po(updated), "from": current.status, "to": new_status.value},
            )
        else:
            self.bus.publish(PO_UPDATED, serialize_po(updated))
        return updated
