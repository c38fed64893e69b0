"""Invoice records: listing, creation and manual edits."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from .errors import NotFound
from .models import Invoice
from .schemas import LineItem, dump_line_items, sum_line_totals
from .status import InvoiceStatus
from .store import RecordStore

_UNSET: Any = object()


class InvoiceService:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def list(self) -> List[Invoice]:
        return self.store.find_many(Invoice, order_by="-created_at", include=("automation_runs",))

    def get(self, invoice_id: str) -> Invoice:
        invoice = self.store.find_by_id(Invoice, invoice_id, include=("automation_runs",))
        if invoice is None:
            raise NotFound("Invoice not found")
        return invoice

    def create(
        self,
        vendor: str,
        line_items: List[Union[LineItem, Dict[str, Any]]],
        status: Union[str, InvoiceStatus] = InvoiceStatus.UNPROCESSED,
        linked_po_id: Optional[str] = None,
        **extra: Any,
    ) -> Invoice:
        parsed = [li if isinstance(li, LineItem) else LineItem.model_validate(li) for li in line_items]
        return self.store.create(
            Invoice,
            vendor=vendor,
            line_items=dump_line_items(parsed),
            total=sum_line_totals(parsed),
            status=InvoiceStatus(status),
            linked_po_id=linked_po_id,
            **extra,
        )

    def update(
        self,
        invoice_id: str,
        status: Union[str, InvoiceStatus, None] = None,
        linked_po_id: Optional[str] = _UNSET,
    ) -> Invoice:
        """Manual edit of status and/or the PO link.

        This bypasses the automation engine and is meant for corrections.
        """
        patch: Dict[str, Any] = {}
        if status is not None:
            patch["status"] = InvoiceStatus(status)
        if linked_po_id is not _UNSET:
            patch["linked_po_id"] = linked_po_id
        return self.store.update(Invoice, invoice_id, **patch)
