"""
Invoice → purchase order automation.

``AutomationEngine.generate_purchase_order_from_invoice`` converts one
invoice into one purchase order and records the attempt as an
``AutomationRun``.  The sequence is:

1. Check preconditions (``NotFound`` / ``Conflict``; nothing written yet).
2. Move the invoice to ``processing`` with a conditional update, so a
   concurrent attempt on the same invoice loses with ``Conflict``.  This is
   committed straight away and is visible to other readers while the
   derivation runs.
3. Open the run record (``processing``), also committed on its own.
4. In one transaction: parse the line items, check the vendor, create the
   PO, append the ``created_from_invoice`` log entry, mark the invoice
   ``processed`` with the PO link and close the run as ``success``.
5. Publish ``po:created``.

If step 4 raises, its transaction is rolled back (no PO, no log entry) and
the invoice and run are both moved to ``failed``, with the error stored on
the run.  ``AutomationFailed`` is then raised with the run id.

Known gap: a process crash between steps 2 and 4 leaves the invoice in
``processing`` with an open run.  Such runs are only closed by an explicit
``reap_orphaned_runs`` call.
"""

from __future__ import annotations

import datetime as _dt
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .activity import ActivityLogger
from .errors import AutomationFailed, Conflict, NotFound
from .events import PO_CREATED, EventBus
from .models import AutomationRun, Invoice, PurchaseOrder
from .purchase_orders import serialize_po
from .schemas import RunSummary, dump_line_items, load_line_items
from .status import InvoiceStatus, POStatus, RunStatus, can_generate_po
from .store import RecordStore
from .utils import duration_ms, utcnow

logger = logging.getLogger(__name__)

VENDOR_NOT_APPROVED = "Vendor not found in approved vendor list"
ORPHANED_RUN = "Automation run was interrupted before completion"


@dataclass
class AutomationResult:
    invoice: Invoice
    purchase_order: PurchaseOrder
    run: RunSummary


class AutomationEngine:
    def __init__(
        self,
        store: RecordStore,
        bus: EventBus,
        approved_vendors: Optional[Iterable[str]] = None,
    ) -> None:
        self.store = store
        self.bus = bus
        self.activity = ActivityLogger(store)
        self.approved_vendors = frozenset(v.strip().lower() for v in (approved_vendors or ()) if v.strip())

    def check_vendor(self, vendor: str) -> None:
        """Stand-in for real vendor validation; an empty list approves everyone."""
        if self.approved_vendors and vendor.strip().lower() not in self.approved_vendors:
            raise AutomationFailed(VENDOR_NOT_APPROVED)

    def generate_purchase_order_from_invoice(self, invoice_id: str) -> AutomationResult:
        invoice = self.store.find_by_id(Invoice, invoice_id)
        if invoice is None:
            raise NotFound("Invoice not found")
        reason = can_generate_po(invoice.status, invoice.linked_po_id)
        if reason:
            raise Conflict(reason)

        claimed = self.store.update_where(
            Invoice,
            invoice_id,
            expected={"status": invoice.status},
            status=InvoiceStatus.PROCESSING,
        )
        if claimed is None:
            raise Conflict("Invoice was modified by another request; automation not started")

        started_at = utcnow()
        run = self.store.create(
            AutomationRun,
            invoice_id=invoice_id,
            status=RunStatus.PROCESSING,
            started_at=started_at,
        )
        logger.info("Automation run %s started for invoice %s", run.id, invoice_id)

        try:
            updated_invoice, purchase_order, completed_at = self._derive(claimed, run)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            self._record_failure(invoice_id, run.id, message)
            logger.error("Automation run %s for invoice %s failed: %s", run.id, invoice_id, message)
            raise AutomationFailed(message, run_id=run.id) from exc

        logger.info(
            "Automation run %s created purchase order %s from invoice %s",
            run.id,
            purchase_order.id,
            invoice_id,
        )
        self.bus.publish(PO_CREATED, serialize_po(purchase_order))
        return AutomationResult(
            invoice=updated_invoice,
            purchase_order=purchase_order,
            run=RunSummary(
                id=run.id,
                status=RunStatus.SUCCESS.value,
                started_at=started_at,
                completed_at=completed_at,
                duration=duration_ms(started_at, completed_at),
            ),
        )

    def _derive(self, invoice: Invoice, run: AutomationRun):
        with self.store.transaction() as tx:
            line_items = load_line_items(invoice.line_items)
            self.check_vendor(invoice.vendor)
            purchase_order = tx.create(
                PurchaseOrder,
                vendor=invoice.vendor,
                items=dump_line_items(line_items),
                total=invoice.total,
                status=POStatus.PENDING,
            )
            self.activity.with_store(tx).log_created_from_invoice(purchase_order, invoice.id)
            completed_at = utcnow()
            updated_invoice = tx.update(
                Invoice,
                invoice.id,
                status=InvoiceStatus.PROCESSED,
                linked_po_id=purchase_order.id,
            )
            tx.update(
                AutomationRun,
                run.id,
                status=RunStatus.SUCCESS,
                po_id=purchase_order.id,
                completed_at=completed_at,
                details={
                    "vendor": purchase_order.vendor,
                    "total": float(purchase_order.total),
                    "itemCount": len(line_items),
                },
            )
        return updated_invoice, purchase_order, completed_at

    def _record_failure(self, invoice_id: str, run_id: str, message: str) -> None:
        # linked_po_id is left as it was
        with self.store.transaction() as tx:
            tx.update(Invoice, invoice_id, status=InvoiceStatus.FAILED)
            tx.update(
                AutomationRun,
                run_id,
                status=RunStatus.FAILED,
                completed_at=utcnow(),
                details={"error": message},
            )

    # --- history and recovery -------------------------------------------

    def runs(self, invoice_id: Optional[str] = None, include_invoice: bool = False) -> List[AutomationRun]:
        return self.store.find_many(
            AutomationRun,
            where={"invoice_id": invoice_id} if invoice_id else None,
            order_by="-started_at",
            include=("invoice",) if include_invoice else (),
        )

    def reap_orphaned_runs(self, older_than: _dt.timedelta, now: Optional[_dt.datetime] = None) -> List[str]:
        """Close runs stuck in ``processing`` for longer than ``older_than``.

        Each orphan is failed together with its invoice, so the invoice can
        be retried.  Returns the ids of the runs that were closed.
        """
        cutoff = (now or utcnow()) - older_than
        stale = self.store.find_many(
            AutomationRun,
            where=[AutomationRun.status == RunStatus.PROCESSING.value, AutomationRun.started_at < cutoff],
        )
        reaped = []
        for run in stale:
            closed = self.store.update_where(
                AutomationRun,
                run.id,
                expected={"status": RunStatus.PROCESSING},
                status=RunStatus.FAILED,
                completed_at=utcnow(),
                details={"error": ORPHANED_RUN},
            )
            if closed is None:
                continue
            self.store.update_where(
                Invoice,
                run.invoice_id,
                expected={"status": InvoiceStatus.PROCESSING},
                status=InvoiceStatus.FAILED,
            )
            logger.warning("Reaped orphaned automation run %s for invoice %s", run.id, run.invoice_id)
            reaped.append(run.id)
        return reaped
