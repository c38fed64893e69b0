"""
Demo database seeding.

Wipes the store and recreates a week of history: purchase orders at mixed
statuses with a consistent activity trail, and invoices of which the first
few are already automated (processed, linked, with a successful run) and
the rest are unprocessed or failed.
"""

from __future__ import annotations

import datetime as _dt
import logging
import random
from typing import Dict, Optional

from .activity import ActivityLogger
from .generators import VENDORS, generate_line_items
from .models import AutomationRun, Invoice, PurchaseOrder
from .schemas import dump_line_items, load_line_items, sum_line_totals
from .status import PO_FLOW, InvoiceStatus, RunStatus
from .store import RecordStore
from .utils import utcnow

logger = logging.getLogger(__name__)

SEED_FAILURE = "Vendor not found in approved vendor list"


def seed_database(
    store: RecordStore,
    rng: Optional[random.Random] = None,
    po_count: int = 15,
    invoice_count: int = 12,
    processed_count: int = 6,
    now: Optional[_dt.datetime] = None,
) -> Dict[str, int]:
    rng = rng or random.Random()
    now = now or utcnow()
    store.reset()

    with store.transaction() as tx:
        activity = ActivityLogger(tx)
        orders = []
        for _ in range(po_count):
            items = generate_line_items(rng=rng, count=rng.randint(1, 4), max_quantity=30, price_range=(10.0, 160.0))
            status = rng.choice(PO_FLOW)
            # leave room for the replayed steps so no entry lands after `now`
            created_at = now - _dt.timedelta(days=rng.randint(0, 7), hours=rng.randint(len(PO_FLOW), 12))
            steps = PO_FLOW.index(status)
            po = tx.create(
                PurchaseOrder,
                vendor=rng.choice(VENDORS[:5]),
                items=dump_line_items(items),
                total=sum_line_totals(items),
                status=status,
                created_at=created_at,
                updated_at=created_at + _dt.timedelta(hours=steps),
            )
            activity.log_created(po, timestamp=created_at)
            # replay the status history one hour apart
            for step in range(1, steps + 1):
                activity.log_status_change(
                    po,
                    PO_FLOW[step - 1],
                    PO_FLOW[step],
                    timestamp=created_at + _dt.timedelta(hours=step),
                )
            orders.append(po)

        counts = {"purchase_orders": len(orders), "invoices": 0, "automation_runs": 0}
        for i in range(invoice_count):
            linked = orders[i] if i < processed_count and i < len(orders) else None
            if linked is not None:
                # the invoice arrived shortly before the PO it was turned into
                created_at = linked.created_at - _dt.timedelta(minutes=rng.randint(1, 30))
                items = load_line_items(linked.items)
                status = InvoiceStatus.PROCESSED
            else:
                items = generate_line_items(rng=rng, count=rng.randint(1, 4), max_quantity=30, price_range=(10.0, 160.0))
                status = rng.choice([InvoiceStatus.UNPROCESSED, InvoiceStatus.UNPROCESSED, InvoiceStatus.FAILED])
                created_at = now - _dt.timedelta(days=rng.randint(0, 10), hours=rng.randint(1, 12))
            invoice = tx.create(
                Invoice,
                vendor=linked.vendor if linked is not None else rng.choice(VENDORS[:5]),
                line_items=dump_line_items(items),
                total=sum_line_totals(items),
                status=status,
                linked_po_id=linked.id if linked is not None else None,
                created_at=created_at,
                updated_at=linked.created_at if linked is not None else created_at,
            )
            counts["invoices"] += 1

            if status is InvoiceStatus.PROCESSED:
                started_at = linked.created_at
                tx.create(
                    AutomationRun,
                    invoice_id=invoice.id,
                    po_id=linked.id,
                    status=RunStatus.SUCCESS,
                    details={"vendor": invoice.vendor, "total": float(invoice.total), "itemCount": len(items)},
                    started_at=started_at,
                    completed_at=started_at + _dt.timedelta(seconds=rng.randint(1, 5)),
                )
                counts["automation_runs"] += 1
            elif status is InvoiceStatus.FAILED:
                started_at = created_at + _dt.timedelta(minutes=rng.randint(1, 30))
                tx.create(
                    AutomationRun,
                    invoice_id=invoice.id,
                    status=RunStatus.FAILED,
                    details={"error": SEED_FAILURE},
                    started_at=started_at,
                    completed_at=started_at + _dt.timedelta(seconds=2),
                )
                counts["automation_runs"] += 1

    logger.info("Seeded %(purchase_orders)d purchase orders, %(invoices)d invoices", counts)
    return counts
