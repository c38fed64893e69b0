"""Aggregates for the live dashboard."""

from __future__ import annotations

import datetime as _dt
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .activity import ActivityLogger
from .models import AutomationRun, Invoice, PurchaseOrder
from .schemas import ActivityLogOut, AutomationRunWithInvoice, InvoiceOut, PurchaseOrderOut
from .status import InvoiceStatus, POStatus, RunStatus
from .store import RecordStore
from .utils import round_money, utcnow

CHART_DAYS = 7


def _by_status(records, statuses) -> Dict[str, int]:
    counts = {status.value: 0 for status in statuses}
    for record in records:
        if record.status in counts:
            counts[record.status] += 1
    return counts


def _total_value(records) -> float:
    return float(round_money(sum((Decimal(r.total) for r in records), Decimal("0"))))


def activity_chart(
    purchase_orders: List[PurchaseOrder],
    invoices: List[Invoice],
    now: _dt.datetime,
    days: int = CHART_DAYS,
) -> List[Dict[str, Any]]:
    """Records created per day over the last ``days`` days, oldest first."""
    buckets: Dict[_dt.date, Dict[str, int]] = {}
    for offset in range(days - 1, -1, -1):
        buckets[(now - _dt.timedelta(days=offset)).date()] = {"pos": 0, "invoices": 0}
    for po in purchase_orders:
        bucket = buckets.get(po.created_at.date())
        if bucket is not None:
            bucket["pos"] += 1
    for invoice in invoices:
        bucket = buckets.get(invoice.created_at.date())
        if bucket is not None:
            bucket["invoices"] += 1
    return [{"date": day.strftime("%b %d"), **counts} for day, counts in buckets.items()]


def dashboard_stats(store: RecordStore, now: Optional[_dt.datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    purchase_orders = store.find_many(PurchaseOrder, order_by="-created_at")
    invoices = store.find_many(Invoice, order_by="-created_at")
    runs = store.find_many(AutomationRun, order_by="-started_at")
    recent_logs = ActivityLogger(store).recent(limit=10)
    failed_runs = store.find_many(
        AutomationRun,
        where={"status": RunStatus.FAILED},
        order_by="-started_at",
        take=10,
        include=("invoice",),
    )

    successful = sum(1 for r in runs if r.status == RunStatus.SUCCESS.value)
    failed = sum(1 for r in runs if r.status == RunStatus.FAILED.value)
    failed_run_invoices = {r.invoice_id for r in failed_runs}
    # failed invoices with no failed run on record, e.g. set by hand
    orphan_failures = [
        {"id": inv.id, "vendor": inv.vendor, "total": float(inv.total), "created_at": inv.created_at.isoformat()}
        for inv in invoices
        if inv.status == InvoiceStatus.FAILED.value and inv.id not in failed_run_invoices
    ][:5]

    def dump(schema, record):
        return schema.model_validate(record).model_dump(mode="json", by_alias=True)

    return {
        "purchase_orders": {
            "total": len(purchase_orders),
            "by_status": _by_status(purchase_orders, POStatus),
            "total_value": _total_value(purchase_orders),
            "recent_activity": [dump(PurchaseOrderOut, po) for po in purchase_orders[:5]],
        },
        "invoices": {
            "total": len(invoices),
            "by_status": _by_status(invoices, InvoiceStatus),
            "total_value": _total_value(invoices),
            "recent": [dump(InvoiceOut, inv) for inv in invoices[:5]],
        },
        "automation": {
            "total_runs": len(runs),
            "successful": successful,
            "failed": failed,
            "success_rate": round(successful / len(runs) * 100) if runs else 0,
            "recent_runs": [dump(AutomationRunWithInvoice, run) for run in runs[:5]],
        },
        "activity_chart_data": activity_chart(purchase_orders, invoices, now),
        "recent_logs": [dump(ActivityLogOut, log) for log in recent_logs],
        "recent_failures": {
            "automation_runs": [dump(AutomationRunWithInvoice, run) for run in failed_runs],
            "invoices": orphan_failures,
        },
    }
