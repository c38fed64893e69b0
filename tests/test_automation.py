"""
Tests for the invoice → purchase order automation.

Each test builds the engine on the in-memory store fixture and inspects the
resulting rows directly, so the assertions cover what was persisted and not
only what was returned.
"""

import datetime as dt
from decimal import Decimal

import pytest

from po_autopilot.activity import ActivityLogger
from po_autopilot.automation import ORPHANED_RUN, VENDOR_NOT_APPROVED, AutomationEngine
from po_autopilot.errors import AutomationFailed, Conflict, NotFound
from po_autopilot.events import PO_CREATED
from po_autopilot.models import ActivityLog, AutomationRun, Invoice, PurchaseOrder

from conftest import ACME_LINE_ITEMS


@pytest.fixture
def engine(store, bus):
    return AutomationEngine(store, bus)


def _row_counts(store):
    return {model.__name__: len(store.find_many(model)) for model in (PurchaseOrder, Invoice, AutomationRun, ActivityLog)}


def test_acme_invoice_becomes_pending_po(engine, store, acme_invoice, received):
    result = engine.generate_purchase_order_from_invoice(acme_invoice.id)

    po = store.find_by_id(PurchaseOrder, result.purchase_order.id)
    assert po.vendor == "Acme Supplies Co."
    assert po.status == "pending"
    assert po.total == Decimal("125.00")
    assert result.purchase_order.items == acme_invoice.line_items

    invoice = store.find_by_id(Invoice, acme_invoice.id)
    assert invoice.status == "processed"
    assert invoice.linked_po_id == po.id

    run = store.find_by_id(AutomationRun, result.run.id)
    assert run.status == "success"
    assert run.po_id == po.id
    assert run.completed_at is not None
    assert run.details == {"vendor": "Acme Supplies Co.", "total": 125.0, "itemCount": 1}
    assert result.run.duration >= 0

    logs = ActivityLogger(store).for_purchase_order(po.id)
    assert [(log.action, log.details) for log in logs] == [
        ("created_from_invoice", {"invoiceId": acme_invoice.id, "vendor": "Acme Supplies Co.", "total": 125.0})
    ]

    assert [topic for topic, _ in received] == [PO_CREATED]
    assert received[0][1]["id"] == po.id


def test_malformed_line_items_fail_the_run(engine, store, received):
    broken = store.create(Invoice, vendor="Acme Supplies Co.", line_items="{not json", total=Decimal("10.00"))

    with pytest.raises(AutomationFailed) as excinfo:
        engine.generate_purchase_order_from_invoice(broken.id)

    run = store.find_by_id(AutomationRun, excinfo.value.run_id)
    assert run.status == "failed"
    assert run.completed_at is not None
    assert "not valid JSON" in run.details["error"]
    assert store.find_by_id(Invoice, broken.id).status == "failed"
    assert store.find_many(PurchaseOrder) == []
    assert store.find_many(ActivityLog) == []
    assert received == []


def test_processed_invoice_conflicts_without_writes(engine, store, acme_invoice):
    engine.generate_purchase_order_from_invoice(acme_invoice.id)
    before = _row_counts(store)

    with pytest.raises(Conflict, match="already has a linked purchase order"):
        engine.generate_purchase_order_from_invoice(acme_invoice.id)

    assert _row_counts(store) == before


def test_missing_invoice(engine, store):
    with pytest.raises(NotFound, match="Invoice not found"):
        engine.generate_purchase_order_from_invoice("missing")
    assert store.find_many(AutomationRun) == []


def test_processing_invoice_conflicts(engine, store, acme_invoice):
    store.update(Invoice, acme_invoice.id, status="processing")
    with pytest.raises(Conflict, match="in progress"):
        engine.generate_purchase_order_from_invoice(acme_invoice.id)
    assert store.find_many(AutomationRun) == []


def test_concurrent_claim_loses(engine, store, acme_invoice, monkeypatch):
    # another request claims the invoice between our read and our update
    original = store.find_by_id

    def find_then_race(model, id, include=()):
        found = original(model, id, include=include)
        if model is Invoice:
            store.update(Invoice, id, status="processing")
        return found

    monkeypatch.setattr(store, "find_by_id", find_then_race)

    with pytest.raises(Conflict, match="modified by another request"):
        engine.generate_purchase_order_from_invoice(acme_invoice.id)
    assert store.find_many(AutomationRun) == []
    assert store.find_many(PurchaseOrder) == []


def test_unapproved_vendor_fails(store, bus, acme_invoice):
    engine = AutomationEngine(store, bus, approved_vendors=["Global Parts Inc."])

    with pytest.raises(AutomationFailed) as excinfo:
        engine.generate_purchase_order_from_invoice(acme_invoice.id)

    assert excinfo.value.message == VENDOR_NOT_APPROVED
    run = store.find_by_id(AutomationRun, excinfo.value.run_id)
    assert run.details == {"error": VENDOR_NOT_APPROVED}
    assert store.find_many(PurchaseOrder) == []


def test_vendor_check_ignores_case_and_whitespace(store, bus, acme_invoice):
    engine = AutomationEngine(store, bus, approved_vendors=["  acme supplies co. ", ""])
    result = engine.generate_purchase_order_from_invoice(acme_invoice.id)
    assert result.invoice.status == "processed"


def test_failure_after_po_insert_rolls_back(engine, store, acme_invoice, monkeypatch):
    def explode(self, po, invoice_id):
        raise RuntimeError("activity log unavailable")

    monkeypatch.setattr(ActivityLogger, "log_created_from_invoice", explode)

    with pytest.raises(AutomationFailed, match="activity log unavailable"):
        engine.generate_purchase_order_from_invoice(acme_invoice.id)

    assert store.find_many(PurchaseOrder) == []
    invoice = store.find_by_id(Invoice, acme_invoice.id)
    assert invoice.status == "failed"
    assert invoice.linked_po_id is None


def test_retry_after_failure_keeps_history(store, bus, acme_invoice):
    strict = AutomationEngine(store, bus, approved_vendors=["Global Parts Inc."])
    with pytest.raises(AutomationFailed) as excinfo:
        strict.generate_purchase_order_from_invoice(acme_invoice.id)
    failed_run = store.find_by_id(AutomationRun, excinfo.value.run_id)

    result = AutomationEngine(store, bus).generate_purchase_order_from_invoice(acme_invoice.id)

    runs = AutomationEngine(store, bus).runs(invoice_id=acme_invoice.id)
    assert [run.id for run in runs] == [result.run.id, failed_run.id]
    earlier = store.find_by_id(AutomationRun, failed_run.id)
    assert earlier.status == "failed"
    assert earlier.completed_at == failed_run.completed_at
    assert earlier.details == failed_run.details


def test_failure_leaves_stale_link_in_place(store, bus, purchase_orders):
    old_po = purchase_orders.create("Acme Supplies Co.", ACME_LINE_ITEMS)
    invoice = store.create(
        Invoice,
        vendor="Acme Supplies Co.",
        line_items="[]",
        total=Decimal("0.00"),
        status="failed",
        linked_po_id=old_po.id,
    )

    with pytest.raises(AutomationFailed):
        AutomationEngine(store, bus, approved_vendors=["Nobody"]).generate_purchase_order_from_invoice(invoice.id)

    assert store.find_by_id(Invoice, invoice.id).linked_po_id == old_po.id


def test_runs_include_invoice_summary(engine, store, acme_invoice):
    engine.generate_purchase_order_from_invoice(acme_invoice.id)
    runs = engine.runs(include_invoice=True)
    assert len(runs) == 1
    assert runs[0].invoice.vendor == "Acme Supplies Co."


def test_reap_orphaned_runs(engine, store, acme_invoice):
    started = dt.datetime(2025, 7, 24, 9, 0)
    store.update(Invoice, acme_invoice.id, status="processing")
    orphan = store.create(AutomationRun, invoice_id=acme_invoice.id, status="processing", started_at=started)

    assert engine.reap_orphaned_runs(dt.timedelta(minutes=5), now=started + dt.timedelta(minutes=1)) == []

    reaped = engine.reap_orphaned_runs(dt.timedelta(minutes=5), now=started + dt.timedelta(hours=1))

    assert reaped == [orphan.id]
    run = store.find_by_id(AutomationRun, orphan.id)
    assert run.status == "failed"
    assert run.details == {"error": ORPHANED_RUN}
    assert store.find_by_id(Invoice, acme_invoice.id).status == "failed"

    # the invoice can be retried afterwards
    result = engine.generate_purchase_order_from_invoice(acme_invoice.id)
    assert result.invoice.status == "processed"
