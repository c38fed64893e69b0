from decimal import Decimal

import pytest

from po_autopilot.activity import ActivityLogger
from po_autopilot.errors import NotFound
from po_autopilot.events import PO_CREATED, PO_STATUS_CHANGED, PO_UPDATED

from conftest import ACME_LINE_ITEMS


def test_create_logs_and_announces(purchase_orders, store, received):
    po = purchase_orders.create("Acme Supplies Co.", ACME_LINE_ITEMS)

    assert po.status == "pending"
    assert po.total == Decimal("125.00")
    logs = ActivityLogger(store).for_purchase_order(po.id)
    assert [(log.action, log.details) for log in logs] == [
        ("created", {"vendor": "Acme Supplies Co.", "total": 125.0})
    ]
    assert [topic for topic, _ in received] == [PO_CREATED]
    assert received[0][1]["id"] == po.id
    assert received[0][1]["items"][0]["unitPrice"] == 12.5


def test_status_change_writes_exactly_one_log(purchase_orders, store, received):
    po = purchase_orders.create("Acme Supplies Co.", ACME_LINE_ITEMS)
    received.clear()

    purchase_orders.update(po.id, status="ordered")

    logs = ActivityLogger(store).for_purchase_order(po.id)
    changes = [log for log in logs if log.action == "status_changed"]
    assert len(changes) == 1
    assert changes[0].details == {"from": "pending", "to": "ordered"}
    topic, payload = received[0]
    assert topic == PO_STATUS_CHANGED
    assert payload["from"] == "pending"
    assert payload["to"] == "ordered"
    assert payload["purchaseOrder"]["status"] == "ordered"


def test_same_status_is_not_a_change(purchase_orders, store, received):
    po = purchase_orders.create("Acme Supplies Co.", ACME_LINE_ITEMS)
    received.clear()

    purchase_orders.update(po.id, status="pending", vendor="Acme Supplies Company")

    assert [log.action for log in ActivityLogger(store).for_purchase_order(po.id)] == ["created"]
    assert [topic for topic, _ in received] == [PO_UPDATED]
    assert purchase_orders.get(po.id).vendor == "Acme Supplies Company"


def test_new_items_recompute_total(purchase_orders):
    po = purchase_orders.create("Acme Supplies Co.", ACME_LINE_ITEMS)
    updated = purchase_orders.update(po.id, items=[{"name": "Staplers", "quantity": 3, "unitPrice": 7.1}])
    assert updated.total == Decimal("21.30")


def test_manual_update_may_skip_ahead(purchase_orders):
    po = purchase_orders.create("Acme Supplies Co.", ACME_LINE_ITEMS)
    assert purchase_orders.update(po.id, status="received").status == "received"


def test_unknown_purchase_order(purchase_orders):
    with pytest.raises(NotFound):
        purchase_orders.get("missing")
    with pytest.raises(NotFound):
        purchase_orders.update("missing", status="ordered")


def test_list_includes_activity_newest_first(purchase_orders):
    first = purchase_orders.create("Acme Supplies Co.", ACME_LINE_ITEMS)
    purchase_orders.update(first.id, status="ordered")
    listed = {po.id: po for po in purchase_orders.list()}
    assert [log.action for log in listed[first.id].activity_logs] == ["status_changed", "created"]
