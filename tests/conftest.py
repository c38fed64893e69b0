"""
Pytest configuration for PO Autopilot tests.

This conftest ensures the repository root is added to ``sys.path`` so that
the ``po_autopilot`` package can be imported by test files without an
editable install, and provides fixtures for an isolated in-memory record
store, an event bus and an API client wired to both.
"""

import os
import random
import sys
from decimal import Decimal

import pytest

# Compute the repository root relative to this file (tests directory is one level deep)
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))

# Prepend the root directory to sys.path if it's not already present
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from po_autopilot.events import EventBus  # noqa: E402
from po_autopilot.invoices import InvoiceService  # noqa: E402
from po_autopilot.purchase_orders import PurchaseOrderService  # noqa: E402
from po_autopilot.store import create_store  # noqa: E402

ACME_LINE_ITEMS = [{"name": "Paper Reams", "quantity": 10, "unitPrice": 12.50, "total": 125.00}]


@pytest.fixture
def store():
    # a fresh in-memory database per test
    return create_store("sqlite://")


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def received(bus):
    """Collect every event published on the bus as (topic, payload)."""
    from po_autopilot.events import PO_TOPICS

    events = []
    for topic in PO_TOPICS:
        bus.subscribe(topic, lambda payload, t=topic: events.append((t, payload)))
    return events


@pytest.fixture
def invoices(store):
    return InvoiceService(store)


@pytest.fixture
def purchase_orders(store, bus):
    return PurchaseOrderService(store, bus)


@pytest.fixture
def acme_invoice(invoices):
    return invoices.create("Acme Supplies Co.", ACME_LINE_ITEMS)


@pytest.fixture
def app(store, bus):
    from po_autopilot.api import create_app
    from po_autopilot.config import get_config

    return create_app(config=get_config("test"), store=store, bus=bus, rng=random.Random(7))


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))
