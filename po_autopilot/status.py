"""
Status model for purchase orders and invoices.

Pure functions only; nothing here touches the record store.  Purchase orders
move strictly forward through ``PO_FLOW``.  Invoices are not linear: both
``unprocessed`` and ``failed`` may enter automation, ``processing`` is owned
by the automation engine, and ``failed`` can be retried.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union


class POStatus(str, Enum):
    PENDING = "pending"
    ORDERED = "ordered"
    DELIVERED = "delivered"
    RECEIVED = "received"


class InvoiceStatus(str, Enum):
    UNPROCESSED = "unprocessed"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class RunStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class Action(str, Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    CREATED_FROM_INVOICE = "created_from_invoice"


PO_FLOW = (POStatus.PENDING, POStatus.ORDERED, POStatus.DELIVERED, POStatus.RECEIVED)

# Statuses from which the engine may move an invoice to "processing".
# A processed invoice is only blocked once it carries a linked PO.
AUTOMATABLE_STATUSES = frozenset(
    {InvoiceStatus.UNPROCESSED, InvoiceStatus.FAILED, InvoiceStatus.PROCESSED}
)


def _coerce_po(value: Union[str, POStatus, None]) -> Optional[POStatus]:
    try:
        return POStatus(value)
    except ValueError:
        return None


def next_status(current: Union[str, POStatus, None]) -> Optional[POStatus]:
    """Return the immediate successor of ``current`` or ``None``.

    ``None`` is returned for the terminal state and for unrecognised values.
    """
    status = _coerce_po(current)
    if status is None:
        return None
    index = PO_FLOW.index(status)
    if index == len(PO_FLOW) - 1:
        return None
    return PO_FLOW[index + 1]


def is_terminal(current: Union[str, POStatus]) -> bool:
    return _coerce_po(current) is POStatus.RECEIVED


def can_generate_po(status: Union[str, InvoiceStatus], linked_po_id: Optional[str]) -> Optional[str]:
    """Return why an invoice may not enter automation, or ``None`` if it may."""
    try:
        status = InvoiceStatus(status)
    except ValueError:
        return f"Unknown invoice status {status!r}"
    if status is InvoiceStatus.PROCESSED and linked_po_id:
        return "Invoice already has a linked purchase order"
    if status is InvoiceStatus.PROCESSING:
        return "Automation is already in progress for this invoice"
    if status not in AUTOMATABLE_STATUSES:
        return f"Invoice in status {status.value!r} cannot be automated"
    return None
