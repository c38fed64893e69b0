"""
Database models for PO Autopilot.

These SQLAlchemy models define the schema used for persisting purchase
orders, invoices, the activity log and automation runs.  Migrations are
intentionally omitted; the schema is initialised via SQLAlchemy’s metadata
create functions (see ``store.create_store``).

Line items are kept as JSON text in the ``{name, quantity, unitPrice,
total}`` shape and parsed through ``schemas.load_line_items``; detail
payloads use the JSON column type.
"""

import uuid

from sqlalchemy import (
    Column,
    String,
    Text,
    DateTime,
    Numeric,
    ForeignKey,
    JSON,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class PurchaseOrder(Base):
    """A commitment to buy goods from a vendor."""

    __tablename__ = "purchase_orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    vendor = Column(String, nullable=False)
    items = Column(Text, nullable=False, default="[]")
    total = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending, ordered, delivered, received
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    activity_logs = relationship(
        "ActivityLog", back_populates="purchase_order", order_by="ActivityLog.timestamp.desc()"
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} vendor={self.vendor} status={self.status}>"


class Invoice(Base):
    """A vendor invoice that may be converted into a purchase order."""

    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=_uuid)
    vendor = Column(String, nullable=False)
    line_items = Column(Text, nullable=False, default="[]")
    total = Column(Numeric(10, 2), nullable=False)
    status = Column(
        String,
        nullable=False,
        default="unprocessed",  # possible values: unprocessed, processing, processed, failed
    )
    linked_po_id = Column(String(36), ForeignKey("purchase_orders.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    automation_runs = relationship(
        "AutomationRun", back_populates="invoice", order_by="AutomationRun.started_at.desc()"
    )
    linked_po = relationship("PurchaseOrder")

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} vendor={self.vendor} status={self.status}>"


class ActivityLog(Base):
    """Append-only audit trail entry."""

    __tablename__ = "activity_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    entity_type = Column(String, nullable=False, default="purchase_order")
    entity_id = Column(String(36), nullable=False)
    action = Column(String, nullable=False)  # created, status_changed, created_from_invoice
    details = Column(JSON, nullable=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False)
    purchase_order_id = Column(String(36), ForeignKey("purchase_orders.id"), nullable=True)

    purchase_order = relationship("PurchaseOrder", back_populates="activity_logs")

    def __repr__(self) -> str:
        return f"<ActivityLog id={self.id} entity={self.entity_type}/{self.entity_id} action={self.action}>"


class AutomationRun(Base):
    """One attempt at deriving a purchase order from an invoice."""

    __tablename__ = "automation_runs"

    id = Column(String(36), primary_key=True, default=_uuid)
    invoice_id = Column(String(36), ForeignKey("invoices.id"), nullable=False)
    po_id = Column(String(36), ForeignKey("purchase_orders.id"), nullable=True)
    status = Column(String, nullable=False, default="processing")  # processing, success, failed
    details = Column(JSON, nullable=True)
    started_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    invoice = relationship("Invoice", back_populates="automation_runs")

    def __repr__(self) -> str:
        return f"<AutomationRun id={self.id} invoice_id={self.invoice_id} status={self.status}>"
