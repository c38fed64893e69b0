"""
Pydantic schemas for line items and API payloads.

``LineItem`` is the typed form of the JSON text stored on purchase orders and
invoices.  Its ``total`` is always recomputed as ``round(quantity *
unit_price, 2)`` so a stored or submitted total can never drift from the
product.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)
from sqlalchemy import inspect as sa_inspect

from .errors import MalformedData
from .models import Base
from .status import InvoiceStatus, POStatus, RunStatus
from .utils import round_money


class LineItem(BaseModel):
    """One priced product/quantity entry."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    quantity: int = Field(gt=0, strict=True)
    unit_price: Decimal = Field(ge=0, alias="unitPrice")
    total: Decimal = Decimal("0.00")

    @model_validator(mode="after")
    def _compute_total(self) -> "LineItem":
        self.total = round_money(self.quantity * self.unit_price)
        return self

    @field_serializer("unit_price", "total")
    def _as_float(self, value: Decimal) -> float:
        return float(value)


_line_items_adapter = TypeAdapter(List[LineItem])


def load_line_items(raw: Union[str, bytes, list, None]) -> List[LineItem]:
    """Parse stored line-item JSON into ``LineItem`` values.

    Raises ``MalformedData`` when the payload is not valid JSON, is not a
    list, or any entry fails validation.
    """
    if raw is None:
        raise MalformedData("Line items are missing")
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedData(f"Line items are not valid JSON: {exc.msg}") from exc
    if not isinstance(raw, list):
        raise MalformedData("Line items must be a list")
    try:
        return _line_items_adapter.validate_python(raw)
    except ValidationError as exc:
        raise MalformedData(f"Invalid line item: {exc.errors()[0]['msg']}") from exc


def dump_line_items(items: List[Union[LineItem, Dict[str, Any]]]) -> str:
    """Serialise line items to the stored JSON text encoding."""
    validated = [li if isinstance(li, LineItem) else LineItem.model_validate(li) for li in items]
    return json.dumps([li.model_dump(mode="json", by_alias=True) for li in validated])


def sum_line_totals(items: List[LineItem]) -> Decimal:
    return round_money(sum((li.total for li in items), Decimal("0")))


# --- API output ---------------------------------------------------------


class OrmModel(BaseModel):
    """Base for response models built from ORM instances.

    Relationships that were not eagerly loaded are skipped rather than
    lazily fetched from a detached instance.
    """

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _from_orm_instance(cls, data: Any) -> Any:
        if not isinstance(data, Base):
            return data
        state = sa_inspect(data)
        values = {attr.key: getattr(data, attr.key) for attr in state.mapper.column_attrs}
        for rel in state.mapper.relationships:
            if rel.key in cls.model_fields and rel.key not in state.unloaded:
                values[rel.key] = getattr(data, rel.key)
        return values

    @field_serializer("total", check_fields=False)
    def _total_as_float(self, value: Decimal) -> float:
        return float(value)


class ActivityLogOut(OrmModel):
    id: str
    entity_type: str
    entity_id: str
    action: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime
    purchase_order_id: Optional[str] = None


class PurchaseOrderOut(OrmModel):
    id: str
    vendor: str
    items: List[LineItem]
    total: Decimal
    status: POStatus
    created_at: datetime
    updated_at: datetime
    activity_logs: Optional[List[ActivityLogOut]] = None

    @field_validator("items", mode="before")
    @classmethod
    def _parse_items(cls, value: Any) -> Any:
        return load_line_items(value) if isinstance(value, (str, bytes)) else value


class AutomationRunOut(OrmModel):
    id: str
    invoice_id: str
    po_id: Optional[str] = None
    status: RunStatus
    details: Optional[Dict[str, Any]] = None
    started_at: datetime
    completed_at: Optional[datetime] = None


class InvoiceSummary(OrmModel):
    id: str
    vendor: str
    total: Decimal
    status: InvoiceStatus


class AutomationRunWithInvoice(AutomationRunOut):
    invoice: Optional[InvoiceSummary] = None


class InvoiceOut(OrmModel):
    id: str
    vendor: str
    # Legacy rows may hold unparsable text; it is passed through as-is.
    line_items: Union[List[LineItem], str]
    total: Decimal
    status: InvoiceStatus
    linked_po_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    automation_runs: Optional[List[AutomationRunOut]] = None

    @field_validator("line_items", mode="before")
    @classmethod
    def _parse_line_items(cls, value: Any) -> Any:
        if isinstance(value, (str, bytes)):
            try:
                return load_line_items(value)
            except MalformedData:
                return value if isinstance(value, str) else value.decode("utf-8", "replace")
        return value


class RunSummary(BaseModel):
    id: str
    status: RunStatus
    started_at: datetime
    completed_at: datetime
    duration: int  # milliseconds


class GeneratePOResponse(BaseModel):
    invoice: InvoiceOut
    purchase_order: PurchaseOrderOut
    automation_run: RunSummary


class SimulatorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    purchase_order: Optional[PurchaseOrderOut] = None
    from_status: Optional[POStatus] = Field(default=None, alias="from")
    to_status: Optional[POStatus] = Field(default=None, alias="to")


# --- API input ----------------------------------------------------------


class PurchaseOrderCreate(BaseModel):
    vendor: str = Field(min_length=1)
    items: List[LineItem] = Field(min_length=1)
    status: POStatus = POStatus.PENDING


class PurchaseOrderUpdate(BaseModel):
    vendor: Optional[str] = Field(default=None, min_length=1)
    items: Optional[List[LineItem]] = None
    status: Optional[POStatus] = None


class InvoiceCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vendor: str = Field(min_length=1)
    line_items: List[LineItem] = Field(min_length=1, alias="lineItems")
    status: InvoiceStatus = InvoiceStatus.UNPROCESSED
    linked_po_id: Optional[str] = Field(default=None, alias="linkedPOId")


class InvoiceUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[InvoiceStatus] = None
    linked_po_id: Optional[str] = Field(default=None, alias="linkedPOId")
