"""
FastAPI application for PO Autopilot.

Exposes purchase orders, invoices, the invoice → PO automation, the
simulator, dashboard aggregates and a Server-Sent Events feed of PO changes.
The record store, event bus and workflow objects are built once per app in
``create_app`` and kept on ``app.state``.

Run locally with::

    uvicorn po_autopilot.api:create_app --factory --reload
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .automation import AutomationEngine
from .config import Config, get_config
from .dashboard import dashboard_stats
from .errors import AutomationFailed, Conflict, MalformedData, NotFound
from .events import EventBus, EventStream
from .generators import generate_invoice, generate_purchase_order
from .invoices import InvoiceService
from .purchase_orders import PurchaseOrderService
from .schemas import (
    AutomationRunWithInvoice,
    GeneratePOResponse,
    InvoiceCreate,
    InvoiceOut,
    InvoiceUpdate,
    PurchaseOrderCreate,
    PurchaseOrderOut,
    PurchaseOrderUpdate,
    SimulatorResponse,
)
from .simulator import Simulator
from .slack_notify import SlackNotifier
from .store import RecordStore, create_store

logger = logging.getLogger(__name__)

RECENT_PO_LOGS = 5


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def create_app(
    config: Optional[Config] = None,
    store: Optional[RecordStore] = None,
    bus: Optional[EventBus] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    config = config or get_config()
    store = store or create_store(config.DATABASE_URL)
    bus = bus or EventBus()
    rng = rng or random.Random()

    app = FastAPI(title="PO Autopilot", description="Purchase orders, invoices and invoice → PO automation")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.store = store
    app.state.bus = bus
    app.state.rng = rng
    app.state.purchase_orders = PurchaseOrderService(store, bus)
    app.state.invoices = InvoiceService(store)
    app.state.automation = AutomationEngine(store, bus, approved_vendors=config.APPROVED_VENDORS)
    app.state.simulator = Simulator(store, bus, rng=rng)
    app.state.slack = SlackNotifier(config.SLACK_WEBHOOK_URL).attach(bus) if config.SLACK_WEBHOOK_URL else None

    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(Conflict)
    async def _conflict(request: Request, exc: Conflict) -> JSONResponse:
        return _error(409, str(exc))

    @app.exception_handler(MalformedData)
    async def _malformed(request: Request, exc: MalformedData) -> JSONResponse:
        return _error(422, str(exc))

    @app.exception_handler(AutomationFailed)
    async def _automation_failed(request: Request, exc: AutomationFailed) -> JSONResponse:
        return _error(500, "Automation failed", details=exc.message, automation_run_id=exc.run_id)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "healthy"}

    # --- purchase orders -------------------------------------------------

    @app.get("/purchase-orders", response_model=List[PurchaseOrderOut])
    def list_purchase_orders(request: Request):
        results = []
        for po in request.app.state.purchase_orders.list():
            out = PurchaseOrderOut.model_validate(po)
            out.activity_logs = (out.activity_logs or [])[:RECENT_PO_LOGS]
            results.append(out)
        return results

    @app.post("/purchase-orders", response_model=PurchaseOrderOut, status_code=201)
    def create_purchase_order(request: Request, body: Optional[PurchaseOrderCreate] = Body(default=None)):
        data = dict(body) if body is not None else generate_purchase_order(request.app.state.rng)
        po = request.app.state.purchase_orders.create(data["vendor"], data["items"], data["status"])
        return PurchaseOrderOut.model_validate(po)

    # registered before /{po_id} so "stream" is not taken for an id
    @app.get("/purchase-orders/stream")
    async def stream_purchase_orders(request: Request) -> StreamingResponse:
        stream = EventStream(
            request.app.state.bus,
            heartbeat_interval=request.app.state.config.HEARTBEAT_INTERVAL,
            is_disconnected=request.is_disconnected,
        )
        return StreamingResponse(
            stream.sse(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.get("/purchase-orders/{po_id}", response_model=PurchaseOrderOut)
    def get_purchase_order(po_id: str, request: Request):
        return PurchaseOrderOut.model_validate(request.app.state.purchase_orders.get(po_id))

    @app.patch("/purchase-orders/{po_id}", response_model=PurchaseOrderOut)
    def update_purchase_order(po_id: str, body: PurchaseOrderUpdate, request: Request):
        po = request.app.state.purchase_orders.update(
            po_id,
            vendor=body.vendor,
            items=body.items,
            status=body.status,
        )
        return PurchaseOrderOut.model_validate(po)

    # --- invoices --------------------------------------------------------

    @app.get("/invoices", response_model=List[InvoiceOut])
    def list_invoices(request: Request):
        results = []
        for invoice in request.app.state.invoices.list():
            out = InvoiceOut.model_validate(invoice)
            out.automation_runs = (out.automation_runs or [])[:1]
            results.append(out)
        return results

    @app.post("/invoices", response_model=InvoiceOut, status_code=201)
    def create_invoice(request: Request, body: Optional[InvoiceCreate] = Body(default=None)):
        data = dict(body) if body is not None else generate_invoice(rng=request.app.state.rng)
        invoice = request.app.state.invoices.create(
            data["vendor"],
            data["line_items"],
            status=data["status"],
            linked_po_id=data["linked_po_id"],
        )
        return InvoiceOut.model_validate(invoice)

    @app.get("/invoices/{invoice_id}", response_model=InvoiceOut)
    def get_invoice(invoice_id: str, request: Request):
        return InvoiceOut.model_validate(request.app.state.invoices.get(invoice_id))

    @app.patch("/invoices/{invoice_id}", response_model=InvoiceOut)
    def update_invoice(invoice_id: str, body: InvoiceUpdate, request: Request):
        changes = body.model_dump(exclude_unset=True)
        invoice = request.app.state.invoices.update(invoice_id, **changes)
        return InvoiceOut.model_validate(invoice)

    @app.post("/invoices/{invoice_id}/generate-po", response_model=GeneratePOResponse)
    def generate_po(invoice_id: str, request: Request):
        result = request.app.state.automation.generate_purchase_order_from_invoice(invoice_id)
        return GeneratePOResponse(
            invoice=InvoiceOut.model_validate(result.invoice),
            purchase_order=PurchaseOrderOut.model_validate(result.purchase_order),
            automation_run=result.run,
        )

    # --- automation, simulator, dashboard --------------------------------

    @app.get("/automation-runs", response_model=List[AutomationRunWithInvoice])
    def list_automation_runs(request: Request):
        runs = request.app.state.automation.runs(include_invoice=True)
        return [AutomationRunWithInvoice.model_validate(run) for run in runs]

    @app.post("/simulator", response_model=SimulatorResponse, response_model_exclude_none=True)
    def advance_simulator(request: Request):
        result = request.app.state.simulator.advance()
        return SimulatorResponse(
            message=result.message,
            purchase_order=PurchaseOrderOut.model_validate(result.purchase_order) if result.advanced else None,
            from_status=result.from_status,
            to_status=result.to_status,
        )

    @app.get("/dashboard/stats")
    def get_dashboard_stats(request: Request) -> Dict[str, Any]:
        return dashboard_stats(request.app.state.store)

    return app
