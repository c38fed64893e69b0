"""
Fulfilment simulator.

Each call to ``Simulator.advance`` picks one purchase order that has not been
received yet, uniformly at random, and moves it one step along the status
flow.  It is meant to be triggered periodically (``cli simulate`` or
``POST /simulator``) to give the dashboard something to show.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional

from .activity import ActivityLogger
from .events import PO_STATUS_CHANGED, EventBus
from .models import PurchaseOrder
from .purchase_orders import serialize_po
from .status import POStatus, next_status
from .store import RecordStore

logger = logging.getLogger(__name__)

NOTHING_TO_ADVANCE = "No POs available to advance"
CANNOT_ADVANCE = "Selected PO cannot be advanced"
ADVANCED = "PO status advanced"


@dataclass
class SimulationResult:
    message: str
    purchase_order: Optional[PurchaseOrder] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None

    @property
    def advanced(self) -> bool:
        return self.purchase_order is not None


class Simulator:
    def __init__(self, store: RecordStore, bus: EventBus, rng: Optional[random.Random] = None) -> None:
        self.store = store
        self.bus = bus
        self.activity = ActivityLogger(store)
        self.rng = rng or random.Random()

    def advance(self) -> SimulationResult:
        eligible = self.store.find_many(
            PurchaseOrder,
            where=[PurchaseOrder.status != POStatus.RECEIVED.value],
            order_by="created_at",
        )
        if not eligible:
            return SimulationResult(NOTHING_TO_ADVANCE)

        chosen = self.rng.choice(eligible)
        target = next_status(chosen.status)
        if target is None:
            logger.warning("Purchase order %s has status %r with no successor", chosen.id, chosen.status)
            return SimulationResult(CANNOT_ADVANCE)

        with self.store.transaction() as tx:
            updated = tx.update(PurchaseOrder, chosen.id, status=target)
            self.activity.with_store(tx).log_status_change(updated, chosen.status, target)

        logger.info("Simulator moved purchase order %s %s -> %s", chosen.id, chosen.status, target.value)
        self.bus.publish(
            PO_STATUS_CHANGED,
            {"purchaseOrder": serialize_po(updated), "from": chosen.status, "to": target.value},
        )
        return SimulationResult(ADVANCED, updated, chosen.status, target.value)
