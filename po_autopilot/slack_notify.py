"""
Slack notifications for purchase order events.

``SlackNotifier`` subscribes to the event bus and posts a short message to an
incoming webhook whenever a purchase order is created or changes status.
Delivery errors surface as exceptions and are absorbed and logged by the
bus, so a Slack outage never affects the workflow that published the event.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List

from .events import PO_CREATED, PO_STATUS_CHANGED, EventBus
from .utils import send_slack_message


def _po_line(po: Dict[str, Any]) -> str:
    return f"{po.get('vendor')} • ${float(po.get('total', 0)):.2f} ({len(po.get('items', []))} items)"


def format_created(po: Dict[str, Any]) -> str:
    return f"*Purchase order {po.get('id')} created*\n{_po_line(po)}"


def format_status_changed(payload: Dict[str, Any]) -> str:
    po = payload.get("purchaseOrder", {})
    return f"*Purchase order {po.get('id')}*: {payload.get('from')} → {payload.get('to')}\n{_po_line(po)}"


class SlackNotifier:
    def __init__(self, webhook_url: str) -> None:
        self.webhook_url = webhook_url
        self._unsubscribers: List[Callable[[], None]] = []

    def on_created(self, po: Dict[str, Any]) -> None:
        send_slack_message(self.webhook_url, format_created(po))

    def on_status_changed(self, payload: Dict[str, Any]) -> None:
        send_slack_message(self.webhook_url, format_status_changed(payload))

    def attach(self, bus: EventBus) -> "SlackNotifier":
        self._unsubscribers.append(bus.subscribe(PO_CREATED, self.on_created))
        self._unsubscribers.append(bus.subscribe(PO_STATUS_CHANGED, self.on_status_changed))
        return self

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
