"""
Small helpers shared across PO Autopilot.

Logging setup for the CLI and the API server, naive-UTC timestamps, money
rounding and run durations live here, along with the Slack webhook poster
used by ``slack_notify``.
"""

from __future__ import annotations

import datetime as _dt
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import requests

CENT = Decimal("0.01")
SLACK_TIMEOUT = 10


def setup_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    """Configure the root logger once for the CLI and the API server."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt or "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def utcnow() -> _dt.datetime:
    """Naive UTC timestamp, matching what SQLite hands back from DateTime columns."""
    return _dt.datetime.now(_dt.timezone.utc).replace(tzinfo=None)


def round_money(value: Any) -> Decimal:
    """Round a monetary value half-up to two decimal places."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def duration_ms(started_at: _dt.datetime, completed_at: _dt.datetime) -> int:
    return int((completed_at - started_at).total_seconds() * 1000)


def send_slack_message(webhook_url: str, text: str, attachments: Optional[list] = None) -> None:
    """POST ``text`` to a Slack incoming webhook; HTTP errors are raised."""
    payload: Dict[str, Any] = {"text": text, **({"attachments": attachments} if attachments else {})}
    requests.post(webhook_url, json=payload, timeout=SLACK_TIMEOUT).raise_for_status()
