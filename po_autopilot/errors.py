"""Exceptions raised by the record store and the automation workflow."""

from __future__ import annotations

from typing import Optional


class PoAutopilotError(Exception):
    pass


class NotFound(PoAutopilotError):
    """A referenced entity does not exist."""


class Conflict(PoAutopilotError):
    """A precondition was violated, e.g. the invoice is already processed."""


class MalformedData(PoAutopilotError, ValueError):
    """A stored line-item payload could not be parsed or validated."""


class AutomationFailed(PoAutopilotError):
    """The invoice→PO derivation failed after the run record was opened."""

    def __init__(self, message: str, run_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.run_id = run_id


__all__ = ["PoAutopilotError", "NotFound", "Conflict", "MalformedData", "AutomationFailed"]
