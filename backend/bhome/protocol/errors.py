"""Exceptions and failure reports for the SMS alarm engine.

Exceptions are raised only at the seams (transport, storage, caller
misuse). Everything the UI needs to render is carried by a Failure,
delivered through callbacks.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .constants import ERROR_DESCRIPTIONS


class TransportError(Exception):
    """Transmission could not be started (modem closed, no number, modem ERROR)."""


class ExchangeBusyError(RuntimeError):
    """send() was called while another exchange is still pending."""


class RecordStoreError(Exception):
    """The record store failed to persist decoded data."""


class FailureKind(str, Enum):
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    DESYNC = "desync"
    PANEL_ERROR = "panel_error"
    BUSY = "busy"
    STORAGE = "storage"


@dataclass(frozen=True)
class Failure:
    """A user-presentable failure of one exchange or configuration step."""
    kind: FailureKind
    command: str = ""
    detail: str = ""
    step: Optional[int] = None
    code: Optional[str] = None

    @property
    def message(self) -> str:
        where = f"step {self.step}" if self.step else (self.command or "command")
        if self.kind is FailureKind.TIMEOUT:
            return f"Timeout: no response to {where}"
        if self.kind is FailureKind.PANEL_ERROR:
            text = ERROR_DESCRIPTIONS.get(self.code or "", self.code or "unknown")
            return f"Panel error {self.code} on {where}: {text}"
        if self.kind is FailureKind.DESYNC:
            return f"Unexpected reply to {where}: {self.detail}"
        if self.kind is FailureKind.TRANSPORT:
            return f"Could not send {where}: {self.detail}"
        if self.kind is FailureKind.BUSY:
            return f"Another command is still waiting for a reply ({self.detail})"
        return f"Could not save {where}: {self.detail}"
