"""Inbound channel: marshals transport callbacks onto the event loop.

Transport threads call post_message / post_outcome. Both hop onto the
loop with call_soon_threadsafe and enqueue; run() drains the queue and
dispatches on the loop, so engine state is only ever touched there.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    sender: str
    text: str


@dataclass(frozen=True)
class SendOutcome:
    ticket: str
    ok: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class DeliveryReport:
    ticket: str
    delivered: bool


InboundEvent = Union[InboundMessage, SendOutcome, DeliveryReport]


class InboundChannel:
    """Single queue feeding the engine's execution context."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._queue: asyncio.Queue[InboundEvent] = asyncio.Queue()

    def post(self, event: InboundEvent) -> None:
        """Thread-safe enqueue."""
        if self._loop.is_closed():
            logger.debug("Dropping %s: event loop closed", type(event).__name__)
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def post_message(self, sender: str, text: str) -> None:
        self.post(InboundMessage(sender, text))

    def post_outcome(self, ticket: str, ok: bool, error: Optional[str] = None) -> None:
        self.post(SendOutcome(ticket, ok, error))

    def post_delivery(self, ticket: str, delivered: bool) -> None:
        self.post(DeliveryReport(ticket, delivered))

    async def run(self, handler: Callable[[InboundEvent], None]) -> None:
        """Dispatch events to handler until cancelled."""
        while True:
            event = await self._queue.get()
            try:
                handler(event)
            except Exception as e:
                logger.error("Inbound handler failed on %s: %s", event, e, exc_info=True)
            finally:
                self._queue.task_done()
