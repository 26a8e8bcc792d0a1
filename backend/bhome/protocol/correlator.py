"""Exchange correlator: one outstanding SMS request at a time.

The panel's replies carry no request id, so a reply can only be
attributed to a request if at most one request is in flight. The
correlator owns that single slot, arms a timeout for it on the event
loop, and hands the first recognised reply to the waiting caller.

All methods must be called on the event loop thread. Transport threads
reach on_incoming / on_send_outcome through an InboundChannel.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .commands import Command, encode
from .constants import ResponseKind, TIMEOUT_SMS_RESPONSE
from .errors import ExchangeBusyError, Failure, FailureKind
from .parser import classify, decode
from .responses import ParsedResponse
from .transport import Transport

logger = logging.getLogger(__name__)

ResolvedCallback = Callable[[ParsedResponse], None]
TimeoutCallback = Callable[[Failure], None]

# Kinds a panel may send on its own (e.g. after a keypad arm)
UNSOLICITED_KINDS = {ResponseKind.OK, ResponseKind.STATUS}


@dataclass
class PendingExchange:
    command: Command
    wire: str
    sent_at: float
    deadline: float
    on_resolved: ResolvedCallback
    on_timeout: TimeoutCallback
    timer: asyncio.TimerHandle
    ticket: Optional[str] = None


@dataclass(frozen=True)
class ExchangeHandle:
    """Caller-side view of a sent exchange."""
    command: Command
    wire: str
    sent_at: float
    deadline: float
    ticket: Optional[str]


class ExchangeCorrelator:
    """Owns the single in-flight request slot."""

    def __init__(
        self,
        transport: Transport,
        loop: asyncio.AbstractEventLoop,
        sender_filter: Optional[Callable[[str], bool]] = None,
    ):
        self.transport = transport
        self._loop = loop
        self._sender_filter = sender_filter
        self._pending: Optional[PendingExchange] = None

        # Callback slots
        self.on_unsolicited: Optional[ResolvedCallback] = None
        self.on_transmitted: Optional[Callable[[str, str], None]] = None
        self.on_received: Optional[Callable[[str, str], None]] = None
        self.on_delivery: Optional[Callable[[str, bool, Optional[str]], None]] = None

    @property
    def busy(self) -> bool:
        return self._pending is not None

    @property
    def pending(self) -> Optional[ExchangeHandle]:
        p = self._pending
        if p is None:
            return None
        return ExchangeHandle(p.command, p.wire, p.sent_at, p.deadline, p.ticket)

    def send(
        self,
        command: Command,
        timeout: float = TIMEOUT_SMS_RESPONSE,
        on_resolved: Optional[ResolvedCallback] = None,
        on_timeout: Optional[TimeoutCallback] = None,
        transport_hint: Optional[str] = None,
    ) -> ExchangeHandle:
        """Transmit a command and wait asynchronously for its reply.

        Raises ExchangeBusyError if an exchange is already pending (the
        pending one is left untouched) and lets TransportError from the
        transport propagate; in both cases no timer is armed.
        """
        if self._pending is not None:
            raise ExchangeBusyError(
                f"Cannot send {encode(command)!r}: {self._pending.wire!r} still pending"
            )

        wire = encode(command)
        ticket = self.transport.transmit(wire, transport_hint)
        logger.info("TX: %s (ticket %s, timeout %.0fs)", wire, ticket, timeout)

        now = self._loop.time()
        timer = self._loop.call_later(timeout, self._on_timer)
        self._pending = PendingExchange(
            command=command,
            wire=wire,
            sent_at=now,
            deadline=now + timeout,
            on_resolved=on_resolved or _ignore,
            on_timeout=on_timeout or _ignore,
            timer=timer,
            ticket=ticket,
        )
        if self.on_transmitted:
            self.on_transmitted(wire, ticket)
        return self.pending

    def on_incoming(self, sender: str, text: str) -> None:
        """Route an incoming SMS to the pending exchange, if any."""
        if self._sender_filter is not None and not self._sender_filter(sender):
            logger.debug("Ignoring SMS from non-panel sender %s", sender)
            return

        logger.info("RX: %r", text)
        if self.on_received:
            self.on_received(sender, text)

        kind = classify(text)
        pending = self._pending

        if pending is None:
            if kind in UNSOLICITED_KINDS and self.on_unsolicited:
                self.on_unsolicited(decode(text))
            else:
                logger.debug("No exchange pending, dropping %s message", kind.value)
            return

        if kind is ResponseKind.UNRECOGNIZED:
            # Some panels send free text before the real reply
            logger.info("Unrecognized reply while waiting on %s, still waiting", pending.wire)
            return

        response = decode(text)
        self._clear()
        logger.debug("Exchange %s resolved by %s", pending.wire, kind.value)
        pending.on_resolved(response)

    def on_send_outcome(self, ticket: str, ok: bool, error: Optional[str] = None) -> None:
        """Telemetry only: a send outcome never resolves an exchange."""
        if ok:
            logger.info("SMS %s sent", ticket)
        else:
            logger.warning("SMS %s failed: %s", ticket, error)
        if self.on_delivery:
            self.on_delivery(ticket, ok, error)

    def cancel(self) -> bool:
        """Drop the pending exchange without invoking its callbacks.

        Idempotent; returns True if an exchange was cancelled.
        """
        pending = self._pending
        if pending is None:
            return False
        self._clear()
        logger.info("Exchange %s cancelled", pending.wire)
        return True

    def _on_timer(self) -> None:
        pending = self._pending
        if pending is None:
            return
        self._pending = None
        timeout = pending.deadline - pending.sent_at
        logger.warning("No reply to %s within %.0fs", pending.wire, timeout)
        pending.on_timeout(Failure(
            kind=FailureKind.TIMEOUT,
            command=pending.wire,
            detail=f"no response within {timeout:.0f}s",
        ))

    def _clear(self) -> None:
        if self._pending is not None:
            self._pending.timer.cancel()
            self._pending = None


def _ignore(*_args) -> None:
    pass
