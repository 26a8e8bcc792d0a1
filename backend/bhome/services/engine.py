"""PanelLink: the composition root of the SMS engine.

One instance is built per process and handed to callers explicitly
(FastAPI keeps it on app.state). It wires the transport's thread-side
callbacks into the inbound channel and the correlator's callback slots
into the panel service, the configuration session and the SMS journal.
"""

import asyncio
import logging
from typing import Optional

from ..config import Settings
from ..models.sms_log import SmsStatus
from ..protocol import phone
from ..protocol.channel import DeliveryReport, InboundChannel, InboundEvent, InboundMessage, SendOutcome
from ..protocol.correlator import ExchangeCorrelator
from ..protocol.errors import RecordStoreError
from ..protocol.session import ConfigListener, ConfigurationSession
from ..protocol.transport import Transport
from .panel import PanelService
from .record_store import SqlRecordStore

logger = logging.getLogger(__name__)


class PanelLink:
    """Owns the channel, correlator, panel service and configuration session."""

    def __init__(
        self,
        transport: Transport,
        store: SqlRecordStore,
        settings: Settings,
        loop: asyncio.AbstractEventLoop,
        listener: Optional[ConfigListener] = None,
    ):
        self.transport = transport
        self.store = store
        self.settings = settings
        self.loop = loop

        self.channel = InboundChannel(loop)
        self.correlator = ExchangeCorrelator(transport, loop, sender_filter=self.is_panel)
        self.panel = PanelService(
            self.correlator,
            store,
            timeout=settings.response_timeout_sec,
            dispatch_permission_updates=settings.dispatch_permission_updates,
        )
        self.session = ConfigurationSession(
            self.correlator,
            store,
            panel_number=self.panel_number,
            timeout=settings.response_timeout_sec,
            listener=listener,
        )
        self._task: Optional[asyncio.Task] = None

        # transport threads -> channel -> event loop
        transport.on_incoming = self.channel.post_message
        transport.on_send_outcome = self.channel.post_outcome
        transport.on_delivery_report = self.channel.post_delivery

        self.correlator.on_unsolicited = self.panel.handle_unsolicited
        self.correlator.on_transmitted = self._journal_outgoing
        self.correlator.on_received = self._journal_incoming
        self.correlator.on_delivery = self._journal_outcome

    # ---- panel identity ----

    def panel_number(self) -> str:
        """Stored number if set, else the configured default."""
        try:
            stored = self.store.phone_number()
        except RecordStoreError as e:
            logger.warning("Could not read stored panel number: %s", e)
            stored = ""
        return stored or self.settings.panel_phone

    def is_panel(self, sender: str) -> bool:
        number = self.panel_number()
        if not number:
            # nothing to compare against yet
            return True
        return phone.matches(sender, number)

    # ---- event dispatch (runs on the loop) ----

    def dispatch(self, event: InboundEvent) -> None:
        if isinstance(event, InboundMessage):
            self.correlator.on_incoming(event.sender, event.text)
        elif isinstance(event, SendOutcome):
            self.correlator.on_send_outcome(event.ticket, event.ok, event.error)
        elif isinstance(event, DeliveryReport):
            self._journal_delivery(event.ticket, event.delivered)

    async def run(self) -> None:
        await self.channel.run(self.dispatch)

    def start(self) -> None:
        if self._task is None:
            self._task = self.loop.create_task(self.run())

    async def stop(self) -> None:
        self.session.cancel()
        self.correlator.cancel()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    # ---- SMS journal ----

    def _journal_outgoing(self, wire: str, ticket: str) -> None:
        try:
            self.store.log_outgoing(self.panel_number(), wire, ticket)
        except RecordStoreError as e:
            logger.warning("SMS journal write failed: %s", e)

    def _journal_incoming(self, sender: str, text: str) -> None:
        try:
            self.store.log_incoming(sender, text)
        except RecordStoreError as e:
            logger.warning("SMS journal write failed: %s", e)

    def _journal_outcome(self, ticket: str, ok: bool, error: Optional[str]) -> None:
        status = SmsStatus.SENT if ok else SmsStatus.FAILED
        try:
            self.store.update_sms_status(ticket, status, error)
        except RecordStoreError as e:
            logger.warning("SMS journal update failed: %s", e)

    def _journal_delivery(self, ticket: str, delivered: bool) -> None:
        if not delivered:
            logger.warning("SMS %s was not delivered to the panel", ticket)
            return
        try:
            self.store.update_sms_status(ticket, SmsStatus.DELIVERED)
        except RecordStoreError as e:
            logger.warning("SMS journal update failed: %s", e)
