"""Transport seam between the protocol engine and the messaging stack.

A transport sends raw SMS text to the panel and reports, from its own
threads, incoming messages and the outcome of each send. Those reports
must reach the engine through an InboundChannel, never directly.
"""

from typing import Callable, Optional

# (sender, text)
IncomingCallback = Callable[[str, str], None]
# (ticket, ok, error)
SendOutcomeCallback = Callable[[str, bool, Optional[str]], None]
# (ticket, delivered)
DeliveryReportCallback = Callable[[str, bool], None]


class Transport:
    """Base class for SMS transports."""

    def __init__(self) -> None:
        self.on_incoming: Optional[IncomingCallback] = None
        self.on_send_outcome: Optional[SendOutcomeCallback] = None
        self.on_delivery_report: Optional[DeliveryReportCallback] = None

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    def transmit(self, text: str, transport_hint: Optional[str] = None) -> str:
        """Start sending text to the panel and return an opaque send ticket.

        Raises TransportError if the send cannot be started. The final
        outcome is reported later through on_send_outcome.
        """
        raise NotImplementedError
