"""Command handlers for everyday panel operations.

Each operation sends one command through the correlator and records the
reply. Results are reported through an optional callback and kept as
last_outcome; failures never escape as exceptions.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from ..protocol.commands import (
    ArmCustom,
    ArmScenario,
    Command,
    Disarm,
    SetUserPermissions,
    StatusQuery,
    zones_to_mask,
)
from ..protocol.constants import SCENARIO_COUNT, TIMEOUT_SMS_RESPONSE, USER_COUNT
from ..protocol.correlator import ExchangeCorrelator
from ..protocol.errors import (
    ExchangeBusyError,
    Failure,
    FailureKind,
    RecordStoreError,
    TransportError,
)
from ..protocol.responses import Ack, ErrorReport, ParsedResponse, StatusReport

logger = logging.getLogger(__name__)


@dataclass
class CommandOutcome:
    command: str
    success: bool
    status: Optional[str] = None
    scenario: Optional[str] = None
    zones: Optional[str] = None
    failure: Optional[Failure] = None
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def message(self) -> str:
        if self.failure is not None:
            return self.failure.message
        if self.scenario:
            return f"{self.status} ({self.scenario})"
        return self.status or "OK"


OutcomeCallback = Callable[[CommandOutcome], None]


class PanelService:
    """Arm, disarm, status and permission commands over one correlator."""

    def __init__(
        self,
        correlator: ExchangeCorrelator,
        store,
        timeout: float = TIMEOUT_SMS_RESPONSE,
        dispatch_permission_updates: bool = False,
    ):
        self.correlator = correlator
        self.store = store
        self.timeout = timeout
        self.dispatch_permission_updates = dispatch_permission_updates
        self.last_outcome: Optional[CommandOutcome] = None
        self.in_flight: Optional[str] = None

    # ---- operations ----

    def arm_scenario(self, scenario: int, on_done: Optional[OutcomeCallback] = None) -> bool:
        if not 1 <= scenario <= SCENARIO_COUNT:
            raise ValueError(f"Scenario must be 1-{SCENARIO_COUNT}, got {scenario}")
        return self._run(ArmScenario(scenario), on_done)

    def arm_custom(self, zones: Iterable[int], on_done: Optional[OutcomeCallback] = None) -> bool:
        """Arm an ad-hoc set of zones (CUST:<digits>)."""
        mask = zones_to_mask(zones)
        if mask == 0:
            raise ValueError("At least one zone is required")
        return self._run(ArmCustom(mask), on_done)

    def arm_custom_scenario(self, slot: int, on_done: Optional[OutcomeCallback] = None) -> bool:
        """Arm a locally saved custom scenario by slot."""
        record = self.store.scenario(slot)
        if record is None or not record.is_custom:
            raise LookupError(f"No custom scenario in slot {slot}")
        if record.zone_mask == 0:
            raise ValueError(f"Custom scenario {slot} has no zones")
        return self._run(ArmCustom(record.zone_mask), on_done)

    def disarm(self, on_done: Optional[OutcomeCallback] = None) -> bool:
        return self._run(Disarm(), on_done)

    def check_status(self, on_done: Optional[OutcomeCallback] = None) -> bool:
        return self._run(StatusQuery(), on_done)

    def set_user_permissions(
        self, slot: int, permission_mask: int, on_done: Optional[OutcomeCallback] = None,
    ) -> bool:
        """Store a user's permission mask; send SET:U only when dispatch is enabled.

        Returns True if a command was sent.
        """
        if not 0 <= slot <= USER_COUNT:
            raise ValueError(f"User slot must be 0-{USER_COUNT}, got {slot}")
        if not 0 <= permission_mask <= 0b1111:
            raise ValueError(f"Permission mask must be 0-15, got {permission_mask}")

        if self.store.set_user_permissions(slot, permission_mask) is None:
            raise LookupError(f"No user in slot {slot}")
        logger.info("User %d permissions set to %s locally", slot, format(permission_mask, "04b"))

        if not self.dispatch_permission_updates:
            return False
        return self._run(SetUserPermissions(slot, permission_mask), on_done)

    # ---- passive status path ----

    def handle_unsolicited(self, response: ParsedResponse) -> None:
        """Store a status the panel sent on its own (e.g. after a keypad arm)."""
        if not isinstance(response, (Ack, StatusReport)):
            return
        logger.info("Unsolicited status from panel: %s", response.status)
        try:
            self._store_status(response)
        except RecordStoreError as e:
            logger.error("Could not store unsolicited status: %s", e)

    # ---- internals ----

    def _run(self, command: Command, on_done: Optional[OutcomeCallback]) -> bool:
        wire = command.to_wire()
        try:
            self.correlator.send(
                command,
                self.timeout,
                on_resolved=lambda response: self._on_resolved(wire, response, on_done),
                on_timeout=lambda failure: self._finish(
                    CommandOutcome(wire, False, failure=failure), on_done,
                ),
            )
        except TransportError as e:
            self._finish(CommandOutcome(
                wire, False, failure=Failure(FailureKind.TRANSPORT, wire, str(e)),
            ), on_done)
            return False
        except ExchangeBusyError as e:
            self._finish(CommandOutcome(
                wire, False, failure=Failure(FailureKind.BUSY, wire, str(e)),
            ), on_done, busy=True)
            return False
        self.in_flight = wire
        return True

    def _on_resolved(
        self, wire: str, response: ParsedResponse, on_done: Optional[OutcomeCallback],
    ) -> None:
        if isinstance(response, ErrorReport):
            failure = Failure(
                FailureKind.PANEL_ERROR, wire, f"ERR:{response.code}", code=response.code,
            )
            self._finish(CommandOutcome(wire, False, failure=failure), on_done)
            return

        if not isinstance(response, (Ack, StatusReport)):
            failure = Failure(
                FailureKind.DESYNC, wire, f"got {response.kind.value} instead of a status",
            )
            self._finish(CommandOutcome(wire, False, failure=failure), on_done)
            return

        try:
            self._store_status(response)
        except RecordStoreError as e:
            failure = Failure(FailureKind.STORAGE, wire, str(e))
            self._finish(CommandOutcome(wire, False, failure=failure), on_done)
            return

        zones = response.zones_raw if isinstance(response, StatusReport) else None
        self._finish(CommandOutcome(
            wire, True, status=response.status, scenario=response.scenario, zones=zones,
        ), on_done)

    def _store_status(self, response: ParsedResponse) -> None:
        zones = response.zones_raw if isinstance(response, StatusReport) else None
        self.store.put_status(response.status, response.scenario, zones)

    def _finish(
        self, outcome: CommandOutcome, on_done: Optional[OutcomeCallback], busy: bool = False,
    ) -> None:
        # a rejected send must not clear the marker of the exchange still in flight
        if not busy:
            self.in_flight = None
        self.last_outcome = outcome
        if outcome.success:
            logger.info("%s -> %s", outcome.command, outcome.message)
        else:
            logger.warning("%s failed: %s", outcome.command, outcome.message)
        if on_done:
            on_done(outcome)
