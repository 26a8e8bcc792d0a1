"""Five-step configuration handshake (CONF1? .. CONF5?).

Each step sends one query through the correlator, checks that the reply
is the expected CONFn block, persists it, and moves to the next step.
Any timeout, transport failure, mismatched reply or panel error stops
the session in ERROR. There is no step-level resume: start() always
begins again at CONF1, and each step's persistence replaces its record
set so re-running is idempotent.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from .commands import ConfQuery
from .constants import (
    CONF_KINDS,
    CONFIG_STEP_NAMES,
    CONFIG_TOTAL_STEPS,
    ConfigState,
    TIMEOUT_SMS_RESPONSE,
)
from .correlator import ExchangeCorrelator
from .errors import (
    ExchangeBusyError,
    Failure,
    FailureKind,
    RecordStoreError,
    TransportError,
)
from .responses import Conf1Block, ErrorReport, ParsedResponse, ScenarioBlock, UserBlock

logger = logging.getLogger(__name__)

RUNNING_STATES = {
    ConfigState.CONF1,
    ConfigState.CONF2,
    ConfigState.CONF3,
    ConfigState.CONF4,
    ConfigState.CONF5,
}


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class StepInfo:
    number: int
    name: str
    status: StepStatus = StepStatus.PENDING
    message: str = ""


class ConfigListener:
    """Progress callbacks. Override what you need."""

    def on_started(self) -> None:
        pass

    def on_progress(self, step: int, total: int, message: str) -> None:
        pass

    def on_step_completed(self, step: int) -> None:
        pass

    def on_complete(self) -> None:
        pass

    def on_error(self, step: int, failure: Failure) -> None:
        pass

    def on_cancelled(self) -> None:
        pass


class ConfigurationSession:
    """State machine driving the CONF1-CONF5 download."""

    def __init__(
        self,
        correlator: ExchangeCorrelator,
        store,
        panel_number: Callable[[], str],
        timeout: float = TIMEOUT_SMS_RESPONSE,
        listener: Optional[ConfigListener] = None,
    ):
        self.correlator = correlator
        self.store = store
        self.timeout = timeout
        self.listener = listener or ConfigListener()
        self._panel_number = panel_number

        self.state = ConfigState.IDLE
        self.percent_complete = 0
        self.steps: list[StepInfo] = []
        self.log: list[str] = []
        self.failure: Optional[Failure] = None
        self._reset_steps()

    @property
    def running(self) -> bool:
        return self.state in RUNNING_STATES

    @property
    def current_step(self) -> int:
        return int(self.state) if self.running else 0

    # ---- public API ----

    def start(self) -> bool:
        """Begin (or restart) the handshake at CONF1.

        Returns False if a session is already running or the panel number
        is not configured; the latter is reported as a TRANSPORT failure
        and leaves the session IDLE, whatever state it ended in before.
        """
        if self.running:
            logger.info("Configuration already running at %s", self.state.name)
            return False

        if not self._panel_number():
            failure = Failure(
                kind=FailureKind.TRANSPORT,
                command=ConfQuery(1).to_wire(),
                detail="no panel phone number configured",
                step=1,
            )
            self.failure = failure
            self.state = ConfigState.IDLE
            self._add_log(f"ERROR: {failure.message}")
            logger.warning("Cannot start configuration: %s", failure.detail)
            self.listener.on_error(1, failure)
            return False

        self._reset_steps()
        self.log = []
        self.failure = None
        self.percent_complete = 0
        self.listener.on_started()
        self._enter_step(1)
        return True

    def cancel(self) -> bool:
        """Abort a running session and return to IDLE.

        Records persisted by completed steps are kept. Idempotent.
        """
        if not self.running:
            if self.state is not ConfigState.IDLE:
                self.state = ConfigState.IDLE
            return False

        step = self.current_step
        self.correlator.cancel()
        self.state = ConfigState.IDLE
        self._set_step(step, StepStatus.PENDING, "Cancelled")
        self._add_log("Configuration cancelled by user")
        logger.info("Configuration cancelled at step %d", step)
        self.listener.on_cancelled()
        return True

    # ---- step machinery ----

    def _enter_step(self, step: int) -> None:
        self.state = ConfigState(step)
        command = ConfQuery(step)
        self._add_log(f"TX: {command.to_wire()}")
        self._set_step(step, StepStatus.IN_PROGRESS, "Request sent...")
        self.listener.on_progress(step, CONFIG_TOTAL_STEPS, CONFIG_STEP_NAMES[step])

        try:
            self.correlator.send(
                command,
                self.timeout,
                on_resolved=lambda response: self._on_step_resolved(step, response),
                on_timeout=lambda failure: self._on_step_timeout(step, failure),
            )
        except TransportError as e:
            self._fail(step, Failure(FailureKind.TRANSPORT, command.to_wire(), str(e), step))
        except ExchangeBusyError as e:
            self._fail(step, Failure(FailureKind.BUSY, command.to_wire(), str(e), step))

    def _on_step_resolved(self, step: int, response: ParsedResponse) -> None:
        if self.state is not ConfigState(step):
            logger.debug("Stale reply for step %d ignored (state %s)", step, self.state.name)
            return

        wire = ConfQuery(step).to_wire()
        self._add_log(f"RX: {response.kind.value}")

        if isinstance(response, ErrorReport):
            self._fail(step, Failure(
                FailureKind.PANEL_ERROR, wire, f"ERR:{response.code}", step, response.code,
            ))
            return

        expected = CONF_KINDS[step]
        if response.kind is not expected:
            self._fail(step, Failure(
                FailureKind.DESYNC, wire,
                f"expected {expected.value}, got {response.kind.value}", step,
            ))
            return

        try:
            self._persist(step, response)
        except RecordStoreError as e:
            self._fail(step, Failure(FailureKind.STORAGE, wire, str(e), step))
            return

        self.percent_complete = step * 20
        self._set_step(step, StepStatus.COMPLETED, "Completed")
        self.listener.on_step_completed(step)

        if step == CONFIG_TOTAL_STEPS:
            self._complete()
        else:
            self._enter_step(step + 1)

    def _on_step_timeout(self, step: int, failure: Failure) -> None:
        if self.state is not ConfigState(step):
            return
        self._fail(step, Failure(
            FailureKind.TIMEOUT, failure.command, failure.detail, step,
        ))

    def _persist(self, step: int, response: ParsedResponse) -> None:
        if isinstance(response, Conf1Block):
            self.store.put_zones(list(response.zones))
            self.store.put_panel_info(response.version, response.is_main, response.permissions)
        elif isinstance(response, ScenarioBlock):
            self.store.put_scenarios(list(response.scenarios))
        elif isinstance(response, UserBlock):
            self.store.put_users(list(response.users))
        logger.info("Step %d persisted (%s)", step, response.kind.value)

    def _complete(self) -> None:
        try:
            self.store.mark_configured(True)
        except RecordStoreError as e:
            self._fail(CONFIG_TOTAL_STEPS, Failure(
                FailureKind.STORAGE, ConfQuery(CONFIG_TOTAL_STEPS).to_wire(), str(e),
                CONFIG_TOTAL_STEPS,
            ))
            return
        self.state = ConfigState.COMPLETE
        self.percent_complete = 100
        self._add_log("Configuration complete")
        logger.info("Configuration complete")
        self.listener.on_complete()

    def _fail(self, step: int, failure: Failure) -> None:
        self.state = ConfigState.ERROR
        self.failure = failure
        self._set_step(step, StepStatus.ERROR, failure.message)
        self._add_log(f"ERROR: {failure.message}")
        logger.warning("Configuration failed at step %d: %s", step, failure.message)
        self.listener.on_error(step, failure)

    # ---- bookkeeping ----

    def _reset_steps(self) -> None:
        self.steps = [StepInfo(n, name) for n, name in CONFIG_STEP_NAMES.items()]

    def _set_step(self, step: int, status: StepStatus, message: str) -> None:
        if 1 <= step <= len(self.steps):
            info = self.steps[step - 1]
            info.status = status
            info.message = message

    def _add_log(self, message: str) -> None:
        self.log.append(f"[{datetime.now():%H:%M:%S}] {message}")
