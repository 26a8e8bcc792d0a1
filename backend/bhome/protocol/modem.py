"""GSM modem transport over a serial port (AT commands, SMS text mode).

A reader thread splits modem output into lines and routes them:
unsolicited +CMT deliveries and +CDS status reports go to the transport
callbacks, final result codes go to a response queue consumed by the
command that is waiting for them. Sends run one at a time on a single
worker thread so transmit() never blocks the event loop.
"""

import logging
import queue
import re
import threading
import uuid
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import serial
import serial.tools.list_ports

from .constants import TIMEOUT_SMS_SEND
from .errors import TransportError
from .transport import Transport

logger = logging.getLogger(__name__)

CTRL_Z = b"\x1a"
PROMPT = b"> "
EOL = b"\r\n"

INIT_COMMANDS = [
    "ATE0",                 # no echo
    "AT+CMGF=1",            # text mode
    "AT+CSDH=1",            # +CMT headers carry the body length
    "AT+CSMP=49,167,0,0",   # request status reports
    "AT+CNMI=2,2,0,1,0",    # deliver SMS (+CMT) and reports (+CDS) directly
]

FINAL_OK = "OK"
FINAL_ERRORS = ("ERROR", "+CMS ERROR", "+CME ERROR")

# Message references awaiting a +CDS report; oldest dropped first
MAX_PENDING_REPORTS = 256

_CMT_RE = re.compile(r'\+CMT:\s*"([^"]*)"')
# with AT+CSDH=1 the header ends with the body length
_CMT_LENGTH_RE = re.compile(r",(\d+)\s*$")
_CMGS_RE = re.compile(r"\+CMGS:\s*(\d+)")
# +CDS: <fo>,<mr>,"<ra>",<tora>,"<scts>","<dt>",<st>
_CDS_RE = re.compile(r"\+CDS:\s*\d+,(\d+),.*,(\d+)\s*$")


def list_serial_ports() -> list[str]:
    """List available serial ports on the system."""
    return [port.device for port in serial.tools.list_ports.comports()]


class GsmModem(Transport):
    """SMS transport backed by a serial GSM modem."""

    def __init__(
        self,
        port: str,
        destination: Callable[[], str],
        baud_rate: int = 115200,
        timeout: float = 1.0,
        send_timeout: float = TIMEOUT_SMS_SEND,
        serial_factory: Optional[Callable[..., serial.Serial]] = None,
    ):
        super().__init__()
        self.port = port
        self.baud_rate = baud_rate
        self.timeout = timeout
        self.send_timeout = send_timeout
        self._destination = destination
        self._serial_factory = serial_factory or serial.Serial
        self._serial: Optional[serial.Serial] = None

        self._io_lock = threading.RLock()
        self._ref_lock = threading.Lock()
        self._responses: queue.Queue[str] = queue.Queue()
        self._prompt = threading.Event()
        self._stop = threading.Event()
        self._reader: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None

        self._buffer = b""
        self._cmt_sender: Optional[str] = None
        self._cmt_length: Optional[int] = None
        self._cmt_lines: list[str] = []
        self._references: OrderedDict[int, str] = OrderedDict()  # message reference -> ticket

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self) -> None:
        """Open the port, start the reader and put the modem in SMS text mode."""
        if self.is_open:
            return
        try:
            self._serial = self._serial_factory(
                port=self.port,
                baudrate=self.baud_rate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.timeout,
            )
        except serial.SerialException as e:
            raise TransportError(f"Cannot open {self.port}: {e}") from e
        logger.info("Opened modem port %s at %d baud", self.port, self.baud_rate)

        self._stop.clear()
        self._reader = threading.Thread(
            target=self._reader_loop, name="gsm-reader", daemon=True,
        )
        self._reader.start()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gsm-send")

        for command in INIT_COMMANDS:
            ok, reply = self.command(command)
            if not ok:
                self.close()
                raise TransportError(f"Modem rejected {command}: {reply}")
        logger.info("Modem ready (SMS text mode)")

    def close(self) -> None:
        self._stop.set()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=self.timeout + 1)
        self._reader = None
        if self._serial is not None:
            self._serial.close()
            self._serial = None
            logger.info("Closed modem port %s", self.port)

    # ---- Transport ----

    def transmit(self, text: str, transport_hint: Optional[str] = None) -> str:
        if not self.is_open or self._executor is None:
            raise TransportError("Modem not open")
        number = transport_hint or self._destination()
        if not number:
            raise TransportError("No panel phone number configured")

        ticket = uuid.uuid4().hex
        self._executor.submit(self._send_worker, ticket, number, text)
        return ticket

    def _send_worker(self, ticket: str, number: str, text: str) -> None:
        try:
            ok, error = self.send_sms(ticket, number, text)
        except Exception as e:
            logger.error("SMS %s send crashed: %s", ticket, e, exc_info=True)
            ok, error = False, str(e)
        if self.on_send_outcome:
            self.on_send_outcome(ticket, ok, error)

    # ---- AT layer ----

    def _write(self, data: bytes) -> None:
        if not self._serial:
            raise TransportError("Modem not open")
        self._serial.write(data)
        self._serial.flush()

    def _drain_responses(self) -> None:
        while True:
            try:
                self._responses.get_nowait()
            except queue.Empty:
                return

    def _await_final(self, timeout: float) -> tuple[bool, list[str]]:
        """Collect result lines until OK or an error; (False, lines) on timeout."""
        lines = []
        while True:
            try:
                line = self._responses.get(timeout=timeout)
            except queue.Empty:
                lines.append("timeout")
                return False, lines
            lines.append(line)
            if line == FINAL_OK:
                return True, lines
            if line.startswith(FINAL_ERRORS):
                return False, lines

    def command(self, cmd: str, timeout: Optional[float] = None) -> tuple[bool, str]:
        """Run one AT command; returns (ok, last result line)."""
        with self._io_lock:
            self._drain_responses()
            self._write(cmd.encode("ascii") + b"\r")
            logger.debug("AT TX: %s", cmd)
            ok, lines = self._await_final(timeout or self.send_timeout)
        return ok, lines[-1]

    def send_sms(self, ticket: str, number: str, text: str) -> tuple[bool, Optional[str]]:
        """Send one SMS with AT+CMGS. Returns (ok, error)."""
        with self._io_lock:
            self._drain_responses()
            self._prompt.clear()
            self._write(f'AT+CMGS="{number}"\r'.encode("ascii"))
            if not self._prompt.wait(self.send_timeout):
                # abort the pending input so the modem returns to command mode
                self._write(b"\x1b")
                return False, "no prompt from modem"
            self._write(text.encode("ascii", errors="replace") + CTRL_Z)
            ok, lines = self._await_final(self.send_timeout)

        if not ok:
            return False, lines[-1]
        for line in lines:
            m = _CMGS_RE.match(line)
            if m:
                self._remember_reference(int(m.group(1)), ticket)
        return True, None

    # ---- reader ----

    def _reader_loop(self) -> None:
        while not self._stop.is_set():
            try:
                chunk = self._serial.read(self._serial.in_waiting or 1)
            except (serial.SerialException, AttributeError, TypeError) as e:
                if not self._stop.is_set():
                    logger.error("Modem read failed: %s", e)
                return
            if chunk:
                self._feed(chunk)

    def _feed(self, data: bytes) -> None:
        """Split raw modem output into lines. Only CRLF ends a line."""
        self._buffer += data
        while True:
            if self._buffer.startswith(PROMPT):
                self._buffer = self._buffer[len(PROMPT):]
                self._prompt.set()
                continue
            idx = self._buffer.find(EOL)
            if idx < 0:
                return
            raw, self._buffer = self._buffer[:idx], self._buffer[idx + len(EOL):]
            self._handle_line(raw.decode("utf-8", errors="replace"))

    def _handle_line(self, line: str) -> None:
        if self._cmt_sender is not None:
            self._collect_body(line)
            return

        if not line:
            return

        if line.startswith("+CMT:"):
            m = _CMT_RE.match(line)
            self._cmt_sender = m.group(1) if m else ""
            length = _CMT_LENGTH_RE.search(line)
            self._cmt_length = int(length.group(1)) if length else None
            self._cmt_lines = []
        elif line.startswith("+CDS:"):
            self._handle_status_report(line)
        elif line == FINAL_OK or line.startswith(FINAL_ERRORS) or line.startswith("+CMGS:"):
            self._responses.put(line)
        else:
            logger.debug("Modem: %s", line)

    def _collect_body(self, line: str) -> None:
        """Gather +CMT body lines until the header's length is reached.

        Without a length in the header the body is the single next line.
        Lines are rejoined with LF, the separator the status parser expects.
        """
        self._cmt_lines.append(line)
        received = len(EOL.decode().join(self._cmt_lines))
        if self._cmt_length is not None and received < self._cmt_length:
            return
        sender, self._cmt_sender = self._cmt_sender, None
        body = "\n".join(self._cmt_lines)
        self._cmt_lines = []
        self._cmt_length = None
        if self.on_incoming:
            self.on_incoming(sender, body)

    def _remember_reference(self, reference: int, ticket: str) -> None:
        with self._ref_lock:
            self._references[reference] = ticket
            self._references.move_to_end(reference)
            while len(self._references) > MAX_PENDING_REPORTS:
                dropped, _ = self._references.popitem(last=False)
                logger.debug("No status report for message %d, forgetting it", dropped)

    def _handle_status_report(self, line: str) -> None:
        m = _CDS_RE.match(line)
        if m is None:
            logger.debug("Unparsed status report: %s", line)
            return
        reference, status = int(m.group(1)), int(m.group(2))
        with self._ref_lock:
            ticket = self._references.pop(reference, None)
        if ticket is None:
            return
        delivered = status == 0
        logger.info("SMS %s %s", ticket, "delivered" if delivered else f"not delivered ({status})")
        if self.on_delivery_report:
            self.on_delivery_report(ticket, delivered)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
