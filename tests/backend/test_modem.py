"""Tests for the GSM modem transport against a scripted fake serial port."""

import threading
import time

import pytest

from bhome.protocol.errors import TransportError
from bhome.protocol.modem import GsmModem


class FakeSerial:
    """Answers AT commands synchronously by feeding the modem's line parser."""

    def __init__(self, modem, reject=()):
        self.modem = modem
        self.reject = set(reject)
        self.written: list[bytes] = []
        self.is_open = True
        self.in_waiting = 0
        self.sms_reply = b"\r\n+CMGS: 17\r\n\r\nOK\r\n"
        self.prompt = True

    def write(self, data: bytes):
        self.written.append(data)
        if data.startswith(b"AT+CMGS"):
            if self.prompt:
                self.modem._feed(b"\r\n> ")
        elif data.endswith(b"\x1a"):
            self.modem._feed(self.sms_reply)
        elif data.startswith(b"AT"):
            cmd = data.strip().decode()
            self.modem._feed(b"\r\nERROR\r\n" if cmd in self.reject else b"\r\nOK\r\n")

    def flush(self):
        pass

    def read(self, n=1):
        time.sleep(0.01)
        return b""

    def close(self):
        self.is_open = False


def _modem(reject=(), destination="+393331234567"):
    holder = {}

    def factory(**kwargs):
        holder["serial"] = FakeSerial(modem, reject)
        return holder["serial"]

    modem = GsmModem(
        port="/dev/null", destination=lambda: destination,
        timeout=0.05, send_timeout=0.5, serial_factory=factory,
    )
    return modem, holder


class TestOpen:
    def test_initialises_text_mode(self):
        modem, holder = _modem()
        with modem:
            sent = [w.strip() for w in holder["serial"].written]
            assert sent == [
                b"ATE0", b"AT+CMGF=1", b"AT+CSDH=1", b"AT+CSMP=49,167,0,0", b"AT+CNMI=2,2,0,1,0",
            ]
            assert modem.is_open
        assert not modem.is_open

    def test_rejected_init_raises(self):
        modem, _ = _modem(reject={"AT+CMGF=1"})
        with pytest.raises(TransportError):
            modem.open()
        assert not modem.is_open


class TestTransmit:
    def test_not_open(self):
        modem, _ = _modem()
        with pytest.raises(TransportError):
            modem.transmit("SYS?")

    def test_no_destination(self):
        modem, _ = _modem(destination="")
        with modem:
            with pytest.raises(TransportError):
                modem.transmit("SYS?")

    def test_send_reports_outcome(self):
        modem, holder = _modem()
        done = threading.Event()
        outcomes = []

        def on_outcome(ticket, ok, error):
            outcomes.append((ticket, ok, error))
            done.set()

        modem.on_send_outcome = on_outcome
        with modem:
            ticket = modem.transmit("SYS?")
            assert done.wait(2)

        assert outcomes == [(ticket, True, None)]
        written = holder["serial"].written
        assert b'AT+CMGS="+393331234567"\r' in written
        assert b"SYS?\x1a" in written

    def test_hint_overrides_destination(self):
        modem, holder = _modem()
        done = threading.Event()
        modem.on_send_outcome = lambda *args: done.set()
        with modem:
            modem.transmit("SYS?", transport_hint="+393470000000")
            assert done.wait(2)
        assert b'AT+CMGS="+393470000000"\r' in holder["serial"].written


class TestSendSms:
    def test_modem_error(self):
        modem, holder = _modem()
        with modem:
            holder["serial"].sms_reply = b"\r\n+CMS ERROR: 38\r\n"
            ok, error = modem.send_sms("t1", "+393331234567", "SYS?")
        assert not ok
        assert error == "+CMS ERROR: 38"

    def test_no_prompt(self):
        modem, holder = _modem()
        with modem:
            holder["serial"].prompt = False
            ok, error = modem.send_sms("t1", "+393331234567", "SYS?")
        assert not ok
        assert "prompt" in error


class TestReader:
    def test_incoming_sms(self):
        modem, _ = _modem()
        received = []
        modem.on_incoming = lambda sender, text: received.append((sender, text))

        modem._feed(b'\r\n+CMT: "+393331234567","","24/05/01,10:00:00+08"\r\nOK:ARMED:Casa\r\n')

        assert received == [("+393331234567", "OK:ARMED:Casa")]

    def test_body_keeps_bare_newlines(self):
        # without a length in the header the body ends at the first CRLF
        modem, _ = _modem()
        received = []
        modem.on_incoming = lambda sender, text: received.append(text)
        modem._feed(b'+CMT: "+39333",,"x"\r\nSYS: ON\nSCE:Casa\nZONES:1,2\r\n')
        assert received == ["SYS: ON\nSCE:Casa\nZONES:1,2"]

    def test_split_across_reads(self):
        modem, _ = _modem()
        received = []
        modem.on_incoming = lambda sender, text: received.append(text)
        for chunk in (b'+CMT: "+39333","",', b'"x"\r\nSTAT', b"US:ARMED\r", b"\n"):
            modem._feed(chunk)
        assert received == ["STATUS:ARMED"]

    def test_status_report(self):
        modem, holder = _modem()
        reports = []
        modem.on_delivery_report = lambda ticket, delivered: reports.append((ticket, delivered))
        modem.on_send_outcome = lambda *args: None
        with modem:
            modem.send_sms("t9", "+393331234567", "SYS?")
        modem._feed(b'\r\n+CDS: 6,17,"+393331234567",145,"24/05/01,10:00:00+08","24/05/01,10:00:05+08",0\r\n')
        assert reports == [("t9", True)]

    def test_status_report_for_unknown_reference(self):
        modem, _ = _modem()
        reports = []
        modem.on_delivery_report = lambda *args: reports.append(args)
        modem._feed(b'+CDS: 6,99,"+39333",145,"a,b","c,d",0\r\n')
        assert reports == []

    def test_crlf_body_read_up_to_header_length(self):
        modem, _ = _modem()
        received = []
        modem.on_incoming = lambda sender, text: received.append((sender, text))
        body = b"SYS: ON\r\nSCE:Casa\r\nZONES:1,2"
        header = b'+CMT: "+39333","","24/05/01,10:00:00+08",145,4,0,0,"+3933",145,%d\r\n' % len(body)

        modem._feed(b"\r\n" + header + body + b"\r\n")

        assert received == [("+39333", "SYS: ON\nSCE:Casa\nZONES:1,2")]

    def test_lines_after_length_are_not_body(self):
        modem, _ = _modem()
        received = []
        modem.on_incoming = lambda sender, text: received.append(text)
        modem._feed(b'+CMT: "+39333","","x",145,4,0,0,"+3933",145,8\r\nOK:ARMED\r\nOK\r\n')
        assert received == ["OK:ARMED"]
        assert modem._responses.get_nowait() == "OK"


class TestStatusReportReferences:
    def test_unreported_references_are_capped(self, monkeypatch):
        monkeypatch.setattr("bhome.protocol.modem.MAX_PENDING_REPORTS", 3)
        modem, _ = _modem()
        reports = []
        modem.on_delivery_report = lambda ticket, delivered: reports.append(ticket)
        for ref in range(1, 6):
            modem._remember_reference(ref, f"t{ref}")

        assert list(modem._references) == [3, 4, 5]
        modem._feed(b'+CDS: 6,1,"+39333",145,"a,b","c,d",0\r\n')
        modem._feed(b'+CDS: 6,5,"+39333",145,"a,b","c,d",0\r\n')
        assert reports == ["t5"]
