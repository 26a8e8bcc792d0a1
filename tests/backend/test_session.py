"""Tests for the CONF1-CONF5 configuration handshake."""

import re

from bhome.protocol.constants import ConfigState
from bhome.protocol.correlator import ExchangeCorrelator
from bhome.protocol.errors import FailureKind
from bhome.protocol.session import ConfigListener, ConfigurationSession, StepStatus

from helpers import PANEL_NUMBER, FakeLoop, FakeTransport, MemoryStore

REPLIES = [
    "CONF1:3.2&MAIN.1101&Z1=Ingresso&Z2=NE&Z8=Garage#",
    "CONF2:S01=Casa&S02=NE#",
    "CONF3:S09=Notte&S10=NE#",
    "CONF4:RJO=Joker&R01=Mario&R02=NE#",
    "CONF5:R09=Anna&R16=NE#",
]


class RecordingListener(ConfigListener):
    def __init__(self):
        self.events = []

    def on_started(self):
        self.events.append(("started",))

    def on_progress(self, step, total, message):
        self.events.append(("progress", step, total))

    def on_step_completed(self, step):
        self.events.append(("completed", step))

    def on_complete(self):
        self.events.append(("complete",))

    def on_error(self, step, failure):
        self.events.append(("error", step, failure.kind))

    def on_cancelled(self):
        self.events.append(("cancelled",))


def _setup(number=PANEL_NUMBER):
    loop = FakeLoop()
    transport = FakeTransport()
    store = MemoryStore()
    correlator = ExchangeCorrelator(transport, loop)
    listener = RecordingListener()
    session = ConfigurationSession(
        correlator, store,
        panel_number=number if callable(number) else (lambda: number),
        timeout=60, listener=listener,
    )
    return loop, transport, store, correlator, session, listener


def _reply(correlator, text):
    correlator.on_incoming(PANEL_NUMBER, text)


class TestHappyPath:
    def test_full_handshake(self):
        _, transport, store, correlator, session, listener = _setup()

        assert session.start()
        assert session.state is ConfigState.CONF1
        for n, text in enumerate(REPLIES, start=1):
            assert transport.sent[-1] == f"CONF{n}?"
            _reply(correlator, text)

        assert transport.sent == ["CONF1?", "CONF2?", "CONF3?", "CONF4?", "CONF5?"]
        assert session.state is ConfigState.COMPLETE
        assert session.percent_complete == 100
        assert store.configured is True
        assert not correlator.busy
        assert all(s.status is StepStatus.COMPLETED for s in session.steps)
        assert listener.events[0] == ("started",)
        assert listener.events[-1] == ("complete",)

    def test_each_step_persists_before_advancing(self):
        _, transport, store, correlator, session, _ = _setup()
        session.start()

        _reply(correlator, REPLIES[0])
        assert session.percent_complete == 20
        assert session.state is ConfigState.CONF2
        assert sorted(store.zones) == [1, 2, 8]
        assert store.panel_info == ("3.2", True, 0b1101)

        _reply(correlator, REPLIES[1])
        assert session.percent_complete == 40
        assert sorted(store.scenarios) == [1, 2]

        _reply(correlator, REPLIES[2])
        _reply(correlator, REPLIES[3])
        assert store.users[0].is_joker
        assert session.percent_complete == 80

    def test_rerun_is_idempotent(self):
        _, _, store, correlator, session, _ = _setup()
        for _ in range(2):
            session.start()
            for text in REPLIES:
                _reply(correlator, text)
        assert session.state is ConfigState.COMPLETE
        assert len(store.zones) == 3
        assert len(store.scenarios) == 4
        assert len(store.users) == 5

    def test_log_is_timestamped(self):
        _, _, _, _, session, _ = _setup()
        session.start()
        assert re.fullmatch(r"\[\d\d:\d\d:\d\d\] TX: CONF1\?", session.log[0])


class TestFailures:
    def test_no_phone_number(self):
        _, transport, _, correlator, session, listener = _setup(number="")

        assert not session.start()

        assert session.state is ConfigState.IDLE
        assert session.failure.kind is FailureKind.TRANSPORT
        assert transport.sent == []
        assert not correlator.busy
        assert listener.events == [("error", 1, FailureKind.TRANSPORT)]

    def test_timeout(self):
        loop, _, _, correlator, session, _ = _setup()
        session.start()
        _reply(correlator, REPLIES[0])

        loop.advance(60)

        assert session.state is ConfigState.ERROR
        assert session.failure.kind is FailureKind.TIMEOUT
        assert session.failure.step == 2
        assert "step 2" in session.failure.message
        assert not correlator.busy
        assert session.steps[1].status is StepStatus.ERROR

    def test_desync(self):
        _, transport, _, correlator, session, _ = _setup()
        session.start()
        _reply(correlator, REPLIES[0])
        assert session.state is ConfigState.CONF2

        _reply(correlator, "OK:ARMED")

        assert session.state is ConfigState.ERROR
        assert session.failure.kind is FailureKind.DESYNC
        assert transport.sent == ["CONF1?", "CONF2?"]

    def test_out_of_order_block_is_desync(self):
        _, _, store, correlator, session, _ = _setup()
        session.start()
        _reply(correlator, REPLIES[1])
        assert session.failure.kind is FailureKind.DESYNC
        assert store.scenarios == {}

    def test_panel_error(self):
        _, _, _, correlator, session, _ = _setup()
        session.start()
        _reply(correlator, "ERR:E04")
        assert session.state is ConfigState.ERROR
        assert session.failure.kind is FailureKind.PANEL_ERROR
        assert session.failure.code == "E04"
        assert "System busy" in session.failure.message

    def test_unrecognized_text_does_not_advance(self):
        _, _, _, correlator, session, _ = _setup()
        session.start()
        _reply(correlator, "Benvenuto")
        assert session.state is ConfigState.CONF1
        assert correlator.busy

    def test_storage_failure(self):
        _, _, store, correlator, session, _ = _setup()
        store.fail = True
        session.start()
        _reply(correlator, REPLIES[0])
        assert session.state is ConfigState.ERROR
        assert session.failure.kind is FailureKind.STORAGE
        assert session.percent_complete == 0

    def test_transport_failure_on_later_step(self):
        _, transport, _, correlator, session, _ = _setup()
        session.start()
        transport.fail_with = "no signal"
        _reply(correlator, REPLIES[0])
        assert session.state is ConfigState.ERROR
        assert session.failure.kind is FailureKind.TRANSPORT
        assert session.failure.step == 2
        assert not correlator.busy

    def test_busy_correlator(self):
        from bhome.protocol.commands import StatusQuery

        _, _, _, correlator, session, _ = _setup()
        correlator.send(StatusQuery(), 60)
        assert session.start()
        assert session.state is ConfigState.ERROR
        assert session.failure.kind is FailureKind.BUSY
        assert correlator.pending.wire == "SYS?"

    def test_restart_after_error_begins_at_step_one(self):
        loop, transport, _, correlator, session, _ = _setup()
        session.start()
        _reply(correlator, REPLIES[0])
        _reply(correlator, REPLIES[1])
        loop.advance(60)
        assert session.state is ConfigState.ERROR

        assert session.start()
        assert session.state is ConfigState.CONF1
        assert transport.sent[-1] == "CONF1?"
        assert session.failure is None
        assert session.percent_complete == 0

    def test_missing_number_after_error_returns_to_idle(self):
        number = {"value": PANEL_NUMBER}
        loop, transport, _, correlator, session, _ = _setup(number=lambda: number["value"])
        session.start()
        loop.advance(60)
        assert session.state is ConfigState.ERROR

        number["value"] = ""
        assert not session.start()
        assert session.state is ConfigState.IDLE
        assert session.failure.kind is FailureKind.TRANSPORT
        assert transport.sent == ["CONF1?"]
        assert not correlator.busy


class TestCancel:
    def test_cancel_mid_session_keeps_records(self):
        loop, _, store, correlator, session, listener = _setup()
        session.start()
        _reply(correlator, REPLIES[0])

        assert session.cancel()

        assert session.state is ConfigState.IDLE
        assert not correlator.busy
        assert loop.active_timers == []
        assert sorted(store.zones) == [1, 2, 8]
        assert ("cancelled",) in listener.events

        # late reply and elapsed deadline change nothing
        _reply(correlator, REPLIES[1])
        loop.advance(120)
        assert session.state is ConfigState.IDLE
        assert store.scenarios == {}

    def test_cancel_is_idempotent(self):
        _, _, _, _, session, _ = _setup()
        assert not session.cancel()
        session.start()
        assert session.cancel()
        assert not session.cancel()
        assert session.state is ConfigState.IDLE

    def test_cancel_resets_error(self):
        loop, _, _, _, session, _ = _setup()
        session.start()
        loop.advance(60)
        assert session.state is ConfigState.ERROR
        session.cancel()
        assert session.state is ConfigState.IDLE

    def test_start_while_running_is_ignored(self):
        _, transport, _, _, session, _ = _setup()
        session.start()
        assert not session.start()
        assert transport.sent == ["CONF1?"]
