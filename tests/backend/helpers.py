"""Test doubles shared by the engine tests: a manual-clock loop, a
recording transport and an in-memory record store."""

from dataclasses import replace

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bhome.models.database import init_database
from bhome.protocol.errors import RecordStoreError, TransportError
from bhome.protocol.transport import Transport
from bhome.services.record_store import RecordStore, SqlRecordStore

PANEL_NUMBER = "+39 333 1234567"


class FakeTimer:
    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Just enough of an event loop for call_later-driven code."""

    def __init__(self):
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay, callback, *args):
        timer = FakeTimer(self.now + delay, callback, args)
        self.timers.append(timer)
        return timer

    def call_soon_threadsafe(self, callback, *args):
        callback(*args)

    def is_closed(self) -> bool:
        return False

    @property
    def active_timers(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = sorted(
            (t for t in self.timers if not t.cancelled and t.when <= self.now),
            key=lambda t: t.when,
        )
        for timer in due:
            self.timers.remove(timer)
            if not timer.cancelled:
                timer.callback(*timer.args)


class FakeTransport(Transport):
    def __init__(self):
        super().__init__()
        self.sent: list[str] = []
        self.hints: list = []
        self.fail_with: str | None = None

    def transmit(self, text, transport_hint=None):
        if self.fail_with:
            raise TransportError(self.fail_with)
        self.sent.append(text)
        self.hints.append(transport_hint)
        return f"t{len(self.sent)}"


class MemoryStore(RecordStore):
    def __init__(self, phone_number: str = ""):
        self.zones: dict = {}
        self.scenarios: dict = {}
        self.users: dict = {}
        self.status = None
        self.panel_info = None
        self.configured = False
        self.fail = False
        self._phone = phone_number

    def _check(self):
        if self.fail:
            raise RecordStoreError("disk full")

    def put_zones(self, zones):
        self._check()
        self.zones = {z.slot: z for z in zones}

    def put_scenarios(self, scenarios):
        self._check()
        self.scenarios.update({s.slot: s for s in scenarios})

    def put_users(self, users):
        self._check()
        self.users.update({u.slot: u for u in users})

    def put_status(self, status, scenario=None, zones=None):
        self._check()
        self.status = (status, scenario, zones)

    def mark_configured(self, configured):
        self._check()
        self.configured = configured

    def put_panel_info(self, version, is_main, permissions):
        self._check()
        self.panel_info = (version, is_main, permissions)

    def phone_number(self):
        return self._phone

    def scenario(self, slot):
        return self.scenarios.get(slot)

    def set_user_permissions(self, slot, permission_mask):
        user = self.users.get(slot)
        if user is None:
            return None
        self.users[slot] = replace(user, permission_mask=permission_mask)
        return self.users[slot]


def make_sql_store(sms_log_limit: int = 500) -> SqlRecordStore:
    """SqlRecordStore on a private in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_database(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    return SqlRecordStore(factory, sms_log_limit=sms_log_limit)
