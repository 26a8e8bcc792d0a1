"""Tests for arm/disarm/status/permission command handling."""

import pytest

from bhome.protocol.commands import zones_to_mask
from bhome.protocol.correlator import ExchangeCorrelator
from bhome.protocol.errors import FailureKind
from bhome.protocol.parser import decode
from bhome.protocol.responses import ScenarioRecord, UserRecord
from bhome.services.panel import PanelService

from helpers import PANEL_NUMBER, FakeLoop, FakeTransport, MemoryStore


def _setup(dispatch=False):
    loop = FakeLoop()
    transport = FakeTransport()
    store = MemoryStore()
    correlator = ExchangeCorrelator(transport, loop)
    service = PanelService(correlator, store, timeout=60, dispatch_permission_updates=dispatch)
    correlator.on_unsolicited = service.handle_unsolicited
    return loop, transport, store, correlator, service


class TestCommands:
    def test_arm_scenario(self):
        _, transport, store, correlator, service = _setup()
        outcomes = []
        assert service.arm_scenario(3, on_done=outcomes.append)
        assert transport.sent == ["SCE:03"]
        assert service.in_flight == "SCE:03"

        correlator.on_incoming(PANEL_NUMBER, "OK:ARMED:Notte")

        assert outcomes[0].success
        assert outcomes[0].status == "ARMED"
        assert outcomes[0].scenario == "Notte"
        assert store.status == ("ARMED", "Notte", None)
        assert service.last_outcome is outcomes[0]
        assert service.in_flight is None

    @pytest.mark.parametrize("scenario", [0, 17])
    def test_arm_scenario_range(self, scenario):
        _, transport, _, _, service = _setup()
        with pytest.raises(ValueError):
            service.arm_scenario(scenario)
        assert transport.sent == []

    def test_arm_custom(self):
        _, transport, _, _, service = _setup()
        service.arm_custom([4, 1, 3])
        assert transport.sent == ["CUST:134"]

    def test_arm_custom_needs_zones(self):
        _, _, _, _, service = _setup()
        with pytest.raises(ValueError):
            service.arm_custom([])

    def test_arm_custom_scenario(self):
        _, transport, store, _, service = _setup()
        store.scenarios[101] = ScenarioRecord(101, "Giorno", True, zones_to_mask([2, 5]), True)
        service.arm_custom_scenario(101)
        assert transport.sent == ["CUST:25"]

    def test_arm_custom_scenario_rejects_predefined(self):
        _, _, store, _, service = _setup()
        store.scenarios[1] = ScenarioRecord(1, "Casa", True)
        with pytest.raises(LookupError):
            service.arm_custom_scenario(1)

    def test_disarm_and_status(self):
        _, transport, store, correlator, service = _setup()
        service.disarm()
        correlator.on_incoming(PANEL_NUMBER, "OK:DISARMED")
        service.check_status()
        correlator.on_incoming(PANEL_NUMBER, "STATUS:ARMED&SCE=Casa&ZONES=12")
        assert transport.sent == ["SYS OFF", "SYS?"]
        assert store.status == ("ARMED", "Casa", "12")
        assert service.last_outcome.zones == "12"


class TestFailures:
    def test_panel_error(self):
        _, _, store, correlator, service = _setup()
        service.arm_scenario(1)
        correlator.on_incoming(PANEL_NUMBER, "ERR:E03")
        outcome = service.last_outcome
        assert not outcome.success
        assert outcome.failure.kind is FailureKind.PANEL_ERROR
        assert outcome.failure.code == "E03"
        assert "Number not authorized" in outcome.message
        assert store.status is None

    def test_unknown_panel_error_code_passed_through(self):
        _, _, _, correlator, service = _setup()
        service.disarm()
        correlator.on_incoming(PANEL_NUMBER, "ERR:E77")
        assert "E77" in service.last_outcome.message

    def test_config_block_is_desync(self):
        _, _, _, correlator, service = _setup()
        service.check_status()
        correlator.on_incoming(PANEL_NUMBER, "CONF2:S01=Casa#")
        assert service.last_outcome.failure.kind is FailureKind.DESYNC

    def test_timeout(self):
        loop, _, _, _, service = _setup()
        service.check_status()
        loop.advance(60)
        assert service.last_outcome.failure.kind is FailureKind.TIMEOUT
        assert service.in_flight is None

    def test_transport_error(self):
        _, transport, _, correlator, service = _setup()
        transport.fail_with = "no SIM"
        assert not service.disarm()
        assert service.last_outcome.failure.kind is FailureKind.TRANSPORT
        assert "no SIM" in service.last_outcome.message
        assert not correlator.busy

    def test_busy(self):
        _, transport, _, _, service = _setup()
        service.arm_scenario(1)
        assert not service.disarm()
        assert service.last_outcome.failure.kind is FailureKind.BUSY
        assert service.in_flight == "SCE:01"
        assert transport.sent == ["SCE:01"]


class TestPermissions:
    def test_stored_locally_without_dispatch(self):
        _, transport, store, _, service = _setup(dispatch=False)
        store.users[1] = UserRecord(1, "Mario", True)
        assert not service.set_user_permissions(1, 0b1010)
        assert store.users[1].permission_mask == 0b1010
        assert transport.sent == []

    def test_dispatched_when_enabled(self):
        _, transport, store, _, service = _setup(dispatch=True)
        store.users[1] = UserRecord(1, "Mario", True)
        assert service.set_user_permissions(1, 0b1010)
        assert transport.sent == ["SET:U011010"]

    def test_unknown_user(self):
        _, _, _, _, service = _setup()
        with pytest.raises(LookupError):
            service.set_user_permissions(5, 0b0001)

    def test_mask_range(self):
        _, _, store, _, service = _setup()
        store.users[1] = UserRecord(1, "Mario", True)
        with pytest.raises(ValueError):
            service.set_user_permissions(1, 16)


class TestUnsolicited:
    def test_status_broadcast_is_stored(self):
        _, _, store, correlator, service = _setup()
        correlator.on_incoming(PANEL_NUMBER, "SYS: OFF\nSCE: ---\nZONES:")
        assert store.status == ("DISARMED", None, "")
        assert service.last_outcome is None

    def test_non_status_ignored(self):
        _, _, store, _, service = _setup()
        service.handle_unsolicited(decode("ERR:E01"))
        assert store.status is None

    def test_storage_failure_logged_not_raised(self):
        _, _, store, _, service = _setup()
        store.fail = True
        service.handle_unsolicited(decode("OK:ARMED"))
        assert store.status is None
