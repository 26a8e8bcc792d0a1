"""Decoded panel responses and the records they carry.

Responses carry no correlation token: the wire format has none. Every
variant records whether the body ended with the continuation marker and
whether any sub-field failed to parse.
"""

from dataclasses import dataclass, field
from typing import Optional

from .commands import build_permissions, mask_to_zones
from .constants import (
    AlarmStatus,
    CONF_KINDS,
    JOKER_SLOT,
    ResponseKind,
)


@dataclass(frozen=True)
class ZoneRecord:
    slot: int  # 1-8
    name: str
    enabled: bool


@dataclass(frozen=True)
class ScenarioRecord:
    slot: int  # 1-16 predefined, > 100 custom
    name: str
    enabled: bool
    zone_mask: int = 0
    is_custom: bool = False

    def includes_zone(self, zone: int) -> bool:
        return bool(self.zone_mask & (1 << (zone - 1)))

    @property
    def included_zones(self) -> list[int]:
        return mask_to_zones(self.zone_mask)


@dataclass(frozen=True)
class UserRecord:
    slot: int  # 0 = Joker, 1-16 regular
    name: str
    enabled: bool
    permission_mask: int = 0
    is_joker: bool = False

    @classmethod
    def joker(cls, name: str) -> "UserRecord":
        return cls(slot=JOKER_SLOT, name=name, enabled=True, is_joker=True)


@dataclass(frozen=True)
class ParsedResponse:
    """Base for every decoded SMS body."""
    continued: bool = False   # body ended with '&'
    incomplete: bool = False  # recognised kind, some sub-fields malformed

    kind = ResponseKind.UNRECOGNIZED

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class Conf1Block(ParsedResponse):
    """CONF1: firmware version, account flags and zone names."""
    version: Optional[str] = None
    is_main: bool = False
    rx1: bool = False
    rx2: bool = False
    verify: bool = False
    cmd_on_off: bool = False
    zones: tuple[ZoneRecord, ...] = ()

    kind = ResponseKind.CONF1

    @property
    def permissions(self) -> int:
        return build_permissions(self.rx1, self.rx2, self.verify, self.cmd_on_off)


@dataclass(frozen=True)
class ScenarioBlock(ParsedResponse):
    """CONF2 (scenarios 1-8) or CONF3 (scenarios 9-16)."""
    block: int = 2
    scenarios: tuple[ScenarioRecord, ...] = ()

    @property
    def kind(self) -> ResponseKind:
        return CONF_KINDS[self.block]


@dataclass(frozen=True)
class UserBlock(ParsedResponse):
    """CONF4 (users 1-8, Joker) or CONF5 (users 9-16)."""
    block: int = 4
    users: tuple[UserRecord, ...] = ()

    @property
    def kind(self) -> ResponseKind:
        return CONF_KINDS[self.block]


@dataclass(frozen=True)
class Ack(ParsedResponse):
    """OK:STATUS[:scenario]"""
    status: Optional[str] = None
    scenario: Optional[str] = None

    kind = ResponseKind.OK


@dataclass(frozen=True)
class StatusReport(ParsedResponse):
    """STATUS:... or the multi-line SYS: form."""
    status: Optional[str] = None
    scenario: Optional[str] = None
    zones_raw: Optional[str] = None

    kind = ResponseKind.STATUS

    @property
    def alarm_status(self) -> AlarmStatus:
        try:
            return AlarmStatus(self.status)
        except ValueError:
            return AlarmStatus.UNKNOWN


@dataclass(frozen=True)
class ErrorReport(ParsedResponse):
    """ERR:code - the code is opaque and passed through verbatim."""
    code: str = ""

    kind = ResponseKind.ERROR

    @property
    def success(self) -> bool:
        return False


@dataclass(frozen=True)
class Unrecognized(ParsedResponse):
    text: str = field(default="", repr=False)

    kind = ResponseKind.UNRECOGNIZED

    @property
    def success(self) -> bool:
        return False
