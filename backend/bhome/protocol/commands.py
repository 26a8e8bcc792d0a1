"""Command builders for the BHome SMS alarm protocol.

Every command is a short ASCII text sent as a single SMS body. Slot and
zone values are validated by the caller before a command is built; the
builders here only format.
"""

from dataclasses import dataclass
from typing import Iterable

from .constants import (
    CMD_ARM_CUSTOM,
    CMD_ARM_SCENARIO,
    CMD_CONF,
    CMD_DISARM,
    CMD_SET_USER,
    CMD_STATUS,
    PERMISSION_NAMES,
    PERM_CMD_ON_OFF,
    PERM_RX1,
    PERM_RX2,
    PERM_VERIFY,
    ZONE_COUNT,
)


# --- Zone mask helpers ---

def zones_to_mask(zones: Iterable[int]) -> int:
    """Build an 8-bit zone mask: zone n sets bit n-1."""
    mask = 0
    for zone in zones:
        if not 1 <= zone <= ZONE_COUNT:
            raise ValueError(f"Zone out of range: {zone}")
        mask |= 1 << (zone - 1)
    return mask


def mask_to_zones(mask: int) -> list[int]:
    """Return the zone numbers included in a mask, ascending."""
    return [zone for zone in range(1, ZONE_COUNT + 1) if mask & (1 << (zone - 1))]


def mask_to_digits(mask: int) -> str:
    """Render a zone mask as the CUST: digit string: {1,3,4} -> "134"."""
    return "".join(str(zone) for zone in mask_to_zones(mask))


def digits_to_mask(digits: str) -> int:
    """Inverse of mask_to_digits."""
    return zones_to_mask(int(ch) for ch in digits)


# --- Permission helpers ---

def build_permissions(rx1: bool, rx2: bool, verify: bool, cmd_on_off: bool) -> int:
    perm = 0
    if rx1:
        perm |= PERM_RX1
    if rx2:
        perm |= PERM_RX2
    if verify:
        perm |= PERM_VERIFY
    if cmd_on_off:
        perm |= PERM_CMD_ON_OFF
    return perm


def permissions_to_string(mask: int) -> str:
    """Render a permission mask as the 4-character BBBB wire string."""
    return format(mask & 0x0F, "04b")


def permission_names(mask: int) -> str:
    """Human-readable permission list, e.g. "RX1 VERIFY"."""
    return " ".join(name for bit, name in PERMISSION_NAMES.items() if mask & bit)


# --- Builders ---

def build_conf_query(step: int) -> str:
    """CONFn? - request configuration block n (1-5)."""
    return CMD_CONF.format(step=step)


def build_arm_scenario_command(scenario: int) -> str:
    """SCE:nn - arm with predefined scenario 1-16 (two digits)."""
    return CMD_ARM_SCENARIO.format(scenario=scenario)


def build_arm_custom_command(zone_mask: int) -> str:
    """CUST:ddd - arm the zones in the mask, ascending, no separators."""
    return CMD_ARM_CUSTOM.format(digits=mask_to_digits(zone_mask))


def build_disarm_command() -> str:
    return CMD_DISARM


def build_status_command() -> str:
    return CMD_STATUS


def build_set_user_command(slot: int, permissions: int) -> str:
    """SET:Unnpppp - set user nn permissions.

    Format: SET:U + 2-digit slot + 4-bit permission string.
    """
    return CMD_SET_USER.format(slot=slot, permissions=permissions_to_string(permissions))


# --- Command variants ---

class Command:
    """Base class for outgoing commands. Each variant renders one wire string."""

    def to_wire(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class ConfQuery(Command):
    step: int

    def to_wire(self) -> str:
        return build_conf_query(self.step)


@dataclass(frozen=True)
class ArmScenario(Command):
    scenario: int

    def to_wire(self) -> str:
        return build_arm_scenario_command(self.scenario)


@dataclass(frozen=True)
class ArmCustom(Command):
    zone_mask: int

    @classmethod
    def from_zones(cls, zones: Iterable[int]) -> "ArmCustom":
        return cls(zones_to_mask(zones))

    @property
    def zone_digits(self) -> str:
        return mask_to_digits(self.zone_mask)

    def to_wire(self) -> str:
        return build_arm_custom_command(self.zone_mask)


@dataclass(frozen=True)
class Disarm(Command):
    def to_wire(self) -> str:
        return build_disarm_command()


@dataclass(frozen=True)
class StatusQuery(Command):
    def to_wire(self) -> str:
        return build_status_command()


@dataclass(frozen=True)
class SetUserPermissions(Command):
    slot: int
    permissions: int

    def to_wire(self) -> str:
        return build_set_user_command(self.slot, self.permissions)


def encode(command: Command) -> str:
    """Render a command as its SMS body."""
    return command.to_wire()
