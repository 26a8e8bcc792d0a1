"""SMS response parser for the BHome alarm protocol.

classify() looks only at the leading characters of a body; decode()
turns a body into a typed ParsedResponse. Neither raises: malformed
sub-fields are skipped and flagged, unknown bodies become Unrecognized.

Body formats:
    CONF1:3.2&MAIN.1111&Z1=Ingresso&Z2=NE#
    CONF2:S01=Casa&S02=NE#          (CONF3 same, scenarios 9-16)
    CONF4:RJO=Joker&R01=Mario#      (CONF5 same, users 9-16)
    OK:ARMED:Casa
    STATUS:ARMED&SCE=Casa&ZONES=134
    ERR:E02
    SYS: ON\\nSCE:Casa\\nZONES:1,2,3\\n230V: OK\\nBATT: OK
"""

import logging
import re
from typing import Optional

from .constants import (
    AlarmStatus,
    JOKER_PREFIX,
    MAIN_ACCOUNT,
    NOT_ENABLED,
    NO_SCENARIO,
    RESPONSE_PREFIXES,
    RESP_ERROR,
    RESP_OK,
    RESP_STATUS,
    RESP_SYS,
    ResponseKind,
    SCENARIO_COUNT,
    SEP_ASSIGN,
    SEP_COMMAND,
    SEP_END,
    SEP_FIELD,
    SEP_FLAGS,
    USER_COUNT,
)
from .responses import (
    Ack,
    Conf1Block,
    ErrorReport,
    ParsedResponse,
    ScenarioBlock,
    ScenarioRecord,
    StatusReport,
    Unrecognized,
    UserBlock,
    UserRecord,
    ZoneRecord,
)

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"\d+\.\d+")
_ZONE_KEY_RE = re.compile(r"Z([1-8])")
_SCENARIO_KEY_RE = re.compile(r"S(\d{2})")
_USER_KEY_RE = re.compile(r"R(\d{2})")
_FLAG_BITS_RE = re.compile(r"[01]{4}")

CONF_PREFIX_LEN = len("CONF1:")


# --- Terminators ---

def is_terminated(text: Optional[str]) -> bool:
    """True if the body ends with the final terminator '#'."""
    return bool(text) and text[-1] == SEP_END


def has_continuation(text: Optional[str]) -> bool:
    """True if the body ends with '&' (more parts expected)."""
    return bool(text) and text[-1] == SEP_FIELD


def strip_terminator(text: str) -> str:
    """Remove a single trailing '#' or '&'."""
    if text and text[-1] in (SEP_END, SEP_FIELD):
        return text[:-1]
    return text


# --- Classification ---

def classify(text: Optional[str]) -> ResponseKind:
    """Identify the response kind from the leading characters."""
    if not text:
        return ResponseKind.UNRECOGNIZED
    for prefix, kind in RESPONSE_PREFIXES:
        if text.startswith(prefix):
            return kind
    return ResponseKind.UNRECOGNIZED


# --- Block parsers ---

def _split_fields(text: str, prefix_len: int) -> list[str]:
    body = strip_terminator(text[prefix_len:])
    return [f for f in body.split(SEP_FIELD) if f]


def parse_conf1(text: str, continued: bool = False) -> Conf1Block:
    """Parse CONF1: version, MAIN.BBBB flags and Zn=name fields."""
    version = None
    is_main = False
    bits = "0000"
    zones = []
    incomplete = False

    for f in _split_fields(text, CONF_PREFIX_LEN):
        if SEP_ASSIGN not in f and SEP_FLAGS in f:
            if _VERSION_RE.fullmatch(f):
                version = f
                continue
            word, _, flags = f.partition(SEP_FLAGS)
            is_main = word == MAIN_ACCOUNT
            if _FLAG_BITS_RE.fullmatch(flags):
                bits = flags
            else:
                incomplete = True
        elif f.startswith("Z") and SEP_ASSIGN in f:
            key, _, name = f.partition(SEP_ASSIGN)
            m = _ZONE_KEY_RE.fullmatch(key)
            if m is None:
                incomplete = True
                continue
            zones.append(ZoneRecord(int(m.group(1)), name, name != NOT_ENABLED))
        # anything else is ignored for forward compatibility

    return Conf1Block(
        continued=continued,
        incomplete=incomplete,
        version=version,
        is_main=is_main,
        rx1=bits[0] == "1",
        rx2=bits[1] == "1",
        verify=bits[2] == "1",
        cmd_on_off=bits[3] == "1",
        zones=tuple(zones),
    )


def parse_scenarios(text: str, block: int, continued: bool = False) -> ScenarioBlock:
    """Parse CONF2/CONF3 Snn=name fields into predefined scenarios."""
    scenarios = []
    incomplete = False

    for f in _split_fields(text, CONF_PREFIX_LEN):
        if not (f.startswith("S") and SEP_ASSIGN in f):
            continue
        key, _, name = f.partition(SEP_ASSIGN)
        m = _SCENARIO_KEY_RE.fullmatch(key)
        if m is None or not 1 <= int(m.group(1)) <= SCENARIO_COUNT:
            incomplete = True
            continue
        scenarios.append(ScenarioRecord(
            slot=int(m.group(1)),
            name=name,
            enabled=name != NOT_ENABLED,
        ))

    return ScenarioBlock(
        continued=continued,
        incomplete=incomplete,
        block=block,
        scenarios=tuple(scenarios),
    )


def parse_users(text: str, block: int, continued: bool = False) -> UserBlock:
    """Parse CONF4/CONF5 RJO=name (Joker) and Rnn=name fields."""
    users = []
    incomplete = False

    for f in _split_fields(text, CONF_PREFIX_LEN):
        if SEP_ASSIGN not in f:
            continue
        key, _, name = f.partition(SEP_ASSIGN)
        if key == JOKER_PREFIX:
            users.append(UserRecord.joker(name))
            continue
        m = _USER_KEY_RE.fullmatch(key)
        if m is None or not 1 <= int(m.group(1)) <= USER_COUNT:
            incomplete = True
            continue
        users.append(UserRecord(
            slot=int(m.group(1)),
            name=name,
            enabled=name != NOT_ENABLED,
        ))

    return UserBlock(
        continued=continued,
        incomplete=incomplete,
        block=block,
        users=tuple(users),
    )


def parse_ok(content: str, continued: bool = False) -> Ack:
    """OK:ARMED:scenario_name or OK:DISARMED"""
    parts = content[len(RESP_OK):].split(SEP_COMMAND)
    status = parts[0] or None
    scenario = parts[1] if len(parts) >= 2 and parts[1] else None
    return Ack(continued=continued, status=status, scenario=scenario)


def parse_status(content: str, continued: bool = False) -> StatusReport:
    """STATUS:ARMED&SCE=Casa&ZONES=1234"""
    status = None
    scenario = None
    zones = None
    incomplete = False

    for part in content[len(RESP_STATUS):].split(SEP_FIELD):
        if not part:
            continue
        if SEP_ASSIGN in part:
            kv = part.split(SEP_ASSIGN)
            if len(kv) != 2:
                incomplete = True
                continue
            if kv[0] == "SCE":
                scenario = kv[1]
            elif kv[0] == "ZONES":
                zones = kv[1]
        else:
            status = part

    return StatusReport(
        continued=continued,
        incomplete=incomplete,
        status=status,
        scenario=scenario,
        zones_raw=zones,
    )


def _sys_status(value: str) -> AlarmStatus:
    upper = value.upper()
    if upper == "ON":
        return AlarmStatus.ARMED
    if upper == "OFF":
        return AlarmStatus.DISARMED
    if "ALARM" in upper:
        return AlarmStatus.ALARM
    if "TAMPER" in upper:
        return AlarmStatus.TAMPER
    return AlarmStatus.UNKNOWN


def parse_sys_status(content: str, continued: bool = False) -> StatusReport:
    """Multi-line "KEY: value" status form.

    Only SYS, SCE and ZONES are read; telemetry lines (230V, BATT, ...)
    are ignored.
    """
    status = None
    scenario = None
    zones = None

    for line in content.split("\n"):
        key, sep, value = line.strip().partition(SEP_COMMAND)
        if not sep:
            continue
        key = key.strip().upper()
        value = value.strip()
        if key == "SYS":
            status = _sys_status(value).value
        elif key == "SCE":
            if value and value != NO_SCENARIO:
                scenario = value
        elif key == "ZONES":
            zones = value

    return StatusReport(
        continued=continued,
        status=status,
        scenario=scenario,
        zones_raw=zones,
    )


# --- Entry point ---

def decode(text: Optional[str]) -> ParsedResponse:
    """Decode an SMS body into a ParsedResponse. Never raises."""
    kind = classify(text)
    if kind is ResponseKind.UNRECOGNIZED:
        return Unrecognized(text=text or "")

    continued = has_continuation(text)
    if continued:
        # TODO: reassemble multi-part bodies once the panel's continuation
        # framing is documented; for now the fragment is decoded as final.
        logger.info("Body ends with continuation marker; decoding as final")

    try:
        result = _decode_kind(kind, text, continued)
    except (ValueError, IndexError) as e:
        logger.warning("Failed to decode %s body %r: %s", kind.value, text, e)
        return Unrecognized(text=text)

    if result.incomplete:
        logger.warning("Incomplete %s body, some fields skipped: %r", kind.value, text)
    return result


def _decode_kind(kind: ResponseKind, text: str, continued: bool) -> ParsedResponse:
    if kind is ResponseKind.CONF1:
        return parse_conf1(text, continued)
    if kind in (ResponseKind.CONF2, ResponseKind.CONF3):
        return parse_scenarios(text, int(kind.value[-1]), continued)
    if kind in (ResponseKind.CONF4, ResponseKind.CONF5):
        return parse_users(text, int(kind.value[-1]), continued)

    content = strip_terminator(text)
    if kind is ResponseKind.OK:
        return parse_ok(content, continued)
    if kind is ResponseKind.ERROR:
        return ErrorReport(continued=continued, code=content[len(RESP_ERROR):])
    if content.startswith(RESP_SYS):
        return parse_sys_status(content, continued)
    return parse_status(content, continued)
