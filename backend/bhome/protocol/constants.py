"""Protocol constants for the BHome SMS alarm panel interface."""

from enum import Enum, IntEnum

# Outgoing command templates
CMD_CONF = "CONF{step}?"
CMD_ARM_SCENARIO = "SCE:{scenario:02d}"
CMD_ARM_CUSTOM = "CUST:{digits}"
CMD_DISARM = "SYS OFF"
CMD_STATUS = "SYS?"
CMD_SET_USER = "SET:U{slot:02d}{permissions}"

# Incoming response prefixes
RESP_CONF1 = "CONF1:"
RESP_CONF2 = "CONF2:"
RESP_CONF3 = "CONF3:"
RESP_CONF4 = "CONF4:"
RESP_CONF5 = "CONF5:"
RESP_OK = "OK:"
RESP_STATUS = "STATUS:"
RESP_ERROR = "ERR:"
RESP_SYS = ("SYS:", "SYS :")  # multi-line status form sent by real panels

# Separators
SEP_COMMAND = ":"
SEP_FIELD = "&"   # also the continuation terminator
SEP_END = "#"
SEP_ASSIGN = "="
SEP_FLAGS = "."

# "Not enabled" sentinel for zones, scenarios and users
NOT_ENABLED = "NE"
MAIN_ACCOUNT = "MAIN"
JOKER_PREFIX = "RJO"
JOKER_SLOT = 0
NO_SCENARIO = "---"

# Slot ranges
ZONE_COUNT = 8
SCENARIO_COUNT = 16
USER_COUNT = 16
CUSTOM_SCENARIO_BASE = 100  # locally created scenarios use slots above this

# Permission bits, in FLAGS.BBBB order (leftmost character is RX1)
PERM_RX1 = 0b1000
PERM_RX2 = 0b0100
PERM_VERIFY = 0b0010
PERM_CMD_ON_OFF = 0b0001
PERM_ALL = 0b1111
PERM_NONE = 0b0000

PERMISSION_NAMES = {
    PERM_RX1: "RX1",
    PERM_RX2: "RX2",
    PERM_VERIFY: "VERIFY",
    PERM_CMD_ON_OFF: "CMD",
}

# Timeouts (seconds)
TIMEOUT_SMS_SEND = 10.0
TIMEOUT_SMS_RESPONSE = 60.0

# Retry (available to an outer policy, not used by the engine)
RETRY_DELAY = 5.0
MAX_RETRIES = 2

CONFIG_TOTAL_STEPS = 5

# Panel error codes
ERROR_UNKNOWN_CMD = "E01"
ERROR_INVALID_PARAM = "E02"
ERROR_UNAUTHORIZED = "E03"
ERROR_SYSTEM_BUSY = "E04"
ERROR_INTERNAL = "E05"

ERROR_DESCRIPTIONS = {
    ERROR_UNKNOWN_CMD: "Unknown command",
    ERROR_INVALID_PARAM: "Invalid parameter",
    ERROR_UNAUTHORIZED: "Number not authorized",
    ERROR_SYSTEM_BUSY: "System busy",
    ERROR_INTERNAL: "Internal panel error",
}


class AlarmStatus(str, Enum):
    """Alarm status tokens as reported by the panel."""
    ARMED = "ARMED"
    DISARMED = "DISARMED"
    ALARM = "ALARM"
    TAMPER = "TAMPER"
    UNKNOWN = "UNKNOWN"


class ResponseKind(str, Enum):
    """Classification of an incoming SMS body."""
    CONF1 = "CONF1"
    CONF2 = "CONF2"
    CONF3 = "CONF3"
    CONF4 = "CONF4"
    CONF5 = "CONF5"
    OK = "OK"
    STATUS = "STATUS"
    ERROR = "ERROR"
    UNRECOGNIZED = "UNRECOGNIZED"


# Ordered prefix table; first match wins
RESPONSE_PREFIXES = [
    (RESP_CONF1, ResponseKind.CONF1),
    (RESP_CONF2, ResponseKind.CONF2),
    (RESP_CONF3, ResponseKind.CONF3),
    (RESP_CONF4, ResponseKind.CONF4),
    (RESP_CONF5, ResponseKind.CONF5),
    (RESP_OK, ResponseKind.OK),
    (RESP_STATUS, ResponseKind.STATUS),
    (RESP_ERROR, ResponseKind.ERROR),
    (RESP_SYS[0], ResponseKind.STATUS),
    (RESP_SYS[1], ResponseKind.STATUS),
]

CONF_KINDS = {
    1: ResponseKind.CONF1,
    2: ResponseKind.CONF2,
    3: ResponseKind.CONF3,
    4: ResponseKind.CONF4,
    5: ResponseKind.CONF5,
}


class ConfigState(IntEnum):
    """Configuration handshake states."""
    ERROR = -1
    IDLE = 0
    CONF1 = 1
    CONF2 = 2
    CONF3 = 3
    CONF4 = 4
    CONF5 = 5
    COMPLETE = 6


CONFIG_STEP_NAMES = {
    1: "CONF1 - Base configuration",
    2: "CONF2 - Scenarios 1-8",
    3: "CONF3 - Scenarios 9-16",
    4: "CONF4 - Users 1-8",
    5: "CONF5 - Users 9-16",
}
