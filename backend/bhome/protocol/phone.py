"""Phone number helpers used to recognise messages from the panel."""

import re

_STRIP_RE = re.compile(r"[\s\-()]")
_VALID_RE = re.compile(r"\+?\d+")

# Compare on the trailing digits so "+39 333..." matches "333..."
MATCH_DIGITS = 9


def normalize(number: str | None) -> str:
    """Strip separators and the Italian international prefix."""
    if not number:
        return ""
    cleaned = _STRIP_RE.sub("", number)
    if cleaned.startswith("+39"):
        cleaned = cleaned[3:]
    elif cleaned.startswith("0039"):
        cleaned = cleaned[4:]
    return cleaned


def matches(number1: str | None, number2: str | None) -> bool:
    n1 = normalize(number1)
    n2 = normalize(number2)
    if not n1 or not n2:
        return False
    if len(n1) >= MATCH_DIGITS and len(n2) >= MATCH_DIGITS:
        return n1[-MATCH_DIGITS:] == n2[-MATCH_DIGITS:]
    return n1 == n2


def is_valid(number: str | None) -> bool:
    """At least 5 characters, digits only with an optional leading '+'."""
    if not number:
        return False
    cleaned = _STRIP_RE.sub("", number)
    if len(cleaned) < 5:
        return False
    return _VALID_RE.fullmatch(cleaned) is not None


def mask(number: str | None) -> str:
    """Hide all but the last four digits for display."""
    normalized = normalize(number)
    if not normalized:
        return ""
    if len(normalized) <= 4:
        return "***"
    return "***" + normalized[-4:]
