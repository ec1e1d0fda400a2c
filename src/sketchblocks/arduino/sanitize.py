"""
Field value sanitizers shared by the code generator and the heuristic parser.
"""

from typing import Any, Optional
import math
import re

from sketchblocks.arduino.lexer import KEYWORDS

# Leading numeric prefix, the way a lenient float parser reads "12abc" as 12
_NUMBER_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_INVALID_NAME_CHARS = re.compile(r"[^A-Za-z0-9_]")
# "010" would read as octal in C
_LEADING_ZERO = re.compile(r"^[+-]?0\d")

# Compared case-insensitively; the lexer's keywords and constants plus
# the C keywords and Arduino macros it does not tokenize specially
RESERVED_NAMES = frozenset(
    {keyword.lower() for keyword in KEYWORDS}
    | {
        "setup", "loop",
        "double", "short", "bool", "word", "size_t",
        "do", "break", "continue", "switch", "case", "default", "goto",
        "const", "static", "volatile", "struct", "sizeof",
        "led_builtin", "pi",
    }
)


def format_number(value: float) -> str:
    """Render integers without a decimal point ("13", not "13.0")."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def sanitize_number(
    value: Any,
    default: str = "0",
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> str:
    """
    Turn a field value into a numeric literal.

    Non-numeric or empty input yields default; the numeric prefix of
    mixed text is used ("12ms" -> "12"). Text that is already a number
    keeps its spelling, so "5.0" stays a float literal. Results are
    clamped to [minimum, maximum] when bounds are given.

    >>> sanitize_number("999", "13", 0, 53)
    '53'
    >>> sanitize_number("abc", "1000", 0)
    '1000'
    >>> sanitize_number("2.50")
    '2.50'
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
        text = None
    else:
        match = _NUMBER_PREFIX.match(str(value))
        if not match:
            return default
        text = match.group(0).strip()
        number = float(text)

    if not math.isfinite(number):
        return default
    if minimum is not None and number < minimum:
        return format_number(minimum)
    if maximum is not None and number > maximum:
        return format_number(maximum)
    if text is not None and not _LEADING_ZERO.match(text):
        return text
    return format_number(number)


def sanitize_variable_name(name: Any, default: str = "variable") -> str:
    """
    Turn arbitrary text into a usable C identifier.

    Characters outside [A-Za-z0-9_] are dropped, a leading digit gets an
    underscore prefix, and names that collide (case-insensitively) with
    sketch keywords or Arduino constants are prefixed with an underscore.
    Sanitizing an already sanitized name returns it unchanged.

    >>> sanitize_variable_name("my-var")
    'myvar'
    >>> sanitize_variable_name("loop")
    '_loop'
    >>> sanitize_variable_name("OUTPUT")
    '_OUTPUT'
    """
    if not name or not isinstance(name, str):
        return default

    clean = _INVALID_NAME_CHARS.sub("", name)
    if not clean:
        return default
    if clean[0].isdigit():
        clean = "_" + clean
    if clean.lower() in RESERVED_NAMES:
        clean = "_" + clean
    return clean
