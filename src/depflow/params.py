"""Typed task parameters.

Parameters are bound from command-line style flags. Each registered parameter
owns a factory producing a fresh :class:`Value` for every run so that values
never leak between invocations.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from fractions import Fraction
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from depflow.runner import TF

_INT_MIN = -(2**63)
_INT_MAX = 2**63 - 1

_INT_RE = re.compile(
    r"[+-]?(?:0[xX][0-9a-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+|0[0-7_]+|[0-9][0-9_]*)"
)
_LEGACY_OCTAL_RE = re.compile(r"[+-]?0[0-7_]+")
_HEX_FLOAT_RE = re.compile(r"[+-]?0[xX][0-9a-fA-F_.]+[pP][+-]?[0-9]+")

_TRUE_TOKENS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_TOKENS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

# Nanoseconds per unit.
_DURATION_UNITS: dict[str, int] = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,  # U+00B5 micro sign
    "μs": 1_000,  # U+03BC greek mu
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART_RE = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")


class ParamNotSetError(Exception):
    """Raised when a parameter is read through a typed accessor but was never set."""

    def __init__(self, key: str) -> None:
        super().__init__(f"parameter is not set: {key}")
        self.key = key


class ParamValueError(ValueError):
    """Raised when parameter text cannot be converted to the requested type."""

    def __init__(self, kind: str, text: str, reason: str = "invalid syntax") -> None:
        super().__init__(f"parsing {kind} {text!r}: {reason}")
        self.kind = kind
        self.text = text
        self.reason = reason


class ParamNotDeclaredError(LookupError):
    """Raised when a task reads a parameter it did not declare."""

    def __init__(self, name: str, task: str) -> None:
        super().__init__(f"parameter {name!r} is not declared by task {task!r}")
        self.name = name
        self.task = task


# ---------------------------------------------------------------------------
# Literal parsing
# ---------------------------------------------------------------------------


def parse_int(text: str) -> int:
    """Parse a signed 64-bit integer literal with optional base prefix."""
    if not _INT_RE.fullmatch(text) or "__" in text or text.endswith("_"):
        raise ParamValueError("int", text)
    try:
        if _LEGACY_OCTAL_RE.fullmatch(text):
            value = int(text, 8)
        else:
            value = int(text, 0)
    except ValueError:
        raise ParamValueError("int", text) from None
    if not _INT_MIN <= value <= _INT_MAX:
        raise ParamValueError("int", text, "value out of range")
    return value


def parse_bool(text: str) -> bool:
    if text in _TRUE_TOKENS:
        return True
    if text in _FALSE_TOKENS:
        return False
    raise ParamValueError("bool", text)


def parse_float(text: str) -> float:
    """Parse decimal or hexadecimal floating-point syntax."""
    if text != text.strip() or not text or not text.isascii():
        raise ParamValueError("float", text)
    hex_literal = _HEX_FLOAT_RE.fullmatch(text) is not None
    # Underscores are only allowed after a base prefix.
    if "_" in text and (not hex_literal or "__" in text):
        raise ParamValueError("float", text)
    try:
        if hex_literal:
            return float.fromhex(text.replace("_", ""))
        return float(text)
    except (ValueError, OverflowError):
        raise ParamValueError("float", text) from None


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``300ms``, ``-1.5h`` or ``2h45m``.

    Valid units are ``ns``, ``us`` (or ``µs``), ``ms``, ``s``, ``m`` and ``h``.
    Precision below one microsecond is rounded away.
    """
    body = text
    negative = False
    if body[:1] in ("-", "+"):
        negative = body[0] == "-"
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ParamValueError("duration", text)

    total = Fraction(0)
    pos = 0
    while pos < len(body):
        match = _DURATION_PART_RE.match(body, pos)
        if match is None:
            raise ParamValueError("duration", text)
        number, unit = match.groups()
        total += Fraction(number.rstrip(".") or "0") * _DURATION_UNITS[unit]
        pos = match.end()

    if negative:
        total = -total
    if not _INT_MIN <= total <= _INT_MAX:
        raise ParamValueError("duration", text, "invalid duration")
    return timedelta(microseconds=round(total / 1_000))


def _fraction_text(value: int, scale: int) -> str:
    whole, frac = divmod(value, scale)
    if not frac:
        return str(whole)
    digits = len(str(scale)) - 1
    return f"{whole}.{str(frac).rjust(digits, '0').rstrip('0')}"


def format_duration(value: timedelta) -> str:
    """Render a duration in the compact form accepted by :func:`parse_duration`."""
    nanos = (value.days * 86_400 + value.seconds) * 1_000_000_000 + value.microseconds * 1_000
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)

    if nanos < 1_000:
        return f"{sign}{nanos}ns"
    if nanos < 1_000_000:
        return f"{sign}{_fraction_text(nanos, 1_000)}µs"
    if nanos < 1_000_000_000:
        return f"{sign}{_fraction_text(nanos, 1_000_000)}ms"

    total_seconds, sub = divmod(nanos, 1_000_000_000)
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    secs = _fraction_text(seconds * 1_000_000_000 + sub, 1_000_000_000)
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{sign}{minutes}m{secs}s"
    return f"{sign}{secs}s"


# ---------------------------------------------------------------------------
# String-map parameters
# ---------------------------------------------------------------------------


class Params(dict[str, str]):
    """Raw parameter text keyed by parameter name, with typed accessors.

    An empty string means the parameter was not set.
    """

    def _raw(self, key: str) -> str:
        text = self.get(key, "")
        if text == "":
            raise ParamNotSetError(key)
        return text

    def int(self, key: str) -> int:  # noqa: A003
        return parse_int(self._raw(key))

    def bool(self, key: str) -> bool:  # noqa: A003
        """Accepts 1, t, T, TRUE, true, True, 0, f, F, FALSE, false, False."""
        return parse_bool(self._raw(key))

    def float(self, key: str) -> float:  # noqa: A003
        return parse_float(self._raw(key))

    def duration(self, key: str) -> timedelta:
        return parse_duration(self._raw(key))


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


@runtime_checkable
class Value(Protocol):
    """A parameter value that can be set from flag text."""

    def set(self, text: str) -> None: ...  # noqa: A003

    def __str__(self) -> str: ...

    def is_bool(self) -> bool: ...


class BoolValue:
    def __init__(self, value: bool = False) -> None:
        self.value = value

    def set(self, text: str) -> None:  # noqa: A003
        # A bare flag ("-v") arrives as an empty string.
        self.value = True if text == "" else parse_bool(text)

    def get(self) -> bool:
        return self.value

    def is_bool(self) -> bool:
        return True

    def __str__(self) -> str:
        return "true" if self.value else "false"


class IntValue:
    def __init__(self, value: int = 0) -> None:
        self.value = value

    def set(self, text: str) -> None:  # noqa: A003
        self.value = parse_int(text)

    def get(self) -> int:
        return self.value

    def is_bool(self) -> bool:
        return False

    def __str__(self) -> str:
        return str(self.value)


class FloatValue:
    def __init__(self, value: float = 0.0) -> None:
        self.value = value

    def set(self, text: str) -> None:  # noqa: A003
        self.value = parse_float(text)

    def get(self) -> float:
        return self.value

    def is_bool(self) -> bool:
        return False

    def __str__(self) -> str:
        return repr(self.value)


class StringValue:
    def __init__(self, value: str = "") -> None:
        self.value = value

    def set(self, text: str) -> None:  # noqa: A003
        self.value = text

    def get(self) -> str:
        return self.value

    def is_bool(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.value


class DurationValue:
    def __init__(self, value: timedelta | None = None) -> None:
        self.value = value if value is not None else timedelta(0)

    def set(self, text: str) -> None:  # noqa: A003
        self.value = parse_duration(text)

    def get(self) -> timedelta:
        return self.value

    def is_bool(self) -> bool:
        return False

    def __str__(self) -> str:
        return format_duration(self.value)


# ---------------------------------------------------------------------------
# Definitions and handles
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParameterInfo:
    """Name and usage text of a parameter."""

    name: str
    usage: str = ""

    @property
    def long_flag(self) -> str:
        return f"--{self.name}"

    @property
    def short_flag(self) -> str:
        """``-x`` for single-character names, otherwise empty."""
        if len(self.name) == 1:
            return f"-{self.name}"
        return ""


@dataclass(frozen=True, slots=True)
class ParameterDefinition:
    info: ParameterInfo
    new_value: Callable[[], Value]


@dataclass(frozen=True, slots=True)
class RegisteredParam:
    """Handle to a registered parameter, declared by tasks that read it."""

    name: str

    def value(self, tf: TF) -> Value:
        return tf.value(self.name)


class ValueParam(RegisteredParam):
    def get(self, tf: TF) -> Any:
        return self.value(tf)


class BoolParam(RegisteredParam):
    def get(self, tf: TF) -> bool:
        value = self.value(tf)
        if isinstance(value, BoolValue):
            return value.get()
        return parse_bool(str(value))


class IntParam(RegisteredParam):
    def get(self, tf: TF) -> int:
        value = self.value(tf)
        if isinstance(value, IntValue):
            return value.get()
        return parse_int(str(value))


class FloatParam(RegisteredParam):
    def get(self, tf: TF) -> float:
        value = self.value(tf)
        if isinstance(value, FloatValue):
            return value.get()
        return parse_float(str(value))


class StringParam(RegisteredParam):
    def get(self, tf: TF) -> str:
        return str(self.value(tf))


class DurationParam(RegisteredParam):
    def get(self, tf: TF) -> timedelta:
        value = self.value(tf)
        if isinstance(value, DurationValue):
            return value.get()
        return parse_duration(str(value))
