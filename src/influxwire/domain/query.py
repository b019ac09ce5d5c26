"""
Query Model
===========

Rendered queries and the duration literals shared by both query languages.
"""

import re
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional


class QueryLanguage(str, Enum):
    INFLUXQL = "influxql"
    FLUX = "flux"


@dataclass(frozen=True)
class Query:
    """
    A fully rendered query plus the target it is dispatched to.

    ``database`` is used for InfluxQL queries, ``bucket`` for Flux ones.
    """

    text: str
    language: QueryLanguage
    database: Optional[str] = None
    bucket: Optional[str] = None

    def __str__(self) -> str:
        return self.text


# Unit suffix -> nanoseconds, coarsest first
DURATION_UNITS = {
    "w": 7 * 24 * 3600 * 10 ** 9,
    "d": 24 * 3600 * 10 ** 9,
    "h": 3600 * 10 ** 9,
    "m": 60 * 10 ** 9,
    "s": 10 ** 9,
    "ms": 10 ** 6,
    "us": 10 ** 3,
    "ns": 1,
}
INFINITE = "inf"

_DURATION_PART_RE = re.compile(r"(\d+)(ns|us|µs|ms|s|m|h|d|w)")


@dataclass(frozen=True)
class Duration:
    """
    A duration literal such as ``15m`` or ``-1h``.

    ``Duration.infinity()`` renders as ``inf`` (Flux's unbounded window).
    """

    amount: int
    unit: str = "s"

    def __post_init__(self):
        if self.unit != INFINITE and self.unit not in DURATION_UNITS:
            raise ValueError(f"Unknown duration unit {self.unit!r}")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(f"Duration amount must be an integer, got {self.amount!r}")

    @classmethod
    def infinity(cls) -> "Duration":
        return cls(0, INFINITE)

    @classmethod
    def from_nanoseconds(cls, nanos: int) -> "Duration":
        """Express a nanosecond count in the coarsest unit that keeps it exact."""
        if nanos == 0:
            return cls(0, "s")
        for unit, size in DURATION_UNITS.items():
            if nanos % size == 0:
                return cls(nanos // size, unit)
        return cls(nanos, "ns")

    @classmethod
    def from_timedelta(cls, value: timedelta) -> "Duration":
        nanos = (value.days * 86400 + value.seconds) * 10 ** 9 + value.microseconds * 1000
        # pandas.Timedelta carries sub-microsecond precision
        nanos += getattr(value, "nanoseconds", 0)
        return cls.from_nanoseconds(nanos)

    @classmethod
    def parse(cls, text: str) -> "Duration":
        """
        Parse a duration literal.

        Accepts an optional leading minus sign and ``inf``. Single-unit
        literals keep their unit; compound ones (``1h30m``) are expressed in
        the coarsest exact unit.

        Raises:
            ValueError: If the text is not a duration literal
        """
        literal = text.strip()
        if literal == INFINITE:
            return cls.infinity()

        sign = 1
        if literal.startswith("-"):
            sign, literal = -1, literal[1:]

        position = 0
        parts = []
        for match in _DURATION_PART_RE.finditer(literal):
            if match.start() != position:
                break
            unit = "us" if match.group(2) == "µs" else match.group(2)
            parts.append((int(match.group(1)), unit))
            position = match.end()

        if not parts or position != len(literal):
            raise ValueError(f"Invalid duration literal {text!r}")
        if len(parts) == 1:
            amount, unit = parts[0]
            return cls(sign * amount, unit)
        return cls.from_nanoseconds(sign * sum(amount * DURATION_UNITS[unit] for amount, unit in parts))

    @property
    def is_infinite(self) -> bool:
        return self.unit == INFINITE

    @property
    def nanoseconds(self) -> int:
        if self.is_infinite:
            raise ValueError("Infinite duration has no length")
        return self.amount * DURATION_UNITS[self.unit]

    def to_timedelta(self) -> timedelta:
        return timedelta(microseconds=self.nanoseconds / 1000)

    def __neg__(self) -> "Duration":
        if self.is_infinite:
            return self
        return Duration(-self.amount, self.unit)

    def __str__(self) -> str:
        if self.is_infinite:
            return INFINITE
        return f"{self.amount}{self.unit}"
