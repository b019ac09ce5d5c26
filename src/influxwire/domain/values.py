"""
Value Model
===========

The closed set of scalar types exchanged with InfluxDB, together with
their canonical text forms:

- line protocol (``to_line_protocol`` / ``Value.parse_line_protocol``)
- JSON (``to_json`` / ``Value.parse_json``)
- annotated-CSV cells (``to_csv`` / ``Value.parse_csv``)

Each parser is the exact left-inverse of its encoder. Timestamps are
tz-aware UTC ``pandas.Timestamp`` objects so that nanosecond precision
survives every conversion.

Usage:
    from influxwire.domain.values import Value

    value = Value.of(55.383333)
    value.to_line_protocol()             # '55.383333'
    Value.int64(42).to_line_protocol()   # '42i'
"""

import json
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from influxwire.core.exceptions import ConversionError, EncodingError, ParseError


INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1
UINT64_MAX = 2 ** 64 - 1

NANOS_PER_SECOND = 1_000_000_000

# Floats whose repr uses an exponent are expanded to positional notation
# while the exponent stays within this bound
MAX_POSITIONAL_EXPONENT = 20

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_RFC3339_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?"
    r"([Zz]|[+-]\d{2}:\d{2})$"
)
_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_UNSIGNED_RE = re.compile(r"^\+?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

_TRUE_LITERALS = frozenset({"t", "T", "true", "True", "TRUE"})
_FALSE_LITERALS = frozenset({"f", "F", "false", "False", "FALSE"})


class ValueType(str, Enum):
    """Variants of :class:`Value`."""

    FLOAT = "float"
    INTEGER = "integer"
    UNSIGNED = "unsigned"
    BOOLEAN = "boolean"
    STRING = "string"
    TIMESTAMP = "timestamp"


# Annotated-CSV datatype tokens and the variant each one decodes to
CSV_DATATYPES: Dict[str, ValueType] = {
    "string": ValueType.STRING,
    "double": ValueType.FLOAT,
    "long": ValueType.INTEGER,
    "unsignedLong": ValueType.UNSIGNED,
    "boolean": ValueType.BOOLEAN,
    "dateTime:RFC3339": ValueType.TIMESTAMP,
    "dateTime:RFC3339Nano": ValueType.TIMESTAMP,
    "duration": ValueType.INTEGER,
    "base64Binary": ValueType.STRING,
}

_CSV_DATATYPE_NAMES = {
    ValueType.STRING: "string",
    ValueType.FLOAT: "double",
    ValueType.INTEGER: "long",
    ValueType.UNSIGNED: "unsignedLong",
    ValueType.BOOLEAN: "boolean",
    ValueType.TIMESTAMP: "dateTime:RFC3339Nano",
}


# =================================================================
# TIME HELPERS
# =================================================================

def timestamp_from_nanos(nanos: int) -> pd.Timestamp:
    """Build a UTC timestamp from nanoseconds since the Unix epoch."""
    if not INT64_MIN < nanos <= INT64_MAX:
        raise EncodingError(f"Timestamp {nanos} is outside the nanosecond range", token=str(nanos))
    try:
        return pd.Timestamp(nanos, unit="ns", tz="UTC")
    except (OverflowError, ValueError) as e:
        raise EncodingError(f"Timestamp {nanos} is outside the nanosecond range", token=str(nanos)) from e


def to_timestamp(value: Any) -> pd.Timestamp:
    """
    Normalize an instant to a tz-aware UTC ``pandas.Timestamp``.

    Args:
        value: ``datetime`` (naive values are taken as UTC),
            ``pandas.Timestamp``, ``numpy.datetime64``, integer nanoseconds
            since the epoch, or an RFC3339 string

    Returns:
        UTC timestamp with nanosecond precision

    Raises:
        TypeError: If the value is not an instant
        EncodingError: If the instant does not fit in nanosecond precision
        ParseError: If a string is not valid RFC3339
    """
    if isinstance(value, bool):
        raise TypeError(f"Not an instant: {value!r}")
    if isinstance(value, (int, np.integer)):
        return timestamp_from_nanos(int(value))
    if isinstance(value, str):
        return parse_rfc3339(value)
    if isinstance(value, (datetime, np.datetime64)):
        try:
            value = pd.Timestamp(value)
        except (OverflowError, ValueError) as e:
            raise EncodingError(f"Instant {value!r} is outside the nanosecond range") from e
        if value is pd.NaT:
            raise EncodingError("NaT is not an instant")
    if isinstance(value, pd.Timestamp):
        if value.tzinfo is None:
            return value.tz_localize("UTC")
        return value.tz_convert("UTC")
    raise TypeError(f"Not an instant: {value!r}")


def parse_rfc3339(text: str) -> pd.Timestamp:
    """
    Parse a strict RFC3339 instant, keeping up to nanosecond precision.

    Raises:
        ParseError: If the text is not RFC3339 or names an impossible date
    """
    match = _RFC3339_RE.match(text)
    if match is None:
        raise ParseError("Invalid RFC3339 timestamp", token=text, expected="RFC3339 timestamp", found=text)

    year, month, day, hour, minute, second, fraction, offset = match.groups()
    if offset in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = 1 if offset[0] == "+" else -1
        hours, minutes = int(offset[1:3]), int(offset[4:6])
        if hours > 23 or minutes > 59:
            raise ParseError("Invalid RFC3339 offset", token=text, found=offset)
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))

    try:
        moment = datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second),
            tzinfo=tz
        )
    except ValueError as e:
        raise ParseError(f"Invalid RFC3339 timestamp: {e}", token=text, found=text) from e

    seconds = (moment - _EPOCH) // timedelta(seconds=1)
    nanos = seconds * NANOS_PER_SECOND + int((fraction or "").ljust(9, "0"))
    try:
        return timestamp_from_nanos(nanos)
    except EncodingError as e:
        raise ParseError("RFC3339 timestamp out of range", token=text, found=text) from e


def format_rfc3339(value: Any) -> str:
    """
    Render an instant as RFC3339 in UTC.

    The fractional part is omitted when zero and otherwise written with
    3, 6 or 9 digits, whichever is the shortest exact form.

    Example:
        >>> format_rfc3339(datetime(2021, 3, 7, 21, tzinfo=timezone.utc))
        '2021-03-07T21:00:00Z'
    """
    nanos = to_timestamp(value).value
    seconds, fraction = divmod(nanos, NANOS_PER_SECOND)
    text = (_EPOCH + timedelta(seconds=seconds)).strftime("%Y-%m-%dT%H:%M:%S")

    if fraction == 0:
        suffix = ""
    elif fraction % 1_000_000 == 0:
        suffix = f".{fraction // 1_000_000:03d}"
    elif fraction % 1_000 == 0:
        suffix = f".{fraction // 1_000:06d}"
    else:
        suffix = f".{fraction:09d}"

    return f"{text}{suffix}Z"


# =================================================================
# NUMBER HELPERS
# =================================================================

def format_float(value: float) -> str:
    """
    Render a finite float in the shortest form that parses back exactly.

    Decimal notation is preferred; the exponent form is kept only for very
    large or very small magnitudes.
    """
    text = repr(float(value))
    if "e" in text:
        exponent = int(text.split("e")[1])
        if abs(exponent) <= MAX_POSITIONAL_EXPONENT:
            text = np.format_float_positional(value, unique=True, trim="0")
    return text


def _parse_integer(text: str, low: int, high: int, pattern=_INTEGER_RE) -> int:
    if not pattern.match(text):
        raise ParseError("Invalid integer", token=text, expected="integer", found=text)
    number = int(text)
    if not low <= number <= high:
        raise ParseError(
            f"Integer {text} overflows [{low}, {high}]",
            token=text, expected=f"integer in [{low}, {high}]", found=text
        )
    return number


def _parse_float(text: str) -> float:
    if not _FLOAT_RE.match(text):
        raise ParseError("Invalid float", token=text, expected="float", found=text)
    number = float(text)
    if not math.isfinite(number):
        raise ParseError("Float overflows the 64-bit range", token=text, expected="finite float", found=text)
    return number


def _unquote_line_protocol_string(text: str) -> str:
    """Decode a double-quoted line protocol string field value."""
    if not text.startswith('"'):
        raise ParseError("String value must be double-quoted", token=text, expected='"', found=text[:1])

    chars = []
    i = 1
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text) and text[i + 1] in '"\\':
            chars.append(text[i + 1])
            i += 2
        elif char == '"':
            if i != len(text) - 1:
                raise ParseError(
                    "Unexpected characters after string value",
                    token=text, column=i + 1, found=text[i + 1:]
                )
            return "".join(chars)
        else:
            chars.append(char)
            i += 1

    raise ParseError("Unterminated string value", token=text, expected='"', found="end of input")


# =================================================================
# VALUE
# =================================================================

@dataclass(frozen=True)
class Value:
    """
    A typed scalar.

    A value never mixes variants: ``Value.int64(1) != Value.float64(1.0)``.
    Payloads are validated on construction; NaN and infinities are rejected,
    integers must fit their declared width.
    """

    type: ValueType
    data: Any

    def __post_init__(self):
        object.__setattr__(self, "type", ValueType(self.type))
        object.__setattr__(self, "data", _normalize(self.type, self.data))

    # -----------------------------------------------------------------
    # Constructors
    # -----------------------------------------------------------------

    @classmethod
    def float64(cls, value: float) -> "Value":
        return cls(ValueType.FLOAT, value)

    @classmethod
    def int64(cls, value: int) -> "Value":
        return cls(ValueType.INTEGER, value)

    @classmethod
    def uint64(cls, value: int) -> "Value":
        return cls(ValueType.UNSIGNED, value)

    @classmethod
    def boolean(cls, value: bool) -> "Value":
        return cls(ValueType.BOOLEAN, value)

    @classmethod
    def string(cls, value: str) -> "Value":
        return cls(ValueType.STRING, value)

    @classmethod
    def timestamp(cls, value: Any) -> "Value":
        return cls(ValueType.TIMESTAMP, value)

    @classmethod
    def of(cls, value: Any) -> "Value":
        """
        Infer the variant of a plain Python value.

        ``bool`` is checked before ``int``; integers above the Int64 range
        become UInt64.
        """
        if isinstance(value, Value):
            return value
        if isinstance(value, (bool, np.bool_)):
            return cls.boolean(bool(value))
        if isinstance(value, (int, np.integer)):
            value = int(value)
            if value > INT64_MAX:
                return cls.uint64(value)
            return cls.int64(value)
        if isinstance(value, (float, np.floating)):
            return cls.float64(float(value))
        if isinstance(value, str):
            return cls.string(value)
        if isinstance(value, (datetime, pd.Timestamp, np.datetime64)):
            return cls.timestamp(value)
        raise TypeError(f"Cannot convert {type(value).__name__} to a Value")

    # -----------------------------------------------------------------
    # Line protocol form
    # -----------------------------------------------------------------

    def to_line_protocol(self) -> str:
        """Render as a line protocol field value."""
        if self.type is ValueType.FLOAT:
            return format_float(self.data)
        if self.type is ValueType.INTEGER:
            return f"{self.data}i"
        if self.type is ValueType.UNSIGNED:
            return f"{self.data}u"
        if self.type is ValueType.BOOLEAN:
            return "true" if self.data else "false"
        if self.type is ValueType.STRING:
            if "\n" in self.data or "\r" in self.data:
                raise EncodingError("String field values cannot contain newlines", token=self.data)
            escaped = self.data.replace("\\", "\\\\").replace('"', '\\"')
            return f'"{escaped}"'
        # Line protocol has no timestamp field type
        return f"{self.data.value}i"

    @classmethod
    def parse_line_protocol(cls, text: str) -> "Value":
        """
        Parse a line protocol field value.

        Raises:
            ParseError: On malformed, unterminated or out-of-range values
        """
        if not text:
            raise ParseError("Missing field value", expected="field value", found="nothing")
        if text.startswith('"'):
            return cls.string(_unquote_line_protocol_string(text))
        if text in _TRUE_LITERALS:
            return cls.boolean(True)
        if text in _FALSE_LITERALS:
            return cls.boolean(False)
        if text.endswith("i"):
            return cls.int64(_parse_integer(text[:-1], INT64_MIN, INT64_MAX))
        if text.endswith("u"):
            return cls.uint64(_parse_integer(text[:-1], 0, UINT64_MAX, _UNSIGNED_RE))
        return cls.float64(_parse_float(text))

    # -----------------------------------------------------------------
    # JSON form
    # -----------------------------------------------------------------

    def to_json(self) -> str:
        """Render as JSON text."""
        if self.type is ValueType.FLOAT:
            return format_float(self.data)
        if self.type in (ValueType.INTEGER, ValueType.UNSIGNED):
            return str(self.data)
        if self.type is ValueType.BOOLEAN:
            return "true" if self.data else "false"
        if self.type is ValueType.STRING:
            return json.dumps(self.data, ensure_ascii=False)
        return json.dumps(format_rfc3339(self.data))

    @classmethod
    def parse_json(cls, text: str, value_type: Optional[ValueType] = None) -> "Value":
        """
        Parse JSON text into a value.

        Args:
            text: A JSON scalar
            value_type: Expected variant. Without it numbers are inferred
                from their literal form and strings stay strings.

        Raises:
            ParseError: On invalid JSON or a value of the wrong shape
        """
        try:
            document = json.loads(text, parse_constant=_reject_constant)
        except ValueError as e:
            raise ParseError(f"Invalid JSON value: {e}", token=text) from e
        return cls.from_json_object(document, value_type)

    @classmethod
    def from_json_object(
        cls,
        document: Any,
        value_type: Optional[ValueType] = None,
        row: Optional[int] = None,
        column: Optional[str] = None
    ) -> "Value":
        """Build a value from an already decoded JSON scalar."""
        found = type(document).__name__

        def mismatch(message: str) -> ParseError:
            expected = value_type.value if value_type else "JSON scalar"
            return ParseError(message, row=row, column=column, token=repr(document), expected=expected, found=found)

        if document is None:
            raise mismatch("Null value")
        if isinstance(document, (list, dict)):
            raise mismatch(f"Value is a JSON {'array' if isinstance(document, list) else 'object'}")

        if isinstance(document, bool):
            if value_type not in (None, ValueType.BOOLEAN):
                raise mismatch("Unexpected boolean")
            return cls.boolean(document)

        if isinstance(document, int):
            if value_type is ValueType.TIMESTAMP:
                try:
                    return cls.timestamp(timestamp_from_nanos(document))
                except EncodingError as e:
                    raise mismatch(e.message) from e
            if value_type is ValueType.FLOAT:
                return cls.float64(float(document))
            if value_type is ValueType.UNSIGNED or (value_type is None and document > INT64_MAX):
                if not 0 <= document <= UINT64_MAX:
                    raise mismatch(f"Integer {document} overflows the unsigned 64-bit range")
                return cls.uint64(document)
            if value_type not in (None, ValueType.INTEGER):
                raise mismatch("Unexpected number")
            if not INT64_MIN <= document <= INT64_MAX:
                raise mismatch(f"Integer {document} overflows the signed 64-bit range")
            return cls.int64(document)

        if isinstance(document, float):
            if value_type not in (None, ValueType.FLOAT):
                raise mismatch("Unexpected float")
            if not math.isfinite(document):
                raise mismatch("Float overflows the 64-bit range")
            return cls.float64(document)

        if isinstance(document, str):
            if value_type is ValueType.TIMESTAMP:
                try:
                    return cls.timestamp(parse_rfc3339(document))
                except ParseError as e:
                    raise mismatch(e.message) from e
            if value_type not in (None, ValueType.STRING):
                raise mismatch("Unexpected string")
            return cls.string(document)

        raise mismatch("Unsupported JSON value")

    # -----------------------------------------------------------------
    # Annotated CSV form
    # -----------------------------------------------------------------

    @property
    def csv_datatype(self) -> str:
        """The annotated-CSV datatype token for this variant."""
        return _CSV_DATATYPE_NAMES[self.type]

    def to_csv(self) -> str:
        """Render as an annotated-CSV cell."""
        if self.type is ValueType.FLOAT:
            return format_float(self.data)
        if self.type in (ValueType.INTEGER, ValueType.UNSIGNED):
            return str(self.data)
        if self.type is ValueType.BOOLEAN:
            return "true" if self.data else "false"
        if self.type is ValueType.STRING:
            return self.data
        return format_rfc3339(self.data)

    @classmethod
    def parse_csv(cls, text: str, datatype: str) -> "Value":
        """
        Parse an annotated-CSV cell according to its column datatype.

        Raises:
            ParseError: On an unknown datatype or a cell that does not match it
        """
        value_type = CSV_DATATYPES.get(datatype)
        if value_type is None:
            raise ParseError(f"Unknown datatype {datatype!r}", token=datatype, expected="annotated CSV datatype")

        if value_type is ValueType.STRING:
            return cls.string(text)
        if value_type is ValueType.FLOAT:
            return cls.float64(_parse_float(text))
        if value_type is ValueType.INTEGER:
            return cls.int64(_parse_integer(text, INT64_MIN, INT64_MAX))
        if value_type is ValueType.UNSIGNED:
            return cls.uint64(_parse_integer(text, 0, UINT64_MAX, _UNSIGNED_RE))
        if value_type is ValueType.BOOLEAN:
            if text == "true":
                return cls.boolean(True)
            if text == "false":
                return cls.boolean(False)
            raise ParseError("Invalid boolean", token=text, expected="true or false", found=text)
        return cls.timestamp(parse_rfc3339(text))

    # -----------------------------------------------------------------
    # Accessors
    # -----------------------------------------------------------------

    def as_float(self) -> float:
        """Numeric payload as float (integers are widened)."""
        if self.type in (ValueType.FLOAT, ValueType.INTEGER, ValueType.UNSIGNED):
            return float(self.data)
        raise ConversionError(f"Not a float: {self!r}")

    def as_int(self) -> int:
        if self.type in (ValueType.INTEGER, ValueType.UNSIGNED):
            return self.data
        raise ConversionError(f"Not an integer: {self!r}")

    def as_bool(self) -> bool:
        if self.type is ValueType.BOOLEAN:
            return self.data
        raise ConversionError(f"Not a boolean: {self!r}")

    def as_str(self) -> str:
        if self.type is ValueType.STRING:
            return self.data
        raise ConversionError(f"Not a string: {self!r}")

    def as_timestamp(self) -> pd.Timestamp:
        if self.type is ValueType.TIMESTAMP:
            return self.data
        raise ConversionError(f"Not a timestamp: {self!r}")

    def __str__(self) -> str:
        return self.to_csv()


def _reject_constant(name: str):
    raise ValueError(f"{name} is not a finite number")


def _normalize(value_type: ValueType, data: Any) -> Any:
    """Validate a payload against its variant and return its canonical form."""
    if value_type is ValueType.FLOAT:
        if isinstance(data, (bool, np.bool_)) or not isinstance(data, (int, float, np.integer, np.floating)):
            raise TypeError(f"Float value expected, got {type(data).__name__}")
        data = float(data)
        if not math.isfinite(data):
            raise EncodingError(f"Non-finite float {data!r} cannot be encoded", token=repr(data))
        return data

    if value_type in (ValueType.INTEGER, ValueType.UNSIGNED):
        if isinstance(data, (bool, np.bool_)) or not isinstance(data, (int, np.integer)):
            raise TypeError(f"Integer value expected, got {type(data).__name__}")
        data = int(data)
        low, high = (INT64_MIN, INT64_MAX) if value_type is ValueType.INTEGER else (0, UINT64_MAX)
        if not low <= data <= high:
            raise EncodingError(f"Integer {data} overflows [{low}, {high}]", token=str(data))
        return data

    if value_type is ValueType.BOOLEAN:
        if not isinstance(data, (bool, np.bool_)):
            raise TypeError(f"Boolean value expected, got {type(data).__name__}")
        return bool(data)

    if value_type is ValueType.STRING:
        if not isinstance(data, str):
            raise TypeError(f"String value expected, got {type(data).__name__}")
        return data

    return to_timestamp(data)
