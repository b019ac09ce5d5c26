"""
Line Protocol Codec
===================

Encodes :class:`Line` objects into InfluxDB line protocol and decodes
line protocol text back into lines.

    measurement[,tag=value...] field=value[,field=value...] [timestamp]

Escaping rules:
- measurement: backslash, comma and space
- tag keys, tag values and field keys: backslash, comma, equals sign and space
- string field values: double-quoted, backslash and double quote escaped

Encoding a batch is atomic: if any line is invalid nothing is returned.
Decoding a batch is tolerant: every line is attempted and failures are
collected alongside the lines that decoded.

Usage:
    from influxwire.infrastructure.influxdb.line_protocol import encode_lines, decode_lines

    body = encode_lines(lines)
    batch = decode_lines(body)
    batch.raise_for_errors()
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from influxwire.core.exceptions import EncodingError, ParseError
from influxwire.core.logging_config import log_wire_summary
from influxwire.domain.line import Line
from influxwire.domain.values import INT64_MAX, INT64_MIN, Value, timestamp_from_nanos

logger = logging.getLogger(__name__)


MEASUREMENT_SPECIALS = frozenset("\\, ")
KEY_SPECIALS = frozenset("\\,= ")

# Characters a backslash may escape when decoding
_ESCAPABLE = frozenset("\\,= ")

_TIMESTAMP_RE = re.compile(r"^-?\d+$")


# =================================================================
# ENCODING
# =================================================================

def _escape(text: str, specials: frozenset) -> str:
    return "".join("\\" + char if char in specials else char for char in text)


def _check_identifier(text: str, kind: str) -> None:
    if not text:
        raise EncodingError(f"{kind} is empty", token=text)
    if "\n" in text or "\r" in text:
        raise EncodingError(f"{kind} cannot contain newlines", token=text)


def encode_line(line: Line) -> str:
    """
    Render a line as line protocol, without the trailing newline.

    Args:
        line: Line to encode

    Returns:
        Line protocol text

    Raises:
        EncodingError: If the line has no fields, an empty or unencodable
            identifier, or a value that cannot be rendered

    Example:
        >>> encode_line(LineBuilder("cpu").tag("host", "a").field("usage", 0.5).build())
        'cpu,host=a usage=0.5'
    """
    _check_identifier(line.measurement, "Measurement name")
    if line.measurement.startswith("#"):
        raise EncodingError("Measurement name cannot start with '#'", token=line.measurement)

    parts = [_escape(line.measurement, MEASUREMENT_SPECIALS)]

    for key, value in line.tags.items():
        _check_identifier(key, "Tag key")
        _check_identifier(value, f"Value of tag '{key}'")
        parts.append(f",{_escape(key, KEY_SPECIALS)}={_escape(value, KEY_SPECIALS)}")

    if not line.fields:
        raise EncodingError(f"Line '{line.measurement}' has no fields", token=line.measurement)

    fields = []
    for key, value in line.fields.items():
        _check_identifier(key, "Field key")
        fields.append(f"{_escape(key, KEY_SPECIALS)}={value.to_line_protocol()}")

    parts.append(" ")
    parts.append(",".join(fields))

    if line.timestamp is not None:
        parts.append(f" {line.timestamp.value}")

    return "".join(parts)


def encode_lines(lines: Iterable[Line]) -> str:
    """
    Render a batch of lines, newline-terminated.

    Raises:
        EncodingError: On the first invalid line, with ``index`` set to its
            position in the batch. Nothing is emitted in that case.
    """
    rendered = []
    for index, line in enumerate(lines):
        try:
            rendered.append(encode_line(line))
        except EncodingError as e:
            raise EncodingError(f"Line {index}: {e.message}", token=e.token, index=index) from e

    log_wire_summary(logger, "encode_lines", lines=len(rendered))
    if not rendered:
        return ""
    return "\n".join(rendered) + "\n"


# =================================================================
# DECODING
# =================================================================

class _Scanner:
    """Cursor over a single line of line protocol."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def peek(self) -> Optional[str]:
        if self.pos < len(self.text):
            return self.text[self.pos]
        return None

    def error(self, message: str, expected: Optional[str] = None, column: Optional[int] = None) -> ParseError:
        column = self.pos if column is None else column
        found = self.text[column] if column < len(self.text) else "end of line"
        return ParseError(
            message,
            column=column,
            token=self.text[column:column + 20],
            expected=expected,
            found=found
        )

    def expect(self, char: str, message: str) -> None:
        if self.peek() != char:
            raise self.error(message, expected=repr(char))
        self.pos += 1

    def identifier(self, terminators: str) -> str:
        """Read an escaped identifier up to the first unescaped terminator."""
        chars = []
        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char == "\\":
                if self.pos + 1 >= len(self.text):
                    raise self.error("Dangling escape character", expected="escaped character")
                escaped = self.text[self.pos + 1]
                if escaped not in _ESCAPABLE:
                    raise self.error(f"Invalid escape sequence '\\{escaped}'", expected="one of \\ , = or space")
                chars.append(escaped)
                self.pos += 2
                continue
            if char in terminators:
                break
            chars.append(char)
            self.pos += 1
        return "".join(chars)

    def field_value(self) -> str:
        """Read a raw field value token, keeping string quotes and escapes."""
        start = self.pos
        if self.peek() == '"':
            self.pos += 1
            while self.pos < len(self.text):
                char = self.text[self.pos]
                if char == "\\" and self.pos + 1 < len(self.text):
                    self.pos += 2
                    continue
                self.pos += 1
                if char == '"':
                    return self.text[start:self.pos]
            raise ParseError(
                "Unterminated string value",
                column=start,
                token=self.text[start:start + 20],
                expected='"',
                found="end of line"
            )

        while self.pos < len(self.text) and self.text[self.pos] not in ", ":
            self.pos += 1
        return self.text[start:self.pos]


def decode_line(text: str) -> Line:
    """
    Parse one line of line protocol.

    Args:
        text: A single line, optionally terminated by a newline

    Returns:
        Decoded line

    Raises:
        ParseError: Naming the offending token and its column on malformed
            escaping, missing fields, bad values or trailing garbage
    """
    if text.endswith("\n"):
        text = text[:-1]
    if text.endswith("\r"):
        text = text[:-1]
    if "\n" in text:
        raise ParseError("Unexpected newline inside a line", column=text.index("\n"), found="newline")

    scanner = _Scanner(text)

    measurement = scanner.identifier(", ")
    if not measurement:
        raise scanner.error("Missing measurement name", expected="measurement")

    tags: Dict[str, str] = {}
    while scanner.peek() == ",":
        scanner.pos += 1
        key_column = scanner.pos
        key = scanner.identifier("=, ")
        if not key:
            raise scanner.error("Empty tag key", expected="tag key", column=key_column)
        scanner.expect("=", f"Missing '=' after tag key '{key}'")
        value_column = scanner.pos
        value = scanner.identifier("=, ")
        if scanner.peek() == "=":
            raise scanner.error(f"Unescaped '=' in value of tag '{key}'")
        if not value:
            raise scanner.error(f"Empty value for tag '{key}'", expected="tag value", column=value_column)
        tags[key] = value

    if scanner.peek() is None:
        raise scanner.error("Missing field set", expected="field set")
    scanner.expect(" ", "Expected space before field set")

    fields: Dict[str, Value] = {}
    while True:
        key_column = scanner.pos
        key = scanner.identifier("=, ")
        if not key:
            raise scanner.error("Empty field key", expected="field key", column=key_column)
        scanner.expect("=", f"Missing '=' after field key '{key}'")

        value_column = scanner.pos
        raw = scanner.field_value()
        try:
            fields[key] = Value.parse_line_protocol(raw)
        except ParseError as e:
            raise ParseError(
                f"Invalid value for field '{key}': {e.message}",
                column=value_column,
                token=raw,
                expected=e.expected,
                found=e.found
            ) from e

        if scanner.peek() == ",":
            scanner.pos += 1
            continue
        if scanner.peek() not in (" ", None):
            raise scanner.error(f"Unexpected character after value of field '{key}'")
        break

    timestamp = None
    if scanner.peek() == " ":
        scanner.pos += 1
        column = scanner.pos
        raw = text[column:]
        if not _TIMESTAMP_RE.match(raw):
            raise scanner.error("Invalid timestamp or trailing characters", expected="integer timestamp")
        nanos = int(raw)
        if not INT64_MIN < nanos <= INT64_MAX:
            raise scanner.error("Timestamp out of range", expected="64-bit nanosecond timestamp")
        timestamp = timestamp_from_nanos(nanos)

    return Line(measurement=measurement, tags=tags, fields=fields, timestamp=timestamp)


@dataclass
class LineBatch:
    """Outcome of decoding a multi-line payload."""

    lines: List[Line] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise self.errors[0]


def decode_lines(text: str) -> LineBatch:
    """
    Parse a newline-delimited batch.

    Blank lines and ``#`` comments are skipped. Each failing line is
    recorded in ``LineBatch.errors`` with its 1-based row number and the
    remaining lines are still decoded.
    """
    batch = LineBatch()

    for row, raw in enumerate(text.split("\n"), start=1):
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        try:
            batch.lines.append(decode_line(raw))
        except ParseError as e:
            e.row = row
            e.details["row"] = row
            batch.errors.append(e)

    log_wire_summary(logger, "decode_lines", lines=len(batch.lines), errors=len(batch.errors))
    return batch
