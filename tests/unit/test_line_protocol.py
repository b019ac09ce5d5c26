"""
Unit Tests for the Line Protocol Codec
======================================

Coverage:
- ✅ LineBuilder chaining and consume-once behaviour
- ✅ Direct Line construction from plain values
- ✅ Encoding, escaping and validation
- ✅ Atomic batch encoding
- ✅ Decoding, error positions and batch tolerance
"""

from datetime import datetime, timezone

import pandas as pd
import pytest

from influxwire.core.exceptions import BuilderConsumedError, EncodingError, ParseError
from influxwire.domain.line import Line, LineBuilder
from influxwire.domain.values import Value
from influxwire.infrastructure.influxdb.line_protocol import (
    decode_line,
    decode_lines,
    encode_line,
    encode_lines
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def odense_line():
    """The location example point."""
    return (
        LineBuilder("location")
        .field("latitude", 55.383333)
        .field("longitude", 10.383333)
        .tag("city", "Odense")
        .timestamp(datetime(2014, 7, 8, 9, 10, 11, tzinfo=timezone.utc))
        .build()
    )


# =============================================================================
# BUILDER
# =============================================================================

@pytest.mark.unit
class TestLineBuilder:
    """Line construction."""

    def test_fields_wrapped_as_values(self, odense_line):
        assert odense_line.field("latitude") == Value.float64(55.383333)
        assert odense_line.tag("city") == "Odense"
        assert odense_line.tag("country") is None

    def test_insertion_order_kept(self):
        line = LineBuilder("m").field("b", 1).field("a", 2).tag("z", "1").tag("y", "2").build()
        assert list(line.fields) == ["b", "a"]
        assert list(line.tags) == ["z", "y"]

    def test_builder_consumed_once(self):
        builder = LineBuilder("m").field("f", 1)
        builder.build()
        with pytest.raises(BuilderConsumedError):
            builder.build()
        with pytest.raises(BuilderConsumedError):
            builder.field("g", 2)

    def test_non_finite_field_rejected(self):
        with pytest.raises(EncodingError):
            LineBuilder("m").field("x", float("nan"))

    def test_direct_construction_normalizes_parts(self):
        line = Line(
            "m",
            {"host": "a"},
            {"v": 1, "s": "x", "f": Value.float64(0.5)},
            datetime(2014, 7, 8, 9, 10, 11, tzinfo=timezone.utc)
        )

        assert line.field("v") == Value.int64(1)
        assert line.field("s") == Value.string("x")
        assert line.field("f") == Value.float64(0.5)
        assert line.timestamp == pd.Timestamp("2014-07-08T09:10:11Z")
        assert encode_line(line) == 'm,host=a v=1i,s="x",f=0.5 1404810611000000000'

    def test_direct_construction_rejects_unsupported_field(self):
        with pytest.raises(TypeError):
            Line("m", fields={"v": object()})


# =============================================================================
# ENCODING
# =============================================================================

@pytest.mark.unit
class TestEncodeLine:
    """Single line rendering."""

    def test_odense_example(self, odense_line):
        assert encode_line(odense_line) == (
            "location,city=Odense latitude=55.383333,longitude=10.383333 1404810611000000000"
        )

    def test_without_timestamp(self):
        line = LineBuilder("cpu").field("usage", 1).build()
        assert encode_line(line) == "cpu usage=1i"

    def test_all_field_types(self):
        line = (
            LineBuilder("m")
            .field("f", 1.5)
            .field("i", -3)
            .field("u", Value.uint64(3))
            .field("b", False)
            .field("s", "text")
            .build()
        )
        assert encode_line(line) == 'm f=1.5,i=-3i,u=3u,b=false,s="text"'

    def test_escaping(self):
        line = (
            LineBuilder("my measurement,x")
            .tag("ta g", "v=1,2")
            .field("f ld", "a \"quoted\" value")
            .build()
        )
        assert encode_line(line) == (
            'my\\ measurement\\,x,ta\\ g=v\\=1\\,2 f\\ ld="a \\"quoted\\" value"'
        )

    def test_equals_sign_not_escaped_in_measurement(self):
        line = LineBuilder("a=b").field("f", 1).build()
        assert encode_line(line) == "a=b f=1i"

    def test_zero_fields_rejected(self):
        with pytest.raises(EncodingError):
            encode_line(LineBuilder("m").tag("t", "v").build())

    @pytest.mark.parametrize("line", [
        Line(measurement="", fields={"f": Value.int64(1)}),
        Line(measurement="#comment", fields={"f": Value.int64(1)}),
        Line(measurement="m", tags={"": "v"}, fields={"f": Value.int64(1)}),
        Line(measurement="m", tags={"t": ""}, fields={"f": Value.int64(1)}),
        Line(measurement="m", tags={"t": "a\nb"}, fields={"f": Value.int64(1)}),
        Line(measurement="m", fields={"": Value.int64(1)}),
    ])
    def test_invalid_lines_rejected(self, line):
        with pytest.raises(EncodingError):
            encode_line(line)


@pytest.mark.unit
class TestEncodeLines:
    """Batch rendering."""

    def test_newline_terminated(self):
        lines = [LineBuilder("m").field("f", i).build() for i in range(2)]
        assert encode_lines(lines) == "m f=0i\nm f=1i\n"

    def test_empty_batch(self):
        assert encode_lines([]) == ""

    def test_batch_is_atomic(self):
        lines = [
            LineBuilder("m").field("f", 1).build(),
            Line(measurement="m"),
            LineBuilder("m").field("f", 2).build(),
        ]
        with pytest.raises(EncodingError) as exc_info:
            encode_lines(lines)
        assert exc_info.value.index == 1


# =============================================================================
# DECODING
# =============================================================================

@pytest.mark.unit
class TestDecodeLine:
    """Single line parsing."""

    def test_odense_round_trip(self, odense_line):
        assert decode_line(encode_line(odense_line)) == odense_line

    def test_round_trip_with_escapes(self):
        line = (
            LineBuilder("we,ird name")
            .tag("k=ey", "va lue,\\x")
            .field("f,1", 'he said "hi", \\o/ ok')
            .field("f 2", Value.uint64(18446744073709551615))
            .field("f=3", True)
            .timestamp(-1)
            .build()
        )
        assert decode_line(encode_line(line)) == line

    def test_trailing_newline_accepted(self):
        line = decode_line("m f=1i\r\n")
        assert line.field("f") == Value.int64(1)

    def test_timestamp_decoded(self):
        line = decode_line("m f=1 1404810611000000000")
        assert line.timestamp == pd.Timestamp("2014-07-08T09:10:11Z")

    def test_boolean_shorthand(self):
        assert decode_line("m f=t").field("f") == Value.boolean(True)

    def test_bad_value_reports_column(self):
        with pytest.raises(ParseError) as exc_info:
            decode_line("m f=abc")
        assert exc_info.value.column == 4
        assert exc_info.value.token == "abc"

    @pytest.mark.parametrize("text", [
        "m",
        "m ",
        "m f",
        "m f=",
        "m =1",
        "m,t f=1",
        "m,t= f=1",
        "m,=v f=1",
        "m f=1 abc",
        "m f=1 1 2",
        "m f=1 99999999999999999999",
        'm f="abc',
        'm f="abc"x',
        "m f=1,",
        "m\\",
        "m\\x f=1",
        ",t=v f=1",
    ])
    def test_malformed_lines(self, text):
        with pytest.raises(ParseError):
            decode_line(text)


@pytest.mark.unit
class TestDecodeLines:
    """Batch parsing."""

    def test_batch_tolerant(self):
        batch = decode_lines("m f=1i\nbad\n# comment\n\nm f=2i 10\n")

        assert len(batch.lines) == 2
        assert len(batch.errors) == 1
        assert batch.errors[0].row == 2
        assert not batch.ok

    def test_raise_for_errors(self):
        batch = decode_lines("m f=1i\nm f=\n")
        with pytest.raises(ParseError):
            batch.raise_for_errors()

    def test_encode_decode_batch(self, odense_line):
        other = LineBuilder("cpu").tag("host", "a").field("usage", 0.25).build()
        batch = decode_lines(encode_lines([odense_line, other]))

        assert batch.ok
        assert batch.lines == [odense_line, other]
