"""
Unit Tests for the Flux Annotated CSV Response Decoder
======================================================

Coverage:
- ✅ Blank-line delimited tables and repeated headers
- ✅ Group keys, tags and sink columns
- ✅ #default substitution and empty cells
- ✅ Server-reported error rows
- ✅ Structural violations fail only the rest of their table
"""

import pandas as pd
import pytest

from influxwire.core.exceptions import ConversionError, ParseError, ServerReportedError
from influxwire.domain.sinks import DataFrameSink, Table
from influxwire.domain.values import Value
from influxwire.infrastructure.influxdb.csv_response import decode_csv


def table_block(datatypes, groups, defaults, header, *rows):
    """Assemble one annotated table followed by a blank line."""
    lines = [
        "#datatype," + datatypes,
        "#group," + groups,
        "#default," + defaults,
        "," + header,
    ]
    lines.extend("," + row for row in rows)
    return "\r\n".join(lines) + "\r\n\r\n"


SIMPLE = dict(
    datatypes="string,long,dateTime:RFC3339,double",
    groups="false,false,false,false",
    defaults="_result,,,",
    header="result,table,_time,_value",
)


# =============================================================================
# FRAMING
# =============================================================================

@pytest.mark.unit
class TestFraming:
    """Table boundaries."""

    def test_two_tables_same_header(self, csv_two_tables):
        result = decode_csv(csv_two_tables)

        assert result.ok
        assert [len(tagged.table) for tagged in result.tables] == [2, 3]
        assert result.tables[0].table is not result.tables[1].table

    def test_tags_and_columns(self, csv_two_tables):
        tagged = decode_csv(csv_two_tables).tables[0]

        assert tagged.tags == {
            "_start": "2021-03-07T21:00:00Z",
            "_stop": "2021-03-07T22:00:00Z",
            "_field": "usage_system",
            "_measurement": "cpu",
            "host": "server01",
        }
        assert isinstance(tagged.table, Table)
        assert tagged.table.name == "_result"
        assert tagged.table.column_names == ["_value"]
        assert tagged.table.values("_value") == [Value.float64(1.5), Value.float64(2.5)]
        assert tagged.table.index == [
            pd.Timestamp("2021-03-07T21:00:00Z"),
            pd.Timestamp("2021-03-07T21:10:00Z"),
        ]

    def test_group_keys_split_one_block(self, csv_grouped_table):
        result = decode_csv(csv_grouped_table)

        assert [tagged.tags["host"] for tagged in result.tables] == ["server01", "server02"]
        assert [len(tagged.table) for tagged in result.tables] == [2, 1]

    def test_unix_newlines_and_bytes(self, csv_two_tables):
        body = csv_two_tables.replace("\r\n", "\n").encode("utf-8")
        assert len(decode_csv(body).tables) == 2

    def test_missing_trailing_blank_line(self, csv_two_tables):
        assert len(decode_csv(csv_two_tables.rstrip()).tables) == 2

    def test_empty_body(self):
        result = decode_csv("")
        assert result.ok
        assert result.tables == []

    def test_header_only_table_is_empty(self):
        body = table_block(**SIMPLE)
        result = decode_csv(body)
        assert result.ok
        assert len(result.tables) == 1

        tagged = result.tables[0]
        assert tagged.tags == {}
        assert tagged.table.name == "_result"
        assert len(tagged.table) == 0
        assert tagged.table.column_names == ["_value"]

    def test_header_only_table_into_dataframe(self):
        frame = decode_csv(table_block(**SIMPLE), sink=DataFrameSink).tables[0].table

        assert frame.empty
        assert list(frame.columns) == ["_value"]
        assert frame.attrs["name"] == "_result"

    def test_without_annotations(self):
        body = "result,table,_time,_value\r\n_result,0,2021-03-07T21:00:00Z,1.5\r\n"
        table = decode_csv(body).tables[0].table

        assert table.values("_value") == [Value.string("1.5")]

    def test_stop_column_as_index(self):
        body = table_block(
            "string,long,dateTime:RFC3339,double",
            "false,false,true,false",
            "_result,,,",
            "result,table,_stop,_value",
            ",0,2021-03-07T22:00:00Z,4",
        )
        tagged = decode_csv(body).tables[0]

        assert tagged.table.index == [pd.Timestamp("2021-03-07T22:00:00Z")]
        assert tagged.tags == {"_stop": "2021-03-07T22:00:00Z"}


# =============================================================================
# CELLS
# =============================================================================

@pytest.mark.unit
class TestCells:
    """Datatypes, defaults and empty cells."""

    def test_datatypes(self):
        body = table_block(
            "string,long,dateTime:RFC3339,long,unsignedLong,boolean,duration,string,dateTime:RFC3339Nano",
            "false,false,false,false,false,false,false,false,false",
            "_result,,,,,,,,",
            "result,table,_time,i,u,b,d,s,t",
            ",0,2021-03-07T21:00:00Z,-1,18446744073709551615,true,60000000000,x,2021-03-07T21:00:00.000000001Z",
        )
        table = decode_csv(body).tables[0].table

        assert table.values("i") == [Value.int64(-1)]
        assert table.values("u") == [Value.uint64(18446744073709551615)]
        assert table.values("b") == [Value.boolean(True)]
        assert table.values("d") == [Value.int64(60000000000)]
        assert table.values("s") == [Value.string("x")]
        assert table.values("t") == [Value.timestamp(1615150800000000001)]

    def test_default_substituted(self):
        body = table_block(
            "string,long,dateTime:RFC3339,long",
            "false,false,false,false",
            "_result,,,7",
            "result,table,_time,count",
            ",0,2021-03-07T21:00:00Z,",
            ",0,2021-03-07T21:01:00Z,3",
        )
        table = decode_csv(body).tables[0].table
        assert table.values("count") == [Value.int64(7), Value.int64(3)]

    def test_empty_string_cell(self):
        body = table_block(
            "string,long,dateTime:RFC3339,string",
            "false,false,false,false",
            "_result,,,",
            "result,table,_time,note",
            ",0,2021-03-07T21:00:00Z,",
        )
        assert decode_csv(body).tables[0].table.values("note") == [Value.string("")]

    def test_empty_numeric_cell_without_default(self):
        body = table_block(*SIMPLE.values(), ",0,2021-03-07T21:00:00Z,")
        result = decode_csv(body)

        assert result.tables == []
        assert isinstance(result.errors[0], ParseError)
        assert result.errors[0].column == "_value"

    def test_datatype_mismatch_reports_position(self):
        body = table_block(
            *SIMPLE.values(),
            ",0,2021-03-07T21:00:00Z,1.5",
            ",0,2021-03-07T21:01:00Z,abc",
        )
        result = decode_csv(body)

        error = result.errors[0]
        assert isinstance(error, ParseError)
        assert error.row == 6
        assert error.column == "_value"
        assert error.token == "abc"
        assert result.tables == []


# =============================================================================
# ERRORS
# =============================================================================

@pytest.mark.unit
class TestErrors:
    """Server errors and structural violations."""

    def test_error_row_reported(self, csv_error_table):
        result = decode_csv(csv_error_table)

        assert result.tables == []
        error = result.errors[0]
        assert isinstance(error, ServerReportedError)
        assert error.message.startswith("failed to initialize execute state")
        assert error.table == "_result"
        assert error.reference == "897"
        with pytest.raises(ServerReportedError):
            result.raise_for_errors()

    def test_error_row_never_becomes_data(self):
        body = table_block(
            "string,long,dateTime:RFC3339,double,string",
            "false,false,false,false,false",
            "_result,,,,",
            "result,table,_time,_value,error",
            "last,0,2021-03-07T21:00:00Z,1.5,",
            "last,0,2021-03-07T21:01:00Z,2.5,out of memory",
        )
        result = decode_csv(body)

        assert len(result.tables[0].table) == 1
        assert result.errors[0].table == "last"
        assert result.errors[0].message == "out of memory"

    def test_error_does_not_abort_siblings(self, csv_error_table, csv_two_tables):
        result = decode_csv(csv_error_table + csv_two_tables)

        assert len(result.tables) == 2
        assert len(result.errors) == 1

    @pytest.mark.parametrize("broken", [
        # unknown datatype
        table_block(
            "string,long,dateTime:RFC3339,decimal", "false,false,false,false", "_result,,,",
            "result,table,_time,_value", ",0,2021-03-07T21:00:00Z,1",
        ),
        # annotation and header widths differ
        table_block(
            "string,long,dateTime:RFC3339", "false,false,false,false", "_result,,,",
            "result,table,_time,_value", ",0,2021-03-07T21:00:00Z,1",
        ),
        # data row width differs
        table_block(
            *SIMPLE.values(), ",0,2021-03-07T21:00:00Z,1,extra",
        ),
        # annotation row after data rows
        table_block(
            *SIMPLE.values(), ",0,2021-03-07T21:00:00Z,1", "#group,false,false,false,false",
        ).replace(",#group", "#group"),
        # no index column
        table_block(
            "string,long,double", "false,false,false", "_result,,",
            "result,table,_value", ",0,1",
        ),
    ])
    def test_structural_error_skips_only_its_table(self, broken, csv_two_tables):
        result = decode_csv(broken + csv_two_tables)

        assert len(result.errors) == 1
        assert isinstance(result.errors[0], ParseError)
        assert [len(tagged.table) for tagged in result.tables] == [2, 3]

    def test_partial_groups_discarded(self):
        body = table_block(
            "string,long,dateTime:RFC3339,double,string",
            "false,false,false,false,true",
            "_result,,,,",
            "result,table,_time,_value,host",
            ",0,2021-03-07T21:00:00Z,1,a",
            ",1,2021-03-07T21:00:00Z,2,b",
            ",1,2021-03-07T21:01:00Z,x,b",
        )
        result = decode_csv(body)

        assert result.tables == []
        assert len(result.errors) == 1


# =============================================================================
# SINKS
# =============================================================================

class PickySink:
    @classmethod
    def from_table(cls, name, index, columns):
        if len(index) > 2:
            raise TypeError("too long")
        return Table.from_table(name, index, columns)


@pytest.mark.unit
class TestSinks:
    """Custom and pandas sinks."""

    def test_sink_rejection_keeps_other_tables(self, csv_two_tables):
        result = decode_csv(csv_two_tables, sink=PickySink)

        assert len(result.tables) == 1
        assert isinstance(result.errors[0], ConversionError)
        assert result.errors[0].table == "_result"

    def test_dataframe_sink(self, csv_grouped_table):
        frames = [tagged.table for tagged in decode_csv(csv_grouped_table, sink=DataFrameSink).tables]

        assert frames[0]["_value"].tolist() == [1.5, 2.5]
        assert frames[1]["_value"].tolist() == [7.5]
        assert list(frames[0].columns) == ["_value"]
