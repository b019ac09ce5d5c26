"""
Flux Annotated CSV Response Decoder
===================================

Decodes the annotated CSV returned by the Flux ``/api/v2/query`` endpoint:

    #datatype,string,long,dateTime:RFC3339,double,string,string
    #group,false,false,false,false,true,true
    #default,_result,,,,,
    ,result,table,_time,_value,_field,_measurement
    ,,0,2021-03-07T21:00:00Z,21.5,temperature,indoor
    ,,0,2021-03-07T21:01:00Z,21.6,temperature,indoor

    #datatype,string,string
    ...

Framing:
- annotation rows (first cell ``#datatype``, ``#group``, ``#default``)
  describe the columns positionally
- the first non-annotation row is the header; an empty first header cell
  marks the annotation column, which carries no data
- data rows follow; a blank row ends the table and the next row starts a
  new annotation block

Within a table, rows sharing the values of every ``#group=true`` column
form one output table whose tags are those values. The index is ``_time``
(``_stop`` when absent); the sink receives the remaining non-group columns
except ``result`` and ``table``. A header followed by no data rows yields
one empty, untagged table.

Failures are collected in :class:`CsvResult.errors`:
- rows with a non-empty ``error`` cell become ``ServerReportedError``
- a structural violation or a cell that does not match its datatype is a
  ``ParseError``; the rest of that table is skipped and its partial
  groups are discarded, decoding resumes after the next blank row
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from influxwire.core.exceptions import (
    ConversionError,
    InfluxWireError,
    ParseError,
    ServerReportedError
)
from influxwire.core.logging_config import log_wire_summary
from influxwire.domain.sinks import Table
from influxwire.domain.values import CSV_DATATYPES, Value, ValueType, parse_rfc3339
from influxwire.infrastructure.influxdb.json_response import TaggedTable, build_sink

logger = logging.getLogger(__name__)


DATATYPE_ANNOTATION = "#datatype"
GROUP_ANNOTATION = "#group"
DEFAULT_ANNOTATION = "#default"

DEFAULT_TABLE_NAME = "_result"
INDEX_COLUMNS = ("_time", "_stop")
RESERVED_COLUMNS = ("result", "table")


@dataclass
class CsvResult:
    """Tables decoded from a Flux response and the errors met on the way."""

    tables: List[TaggedTable] = field(default_factory=list)
    errors: List[InfluxWireError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise self.errors[0]


@dataclass
class _Column:
    name: str
    position: int
    datatype: str = "string"
    group: bool = False
    default: str = ""

    @property
    def value_type(self) -> ValueType:
        return CSV_DATATYPES[self.datatype]


@dataclass
class _Group:
    name: str
    tags: Dict[str, str]
    index: List = field(default_factory=list)
    columns: Dict[str, List[Value]] = field(default_factory=dict)


class _TableBlock:
    """Accumulates one annotation block: annotations, header and data rows."""

    def __init__(self):
        self.annotations: Dict[str, List[str]] = {}
        self.header: Optional[List[str]] = None
        self.columns: List[_Column] = []
        self.index_column: Optional[_Column] = None
        self.value_columns: List[_Column] = []
        self.groups: Dict[Tuple[str, ...], _Group] = {}
        self.failed = False
        self.rows_seen = 0

    # -----------------------------------------------------------------
    # Structure
    # -----------------------------------------------------------------

    def add_annotation(self, row: List[str], line: int) -> None:
        if self.header is not None:
            raise ParseError(
                "Annotation row after the header of a table",
                row=line, token=row[0], expected="data row or blank line", found=row[0]
            )
        self.annotations[row[0]] = row

    def set_header(self, row: List[str], line: int) -> None:
        for name, annotation in self.annotations.items():
            if len(annotation) != len(row):
                raise ParseError(
                    f"Annotation {name} has {len(annotation)} columns but the header has {len(row)}",
                    row=line, token=name, expected=f"{len(row)} columns", found=str(len(annotation))
                )

        start = 1 if row and row[0] == "" else 0
        names = row[start:]
        if len(set(names)) != len(names):
            raise ParseError("Duplicate column names in header", row=line, token=",".join(row))

        datatypes = self.annotations.get(DATATYPE_ANNOTATION)
        groups = self.annotations.get(GROUP_ANNOTATION)
        defaults = self.annotations.get(DEFAULT_ANNOTATION)

        for position in range(start, len(row)):
            column = _Column(
                name=row[position],
                position=position,
                datatype=datatypes[position] if datatypes else "string",
                group=(groups[position] == "true") if groups else False,
                default=defaults[position] if defaults else ""
            )
            if column.datatype not in CSV_DATATYPES:
                raise ParseError(
                    f"Unknown datatype {column.datatype!r} for column '{column.name}'",
                    row=line, column=column.name, token=column.datatype, expected="annotated CSV datatype"
                )
            self.columns.append(column)

        by_name = {column.name: column for column in self.columns}
        for candidate in INDEX_COLUMNS:
            if candidate in by_name:
                self.index_column = by_name[candidate]
                break

        self.value_columns = [
            column for column in self.columns
            if not column.group
            and column is not self.index_column
            and column.name not in RESERVED_COLUMNS
        ]
        self.header = row

    # -----------------------------------------------------------------
    # Data
    # -----------------------------------------------------------------

    def _cell_text(self, column: _Column, row: List[str]) -> str:
        text = row[column.position]
        if text == "" and column.default != "":
            return column.default
        return text

    def _parse_cell(self, column: _Column, row: List[str], line: int) -> Value:
        text = self._cell_text(column, row)
        if text == "":
            if column.value_type is ValueType.STRING:
                return Value.string("")
            raise ParseError(
                f"Empty cell in column '{column.name}'",
                row=line, column=column.name, expected=column.datatype, found="empty cell"
            )
        try:
            return Value.parse_csv(text, column.datatype)
        except ParseError as e:
            raise ParseError(
                f"Invalid {column.datatype} in column '{column.name}': {e.message}",
                row=line, column=column.name, token=text, expected=column.datatype, found=text
            ) from e

    def add_row(self, row: List[str], line: int) -> Optional[ServerReportedError]:
        """Add a data row, or return the server error it carries."""
        self.rows_seen += 1
        if len(row) != len(self.header):
            raise ParseError(
                "Data row does not match the header",
                row=line, expected=f"{len(self.header)} columns", found=str(len(row))
            )

        cells = {column.name: column for column in self.columns}
        table_name = DEFAULT_TABLE_NAME
        if "result" in cells:
            table_name = self._cell_text(cells["result"], row) or DEFAULT_TABLE_NAME

        if "error" in cells and row[cells["error"].position] != "":
            reference = row[cells["reference"].position] if "reference" in cells else ""
            return ServerReportedError(
                row[cells["error"].position],
                table=table_name,
                reference=reference or None
            )

        if self.index_column is None:
            raise ParseError(
                "Table has no _time or _stop column",
                row=line, expected="_time column", found=",".join(self.header)
            )

        index_text = self._cell_text(self.index_column, row)
        try:
            timestamp = parse_rfc3339(index_text)
        except ParseError as e:
            raise ParseError(
                f"Invalid timestamp in column '{self.index_column.name}'",
                row=line, column=self.index_column.name, token=index_text,
                expected="RFC3339 timestamp", found=index_text
            ) from e

        group_columns = [column for column in self.columns if column.group]
        key = tuple(self._cell_text(column, row) for column in group_columns)
        values = {column.name: self._parse_cell(column, row, line) for column in self.value_columns}

        group = self.groups.get(key)
        if group is None:
            group = _Group(
                name=table_name,
                tags=dict(zip((column.name for column in group_columns), key)),
                columns={column.name: [] for column in self.value_columns}
            )
            self.groups[key] = group

        group.index.append(timestamp)
        for name, value in values.items():
            group.columns[name].append(value)
        return None

    def empty_group(self) -> _Group:
        """The table reported for a header with no data rows."""
        result = next((column for column in self.columns if column.name == "result"), None)
        return _Group(
            name=(result.default if result else "") or DEFAULT_TABLE_NAME,
            tags={},
            columns={column.name: [] for column in self.value_columns}
        )


class _Decoder:
    def __init__(self, sink: Any):
        self.sink = sink
        self.result = CsvResult()
        self.block: Optional[_TableBlock] = None

    def finish_block(self) -> None:
        block, self.block = self.block, None
        if block is None or block.failed:
            return
        if block.header is not None and block.rows_seen == 0:
            block.groups[()] = block.empty_group()
        for group in block.groups.values():
            try:
                table = build_sink(self.sink, group.name, group.index, group.columns)
            except ConversionError as e:
                self.result.errors.append(e)
                continue
            self.result.tables.append(TaggedTable(table=table, tags=group.tags))

    def feed(self, row: List[str], line: int) -> None:
        if not row or (len(row) == 1 and not row[0].strip()):
            self.finish_block()
            return

        if self.block is None:
            self.block = _TableBlock()
        block = self.block
        if block.failed:
            return

        try:
            if row[0].startswith("#"):
                block.add_annotation(row, line)
            elif block.header is None:
                block.set_header(row, line)
            else:
                error = block.add_row(row, line)
                if error is not None:
                    logger.warning(f"❌ Server reported error in table '{error.table}': {error.message}")
                    self.result.errors.append(error)
        except ParseError as e:
            logger.debug(f"⚠️  Skipping rest of table: {e}")
            block.failed = True
            self.result.errors.append(e)


def decode_csv(body: Union[str, bytes], sink: Any = Table) -> CsvResult:
    """
    Decode a Flux annotated CSV response.

    Args:
        body: Response body
        sink: Class with a ``from_table(name, index, columns)`` factory

    Returns:
        Decoded tables with their group-key tags, and the collected errors

    Raises:
        ParseError: If the body is not decodable CSV at all

    Example:
        >>> result = decode_csv(body)
        >>> result.raise_for_errors()
        >>> for tagged in result.tables:
        ...     print(tagged.tags, len(tagged.table))
    """
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"Response is not UTF-8: {e}") from e

    decoder = _Decoder(sink)
    reader = csv.reader(io.StringIO(body, newline=""))
    try:
        for row in reader:
            decoder.feed(row, reader.line_num)
    except csv.Error as e:
        raise ParseError(f"Malformed CSV: {e}", row=reader.line_num) from e
    decoder.finish_block()

    log_wire_summary(logger, "decode_csv", tables=len(decoder.result.tables), errors=len(decoder.result.errors))
    return decoder.result
