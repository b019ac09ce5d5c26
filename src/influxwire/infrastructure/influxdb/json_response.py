"""
InfluxQL JSON Response Decoder
==============================

Decodes the JSON body returned by the InfluxQL ``/query`` endpoint:

    {"results": [
        {"statement_id": 0,
         "series": [{"name": "cpu", "tags": {"host": "a"},
                     "columns": ["time", "usage"],
                     "values": [["2021-03-07T21:00:00Z", 0.5]]}]},
        {"statement_id": 1, "error": "database not found: x"}
    ]}

Every series becomes one sink instance. Each statement yields its own
:class:`StatementResult`; a statement that fails (server error, malformed
series, sink rejection) never affects its siblings.

Cell inference:
- first column: RFC3339 string (or integer epoch nanoseconds) -> index
- JSON boolean -> Boolean
- integer literal -> Int64 (UInt64 above the Int64 range)
- fraction or exponent literal -> Float64
- string -> String
- null, arrays and objects are rejected
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from influxwire.core.exceptions import (
    ConversionError,
    InfluxWireError,
    ParseError,
    ServerReportedError
)
from influxwire.core.logging_config import log_wire_summary
from influxwire.domain.sinks import Table
from influxwire.domain.values import Value, ValueType

logger = logging.getLogger(__name__)


@dataclass
class TaggedTable:
    """A decoded table and the tag set identifying its series, if any."""

    table: Any
    tags: Optional[Dict[str, str]] = None


@dataclass
class StatementResult:
    """Outcome of one query statement."""

    statement_id: int
    tables: List[TaggedTable] = field(default_factory=list)
    error: Optional[InfluxWireError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> List[TaggedTable]:
        """Return the tables, or raise the statement's error."""
        if self.error is not None:
            raise self.error
        return self.tables


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def build_sink(sink: Any, name: str, index: List, columns: Dict[str, List[Value]]) -> Any:
    """
    Hand a decoded table to a sink.

    Errors raised by the sink are reported as ``ConversionError`` carrying
    the table name.
    """
    try:
        return sink.from_table(name, index, columns)
    except ConversionError as e:
        if e.table is None:
            e.table = name
            e.details["table"] = name
        raise
    except (TypeError, ValueError) as e:
        raise ConversionError(f"Sink rejected table '{name}': {e}", table=name) from e


def _decode_series(series: Any, sink: Any) -> TaggedTable:
    if not isinstance(series, dict):
        raise ParseError("Series is not a JSON object", expected="object", found=type(series).__name__)

    name = series.get("name", "")
    columns = series.get("columns")
    rows = series.get("values", [])
    tags = series.get("tags")

    if not isinstance(name, str):
        raise ParseError("Series name is not a string", column="name", found=type(name).__name__)
    if not isinstance(columns, list) or not columns or not all(isinstance(c, str) for c in columns):
        raise ParseError(
            f"Series '{name}' has no valid column list",
            column="columns",
            expected="non-empty list of column names"
        )
    if len(set(columns)) != len(columns):
        raise ParseError(f"Series '{name}' has duplicate column names", column="columns")
    if not isinstance(rows, list):
        raise ParseError(f"Series '{name}' values are not a list", column="values", expected="list")
    if tags is not None:
        if not isinstance(tags, dict) or not all(isinstance(v, str) for v in tags.values()):
            raise ParseError(f"Series '{name}' tags are not string pairs", column="tags")

    index_column, value_columns = columns[0], columns[1:]
    index = []
    data: Dict[str, List[Value]] = {column: [] for column in value_columns}

    for row_number, row in enumerate(rows, start=1):
        if not isinstance(row, list) or len(row) != len(columns):
            found = len(row) if isinstance(row, list) else type(row).__name__
            raise ParseError(
                f"Row of series '{name}' does not match its columns",
                row=row_number,
                expected=f"{len(columns)} cells",
                found=str(found)
            )

        index.append(
            Value.from_json_object(row[0], ValueType.TIMESTAMP, row=row_number, column=index_column).data
        )
        for column, cell in zip(value_columns, row[1:]):
            data[column].append(Value.from_json_object(cell, row=row_number, column=column))

    table = build_sink(sink, name, index, data)
    return TaggedTable(table=table, tags=dict(tags) if tags is not None else None)


def _decode_statement(statement: Any, position: int, sink: Any) -> StatementResult:
    if not isinstance(statement, dict):
        return StatementResult(
            statement_id=position,
            error=ParseError("Statement result is not a JSON object", expected="object")
        )

    statement_id = statement.get("statement_id", position)
    if isinstance(statement_id, bool) or not isinstance(statement_id, int):
        statement_id = position

    if "error" in statement:
        message = str(statement["error"])
        logger.warning(f"❌ Statement {statement_id} failed on the server: {message}")
        return StatementResult(
            statement_id=statement_id,
            error=ServerReportedError(message, statement_id=statement_id)
        )

    series_list = statement.get("series", [])
    if not isinstance(series_list, list):
        return StatementResult(
            statement_id=statement_id,
            error=ParseError("Statement series is not a list", column="series", expected="list")
        )

    tables = []
    for series in series_list:
        try:
            tables.append(_decode_series(series, sink))
        except (ParseError, ConversionError) as e:
            logger.debug(f"⚠️  Statement {statement_id} could not be decoded: {e}")
            return StatementResult(statement_id=statement_id, error=e)

    return StatementResult(statement_id=statement_id, tables=tables)


def decode_json(body: Union[str, bytes], sink: Any = Table) -> List[StatementResult]:
    """
    Decode an InfluxQL JSON response.

    Args:
        body: Response body
        sink: Class with a ``from_table(name, index, columns)`` factory

    Returns:
        One result per statement, in response order

    Raises:
        ParseError: If the body is not JSON or not a response document
        ServerReportedError: If the whole request failed on the server

    Example:
        >>> results = decode_json(body)
        >>> for tagged in results[0].unwrap():
        ...     print(tagged.tags, len(tagged.table))
    """
    try:
        document = json.loads(body, parse_constant=_reject_constant)
    except ValueError as e:
        raise ParseError(f"Invalid JSON response: {e}", expected="JSON document") from e

    if not isinstance(document, dict):
        raise ParseError("Response is not a JSON object", expected="object", found=type(document).__name__)

    if "error" in document and "results" not in document:
        message = str(document["error"])
        logger.warning(f"❌ Query failed on the server: {message}")
        raise ServerReportedError(message)

    results = document.get("results")
    if not isinstance(results, list):
        raise ParseError("Response has no results list", column="results", expected="list")

    outcomes = [_decode_statement(statement, position, sink) for position, statement in enumerate(results)]

    log_wire_summary(
        logger,
        "decode_json",
        statements=len(outcomes),
        tables=sum(len(o.tables) for o in outcomes),
        errors=sum(1 for o in outcomes if o.error is not None)
    )
    return outcomes
