"""
influxwire
==========

Protocol translation between Python time-series data and InfluxDB's wire
formats: line protocol for writes, InfluxQL JSON and Flux annotated CSV
for query results, plus InfluxQL and Flux query builders.

Usage:
    from influxwire import LineBuilder, encode_lines, decode_json, DataFrameSink

    body = encode_lines([LineBuilder("cpu").field("usage", 0.5).build()])
    results = decode_json(response_body, sink=DataFrameSink)
"""

from influxwire.core.exceptions import (
    InfluxWireError,
    EncodingError,
    ParseError,
    ConversionError,
    ServerReportedError,
    BuilderConsumedError,
    ClientError
)
from influxwire.domain import (
    Value,
    ValueType,
    Line,
    LineBuilder,
    Query,
    QueryLanguage,
    Duration,
    Sink,
    Table,
    DataFrameSink
)
from influxwire.infrastructure.influxdb import (
    encode_line,
    encode_lines,
    decode_line,
    decode_lines,
    InfluxQLQueryBuilder,
    FluxQueryBuilder,
    decode_json,
    decode_csv,
    InfluxClient
)

__version__ = "0.1.0"

__all__ = [
    "InfluxWireError",
    "EncodingError",
    "ParseError",
    "ConversionError",
    "ServerReportedError",
    "BuilderConsumedError",
    "ClientError",
    "Value",
    "ValueType",
    "Line",
    "LineBuilder",
    "Query",
    "QueryLanguage",
    "Duration",
    "Sink",
    "Table",
    "DataFrameSink",
    "encode_line",
    "encode_lines",
    "decode_line",
    "decode_lines",
    "InfluxQLQueryBuilder",
    "FluxQueryBuilder",
    "decode_json",
    "decode_csv",
    "InfluxClient",
]
