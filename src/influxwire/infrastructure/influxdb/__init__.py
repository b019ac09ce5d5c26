"""
InfluxDB Infrastructure Module
===============================

Wire codecs, query builders, response decoders and the HTTP client.
"""

from .line_protocol import (
    encode_line,
    encode_lines,
    decode_line,
    decode_lines,
    LineBatch
)

from .queries import (
    InfluxQLQueryBuilder,
    FluxQueryBuilder,
    latest_values_query
)

from .json_response import (
    decode_json,
    StatementResult,
    TaggedTable
)

from .csv_response import (
    decode_csv,
    CsvResult
)

from .client import (
    InfluxClient,
    get_influx_client
)

__all__ = [
    "encode_line",
    "encode_lines",
    "decode_line",
    "decode_lines",
    "LineBatch",
    "InfluxQLQueryBuilder",
    "FluxQueryBuilder",
    "latest_values_query",
    "decode_json",
    "StatementResult",
    "TaggedTable",
    "decode_csv",
    "CsvResult",
    "InfluxClient",
    "get_influx_client",
]
