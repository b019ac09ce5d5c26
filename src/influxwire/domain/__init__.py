"""
Domain Layer
============

Typed values, lines, queries and the sink abstraction.
"""

from .values import Value, ValueType, to_timestamp, parse_rfc3339, format_rfc3339
from .line import Line, LineBuilder
from .query import Query, QueryLanguage, Duration
from .sinks import Sink, Table, DataFrameSink

__all__ = [
    "Value",
    "ValueType",
    "to_timestamp",
    "parse_rfc3339",
    "format_rfc3339",
    "Line",
    "LineBuilder",
    "Query",
    "QueryLanguage",
    "Duration",
    "Sink",
    "Table",
    "DataFrameSink",
]
