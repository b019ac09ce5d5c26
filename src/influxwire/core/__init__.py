"""
Core Layer
==========

Configuration, exceptions and logging shared by the whole package.
"""

from .config import Settings, get_settings
from .exceptions import (
    InfluxWireError,
    EncodingError,
    ParseError,
    ConversionError,
    ServerReportedError,
    BuilderConsumedError,
    ClientError,
    InfluxDBConnectionError,
    InfluxDBQueryError,
    InfluxDBWriteError,
    FieldTypeConflictError,
    DatabaseNotFoundError,
    EmptyResponseError,
    MissingTagError
)

__all__ = [
    "Settings",
    "get_settings",
    "InfluxWireError",
    "EncodingError",
    "ParseError",
    "ConversionError",
    "ServerReportedError",
    "BuilderConsumedError",
    "ClientError",
    "InfluxDBConnectionError",
    "InfluxDBQueryError",
    "InfluxDBWriteError",
    "FieldTypeConflictError",
    "DatabaseNotFoundError",
    "EmptyResponseError",
    "MissingTagError",
]
