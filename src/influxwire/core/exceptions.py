"""
Custom Exceptions Module
=========================

Domain-specific exceptions for influxwire.

Exception Hierarchy:
    InfluxWireError (base)
    ├── EncodingError
    ├── ParseError
    ├── ConversionError
    ├── ServerReportedError
    ├── BuilderConsumedError
    └── ClientError
        ├── InfluxDBConnectionError
        ├── InfluxDBQueryError
        ├── InfluxDBWriteError
        │   ├── FieldTypeConflictError
        │   └── DatabaseNotFoundError
        ├── EmptyResponseError
        └── MissingTagError

Local malformations (EncodingError, ParseError, ConversionError) and
remote errors (ServerReportedError) are raised when a whole unit fails and
are otherwise returned as values inside decoder results, so that a failing
line, statement or table never hides its siblings.

Usage:
    from influxwire.core.exceptions import ParseError

    try:
        line = decode_line(text)
    except ParseError as e:
        logger.error(f"Bad line at column {e.column}: {e.token!r}")
"""

from typing import Optional, Dict, Any


# =================================================================
# BASE EXCEPTION
# =================================================================

class InfluxWireError(Exception):
    """
    Base exception for all influxwire errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.details = details or {}
        self.error_code = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logs and API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }


# =================================================================
# CODEC EXCEPTIONS
# =================================================================

class EncodingError(InfluxWireError):
    """A value or line cannot be rendered to its wire form."""

    def __init__(self, message: str, token: Optional[str] = None, index: Optional[int] = None):
        self.token = token
        self.index = index
        super().__init__(
            message=message,
            details={"token": token, "index": index},
            error_code="ENCODING_FAILED"
        )


class ParseError(InfluxWireError):
    """
    Wire text could not be decoded.

    Carries enough position information (row, column, offending token,
    expected vs. found) for the caller to report it without re-parsing.
    Rows are 1-based; columns are either a 0-based character offset (line
    protocol) or a column name (JSON and CSV).
    """

    def __init__(
        self,
        message: str,
        row: Optional[int] = None,
        column: Optional[Any] = None,
        token: Optional[str] = None,
        expected: Optional[str] = None,
        found: Optional[str] = None
    ):
        self.row = row
        self.column = column
        self.token = token
        self.expected = expected
        self.found = found
        super().__init__(
            message=message,
            details={
                "row": row,
                "column": column,
                "token": token,
                "expected": expected,
                "found": found
            },
            error_code="PARSE_FAILED"
        )

    def __str__(self) -> str:
        location = []
        if self.row is not None:
            location.append(f"row {self.row}")
        if self.column is not None:
            location.append(f"column {self.column}")
        if location:
            return f"{self.message} ({', '.join(location)})"
        return self.message


class ConversionError(InfluxWireError):
    """A sink rejected a decoded table, or a value has the wrong variant."""

    def __init__(self, message: str, table: Optional[str] = None):
        self.table = table
        super().__init__(
            message=message,
            details={"table": table},
            error_code="CONVERSION_FAILED"
        )


class ServerReportedError(InfluxWireError):
    """An error reported by the server inside an otherwise valid response."""

    def __init__(
        self,
        message: str,
        statement_id: Optional[int] = None,
        table: Optional[str] = None,
        reference: Optional[str] = None
    ):
        self.statement_id = statement_id
        self.table = table
        self.reference = reference
        super().__init__(
            message=message,
            details={
                "statement_id": statement_id,
                "table": table,
                "reference": reference
            },
            error_code="SERVER_REPORTED_ERROR"
        )


class BuilderConsumedError(InfluxWireError):
    """A builder was used again after its terminal build() call."""

    def __init__(self, builder: str):
        super().__init__(
            message=f"{builder} has already been built and cannot be reused",
            details={"builder": builder},
            error_code="BUILDER_CONSUMED"
        )


# =================================================================
# CLIENT EXCEPTIONS
# =================================================================

class ClientError(InfluxWireError):
    """Base exception for errors raised by the HTTP client."""
    pass


class InfluxDBConnectionError(ClientError):
    """InfluxDB connection error."""

    def __init__(self, url: str, reason: str):
        super().__init__(
            message=f"Failed to connect to InfluxDB at {url}: {reason}",
            details={"url": url, "reason": reason},
            error_code="INFLUXDB_CONNECTION_FAILED"
        )


class InfluxDBQueryError(ClientError):
    """InfluxDB query execution error."""

    def __init__(self, query: str, reason: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(
            message=f"Query failed: {reason}",
            details={
                "query": query[:100] + "..." if len(query) > 100 else query,
                "reason": reason,
                "status_code": status_code
            },
            error_code="INFLUXDB_QUERY_FAILED"
        )


class InfluxDBWriteError(ClientError):
    """InfluxDB write operation error."""

    def __init__(self, target: str, reason: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(
            message=f"Write failed for '{target}': {reason}",
            details={"target": target, "reason": reason, "status_code": status_code},
            error_code="INFLUXDB_WRITE_FAILED"
        )


class FieldTypeConflictError(InfluxDBWriteError):
    """A field was written with a type different from the stored one."""
    pass


class DatabaseNotFoundError(InfluxDBWriteError):
    """The target database does not exist."""
    pass


class EmptyResponseError(ClientError):
    """The server returned no statement or no table where one was expected."""

    def __init__(self, reason: str = "response contains no tables"):
        super().__init__(
            message=f"Empty response: {reason}",
            details={"reason": reason},
            error_code="EMPTY_RESPONSE"
        )


class MissingTagError(ClientError):
    """A table was expected to carry a tag that is missing."""

    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(
            message=f"Missing tag \"{tag}\"",
            details={"tag": tag},
            error_code="MISSING_TAG"
        )
