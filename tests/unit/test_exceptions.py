"""
Unit Tests for Custom Exceptions
================================
"""

import pytest

from influxwire.core.exceptions import (
    ClientError,
    DatabaseNotFoundError,
    InfluxDBQueryError,
    InfluxDBWriteError,
    InfluxWireError,
    MissingTagError,
    ParseError
)


@pytest.mark.unit
class TestExceptions:
    """Exception messages and serialization."""

    def test_parse_error_location_in_str(self):
        error = ParseError("Invalid float", row=3, column=7, token="abc")

        assert str(error) == "Invalid float (row 3, column 7)"
        assert error.to_dict() == {
            "error": "PARSE_FAILED",
            "message": "Invalid float",
            "details": {"row": 3, "column": 7, "token": "abc", "expected": None, "found": None},
        }

    def test_parse_error_without_location(self):
        assert str(ParseError("Empty input")) == "Empty input"

    def test_hierarchy(self):
        error = DatabaseNotFoundError("missing", "database not found: missing", 404)

        assert isinstance(error, InfluxDBWriteError)
        assert isinstance(error, ClientError)
        assert isinstance(error, InfluxWireError)
        assert error.status_code == 404

    def test_long_query_truncated(self):
        error = InfluxDBQueryError("SELECT " + "x" * 200, "timeout")

        assert error.details["query"].endswith("...")
        assert len(error.details["query"]) == 103

    def test_missing_tag(self):
        error = MissingTagError("host")
        assert error.tag == "host"
        assert error.message == 'Missing tag "host"'
