"""
InfluxDB Query Builders
=======================

Fluent builders rendering InfluxQL and Flux queries. Identifiers and
string literals are escaped; the existence of measurements, fields and
tags is the server's concern.

Usage:
    from influxwire.infrastructure.influxdb.queries import (
        InfluxQLQueryBuilder,
        FluxQueryBuilder,
        latest_values_query
    )

    query = InfluxQLQueryBuilder("indoor_environment") \
        .field("temperature") \
        .field("humidity") \
        .start("2021-03-07T21:00:00Z") \
        .build()

    query = FluxQueryBuilder("telegraf/autogen") \
        .range_start("-15m") \
        .filter_measurement("cpu") \
        .build()
"""

import re
from datetime import timedelta
from typing import Any, List, Optional, Sequence, Union

import pandas as pd

from influxwire.core.exceptions import BuilderConsumedError
from influxwire.domain.query import Duration, Query, QueryLanguage
from influxwire.domain.values import format_rfc3339, parse_rfc3339, to_timestamp


Bound = Union[Duration, pd.Timestamp]

_PLAIN_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

INFLUXQL_KEYWORDS = frozenset("""
    ALL ALTER ANALYZE ANY AS ASC BEGIN BY CARDINALITY CREATE CONTINUOUS DATABASE
    DATABASES DEFAULT DELETE DESC DESTINATIONS DIAGNOSTICS DISTINCT DROP
    DURATION END EVERY EXACT EXPLAIN FIELD FOR FROM GRANT GRANTS GROUP GROUPS
    IN INF INSERT INTO KEY KEYS KILL LIMIT MEASUREMENT MEASUREMENTS NAME OFFSET
    ON ORDER PASSWORD POLICIES POLICY PRIVILEGES QUERIES QUERY READ REPLICATION
    RESAMPLE RETENTION REVOKE SELECT SERIES SET SHARD SHARDS SLIMIT SOFFSET
    STATS SUBSCRIPTION SUBSCRIPTIONS TAG TO USER USERS VALUES WHERE WITH WRITE
""".split())


# =================================================================
# ESCAPING AND BOUNDS
# =================================================================

def quote_identifier(name: str) -> str:
    """
    Render an InfluxQL identifier, double-quoting it only when needed.

    Example:
        >>> quote_identifier("temperature")
        'temperature'
        >>> quote_identifier("select")
        '"select"'
    """
    if _PLAIN_IDENTIFIER_RE.match(name) and name.upper() not in INFLUXQL_KEYWORDS:
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def quote_influxql_string(value: str) -> str:
    """Render an InfluxQL single-quoted string literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def quote_flux_string(value: str) -> str:
    """Render a Flux double-quoted string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")
    return f'"{escaped}"'


def to_bound(value: Any) -> Bound:
    """
    Interpret a time bound.

    Durations, timedeltas and duration literals (``"-15m"``) are relative
    bounds; anything else is converted to a UTC instant.
    """
    if isinstance(value, Duration):
        return value
    if isinstance(value, timedelta):
        return Duration.from_timedelta(value)
    if isinstance(value, str):
        try:
            return Duration.parse(value)
        except ValueError:
            return parse_rfc3339(value)
    return to_timestamp(value)


def to_duration(value: Any) -> Duration:
    if isinstance(value, Duration):
        return value
    if isinstance(value, timedelta):
        return Duration.from_timedelta(value)
    return Duration.parse(str(value))


class _ConsumableBuilder:
    """Shared consume-once bookkeeping for the query builders."""

    def __init__(self):
        self._consumed = False

    def _check(self):
        if self._consumed:
            raise BuilderConsumedError(self.__class__.__name__)

    def _consume(self):
        self._check()
        self._consumed = True


# =================================================================
# INFLUXQL
# =================================================================

class InfluxQLQueryBuilder(_ConsumableBuilder):
    """
    Fluent interface for building InfluxQL ``SELECT`` queries.

    Renders:
        SELECT <fields|*> FROM [db.rp.]<measurement>
        [WHERE <time and tag conditions>] [GROUP BY <...>] [LIMIT n]

    Example:
        >>> InfluxQLQueryBuilder("indoor_environment") \
        ...     .field("temperature") \
        ...     .field("humidity") \
        ...     .start("2021-03-07T21:00:00Z") \
        ...     .build().text
        "SELECT temperature, humidity FROM indoor_environment WHERE time > '2021-03-07T21:00:00Z'"
    """

    def __init__(self, measurement: str):
        super().__init__()
        self.measurement = measurement
        self._database: Optional[str] = None
        self._retention_policy: Optional[str] = None
        self._fields: List[str] = []
        self._start: Optional[Bound] = None
        self._stop: Optional[Bound] = None
        self._tag_conditions: List[str] = []
        self._groups: List[str] = []
        self._limit: Optional[int] = None

    def database(self, database: str) -> "InfluxQLQueryBuilder":
        self._check()
        self._database = database
        return self

    def retention_policy(self, retention_policy: str) -> "InfluxQLQueryBuilder":
        self._check()
        self._retention_policy = retention_policy
        return self

    def field(self, name: str, function: Optional[str] = None) -> "InfluxQLQueryBuilder":
        """
        Select a field.

        Args:
            name: Field name
            function: Optional aggregate or selector, e.g. ``"mean"``
                renders ``mean(name)``

        Returns:
            Self for chaining
        """
        self._check()
        rendered = quote_identifier(name)
        if function:
            if not _PLAIN_IDENTIFIER_RE.match(function):
                raise ValueError(f"Invalid function name: {function!r}")
            rendered = f"{function}({rendered})"
        self._fields.append(rendered)
        return self

    def start(self, start: Any) -> "InfluxQLQueryBuilder":
        """Lower time bound (exclusive): an instant or a duration relative to now."""
        self._check()
        self._start = to_bound(start)
        return self

    def stop(self, stop: Any) -> "InfluxQLQueryBuilder":
        """Upper time bound (exclusive): an instant or a duration relative to now."""
        self._check()
        self._stop = to_bound(stop)
        return self

    def where_tag(self, key: str, value: str) -> "InfluxQLQueryBuilder":
        """Add an equality condition on a tag."""
        self._check()
        self._tag_conditions.append(f"{quote_identifier(key)} = {quote_influxql_string(value)}")
        return self

    def group_by(self, tag: str) -> "InfluxQLQueryBuilder":
        self._check()
        self._groups.append(quote_identifier(tag))
        return self

    def group_by_time(self, interval: Any) -> "InfluxQLQueryBuilder":
        """Group into time buckets, e.g. ``group_by_time("5m")``."""
        self._check()
        self._groups.append(f"time({to_duration(interval)})")
        return self

    def limit(self, n: int) -> "InfluxQLQueryBuilder":
        self._check()
        self._limit = n
        return self

    @staticmethod
    def _time_condition(operator: str, bound: Bound) -> str:
        if isinstance(bound, Duration):
            sign = "-" if bound.amount < 0 else "+"
            return f"time {operator} now() {sign} {Duration(abs(bound.amount), bound.unit)}"
        return f"time {operator} '{format_rfc3339(bound)}'"

    def _source(self) -> str:
        measurement = quote_identifier(self.measurement)
        database = quote_identifier(self._database) if self._database else ""
        retention_policy = quote_identifier(self._retention_policy) if self._retention_policy else ""

        if database or retention_policy:
            return f"{database}.{retention_policy}.{measurement}"
        return measurement

    def build(self) -> Query:
        """Render the query. The builder cannot be used afterwards."""
        self._consume()

        parts = [f"SELECT {', '.join(self._fields) if self._fields else '*'}"]
        parts.append(f"FROM {self._source()}")

        conditions = []
        if self._start is not None:
            conditions.append(self._time_condition(">", self._start))
        if self._stop is not None:
            conditions.append(self._time_condition("<", self._stop))
        conditions.extend(self._tag_conditions)
        if conditions:
            parts.append(f"WHERE {' AND '.join(conditions)}")

        if self._groups:
            parts.append(f"GROUP BY {', '.join(self._groups)}")

        if self._limit is not None:
            parts.append(f"LIMIT {int(self._limit)}")

        return Query(
            text=" ".join(parts),
            language=QueryLanguage.INFLUXQL,
            database=self._database
        )


# =================================================================
# FLUX
# =================================================================

class FluxQueryBuilder(_ConsumableBuilder):
    """
    Fluent interface for building Flux queries.

    Statements are rendered in call order, one per line, and the pipeline
    ends with ``yield()``.

    Example:
        >>> print(FluxQueryBuilder("telegraf/autogen") \
        ...     .range_start("-15m") \
        ...     .filter('r._measurement == "cpu"') \
        ...     .build())
        from(bucket: "telegraf/autogen")
          |> range(start: -15m)
          |> filter(fn: (r) =>
            r._measurement == "cpu"
          )
          |> yield()
    """

    def __init__(self, bucket: str):
        super().__init__()
        self.bucket = bucket
        self._statements: List[str] = []

    def _add(self, statement: str) -> "FluxQueryBuilder":
        self._check()
        self._statements.append(statement)
        return self

    @staticmethod
    def _render_bound(bound: Bound) -> str:
        if isinstance(bound, Duration):
            return str(bound)
        return f"time(v: {quote_flux_string(format_rfc3339(bound))})"

    def range_start(self, start: Any) -> "FluxQueryBuilder":
        return self._add(f"range(start: {self._render_bound(to_bound(start))})")

    def range_stop(self, stop: Any) -> "FluxQueryBuilder":
        return self._add(f"range(stop: {self._render_bound(to_bound(stop))})")

    def range(self, start: Any, stop: Any) -> "FluxQueryBuilder":
        """
        Add range filter.

        Args:
            start: Start bound (e.g., "-1h", "2025-10-01T00:00:00Z", a datetime)
            stop: Stop bound

        Returns:
            Self for chaining
        """
        return self._add(
            f"range(start: {self._render_bound(to_bound(start))}, "
            f"stop: {self._render_bound(to_bound(stop))})"
        )

    def filter(self, predicate: str) -> "FluxQueryBuilder":
        """
        Add a raw filter predicate over the record ``r``.

        Multi-line predicates are re-indented under the ``filter`` call.
        """
        lines = ["filter(fn: (r) =>"]
        lines.extend(f"    {line.lstrip()}" for line in predicate.splitlines())
        lines.append("  )")
        return self._add("\n".join(lines))

    def filter_measurement(self, measurement: str) -> "FluxQueryBuilder":
        """Add measurement filter."""
        return self._add(f'filter(fn: (r) => r["_measurement"] == {quote_flux_string(measurement)})')

    def filter_field(self, field: str) -> "FluxQueryBuilder":
        """Add field filter."""
        return self._add(f'filter(fn: (r) => r["_field"] == {quote_flux_string(field)})')

    def filter_tag(self, tag_key: str, tag_value: str) -> "FluxQueryBuilder":
        """Add tag filter."""
        return self._add(
            f"filter(fn: (r) => r[{quote_flux_string(tag_key)}] == {quote_flux_string(tag_value)})"
        )

    def window(self, every: Any) -> "FluxQueryBuilder":
        return self._add(f"window(every: {to_duration(every)})")

    def aggregate(self, fn: str) -> "FluxQueryBuilder":
        return self._add(f"{fn}()")

    def mean(self) -> "FluxQueryBuilder":
        return self.aggregate("mean")

    def duplicate(self, column: str, as_: str) -> "FluxQueryBuilder":
        return self._add(f"duplicate(column: {quote_flux_string(column)}, as: {quote_flux_string(as_)})")

    def aggregate_window(
        self,
        fn: str,
        every: Any,
        create_empty: Optional[bool] = None
    ) -> "FluxQueryBuilder":
        statement = f"aggregateWindow(every: {to_duration(every)}, fn: {fn}"
        if create_empty is not None:
            statement += f", createEmpty: {'true' if create_empty else 'false'}"
        return self._add(statement + ")")

    def sort(self, columns: Sequence[str] = ("_time",), desc: bool = False) -> "FluxQueryBuilder":
        rendered = ", ".join(quote_flux_string(column) for column in columns)
        return self._add(f"sort(columns: [{rendered}], desc: {'true' if desc else 'false'})")

    def limit(self, n: int) -> "FluxQueryBuilder":
        return self._add(f"limit(n: {int(n)})")

    def build(self) -> Query:
        """Render the pipeline. The builder cannot be used afterwards."""
        self._consume()

        lines = [f"from(bucket: {quote_flux_string(self.bucket)})"]
        lines.extend(f"  |> {statement}" for statement in self._statements)
        lines.append("  |> yield()")

        return Query(
            text="\n".join(lines),
            language=QueryLanguage.FLUX,
            bucket=self.bucket
        )


# =================================================================
# PRE-BUILT QUERIES
# =================================================================

def latest_values_query(
    bucket: str,
    measurement: str,
    field: str,
    limit: int = 24,
    since: Any = "-24h"
) -> Query:
    """
    Latest values of one field, newest first.

    Args:
        bucket: Bucket name
        measurement: Measurement name
        field: Field name
        limit: Number of records to return
        since: Range start

    Returns:
        Flux query
    """
    return FluxQueryBuilder(bucket) \
        .range_start(since) \
        .filter_measurement(measurement) \
        .filter_field(field) \
        .sort(desc=True) \
        .limit(limit) \
        .build()
