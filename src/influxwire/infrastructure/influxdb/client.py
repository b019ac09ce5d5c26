"""
InfluxDB HTTP Client
====================

Thin ``httpx`` adapter wiring the codecs to the InfluxDB HTTP API:

- ``/ping`` for health checks
- ``/write`` (1.x) or ``/api/v2/write`` (2.x) for line protocol
- ``/query`` for InfluxQL, decoded with ``decode_json``
- ``/api/v2/query`` for Flux, decoded with ``decode_csv``

Transport errors are retried with tenacity; HTTP error statuses are
mapped onto the client exceptions.

Usage:
    from influxwire.infrastructure.influxdb.client import InfluxClient

    with InfluxClient(url="http://localhost:8086", database="telegraf") as client:
        client.write(lines)
        frame = client.fetch_table(query, sink=DataFrameSink)
"""

from typing import Any, Dict, Iterable, List, Optional, Union
import logging
import time

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential
)

from influxwire.core.config import get_settings
from influxwire.core.exceptions import (
    DatabaseNotFoundError,
    EmptyResponseError,
    FieldTypeConflictError,
    InfluxDBConnectionError,
    InfluxDBQueryError,
    InfluxDBWriteError,
    MissingTagError
)
from influxwire.core.logging_config import PerformanceLogger, log_http_call
from influxwire.domain.line import Line
from influxwire.domain.query import Query, QueryLanguage
from influxwire.domain.sinks import Table
from influxwire.infrastructure.influxdb.csv_response import CsvResult, decode_csv
from influxwire.infrastructure.influxdb.json_response import StatementResult, TaggedTable, decode_json
from influxwire.infrastructure.influxdb.line_protocol import encode_lines

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Extract the server's error message from an error response."""
    try:
        document = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(document, dict):
        for key in ("error", "message"):
            if document.get(key):
                return str(document[key])
    return response.text.strip()


class InfluxClient:
    """
    InfluxDB HTTP client.

    Provides:
    - Lazy connection management
    - Automatic retries on transport errors
    - Line protocol writes (1.x and 2.x endpoints)
    - InfluxQL and Flux queries decoded into any sink
    """

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        org: Optional[str] = None,
        database: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: Optional[float] = None,
        verify_ssl: Optional[bool] = None,
        max_retries: Optional[int] = None,
        retry_wait: Any = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            url: InfluxDB URL (defaults to settings.INFLUXDB_URL)
            token: Authentication token (defaults to settings.INFLUXDB_TOKEN)
            username: Basic auth user for 1.x servers
            password: Basic auth password for 1.x servers
            org: Organization for Flux queries and 2.x writes
            database: Default database for InfluxQL queries and 1.x writes
            bucket: Default bucket for 2.x writes
            timeout: Request timeout in seconds
            verify_ssl: Verify TLS certificates
            max_retries: Attempts per request on transport errors
            retry_wait: tenacity wait strategy between attempts
            transport: Custom httpx transport (e.g. ``httpx.MockTransport``)
        """
        settings = get_settings()

        self.url = (url or settings.INFLUXDB_URL).rstrip("/")
        self.token = token if token is not None else settings.INFLUXDB_TOKEN
        self.username = username or settings.INFLUXDB_USERNAME
        self.password = password or settings.INFLUXDB_PASSWORD
        self.org = org or settings.INFLUXDB_ORG
        self.database = database or settings.INFLUXDB_DATABASE
        self.bucket = bucket or settings.INFLUXDB_BUCKET
        self.timeout = timeout if timeout is not None else settings.INFLUXDB_TIMEOUT
        self.verify_ssl = verify_ssl if verify_ssl is not None else settings.INFLUXDB_VERIFY_SSL
        self.max_retries = max_retries or settings.INFLUXDB_MAX_RETRIES

        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=retry_wait if retry_wait is not None else wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )

    @property
    def http(self) -> httpx.Client:
        """Get or create the HTTP client (lazy loading)."""
        if self._client is None:
            headers = {}
            auth = None
            if self.token:
                headers["Authorization"] = f"Token {self.token}"
            elif self.username and self.password:
                auth = (self.username, self.password)

            self._client = httpx.Client(
                base_url=self.url,
                headers=headers,
                auth=auth,
                timeout=self.timeout,
                verify=self.verify_ssl,
                transport=self._transport
            )
            logger.info(f"✅ InfluxDB client ready: {self.url}")

        return self._client

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        started = time.perf_counter()
        try:
            response = self._retrying(self.http.request, method, path, **kwargs)
        except httpx.TransportError as e:
            logger.error(f"❌ InfluxDB request {method} {path} failed: {e}")
            raise InfluxDBConnectionError(self.url, str(e)) from e

        log_http_call(
            logger,
            method,
            path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            bytes=len(response.content)
        )
        return response

    # =================================================================
    # HEALTH
    # =================================================================

    def ping(self) -> Dict[str, Any]:
        """
        Check that the server answers.

        Returns:
            Dict with status, server version and URL

        Raises:
            InfluxDBConnectionError: If the server is unreachable or unhealthy
        """
        response = self._request("GET", "/ping")
        if response.status_code >= 400:
            raise InfluxDBConnectionError(self.url, f"HTTP {response.status_code}: {_error_message(response)}")

        return {
            "status": "pass",
            "version": response.headers.get("X-Influxdb-Version"),
            "url": self.url
        }

    # =================================================================
    # WRITES
    # =================================================================

    def write(
        self,
        lines: Iterable[Line],
        database: Optional[str] = None,
        bucket: Optional[str] = None
    ) -> int:
        """
        Write lines to a database (1.x) or a bucket (2.x).

        Args:
            lines: Lines to write; encoding is atomic
            database: Target database (defaults to the client's)
            bucket: Target bucket; selects the 2.x endpoint

        Returns:
            Number of lines written

        Raises:
            EncodingError: If any line cannot be encoded
            FieldTypeConflictError: If a field type differs from the stored one
            DatabaseNotFoundError: If the database does not exist
            InfluxDBWriteError: On any other write failure
        """
        lines = list(lines)
        body = encode_lines(lines)
        if not lines:
            return 0

        database = database or self.database
        if bucket or (not database and self.bucket):
            target = bucket or self.bucket
            path = "/api/v2/write"
            params = {"bucket": target, "precision": "ns"}
            if self.org:
                params["org"] = self.org
        elif database:
            target = database
            path = "/write"
            params = {"db": database}
        else:
            raise ValueError("No database or bucket to write to")

        with PerformanceLogger(f"write {len(lines)} lines to {target}", logger_name=__name__):
            response = self._request(
                "POST",
                path,
                params=params,
                content=body.encode("utf-8"),
                headers={"Content-Type": "text/plain; charset=utf-8"}
            )

        if response.status_code >= 400:
            reason = _error_message(response)
            logger.error(f"❌ Write failed: {reason}")
            if "field type conflict" in reason:
                raise FieldTypeConflictError(target, reason, response.status_code)
            if "database not found" in reason:
                raise DatabaseNotFoundError(target, reason, response.status_code)
            raise InfluxDBWriteError(target, reason, response.status_code)

        logger.info(f"✅ Wrote {len(lines)} lines to {target}")
        return len(lines)

    # =================================================================
    # QUERIES
    # =================================================================

    def query(
        self,
        query: Query,
        sink: Any = Table,
        database: Optional[str] = None
    ) -> Union[List[StatementResult], CsvResult]:
        """
        Execute a query and decode the response into ``sink`` instances.

        InfluxQL queries return one ``StatementResult`` per statement; Flux
        queries return a ``CsvResult``.

        Raises:
            InfluxDBQueryError: If the server rejects the request
            ParseError: If the response body cannot be decoded
        """
        if query.language is QueryLanguage.FLUX:
            return self._query_flux(query, sink)
        return self._query_influxql(query, sink, database)

    def _query_influxql(self, query: Query, sink: Any, database: Optional[str]) -> List[StatementResult]:
        data = {"q": query.text}
        database = database or query.database or self.database
        if database:
            data["db"] = database

        with PerformanceLogger("InfluxQL query", logger_name=__name__):
            response = self._request("POST", "/query", data=data, headers={"Accept": "application/json"})
            if response.status_code >= 400:
                reason = _error_message(response)
                logger.error(f"❌ Query failed: {reason}")
                raise InfluxDBQueryError(query.text, reason, response.status_code)
            results = decode_json(response.content, sink=sink)

        logger.info(f"📊 Query returned {len(results)} statements")
        return results

    def _query_flux(self, query: Query, sink: Any) -> CsvResult:
        params = {"org": self.org} if self.org else None

        with PerformanceLogger("Flux query", logger_name=__name__):
            response = self._request(
                "POST",
                "/api/v2/query",
                params=params,
                content=query.text.encode("utf-8"),
                headers={
                    "Accept": "application/csv",
                    "Content-Type": "application/vnd.flux"
                }
            )
            if response.status_code >= 400:
                reason = _error_message(response)
                logger.error(f"❌ Query failed: {reason}")
                raise InfluxDBQueryError(query.text, reason, response.status_code)
            result = decode_csv(response.content, sink=sink)

        logger.info(f"📊 Query returned {len(result.tables)} tables")
        return result

    def _tables(self, query: Query, sink: Any) -> List[TaggedTable]:
        """Tables of the first statement (InfluxQL) or the whole response (Flux)."""
        outcome = self.query(query, sink=sink)
        if isinstance(outcome, CsvResult):
            outcome.raise_for_errors()
            return outcome.tables
        if not outcome:
            raise EmptyResponseError("response contains no statements")
        return outcome[0].unwrap()

    def fetch_table(self, query: Query, sink: Any = Table) -> Any:
        """
        Execute a query and return its first table.

        Raises:
            EmptyResponseError: If the response holds no table
        """
        tables = self._tables(query, sink)
        if not tables:
            raise EmptyResponseError()
        return tables[0].table

    def fetch_tables_by_tag(self, query: Query, tag: str, sink: Any = Table) -> Dict[str, Any]:
        """
        Execute a query and index its tables by the value of one tag.

        Example:
            >>> query = InfluxQLQueryBuilder("cpu").group_by("host").build()
            >>> by_host = client.fetch_tables_by_tag(query, "host")
            >>> by_host["server01"]

        Raises:
            MissingTagError: If a table does not carry the tag
        """
        result = {}
        for tagged in self._tables(query, sink):
            if not tagged.tags or tag not in tagged.tags:
                raise MissingTagError(tag)
            result[tagged.tags[tag]] = tagged.table
        return result

    def close(self):
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            logger.info("🔒 InfluxDB client closed")
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# Global client instance (singleton)
_client_instance: Optional[InfluxClient] = None


def get_influx_client() -> InfluxClient:
    """
    Get global client instance built from settings (singleton).

    Example:
        >>> client = get_influx_client()
        >>> client.ping()
    """
    global _client_instance

    if _client_instance is None:
        _client_instance = InfluxClient()
        logger.info("🔧 InfluxDB client initialized")

    return _client_instance
