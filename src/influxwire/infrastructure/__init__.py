"""
Infrastructure Layer
====================

Wire formats and transport for InfluxDB.
"""

from .influxdb import (
    InfluxClient,
    get_influx_client,
    InfluxQLQueryBuilder,
    FluxQueryBuilder
)

__all__ = [
    "InfluxClient",
    "get_influx_client",
    "InfluxQLQueryBuilder",
    "FluxQueryBuilder",
]
