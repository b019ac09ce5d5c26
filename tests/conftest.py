"""
Pytest Configuration and Shared Fixtures
=========================================

Environment setup and sample response bodies shared by unit and
integration tests.
"""
import os
import sys
from pathlib import Path

import pytest

# Add src directory to path
src_dir = Path(__file__).parent.parent / "src"
if src_dir.exists():
    sys.path.insert(0, str(src_dir))

# Set test environment variables BEFORE any imports
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "ERROR"
os.environ["INFLUXDB_URL"] = "http://influxdb.test:8086"
for name in (
    "INFLUXDB_TOKEN",
    "INFLUXDB_USERNAME",
    "INFLUXDB_PASSWORD",
    "INFLUXDB_ORG",
    "INFLUXDB_DATABASE",
    "INFLUXDB_BUCKET",
):
    os.environ.pop(name, None)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings so each test sees its own environment."""
    from influxwire.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# JSON RESPONSES
# =============================================================================

@pytest.fixture
def json_two_statements():
    """InfluxQL response: one statement with two tagged series, one failed statement."""
    return """{
        "results": [
            {
                "statement_id": 0,
                "series": [
                    {
                        "name": "indoor_environment",
                        "tags": {"room": "kitchen"},
                        "columns": ["time", "temperature", "humidity", "sensor"],
                        "values": [
                            ["2021-03-07T21:00:00Z", 21.5, 40, "dht22"],
                            ["2021-03-07T21:01:00.5Z", 21.75, 41, "dht22"]
                        ]
                    },
                    {
                        "name": "indoor_environment",
                        "tags": {"room": "office"},
                        "columns": ["time", "temperature", "humidity", "sensor"],
                        "values": [
                            ["2021-03-07T21:00:00Z", 19.0, 55, "bme280"]
                        ]
                    }
                ]
            },
            {
                "statement_id": 1,
                "error": "database not found: missing"
            }
        ]
    }"""


@pytest.fixture
def json_untagged_series():
    """InfluxQL response with a single untagged series."""
    return (
        '{"results":[{"statement_id":0,"series":[{"name":"cpu",'
        '"columns":["time","usage","active"],'
        '"values":[["2021-03-07T21:00:00Z",0.5,true],["2021-03-07T21:00:10Z",0.25,false]]}]}]}'
    )


# =============================================================================
# ANNOTATED CSV RESPONSES
# =============================================================================

CSV_ANNOTATIONS = (
    "#datatype,string,long,dateTime:RFC3339,dateTime:RFC3339,dateTime:RFC3339,double,string,string,string\r\n"
    "#group,false,false,true,true,false,false,true,true,true\r\n"
    "#default,_result,,,,,,,,\r\n"
    ",result,table,_start,_stop,_time,_value,_field,_measurement,host\r\n"
)

WINDOW = "2021-03-07T21:00:00Z,2021-03-07T22:00:00Z"


@pytest.fixture
def csv_two_tables():
    """Flux response: two blank-line-delimited tables sharing one header."""
    return (
        CSV_ANNOTATIONS
        + f",,0,{WINDOW},2021-03-07T21:00:00Z,1.5,usage_system,cpu,server01\r\n"
        + f",,0,{WINDOW},2021-03-07T21:10:00Z,2.5,usage_system,cpu,server01\r\n"
        + "\r\n"
        + CSV_ANNOTATIONS
        + f",,1,{WINDOW},2021-03-07T21:00:00Z,3.5,usage_system,cpu,server01\r\n"
        + f",,1,{WINDOW},2021-03-07T21:10:00Z,4.5,usage_system,cpu,server01\r\n"
        + f",,1,{WINDOW},2021-03-07T21:20:00Z,5.5,usage_system,cpu,server01\r\n"
        + "\r\n"
    )


@pytest.fixture
def csv_grouped_table():
    """Flux response: one annotation block holding two group keys."""
    return (
        CSV_ANNOTATIONS
        + f",,0,{WINDOW},2021-03-07T21:00:00Z,1.5,usage_system,cpu,server01\r\n"
        + f",,1,{WINDOW},2021-03-07T21:00:00Z,7.5,usage_system,cpu,server02\r\n"
        + f",,0,{WINDOW},2021-03-07T21:10:00Z,2.5,usage_system,cpu,server01\r\n"
        + "\r\n"
    )


@pytest.fixture
def csv_error_table():
    """Flux response carrying a server-reported error row."""
    return (
        "#datatype,string,string\r\n"
        "#group,true,true\r\n"
        "#default,,\r\n"
        ",error,reference\r\n"
        ",failed to initialize execute state: could not find bucket \"missing\",897\r\n"
        "\r\n"
    )
