"""
Sink Abstraction
================

Decoders never build a concrete table type themselves. They hand every
decoded table to a *sink*: any class exposing

    from_table(name, index, columns)

where ``index`` is the ordered list of UTC timestamps and ``columns`` maps
each column name to a list of :class:`Value` aligned with the index.
Whatever ``from_table`` returns is what the caller receives. Raising
``TypeError``, ``ValueError`` or ``ConversionError`` rejects the table; the
decoder reports it as a ``ConversionError`` for that table only.

Two sinks ship with the package:

- ``Table``: plain mapping-backed table, the default
- ``DataFrameSink``: builds a ``pandas.DataFrame``

Usage:
    from influxwire.domain.sinks import DataFrameSink
    from influxwire.infrastructure.influxdb.json_response import decode_json

    results = decode_json(body, sink=DataFrameSink)
    frame = results[0].tables[0].table
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Protocol, Sequence, Tuple

import numpy as np
import pandas as pd

from influxwire.core.exceptions import ConversionError
from influxwire.domain.values import Value, ValueType

logger = logging.getLogger(__name__)


class Sink(Protocol):
    """Anything that can be constructed from a decoded table."""

    @classmethod
    def from_table(
        cls,
        name: str,
        index: Sequence[pd.Timestamp],
        columns: Dict[str, Sequence[Value]]
    ) -> Any:
        ...


# =================================================================
# REFERENCE TABLE
# =================================================================

@dataclass
class Table:
    """
    Mapping-backed table.

    Every column holds exactly one value per index entry.
    """

    name: str
    index: List[pd.Timestamp]
    columns: Dict[str, List[Value]]

    def __post_init__(self):
        for column, values in self.columns.items():
            if len(values) != len(self.index):
                raise ValueError(
                    f"Column '{column}' has {len(values)} values "
                    f"but the index has {len(self.index)} entries"
                )

    @classmethod
    def from_table(
        cls,
        name: str,
        index: Sequence[pd.Timestamp],
        columns: Dict[str, Sequence[Value]]
    ) -> "Table":
        return cls(
            name=name,
            index=list(index),
            columns={column: list(values) for column, values in columns.items()}
        )

    @property
    def column_names(self) -> List[str]:
        return list(self.columns)

    def __len__(self) -> int:
        return len(self.index)

    def values(self, column: str) -> List[Value]:
        return self.columns[column]

    def rows(self) -> Iterator[Tuple[pd.Timestamp, Dict[str, Value]]]:
        """Iterate over ``(timestamp, {column: value})`` pairs."""
        for position, timestamp in enumerate(self.index):
            yield timestamp, {
                column: values[position]
                for column, values in self.columns.items()
            }


# =================================================================
# PANDAS SINK
# =================================================================

_DTYPES = {
    ValueType.FLOAT: "float64",
    ValueType.INTEGER: "int64",
    ValueType.UNSIGNED: "uint64",
    ValueType.BOOLEAN: "bool",
    ValueType.STRING: "object",
}


def _timestamp_array(timestamps: Sequence[pd.Timestamp]) -> pd.DatetimeIndex:
    return pd.to_datetime([ts.value for ts in timestamps], unit="ns", utc=True)


def _column_series(name: str, values: Sequence[Value], index: pd.DatetimeIndex) -> pd.Series:
    """Convert one column of values into a typed Series aligned with ``index``."""
    types = {value.type for value in values}

    if not types:
        return pd.Series(np.array([], dtype=object), index=index, dtype=object, name=name)

    if types == {ValueType.INTEGER, ValueType.FLOAT}:
        types = {ValueType.FLOAT}

    if len(types) > 1:
        found = ", ".join(sorted(t.value for t in types))
        raise ConversionError(f"Column '{name}' mixes value types: {found}")

    value_type = types.pop()
    if value_type is ValueType.TIMESTAMP:
        return pd.Series(_timestamp_array([value.data for value in values]).array, index=index, name=name)
    # Explicit dtype keeps strings as object even where pandas infers its string dtype
    array = np.array([value.data for value in values], dtype=_DTYPES[value_type])
    return pd.Series(array, index=index, dtype=_DTYPES[value_type], name=name)


class DataFrameSink:
    """
    Sink producing a ``pandas.DataFrame``.

    The frame is indexed by a UTC ``DatetimeIndex`` named ``time`` and has
    one typed column per value column; strings stay ``object`` columns.
    Int64 and Float64 values mixed in one column are widened to float64;
    any other mix is rejected. The table
    name is kept in ``frame.attrs["name"]``.
    """

    @classmethod
    def from_table(
        cls,
        name: str,
        index: Sequence[pd.Timestamp],
        columns: Dict[str, Sequence[Value]]
    ) -> pd.DataFrame:
        for column, values in columns.items():
            if len(values) != len(index):
                raise ValueError(
                    f"Column '{column}' has {len(values)} values "
                    f"but the index has {len(index)} entries"
                )

        time_index = _timestamp_array(index).rename("time")
        frame = pd.DataFrame(
            {column: _column_series(column, values, time_index) for column, values in columns.items()},
            index=time_index
        )
        frame.attrs["name"] = name

        logger.debug(f"📊 DataFrame '{name}': {len(frame)} rows x {len(frame.columns)} columns")
        return frame
