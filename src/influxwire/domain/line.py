"""
Line Model
==========

A single measurement point: measurement name, tags, typed fields and an
optional timestamp. Lines are immutable; ``LineBuilder`` accumulates the
parts and is consumed by its ``build()`` call.

Usage:
    from datetime import datetime, timezone
    from influxwire.domain.line import LineBuilder

    line = (
        LineBuilder("location")
        .field("latitude", 55.383333)
        .field("longitude", 10.383333)
        .tag("city", "Odense")
        .timestamp(datetime(2014, 7, 8, 9, 10, 11, tzinfo=timezone.utc))
        .build()
    )
"""

from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, Optional

import pandas as pd

from influxwire.core.exceptions import BuilderConsumedError
from influxwire.domain.values import Value, to_timestamp


@dataclass(frozen=True)
class Line:
    """
    A measurement point. Tags and fields keep insertion order.

    Plain field values are wrapped with ``Value.of`` and the timestamp is
    normalized with ``to_timestamp``, as ``LineBuilder`` does.
    """

    measurement: str
    tags: Dict[str, str] = dataclass_field(default_factory=dict)
    fields: Dict[str, Value] = dataclass_field(default_factory=dict)
    timestamp: Optional[pd.Timestamp] = None

    def __post_init__(self):
        object.__setattr__(self, "tags", {key: str(value) for key, value in self.tags.items()})
        object.__setattr__(self, "fields", {key: Value.of(value) for key, value in self.fields.items()})
        if self.timestamp is not None:
            object.__setattr__(self, "timestamp", to_timestamp(self.timestamp))

    def tag(self, name: str) -> Optional[str]:
        return self.tags.get(name)

    def field(self, name: str) -> Optional[Value]:
        return self.fields.get(name)


class LineBuilder:
    """
    Chained builder for :class:`Line`.

    Plain Python values passed to ``field()`` are wrapped with
    ``Value.of``; ``timestamp()`` accepts anything ``to_timestamp`` does.
    The builder can be built only once.
    """

    def __init__(self, measurement: str):
        self._measurement = measurement
        self._tags: Dict[str, str] = {}
        self._fields: Dict[str, Value] = {}
        self._timestamp: Optional[pd.Timestamp] = None
        self._consumed = False

    def _check(self):
        if self._consumed:
            raise BuilderConsumedError(self.__class__.__name__)

    def tag(self, key: str, value: str) -> "LineBuilder":
        self._check()
        self._tags[key] = str(value)
        return self

    def field(self, key: str, value: Any) -> "LineBuilder":
        self._check()
        self._fields[key] = Value.of(value)
        return self

    def timestamp(self, value: Any) -> "LineBuilder":
        self._check()
        self._timestamp = to_timestamp(value)
        return self

    def build(self) -> Line:
        self._check()
        self._consumed = True
        return Line(
            measurement=self._measurement,
            tags=dict(self._tags),
            fields=dict(self._fields),
            timestamp=self._timestamp
        )
