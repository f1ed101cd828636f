"""Decoded Ceilometer sample.

A Metric is one message from the metering queue after JSON decoding.
Pollster samples and event notifications share the same shape; an
event is recognised by an ``event_type`` key in its resource metadata.
Field names follow the Ceilometer wire format and are mapped onto
shorter attribute names through aliases.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from ceilometer_collector.errors import MalformedSample

# Event metrics whose payload packs several categorical fields.
COMPOUND_NAMES = frozenset({
    "ip.floating",
    "volume.size",
    "image.size",
    "snapshot.size",
    "instance",
})

MAX_PAYLOAD = 2**64

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_SECOND = timedelta(seconds=1)

_TIMESTAMP = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[T ](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?"
    r"(?:(Z)|([+-])(\d{2})(?::?(\d{2}))?)?$"
)


def parse_timestamp(value: str) -> int:
    """Parse an ISO-8601 timestamp into integer nanoseconds since epoch.

    Accepts a ``T`` or space separator, up to nine fractional digits
    and an optional ``Z``, ``+HH``, ``+HHMM`` or ``+HH:MM`` suffix. A
    missing zone means UTC. The arithmetic is integer-only so no
    precision is lost at nanosecond resolution.

    Raises:
        ValueError: if the string is not a valid timestamp or lies
            before the epoch.
    """
    match = _TIMESTAMP.match(value.strip())
    if not match:
        raise ValueError(f"unrecognised timestamp {value!r}")

    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    fraction = match.group(7) or ""
    sign, off_hours, off_minutes = match.group(9), match.group(10), match.group(11)

    local = datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)
    seconds = (local - _EPOCH) // _SECOND

    if sign:
        offset = int(off_hours) * 3600 + int(off_minutes or 0) * 60
        # Local time is ahead of UTC by a positive offset
        seconds -= offset if sign == "+" else -offset

    nanos = seconds * 1_000_000_000 + int(fraction.ljust(9, "0"))
    if nanos < 0:
        raise ValueError(f"timestamp {value!r} is before the epoch")
    return nanos


class Metric(BaseModel):
    """A single metering sample as received from Ceilometer.

    The model is frozen; the engine never mutates input. Derived
    properties (is_event, event_type, is_compound) are computed from
    the metadata on access rather than stored.
    """
    name: str = Field(
        alias="counter_name",
        description="Meter name, e.g. 'cpu' or 'volume.size'"
    )
    project_id: str = Field(
        description="Tenant that owns the resource"
    )
    resource_id: str = Field(
        description="Resource the sample describes"
    )
    uom: str = Field(
        alias="unit",
        description="Unit of measure, e.g. 'ns', 'B', 'GB'"
    )
    kind: str = Field(
        alias="counter_type",
        description="cumulative, gauge or delta"
    )
    timestamp: int = Field(
        description="Nanoseconds since the Unix epoch"
    )
    payload: int = Field(
        alias="counter_volume",
        description="Raw magnitude, truncated to an unsigned 64-bit integer"
    )
    metadata: dict[str, Any] = Field(
        alias="resource_metadata",
        description="Loosely typed resource metadata, may carry event_type"
    )

    class Config:
        frozen = True
        populate_by_name = True

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> int:
        if isinstance(value, str):
            return parse_timestamp(value)
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
        raise ValueError(f"invalid timestamp {value!r}")

    @field_validator("payload", mode="before")
    @classmethod
    def _coerce_payload(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"counter_volume must be numeric, got {value!r}")
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError(f"counter_volume is not finite: {value!r}")
            value = int(value)
        if not 0 <= value < MAX_PAYLOAD:
            raise ValueError(f"counter_volume {value} outside unsigned 64-bit range")
        return value

    @classmethod
    def from_json(cls, raw: bytes | str) -> Metric:
        """Decode a UTF-8 JSON message body into a Metric.

        Raises:
            MalformedSample: on invalid JSON, invalid UTF-8 or any
                field that fails validation.
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedSample(str(e)) from e

    @property
    def is_event(self) -> bool:
        return "event_type" in self.metadata

    @property
    def event_type(self) -> Optional[str]:
        value = self.metadata.get("event_type")
        return value if isinstance(value, str) else None

    @property
    def is_compound(self) -> bool:
        return self.is_event and self.name in COMPOUND_NAMES
