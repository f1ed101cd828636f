"""Payload codecs.

Three ways of turning a Metric into points:

- passthrough: one point carrying the raw counter volume
- decomposition: an instance pollster becomes four series (vcpus,
  ram, disk, flavor) sharing one timestamp, emitted all-or-nothing
- compound: a lifecycle event packs status, verb and endpoint codes
  plus a 32-bit magnitude into one 64-bit word

Compound layout (bit offsets, least significant first):

    0-7    status
    8-15   verb
    16-23  endpoint
    24-31  reserved, always 0
    32-63  raw magnitude, high bits of a wider value are dropped

Any categorical field outside its enumeration fails the whole point.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, ValidationError

from ceilometer_collector.models.metric import Metric
from ceilometer_collector.models.points import ProcessedPoint
from ceilometer_collector.processing.identity import (
    address,
    make_source_dict,
    siphash,
    source_map,
)
from ceilometer_collector.utils.logging import alert

logger = logging.getLogger("ceilometer_collector.processing.codecs")

INVALID = -1

BYTE_MASK = 0xFF
RAW_MASK = 0xFFFFFFFF

STATUS_SHIFT = 0
VERB_SHIFT = 8
ENDPOINT_SHIFT = 16
RESERVED_SHIFT = 24
RAW_SHIFT = 32

# An allocation has no value per se, so 1 is used as its magnitude
UNIT_RAW_PAYLOAD = 1


# ---------------------------------------------------------------------------
# Bit packing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompoundFields:
    """The decoded parts of a compound payload."""
    status: int
    verb: int
    endpoint: int
    raw: int
    reserved: int = 0


def pack_compound(status: int, verb: int, endpoint: int, raw: int) -> int:
    """Pack categorical codes and a magnitude into one 64-bit payload.

    Only the low 32 bits of ``raw`` are kept. The reserved byte is 0.

    Raises:
        ValueError: if a categorical code does not fit in one byte.
    """
    for label, value in (("status", status), ("verb", verb), ("endpoint", endpoint)):
        if not 0 <= value <= BYTE_MASK:
            raise ValueError(f"{label} code {value} does not fit in a byte")
    return (
        (status << STATUS_SHIFT)
        | (verb << VERB_SHIFT)
        | (endpoint << ENDPOINT_SHIFT)
        | ((raw & RAW_MASK) << RAW_SHIFT)
    )


def unpack_compound(payload: int) -> CompoundFields:
    """Split a compound payload back into its fields."""
    return CompoundFields(
        status=(payload >> STATUS_SHIFT) & BYTE_MASK,
        verb=(payload >> VERB_SHIFT) & BYTE_MASK,
        endpoint=(payload >> ENDPOINT_SHIFT) & BYTE_MASK,
        raw=(payload >> RAW_SHIFT) & RAW_MASK,
        reserved=(payload >> RESERVED_SHIFT) & BYTE_MASK,
    )


# ---------------------------------------------------------------------------
# Compound event schemas
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompoundSchema:
    """Enumerations and magnitude source for one kind of lifecycle event.

    ``endpoints`` is None for kinds whose event type carries no
    start/end marker; their endpoint code is always 0. A ``None`` key
    in ``statuses`` makes a missing or null status acceptable.
    """
    label: str
    statuses: dict[Optional[str], int]
    verbs: dict[str, int]
    endpoints: Optional[dict[str, int]] = None
    raw: Callable[[Metric], int] = field(default=lambda m: m.payload)


START_END = {"start": 1, "end": 2}

VOLUME_SCHEMA = CompoundSchema(
    label="volume",
    statuses={
        "error": 0,
        "available": 1,
        "creating": 2,
        "extending": 3,
        "deleting": 4,
        "attaching": 5,
        "detaching": 6,
        "in-use": 7,
    },
    verbs={"create": 1, "resize": 2, "delete": 3, "attach": 4, "detach": 5},
    endpoints=START_END,
)

IP_SCHEMA = CompoundSchema(
    label="ip",
    statuses={None: 0, "ACTIVE": 1, "DOWN": 2},
    verbs={"create": 1, "update": 2, "delete": 3},
    endpoints=START_END,
    raw=lambda m: UNIT_RAW_PAYLOAD,
)

SNAPSHOT_SCHEMA = CompoundSchema(
    label="snapshot size",
    statuses={"error": 0, "available": 1, "creating": 2, "deleting": 3},
    verbs={"create": 1, "update": 2, "delete": 3},
    endpoints=START_END,
)

IMAGE_SCHEMA = CompoundSchema(
    label="image",
    statuses={"active": 1, "saving": 2, "deleted": 3},
    verbs={"serve": 1, "update": 2, "upload": 3, "download": 4, "delete": 5},
    raw=lambda m: UNIT_RAW_PAYLOAD,
)


def _lookup(schema: CompoundSchema, part: str, table: dict, value: Any) -> int:
    """Map one sub-field through its enumeration, alerting on a miss."""
    if value is not None and not isinstance(value, str):
        code = INVALID
    else:
        code = table.get(value, INVALID)
    if code == INVALID:
        alert(
            logger,
            "Invalid %s for %s event: %r", part, schema.label, value,
        )
    return code


def compound_payload(schema: CompoundSchema, metric: Metric) -> Optional[int]:
    """Build the compound payload for an event, or None if any field is invalid."""
    parts = (metric.event_type or "").split(".")
    verb = parts[1] if len(parts) > 1 else None
    status_value = _lookup(schema, "status", schema.statuses, metric.metadata.get("status"))
    verb_value = _lookup(schema, "verb", schema.verbs, verb)

    if schema.endpoints is None:
        endpoint_value = 0
    else:
        endpoint = parts[2] if len(parts) > 2 else None
        endpoint_value = _lookup(schema, "endpoint", schema.endpoints, endpoint)

    if INVALID in (status_value, verb_value, endpoint_value):
        return None
    return pack_compound(status_value, verb_value, endpoint_value, schema.raw(metric))


def volume_payload(metric: Metric) -> Optional[int]:
    return compound_payload(VOLUME_SCHEMA, metric)


def ip_payload(metric: Metric) -> Optional[int]:
    return compound_payload(IP_SCHEMA, metric)


def snapshot_payload(metric: Metric) -> Optional[int]:
    return compound_payload(SNAPSHOT_SCHEMA, metric)


def image_payload(metric: Metric) -> Optional[int]:
    return compound_payload(IMAGE_SCHEMA, metric)


# ---------------------------------------------------------------------------
# Point builders
# ---------------------------------------------------------------------------


def process_base_pollster(metric: Metric) -> list[ProcessedPoint]:
    """Pass the raw counter volume through as a single point."""
    sd = make_source_dict(source_map(metric))
    if sd is None:
        return []
    return [ProcessedPoint(address(metric, metric.name), sd, metric.timestamp, metric.payload)]


def process_event(
    payload_fn: Callable[[Metric], Optional[int]], metric: Metric
) -> list[ProcessedPoint]:
    """Emit one compound point for an event, or nothing if it fails to encode."""
    payload = payload_fn(metric)
    sd = make_source_dict(source_map(metric))
    if payload is None or sd is None:
        logger.warning(
            "Dropped %s event %s for resource %s",
            metric.name, metric.event_type, metric.resource_id,
        )
        return []
    return [ProcessedPoint(address(metric, metric.name), sd, metric.timestamp, payload)]


def process_volume_event(metric: Metric) -> list[ProcessedPoint]:
    return process_event(volume_payload, metric)


def process_ip_event(metric: Metric) -> list[ProcessedPoint]:
    return process_event(ip_payload, metric)


def process_snapshot_size_event(metric: Metric) -> list[ProcessedPoint]:
    return process_event(snapshot_payload, metric)


def process_image_size_event(metric: Metric) -> list[ProcessedPoint]:
    return process_event(image_payload, metric)


def process_instance_event(metric: Metric) -> list[ProcessedPoint]:
    """Instance lifecycle events are accepted but produce no points.

    How they should map onto series is still undecided upstream.
    """
    return []


# ---------------------------------------------------------------------------
# Instance decomposition
# ---------------------------------------------------------------------------

# (output name, unit) in emission order
INSTANCE_OUTPUTS = (
    ("instance_vcpus", "vcpu"),
    ("instance_ram", "MB"),
    ("instance_disk", "GB"),
    ("instance_flavor", "instance"),
)

# Status code carried by the flavor point
FLAVOR_STATUS = 1


class Flavor(BaseModel):
    """The ``flavor`` sub-object of an instance pollster's metadata."""
    vcpus: int = Field(ge=0, lt=2**63)
    ram: int = Field(ge=0, lt=2**63, description="MB")
    disk: int = Field(ge=0, lt=2**63, description="Root disk, GB")
    ephemeral: int = Field(ge=0, lt=2**63, description="Ephemeral disk, GB")


def flavor_payload(instance_type: str) -> int:
    """Flavor identity as a compound payload over the hashed instance type."""
    return pack_compound(FLAVOR_STATUS, 0, 0, siphash(instance_type.encode("utf-8")))


def process_instance_pollster(metric: Metric) -> list[ProcessedPoint]:
    """Split an instance pollster into vcpu, ram, disk and flavor series.

    The four source dicts share every entry except metric_name and
    metric_unit. Either all four points are returned or none.
    """
    base = source_map(metric)
    sds = [
        make_source_dict({**base, "metric_name": name, "metric_unit": unit})
        for name, unit in INSTANCE_OUTPUTS
    ]
    if any(sd is None for sd in sds):
        alert(
            logger,
            "Failure to convert all sourceMaps to SourceDicts for instance pollster",
        )
        return []

    try:
        flavor = Flavor.model_validate(metric.metadata.get("flavor"))
    except ValidationError as e:
        alert(
            logger,
            "Failed to parse flavor sub-object for instance pollster: %s", e,
        )
        return []

    instance_type = metric.metadata.get("instance_type")
    if not isinstance(instance_type, str):
        alert(
            logger,
            "Invalid instance_type for instance pollster: %r", instance_type,
        )
        return []

    payloads = (
        flavor.vcpus,
        flavor.ram,
        flavor.disk + flavor.ephemeral,
        flavor_payload(instance_type),
    )
    return [
        ProcessedPoint(address(metric, name), sd, metric.timestamp, payload)
        for (name, _), sd, payload in zip(INSTANCE_OUTPUTS, sds, payloads)
    ]
