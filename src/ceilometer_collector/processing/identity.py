"""Identity derivation for time series.

Every output point is keyed by an address: SipHash-2-4 under an
all-zero key over the identifying strings of the series. The address
must be stable across restarts, redelivery and implementations, so
the element order and the key are fixed. The accompanying source dict
describes the series to the store.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Optional

from siphash24 import siphash24

from ceilometer_collector.errors import InvalidSourceDict
from ceilometer_collector.models.metric import Metric
from ceilometer_collector.models.points import SourceDict
from ceilometer_collector.utils.logging import alert

logger = logging.getLogger("ceilometer_collector.processing.identity")

SIPHASH_KEY = bytes(16)

# Optional metadata copied into the source dict when string-typed
PASSTHROUGH_METADATA = ("display_name", "volume_type")


def siphash(data: bytes) -> int:
    """Canonical SipHash-2-4 with key = 0, as an unsigned 64-bit int."""
    return int.from_bytes(siphash24(data, key=SIPHASH_KEY).digest(), "little")


def source_map(metric: Metric) -> dict[str, str]:
    """Build the raw source dict entries for a metric.

    Optional fields are omitted when absent or not strings.
    """
    entries: dict[str, str] = {}
    if metric.kind == "cumulative":
        entries["_counter"] = "1"
    entries.update({
        "_event": "1" if metric.is_event else "0",
        "_compound": "1" if metric.is_compound else "0",
        "project_id": metric.project_id,
        "resource_id": metric.resource_id,
        "metric_name": metric.name,
        "metric_unit": metric.uom,
        "metric_type": metric.kind,
    })
    for key in PASSTHROUGH_METADATA:
        value = metric.metadata.get(key)
        if isinstance(value, str):
            entries[key] = value
    return entries


def make_source_dict(entries: Mapping[str, str]) -> Optional[SourceDict]:
    """Construct a SourceDict, logging and returning None on failure."""
    try:
        return SourceDict(entries)
    except InvalidSourceDict as e:
        alert(
            logger,
            "Failed to create sourcedict from %s error: %s", dict(entries), e,
        )
        return None


def id_elements(metric: Metric, output_name: str) -> list[str]:
    """Identifying strings of a series, in address order."""
    elements = [
        metric.project_id,
        metric.resource_id,
        metric.uom,
        metric.kind,
        output_name,
    ]
    if metric.is_event:
        elements += ["_event", metric.event_type or ""]
    if metric.is_compound:
        elements.append("_compound")
    return elements


def address(metric: Metric, output_name: str) -> int:
    """Content address of the series ``output_name`` derived from metric."""
    return siphash("".join(id_elements(metric, output_name)).encode("utf-8"))
