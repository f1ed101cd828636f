"""Classification dispatch.

Decides, per sample, whether a meter is transformed into points,
deliberately ignored, or unexpected. The tables are the single place
where the collector's knowledge of Ceilometer meters lives: a meter
that appears in neither table is schema drift and is raised to
operators as an alert.

Lookup is most-specific-first: an exact (name, is_event) entry, then
a name-only entry, then the ``instance:`` prefix, then unexpected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from ceilometer_collector.errors import MalformedSample
from ceilometer_collector.models.metric import Metric
from ceilometer_collector.models.points import ProcessedPoint
from ceilometer_collector.processing import codecs
from ceilometer_collector.utils.logging import alert

logger = logging.getLogger("ceilometer_collector.processing.classifier")

Codec = Callable[[Metric], list[ProcessedPoint]]

IGNORED_PREFIX = "instance:"


@dataclass(frozen=True)
class Transform:
    """Run a codec over the sample."""
    codec: Codec


@dataclass(frozen=True)
class Ignore:
    """Known meter with no output."""


@dataclass(frozen=True)
class Unexpected:
    """Unknown meter; needs a collector update."""


Handler = Union[Transform, Ignore, Unexpected]

IGNORE = Ignore()
UNEXPECTED = Unexpected()


# ---------------------------------------------------------------------------
# Dispatch tables
# ---------------------------------------------------------------------------

TRANSFORMS: dict[tuple[str, bool], Codec] = {
    # Both instance pollsters and events are handled
    ("instance", False): codecs.process_instance_pollster,
    ("instance", True): codecs.process_instance_event,
    ("cpu", False): codecs.process_base_pollster,
    ("disk.write.bytes", False): codecs.process_base_pollster,
    ("disk.read.bytes", False): codecs.process_base_pollster,
    ("network.incoming.bytes", False): codecs.process_base_pollster,
    ("network.outgoing.bytes", False): codecs.process_base_pollster,
    ("ip.floating", True): codecs.process_ip_event,
    ("volume.size", True): codecs.process_volume_event,
    # Both image.size pollsters and events are handled
    ("image.size", False): codecs.process_base_pollster,
    ("image.size", True): codecs.process_image_size_event,
    ("snapshot.size", True): codecs.process_snapshot_size_event,
}

# Ignored only for one value of the event flag
IGNORED_EXACT: frozenset[tuple[str, bool]] = frozenset({
    # Derived from instance pollsters
    ("disk.ephemeral.size", True),
    ("disk.root.size", True),
    # Notifications are used for ip allocations, not pollsters
    ("ip.floating", False),
    # Stack construction, rare; their I/O is metered elsewhere
    ("image.update", True),
    ("image.download", True),
    ("image.serve", True),
    ("image.upload", True),
    ("image.delete", True),
})

# Ignored regardless of the event flag
IGNORED_NAMES: frozenset[str] = frozenset({
    # Tracking both disk.* and disk.device.* would double count
    "disk.device.write.bytes",
    "disk.device.read.bytes",
    # Metered on bytes, not requests
    "disk.write.requests",
    "disk.read.requests",
    "disk.device.write.requests",
    "disk.device.read.requests",
    # Derived from instance pollsters
    "volume",
    "vcpus",
    "memory",
    # Metered on bytes, not packets
    "network.incoming.packets",
    "network.outgoing.packets",
    # Notifications are used for ip allocations
    "ip.floating.create",
    "ip.floating.update",
    "ip.floating.delete",
    # Stack construction, rare; its I/O is metered elsewhere
    "image",
    # Superfluous next to ip allocations
    "port",
    "port.create",
    "port.update",
    "port.delete",
    "network",
    "network.create",
    "network.update",
    "network.delete",
    "subnet",
    "subnet.create",
    "subnet.update",
    "subnet.delete",
    "router",
    "router.create",
    "router.update",
    "router.delete",
    "snapshot",
    "network.services.firewall.policy",
})


def classify(name: str, is_event: bool) -> Handler:
    """Resolve the handler for a meter name and event flag."""
    key = (name, is_event)
    codec: Optional[Codec] = TRANSFORMS.get(key)
    if codec is not None:
        return Transform(codec)
    if key in IGNORED_EXACT or name in IGNORED_NAMES:
        return IGNORE
    if name.startswith(IGNORED_PREFIX):
        return IGNORE
    return UNEXPECTED


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def process(metric: Metric) -> list[ProcessedPoint]:
    """Turn one decoded sample into zero or more points."""
    handler = classify(metric.name, metric.is_event)
    if isinstance(handler, Transform):
        return handler.codec(metric)
    if isinstance(handler, Ignore):
        logger.info(
            "Ignored metric: %r event: %s", metric.name, metric.is_event,
        )
        return []
    alert(
        logger,
        "Unexpected metric: %r event: %s\n%r",
        metric.name, metric.is_event, metric,
    )
    return []


def process_sample(raw: bytes | str) -> list[ProcessedPoint]:
    """Decode a message body and process it.

    A body that does not decode is logged and yields no points; it is
    never retried.
    """
    try:
        metric = Metric.from_json(raw)
    except MalformedSample as e:
        alert(
            logger,
            "Failed to parse: %s Error: %s",
            raw if isinstance(raw, str) else raw.decode("utf-8", errors="replace"),
            e,
        )
        return []
    return process(metric)
