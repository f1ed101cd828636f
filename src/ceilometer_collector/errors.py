"""Exception hierarchy for the collector.

Every failure the processing engine can observe is terminal for the
message that caused it. These exceptions are raised at construction
boundaries and caught by the engine, which logs and drops the point.
"""

from __future__ import annotations


class CollectorError(Exception):
    """Base class for all collector errors."""


class MalformedSample(CollectorError):
    """The message body is not a decodable Ceilometer sample."""


class InvalidSourceDict(CollectorError):
    """A metadata mapping cannot be stored as a source dict."""


class AlertRaised(CollectorError):
    """An ALERT record was emitted while termination on alert is enabled."""
