"""Abstract collaborator interfaces.

The processing engine talks to two collaborators: a transport that
hands out queued messages and takes acknowledgements, and a publisher
that durably writes series metadata and points. Neither transforms
data. Connection management, retries and durability live behind these
interfaces, never in the engine.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ceilometer_collector.models.points import SourceDict

logger = logging.getLogger("ceilometer_collector.adapters")


class ConnectionState(str, Enum):
    """Adapter connection states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass
class AdapterHealth:
    """Health snapshot for an adapter connection."""
    state: ConnectionState = ConnectionState.DISCONNECTED
    adapter_type: str = ""
    endpoint: str = ""
    last_activity_at: datetime | None = None
    operations: int = 0
    errors: int = 0
    checked_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class Message(BaseModel):
    """A queued message as handed out by a transport.

    The body is passed to the engine untouched. The delivery tag is
    opaque to everything except the transport that issued it.
    """
    body: bytes = Field(
        description="Raw message body, expected to be UTF-8 JSON"
    )
    delivery_tag: str = Field(
        description="Transport-specific handle used to acknowledge the message"
    )
    received_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the transport handed the message out"
    )

    class Config:
        frozen = True


class _Adapter(ABC):
    """Shared connection bookkeeping for transports and publishers."""

    def __init__(self, config: dict[str, Any]):
        self.config = config
        self._state = ConnectionState.DISCONNECTED
        self._operations = 0
        self._errors = 0
        self._last_activity_at: datetime | None = None

    @property
    @abstractmethod
    def adapter_type(self) -> str:
        """Return the adapter type identifier (e.g. 'index_queue')."""
        ...

    @abstractmethod
    async def connect(self) -> ConnectionState:
        """Establish the connection.

        Returns the resulting state. Must not raise -- connection
        failures return FAILED.
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Release all resources and close connections."""
        ...

    def health(self) -> AdapterHealth:
        """Report current adapter health."""
        return AdapterHealth(
            state=self._state,
            adapter_type=self.adapter_type,
            endpoint=str(self.config.get("endpoint", "")),
            last_activity_at=self._last_activity_at,
            operations=self._operations,
            errors=self._errors,
        )

    def _record_operation(self) -> None:
        self._operations += 1
        self._last_activity_at = datetime.now(timezone.utc)

    def _record_error(self, msg: str) -> None:
        self._errors += 1
        logger.warning("Adapter %s error: %s", self.adapter_type, msg)


class BaseTransport(_Adapter):
    """Source of queued metering messages.

    Delivery is at-least-once: a message handed out but never
    acknowledged is delivered again after a restart.
    """

    @abstractmethod
    async def poll_next_message(self) -> Optional[Message]:
        """Return the next message, or None when the queue is empty."""
        ...

    @abstractmethod
    async def acknowledge(self, message: Message) -> None:
        """Mark a message as consumed so it is never redelivered.

        Raises on failure; the message then counts as unacknowledged.
        """
        ...


class BasePublisher(_Adapter):
    """Sink for series metadata and points.

    Both operations succeed or raise; callers do not retry.
    """

    @abstractmethod
    async def publish_metadata(self, address: int, source_dict: SourceDict) -> None:
        """Record the metadata describing the series at ``address``."""
        ...

    @abstractmethod
    async def publish_point(self, address: int, timestamp: int, payload: int) -> None:
        """Write one point to the series at ``address``."""
        ...
