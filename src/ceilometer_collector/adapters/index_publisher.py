"""Index Publisher.

Writes series metadata and points to Elasticsearch-compatible indices.
Both writes are keyed deterministically: metadata by address, points
by address and timestamp. A redelivered sample therefore overwrites
the documents it produced the first time instead of duplicating them.

All 64-bit quantities are mapped as unsigned_long.
"""

from __future__ import annotations

import logging
from typing import Any

from elasticsearch import AsyncElasticsearch

from ceilometer_collector.adapters.base import BasePublisher, ConnectionState
from ceilometer_collector.adapters.elastic import build_client
from ceilometer_collector.models.points import SourceDict

logger = logging.getLogger("ceilometer_collector.adapters.index_publisher")

METADATA_MAPPINGS: dict[str, Any] = {
    "properties": {
        "address": {"type": "unsigned_long"},
        "source": {"type": "flattened"},
    }
}

POINTS_MAPPINGS: dict[str, Any] = {
    "properties": {
        "address": {"type": "unsigned_long"},
        "timestamp": {"type": "unsigned_long"},
        "payload": {"type": "unsigned_long"},
    }
}


def point_id(address: int, timestamp: int) -> str:
    """Document id of a point; one point per series per instant."""
    return f"{address}-{timestamp}"


class IndexPublisher(BasePublisher):
    """Publisher adapter writing to a metadata index and a points index.

    Required config keys:
        endpoint: str         - Elasticsearch URL

    Optional config keys:
        metadata_index: str   - Source dict index (default: 'ceilometer-sources')
        points_index: str     - Point index (default: 'ceilometer-points')
        plus the TLS and auth keys understood by build_client
    """

    def __init__(self, config: dict[str, Any]):
        super().__init__(config)
        self._client: AsyncElasticsearch | None = None
        self._metadata_index = str(config.get("metadata_index", "ceilometer-sources"))
        self._points_index = str(config.get("points_index", "ceilometer-points"))

    @property
    def adapter_type(self) -> str:
        return "index_publisher"

    async def connect(self) -> ConnectionState:
        """Connect and create the target indices if they are missing."""
        self._state = ConnectionState.CONNECTING
        try:
            self._client = build_client(self.config)
            await self._ensure_index(self._metadata_index, METADATA_MAPPINGS)
            await self._ensure_index(self._points_index, POINTS_MAPPINGS)
            self._state = ConnectionState.CONNECTED
            logger.info(
                "Index Publisher connected: metadata '%s', points '%s'",
                self._metadata_index, self._points_index,
            )
        except Exception as e:
            self._state = ConnectionState.FAILED
            self._record_error(f"Connection failed: {e}")

        return self._state

    async def _ensure_index(self, index: str, mappings: dict[str, Any]) -> None:
        if not self._client:
            return
        if await self._client.indices.exists(index=index):
            return
        await self._client.indices.create(index=index, mappings=mappings)
        logger.info("Created index '%s'", index)

    def _require_client(self) -> AsyncElasticsearch:
        if not self._client or self._state != ConnectionState.CONNECTED:
            raise RuntimeError("Cannot publish: adapter not connected")
        return self._client

    async def publish_metadata(self, address: int, source_dict: SourceDict) -> None:
        """Upsert the source dict for a series."""
        client = self._require_client()
        try:
            await client.index(
                index=self._metadata_index,
                id=str(address),
                document={"address": address, "source": source_dict.to_dict()},
            )
        except Exception as e:
            self._record_error(f"Metadata write for {address} failed: {e}")
            raise
        self._record_operation()

    async def publish_point(self, address: int, timestamp: int, payload: int) -> None:
        """Write one point."""
        client = self._require_client()
        try:
            await client.index(
                index=self._points_index,
                id=point_id(address, timestamp),
                document={
                    "address": address,
                    "timestamp": timestamp,
                    "payload": payload,
                },
            )
        except Exception as e:
            self._record_error(f"Point write for {address} failed: {e}")
            raise
        self._record_operation()

    async def disconnect(self) -> None:
        """Close the Elasticsearch client connection."""
        if self._client:
            await self._client.close()
            self._client = None
        self._state = ConnectionState.DISCONNECTED
        logger.info("Index Publisher disconnected")
