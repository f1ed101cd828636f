"""Index Queue transport.

Treats an Elasticsearch-compatible index as a work queue of raw
Ceilometer samples. Documents are handed out one at a time, earliest
sample timestamp first with index order breaking ties. Acknowledging
a message deletes its document. A document that was handed out but
not acknowledged stays in the index and is handed out again after a
restart, which gives at-least-once delivery.

No transformation. The stored document is serialised back to JSON and
delivered as the message body.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from elasticsearch import ApiError, AsyncElasticsearch, NotFoundError, TransportError

from ceilometer_collector.adapters.base import BaseTransport, ConnectionState, Message
from ceilometer_collector.adapters.elastic import build_client

logger = logging.getLogger("ceilometer_collector.adapters.index_queue")

# Sample time first, then index order among equal or missing timestamps
SORT_ORDER = [
    {"timestamp": {"order": "asc", "unmapped_type": "date"}},
    {"_doc": "asc"},
]


class IndexQueueTransport(BaseTransport):
    """Transport adapter reading samples from a queue index.

    Required config keys:
        endpoint: str       - Elasticsearch URL

    Optional config keys:
        sample_index: str   - Index holding queued samples (default: 'metering')
        plus the TLS and auth keys understood by build_client
    """

    def __init__(self, config: dict[str, Any]):
        super().__init__(config)
        self._client: AsyncElasticsearch | None = None
        self._index = str(config.get("sample_index", "metering"))
        # Handed out but not yet acknowledged
        self._in_flight: set[str] = set()

    @property
    def adapter_type(self) -> str:
        return "index_queue"

    async def connect(self) -> ConnectionState:
        """Connect to Elasticsearch and validate the endpoint."""
        self._state = ConnectionState.CONNECTING
        try:
            self._client = build_client(self.config)
            info = await self._client.info()
            version = info.get("version", {}).get("number", "unknown")
            logger.info(
                "Connected to Elasticsearch %s at %s, queue index '%s'",
                version, self.config.get("endpoint", ""), self._index,
            )
            self._state = ConnectionState.CONNECTED
        except Exception as e:
            self._state = ConnectionState.FAILED
            self._record_error(f"Connection failed: {e}")

        return self._state

    def _query(self) -> dict[str, Any]:
        if not self._in_flight:
            return {"match_all": {}}
        return {
            "bool": {
                "must_not": {"ids": {"values": sorted(self._in_flight)}}
            }
        }

    async def poll_next_message(self) -> Optional[Message]:
        """Fetch the earliest queued sample that is not already in flight."""
        if not self._client or self._state != ConnectionState.CONNECTED:
            logger.error("Cannot poll: adapter not connected")
            return None

        try:
            resp = await self._client.search(
                index=self._index,
                query=self._query(),
                sort=SORT_ORDER,
                size=1,
            )
        except NotFoundError:
            logger.warning("Queue index '%s' does not exist", self._index)
            return None
        except (ApiError, TransportError) as e:
            self._record_error(f"Poll failed: {e}")
            return None

        hits = resp.get("hits", {}).get("hits", [])
        if not hits:
            return None

        hit = hits[0]
        doc_id = hit["_id"]
        self._in_flight.add(doc_id)
        self._record_operation()
        return Message(
            body=json.dumps(hit.get("_source", {})).encode("utf-8"),
            delivery_tag=doc_id,
        )

    async def acknowledge(self, message: Message) -> None:
        """Delete the acknowledged sample from the queue index.

        A failed delete is recorded and re-raised. The document stays
        queued and in flight, and is handed out again after a restart.
        """
        if not self._client:
            raise RuntimeError("Cannot acknowledge: adapter not connected")

        try:
            await self._client.delete(
                index=self._index,
                id=message.delivery_tag,
                refresh=True,
            )
        except NotFoundError:
            logger.info(
                "Message %s already removed from '%s'",
                message.delivery_tag, self._index,
            )
        except (ApiError, TransportError) as e:
            self._record_error(f"Acknowledge {message.delivery_tag} failed: {e}")
            raise
        self._in_flight.discard(message.delivery_tag)
        self._record_operation()

    async def disconnect(self) -> None:
        """Close the Elasticsearch client connection."""
        if self._client:
            await self._client.close()
            self._client = None
        self._in_flight.clear()
        self._state = ConnectionState.DISCONNECTED
        logger.info("Index Queue [%s] disconnected", self._index)
