"""Tests for the Elasticsearch-backed transport and publisher."""

import json
from unittest.mock import AsyncMock, MagicMock

import elasticsearch
import pytest
from ceilometer_collector.adapters import index_publisher, index_queue
from ceilometer_collector.adapters.base import ConnectionState, Message
from ceilometer_collector.adapters.index_publisher import IndexPublisher, point_id
from ceilometer_collector.adapters.index_queue import SORT_ORDER, IndexQueueTransport
from ceilometer_collector.models.points import SourceDict
from ceilometer_collector.pipeline import Pipeline

CONFIG = {
    "endpoint": "http://localhost:9200",
    "sample_index": "metering",
    "metadata_index": "sources",
    "points_index": "points",
}


def _fake_client() -> MagicMock:
    client = MagicMock()
    client.info = AsyncMock(return_value={"version": {"number": "8.13.0"}})
    client.search = AsyncMock(return_value={"hits": {"hits": []}})
    client.delete = AsyncMock()
    client.index = AsyncMock()
    client.close = AsyncMock()
    client.indices.exists = AsyncMock(return_value=False)
    client.indices.create = AsyncMock()
    return client


@pytest.fixture
def client(monkeypatch):
    fake = _fake_client()
    monkeypatch.setattr(index_queue, "build_client", lambda config: fake)
    monkeypatch.setattr(index_publisher, "build_client", lambda config: fake)
    return fake


class TestIndexQueueTransport:
    """Queue index polling, in-flight exclusion and acknowledgement."""

    @pytest.mark.asyncio
    async def test_connect(self, client):
        transport = IndexQueueTransport(CONFIG)
        assert await transport.connect() == ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_connect_failure_is_reported(self, client):
        client.info.side_effect = OSError("refused")
        transport = IndexQueueTransport(CONFIG)
        assert await transport.connect() == ConnectionState.FAILED
        assert transport.health().errors == 1

    @pytest.mark.asyncio
    async def test_empty_queue(self, client):
        transport = IndexQueueTransport(CONFIG)
        await transport.connect()
        assert await transport.poll_next_message() is None

    @pytest.mark.asyncio
    async def test_poll_and_acknowledge(self, client):
        source = {"counter_name": "cpu", "counter_volume": 1}
        client.search.return_value = {"hits": {"hits": [{"_id": "doc-1", "_source": source}]}}
        transport = IndexQueueTransport(CONFIG)
        await transport.connect()

        message = await transport.poll_next_message()
        assert message.delivery_tag == "doc-1"
        assert json.loads(message.body) == source

        await transport.poll_next_message()
        query = client.search.call_args.kwargs["query"]
        assert query == {"bool": {"must_not": {"ids": {"values": ["doc-1"]}}}}

        await transport.acknowledge(message)
        client.delete.assert_awaited_once_with(index="metering", id="doc-1", refresh=True)

        await transport.poll_next_message()
        assert client.search.call_args.kwargs["query"] == {"match_all": {}}

    @pytest.mark.asyncio
    async def test_polls_earliest_sample_first(self, client):
        transport = IndexQueueTransport(CONFIG)
        await transport.connect()
        await transport.poll_next_message()

        sort = client.search.call_args.kwargs["sort"]
        assert sort == SORT_ORDER
        assert list(sort[0]) == ["timestamp"]
        assert sort[0]["timestamp"]["order"] == "asc"
        assert sort[-1] == {"_doc": "asc"}

    @pytest.mark.asyncio
    async def test_failed_acknowledge_raises(self, client):
        client.search.return_value = {"hits": {"hits": [{"_id": "doc-1", "_source": {}}]}}
        client.delete.side_effect = elasticsearch.ConnectionError("refused")
        transport = IndexQueueTransport(CONFIG)
        await transport.connect()
        message = await transport.poll_next_message()

        with pytest.raises(elasticsearch.ConnectionError):
            await transport.acknowledge(message)
        assert transport.health().errors == 1

        # Still in flight, so it is not handed out twice before a restart
        await transport.poll_next_message()
        query = client.search.call_args.kwargs["query"]
        assert query == {"bool": {"must_not": {"ids": {"values": ["doc-1"]}}}}

    @pytest.mark.asyncio
    async def test_failed_acknowledge_is_not_counted(self, client, load_json):
        source = json.loads(load_json("cpu.json"))
        client.search.return_value = {"hits": {"hits": [{"_id": "doc-1", "_source": source}]}}
        client.delete.side_effect = elasticsearch.ConnectionError("refused")
        transport = IndexQueueTransport(CONFIG)
        publisher = IndexPublisher(CONFIG)
        await transport.connect()
        await publisher.connect()
        pipeline = Pipeline(transport, publisher, poll_interval=0)

        assert await pipeline.retrieve_one()
        with pytest.raises(elasticsearch.ConnectionError):
            await pipeline.consume_one()

        assert pipeline.stats.points_published == 1
        assert pipeline.stats.acknowledged == 0
        assert transport.health().errors == 1

    @pytest.mark.asyncio
    async def test_poll_when_disconnected(self):
        transport = IndexQueueTransport(CONFIG)
        assert await transport.poll_next_message() is None

    @pytest.mark.asyncio
    async def test_disconnect(self, client):
        transport = IndexQueueTransport(CONFIG)
        await transport.connect()
        await transport.disconnect()
        client.close.assert_awaited_once()
        assert transport.health().state == ConnectionState.DISCONNECTED


class TestIndexPublisher:
    """Index creation and deterministic document keys."""

    @pytest.mark.asyncio
    async def test_connect_creates_indices(self, client):
        publisher = IndexPublisher(CONFIG)
        assert await publisher.connect() == ConnectionState.CONNECTED
        created = [c.kwargs["index"] for c in client.indices.create.await_args_list]
        assert created == ["sources", "points"]

    @pytest.mark.asyncio
    async def test_existing_indices_left_alone(self, client):
        client.indices.exists.return_value = True
        publisher = IndexPublisher(CONFIG)
        await publisher.connect()
        client.indices.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_is_keyed_deterministically(self, client):
        publisher = IndexPublisher(CONFIG)
        await publisher.connect()
        sd = SourceDict({"metric_name": "cpu"})

        await publisher.publish_metadata(2**63 + 1, sd)
        await publisher.publish_point(2**63 + 1, 1000, 2**64 - 1)

        metadata_call, point_call = client.index.await_args_list
        assert metadata_call.kwargs["id"] == str(2**63 + 1)
        assert metadata_call.kwargs["document"]["source"] == {"metric_name": "cpu"}
        assert point_call.kwargs["id"] == point_id(2**63 + 1, 1000)
        assert point_call.kwargs["document"]["payload"] == 2**64 - 1

    @pytest.mark.asyncio
    async def test_publish_failure_raises(self, client):
        client.index.side_effect = OSError("disk full")
        publisher = IndexPublisher(CONFIG)
        await publisher.connect()
        with pytest.raises(OSError):
            await publisher.publish_point(1, 2, 3)
        assert publisher.health().errors == 1

    @pytest.mark.asyncio
    async def test_publish_requires_connection(self):
        with pytest.raises(RuntimeError):
            await IndexPublisher(CONFIG).publish_point(1, 2, 3)


def test_message_is_frozen():
    message = Message(body=b"{}", delivery_tag="x")
    with pytest.raises(Exception):
        message.delivery_tag = "y"
