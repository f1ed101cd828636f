"""Retrieval and consumption loop.

Two tasks share one bounded queue. The retrieval task polls the
transport for one message at a time and enqueues it, sleeping for the
poll period whenever the transport is empty. The consumption task
dequeues messages in order, runs the processing engine, publishes every
resulting point and only then acknowledges the message.

A message that fails to decode or classify is still acknowledged: the
engine has already logged it and redelivery would fail the same way.
Publish and acknowledge failures are not caught here; they end the
consumption task and leave the message unacknowledged for redelivery.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ceilometer_collector.adapters.base import BasePublisher, BaseTransport, Message
from ceilometer_collector.processing.classifier import process_sample

logger = logging.getLogger("ceilometer_collector.pipeline")


@dataclass
class PipelineStats:
    """Running counters, exposed on the health endpoint."""
    received: int = 0
    processed: int = 0
    points_published: int = 0
    acknowledged: int = 0
    empty_polls: int = 0


class Pipeline:
    """Single-producer, single-consumer pipeline between transport and publisher."""

    def __init__(
        self,
        transport: BaseTransport,
        publisher: BasePublisher,
        poll_interval: float = 5.0,
        queue_size: int = 1024,
    ):
        self.transport = transport
        self.publisher = publisher
        self.poll_interval = poll_interval
        self.queue: asyncio.Queue[Message] = asyncio.Queue(queue_size)
        self.stats = PipelineStats()

    async def retrieve_one(self) -> bool:
        """Poll once. Returns True if a message was enqueued."""
        message = await self.transport.poll_next_message()
        if message is None:
            self.stats.empty_polls += 1
            logger.info(
                "No message received, sleeping for %s s", self.poll_interval
            )
            await asyncio.sleep(self.poll_interval)
            return False
        await self.queue.put(message)
        self.stats.received += 1
        return True

    async def retrieve(self) -> None:
        while True:
            await self.retrieve_one()

    async def consume_one(self) -> int:
        """Process, publish and acknowledge the next message.

        Returns the number of points published for it.
        """
        message = await self.queue.get()
        try:
            points = process_sample(message.body)
            self.stats.processed += 1
            for point in points:
                await self.publisher.publish_metadata(point.address, point.source_dict)
                await self.publisher.publish_point(
                    point.address, point.timestamp, point.payload
                )
                self.stats.points_published += 1
            await self.transport.acknowledge(message)
            self.stats.acknowledged += 1
        finally:
            self.queue.task_done()
        return len(points)

    async def consume(self) -> None:
        while True:
            await self.consume_one()

    async def run(self) -> None:
        """Run retrieval and consumption until cancelled or one of them fails.

        There is no drain on shutdown; dequeued but unacknowledged
        messages are redelivered by the transport.
        """
        logger.info(
            "Pipeline starting: transport=%s publisher=%s poll=%ss queue=%d",
            self.transport.adapter_type,
            self.publisher.adapter_type,
            self.poll_interval,
            self.queue.maxsize,
        )
        tasks = [
            asyncio.create_task(self.retrieve(), name="retrieve"),
            asyncio.create_task(self.consume(), name="consume"),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                task.result()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Pipeline stopped")
