"""Ceilometer collector application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict

from fastapi import FastAPI

from ceilometer_collector.adapters.index_publisher import IndexPublisher
from ceilometer_collector.adapters.index_queue import IndexQueueTransport
from ceilometer_collector.config import settings
from ceilometer_collector.pipeline import Pipeline
from ceilometer_collector.utils.logging import configure_logging

configure_logging(settings.log_level, settings.terminate_on_alert)
logger = logging.getLogger("ceilometer_collector")

app = FastAPI(
    title="Ceilometer Collector",
    description="Ceilometer metering samples to content-addressed time series",
    version=settings.version,
)

transport = IndexQueueTransport(settings.to_adapter_config())
publisher = IndexPublisher(settings.to_adapter_config())
pipeline = Pipeline(
    transport,
    publisher,
    poll_interval=settings.poll_period,
    queue_size=settings.queue_size,
)
_pipeline_task: asyncio.Task | None = None


def _pipeline_done(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.critical(
            "Pipeline terminated", exc_info=task.exception()
        )


@app.on_event("startup")
async def startup():
    global _pipeline_task
    logger.info("Ceilometer collector v%s starting", settings.version)
    logger.info("Log level: %s", settings.log_level)
    logger.info("Elasticsearch: %s", settings.es_endpoint)

    await transport.connect()
    await publisher.connect()
    _pipeline_task = asyncio.create_task(pipeline.run())
    _pipeline_task.add_done_callback(_pipeline_done)


@app.on_event("shutdown")
async def shutdown():
    if _pipeline_task is not None:
        _pipeline_task.cancel()
        await asyncio.gather(_pipeline_task, return_exceptions=True)
    await transport.disconnect()
    await publisher.disconnect()


@app.get("/health")
async def health():
    running = _pipeline_task is not None and not _pipeline_task.done()
    return {
        "status": "ok" if running else "degraded",
        "version": settings.version,
        "pipeline": asdict(pipeline.stats),
        "queue_depth": pipeline.queue.qsize(),
        "transport": asdict(transport.health()),
        "publisher": asdict(publisher.health()),
    }
