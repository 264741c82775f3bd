"""Taskiq task that runs document extraction jobs.

Each worker process builds one JobQueue (one Redis pool) and one
DocumentWorker on startup; every concurrent task in the process shares them.
"""

import logging

from taskiq import Context, TaskiqDepends, TaskiqEvents, TaskiqState

from src.core.audit import SqlAuditSink
from src.core.config import settings
from src.core.db import async_session, dispose_engine
from src.core.observability import flush_traces
from src.core.repository import SqlDocumentRepository
from src.core.storage import LocalStorage
from src.core.tasks.broker import broker, schedule_source
from src.core.tasks.queue import JobQueue, QueueConfig
from src.core.tasks.worker import DocumentWorker

logger = logging.getLogger(__name__)


@broker.task(task_name="process_document")
async def process_document(job_id: str, context: Context = TaskiqDepends()) -> dict | None:
    """Run one attempt of an extraction job."""
    worker: DocumentWorker = context.state.worker
    result = await worker.run(job_id)
    return result.to_wire() if result else None


def create_job_queue() -> JobQueue:
    return JobQueue(
        QueueConfig.from_settings(settings),
        task=process_document,
        schedule_source=schedule_source,
        redis_url=settings.redis_url,
    )


@broker.on_event(TaskiqEvents.WORKER_STARTUP)
async def startup(state: TaskiqState) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level))
    queue = create_job_queue()
    await queue.open()
    await schedule_source.startup()
    state.queue = queue
    state.worker = DocumentWorker(
        queue=queue,
        store=SqlDocumentRepository(async_session),
        storage=LocalStorage(settings.storage_root),
        audit=SqlAuditSink(async_session),
    )
    logger.info("Extraction worker started on queue %s", settings.queue_name)


@broker.on_event(TaskiqEvents.WORKER_SHUTDOWN)
async def shutdown(state: TaskiqState) -> None:
    await state.queue.close()
    await schedule_source.shutdown()
    await dispose_engine()
    flush_traces()
    logger.info("Extraction worker stopped")
