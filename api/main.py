"""Document extraction API: job submission, request stats and health check."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from api.jobs import router as jobs_router
from src.core.audit import SqlAuditSink
from src.core.config import settings
from src.core.db import async_session, dispose_engine
from src.core.exceptions import (
    DocumentNotFoundError,
    ExtractionPipelineError,
    InvalidStateError,
    UnauthorizedError,
)
from src.core.observability import flush_traces
from src.core.repository import SqlDocumentRepository
from src.core.tasks.broker import broker
from src.core.tasks.extraction_tasks import create_job_queue

logging.basicConfig(level=getattr(logging, settings.log_level))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting extraction API...")
    await broker.startup()
    queue = create_job_queue()
    await queue.open()
    app.state.queue = queue
    app.state.store = SqlDocumentRepository(async_session)
    app.state.audit = SqlAuditSink(async_session)

    yield

    await queue.close()
    await broker.shutdown()
    await dispose_engine()
    flush_traces()
    logger.info("Shutting down extraction API...")


app = FastAPI(title="Document Extraction", lifespan=lifespan)
app.include_router(jobs_router)

_ERROR_STATUS = {
    DocumentNotFoundError: 404,
    UnauthorizedError: 403,
    InvalidStateError: 409,
}


@app.exception_handler(ExtractionPipelineError)
async def pipeline_error_handler(request: Request, exc: ExtractionPipelineError):
    status_code = next(
        (code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 500
    )
    if status_code == 500:
        logger.error("Unhandled pipeline error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


@app.get("/health")
async def health(request: Request):
    checks = {"api": "ok"}
    try:
        await request.app.state.queue.redis.ping()
        checks["redis"] = "ok"
    except Exception:
        checks["redis"] = "error"
    try:
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        checks["database"] = "error"
    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
    return {"status": status, **checks}
