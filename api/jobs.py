"""Extraction REST API: submit, retry and poll document extraction jobs."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel

from src.core.audit import AuditSink
from src.core.models.enums import RequestStatus
from src.core.repository import DocumentStore
from src.core.requests.statistics import calculate_request_statistics
from src.core.requests.status import calculate_request_status
from src.core.submission import (
    get_job_status,
    retry_document,
    retry_request,
    submit_document,
    submit_request,
)
from src.core.tasks.queue import JobQueue

logger = logging.getLogger(__name__)
router = APIRouter(tags=["extraction"])


class SubmitDocumentBody(BaseModel):
    vendor_id: str | None = None


class RequestStatsResponse(BaseModel):
    request_id: str
    status: RequestStatus
    statistics: dict


# --- Dependencies (resources are created in the app lifespan) ---


def get_queue(request: Request) -> JobQueue:
    return request.app.state.queue


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_audit(request: Request) -> AuditSink:
    return request.app.state.audit


async def get_user_id(x_user_id: str = Header(default="")) -> str:
    """Caller identity, set by the authenticating proxy in front of the API."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity")
    return x_user_id


# --- Endpoints ---


@router.post("/documents/{document_id}/submit")
async def submit_document_endpoint(
    document_id: str,
    body: SubmitDocumentBody | None = None,
    user_id: str = Depends(get_user_id),
    store: DocumentStore = Depends(get_store),
    queue: JobQueue = Depends(get_queue),
    audit: AuditSink = Depends(get_audit),
):
    submission = await submit_document(
        store,
        queue,
        document_id,
        user_id,
        vendor_id_override=body.vendor_id if body else None,
        audit=audit,
    )
    return submission.to_wire()


@router.post("/documents/{document_id}/retry")
async def retry_document_endpoint(
    document_id: str,
    user_id: str = Depends(get_user_id),
    store: DocumentStore = Depends(get_store),
    queue: JobQueue = Depends(get_queue),
    audit: AuditSink = Depends(get_audit),
):
    submission = await retry_document(store, queue, document_id, user_id, audit=audit)
    return submission.to_wire()


@router.post("/requests/{request_id}/submit")
async def submit_request_endpoint(
    request_id: str,
    user_id: str = Depends(get_user_id),
    store: DocumentStore = Depends(get_store),
    queue: JobQueue = Depends(get_queue),
    audit: AuditSink = Depends(get_audit),
):
    outcome = await submit_request(store, queue, request_id, user_id, audit=audit)
    return outcome.to_wire()


@router.post("/requests/{request_id}/retry")
async def retry_request_endpoint(
    request_id: str,
    user_id: str = Depends(get_user_id),
    store: DocumentStore = Depends(get_store),
    queue: JobQueue = Depends(get_queue),
    audit: AuditSink = Depends(get_audit),
):
    outcome = await retry_request(store, queue, request_id, user_id, audit=audit)
    return outcome.to_wire()


@router.get("/requests/{request_id}/stats", response_model=RequestStatsResponse)
async def request_stats(
    request_id: str,
    user_id: str = Depends(get_user_id),
    store: DocumentStore = Depends(get_store),
):
    upload_request = await store.get_request(request_id)
    if upload_request is None or str(upload_request.user_id) != user_id:
        raise HTTPException(status_code=404, detail="Request not found")
    documents = await store.list_request_documents(request_id)
    return RequestStatsResponse(
        request_id=request_id,
        status=calculate_request_status(d.status for d in documents),
        statistics=calculate_request_statistics(documents).to_dict(),
    )


@router.get("/jobs/{job_id}")
async def job_status(
    job_id: str,
    user_id: str = Depends(get_user_id),
    queue: JobQueue = Depends(get_queue),
):
    status = await get_job_status(queue, job_id)
    if status.job is not None and status.job.payload.user_id != user_id:
        raise HTTPException(status_code=404, detail="Job not found")
    return status.to_wire()
