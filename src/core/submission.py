"""Entry points that put documents on the extraction queue.

Status is written before the job is enqueued so a fast worker never sees a
job for a document that still looks ``pending``; an enqueue failure restores
the previous status.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from src.core.audit import AuditCategory, AuditEvent, AuditEventType, AuditSink
from src.core.exceptions import DocumentNotFoundError, InvalidStateError
from src.core.models.enums import ACTIVE_STATUSES, FAILURE_STATUSES, DocumentStatus
from src.core.repository import DocumentStore
from src.core.requests.status import can_retry_request, can_submit_request
from src.core.schemas.jobs import JobPayload, JobStatus, JobSubmission
from src.core.tasks.queue import JobQueue

logger = logging.getLogger(__name__)


@dataclass
class RequestSubmission:
    request_id: str
    jobs: list[JobSubmission] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id,
            "jobs": [j.to_wire() for j in self.jobs],
            "errors": self.errors,
        }


def _str(value: Any) -> str | None:
    return str(value) if value is not None else None


async def _owned_document(store: DocumentStore, document_id: str, user_id: str) -> Any:
    doc = await store.get_document(document_id)
    if doc is None or str(doc.user_id) != user_id:
        raise DocumentNotFoundError(f"Document {document_id} not found")
    return doc


async def _owned_request(store: DocumentStore, request_id: str, user_id: str) -> Any:
    request = await store.get_request(request_id)
    if request is None or str(request.user_id) != user_id:
        raise DocumentNotFoundError(f"Request {request_id} not found")
    return request


async def _enqueue(
    store: DocumentStore,
    queue: JobQueue,
    payload: JobPayload,
    previous: DocumentStatus,
) -> JobSubmission:
    document_id = payload.document_id
    try:
        submission = await queue.submit(payload)
    except Exception:
        logger.exception("Enqueue failed for document %s, restoring %s", document_id, previous)
        await store.restore_status(document_id, previous)
        raise
    await store.set_job_id(document_id, submission.job_id)
    return submission


async def submit_document(
    store: DocumentStore,
    queue: JobQueue,
    document_id: str,
    user_id: str,
    vendor_id_override: str | None = None,
    audit: AuditSink | None = None,
) -> JobSubmission:
    """Move a pending document to ``queued`` and enqueue its extraction job.

    Submitting a document that already has a live job returns that job.
    """
    doc = await _owned_document(store, document_id, user_id)
    status = DocumentStatus(doc.status)
    payload = JobPayload(
        document_id=document_id,
        user_id=user_id,
        vendor_id_override=vendor_id_override or _str(doc.vendor_id),
        attempt=(doc.retry_count or 0) + 1,
    )

    if status in ACTIVE_STATUSES:
        return await queue.submit(payload)
    if status != DocumentStatus.pending:
        raise InvalidStateError(f"Document {document_id} is {status.value}; retry it instead")

    await store.mark_queued(document_id)
    submission = await _enqueue(store, queue, payload, previous=status)
    if audit is not None:
        await audit.record(
            AuditEvent(
                user_id=user_id,
                request_id=_str(doc.request_id),
                event_type=AuditEventType.document_queued,
                category=AuditCategory.document_operation,
                summary=f"{doc.file_name} queued for extraction",
                target_type="document",
                target_id=document_id,
                details={"jobId": submission.job_id},
            )
        )
    return submission


async def retry_document(
    store: DocumentStore,
    queue: JobQueue,
    document_id: str,
    user_id: str,
    vendor_id_override: str | None = None,
    audit: AuditSink | None = None,
) -> JobSubmission:
    """Reset a failed document to ``queued`` and start a fresh job for it."""
    doc = await _owned_document(store, document_id, user_id)
    status = DocumentStatus(doc.status)
    if status not in FAILURE_STATUSES:
        raise InvalidStateError(
            f"Only failed documents can be retried, {document_id} is {status.value}"
        )

    retry_count, _ = await store.reset_for_retry(document_id)
    payload = JobPayload(
        document_id=document_id,
        user_id=user_id,
        vendor_id_override=vendor_id_override or _str(doc.vendor_id),
        attempt=retry_count + 1,
    )
    submission = await _enqueue(store, queue, payload, previous=status)
    if audit is not None:
        await audit.record(
            AuditEvent(
                user_id=user_id,
                request_id=_str(doc.request_id),
                event_type=AuditEventType.document_retried,
                category=AuditCategory.document_operation,
                summary=f"{doc.file_name} retried (attempt {payload.attempt})",
                target_type="document",
                target_id=document_id,
                previous_value={"status": status.value},
                new_value={"status": DocumentStatus.queued.value},
            )
        )
    return submission


async def submit_request(
    store: DocumentStore,
    queue: JobQueue,
    request_id: str,
    user_id: str,
    audit: AuditSink | None = None,
) -> RequestSubmission:
    """Queue every pending document of a draft request."""
    request = await _owned_request(store, request_id, user_id)
    documents = await store.list_request_documents(request_id)
    pending = [d for d in documents if DocumentStatus(d.status) == DocumentStatus.pending]
    if not can_submit_request(request.status, len(pending)):
        raise InvalidStateError(f"Request {request_id} has nothing to submit")

    outcome = RequestSubmission(request_id=request_id)
    for doc in pending:
        try:
            outcome.jobs.append(
                await submit_document(
                    store,
                    queue,
                    str(doc.id),
                    user_id,
                    vendor_id_override=_str(request.default_vendor_id),
                )
            )
        except Exception as e:
            logger.error("Failed to submit document %s: %s", doc.id, e)
            outcome.errors[str(doc.id)] = str(e)

    await store.mark_request_submitted(request_id)
    if audit is not None:
        await audit.record(
            AuditEvent(
                user_id=user_id,
                request_id=request_id,
                event_type=AuditEventType.request_submitted,
                category=AuditCategory.request_lifecycle,
                summary=f"Submitted {len(outcome.jobs)} document(s) for extraction",
                target_type="request",
                target_id=request_id,
                details={"queued": len(outcome.jobs), "errors": len(outcome.errors)},
            )
        )
    return outcome


async def retry_request(
    store: DocumentStore,
    queue: JobQueue,
    request_id: str,
    user_id: str,
    audit: AuditSink | None = None,
) -> RequestSubmission:
    """Retry every failed or validation_failed document of a request."""
    request = await _owned_request(store, request_id, user_id)
    if not can_retry_request(request.status, request.failed_count or 0):
        raise InvalidStateError(f"Request {request_id} has no failed documents to retry")

    documents = await store.list_request_documents(request_id)
    outcome = RequestSubmission(request_id=request_id)
    for doc in documents:
        if DocumentStatus(doc.status) not in FAILURE_STATUSES:
            continue
        try:
            outcome.jobs.append(
                await retry_document(
                    store,
                    queue,
                    str(doc.id),
                    user_id,
                    vendor_id_override=_str(request.default_vendor_id),
                    audit=audit,
                )
            )
        except Exception as e:
            logger.error("Failed to retry document %s: %s", doc.id, e)
            outcome.errors[str(doc.id)] = str(e)
    return outcome


async def get_job_status(queue: JobQueue, job_id: str) -> JobStatus:
    return await queue.get_status(job_id)
