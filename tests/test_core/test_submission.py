"""Tests for document and request submission."""

import pytest

from src.core.audit import AuditEventType
from src.core.exceptions import DocumentNotFoundError, InvalidStateError
from src.core.models.enums import DocumentStatus, RequestStatus
from src.core.submission import (
    get_job_status,
    retry_document,
    retry_request,
    submit_document,
    submit_request,
)


@pytest.mark.asyncio
async def test_submit_document_queues_and_records_job(store, job_queue, user_id, audit):
    doc = store.add_document(user_id, vendor_id="vendor-3")

    submission = await submit_document(store, job_queue, doc.id, user_id, audit=audit)

    assert submission.created is True
    assert doc.status == DocumentStatus.queued
    assert doc.job_id == submission.job_id
    job = await job_queue.get_job(submission.job_id)
    assert job.payload.vendor_id_override == "vendor-3"
    assert job.payload.attempt == 1
    assert audit.record.await_args.args[0].event_type == AuditEventType.document_queued


@pytest.mark.asyncio
async def test_submit_active_document_returns_existing_job(store, job_queue, user_id):
    doc = store.add_document(user_id)
    first = await submit_document(store, job_queue, doc.id, user_id)
    second = await submit_document(store, job_queue, doc.id, user_id)

    assert second.created is False
    assert second.job_id == first.job_id


@pytest.mark.asyncio
async def test_submit_processed_document_is_rejected(store, job_queue, user_id):
    doc = store.add_document(user_id, status=DocumentStatus.processed)
    with pytest.raises(InvalidStateError):
        await submit_document(store, job_queue, doc.id, user_id)


@pytest.mark.asyncio
async def test_submit_foreign_document_is_not_found(store, job_queue, user_id):
    doc = store.add_document(user_id)
    with pytest.raises(DocumentNotFoundError):
        await submit_document(store, job_queue, doc.id, "someone-else")
    assert doc.status == DocumentStatus.pending


@pytest.mark.asyncio
async def test_enqueue_failure_restores_status(store, job_queue, fake_task, user_id):
    request = store.add_request(user_id)
    doc = store.add_document(user_id, request_id=request.id)
    fake_task.kiq.side_effect = ConnectionError("redis down")

    with pytest.raises(ConnectionError):
        await submit_document(store, job_queue, doc.id, user_id)

    assert doc.status == DocumentStatus.pending
    assert doc.job_id is None
    assert request.status == RequestStatus.draft


@pytest.mark.asyncio
async def test_retry_requires_failure_status(store, job_queue, user_id):
    doc = store.add_document(user_id, status=DocumentStatus.processed)
    with pytest.raises(InvalidStateError):
        await retry_document(store, job_queue, doc.id, user_id)


@pytest.mark.asyncio
async def test_retry_validation_failed_document(store, job_queue, user_id, audit):
    doc = store.add_document(user_id, status=DocumentStatus.validation_failed, retry_count=2)

    submission = await retry_document(store, job_queue, doc.id, user_id, audit=audit)

    assert doc.status == DocumentStatus.queued
    assert doc.retry_count == 3
    assert (await job_queue.get_job(submission.job_id)).payload.attempt == 4
    assert audit.record.await_args.args[0].event_type == AuditEventType.document_retried


@pytest.mark.asyncio
async def test_submit_request_queues_pending_documents(store, job_queue, user_id, audit):
    request = store.add_request(user_id, default_vendor_id="vendor-9")
    docs = [store.add_document(user_id, request_id=request.id) for _ in range(3)]

    outcome = await submit_request(store, job_queue, request.id, user_id, audit=audit)

    assert len(outcome.jobs) == 3
    assert outcome.errors == {}
    assert all(d.status == DocumentStatus.queued for d in docs)
    assert request.status == RequestStatus.processing
    assert request.queued_count == 3
    assert request.submitted_at is not None
    job = await job_queue.get_job(outcome.jobs[0].job_id)
    assert job.payload.vendor_id_override == "vendor-9"
    assert outcome.to_wire()["requestId"] == request.id
    assert audit.record.await_args.args[0].event_type == AuditEventType.request_submitted


@pytest.mark.asyncio
async def test_submit_request_collects_per_document_errors(store, job_queue, fake_task, user_id):
    request = store.add_request(user_id)
    good = store.add_document(user_id, request_id=request.id)
    bad = store.add_document(user_id, request_id=request.id)
    fake_task.kiq.side_effect = [None, ConnectionError("broker down")]

    outcome = await submit_request(store, job_queue, request.id, user_id)

    assert len(outcome.jobs) == 1
    assert outcome.errors == {bad.id: "broker down"}
    assert good.status == DocumentStatus.queued
    assert bad.status == DocumentStatus.pending


@pytest.mark.asyncio
async def test_submit_request_without_pending_documents(store, job_queue, user_id):
    request = store.add_request(user_id)
    with pytest.raises(InvalidStateError):
        await submit_request(store, job_queue, request.id, user_id)


@pytest.mark.asyncio
async def test_retry_request_only_retries_failures(store, job_queue, user_id):
    request = store.add_request(user_id)
    ok = store.add_document(user_id, request_id=request.id, status=DocumentStatus.processed)
    failed = store.add_document(user_id, request_id=request.id, status=DocumentStatus.failed)
    invalid = store.add_document(
        user_id, request_id=request.id, status=DocumentStatus.validation_failed
    )
    assert request.status == RequestStatus.partial

    outcome = await retry_request(store, job_queue, request.id, user_id)

    assert {j.document_id for j in outcome.jobs} == {failed.id, invalid.id}
    assert ok.status == DocumentStatus.processed
    assert request.status == RequestStatus.processing
    assert request.completed_at is None


@pytest.mark.asyncio
async def test_retry_completed_request_is_rejected(store, job_queue, user_id):
    request = store.add_request(user_id)
    store.add_document(user_id, request_id=request.id, status=DocumentStatus.processed)
    with pytest.raises(InvalidStateError):
        await retry_request(store, job_queue, request.id, user_id)


@pytest.mark.asyncio
async def test_get_job_status(store, job_queue, user_id):
    doc = store.add_document(user_id)
    submission = await submit_document(store, job_queue, doc.id, user_id)

    status = await get_job_status(job_queue, submission.job_id)

    assert status.status == "waiting"
    assert status.job.payload.document_id == doc.id


@pytest.mark.asyncio
async def test_request_default_vendor_wins_over_document_vendor(store, job_queue, user_id):
    request = store.add_request(user_id, default_vendor_id="req-vendor")
    store.add_document(user_id, request_id=request.id, vendor_id="doc-vendor")
    bare = store.add_request(user_id)
    store.add_document(user_id, request_id=bare.id, vendor_id="doc-vendor")

    outcome = await submit_request(store, job_queue, request.id, user_id)
    fallback = await submit_request(store, job_queue, bare.id, user_id)

    job = await job_queue.get_job(outcome.jobs[0].job_id)
    assert job.payload.vendor_id_override == "req-vendor"
    job = await job_queue.get_job(fallback.jobs[0].job_id)
    assert job.payload.vendor_id_override == "doc-vendor"
