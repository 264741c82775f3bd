"""Document extraction worker: runs one claimed job through the pipeline.

The worker is the only component that writes a document's processing status.
Lower layers raise typed errors; ``run`` turns them into a retry or a terminal
``failed`` state. Validation-rule violations are not errors: they complete the
job with the document in ``validation_failed``.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Any

from src.core.audit import AuditCategory, AuditEvent, AuditEventType, AuditSink
from src.core.exceptions import (
    DocumentNotFoundError,
    DocumentUnreadableError,
    JobTimeoutError,
    UnauthorizedError,
    is_retryable,
)
from src.core.extraction.field_mapper import apply_field_mappings, split_standard_and_custom
from src.core.extraction.schema_builder import build_extraction_schema
from src.core.extraction.text_extractor import extract_text
from src.core.extraction.validation import apply_validation_rules
from src.core.extraction.vendor_detector import detect_vendor
from src.core.llm.extractor import ExtractionClient
from src.core.llm.model_selector import ModelSelection, build_provider, select_model
from src.core.llm.providers import ExtractionProvider
from src.core.models.enums import AuditSeverity, DocumentStatus
from src.core.repository import DocumentStore, ExtractionUpdate, to_decimal
from src.core.requests.aggregate import AggregateChange
from src.core.schemas.jobs import JobRecord, JobResult, ProcessingStep
from src.core.schemas.template import TemplateSpec
from src.core.storage import Storage
from src.core.tasks.queue import JobQueue

logger = logging.getLogger(__name__)

EMPTY_EXTRACTION_MESSAGE = "No meaningful data could be extracted from the document"


@dataclass
class _Completion:
    """Terminal document write plus the non-fatal follow-ups it triggers."""

    result: JobResult
    event: AuditEvent
    change: AggregateChange | None
    template_id: str | None = None


@dataclass
class _Attempt:
    completion: _Completion | None = None


class DocumentWorker:
    def __init__(
        self,
        queue: JobQueue,
        store: DocumentStore,
        storage: Storage,
        audit: AuditSink,
        provider_factory: Callable[[ModelSelection], ExtractionProvider] = build_provider,
    ):
        self.queue = queue
        self.store = store
        self.storage = storage
        self.audit = audit
        self.provider_factory = provider_factory

    async def run(self, job_id: str) -> JobResult | None:
        """Execute one attempt of ``job_id``. Returns None if it could not be claimed."""
        job = await self.queue.claim(job_id)
        if job is None:
            return None

        timeout_ms = self.queue.config.timeout_ms
        logger.info(
            "Processing job %s (document %s, attempt %d/%d)",
            job.id,
            job.payload.document_id,
            job.attempts_made + 1,
            job.max_attempts,
        )
        attempt = _Attempt()
        try:
            async with asyncio.timeout(timeout_ms / 1000):
                await self._process(job, attempt)
        except TimeoutError:
            if attempt.completion is None:
                return await self._handle_failure(
                    job, JobTimeoutError(f"Processing timed out after {timeout_ms}ms")
                )
            logger.warning("Job %s timed out after its terminal write; completing", job.id)
        except Exception as e:
            return await self._handle_failure(job, e)

        # The document row is terminal from here on; follow-ups run outside the
        # attempt timeout and never fail the job.
        completion = attempt.completion
        await self.queue.complete(job, completion.result)
        await self._after_completion(completion, job.payload.user_id)
        return completion.result

    # --- pipeline ---

    async def _process(self, job: JobRecord, attempt: _Attempt) -> None:
        payload = job.payload
        document_id = payload.document_id

        doc = await self.store.get_document(document_id)
        if doc is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        if str(doc.user_id) != payload.user_id:
            raise UnauthorizedError(f"Document {document_id} does not belong to the job's user")

        await self.store.mark_processing(document_id, job.id)
        await self._record(
            AuditEvent(
                user_id=payload.user_id,
                request_id=_str(doc.request_id),
                event_type=AuditEventType.document_processing_started,
                category=AuditCategory.document_operation,
                summary=f"Processing started for {doc.file_name}",
                target_type="document",
                target_id=document_id,
                details={"jobId": job.id, "attempt": payload.attempt},
            )
        )

        await self.queue.update_progress(job, ProcessingStep.file_read)
        if not doc.storage_path:
            raise DocumentUnreadableError(f"Document {document_id} has no stored file")
        data = await self.storage.read(doc.storage_path)

        await self.queue.update_progress(job, ProcessingStep.text_extract)
        text = await extract_text(data, doc.mime_type, doc.file_name)

        await self.queue.update_progress(job, ProcessingStep.vendor_detect)
        vendor_id, detected_vendor_id = await self._resolve_vendor(job, doc, text)

        await self.queue.update_progress(job, ProcessingStep.template_load)
        template = await self._load_template(vendor_id)
        schema = build_extraction_schema(template)

        await self.queue.update_progress(job, ProcessingStep.ai_extract)
        vendor_config, user_config = await self.store.get_model_configs(payload.user_id, vendor_id)
        provider = self.provider_factory(select_model(vendor_config, user_config))
        outcome = await ExtractionClient(provider).extract(text, schema)

        await self.queue.update_progress(job, ProcessingStep.validation)
        record = apply_field_mappings(outcome.record, template.field_mappings if template else {})
        violations = [
            v.message
            for v in apply_validation_rules(record, template.validation_rules if template else ())
        ]
        if outcome.is_meaningfully_empty:
            violations.insert(0, EMPTY_EXTRACTION_MESSAGE)
        status = DocumentStatus.validation_failed if violations else DocumentStatus.processed

        await self.queue.update_progress(job, ProcessingStep.db_update)
        standard, custom = split_standard_and_custom(record)
        change = await self.store.complete_document(
            document_id,
            ExtractionUpdate(
                status=status,
                invoice_number=standard.get("invoiceNumber"),
                invoice_date=_parse_date(standard.get("date")),
                total_amount=to_decimal(standard.get("totalAmount")),
                currency=standard.get("currency"),
                line_items=standard.get("lineItems") or [],
                custom_data=custom,
                raw_text=text,
                ai_response=json.dumps({**record, "validation": violations or None}),
                vendor_id=vendor_id,
                detected_vendor_id=detected_vendor_id,
                template_id=template.id if template else None,
            ),
        )

        logger.info("Document %s %s", document_id, status.value)
        attempt.completion = _Completion(
            result=JobResult(success=True, document_id=document_id, extracted_data=record),
            event=AuditEvent(
                user_id=payload.user_id,
                request_id=_str(doc.request_id),
                event_type=AuditEventType.document_processing_completed,
                category=AuditCategory.document_operation,
                severity=AuditSeverity.warning if violations else AuditSeverity.info,
                summary=f"{doc.file_name} {status.value}",
                target_type="document",
                target_id=document_id,
                new_value={"status": status.value},
                details={
                    "provider": outcome.provider,
                    "model": outcome.model,
                    "tokens": outcome.usage.total_tokens if outcome.usage else None,
                    "violations": violations or None,
                },
            ),
            change=change,
            template_id=template.id if template else None,
        )

    async def _after_completion(self, completion: _Completion, user_id: str) -> None:
        if completion.template_id:
            try:
                await self.store.bump_template_usage(completion.template_id)
            except Exception as e:
                logger.warning(
                    "Failed to bump usage for template %s: %s", completion.template_id, e
                )
        await self._record(completion.event)
        await self._record_aggregate(completion.change, user_id)

    async def _resolve_vendor(
        self, job: JobRecord, doc: Any, text: str
    ) -> tuple[str | None, str | None]:
        """Return (vendor used for extraction, vendor found by detection)."""
        override = job.payload.vendor_id_override
        if override:
            return override, None
        try:
            vendors = await self.store.list_vendors(job.payload.user_id)
            match = detect_vendor(text, vendors)
        except Exception as e:
            logger.error("Vendor detection failed for %s: %s", job.payload.document_id, e)
            return None, None
        if match.vendor_id:
            await self._record(
                AuditEvent(
                    user_id=job.payload.user_id,
                    request_id=_str(doc.request_id),
                    event_type=AuditEventType.vendor_detected,
                    category=AuditCategory.vendor_operation,
                    summary=f"Detected vendor {match.name}",
                    target_type="document",
                    target_id=job.payload.document_id,
                    details={"reason": match.reason, "confidence": match.confidence},
                )
            )
        return match.vendor_id, match.vendor_id

    async def _load_template(self, vendor_id: str | None) -> TemplateSpec | None:
        if not vendor_id:
            return None
        try:
            row = await self.store.get_active_template(vendor_id)
        except Exception as e:
            logger.error("Failed to load template for vendor %s: %s", vendor_id, e)
            return None
        return TemplateSpec.from_template(row)

    # --- failure ---

    async def _handle_failure(self, job: JobRecord, exc: Exception) -> JobResult:
        payload = job.payload
        message = str(exc) or exc.__class__.__name__
        retryable = is_retryable(exc)
        will_retry = self.queue.will_retry(job, retryable)
        logger.error(
            "Job %s for document %s failed (%s): %s",
            job.id,
            payload.document_id,
            exc.__class__.__name__,
            message,
            exc_info=not isinstance(exc, (JobTimeoutError, DocumentUnreadableError)),
        )

        change = None
        # A job that names a missing or foreign document must not touch any row
        if not isinstance(exc, (DocumentNotFoundError, UnauthorizedError)):
            try:
                change = await self.store.mark_failed(
                    payload.document_id, message, requeue=will_retry
                )
            except DocumentNotFoundError:
                logger.warning("Document %s disappeared before failure write", payload.document_id)

        await self.queue.fail(job, message, retryable=retryable)

        await self._record(
            AuditEvent(
                user_id=payload.user_id,
                event_type=AuditEventType.document_processing_failed,
                category=AuditCategory.document_operation,
                severity=AuditSeverity.warning if will_retry else AuditSeverity.error,
                summary=f"Processing failed: {message}",
                target_type="document",
                target_id=payload.document_id,
                details={
                    "jobId": job.id,
                    "attemptsMade": job.attempts_made,
                    "willRetry": will_retry,
                    "error": exc.__class__.__name__,
                },
            )
        )
        await self._record_aggregate(change, payload.user_id)
        return JobResult(success=False, document_id=payload.document_id, error=message)

    # --- audit ---

    async def _record(self, event: AuditEvent) -> None:
        try:
            await self.audit.record(event)
        except Exception:
            logger.exception("Audit sink raised for %s", event.event_type.value)

    async def _record_aggregate(self, change: AggregateChange | None, user_id: str) -> None:
        if change is None or not change.entered_terminal:
            return
        stats = change.statistics
        await self._record(
            AuditEvent(
                user_id=user_id,
                request_id=change.request_id,
                event_type=AuditEventType.request_completed,
                category=AuditCategory.request_lifecycle,
                summary=f"Request {change.status.value}: "
                f"{stats.processed_count}/{stats.total_documents} processed",
                target_type="request",
                target_id=change.request_id,
                previous_value={"status": change.previous_status.value},
                new_value={"status": change.status.value},
                details=stats.to_dict(),
            )
        )


def _str(value: Any) -> str | None:
    return str(value) if value is not None else None


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning("Ignoring unparseable invoice date %r", value)
        return None
