"""Persistence for documents, requests and their derived aggregate.

Every write that changes a document's status recomputes the owning request's
aggregate inside the same transaction, with the request row locked so
concurrent workers serialize their read-then-overwrite.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import DocumentNotFoundError
from src.core.models.ai_model_config import AIModelConfig
from src.core.models.document import Document, LineItem
from src.core.models.enums import DocumentStatus
from src.core.models.request import UploadRequest
from src.core.models.vendor import Vendor, VendorTemplate
from src.core.requests.aggregate import AggregateChange, apply_request_aggregate

logger = logging.getLogger(__name__)


@dataclass
class ExtractionUpdate:
    """Terminal outcome of a successful pipeline run for one document."""

    status: DocumentStatus
    invoice_number: str | None = None
    invoice_date: date | None = None
    total_amount: Decimal | None = None
    currency: str | None = None
    line_items: list[dict[str, Any]] = field(default_factory=list)
    custom_data: dict[str, Any] = field(default_factory=dict)
    raw_text: str | None = None
    ai_response: str | None = None
    vendor_id: str | None = None
    detected_vendor_id: str | None = None
    template_id: str | None = None
    last_error: str | None = None


class DocumentStore(Protocol):
    async def get_document(self, document_id: str) -> Document | None: ...

    async def list_vendors(self, user_id: str) -> list[Vendor]: ...

    async def get_active_template(self, vendor_id: str) -> VendorTemplate | None: ...

    async def get_model_configs(
        self, user_id: str, vendor_id: str | None
    ) -> tuple[AIModelConfig | None, AIModelConfig | None]: ...

    async def mark_queued(self, document_id: str) -> AggregateChange | None: ...

    async def set_job_id(self, document_id: str, job_id: str) -> None: ...

    async def restore_status(
        self, document_id: str, status: DocumentStatus
    ) -> AggregateChange | None: ...

    async def mark_processing(self, document_id: str, job_id: str) -> AggregateChange | None: ...

    async def complete_document(
        self, document_id: str, outcome: ExtractionUpdate
    ) -> AggregateChange | None: ...

    async def mark_failed(
        self, document_id: str, error: str, requeue: bool = False
    ) -> AggregateChange | None: ...

    async def reset_for_retry(self, document_id: str) -> tuple[int, AggregateChange | None]: ...

    async def bump_template_usage(self, template_id: str) -> None: ...

    async def get_request(self, request_id: str) -> UploadRequest | None: ...

    async def list_request_documents(self, request_id: str) -> list[Document]: ...

    async def mark_request_submitted(self, request_id: str) -> None: ...


def to_uuid(value: Any) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _now() -> datetime:
    return datetime.now(UTC)


class SqlDocumentRepository:
    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    # --- reads ---

    async def get_document(self, document_id: str) -> Document | None:
        doc_uuid = to_uuid(document_id)
        if doc_uuid is None:
            return None
        async with self._session_factory() as session:
            return await session.get(Document, doc_uuid)

    async def list_vendors(self, user_id: str) -> list[Vendor]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Vendor).where(Vendor.user_id == to_uuid(user_id)).order_by(Vendor.name)
            )
            return list(result.scalars().all())

    async def get_active_template(self, vendor_id: str) -> VendorTemplate | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(VendorTemplate).where(
                    VendorTemplate.vendor_id == to_uuid(vendor_id),
                    VendorTemplate.is_active.is_(True),
                )
            )
            return result.scalars().first()

    async def get_model_configs(
        self, user_id: str, vendor_id: str | None
    ) -> tuple[AIModelConfig | None, AIModelConfig | None]:
        """Return (vendor-specific config, user default config)."""
        async with self._session_factory() as session:
            vendor_config = None
            if vendor_id:
                result = await session.execute(
                    select(AIModelConfig).where(
                        AIModelConfig.user_id == to_uuid(user_id),
                        AIModelConfig.vendor_id == to_uuid(vendor_id),
                    )
                )
                vendor_config = result.scalar_one_or_none()
            result = await session.execute(
                select(AIModelConfig).where(
                    AIModelConfig.user_id == to_uuid(user_id),
                    AIModelConfig.vendor_id.is_(None),
                )
            )
            return vendor_config, result.scalars().first()

    async def get_request(self, request_id: str) -> UploadRequest | None:
        request_uuid = to_uuid(request_id)
        if request_uuid is None:
            return None
        async with self._session_factory() as session:
            return await session.get(UploadRequest, request_uuid)

    async def list_request_documents(self, request_id: str) -> list[Document]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Document)
                .where(Document.request_id == to_uuid(request_id))
                .order_by(Document.created_at)
            )
            return list(result.scalars().all())

    # --- writes ---

    async def _load_for_update(self, session: AsyncSession, document_id: str) -> Document:
        doc_uuid = to_uuid(document_id)
        doc = await session.get(Document, doc_uuid, with_for_update=True) if doc_uuid else None
        if doc is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return doc

    async def _refresh_aggregate(
        self, session: AsyncSession, request_id: uuid.UUID | None
    ) -> AggregateChange | None:
        if request_id is None:
            return None
        request = await session.get(UploadRequest, request_id, with_for_update=True)
        if request is None:
            logger.warning("Request %s vanished during aggregate refresh", request_id)
            return None
        result = await session.execute(select(Document).where(Document.request_id == request_id))
        return apply_request_aggregate(request, result.scalars().all())

    async def _write_status(
        self, document_id: str, mutate: Callable[[AsyncSession, Document], Awaitable[None]]
    ) -> AggregateChange | None:
        async with self._session_factory() as session:
            async with session.begin():
                doc = await self._load_for_update(session, document_id)
                await mutate(session, doc)
                await session.flush()
                return await self._refresh_aggregate(session, doc.request_id)

    async def mark_queued(self, document_id: str) -> AggregateChange | None:
        async def mutate(session: AsyncSession, doc: Document) -> None:
            doc.status = DocumentStatus.queued
            doc.last_error = None

        return await self._write_status(document_id, mutate)

    async def set_job_id(self, document_id: str, job_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(Document).where(Document.id == to_uuid(document_id)).values(job_id=job_id)
            )
            await session.commit()

    async def restore_status(
        self, document_id: str, status: DocumentStatus
    ) -> AggregateChange | None:
        async def mutate(session: AsyncSession, doc: Document) -> None:
            doc.status = status

        return await self._write_status(document_id, mutate)

    async def mark_processing(self, document_id: str, job_id: str) -> AggregateChange | None:
        """Enter processing and drop line items from any earlier attempt."""

        async def mutate(session: AsyncSession, doc: Document) -> None:
            await session.execute(delete(LineItem).where(LineItem.document_id == doc.id))
            doc.status = DocumentStatus.processing
            doc.job_id = job_id
            doc.last_error = None
            doc.processing_started_at = _now()
            doc.processing_completed_at = None

        return await self._write_status(document_id, mutate)

    async def complete_document(
        self, document_id: str, outcome: ExtractionUpdate
    ) -> AggregateChange | None:
        async def mutate(session: AsyncSession, doc: Document) -> None:
            await session.execute(delete(LineItem).where(LineItem.document_id == doc.id))
            doc.status = outcome.status
            doc.invoice_number = outcome.invoice_number
            doc.invoice_date = outcome.invoice_date
            doc.total_amount = outcome.total_amount
            doc.currency = outcome.currency
            doc.custom_data = outcome.custom_data or None
            doc.raw_text = outcome.raw_text
            doc.ai_response = outcome.ai_response
            doc.vendor_id = to_uuid(outcome.vendor_id)
            doc.detected_vendor_id = to_uuid(outcome.detected_vendor_id)
            doc.template_id = to_uuid(outcome.template_id)
            doc.last_error = outcome.last_error
            doc.processing_completed_at = _now()
            session.add_all(
                LineItem(
                    document_id=doc.id,
                    description=item.get("description") or "",
                    quantity=to_decimal(item.get("quantity")),
                    unit_price=to_decimal(item.get("unitPrice")),
                    amount=to_decimal(item.get("amount")),
                    position=position,
                )
                for position, item in enumerate(outcome.line_items)
            )

        return await self._write_status(document_id, mutate)

    async def mark_failed(
        self, document_id: str, error: str, requeue: bool = False
    ) -> AggregateChange | None:
        """Record a failed attempt; ``requeue`` keeps the document queued for a retry."""

        async def mutate(session: AsyncSession, doc: Document) -> None:
            doc.status = DocumentStatus.queued if requeue else DocumentStatus.failed
            doc.last_error = error
            doc.processing_completed_at = None if requeue else _now()

        return await self._write_status(document_id, mutate)

    async def reset_for_retry(self, document_id: str) -> tuple[int, AggregateChange | None]:
        retry_count = 0

        async def mutate(session: AsyncSession, doc: Document) -> None:
            nonlocal retry_count
            doc.status = DocumentStatus.queued
            doc.retry_count = (doc.retry_count or 0) + 1
            doc.last_error = None
            doc.processing_started_at = None
            doc.processing_completed_at = None
            retry_count = doc.retry_count

        change = await self._write_status(document_id, mutate)
        return retry_count, change

    async def bump_template_usage(self, template_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(VendorTemplate)
                .where(VendorTemplate.id == to_uuid(template_id))
                .values(
                    document_count=VendorTemplate.document_count + 1,
                    last_used_at=_now(),
                )
            )
            await session.commit()

    async def mark_request_submitted(self, request_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(UploadRequest)
                .where(UploadRequest.id == to_uuid(request_id))
                .values(submitted_at=_now())
            )
            await session.commit()

    async def activate_template(self, template_id: str) -> VendorTemplate:
        """Make one template active and deactivate its siblings atomically.

        All templates of the vendor are locked in one statement, in primary key
        order, so concurrent activations for the same vendor serialize instead
        of deadlocking. Siblings are deactivated and flushed before the target
        is activated to keep the one-active-per-vendor index satisfied.
        """
        template_uuid = to_uuid(template_id)
        async with self._session_factory() as session:
            async with session.begin():
                vendor_id = await session.scalar(
                    select(VendorTemplate.vendor_id).where(VendorTemplate.id == template_uuid)
                )
                if vendor_id is None:
                    raise DocumentNotFoundError(f"Template {template_id} not found")
                result = await session.execute(
                    select(VendorTemplate)
                    .where(VendorTemplate.vendor_id == vendor_id)
                    .order_by(VendorTemplate.id)
                    .with_for_update()
                )
                siblings = list(result.scalars().all())
                template = next((t for t in siblings if t.id == template_uuid), None)
                if template is None:
                    raise DocumentNotFoundError(f"Template {template_id} not found")

                for sibling in siblings:
                    if sibling is not template and sibling.is_active:
                        sibling.is_active = False
                await session.flush()
                template.is_active = True
            return template
