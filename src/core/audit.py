"""Audit trail for request and document lifecycle events.

Recording is fire-and-forget: a failing audit write is logged and dropped so
it can never fail a document or a job.
"""

import enum
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.models.audit import AuditLog
from src.core.models.enums import AuditSeverity

logger = logging.getLogger(__name__)


class AuditEventType(str, enum.Enum):
    request_submitted = "request_submitted"
    request_completed = "request_completed"
    document_queued = "document_queued"
    document_processing_started = "document_processing_started"
    document_processing_completed = "document_processing_completed"
    document_processing_failed = "document_processing_failed"
    document_retried = "document_retried"
    vendor_detected = "vendor_detected"


class AuditCategory(str, enum.Enum):
    request_lifecycle = "request_lifecycle"
    document_operation = "document_operation"
    vendor_operation = "vendor_operation"


@dataclass
class AuditEvent:
    user_id: str
    event_type: AuditEventType
    category: AuditCategory
    summary: str
    request_id: str | None = None
    severity: AuditSeverity = AuditSeverity.info
    details: dict[str, Any] | None = None
    target_type: str | None = None
    target_id: str | None = None
    previous_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None


class AuditSink(Protocol):
    async def record(self, event: AuditEvent) -> None: ...


async def log_action(session: AsyncSession, event: AuditEvent) -> None:
    """Add an audit row to an open session (caller commits)."""
    entry = AuditLog(
        request_id=uuid.UUID(event.request_id) if event.request_id else None,
        user_id=uuid.UUID(event.user_id),
        event_type=event.event_type.value,
        event_category=event.category.value,
        severity=event.severity,
        summary=event.summary,
        details=event.details,
        target_type=event.target_type,
        target_id=event.target_id,
        previous_value=event.previous_value,
        new_value=event.new_value,
    )
    session.add(entry)
    await session.flush()


class SqlAuditSink:
    """Writes each event in its own short transaction."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def record(self, event: AuditEvent) -> None:
        try:
            async with self._session_factory() as session:
                await log_action(session, event)
                await session.commit()
        except Exception:
            logger.exception(
                "Failed to record audit event %s for %s", event.event_type.value, event.target_id
            )

