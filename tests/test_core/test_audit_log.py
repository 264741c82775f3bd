"""Tests for the audit trail."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

import src.core.models  # noqa: F401  registers every mapper
from src.core.audit import AuditCategory, AuditEvent, AuditEventType, SqlAuditSink, log_action
from src.core.models.enums import AuditSeverity


def _event(**overrides):
    return AuditEvent(
        user_id=str(uuid.uuid4()),
        request_id=str(uuid.uuid4()),
        event_type=AuditEventType.document_processing_failed,
        category=AuditCategory.document_operation,
        severity=AuditSeverity.error,
        summary="Processing failed: boom",
        target_type="document",
        target_id="doc-1",
        **overrides,
    )


@pytest.mark.asyncio
async def test_log_action_adds_row():
    session = MagicMock()
    session.flush = AsyncMock()
    event = _event(details={"willRetry": False})

    await log_action(session, event)

    entry = session.add.call_args.args[0]
    assert entry.event_type == "document_processing_failed"
    assert entry.event_category == "document_operation"
    assert entry.severity == AuditSeverity.error
    assert str(entry.user_id) == event.user_id
    assert entry.details == {"willRetry": False}
    session.flush.assert_awaited_once()


@pytest.mark.asyncio
async def test_sql_sink_commits():
    session = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)

    await SqlAuditSink(factory).record(_event())

    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_sql_sink_swallows_errors():
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(side_effect=ConnectionError("db down"))
    factory.return_value.__aexit__ = AsyncMock(return_value=False)

    await SqlAuditSink(factory).record(_event())
