"""Aggregate request status derived from document statuses."""

import logging
from collections.abc import Iterable

from src.core.models.enums import (
    ACTIVE_STATUSES,
    FAILURE_STATUSES,
    TERMINAL_REQUEST_STATUSES,
    DocumentStatus,
    RequestStatus,
)

logger = logging.getLogger(__name__)


def calculate_request_status(statuses: Iterable[DocumentStatus | str]) -> RequestStatus:
    """Return the request status for the given document statuses.

    Rules are checked in priority order: empty or all-pending requests are
    drafts; any queued/processing document makes the request processing;
    otherwise terminal outcomes decide between failed, completed and partial.
    """
    present = {DocumentStatus(s) for s in statuses}
    if not present:
        return RequestStatus.draft

    if present & ACTIVE_STATUSES:
        return RequestStatus.processing

    has_pending = DocumentStatus.pending in present
    has_processed = DocumentStatus.processed in present
    has_failed = bool(present & FAILURE_STATUSES)

    if has_pending and not has_processed and not has_failed:
        return RequestStatus.draft
    if has_failed and not has_processed and not has_pending:
        return RequestStatus.failed
    if has_processed and not has_failed and not has_pending:
        return RequestStatus.completed
    if has_processed and has_failed:
        return RequestStatus.partial

    logger.warning(
        "No request status rule covers document statuses %s, using draft",
        sorted(s.value for s in present),
    )
    return RequestStatus.draft


def can_submit_request(status: RequestStatus | str, pending_count: int) -> bool:
    return RequestStatus(status) == RequestStatus.draft and pending_count > 0


def can_retry_request(status: RequestStatus | str, failed_count: int) -> bool:
    return (
        RequestStatus(status) in (RequestStatus.failed, RequestStatus.partial) and failed_count > 0
    )


def can_delete_request(status: RequestStatus | str) -> bool:
    return RequestStatus(status) != RequestStatus.processing


def can_modify_documents(status: RequestStatus | str) -> bool:
    return RequestStatus(status) == RequestStatus.draft


def is_terminal_status(status: RequestStatus | str) -> bool:
    return RequestStatus(status) in TERMINAL_REQUEST_STATUSES
