"""Write derived status and statistics onto an UploadRequest."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from src.core.models.enums import RequestStatus
from src.core.requests.statistics import RequestStatistics, calculate_request_statistics
from src.core.requests.status import calculate_request_status, is_terminal_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregateChange:
    request_id: str
    previous_status: RequestStatus
    status: RequestStatus
    statistics: RequestStatistics

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.status

    @property
    def entered_terminal(self) -> bool:
        return self.status_changed and is_terminal_status(self.status)


def apply_request_aggregate(
    request: Any, documents: Iterable[Any], now: datetime | None = None
) -> AggregateChange:
    """Recompute the request aggregate from its full current document set.

    Pure with respect to storage: callers load the documents and persist the
    request inside the same transaction as the document write.
    """
    docs = list(documents)
    stats = calculate_request_statistics(docs)
    previous = RequestStatus(request.status) if request.status else RequestStatus.draft
    status = calculate_request_status(d.status for d in docs)

    request.total_documents = stats.total_documents
    request.pending_count = stats.pending_count
    request.queued_count = stats.queued_count
    request.processing_count = stats.processing_count
    request.processed_count = stats.processed_count
    request.failed_count = stats.failed_count
    request.total_amount = stats.total_amount
    request.currency = stats.currency
    request.status = status

    if is_terminal_status(status):
        if previous != status or request.completed_at is None:
            request.completed_at = now or datetime.now(UTC)
    else:
        request.completed_at = None

    change = AggregateChange(
        request_id=str(request.id), previous_status=previous, status=status, statistics=stats
    )
    if change.status_changed:
        logger.info("Request %s status %s -> %s", request.id, previous.value, status.value)
    return change
