"""Request statistics computed from its documents."""

import math
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from src.core.models.enums import FAILURE_STATUSES, DocumentStatus


@dataclass(frozen=True)
class RequestStatistics:
    total_documents: int = 0
    processed_count: int = 0
    failed_count: int = 0
    pending_count: int = 0
    queued_count: int = 0
    processing_count: int = 0
    success_rate: int = 0
    total_amount: Decimal | None = None
    currency: str | None = None
    average_amount: Decimal | None = None
    average_processing_time_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalDocuments": self.total_documents,
            "processedCount": self.processed_count,
            "failedCount": self.failed_count,
            "pendingCount": self.pending_count,
            "queuedCount": self.queued_count,
            "processingCount": self.processing_count,
            "successRate": self.success_rate,
            "totalAmount": float(self.total_amount) if self.total_amount is not None else None,
            "currency": self.currency,
            "averageAmount": (
                float(self.average_amount) if self.average_amount is not None else None
            ),
            "averageProcessingTime": self.average_processing_time_ms,
        }


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _most_common_currency(documents: list[Any]) -> str | None:
    counts = Counter(d.currency for d in documents if d.currency)
    if not counts:
        return None
    # most_common keeps first-seen order among equal counts
    return counts.most_common(1)[0][0]


def _processing_ms(started: datetime, completed: datetime) -> float:
    return (completed - started).total_seconds() * 1000


def calculate_request_statistics(documents: Iterable[Any]) -> RequestStatistics:
    """Compute counts, success rate and amount/timing aggregates.

    ``documents`` are Document rows or any objects exposing ``status``,
    ``total_amount``, ``currency``, ``processing_started_at`` and
    ``processing_completed_at``.
    """
    docs = list(documents)
    total = len(docs)
    statuses = Counter(DocumentStatus(d.status) for d in docs)
    processed_docs = [d for d in docs if DocumentStatus(d.status) == DocumentStatus.processed]
    processed = len(processed_docs)

    amounts = [Decimal(str(d.total_amount)) for d in processed_docs if d.total_amount is not None]
    total_amount = sum(amounts, Decimal("0")) if amounts else None
    average_amount = total_amount / len(amounts) if amounts else None

    durations = [
        _processing_ms(d.processing_started_at, d.processing_completed_at)
        for d in processed_docs
        if d.processing_started_at and d.processing_completed_at
    ]
    average_ms = round_half_up(sum(durations) / len(durations)) if durations else None

    return RequestStatistics(
        total_documents=total,
        processed_count=processed,
        failed_count=sum(statuses[s] for s in FAILURE_STATUSES),
        pending_count=statuses[DocumentStatus.pending],
        queued_count=statuses[DocumentStatus.queued],
        processing_count=statuses[DocumentStatus.processing],
        success_rate=round_half_up(processed / total * 100) if total else 0,
        total_amount=total_amount,
        currency=_most_common_currency(processed_docs),
        average_amount=average_amount,
        average_processing_time_ms=average_ms,
    )
