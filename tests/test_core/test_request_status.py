"""Tests for request status derivation and the status guards."""

import pytest

from src.core.models.enums import DocumentStatus as D
from src.core.models.enums import RequestStatus as R
from src.core.requests.status import (
    calculate_request_status,
    can_delete_request,
    can_modify_documents,
    can_retry_request,
    can_submit_request,
    is_terminal_status,
)


@pytest.mark.parametrize(
    "statuses,expected",
    [
        ([], R.draft),
        ([D.pending, D.pending], R.draft),
        ([D.pending, D.queued], R.processing),
        ([D.processed, D.processing], R.processing),
        ([D.failed, D.queued, D.processed], R.processing),
        ([D.failed, D.failed], R.failed),
        ([D.validation_failed], R.failed),
        ([D.processed, D.processed], R.completed),
        ([D.processed, D.failed], R.partial),
        ([D.processed, D.validation_failed], R.partial),
        ([D.processed, D.failed, D.pending], R.partial),
    ],
)
def test_calculate_request_status(statuses, expected):
    assert calculate_request_status(statuses) == expected


def test_accepts_plain_strings():
    assert calculate_request_status(["processed", "failed"]) == R.partial


def test_uncovered_mix_falls_back_to_draft():
    """failed + pending (nothing processed, nothing active) matches no rule."""
    assert calculate_request_status([D.failed, D.pending]) == R.draft
    assert calculate_request_status([D.processed, D.pending]) == R.draft


def test_order_of_documents_does_not_matter():
    statuses = [D.processed, D.failed, D.processed]
    assert calculate_request_status(statuses) == calculate_request_status(reversed(statuses))


def test_can_submit_request():
    assert can_submit_request(R.draft, 2) is True
    assert can_submit_request(R.draft, 0) is False
    assert can_submit_request(R.processing, 2) is False


def test_can_retry_request():
    assert can_retry_request(R.failed, 1) is True
    assert can_retry_request(R.partial, 2) is True
    assert can_retry_request(R.partial, 0) is False
    assert can_retry_request(R.completed, 1) is False


def test_can_delete_and_modify():
    assert can_delete_request(R.processing) is False
    assert can_delete_request(R.completed) is True
    assert can_modify_documents(R.draft) is True
    assert can_modify_documents(R.partial) is False


def test_is_terminal_status():
    assert all(is_terminal_status(s) for s in (R.completed, R.partial, R.failed))
    assert not is_terminal_status(R.processing)
    assert not is_terminal_status("draft")
