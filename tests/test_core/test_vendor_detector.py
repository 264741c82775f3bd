"""Tests for deterministic vendor detection."""

from types import SimpleNamespace

import pytest

from src.core.extraction.vendor_detector import NO_MATCH, detect_vendor


def _vendor(name, identifiers=None, vendor_id=None):
    return SimpleNamespace(
        id=vendor_id or name.lower().replace(" ", "-"), name=name, identifiers=identifiers
    )


def test_identifier_match_wins():
    vendors = [
        _vendor("Acme Supplies"),
        _vendor("Globex Corporation", identifiers=["VAT GB123456789"]),
    ]
    text = "Acme Supplies\nInvoice for services\nSupplier VAT gb123456789"
    match = detect_vendor(text, vendors)
    assert match.vendor_id == "globex-corporation"
    assert match.reason == "identifier"
    assert match.confidence == pytest.approx(0.95)


def test_identifiers_stored_as_json_string():
    vendors = [_vendor("Initech", identifiers='["TAX-42"]')]
    assert detect_vendor("Tax id: tax-42", vendors).vendor_id == "initech"


def test_full_name_match():
    match = detect_vendor("INVOICE\nAcme Supplies Ltd\nTotal 10", [_vendor("Acme Supplies")])
    assert match.reason == "name"
    assert match.confidence == pytest.approx(0.8)


def test_partial_name_match_scales_confidence():
    vendors = [_vendor("Northwind Trading Company")]
    text = "Northwind Company invoice"
    match = detect_vendor(text, vendors)
    assert match.reason == "partial_name"
    assert match.confidence == pytest.approx(2 / 3 * 0.7)


def test_partial_match_needs_majority_of_words():
    vendors = [_vendor("Northwind Trading Company")]
    assert detect_vendor("Northwind invoice", vendors) == NO_MATCH


def test_single_word_names_need_full_match():
    assert detect_vendor("Globe invoice", [_vendor("Globex")]) == NO_MATCH


def test_name_search_is_limited_to_document_head():
    text = "x" * 1200 + " Acme Supplies"
    assert detect_vendor(text, [_vendor("Acme Supplies")]) == NO_MATCH


def test_no_vendors_or_text():
    assert detect_vendor("anything", []) == NO_MATCH
    assert detect_vendor("", [_vendor("Acme")]) == NO_MATCH
