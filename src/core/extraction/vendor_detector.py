"""Detect which of a user's vendors issued a document from its text."""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

IDENTIFIER_CONFIDENCE = 0.95
NAME_CONFIDENCE = 0.8
PARTIAL_NAME_FACTOR = 0.7
NAME_SEARCH_CHARS = 1000


@dataclass(frozen=True)
class VendorMatch:
    vendor_id: str | None
    confidence: float = 0.0
    name: str | None = None
    reason: str = "none"  # identifier | name | partial_name | none


NO_MATCH = VendorMatch(vendor_id=None)


def _identifiers(vendor: Any) -> list[str]:
    raw = getattr(vendor, "identifiers", None)
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Vendor %s has malformed identifiers", getattr(vendor, "id", "?"))
            return []
    if not isinstance(raw, list):
        return []
    return [str(i).strip() for i in raw if i and str(i).strip()]


def match_by_identifiers(text: str, vendors: Sequence[Any]) -> VendorMatch | None:
    lowered = text.lower()
    for vendor in vendors:
        for identifier in _identifiers(vendor):
            if identifier.lower() in lowered:
                return VendorMatch(
                    vendor_id=str(vendor.id),
                    confidence=IDENTIFIER_CONFIDENCE,
                    name=vendor.name,
                    reason="identifier",
                )
    return None


def match_by_name(text: str, vendors: Sequence[Any]) -> VendorMatch | None:
    """Match vendor names against the first page worth of text.

    A full name hit wins outright; otherwise the vendor whose significant
    name words (longer than 3 chars) mostly appear is returned with reduced
    confidence.
    """
    head = text[:NAME_SEARCH_CHARS].lower()
    best: VendorMatch | None = None

    for vendor in vendors:
        name = (vendor.name or "").strip().lower()
        if not name:
            continue
        if name in head:
            return VendorMatch(
                vendor_id=str(vendor.id),
                confidence=NAME_CONFIDENCE,
                name=vendor.name,
                reason="name",
            )

        words = [w for w in name.split() if len(w) > 3]
        if len(name.split()) < 2 or not words:
            continue
        ratio = sum(1 for w in words if w in head) / len(words)
        if ratio > 0.5 and (best is None or ratio * PARTIAL_NAME_FACTOR > best.confidence):
            best = VendorMatch(
                vendor_id=str(vendor.id),
                confidence=ratio * PARTIAL_NAME_FACTOR,
                name=vendor.name,
                reason="partial_name",
            )
    return best


def detect_vendor(text: str, vendors: Sequence[Any]) -> VendorMatch:
    if not vendors or not text:
        return NO_MATCH
    match = match_by_identifiers(text, vendors) or match_by_name(text, vendors)
    if match:
        logger.info(
            "Detected vendor %s (%s, confidence %.2f)",
            match.vendor_id,
            match.reason,
            match.confidence,
        )
        return match
    return NO_MATCH
