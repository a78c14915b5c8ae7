"""Cheap heuristics describing how far a correction moved from its input."""

from __future__ import annotations

from common.schemas import ChangeKind, TextChange

MIN_CONFIDENCE = 0.3


def calculate_confidence(original: str, corrected: str) -> float:
    """Share of words kept between ``original`` and ``corrected``.

    Not a calibrated probability: 1.0 for identical text, otherwise the
    case-insensitive common-word ratio against the longer text, floored at 0.3.
    """
    if original == corrected:
        return 1.0

    original_words = original.lower().split()
    corrected_words = corrected.lower().split()
    max_length = max(len(original_words), len(corrected_words), 1)
    vocabulary = set(corrected_words)
    common = sum(1 for word in original_words if word in vocabulary)

    return max(MIN_CONFIDENCE, min(1.0, common / max_length))


def detect_changes(original: str, corrected: str) -> list[TextChange]:
    if original == corrected:
        return []
    return [TextChange(original=original, corrected=corrected, kind=ChangeKind.correction)]
