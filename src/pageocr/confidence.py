# src/pageocr/confidence.py
"""Helpers for handling recognition confidence values consistently."""
from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Union

Number = Union[int, float]


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def normalize_confidence(confidence: Optional[Number]) -> int:
    """
    Normalize a confidence value to an integer percentage (0-100).

    Values in [0, 1] are treated as fractions, anything larger as a percentage.
    Missing or non-finite values count as 0.
    """
    if confidence is None or isinstance(confidence, bool):
        return 0
    value = float(confidence)
    if math.isnan(value) or value <= 0:
        return 0
    if value <= 1:
        value *= 100
    # round half up, matching how percentages are displayed elsewhere
    return int(math.floor(min(value, 100.0) + 0.5))


def confidence_level(confidence: Optional[Number]) -> ConfidenceLevel:
    pct = normalize_confidence(confidence)
    if pct >= 80:
        return ConfidenceLevel.HIGH
    if pct >= 60:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def confidence_description(confidence: Optional[Number]) -> str:
    pct = normalize_confidence(confidence)
    if pct >= 90:
        return "Excellent"
    if pct >= 80:
        return "Good"
    if pct >= 60:
        return "Fair"
    if pct >= 40:
        return "Poor"
    return "Very Poor"


def is_low_confidence(confidence: Optional[Number], threshold: int = 60) -> bool:
    return normalize_confidence(confidence) < threshold


def mean_confidence(values) -> int:
    """Arithmetic mean of already-normalized percentages, 0 for no values."""
    values = list(values)
    if not values:
        return 0
    avg = sum(values) / len(values)
    return int(math.floor(max(0.0, min(avg, 100.0)) + 0.5))
