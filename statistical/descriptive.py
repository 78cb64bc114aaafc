"""
Descriptive statistics shared by the diagnostics services.

All helpers accept plain Python sequences and return plain floats so the
results can be serialized into report dictionaries without conversion.

Degenerate inputs follow one convention throughout:
    - correlation of fewer than two points, or of a constant series, is NaN
    - mean of an empty sequence is NaN
    - median of an empty sequence is 0.0
"""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence

import numpy as np


# =============================================================================
# Scalars
# =============================================================================

def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def clamp01(value: float) -> float:
    """Clamp into [0, 1]; non-finite values collapse to 0."""
    if value is None or not math.isfinite(value):
        return 0.0
    return clamp(float(value), 0.0, 1.0)


def is_finite_number(value) -> bool:
    """True for int/float values that are finite (bool excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


# =============================================================================
# Sequence statistics
# =============================================================================

def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return float("nan")
    return float(np.mean(np.asarray(values, dtype=float)))


def median(values: Iterable[float]) -> float:
    """Median of the finite values; 0.0 when nothing remains."""
    data = [float(v) for v in values if is_finite_number(v)]
    if not data:
        return 0.0
    return float(np.median(np.asarray(data, dtype=float)))


def pearson_correlation(xs: Sequence[float], ys: Sequence[float]) -> float:
    """
    Pearson product-moment correlation of two paired series.

    Returns NaN when fewer than two pairs exist or either series has zero
    variance. The result is clamped into [-1, 1] to absorb rounding.
    """
    if len(xs) != len(ys):
        raise ValueError(f"Series length mismatch: {len(xs)} != {len(ys)}")
    if len(xs) < 2:
        return float("nan")

    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    dx = x - x.mean()
    dy = y - y.mean()
    denom = math.sqrt(float(np.dot(dx, dx)) * float(np.dot(dy, dy)))
    if denom == 0.0 or not math.isfinite(denom):
        return float("nan")
    r = float(np.dot(dx, dy)) / denom
    return clamp(r, -1.0, 1.0)


def mean_abs_diff(xs: Sequence[float], ys: Sequence[float]) -> float:
    if len(xs) == 0:
        return float("nan")
    diff = np.asarray(xs, dtype=float) - np.asarray(ys, dtype=float)
    return float(np.mean(np.abs(diff)))


def rmse(xs: Sequence[float], ys: Sequence[float]) -> float:
    if len(xs) == 0:
        return float("nan")
    diff = np.asarray(xs, dtype=float) - np.asarray(ys, dtype=float)
    return float(np.sqrt(np.mean(diff * diff)))


def fraction_within(
    xs: Sequence[float], ys: Sequence[float], epsilon: float
) -> float:
    """Fraction of pairs whose absolute difference is <= epsilon."""
    if len(xs) == 0:
        return float("nan")
    diff = np.abs(np.asarray(xs, dtype=float) - np.asarray(ys, dtype=float))
    return float(np.mean(diff <= epsilon))


def safe_ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    if not denominator:
        return default
    return numerator / denominator


def jaccard(a: Iterable[str], b: Iterable[str], empty_value: Optional[float] = 1.0) -> float:
    """Jaccard similarity of two sets; ``empty_value`` when both are empty."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return empty_value
    return len(set_a & set_b) / len(union)
