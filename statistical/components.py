"""
Component significance rules for eigen-spectra.

The broken-stick model compares each explained-variance fraction against the
expected share of the k-th longest piece when a unit stick is broken at
random into p pieces:

    b_k = (1/p) * sum_{i=k}^{p} 1/i

A component is significant while its observed share exceeds b_k. Counting
stops at the first component that fails.
"""

from __future__ import annotations

from typing import List, Sequence


def broken_stick_expectations(p: int) -> List[float]:
    """Expected variance share for each of ``p`` components."""
    if p <= 0:
        return []
    return [sum(1.0 / i for i in range(k, p + 1)) / p for k in range(1, p + 1)]


def count_significant_components_broken_stick(
    eigenvalues: Sequence[float], total_variance: float
) -> int:
    if not eigenvalues or total_variance <= 0:
        return 0
    expected = broken_stick_expectations(len(eigenvalues))
    count = 0
    for value, threshold in zip(eigenvalues, expected):
        if value / total_variance > threshold:
            count += 1
        else:
            break
    return count


def count_significant_components_kaiser(
    eigenvalues: Sequence[float], threshold: float = 1.0
) -> int:
    """Kaiser criterion: eigenvalues at or above ``threshold``."""
    return sum(1 for value in eigenvalues if value >= threshold)
