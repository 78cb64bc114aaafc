"""
Statistical Methods Package for Expression Diagnostics

This package provides the small set of deterministic numeric helpers shared
by the overlap and axis-gap services.
"""

from statistical.descriptive import (
    clamp,
    clamp01,
    is_finite_number,
    mean,
    median,
    pearson_correlation,
    mean_abs_diff,
    rmse,
    fraction_within,
    safe_ratio,
    jaccard,
)
from statistical.components import (
    broken_stick_expectations,
    count_significant_components_broken_stick,
    count_significant_components_kaiser,
)

__all__ = [
    # Scalars
    "clamp",
    "clamp01",
    "is_finite_number",
    # Sequence statistics
    "mean",
    "median",
    "pearson_correlation",
    "mean_abs_diff",
    "rmse",
    "fraction_within",
    "safe_ratio",
    "jaccard",
    # Component significance
    "broken_stick_expectations",
    "count_significant_components_broken_stick",
    "count_significant_components_kaiser",
]
