"""
Tests for the statistical helpers.
"""

import math

import pytest

from statistical import (
    broken_stick_expectations,
    clamp01,
    count_significant_components_broken_stick,
    count_significant_components_kaiser,
    fraction_within,
    is_finite_number,
    jaccard,
    mean_abs_diff,
    median,
    pearson_correlation,
    rmse,
    safe_ratio,
)


class TestScalars:
    """Scalar helpers."""

    def test_clamp01_bounds(self):
        assert clamp01(-0.5) == 0.0
        assert clamp01(1.5) == 1.0
        assert clamp01(0.25) == 0.25

    def test_clamp01_non_finite_is_zero(self):
        assert clamp01(float("nan")) == 0.0
        assert clamp01(float("inf")) == 0.0

    def test_is_finite_number_excludes_bool_and_strings(self):
        assert is_finite_number(1)
        assert is_finite_number(0.5)
        assert not is_finite_number(True)
        assert not is_finite_number("0.5")
        assert not is_finite_number(float("nan"))

    def test_safe_ratio_zero_denominator(self):
        assert safe_ratio(3, 0) == 0.0
        assert safe_ratio(3, 0, default=float("inf")) == float("inf")
        assert safe_ratio(3, 4) == 0.75


class TestSequenceStatistics:
    """Correlation and error measures."""

    def test_perfect_positive_correlation(self):
        assert pearson_correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)

    def test_perfect_negative_correlation(self):
        assert pearson_correlation([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)

    def test_correlation_of_constant_series_is_nan(self):
        assert math.isnan(pearson_correlation([1, 1, 1], [1, 2, 3]))

    def test_correlation_needs_two_points(self):
        assert math.isnan(pearson_correlation([1], [1]))

    def test_correlation_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            pearson_correlation([1, 2], [1])

    def test_mean_abs_diff_and_rmse(self):
        assert mean_abs_diff([0, 0], [1, 3]) == pytest.approx(2.0)
        assert rmse([0, 0], [3, 4]) == pytest.approx(math.sqrt(12.5))

    def test_empty_series_are_nan(self):
        assert math.isnan(mean_abs_diff([], []))
        assert math.isnan(rmse([], []))
        assert math.isnan(fraction_within([], [], 0.1))

    def test_fraction_within(self):
        assert fraction_within([0.0, 0.5, 1.0], [0.05, 0.5, 0.5], 0.1) == pytest.approx(2 / 3)

    def test_median_ignores_non_finite(self):
        assert median([1.0, float("nan"), 3.0]) == 2.0
        assert median([]) == 0.0

    def test_jaccard(self):
        assert jaccard({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert jaccard(set(), set()) == 1.0
        assert jaccard(set(), set(), empty_value=0.0) == 0.0


class TestComponentSignificance:
    """Broken-stick and Kaiser rules."""

    def test_broken_stick_expectations_sum_to_one(self):
        expected = broken_stick_expectations(4)
        assert len(expected) == 4
        assert sum(expected) == pytest.approx(1.0)
        assert expected == sorted(expected, reverse=True)

    def test_broken_stick_empty(self):
        assert broken_stick_expectations(0) == []

    def test_broken_stick_counts_until_first_failure(self):
        # shares 0.7, 0.2, 0.1 against 0.611, 0.278, 0.111
        assert count_significant_components_broken_stick([7.0, 2.0, 1.0], 10.0) == 1

    def test_broken_stick_zero_total(self):
        assert count_significant_components_broken_stick([1.0, 1.0], 0.0) == 0

    def test_kaiser(self):
        assert count_significant_components_kaiser([2.5, 1.0, 0.4]) == 2
        assert count_significant_components_kaiser([0.9, 0.4], threshold=0.5) == 1
