"""
Tests for expression_diagnostics/axis_gap/validator.py.

With strong_axis_threshold 0.25 and min_projection 0.3, three prototypes at
(0.24, 0.24) are entirely weak but project onto the diagonal at ~0.34, so a
diagonal candidate absorbs them completely.
"""

import math
from unittest.mock import MagicMock

import pytest

from expression_diagnostics.axis_gap import CandidateAxisValidator
from expression_diagnostics.errors import DiagnosticsConfigError
from expression_diagnostics.models import CandidateAxis

AXES = ["valence", "arousal"]
WEAK = [
    {"id": "p1", "weights": {"valence": 0.24, "arousal": 0.24}},
    {"id": "p2", "weights": {"valence": 0.24, "arousal": 0.24}},
    {"id": "p3", "weights": {"valence": 0.24, "arousal": 0.24}},
    {"id": "p4", "weights": {"valence": -0.1, "arousal": 0.0}},
]
STRONG = [
    {"id": "s1", "weights": {"valence": 0.3, "arousal": 0.3}},
    {"id": "s2", "weights": {"valence": 0.3, "arousal": 0.3}},
    {"id": "s3", "weights": {"valence": 0.3, "arousal": 0.3}},
]
DIAGONAL = {"candidateId": "pca_residual_0", "source": "pca_residual", "direction": {"valence": 2.0, "arousal": 2.0}}


@pytest.fixture
def validator(config):
    return CandidateAxisValidator(config)


class TestAddAxis:
    """A direction that absorbs the weak structure."""

    @pytest.fixture
    def validation(self, validator):
        [result] = validator.validate(WEAK, AXES, [DIAGONAL])
        return result

    def test_recommended(self, validation):
        assert validation.is_recommended
        assert validation.recommendation == "add_axis"
        assert validation.affected_prototypes == ["p1", "p2", "p3"]

    def test_rmse_reduction(self, validation):
        expected = 1 - math.sqrt(0.01 / 0.3556)
        assert validation.improvement.rmse_reduction == pytest.approx(expected, rel=1e-6)
        assert validation.improvement.combined_score == pytest.approx(0.5 * expected, rel=1e-6)

    def test_reductions_floored_at_zero(self, validation):
        assert validation.improvement.strong_axis_reduction == 0
        assert validation.improvement.co_usage_reduction == 0.0

    def test_direction_normalized(self, validation):
        assert validation.direction == pytest.approx({"valence": math.sqrt(0.5), "arousal": math.sqrt(0.5)})
        assert validation.validation_error is None

    def test_to_dict(self, validation):
        data = validation.to_dict()
        assert data["candidateId"] == "pca_residual_0"
        assert set(data["improvement"]) == {"rmseReduction", "strongAxisReduction", "coUsageReduction", "combinedScore"}


class TestOtherOutcomes:
    """Refine and insufficient-data outcomes."""

    def test_structural_gain_without_rmse_gain_refines(self, validator):
        [result] = validator.validate(STRONG, AXES, [DIAGONAL])
        assert result.recommendation == "refine_prototypes"
        assert not result.is_recommended
        assert result.improvement.strong_axis_reduction == 3
        assert result.improvement.co_usage_reduction == pytest.approx(1.0)
        assert result.improvement.combined_score == pytest.approx(0.3 * 0.5 + 0.2 * 1.0)
        assert "Also: strong axes -3, co-usage -100.0%." in result.rationale

    def test_high_rmse_bar_refines(self, config):
        config.candidate_axis_min_rmse_reduction = 0.9
        [result] = CandidateAxisValidator(config).validate(WEAK, AXES, [DIAGONAL])
        assert result.recommendation == "refine_prototypes"

    def test_too_few_affected(self, config):
        config.candidate_axis_min_affected_prototypes = 4
        [result] = CandidateAxisValidator(config).validate(WEAK, AXES, [DIAGONAL])
        assert result.recommendation == "insufficient_data"
        assert result.rationale.startswith("Only 3 prototype(s)")

    def test_direction_on_unused_axis(self, validator):
        candidate = {**DIAGONAL, "direction": {"engagement": 1.0}}
        [result] = validator.validate(WEAK, AXES, [candidate])
        assert result.affected_prototypes == []
        assert result.recommendation == "insufficient_data"


class TestInvalidInput:
    """Degenerate candidates and inputs."""

    @pytest.mark.parametrize("direction,error", [
        (None, "direction_null_or_invalid"),
        ({}, "direction_null_or_invalid"),
        ("diagonal", "direction_null_or_invalid"),
        ({"valence": 0.0}, "direction_near_zero_magnitude"),
        ({"valence": float("nan")}, "direction_near_zero_magnitude"),
        ({"x": float("nan"), "y": float("inf")}, "direction_near_zero_magnitude"),
        ({"valence": None, "arousal": "high"}, "direction_near_zero_magnitude"),
    ])
    def test_bad_direction(self, config, mock_logger, direction, error):
        validator = CandidateAxisValidator(config, logger=mock_logger)
        [result] = validator.validate(WEAK, AXES, [{"candidateId": "bad", "direction": direction}])
        assert result.validation_error == error
        assert result.recommendation == "insufficient_data"
        assert result.improvement.combined_score == 0
        assert result.direction == {}
        assert "bad rejected" in mock_logger.warning.call_args[0][0]

    def test_non_finite_components_are_dropped(self, validator):
        candidate = {**DIAGONAL, "direction": {"valence": 2.0, "arousal": 2.0, "threat": float("nan")}}
        [result] = validator.validate(WEAK, AXES, [candidate])
        assert result.validation_error is None
        assert result.direction == pytest.approx({"valence": math.sqrt(0.5), "arousal": math.sqrt(0.5)})
        assert result.recommendation == "add_axis"

    def test_too_few_prototypes(self, validator):
        assert validator.validate(WEAK[:1], AXES, [DIAGONAL]) == []

    def test_no_candidates(self, validator):
        assert validator.validate(WEAK, AXES, None) == []

    def test_accepts_candidate_objects_and_derives_axes(self, validator):
        candidate = CandidateAxis("coverage_gap_0", "coverage_gap", {"valence": 1.0, "arousal": 1.0}, 0.5)
        [result] = validator.validate(WEAK, None, [candidate])
        assert result.candidate_id == "coverage_gap_0"
        assert result.source == "coverage_gap"
        assert result.is_recommended


class TestConstruction:
    """Configuration is checked up front."""

    def test_config_required(self):
        with pytest.raises(DiagnosticsConfigError, match="CandidateAxisValidator: config is required"):
            CandidateAxisValidator(None)

    def test_missing_numeric_field(self, config, mock_logger):
        config.candidate_axis_min_affected_prototypes = None
        with pytest.raises(DiagnosticsConfigError, match="config.candidate_axis_min_affected_prototypes"):
            CandidateAxisValidator(config, logger=mock_logger)
        assert "must be a number" in mock_logger.error.call_args[0][0]

    def test_logger_without_warning_rejected(self, config):
        with pytest.raises(DiagnosticsConfigError, match="warning"):
            CandidateAxisValidator(config, logger=MagicMock(spec=["debug", "info", "error"]))
