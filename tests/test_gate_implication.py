"""
Tests for expression_diagnostics/overlap/implication.py.
"""

import copy
from unittest.mock import MagicMock

import pytest

from expression_diagnostics.errors import DiagnosticsConfigError
from expression_diagnostics.models import Interval
from expression_diagnostics.overlap import GateImplicationEvaluator


class TestConstruction:
    """Collaborator validation."""

    def test_normalizer_required(self):
        with pytest.raises(DiagnosticsConfigError):
            GateImplicationEvaluator(None)

    def test_normalizer_methods_required(self):
        with pytest.raises(DiagnosticsConfigError, match="to_string"):
            GateImplicationEvaluator(MagicMock(spec=["parse", "check_implication"]))

    def test_logger_methods_required(self, normalizer):
        with pytest.raises(DiagnosticsConfigError, match="logger"):
            GateImplicationEvaluator(normalizer, logger=MagicMock(spec=["info"]))


class TestIntervalImplication:
    """evaluate() over interval maps."""

    def test_identical_gates_are_equal(self, implication_evaluator):
        gates = {"valence": Interval(0.2, None)}
        result = implication_evaluator.evaluate(gates, dict(gates))
        assert result.a_implies_b and result.b_implies_a
        assert result.relation == "equal"
        assert not result.is_vacuous

    def test_narrower(self, implication_evaluator):
        result = implication_evaluator.evaluate(
            {"valence": Interval(0.5, None)},
            {"valence": Interval(0.2, None)},
        )
        assert result.relation == "narrower"
        assert result.a_implies_b and not result.b_implies_a

    def test_extra_axis_on_a_is_narrower(self, implication_evaluator):
        result = implication_evaluator.evaluate(
            {"valence": Interval(0.2, None), "threat": Interval(None, 0.3)},
            {"valence": Interval(0.2, None)},
        )
        assert result.relation == "narrower"
        assert result.counter_example_axes == []

    def test_wider_records_counter_example_axes(self, implication_evaluator):
        result = implication_evaluator.evaluate(
            {"valence": Interval(0.2, None)},
            {"valence": Interval(0.5, None)},
        )
        assert result.relation == "wider"
        assert result.counter_example_axes == ["valence"]

    def test_disjoint(self, implication_evaluator):
        result = implication_evaluator.evaluate(
            {"threat": Interval(0.6, None)},
            {"threat": Interval(None, 0.4)},
        )
        assert result.relation == "disjoint"
        assert not result.a_implies_b and not result.b_implies_a

    def test_overlapping(self, implication_evaluator):
        result = implication_evaluator.evaluate(
            {"valence": Interval(0.2, 0.6)},
            {"valence": Interval(0.4, 0.8)},
        )
        assert result.relation == "overlapping"

    def test_unsatisfiable_a_is_vacuous(self, implication_evaluator):
        result = implication_evaluator.evaluate(
            {"valence": Interval.empty(0.7, 0.3)},
            {"valence": Interval(0.2, None)},
        )
        assert result.is_vacuous
        assert result.vacuous_reason == "a_unsatisfiable"
        assert result.a_implies_b and not result.b_implies_a

    def test_both_unsatisfiable(self, implication_evaluator):
        empty = {"x": Interval.empty()}
        result = implication_evaluator.evaluate(empty, empty)
        assert result.relation == "equal"
        assert result.vacuous_reason == "both_unsatisfiable"

    def test_unsatisfiable_b_is_vacuous(self, implication_evaluator):
        result = implication_evaluator.evaluate(
            {"valence": Interval(0.2, None)},
            {"valence": Interval.empty(0.7, 0.3)},
        )
        assert result.is_vacuous
        assert result.vacuous_reason == "b_unsatisfiable"
        assert result.relation == "wider"
        assert result.b_implies_a and not result.a_implies_b

    @pytest.mark.parametrize("a,b", [
        ({"threat": Interval(0.6, None)}, {"threat": Interval.empty()}),
        ({"threat": Interval.empty()}, {"threat": Interval(0.6, None)}),
        ({"threat": Interval.empty()}, {"valence": Interval(None, 0.2)}),
    ])
    def test_unsatisfiable_side_is_never_disjoint(self, implication_evaluator, a, b):
        result = implication_evaluator.evaluate(a, b)
        assert result.is_vacuous
        assert result.relation in ("narrower", "wider", "equal")

    def test_accepts_interval_records(self, implication_evaluator):
        result = implication_evaluator.evaluate(
            {"valence": {"lower": 0.5, "upper": None}},
            {"valence": {"lower": 0.2, "upper": None}},
        )
        assert result.relation == "narrower"

    def test_non_mapping_input_warns(self, normalizer, mock_logger):
        evaluator = GateImplicationEvaluator(normalizer, logger=mock_logger)
        result = evaluator.evaluate(None, {})
        assert result.relation == "equal"
        mock_logger.warning.assert_called_once()

    def test_evidence_serializes(self, implication_evaluator):
        data = implication_evaluator.evaluate(
            {"valence": Interval(0.5, None)}, {"valence": Interval(0.2, None)}
        ).to_dict()
        assert data["A_implies_B"] is True
        assert data["evidence"][0]["axis"] == "valence"
        assert data["evidence"][0]["A_subset_B"] is True


class TestExpressionImplication:
    """check_implication() over raw gate strings."""

    def test_deterministic(self, implication_evaluator):
        check = implication_evaluator.check_implication("a >= 0.5", "a >= 0.2")
        assert check.implies
        assert check.confidence == "deterministic"
        assert check.parse_complete

    def test_parse_failure_is_unknown(self, implication_evaluator):
        check = implication_evaluator.check_implication("a >= 0.5 OR b >= 0.5", "a >= 0.2")
        assert not check.implies
        assert check.confidence == "unknown"
        assert check.parse_errors

    def test_describe_gate(self, implication_evaluator):
        assert implication_evaluator.describe_gate(["a >= 0.50", "b < 0.2"]) == "a >= 0.5 AND b < 0.2"
        assert implication_evaluator.describe_gate("a ~ 1").startswith("[Unparseable gate:")


class TestInputsUntouched:
    """evaluate() leaves its interval maps as they were."""

    def test_interval_maps(self, implication_evaluator):
        a = {"valence": Interval(0.5, None), "threat": Interval(None, 0.3)}
        b = {"valence": Interval(0.2, 0.9)}
        before = (copy.deepcopy(a), copy.deepcopy(b))
        implication_evaluator.evaluate(a, b)
        assert (a, b) == before

    def test_record_maps(self, implication_evaluator):
        a = {"valence": {"lower": 0.5, "upper": None}}
        b = {"valence": {"lower": 0.2, "upper": None}, "arousal": {"lower": None, "upper": 0.4}}
        before = (copy.deepcopy(a), copy.deepcopy(b))
        implication_evaluator.evaluate(a, b)
        assert (a, b) == before

    def test_swapping_sides_flips_direction(self, implication_evaluator):
        a = {"threat": Interval(0.1, 0.3)}
        b = {"threat": Interval(0.0, 0.5)}
        forward = implication_evaluator.evaluate(a, b)
        backward = implication_evaluator.evaluate(b, a)
        assert (forward.a_implies_b, forward.b_implies_a, forward.relation) == (True, False, "narrower")
        assert (backward.a_implies_b, backward.b_implies_a, backward.relation) == (False, True, "wider")
