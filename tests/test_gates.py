"""
Tests for gate parsing: constraints, interval extraction and the gate AST.
"""

import pytest

from expression_diagnostics.gates import (
    Comparison,
    Conjunction,
    Disjunction,
    GateConstraint,
    GateConstraintExtractor,
    PARSE_COMPLETE,
    PARSE_FAILED,
    PARSE_PARTIAL,
    TokenKind,
    parse_gate_ast,
    tokenize,
)
from expression_diagnostics.models import Interval


class TestGateConstraint:
    """Single-axis comparisons."""

    def test_parse(self):
        c = GateConstraint.parse("threat <= 0.40")
        assert (c.axis, c.operator, c.value) == ("threat", "<=", 0.4)

    def test_parse_negative_value(self):
        assert GateConstraint.parse("valence >= -0.25").value == -0.25

    @pytest.mark.parametrize("gate,value", [
        ("valence >= .5", 0.5),
        ("valence >= +0.3", 0.3),
        ("threat <= 1e-1", 0.1),
        ("threat < -2.5E-1", -0.25),
        ("arousal > 3.", 3.0),
    ])
    def test_parse_number_forms(self, gate, value):
        assert GateConstraint.parse(gate).value == pytest.approx(value)

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            GateConstraint.parse("threat is low")

    def test_parse_rejects_non_string(self):
        with pytest.raises(ValueError):
            GateConstraint.parse(0.5)

    def test_strict_operators_are_tightened(self):
        gt = GateConstraint("x", ">", 0.5).to_interval(strict_epsilon=0.01)
        lt = GateConstraint("x", "<", 0.5).to_interval(strict_epsilon=0.01)
        assert gt.lower == pytest.approx(0.51)
        assert lt.upper == pytest.approx(0.49)

    def test_equality_is_point_interval(self):
        assert GateConstraint("x", "==", 0.3).to_interval() == Interval(0.3, 0.3)

    def test_is_satisfied_by(self):
        c = GateConstraint.parse("arousal > 0.2")
        assert c.is_satisfied_by(0.3)
        assert not c.is_satisfied_by(0.2)

    def test_str(self):
        assert str(GateConstraint.parse("threat <= 0.40")) == "threat <= 0.4"


class TestInterval:
    """Interval algebra."""

    def test_intersect_narrows(self):
        result = Interval(0.2, None).intersect(Interval(None, 0.6))
        assert result == Interval(0.2, 0.6)

    def test_intersect_crossing_bounds_is_empty(self):
        assert Interval(0.6, None).intersect(Interval(None, 0.4)).unsatisfiable

    def test_empty_is_subset_of_everything(self):
        assert Interval.empty().is_subset_of(Interval(0.0, 0.1))

    def test_nothing_is_subset_of_empty(self):
        assert not Interval(0.0, 0.1).is_subset_of(Interval.empty())

    def test_touching_intervals_are_not_disjoint(self):
        assert not Interval(0.0, 0.5).is_disjoint_from(Interval(0.5, 1.0))
        assert Interval(0.0, 0.4).is_disjoint_from(Interval(0.5, 1.0))

    def test_coerce_mapping(self):
        assert Interval.coerce({"lower": 0.1, "upper": None}) == Interval(0.1, None)
        assert Interval.coerce(None).is_unconstrained


class TestGateConstraintExtractor:
    """Gate list to per-axis intervals."""

    def test_empty_gate_list(self, extractor):
        result = extractor.extract([])
        assert result.intervals == {}
        assert result.parse_status == PARSE_COMPLETE

    def test_same_axis_gates_intersect(self, extractor):
        result = extractor.extract(["valence >= 0.2", "valence <= 0.8"])
        assert result.intervals["valence"] == Interval(0.2, 0.8)

    def test_short_and_signed_numbers_parse_completely(self, extractor):
        result = extractor.extract(["valence >= .5", "valence <= +0.9", "threat <= 1e-1"])
        assert result.parse_status == PARSE_COMPLETE
        assert result.intervals["valence"] == Interval(0.5, 0.9)
        assert result.intervals["threat"] == Interval(None, 0.1)

    def test_partial_parse(self, extractor):
        result = extractor.extract(["valence >= 0.2", "mood is sunny"])
        assert result.parse_status == PARSE_PARTIAL
        assert result.unparsed_gates == ["mood is sunny"]

    def test_failed_parse(self, extractor):
        assert extractor.extract(["???"]).parse_status == PARSE_FAILED

    def test_contradiction_is_unsatisfiable(self, extractor):
        result = extractor.extract(["threat >= 0.7", "threat <= 0.3"])
        assert result.has_unsatisfiable

    def test_to_dict(self, extractor):
        data = extractor.extract(["threat <= 0.4"]).to_dict()
        assert data["parseStatus"] == "complete"
        assert data["intervals"]["threat"] == {"lower": None, "upper": 0.4, "unsatisfiable": False}


class TestGateAST:
    """Tokenizer and parser."""

    def test_tokenize(self):
        kinds = [t.kind for t in tokenize("valence >= 0.3 AND threat < 0.4")]
        assert kinds == [
            TokenKind.AXIS, TokenKind.OP, TokenKind.NUMBER,
            TokenKind.AND,
            TokenKind.AXIS, TokenKind.OP, TokenKind.NUMBER,
            TokenKind.EOF,
        ]

    def test_tokenize_symbolic_operators(self):
        kinds = [t.kind for t in tokenize("a > 0 && b < 1 || c == 0")]
        assert TokenKind.AND in kinds and TokenKind.OR in kinds

    def test_tokenize_number_forms(self):
        tokens = tokenize("a >= .5 AND b <= +0.3 AND c < 1e-1")
        numbers = [t.value for t in tokens if t.kind is TokenKind.NUMBER]
        assert numbers == [".5", "+0.3", "1e-1"]

    def test_tokenize_rejects_unknown_character(self):
        with pytest.raises(ValueError):
            tokenize("valence >= 0.3 $")

    def test_parse_comparison(self):
        ast = parse_gate_ast("valence >= 0.3")
        assert isinstance(ast, Comparison)
        assert ast.constraint.axis == "valence"

    def test_parse_conjunction_flattens_parentheses(self):
        ast = parse_gate_ast("a >= 0.1 AND (b >= 0.2 AND c >= 0.3)")
        assert isinstance(ast, Conjunction)
        assert len(ast.operands) == 3

    def test_parse_disjunction(self):
        ast = parse_gate_ast("a >= 0.1 OR b >= 0.2")
        assert isinstance(ast, Disjunction)
        assert ast.axes() == frozenset({"a", "b"})

    def test_canonical_form(self):
        ast = parse_gate_ast("valence >= 0.30 AND (threat < 0.40)")
        assert ast.to_canonical() == "valence >= 0.3 AND threat < 0.4"

    def test_parse_errors(self):
        for bad in ("", "valence >=", "(a >= 0.1", "a >= 0.1 b"):
            with pytest.raises(ValueError):
                parse_gate_ast(bad)


class TestGateASTNormalizer:
    """Parsing gate lists and AST-level implication."""

    def test_list_is_conjunction(self, normalizer):
        result = normalizer.parse(["a >= 0.2", "b <= 0.5"])
        assert result.parse_complete
        assert isinstance(result.ast, Conjunction)

    def test_empty_list_is_always_true(self, normalizer):
        result = normalizer.parse([])
        assert result.parse_complete
        assert result.ast is None
        assert normalizer.to_string(result.ast) == "true"

    def test_disjunction_is_rejected(self, normalizer):
        result = normalizer.parse("a >= 0.2 OR b >= 0.2")
        assert not result.parse_complete
        assert "disjunction" in result.errors[0]

    def test_unsupported_type(self, normalizer):
        result = normalizer.parse(42)
        assert not result.parse_complete

    def test_narrower_implies_wider(self, normalizer):
        narrow = normalizer.parse("a >= 0.5").ast
        wide = normalizer.parse("a >= 0.2").ast
        assert normalizer.check_implication(narrow, wide).implies
        assert not normalizer.check_implication(wide, narrow).implies

    def test_unsatisfiable_antecedent_is_vacuous(self, normalizer):
        empty = normalizer.parse(["a >= 0.7", "a <= 0.3"]).ast
        other = normalizer.parse("b >= 0.9").ast
        result = normalizer.check_implication(empty, other)
        assert result.implies and result.is_vacuous

    def test_unconstrained_consequent_is_implied(self, normalizer):
        a = normalizer.parse("a >= 0.5").ast
        assert normalizer.check_implication(a, None).implies
