"""
Gate implication between two prototypes' interval maps.

A implies B when every axis interval of A is contained in the matching
interval of B (a missing axis is unconstrained). An unsatisfiable side is the
empty set: it implies everything and is implied by nothing non-empty.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from expression_diagnostics.contracts import NORMALIZER_METHODS
from expression_diagnostics.dependencies import require_collaborator, validate_logger
from expression_diagnostics.models import (
    RELATION_DISJOINT,
    RELATION_EQUAL,
    RELATION_NARROWER,
    RELATION_OVERLAPPING,
    RELATION_WIDER,
    AxisEvidence,
    ImplicationResult,
    Interval,
)

logger = logging.getLogger(__name__)

CONFIDENCE_DETERMINISTIC = "deterministic"
CONFIDENCE_UNKNOWN = "unknown"


@dataclass(frozen=True)
class GateImplicationCheck:
    implies: bool
    is_vacuous: bool
    confidence: str
    parse_complete: bool
    parse_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "implies": self.implies,
            "isVacuous": self.is_vacuous,
            "confidence": self.confidence,
            "parseComplete": self.parse_complete,
            "parseErrors": list(self.parse_errors),
        }


def _relation(a_implies_b: bool, b_implies_a: bool) -> str:
    if a_implies_b and b_implies_a:
        return RELATION_EQUAL
    if a_implies_b:
        return RELATION_NARROWER
    if b_implies_a:
        return RELATION_WIDER
    return RELATION_OVERLAPPING


class GateImplicationEvaluator:
    """Decides A⇒B / B⇒A for interval maps and for raw gate expressions."""

    def __init__(self, gate_ast_normalizer: Any, logger: Optional[Any] = None):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._normalizer = require_collaborator(
            gate_ast_normalizer, "gate_ast_normalizer", NORMALIZER_METHODS
        )

    # ------------------------------------------------------------------
    # Interval maps
    # ------------------------------------------------------------------

    def evaluate(self, intervals_a: Any, intervals_b: Any) -> ImplicationResult:
        if not isinstance(intervals_a, Mapping) or not isinstance(intervals_b, Mapping):
            self._logger.warning(
                "GateImplicationEvaluator: expected interval mappings, got "
                f"{type(intervals_a).__name__} and {type(intervals_b).__name__}; "
                "treating both as unconstrained"
            )
            return ImplicationResult(True, True, RELATION_EQUAL)

        a = {axis: Interval.coerce(value) for axis, value in intervals_a.items()}
        b = {axis: Interval.coerce(value) for axis, value in intervals_b.items()}

        a_empty = any(i.unsatisfiable for i in a.values())
        b_empty = any(i.unsatisfiable for i in b.values())
        if a_empty or b_empty:
            result = self._vacuous_result(a_empty, b_empty)
            self._logger.debug(
                f"GateImplicationEvaluator: unsatisfiable gate set ({result.vacuous_reason}), "
                "implication holds vacuously"
            )
            self._log_summary(result)
            return result

        evidence: List[AxisEvidence] = []
        counter_example_axes: List[str] = []
        a_implies_b = True
        b_implies_a = True
        disjoint = False
        for axis in sorted(set(a) | set(b)):
            interval_a = a.get(axis, Interval.unbounded())
            interval_b = b.get(axis, Interval.unbounded())
            a_subset_b = interval_a.is_subset_of(interval_b)
            b_subset_a = interval_b.is_subset_of(interval_a)
            evidence.append(AxisEvidence(axis, interval_a, interval_b, a_subset_b, b_subset_a))
            if not a_subset_b:
                a_implies_b = False
                counter_example_axes.append(axis)
            if not b_subset_a:
                b_implies_a = False
            if interval_a.is_disjoint_from(interval_b):
                disjoint = True

        if disjoint:
            result = ImplicationResult(
                False, False, RELATION_DISJOINT,
                counter_example_axes=counter_example_axes, evidence=evidence,
            )
        else:
            result = ImplicationResult(
                a_implies_b, b_implies_a, _relation(a_implies_b, b_implies_a),
                counter_example_axes=counter_example_axes, evidence=evidence,
            )
        self._log_summary(result)
        return result

    @staticmethod
    def _vacuous_result(a_empty: bool, b_empty: bool) -> ImplicationResult:
        if a_empty and b_empty:
            return ImplicationResult(True, True, RELATION_EQUAL, True, "both_unsatisfiable")
        if a_empty:
            return ImplicationResult(True, False, RELATION_NARROWER, True, "a_unsatisfiable")
        return ImplicationResult(False, True, RELATION_WIDER, True, "b_unsatisfiable")

    def _log_summary(self, result: ImplicationResult) -> None:
        self._logger.debug(
            f"GateImplicationEvaluator: A→B={str(result.a_implies_b).lower()}, "
            f"B→A={str(result.b_implies_a).lower()}, relation={result.relation}, "
            f"counterExampleAxes={result.counter_example_axes}"
        )

    # ------------------------------------------------------------------
    # Gate expressions
    # ------------------------------------------------------------------

    def check_implication(self, gate_a: Any, gate_b: Any) -> GateImplicationCheck:
        parsed_a = self._normalizer.parse(gate_a)
        parsed_b = self._normalizer.parse(gate_b)
        errors = list(parsed_a.errors or []) + list(parsed_b.errors or [])
        if not parsed_a.parse_complete or not parsed_b.parse_complete:
            return GateImplicationCheck(
                implies=False,
                is_vacuous=False,
                confidence=CONFIDENCE_UNKNOWN,
                parse_complete=False,
                parse_errors=errors,
            )
        outcome = self._normalizer.check_implication(parsed_a.ast, parsed_b.ast)
        return GateImplicationCheck(
            implies=bool(outcome.implies),
            is_vacuous=bool(outcome.is_vacuous),
            confidence=CONFIDENCE_DETERMINISTIC,
            parse_complete=True,
            parse_errors=[],
        )

    def describe_gate(self, gate: Any) -> str:
        parsed = self._normalizer.parse(gate)
        if not parsed.parse_complete:
            return f"[Unparseable gate: {', '.join(parsed.errors or [])}]"
        return self._normalizer.to_string(parsed.ast)
