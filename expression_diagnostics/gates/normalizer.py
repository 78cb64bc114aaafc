"""
Gate AST normalizer.

Parses gate expressions (a single string or a list of strings, read as a
conjunction) and decides implication between two parsed gates by interval
containment on every axis the consequent constrains.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from expression_diagnostics.dependencies import validate_logger
from expression_diagnostics.gates.constraint import DEFAULT_STRICT_EPSILON
from expression_diagnostics.gates.gate_ast import (
    Conjunction,
    GateExpr,
    contains_disjunction,
    parse_gate_ast,
)
from expression_diagnostics.models import Interval

logger = logging.getLogger(__name__)


@dataclass
class GateParseResult:
    ast: Optional[GateExpr]
    parse_complete: bool
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ASTImplication:
    implies: bool
    is_vacuous: bool = False


class GateASTNormalizer:
    def __init__(self, strict_epsilon: float = DEFAULT_STRICT_EPSILON, logger: Optional[Any] = None):
        self._strict_epsilon = strict_epsilon
        self._logger = validate_logger(logger, logging.getLogger(__name__))

    def parse(self, gate: Any) -> GateParseResult:
        if isinstance(gate, str):
            sources = [gate]
        elif isinstance(gate, (list, tuple)) and all(isinstance(g, str) for g in gate):
            sources = list(gate)
        else:
            return GateParseResult(None, False, [f"Unsupported gate type: {type(gate).__name__}"])

        operands: List[GateExpr] = []
        errors: List[str] = []
        for source in sources:
            try:
                expr = parse_gate_ast(source)
            except ValueError as exc:
                errors.append(f"{source!r}: {exc}")
                continue
            if contains_disjunction(expr):
                errors.append(f"{source!r}: disjunction is not supported")
                continue
            operands.extend(expr.operands if isinstance(expr, Conjunction) else (expr,))

        if errors:
            self._logger.debug(f"GateASTNormalizer: parse errors {errors}")
            return GateParseResult(None, False, errors)
        if not operands:
            # An empty gate list is the always-true gate
            return GateParseResult(None, True, [])
        ast = operands[0] if len(operands) == 1 else Conjunction(tuple(operands))
        return GateParseResult(ast, True, [])

    def to_intervals(self, ast: Optional[GateExpr]) -> Dict[str, Interval]:
        """Per-axis intervals of a conjunctive gate; ``None`` is unconstrained."""
        intervals: Dict[str, Interval] = {}
        if ast is None:
            return intervals
        for constraint in ast.comparisons():
            interval = constraint.to_interval(self._strict_epsilon)
            existing = intervals.get(constraint.axis)
            intervals[constraint.axis] = interval if existing is None else existing.intersect(interval)
        return intervals

    def check_implication(self, ast_a: Optional[GateExpr], ast_b: Optional[GateExpr]) -> ASTImplication:
        """Does every state passing ``ast_a`` also pass ``ast_b``?"""
        intervals_a = self.to_intervals(ast_a)
        intervals_b = self.to_intervals(ast_b)
        if any(i.unsatisfiable for i in intervals_a.values()):
            return ASTImplication(implies=True, is_vacuous=True)
        for axis, interval_b in intervals_b.items():
            interval_a = intervals_a.get(axis, Interval.unbounded())
            if not interval_a.is_subset_of(interval_b):
                return ASTImplication(implies=False)
        return ASTImplication(implies=True)

    def to_string(self, ast: Optional[GateExpr]) -> str:
        if ast is None:
            return "true"
        return ast.to_canonical()
