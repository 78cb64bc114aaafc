"""Gate expression parsing and interval extraction."""

from expression_diagnostics.gates.constraint import GateConstraint, GATE_PATTERN
from expression_diagnostics.gates.extractor import (
    GateConstraintExtractor,
    GateExtractionResult,
    PARSE_COMPLETE,
    PARSE_PARTIAL,
    PARSE_FAILED,
)
from expression_diagnostics.gates.gate_ast import (
    Comparison,
    Conjunction,
    Disjunction,
    TokenKind,
    parse_gate_ast,
    tokenize,
)
from expression_diagnostics.gates.normalizer import (
    ASTImplication,
    GateASTNormalizer,
    GateParseResult,
)

__all__ = [
    "GateConstraint",
    "GATE_PATTERN",
    "GateConstraintExtractor",
    "GateExtractionResult",
    "PARSE_COMPLETE",
    "PARSE_PARTIAL",
    "PARSE_FAILED",
    "Comparison",
    "Conjunction",
    "Disjunction",
    "TokenKind",
    "parse_gate_ast",
    "tokenize",
    "ASTImplication",
    "GateASTNormalizer",
    "GateParseResult",
]
