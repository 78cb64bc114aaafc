"""
AST for gate expressions.

Grammar (lowest precedence first):

    expr        := disjunction
    disjunction := conjunction (("OR" | "||") conjunction)*
    conjunction := primary (("AND" | "&&") primary)*
    primary     := comparison | "(" expr ")"
    comparison  := AXIS OP NUMBER          OP in >=, >, <=, <, ==

Usage:
    from expression_diagnostics.gates.gate_ast import parse_gate_ast

    ast = parse_gate_ast("valence >= 0.3 AND (threat < 0.4)")
    ast.to_canonical()   # 'valence >= 0.3 AND threat < 0.4'
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import FrozenSet, List, Tuple

from expression_diagnostics.gates.constraint import GateConstraint


# ---------------------------------------------------------------------------
# AST Node Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GateExpr(ABC):
    """Base class for gate expressions."""

    @abstractmethod
    def to_canonical(self) -> str:
        ...

    @abstractmethod
    def axes(self) -> FrozenSet[str]:
        ...

    @abstractmethod
    def comparisons(self) -> Tuple[GateConstraint, ...]:
        """Every comparison leaf, left to right."""
        ...


@dataclass(frozen=True)
class Comparison(GateExpr):
    constraint: GateConstraint

    def to_canonical(self) -> str:
        return str(self.constraint)

    def axes(self) -> FrozenSet[str]:
        return frozenset({self.constraint.axis})

    def comparisons(self) -> Tuple[GateConstraint, ...]:
        return (self.constraint,)


@dataclass(frozen=True)
class Conjunction(GateExpr):
    operands: Tuple[GateExpr, ...]

    def __post_init__(self):
        if len(self.operands) < 2:
            raise ValueError("Conjunction requires at least 2 operands")

    def to_canonical(self) -> str:
        parts = []
        for op in self.operands:
            s = op.to_canonical()
            if isinstance(op, Disjunction):
                s = f"({s})"
            parts.append(s)
        return " AND ".join(parts)

    def axes(self) -> FrozenSet[str]:
        result: FrozenSet[str] = frozenset()
        for op in self.operands:
            result = result | op.axes()
        return result

    def comparisons(self) -> Tuple[GateConstraint, ...]:
        return tuple(c for op in self.operands for c in op.comparisons())


@dataclass(frozen=True)
class Disjunction(GateExpr):
    operands: Tuple[GateExpr, ...]

    def __post_init__(self):
        if len(self.operands) < 2:
            raise ValueError("Disjunction requires at least 2 operands")

    def to_canonical(self) -> str:
        return " OR ".join(op.to_canonical() for op in self.operands)

    def axes(self) -> FrozenSet[str]:
        result: FrozenSet[str] = frozenset()
        for op in self.operands:
            result = result | op.axes()
        return result

    def comparisons(self) -> Tuple[GateConstraint, ...]:
        return tuple(c for op in self.operands for c in op.comparisons())


def contains_disjunction(expr: GateExpr) -> bool:
    if isinstance(expr, Disjunction):
        return True
    if isinstance(expr, Conjunction):
        return any(contains_disjunction(op) for op in expr.operands)
    return False


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

class TokenKind(Enum):
    AXIS = auto()
    OP = auto()
    NUMBER = auto()
    AND = auto()
    OR = auto()
    LPAREN = auto()
    RPAREN = auto()
    EOF = auto()


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    pos: int


_TOKEN_PATTERNS = [
    (r"&&", TokenKind.AND),
    (r"\|\|", TokenKind.OR),
    (r">=|<=|==|>|<", TokenKind.OP),
    (r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?", TokenKind.NUMBER),
    (r"[A-Za-z_][A-Za-z0-9_]*", TokenKind.AXIS),
    (r"\(", TokenKind.LPAREN),
    (r"\)", TokenKind.RPAREN),
    (r"\s+", None),  # Skip whitespace
]

_COMPILED_PATTERNS = [(re.compile(p), k) for p, k in _TOKEN_PATTERNS]

_KEYWORDS = {"AND": TokenKind.AND, "OR": TokenKind.OR}


def tokenize(s: str) -> List[Token]:
    """Tokenize a gate expression."""
    tokens: List[Token] = []
    pos = 0
    while pos < len(s):
        matched = False
        for pattern, kind in _COMPILED_PATTERNS:
            m = pattern.match(s, pos)
            if m:
                if kind is TokenKind.AXIS and m.group().upper() in _KEYWORDS:
                    kind = _KEYWORDS[m.group().upper()]
                if kind is not None:
                    tokens.append(Token(kind, m.group(), pos))
                pos = m.end()
                matched = True
                break
        if not matched:
            raise ValueError(f"Unexpected character at position {pos}: {s[pos]!r}")
    tokens.append(Token(TokenKind.EOF, "", pos))
    return tokens


# ---------------------------------------------------------------------------
# Recursive Descent Parser
# ---------------------------------------------------------------------------

class Parser:
    """Recursive descent parser for gate expressions."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0

    def current(self) -> Token:
        return self.tokens[self.pos]

    def consume(self, kind: TokenKind) -> Token:
        tok = self.current()
        if tok.kind != kind:
            raise ValueError(f"Expected {kind.name}, got {tok.kind.name} at position {tok.pos}")
        self.pos += 1
        return tok

    def parse(self) -> GateExpr:
        if self.current().kind == TokenKind.EOF:
            raise ValueError("Empty gate expression")
        expr = self.parse_or()
        if self.current().kind != TokenKind.EOF:
            raise ValueError(f"Unexpected token at position {self.current().pos}")
        return expr

    def parse_or(self) -> GateExpr:
        operands = [self.parse_and()]
        while self.current().kind == TokenKind.OR:
            self.consume(TokenKind.OR)
            operands.append(self.parse_and())
        if len(operands) == 1:
            return operands[0]
        return Disjunction(tuple(operands))

    def parse_and(self) -> GateExpr:
        operands: List[GateExpr] = list(_flatten_and(self.parse_primary()))
        while self.current().kind == TokenKind.AND:
            self.consume(TokenKind.AND)
            operands.extend(_flatten_and(self.parse_primary()))
        if len(operands) == 1:
            return operands[0]
        return Conjunction(tuple(operands))

    def parse_primary(self) -> GateExpr:
        tok = self.current()
        if tok.kind == TokenKind.LPAREN:
            self.consume(TokenKind.LPAREN)
            expr = self.parse_or()
            self.consume(TokenKind.RPAREN)
            return expr
        if tok.kind == TokenKind.AXIS:
            axis = self.consume(TokenKind.AXIS).value
            op = self.consume(TokenKind.OP).value
            number = self.consume(TokenKind.NUMBER).value
            return Comparison(GateConstraint(axis, op, float(number)))
        raise ValueError(f"Unexpected token {tok.kind.name} at position {tok.pos}")


def _flatten_and(expr: GateExpr) -> Tuple[GateExpr, ...]:
    if isinstance(expr, Conjunction):
        return expr.operands
    return (expr,)


def parse_gate_ast(s: str) -> GateExpr:
    """Parse a gate expression into an AST."""
    return Parser(tokenize(s)).parse()
