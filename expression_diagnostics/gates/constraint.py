"""
Single-axis gate constraints.

A gate is a comparison such as ``threat <= 0.40``. Each gate maps onto a
closed interval on its axis; strict comparisons are tightened by a small
epsilon so that ``x > 0.5`` and ``x >= 0.5`` remain distinguishable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict

from expression_diagnostics.models import Interval

GATE_PATTERN = re.compile(
    r"^\s*(\w+)\s*(>=|>|<=|<|==)\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*$"
)

OPERATORS = (">=", ">", "<=", "<", "==")

DEFAULT_STRICT_EPSILON = 1e-6


@dataclass(frozen=True)
class GateConstraint:
    axis: str
    operator: str
    value: float

    @classmethod
    def parse(cls, gate: str) -> "GateConstraint":
        if not isinstance(gate, str):
            raise ValueError(f"Gate must be a string, got {type(gate).__name__}")
        match = GATE_PATTERN.match(gate)
        if not match:
            raise ValueError(f"Cannot parse gate: {gate!r}")
        axis, operator, raw = match.groups()
        return cls(axis, operator, float(raw))

    def to_interval(self, strict_epsilon: float = DEFAULT_STRICT_EPSILON) -> Interval:
        if self.operator == ">=":
            return Interval(self.value, None)
        if self.operator == ">":
            return Interval(self.value + strict_epsilon, None)
        if self.operator == "<=":
            return Interval(None, self.value)
        if self.operator == "<":
            return Interval(None, self.value - strict_epsilon)
        return Interval(self.value, self.value)

    def is_satisfied_by(self, value: float) -> bool:
        if self.operator == ">=":
            return value >= self.value
        if self.operator == ">":
            return value > self.value
        if self.operator == "<=":
            return value <= self.value
        if self.operator == "<":
            return value < self.value
        return value == self.value

    def __str__(self) -> str:
        return f"{self.axis} {self.operator} {self.value:g}"

    def to_dict(self) -> Dict[str, object]:
        return {"axis": self.axis, "operator": self.operator, "value": self.value}
