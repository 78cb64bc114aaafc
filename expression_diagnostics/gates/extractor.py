"""Gate list -> per-axis interval extraction."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from expression_diagnostics.dependencies import validate_logger
from expression_diagnostics.gates.constraint import DEFAULT_STRICT_EPSILON, GateConstraint
from expression_diagnostics.models import Interval

logger = logging.getLogger(__name__)

PARSE_COMPLETE = "complete"
PARSE_PARTIAL = "partial"
PARSE_FAILED = "failed"


@dataclass
class GateExtractionResult:
    intervals: Dict[str, Interval] = field(default_factory=dict)
    parse_status: str = PARSE_COMPLETE
    unparsed_gates: List[str] = field(default_factory=list)

    @property
    def has_unsatisfiable(self) -> bool:
        return any(i.unsatisfiable for i in self.intervals.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intervals": {axis: i.to_dict() for axis, i in self.intervals.items()},
            "parseStatus": self.parse_status,
            "unparsedGates": list(self.unparsed_gates),
        }


class GateConstraintExtractor:
    """Intersects every parseable gate into one interval per axis."""

    def __init__(self, strict_epsilon: float = DEFAULT_STRICT_EPSILON, logger: Optional[Any] = None):
        self._strict_epsilon = strict_epsilon
        self._logger = validate_logger(logger, logging.getLogger(__name__))

    def extract(self, gates: Optional[Sequence[Any]]) -> GateExtractionResult:
        if not gates:
            return GateExtractionResult()

        intervals: Dict[str, Interval] = {}
        unparsed: List[str] = []
        parsed_count = 0
        for gate in gates:
            try:
                constraint = GateConstraint.parse(gate)
            except ValueError:
                unparsed.append(str(gate))
                continue
            parsed_count += 1
            interval = constraint.to_interval(self._strict_epsilon)
            existing = intervals.get(constraint.axis)
            intervals[constraint.axis] = interval if existing is None else existing.intersect(interval)

        if not unparsed:
            status = PARSE_COMPLETE
        elif parsed_count:
            status = PARSE_PARTIAL
        else:
            status = PARSE_FAILED

        if unparsed:
            self._logger.debug(f"GateConstraintExtractor: {len(unparsed)} unparsed gate(s): {unparsed}")
        return GateExtractionResult(intervals=intervals, parse_status=status, unparsed_gates=unparsed)
