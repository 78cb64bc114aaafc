"""
Route B candidate selection by gate structure.

A pair survives when one gate set deterministically implies the other, or
when their per-axis gate intervals overlap enough on average. Pairs that the
structural weight filter (Route A) rejects can still be analyzed this way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from expression_diagnostics.contracts import EXTRACTOR_METHODS
from expression_diagnostics.dependencies import (
    require_collaborator,
    require_config,
    require_numeric,
    validate_logger,
)
from expression_diagnostics.gates.extractor import PARSE_COMPLETE
from expression_diagnostics.models import ImplicationResult, Interval, prototype_gates

logger = logging.getLogger(__name__)

REASON_IMPLICATION = "gate_implication"
REASON_OVERLAP = "gate_overlap"

SELECTED_BY_ROUTE_B = "routeB"

# Overlap ratio when exactly one side has no gate constraints
ONE_SIDED_UNCONSTRAINED_RATIO = 0.5


@dataclass
class GateSimilarityResult:
    passes: bool
    reason: Optional[str]
    implication: Optional[ImplicationResult] = None
    overlap_ratio: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"passes": self.passes, "reason": self.reason}
        if self.implication is not None:
            data["implication"] = self.implication.to_dict()
        if self.overlap_ratio is not None:
            data["overlapRatio"] = self.overlap_ratio
        return data


def _axis_overlap_ratio(interval_a: Optional[Interval], interval_b: Optional[Interval]) -> float:
    """Intersection over union of two axis intervals within a [0, 1]-based domain."""
    bounds = [
        bound
        for interval in (interval_a, interval_b)
        if interval is not None
        for bound in (interval.lower, interval.upper)
        if bound is not None
    ]
    domain_low = min([0.0] + bounds)
    domain_high = max([1.0] + bounds)

    def resolve(interval: Optional[Interval]):
        if interval is None:
            return (domain_low, domain_high)
        if interval.unsatisfiable:
            return None
        low = domain_low if interval.lower is None else interval.lower
        high = domain_high if interval.upper is None else interval.upper
        return (low, high)

    span_a, span_b = resolve(interval_a), resolve(interval_b)
    if span_a is None or span_b is None:
        return 1.0 if span_a is None and span_b is None else 0.0

    intersection = max(0.0, min(span_a[1], span_b[1]) - max(span_a[0], span_b[0]))
    length_a = max(0.0, span_a[1] - span_a[0])
    length_b = max(0.0, span_b[1] - span_b[0])
    union = length_a + length_b - intersection
    if union <= 0:
        return 1.0 if span_a == span_b else 0.0
    return intersection / union


def compute_interval_overlap_ratio(
    intervals_a: Mapping[str, Interval], intervals_b: Mapping[str, Interval]
) -> float:
    """Mean per-axis overlap ratio across the union of constrained axes."""
    if not intervals_a and not intervals_b:
        return 1.0
    if not intervals_a or not intervals_b:
        return ONE_SIDED_UNCONSTRAINED_RATIO
    axes = sorted(set(intervals_a) | set(intervals_b))
    ratios = [_axis_overlap_ratio(intervals_a.get(axis), intervals_b.get(axis)) for axis in axes]
    return sum(ratios) / len(ratios)


class GateSimilarityFilter:
    def __init__(
        self,
        config: Any,
        gate_constraint_extractor: Any,
        gate_implication_evaluator: Any,
        logger: Optional[Any] = None,
    ):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "GateSimilarityFilter")
        require_numeric(config, ("gate_based_min_interval_overlap",), "GateSimilarityFilter", self._logger)
        self._extractor = require_collaborator(
            gate_constraint_extractor, "gate_constraint_extractor", EXTRACTOR_METHODS
        )
        self._evaluator = require_collaborator(
            gate_implication_evaluator, "gate_implication_evaluator", ("evaluate",)
        )

    def check_gate_similarity(self, prototype_a: Any, prototype_b: Any) -> GateSimilarityResult:
        extracted_a = self._extractor.extract(prototype_gates(prototype_a))
        extracted_b = self._extractor.extract(prototype_gates(prototype_b))

        implication: Optional[ImplicationResult] = None
        if extracted_a.parse_status == PARSE_COMPLETE and extracted_b.parse_status == PARSE_COMPLETE:
            implication = self._evaluator.evaluate(extracted_a.intervals, extracted_b.intervals)
            if not implication.is_vacuous and (implication.a_implies_b or implication.b_implies_a):
                return GateSimilarityResult(True, REASON_IMPLICATION, implication=implication)

        ratio = compute_interval_overlap_ratio(extracted_a.intervals, extracted_b.intervals)
        if ratio >= self._config.gate_based_min_interval_overlap:
            return GateSimilarityResult(True, REASON_OVERLAP, implication=implication, overlap_ratio=ratio)
        return GateSimilarityResult(False, None, implication=implication, overlap_ratio=ratio)

    def filter_pairs(self, pairs: Optional[Sequence[Mapping[str, Any]]]) -> Dict[str, Any]:
        candidates: List[Dict[str, Any]] = []
        stats = {"passed": 0, "rejected": 0, "byImplication": 0, "byOverlap": 0}
        for pair in pairs or []:
            result = self.check_gate_similarity(pair.get("prototypeA"), pair.get("prototypeB"))
            if not result.passes:
                stats["rejected"] += 1
                continue
            stats["passed"] += 1
            if result.reason == REASON_IMPLICATION:
                stats["byImplication"] += 1
            else:
                stats["byOverlap"] += 1
            candidates.append({
                "prototypeA": pair.get("prototypeA"),
                "prototypeB": pair.get("prototypeB"),
                "candidateMetrics": pair.get("candidateMetrics"),
                "selectedBy": SELECTED_BY_ROUTE_B,
                "routeBReason": result.reason,
                "gateOverlapRatio": result.overlap_ratio,
            })
        self._logger.debug(
            f"GateSimilarityFilter: {stats['passed']} passed "
            f"({stats['byImplication']} by implication, {stats['byOverlap']} by overlap), "
            f"{stats['rejected']} rejected"
        )
        return {"candidates": candidates, "stats": stats}
