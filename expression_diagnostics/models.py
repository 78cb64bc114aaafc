"""
Data model for the diagnostics engine.

Dataclasses use snake_case attributes; ``to_dict()`` emits the camelCase
record shape used in reports and accepted back by downstream services.
Services accept either the dataclass or its record, normalized through
:func:`as_record`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from statistical import is_finite_number


# ---------------------------------------------------------------------------
# Record helpers
# ---------------------------------------------------------------------------

def as_record(obj: Any) -> Dict[str, Any]:
    """Normalize a dataclass result or mapping into a plain dict record."""
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, Mapping):
        return dict(obj)
    return {}


def prototype_id(prototype: Any, index: Optional[int] = None) -> Optional[str]:
    """Identifier of a prototype record (``id`` or ``prototypeId``)."""
    if not isinstance(prototype, Mapping):
        return None if index is None else f"prototype-{index}"
    pid = prototype.get("id", prototype.get("prototypeId"))
    if pid is None and index is not None:
        return f"prototype-{index}"
    return pid


def prototype_weights(prototype: Any) -> Dict[str, float]:
    """Finite numeric weights of a prototype; anything else is dropped."""
    if not isinstance(prototype, Mapping):
        return {}
    weights = prototype.get("weights")
    if not isinstance(weights, Mapping):
        return {}
    return {axis: float(value) for axis, value in weights.items() if is_finite_number(value)}


def prototype_gates(prototype: Any) -> List[str]:
    if not isinstance(prototype, Mapping):
        return []
    gates = prototype.get("gates")
    if not isinstance(gates, (list, tuple)):
        return []
    return [g for g in gates if isinstance(g, str)]


# ---------------------------------------------------------------------------
# Interval
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Interval:
    """
    Closed interval on one axis. ``None`` bounds are unbounded.

    ``unsatisfiable`` marks the empty set; an empty interval is a subset of
    every interval and never disjoint from anything.
    """
    lower: Optional[float] = None
    upper: Optional[float] = None
    unsatisfiable: bool = False

    @classmethod
    def unbounded(cls) -> "Interval":
        return cls(None, None, False)

    @classmethod
    def empty(cls, lower: Optional[float] = None, upper: Optional[float] = None) -> "Interval":
        return cls(lower, upper, True)

    @classmethod
    def coerce(cls, value: Any) -> "Interval":
        """Accept an Interval, a ``{lower, upper, unsatisfiable}`` mapping, or None."""
        if isinstance(value, Interval):
            return value
        if isinstance(value, Mapping):
            lower = value.get("lower")
            upper = value.get("upper")
            return cls(
                None if lower is None else float(lower),
                None if upper is None else float(upper),
                bool(value.get("unsatisfiable", False)),
            )
        return cls.unbounded()

    @property
    def lower_bound(self) -> float:
        return -math.inf if self.lower is None else self.lower

    @property
    def upper_bound(self) -> float:
        return math.inf if self.upper is None else self.upper

    @property
    def is_empty(self) -> bool:
        return self.unsatisfiable

    @property
    def is_unconstrained(self) -> bool:
        return not self.unsatisfiable and self.lower is None and self.upper is None

    def is_subset_of(self, other: "Interval") -> bool:
        if self.unsatisfiable:
            return True
        if other.unsatisfiable:
            return False
        return self.lower_bound >= other.lower_bound and self.upper_bound <= other.upper_bound

    def is_disjoint_from(self, other: "Interval") -> bool:
        """Strictly separated; touching endpoints overlap."""
        if self.unsatisfiable or other.unsatisfiable:
            return False
        return self.upper_bound < other.lower_bound or other.upper_bound < self.lower_bound

    def intersect(self, other: "Interval") -> "Interval":
        lower_candidates = [b for b in (self.lower, other.lower) if b is not None]
        upper_candidates = [b for b in (self.upper, other.upper) if b is not None]
        lower = max(lower_candidates) if lower_candidates else None
        upper = min(upper_candidates) if upper_candidates else None
        empty = self.unsatisfiable or other.unsatisfiable
        if lower is not None and upper is not None and lower > upper:
            empty = True
        return Interval(lower, upper, empty)

    def to_dict(self) -> Dict[str, Any]:
        return {"lower": self.lower, "upper": self.upper, "unsatisfiable": self.unsatisfiable}


# ---------------------------------------------------------------------------
# Gate implication
# ---------------------------------------------------------------------------

RELATION_EQUAL = "equal"
RELATION_NARROWER = "narrower"
RELATION_WIDER = "wider"
RELATION_DISJOINT = "disjoint"
RELATION_OVERLAPPING = "overlapping"


@dataclass(frozen=True)
class AxisEvidence:
    axis: str
    interval_a: Interval
    interval_b: Interval
    a_subset_b: bool
    b_subset_a: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "axis": self.axis,
            "intervalA": self.interval_a.to_dict(),
            "intervalB": self.interval_b.to_dict(),
            "A_subset_B": self.a_subset_b,
            "B_subset_A": self.b_subset_a,
        }


@dataclass(frozen=True)
class ImplicationResult:
    a_implies_b: bool
    b_implies_a: bool
    relation: str
    is_vacuous: bool = False
    vacuous_reason: Optional[str] = None
    counter_example_axes: List[str] = field(default_factory=list)
    evidence: List[AxisEvidence] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "A_implies_B": self.a_implies_b,
            "B_implies_A": self.b_implies_a,
            "relation": self.relation,
            "isVacuous": self.is_vacuous,
            "counterExampleAxes": list(self.counter_example_axes),
            "evidence": [e.to_dict() for e in self.evidence],
        }
        if self.vacuous_reason is not None:
            data["vacuousReason"] = self.vacuous_reason
        return data


# ---------------------------------------------------------------------------
# Stage A / Stage B metrics
# ---------------------------------------------------------------------------

@dataclass
class CandidateMetrics:
    active_axis_overlap: float = 0.0
    sign_agreement: float = 0.0
    weight_cosine_similarity: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "activeAxisOverlap": self.active_axis_overlap,
            "signAgreement": self.sign_agreement,
            "weightCosineSimilarity": self.weight_cosine_similarity,
        }


@dataclass
class GateOverlapStats:
    on_either_rate: float = 0.0
    on_both_rate: float = 0.0
    p_only_rate: float = 0.0
    q_only_rate: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "onEitherRate": self.on_either_rate,
            "onBothRate": self.on_both_rate,
            "pOnlyRate": self.p_only_rate,
            "qOnlyRate": self.q_only_rate,
        }


@dataclass
class IntensityStats:
    pearson_correlation: float = float("nan")
    mean_abs_diff: float = float("nan")
    rmse: float = float("nan")
    pct_within_eps: float = float("nan")
    dominance_p: float = 0.0
    dominance_q: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "pearsonCorrelation": self.pearson_correlation,
            "meanAbsDiff": self.mean_abs_diff,
            "rmse": self.rmse,
            "pctWithinEps": self.pct_within_eps,
            "dominanceP": self.dominance_p,
            "dominanceQ": self.dominance_q,
        }


@dataclass
class PassRates:
    pass_a_rate: float = 0.0
    pass_b_rate: float = 0.0
    p_a_given_b: float = 0.0
    p_b_given_a: float = 0.0
    co_pass_count: int = 0
    pass_a_count: int = 0
    pass_b_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passARate": self.pass_a_rate,
            "passBRate": self.pass_b_rate,
            "pA_given_B": self.p_a_given_b,
            "pB_given_A": self.p_b_given_a,
            "coPassCount": self.co_pass_count,
            "passACount": self.pass_a_count,
            "passBCount": self.pass_b_count,
        }


@dataclass
class BehaviorMetrics:
    gate_overlap: GateOverlapStats = field(default_factory=GateOverlapStats)
    intensity: IntensityStats = field(default_factory=IntensityStats)
    pass_rates: PassRates = field(default_factory=PassRates)
    divergence_examples: List[Dict[str, Any]] = field(default_factory=list)
    high_coactivation: Dict[str, Any] = field(default_factory=dict)
    global_metrics: Dict[str, float] = field(default_factory=dict)
    gate_implication: Optional[ImplicationResult] = None
    gate_parse_info: Optional[Dict[str, Any]] = None
    sample_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gateOverlap": self.gate_overlap.to_dict(),
            "intensity": self.intensity.to_dict(),
            "passRates": self.pass_rates.to_dict(),
            "divergenceExamples": list(self.divergence_examples),
            "highCoactivation": dict(self.high_coactivation),
            "globalMetrics": dict(self.global_metrics),
            "gateImplication": self.gate_implication.to_dict() if self.gate_implication else None,
            "gateParseInfo": dict(self.gate_parse_info) if self.gate_parse_info else None,
            "sampleCount": self.sample_count,
        }


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

CLASSIFICATION_TYPES = (
    "merge",
    "merge_recommended",
    "subsumed",
    "subsumed_recommended",
    "nested_siblings",
    "needs_separation",
    "not_redundant",
)


@dataclass(frozen=True)
class Classification:
    type: str
    narrower_prototype: Optional[str] = None
    subsumed_prototype: Optional[str] = None
    nesting_source: Optional[str] = None
    thresholds: Dict[str, float] = field(default_factory=dict)
    metrics: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.narrower_prototype is not None:
            data["narrowerPrototype"] = self.narrower_prototype
        if self.subsumed_prototype is not None:
            data["subsumedPrototype"] = self.subsumed_prototype
        if self.nesting_source is not None:
            data["nestingSource"] = self.nesting_source
        data["thresholds"] = dict(self.thresholds)
        data["metrics"] = dict(self.metrics)
        return data


# ---------------------------------------------------------------------------
# Candidate axes
# ---------------------------------------------------------------------------

@dataclass
class CandidateAxis:
    candidate_id: str
    source: str
    direction: Dict[str, float]
    confidence: float
    source_prototypes: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidateId": self.candidate_id,
            "source": self.source,
            "direction": dict(self.direction),
            "confidence": self.confidence,
            "sourcePrototypes": list(self.source_prototypes),
            "metadata": dict(self.metadata),
        }


@dataclass
class ImprovementMetrics:
    rmse_reduction: float = 0.0
    strong_axis_reduction: float = 0.0
    co_usage_reduction: float = 0.0
    combined_score: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "rmseReduction": self.rmse_reduction,
            "strongAxisReduction": self.strong_axis_reduction,
            "coUsageReduction": self.co_usage_reduction,
            "combinedScore": self.combined_score,
        }


@dataclass
class CandidateAxisValidation:
    candidate_id: str
    source: str
    is_recommended: bool
    recommendation: str
    affected_prototypes: List[str]
    improvement: ImprovementMetrics
    rationale: str
    validation_error: Optional[str] = None
    direction: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidateId": self.candidate_id,
            "source": self.source,
            "isRecommended": self.is_recommended,
            "recommendation": self.recommendation,
            "affectedPrototypes": list(self.affected_prototypes),
            "improvement": self.improvement.to_dict(),
            "rationale": self.rationale,
            "validationError": self.validation_error,
            "direction": dict(self.direction),
        }
