"""
Stage D: recommendation synthesis for one classified prototype pair.

Confidence is a piecewise-linear function of onEitherRate (how often either
prototype fires), increasing within each tier:

    onEitherRate >= 0.20   ->  [0.90, 0.999]
    0.10 <= r < 0.20       ->  [0.70, 0.90)
    0.05 <= r < 0.10       ->  [0.50, 0.70)
    r < 0.05               ->  [0.30, 0.50)
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from expression_diagnostics.contracts import SUGGESTION_ENGINE_METHODS
from expression_diagnostics.dependencies import (
    optional_collaborator,
    require_config,
    require_numeric,
    validate_logger,
)
from expression_diagnostics.models import as_record, prototype_id, prototype_weights
from statistical import clamp01

logger = logging.getLogger(__name__)

TYPE_MERGE = "prototype_merge_suggestion"
TYPE_SUBSUMPTION = "prototype_subsumption_suggestion"
TYPE_OVERLAP_INFO = "prototype_overlap_info"

RECOMMENDATION_TYPES = {
    "merge": TYPE_MERGE,
    "merge_recommended": TYPE_MERGE,
    "subsumed": TYPE_SUBSUMPTION,
    "subsumed_recommended": TYPE_SUBSUMPTION,
}

DEFAULT_PROTOTYPE_FAMILY = "emotion"


def confidence_from_on_either_rate(rate: float) -> float:
    if rate is None or not math.isfinite(rate):
        rate = 0.0
    if rate >= 0.2:
        return 0.9 + 0.099 * min(1.0, (rate - 0.2) / 0.8)
    if rate >= 0.1:
        return 0.7 + 0.2 * (rate - 0.1) / 0.1
    if rate >= 0.05:
        return 0.5 + 0.2 * (rate - 0.05) / 0.05
    return 0.3 + 0.2 * max(0.0, rate) / 0.05


def _num(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _finite_or_zero(value: float) -> float:
    return value if math.isfinite(value) else 0.0


class OverlapRecommendationBuilder:
    def __init__(
        self,
        config: Any,
        logger: Optional[Any] = None,
        actionable_suggestion_engine: Optional[Any] = None,
    ):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "OverlapRecommendationBuilder")
        require_numeric(config, ("active_axis_epsilon",), "OverlapRecommendationBuilder", self._logger)
        self._suggestion_engine = optional_collaborator(
            actionable_suggestion_engine, "actionable_suggestion_engine", SUGGESTION_ENGINE_METHODS
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def compute_severity(
        self, classification_type: Optional[str], candidate: Mapping[str, Any], behavior: Mapping[str, Any]
    ) -> float:
        gate_overlap = behavior.get("gateOverlap") or {}
        intensity = behavior.get("intensity") or {}
        pass_rates = behavior.get("passRates") or {}

        if classification_type in ("merge", "merge_recommended"):
            on_either = _num(gate_overlap.get("onEitherRate"), 0.0)
            on_both = _num(gate_overlap.get("onBothRate"), 0.0)
            ratio = on_both / on_either if on_either > 0 else 0.0
            corr = _num(intensity.get("pearsonCorrelation"), 0.0)
            mad = _num(intensity.get("meanAbsDiff"), 0.0)
            raw = (_finite_or_zero(corr) + ratio) / 2 - _finite_or_zero(mad)
        elif classification_type in ("subsumed", "subsumed_recommended"):
            raw = max(_num(intensity.get("dominanceP"), 0.0), _num(intensity.get("dominanceQ"), 0.0))
        elif classification_type in ("nested_siblings", "needs_separation"):
            conditionals = [
                _finite_or_zero(_num(pass_rates.get("pA_given_B"), 0.0)),
                _finite_or_zero(_num(pass_rates.get("pB_given_A"), 0.0)),
            ]
            raw = 0.5 * max(conditionals)
        else:
            raw = _num(candidate.get("weightCosineSimilarity"), 0.0) * 0.3
        return clamp01(raw)

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------

    def extract_shared_drivers(
        self, weights_a: Mapping[str, float], weights_b: Mapping[str, float]
    ) -> List[Dict[str, Any]]:
        eps = self._config.active_axis_epsilon
        drivers = [
            {"axis": axis, "weightA": weights_a[axis], "weightB": weights_b[axis]}
            for axis in set(weights_a) & set(weights_b)
            if abs(weights_a[axis]) > eps and abs(weights_b[axis]) > eps
        ]
        drivers.sort(key=lambda d: (-(abs(d["weightA"]) + abs(d["weightB"])), d["axis"]))
        return drivers

    def extract_key_differentiators(
        self, weights_a: Mapping[str, float], weights_b: Mapping[str, float]
    ) -> List[Dict[str, Any]]:
        eps = self._config.active_axis_epsilon
        active_a = {axis for axis, w in weights_a.items() if abs(w) > eps}
        active_b = {axis for axis, w in weights_b.items() if abs(w) > eps}
        differentiators: List[Dict[str, Any]] = []
        for axis in sorted(active_a | active_b):
            weight_a = weights_a.get(axis, 0.0)
            weight_b = weights_b.get(axis, 0.0)
            if axis in active_a and axis not in active_b:
                reason = "only_in_A"
            elif axis in active_b and axis not in active_a:
                reason = "only_in_B"
            elif weight_a * weight_b < 0:
                reason = "opposite_sign"
            else:
                continue
            differentiators.append({"axis": axis, "weightA": weight_a, "weightB": weight_b, "reason": reason})
        differentiators.sort(key=lambda d: -abs(d["weightA"] - d["weightB"]))
        return differentiators

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    @staticmethod
    def build_actions(
        classification: Mapping[str, Any], id_a: str, id_b: str, banding: Sequence[Mapping[str, Any]]
    ) -> List[str]:
        kind = classification.get("type")
        if kind in ("merge", "merge_recommended"):
            return [
                f"Consider merging '{id_a}' and '{id_b}' into a single prototype; they fire together "
                "with nearly identical intensity.",
                f"Alias '{id_b}' to '{id_a}' so existing references keep working.",
            ]
        if kind in ("subsumed", "subsumed_recommended"):
            if classification.get("subsumedPrototype") == "b":
                subsumed, survivor = id_b, id_a
            else:
                subsumed, survivor = id_a, id_b
            return [
                f"Consider removing '{subsumed}'; its activations are subsumed by '{survivor}'.",
                f"Tighten gates on '{survivor}' if '{subsumed}' is kept for a distinct case.",
            ]
        if kind == "nested_siblings":
            narrower, broader = (id_b, id_a) if classification.get("narrowerPrototype") == "b" else (id_a, id_b)
            return [
                f"Treat '{narrower}' as a higher-tier variant of '{broader}': whenever '{narrower}' "
                f"fires, '{broader}' fires too.",
                f"Add a suppression rule so '{broader}' is not surfaced while '{narrower}' is active.",
            ]
        if kind == "needs_separation":
            actions = [f"Separate '{id_a}' and '{id_b}' with distinct gate bands; they co-fire heavily."]
            gates = [b["suggestedGate"] for b in banding if b.get("suggestedGate")]
            if gates:
                actions.append(f"Suggested gate bands: {', '.join(gates)}.")
            return actions
        if kind == "not_redundant":
            return [f"No action needed: '{id_a}' and '{id_b}' are behaviorally distinct."]
        return [f"Review '{id_a}' and '{id_b}' manually; overlap could not be classified."]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(
        self,
        prototype_a: Any,
        prototype_b: Any,
        classification: Any,
        candidate_metrics: Any,
        behavior_metrics: Any,
        divergence_examples: Optional[Sequence[Mapping[str, Any]]] = None,
        banding_suggestions: Optional[Sequence[Mapping[str, Any]]] = None,
        prototype_family: str = DEFAULT_PROTOTYPE_FAMILY,
        v3_data: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        classification_record = as_record(classification)
        candidate = as_record(candidate_metrics)
        behavior = as_record(behavior_metrics)
        kind = classification_record.get("type")
        recommendation_type = RECOMMENDATION_TYPES.get(kind, TYPE_OVERLAP_INFO)

        id_a = prototype_id(prototype_a) or "unknown_a"
        id_b = prototype_id(prototype_b) or "unknown_b"
        weights_a = prototype_weights(prototype_a)
        weights_b = prototype_weights(prototype_b)
        banding = list(banding_suggestions or [])

        gate_overlap = behavior.get("gateOverlap") or {}
        intensity = behavior.get("intensity") or {}
        recommendation = {
            "type": recommendation_type,
            "prototypeFamily": prototype_family,
            "prototypes": {"a": id_a, "b": id_b},
            "classification": kind,
            "severity": self.compute_severity(kind, candidate, behavior),
            "confidence": confidence_from_on_either_rate(_num(gate_overlap.get("onEitherRate"), 0.0)),
            "actions": self.build_actions(classification_record, id_a, id_b, banding),
            "evidence": {
                "sharedDrivers": self.extract_shared_drivers(weights_a, weights_b),
                "keyDifferentiators": self.extract_key_differentiators(weights_a, weights_b),
                "divergenceExamples": list(divergence_examples or []),
            },
            "candidateMetrics": {
                "activeAxisOverlap": _num(candidate.get("activeAxisOverlap"), 0.0),
                "signAgreement": _num(candidate.get("signAgreement"), 0.0),
                "weightCosineSimilarity": _num(candidate.get("weightCosineSimilarity"), 0.0),
            },
            "behaviorMetrics": {
                "onEitherRate": _num(gate_overlap.get("onEitherRate"), 0.0),
                "onBothRate": _num(gate_overlap.get("onBothRate"), 0.0),
                "pOnlyRate": _num(gate_overlap.get("pOnlyRate"), 0.0),
                "qOnlyRate": _num(gate_overlap.get("qOnlyRate"), 0.0),
                "pearsonCorrelation": _num(intensity.get("pearsonCorrelation"), float("nan")),
                "meanAbsDiff": _num(intensity.get("meanAbsDiff"), float("nan")),
                "dominanceP": _num(intensity.get("dominanceP"), 0.0),
                "dominanceQ": _num(intensity.get("dominanceQ"), 0.0),
            },
            "suggestedGateBands": banding,
            "suggestions": self._v3_suggestions(v3_data, kind),
        }
        self._logger.debug(
            f"OverlapRecommendationBuilder: built {recommendation_type} for {id_a} / {id_b} "
            f"(severity={recommendation['severity']:.3f})"
        )
        return recommendation

    def _v3_suggestions(self, v3_data: Optional[Mapping[str, Any]], kind: Optional[str]) -> List[Dict[str, Any]]:
        if self._suggestion_engine is None or not v3_data:
            return []
        vector_a = v3_data.get("vectorA")
        vector_b = v3_data.get("vectorB")
        context_pool = v3_data.get("contextPool")
        if vector_a is None or vector_b is None or context_pool is None:
            return []

        raw = self._suggestion_engine.generate_suggestions(vector_a, vector_b, context_pool, kind or "unknown")
        valid = [dict(s) for s in raw or [] if s.get("isValid") is True]
        invalid = [s for s in raw or [] if s.get("isValid") is not True]
        for suggestion in invalid:
            self._logger.warning(
                f"OverlapRecommendationBuilder: Filtered invalid suggestion: {suggestion.get('validationMessage')}"
            )
        self._logger.info(f"OverlapRecommendationBuilder: Generated {len(valid)} valid data-driven suggestions")
        return valid
