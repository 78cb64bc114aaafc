"""
Stage A: structural candidate-pair filtering (Route A).

Pairs are kept when their weight vectors share most active axes, agree in
sign on those axes, and point in a similar direction. When multi-route
filtering is enabled, Route A rejects get a second chance through the gate
similarity filter (Route B).
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from expression_diagnostics.dependencies import (
    optional_collaborator,
    require_config,
    require_numeric,
    validate_logger,
)
from expression_diagnostics.models import CandidateMetrics, prototype_id, prototype_weights
from statistical import jaccard

logger = logging.getLogger(__name__)

SELECTED_BY_ROUTE_A = "routeA"

REQUIRED_NUMERIC_FIELDS = (
    "active_axis_epsilon",
    "candidate_min_active_axis_overlap",
    "candidate_min_sign_agreement",
    "candidate_min_cosine_similarity",
    "soft_sign_threshold",
    "jaccard_empty_set_value",
)


def active_axes(weights: Mapping[str, float], epsilon: float) -> Set[str]:
    return {axis for axis, w in weights.items() if abs(w) >= epsilon}


def soft_sign(value: float, threshold: float) -> int:
    """Sign that treats near-zero weights as neutral."""
    if abs(value) < threshold:
        return 0
    return 1 if value > 0 else -1


def cosine_similarity(weights_a: Mapping[str, float], weights_b: Mapping[str, float]) -> float:
    """Cosine of two sparse vectors; missing axes count as zero."""
    axes = set(weights_a) | set(weights_b)
    dot = sum(weights_a.get(a, 0.0) * weights_b.get(a, 0.0) for a in axes)
    norm_a = math.sqrt(sum(v * v for v in weights_a.values()))
    norm_b = math.sqrt(sum(v * v for v in weights_b.values()))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


class CandidatePairFilter:
    def __init__(self, config: Any, logger: Optional[Any] = None, gate_similarity_filter: Optional[Any] = None):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "CandidatePairFilter")
        require_numeric(config, REQUIRED_NUMERIC_FIELDS, "CandidatePairFilter", self._logger)
        self._gate_filter = optional_collaborator(
            gate_similarity_filter, "gate_similarity_filter", ("filter_pairs",)
        )

    def compute_metrics(self, weights_a: Mapping[str, float], weights_b: Mapping[str, float]) -> CandidateMetrics:
        cfg = self._config
        active_a = active_axes(weights_a, cfg.active_axis_epsilon)
        active_b = active_axes(weights_b, cfg.active_axis_epsilon)
        overlap = jaccard(active_a, active_b, empty_value=cfg.jaccard_empty_set_value)

        shared = active_a & active_b
        if shared:
            agreeing = sum(
                1
                for axis in shared
                if soft_sign(weights_a[axis], cfg.soft_sign_threshold)
                == soft_sign(weights_b[axis], cfg.soft_sign_threshold)
            )
            sign_agreement = agreeing / len(shared)
        else:
            sign_agreement = 0.0

        return CandidateMetrics(
            active_axis_overlap=overlap,
            sign_agreement=sign_agreement,
            weight_cosine_similarity=cosine_similarity(weights_a, weights_b),
        )

    def _rejection_reason(self, metrics: CandidateMetrics) -> Optional[str]:
        cfg = self._config
        if metrics.active_axis_overlap < cfg.candidate_min_active_axis_overlap:
            return "rejectedByActiveAxisOverlap"
        if metrics.sign_agreement < cfg.candidate_min_sign_agreement:
            return "rejectedBySignAgreement"
        if metrics.weight_cosine_similarity < cfg.candidate_min_cosine_similarity:
            return "rejectedByCosineSimilarity"
        return None

    def filter_candidates(self, prototypes: Optional[Sequence[Mapping[str, Any]]]) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "totalPossiblePairs": 0,
            "passedFiltering": 0,
            "rejectedByActiveAxisOverlap": 0,
            "rejectedBySignAgreement": 0,
            "rejectedByCosineSimilarity": 0,
            "prototypesWithValidWeights": 0,
        }
        valid = [(p, prototype_weights(p)) for p in (prototypes or [])]
        valid = [(p, w) for p, w in valid if w]
        stats["prototypesWithValidWeights"] = len(valid)

        candidates: List[Dict[str, Any]] = []
        rejected: List[Dict[str, Any]] = []
        seen = set()
        for i in range(len(valid)):
            proto_a, weights_a = valid[i]
            for j in range(i + 1, len(valid)):
                proto_b, weights_b = valid[j]
                id_a, id_b = prototype_id(proto_a, i), prototype_id(proto_b, j)
                if id_a == id_b:
                    continue
                key = tuple(sorted((str(id_a), str(id_b))))
                if key in seen:
                    continue
                seen.add(key)
                stats["totalPossiblePairs"] += 1

                metrics = self.compute_metrics(weights_a, weights_b)
                reason = self._rejection_reason(metrics)
                pair = {"prototypeA": proto_a, "prototypeB": proto_b, "candidateMetrics": metrics.to_dict()}
                if reason:
                    stats[reason] += 1
                    rejected.append(pair)
                    continue
                stats["passedFiltering"] += 1
                pair["selectedBy"] = SELECTED_BY_ROUTE_A
                candidates.append(pair)

        if self._gate_filter is not None and self._config.enable_multi_route_filtering and rejected:
            route_b = self._gate_filter.filter_pairs(rejected)
            candidates.extend(route_b["candidates"])
            stats["routeB"] = route_b["stats"]

        self._logger.info(
            f"CandidatePairFilter: {len(candidates)} candidate pairs from "
            f"{stats['totalPossiblePairs']} possible ({stats['prototypesWithValidWeights']} prototypes with weights)"
        )
        return {"candidates": candidates, "stats": stats}
