"""
Candidate axis extraction.

Three independent signal sources propose directions in weight space that the
current axis set may be missing:

    pca_residual   the first residual eigenvector from PCA
    coverage_gap   a cluster's suggested axis direction
    hub_derived    the normalized centroid of a hub prototype's neighbors

Candidates are filtered by confidence, sorted, deduplicated when nearly
parallel and capped.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence

from expression_diagnostics.dependencies import require_config, require_numeric, validate_logger
from expression_diagnostics.models import CandidateAxis, prototype_id, prototype_weights
from statistical import clamp01, is_finite_number

logger = logging.getLogger(__name__)

SOURCE_PCA = "pca_residual"
SOURCE_GAP = "coverage_gap"
SOURCE_HUB = "hub_derived"

MIN_DIRECTION_NORM = 1e-6
MIN_RESIDUAL_FOR_CANDIDATE = 0.05
RESIDUAL_FULL_CONFIDENCE = 0.3
GAP_FULL_DISTANCE = 0.8
GAP_FULL_SIZE = 10
HUB_FULL_DIVERSITY = 4
MIN_HUB_NEIGHBORS = 2
PARALLEL_COSINE = 0.9


def _finite_vector(raw: Any) -> Dict[str, float]:
    if not isinstance(raw, Mapping):
        return {}
    return {axis: float(v) for axis, v in raw.items() if is_finite_number(v)}


def _norm(vector: Mapping[str, float]) -> float:
    return math.sqrt(sum(v * v for v in vector.values()))


def normalize_vector(vector: Mapping[str, float]) -> Optional[Dict[str, float]]:
    """Unit-length copy, or None when the vector is (near) zero."""
    norm = _norm(vector)
    if norm < MIN_DIRECTION_NORM:
        return None
    return {axis: v / norm for axis, v in vector.items()}


def absolute_cosine(a: Mapping[str, float], b: Mapping[str, float]) -> float:
    norm_a, norm_b = _norm(a), _norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    dot = sum(v * b.get(axis, 0.0) for axis, v in a.items())
    return abs(dot) / (norm_a * norm_b)


class CandidateAxisExtractor:
    def __init__(self, config: Any, logger: Optional[Any] = None):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "CandidateAxisExtractor")
        require_numeric(
            config,
            ("candidate_axis_min_extraction_confidence", "candidate_axis_max_candidates"),
            "CandidateAxisExtractor",
            self._logger,
        )

    def extract(
        self,
        pca_result: Optional[Mapping[str, Any]],
        coverage_gaps: Optional[Sequence[Mapping[str, Any]]] = None,
        hub_prototypes: Optional[Sequence[Mapping[str, Any]]] = None,
        prototypes: Optional[Sequence[Any]] = None,
    ) -> List[CandidateAxis]:
        candidates: List[CandidateAxis] = []
        pca_candidate = self._from_pca(pca_result or {})
        if pca_candidate is not None:
            candidates.append(pca_candidate)
        for index, gap in enumerate(coverage_gaps or []):
            candidate = self._from_gap(gap, index)
            if candidate is not None:
                candidates.append(candidate)
        weights_by_id = {prototype_id(p, i): prototype_weights(p) for i, p in enumerate(prototypes or [])}
        for hub in hub_prototypes or []:
            candidate = self._from_hub(hub, weights_by_id)
            if candidate is not None:
                candidates.append(candidate)

        floor = self._config.candidate_axis_min_extraction_confidence
        kept = [c for c in candidates if c.confidence >= floor]
        kept.sort(key=lambda c: -c.confidence)

        unique: List[CandidateAxis] = []
        for candidate in kept:
            if any(absolute_cosine(candidate.direction, u.direction) > PARALLEL_COSINE for u in unique):
                self._logger.debug(
                    f"CandidateAxisExtractor: dropping {candidate.candidate_id}, parallel to a stronger candidate"
                )
                continue
            unique.append(candidate)

        result = unique[: int(self._config.candidate_axis_max_candidates)]
        self._logger.debug(
            f"CandidateAxisExtractor: {len(candidates)} raw, {len(kept)} above floor, {len(result)} kept"
        )
        return result

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _from_pca(self, pca: Mapping[str, Any]) -> Optional[CandidateAxis]:
        direction = _finite_vector(pca.get("residualEigenvector"))
        top = pca.get("topLoadingPrototypes") or []
        residual = pca.get("residualVarianceRatio") or 0.0
        if _norm(direction) < MIN_DIRECTION_NORM or not top or residual <= MIN_RESIDUAL_FOR_CANDIDATE:
            return None
        additional = pca.get("additionalSignificantComponents") or 0
        confidence = clamp01(min(1.0, residual / RESIDUAL_FULL_CONFIDENCE) + 0.1 * additional)
        return CandidateAxis(
            candidate_id=f"{SOURCE_PCA}_0",
            source=SOURCE_PCA,
            direction=direction,
            confidence=confidence,
            source_prototypes=[t.get("prototypeId") for t in top if t.get("prototypeId") is not None],
            metadata={
                "residualVarianceRatio": residual,
                "additionalSignificantComponents": additional,
                "eigenvectorIndex": pca.get("residualEigenvectorIndex", -1),
            },
        )

    def _from_gap(self, gap: Mapping[str, Any], index: int) -> Optional[CandidateAxis]:
        direction = normalize_vector(_finite_vector(gap.get("suggestedAxisDirection")))
        if direction is None:
            return None
        members = list(gap.get("centroidPrototypes") or [])
        distance = gap.get("distanceToNearestAxis") or 0.0
        size = gap.get("clusterSize") or len(members)
        confidence = clamp01(
            0.6 * min(1.0, distance / GAP_FULL_DISTANCE) + 0.4 * min(1.0, size / GAP_FULL_SIZE)
        )
        return CandidateAxis(
            candidate_id=f"{SOURCE_GAP}_{index}",
            source=SOURCE_GAP,
            direction=direction,
            confidence=confidence,
            source_prototypes=members,
            metadata={
                "clusterId": gap.get("clusterId"),
                "distanceToNearestAxis": distance,
                "clusterSize": size,
            },
        )

    def _from_hub(
        self, hub: Mapping[str, Any], weights_by_id: Mapping[str, Mapping[str, float]]
    ) -> Optional[CandidateAxis]:
        neighbors = [n for n in hub.get("overlappingPrototypes") or [] if n in weights_by_id]
        if len(neighbors) < MIN_HUB_NEIGHBORS:
            return None
        centroid: Dict[str, float] = {}
        for neighbor in neighbors:
            for axis, w in weights_by_id[neighbor].items():
                centroid[axis] = centroid.get(axis, 0.0) + w / len(neighbors)
        direction = normalize_vector(centroid)
        if direction is None:
            return None
        hub_score = hub.get("hubScore") or 0.0
        diversity = hub.get("neighborhoodDiversity") or 0
        confidence = clamp01(0.6 * min(1.0, hub_score) + 0.4 * min(1.0, diversity / HUB_FULL_DIVERSITY))
        hub_id = hub.get("prototypeId")
        return CandidateAxis(
            candidate_id=f"{SOURCE_HUB}_{hub_id}",
            source=SOURCE_HUB,
            direction=direction,
            confidence=confidence,
            source_prototypes=[hub_id, *neighbors] if hub_id is not None else neighbors,
            metadata={
                "hubScore": hub_score,
                "neighborhoodDiversity": diversity,
                "suggestedAxisConcept": hub.get("suggestedAxisConcept"),
            },
        )
