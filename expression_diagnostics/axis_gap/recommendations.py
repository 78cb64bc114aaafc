"""
Axis gap recommendations.

Rules, in emission order:

    validated candidate, add_axis          high    NEW_AXIS
    validated candidate, refine            low     REFINE_EXISTING
    PCA + coverage gap                     high    NEW_AXIS
    hub whose neighbors touch a gap        high    NEW_AXIS
    PCA only                               medium  INVESTIGATE
    hub only (no gaps)                     medium  INVESTIGATE
    gap only (no PCA, no hubs)             medium  INVESTIGATE
    high residual, nothing corroborating   low     INVESTIGATE (diffuse)
    multi-axis conflicts                   low     REFINE_EXISTING

A high PCA residual with no additional significant components only counts
as a PCA signal when corroborated by hubs, gaps or conflicts (unless
``pca_require_corroboration`` is off).
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from expression_diagnostics.contracts import RecommendationBuilderContract
from expression_diagnostics.dependencies import require_config, require_numeric, validate_logger
from expression_diagnostics.models import as_record
from statistical import jaccard

logger = logging.getLogger(__name__)

TYPE_NEW_AXIS = "NEW_AXIS"
TYPE_INVESTIGATE = "INVESTIGATE"
TYPE_REFINE_EXISTING = "REFINE_EXISTING"

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

REDUNDANT_SIMILARITY = 0.7
RELATED_SIMILARITY = 0.3

DIFFUSE_WORST_FITTING = 3
DIFFUSE_EIGENVECTOR_AXES = 5


def pca_signal_triggered(
    pca: Mapping[str, Any], threshold: float, require_corroboration: bool, has_other_signals: bool
) -> bool:
    if (pca.get("additionalSignificantComponents") or 0) > 0:
        return True
    if (pca.get("residualVarianceRatio") or 0.0) >= threshold:
        return not require_corroboration or has_other_signals
    return False


def _list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


class AxisGapRecommendationBuilder(RecommendationBuilderContract):
    def __init__(self, config: Any, logger: Optional[Any] = None):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "AxisGapRecommendationBuilder")
        require_numeric(config, ("pca_residual_variance_threshold",), "AxisGapRecommendationBuilder", self._logger)

    def generate(
        self,
        pca_result: Optional[Mapping[str, Any]],
        hub_prototypes: Optional[Sequence[Mapping[str, Any]]],
        coverage_gaps: Optional[Sequence[Mapping[str, Any]]],
        conflicts: Optional[Sequence[Mapping[str, Any]]],
        candidate_axis_validation: Optional[Sequence[Any]] = None,
    ) -> List[Dict[str, Any]]:
        pca = pca_result or {}
        hubs = _list(hub_prototypes)
        gaps = _list(coverage_gaps)
        conflicts = _list(conflicts)
        threshold = self._config.pca_residual_variance_threshold

        recommendations: List[Dict[str, Any]] = self._candidate_recommendations(candidate_axis_validation)

        pca_triggered = pca_signal_triggered(
            pca, threshold, self._config.pca_require_corroboration, bool(hubs or gaps or conflicts)
        )
        pca_prototypes = [t.get("prototypeId") for t in _list(pca.get("topLoadingPrototypes"))]
        pca_evidence = [
            f"Unexplained residual variance: {(pca.get('residualVarianceRatio') or 0.0) * 100:.1f}%",
            f"Additional significant components: {pca.get('additionalSignificantComponents') or 0}",
        ]

        if pca_triggered and gaps:
            affected = list(pca_prototypes)
            evidence = list(pca_evidence)
            for gap in gaps:
                affected.extend(_list(gap.get("centroidPrototypes")))
                evidence.append(
                    f"Distance to nearest axis ({gap.get('clusterId')}): {gap.get('distanceToNearestAxis', 0.0):.2f}"
                )
            recommendations.append(self.build_recommendation(
                priority="high",
                type=TYPE_NEW_AXIS,
                description="PCA residual structure and coverage gaps both point to a missing axis.",
                affected_prototypes=affected,
                evidence=evidence,
            ))

        for hub in hubs:
            hub_neighbors = set(_list(hub.get("overlappingPrototypes")))
            for gap in gaps:
                centroid = _list(gap.get("centroidPrototypes"))
                if not hub_neighbors.intersection(centroid):
                    continue
                recommendations.append(self.build_recommendation(
                    priority="high",
                    type=TYPE_NEW_AXIS,
                    description=(
                        f"Hub prototype '{hub.get('prototypeId')}' borders coverage gap '{gap.get('clusterId')}'; "
                        f"consider a new axis such as '{hub.get('suggestedAxisConcept')}'."
                    ),
                    affected_prototypes=[hub.get("prototypeId"), *centroid],
                    evidence=[
                        f"Hub score: {hub.get('hubScore', 0.0):.2f}",
                        f"Distance to nearest axis: {gap.get('distanceToNearestAxis', 0.0):.2f}",
                    ],
                ))

        if pca_triggered and not gaps:
            recommendations.append(self.build_recommendation(
                priority="medium",
                type=TYPE_INVESTIGATE,
                description="PCA finds variance the current axes do not explain; inspect the top-loading prototypes.",
                affected_prototypes=pca_prototypes,
                evidence=pca_evidence,
            ))
        if hubs and not gaps:
            for hub in hubs:
                recommendations.append(self.build_recommendation(
                    priority="medium",
                    type=TYPE_INVESTIGATE,
                    description=(
                        f"Prototype '{hub.get('prototypeId')}' overlaps many neighbors; it may stand in for a "
                        f"missing axis such as '{hub.get('suggestedAxisConcept')}'."
                    ),
                    affected_prototypes=[hub.get("prototypeId"), *_list(hub.get("overlappingPrototypes"))],
                    evidence=[
                        f"Hub score: {hub.get('hubScore', 0.0):.2f}",
                        f"Neighborhood diversity: {hub.get('neighborhoodDiversity', 0)}",
                    ],
                ))
        if gaps and not pca_triggered and not hubs:
            for gap in gaps:
                recommendations.append(self.build_recommendation(
                    priority="medium",
                    type=TYPE_INVESTIGATE,
                    description=f"Coverage gap '{gap.get('clusterId')}' sits far from every existing axis.",
                    affected_prototypes=_list(gap.get("centroidPrototypes")),
                    evidence=[f"Distance to nearest axis: {gap.get('distanceToNearestAxis', 0.0):.2f}"],
                ))

        residual = pca.get("residualVarianceRatio") or 0.0
        if (
            self._config.pca_require_corroboration
            and not pca_triggered
            and residual >= threshold
            and not (hubs or gaps or conflicts)
        ):
            recommendations.append(self._diffuse_recommendation(pca, residual, threshold))

        other_signals = pca_triggered or bool(hubs) or bool(gaps)
        for conflict in conflicts:
            recommendations.append(self._conflict_recommendation(conflict, full_evidence=not other_signals))

        self._attach_relationships(recommendations)
        self._logger.debug(f"AxisGapRecommendationBuilder: generated {len(recommendations)} recommendation(s)")
        return recommendations

    # ------------------------------------------------------------------
    # Rule helpers
    # ------------------------------------------------------------------

    def _candidate_recommendations(self, validations: Optional[Sequence[Any]]) -> List[Dict[str, Any]]:
        recommendations = []
        for raw in validations or []:
            v = as_record(raw)
            improvement = v.get("improvement") or {}
            evidence = [
                f"RMSE reduction: {(improvement.get('rmseReduction') or 0.0) * 100:.1f}%",
                f"Strong axis reduction: {improvement.get('strongAxisReduction') or 0}",
                f"Co-usage reduction: {(improvement.get('coUsageReduction') or 0.0) * 100:.1f}%",
            ]
            if v.get("recommendation") == "add_axis":
                recommendations.append(self.build_recommendation(
                    priority="high",
                    type=TYPE_NEW_AXIS,
                    description=(
                        f"Validated candidate axis '{v.get('candidateId')}' (from {v.get('source')}) "
                        "improves the prototype fit; consider adding it."
                    ),
                    affected_prototypes=_list(v.get("affectedPrototypes")),
                    evidence=evidence,
                ))
            elif v.get("recommendation") == "refine_prototypes":
                recommendations.append(self.build_recommendation(
                    priority="low",
                    type=TYPE_REFINE_EXISTING,
                    description=(
                        f"Candidate axis '{v.get('candidateId')}' (from {v.get('source')}) does not justify a "
                        "new axis; consider refining existing prototypes instead."
                    ),
                    affected_prototypes=_list(v.get("affectedPrototypes")),
                    evidence=evidence,
                ))
        return recommendations

    def _diffuse_recommendation(self, pca: Mapping[str, Any], residual: float, threshold: float) -> Dict[str, Any]:
        worst = _list(pca.get("reconstructionErrors"))[:DIFFUSE_WORST_FITTING]
        eigenvector = pca.get("residualEigenvector") or {}
        evidence = [
            f"Residual variance: {residual * 100:.1f}% (Threshold: {threshold * 100:.1f}%)",
            "No additional significant components beyond the expected axis count",
        ]
        if worst:
            listed = ", ".join(f"{w.get('prototypeId')} ({w.get('error', 0.0):.3f})" for w in worst)
            evidence.append(f"Worst-fitting prototypes: {listed}")
        else:
            evidence.append("No worst-fitting prototypes available")
        if eigenvector:
            top = sorted(eigenvector.items(), key=lambda kv: -abs(kv[1]))[:DIFFUSE_EIGENVECTOR_AXES]
            evidence.append("Residual eigenvector: " + ", ".join(f"{axis}={value:+.2f}" for axis, value in top))
        else:
            evidence.append("No residual eigenvector available")
        return self.build_recommendation(
            priority="low",
            type=TYPE_INVESTIGATE,
            description=(
                "Residual variance is high but diffuse: no component passes the broken-stick test. "
                "Review the worst-fitting prototypes before adding an axis."
            ),
            affected_prototypes=[w.get("prototypeId") for w in worst],
            evidence=evidence,
        )

    def _conflict_recommendation(self, conflict: Mapping[str, Any], full_evidence: bool) -> Dict[str, Any]:
        evidence = [
            f"Active axes: {conflict.get('activeAxisCount', 0)}",
            f"Sign balance: {conflict.get('signBalance', 0.0):.2f}",
        ]
        if full_evidence:
            positive = _list(conflict.get("positiveAxes"))
            negative = _list(conflict.get("negativeAxes"))
            evidence.append(f"Positive axes: {', '.join(positive) if positive else 'none'}")
            evidence.append(f"Negative axes: {', '.join(negative) if negative else 'none'}")
        return self.build_recommendation(
            priority="low",
            type=TYPE_REFINE_EXISTING,
            description=(
                f"Prototype '{conflict.get('prototypeId')}' spreads its weights across many or opposing axes; "
                "consider splitting or simplifying it."
            ),
            affected_prototypes=[conflict.get("prototypeId")],
            evidence=evidence,
        )

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def build_recommendation(
        self,
        priority: str,
        type: str,
        description: str,
        affected_prototypes: Sequence[Any],
        evidence: Sequence[str],
    ) -> Dict[str, Any]:
        affected = sorted({p for p in affected_prototypes if p is not None})
        digest = hashlib.sha256(f"{type}|{'|'.join(str(p) for p in affected)}".encode("utf-8")).hexdigest()[:12]
        return {
            "id": f"rec_{type.lower()}_{digest}",
            "priority": priority,
            "type": type,
            "description": description,
            "affectedPrototypes": affected,
            "evidence": list(evidence) or ["Signal detected"],
        }

    @staticmethod
    def _attach_relationships(recommendations: List[Dict[str, Any]]) -> None:
        for i, rec in enumerate(recommendations):
            related: Dict[str, List[Dict[str, Any]]] = {}
            for j, other in enumerate(recommendations):
                if i == j:
                    continue
                mine, theirs = set(rec["affectedPrototypes"]), set(other["affectedPrototypes"])
                if not mine or not theirs:
                    continue
                similarity = jaccard(mine, theirs, empty_value=0.0)
                if rec["type"] == other["type"]:
                    if similarity >= REDUNDANT_SIMILARITY:
                        kind = "potentiallyRedundant"
                    elif similarity >= RELATED_SIMILARITY:
                        kind = "overlapping"
                    else:
                        continue
                elif similarity >= RELATED_SIMILARITY:
                    kind = "complementary"
                else:
                    continue
                related.setdefault(kind, []).append({
                    "id": other["id"],
                    "similarity": similarity,
                    "sharedPrototypes": sorted(mine & theirs),
                })
            if related:
                rec["relationships"] = related

    def sort_by_priority(self, recommendations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Stable, in place: high, medium, low, then anything unknown."""
        recommendations.sort(key=lambda r: PRIORITY_ORDER.get(r.get("priority"), len(PRIORITY_ORDER)))
        return recommendations
