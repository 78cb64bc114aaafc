"""
Axis gap report synthesis.

Combines the PCA, hub, coverage gap and conflict signals into one report:
a signal breakdown, an overall confidence, prioritized recommendations and
per-prototype weight summaries for every prototype that any signal flagged.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from expression_diagnostics.axis_gap.recommendations import AxisGapRecommendationBuilder, pca_signal_triggered
from expression_diagnostics.contracts import RECOMMENDATION_BUILDER_METHODS
from expression_diagnostics.dependencies import (
    require_collaborator,
    require_config,
    require_numeric,
    validate_logger,
)
from expression_diagnostics.models import prototype_id, prototype_weights

logger = logging.getLogger(__name__)

TOP_AXES_LIMIT = 5
MULTI_SIGNAL_REASONS = 3
HIGH_CONFIDENCE_FAMILIES = 3

REQUIRED_NUMERIC_FIELDS = ("pca_residual_variance_threshold", "reconstruction_error_threshold")

REASON_RECONSTRUCTION = "high_reconstruction_error"
REASON_PROJECTION = "extreme_projection"
REASON_HUB = "hub"
REASON_GAP = "coverage_gap"
REASON_CONFLICT = "multi_axis_conflict"


class SignalFamily(str, Enum):
    PCA = "pca"
    HUBS = "hubs"
    GAPS = "gaps"
    CONFLICTS = "conflicts"


REASON_FAMILIES = {
    REASON_RECONSTRUCTION: SignalFamily.PCA,
    REASON_PROJECTION: SignalFamily.PCA,
    REASON_HUB: SignalFamily.HUBS,
    REASON_GAP: SignalFamily.GAPS,
}


def _list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


class AxisGapReportSynthesizer:
    def __init__(
        self,
        config: Any,
        recommendation_builder: Optional[Any] = None,
        logger: Optional[Any] = None,
    ):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "AxisGapReportSynthesizer")
        require_numeric(config, REQUIRED_NUMERIC_FIELDS, "AxisGapReportSynthesizer", self._logger)
        if recommendation_builder is None:
            recommendation_builder = AxisGapRecommendationBuilder(self._config, logger=self._logger)
        self._recommendation_builder = require_collaborator(
            recommendation_builder, "recommendation_builder", RECOMMENDATION_BUILDER_METHODS
        )

    def synthesize(
        self,
        pca_result: Optional[Mapping[str, Any]],
        hub_prototypes: Optional[Sequence[Mapping[str, Any]]],
        coverage_gaps: Optional[Sequence[Mapping[str, Any]]],
        conflicts: Optional[Sequence[Mapping[str, Any]]],
        total_prototypes: int,
        prototypes: Optional[Sequence[Any]] = None,
        split_conflicts: Optional[Mapping[str, Sequence[Mapping[str, Any]]]] = None,
        candidate_axis_validation: Optional[Sequence[Any]] = None,
    ) -> Dict[str, Any]:
        pca = pca_result or {}
        hubs = hub_prototypes if hub_prototypes is not None else []
        gaps = coverage_gaps if coverage_gaps is not None else []
        conflict_list = conflicts if conflicts is not None else []
        split = split_conflicts or {}
        high_loadings = _list(split.get("highAxisLoadings"))
        sign_tensions = _list(split.get("signTensions"))

        pca_triggered = pca_signal_triggered(
            pca,
            self._config.pca_residual_variance_threshold,
            self._config.pca_require_corroboration,
            bool(hubs or gaps or conflict_list),
        )
        breakdown: Dict[str, Any] = {
            "pcaSignals": 1 if pca_triggered else 0,
            "hubSignals": len(hubs),
            "coverageGapSignals": len(gaps),
            "multiAxisConflictSignals": len(conflict_list),
            "highAxisLoadingSignals": len(high_loadings),
            "signTensionSignals": len(sign_tensions),
        }
        if candidate_axis_validation is not None:
            breakdown["candidateAxisCount"] = len(candidate_axis_validation)
            breakdown["recommendedCandidateCount"] = sum(
                1 for v in candidate_axis_validation
                if (v.get("isRecommended") if isinstance(v, Mapping) else getattr(v, "is_recommended", False))
            )

        summaries = self.compute_prototype_weight_summaries(prototypes, pca, hubs, gaps, conflict_list)
        confidence = self._confidence(pca_triggered, hubs, gaps, conflict_list, summaries)

        recommendations = self._recommendation_builder.generate(
            pca, hubs, gaps, conflict_list, candidate_axis_validation
        )
        recommendations = self._recommendation_builder.sort_by_priority(recommendations)

        report: Dict[str, Any] = {
            "summary": {
                "totalPrototypesAnalyzed": total_prototypes,
                "signalBreakdown": breakdown,
                "confidence": confidence,
                "recommendationCount": len(recommendations),
                "potentialGapsDetected": len(recommendations),
            },
            "pcaAnalysis": self._pca_section(pca),
            "hubPrototypes": hubs,
            "coverageGaps": gaps,
            "multiAxisConflicts": conflict_list,
            "highAxisLoadings": high_loadings,
            "signTensions": sign_tensions,
            "recommendations": recommendations,
            "prototypeWeightSummaries": summaries,
        }
        if candidate_axis_validation is not None:
            report["candidateAxes"] = candidate_axis_validation

        self._logger.info(
            f"Axis gap report: {len(recommendations)} recommendation(s), confidence={confidence}, "
            f"{total_prototypes} prototypes analyzed"
        )
        return report

    def build_empty_report(self, total_prototypes: int = 0) -> Dict[str, Any]:
        return {
            "summary": {
                "totalPrototypesAnalyzed": total_prototypes,
                "signalBreakdown": {
                    "pcaSignals": 0,
                    "hubSignals": 0,
                    "coverageGapSignals": 0,
                    "multiAxisConflictSignals": 0,
                    "highAxisLoadingSignals": 0,
                    "signTensionSignals": 0,
                },
                "confidence": "low",
                "recommendationCount": 0,
                "potentialGapsDetected": 0,
            },
            "pcaAnalysis": self._pca_section({}),
            "hubPrototypes": [],
            "coverageGaps": [],
            "multiAxisConflicts": [],
            "highAxisLoadings": [],
            "signTensions": [],
            "recommendations": [],
            "prototypeWeightSummaries": [],
        }

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    @staticmethod
    def _pca_section(pca: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "residualVarianceRatio": pca.get("residualVarianceRatio", 0.0),
            "additionalSignificantComponents": pca.get("additionalSignificantComponents", 0),
            "significantComponentCount": pca.get("significantComponentCount", 0),
            "expectedComponentCount": pca.get("expectedComponentCount", 0),
            "significantBeyondExpected": pca.get("significantBeyondExpected", 0),
            "axisCount": pca.get("axisCount", 0),
            "topLoadingPrototypes": _list(pca.get("topLoadingPrototypes")),
            "dimensionsUsed": _list(pca.get("dimensionsUsed")),
            "excludedSparseAxes": _list(pca.get("excludedSparseAxes")),
            "unusedDefinedAxes": _list(pca.get("unusedDefinedAxes")),
            "unusedInGates": _list(pca.get("unusedInGates")),
            "cumulativeVariance": _list(pca.get("cumulativeVariance")),
            "explainedVariance": _list(pca.get("explainedVariance")),
            "componentsFor80Pct": pca.get("componentsFor80Pct", 0),
            "componentsFor90Pct": pca.get("componentsFor90Pct", 0),
            "reconstructionErrors": _list(pca.get("reconstructionErrors")),
            "residualEigenvector": pca.get("residualEigenvector"),
        }

    @staticmethod
    def _confidence(
        pca_triggered: bool,
        hubs: Sequence[Any],
        gaps: Sequence[Any],
        conflicts: Sequence[Any],
        summaries: Sequence[Mapping[str, Any]],
    ) -> str:
        methods = int(pca_triggered) + int(bool(hubs)) + int(bool(gaps)) + int(bool(conflicts))
        if methods >= 3:
            level = "high"
        elif methods == 2:
            level = "medium"
        else:
            level = "low"
        if any(s.get("distinctFamilyCount", 0) >= HIGH_CONFIDENCE_FAMILIES for s in summaries):
            level = "high"
        return level

    def compute_prototype_weight_summaries(
        self,
        prototypes: Optional[Sequence[Any]],
        pca_result: Optional[Mapping[str, Any]],
        hub_prototypes: Optional[Sequence[Mapping[str, Any]]],
        coverage_gaps: Optional[Sequence[Mapping[str, Any]]],
        conflicts: Optional[Sequence[Mapping[str, Any]]],
    ) -> List[Dict[str, Any]]:
        """One summary per prototype flagged by at least one signal, in prototype order."""
        if not prototypes:
            return []
        pca = pca_result or {}
        threshold = self._config.reconstruction_error_threshold

        flags: Dict[str, List[tuple]] = {}

        def flag(pid: Any, reason: str, metrics: Dict[str, Any]) -> None:
            if pid is None:
                return
            flags.setdefault(pid, []).append((reason, metrics))

        for entry in _list(pca.get("reconstructionErrors")):
            error = entry.get("error", 0.0)
            if error >= threshold:
                flag(entry.get("prototypeId"), REASON_RECONSTRUCTION, {"reconstructionError": error})
        for entry in _list(pca.get("topLoadingPrototypes")):
            flag(entry.get("prototypeId"), REASON_PROJECTION, {"projectionScore": entry.get("loading", 0.0)})
        for hub in hub_prototypes or []:
            flag(hub.get("prototypeId"), REASON_HUB, {
                "hubScore": hub.get("hubScore", 0.0),
                "neighborhoodDiversity": hub.get("neighborhoodDiversity", 0),
                "suggestedAxisConcept": hub.get("suggestedAxisConcept"),
            })
        for gap in coverage_gaps or []:
            for pid in dict.fromkeys(_list(gap.get("centroidPrototypes"))):
                if any(reason == REASON_GAP for reason, _ in flags.get(pid, [])):
                    continue
                flag(pid, REASON_GAP, {
                    "distanceToNearestAxis": gap.get("distanceToNearestAxis", 0.0),
                    "clusterMagnitude": gap.get("clusterMagnitude", 0.0),
                    "clusterId": gap.get("clusterId"),
                })
        for conflict in conflicts or []:
            flag(conflict.get("prototypeId"), conflict.get("flagReason") or REASON_CONFLICT, {
                "activeAxisCount": conflict.get("activeAxisCount", 0),
                "signBalance": conflict.get("signBalance", 0.0),
            })

        summaries: List[Dict[str, Any]] = []
        for index, proto in enumerate(prototypes):
            pid = prototype_id(proto, index)
            entries = flags.get(pid)
            if not entries:
                continue
            families = {REASON_FAMILIES.get(reason, SignalFamily.CONFLICTS) for reason, _ in entries}
            weights = prototype_weights(proto)
            top_axes = sorted(weights.items(), key=lambda kv: -abs(kv[1]))[:TOP_AXES_LIMIT]
            summaries.append({
                "prototypeId": pid,
                "reasons": [reason for reason, _ in entries],
                "metricsByReason": {reason: metrics for reason, metrics in entries},
                "distinctFamilyCount": len(families),
                "multiSignalAgreement": len(entries) >= MULTI_SIGNAL_REASONS,
                "topAxes": [{"axis": axis, "weight": weight} for axis, weight in top_axes],
                "reason": entries[0][0],
                "metrics": entries[0][1],
            })
        return summaries
