"""
Prototype overlap analysis pipeline.

    Stage A  candidate filtering       CandidatePairFilter (+ Route B)
    Stage B  behavioral sampling       BehavioralOverlapEvaluator
    Stage C  classification            OverlapClassifier
    Stage D  recommendations           GateBandingSuggestionBuilder,
                                       OverlapRecommendationBuilder

Pairs are evaluated sequentially; sampling yields to the event loop between
chunks so a caller can report progress.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from expression_diagnostics.dependencies import (
    require_collaborator,
    require_config,
    require_numeric,
    validate_logger,
)
from expression_diagnostics.models import as_record, prototype_id
from expression_diagnostics.overlap.banding import BANDED_TYPES
from statistical import clamp01

logger = logging.getLogger(__name__)

STAGE_FILTERING = "filtering"
STAGE_EVALUATING = "evaluating"

BREAKDOWN_KEYS = {
    "merge": "merge",
    "merge_recommended": "mergeRecommended",
    "subsumed": "subsumed",
    "subsumed_recommended": "subsumedRecommended",
    "nested_siblings": "nestedSiblings",
    "needs_separation": "needsSeparation",
    "not_redundant": "notRedundant",
}

ProgressCallback = Callable[[str, Dict[str, Any]], None]


def empty_breakdown() -> Dict[str, int]:
    return {key: 0 for key in BREAKDOWN_KEYS.values()}


class PrototypeOverlapAnalyzer:
    def __init__(
        self,
        config: Any,
        candidate_pair_filter: Any,
        behavioral_overlap_evaluator: Any,
        overlap_classifier: Any,
        overlap_recommendation_builder: Any,
        gate_banding_suggestion_builder: Any,
        logger: Optional[Any] = None,
    ):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "PrototypeOverlapAnalyzer")
        require_numeric(
            config, ("sample_count_per_pair", "max_candidate_pairs"), "PrototypeOverlapAnalyzer", self._logger
        )
        self._filter = require_collaborator(candidate_pair_filter, "candidate_pair_filter", ("filter_candidates",))
        self._evaluator = require_collaborator(
            behavioral_overlap_evaluator, "behavioral_overlap_evaluator", ("evaluate",)
        )
        self._classifier = require_collaborator(
            overlap_classifier, "overlap_classifier", ("classify", "check_near_miss")
        )
        self._recommendations = require_collaborator(
            overlap_recommendation_builder, "overlap_recommendation_builder", ("build",)
        )
        self._banding = require_collaborator(
            gate_banding_suggestion_builder, "gate_banding_suggestion_builder", ("build_suggestions",)
        )

    async def analyze(
        self,
        prototypes: Optional[Sequence[Mapping[str, Any]]],
        prototype_family: str = "emotion",
        sample_count: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        prototypes = list(prototypes or [])
        cfg = self._config
        samples = int(sample_count) if sample_count else int(cfg.sample_count_per_pair)

        if len(prototypes) < 2:
            self._logger.info(
                f"PrototypeOverlapAnalyzer: {len(prototypes)} prototype(s) in family '{prototype_family}', nothing to compare"
            )
            return self._empty_result(prototype_family, len(prototypes), samples)

        filtered = self._filter.filter_candidates(prototypes)
        candidate_pairs = list(filtered.get("candidates") or [])
        filtering_stats = filtered.get("stats") or {}
        if on_progress is not None:
            on_progress(STAGE_FILTERING, {"current": 1, "total": 1})
        self._logger.debug(f"PrototypeOverlapAnalyzer: Stage A found {len(candidate_pairs)} candidate pairs")

        max_pairs = int(cfg.max_candidate_pairs)
        pairs = candidate_pairs[:max_pairs]
        if len(candidate_pairs) > max_pairs:
            self._logger.warning(
                f"PrototypeOverlapAnalyzer: Truncated candidate pairs from {len(candidate_pairs)} "
                f"to {max_pairs} (safety limit)"
            )

        recommendations: List[Dict[str, Any]] = []
        near_misses: List[Dict[str, Any]] = []
        breakdown = empty_breakdown()
        closest_pair: Optional[Dict[str, Any]] = None
        best_score = -math.inf

        for index, pair in enumerate(pairs):
            proto_a = pair["prototypeA"]
            proto_b = pair["prototypeB"]
            candidate_metrics = pair.get("candidateMetrics") or {}

            def report(done: int, total: int, pair_index: int = index) -> None:
                if on_progress is not None:
                    on_progress(
                        STAGE_EVALUATING,
                        {"pairIndex": pair_index, "pairTotal": len(pairs), "sampleIndex": done, "sampleTotal": total},
                    )

            behavior = await self._evaluator.evaluate(proto_a, proto_b, samples, report)
            behavior_record = as_record(behavior)
            classification = as_record(self._classifier.classify(candidate_metrics, behavior))
            kind = classification.get("type", "not_redundant")
            breakdown[BREAKDOWN_KEYS.get(kind, "notRedundant")] += 1

            metrics = classification.get("metrics") or {}
            score = self.compute_composite_score(
                metrics.get("gateOverlapRatio", 0.0),
                metrics.get("pearsonCorrelation", math.nan),
                metrics.get("globalMeanAbsDiff", math.nan),
            )
            if math.isfinite(score) and score > best_score:
                best_score = score
                closest_pair = {
                    "prototypeA": prototype_id(proto_a),
                    "prototypeB": prototype_id(proto_b),
                    "compositeScore": score,
                    "gateOverlapRatio": metrics.get("gateOverlapRatio", 0.0),
                    "correlation": metrics.get("pearsonCorrelation", math.nan),
                    "globalMeanAbsDiff": metrics.get("globalMeanAbsDiff", math.nan),
                    "globalOutputCorrelation": metrics.get("globalOutputCorrelation", math.nan),
                }

            if kind != "not_redundant":
                banding = (
                    self._banding.build_suggestions(behavior_record.get("gateImplication"), classification)
                    if kind in BANDED_TYPES
                    else []
                )
                recommendations.append(
                    self._recommendations.build(
                        proto_a,
                        proto_b,
                        classification,
                        candidate_metrics,
                        behavior_record,
                        behavior_record.get("divergenceExamples") or [],
                        banding,
                        prototype_family,
                    )
                )
            else:
                near_miss = self._classifier.check_near_miss(candidate_metrics, behavior)
                if near_miss.get("isNearMiss"):
                    near_misses.append({
                        "prototypeA": prototype_id(proto_a),
                        "prototypeB": prototype_id(proto_b),
                        "nearMissInfo": near_miss,
                        "candidateMetrics": candidate_metrics,
                        "behaviorMetrics": {
                            "gateOverlap": behavior_record.get("gateOverlap"),
                            "intensity": behavior_record.get("intensity"),
                        },
                    })

        recommendations.sort(key=lambda r: -r.get("severity", 0.0))
        near_misses.sort(key=lambda n: -self._near_miss_correlation(n))

        self._logger.info(
            f"PrototypeOverlapAnalyzer: Analysis complete - {len(recommendations)} redundant pairs "
            f"found from {len(pairs)} candidates"
        )
        return {
            "recommendations": recommendations,
            "nearMisses": near_misses[: int(cfg.max_near_miss_pairs_to_report)],
            "metadata": {
                "prototypeFamily": prototype_family,
                "totalPrototypes": len(prototypes),
                "candidatePairsFound": len(candidate_pairs),
                "candidatePairsEvaluated": len(pairs),
                "redundantPairsFound": len(recommendations),
                "sampleCountPerPair": samples,
                "filteringStats": filtering_stats,
                "classificationBreakdown": breakdown,
                "summaryInsight": self.summary_insight(
                    len(pairs), len(recommendations), len(near_misses), closest_pair, breakdown
                ),
            },
        }

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def compute_composite_score(self, gate_overlap_ratio: float, correlation: float, global_mean_abs_diff: float) -> float:
        """
        Closeness of a pair in [0, 1]; NaN when the inputs cannot support it.

        Correlation is rescaled from [-1, 1]. When the global difference is
        unavailable the gate and correlation weights are renormalized.
        """
        cfg = self._config
        w_gate = float(cfg.composite_score_gate_overlap_weight)
        w_corr = float(cfg.composite_score_correlation_weight)
        w_diff = float(cfg.composite_score_global_diff_weight)
        if not (math.isfinite(gate_overlap_ratio) and math.isfinite(correlation)):
            return math.nan
        normalized_corr = (correlation + 1) / 2
        if not math.isfinite(global_mean_abs_diff):
            total = w_gate + w_corr
            if total <= 0:
                return math.nan
            return gate_overlap_ratio * (w_gate / total) + normalized_corr * (w_corr / total)
        return gate_overlap_ratio * w_gate + normalized_corr * w_corr + (1 - clamp01(global_mean_abs_diff)) * w_diff

    @staticmethod
    def summary_insight(
        pairs_evaluated: int,
        redundant_count: int,
        near_miss_count: int,
        closest_pair: Optional[Dict[str, Any]],
        breakdown: Mapping[str, int],
    ) -> Dict[str, Any]:
        if pairs_evaluated == 0:
            return {
                "status": "no_candidates",
                "message": "No structurally similar pairs found. Prototypes are already well-differentiated "
                "at the structural level.",
                "closestPair": None,
            }
        if redundant_count > 0:
            merges = breakdown.get("merge", 0) + breakdown.get("mergeRecommended", 0)
            subsumed = breakdown.get("subsumed", 0) + breakdown.get("subsumedRecommended", 0)
            message = f"Found {redundant_count} pair(s) needing attention"
            if merges or subsumed:
                message += f" ({merges} merge, {subsumed} subsumed)"
            return {"status": "redundant_found", "message": message + ".", "closestPair": closest_pair}
        if near_miss_count > 0:
            return {
                "status": "near_misses",
                "message": f"All {pairs_evaluated} structurally similar pairs were behaviorally distinct, "
                f"but {near_miss_count} pair(s) came close to redundancy thresholds.",
                "closestPair": closest_pair,
            }
        return {
            "status": "well_differentiated",
            "message": f"All {pairs_evaluated} structurally similar pairs were behaviorally distinct.",
            "closestPair": closest_pair,
        }

    @staticmethod
    def _near_miss_correlation(entry: Mapping[str, Any]) -> float:
        corr = ((entry.get("nearMissInfo") or {}).get("metrics") or {}).get("pearsonCorrelation", 0.0)
        return corr if isinstance(corr, (int, float)) and math.isfinite(corr) else 0.0

    def _empty_result(self, prototype_family: str, total: int, samples: int) -> Dict[str, Any]:
        return {
            "recommendations": [],
            "nearMisses": [],
            "metadata": {
                "prototypeFamily": prototype_family,
                "totalPrototypes": total,
                "candidatePairsFound": 0,
                "candidatePairsEvaluated": 0,
                "redundantPairsFound": 0,
                "sampleCountPerPair": samples,
                "filteringStats": {
                    "totalPossiblePairs": 0,
                    "passedFiltering": 0,
                    "rejectedByActiveAxisOverlap": 0,
                    "rejectedBySignAgreement": 0,
                    "rejectedByCosineSimilarity": 0,
                    "prototypesWithValidWeights": total,
                },
                "classificationBreakdown": empty_breakdown(),
                "summaryInsight": {
                    "status": "insufficient_data",
                    "message": "Fewer than 2 prototypes available for analysis.",
                    "closestPair": None,
                },
            },
        }
