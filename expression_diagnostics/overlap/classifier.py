"""
Stage C: overlap classification.

Rules are evaluated in priority order; the first match wins:

    merge                 near-identical firing and intensity
    merge_recommended     same, against the looser "strong" thresholds
    subsumed              one side almost never fires alone and is dominated
    subsumed_recommended  same, with the looser exclusive-rate bound
    nested_siblings       one side's firing implies the other's (near-total)
    needs_separation      nested but only partially, or heavy co-firing with
                          diverging intensities
    not_redundant         everything else

NaN metrics fail every numeric criterion.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional, Tuple

from expression_diagnostics.dependencies import require_config, require_numeric, validate_logger
from expression_diagnostics.gates.extractor import PARSE_COMPLETE
from expression_diagnostics.models import Classification, as_record

logger = logging.getLogger(__name__)

REQUIRED_NUMERIC_FIELDS = (
    "min_on_either_rate_for_merge",
    "min_gate_overlap_ratio",
    "min_correlation_for_merge",
    "max_mean_abs_diff_for_merge",
    "strong_gate_overlap_ratio",
    "strong_correlation_for_merge",
    "max_exclusive_rate_for_subsumption",
    "max_exclusive_for_subsumption",
    "min_correlation_for_subsumption",
    "min_dominance_for_subsumption",
    "nested_conditional_threshold",
    "nested_suppression_threshold",
    "separation_min_gate_overlap_ratio",
    "separation_min_correlation",
)

NESTING_DETERMINISTIC = "deterministic"
NESTING_BEHAVIORAL = "behavioral"


def _num(value: Any, default: float = float("nan")) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _at_least(value: float, threshold: float) -> bool:
    return not math.isnan(value) and value >= threshold


def _at_most(value: float, threshold: float) -> bool:
    return not math.isnan(value) and value <= threshold


class OverlapClassifier:
    def __init__(self, config: Any, logger: Optional[Any] = None):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "OverlapClassifier")
        require_numeric(config, REQUIRED_NUMERIC_FIELDS, "OverlapClassifier", self._logger)

    # ------------------------------------------------------------------
    # Metric extraction
    # ------------------------------------------------------------------

    @staticmethod
    def extract_metrics(candidate_metrics: Any, behavior_metrics: Any) -> Dict[str, Any]:
        candidate = as_record(candidate_metrics)
        behavior = as_record(behavior_metrics)
        gate_overlap = behavior.get("gateOverlap") or {}
        intensity = behavior.get("intensity") or {}
        global_metrics = behavior.get("globalMetrics") or {}
        pass_rates = behavior.get("passRates")

        on_either = _num(gate_overlap.get("onEitherRate"), 0.0)
        on_both = _num(gate_overlap.get("onBothRate"), 0.0)
        return {
            "activeAxisOverlap": _num(candidate.get("activeAxisOverlap"), 0.0),
            "signAgreement": _num(candidate.get("signAgreement"), 0.0),
            "weightCosineSimilarity": _num(candidate.get("weightCosineSimilarity"), 0.0),
            "onEitherRate": on_either,
            "onBothRate": on_both,
            "pOnlyRate": _num(gate_overlap.get("pOnlyRate"), 0.0),
            "qOnlyRate": _num(gate_overlap.get("qOnlyRate"), 0.0),
            "gateOverlapRatio": on_both / on_either if on_either > 0 else 0.0,
            "pearsonCorrelation": _num(intensity.get("pearsonCorrelation")),
            "meanAbsDiff": _num(intensity.get("meanAbsDiff")),
            "dominanceP": _num(intensity.get("dominanceP"), 0.0),
            "dominanceQ": _num(intensity.get("dominanceQ"), 0.0),
            "globalMeanAbsDiff": _num(global_metrics.get("globalMeanAbsDiff", intensity.get("globalMeanAbsDiff"))),
            "globalOutputCorrelation": _num(
                global_metrics.get("globalOutputCorrelation", intensity.get("globalOutputCorrelation"))
            ),
            "pA_given_B": _num(pass_rates.get("pA_given_B")) if pass_rates else float("nan"),
            "pB_given_A": _num(pass_rates.get("pB_given_A")) if pass_rates else float("nan"),
            "gateImplication": as_record(behavior.get("gateImplication")) or None,
            "gateParseInfo": behavior.get("gateParseInfo"),
        }

    def thresholds(self) -> Dict[str, float]:
        return {name: getattr(self._config, name) for name in REQUIRED_NUMERIC_FIELDS}

    # ------------------------------------------------------------------
    # Criteria
    # ------------------------------------------------------------------

    def _merge(self, m: Dict[str, Any], min_overlap: float, min_corr: float) -> bool:
        cfg = self._config
        if m["onEitherRate"] < cfg.min_on_either_rate_for_merge:
            return False
        if m["gateOverlapRatio"] < min_overlap:
            return False
        if not _at_least(m["pearsonCorrelation"], min_corr):
            return False
        if not _at_most(m["meanAbsDiff"], cfg.max_mean_abs_diff_for_merge):
            return False
        dominance = cfg.min_dominance_for_subsumption
        return m["dominanceP"] < dominance and m["dominanceQ"] < dominance

    def _subsumed(self, m: Dict[str, Any], max_exclusive: float) -> Optional[str]:
        cfg = self._config
        if not _at_least(m["pearsonCorrelation"], cfg.min_correlation_for_subsumption):
            return None
        if m["pOnlyRate"] <= max_exclusive and m["dominanceQ"] >= cfg.min_dominance_for_subsumption:
            return "a"
        if m["qOnlyRate"] <= max_exclusive and m["dominanceP"] >= cfg.min_dominance_for_subsumption:
            return "b"
        return None

    def _nesting(self, m: Dict[str, Any]) -> Optional[Tuple[str, float, str]]:
        """(narrower side, containment, source) when one side nests in the other."""
        implication = m["gateImplication"]
        parse_info = m["gateParseInfo"] or {}
        parse_complete = (
            (parse_info.get("prototypeA") or {}).get("parseStatus") == PARSE_COMPLETE
            and (parse_info.get("prototypeB") or {}).get("parseStatus") == PARSE_COMPLETE
        )
        if (
            parse_complete
            and implication
            and not implication.get("isVacuous")
            and bool(implication.get("A_implies_B")) != bool(implication.get("B_implies_A"))
        ):
            narrower = "a" if implication.get("A_implies_B") else "b"
            return narrower, 1.0, NESTING_DETERMINISTIC

        threshold = self._config.nested_conditional_threshold
        p_a_given_b, p_b_given_a = m["pA_given_B"], m["pB_given_A"]
        if math.isnan(p_a_given_b) or math.isnan(p_b_given_a):
            return None
        # narrower side is the one whose firing implies the other fires
        if p_b_given_a >= threshold and p_a_given_b < threshold:
            return "a", p_b_given_a, NESTING_BEHAVIORAL
        if p_a_given_b >= threshold and p_b_given_a < threshold:
            return "b", p_a_given_b, NESTING_BEHAVIORAL
        return None

    def _needs_separation(self, m: Dict[str, Any]) -> bool:
        cfg = self._config
        return (
            m["gateOverlapRatio"] >= cfg.separation_min_gate_overlap_ratio
            and _at_least(m["pearsonCorrelation"], cfg.separation_min_correlation)
            and (math.isnan(m["meanAbsDiff"]) or m["meanAbsDiff"] > cfg.max_mean_abs_diff_for_merge)
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def classify(self, candidate_metrics: Any, behavior_metrics: Any) -> Classification:
        cfg = self._config
        m = self.extract_metrics(candidate_metrics, behavior_metrics)

        narrower = subsumed = source = None
        if self._merge(m, cfg.min_gate_overlap_ratio, cfg.min_correlation_for_merge):
            kind = "merge"
        elif self._merge(m, cfg.strong_gate_overlap_ratio, cfg.strong_correlation_for_merge):
            kind = "merge_recommended"
        elif (subsumed := self._subsumed(m, cfg.max_exclusive_rate_for_subsumption)) is not None:
            kind = "subsumed"
        elif (subsumed := self._subsumed(m, cfg.max_exclusive_for_subsumption)) is not None:
            kind = "subsumed_recommended"
        elif (nesting := self._nesting(m)) is not None:
            narrower, containment, source = nesting
            kind = "nested_siblings" if containment >= cfg.nested_suppression_threshold else "needs_separation"
        elif self._needs_separation(m):
            kind = "needs_separation"
        else:
            kind = "not_redundant"

        result = Classification(
            type=kind,
            narrower_prototype=narrower,
            subsumed_prototype=subsumed,
            nesting_source=source,
            thresholds=self.thresholds(),
            metrics={k: v for k, v in m.items() if isinstance(v, float)},
        )
        self._logger.debug(
            f"OverlapClassifier: type={kind}, narrower={narrower}, subsumed={subsumed}, "
            f"gateOverlapRatio={m['gateOverlapRatio']:.3f}"
        )
        return result

    def check_near_miss(self, candidate_metrics: Any, behavior_metrics: Any) -> Dict[str, Any]:
        """Pairs that fell just short of merge thresholds."""
        cfg = self._config
        m = self.extract_metrics(candidate_metrics, behavior_metrics)
        flat = {k: v for k, v in m.items() if isinstance(v, float)}
        corr, ratio = m["pearsonCorrelation"], m["gateOverlapRatio"]
        near_corr = getattr(cfg, "near_miss_correlation_threshold", 0.9)
        near_ratio = getattr(cfg, "near_miss_gate_overlap_ratio", 0.75)

        if m["onEitherRate"] < cfg.min_on_either_rate_for_merge:
            return {"isNearMiss": False, "metrics": flat}

        high_corr = _at_least(corr, near_corr) and corr < cfg.min_correlation_for_merge
        high_overlap = near_ratio <= ratio < cfg.min_gate_overlap_ratio

        reasons = []
        if high_corr:
            reasons.append(f"correlation {corr:.3f} (threshold: {cfg.min_correlation_for_merge})")
        if high_overlap:
            reasons.append(f"gate overlap {ratio:.3f} (threshold: {cfg.min_gate_overlap_ratio})")
        if not reasons and _at_least(corr, near_corr) and ratio >= near_ratio:
            mad = m["meanAbsDiff"]
            if math.isnan(mad) or mad > cfg.max_mean_abs_diff_for_merge:
                shown = "NaN" if math.isnan(mad) else f"{mad:.3f}"
                reasons.append(f"mean abs diff {shown} (threshold: {cfg.max_mean_abs_diff_for_merge})")

        if not reasons:
            return {"isNearMiss": False, "metrics": flat}

        self._logger.debug(f"OverlapClassifier: Near-miss detected - {', '.join(reasons)}")
        return {
            "isNearMiss": True,
            "reason": "; ".join(reasons),
            "metrics": flat,
            "thresholdProximity": {
                "correlation": {
                    "value": corr,
                    "nearMissThreshold": near_corr,
                    "mergeThreshold": cfg.min_correlation_for_merge,
                    "met": high_corr or _at_least(corr, cfg.min_correlation_for_merge),
                },
                "gateOverlapRatio": {
                    "value": ratio,
                    "nearMissThreshold": near_ratio,
                    "mergeThreshold": cfg.min_gate_overlap_ratio,
                    "met": high_overlap or ratio >= cfg.min_gate_overlap_ratio,
                },
            },
        }
