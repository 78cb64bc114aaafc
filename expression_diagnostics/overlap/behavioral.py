"""
Stage B: behavioral overlap by Monte Carlo sampling.

Both prototypes are evaluated against the same synthetic world states. The
evaluator counts who fires, compares intensities where both fire, and keeps
the most divergent co-firing samples as evidence.

Conditional pass rates follow one convention:
    pA_given_B = coPassCount / passBCount
    - exactly 1.0 when B's gates deterministically imply A's
    - 0.0 when passBCount is zero or below min_pass_samples_for_conditional
and symmetrically for pB_given_A, so classification never sees NaN there.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import math
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from expression_diagnostics.contracts import (
    CONTEXT_BUILDER_METHODS,
    EXTRACTOR_METHODS,
    GATE_CHECKER_METHODS,
    INTENSITY_CALCULATOR_METHODS,
    STATE_GENERATOR_METHODS,
)
from expression_diagnostics.dependencies import (
    require_collaborator,
    require_config,
    require_numeric,
    validate_logger,
)
from expression_diagnostics.gates.extractor import PARSE_COMPLETE
from expression_diagnostics.models import (
    BehaviorMetrics,
    GateOverlapStats,
    ImplicationResult,
    IntensityStats,
    PassRates,
    prototype_gates,
    prototype_weights,
)
from statistical import fraction_within, mean_abs_diff, pearson_correlation, rmse

logger = logging.getLogger(__name__)

CHUNK_SIZE = 500
CONTEXT_SUMMARY_AXES = 3

REQUIRED_NUMERIC_FIELDS = ("sample_count_per_pair", "divergence_examples_k", "dominance_delta")

ProgressCallback = Callable[[int, int], None]


def _conditional(
    co_pass: int, given_count: int, min_samples: int, guaranteed: bool
) -> float:
    if guaranteed:
        return 1.0
    if given_count == 0 or given_count < min_samples:
        return 0.0
    return co_pass / given_count


class BehavioralOverlapEvaluator:
    def __init__(
        self,
        config: Any,
        prototype_intensity_calculator: Any,
        random_state_generator: Any,
        context_builder: Any,
        prototype_gate_checker: Any,
        gate_constraint_extractor: Any,
        gate_implication_evaluator: Any,
        logger: Optional[Any] = None,
    ):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "BehavioralOverlapEvaluator")
        require_numeric(config, REQUIRED_NUMERIC_FIELDS, "BehavioralOverlapEvaluator", self._logger)
        self._intensity = require_collaborator(
            prototype_intensity_calculator, "prototype_intensity_calculator", INTENSITY_CALCULATOR_METHODS
        )
        self._generator = require_collaborator(
            random_state_generator, "random_state_generator", STATE_GENERATOR_METHODS
        )
        self._context_builder = require_collaborator(
            context_builder, "context_builder", CONTEXT_BUILDER_METHODS
        )
        self._gate_checker = require_collaborator(
            prototype_gate_checker, "prototype_gate_checker", GATE_CHECKER_METHODS
        )
        self._extractor = require_collaborator(
            gate_constraint_extractor, "gate_constraint_extractor", EXTRACTOR_METHODS
        )
        self._implication = require_collaborator(
            gate_implication_evaluator, "gate_implication_evaluator", ("evaluate",)
        )

    # ------------------------------------------------------------------
    # Gate structure
    # ------------------------------------------------------------------

    def _gate_structure(
        self, gates_a: List[str], gates_b: List[str]
    ) -> Tuple[Optional[ImplicationResult], Dict[str, Any]]:
        extracted_a = self._extractor.extract(gates_a)
        extracted_b = self._extractor.extract(gates_b)
        implication = None
        if extracted_a.parse_status == PARSE_COMPLETE and extracted_b.parse_status == PARSE_COMPLETE:
            implication = self._implication.evaluate(extracted_a.intervals, extracted_b.intervals)

        def info(gates: List[str], extracted: Any) -> Dict[str, Any]:
            unparsed = list(getattr(extracted, "unparsed_gates", []) or [])
            return {
                "parseStatus": extracted.parse_status,
                "parsedGateCount": len(gates) - len(unparsed),
                "totalGateCount": len(gates),
                "unparsedGates": unparsed,
            }

        return implication, {"prototypeA": info(gates_a, extracted_a), "prototypeB": info(gates_b, extracted_b)}

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    async def evaluate(
        self,
        prototype_a: Mapping[str, Any],
        prototype_b: Mapping[str, Any],
        sample_count: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BehaviorMetrics:
        cfg = self._config
        total = int(sample_count) if sample_count and sample_count > 0 else int(cfg.sample_count_per_pair)
        k = int(cfg.divergence_examples_k)
        delta = float(cfg.dominance_delta)
        high_thresholds = tuple(getattr(cfg, "high_thresholds", (0.4, 0.6, 0.75)))

        gates_a = prototype_gates(prototype_a)
        gates_b = prototype_gates(prototype_b)
        weights_a = prototype_weights(prototype_a)
        weights_b = prototype_weights(prototype_b)
        implication, parse_info = self._gate_structure(gates_a, gates_b)

        on_both = p_only = q_only = 0
        co_a: List[float] = []
        co_b: List[float] = []
        dominance_p = dominance_q = 0
        global_a: List[float] = []
        global_b: List[float] = []
        counters = [
            {"t": t, "highA": 0, "highB": 0, "highBoth": 0, "eitherHigh": 0, "agreement": 0}
            for t in high_thresholds
        ]
        # min-heap of (absDiff, tiebreak, example)
        heap: List[Tuple[float, int, Dict[str, Any]]] = []
        tiebreak = itertools.count()

        processed = 0
        while processed < total:
            chunk_end = min(processed + CHUNK_SIZE, total)
            for _ in range(processed, chunk_end):
                state = self._generator.generate()
                context = self._context_builder.build_context(
                    state.get("current"), state.get("previous"), state.get("affectTraits")
                )
                pass_a = bool(self._gate_checker.check_all_gates_pass(gates_a, context))
                pass_b = bool(self._gate_checker.check_all_gates_pass(gates_b, context))
                intensity_a = self._intensity.compute_intensity(prototype_a, context) if pass_a else 0.0
                intensity_b = self._intensity.compute_intensity(prototype_b, context) if pass_b else 0.0
                global_a.append(intensity_a)
                global_b.append(intensity_b)

                if pass_a or pass_b:
                    for c in counters:
                        high_a = intensity_a >= c["t"]
                        high_b = intensity_b >= c["t"]
                        c["highA"] += high_a
                        c["highB"] += high_b
                        c["highBoth"] += high_a and high_b
                        c["eitherHigh"] += high_a or high_b
                        c["agreement"] += high_a == high_b

                if pass_a and pass_b:
                    on_both += 1
                    co_a.append(intensity_a)
                    co_b.append(intensity_b)
                    if intensity_a > intensity_b + delta:
                        dominance_p += 1
                    if intensity_b > intensity_a + delta:
                        dominance_q += 1
                    abs_diff = abs(intensity_a - intensity_b)
                    if k > 0 and (len(heap) < k or abs_diff > heap[0][0]):
                        example = {
                            "context": dict(context),
                            "intensityA": intensity_a,
                            "intensityB": intensity_b,
                            "absDiff": abs_diff,
                            "contextSummary": self._context_summary(context, weights_a, weights_b),
                        }
                        entry = (abs_diff, next(tiebreak), example)
                        if len(heap) < k:
                            heapq.heappush(heap, entry)
                        else:
                            heapq.heapreplace(heap, entry)
                elif pass_a:
                    p_only += 1
                elif pass_b:
                    q_only += 1

            processed = chunk_end
            if processed < total:
                await asyncio.sleep(0)
            if on_progress is not None:
                on_progress(processed, total)

        on_either = on_both + p_only + q_only
        pass_a_count = on_both + p_only
        pass_b_count = on_both + q_only

        gate_overlap = GateOverlapStats(
            on_either_rate=on_either / total,
            on_both_rate=on_both / total,
            p_only_rate=p_only / total,
            q_only_rate=q_only / total,
        )

        joint = len(co_a)
        stats = IntensityStats(
            dominance_p=dominance_p / joint if joint else 0.0,
            dominance_q=dominance_q / joint if joint else 0.0,
        )
        if joint and joint >= int(getattr(cfg, "min_co_pass_samples", 1)):
            stats.pearson_correlation = pearson_correlation(co_a, co_b)
            stats.mean_abs_diff = mean_abs_diff(co_a, co_b)
            stats.rmse = rmse(co_a, co_b)
            stats.pct_within_eps = fraction_within(co_a, co_b, float(getattr(cfg, "intensity_eps", 0.05)))

        deterministic = implication is not None and not implication.is_vacuous
        min_samples = int(getattr(cfg, "min_pass_samples_for_conditional", 1))
        pass_rates = PassRates(
            pass_a_rate=pass_a_count / total,
            pass_b_rate=pass_b_count / total,
            p_a_given_b=_conditional(on_both, pass_b_count, min_samples, deterministic and implication.b_implies_a),
            p_b_given_a=_conditional(on_both, pass_a_count, min_samples, deterministic and implication.a_implies_b),
            co_pass_count=on_both,
            pass_a_count=pass_a_count,
            pass_b_count=pass_b_count,
        )

        high_coactivation = {
            "thresholds": [
                {
                    "t": c["t"],
                    "pHighA": c["highA"] / on_either if on_either else 0.0,
                    "pHighB": c["highB"] / on_either if on_either else 0.0,
                    "pHighBoth": c["highBoth"] / on_either if on_either else 0.0,
                    "highJaccard": c["highBoth"] / c["eitherHigh"] if c["eitherHigh"] else 0.0,
                    "highAgreement": c["agreement"] / on_either if on_either else 0.0,
                }
                for c in counters
            ]
        }

        global_metrics = {
            "globalMeanAbsDiff": mean_abs_diff(global_a, global_b),
            "globalL2Distance": rmse(global_a, global_b),
            "globalOutputCorrelation": pearson_correlation(global_a, global_b),
        }

        examples = [entry[2] for entry in sorted(heap, key=lambda e: (-e[0], e[1]))]

        corr = stats.pearson_correlation
        self._logger.debug(
            f"BehavioralOverlapEvaluator: Completed {total} samples, "
            f"onBothRate={gate_overlap.on_both_rate:.4f}, "
            f"correlation={'NaN' if math.isnan(corr) else f'{corr:.4f}'}, "
            f"gateImplication={implication.relation if implication else 'none'}"
        )

        return BehaviorMetrics(
            gate_overlap=gate_overlap,
            intensity=stats,
            pass_rates=pass_rates,
            divergence_examples=examples,
            high_coactivation=high_coactivation,
            global_metrics=global_metrics,
            gate_implication=implication,
            gate_parse_info=parse_info,
            sample_count=total,
        )

    @staticmethod
    def _context_summary(
        context: Mapping[str, float], weights_a: Mapping[str, float], weights_b: Mapping[str, float]
    ) -> str:
        relevant = [axis for axis in set(weights_a) | set(weights_b) if axis in context]
        relevant.sort(key=lambda axis: (-abs(context[axis]), axis))
        return ", ".join(f"{axis}: {context[axis]:.2f}" for axis in relevant[:CONTEXT_SUMMARY_AXES])
