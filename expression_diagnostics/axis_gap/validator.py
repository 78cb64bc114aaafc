"""
Candidate axis validation.

Each prototype is approximated by a sparse model that keeps only its strong
weights (|w| >= strong_axis_threshold); everything weaker is error. A good
new axis absorbs shared structure: prototypes that project onto it get a
residual with fewer strong components and smaller leftover error.

    baseline RMSE   sqrt(mean w^2 over weak entries, all prototypes x axes)
    with candidate  r = w - p * d for prototypes with |p| >= min_projection,
                    counting the candidate itself as a strong axis when
                    |p| >= strong_axis_threshold
    co-usage        mean over prototypes of C(strong axes, 2)

RMSE and co-usage reductions are relative; strong-axis reduction is an
absolute count. All reductions are floored at zero.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from expression_diagnostics.dependencies import require_config, require_numeric, validate_logger
from expression_diagnostics.models import (
    CandidateAxisValidation,
    ImprovementMetrics,
    as_record,
    prototype_id,
    prototype_weights,
)
from statistical import clamp01, is_finite_number

logger = logging.getLogger(__name__)

RECOMMEND_ADD_AXIS = "add_axis"
RECOMMEND_REFINE = "refine_prototypes"
RECOMMEND_INSUFFICIENT = "insufficient_data"

ERROR_INVALID_DIRECTION = "direction_null_or_invalid"
ERROR_ZERO_DIRECTION = "direction_near_zero_magnitude"

MIN_DIRECTION_NORM = 1e-9

REQUIRED_NUMERIC_FIELDS = (
    "strong_axis_threshold",
    "candidate_axis_min_projection",
    "candidate_axis_min_rmse_reduction",
    "candidate_axis_min_combined_score",
    "candidate_axis_min_affected_prototypes",
    "candidate_axis_min_strong_axis_reduction",
    "candidate_axis_min_co_usage_reduction",
    "candidate_axis_rmse_weight",
    "candidate_axis_strong_axis_weight",
    "candidate_axis_co_usage_weight",
)


def _pairs(count: int) -> float:
    return count * (count - 1) / 2


class CandidateAxisValidator:
    def __init__(self, config: Any, logger: Optional[Any] = None):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "CandidateAxisValidator")
        require_numeric(config, REQUIRED_NUMERIC_FIELDS, "CandidateAxisValidator", self._logger)

    def validate(
        self,
        prototypes: Optional[Sequence[Any]],
        existing_axes: Optional[Sequence[str]],
        candidates: Optional[Sequence[Any]],
    ) -> List[CandidateAxisValidation]:
        prototypes = list(prototypes or [])
        candidates = list(candidates or [])
        if len(prototypes) < 2 or not candidates:
            return []

        axes = list(existing_axes or [])
        if not axes:
            axes = sorted({axis for p in prototypes for axis in prototype_weights(p)})
        ids = [prototype_id(p, i) for i, p in enumerate(prototypes)]
        weights = [prototype_weights(p) for p in prototypes]

        baseline = self._model_metrics([[w.get(a, 0.0) for a in axes] for w in weights], [0] * len(weights))
        self._logger.debug(
            f"CandidateAxisValidator: baseline rmse={baseline[0]:.4f}, strongAxes={baseline[1]}, "
            f"coUsage={baseline[2]:.3f} over {len(prototypes)} prototypes x {len(axes)} axes"
        )
        return [self._validate_one(as_record(c), axes, ids, weights, baseline) for c in candidates]

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def _model_metrics(
        self, rows: Sequence[Sequence[float]], extra_strong: Sequence[int]
    ) -> Tuple[float, int, float]:
        """(rmse, total strong count, mean co-usage) for a sparse strong-axis model."""
        t = self._config.strong_axis_threshold
        entries = sum(len(r) for r in rows)
        weak_sq = 0.0
        strong_total = 0
        co_usage = 0.0
        for row, extra in zip(rows, extra_strong):
            strong = sum(1 for v in row if abs(v) >= t) + extra
            weak_sq += sum(v * v for v in row if abs(v) < t)
            strong_total += strong
            co_usage += _pairs(strong)
        rmse = math.sqrt(weak_sq / entries) if entries else 0.0
        return rmse, strong_total, co_usage / len(rows) if rows else 0.0

    def _validate_one(
        self,
        candidate: Mapping[str, Any],
        axes: List[str],
        ids: List[str],
        weights: List[Dict[str, float]],
        baseline: Tuple[float, int, float],
    ) -> CandidateAxisValidation:
        cfg = self._config
        candidate_id = candidate.get("candidateId", "unknown")
        source = candidate.get("source", "unknown")
        raw = candidate.get("direction")

        error = None
        direction: Dict[str, float] = {}
        if not isinstance(raw, Mapping) or not raw:
            error = ERROR_INVALID_DIRECTION
        else:
            # non-finite components are dropped; nothing left counts as zero magnitude
            direction = {axis: float(v) for axis, v in raw.items() if is_finite_number(v)}
            norm = math.sqrt(sum(v * v for v in direction.values()))
            if norm < MIN_DIRECTION_NORM:
                error = ERROR_ZERO_DIRECTION
                direction = {}
            else:
                direction = {axis: v / norm for axis, v in direction.items()}
        if error is not None:
            self._logger.warning(f"CandidateAxisValidator: {candidate_id} rejected ({error})")
            return CandidateAxisValidation(
                candidate_id=candidate_id,
                source=source,
                is_recommended=False,
                recommendation=RECOMMEND_INSUFFICIENT,
                affected_prototypes=[],
                improvement=ImprovementMetrics(),
                rationale=f"Candidate direction is unusable: {error}",
                validation_error=error,
                direction={},
            )

        space = axes + sorted(a for a in direction if a not in axes)
        d = [direction.get(a, 0.0) for a in space]
        rows: List[List[float]] = []
        extra: List[int] = []
        affected: List[str] = []
        for pid, w in zip(ids, weights):
            row = [w.get(a, 0.0) if a in axes else 0.0 for a in space]
            projection = sum(v * dv for v, dv in zip(row, d))
            if abs(projection) >= cfg.candidate_axis_min_projection:
                affected.append(pid)
                row = [v - projection * dv for v, dv in zip(row, d)]
                extra.append(1 if abs(projection) >= cfg.strong_axis_threshold else 0)
            else:
                extra.append(0)
            rows.append(row)

        # pad baseline to the same entry count when the direction adds axes
        base_rmse, base_strong, base_co = baseline
        if len(space) > len(axes) and axes:
            base_rmse *= math.sqrt(len(axes) / len(space))
        rmse, strong, co = self._model_metrics(rows, extra)

        rmse_reduction = max(0.0, (base_rmse - rmse) / base_rmse) if base_rmse > 0 else 0.0
        strong_reduction = max(0, base_strong - strong)
        co_reduction = max(0.0, (base_co - co) / base_co) if base_co > 0 else 0.0
        strong_relative = strong_reduction / base_strong if base_strong > 0 else 0.0
        combined = clamp01(
            cfg.candidate_axis_rmse_weight * rmse_reduction
            + cfg.candidate_axis_strong_axis_weight * strong_relative
            + cfg.candidate_axis_co_usage_weight * co_reduction
        )
        improvement = ImprovementMetrics(
            rmse_reduction=rmse_reduction,
            strong_axis_reduction=strong_reduction,
            co_usage_reduction=co_reduction,
            combined_score=combined,
        )

        affected.sort()
        if len(affected) < cfg.candidate_axis_min_affected_prototypes:
            recommendation = RECOMMEND_INSUFFICIENT
            rationale = (
                f"Only {len(affected)} prototype(s) project onto the candidate "
                f"(minimum {cfg.candidate_axis_min_affected_prototypes})."
            )
        elif rmse_reduction >= cfg.candidate_axis_min_rmse_reduction and combined >= cfg.candidate_axis_min_combined_score:
            recommendation = RECOMMEND_ADD_AXIS
            rationale = (
                f"Adding the axis reduces RMSE by {rmse_reduction:.1%} across {len(affected)} prototypes "
                f"(combined score {combined:.3f})."
            )
        else:
            recommendation = RECOMMEND_REFINE
            rationale = (
                f"Improvement is below the add-axis bar (RMSE reduction {rmse_reduction:.1%}, "
                f"combined score {combined:.3f}); refine the affected prototypes instead."
            )
        if recommendation != RECOMMEND_INSUFFICIENT:
            met = []
            if strong_reduction >= cfg.candidate_axis_min_strong_axis_reduction:
                met.append(f"strong axes -{strong_reduction}")
            if co_reduction >= cfg.candidate_axis_min_co_usage_reduction:
                met.append(f"co-usage -{co_reduction:.1%}")
            if met:
                rationale += f" Also: {', '.join(met)}."

        self._logger.debug(
            f"CandidateAxisValidator: {candidate_id} -> {recommendation} "
            f"(rmse -{rmse_reduction:.3f}, strong -{strong_reduction}, co-usage -{co_reduction:.3f})"
        )
        return CandidateAxisValidation(
            candidate_id=candidate_id,
            source=source,
            is_recommended=recommendation == RECOMMEND_ADD_AXIS,
            recommendation=recommendation,
            affected_prototypes=affected,
            improvement=improvement,
            rationale=rationale,
            validation_error=None,
            direction=direction,
        )
