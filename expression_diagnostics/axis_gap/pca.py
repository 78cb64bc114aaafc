"""
PCA over the prototype weight matrix.

Rows are prototypes, columns are weight axes. If the axes the prototypes
actually use were a complete basis, the first ``axisCount`` components would
carry nearly all variance; what is left (the residual) hints at a missing
dimension. The first residual component is reported as a direction so a
candidate axis can be proposed from it.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Set

import numpy as np

from expression_diagnostics.dependencies import require_config, require_numeric, validate_logger
from expression_diagnostics.gates.constraint import GateConstraint
from expression_diagnostics.models import prototype_gates, prototype_id, prototype_weights
from expression_diagnostics.overlap.sampling import AFFECT_TRAIT_AXES, MOOD_AXES, SEXUAL_AXES
from statistical import (
    count_significant_components_broken_stick,
    count_significant_components_kaiser,
    median,
)

logger = logging.getLogger(__name__)

DEFINED_AXES = MOOD_AXES + SEXUAL_AXES + AFFECT_TRAIT_AXES

TOP_LOADING_LIMIT = 10
RECONSTRUCTION_ERROR_LIMIT = 5
EXCLUDED_RELIANCE_THRESHOLD = 0.25
MATERIAL_VARIANCE_CHANGE = 0.02

REQUIRED_NUMERIC_FIELDS = ("active_axis_epsilon", "pca_kaiser_threshold", "pca_min_axis_usage_ratio")


def empty_pca_result(
    excluded_sparse_axes: Sequence[str] = (),
    unused_defined_axes: Sequence[str] = (),
    unused_in_gates: Sequence[str] = (),
    unused_defined_used_in_gates: Sequence[str] = (),
    unused_defined_not_in_gates: Sequence[str] = (),
) -> Dict[str, Any]:
    return {
        "residualVarianceRatio": 0.0,
        "additionalSignificantComponents": 0,
        "significantComponentCount": 0,
        "expectedComponentCount": 0,
        "significantBeyondExpected": 0,
        "axisCount": 0,
        "topLoadingPrototypes": [],
        "dimensionsUsed": [],
        "excludedSparseAxes": list(excluded_sparse_axes),
        "unusedDefinedAxes": list(unused_defined_axes),
        "unusedDefinedUsedInGates": list(unused_defined_used_in_gates),
        "unusedDefinedNotInGates": list(unused_defined_not_in_gates),
        "unusedInGates": list(unused_in_gates),
        "cumulativeVariance": [],
        "explainedVariance": [],
        "componentsFor80Pct": 0,
        "componentsFor90Pct": 0,
        "reconstructionErrors": [],
        "residualEigenvector": None,
        "residualEigenvectorIndex": -1,
    }


class PCAAnalysisService:
    def __init__(
        self,
        config: Any,
        logger: Optional[Any] = None,
        defined_axes: Sequence[str] = DEFINED_AXES,
    ):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "PCAAnalysisService")
        require_numeric(config, REQUIRED_NUMERIC_FIELDS, "PCAAnalysisService", self._logger)
        self._defined_axes = tuple(defined_axes)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def analyze(self, prototypes: Optional[Sequence[Any]], min_axis_usage_ratio: Optional[float] = None) -> Dict[str, Any]:
        if not isinstance(prototypes, (list, tuple)) or len(prototypes) < 2:
            return empty_pca_result()
        usage_ratio = (
            self._config.pca_min_axis_usage_ratio if min_axis_usage_ratio is None else min_axis_usage_ratio
        )

        axes, excluded, unused_defined = self._select_axes(prototypes, usage_ratio)
        gate_axes = self._gate_axes(prototypes)
        unused_in_gates = sorted(a for a in axes if a not in gate_axes)
        unused_defined_in_gates = [a for a in unused_defined if a in gate_axes]
        unused_defined_not_in_gates = [a for a in unused_defined if a not in gate_axes]

        def empty() -> Dict[str, Any]:
            return empty_pca_result(
                excluded, unused_defined, unused_in_gates, unused_defined_in_gates, unused_defined_not_in_gates
            )

        if not axes:
            return empty()
        ids = [prototype_id(p, i) for i, p in enumerate(prototypes)]
        matrix = np.array(
            [[prototype_weights(p).get(axis, 0.0) for axis in axes] for p in prototypes], dtype=float
        )
        if not np.any(matrix != 0):
            return empty()

        normalized = self._normalize(matrix)
        if not np.any(normalized != 0):
            return empty()

        covariance = normalized.T @ normalized / (normalized.shape[0] - 1)
        values, vectors = np.linalg.eigh(covariance)
        order = np.argsort(values)[::-1]
        values = values[order]
        # rows are eigenvectors
        vectors = vectors[:, order].T
        total_variance = float(values.sum())
        if total_variance <= 0:
            return empty()

        cumulative = np.cumsum(values) / total_variance
        explained = values / total_variance
        for_80 = self._components_for(cumulative, 0.8, len(axes))
        for_90 = self._components_for(cumulative, 0.9, len(axes))

        eigenvalues = [float(v) for v in values]
        axis_count = self._expected_axis_count(prototypes, axes, eigenvalues, total_variance, for_80, for_90)
        residual_ratio = min(1.0, max(0.0, float(values[axis_count:].sum()) / total_variance))
        significant = self._significant_components(eigenvalues, total_variance)
        beyond = max(0, significant - axis_count)

        residual_vector = None
        residual_index = -1
        if axis_count < len(vectors):
            residual_index = axis_count
            residual_vector = {axis: float(vectors[axis_count][i]) for i, axis in enumerate(axes)}

        result = {
            "residualVarianceRatio": residual_ratio,
            "additionalSignificantComponents": beyond,
            "significantComponentCount": significant,
            "expectedComponentCount": axis_count,
            "significantBeyondExpected": beyond,
            "axisCount": axis_count,
            "topLoadingPrototypes": self._top_loadings(normalized, vectors, axis_count, ids),
            "dimensionsUsed": list(axes),
            "excludedSparseAxes": excluded,
            "unusedDefinedAxes": unused_defined,
            "unusedDefinedUsedInGates": unused_defined_in_gates,
            "unusedDefinedNotInGates": unused_defined_not_in_gates,
            "unusedInGates": unused_in_gates,
            "cumulativeVariance": [float(v) for v in cumulative],
            "explainedVariance": [float(v) for v in explained],
            "componentsFor80Pct": for_80,
            "componentsFor90Pct": for_90,
            "reconstructionErrors": self._reconstruction_errors(
                normalized, vectors, axis_count, ids, prototypes, excluded
            ),
            "residualEigenvector": residual_vector,
            "residualEigenvectorIndex": residual_index,
        }
        self._logger.debug(
            f"PCAAnalysisService: {len(axes)} axes, expected={axis_count}, significant={significant}, "
            f"residual={residual_ratio:.3f}"
        )
        return result

    def analyze_with_comparison(self, prototypes: Optional[Sequence[Any]]) -> Dict[str, Any]:
        """Run with and without sparse-axis filtering and report the difference."""
        dense = self.analyze(prototypes)
        full = self.analyze(prototypes, min_axis_usage_ratio=0.0)

        delta_significant = full["significantComponentCount"] - dense["significantComponentCount"]
        delta_residual = full["residualVarianceRatio"] - dense["residualVarianceRatio"]
        delta_rmse = self._average_error(full["reconstructionErrors"]) - self._average_error(
            dense["reconstructionErrors"]
        )
        material = abs(delta_residual) > MATERIAL_VARIANCE_CHANGE or delta_significant != 0
        return {
            "dense": dense,
            "full": full,
            "comparison": {
                "deltaSignificant": delta_significant,
                "deltaResidualVariance": delta_residual,
                "deltaRMSE": delta_rmse,
                "filteringImpactSummary": (
                    "Sparse filtering materially changed PCA conclusions."
                    if material
                    else "Sparse filtering did not materially change PCA conclusions."
                ),
            },
        }

    # ------------------------------------------------------------------
    # Matrix construction
    # ------------------------------------------------------------------

    def _select_axes(self, prototypes: Sequence[Any], usage_ratio: float):
        weights = [prototype_weights(p) for p in prototypes]
        used: Set[str] = set()
        for w in weights:
            used.update(w)
        axes = sorted(used)
        unused_defined = [a for a in self._defined_axes if a not in used]

        excluded: List[str] = []
        if usage_ratio > 0:
            min_count = max(2, math.ceil(len(prototypes) * usage_ratio))
            dense = []
            for axis in axes:
                usage = sum(1 for w in weights if abs(w.get(axis, 0.0)) > 0)
                (dense if usage >= min_count else excluded).append(axis)
            axes = dense

        # more axes than rows leaves the covariance rank-deficient
        limit = min(len(axes), len(prototypes))
        if len(axes) > limit:
            variances = {
                axis: float(np.var([w.get(axis, 0.0) for w in weights])) for axis in axes
            }
            axes = sorted(axes, key=lambda a: -variances[a])[:limit]
        return axes, excluded, unused_defined

    @staticmethod
    def _gate_axes(prototypes: Sequence[Any]) -> Set[str]:
        axes: Set[str] = set()
        for proto in prototypes:
            for gate in prototype_gates(proto):
                try:
                    axes.add(GateConstraint.parse(gate).axis)
                except ValueError:
                    continue
        return axes

    def _normalize(self, matrix: np.ndarray) -> np.ndarray:
        centered = matrix - matrix.mean(axis=0)
        if self._config.pca_normalization_method != "z-score":
            return centered
        std = matrix.std(axis=0, ddof=1) if matrix.shape[0] > 1 else np.zeros(matrix.shape[1])
        safe = np.where(std > 0, std, 1.0)
        return np.where(std > 0, centered / safe, 0.0)

    # ------------------------------------------------------------------
    # Dimensionality
    # ------------------------------------------------------------------

    @staticmethod
    def _components_for(cumulative: np.ndarray, share: float, axis_total: int) -> int:
        hits = np.nonzero(cumulative >= share)[0]
        return int(hits[0]) + 1 if hits.size else axis_total

    def _expected_axis_count(
        self,
        prototypes: Sequence[Any],
        axes: Sequence[str],
        eigenvalues: List[float],
        total_variance: float,
        for_80: int,
        for_90: int,
    ) -> int:
        method = self._config.pca_expected_dimension_method
        if method == "variance-80":
            return max(1, min(for_80, len(axes)))
        if method == "variance-90":
            return max(1, min(for_90, len(axes)))
        if method == "broken-stick":
            count = count_significant_components_broken_stick(eigenvalues, total_variance)
            return max(1, min(count, len(axes)))

        eps = self._config.active_axis_epsilon
        counts = [
            sum(1 for axis in axes if abs(prototype_weights(p).get(axis, 0.0)) >= eps) for p in prototypes
        ]
        return min(max(1, int(math.floor(median(counts)))), len(axes))

    def _significant_components(self, eigenvalues: List[float], total_variance: float) -> int:
        if self._config.pca_component_significance_method == "broken-stick":
            return count_significant_components_broken_stick(eigenvalues, total_variance)
        return count_significant_components_kaiser(eigenvalues, self._config.pca_kaiser_threshold)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    @staticmethod
    def _top_loadings(
        normalized: np.ndarray, vectors: np.ndarray, axis_count: int, ids: List[str]
    ) -> List[Dict[str, Any]]:
        if axis_count >= len(vectors):
            return []
        projections = normalized @ vectors[axis_count]
        scored = [{"prototypeId": ids[i], "loading": float(v)} for i, v in enumerate(projections)]
        scored.sort(key=lambda s: -abs(s["loading"]))
        return scored[:TOP_LOADING_LIMIT]

    @staticmethod
    def _reconstruction_errors(
        normalized: np.ndarray,
        vectors: np.ndarray,
        axis_count: int,
        ids: List[str],
        prototypes: Sequence[Any],
        excluded: Sequence[str],
    ) -> List[Dict[str, Any]]:
        if axis_count <= 0 or normalized.size == 0:
            return []
        basis = vectors[: min(axis_count, len(vectors))]
        reconstructed = (normalized @ basis.T) @ basis
        errors = np.sqrt(np.mean((normalized - reconstructed) ** 2, axis=1))

        excluded_set = set(excluded)
        results = []
        for i, err in enumerate(errors):
            weights = prototype_weights(prototypes[i])
            total = sum(w * w for w in weights.values())
            outside = sum(w * w for axis, w in weights.items() if axis in excluded_set)
            reliance = outside / total if total > 0 else 0.0
            results.append({
                "prototypeId": ids[i],
                "error": float(err),
                "excludedAxisReliance": reliance,
                "reliesOnExcludedAxes": reliance > EXCLUDED_RELIANCE_THRESHOLD,
            })
        results.sort(key=lambda r: -r["error"])
        return results[:RECONSTRUCTION_ERROR_LIMIT]

    @staticmethod
    def _average_error(errors: Sequence[Dict[str, Any]]) -> float:
        if not errors:
            return 0.0
        return sum(e["error"] for e in errors) / len(errors)
