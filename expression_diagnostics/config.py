"""
Prototype overlap / axis-gap configuration.

All thresholds used by the diagnostics services live on one dataclass. A
config can be built from defaults, from a dict (snake_case or camelCase keys),
or from a YAML file whose top-level sections are flattened into fields.

    config = PrototypeOverlapConfig.from_file("config/prototype_overlap.yaml")
    result = validate_config(config)
    if not result.valid:
        ...
"""

from __future__ import annotations

import logging
import math
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from expression_diagnostics.errors import DiagnosticsConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/prototype_overlap.yaml"
CONFIG_ENV_VAR = "EXPRDIAG_OVERLAP_CONFIG"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class PrototypeOverlapConfig:
    """Thresholds for overlap analysis and axis-gap detection."""

    # Stage A: structural candidate filtering
    active_axis_epsilon: float = 0.08
    strong_axis_threshold: float = 0.25
    candidate_min_active_axis_overlap: float = 0.6
    candidate_min_sign_agreement: float = 0.8
    candidate_min_cosine_similarity: float = 0.85
    soft_sign_threshold: float = 0.15
    jaccard_empty_set_value: float = 1.0
    max_candidate_pairs: int = 5000

    # Route B: gate-structure filtering
    enable_multi_route_filtering: bool = True
    gate_based_min_interval_overlap: float = 0.6
    strict_epsilon: float = 1e-6

    # Stage B: behavioral sampling
    sample_count_per_pair: int = 8000
    divergence_examples_k: int = 5
    dominance_delta: float = 0.05
    min_co_pass_samples: int = 200
    min_pass_samples_for_conditional: int = 1
    intensity_eps: float = 0.05
    high_thresholds: Tuple[float, ...] = (0.4, 0.6, 0.75)

    # Stage C: classification
    min_on_either_rate_for_merge: float = 0.05
    min_gate_overlap_ratio: float = 0.9
    min_correlation_for_merge: float = 0.98
    max_mean_abs_diff_for_merge: float = 0.03
    strong_gate_overlap_ratio: float = 0.8
    strong_correlation_for_merge: float = 0.9
    max_exclusive_rate_for_subsumption: float = 0.01
    max_exclusive_for_subsumption: float = 0.05
    min_correlation_for_subsumption: float = 0.95
    min_dominance_for_subsumption: float = 0.95
    nested_conditional_threshold: float = 0.9
    nested_suppression_threshold: float = 0.97
    separation_min_gate_overlap_ratio: float = 0.7
    separation_min_correlation: float = 0.8
    near_miss_correlation_threshold: float = 0.9
    near_miss_gate_overlap_ratio: float = 0.75

    # Stage D: recommendations
    band_margin: float = 0.05
    max_near_miss_pairs_to_report: int = 10
    composite_score_gate_overlap_weight: float = 0.3
    composite_score_correlation_weight: float = 0.2
    composite_score_global_diff_weight: float = 0.5

    # Axis gap: PCA
    pca_residual_variance_threshold: float = 0.15
    pca_require_corroboration: bool = True
    pca_kaiser_threshold: float = 1.0
    pca_component_significance_method: str = "broken-stick"
    pca_min_axis_usage_ratio: float = 0.1
    pca_normalization_method: str = "center-only"
    pca_expected_dimension_method: str = "variance-80"
    reconstruction_error_threshold: float = 0.5

    # Axis gap: multi-axis conflicts
    conflict_min_active_axes: int = 5
    conflict_max_sign_balance: float = 0.4

    # Axis gap: candidate axes
    candidate_axis_min_extraction_confidence: float = 0.3
    candidate_axis_max_candidates: int = 10
    candidate_axis_min_rmse_reduction: float = 0.1
    candidate_axis_min_strong_axis_reduction: int = 1
    candidate_axis_min_co_usage_reduction: float = 0.1
    candidate_axis_rmse_weight: float = 0.5
    candidate_axis_strong_axis_weight: float = 0.3
    candidate_axis_co_usage_weight: float = 0.2
    candidate_axis_min_combined_score: float = 0.15
    candidate_axis_min_affected_prototypes: int = 3
    candidate_axis_min_projection: float = 0.3

    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls) if f.name != "extra"]

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PrototypeOverlapConfig":
        """Build from a flat mapping; unknown keys are kept in ``extra`` and logged."""
        known = set(cls.field_names())
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = _snake_case(key)
            if name in known:
                kwargs[name] = tuple(value) if name == "high_thresholds" else value
            else:
                extra[key] = value
        if extra:
            logger.warning(f"Unknown prototype overlap config keys ignored: {sorted(extra)}")
        return cls(extra=extra, **kwargs)

    @classmethod
    def from_file(cls, path: Path | str) -> "PrototypeOverlapConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        flat: Dict[str, Any] = {}
        for key, value in data.items():
            # Top-level mappings are grouping sections
            if isinstance(value, Mapping):
                flat.update(value)
            else:
                flat[key] = value
        return cls.from_dict(flat)

    def with_overrides(self, **overrides: Any) -> "PrototypeOverlapConfig":
        data = self.to_dict()
        data.update(overrides)
        return PrototypeOverlapConfig.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.field_names()}


def load_config_from_env() -> Optional[PrototypeOverlapConfig]:
    """Load config when the configured YAML exists."""
    config_path = os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
    path = Path(config_path)
    if not path.exists():
        return None
    return PrototypeOverlapConfig.from_file(path)


def _snake_case(key: str) -> str:
    if "_" in key or key.islower():
        return key
    # RMSE-style acronyms stay grouped: candidateAxisMinRMSEReduction
    key = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", key)
    key = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key)
    return key.lower()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

PROBABILITY_FIELDS = (
    "active_axis_epsilon",
    "strong_axis_threshold",
    "candidate_min_active_axis_overlap",
    "candidate_min_sign_agreement",
    "soft_sign_threshold",
    "jaccard_empty_set_value",
    "gate_based_min_interval_overlap",
    "dominance_delta",
    "intensity_eps",
    "min_on_either_rate_for_merge",
    "min_gate_overlap_ratio",
    "max_mean_abs_diff_for_merge",
    "strong_gate_overlap_ratio",
    "max_exclusive_rate_for_subsumption",
    "max_exclusive_for_subsumption",
    "min_dominance_for_subsumption",
    "nested_conditional_threshold",
    "nested_suppression_threshold",
    "separation_min_gate_overlap_ratio",
    "near_miss_gate_overlap_ratio",
    "band_margin",
    "composite_score_gate_overlap_weight",
    "composite_score_correlation_weight",
    "composite_score_global_diff_weight",
    "pca_residual_variance_threshold",
    "pca_min_axis_usage_ratio",
    "conflict_max_sign_balance",
    "candidate_axis_min_extraction_confidence",
    "candidate_axis_min_rmse_reduction",
    "candidate_axis_min_co_usage_reduction",
    "candidate_axis_rmse_weight",
    "candidate_axis_strong_axis_weight",
    "candidate_axis_co_usage_weight",
    "candidate_axis_min_combined_score",
    "candidate_axis_min_projection",
)

CORRELATION_FIELDS = (
    "candidate_min_cosine_similarity",
    "min_correlation_for_merge",
    "strong_correlation_for_merge",
    "min_correlation_for_subsumption",
    "separation_min_correlation",
    "near_miss_correlation_threshold",
)

POSITIVE_INT_FIELDS = (
    "max_candidate_pairs",
    "sample_count_per_pair",
    "divergence_examples_k",
    "min_co_pass_samples",
    "min_pass_samples_for_conditional",
    "max_near_miss_pairs_to_report",
    "conflict_min_active_axes",
    "candidate_axis_max_candidates",
    "candidate_axis_min_strong_axis_reduction",
    "candidate_axis_min_affected_prototypes",
)

# (lesser, greater, strict)
ORDERING_CONSTRAINTS = (
    ("active_axis_epsilon", "strong_axis_threshold", True),
    ("min_correlation_for_subsumption", "min_correlation_for_merge", False),
    ("near_miss_correlation_threshold", "min_correlation_for_merge", True),
    ("near_miss_gate_overlap_ratio", "min_gate_overlap_ratio", True),
    ("strong_gate_overlap_ratio", "min_gate_overlap_ratio", True),
    ("strong_correlation_for_merge", "min_correlation_for_merge", True),
    ("max_exclusive_rate_for_subsumption", "max_exclusive_for_subsumption", False),
    ("nested_conditional_threshold", "nested_suppression_threshold", False),
)

WEIGHT_SUM_CONSTRAINTS = (
    (
        (
            "composite_score_gate_overlap_weight",
            "composite_score_correlation_weight",
            "composite_score_global_diff_weight",
        ),
        "Composite score weights must sum to 1.0",
    ),
    (
        (
            "candidate_axis_rmse_weight",
            "candidate_axis_strong_axis_weight",
            "candidate_axis_co_usage_weight",
        ),
        "Candidate axis weights must sum to 1.0",
    ),
)

WEIGHT_SUM_TOLERANCE = 0.001

ENUM_FIELDS = {
    "pca_component_significance_method": ("broken-stick", "kaiser"),
    "pca_normalization_method": ("center-only", "z-score"),
    "pca_expected_dimension_method": ("variance-80", "variance-90", "broken-stick", "median-active"),
}


@dataclass
class ConfigValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


def _is_number(value: Any) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float)) and math.isfinite(value)


def validate_config(config: PrototypeOverlapConfig) -> ConfigValidationResult:
    """Collect every range, ordering and weight-sum violation."""
    result = ConfigValidationResult()

    for name in PROBABILITY_FIELDS:
        value = getattr(config, name)
        if not _is_number(value):
            result.errors.append(f"{name} must be a finite number")
        elif not 0.0 <= value <= 1.0:
            result.errors.append(f"{name} must be in [0, 1] (got {value})")

    for name in CORRELATION_FIELDS:
        value = getattr(config, name)
        if not _is_number(value):
            result.errors.append(f"{name} must be a finite number")
        elif not -1.0 <= value <= 1.0:
            result.errors.append(f"{name} must be in [-1, 1] (got {value})")

    for name in POSITIVE_INT_FIELDS:
        value = getattr(config, name)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            result.errors.append(f"{name} must be a positive integer (got {value!r})")

    if not _is_number(config.strict_epsilon) or config.strict_epsilon < 0:
        result.errors.append("strict_epsilon must be a non-negative number")
    if not _is_number(config.pca_kaiser_threshold) or config.pca_kaiser_threshold < 0:
        result.errors.append("pca_kaiser_threshold must be a non-negative number")
    if not _is_number(config.reconstruction_error_threshold) or config.reconstruction_error_threshold < 0:
        result.errors.append("reconstruction_error_threshold must be a non-negative number")

    for name, allowed in ENUM_FIELDS.items():
        value = getattr(config, name)
        if value not in allowed:
            result.errors.append(f"{name} must be one of {list(allowed)} (got {value!r})")

    thresholds = config.high_thresholds
    if not thresholds or not all(_is_number(t) and 0.0 <= t <= 1.0 for t in thresholds):
        result.errors.append("high_thresholds must be a non-empty list of values in [0, 1]")

    for lesser, greater, strict in ORDERING_CONSTRAINTS:
        a, b = getattr(config, lesser), getattr(config, greater)
        if not (_is_number(a) and _is_number(b)):
            continue
        if (strict and not a < b) or (not strict and not a <= b):
            op = "<" if strict else "<="
            result.errors.append(f"{lesser} must be {op} {greater} ({a} vs {b})")

    for names, description in WEIGHT_SUM_CONSTRAINTS:
        values = [getattr(config, n) for n in names]
        if not all(_is_number(v) for v in values):
            continue
        total = sum(values)
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            result.errors.append(f"{description} (got {total:.4f})")

    if config.extra:
        result.warnings.append(f"Unknown config keys: {sorted(config.extra)}")
    if _is_number(config.sample_count_per_pair) and config.sample_count_per_pair < 1000:
        result.warnings.append(
            f"sample_count_per_pair={config.sample_count_per_pair} gives noisy conditional estimates"
        )
    if not config.pca_require_corroboration:
        result.warnings.append("pca_require_corroboration is disabled; diffuse residuals will count as signals")

    return result


def validate_config_or_raise(config: PrototypeOverlapConfig) -> PrototypeOverlapConfig:
    result = validate_config(config)
    for warning in result.warnings:
        logger.warning(f"[PrototypeOverlapConfig] {warning}")
    if not result.valid:
        raise DiagnosticsConfigError("Invalid prototype overlap config: " + "; ".join(result.errors))
    return config
