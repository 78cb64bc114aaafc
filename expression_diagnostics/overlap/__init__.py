"""Prototype overlap analysis: filtering, sampling, classification and recommendations."""

from expression_diagnostics.overlap.analyzer import PrototypeOverlapAnalyzer
from expression_diagnostics.overlap.banding import GateBandingSuggestionBuilder
from expression_diagnostics.overlap.behavioral import BehavioralOverlapEvaluator
from expression_diagnostics.overlap.candidate_filter import CandidatePairFilter
from expression_diagnostics.overlap.classifier import OverlapClassifier
from expression_diagnostics.overlap.implication import GateImplicationCheck, GateImplicationEvaluator
from expression_diagnostics.overlap.recommendation import (
    OverlapRecommendationBuilder,
    confidence_from_on_either_rate,
)
from expression_diagnostics.overlap.sampling import (
    FlatContextBuilder,
    IntervalGateChecker,
    UniformStateGenerator,
    WeightedIntensityCalculator,
)
from expression_diagnostics.overlap.similarity import (
    GateSimilarityFilter,
    GateSimilarityResult,
    compute_interval_overlap_ratio,
)

__all__ = [
    "PrototypeOverlapAnalyzer",
    "GateBandingSuggestionBuilder",
    "BehavioralOverlapEvaluator",
    "CandidatePairFilter",
    "OverlapClassifier",
    "GateImplicationCheck",
    "GateImplicationEvaluator",
    "OverlapRecommendationBuilder",
    "confidence_from_on_either_rate",
    "FlatContextBuilder",
    "IntervalGateChecker",
    "UniformStateGenerator",
    "WeightedIntensityCalculator",
    "GateSimilarityFilter",
    "GateSimilarityResult",
    "compute_interval_overlap_ratio",
]
