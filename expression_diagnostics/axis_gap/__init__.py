"""Axis gap detection: PCA residuals, conflicts, candidate axes and the combined report."""

from expression_diagnostics.axis_gap.conflicts import MultiAxisConflictDetector
from expression_diagnostics.axis_gap.extractor import CandidateAxisExtractor
from expression_diagnostics.axis_gap.pca import DEFINED_AXES, PCAAnalysisService, empty_pca_result
from expression_diagnostics.axis_gap.recommendations import AxisGapRecommendationBuilder
from expression_diagnostics.axis_gap.synthesizer import AxisGapReportSynthesizer, SignalFamily
from expression_diagnostics.axis_gap.validator import CandidateAxisValidator

__all__ = [
    "MultiAxisConflictDetector",
    "CandidateAxisExtractor",
    "DEFINED_AXES",
    "PCAAnalysisService",
    "empty_pca_result",
    "AxisGapRecommendationBuilder",
    "AxisGapReportSynthesizer",
    "SignalFamily",
    "CandidateAxisValidator",
]
