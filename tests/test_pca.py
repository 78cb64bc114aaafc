"""
Tests for expression_diagnostics/axis_gap/pca.py.

The main fixture is rank-one on its dense axes, so the expected dimension is
one and the residual is numerically zero.
"""

import pytest

from expression_diagnostics.axis_gap import PCAAnalysisService, empty_pca_result
from expression_diagnostics.errors import DiagnosticsConfigError

GATES = ["valence >= 0.1"]

RANK_ONE = [
    {"id": "a", "weights": {"valence": 1.0, "arousal": 0.5}, "gates": GATES},
    {"id": "b", "weights": {"valence": 0.5, "arousal": 0.25}, "gates": GATES},
    {"id": "c", "weights": {"valence": -0.5, "arousal": -0.25}, "gates": GATES},
    {"id": "d", "weights": {"valence": -1.0, "arousal": -0.5, "threat": 0.9}, "gates": GATES},
]


@pytest.fixture
def service(config):
    return PCAAnalysisService(config)


class TestEmptyResults:
    """Degenerate inputs return the empty shape."""

    def test_single_prototype(self, service):
        assert service.analyze(RANK_ONE[:1]) == empty_pca_result()

    def test_not_a_list(self, service):
        assert service.analyze(None)["axisCount"] == 0

    def test_all_zero_weights(self, service):
        result = service.analyze([{"weights": {"valence": 0.0}}, {"weights": {"valence": 0.0}}])
        assert result["dimensionsUsed"] == []
        assert result["excludedSparseAxes"] == ["valence"]
        assert result["residualEigenvector"] is None


class TestAnalyze:
    """analyze() on a rank-one matrix."""

    @pytest.fixture
    def result(self, service):
        return service.analyze(RANK_ONE)

    def test_sparse_axis_excluded(self, result):
        assert result["dimensionsUsed"] == ["arousal", "valence"]
        assert result["excludedSparseAxes"] == ["threat"]

    def test_expected_dimension(self, result):
        assert result["axisCount"] == 1
        assert result["expectedComponentCount"] == 1
        assert result["componentsFor80Pct"] == 1

    def test_residual_is_negligible(self, result):
        assert result["residualVarianceRatio"] == pytest.approx(0.0, abs=1e-9)
        assert result["additionalSignificantComponents"] == 0
        assert result["significantComponentCount"] == 1

    def test_variance_curves(self, result):
        assert len(result["explainedVariance"]) == 2
        assert result["cumulativeVariance"][-1] == pytest.approx(1.0)

    def test_residual_eigenvector(self, result):
        assert set(result["residualEigenvector"]) == {"arousal", "valence"}
        assert result["residualEigenvectorIndex"] == 1

    def test_reconstruction_errors(self, result):
        errors = {e["prototypeId"]: e for e in result["reconstructionErrors"]}
        assert set(errors) == {"a", "b", "c", "d"}
        assert errors["a"]["error"] == pytest.approx(0.0, abs=1e-9)
        assert errors["d"]["reliesOnExcludedAxes"]
        assert errors["d"]["excludedAxisReliance"] == pytest.approx(0.81 / 2.06)
        assert not errors["a"]["reliesOnExcludedAxes"]

    def test_top_loadings(self, result):
        loadings = result["topLoadingPrototypes"]
        assert len(loadings) == 4
        assert all(abs(entry["loading"]) < 1e-9 for entry in loadings)

    def test_axis_usage_reports(self, result):
        assert result["unusedInGates"] == ["arousal"]
        assert "agency_control" in result["unusedDefinedAxes"]
        assert "valence" not in result["unusedDefinedAxes"]
        assert "threat" not in result["unusedDefinedAxes"]
        assert "agency_control" in result["unusedDefinedNotInGates"]
        assert result["unusedDefinedUsedInGates"] == []


class TestMethods:
    """Config-selected dimension and significance rules."""

    def test_kaiser_significance(self, config):
        config.pca_component_significance_method = "kaiser"
        config.pca_kaiser_threshold = 0.5
        result = PCAAnalysisService(config).analyze(RANK_ONE)
        assert result["significantComponentCount"] == 1

    def test_median_active_uses_all_components(self, config):
        config.pca_expected_dimension_method = "median-active"
        result = PCAAnalysisService(config).analyze(RANK_ONE)
        assert result["axisCount"] == 2
        assert result["residualEigenvector"] is None
        assert result["topLoadingPrototypes"] == []

    def test_axes_capped_by_row_count(self, service):
        prototypes = [
            {"weights": {"valence": 1.0, "arousal": 0.1, "threat": 0.5}},
            {"weights": {"valence": -1.0, "arousal": 0.2, "threat": -0.5}},
        ]
        result = service.analyze(prototypes)
        assert result["dimensionsUsed"] == ["valence", "threat"]

    def test_config_required(self):
        with pytest.raises(DiagnosticsConfigError, match="PCAAnalysisService: config is required"):
            PCAAnalysisService(None)

    def test_non_numeric_field_rejected(self, config, mock_logger):
        config.pca_kaiser_threshold = "high"
        with pytest.raises(DiagnosticsConfigError, match="config.pca_kaiser_threshold"):
            PCAAnalysisService(config, logger=mock_logger)
        mock_logger.error.assert_called_once()


class TestComparison:
    """analyze_with_comparison()"""

    def test_full_run_keeps_sparse_axes(self, service):
        result = service.analyze_with_comparison(RANK_ONE)
        assert "threat" in result["full"]["dimensionsUsed"]
        assert "threat" not in result["dense"]["dimensionsUsed"]
        comparison = result["comparison"]
        assert comparison["deltaSignificant"] == (
            result["full"]["significantComponentCount"] - result["dense"]["significantComponentCount"]
        )
        assert comparison["filteringImpactSummary"].endswith("PCA conclusions.")
