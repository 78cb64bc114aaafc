"""
Tests for expression_diagnostics/axis_gap/extractor.py.
"""

import pytest

from expression_diagnostics.axis_gap import CandidateAxisExtractor
from expression_diagnostics.axis_gap.extractor import absolute_cosine, normalize_vector
from expression_diagnostics.errors import DiagnosticsConfigError

PCA = {
    "residualEigenvector": {"valence": 0.6, "arousal": 0.8},
    "topLoadingPrototypes": [{"prototypeId": "a", "loading": 0.7}],
    "residualVarianceRatio": 0.15,
    "additionalSignificantComponents": 1,
    "residualEigenvectorIndex": 2,
}
GAP = {
    "clusterId": "c1",
    "suggestedAxisDirection": {"threat": 2.0},
    "centroidPrototypes": ["x", "y"],
    "distanceToNearestAxis": 0.4,
    "clusterSize": 5,
}
NEIGHBORS = [
    {"id": "n1", "weights": {"engagement": 1.0}},
    {"id": "n2", "weights": {"engagement": 1.0, "valence": 0.0}},
]
HUB = {
    "prototypeId": "h",
    "overlappingPrototypes": ["n1", "n2", "missing"],
    "hubScore": 0.9,
    "neighborhoodDiversity": 2,
}


@pytest.fixture
def extractor(config):
    return CandidateAxisExtractor(config)


class TestVectorHelpers:
    """normalize_vector() and absolute_cosine()"""

    def test_normalize(self):
        assert normalize_vector({"a": 3.0, "b": 4.0}) == pytest.approx({"a": 0.6, "b": 0.8})

    def test_normalize_zero(self):
        assert normalize_vector({"a": 0.0}) is None

    def test_cosine_ignores_sign(self):
        assert absolute_cosine({"a": 1.0}, {"a": -2.0}) == pytest.approx(1.0)

    def test_cosine_with_zero_vector(self):
        assert absolute_cosine({}, {"a": 1.0}) == 0.0


class TestSources:
    """One candidate per signal source."""

    def test_pca_candidate(self, extractor):
        [candidate] = extractor.extract(PCA)
        assert candidate.candidate_id == "pca_residual_0"
        assert candidate.confidence == pytest.approx(0.6)
        assert candidate.source_prototypes == ["a"]
        assert candidate.metadata["eigenvectorIndex"] == 2

    def test_small_residual_yields_nothing(self, extractor):
        assert extractor.extract({**PCA, "residualVarianceRatio": 0.05}) == []

    def test_gap_candidate(self, extractor):
        [candidate] = extractor.extract(None, coverage_gaps=[GAP])
        assert candidate.candidate_id == "coverage_gap_0"
        assert candidate.direction == {"threat": 1.0}
        assert candidate.confidence == pytest.approx(0.5)
        assert candidate.metadata["clusterId"] == "c1"

    def test_hub_candidate(self, extractor):
        [candidate] = extractor.extract(None, hub_prototypes=[HUB], prototypes=NEIGHBORS)
        assert candidate.candidate_id == "hub_derived_h"
        assert candidate.direction == pytest.approx({"engagement": 1.0, "valence": 0.0})
        assert candidate.confidence == pytest.approx(0.74)
        assert candidate.source_prototypes == ["h", "n1", "n2"]

    def test_hub_needs_two_known_neighbors(self, extractor):
        hub = {**HUB, "overlappingPrototypes": ["n1", "missing"]}
        assert extractor.extract(None, hub_prototypes=[hub], prototypes=NEIGHBORS) == []


class TestFiltering:
    """Confidence floor, ordering, deduplication and cap."""

    def test_sorted_by_confidence(self, extractor):
        candidates = extractor.extract(PCA, coverage_gaps=[GAP], hub_prototypes=[HUB], prototypes=NEIGHBORS)
        assert [c.source for c in candidates] == ["hub_derived", "pca_residual", "coverage_gap"]

    def test_low_confidence_dropped(self, extractor):
        weak = {**GAP, "distanceToNearestAxis": 0.05, "clusterSize": 1}
        assert extractor.extract(None, coverage_gaps=[weak]) == []

    def test_parallel_candidates_deduplicated(self, config, mock_logger):
        extractor = CandidateAxisExtractor(config, logger=mock_logger)
        stronger = {**GAP, "distanceToNearestAxis": 0.8}
        candidates = extractor.extract(None, coverage_gaps=[GAP, stronger])
        assert [c.candidate_id for c in candidates] == ["coverage_gap_1"]
        messages = [call[0][0] for call in mock_logger.debug.call_args_list]
        assert any("dropping coverage_gap_0" in m for m in messages)

    def test_capped(self, config):
        config.candidate_axis_max_candidates = 1
        candidates = CandidateAxisExtractor(config).extract(
            PCA, coverage_gaps=[GAP], hub_prototypes=[HUB], prototypes=NEIGHBORS
        )
        assert len(candidates) == 1

    def test_to_dict(self, extractor):
        [candidate] = extractor.extract(None, coverage_gaps=[GAP])
        assert candidate.to_dict()["sourcePrototypes"] == ["x", "y"]


class TestConstruction:
    """Configuration checks."""

    def test_config_required(self):
        with pytest.raises(DiagnosticsConfigError, match="CandidateAxisExtractor: config is required"):
            CandidateAxisExtractor(None)

    def test_cap_must_be_numeric(self, config, mock_logger):
        config.candidate_axis_max_candidates = "ten"
        with pytest.raises(DiagnosticsConfigError, match="config.candidate_axis_max_candidates"):
            CandidateAxisExtractor(config, logger=mock_logger)
        mock_logger.error.assert_called_once()
