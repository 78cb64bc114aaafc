"""
Tests for expression_diagnostics/axis_gap/conflicts.py.
"""

import pytest

from expression_diagnostics.axis_gap import MultiAxisConflictDetector
from expression_diagnostics.errors import DiagnosticsConfigError

BROAD = {
    "id": "awe",
    "weights": {"valence": 0.5, "arousal": 0.5, "engagement": 0.2, "agency_control": 0.1, "threat": -0.3},
}
TORN = {"id": "bittersweet", "weights": {"valence": 0.5, "threat": -0.5}}
LOPSIDED = {"id": "pride", "weights": {"valence": 0.5, "arousal": 0.5, "engagement": 0.5, "threat": -0.3}}
FAINT = {"id": "whisper", "weights": {"valence": 0.05}}


@pytest.fixture
def detector(config):
    return MultiAxisConflictDetector(config)


class TestDetect:
    """detect()"""

    def test_high_axis_loading(self, detector):
        result = detector.detect([BROAD])
        [flagged] = result["highAxisLoadings"]
        assert flagged["prototypeId"] == "awe"
        assert flagged["activeAxisCount"] == 5
        assert flagged["signBalance"] == pytest.approx(0.6)
        assert flagged["positiveAxes"] == ["agency_control", "arousal", "engagement", "valence"]
        assert flagged["negativeAxes"] == ["threat"]
        assert flagged["flagReason"] == "high_axis_loading"

    def test_sign_tension(self, detector):
        result = detector.detect([TORN])
        assert result["highAxisLoadings"] == []
        [flagged] = result["signTensions"]
        assert flagged["signBalance"] == 0.0
        assert flagged["flagReason"] == "sign_tension"

    def test_unbalanced_mix_is_not_flagged(self, detector):
        result = detector.detect([LOPSIDED])
        assert result["conflicts"] == []

    def test_weights_below_epsilon_are_inactive(self, detector):
        assert detector.detect([FAINT])["conflicts"] == []

    def test_conflicts_list_high_loadings_first(self, detector):
        result = detector.detect([TORN, BROAD])
        assert [c["prototypeId"] for c in result["conflicts"]] == ["awe", "bittersweet"]

    def test_min_active_axes_from_config(self, config):
        config.conflict_min_active_axes = 2
        result = MultiAxisConflictDetector(config).detect([TORN])
        assert [c["flagReason"] for c in result["conflicts"]] == ["high_axis_loading"]

    @pytest.mark.parametrize("prototypes", [None, []])
    def test_empty_input(self, detector, prototypes):
        assert detector.detect(prototypes) == {"conflicts": [], "highAxisLoadings": [], "signTensions": []}

    def test_missing_ids_fall_back_to_index(self, detector):
        result = detector.detect([{"weights": TORN["weights"]}])
        assert result["signTensions"][0]["prototypeId"] == "prototype-0"


class TestConstruction:
    """Configuration checks."""

    def test_config_required(self):
        with pytest.raises(DiagnosticsConfigError, match="MultiAxisConflictDetector: config is required"):
            MultiAxisConflictDetector(None)

    def test_epsilon_must_be_numeric(self, config):
        config.active_axis_epsilon = None
        with pytest.raises(DiagnosticsConfigError, match="config.active_axis_epsilon"):
            MultiAxisConflictDetector(config)
