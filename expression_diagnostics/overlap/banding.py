"""
Gate banding suggestions for nested or overlapping prototype pairs.

For each axis where one prototype's interval sits inside the other's, the
broader prototype is told to exclude the narrower one's range, e.g. narrower
``valence <= 0.50`` with a 0.05 margin becomes ``valence >= 0.55`` on the
broader prototype.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from expression_diagnostics.dependencies import require_config, require_numeric, validate_logger
from expression_diagnostics.models import Interval, as_record

logger = logging.getLogger(__name__)

BANDED_TYPES = ("nested_siblings", "needs_separation")

SUGGESTION_GATE_BAND = "gate_band"
SUGGESTION_SUPPRESSION = "expression_suppression"


class GateBandingSuggestionBuilder:
    def __init__(self, config: Any, logger: Optional[Any] = None):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "GateBandingSuggestionBuilder")
        require_numeric(config, ("band_margin",), "GateBandingSuggestionBuilder", self._logger)

    def build_suggestions(self, gate_implication: Any, classification: Any) -> List[Dict[str, Any]]:
        classification_type = as_record(classification).get("type")
        if classification_type not in BANDED_TYPES:
            self._logger.debug(
                f"GateBandingSuggestionBuilder: skipping classification {classification_type!r}"
            )
            return []
        implication = as_record(gate_implication)
        if not implication:
            self._logger.debug("GateBandingSuggestionBuilder: no gate implication available")
            return []

        margin = float(self._config.band_margin)
        suggestions: List[Dict[str, Any]] = []
        skipped = 0
        for entry in implication.get("evidence") or []:
            suggestion = self._suggest_for_axis(entry, margin)
            if suggestion is None:
                skipped += 1
            else:
                suggestions.append(suggestion)

        if classification_type == "nested_siblings":
            suggestions.append({
                "type": SUGGESTION_SUPPRESSION,
                "targetPrototype": None,
                "axis": None,
                "suggestedGate": None,
                "message": (
                    "Add a mutual-exclusion rule: when the higher-tier prototype is active, "
                    "suppress the lower-tier prototype."
                ),
            })

        self._logger.debug(
            f"GateBandingSuggestionBuilder: {len(suggestions)} suggestion(s), {skipped} axis entries skipped"
        )
        return suggestions

    def _suggest_for_axis(self, entry: Dict[str, Any], margin: float) -> Optional[Dict[str, Any]]:
        axis = entry.get("axis")
        a_subset_b = bool(entry.get("A_subset_B"))
        b_subset_a = bool(entry.get("B_subset_A"))
        if a_subset_b == b_subset_a:
            # equal or partially overlapping: nothing distinguishes a side
            return None

        interval_a = Interval.coerce(entry.get("intervalA"))
        interval_b = Interval.coerce(entry.get("intervalB"))
        if interval_a.unsatisfiable or interval_b.unsatisfiable:
            return None
        if a_subset_b:
            narrower, broader, broader_side = interval_a, interval_b, "b"
        else:
            narrower, broader, broader_side = interval_b, interval_a, "a"

        if narrower.upper is not None and (broader.upper is None or broader.upper > narrower.upper):
            threshold = narrower.upper + margin
            gate = f"{axis} >= {threshold:.2f}"
        elif narrower.lower is not None and (broader.lower is None or broader.lower < narrower.lower):
            threshold = narrower.lower - margin
            gate = f"{axis} <= {threshold:.2f}"
        else:
            return None

        return {
            "type": SUGGESTION_GATE_BAND,
            "targetPrototype": broader_side,
            "axis": axis,
            "suggestedGate": gate,
            "message": f"Add gate '{gate}' to prototype {broader_side.upper()} to separate it from the narrower band on {axis}",
        }
