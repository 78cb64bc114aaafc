"""Prototypes whose weights pull on many axes at once, or in balanced opposing directions."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from expression_diagnostics.dependencies import require_config, require_numeric, validate_logger
from expression_diagnostics.models import prototype_id, prototype_weights

logger = logging.getLogger(__name__)

FLAG_HIGH_AXIS_LOADING = "high_axis_loading"
FLAG_SIGN_TENSION = "sign_tension"

REQUIRED_NUMERIC_FIELDS = ("active_axis_epsilon", "conflict_min_active_axes", "conflict_max_sign_balance")


class MultiAxisConflictDetector:
    def __init__(self, config: Any, logger: Optional[Any] = None):
        self._logger = validate_logger(logger, logging.getLogger(__name__))
        self._config = require_config(config, "MultiAxisConflictDetector")
        require_numeric(config, REQUIRED_NUMERIC_FIELDS, "MultiAxisConflictDetector", self._logger)

    def detect(self, prototypes: Optional[Sequence[Any]]) -> Dict[str, List[Dict[str, Any]]]:
        cfg = self._config
        eps = cfg.active_axis_epsilon
        high_loadings: List[Dict[str, Any]] = []
        sign_tensions: List[Dict[str, Any]] = []

        for index, proto in enumerate(prototypes or []):
            weights = prototype_weights(proto)
            positive = sorted(axis for axis, w in weights.items() if w >= eps)
            negative = sorted(axis for axis, w in weights.items() if w <= -eps)
            active = len(positive) + len(negative)
            if active == 0:
                continue
            balance = abs(len(positive) - len(negative)) / active
            record = {
                "prototypeId": prototype_id(proto, index),
                "activeAxisCount": active,
                "signBalance": balance,
                "positiveAxes": positive,
                "negativeAxes": negative,
            }
            if active >= cfg.conflict_min_active_axes:
                high_loadings.append({**record, "flagReason": FLAG_HIGH_AXIS_LOADING})
            elif positive and negative and balance <= cfg.conflict_max_sign_balance:
                sign_tensions.append({**record, "flagReason": FLAG_SIGN_TENSION})

        self._logger.debug(
            f"MultiAxisConflictDetector: {len(high_loadings)} high-axis-loading, {len(sign_tensions)} sign-tension"
        )
        return {
            "conflicts": high_loadings + sign_tensions,
            "highAxisLoadings": high_loadings,
            "signTensions": sign_tensions,
        }
