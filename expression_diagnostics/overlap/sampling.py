"""
Default sampling collaborators for behavioral overlap evaluation.

These give the evaluator a self-contained world model: uniformly random mood,
sexual-state and affect-trait values, a flat axis -> value context, interval
gate checks and a normalized weighted-sum intensity.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Sequence

import numpy as np

from expression_diagnostics.contracts import (
    ContextBuilderContract,
    GateCheckerContract,
    IntensityCalculatorContract,
    StateGeneratorContract,
)
from expression_diagnostics.gates.constraint import GateConstraint
from expression_diagnostics.models import prototype_weights
from statistical import clamp01

logger = logging.getLogger(__name__)

MOOD_AXES = (
    "valence",
    "arousal",
    "agency_control",
    "threat",
    "engagement",
    "future_expectancy",
    "self_evaluation",
)
SEXUAL_AXES = ("sex_excitation", "sex_inhibition", "baseline_libido")
AFFECT_TRAIT_AXES = ("affective_empathy", "cognitive_empathy", "harm_aversion")

PREVIOUS_PREFIX = "previous_"


class UniformStateGenerator(StateGeneratorContract):
    """Mood axes in [-1, 1]; sexual state and traits in [0, 1]."""

    def __init__(
        self,
        seed: Optional[int] = None,
        mood_axes: Sequence[str] = MOOD_AXES,
        sexual_axes: Sequence[str] = SEXUAL_AXES,
        trait_axes: Sequence[str] = AFFECT_TRAIT_AXES,
    ):
        self._rng = np.random.default_rng(seed)
        self._mood_axes = tuple(mood_axes)
        self._sexual_axes = tuple(sexual_axes)
        self._trait_axes = tuple(trait_axes)

    def _state(self) -> Dict[str, Dict[str, float]]:
        mood = self._rng.uniform(-1.0, 1.0, len(self._mood_axes))
        sexual = self._rng.uniform(0.0, 1.0, len(self._sexual_axes))
        return {
            "mood": {axis: float(v) for axis, v in zip(self._mood_axes, mood)},
            "sexual": {axis: float(v) for axis, v in zip(self._sexual_axes, sexual)},
        }

    def generate(self) -> Dict[str, Any]:
        traits = self._rng.uniform(0.0, 1.0, len(self._trait_axes))
        return {
            "current": self._state(),
            "previous": self._state(),
            "affectTraits": {axis: float(v) for axis, v in zip(self._trait_axes, traits)},
        }


class FlatContextBuilder(ContextBuilderContract):
    """Flattens nested state sections into one axis -> value mapping."""

    def build_context(
        self,
        current: Mapping[str, Any],
        previous: Optional[Mapping[str, Any]] = None,
        affect_traits: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, float]:
        context: Dict[str, float] = {}
        for section in (current or {}).values():
            if isinstance(section, Mapping):
                context.update({k: float(v) for k, v in section.items()})
        for section in (previous or {}).values():
            if isinstance(section, Mapping):
                context.update({f"{PREVIOUS_PREFIX}{k}": float(v) for k, v in section.items()})
        if affect_traits:
            context.update({k: float(v) for k, v in affect_traits.items()})
        return context


@lru_cache(maxsize=4096)
def _parse_cached(gate: str) -> Optional[GateConstraint]:
    try:
        return GateConstraint.parse(gate)
    except ValueError:
        return None


class IntervalGateChecker(GateCheckerContract):
    """A gate passes when its axis value satisfies the comparison; unparseable gates fail."""

    def check_all_gates_pass(self, gates: Sequence[str], context: Mapping[str, float]) -> bool:
        for gate in gates or ():
            constraint = _parse_cached(gate) if isinstance(gate, str) else None
            if constraint is None:
                logger.debug(f"IntervalGateChecker: unparseable gate {gate!r} treated as failing")
                return False
            if not constraint.is_satisfied_by(context.get(constraint.axis, 0.0)):
                return False
        return True


class WeightedIntensityCalculator(IntensityCalculatorContract):
    """clamp01(sum(w * x) / sum(|w|))"""

    def compute_intensity(self, prototype: Mapping[str, Any], context: Mapping[str, float]) -> float:
        weights = prototype_weights(prototype)
        total = sum(abs(w) for w in weights.values())
        if total == 0.0:
            return 0.0
        raw = sum(w * context.get(axis, 0.0) for axis, w in weights.items())
        return clamp01(raw / total)
