"""
Collaborator contracts for the diagnostics services.

The services only rely on the methods listed here. Concrete defaults live in
:mod:`expression_diagnostics.gates` and :mod:`expression_diagnostics.overlap.sampling`;
callers may inject any object that provides the same methods.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence


class GateASTNormalizerContract(ABC):
    """Parses gate expressions and decides implication between parsed gates."""

    @abstractmethod
    def parse(self, gate: Any) -> Any:
        """Return an object exposing ``ast``, ``parse_complete`` and ``errors``."""

    @abstractmethod
    def check_implication(self, ast_a: Any, ast_b: Any) -> Any:
        """Return an object exposing ``implies`` and ``is_vacuous``."""

    @abstractmethod
    def to_string(self, ast: Any) -> str:
        ...


class GateConstraintExtractorContract(ABC):
    @abstractmethod
    def extract(self, gates: Sequence[str]) -> Any:
        """Return an object exposing ``intervals`` and ``parse_status``."""


class StateGeneratorContract(ABC):
    @abstractmethod
    def generate(self) -> Dict[str, Any]:
        """One synthetic sample: ``{"current": ..., "previous": ..., "affectTraits": ...}``."""


class ContextBuilderContract(ABC):
    @abstractmethod
    def build_context(
        self,
        current: Mapping[str, Any],
        previous: Optional[Mapping[str, Any]] = None,
        affect_traits: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, float]:
        ...


class GateCheckerContract(ABC):
    @abstractmethod
    def check_all_gates_pass(self, gates: Sequence[str], context: Mapping[str, float]) -> bool:
        ...


class IntensityCalculatorContract(ABC):
    @abstractmethod
    def compute_intensity(self, prototype: Mapping[str, Any], context: Mapping[str, float]) -> float:
        ...


class ActionableSuggestionEngineContract(ABC):
    @abstractmethod
    def generate_suggestions(
        self,
        vector_a: Any,
        vector_b: Any,
        context_pool: Any,
        classification_type: str,
    ) -> List[Mapping[str, Any]]:
        """Each suggestion carries at least ``isValid`` and ``validationMessage``."""


class RecommendationBuilderContract(ABC):
    @abstractmethod
    def generate(self, pca, hubs, gaps, conflicts, candidate_axis_validation=None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def sort_by_priority(self, recommendations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...


# Method lists used by the construction-time checks
NORMALIZER_METHODS = ("parse", "check_implication", "to_string")
EXTRACTOR_METHODS = ("extract",)
STATE_GENERATOR_METHODS = ("generate",)
CONTEXT_BUILDER_METHODS = ("build_context",)
GATE_CHECKER_METHODS = ("check_all_gates_pass",)
INTENSITY_CALCULATOR_METHODS = ("compute_intensity",)
SUGGESTION_ENGINE_METHODS = ("generate_suggestions",)
RECOMMENDATION_BUILDER_METHODS = ("generate", "sort_by_priority")
