# tests/conftest.py
from unittest.mock import MagicMock

import pytest

from expression_diagnostics.config import PrototypeOverlapConfig
from expression_diagnostics.gates import GateASTNormalizer, GateConstraintExtractor
from expression_diagnostics.overlap import GateImplicationEvaluator


@pytest.fixture
def config() -> PrototypeOverlapConfig:
    return PrototypeOverlapConfig()


@pytest.fixture
def mock_logger() -> MagicMock:
    """Logger double exposing debug/info/warning/error."""
    return MagicMock(spec=["debug", "info", "warning", "error"])


@pytest.fixture
def normalizer() -> GateASTNormalizer:
    return GateASTNormalizer()


@pytest.fixture
def extractor() -> GateConstraintExtractor:
    return GateConstraintExtractor()


@pytest.fixture
def implication_evaluator(normalizer) -> GateImplicationEvaluator:
    return GateImplicationEvaluator(normalizer)
