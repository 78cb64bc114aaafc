"""
Tests for expression_diagnostics/overlap/behavioral.py.

States are scripted so every rate is known exactly.
"""

import asyncio
import itertools
import math

import pytest

from expression_diagnostics.errors import DiagnosticsConfigError
from expression_diagnostics.overlap import (
    BehavioralOverlapEvaluator,
    FlatContextBuilder,
    IntervalGateChecker,
    UniformStateGenerator,
    WeightedIntensityCalculator,
)


class ScriptedStates:
    """Cycles through fixed valence values."""

    def __init__(self, valences):
        self._values = itertools.cycle(valences)

    def generate(self):
        return {"current": {"mood": {"valence": next(self._values)}}, "previous": None, "affectTraits": None}


def make_evaluator(config, extractor, implication_evaluator, generator, logger=None):
    return BehavioralOverlapEvaluator(
        config,
        prototype_intensity_calculator=WeightedIntensityCalculator(),
        random_state_generator=generator,
        context_builder=FlatContextBuilder(),
        prototype_gate_checker=IntervalGateChecker(),
        gate_constraint_extractor=extractor,
        gate_implication_evaluator=implication_evaluator,
        logger=logger,
    )


NARROW = {"id": "elation", "weights": {"valence": 1.0}, "gates": ["valence >= 0.5"]}
WIDE = {"id": "contentment", "weights": {"valence": 1.0}, "gates": ["valence >= 0.0"]}


class TestConstruction:
    """Collaborator validation."""

    def test_missing_generator(self, config, extractor, implication_evaluator):
        with pytest.raises(DiagnosticsConfigError, match="random_state_generator"):
            make_evaluator(config, extractor, implication_evaluator, None)

    def test_generator_without_generate(self, config, extractor, implication_evaluator):
        with pytest.raises(DiagnosticsConfigError, match="generate"):
            make_evaluator(config, extractor, implication_evaluator, object())


class TestEvaluate:
    """Counting, conditionals and intensity statistics."""

    @pytest.fixture
    def metrics(self, config, extractor, implication_evaluator):
        config.min_co_pass_samples = 1
        evaluator = make_evaluator(config, extractor, implication_evaluator, ScriptedStates([0.9, 0.6, 0.3, -0.5]))
        return asyncio.run(evaluator.evaluate(NARROW, WIDE, 4))

    def test_gate_overlap_rates(self, metrics):
        overlap = metrics.gate_overlap
        assert overlap.on_both_rate == pytest.approx(0.5)
        assert overlap.p_only_rate == 0.0
        assert overlap.q_only_rate == pytest.approx(0.25)
        assert overlap.on_either_rate == pytest.approx(0.75)

    def test_deterministic_implication_forces_conditional(self, metrics):
        assert metrics.gate_implication.relation == "narrower"
        assert metrics.pass_rates.p_b_given_a == 1.0
        assert metrics.pass_rates.p_a_given_b == pytest.approx(2 / 3)

    def test_pass_counts(self, metrics):
        rates = metrics.pass_rates
        assert (rates.co_pass_count, rates.pass_a_count, rates.pass_b_count) == (2, 2, 3)

    def test_identical_intensities(self, metrics):
        stats = metrics.intensity
        assert stats.pearson_correlation == pytest.approx(1.0)
        assert stats.mean_abs_diff == pytest.approx(0.0)
        assert stats.pct_within_eps == 1.0
        assert stats.dominance_p == 0.0

    def test_divergence_examples_recorded(self, metrics):
        assert len(metrics.divergence_examples) == 2
        assert "valence" in metrics.divergence_examples[0]["contextSummary"]

    def test_global_metrics(self, metrics):
        # intensity B fires alone at valence 0.3
        assert metrics.global_metrics["globalMeanAbsDiff"] == pytest.approx(0.3 / 4)

    def test_sample_count_and_parse_info(self, metrics):
        assert metrics.sample_count == 4
        assert metrics.gate_parse_info["prototypeA"]["parseStatus"] == "complete"

    def test_high_coactivation_thresholds(self, metrics):
        thresholds = metrics.high_coactivation["thresholds"]
        assert [t["t"] for t in thresholds] == [0.4, 0.6, 0.75]
        # at t=0.4: A high at 0.9 and 0.6, B high at 0.9 and 0.6
        assert thresholds[0]["highJaccard"] == 1.0


class TestEvaluateEdgeCases:
    """Sparse co-firing and progress reporting."""

    def test_too_few_co_passes_leaves_correlation_nan(self, config, extractor, implication_evaluator):
        evaluator = make_evaluator(config, extractor, implication_evaluator, ScriptedStates([0.9, -0.9]))
        metrics = asyncio.run(evaluator.evaluate(NARROW, WIDE, 10))
        assert math.isnan(metrics.intensity.pearson_correlation)
        assert math.isnan(metrics.to_dict()["intensity"]["meanAbsDiff"])

    def test_never_firing_gives_zero_conditionals(self, config, extractor, implication_evaluator):
        never = {"id": "never", "weights": {"valence": 1.0}, "gates": ["threat >= 2.0"]}
        other = {"id": "other", "weights": {"valence": 1.0}, "gates": ["arousal >= 2.0"]}
        evaluator = make_evaluator(config, extractor, implication_evaluator, ScriptedStates([0.5]))
        metrics = asyncio.run(evaluator.evaluate(never, other, 5))
        assert metrics.pass_rates.p_a_given_b == 0.0
        assert metrics.pass_rates.p_b_given_a == 0.0
        assert metrics.gate_overlap.on_either_rate == 0.0

    def test_progress_reported_per_chunk(self, config, extractor, implication_evaluator):
        calls = []
        evaluator = make_evaluator(config, extractor, implication_evaluator, ScriptedStates([0.9]))
        asyncio.run(evaluator.evaluate(NARROW, WIDE, 1200, lambda done, total: calls.append((done, total))))
        assert calls == [(500, 1200), (1000, 1200), (1200, 1200)]

    def test_seeded_generator_is_reproducible(self, config, extractor, implication_evaluator):
        def run():
            evaluator = make_evaluator(config, extractor, implication_evaluator, UniformStateGenerator(seed=11))
            return asyncio.run(evaluator.evaluate(NARROW, WIDE, 300)).to_dict()["gateOverlap"]

        assert run() == run()

    def test_debug_log_on_completion(self, config, extractor, implication_evaluator, mock_logger):
        evaluator = make_evaluator(
            config, extractor, implication_evaluator, ScriptedStates([0.9]), logger=mock_logger
        )
        asyncio.run(evaluator.evaluate(NARROW, WIDE, 3))
        message = mock_logger.debug.call_args[0][0]
        assert "Completed 3 samples" in message
