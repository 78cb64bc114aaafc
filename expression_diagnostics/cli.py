#!/usr/bin/env python3
"""
expression-diagnostics - prototype overlap and axis gap reports

Reads a JSON prototype file and prints a JSON report.

The input is either a list of prototypes or an object with a "prototypes"
list. Axis gap runs also pick up optional "hubPrototypes" and
"coverageGaps" arrays from the same object.

Each prototype looks like:

    {"id": "joy", "weights": {"valence": 0.8, "arousal": 0.3},
     "gates": ["valence >= 0.20"]}
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import math
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from expression_diagnostics.axis_gap import (
    AxisGapReportSynthesizer,
    CandidateAxisExtractor,
    CandidateAxisValidator,
    MultiAxisConflictDetector,
    PCAAnalysisService,
)
from expression_diagnostics.config import (
    PrototypeOverlapConfig,
    load_config_from_env,
    validate_config_or_raise,
)
from expression_diagnostics.errors import DiagnosticsConfigError
from expression_diagnostics.gates import GateASTNormalizer, GateConstraintExtractor
from expression_diagnostics.overlap import (
    BehavioralOverlapEvaluator,
    CandidatePairFilter,
    FlatContextBuilder,
    GateBandingSuggestionBuilder,
    GateImplicationEvaluator,
    GateSimilarityFilter,
    IntervalGateChecker,
    OverlapClassifier,
    OverlapRecommendationBuilder,
    PrototypeOverlapAnalyzer,
    UniformStateGenerator,
    WeightedIntensityCalculator,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input / output
# ---------------------------------------------------------------------------

def load_input(path: Path | str) -> Dict[str, Any]:
    """Read the prototype file into ``{"prototypes": [...], ...}``."""
    data = json.loads(Path(path).read_text())
    if isinstance(data, list):
        return {"prototypes": data}
    if isinstance(data, dict) and isinstance(data.get("prototypes"), list):
        return data
    raise ValueError(f"{path}: expected a list of prototypes or an object with a 'prototypes' list")


def json_safe(value: Any) -> Any:
    """Replace NaN/inf with None so the report is strict JSON."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if hasattr(value, "to_dict"):
        return json_safe(value.to_dict())
    return value


def resolve_config(config_path: Optional[str]) -> PrototypeOverlapConfig:
    if config_path:
        config = PrototypeOverlapConfig.from_file(config_path)
    elif (env_config := load_config_from_env()) is not None:
        config = env_config
    else:
        config = PrototypeOverlapConfig()
    return validate_config_or_raise(config)


# ---------------------------------------------------------------------------
# Pipelines
# ---------------------------------------------------------------------------

def build_overlap_analyzer(config: PrototypeOverlapConfig, seed: Optional[int] = None) -> PrototypeOverlapAnalyzer:
    """Wire the overlap pipeline with the built-in sampling collaborators."""
    extractor = GateConstraintExtractor(strict_epsilon=config.strict_epsilon)
    normalizer = GateASTNormalizer(strict_epsilon=config.strict_epsilon)
    implication = GateImplicationEvaluator(normalizer)
    similarity = (
        GateSimilarityFilter(config, extractor, implication) if config.enable_multi_route_filtering else None
    )
    evaluator = BehavioralOverlapEvaluator(
        config,
        prototype_intensity_calculator=WeightedIntensityCalculator(),
        random_state_generator=UniformStateGenerator(seed=seed),
        context_builder=FlatContextBuilder(),
        prototype_gate_checker=IntervalGateChecker(),
        gate_constraint_extractor=extractor,
        gate_implication_evaluator=implication,
    )
    return PrototypeOverlapAnalyzer(
        config,
        candidate_pair_filter=CandidatePairFilter(config, gate_similarity_filter=similarity),
        behavioral_overlap_evaluator=evaluator,
        overlap_classifier=OverlapClassifier(config),
        overlap_recommendation_builder=OverlapRecommendationBuilder(config),
        gate_banding_suggestion_builder=GateBandingSuggestionBuilder(config),
    )


def run_overlap(
    prototypes: List[Dict[str, Any]],
    config: PrototypeOverlapConfig,
    family: str = "emotion",
    samples: Optional[int] = None,
    seed: Optional[int] = None,
) -> Dict[str, Any]:
    analyzer = build_overlap_analyzer(config, seed=seed)

    def on_progress(stage: str, data: Dict[str, Any]) -> None:
        if stage == "evaluating" and data.get("sampleIndex") == data.get("sampleTotal"):
            logger.info(f"Evaluated pair {data.get('pairIndex')}/{data.get('pairTotal')}")

    return asyncio.run(
        analyzer.analyze(prototypes, prototype_family=family, sample_count=samples, on_progress=on_progress)
    )


def run_axis_gap(
    prototypes: List[Dict[str, Any]],
    config: PrototypeOverlapConfig,
    hubs: Optional[List[Dict[str, Any]]] = None,
    gaps: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    synthesizer = AxisGapReportSynthesizer(config)
    if len(prototypes) < 2:
        return synthesizer.build_empty_report(len(prototypes))

    hubs = hubs or []
    gaps = gaps or []
    pca = PCAAnalysisService(config).analyze(prototypes)
    split = MultiAxisConflictDetector(config).detect(prototypes)
    candidates = CandidateAxisExtractor(config).extract(pca, gaps, hubs, prototypes)
    validation = CandidateAxisValidator(config).validate(prototypes, pca.get("dimensionsUsed"), candidates)

    return synthesizer.synthesize(
        pca,
        hubs,
        gaps,
        split["conflicts"],
        len(prototypes),
        prototypes=prototypes,
        split_conflicts=split,
        candidate_axis_validation=[v.to_dict() for v in validation],
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="expression-diagnostics",
        description="Prototype overlap and axis gap diagnostics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  expression-diagnostics overlap prototypes.json --samples 2000 --seed 7
  expression-diagnostics axis-gap prototypes.json --config config/prototype_overlap.yaml
        """,
    )
    parser.add_argument("--config", help="YAML config file (default: $EXPRDIAG_OVERLAP_CONFIG or built-in defaults)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--output", help="Write the report here instead of stdout")

    subparsers = parser.add_subparsers(dest="command", required=True)

    overlap = subparsers.add_parser("overlap", help="Find redundant prototype pairs")
    overlap.add_argument("prototypes", help="Prototype JSON file")
    overlap.add_argument("--family", default="emotion", help="Prototype family label (default: emotion)")
    overlap.add_argument("--samples", type=int, help="Samples per candidate pair")
    overlap.add_argument("--seed", type=int, help="Random seed for state sampling")

    axis_gap = subparsers.add_parser("axis-gap", help="Look for missing axes in the weight space")
    axis_gap.add_argument("prototypes", help="Prototype JSON file")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        config = resolve_config(args.config)
        data = load_input(args.prototypes)
    except (OSError, ValueError, DiagnosticsConfigError) as e:
        logger.error(f"Could not load inputs: {e}")
        return 2

    prototypes = data["prototypes"]
    if args.command == "overlap":
        report = run_overlap(prototypes, config, family=args.family, samples=args.samples, seed=args.seed)
    else:
        report = run_axis_gap(prototypes, config, data.get("hubPrototypes"), data.get("coverageGaps"))

    text = json.dumps(json_safe(report), indent=2, sort_keys=True)
    if args.output:
        Path(args.output).write_text(text + "\n")
        logger.info(f"Report written to {args.output}")
    else:
        print(text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
