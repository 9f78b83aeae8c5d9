#!/usr/bin/env python3
"""
foldwise — Experiment Script
=============================
Resamples one learner on one dataset as described by a YAML config,
then reports scores and every error the capsules caught along the way.

Usage:
    python scripts/run_experiment.py --config configs/default.yaml
    python scripts/run_experiment.py --smoke-test
    python scripts/run_experiment.py --config configs/default.yaml --output results.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from foldwise.config import FoldwiseConfig
from foldwise.experiment import run_experiment

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="foldwise Experiment",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run the default experiment:
    python scripts/run_experiment.py --config configs/default.yaml

    # Quick smoke test:
    python scripts/run_experiment.py --smoke-test

    # Run in parallel and save a JSON summary:
    python scripts/run_experiment.py --config configs/default.yaml \\
        --n-jobs 4 --output outputs/summary.json
        """,
    )
    parser.add_argument(
        "--config", type=str, default="configs/default.yaml",
    )
    parser.add_argument(
        "--smoke-test", action="store_true",
    )
    parser.add_argument(
        "--n-jobs", type=int, default=None,
        help="Override execution.n_jobs from the config",
    )
    parser.add_argument(
        "--output", type=str, default=None,
        help="Write a JSON summary of the run to this path",
    )
    args = parser.parse_args()

    if args.smoke_test:
        config = FoldwiseConfig.for_smoke_test()
    else:
        config = FoldwiseConfig.from_yaml(args.config)
    if args.n_jobs is not None:
        config.execution.n_jobs = args.n_jobs

    rr = run_experiment(config)

    logger.info("=" * 60)
    logger.info(f"Results: {rr}")
    for measure in config.execution.measures:
        scores = rr.score(measure)
        logger.info(
            f"  {measure}: mean={rr.aggregate(measure):.4f} "
            f"per-iteration={[round(float(s), 4) for s in scores]}"
        )
    for record in rr.errors():
        logger.warning(
            f"  iter {record['iteration']} [{record['stage']}] {record['message']}"
        )
    logger.info("=" * 60)

    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        summary = rr.summary(config.execution.measures)
        summary["config"] = config.to_dict()
        summary["errors"] = rr.errors()
        with open(out, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2, default=str)
        logger.info(f"Summary written to {out}")


if __name__ == "__main__":
    main()
