#!/usr/bin/env python3
"""
Runner script for the correlated outcomes shrinkage experiment
"""

import argparse
import sys
import warnings
from pathlib import Path

# Add the src directory to the Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root / "src"))

from ab_mash.analysis.statistical_report import generate_statistical_report
from ab_mash.config import load_config
from ab_mash.experiments.main import CorrelatedOutcomesExperiment


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate correlated A/B tests and apply adaptive shrinkage")
    parser.add_argument("--population-size", type=int, default=None, help="number of simulated units")
    parser.add_argument("--correlation", type=float, default=None, help="unit-level metric correlation")
    parser.add_argument("--experiment-count", type=int, default=None, help="number of experiments")
    parser.add_argument("--seed", type=int, default=None, help="random seed")
    parser.add_argument("--confidence-level", type=float, default=None, help="confidence level, e.g. 0.95")
    parser.add_argument("--effect-share", type=float, default=None, help="share of experiments with a true effect")
    parser.add_argument("--no-save", action="store_true", help="do not write results to disk")
    return parser.parse_args()


def main():
    """Main execution function"""
    warnings.filterwarnings('ignore')
    args = parse_args()
    overrides = {
        key: value
        for key, value in {
            "population_size": args.population_size,
            "correlation": args.correlation,
            "experiment_count": args.experiment_count,
            "seed": args.seed,
            "confidence_level": args.confidence_level,
            "effect_share": args.effect_share,
        }.items()
        if value is not None
    }

    print("=" * 60)
    print("Adaptive shrinkage for correlated experiment outcomes")
    print("=" * 60)

    experiment = CorrelatedOutcomesExperiment(load_config(overrides))
    report = experiment.run(save=not args.no_save)

    print()
    print(generate_statistical_report(experiment.config.to_dict(), experiment.evaluation, report))
    return report


if __name__ == "__main__":
    main()
