#!/usr/bin/env python3
"""
Null calibration runner: false positive rates of raw vs shrunk estimates
across repeated A/A simulations
"""

import argparse
import sys
import warnings
from pathlib import Path

# Add the src directory to the Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root / "src"))

import pandas as pd

from ab_mash.config import DATA_DIR, ensure_result_dirs, load_config
from ab_mash.experiments.main import CorrelatedOutcomesExperiment


def main():
    """Main execution function"""
    warnings.filterwarnings('ignore')
    parser = argparse.ArgumentParser(description="Null calibration of raw and shrunk significance calls")
    parser.add_argument("--seeds", type=int, nargs="+", default=[1, 2, 3], help="seeds to simulate")
    parser.add_argument("--population-size", type=int, default=200_000, help="number of simulated units")
    parser.add_argument("--experiment-count", type=int, default=1000, help="number of experiments")
    args = parser.parse_args()

    print("=" * 60)
    print("Null calibration (A/A tests)")
    print("=" * 60)

    rows = []
    for seed in args.seeds:
        config = load_config({
            "seed": seed,
            "population_size": args.population_size,
            "experiment_count": args.experiment_count,
            "effect_share": 0.0,
        })
        experiment = CorrelatedOutcomesExperiment(config)
        experiment.run(save=False)
        evaluation = experiment.evaluation
        n = evaluation["n_experiments"]
        for metric, entry in evaluation["metrics"].items():
            rows.append({
                "seed": seed,
                "metric": metric,
                "raw_false_positive_rate": entry["raw_significant"] / n,
                "posterior_false_positive_rate": entry["posterior_significant"] / n,
                "raw_estimate_correlation": evaluation["raw_estimate_correlation"],
                "null_correlation": evaluation["null_correlation"],
            })

    calibration = pd.DataFrame(rows)
    ensure_result_dirs()
    calibration.to_csv(DATA_DIR / "null_calibration.csv", index=False)

    print("\n=== Calibration summary ===")
    print(calibration.groupby("metric")[["raw_false_positive_rate", "posterior_false_positive_rate"]].mean())
    print(f"\nResults saved to: {DATA_DIR / 'null_calibration.csv'}")
    return calibration


if __name__ == "__main__":
    main()
