"""
Correlated outcomes experiment: simulation, estimation and adaptive shrinkage
"""

import warnings
from typing import Dict, Optional

import numpy as np
import pandas as pd

from ..analysis.effect_estimation import (
    compute_effect_estimates,
    estimate_correlation,
    false_positive_rate,
)
from ..analysis.result_reporter import ResultReporter, ShrinkageReport
from ..analysis.statistical_report import evaluate_shrinkage, generate_statistical_report
from ..config.experiment_config import (
    DATA_DIR,
    MASH_CONFIG,
    REPORT_CONFIG,
    REPORTS_DIR,
    SimulationConfig,
    ensure_result_dirs,
    load_config,
)
from ..shrinkage.adapter import ShrinkageModelAdapter
from ..shrinkage.mash_model import MashResult
from ..simulation.assignment import apply_treatment_effects, assign_experiments
from ..simulation.data_simulator import observed_correlation, simulate_population


class CorrelatedOutcomesExperiment:
    """Many two-arm experiments on two correlated metrics, improved with mash"""

    def __init__(self, config: Optional[SimulationConfig] = None,
                 mash_config: Optional[Dict] = None,
                 report_config: Optional[Dict] = None):
        """Initialize with a validated configuration and one generator for the whole run"""
        self.config = (config or load_config()).validate()
        self.mash_config = {**MASH_CONFIG, **(mash_config or {})}
        self.report_config = {**REPORT_CONFIG, **(report_config or {})}
        self.rng = np.random.default_rng(self.config.seed)
        self.adapter = ShrinkageModelAdapter(self.mash_config)

        self.population: Optional[pd.DataFrame] = None
        self.assigned: Optional[pd.DataFrame] = None
        self.true_effects: Optional[pd.DataFrame] = None
        self.estimates: Optional[pd.DataFrame] = None
        self.fitted: Optional[MashResult] = None
        self.report: Optional[ShrinkageReport] = None
        self.evaluation: Optional[Dict] = None

    def simulate(self) -> pd.DataFrame:
        """Draw the correlated population"""
        cfg = self.config
        print(f"\n=== Simulating {cfg.population_size:,} units (rho = {cfg.correlation:.2f}) ===")
        self.population = simulate_population(
            cfg.population_size,
            cfg.correlation,
            self.rng,
            empirical=cfg.empirical,
            metric_names=cfg.metric_names,
        )
        print(f"Observed unit-level correlation: "
              f"{observed_correlation(self.population, cfg.metric_names):.4f}")
        return self.population

    def assign(self) -> pd.DataFrame:
        """Split the population into experiments, then inject any true effects"""
        cfg = self.config
        if self.population is None:
            self.simulate()
        print(f"\n=== Assigning units to {cfg.experiment_count:,} experiments ===")
        assigned = assign_experiments(self.population, cfg.experiment_count, self.rng)
        assigned, self.true_effects = apply_treatment_effects(
            assigned, cfg.effect_sizes, cfg.effect_share, self.rng, metric_names=cfg.metric_names
        )
        self.assigned = assigned

        counts = assigned.groupby("experiment").size()
        share = (assigned["condition"] == "treatment").mean()
        print(f"Units per experiment: min {counts.min()}, max {counts.max()}")
        print(f"Treatment share: {share:.4f}")
        n_effect = int((self.true_effects != 0).any(axis=1).sum())
        print(f"Experiments with a true effect: {n_effect}")
        return self.assigned

    def estimate(self) -> pd.DataFrame:
        """Difference-in-means estimates with confidence intervals"""
        cfg = self.config
        if self.assigned is None:
            self.assign()
        print(f"\n=== Estimating treatment effects ({cfg.confidence_level:.0%} CI) ===")
        self.estimates = compute_effect_estimates(
            self.assigned, confidence_level=cfg.confidence_level, metrics=cfg.metric_names
        )
        for metric in cfg.metric_names:
            print(f"{metric}: significant share {false_positive_rate(self.estimates, metric):.4f}")
        print(f"Correlation of point estimates across metrics: "
              f"{estimate_correlation(self.estimates, cfg.metric_names):.4f}")
        return self.estimates

    def fit_shrinkage(self) -> MashResult:
        """Fit the adaptive shrinkage model on all experiments jointly"""
        if self.estimates is None:
            self.estimate()
        print("\n=== Fitting adaptive shrinkage model ===")
        bhat, shat = self.adapter.to_matrices(self.estimates)
        self.fitted = self.adapter.fit(bhat, shat)
        print(f"Null correlation estimate:\n{pd.DataFrame(self.fitted.null_correlation).round(4)}")
        print(f"Log-likelihood: {self.fitted.loglik:.4f} ({self.fitted.n_iterations} EM iterations)")
        return self.fitted

    def build_report(self) -> ShrinkageReport:
        """Posterior summaries joined with the raw estimates"""
        if self.fitted is None:
            self.fit_shrinkage()
        reporter = ResultReporter(self.fitted)
        self.report = reporter.build_report(
            self.estimates,
            thresh=self.report_config["lfsr_threshold"],
            sharing_factor=self.report_config["sharing_factor"],
        )
        self.evaluation = evaluate_shrinkage(self.report, self.true_effects)

        print("\n=== Shrinkage results ===")
        print(f"Experiments significant in any metric: raw {self.evaluation['raw_significant_any']}, "
              f"posterior {self.evaluation['posterior_significant_any']}")
        print("Estimated mixture proportions:")
        print(self.report.mixture_proportions.round(4).to_string())
        return self.report

    def save_results(self) -> Dict[str, str]:
        """Write estimates, report table and text report to the results directory"""
        if self.report is None:
            self.build_report()
        ensure_result_dirs()
        float_format = self.report_config["float_format"]
        paths = {
            "estimates": DATA_DIR / "effect_estimates.csv",
            "report": DATA_DIR / "shrinkage_report.csv",
            "mixture": DATA_DIR / "mixture_proportions.csv",
            "text": REPORTS_DIR / "shrinkage_analysis_report.txt",
        }
        self.estimates.to_csv(paths["estimates"], index=False, float_format=float_format)
        self.report.experiments.to_csv(paths["report"], index=False, float_format=float_format)
        self.report.mixture_proportions.to_csv(paths["mixture"], header=True)
        generate_statistical_report(
            self.config.to_dict(), self.evaluation, self.report, save_path=str(paths["text"])
        )
        print(f"\nResults saved to: {DATA_DIR}")
        print(f"Report saved to: {REPORTS_DIR}")
        return {name: str(path) for name, path in paths.items()}

    def run(self, save: bool = True) -> ShrinkageReport:
        """Run the full pipeline once"""
        self.simulate()
        self.assign()
        self.estimate()
        self.fit_shrinkage()
        report = self.build_report()
        if save:
            self.save_results()
        return report


def main():
    """Main execution function"""
    warnings.filterwarnings('ignore')
    experiment = CorrelatedOutcomesExperiment()
    report = experiment.run()
    print(generate_statistical_report(experiment.config.to_dict(), experiment.evaluation, report))
    return report


if __name__ == "__main__":
    main()
