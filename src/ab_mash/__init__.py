"""
ab_mash: Adaptive Shrinkage for Correlated Experiment Outcomes

This package simulates many A/B tests on two correlated outcome metrics,
estimates treatment effects with confidence intervals, and improves those
estimates with multivariate adaptive shrinkage (mash) fitted across all
experiments jointly.
"""

__version__ = "0.1.0"
__author__ = "Research Team"
__description__ = "Multivariate adaptive shrinkage for correlated A/B test metrics"

# Import main modules
from .exceptions import (
    AbMashError,
    ExternalProcedureFailure,
    InsufficientData,
    InvalidParameter,
    ShapeMismatch,
)
from .experiments.main import CorrelatedOutcomesExperiment
from .analysis.result_reporter import ResultReporter

__all__ = [
    "CorrelatedOutcomesExperiment",
    "ResultReporter",
    "AbMashError",
    "ExternalProcedureFailure",
    "InsufficientData",
    "InvalidParameter",
    "ShapeMismatch",
]
