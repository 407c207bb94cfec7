"""
Analysis Module

Effect estimation, posterior reporting and evaluation of shrinkage results.
"""

from .effect_estimation import (
    compute_effect_estimates,
    critical_value,
    estimate_correlation,
    false_positive_rate,
)
from .result_reporter import ResultReporter, ShrinkageReport
from .statistical_report import evaluate_shrinkage, generate_statistical_report

__all__ = [
    "compute_effect_estimates",
    "critical_value",
    "estimate_correlation",
    "false_positive_rate",
    "ResultReporter",
    "ShrinkageReport",
    "evaluate_shrinkage",
    "generate_statistical_report",
]
