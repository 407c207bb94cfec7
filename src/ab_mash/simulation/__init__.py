"""
Simulation Module

Generates correlated outcome data and assigns units to experiments.
"""

from .data_simulator import simulate_population, observed_correlation
from .assignment import (
    CONTROL,
    TREATMENT,
    assign_experiments,
    apply_treatment_effects,
)

__all__ = [
    "simulate_population",
    "observed_correlation",
    "CONTROL",
    "TREATMENT",
    "assign_experiments",
    "apply_treatment_effects",
]
