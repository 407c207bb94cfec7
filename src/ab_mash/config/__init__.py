"""
Configuration Module

Manages simulation parameters and shrinkage settings.
"""

from .experiment_config import (
    SIMULATION_CONFIG,
    EFFECT_CONFIG,
    MASH_CONFIG,
    REPORT_CONFIG,
    RESULTS_DIR,
    DATA_DIR,
    REPORTS_DIR,
    SimulationConfig,
    load_config,
    ensure_result_dirs,
)

__all__ = [
    "SIMULATION_CONFIG",
    "EFFECT_CONFIG",
    "MASH_CONFIG",
    "REPORT_CONFIG",
    "RESULTS_DIR",
    "DATA_DIR",
    "REPORTS_DIR",
    "SimulationConfig",
    "load_config",
    "ensure_result_dirs",
]
