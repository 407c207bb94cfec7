"""
Experiments Module

Runs the simulation, estimation and adaptive shrinkage pipeline end to end.
"""

from .main import CorrelatedOutcomesExperiment

__all__ = ["CorrelatedOutcomesExperiment"]
