"""
Shrinkage Module

Multivariate adaptive shrinkage backend and the adapter that feeds it.
"""

from .mash_model import (
    MashData,
    MashError,
    MashResult,
    autoselect_grid,
    compute_lfsr,
    cov_canonical,
    estimate_null_correlation_simple,
    fit_mash,
    mash_set_data,
    mash_update_data,
)
from .adapter import ShrinkageModelAdapter

__all__ = [
    "MashData",
    "MashError",
    "MashResult",
    "autoselect_grid",
    "compute_lfsr",
    "cov_canonical",
    "estimate_null_correlation_simple",
    "fit_mash",
    "mash_set_data",
    "mash_update_data",
    "ShrinkageModelAdapter",
]
