"""
Boundary adapter between effect estimates and the shrinkage procedure

Owns no estimation logic: it reshapes the long table of effect estimates
into aligned matrices, hands them to the mash backend and converts backend
failures into ExternalProcedureFailure.
"""

from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from ..config.experiment_config import MASH_CONFIG
from ..exceptions import ExternalProcedureFailure, InvalidParameter, ShapeMismatch
from .mash_model import (
    MashData,
    MashError,
    MashResult,
    cov_canonical,
    estimate_null_correlation_simple,
    fit_mash,
    mash_set_data,
    mash_update_data,
)


class ShrinkageModelAdapter:
    """Shape effect estimates for the mash procedure and run it"""

    def __init__(self, mash_config: Optional[Dict] = None):
        self.config = dict(MASH_CONFIG)
        if mash_config:
            self.config.update(mash_config)

    @staticmethod
    def to_matrices(estimates: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Pivot per-(experiment, metric) rows into Bhat / Shat matrices

        Args:
            estimates: Output of compute_effect_estimates()

        Returns:
            (Bhat, Shat) with rows = experiments, columns = metrics
        """
        missing = {"experiment", "metric", "estimate", "std_error"} - set(estimates.columns)
        if missing:
            raise InvalidParameter(f"Estimates are missing columns: {sorted(missing)}")
        if estimates.duplicated(["experiment", "metric"]).any():
            raise InvalidParameter("Estimates contain duplicate (experiment, metric) rows")

        metrics = list(pd.unique(estimates["metric"]))
        bhat = estimates.pivot(index="experiment", columns="metric", values="estimate")[metrics]
        shat = estimates.pivot(index="experiment", columns="metric", values="std_error")[metrics]
        bhat.columns.name = shat.columns.name = None
        return bhat, shat

    @staticmethod
    def validate_shapes(bhat: pd.DataFrame, shat: pd.DataFrame) -> None:
        """Raise ShapeMismatch unless both matrices have the same shape and labels"""
        if bhat.shape != shat.shape:
            raise ShapeMismatch(
                f"Point estimates {bhat.shape} and standard errors {shat.shape} differ in shape"
            )
        if isinstance(bhat, pd.DataFrame) and isinstance(shat, pd.DataFrame):
            if not bhat.index.equals(shat.index):
                raise ShapeMismatch("Point estimates and standard errors have different row order")
            if not bhat.columns.equals(shat.columns):
                raise ShapeMismatch("Point estimates and standard errors have different column order")

    def _call(self, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (MashError, np.linalg.LinAlgError, FloatingPointError) as exc:
            raise ExternalProcedureFailure(f"Shrinkage procedure failed: {exc}") from exc

    @staticmethod
    def _as_frames(bhat, shat) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """Shape-checked inputs as labelled DataFrames"""
        ShrinkageModelAdapter.validate_shapes(bhat, shat)
        if not isinstance(bhat, pd.DataFrame):
            bhat = pd.DataFrame(np.asarray(bhat, dtype=float))
        if not isinstance(shat, pd.DataFrame):
            shat = pd.DataFrame(np.asarray(shat, dtype=float), index=bhat.index, columns=bhat.columns)
        return bhat, shat

    def set_data(self, bhat: pd.DataFrame, shat: pd.DataFrame) -> MashData:
        bhat, shat = self._as_frames(bhat, shat)
        return self._call(
            mash_set_data,
            bhat.to_numpy(dtype=float),
            shat.to_numpy(dtype=float),
            condition_names=[str(c) for c in bhat.columns],
            row_names=list(bhat.index),
        )

    def estimate_null_correlation(self, bhat: pd.DataFrame, shat: pd.DataFrame) -> pd.DataFrame:
        """Correlation of sampling errors across metrics under the null"""
        data = self.set_data(bhat, shat)
        vhat = self._call(estimate_null_correlation_simple, data, z_thresh=self.config["z_thresh"])
        return pd.DataFrame(vhat, index=data.condition_names, columns=data.condition_names)

    def build_candidate_covariances(self, data: MashData) -> Dict[str, np.ndarray]:
        """Identity, singletons, equal effects and intermediate correlations"""
        return self._call(
            cov_canonical,
            data,
            simple_het_correlations=self.config["simple_het_correlations"],
        )

    def fit_model(self, data: MashData, candidate_covariances: Dict[str, np.ndarray]) -> MashResult:
        return self._call(
            fit_mash,
            data,
            candidate_covariances,
            grid_mult=self.config["grid_mult"],
            use_point_mass=self.config["use_point_mass"],
            null_weight=self.config["null_weight"],
            max_iter=self.config["max_iter"],
            tol=self.config["tol"],
        )

    def fit(self, bhat: pd.DataFrame, shat: pd.DataFrame) -> MashResult:
        """
        Run the full shrinkage procedure

        Args:
            bhat: Point estimates, experiments x metrics
            shat: Standard errors aligned with `bhat`

        Returns:
            Fitted model
        """
        bhat, shat = self._as_frames(bhat, shat)
        vhat = self.estimate_null_correlation(bhat, shat)
        data = self._call(mash_update_data, self.set_data(bhat, shat), vhat.to_numpy())
        candidates = self.build_candidate_covariances(data)
        return self.fit_model(data, candidates)

    def fit_estimates(self, estimates: pd.DataFrame) -> MashResult:
        """Pivot a table of effect estimates and fit"""
        bhat, shat = self.to_matrices(estimates)
        return self.fit(bhat, shat)
