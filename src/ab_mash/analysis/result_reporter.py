"""
Read-only accessors over a fitted shrinkage model
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..shrinkage.mash_model import MashResult


@dataclass
class ShrinkageReport:
    """Per-experiment raw and posterior estimates plus global model summaries"""

    experiments: pd.DataFrame
    mixture_proportions: pd.Series
    null_correlation: pd.DataFrame
    pairwise_sharing: pd.DataFrame
    significant_experiments: List
    lfsr_threshold: float


class ResultReporter:
    """Posterior summaries of a MashResult as labelled pandas objects"""

    def __init__(self, fitted: MashResult):
        self.fitted = fitted
        self.index = pd.Index(fitted.row_names, name="experiment")
        self.columns = pd.Index(fitted.condition_names)

    def _frame(self, values: np.ndarray) -> pd.DataFrame:
        return pd.DataFrame(np.array(values, copy=True), index=self.index, columns=self.columns)

    def get_pm(self) -> pd.DataFrame:
        """Posterior means"""
        return self._frame(self.fitted.posterior_mean)

    def get_psd(self) -> pd.DataFrame:
        """Posterior standard deviations"""
        return self._frame(self.fitted.posterior_sd)

    def get_lfsr(self) -> pd.DataFrame:
        """Local false sign rates"""
        return self._frame(self.fitted.lfsr)

    def _condition_positions(self, conditions: Optional[Sequence[Union[int, str]]]) -> List[int]:
        if conditions is None:
            return list(range(len(self.columns)))
        positions = []
        for c in conditions:
            positions.append(self.columns.get_loc(c) if isinstance(c, str) else int(c))
        return positions

    def get_significant_results(
        self,
        thresh: float = 0.05,
        conditions: Optional[Sequence[Union[int, str]]] = None,
    ) -> List:
        """
        Experiments significant in at least one of the chosen metrics

        Args:
            thresh: lfsr threshold
            conditions: Metric names or positions (default: all)

        Returns:
            Experiment labels ordered from most to least significant
        """
        positions = self._condition_positions(conditions)
        top = self.fitted.lfsr[:, positions].min(axis=1)
        sig = np.flatnonzero(top < thresh)
        order = sig[np.argsort(top[sig], kind="stable")]
        return [self.fitted.row_names[i] for i in order]

    def get_pairwise_sharing(self, factor: float = 0.5, lfsr_thresh: float = 0.05) -> pd.DataFrame:
        """
        Share of significant effects that are shared between each pair of metrics

        For a pair (i, j), among experiments significant in i or j, the share
        whose posterior-mean ratio lies within (factor, 1/factor). factor=0
        counts effects of the same sign.
        """
        r = len(self.columns)
        pm = self.fitted.posterior_mean
        sharing = np.full((r, r), np.nan)
        for i in range(r):
            sig_i = set(np.flatnonzero(self.fitted.lfsr[:, i] < lfsr_thresh))
            for j in range(i, r):
                sig_j = set(np.flatnonzero(self.fitted.lfsr[:, j] < lfsr_thresh))
                rows = np.array(sorted(sig_i | sig_j), dtype=int)
                if rows.size == 0:
                    continue
                with np.errstate(divide="ignore", invalid="ignore"):
                    ratio = pm[rows, i] / pm[rows, j]
                # 0/0 has no ratio and is left out of the denominator
                ratio = ratio[~np.isnan(ratio)]
                if ratio.size == 0:
                    continue
                upper = np.inf if factor == 0 else 1.0 / factor
                sharing[i, j] = sharing[j, i] = float(np.mean((ratio > factor) & (ratio < upper)))
        return pd.DataFrame(sharing, index=self.columns, columns=self.columns)

    def get_estimated_pi(self) -> pd.Series:
        """Mixture proportions summed over the grid for each covariance hypothesis"""
        weights = pd.Series(self.fitted.pi, index=self.fitted.component_names)
        order = list(dict.fromkeys(self.fitted.component_names))
        return weights.groupby(level=0, sort=False).sum().reindex(order).rename("pi")

    def get_loglik(self) -> float:
        return self.fitted.loglik

    def get_log10bf(self) -> Optional[pd.Series]:
        if self.fitted.log10bf is None:
            return None
        return pd.Series(self.fitted.log10bf, index=self.index, name="log10bf")

    def build_report(
        self,
        estimates: pd.DataFrame,
        thresh: float = 0.05,
        sharing_factor: float = 0.5,
    ) -> ShrinkageReport:
        """
        Join raw estimates with posterior summaries, one row per experiment

        Args:
            estimates: Output of compute_effect_estimates()
            thresh: lfsr threshold for posterior significance
            sharing_factor: Magnitude factor for pairwise sharing

        Returns:
            ShrinkageReport
        """
        raw = {
            value: estimates.pivot(index="experiment", columns="metric", values=value).reindex(self.index)
            for value in ["estimate", "std_error", "significant"]
        }
        pm, psd, lfsr = self.get_pm(), self.get_psd(), self.get_lfsr()

        table = pd.DataFrame(index=self.index)
        for metric in self.columns:
            table[f"estimate_{metric}"] = raw["estimate"][metric].astype(float)
            table[f"std_error_{metric}"] = raw["std_error"][metric].astype(float)
            table[f"significant_{metric}"] = raw["significant"][metric].astype(bool)
            table[f"posterior_mean_{metric}"] = pm[metric]
            table[f"posterior_sd_{metric}"] = psd[metric]
            table[f"lfsr_{metric}"] = lfsr[metric]
            table[f"posterior_significant_{metric}"] = lfsr[metric] < thresh
        table["posterior_significant_any"] = (lfsr < thresh).any(axis=1)
        if self.fitted.log10bf is not None:
            table["log10bf"] = self.fitted.log10bf

        null_cor = pd.DataFrame(self.fitted.null_correlation, index=self.columns, columns=self.columns)
        return ShrinkageReport(
            experiments=table.reset_index(),
            mixture_proportions=self.get_estimated_pi(),
            null_correlation=null_cor,
            pairwise_sharing=self.get_pairwise_sharing(factor=sharing_factor, lfsr_thresh=thresh),
            significant_experiments=self.get_significant_results(thresh=thresh),
            lfsr_threshold=thresh,
        )
