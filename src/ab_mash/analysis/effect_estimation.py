"""
Treatment effect estimation for many two-arm experiments

For every (experiment, metric) pair the difference in means between
treatment and control is reported with its standard error, a normal
confidence interval and a significance flag.
"""

from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from ..exceptions import InsufficientData, InvalidParameter
from ..simulation.assignment import CONDITIONS, CONTROL, TREATMENT

ESTIMATE_COLUMNS = [
    "experiment",
    "metric",
    "estimate",
    "std_error",
    "ci_lower",
    "ci_upper",
    "significant",
    "mean_treatment",
    "mean_control",
    "n_treatment",
    "n_control",
]


def critical_value(confidence_level: float) -> float:
    """Two-sided normal critical value, e.g. 1.96 for 0.95"""
    if not 0.0 < confidence_level < 1.0:
        raise InvalidParameter(f"confidence_level must lie in (0, 1), got {confidence_level}")
    alpha = 1.0 - confidence_level
    return float(stats.norm.ppf(1.0 - alpha / 2.0))


def _infer_metrics(assigned: pd.DataFrame) -> List[str]:
    reserved = {"unit_id", "experiment", "condition"}
    return [c for c in assigned.columns if c not in reserved and pd.api.types.is_numeric_dtype(assigned[c])]


def _group_summary(experiment: np.ndarray, condition: np.ndarray, values: np.ndarray) -> pd.DataFrame:
    """Mean, sample SD and size per (experiment, condition), empty groups included."""
    frame = pd.DataFrame({"experiment": experiment, "condition": condition, "value": values})
    summary = frame.groupby(["experiment", "condition"])["value"].agg(["mean", "std", "count"])
    full_index = pd.MultiIndex.from_product(
        [np.unique(experiment), list(CONDITIONS)], names=["experiment", "condition"]
    )
    summary = summary.reindex(full_index)
    summary["count"] = summary["count"].fillna(0).astype(np.int64)
    return summary


def _check_group_sizes(summary: pd.DataFrame, metric: str) -> None:
    small = summary[summary["count"] < 2]
    if small.empty:
        return
    examples = ", ".join(
        f"(experiment={exp}, condition={cond}, n={n})"
        for (exp, cond), n in small["count"].head(5).items()
    )
    raise InsufficientData(
        f"{len(small)} group(s) for metric '{metric}' have fewer than 2 observations: {examples}"
    )


def compute_effect_estimates(
    assigned: pd.DataFrame,
    confidence_level: float = 0.95,
    metrics: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Difference-in-means estimates per experiment and metric

    Args:
        assigned: Units with `experiment`, `condition` and metric columns
        confidence_level: Coverage of the confidence interval (1 - alpha)
        metrics: Metric columns to analyse (default: every numeric column
            other than the identifiers)

    Returns:
        One row per (experiment, metric), see ESTIMATE_COLUMNS
    """
    z = critical_value(confidence_level)
    metrics = list(metrics) if metrics is not None else _infer_metrics(assigned)
    if not metrics:
        raise InvalidParameter("No metric columns to estimate")
    for column in ["experiment", "condition", *metrics]:
        if column not in assigned.columns:
            raise InvalidParameter(f"Missing column '{column}'")

    experiment = assigned["experiment"].to_numpy()
    condition = assigned["condition"].astype(str).to_numpy()
    unknown = set(np.unique(condition)) - set(CONDITIONS)
    if unknown:
        raise InvalidParameter(f"Unknown condition labels: {sorted(unknown)}")

    rows = []
    for metric in metrics:
        summary = _group_summary(experiment, condition, assigned[metric].to_numpy(dtype=float))
        _check_group_sizes(summary, metric)

        treated = summary.xs(TREATMENT, level="condition")
        control = summary.xs(CONTROL, level="condition")
        se_t = treated["std"] / np.sqrt(treated["count"])
        se_c = control["std"] / np.sqrt(control["count"])

        estimate = treated["mean"] - control["mean"]
        std_error = np.sqrt(se_t ** 2 + se_c ** 2)
        margin = std_error * z
        ci_lower = estimate - margin
        ci_upper = estimate + margin

        rows.append(pd.DataFrame({
            "experiment": treated.index.to_numpy(),
            "metric": metric,
            "estimate": estimate.to_numpy(),
            "std_error": std_error.to_numpy(),
            "ci_lower": ci_lower.to_numpy(),
            "ci_upper": ci_upper.to_numpy(),
            "significant": ((ci_lower > 0) | (ci_upper < 0)).to_numpy(),
            "mean_treatment": treated["mean"].to_numpy(),
            "mean_control": control["mean"].to_numpy(),
            "n_treatment": treated["count"].to_numpy(),
            "n_control": control["count"].to_numpy(),
        }))

    estimates = pd.concat(rows, ignore_index=True)
    estimates["metric"] = pd.Categorical(estimates["metric"], categories=metrics)
    estimates = estimates.sort_values(["experiment", "metric"], ignore_index=True)
    estimates["metric"] = estimates["metric"].astype(str)
    return estimates[ESTIMATE_COLUMNS]


def estimate_correlation(estimates: pd.DataFrame, metrics: Optional[Sequence[str]] = None) -> float:
    """Correlation of per-experiment point estimates between two metrics"""
    wide = estimates.pivot(index="experiment", columns="metric", values="estimate")
    a, b = list(metrics) if metrics is not None else list(wide.columns[:2])
    return float(np.corrcoef(wide[a].to_numpy(), wide[b].to_numpy())[0, 1])


def false_positive_rate(estimates: pd.DataFrame, metric: Optional[str] = None) -> float:
    """Share of significant rows, for one metric or all of them"""
    rows = estimates if metric is None else estimates[estimates["metric"] == metric]
    if rows.empty:
        raise InsufficientData("No estimates to summarise")
    return float(rows["significant"].mean())
