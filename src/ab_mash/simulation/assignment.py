"""
Experiment assignment

Splits a simulated population into independent two-arm experiments and,
optionally, injects true treatment effects into a share of them.
"""

from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy.random import Generator

from ..exceptions import InvalidParameter

CONTROL = "control"
TREATMENT = "treatment"
CONDITIONS = (CONTROL, TREATMENT)


def assign_experiments(population: pd.DataFrame, experiment_count: int, rng: Generator) -> pd.DataFrame:
    """
    Bucket units into experiments and flip a coin for each unit's arm

    The bucket is `unit_id mod experiment_count`, so reruns on the same
    population bucket identically; the arm comes from `rng`.

    Args:
        population: Output of simulate_population()
        experiment_count: Number of experiments K
        rng: Generator shared by the whole pipeline

    Returns:
        Copy of the population with `experiment` and `condition` columns
    """
    n_units = len(population)
    if experiment_count < 1:
        raise InvalidParameter(f"experiment_count must be at least 1, got {experiment_count}")
    if experiment_count > n_units:
        raise InvalidParameter(
            f"experiment_count ({experiment_count}) exceeds population size ({n_units})"
        )

    assigned = population.copy()
    assigned["experiment"] = (assigned["unit_id"].to_numpy() % experiment_count).astype(np.int64)
    coin = rng.integers(0, 2, size=n_units)
    assigned["condition"] = pd.Categorical.from_codes(coin, categories=list(CONDITIONS))
    return assigned


def apply_treatment_effects(
    assigned: pd.DataFrame,
    effect_sizes: Dict[str, float],
    effect_share: float,
    rng: Generator,
    metric_names: Optional[Sequence[str]] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Add a true lift to the treated units of randomly chosen experiments

    Args:
        assigned: Output of assign_experiments()
        effect_sizes: Lift per metric; metrics not listed get zero
        effect_share: Share of experiments that receive the lift
        rng: Generator shared by the whole pipeline
        metric_names: Metric columns (defaults to the keys of effect_sizes)

    Returns:
        (modified data, true effects indexed by experiment, one column per metric)
    """
    if not 0.0 <= effect_share <= 1.0:
        raise InvalidParameter(f"effect_share must lie in [0, 1], got {effect_share}")
    metrics = list(metric_names) if metric_names is not None else list(effect_sizes)
    missing = [m for m in metrics if m not in assigned.columns]
    if missing:
        raise InvalidParameter(f"Unknown metric columns: {missing}")

    experiments = np.sort(assigned["experiment"].unique())
    n_effect = int(round(effect_share * experiments.size))
    chosen = rng.choice(experiments, size=n_effect, replace=False) if n_effect else np.array([], dtype=np.int64)

    true_effects = pd.DataFrame(0.0, index=pd.Index(experiments, name="experiment"), columns=metrics)
    for metric in metrics:
        true_effects.loc[chosen, metric] = float(effect_sizes.get(metric, 0.0))

    modified = assigned.copy()
    if n_effect:
        mask = modified["experiment"].isin(chosen).to_numpy() & (modified["condition"] == TREATMENT).to_numpy()
        for metric in metrics:
            modified.loc[mask, metric] = modified.loc[mask, metric] + float(effect_sizes.get(metric, 0.0))
    return modified, true_effects
