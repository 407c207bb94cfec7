"""
Correlated outcome simulation

Draws a population of units whose two outcome metrics are bivariate normal
with a fixed unit-level correlation.
"""

from typing import Sequence

import numpy as np
import pandas as pd
from numpy.random import Generator

from ..exceptions import InvalidParameter

DEFAULT_METRICS = ("metric_a", "metric_b")


def _target_covariance(correlation: float, std_devs: Sequence[float]) -> np.ndarray:
    sd = np.asarray(std_devs, dtype=float)
    corr = np.array([[1.0, correlation], [correlation, 1.0]])
    return corr * np.outer(sd, sd)


def _empirical_draw(rng: Generator, n: int, mean: np.ndarray, sigma: np.ndarray) -> np.ndarray:
    """Sample whose sample mean and covariance equal the targets exactly."""
    p = mean.size
    x = rng.standard_normal((n, p))
    x = x - x.mean(axis=0)
    # rotate onto orthogonal columns, then unit sample variance
    _, _, vt = np.linalg.svd(x, full_matrices=False)
    x = x @ vt.T
    x = x / x.std(axis=0, ddof=1)
    eigvals, eigvecs = np.linalg.eigh(sigma)
    eigvals = np.clip(eigvals, 0.0, None)
    return mean + x @ (eigvecs * np.sqrt(eigvals)).T


def simulate_population(
    population_size: int,
    correlation: float,
    rng: Generator,
    empirical: bool = True,
    means: Sequence[float] = (0.0, 0.0),
    std_devs: Sequence[float] = (1.0, 1.0),
    metric_names: Sequence[str] = DEFAULT_METRICS,
) -> pd.DataFrame:
    """
    Simulate paired correlated measurements for every unit

    Args:
        population_size: Number of units N
        correlation: Target linear correlation between the two metrics
        rng: Generator shared by the whole pipeline
        empirical: Match mean, SD and correlation exactly in the sample
        means: Marginal means
        std_devs: Marginal standard deviations
        metric_names: Column names of the two metrics

    Returns:
        DataFrame with `unit_id` and one column per metric
    """
    if not -1.0 < correlation < 1.0:
        raise InvalidParameter(f"correlation must lie in (-1, 1), got {correlation}")
    if population_size < 2:
        raise InvalidParameter(f"population_size must be at least 2, got {population_size}")
    if not (len(metric_names) == len(means) == len(std_devs) == 2):
        raise InvalidParameter("metric_names, means and std_devs must each have two entries")
    if any(sd <= 0 for sd in std_devs):
        raise InvalidParameter(f"std_devs must be positive, got {list(std_devs)}")

    mean = np.asarray(means, dtype=float)
    sigma = _target_covariance(correlation, std_devs)

    if empirical:
        # exact second moments need more units than dimensions
        if population_size <= mean.size:
            raise InvalidParameter(
                f"empirical mode needs population_size > {mean.size}, got {population_size}"
            )
        values = _empirical_draw(rng, population_size, mean, sigma)
    else:
        values = rng.multivariate_normal(mean, sigma, size=population_size)

    population = pd.DataFrame(values, columns=list(metric_names))
    population.insert(0, "unit_id", np.arange(population_size, dtype=np.int64))
    return population


def observed_correlation(population: pd.DataFrame, metric_names: Sequence[str] = DEFAULT_METRICS) -> float:
    """Sample Pearson correlation between the two metric columns"""
    a, b = metric_names
    return float(np.corrcoef(population[a].to_numpy(), population[b].to_numpy())[0, 1])
