"""Pytest fixtures for ab_mash tests."""

from typing import Callable, Sequence

import numpy as np
import pandas as pd
import pytest

from ab_mash.shrinkage.mash_model import MashResult, compute_lfsr
from ab_mash.simulation import assign_experiments, simulate_population


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded generator for a single test."""
    return np.random.default_rng(12345)


@pytest.fixture
def population(rng: np.random.Generator) -> pd.DataFrame:
    """Small correlated population with exact correlation 0.4."""
    return simulate_population(20_000, 0.4, rng, empirical=True)


@pytest.fixture
def assigned(population: pd.DataFrame, rng: np.random.Generator) -> pd.DataFrame:
    """Population split into 100 experiments."""
    return assign_experiments(population, 100, rng)


def _two_arm_frame(groups: dict) -> pd.DataFrame:
    """Build units from {(experiment, condition): [values]} for one metric."""
    rows = []
    unit_id = 0
    for (experiment, condition), values in groups.items():
        for value in values:
            rows.append({"unit_id": unit_id, "metric_a": float(value),
                         "experiment": experiment, "condition": condition})
            unit_id += 1
    return pd.DataFrame(rows)


@pytest.fixture
def two_arm_frame() -> Callable[[dict], pd.DataFrame]:
    """Factory for hand-built experiment data."""
    return _two_arm_frame


def _make_result(
    posterior_mean: Sequence[Sequence[float]],
    lfsr: Sequence[Sequence[float]],
    row_names: Sequence = None,
    condition_names: Sequence[str] = ("metric_a", "metric_b"),
    component_names: Sequence[str] = ("null", "identity"),
    pi: Sequence[float] = (0.5, 0.5),
) -> MashResult:
    pm = np.asarray(posterior_mean, dtype=float)
    lfsr_arr = np.asarray(lfsr, dtype=float)
    n_rows, n_cond = pm.shape
    rows = list(row_names) if row_names is not None else list(range(n_rows))
    neg = np.where(pm < 0, 1.0 - lfsr_arr, lfsr_arr)
    zero = np.zeros_like(pm)
    return MashResult(
        posterior_mean=pm,
        posterior_sd=np.full_like(pm, 0.1),
        lfsr=compute_lfsr(neg, zero),
        negative_prob=neg,
        zero_prob=zero,
        posterior_weights=np.full((n_rows, len(pi)), 1.0 / len(pi)),
        pi=np.asarray(pi, dtype=float),
        component_names=list(component_names),
        grid=np.array([1.0]),
        Ulist={"identity": np.eye(n_cond)},
        loglik=-10.0,
        vloglik=np.full(n_rows, -10.0 / n_rows),
        log10bf=np.zeros(n_rows),
        null_correlation=np.eye(n_cond),
        condition_names=list(condition_names),
        row_names=rows,
    )


@pytest.fixture
def make_result() -> Callable[..., MashResult]:
    """Factory for synthetic fitted models with chosen posterior means and lfsr."""
    return _make_result
