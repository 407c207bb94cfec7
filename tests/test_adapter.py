"""Tests for the shrinkage model adapter."""

import numpy as np
import pandas as pd
import pytest

from ab_mash.analysis.effect_estimation import compute_effect_estimates
from ab_mash.exceptions import ExternalProcedureFailure, InvalidParameter, ShapeMismatch
from ab_mash.shrinkage import MashError, MashResult, ShrinkageModelAdapter


@pytest.fixture
def adapter() -> ShrinkageModelAdapter:
    return ShrinkageModelAdapter()


@pytest.fixture
def estimates(assigned: pd.DataFrame) -> pd.DataFrame:
    return compute_effect_estimates(assigned)


class TestToMatrices:
    """Tests for reshaping estimates into matrices."""

    def test_aligned_matrices(self, adapter: ShrinkageModelAdapter, estimates: pd.DataFrame) -> None:
        bhat, shat = adapter.to_matrices(estimates)
        assert bhat.shape == (100, 2)
        assert list(bhat.columns) == ["metric_a", "metric_b"]
        assert bhat.index.equals(shat.index)
        assert bhat.columns.equals(shat.columns)

        row = estimates[(estimates["experiment"] == 7) & (estimates["metric"] == "metric_b")].iloc[0]
        assert bhat.loc[7, "metric_b"] == row["estimate"]
        assert shat.loc[7, "metric_b"] == row["std_error"]

    def test_rejects_duplicates(self, adapter: ShrinkageModelAdapter, estimates: pd.DataFrame) -> None:
        doubled = pd.concat([estimates, estimates.head(1)], ignore_index=True)
        with pytest.raises(InvalidParameter):
            adapter.to_matrices(doubled)

    def test_rejects_missing_columns(self, adapter: ShrinkageModelAdapter, estimates: pd.DataFrame) -> None:
        with pytest.raises(InvalidParameter):
            adapter.to_matrices(estimates.drop(columns=["std_error"]))


class TestValidateShapes:
    """Tests for ShapeMismatch detection."""

    def test_row_count(self, adapter: ShrinkageModelAdapter) -> None:
        with pytest.raises(ShapeMismatch):
            adapter.validate_shapes(np.zeros((10, 2)), np.ones((9, 2)))

    def test_column_count(self, adapter: ShrinkageModelAdapter) -> None:
        with pytest.raises(ShapeMismatch):
            adapter.validate_shapes(np.zeros((10, 2)), np.ones((10, 3)))

    def test_row_labels(self, adapter: ShrinkageModelAdapter) -> None:
        bhat = pd.DataFrame(np.zeros((3, 2)), index=[0, 1, 2], columns=["a", "b"])
        shat = pd.DataFrame(np.ones((3, 2)), index=[2, 1, 0], columns=["a", "b"])
        with pytest.raises(ShapeMismatch):
            adapter.validate_shapes(bhat, shat)

    def test_column_labels(self, adapter: ShrinkageModelAdapter) -> None:
        bhat = pd.DataFrame(np.zeros((3, 2)), columns=["a", "b"])
        shat = pd.DataFrame(np.ones((3, 2)), columns=["b", "a"])
        with pytest.raises(ShapeMismatch):
            adapter.validate_shapes(bhat, shat)

    def test_fit_checks_shapes_first(self, adapter: ShrinkageModelAdapter) -> None:
        bhat = pd.DataFrame(np.zeros((4, 2)), columns=["a", "b"])
        shat = pd.DataFrame(np.ones((5, 2)), columns=["a", "b"])
        with pytest.raises(ShapeMismatch):
            adapter.fit(bhat, shat)


class TestFit:
    """Tests for running the shrinkage procedure through the adapter."""

    def test_fit_estimates(self, adapter: ShrinkageModelAdapter, estimates: pd.DataFrame) -> None:
        fitted = adapter.fit_estimates(estimates)
        assert isinstance(fitted, MashResult)
        assert fitted.condition_names == ["metric_a", "metric_b"]
        assert fitted.row_names == list(range(100))
        assert fitted.posterior_mean.shape == (100, 2)
        assert fitted.null_correlation[0, 0] == pytest.approx(1.0)
        assert -1.0 < fitted.null_correlation[0, 1] < 1.0

    def test_fit_plain_arrays(self, adapter: ShrinkageModelAdapter, rng: np.random.Generator) -> None:
        """Unlabelled matrices get positional row and column labels."""
        fitted = adapter.fit(rng.standard_normal((50, 2)), np.ones((50, 2)))
        assert isinstance(fitted, MashResult)
        assert fitted.row_names == list(range(50))
        assert fitted.condition_names == ["0", "1"]
        assert fitted.posterior_mean.shape == (50, 2)

    def test_null_correlation_frame(self, adapter: ShrinkageModelAdapter, estimates: pd.DataFrame) -> None:
        bhat, shat = adapter.to_matrices(estimates)
        vhat = adapter.estimate_null_correlation(bhat, shat)
        assert list(vhat.index) == ["metric_a", "metric_b"]
        assert vhat.loc["metric_a", "metric_b"] == pytest.approx(vhat.loc["metric_b", "metric_a"])

    def test_candidate_covariances(self, adapter: ShrinkageModelAdapter, estimates: pd.DataFrame) -> None:
        bhat, shat = adapter.to_matrices(estimates)
        candidates = adapter.build_candidate_covariances(adapter.set_data(bhat, shat))
        assert len(candidates) == 7
        assert "equal_effects" in candidates

    def test_config_override(self) -> None:
        adapter = ShrinkageModelAdapter({"simple_het_correlations": [0.5]})
        bhat = pd.DataFrame(np.zeros((3, 2)), columns=["a", "b"])
        candidates = adapter.build_candidate_covariances(adapter.set_data(bhat, bhat + 1.0))
        assert [name for name in candidates if name.startswith("simple_het")] == ["simple_het_1"]

    def test_zero_standard_error_surfaces_as_failure(self, adapter: ShrinkageModelAdapter) -> None:
        bhat = pd.DataFrame(np.zeros((5, 2)), columns=["a", "b"])
        shat = pd.DataFrame(np.ones((5, 2)), columns=["a", "b"])
        shat.iloc[0, 0] = 0.0
        with pytest.raises(ExternalProcedureFailure) as excinfo:
            adapter.fit(bhat, shat)
        assert isinstance(excinfo.value.__cause__, MashError)

    def test_no_null_rows_surfaces_as_failure(self, adapter: ShrinkageModelAdapter) -> None:
        bhat = pd.DataFrame(np.full((20, 2), 10.0), columns=["a", "b"])
        shat = pd.DataFrame(np.ones((20, 2)), columns=["a", "b"])
        with pytest.raises(ExternalProcedureFailure):
            adapter.fit(bhat, shat)
