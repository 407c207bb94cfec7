"""Tests for the adaptive shrinkage backend."""

import numpy as np
import pytest

from ab_mash.shrinkage.mash_model import (
    MashError,
    autoselect_grid,
    compute_lfsr,
    cov_canonical,
    estimate_null_correlation_simple,
    fit_mash,
    mash_set_data,
    mash_update_data,
)

NAMES = ["metric_a", "metric_b"]


def _null_data(seed: int, n_rows: int = 500, rho: float = 0.0):
    rng = np.random.default_rng(seed)
    cov = np.array([[1.0, rho], [rho, 1.0]])
    bhat = rng.multivariate_normal([0.0, 0.0], cov, size=n_rows)
    return mash_set_data(bhat, np.ones_like(bhat), condition_names=NAMES)


def _signal_data(seed: int, n_signal: int = 100, n_null: int = 300, effect: float = 5.0):
    rng = np.random.default_rng(seed)
    truth = np.zeros((n_signal + n_null, 2))
    truth[:n_signal] = effect
    bhat = truth + rng.standard_normal(truth.shape)
    return mash_set_data(bhat, np.ones_like(bhat), condition_names=NAMES), truth


class TestMashSetData:
    """Tests for input validation."""

    def test_defaults(self) -> None:
        data = mash_set_data(np.zeros((3, 2)), np.ones((3, 2)))
        assert data.n_effects == 3
        assert data.n_conditions == 2
        np.testing.assert_array_equal(data.V, np.eye(2))
        assert data.condition_names == ["condition_1", "condition_2"]
        assert data.row_names == [0, 1, 2]

    def test_shape_mismatch(self) -> None:
        with pytest.raises(MashError):
            mash_set_data(np.zeros((3, 2)), np.ones((2, 2)))

    @pytest.mark.parametrize("bad", [0.0, -1.0, np.inf, np.nan])
    def test_invalid_standard_errors(self, bad: float) -> None:
        shat = np.ones((3, 2))
        shat[1, 1] = bad
        with pytest.raises(MashError):
            mash_set_data(np.zeros((3, 2)), shat)

    def test_missing_estimate(self) -> None:
        bhat = np.zeros((3, 2))
        bhat[0, 0] = np.nan
        with pytest.raises(MashError):
            mash_set_data(bhat, np.ones((3, 2)))

    def test_update_keeps_data(self) -> None:
        data = _null_data(0, n_rows=10)
        v = np.array([[1.0, 0.3], [0.3, 1.0]])
        updated = mash_update_data(data, v)
        np.testing.assert_array_equal(updated.Bhat, data.Bhat)
        np.testing.assert_array_equal(updated.V, v)
        assert updated.condition_names == NAMES

    def test_sampling_covariances(self) -> None:
        data = mash_set_data(np.zeros((1, 2)), np.array([[2.0, 3.0]]), V=np.array([[1.0, 0.5], [0.5, 1.0]]))
        np.testing.assert_allclose(data.sampling_covariances()[0], [[4.0, 3.0], [3.0, 9.0]])


class TestCovariances:
    """Tests for the canonical hypotheses and the scaling grid."""

    def test_canonical_names_and_values(self) -> None:
        ulist = cov_canonical(_null_data(0, n_rows=5))
        assert list(ulist) == [
            "identity", "metric_a", "metric_b", "equal_effects",
            "simple_het_1", "simple_het_2", "simple_het_3",
        ]
        np.testing.assert_array_equal(ulist["identity"], np.eye(2))
        np.testing.assert_array_equal(ulist["metric_a"], [[1.0, 0.0], [0.0, 0.0]])
        np.testing.assert_array_equal(ulist["metric_b"], [[0.0, 0.0], [0.0, 1.0]])
        np.testing.assert_array_equal(ulist["equal_effects"], np.ones((2, 2)))
        np.testing.assert_allclose(ulist["simple_het_2"], [[1.0, 0.5], [0.5, 1.0]])

    def test_unknown_method(self) -> None:
        with pytest.raises(MashError):
            cov_canonical(_null_data(0, n_rows=5), cov_methods=["pca"])

    def test_grid_spans_noise_to_signal(self) -> None:
        data = mash_set_data(np.array([[3.0, 0.0], [0.0, 0.5]]), np.ones((2, 2)))
        grid = autoselect_grid(data, np.sqrt(2.0))
        assert grid[-1] == pytest.approx(2.0 * np.sqrt(8.0))
        assert grid[0] <= 0.1 + 1e-12
        assert np.all(np.diff(grid) > 0)
        np.testing.assert_allclose(grid[1:] / grid[:-1], np.sqrt(2.0))

    def test_grid_without_signal(self) -> None:
        data = mash_set_data(np.full((2, 2), 0.5), np.ones((2, 2)))
        grid = autoselect_grid(data, 2.0)
        assert grid[-1] == pytest.approx(0.8)
        np.testing.assert_allclose(grid, [0.1, 0.2, 0.4, 0.8])


class TestNullCorrelation:
    """Tests for the simple null correlation estimator."""

    def test_recovers_correlation(self) -> None:
        data = _null_data(1, n_rows=5000, rho=0.5)
        vhat = estimate_null_correlation_simple(data)
        np.testing.assert_allclose(np.diag(vhat), 1.0)
        assert vhat[0, 1] == pytest.approx(vhat[1, 0])
        assert 0.3 < vhat[0, 1] < 0.6

    def test_not_enough_null_rows(self) -> None:
        data = mash_set_data(np.full((10, 2), 5.0), np.ones((10, 2)))
        with pytest.raises(MashError):
            estimate_null_correlation_simple(data)


class TestLfsr:
    """Tests for the local false sign rate."""

    def test_values(self) -> None:
        neg = np.array([0.9, 0.2, 0.0, 0.0])
        zero = np.array([0.0, 0.5, 1.0, 0.0])
        np.testing.assert_allclose(compute_lfsr(neg, zero), [0.1, 0.7, 1.0, 0.0])


class TestFitMash:
    """Tests for model fitting and posterior summaries."""

    def test_null_data_is_shrunk(self) -> None:
        data = _null_data(2)
        fitted = fit_mash(data, cov_canonical(data))

        assert fitted.pi.sum() == pytest.approx(1.0)
        assert (fitted.pi >= 0).all()
        assert fitted.component_names[0] == "null"
        assert fitted.posterior_mean.shape == data.Bhat.shape
        assert (fitted.posterior_sd >= 0).all()
        assert ((fitted.lfsr >= 0) & (fitted.lfsr <= 1)).all()

        assert np.abs(fitted.posterior_mean).mean() < 0.5 * np.abs(data.Bhat).mean()
        raw_significant = int((np.abs(data.Bhat) > 1.96).sum())
        assert int((fitted.lfsr < 0.05).sum()) < raw_significant

    def test_signal_is_detected(self) -> None:
        data, truth = _signal_data(3)
        fitted = fit_mash(data, cov_canonical(data))

        significant = (fitted.lfsr[:100] < 0.05).all(axis=1)
        assert significant.sum() >= 90
        assert np.abs(fitted.posterior_mean[:100] - 5.0).mean() < 1.0

        raw_rmse = np.sqrt(np.mean((data.Bhat - truth) ** 2))
        post_rmse = np.sqrt(np.mean((fitted.posterior_mean - truth) ** 2))
        assert post_rmse < raw_rmse

        assert fitted.log10bf[:100].mean() > 2.0
        null_weight = fitted.pi[np.array(fitted.component_names) == "null"].sum()
        assert 1.0 - null_weight > 0.15

    def test_posterior_weights_are_probabilities(self) -> None:
        data, _ = _signal_data(4, n_signal=20, n_null=80)
        fitted = fit_mash(data, cov_canonical(data))
        np.testing.assert_allclose(fitted.posterior_weights.sum(axis=1), 1.0)
        np.testing.assert_allclose(fitted.loglik, fitted.vloglik.sum())
        assert fitted.n_iterations >= 1

    def test_fixed_grid_and_no_point_mass(self) -> None:
        data, _ = _signal_data(5, n_signal=20, n_null=80)
        ulist = cov_canonical(data, cov_methods=["identity", "equal_effects"])
        fitted = fit_mash(data, ulist, grid=np.array([0.5, 1.0, 4.0]), use_point_mass=False)
        assert fitted.component_names == ["identity", "equal_effects"] * 3
        assert fitted.log10bf is None
        assert (fitted.zero_prob == 0).all()

    def test_singletons_put_zero_mass_elsewhere(self) -> None:
        data, _ = _signal_data(6, n_signal=20, n_null=80)
        ulist = cov_canonical(data, cov_methods=["singletons"])
        fitted = fit_mash(data, ulist)
        assert (fitted.zero_prob > 0).all()
        assert (fitted.zero_prob <= 1.0 + 1e-12).all()

    def test_rejects_empty_hypotheses(self) -> None:
        with pytest.raises(MashError):
            fit_mash(_null_data(0, n_rows=10), {})

    def test_rejects_wrong_covariance_shape(self) -> None:
        with pytest.raises(MashError):
            fit_mash(_null_data(0, n_rows=10), {"bad": np.eye(3)})
