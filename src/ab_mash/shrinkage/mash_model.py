"""
Multivariate adaptive shrinkage (mash) backend

Empirical Bayes model for a J x R matrix of effect estimates `Bhat` with
standard errors `Shat`:

    Bhat_j | b_j ~ N(b_j, S_j V S_j),   S_j = diag(Shat_j)
    b_j ~ pi_0 delta_0 + sum_{k,l} pi_kl N(0, w_l^2 U_k)

The covariance hypotheses U_k are fixed up front (canonical set), the scaling
grid w_l is chosen from the data, and the mixture weights are estimated by
penalised EM. Posterior summaries are analytic per component and combined
with the posterior component weights.

Defaults follow mashr (Urbut et al. 2019): canonical covariances, grid
multiplier sqrt(2), null point mass with a null-biased penalty of 10.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
from scipy import stats
from scipy.special import logsumexp

LOG_2PI = np.log(2.0 * np.pi)


class MashError(RuntimeError):
    """Raised when the shrinkage model cannot be set up or fitted"""


@dataclass
class MashData:
    """Effect estimates, standard errors and null correlation"""

    Bhat: np.ndarray
    Shat: np.ndarray
    V: np.ndarray
    condition_names: List[str]
    row_names: List = field(default_factory=list)

    @property
    def n_effects(self) -> int:
        return self.Bhat.shape[0]

    @property
    def n_conditions(self) -> int:
        return self.Bhat.shape[1]

    def sampling_covariances(self) -> np.ndarray:
        """S_j V S_j for every row, shape (J, R, R)"""
        return self.Shat[:, :, None] * self.V[None, :, :] * self.Shat[:, None, :]


@dataclass
class MashResult:
    """Posterior summaries and fitted prior of a mash model"""

    posterior_mean: np.ndarray
    posterior_sd: np.ndarray
    lfsr: np.ndarray
    negative_prob: np.ndarray
    zero_prob: np.ndarray
    posterior_weights: np.ndarray
    pi: np.ndarray
    component_names: List[str]
    grid: np.ndarray
    Ulist: Dict[str, np.ndarray]
    loglik: float
    vloglik: np.ndarray
    log10bf: Optional[np.ndarray]
    null_correlation: np.ndarray
    condition_names: List[str]
    row_names: List
    n_iterations: int = 0


def mash_set_data(
    Bhat,
    Shat,
    V: Optional[np.ndarray] = None,
    condition_names: Optional[Sequence[str]] = None,
    row_names: Optional[Sequence] = None,
) -> MashData:
    """
    Validate and bundle the inputs of the model

    Args:
        Bhat: J x R effect estimates
        Shat: J x R standard errors (strictly positive)
        V: R x R null correlation (identity if omitted)
        condition_names: Names of the R conditions
        row_names: Labels of the J rows

    Returns:
        MashData
    """
    Bhat = np.asarray(Bhat, dtype=float)
    Shat = np.asarray(Shat, dtype=float)
    if Bhat.ndim != 2:
        raise MashError(f"Bhat must be a 2-d matrix, got {Bhat.ndim} dimension(s)")
    if Bhat.shape != Shat.shape:
        raise MashError(f"Bhat {Bhat.shape} and Shat {Shat.shape} differ in shape")
    if not np.all(np.isfinite(Bhat)):
        raise MashError("Bhat contains missing or infinite values")
    if not np.all(np.isfinite(Shat)) or np.any(Shat <= 0):
        raise MashError("Shat must be finite and strictly positive")

    n_rows, n_cond = Bhat.shape
    if V is None:
        V = np.eye(n_cond)
    V = np.asarray(V, dtype=float)
    if V.shape != (n_cond, n_cond):
        raise MashError(f"V must be {n_cond} x {n_cond}, got {V.shape}")

    names = list(condition_names) if condition_names is not None else [f"condition_{i + 1}" for i in range(n_cond)]
    if len(names) != n_cond:
        raise MashError(f"Expected {n_cond} condition names, got {len(names)}")
    rows = list(row_names) if row_names is not None else list(range(n_rows))
    return MashData(Bhat=Bhat, Shat=Shat, V=V, condition_names=names, row_names=rows)


def mash_update_data(data: MashData, V: np.ndarray) -> MashData:
    """Same data with a new null correlation"""
    return mash_set_data(data.Bhat, data.Shat, V=V, condition_names=data.condition_names, row_names=data.row_names)


def estimate_null_correlation_simple(data: MashData, z_thresh: float = 2.0, est_cor: bool = True) -> np.ndarray:
    """
    Null correlation from rows that look like pure noise

    Uses the z-scores of rows whose largest |z| stays below `z_thresh`.
    """
    z = data.Bhat / data.Shat
    nullish = np.max(np.abs(z), axis=1) < z_thresh
    if nullish.sum() < data.n_conditions:
        raise MashError(
            f"Not enough null data: {int(nullish.sum())} row(s) with max |z| < {z_thresh}"
        )
    vhat = np.atleast_2d(np.cov(z[nullish], rowvar=False))
    if est_cor:
        sd = np.sqrt(np.diag(vhat))
        if np.any(sd <= 0):
            raise MashError("Null z-scores have zero variance in at least one condition")
        vhat = vhat / np.outer(sd, sd)
        np.fill_diagonal(vhat, 1.0)
    return vhat


def cov_canonical(
    data: MashData,
    cov_methods: Sequence[str] = ("identity", "singletons", "equal_effects", "simple_het"),
    simple_het_correlations: Sequence[float] = (0.25, 0.5, 0.75),
) -> Dict[str, np.ndarray]:
    """Canonical covariance hypotheses, keyed by name"""
    r = data.n_conditions
    ulist: Dict[str, np.ndarray] = {}
    for method in cov_methods:
        if method == "identity":
            ulist["identity"] = np.eye(r)
        elif method == "singletons":
            for i, name in enumerate(data.condition_names):
                u = np.zeros((r, r))
                u[i, i] = 1.0
                ulist[name] = u
        elif method == "equal_effects":
            ulist["equal_effects"] = np.ones((r, r))
        elif method == "simple_het":
            for i, c in enumerate(simple_het_correlations, start=1):
                ulist[f"simple_het_{i}"] = (1.0 - c) * np.eye(r) + c * np.ones((r, r))
        else:
            raise MashError(f"Unknown canonical covariance method '{method}'")
    return ulist


def autoselect_grid(data: MashData, grid_mult: float = np.sqrt(2.0)) -> np.ndarray:
    """Geometric grid of prior scalings spanning the noise to the signal level"""
    gmin = float(np.min(data.Shat)) / 10.0
    excess = data.Bhat ** 2 - data.Shat ** 2
    if np.all(excess <= 0):
        gmax = 8.0 * gmin
    else:
        gmax = 2.0 * float(np.sqrt(np.max(excess)))
    if grid_mult == 0:
        return np.array([0.0, gmax / 2.0])
    npoint = max(int(np.ceil(np.log2(gmax / gmin) / np.log2(grid_mult))), 0)
    return grid_mult ** np.arange(-npoint, 1, dtype=float) * gmax


def _expand_components(ulist: Dict[str, np.ndarray], grid: np.ndarray, use_point_mass: bool):
    """Scaled prior covariances, grid-major, with the null first."""
    r = next(iter(ulist.values())).shape[0]
    names: List[str] = []
    covs: List[np.ndarray] = []
    if use_point_mass:
        names.append("null")
        covs.append(np.zeros((r, r)))
    for w in grid:
        for name, u in ulist.items():
            names.append(name)
            covs.append((w ** 2) * u)
    return names, np.stack(covs)


def _loglik_matrix(bhat: np.ndarray, svs: np.ndarray, covs: np.ndarray) -> np.ndarray:
    """log N(Bhat_j; 0, U_c + S_j V S_j), shape (J, C)"""
    n_rows, r = bhat.shape
    out = np.empty((n_rows, covs.shape[0]))
    for c, u in enumerate(covs):
        sigma = svs + u[None, :, :]
        sign, logdet = np.linalg.slogdet(sigma)
        if np.any(sign <= 0):
            raise MashError("Marginal covariance is not positive definite")
        sol = np.linalg.solve(sigma, bhat[:, :, None])[:, :, 0]
        quad = np.sum(bhat * sol, axis=1)
        out[:, c] = -0.5 * (r * LOG_2PI + logdet + quad)
    return out


def _optimize_pi(loglik: np.ndarray, prior: np.ndarray, max_iter: int, tol: float):
    """Penalised EM for the mixture weights."""
    lik = np.exp(loglik - loglik.max(axis=1, keepdims=True))
    n_comp = lik.shape[1]
    pi = np.full(n_comp, 1.0 / n_comp)
    penalty = prior - 1.0
    objective = -np.inf
    iteration = 0
    for iteration in range(1, max_iter + 1):
        weighted = lik * pi
        denom = weighted.sum(axis=1)
        resp = weighted / denom[:, None]
        pi = np.clip(resp.sum(axis=0) + penalty, 0.0, None)
        pi = pi / pi.sum()

        with np.errstate(divide="ignore"):
            log_pi = np.where(pi > 0, np.log(pi), 0.0)
        new_objective = float(np.sum(np.log(lik @ pi)) + np.sum(penalty * log_pi))
        if abs(new_objective - objective) < tol:
            objective = new_objective
            break
        objective = new_objective
    return pi, iteration


def _posterior_summaries(bhat: np.ndarray, svs: np.ndarray, covs: np.ndarray, weights: np.ndarray):
    """Posterior mean, SD and sign probabilities mixed over components."""
    n_rows, r = bhat.shape
    pm = np.zeros((n_rows, r))
    second = np.zeros((n_rows, r))
    neg = np.zeros((n_rows, r))
    zero = np.zeros((n_rows, r))
    for c, u in enumerate(covs):
        w = weights[:, c][:, None]
        if not np.any(u):
            zero += w
            continue
        sigma = svs + u[None, :, :]
        # U Sigma^-1, using symmetry of both
        gain = np.transpose(np.linalg.solve(sigma, np.broadcast_to(u, sigma.shape)), (0, 2, 1))
        mu1 = np.einsum("jab,jb->ja", gain, bhat)
        u1 = u[None, :, :] - gain @ u
        var1 = np.clip(np.diagonal(u1, axis1=1, axis2=2), 0.0, None)
        sd1 = np.sqrt(var1)

        pm += w * mu1
        second += w * (var1 + mu1 ** 2)
        point = sd1 == 0
        with np.errstate(divide="ignore", invalid="ignore"):
            tail = np.where(point, 0.0, stats.norm.cdf(-mu1 / np.where(point, 1.0, sd1)))
        neg += w * tail
        zero += w * point
    psd = np.sqrt(np.clip(second - pm ** 2, 0.0, None))
    return pm, psd, neg, zero


def compute_lfsr(negative_prob: np.ndarray, zero_prob: np.ndarray) -> np.ndarray:
    """Local false sign rate from negative and zero posterior mass"""
    positive_prob = 1.0 - negative_prob - zero_prob
    return np.minimum(negative_prob + zero_prob, positive_prob + zero_prob).clip(0.0, 1.0)


def fit_mash(
    data: MashData,
    Ulist: Dict[str, np.ndarray],
    grid: Optional[np.ndarray] = None,
    grid_mult: float = np.sqrt(2.0),
    use_point_mass: bool = True,
    null_weight: float = 10.0,
    max_iter: int = 1000,
    tol: float = 1e-8,
) -> MashResult:
    """
    Fit the mixture prior and compute posterior summaries

    Args:
        data: Output of mash_set_data() / mash_update_data()
        Ulist: Named covariance hypotheses (e.g. from cov_canonical())
        grid: Prior scalings; chosen with autoselect_grid() if omitted
        grid_mult: Grid multiplier used when the grid is chosen here
        use_point_mass: Include a null component
        null_weight: Dirichlet penalty on the null component
        max_iter: EM iteration cap
        tol: Convergence tolerance on the penalised log-likelihood

    Returns:
        MashResult
    """
    if not Ulist:
        raise MashError("At least one covariance hypothesis is required")
    for name, u in Ulist.items():
        if u.shape != (data.n_conditions, data.n_conditions):
            raise MashError(f"Covariance '{name}' has shape {u.shape}, expected {data.V.shape}")
    if grid is None:
        grid = autoselect_grid(data, grid_mult)
    grid = np.asarray(grid, dtype=float)

    names, covs = _expand_components(Ulist, grid, use_point_mass)
    svs = data.sampling_covariances()
    loglik = _loglik_matrix(data.Bhat, svs, covs)

    prior = np.ones(len(names))
    if use_point_mass:
        prior[0] = null_weight
    pi, n_iter = _optimize_pi(loglik, prior, max_iter, tol)

    with np.errstate(divide="ignore"):
        weighted = loglik + np.log(pi)[None, :]
    vloglik = logsumexp(weighted, axis=1)
    post_weights = np.exp(weighted - vloglik[:, None])

    pm, psd, neg, zero = _posterior_summaries(data.Bhat, svs, covs, post_weights)

    log10bf = None
    if use_point_mass:
        if pi[0] < 1.0:
            alt = logsumexp(loglik[:, 1:], b=pi[1:] / (1.0 - pi[0]), axis=1)
            log10bf = (alt - loglik[:, 0]) / np.log(10.0)
        else:
            log10bf = np.full(data.n_effects, np.nan)

    return MashResult(
        posterior_mean=pm,
        posterior_sd=psd,
        lfsr=compute_lfsr(neg, zero),
        negative_prob=neg,
        zero_prob=zero,
        posterior_weights=post_weights,
        pi=pi,
        component_names=names,
        grid=grid,
        Ulist=dict(Ulist),
        loglik=float(vloglik.sum()),
        vloglik=vloglik,
        log10bf=log10bf,
        null_correlation=data.V,
        condition_names=list(data.condition_names),
        row_names=list(data.row_names),
        n_iterations=n_iter,
    )
