"""
Simulation of ordered beta regression data for power analysis.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd
from scipy.special import expit, logit
from tqdm.auto import tqdm

from .distributions import rordbeta
from .effects import expected_value

Array = Any

logger = logging.getLogger(__name__)

_BETA_TYPES = ("continuous", "binary")

_EVALUATION_COLUMNS = [
    "estimate",
    "lower",
    "upper",
    "sd",
    "bias",
    "s_err",
    "m_err",
    "coverage",
    "power",
]


def _true_marginal_effects(
    X: np.ndarray,
    beta_coef: np.ndarray,
    cutpoints: np.ndarray,
    binary: bool,
    eps: float = 1e-4,
) -> np.ndarray:
    """Average marginal effects given the generating parameters."""
    effects = np.empty(len(beta_coef))

    for j in range(len(beta_coef)):
        high, low = X.copy(), X.copy()

        if binary:
            high[:, j], low[:, j], step = 1.0, 0.0, 1.0
        else:
            high[:, j] += eps / 2
            low[:, j] -= eps / 2
            step = eps

        diff = expected_value(high @ beta_coef, cutpoints) - expected_value(
            low @ beta_coef, cutpoints
        )
        effects[j] = np.mean(diff) / step

    return effects


def _simulate_data(
    rng: np.random.Generator,
    N: int,
    beta_coef: np.ndarray,
    phi: float,
    cutpoints: np.ndarray,
    beta_type: str,
    treat_assign: float,
) -> pd.DataFrame:
    k = len(beta_coef)

    if beta_type == "binary":
        X = rng.binomial(1, treat_assign, size=(N, k)).astype(np.float64)
    else:
        X = rng.normal(size=(N, k))

    # keep the mean away from the bounds, rordbeta needs mu in (0, 1)
    eps = np.finfo(np.float64).eps
    mu = np.clip(expit(X @ beta_coef), eps, 1.0 - eps)

    outcome = rordbeta(N, mu=mu, phi=phi, cutpoints=cutpoints, seed=rng)

    data = pd.DataFrame(X, columns=[f"x{j + 1}" for j in range(k)])
    data.insert(0, "outcome", outcome)
    return data


def sim_ordbeta(
    N: int | Sequence[int] = 1000,
    k: int = 5,
    iterations: int = 100,
    phi: float = 1.0,
    cutpoints: Array = (-1.0, 1.0),
    beta_coef: Array | None = None,
    beta_type: str = "continuous",
    treat_assign: float = 0.5,
    fit: bool = True,
    return_data: bool = False,
    seed: int | None = None,
    num_chains: int = 1,
    warmup: int = 500,
    posterior: int = 500,
    ci: float = 0.95,
    progress: bool = True,
) -> pd.DataFrame:
    """
    Simulates ordered beta regression data and, optionally, fits the model to it.

    For every sample size and iteration, ``k`` covariates are drawn, either from a
    standard normal distribution or, for ``beta_type="binary"``, from a Bernoulli
    distribution with success probability ``treat_assign``. The outcome is drawn from
    the ordered beta distribution with mean ``s(X @ beta_coef)`` of the interior
    values, dispersion ``phi`` and the given cutpoints.

    If ``fit=True``, the model ``outcome ~ x1 + ... + xk`` is fitted and the
    estimated average marginal effects are compared to the true ones.

    Parameters
    ----------
    N
        The sample size, or a sequence of sample sizes.
    k
        The number of covariates.
    iterations
        The number of simulated data sets per sample size.
    phi
        The dispersion parameter.
    cutpoints
        The two increasing cutpoints on the logit scale.
    beta_coef
        The ``k`` regression coefficients. Defaults to draws from a standard normal
        distribution, which are shared by all iterations.
    beta_type
        ``"continuous"`` or ``"binary"`` covariates.
    treat_assign
        The success probability of binary covariates.
    fit
        Whether to fit the model. If ``False``, only the true marginal effects are
        recorded.
    return_data
        Whether to attach the simulated data sets in ``.attrs["data"]`` of the
        returned data frame.
    seed
        The seed of the simulation and of the MCMC runs.
    num_chains, warmup, posterior
        Passed on to :func:`.ordbetareg`.
    ci
        The probability mass of the credible intervals.
    progress
        Whether to show a progress bar.

    Returns
    -------
    A data frame with one row per sample size, iteration and covariate. The columns
    ``true_marg``, ``estimate``, ``lower``, ``upper``, ``bias`` (estimate minus the
    true effect), ``s_err`` (wrong sign of the estimate), ``m_err`` (exaggeration
    ratio ``|estimate| / |true_marg|``), ``coverage`` (the interval covers the true
    effect) and ``power`` (the interval excludes zero on the side of the true effect)
    are missing if ``fit=False``.
    """
    Ns = [N] if isinstance(N, (int, np.integer)) else list(N)

    if not Ns or any(n < 2 for n in Ns):
        raise ValueError(f"Every sample size must be at least 2, got {Ns}.")

    if k < 1:
        raise ValueError(f"`k` must be positive, got {k}.")

    if iterations < 1:
        raise ValueError(f"`iterations` must be positive, got {iterations}.")

    if beta_type not in _BETA_TYPES:
        raise ValueError(f"`beta_type` must be one of {_BETA_TYPES}, got {beta_type!r}.")

    if not 0.0 < treat_assign < 1.0:
        raise ValueError(f"`treat_assign` must lie in (0, 1), got {treat_assign}.")

    if phi <= 0.0:
        raise ValueError(f"`phi` must be positive, got {phi}.")

    cutpoints = np.asarray(cutpoints, dtype=np.float64)
    if cutpoints.shape != (2,) or cutpoints[0] >= cutpoints[1]:
        raise ValueError(f"`cutpoints` must be two increasing values, got {cutpoints}.")

    rng = np.random.default_rng(seed)

    if beta_coef is None:
        beta_coef = rng.normal(size=k)
    else:
        beta_coef = np.asarray(beta_coef, dtype=np.float64)
        if beta_coef.shape != (k,):
            raise ValueError(
                f"`beta_coef` must contain k={k} coefficients, got {beta_coef.shape}."
            )

    variables = [f"x{j + 1}" for j in range(k)]
    formula = "outcome ~ " + " + ".join(variables)
    binary = beta_type == "binary"

    rows = []
    datasets = []

    runs = list(itertools.product(Ns, range(1, iterations + 1)))

    for n, iteration in tqdm(runs, desc="Simulating", disable=not progress):
        data = _simulate_data(rng, n, beta_coef, phi, cutpoints, beta_type, treat_assign)

        if binary and (data[variables].nunique() < 2).any():
            logger.warning(
                f"A binary covariate is constant in iteration {iteration} with N={n}."
            )

        X = data[variables].to_numpy()
        true_marg = _true_marginal_effects(X, beta_coef, cutpoints, binary)

        estimates = None
        if fit:
            estimates = _fit_effects(
                data,
                formula,
                variables,
                int(rng.integers(2**31 - 1)),
                num_chains,
                warmup,
                posterior,
                ci,
            )

        for j, variable in enumerate(variables):
            row = {
                "N": n,
                "iteration": iteration,
                "variable": variable,
                "beta_coef": beta_coef[j],
                "phi": phi,
                "cutpoint_1": cutpoints[0],
                "cutpoint_2": cutpoints[1],
                "true_marg": true_marg[j],
            }

            if estimates is not None:
                row.update(_evaluate(true_marg[j], estimates.iloc[j]))

            rows.append(row)

        if return_data:
            datasets.append(data.assign(N=n, iteration=iteration))

    result = pd.DataFrame(rows)

    if not fit:
        for column in _EVALUATION_COLUMNS:
            result[column] = np.nan

    if return_data:
        result.attrs["data"] = datasets

    return result


def _fit_effects(
    data: pd.DataFrame,
    formula: str,
    variables: list[str],
    seed: int,
    num_chains: int,
    warmup: int,
    posterior: int,
    ci: float,
) -> pd.DataFrame:
    # avoid circular import
    from .fit import ordbetareg

    fit = ordbetareg(
        formula,
        data,
        true_bounds=(0.0, 1.0),
        num_chains=num_chains,
        warmup=warmup,
        posterior=posterior,
        seed=seed,
        show_progress=False,
    )
    return fit.marginal_effects(variables, ci=ci)


def _evaluate(true_marg: float, estimate: pd.Series) -> dict[str, float]:
    est, lower, upper = estimate["estimate"], estimate["lower"], estimate["upper"]
    significant = (lower > 0.0) | (upper < 0.0)

    return {
        "estimate": est,
        "lower": lower,
        "upper": upper,
        "sd": estimate["sd"],
        "bias": est - true_marg,
        "s_err": float(np.sign(est) != np.sign(true_marg)),
        "m_err": abs(est) / abs(true_marg) if true_marg != 0.0 else np.nan,
        "coverage": float(lower <= true_marg <= upper),
        "power": float(significant and np.sign(est) == np.sign(true_marg)),
    }


def summarize_simulation(results: pd.DataFrame) -> pd.DataFrame:
    """
    Aggregates the results of :func:`.sim_ordbeta` by sample size and covariate.

    Returns a data frame with the mean true marginal effect, the mean estimate, the
    bias, the root mean squared error, the power, the rate of sign errors, the mean
    exaggeration ratio and the coverage of the credible intervals.
    """
    if results["estimate"].isna().all():
        raise ValueError(
            "The results contain no estimates. Run `sim_ordbeta()` with `fit=True`."
        )

    grouped = results.groupby(["N", "variable"], sort=True)

    summary = grouped.agg(
        true_marg=("true_marg", "mean"),
        estimate=("estimate", "mean"),
        bias=("bias", "mean"),
        rmse=("bias", lambda b: float(np.sqrt(np.mean(b**2)))),
        power=("power", "mean"),
        s_err=("s_err", "mean"),
        m_err=("m_err", "mean"),
        coverage=("coverage", "mean"),
        iterations=("iteration", "nunique"),
    )

    return summary.reset_index()


def logit_cutpoints(p_low: float, p_high: float) -> np.ndarray:
    """
    Cutpoints that produce the given shares of observations at the lower and the upper
    bound when the location is zero.

    >>> logit_cutpoints(0.25, 0.25).round(3)
    array([-1.099,  1.099])
    """
    if not (0.0 < p_low and 0.0 < p_high and p_low + p_high < 1.0):
        raise ValueError("The shares must be positive and sum to less than one.")

    return np.array([logit(p_low), -logit(p_high)])
