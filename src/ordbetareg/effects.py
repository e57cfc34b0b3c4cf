"""
Expected values and marginal effects of ordered beta regression models.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd
from scipy.special import expit

if TYPE_CHECKING:
    from .fit import OrdBetaRegFit

Array = Any

logger = logging.getLogger(__name__)


def category_probs(loc: Array, cutpoints: Array) -> np.ndarray:
    """
    Probabilities of the lower bound, the interior and the upper bound, stacked in
    the last dimension.

    Parameters
    ----------
    loc
        The location on the logit scale.
    cutpoints
        The cutpoints with shape ``(..., 2)``. The leading dimensions must broadcast
        with the shape of ``loc``.
    """
    loc = np.asarray(loc, dtype=np.float64)
    cutpoints = np.asarray(cutpoints, dtype=np.float64)

    p_low = expit(cutpoints[..., 0] - loc)
    p_high = expit(loc - cutpoints[..., 1])
    p_mid = 1.0 - p_low - p_high

    return np.stack(np.broadcast_arrays(p_low, p_mid, p_high), axis=-1)


def expected_value(
    loc: Array, cutpoints: Array, lower: float = 0.0, upper: float = 1.0
) -> np.ndarray:
    """
    Expected value of the ordered beta distribution.

    With the category probabilities :math:`p_0, p_1, p_2` and the mean :math:`s(\\eta)`
    of the beta distribution of the interior values, the expected value on the unit
    interval is :math:`p_2 + p_1 s(\\eta)`. It is mapped to the original scale
    ``[lower, upper]``.

    Parameters
    ----------
    loc
        The location on the logit scale.
    cutpoints
        The cutpoints with shape ``(..., 2)``. The leading dimensions must broadcast
        with the shape of ``loc``.
    lower, upper
        The bounds of the original scale.

    Examples
    --------

    >>> round(expected_value(0.0, [-1.0, 1.0]), 6)
    0.5
    """
    probs = category_probs(loc, cutpoints)
    value = probs[..., 2] + probs[..., 1] * expit(np.asarray(loc, dtype=np.float64))
    result = lower + value * (upper - lower)
    return result.item() if np.ndim(result) == 0 else result


def _is_binary(column: pd.Series) -> bool:
    values = pd.unique(column.dropna())
    return len(values) == 2 and set(np.asarray(values, dtype=float)) == {0.0, 1.0}


def _default_variables(fit: OrdBetaRegFit, response: str | None) -> list[str]:
    info = fit.response_info(response)
    infos = [info.design.mu.design_info]
    if info.design.phi is not None:
        infos.append(info.design.phi.design_info)

    variables = []
    for design_info in infos:
        for factor in design_info.factor_infos:
            name = factor.name()
            column = info.data.get(name)

            if column is None or name in variables:
                continue

            if pd.api.types.is_numeric_dtype(column):
                variables.append(name)

    return variables


def marginal_effect_draws(
    fit: OrdBetaRegFit,
    variable: str,
    data: pd.DataFrame | None = None,
    eps: float = 1e-4,
    response: str | None = None,
) -> np.ndarray:
    """
    Posterior draws of the average marginal effect of one variable.

    For binary (0/1) variables, the effect is the average difference of the expected
    outcome between ``variable = 1`` and ``variable = 0``. For all other numeric
    variables, it is the average central finite difference with step ``eps``. The
    effects are on the original scale of the outcome.
    """
    info = fit.response_info(response)
    data = info.data if data is None else data

    if variable not in data.columns:
        raise ValueError(f"Variable {variable!r} not found in the data.")

    if not pd.api.types.is_numeric_dtype(data[variable]):
        raise ValueError(f"Variable {variable!r} is not numeric.")

    if _is_binary(data[variable]):
        high, low = data.copy(), data.copy()
        high[variable] = 1
        low[variable] = 0
        step = 1.0
    else:
        high, low = data.copy(), data.copy()
        high[variable] = data[variable] + eps / 2
        low[variable] = data[variable] - eps / 2
        step = eps

    diff = fit.expected_value_draws(high, info.name) - fit.expected_value_draws(
        low, info.name
    )
    return diff.mean(axis=-1) / step


def average_marginal_effects(
    fit: OrdBetaRegFit,
    variables: str | list[str] | None = None,
    eps: float = 1e-4,
    ci: float = 0.95,
    response: str | None = None,
) -> pd.DataFrame:
    """
    Average marginal effects of a fitted model on the original scale of the outcome.

    Parameters
    ----------
    fit
        The fitted model.
    variables
        The numeric variables to compute the effects for. Defaults to all numeric
        columns in the fixed-effects part of the formulas.
    eps
        The step of the finite difference for continuous variables.
    ci
        The probability mass of the credible intervals.
    response
        The response of a multivariate model.

    Returns
    -------
    A data frame with the columns ``variable``, ``estimate`` (the posterior median),
    ``lower`` and ``upper`` (the bounds of the equal-tailed credible interval) and
    ``sd`` (the posterior standard deviation).
    """
    if not 0.0 < ci < 1.0:
        raise ValueError(f"`ci` must lie in (0, 1), got {ci}.")

    if eps <= 0.0:
        raise ValueError(f"`eps` must be positive, got {eps}.")

    if variables is None:
        variables = _default_variables(fit, response)
    elif isinstance(variables, str):
        variables = [variables]

    if not variables:
        raise ValueError("The model has no numeric variables.")

    alpha = (1.0 - ci) / 2.0
    rows = []

    for variable in variables:
        draws = marginal_effect_draws(fit, variable, eps=eps, response=response)
        lower, estimate, upper = np.quantile(draws, [alpha, 0.5, 1.0 - alpha])
        rows.append(
            {
                "variable": variable,
                "estimate": estimate,
                "lower": lower,
                "upper": upper,
                "sd": draws.std(ddof=1),
            }
        )
        logger.debug(f"Computed the marginal effect of {variable!r}.")

    return pd.DataFrame(rows)
