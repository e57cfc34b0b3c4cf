"""
Rescaling of bounded outcomes to the unit interval.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd

Array = Any

logger = logging.getLogger(__name__)

LOW, MID, HIGH = 0, 1, 2
"""Codes of the three response categories."""


@dataclass(frozen=True)
class BoundedOutcome:
    """
    An outcome rescaled to the closed unit interval.

    Observations at the lower and upper bound of the original scale are exactly
    ``0`` and ``1``, all other observations lie in the open interval ``(0, 1)``.
    """

    values: np.ndarray
    """The rescaled values."""

    lower: float
    """The lower bound of the original scale."""

    upper: float
    """The upper bound of the original scale."""

    @property
    def is_low(self) -> np.ndarray:
        """Boolean indicators of observations at the lower bound."""
        return self.values == 0.0

    @property
    def is_high(self) -> np.ndarray:
        """Boolean indicators of observations at the upper bound."""
        return self.values == 1.0

    @property
    def is_mid(self) -> np.ndarray:
        """Boolean indicators of observations in the interior."""
        return (self.values > 0.0) & (self.values < 1.0)

    @property
    def category(self) -> np.ndarray:
        """
        Category codes: ``0`` at the lower bound, ``1`` in the interior, ``2`` at the
        upper bound.
        """
        category = np.full(self.values.shape, MID, dtype=np.int32)
        category[self.is_low] = LOW
        category[self.is_high] = HIGH
        return category

    def counts(self) -> dict[str, int]:
        """Number of observations per category."""
        return {
            "low": int(self.is_low.sum()),
            "mid": int(self.is_mid.sum()),
            "high": int(self.is_high.sum()),
        }

    def to_original(self, values: Array | None = None) -> np.ndarray:
        """Maps values on the unit interval back to the original scale."""
        values = self.values if values is None else values
        return denormalize(values, self.lower, self.upper)

    def __len__(self) -> int:
        return len(self.values)


def _as_numeric(y: Array) -> np.ndarray:
    if isinstance(y, (pd.Series, pd.DataFrame)):
        if isinstance(y, pd.DataFrame):
            if y.shape[1] != 1:
                raise ValueError("The outcome must be a single column.")
            y = y.iloc[:, 0]
        if not pd.api.types.is_numeric_dtype(y) or pd.api.types.is_bool_dtype(y):
            raise TypeError(f"The outcome must be numeric, got dtype {y.dtype}.")
        y = y.to_numpy(dtype=np.float64, na_value=np.nan)

    y = np.asarray(y)

    if y.dtype == bool or not np.issubdtype(y.dtype, np.number):
        raise TypeError(f"The outcome must be numeric, got dtype {y.dtype}.")

    y = np.asarray(y, dtype=np.float64)

    if y.ndim != 1:
        raise ValueError(f"The outcome must be one-dimensional, got shape {y.shape}.")

    return y


def normalize(
    y: Array, true_bounds: tuple[float, float] | None = None
) -> BoundedOutcome:
    """
    Rescales a bounded outcome to the closed unit interval.

    Parameters
    ----------
    y
        The outcome, a numeric one-dimensional array or :class:`pandas.Series`
        without missing values.
    true_bounds
        The lower and upper bound of the scale the outcome was measured on, e.g.
        ``(0, 100)`` for a slider scale. If ``None`` and the outcome lies in the
        unit interval, it is used as is. If ``None`` and the outcome lies outside
        the unit interval, the observed minimum and maximum are used as bounds.

    Returns
    -------
    The rescaled outcome along with the bounds of the original scale.

    Raises
    ------
    TypeError
        If the outcome is not numeric.
    ValueError
        If the outcome contains missing values, lies outside of ``true_bounds``, is
        constant, or if ``true_bounds`` is not an increasing pair of finite numbers.

    Examples
    --------

    >>> outcome = normalize([0.0, 25.0, 50.0, 100.0], true_bounds=(0, 100))
    >>> outcome.values
    array([0.  , 0.25, 0.5 , 1.  ])
    >>> outcome.counts()
    {'low': 1, 'mid': 2, 'high': 1}
    """
    y = _as_numeric(y)

    if np.isnan(y).any():
        raise ValueError(
            f"The outcome contains {int(np.isnan(y).sum())} missing values. Remove "
            "them before rescaling."
        )

    if len(y) == 0:
        raise ValueError("The outcome is empty.")

    if true_bounds is not None:
        if len(true_bounds) != 2:
            raise ValueError("`true_bounds` must be a pair (lower, upper).")

        lower, upper = (float(bound) for bound in true_bounds)

        if not (np.isfinite(lower) and np.isfinite(upper)) or lower >= upper:
            raise ValueError(
                "`true_bounds` must be two finite numbers with lower < upper, got "
                f"{true_bounds}."
            )

        if y.min() < lower or y.max() > upper:
            raise ValueError(
                f"The outcome has values outside of the bounds [{lower}, {upper}]: "
                f"observed range is [{y.min()}, {y.max()}]."
            )

    elif y.min() >= 0.0 and y.max() <= 1.0:
        lower, upper = 0.0, 1.0

    else:
        lower, upper = float(y.min()), float(y.max())

        if lower == upper:
            raise ValueError("The outcome is constant and cannot be rescaled.")

        logger.info(
            f"Normalizing using the observed bounds of [{lower}, {upper}]. If these "
            "are not the bounds of the scale, pass them to the `true_bounds` argument."
        )

    values = (y - lower) / (upper - lower)

    # guard the bounds against floating point noise
    values[y == lower] = 0.0
    values[y == upper] = 1.0

    # the model works in single precision, interior values must not round to a bound
    interior = (y > lower) & (y < upper)
    f32 = np.finfo(np.float32)
    values[interior] = np.clip(values[interior], f32.tiny, 1.0 - f32.epsneg)

    outcome = BoundedOutcome(values, lower, upper)

    counts = outcome.counts()
    logger.debug(
        f"Rescaled outcome: {counts['low']} at the lower bound, {counts['mid']} in the "
        f"interior, {counts['high']} at the upper bound."
    )

    return outcome


def denormalize(values: Array, lower: float, upper: float) -> np.ndarray:
    """
    Maps values from the unit interval back to the original scale ``[lower, upper]``.

    This is the inverse of :func:`.normalize`.
    """
    if lower >= upper:
        raise ValueError(f"`lower` must be smaller than `upper`, got {lower, upper}.")

    values = np.asarray(values, dtype=np.float64)
    return lower + values * (upper - lower)
