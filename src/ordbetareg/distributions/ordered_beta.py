"""
The ordered beta distribution.
"""

from __future__ import annotations

from typing import Any

import jax
import jax.numpy as jnp
import numpy as np
import tensorflow_probability.substrates.jax.bijectors as tfb
import tensorflow_probability.substrates.jax.distributions as tfd
import tensorflow_probability.substrates.jax.math as tfm
from scipy.special import expit, logit
from tensorflow_probability.python.internal import reparameterization
from tensorflow_probability.substrates.jax import tf2jax as tf
from tensorflow_probability.substrates.jax.internal import (
    parameter_properties,
    samplers,
)

Array = Any


class OrderedBeta(tfd.Distribution):
    """
    The ordered beta distribution for outcomes on the closed unit interval.

    The distribution combines an ordered logit model with three categories, i.e.
    "at the lower bound", "in the interior" and "at the upper bound", with a beta
    density for the interior category. With :math:`s` denoting the logistic function,
    :math:`\\eta` the location on the logit scale, and :math:`k_1 < k_2` the
    cutpoints:

    .. math::
        P(y = 0) & = 1 - s(\\eta - k_1) \\

        P(y = 1) & = s(\\eta - k_2) \\

        p(y \\mid 0 < y < 1) & = \\left[s(\\eta - k_1) - s(\\eta - k_2)\\right]
            \\text{Beta}(y \\mid s(\\eta) \\phi, (1 - s(\\eta)) \\phi).

    Outside of the unit interval, the log-probability is ``-inf``.

    Parameters
    ----------
    loc
        The location :math:`\\eta` on the logit scale. The logistic function of the
        location is the mean of the beta distribution of the interior values.
    concentration
        The concentration (= dispersion) parameter :math:`\\phi` of the beta
        distribution. Must be positive.
    cutpoints
        The two cutpoints on the logit scale. The last dimension must be of size two
        and the cutpoints must be increasing along it.
    validate_args
        Python ``bool``, default ``False``. When ``True``, distribution parameters \
        are checked for validity despite possibly degrading runtime performance. \
        When ``False``, invalid inputs may silently render incorrect outputs.
    allow_nan_stats
        Python ``bool``, default ``True``. When ``True``, statistics (e.g., mean, \
        mode, variance) use the value ``NaN`` to indicate the result is undefined. \
        When ``False``, an exception is raised if one or more of the statistic's \
        batch members are undefined.
    name
        Python ``str``, name prefixed to ``Ops`` created by this class.

    Examples
    --------

    >>> from ordbetareg.distributions import OrderedBeta
    >>> dist = OrderedBeta(loc=0.0, concentration=2.0, cutpoints=jnp.array([-1.0, 1.0]))
    >>> dist.category_probs().round(3)
    Array([0.269, 0.462, 0.269], dtype=float32)
    """

    def __init__(
        self,
        loc: Array,
        concentration: Array,
        cutpoints: Array,
        validate_args: bool = False,
        allow_nan_stats: bool = True,
        name: str = "OrderedBeta",
    ):
        parameters = dict(locals())

        loc = jnp.asarray(loc)
        concentration = jnp.asarray(concentration)
        cutpoints = jnp.asarray(cutpoints)
        dtype = jnp.result_type(loc, concentration, cutpoints, jnp.float32)

        self._loc = loc.astype(dtype)
        self._concentration = concentration.astype(dtype)
        self._cutpoints = cutpoints.astype(dtype)

        if jnp.shape(self._cutpoints)[-1:] != (2,):
            raise ValueError(
                "The last dimension of `cutpoints` must be of size 2, got shape "
                f"{jnp.shape(self._cutpoints)}."
            )

        if validate_args:
            if not jnp.all(self._concentration > 0.0):
                raise ValueError("`concentration` must be positive.")
            if not jnp.all(self._cutpoints[..., 0] < self._cutpoints[..., 1]):
                raise ValueError("`cutpoints` must be increasing.")

        self._broadcast_batch_shape = jnp.broadcast_shapes(
            jnp.shape(self._loc),
            jnp.shape(self._concentration),
            jnp.shape(self._cutpoints)[:-1],
        )

        super().__init__(
            dtype=dtype,
            reparameterization_type=reparameterization.NOT_REPARAMETERIZED,
            validate_args=validate_args,
            allow_nan_stats=allow_nan_stats,
            parameters=parameters,
            name=name,
        )

    @classmethod
    def _parameter_properties(cls, dtype, num_classes=None):
        return {
            "loc": parameter_properties.ParameterProperties(),
            "concentration": parameter_properties.ParameterProperties(
                default_constraining_bijector_fn=lambda: tfb.Softplus()
            ),
            "cutpoints": parameter_properties.ParameterProperties(
                event_ndims=1,
                default_constraining_bijector_fn=lambda: tfb.Ascending(),
            ),
        }

    @property
    def loc(self) -> Array:
        """Locations on the logit scale."""
        return self._loc

    @property
    def concentration(self) -> Array:
        """Concentrations of the beta distribution of the interior values."""
        return self._concentration

    @property
    def cutpoints(self) -> Array:
        """Cutpoints on the logit scale."""
        return self._cutpoints

    def _log_category_probs(self) -> tuple[Array, Array, Array]:
        c0 = self._cutpoints[..., 0]
        c1 = self._cutpoints[..., 1]

        log_low = jax.nn.log_sigmoid(c0 - self._loc)
        log_high = jax.nn.log_sigmoid(self._loc - c1)
        log_mid = tfm.log_sub_exp(jax.nn.log_sigmoid(self._loc - c0), log_high)

        return log_low, log_mid, log_high

    def category_probs(self) -> Array:
        """
        Probabilities of the three categories, stacked in the last dimension in the
        order lower bound, interior, upper bound.
        """
        log_probs = jnp.stack(self._log_category_probs(), axis=-1)
        return jnp.exp(log_probs)

    def _beta_concentrations(self) -> tuple[Array, Array]:
        # computed on the log scale, so that s(loc) does not round to one
        log_phi = jnp.log(self._concentration)
        concentration1 = jnp.exp(jax.nn.log_sigmoid(self._loc) + log_phi)
        concentration0 = jnp.exp(jax.nn.log_sigmoid(-self._loc) + log_phi)
        return concentration1, concentration0

    def _log_prob(self, x: Array) -> Array:
        x = jnp.asarray(x, dtype=self.dtype)
        log_low, log_mid, log_high = self._log_category_probs()

        is_low = x == 0.0
        is_high = x == 1.0
        is_mid = (x > 0.0) & (x < 1.0)

        # the beta density is evaluated at a dummy value for the bounds, otherwise
        # the gradients would be nan
        x_mid = jnp.where(is_mid, x, 0.5)
        concentration1, concentration0 = self._beta_concentrations()
        log_beta = tfd.Beta(concentration1, concentration0).log_prob(x_mid)

        log_prob = jnp.where(is_mid, log_mid + log_beta, -jnp.inf)
        log_prob = jnp.where(is_high, log_high, log_prob)
        log_prob = jnp.where(is_low, log_low, log_prob)
        return log_prob

    def _sample_n(self, n, seed=None) -> Array:
        shape = (n,) + tuple(self._broadcast_batch_shape)
        category_seed, beta_seed = samplers.split_seed(seed, n=2)

        probs = self.category_probs()
        p_low = probs[..., 0]
        p_mid = probs[..., 1]

        u = jax.random.uniform(category_seed, shape=shape, dtype=self.dtype)

        concentration1, concentration0 = self._beta_concentrations()
        interior = jax.random.beta(
            beta_seed,
            jnp.broadcast_to(concentration1, shape),
            jnp.broadcast_to(concentration0, shape),
            shape=shape,
            dtype=self.dtype,
        )

        # small concentrations put beta draws on the bounds in single precision
        finfo = jnp.finfo(self.dtype)
        interior = jnp.clip(interior, finfo.tiny, 1.0 - finfo.epsneg)

        samples = jnp.where(u < p_low + p_mid, interior, 1.0)
        samples = jnp.where(u < p_low, 0.0, samples)
        return samples

    def _mean(self) -> Array:
        probs = self.category_probs()
        return probs[..., 2] + probs[..., 1] * jax.nn.sigmoid(self._loc)

    def _event_shape(self):
        return tf.TensorShape([])

    def _event_shape_tensor(self):
        return jnp.array([], dtype=jnp.int32)

    def _batch_shape(self):
        return tf.TensorShape(self._broadcast_batch_shape)

    def _batch_shape_tensor(self):
        return jnp.array(self._broadcast_batch_shape, dtype=jnp.int32)


def _check_parameters(
    mu: Array, phi: Array, cutpoints: Array
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    mu = np.asarray(mu, dtype=np.float64)
    phi = np.asarray(phi, dtype=np.float64)
    cutpoints = np.asarray(cutpoints, dtype=np.float64)

    if np.any((mu <= 0.0) | (mu >= 1.0)):
        raise ValueError("`mu` must lie in the open interval (0, 1).")

    if np.any(phi <= 0.0):
        raise ValueError("`phi` must be positive.")

    if cutpoints.shape[-1:] != (2,):
        raise ValueError("`cutpoints` must contain exactly two values.")

    if np.any(cutpoints[..., 0] >= cutpoints[..., 1]):
        raise ValueError(
            "The first cutpoint must be smaller than the second one, got "
            f"{cutpoints.tolist()}."
        )

    return mu, phi, cutpoints


def dordbeta(
    x: Array,
    mu: Array = 0.5,
    phi: Array = 1.0,
    cutpoints: Array = (-1.0, 1.0),
    log: bool = False,
) -> np.ndarray:
    """
    Density of the ordered beta distribution.

    At the bounds ``0`` and ``1``, the returned values are point masses, in the
    interior they are densities.

    Parameters
    ----------
    x
        The values on the closed unit interval at which to evaluate the density.
    mu
        The mean of the beta distribution of the interior values on the probability
        scale, i.e. in the open interval (0, 1).
    phi
        The dispersion parameter of the beta distribution.
    cutpoints
        The two increasing cutpoints on the logit scale.
    log
        Whether to return the log-density.

    Raises
    ------
    ValueError
        If ``mu`` is not in (0, 1), ``phi`` is not positive, or the cutpoints are not
        two increasing values.
    """
    mu, phi, cutpoints = _check_parameters(mu, phi, cutpoints)

    dist = OrderedBeta(loc=logit(mu), concentration=phi, cutpoints=cutpoints)
    log_prob = np.asarray(dist.log_prob(jnp.asarray(x)))

    return log_prob if log else np.exp(log_prob)


def _draw(
    rng: np.random.Generator, loc: Array, phi: Array, c0: Array, c1: Array
) -> np.ndarray:
    """Vectorized draws given the location on the logit scale."""
    loc, phi, c0, c1 = np.broadcast_arrays(loc, phi, c0, c1)

    # tiny concentrations can produce draws that round to the bounds
    eps = np.finfo(np.float64).eps
    mu = np.clip(expit(loc), eps, 1.0 - eps)

    p_low = expit(c0 - loc)
    p_high = expit(loc - c1)

    u = rng.uniform(size=loc.shape)
    interior = np.clip(rng.beta(mu * phi, (1.0 - mu) * phi), eps, 1.0 - eps)

    draws = np.where(u > 1.0 - p_high, 1.0, interior)
    draws = np.where(u < p_low, 0.0, draws)
    return draws


def rordbeta(
    n: int = 100,
    mu: Array = 0.5,
    phi: Array = 1.0,
    cutpoints: Array = (-1.0, 1.0),
    seed: int | np.random.Generator | None = None,
) -> np.ndarray:
    """
    Draws random values from the ordered beta distribution.

    Parameters
    ----------
    n
        The number of draws.
    mu
        The mean of the beta distribution of the interior values on the probability
        scale. Either a scalar or an array of length ``n``.
    phi
        The dispersion parameter of the beta distribution. Either a scalar or an
        array of length ``n``.
    cutpoints
        The two increasing cutpoints on the logit scale.
    seed
        Seed or :class:`numpy.random.Generator` for the draws.

    Returns
    -------
    An array of ``n`` values on the closed unit interval.
    """
    if n < 0:
        raise ValueError(f"`n` must be non-negative, got {n}.")

    mu, phi, cutpoints = _check_parameters(mu, phi, cutpoints)
    rng = np.random.default_rng(seed)

    loc = logit(np.broadcast_to(mu, (n,)))
    phi = np.broadcast_to(phi, (n,))

    return _draw(rng, loc, phi, cutpoints[..., 0], cutpoints[..., 1])
