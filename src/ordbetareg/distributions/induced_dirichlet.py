"""
The induced Dirichlet prior for ordered cutpoints.
"""

from __future__ import annotations

from typing import Any

import jax
import jax.numpy as jnp
import tensorflow_probability.substrates.jax.bijectors as tfb
import tensorflow_probability.substrates.jax.distributions as tfd
from tensorflow_probability.python.internal import reparameterization
from tensorflow_probability.substrates.jax import tf2jax as tf
from tensorflow_probability.substrates.jax.internal import parameter_properties

Array = Any


def _category_probs(cutpoints: Array, anchor: Array) -> Array:
    """
    Maps ordered cutpoints to the probabilities of the ordinal categories, evaluated
    at the anchor point. The probabilities are stacked in the last dimension.
    """
    survival = jax.nn.sigmoid(anchor[..., None] - cutpoints)
    first = jax.nn.sigmoid(cutpoints[..., :1] - anchor[..., None])
    middle = survival[..., :-1] - survival[..., 1:]
    last = survival[..., -1:]
    return jnp.concatenate([first, middle, last], axis=-1)


class InducedDirichlet(tfd.Distribution):
    """
    A Dirichlet prior on the category probabilities, induced on ordered cutpoints.

    Instead of placing a prior on the cutpoints of an ordinal model directly, this
    distribution places a Dirichlet prior on the probabilities of the ordinal
    categories at a fixed anchor point on the latent scale (Betancourt, 2019). For
    :math:`K` categories and :math:`K - 1` ordered cutpoints :math:`c`:

    .. math::
        p_1 & = 1 - s(a - c_1), \\

        p_k & = s(a - c_{k-1}) - s(a - c_k), \\quad k = 2, \\dots, K - 1, \\

        p_K & = s(a - c_{K-1}),

    and the density of the cutpoints is the Dirichlet density of :math:`p` times the
    absolute Jacobian determinant :math:`\\prod_k s'(a - c_k)`. The density is zero
    (log-density ``-inf``) for cutpoints that are not increasing.

    The default event space bijector is :class:`~tfp.bijectors.Ascending`, which
    means that transformed cutpoints are parametrized as the first cutpoint and the
    logarithms of the gaps between consecutive cutpoints.

    Parameters
    ----------
    concentration
        The concentration parameters of the Dirichlet distribution. The last
        dimension has the size :math:`K`, the number of categories.
    anchor
        The anchor point :math:`a` on the latent scale.
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
    """

    def __init__(
        self,
        concentration: Array,
        anchor: Array = 0.0,
        validate_args: bool = False,
        allow_nan_stats: bool = True,
        name: str = "InducedDirichlet",
    ):
        parameters = dict(locals())

        concentration = jnp.asarray(concentration)
        anchor = jnp.asarray(anchor)
        dtype = jnp.result_type(concentration, anchor, jnp.float32)

        self._concentration = concentration.astype(dtype)
        self._anchor = anchor.astype(dtype)

        if jnp.ndim(self._concentration) < 1 or jnp.shape(self._concentration)[-1] < 2:
            raise ValueError(
                "`concentration` must have at least two categories in its last "
                f"dimension, got shape {jnp.shape(self._concentration)}."
            )

        if validate_args and not jnp.all(self._concentration > 0.0):
            raise ValueError("`concentration` must be positive.")

        self._broadcast_batch_shape = jnp.broadcast_shapes(
            jnp.shape(self._concentration)[:-1], jnp.shape(self._anchor)
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
            "concentration": parameter_properties.ParameterProperties(
                event_ndims=1,
                default_constraining_bijector_fn=lambda: tfb.Softplus(),
            ),
            "anchor": parameter_properties.ParameterProperties(),
        }

    @property
    def concentration(self) -> Array:
        """Concentration parameters of the Dirichlet distribution."""
        return self._concentration

    @property
    def anchor(self) -> Array:
        """Anchor points on the latent scale."""
        return self._anchor

    @property
    def num_categories(self) -> int:
        """The number of ordinal categories."""
        return jnp.shape(self._concentration)[-1]

    def _log_prob(self, x: Array) -> Array:
        x = jnp.asarray(x, dtype=self.dtype)
        ordered = jnp.all(jnp.diff(x, axis=-1) > 0.0, axis=-1)

        probs = _category_probs(x, self._anchor)
        probs = jnp.where(ordered[..., None], probs, 1.0 / self.num_categories)

        delta = self._anchor[..., None] - x
        log_jacobian = jnp.sum(
            jax.nn.log_sigmoid(delta) + jax.nn.log_sigmoid(-delta), axis=-1
        )

        log_prob = tfd.Dirichlet(self._concentration).log_prob(probs) + log_jacobian
        return jnp.where(ordered, log_prob, -jnp.inf)

    def _sample_n(self, n, seed=None) -> Array:
        batch_shape = tuple(self._broadcast_batch_shape)
        concentration = jnp.broadcast_to(
            self._concentration, batch_shape + (self.num_categories,)
        )
        probs = tfd.Dirichlet(concentration).sample(n, seed=seed)

        # P(category > k), the reversed cumulative sum avoids cancellation
        survival = jnp.flip(jnp.cumsum(jnp.flip(probs, axis=-1), axis=-1), axis=-1)
        survival = survival[..., 1:]

        anchor = jnp.broadcast_to(self._anchor, batch_shape)[..., None]
        return anchor - jax.scipy.special.logit(survival)

    def _default_event_space_bijector(self):
        return tfb.Ascending(validate_args=self.validate_args)

    def _event_shape(self):
        return tf.TensorShape([self.num_categories - 1])

    def _event_shape_tensor(self):
        return jnp.array([self.num_categories - 1], dtype=jnp.int32)

    def _batch_shape(self):
        return tf.TensorShape(self._broadcast_batch_shape)

    def _batch_shape_tensor(self):
        return jnp.array(self._broadcast_batch_shape, dtype=jnp.int32)
