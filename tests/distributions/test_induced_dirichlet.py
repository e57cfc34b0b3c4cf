"""
Tests for the induced Dirichlet prior of the cutpoints.
"""
import jax.numpy as jnp
import jax.random as jrd
import numpy as np
import pytest
import tensorflow_probability.substrates.jax.bijectors as tfb

from ordbetareg.distributions import InducedDirichlet
from ordbetareg.distributions.induced_dirichlet import _category_probs

key = jrd.PRNGKey(1337)


def grid_mass(dist: InducedDirichlet, limit: float = 15.0, step: float = 0.05):
    grid = np.arange(-limit, limit, step) + step / 2
    c0, c1 = np.meshgrid(grid, grid, indexing="ij")
    x = jnp.asarray(np.stack([c0.ravel(), c1.ravel()], axis=-1), dtype=jnp.float32)
    density = np.exp(np.asarray(dist.log_prob(x), dtype=np.float64))
    return density.sum() * step**2


class TestInducedDirichlet:
    def test_shapes(self) -> None:
        dist = InducedDirichlet(jnp.ones(3))
        assert dist.event_shape == (2,)
        assert dist.batch_shape == ()
        assert dist.num_categories == 3
        assert dist.sample(5, seed=key).shape == (5, 2)

    def test_more_categories(self) -> None:
        dist = InducedDirichlet(jnp.ones(5), anchor=1.0)
        assert dist.event_shape == (4,)
        assert dist.sample(2, seed=key).shape == (2, 4)

    def test_needs_two_categories(self) -> None:
        with pytest.raises(ValueError, match="two categories"):
            InducedDirichlet(jnp.ones(1))

    @pytest.mark.parametrize("concentration", [(1.0, 1.0, 1.0), (2.0, 3.0, 4.0)])
    def test_integrates_to_one(self, concentration) -> None:
        dist = InducedDirichlet(jnp.array(concentration))
        assert grid_mass(dist) == pytest.approx(1.0, abs=0.02)

    def test_unordered_cutpoints(self) -> None:
        dist = InducedDirichlet(jnp.ones(3))
        log_prob = dist.log_prob(jnp.array([[1.0, -1.0], [0.5, 0.5]]))
        assert jnp.all(jnp.isneginf(log_prob))

    def test_flat_prior_on_probabilities(self) -> None:
        # a flat Dirichlet has density 2 on the simplex, times the Jacobian
        dist = InducedDirichlet(jnp.ones(3))
        c = jnp.array([-1.0, 1.0])
        s = 1.0 / (1.0 + np.exp(-1.0))
        expected = np.log(2.0) + 2.0 * np.log(s * (1.0 - s))
        assert float(dist.log_prob(c)) == pytest.approx(expected, rel=1e-5)

    def test_samples_are_ordered(self) -> None:
        samples = InducedDirichlet(jnp.array([2.0, 1.0, 3.0])).sample(1000, seed=key)
        assert jnp.all(jnp.diff(samples, axis=-1) > 0.0)

    def test_sampled_probabilities(self) -> None:
        concentration = jnp.array([2.0, 1.0, 3.0])
        dist = InducedDirichlet(concentration, anchor=0.5)
        samples = dist.sample(20_000, seed=key)

        probs = _category_probs(samples, jnp.asarray(0.5))
        expected = concentration / concentration.sum()
        assert np.allclose(probs.mean(axis=0), expected, atol=0.01)

    def test_default_bijector(self) -> None:
        dist = InducedDirichlet(jnp.ones(3))
        bijector = dist.experimental_default_event_space_bijector()
        assert isinstance(bijector, tfb.Ascending)

        c = bijector.forward(jnp.array([-3.0, 0.0]))
        assert float(c[1] - c[0]) == pytest.approx(1.0)
