"""Tests for metrics utility functions."""

from __future__ import annotations

import jax
import jax.numpy as jnp
import pytest
from chex import assert_shape

from mcmctune.utils.metrics import MIN_ESS, effective_sample_size, summarize_ess


class TestEffectiveSampleSize:
  """Test the effective_sample_size function."""

  def test_shape_and_bounds(self, rng_key) -> None:
    """One value per coordinate, each in [MIN_ESS, num_samples].

    Args:
        rng_key: Fixture providing a PRNG key.

    Returns:
        None

    Raises:
        AssertionError: If the shape or the bounds are wrong.

    """
    chain = jax.random.normal(rng_key, (500, 3))
    ess = effective_sample_size(chain)
    assert_shape(ess, (3,))
    assert bool(jnp.all(ess >= MIN_ESS))
    assert bool(jnp.all(ess <= 500))

  def test_independent_draws_have_large_ess(self, rng_key) -> None:
    """Independent draws give an ESS close to the chain length."""
    chain = jax.random.normal(rng_key, (2_000, 2))
    ess = effective_sample_size(chain)
    assert bool(jnp.all(ess > 1_000))

  def test_correlated_chain_has_small_ess(self, rng_key) -> None:
    """A strongly autocorrelated chain has a much smaller ESS."""
    noise = jax.random.normal(rng_key, (2_000,))

    def ar1(x: jax.Array, eps: jax.Array) -> tuple[jax.Array, jax.Array]:
      x = 0.99 * x + eps
      return x, x

    _, path = jax.lax.scan(ar1, jnp.array(0.0), noise)
    ess = effective_sample_size(path[:, None])
    assert float(ess[0]) < 200

  def test_anticorrelated_chain_is_capped_at_length(self, rng_key) -> None:
    """Negative autocorrelation pushes the raw estimate above n; it is reported as n."""
    noise = jax.random.normal(rng_key, (2_000, 2))

    def ar1(x: jax.Array, eps: jax.Array) -> tuple[jax.Array, jax.Array]:
      x = -0.9 * x + eps
      return x, x

    _, chain = jax.lax.scan(ar1, jnp.zeros(2), noise)
    ess = effective_sample_size(chain)
    assert bool(jnp.all(ess <= 2_000))
    assert jnp.allclose(ess, 2_000.0)

  def test_constant_coordinate_reports_minimum(self, rng_key) -> None:
    """A coordinate that never moves gets MIN_ESS; the others are unaffected."""
    moving = jax.random.normal(rng_key, (300,))
    chain = jnp.stack([moving, jnp.full((300,), 2.5)], axis=1)
    ess = effective_sample_size(chain)
    assert float(ess[1]) == MIN_ESS
    assert float(ess[0]) > MIN_ESS

  def test_fully_constant_chain(self) -> None:
    """A chain that never moves has MIN_ESS everywhere."""
    ess = effective_sample_size(jnp.zeros((100, 4)))
    assert jnp.array_equal(ess, jnp.full((4,), MIN_ESS))

  @pytest.mark.parametrize("chain", [jnp.zeros((10,)), jnp.zeros((1, 2)), jnp.zeros((2, 2, 2))])
  def test_invalid_chains_raise(self, chain: jax.Array) -> None:
    """Chains that are not 2-D or have fewer than two rows are rejected."""
    with pytest.raises(ValueError):
      effective_sample_size(chain)


class TestSummarizeEss:
  """Test the summarize_ess function."""

  def test_min_and_mean(self) -> None:
    min_ess, mean_ess = summarize_ess(jnp.array([10.0, 30.0, 20.0]))
    assert min_ess == pytest.approx(10.0)
    assert mean_ess == pytest.approx(20.0)
    assert isinstance(min_ess, float)
