"""Common fixtures and utilities for testing."""

from __future__ import annotations

from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp
import pytest

from mcmctune.models import AdaptiveConfig, ComparisonConfig, TunerConfig
from mcmctune.targets import banana

if TYPE_CHECKING:
  from jaxtyping import PRNGKeyArray

  from mcmctune.models.types import LogDensityFn


def _standard_normal(x: jax.Array) -> jax.Array:
  return -0.5 * jnp.sum(x**2)


def _origin_only(x: jax.Array) -> jax.Array:
  return jnp.where(jnp.all(x == 0.0), 0.0, -jnp.inf)


def _nan_density(x: jax.Array) -> jax.Array:
  return jnp.where(jnp.all(x == 0.0), 0.0, jnp.nan)


@pytest.fixture
def rng_key() -> PRNGKeyArray:
  """Provide a consistent PRNG key for testing."""
  return jax.random.PRNGKey(42)


@pytest.fixture(scope="session")
def standard_normal() -> LogDensityFn:
  """Log-density of a standard normal in any dimension."""
  return _standard_normal


@pytest.fixture(scope="session")
def origin_only() -> LogDensityFn:
  """Log-density that is finite only at the origin."""
  return _origin_only


@pytest.fixture(scope="session")
def nan_density() -> LogDensityFn:
  """Log-density that is NaN everywhere except the origin."""
  return _nan_density


@pytest.fixture(scope="session")
def banana_2d() -> LogDensityFn:
  """Two-dimensional banana target, built once per session."""
  return banana(2)


@pytest.fixture
def small_tuner_config() -> TunerConfig:
  """A cheap tuner configuration."""
  return TunerConfig(
    lower=0.1,
    upper=5.0,
    n_initial=3,
    n_rounds=2,
    pilot_samples=200,
    pilot_timeout=None,
    n_candidates=64,
    n_refine=16,
  )


@pytest.fixture
def small_comparison_config(small_tuner_config: TunerConfig) -> ComparisonConfig:
  """A cheap comparison configuration."""
  return ComparisonConfig(
    prng_seed=7,
    num_samples=300,
    step_size=1.0,
    adaptive=AdaptiveConfig(burnin=50),
    tuner=small_tuner_config,
  )
