"""Target log-densities used to compare samplers.

Every factory returns a JAX-traceable ``LogDensityFn`` for a given dimension.
Densities are unnormalized.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import jax.numpy as jnp
from jax.nn import logsumexp
from jax.scipy.stats import norm

if TYPE_CHECKING:
  from collections.abc import Callable

  from mcmctune.models.types import LogDensityFn, State


def banana(dim: int = 2, scale: float = 1.0, curvature: float = 1.0) -> LogDensityFn:
  """Twisted Gaussian.

  ``x[0] ~ N(0, scale²)`` and ``x[1] - curvature * (x[0]² - scale²) ~ N(0, 1)``;
  remaining coordinates are standard normal.
  """
  if dim < 2:  # noqa: PLR2004
    msg = "banana needs at least two dimensions."
    raise ValueError(msg)

  def log_density(x: State) -> jnp.ndarray:
    twisted = x[1] - curvature * (x[0] ** 2 - scale**2)
    return -0.5 * (x[0] / scale) ** 2 - 0.5 * twisted**2 - 0.5 * jnp.sum(x[2:] ** 2)

  return log_density


def mixture(dim: int = 2, separation: float = 3.0, weight: float = 0.5) -> LogDensityFn:
  """Two unit-covariance Gaussians centred at ``-separation`` and ``+separation``.

  Both means repeat the same value in every coordinate.
  """
  if not 0.0 < weight < 1.0:
    msg = "weight must be in (0, 1)."
    raise ValueError(msg)
  log_weights = jnp.log(jnp.array([weight, 1.0 - weight]))
  means = jnp.array([-separation, separation])

  def log_density(x: State) -> jnp.ndarray:
    components = -0.5 * jnp.sum((x[None, :] - means[:, None]) ** 2, axis=1)
    return logsumexp(components + log_weights)

  return log_density


def skew_normal(dim: int = 2, shape: float = 4.0) -> LogDensityFn:
  """Independent skew-normal coordinates, ``2 φ(x) Φ(shape * x)`` each."""

  def log_density(x: State) -> jnp.ndarray:
    return jnp.sum(jnp.log(2.0) + norm.logpdf(x) + norm.logcdf(shape * x))

  return log_density


TARGETS: dict[str, Callable[[int], LogDensityFn]] = {
  "banana": banana,
  "mixture": mixture,
  "skew_normal": skew_normal,
}


def get_target(name: str, dim: int = 2) -> LogDensityFn:
  """Look up a target factory by name and build it for ``dim`` dimensions.

  Raises:
    ValueError: If the name is unknown.

  """
  if name not in TARGETS:
    msg = f"Unknown target: '{name}'. Available targets: {list(TARGETS)}."
    raise ValueError(msg)
  return TARGETS[name](dim)
