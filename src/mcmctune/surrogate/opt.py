"""Acquisition function and its bounded maximization over a scalar input."""

from __future__ import annotations

from typing import TYPE_CHECKING

import jax.numpy as jnp
from jax.scipy.stats import norm

if TYPE_CHECKING:
  from collections.abc import Callable

  from jaxtyping import Array, Float

  from mcmctune.models.tuner import TunerConfig
  from mcmctune.surrogate.gp import GPModel


def expected_improvement(
  mean: Float[Array, "m"],
  variance: Float[Array, "m"],
  best: float,
  xi: float = 0.01,
) -> Float[Array, "m"]:
  """Expected Improvement below ``best`` for a minimization problem.

  Args:
    mean: Posterior mean at the candidates.
    variance: Posterior variance at the candidates.
    best: Lowest objective observed so far.
    xi: Exploration margin.

  Returns:
    Non-negative EI values. Where the variance is zero the EI reduces to
    ``max(best - mean - xi, 0)``.

  """
  sd = jnp.sqrt(jnp.clip(variance, 0.0))
  improvement = best - mean - xi
  positive = sd > 0
  z = improvement / jnp.where(positive, sd, 1.0)
  ei = improvement * norm.cdf(z) + sd * norm.pdf(z)
  return jnp.where(positive, jnp.clip(ei, 0.0), jnp.clip(improvement, 0.0))


def maximize_acquisition(
  acquisition_fn: Callable[[Array], Array],
  lower: float,
  upper: float,
  n_candidates: int = 256,
  n_refine: int = 64,
) -> tuple[float, float]:
  """Maximize a scalar acquisition over ``[lower, upper]`` by grid search and refinement.

  The coarse grid spans the whole domain; the refinement grid spans one
  coarse spacing on each side of the coarse maximizer, clipped to the
  domain. Ties resolve to the smallest input. The result never leaves the
  domain.

  Returns:
    Tuple of (argmax, max).

  Example:
    >>> x, _ = maximize_acquisition(lambda x: -(x - 0.3) ** 2, 0.0, 1.0)
    >>> abs(x - 0.3) < 1e-3
    True

  """
  coarse = jnp.linspace(lower, upper, n_candidates)
  coarse_values = jnp.nan_to_num(acquisition_fn(coarse), nan=-jnp.inf)
  center = float(coarse[jnp.argmax(coarse_values)])

  spacing = (upper - lower) / (n_candidates - 1)
  fine = jnp.linspace(max(lower, center - spacing), min(upper, center + spacing), n_refine)
  fine_values = jnp.nan_to_num(acquisition_fn(fine), nan=-jnp.inf)
  idx = int(jnp.argmax(fine_values))
  best_x = float(fine[idx])
  best_value = float(fine_values[idx])

  if best_value < float(jnp.max(coarse_values)):
    best_x, best_value = center, float(jnp.max(coarse_values))
  return min(max(best_x, lower), upper), best_value


def propose_next(model: GPModel, best: float, config: TunerConfig) -> float:
  """Choose the next input to evaluate.

  Maximizes Expected Improvement under the surrogate posterior. When no
  candidate has positive EI, falls back to the input of largest posterior
  variance.
  """

  def ei_fn(x: Array) -> Array:
    mean, variance = model.predict(x)
    return expected_improvement(mean, variance, best, config.xi)

  x_next, ei_max = maximize_acquisition(
    ei_fn,
    config.lower,
    config.upper,
    config.n_candidates,
    config.n_refine,
  )
  if ei_max > 0:
    return x_next

  def variance_fn(x: Array) -> Array:
    return model.predict(x)[1]

  x_next, _ = maximize_acquisition(
    variance_fn,
    config.lower,
    config.upper,
    config.n_candidates,
    config.n_refine,
  )
  return x_next
