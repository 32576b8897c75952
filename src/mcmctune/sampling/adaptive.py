"""Implements the covariance-adaptive Metropolis sampler.

Past the burn-in, the proposal covariance at iteration ``i`` is the scaled
empirical covariance of every state before ``i`` plus a small ridge. The
empirical moments are carried through the scan as running (Welford) sums,
so the covariance of the full history is recomputed at every iteration
without re-reading the chain.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp
from blackjax.mcmc.random_walk import normal as normal_increment

from mcmctune.models.adaptive import AdaptiveConfig
from mcmctune.sampling.mcmc import assemble_output, evaluate_log_density, metropolis_step

if TYPE_CHECKING:
  from jaxtyping import Array, Bool, Float, Int, PRNGKeyArray

  from mcmctune.models.sampler_base import SamplerOutput
  from mcmctune.models.types import Chain, LogDensityFn, ProposalCovariance, State


def welford_update(
  count: Int[Array, ""],
  mean: State,
  scatter: ProposalCovariance,
  position: State,
) -> tuple[Int[Array, ""], State, ProposalCovariance]:
  """Add one state to running mean and scatter-matrix estimates.

  Args:
      count: Number of states already summarized.
      mean: Running mean of those states.
      scatter: Running sum of centered outer products.
      position: The state to add.

  Returns:
      Updated ``(count, mean, scatter)``.

  """
  new_count = count + 1
  delta = position - mean
  new_mean = mean + delta / new_count
  new_scatter = scatter + jnp.outer(delta, position - new_mean)
  return new_count, new_mean, new_scatter


def covariance_from_scatter(
  count: Int[Array, ""],
  scatter: ProposalCovariance,
) -> ProposalCovariance:
  """Unbiased (``ddof=1``) covariance from a running scatter matrix, symmetrized."""
  cov = scatter / jnp.maximum(count - 1, 1)
  return 0.5 * (cov + cov.T)


def empirical_covariance(history: Chain) -> ProposalCovariance:
  """Unbiased covariance of a block of states, one state per row."""
  return jnp.atleast_2d(jnp.cov(history, rowvar=False))


def adaptive_proposal_covariance(
  empirical_cov: ProposalCovariance,
  iteration: Int[Array, ""] | int,
  config: AdaptiveConfig,
) -> ProposalCovariance:
  """Proposal covariance used at a given (1-based) chain iteration.

  Args:
      empirical_cov: Covariance of the states before ``iteration``.
      iteration: Index of the state being produced, counting the initial
        state as 1.
      config: Adaptive sampler configuration.

  Returns:
      ``initial_variance * I`` up to the burn-in, then
      ``(2.38**2 / dim) * (empirical_cov + regularizer * I)``.

  Example:
      >>> cov = adaptive_proposal_covariance(jnp.zeros((2, 2)), 500, AdaptiveConfig())
      >>> bool(jnp.all(jnp.linalg.eigvalsh(cov) > 0))
      True

  """
  dim = empirical_cov.shape[0]
  identity = jnp.eye(dim, dtype=empirical_cov.dtype)
  adapted = config.scaling(dim) * (empirical_cov + config.regularizer * identity)
  fixed = config.initial_variance * identity
  return jnp.where(iteration > config.burnin, adapted, fixed)


@partial(jax.jit, static_argnames=("log_density_fn", "num_samples", "config"))
def run_adaptive_loop(
  key: PRNGKeyArray,
  log_density_fn: LogDensityFn,
  num_samples: int,
  initial_position: State,
  config: AdaptiveConfig = AdaptiveConfig(),  # noqa: B008
) -> SamplerOutput:
  """Run an adaptive Metropolis chain.

  Args:
      key: JAX PRNG key. The same key gives the same chain.
      log_density_fn: Target log-density.
      num_samples: Chain length including the initial state, at least 2.
      initial_position: First row of the chain.
      config: Burn-in length, initial variance and regularizer.

  Returns:
      SamplerOutput with the chain, the proposals and the acceptance rate.

  """
  initial_position = jnp.asarray(initial_position, dtype=jnp.float32)
  dim = initial_position.shape[0]

  def body_fn(
    carry: tuple[State, Float[Array, ""], Int[Array, ""], State, ProposalCovariance],
    xs: tuple[PRNGKeyArray, Int[Array, ""]],
  ) -> tuple[tuple, tuple[State, State, Bool[Array, ""]]]:
    """Perform one step of the sampler."""
    position, logdensity, count, mean, scatter = carry
    step_key, iteration = xs
    key_proposal, key_accept = jax.random.split(step_key)

    covariance = adaptive_proposal_covariance(
      covariance_from_scatter(count, scatter),
      iteration,
      config,
    )
    propose = normal_increment(jnp.linalg.cholesky(covariance))
    proposal = position + propose(key_proposal, position)
    position, logdensity, do_accept = metropolis_step(
      key_accept,
      position,
      logdensity,
      proposal,
      log_density_fn,
    )
    count, mean, scatter = welford_update(count, mean, scatter, position)
    return (position, logdensity, count, mean, scatter), (position, proposal, do_accept)

  keys = jax.random.split(key, num_samples - 1)
  iterations = jnp.arange(2, num_samples + 1)
  initial_carry = (
    initial_position,
    evaluate_log_density(log_density_fn, initial_position),
    jnp.array(1, dtype=jnp.int32),
    initial_position,
    jnp.zeros((dim, dim), dtype=initial_position.dtype),
  )
  _, (positions, proposals, accepted) = jax.lax.scan(body_fn, initial_carry, (keys, iterations))
  return assemble_output(initial_position, positions, proposals, accepted)
