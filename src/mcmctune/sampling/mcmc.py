"""Implements the fixed-step random walk Metropolis-Hastings sampler."""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp
from blackjax.mcmc.random_walk import normal as normal_increment

from mcmctune.models.sampler_base import SamplerOutput

if TYPE_CHECKING:
  from jaxtyping import Array, Bool, Float, PRNGKeyArray

  from mcmctune.models.types import Chain, LogDensityFn, State


def evaluate_log_density(log_density_fn: LogDensityFn, position: State) -> Float[Array, ""]:
  """Evaluate the target as a float32 scalar so scan carries keep a fixed type."""
  return jnp.asarray(log_density_fn(position), dtype=jnp.float32).reshape(())


def metropolis_accept(key: PRNGKeyArray, log_ratio: Float[Array, ""]) -> Bool[Array, ""]:
  """Decide whether a proposal is accepted.

  A proposal is accepted iff the log acceptance ratio is finite and
  ``log(u) < log_ratio`` for ``u ~ Uniform(0, 1)``. Non-finite ratios
  (``-inf`` densities, NaN proposals) always reject.

  Args:
      key: JAX PRNG key for the uniform draw.
      log_ratio: ``log_density(proposal) - log_density(current)``.

  Returns:
      Scalar boolean.

  """
  finite = jnp.isfinite(log_ratio)
  safe_log_ratio = jnp.where(finite, log_ratio, -jnp.inf)
  log_u = jnp.log(jax.random.uniform(key))
  return finite & (log_u < safe_log_ratio)


def metropolis_step(
  key: PRNGKeyArray,
  position: State,
  logdensity: Float[Array, ""],
  proposal: State,
  log_density_fn: LogDensityFn,
) -> tuple[State, Float[Array, ""], Bool[Array, ""]]:
  """Apply the accept/reject test to one proposal.

  Returns:
      The next state (the proposal or an exact copy of ``position``), its
      log-density and the acceptance flag.

  """
  proposal_logdensity = evaluate_log_density(log_density_fn, proposal)
  do_accept = metropolis_accept(key, proposal_logdensity - logdensity)
  new_position = jnp.where(do_accept, proposal, position)
  new_logdensity = jnp.where(do_accept, proposal_logdensity, logdensity)
  return new_position, new_logdensity, do_accept


def assemble_output(
  initial_position: State,
  positions: Chain,
  proposals: Chain,
  accepted: Bool[Array, "steps"],
) -> SamplerOutput:
  """Prepend the initial state to the scanned rows and compute the acceptance rate."""
  chain = jnp.concatenate([initial_position[None, :], positions], axis=0)
  all_proposals = jnp.concatenate([initial_position[None, :], proposals], axis=0)
  all_accepted = jnp.concatenate([jnp.zeros((1,), dtype=jnp.bool_), accepted], axis=0)
  return SamplerOutput(
    chain=chain,
    proposals=all_proposals,
    accepted=all_accepted,
    acceptance_rate=jnp.sum(all_accepted) / chain.shape[0],
  )


@partial(jax.jit, static_argnames=("log_density_fn", "num_samples"))
def run_rwmh_loop(
  key: PRNGKeyArray,
  log_density_fn: LogDensityFn,
  num_samples: int,
  step_size: float | Float[Array, ""],
  initial_position: State,
) -> SamplerOutput:
  """Run a random walk Metropolis chain with an isotropic Gaussian proposal.

  Args:
      key: JAX PRNG key. The same key gives the same chain.
      log_density_fn: Target log-density.
      num_samples: Chain length including the initial state, at least 2.
      step_size: Proposal standard deviation. Must be positive; not checked
        here.
      initial_position: First row of the chain.

  Returns:
      SamplerOutput with the chain, the proposals and the acceptance rate.

  Example:
      >>> out = run_rwmh_loop(jax.random.PRNGKey(0), lambda x: -0.5 * x @ x,
      ...                     100, 1.0, jnp.zeros(2))
      >>> out.chain.shape
      (100, 2)

  """
  initial_position = jnp.asarray(initial_position, dtype=jnp.float32)
  dim = initial_position.shape[0]
  propose = normal_increment(step_size * jnp.ones((dim,), dtype=initial_position.dtype))

  def body_fn(
    carry: tuple[State, Float[Array, ""]],
    step_key: PRNGKeyArray,
  ) -> tuple[tuple[State, Float[Array, ""]], tuple[State, State, Bool[Array, ""]]]:
    """Perform one step of the sampler."""
    position, logdensity = carry
    key_proposal, key_accept = jax.random.split(step_key)
    proposal = position + propose(key_proposal, position)
    position, logdensity, do_accept = metropolis_step(
      key_accept,
      position,
      logdensity,
      proposal,
      log_density_fn,
    )
    return (position, logdensity), (position, proposal, do_accept)

  keys = jax.random.split(key, num_samples - 1)
  initial_carry = (initial_position, evaluate_log_density(log_density_fn, initial_position))
  _, (positions, proposals, accepted) = jax.lax.scan(body_fn, initial_carry, keys)
  return assemble_output(initial_position, positions, proposals, accepted)
