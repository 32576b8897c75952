"""Base configuration and output definitions for samplers in the mcmctune package."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp
from flax import struct

if TYPE_CHECKING:
  from mcmctune.models.types import AcceptedMask, Chain, State

MIN_NUM_SAMPLES = 2


@dataclass(frozen=True)
class BaseSamplerConfig:
  """Base configuration for samplers.

  All sampler configurations should inherit from this.
  """

  prng_seed: int = field(default=42)
  num_samples: int = field(default=10_000)
  """Chain length, counting the initial state."""
  initial_position: Sequence[float] | None = field(default=None)
  """Initial state of every chain. If None, the zero vector is used."""

  def _validate_types(self) -> None:
    """Check types of the fields."""
    if not isinstance(self.prng_seed, int):
      msg = "prng_seed must be an integer."
      raise TypeError(msg)
    if not isinstance(self.num_samples, int) or isinstance(self.num_samples, bool):
      msg = "num_samples must be an integer."
      raise TypeError(msg)
    if self.initial_position is not None and (
      not isinstance(self.initial_position, Sequence) or isinstance(self.initial_position, str)
    ):
      msg = "initial_position must be a sequence of floats or None."
      raise TypeError(msg)

  def _check_values(self) -> None:
    """Check values of the fields."""
    if self.num_samples < MIN_NUM_SAMPLES:
      msg = f"num_samples must be at least {MIN_NUM_SAMPLES}."
      raise ValueError(msg)

  def __post_init__(self) -> None:
    """Validate the sampler configuration."""
    self._validate_types()
    self._check_values()

  def initial_state(self, dim: int) -> State:
    """Return the configured initial state for a ``dim``-dimensional target."""
    return resolve_initial_position(self.initial_position, dim)


def resolve_initial_position(initial_position: Sequence[float] | State | None, dim: int) -> State:
  """Build the initial state, defaulting to the zero vector.

  Args:
    initial_position: Explicit initial state, or None for the origin.
    dim: Dimension of the target.

  Returns:
    A float array of shape ``(dim,)``.

  Raises:
    ValueError: If the explicit position does not have ``dim`` entries.

  Example:
    >>> resolve_initial_position(None, 3).tolist()
    [0.0, 0.0, 0.0]

  """
  if initial_position is None:
    return jnp.zeros((dim,), dtype=jnp.float32)
  position = jnp.asarray(initial_position, dtype=jnp.float32)
  if position.shape != (dim,):
    msg = f"initial_position has shape {position.shape}, expected ({dim},)."
    raise ValueError(msg)
  return position


@struct.dataclass
class SamplerOutput:
  """Unified output structure for the Metropolis samplers.

  Attributes:
    chain: The sampled states, shape ``(num_samples, dim)``. Row 0 is the
      initial state.
    proposals: The proposal drawn at each iteration. Row 0 repeats the initial
      state, since no proposal is made there.
    accepted: Whether row ``i`` is an accepted proposal. Row 0 is False.
    acceptance_rate: Number of accepted proposals divided by ``num_samples``.

  """

  chain: Chain
  proposals: Chain
  accepted: AcceptedMask
  acceptance_rate: jax.Array

  @property
  def num_samples(self) -> int:
    """Number of rows in the chain."""
    return self.chain.shape[0]

  @property
  def num_accepted(self) -> int:
    """Number of accepted proposals."""
    return int(jnp.sum(self.accepted))
