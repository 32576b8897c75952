"""Data structures for the surrogate-guided step-size tuner."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp
from flax import struct

if TYPE_CHECKING:
  from jaxtyping import Array, Float

  from mcmctune.models.sampler_base import SamplerOutput

DEFAULT_LOWER = 0.1
DEFAULT_UPPER = 5.0
DEFAULT_NUGGET = 1e-6


@dataclass(frozen=True)
class TunerConfig:
  """Configuration for the Bayesian step-size search.

  Attributes:
      lower: Smallest step size the search may evaluate. Must be positive.
      upper: Largest step size the search may evaluate.
      n_initial: Number of evenly spaced step sizes evaluated before the
        first surrogate fit.
      n_rounds: Number of acquisition rounds after the initial design.
      pilot_samples: Length of each pilot RWMH chain.
      pilot_timeout: Wall-clock budget in seconds for one pilot run. None
        disables the timeout.
      n_candidates: Size of the coarse acquisition grid.
      n_refine: Size of the local grid used to refine the coarse maximizer.
      xi: Exploration margin of the Expected Improvement.
      nugget: Variance always added to the surrogate's covariance diagonal.

  """

  lower: float = field(default=DEFAULT_LOWER)
  upper: float = field(default=DEFAULT_UPPER)
  n_initial: int = field(default=5)
  n_rounds: int = field(default=30)
  pilot_samples: int = field(default=1_000)
  pilot_timeout: float | None = field(default=120.0)
  n_candidates: int = field(default=256)
  n_refine: int = field(default=64)
  xi: float = field(default=0.01)
  nugget: float = field(default=DEFAULT_NUGGET)

  def _validate_types(self) -> None:
    """Check types of the fields."""
    for name in ("n_initial", "n_rounds", "pilot_samples", "n_candidates", "n_refine"):
      if not isinstance(getattr(self, name), int):
        msg = f"{name} must be an integer."
        raise TypeError(msg)

  def _check_values(self) -> None:
    """Check values of the fields."""
    if self.lower <= 0:
      msg = "lower must be positive."
      raise ValueError(msg)
    if self.upper <= self.lower:
      msg = "upper must be greater than lower."
      raise ValueError(msg)
    if self.n_initial < 2:  # noqa: PLR2004
      msg = "n_initial must be at least 2."
      raise ValueError(msg)
    if self.n_rounds < 0:
      msg = "n_rounds must be non-negative."
      raise ValueError(msg)
    if self.pilot_samples < 2:  # noqa: PLR2004
      msg = "pilot_samples must be at least 2."
      raise ValueError(msg)
    if self.pilot_timeout is not None and self.pilot_timeout <= 0:
      msg = "pilot_timeout must be positive or None."
      raise ValueError(msg)
    if self.n_candidates < 2 or self.n_refine < 2:  # noqa: PLR2004
      msg = "n_candidates and n_refine must be at least 2."
      raise ValueError(msg)
    if self.xi < 0:
      msg = "xi must be non-negative."
      raise ValueError(msg)
    if self.nugget <= 0:
      msg = "nugget must be positive."
      raise ValueError(msg)

  def __post_init__(self) -> None:
    """Validate the tuner configuration."""
    self._validate_types()
    self._check_values()

  @property
  def budget(self) -> int:
    """Total number of objective evaluations."""
    return self.n_initial + self.n_rounds


@struct.dataclass
class DesignSet:
  """Evaluated inputs and their observed objective values.

  The set only grows: ``add`` returns a new, larger set.
  """

  inputs: Float[Array, "n"] = struct.field(default_factory=lambda: jnp.zeros((0,)))
  outputs: Float[Array, "n"] = struct.field(default_factory=lambda: jnp.zeros((0,)))

  def __len__(self) -> int:
    return int(self.inputs.shape[0])

  def add(self, x: float, y: float) -> DesignSet:
    """Return a copy of the set with ``(x, y)`` appended."""
    return self.replace(
      inputs=jnp.append(self.inputs, jnp.asarray(x, dtype=self.inputs.dtype)),
      outputs=jnp.append(self.outputs, jnp.asarray(y, dtype=self.outputs.dtype)),
    )

  def best(self) -> tuple[float, float]:
    """Return ``(input, output)`` of the lowest observed objective.

    Raises:
      ValueError: If the set is empty.

    """
    if len(self) == 0:
      msg = "Cannot select the best point of an empty design set."
      raise ValueError(msg)
    idx = int(jnp.argmin(self.outputs))
    return float(self.inputs[idx]), float(self.outputs[idx])


@struct.dataclass
class OptimizationResult:
  """Outcome of a bounded 1-D Bayesian optimization.

  Attributes:
    design_set: Every evaluated input and its objective value.
    best_so_far: Lowest observed objective after each evaluation.
    best_input: Input with the lowest observed objective.
    best_output: The lowest observed objective.
    cancelled: Whether the search stopped early on request.

  """

  design_set: DesignSet
  best_so_far: Float[Array, "n"]
  best_input: float = struct.field(pytree_node=False)
  best_output: float = struct.field(pytree_node=False)
  cancelled: bool = struct.field(pytree_node=False, default=False)


@struct.dataclass
class TunerOutput:
  """Outcome of tuning the RWMH step size and running the final chain."""

  step_size: jax.Array
  optimization: OptimizationResult
  output: SamplerOutput
