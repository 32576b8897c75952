"""Data structures for the covariance-adaptive Metropolis sampler."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_BURNIN = 100
DEFAULT_INITIAL_VARIANCE = 0.1
DEFAULT_REGULARIZER = 1e-6
OPTIMAL_SCALING = 2.38**2


@dataclass(frozen=True)
class AdaptiveConfig:
  """Configuration for the adaptive Metropolis sampler.

  Up to and including iteration ``burnin`` the proposal covariance is
  ``initial_variance * I``. Past it, the covariance is
  ``(OPTIMAL_SCALING / dim) * (cov(history) + regularizer * I)``.
  """

  burnin: int = field(default=DEFAULT_BURNIN)
  initial_variance: float = field(default=DEFAULT_INITIAL_VARIANCE)
  regularizer: float = field(default=DEFAULT_REGULARIZER)

  def __post_init__(self) -> None:
    """Validate the adaptive configuration."""
    if not isinstance(self.burnin, int):
      msg = "burnin must be an integer."
      raise TypeError(msg)
    if self.burnin < 1:
      msg = "burnin must be at least 1."
      raise ValueError(msg)
    if self.initial_variance <= 0:
      msg = "initial_variance must be positive."
      raise ValueError(msg)
    if self.regularizer <= 0:
      msg = "regularizer must be positive."
      raise ValueError(msg)

  def scaling(self, dim: int) -> float:
    """Return the covariance scaling ``2.38**2 / dim``."""
    return OPTIMAL_SCALING / dim
