"""Data structures for the random-walk Metropolis sampler."""

from __future__ import annotations

from dataclasses import dataclass

from mcmctune.models.sampler_base import BaseSamplerConfig

DEFAULT_STEP_SIZE = 1.0


@dataclass(frozen=True)
class RWMHConfig(BaseSamplerConfig):
  """Configuration for the fixed-step Random Walk Metropolis sampler.

  Attributes:
      step_size: The standard deviation of the isotropic Gaussian proposal.

  """

  step_size: float = DEFAULT_STEP_SIZE

  def _check_values(self) -> None:
    super()._check_values()
    if self.step_size <= 0:
      msg = "step_size must be positive."
      raise ValueError(msg)
