"""Data structures for comparing sampling strategies on one target."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from mcmctune.models.adaptive import AdaptiveConfig
from mcmctune.models.mcmc import RWMHConfig
from mcmctune.models.tuner import TunerConfig

if TYPE_CHECKING:
  from mcmctune.models.sampler_base import SamplerOutput
  from mcmctune.models.tuner import TunerOutput
  from mcmctune.models.types import EssVector

RESULT_COLUMNS = (
  "method",
  "target",
  "acceptance_rate",
  "min_ess",
  "mean_ess",
  "ess_per_second",
)


class Method(enum.Enum):
  """The closed set of sampling strategies under comparison."""

  RWMH = "rwmh"
  ADAPTIVE = "adaptive"
  TUNED = "tuned"


@dataclass(frozen=True)
class ComparisonConfig(RWMHConfig):
  """Configuration for one comparison task.

  ``num_samples``, ``prng_seed`` and ``initial_position`` are shared by all
  three methods. ``step_size`` is the fixed step of the plain RWMH run.
  """

  adaptive: AdaptiveConfig = field(default_factory=AdaptiveConfig)
  tuner: TunerConfig = field(default_factory=TunerConfig)
  methods: tuple[Method, ...] = field(default=(Method.RWMH, Method.ADAPTIVE, Method.TUNED))

  def _validate_types(self) -> None:
    super()._validate_types()
    if not isinstance(self.adaptive, AdaptiveConfig):
      msg = "adaptive must be an AdaptiveConfig instance."
      raise TypeError(msg)
    if not isinstance(self.tuner, TunerConfig):
      msg = "tuner must be a TunerConfig instance."
      raise TypeError(msg)
    if not all(isinstance(method, Method) for method in self.methods):
      msg = "methods must only contain Method members."
      raise TypeError(msg)

  def _check_values(self) -> None:
    super()._check_values()
    if not self.methods:
      msg = "methods must not be empty."
      raise ValueError(msg)
    if len(set(self.methods)) != len(self.methods):
      msg = "methods must not contain duplicates."
      raise ValueError(msg)


@dataclass(frozen=True)
class ComparisonResult:
  """Metrics of one (method, target) pair.

  Attributes:
    method: Name of the sampling strategy.
    target: Human-readable name of the target density.
    acceptance_rate: Accepted proposals divided by chain length.
    min_ess: Smallest per-coordinate effective sample size.
    mean_ess: Average per-coordinate effective sample size.
    ess_per_second: ``mean_ess`` divided by the wall-clock time spent
      producing the chain.
    wall_time: Seconds spent producing the chain, excluding compilation. For
      the tuned method this includes the step-size search.
    num_samples: Chain length.

  """

  method: str
  target: str
  acceptance_rate: float
  min_ess: float
  mean_ess: float
  ess_per_second: float
  wall_time: float
  num_samples: int

  def as_row(self) -> dict[str, Any]:
    """Return the result as a flat dictionary."""
    return asdict(self)


@dataclass(frozen=True)
class MethodRun:
  """Everything a diagnostics consumer needs for one (method, target) pair."""

  method: Method
  result: ComparisonResult
  output: SamplerOutput
  ess: EssVector
  tuning: TunerOutput | None = None
