"""Configuration and output models for mcmctune."""

from .adaptive import AdaptiveConfig
from .comparison import ComparisonConfig, ComparisonResult, Method, MethodRun
from .mcmc import RWMHConfig
from .sampler_base import BaseSamplerConfig, SamplerOutput
from .tuner import DesignSet, OptimizationResult, TunerConfig, TunerOutput
from .types import Chain, EssVector, LogDensityFn, State

__all__ = [
  "AdaptiveConfig",
  "BaseSamplerConfig",
  "Chain",
  "ComparisonConfig",
  "ComparisonResult",
  "DesignSet",
  "EssVector",
  "LogDensityFn",
  "Method",
  "MethodRun",
  "OptimizationResult",
  "RWMHConfig",
  "SamplerOutput",
  "State",
  "TunerConfig",
  "TunerOutput",
]
