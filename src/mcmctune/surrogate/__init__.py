"""Gaussian-process surrogate and the step-size tuner built on it."""

from .gp import GPModel, SurrogateFitError, fit_gp_model
from .opt import expected_improvement, maximize_acquisition, propose_next
from .tuner import (
  PILOT_CHUNK_SIZE,
  TIMEOUT_PENALTY,
  bayesian_optimize,
  evaluate_with_timeout,
  pilot_objective,
  tune_step_size,
)

__all__ = [
  "PILOT_CHUNK_SIZE",
  "TIMEOUT_PENALTY",
  "GPModel",
  "SurrogateFitError",
  "bayesian_optimize",
  "evaluate_with_timeout",
  "expected_improvement",
  "fit_gp_model",
  "maximize_acquisition",
  "pilot_objective",
  "propose_next",
  "tune_step_size",
]
