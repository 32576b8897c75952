"""Metropolis samplers."""

from .adaptive import adaptive_proposal_covariance, run_adaptive_loop
from .mcmc import metropolis_accept, run_rwmh_loop

__all__ = [
  "adaptive_proposal_covariance",
  "metropolis_accept",
  "run_adaptive_loop",
  "run_rwmh_loop",
]
