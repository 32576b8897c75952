"""Run the sampling strategies against one target and collect comparable metrics."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, NamedTuple

import jax

from mcmctune.models.comparison import ComparisonConfig, ComparisonResult, Method, MethodRun
from mcmctune.sampling.adaptive import run_adaptive_loop
from mcmctune.sampling.mcmc import run_rwmh_loop
from mcmctune.surrogate.tuner import pilot_objective, tune_step_size
from mcmctune.utils.key_management import split_key_by_name, task_key
from mcmctune.utils.metrics import effective_sample_size, summarize_ess

if TYPE_CHECKING:
  from collections.abc import Callable, Sequence

  from jaxtyping import PRNGKeyArray

  from mcmctune.models.sampler_base import SamplerOutput
  from mcmctune.models.tuner import TunerOutput
  from mcmctune.models.types import LogDensityFn, State

logger = logging.getLogger(__name__)


class ComparisonTask(NamedTuple):
  """One independently schedulable comparison."""

  log_density_fn: LogDensityFn
  target_name: str
  dim: int
  config: ComparisonConfig


def _run_rwmh(
  key: PRNGKeyArray,
  log_density_fn: LogDensityFn,
  initial_position: State,
  config: ComparisonConfig,
) -> tuple[SamplerOutput, None]:
  output = run_rwmh_loop(
    key,
    log_density_fn,
    config.num_samples,
    config.step_size,
    initial_position,
  )
  return output, None


def _run_adaptive(
  key: PRNGKeyArray,
  log_density_fn: LogDensityFn,
  initial_position: State,
  config: ComparisonConfig,
) -> tuple[SamplerOutput, None]:
  output = run_adaptive_loop(
    key,
    log_density_fn,
    config.num_samples,
    initial_position,
    config.adaptive,
  )
  return output, None


def _run_tuned(
  key: PRNGKeyArray,
  log_density_fn: LogDensityFn,
  initial_position: State,
  config: ComparisonConfig,
) -> tuple[SamplerOutput, TunerOutput]:
  tuning = tune_step_size(key, log_density_fn, config.num_samples, initial_position, config.tuner)
  return tuning.output, tuning


METHOD_RUNNERS: dict[
  Method,
  Callable[
    [PRNGKeyArray, LogDensityFn, State, ComparisonConfig],
    tuple[SamplerOutput, TunerOutput | None],
  ],
] = {
  Method.RWMH: _run_rwmh,
  Method.ADAPTIVE: _run_adaptive,
  Method.TUNED: _run_tuned,
}


def _warm_up_tuned(
  key: PRNGKeyArray,
  log_density_fn: LogDensityFn,
  initial_position: State,
  config: ComparisonConfig,
) -> tuple[SamplerOutput, None]:
  pilot_objective(
    key,
    log_density_fn,
    config.tuner.lower,
    config.tuner.pilot_samples,
    initial_position,
  )
  output = run_rwmh_loop(
    key,
    log_density_fn,
    config.num_samples,
    config.tuner.lower,
    initial_position,
  )
  return output, None


METHOD_WARMUPS: dict[
  Method,
  Callable[
    [PRNGKeyArray, LogDensityFn, State, ComparisonConfig],
    tuple[SamplerOutput, TunerOutput | None],
  ],
] = {
  Method.RWMH: _run_rwmh,
  Method.ADAPTIVE: _run_adaptive,
  Method.TUNED: _warm_up_tuned,
}
"""Untimed calls that compile the kernels each method executes, on the same shapes."""


def _validate_method(method: Method | str) -> Method:
  """Convert a method name to a Method member."""
  if isinstance(method, Method):
    return method
  try:
    return Method(method)
  except ValueError:
    msg = f"Unknown method: '{method}'. Available methods: {[m.value for m in Method]}."
    raise ValueError(msg) from None


def run_method(
  method: Method | str,
  key: PRNGKeyArray,
  log_density_fn: LogDensityFn,
  target_name: str,
  dim: int,
  config: ComparisonConfig,
) -> MethodRun:
  """Run one sampling strategy and compute its metrics.

  The wall-clock time covers producing the chain, including the step-size
  search for the tuned method, and excludes the ESS computation. The jitted
  samplers are compiled by an untimed warm-up call first, so the time does
  not depend on which method happened to compile a shared kernel.

  Args:
    method: Which strategy to run.
    key: PRNG key for this method only.
    log_density_fn: Target log-density.
    target_name: Human-readable target name.
    dim: Target dimension.
    config: Comparison configuration.

  Returns:
    MethodRun with the raw chain, the ESS vector and the ComparisonResult.

  """
  method = _validate_method(method)
  initial_position = config.initial_state(dim)
  logger.info("Starting run of method '%s' on target '%s'...", method.value, target_name)

  warm_up, _ = METHOD_WARMUPS[method](key, log_density_fn, initial_position, config)
  jax.block_until_ready(warm_up)

  start = time.perf_counter()
  output, tuning = METHOD_RUNNERS[method](key, log_density_fn, initial_position, config)
  jax.block_until_ready(output)
  wall_time = time.perf_counter() - start

  ess = effective_sample_size(output.chain)
  min_ess, mean_ess = summarize_ess(ess)
  result = ComparisonResult(
    method=method.value,
    target=target_name,
    acceptance_rate=float(output.acceptance_rate),
    min_ess=min_ess,
    mean_ess=mean_ess,
    ess_per_second=mean_ess / wall_time if wall_time > 0 else float("inf"),
    wall_time=wall_time,
    num_samples=output.num_samples,
  )
  logger.info(
    "Finished '%s' on '%s': acceptance=%.3f min_ess=%.1f mean_ess=%.1f ess/s=%.1f",
    result.method,
    result.target,
    result.acceptance_rate,
    result.min_ess,
    result.mean_ess,
    result.ess_per_second,
  )
  return MethodRun(method=method, result=result, output=output, ess=ess, tuning=tuning)


def run_comparison(
  log_density_fn: LogDensityFn,
  target_name: str,
  dim: int,
  config: ComparisonConfig | None = None,
) -> list[MethodRun]:
  """Run every configured method on one target, in order.

  Each method receives its own key split from ``config.prng_seed`` and starts
  from the same initial state.
  """
  config = config or ComparisonConfig()
  keys = split_key_by_name(task_key(config.prng_seed), config.methods)
  return [
    run_method(method, keys[method], log_density_fn, target_name, dim, config)
    for method in config.methods
  ]


def run_comparisons(
  tasks: Sequence[ComparisonTask],
  max_workers: int = 1,
) -> list[list[MethodRun]]:
  """Run independent comparison tasks on a thread pool.

  Tasks share nothing but their read-only target functions. Results are
  returned in task order. Wall-clock metrics of concurrently running tasks
  include contention between them.
  """
  if max_workers < 1:
    msg = "max_workers must be at least 1."
    raise ValueError(msg)
  if max_workers == 1:
    return [run_comparison(*task) for task in tasks]
  with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="comparison") as executor:
    futures = [executor.submit(run_comparison, *task) for task in tasks]
    return [future.result() for future in futures]
