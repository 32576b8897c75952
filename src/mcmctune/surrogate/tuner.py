"""Surrogate-guided search for the random walk Metropolis step size."""

from __future__ import annotations

import itertools
import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from functools import partial
from typing import TYPE_CHECKING

import jax
import jax.numpy as jnp

from mcmctune.models.tuner import DesignSet, OptimizationResult, TunerConfig, TunerOutput
from mcmctune.sampling.mcmc import run_rwmh_loop
from mcmctune.surrogate.gp import SurrogateFitError, fit_gp_model
from mcmctune.surrogate.opt import propose_next
from mcmctune.utils.key_management import evaluation_key
from mcmctune.utils.metrics import MIN_ESS, effective_sample_size

if TYPE_CHECKING:
  from collections.abc import Callable

  from jaxtyping import PRNGKeyArray

  from mcmctune.models.types import LogDensityFn, ObjectiveFn, State

logger = logging.getLogger(__name__)

TIMEOUT_PENALTY = -MIN_ESS
"""Objective assigned to a pilot run that exceeds its time budget.

It equals the worst value a completed pilot can produce, since every
coordinate's ESS is at least ``MIN_ESS``.
"""
PILOT_CHUNK_SIZE = 250
"""Transitions a pilot runs between checks of its stop event."""


def pilot_objective(
  key: PRNGKeyArray,
  log_density_fn: LogDensityFn,
  step_size: float,
  num_samples: int,
  initial_position: State,
  stop_event: threading.Event | None = None,
  chunk_size: int = PILOT_CHUNK_SIZE,
) -> float:
  """Negative mean ESS of a short RWMH chain. Lower is better.

  Non-positive step sizes are not an error: they map to ``+inf``. The chain
  is produced in chunks of at most ``chunk_size`` transitions, each with its
  own key folded in from ``key``. When ``stop_event`` is set the pilot stops
  at the next chunk boundary and returns ``TIMEOUT_PENALTY``.
  """
  if step_size <= 0:
    return math.inf
  position = jnp.asarray(initial_position, dtype=jnp.float32)
  rows = [position[None, :]]
  num_steps = num_samples - 1
  for chunk, start in enumerate(range(0, num_steps, chunk_size)):
    if stop_event is not None and stop_event.is_set():
      return TIMEOUT_PENALTY
    steps = min(chunk_size, num_steps - start)
    output = run_rwmh_loop(
      jax.random.fold_in(key, chunk),
      log_density_fn,
      steps + 1,
      step_size,
      position,
    )
    position = output.chain[-1].block_until_ready()
    rows.append(output.chain[1:])
  return -float(jnp.mean(effective_sample_size(jnp.concatenate(rows, axis=0))))


def evaluate_with_timeout(
  fn: Callable[[threading.Event], float],
  timeout: float | None,
  executor: ThreadPoolExecutor | None = None,
) -> float:
  """Run one objective evaluation with a wall-clock budget.

  ``fn`` receives a stop event. The evaluation runs on a worker of
  ``executor`` (a private single-worker pool if None). If it does not finish
  within ``timeout`` seconds, the event is set, ``TIMEOUT_PENALTY`` is
  returned and a warning is logged. Abandoned work is not left running:
  the call waits until ``fn`` returns, so ``fn`` must stop promptly once the
  event is set. Exceptions raised by ``fn`` within the budget propagate.
  """
  stop_event = threading.Event()
  if timeout is None:
    return fn(stop_event)
  owned = executor is None
  if executor is None:
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pilot")
  future = executor.submit(fn, stop_event)
  try:
    return future.result(timeout=timeout)
  except TimeoutError:
    stop_event.set()
    logger.warning(
      "Pilot evaluation exceeded %.3g s; penalizing with %s.",
      timeout,
      TIMEOUT_PENALTY,
    )
    wait([future])
    return TIMEOUT_PENALTY
  finally:
    if owned:
      executor.shutdown(wait=True)


def bayesian_optimize(
  objective_fn: ObjectiveFn,
  config: TunerConfig,
  cancel_event: threading.Event | None = None,
) -> OptimizationResult:
  """Minimize a scalar black-box objective over ``[config.lower, config.upper]``.

  Evaluates ``config.n_initial`` evenly spaced inputs, then runs
  ``config.n_rounds`` rounds of: fit the surrogate to every observation so
  far, maximize Expected Improvement inside the domain, evaluate there.
  The search is deterministic given a deterministic objective.

  Args:
    objective_fn: Objective to minimize. Called only with inputs inside the
      domain.
    config: Domain, budget and acquisition settings.
    cancel_event: Optional event, checked between rounds only. When set, the
      search stops and reports the best point found so far.

  Returns:
    OptimizationResult whose best input has the lowest observed objective
    over the whole design set.

  Raises:
    SurrogateFitError: If the surrogate cannot be fitted. The search is
      aborted.

  """
  design = DesignSet()
  best_so_far: list[float] = []

  def observe(x: float) -> None:
    nonlocal design
    y = float(objective_fn(x))
    design = design.add(x, y)
    best_so_far.append(min(y, best_so_far[-1]) if best_so_far else y)
    logger.debug("Evaluated x=%.5f objective=%.4f (best %.4f)", x, y, best_so_far[-1])

  for x in jnp.linspace(config.lower, config.upper, config.n_initial):
    observe(min(max(float(x), config.lower), config.upper))

  cancelled = False
  for round_idx in range(config.n_rounds):
    if cancel_event is not None and cancel_event.is_set():
      logger.info("Search cancelled after %d of %d rounds.", round_idx, config.n_rounds)
      cancelled = True
      break
    model = fit_gp_model(design.inputs, design.outputs, config.lower, config.upper, config.nugget)
    _, best_output = design.best()
    observe(propose_next(model, best_output, config))

  best_input, best_output = design.best()
  return OptimizationResult(
    design_set=design,
    best_so_far=jnp.asarray(best_so_far),
    best_input=min(max(best_input, config.lower), config.upper),
    best_output=best_output,
    cancelled=cancelled,
  )


def tune_step_size(
  key: PRNGKeyArray,
  log_density_fn: LogDensityFn,
  num_samples: int,
  initial_position: State,
  config: TunerConfig | None = None,
  cancel_event: threading.Event | None = None,
) -> TunerOutput:
  """Search for a good RWMH step size, then run the full chain with it.

  Every pilot run gets its own key, folded in from the evaluation index.
  Pilots run on one worker thread owned by this call; a timed-out pilot is
  stopped at its next chunk boundary and the worker is joined before the
  function returns.
  A chain without accepted moves at the chosen step size is reported as is.

  Args:
    key: JAX PRNG key for the whole tuning task.
    log_density_fn: Target log-density.
    num_samples: Length of the final chain.
    initial_position: Initial state of every pilot and of the final chain.
    config: Search configuration. Defaults to ``TunerConfig()``.
    cancel_event: Optional event checked between search rounds.

  Returns:
    TunerOutput with the chosen step size, the search record and the final
    chain.

  Raises:
    SurrogateFitError: If the surrogate cannot be fitted.

  """
  config = config or TunerConfig()
  search_key, final_key = jax.random.split(key)
  evaluations = itertools.count()

  def objective(step_size: float) -> float:
    pilot = partial(
      pilot_objective,
      evaluation_key(search_key, next(evaluations)),
      log_density_fn,
      step_size,
      config.pilot_samples,
      initial_position,
    )
    return evaluate_with_timeout(pilot, config.pilot_timeout, executor)

  with ThreadPoolExecutor(max_workers=1, thread_name_prefix="pilot") as executor:
    try:
      optimization = bayesian_optimize(objective, config, cancel_event)
    except SurrogateFitError:
      logger.exception("Surrogate fit failed; aborting step-size tuning.")
      raise

  step_size = optimization.best_input
  logger.info(
    "Selected step size %.4f (objective %.3f) after %d evaluations.",
    step_size,
    optimization.best_output,
    len(optimization.design_set),
  )
  output = run_rwmh_loop(final_key, log_density_fn, num_samples, step_size, initial_position)
  if output.num_accepted == 0:
    logger.warning("Final chain at step size %.4f accepted no proposals.", step_size)
  return TunerOutput(
    step_size=jnp.asarray(step_size),
    optimization=optimization,
    output=output,
  )
