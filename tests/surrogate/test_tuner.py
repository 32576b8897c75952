"""Tests for the surrogate-guided step-size tuner."""

from __future__ import annotations

import logging
import math
import threading
import time

import jax
import jax.numpy as jnp
import pytest

from mcmctune.models import TunerConfig
from mcmctune.surrogate.gp import SurrogateFitError
from mcmctune.surrogate.tuner import (
  TIMEOUT_PENALTY,
  bayesian_optimize,
  evaluate_with_timeout,
  pilot_objective,
  tune_step_size,
)
from mcmctune.utils.metrics import MIN_ESS


def _quadratic(x: float) -> float:
  return (x - 2.0) ** 2


def _pilot_threads() -> list[str]:
  return [t.name for t in threading.enumerate() if t.name.startswith("pilot")]


class TestPilotObjective:
  """Test the pilot_objective function."""

  @pytest.mark.parametrize("step_size", [0.0, -1.0])
  def test_non_positive_step_is_infinite(self, rng_key, standard_normal, step_size: float) -> None:
    assert pilot_objective(rng_key, standard_normal, step_size, 100, jnp.zeros(2)) == math.inf

  def test_negative_mean_ess(self, rng_key, standard_normal) -> None:
    """The objective lies in [-num_samples, -MIN_ESS]."""
    value = pilot_objective(rng_key, standard_normal, 1.0, 300, jnp.zeros(2))
    assert -300 <= value <= -MIN_ESS

  def test_chunked_chain_has_full_length(self, rng_key, standard_normal) -> None:
    """Chunk boundaries do not change how many samples the ESS is computed on."""
    value = pilot_objective(rng_key, standard_normal, 1.0, 301, jnp.zeros(2), chunk_size=7)
    assert -301 <= value <= -MIN_ESS

  def test_set_stop_event_ends_pilot(self, rng_key, standard_normal) -> None:
    stop = threading.Event()
    stop.set()
    value = pilot_objective(rng_key, standard_normal, 1.0, 100_000, jnp.zeros(2), stop)
    assert value == TIMEOUT_PENALTY


class TestEvaluateWithTimeout:
  """Test the evaluate_with_timeout function."""

  def test_returns_value_within_budget(self) -> None:
    assert evaluate_with_timeout(lambda _stop: 3.5, 5.0) == 3.5
    assert evaluate_with_timeout(lambda _stop: 3.5, None) == 3.5

  def test_timeout_returns_penalty(self, caplog: pytest.LogCaptureFixture) -> None:
    """A slow evaluation is stopped, penalized with a warning and not left running."""
    stopped = []

    def slow(stop: threading.Event) -> float:
      deadline = time.perf_counter() + 5.0
      while not stop.is_set() and time.perf_counter() < deadline:
        time.sleep(0.01)
      stopped.append(stop.is_set())
      return -100.0

    start = time.perf_counter()
    with caplog.at_level(logging.WARNING, logger="mcmctune.surrogate.tuner"):
      for _ in range(3):
        assert evaluate_with_timeout(slow, 1e-2) == TIMEOUT_PENALTY
    assert time.perf_counter() - start < 4.0
    assert stopped == [True, True, True]
    assert any("exceeded" in record.message for record in caplog.records)
    assert not _pilot_threads()

  def test_errors_propagate(self) -> None:
    def failing(_stop: threading.Event) -> float:
      msg = "boom"
      raise RuntimeError(msg)

    with pytest.raises(RuntimeError, match="boom"):
      evaluate_with_timeout(failing, 5.0)


class TestBayesianOptimize:
  """Test the bayesian_optimize function."""

  def test_design_and_best_so_far(self, small_tuner_config: TunerConfig) -> None:
    """Every evaluation is recorded and best-so-far never increases."""
    result = bayesian_optimize(_quadratic, small_tuner_config)
    assert len(result.design_set) == small_tuner_config.budget
    assert result.best_so_far.shape == (small_tuner_config.budget,)
    assert bool(jnp.all(jnp.diff(result.best_so_far) <= 0))
    assert result.best_output == pytest.approx(float(jnp.min(result.design_set.outputs)))
    assert not result.cancelled

  def test_initial_design_is_evenly_spaced(self, small_tuner_config: TunerConfig) -> None:
    result = bayesian_optimize(_quadratic, small_tuner_config)
    initial = result.design_set.inputs[: small_tuner_config.n_initial]
    expected = jnp.linspace(small_tuner_config.lower, small_tuner_config.upper, 3)
    assert jnp.allclose(initial, expected)

  def test_all_inputs_in_domain(self) -> None:
    config = TunerConfig(n_initial=4, n_rounds=6, n_candidates=64, n_refine=16)
    result = bayesian_optimize(lambda x: -x, config)
    assert bool(jnp.all(result.design_set.inputs >= config.lower - 1e-6))
    assert bool(jnp.all(result.design_set.inputs <= config.upper + 1e-6))
    assert config.lower <= result.best_input <= config.upper

  def test_converges_on_smooth_objective(self) -> None:
    config = TunerConfig(n_initial=5, n_rounds=10, n_candidates=128, n_refine=32)
    result = bayesian_optimize(_quadratic, config)
    assert result.best_input == pytest.approx(2.0, abs=0.25)

  def test_larger_budget_never_worse(self) -> None:
    """The search is deterministic, so more rounds extend the same design."""
    short = bayesian_optimize(_quadratic, TunerConfig(n_rounds=5, n_candidates=64, n_refine=16))
    long = bayesian_optimize(_quadratic, TunerConfig(n_rounds=10, n_candidates=64, n_refine=16))
    assert long.best_output <= short.best_output
    assert jnp.allclose(long.design_set.inputs[:10], short.design_set.inputs)

  def test_cancellation_stops_between_rounds(self, small_tuner_config: TunerConfig) -> None:
    """A set event stops the search after the initial design."""
    event = threading.Event()
    event.set()
    result = bayesian_optimize(_quadratic, small_tuner_config, cancel_event=event)
    assert result.cancelled
    assert len(result.design_set) == small_tuner_config.n_initial

  def test_surrogate_failure_aborts(self, small_tuner_config: TunerConfig) -> None:
    """Non-finite observations make the surrogate fit fail."""
    with pytest.raises(SurrogateFitError):
      bayesian_optimize(lambda _x: math.nan, small_tuner_config)


class TestTuneStepSize:
  """Test the tune_step_size function."""

  def test_tuned_step_in_domain(self, rng_key, banana_2d, small_tuner_config: TunerConfig) -> None:
    out = tune_step_size(rng_key, banana_2d, 400, jnp.zeros(2), small_tuner_config)
    step_size = float(out.step_size)
    assert small_tuner_config.lower <= step_size <= small_tuner_config.upper
    assert 0.0 <= float(out.output.acceptance_rate) <= 1.0
    assert out.output.chain.shape == (400, 2)
    assert len(out.optimization.design_set) == small_tuner_config.budget

  def test_reproducible(self, standard_normal, small_tuner_config: TunerConfig) -> None:
    key = jax.random.PRNGKey(1)
    first = tune_step_size(key, standard_normal, 200, jnp.zeros(2), small_tuner_config)
    second = tune_step_size(key, standard_normal, 200, jnp.zeros(2), small_tuner_config)
    assert float(first.step_size) == float(second.step_size)
    assert jnp.array_equal(first.output.chain, second.output.chain)

  def test_all_pilots_timed_out(self, rng_key, standard_normal) -> None:
    """When every pilot times out the search still picks a step and joins its worker."""
    config = TunerConfig(
      n_initial=3,
      n_rounds=1,
      pilot_samples=50_000,
      pilot_timeout=1e-9,
      n_candidates=16,
      n_refine=8,
    )
    out = tune_step_size(rng_key, standard_normal, 100, jnp.zeros(2), config)
    assert bool(jnp.all(out.optimization.design_set.outputs == TIMEOUT_PENALTY))
    assert config.lower <= float(out.step_size) <= config.upper
    assert not _pilot_threads()

  def test_banana_scenario_budget_30(self, banana_2d) -> None:
    """Thirty evaluations over [0.1, 5] on the banana pick a step inside the domain."""
    config = TunerConfig(n_initial=5, n_rounds=25, pilot_samples=1_000, pilot_timeout=None)
    out = tune_step_size(jax.random.PRNGKey(2024), banana_2d, 2_000, jnp.zeros(2), config)
    assert len(out.optimization.design_set) == 30
    assert 0.1 <= float(out.step_size) <= 5.0
    assert 0.0 <= float(out.output.acceptance_rate) <= 1.0
    assert bool(jnp.all(jnp.diff(out.optimization.best_so_far) <= 0))
