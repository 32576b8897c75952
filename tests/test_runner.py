"""Tests for running the sampling strategies and collecting metrics."""

from __future__ import annotations

import threading

import jax
import jax.numpy as jnp
import pytest

from mcmctune.models import ComparisonConfig, Method
from mcmctune.runner import ComparisonTask, run_comparison, run_comparisons, run_method
from mcmctune.targets import banana


class TestRunMethod:
  """Test the run_method function."""

  @pytest.mark.parametrize("method", ["rwmh", Method.ADAPTIVE])
  def test_run_single_method(
    self,
    rng_key,
    banana_2d,
    small_comparison_config: ComparisonConfig,
    method: str | Method,
  ) -> None:
    run = run_method(method, rng_key, banana_2d, "banana", 2, small_comparison_config)
    result = run.result
    assert result.method == Method(method).value
    assert result.target == "banana"
    assert 0.0 <= result.acceptance_rate <= 1.0
    assert 1.0 <= result.min_ess <= result.mean_ess <= small_comparison_config.num_samples
    assert result.wall_time > 0
    assert result.ess_per_second == pytest.approx(result.mean_ess / result.wall_time)
    assert run.tuning is None
    assert run.output.chain.shape == (small_comparison_config.num_samples, 2)

  def test_wall_time_excludes_compilation(self) -> None:
    """Repeated identical runs report comparable times on a freshly built target.

    Args:
        None

    Returns:
        None

    Raises:
        AssertionError: If the first run is charged for compiling the sampler.

    """
    target = banana(2)
    config = ComparisonConfig(num_samples=20_000, methods=(Method.RWMH,))
    key = jax.random.PRNGKey(0)
    first = run_method(Method.RWMH, key, target, "banana", 2, config)
    second = run_method(Method.RWMH, key, target, "banana", 2, config)
    assert jnp.array_equal(first.output.chain, second.output.chain)
    ratio = first.result.wall_time / second.result.wall_time
    assert 0.2 < ratio < 5.0

  def test_unknown_method(self, rng_key, banana_2d, small_comparison_config) -> None:
    with pytest.raises(ValueError, match="Unknown method"):
      run_method("hmc", rng_key, banana_2d, "banana", 2, small_comparison_config)

  def test_wrong_initial_dimension(self, rng_key, banana_2d) -> None:
    config = ComparisonConfig(num_samples=50, initial_position=(0.0, 0.0, 0.0))
    with pytest.raises(ValueError):
      run_method(Method.RWMH, rng_key, banana_2d, "banana", 2, config)


class TestRunComparison:
  """Test the run_comparison function."""

  def test_three_results_in_order(self, banana_2d, small_comparison_config) -> None:
    runs = run_comparison(banana_2d, "banana", 2, small_comparison_config)
    assert [run.method for run in runs] == [Method.RWMH, Method.ADAPTIVE, Method.TUNED]
    tuned = runs[-1]
    assert tuned.tuning is not None
    tuner = small_comparison_config.tuner
    assert tuner.lower <= float(tuned.tuning.step_size) <= tuner.upper
    for run in runs:
      assert jnp.array_equal(run.output.chain[0], jnp.zeros(2))

  def test_methods_use_independent_keys(self, standard_normal) -> None:
    """Two methods with identical settings still draw different chains."""
    config = ComparisonConfig(num_samples=100, methods=(Method.RWMH, Method.ADAPTIVE))
    rwmh, adaptive = run_comparison(standard_normal, "normal", 2, config)
    assert not jnp.array_equal(rwmh.output.chain, adaptive.output.chain)

  def test_reproducible_from_seed(self, standard_normal) -> None:
    config = ComparisonConfig(prng_seed=3, num_samples=100, methods=(Method.RWMH,))
    first = run_comparison(standard_normal, "normal", 2, config)
    second = run_comparison(standard_normal, "normal", 2, config)
    assert jnp.array_equal(first[0].output.chain, second[0].output.chain)


class TestRunComparisons:
  """Test the run_comparisons function."""

  def test_parallel_matches_sequential(self, standard_normal, banana_2d) -> None:
    """Concurrent tasks give the same chains as sequential ones, in task order."""
    config = ComparisonConfig(num_samples=200, methods=(Method.RWMH, Method.ADAPTIVE))
    tasks = [
      ComparisonTask(standard_normal, "normal", 2, config),
      ComparisonTask(banana_2d, "banana", 2, config),
    ]
    sequential = run_comparisons(tasks, max_workers=1)
    parallel = run_comparisons(tasks, max_workers=2)
    assert [runs[0].result.target for runs in parallel] == ["normal", "banana"]
    for seq_runs, par_runs in zip(sequential, parallel, strict=True):
      for seq, par in zip(seq_runs, par_runs, strict=True):
        assert jnp.array_equal(seq.output.chain, par.output.chain)

  def test_invalid_worker_count(self) -> None:
    with pytest.raises(ValueError):
      run_comparisons([], max_workers=0)

  def test_worker_threads_are_used(self, standard_normal) -> None:
    seen: set[str] = set()

    def recording(x: jax.Array) -> jax.Array:
      seen.add(threading.current_thread().name)
      return standard_normal(x)

    config = ComparisonConfig(num_samples=20, methods=(Method.RWMH,))
    run_comparisons([ComparisonTask(recording, "normal", 2, config)], max_workers=2)
    assert any(name.startswith("comparison") for name in seen)
