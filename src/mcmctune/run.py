"""Command-line driver: compare the samplers on a set of targets."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from mcmctune.io import create_metadata_file, write_results
from mcmctune.models import AdaptiveConfig, ComparisonConfig, Method, TunerConfig
from mcmctune.runner import ComparisonTask, run_comparisons
from mcmctune.targets import TARGETS, get_target

if TYPE_CHECKING:
  from collections.abc import Sequence

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
  """Build the argument parser."""
  parser = argparse.ArgumentParser(description="Compare RWMH, adaptive and tuned samplers.")
  parser.add_argument(
    "--targets",
    nargs="+",
    default=list(TARGETS),
    choices=list(TARGETS),
    help="Targets to sample.",
  )
  parser.add_argument("--dim", type=int, default=2, help="Target dimension.")
  parser.add_argument("--num-samples", type=int, default=10_000, help="Chain length.")
  parser.add_argument("--step-size", type=float, default=1.0, help="Fixed RWMH step size.")
  parser.add_argument("--seed", type=int, default=42, help="RNG seed of the first task.")
  parser.add_argument(
    "--methods",
    nargs="+",
    default=[m.value for m in Method],
    choices=[m.value for m in Method],
    help="Methods to run, in order.",
  )
  parser.add_argument(
    "--initial-position",
    type=float,
    nargs="+",
    default=None,
    help="Initial state shared by all chains (default: the origin).",
  )
  parser.add_argument("--burnin", type=int, default=100, help="Adaptive sampler burn-in.")
  parser.add_argument("--tune-lower", type=float, default=0.1, help="Smallest tuned step size.")
  parser.add_argument("--tune-upper", type=float, default=5.0, help="Largest tuned step size.")
  parser.add_argument("--tune-rounds", type=int, default=30, help="Acquisition rounds.")
  parser.add_argument("--pilot-samples", type=int, default=1_000, help="Pilot chain length.")
  parser.add_argument(
    "--pilot-timeout",
    type=float,
    default=120.0,
    help="Seconds allowed per pilot run.",
  )
  parser.add_argument("--max-workers", type=int, default=1, help="Targets run concurrently.")
  parser.add_argument(
    "--output_dir",
    "--output-dir",
    type=str,
    default="results",
    help="Directory for saving results.",
  )
  parser.add_argument(
    "--results-file",
    type=str,
    default="results.csv",
    help="File name of the results table (.csv, .parquet or .json).",
  )
  parser.add_argument(
    "--log-level",
    type=str,
    default="INFO",
    choices=["DEBUG", "INFO", "WARNING", "ERROR"],
  )
  return parser


def config_from_args(args: argparse.Namespace, seed: int) -> ComparisonConfig:
  """Map parsed arguments onto a ComparisonConfig."""
  return ComparisonConfig(
    prng_seed=seed,
    num_samples=args.num_samples,
    initial_position=tuple(args.initial_position) if args.initial_position else None,
    step_size=args.step_size,
    adaptive=AdaptiveConfig(burnin=args.burnin),
    tuner=TunerConfig(
      lower=args.tune_lower,
      upper=args.tune_upper,
      n_rounds=args.tune_rounds,
      pilot_samples=args.pilot_samples,
      pilot_timeout=args.pilot_timeout,
    ),
    methods=tuple(Method(m) for m in args.methods),
  )


def main(argv: Sequence[str] | None = None) -> None:
  """Run the comparison on every requested target."""
  args = build_parser().parse_args(argv)
  output_dir = Path(args.output_dir)
  output_dir.mkdir(parents=True, exist_ok=True)

  logging.basicConfig(
    level=getattr(logging, args.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.FileHandler(output_dir / "comparison.log"), logging.StreamHandler()],
  )

  tasks = [
    ComparisonTask(
      log_density_fn=get_target(name, args.dim),
      target_name=name,
      dim=args.dim,
      config=config_from_args(args, seed=args.seed + offset),
    )
    for offset, name in enumerate(args.targets)
  ]
  create_metadata_file(
    tasks[0].config,
    output_dir,
    targets=args.targets,
    dim=args.dim,
    seeds=[task.config.prng_seed for task in tasks],
  )

  logger.info("--- Starting comparison on %d target(s) ---", len(tasks))
  runs = [run for comparison in run_comparisons(tasks, args.max_workers) for run in comparison]
  for run in runs:
    logger.info("Result: %r", run.result)
  write_results(runs, output_dir / args.results_file)
  logger.info("--- Comparison completed ---")


if __name__ == "__main__":
  main()
