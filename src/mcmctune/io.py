"""Export of comparison results and run metadata."""

from __future__ import annotations

import enum
import json
import logging
import shutil
import subprocess
from dataclasses import fields, is_dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import polars as pl

from mcmctune.models.comparison import ComparisonResult, MethodRun

if TYPE_CHECKING:
  from collections.abc import Iterable

logger = logging.getLogger(__name__)

RESULT_SCHEMA = {
  "method": pl.Utf8,
  "target": pl.Utf8,
  "acceptance_rate": pl.Float64,
  "min_ess": pl.Float64,
  "mean_ess": pl.Float64,
  "ess_per_second": pl.Float64,
  "wall_time": pl.Float64,
  "num_samples": pl.Int64,
}


def get_git_commit_hash() -> str | None:
  """Get the current git commit hash if available.

  Returns:
      Git commit hash as a string, or None if not in a git repository.

  """
  git_executable = shutil.which("git")
  if git_executable is None:
    return None

  try:
    result = subprocess.run(  # noqa: S603
      [git_executable, "rev-parse", "HEAD"],
      capture_output=True,
      text=True,
      check=True,
      timeout=5,
    )
    return result.stdout.strip()
  except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
    return None


def _to_jsonable(value: Any) -> Any:  # noqa: ANN401
  """Recursively convert configuration values to JSON-friendly objects."""
  if isinstance(value, enum.Enum):
    return value.value
  if is_dataclass(value) and not isinstance(value, type):
    return {f.name: _to_jsonable(getattr(value, f.name)) for f in fields(value)}
  if isinstance(value, (list, tuple)):
    return [_to_jsonable(item) for item in value]
  if isinstance(value, dict):
    return {str(k): _to_jsonable(v) for k, v in value.items()}
  return value


def create_metadata_file(config: object, output_path: Path, **extra: Any) -> Path:  # noqa: ANN401
  """Write a metadata JSON file with the run configuration and git info.

  Args:
      config: The comparison configuration object.
      output_path: Directory where ``metadata.json`` is written.
      **extra: Additional top-level entries, such as the target names.

  Returns:
      Path of the written file.

  """
  metadata = {
    "timestamp": datetime.now(tz=UTC).isoformat(),
    "git_commit_hash": get_git_commit_hash(),
    "config": _to_jsonable(config),
    **{key: _to_jsonable(value) for key, value in extra.items()},
  }
  metadata_path = output_path / "metadata.json"
  with metadata_path.open("w") as f:
    json.dump(metadata, f, indent=2, default=str)
  return metadata_path


def results_to_frame(results: Iterable[ComparisonResult | MethodRun]) -> pl.DataFrame:
  """Collect comparison results into one row per (method, target) pair."""
  rows = [(item.result if isinstance(item, MethodRun) else item).as_row() for item in results]
  return pl.DataFrame(rows, schema=RESULT_SCHEMA)


def write_results(results: Iterable[ComparisonResult | MethodRun], path: str | Path) -> Path:
  """Write comparison results to CSV, Parquet or JSON, chosen by the file suffix.

  Raises:
      ValueError: If the suffix is not ``.csv``, ``.parquet`` or ``.json``.

  """
  path = Path(path)
  frame = results_to_frame(results)
  suffix = path.suffix.lower()
  if suffix == ".csv":
    frame.write_csv(path)
  elif suffix == ".parquet":
    frame.write_parquet(path)
  elif suffix == ".json":
    frame.write_json(path)
  else:
    msg = f"Unsupported results format '{suffix}'. Use .csv, .parquet or .json."
    raise ValueError(msg)
  logger.info("Wrote %d result rows to %s", frame.height, path)
  return path
