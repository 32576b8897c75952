"""Package for mcmctune."""

from . import io, models, runner, sampling, surrogate, targets, utils

__all__ = [
  "io",
  "models",
  "runner",
  "sampling",
  "surrogate",
  "targets",
  "utils",
]
