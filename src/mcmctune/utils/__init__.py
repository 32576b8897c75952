"""Utility functions for mcmctune."""

from .key_management import evaluation_key, split_key_by_name, task_key
from .metrics import MIN_ESS, effective_sample_size, summarize_ess

__all__ = [
  "MIN_ESS",
  "effective_sample_size",
  "evaluation_key",
  "split_key_by_name",
  "summarize_ess",
  "task_key",
]
