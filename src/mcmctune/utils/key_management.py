"""Utilities for deriving explicit PRNG keys for tasks, methods and pilot runs.

Every random computation receives its own key derived from a per-task seed,
so concurrent tasks never share a random stream and any run can be replayed
from its seed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

import jax

if TYPE_CHECKING:
  from collections.abc import Sequence

  from jaxtyping import PRNGKeyArray

T = TypeVar("T")


def task_key(seed: int) -> PRNGKeyArray:
  """Create the root key of one comparison task."""
  return jax.random.PRNGKey(seed)


def split_key_by_name(key: PRNGKeyArray, names: Sequence[T]) -> dict[T, PRNGKeyArray]:
  """Split a key into one independent child key per name.

  The mapping depends only on the parent key and the order of ``names``.

  Args:
    key: Parent PRNG key.
    names: Hashable labels, for example sampling methods.

  Returns:
    Dictionary from each label to its own key.

  Raises:
    ValueError: If ``names`` is empty or contains duplicates.

  Example:
    >>> keys = split_key_by_name(jax.random.PRNGKey(0), ["a", "b"])
    >>> sorted(keys)
    ['a', 'b']

  """
  if not names:
    msg = "names must not be empty."
    raise ValueError(msg)
  if len(set(names)) != len(names):
    msg = f"names must be unique, got {list(names)}."
    raise ValueError(msg)
  children = jax.random.split(key, len(names))
  return dict(zip(names, children, strict=True))


def evaluation_key(key: PRNGKeyArray, evaluation: int) -> PRNGKeyArray:
  """Key for the ``evaluation``-th objective evaluation of a search."""
  return jax.random.fold_in(key, evaluation)
