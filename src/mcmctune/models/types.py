"""Core types used throughout the mcmctune library.

It uses jaxtyping for type annotations of JAX arrays, which provides
shape and dtype information in the type hints.
"""

from __future__ import annotations

from typing import Protocol

from jaxtyping import Array, Bool, Float

State = Float[Array, "dim"]
"""A single point of the state space."""

Chain = Float[Array, "num_samples dim"]
"""An ordered sequence of states. Row 0 is the initial state."""

AcceptedMask = Bool[Array, "num_samples"]
"""Per-row flag telling whether the row is a freshly accepted proposal."""

EssVector = Float[Array, "dim"]
"""Effective sample size, one entry per coordinate."""

ProposalCovariance = Float[Array, "dim dim"]


class LogDensityFn(Protocol):
  """A target density, evaluated on the log scale.

  Implementations must be JAX-traceable, may return ``-inf`` outside the
  support, and must not raise for any finite input.
  """

  def __call__(self, position: State) -> Float[Array, ""]: ...  # noqa: D102


class ObjectiveFn(Protocol):
  """A scalar black-box objective over a scalar input. Lower is better."""

  def __call__(self, x: float) -> float: ...  # noqa: D102
