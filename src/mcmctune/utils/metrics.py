"""Effective sample size and related chain summaries."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import jax.numpy as jnp
from blackjax.diagnostics import effective_sample_size as blackjax_ess

if TYPE_CHECKING:
  from mcmctune.models.types import Chain, EssVector

logger = getLogger(__name__)

MIN_ESS = 1.0
"""Value reported for coordinates whose ESS is undefined (constant chains)."""


def effective_sample_size(chain: Chain) -> EssVector:
  """Estimate the effective sample size of each coordinate of a single chain.

  Uses the initial monotone sequence estimator on the FFT autocovariance of
  each coordinate. Coordinates that never move, or whose estimate is not
  finite, get ``MIN_ESS``. All values lie in ``[MIN_ESS, num_samples]``.

  Args:
    chain: Array of shape ``(num_samples, dim)``.

  Returns:
    Array of shape ``(dim,)``.

  Raises:
    ValueError: If the chain is not two-dimensional or has fewer than two rows.

  Example:
    >>> chain = jnp.stack([jnp.arange(10.0), -jnp.arange(10.0)], axis=1)
    >>> effective_sample_size(chain).shape
    (2,)

  """
  chain = jnp.asarray(chain)
  if chain.ndim != 2:  # noqa: PLR2004
    msg = f"Expected a chain of shape (num_samples, dim), got {chain.shape}."
    raise ValueError(msg)
  num_samples, dim = chain.shape
  if num_samples < 2:  # noqa: PLR2004
    msg = "ESS needs at least two samples."
    raise ValueError(msg)

  raw = jnp.reshape(blackjax_ess(chain[None, ...], chain_axis=0, sample_axis=1), (dim,))
  constant = jnp.max(chain, axis=0) == jnp.min(chain, axis=0)
  undefined = constant | ~jnp.isfinite(raw)
  if bool(jnp.any(undefined)):
    logger.debug(
      "ESS undefined for coordinates %s; reporting %s.",
      jnp.where(undefined)[0],
      MIN_ESS,
    )
  ess = jnp.where(undefined, MIN_ESS, raw)
  return jnp.clip(ess, MIN_ESS, num_samples)


def summarize_ess(ess: EssVector) -> tuple[float, float]:
  """Return the minimum and mean ESS across coordinates."""
  return float(jnp.min(ess)), float(jnp.mean(ess))
