"""Gaussian Process regression over a scalar tuning parameter."""

from __future__ import annotations

import logging
import math

import jax
import jax.numpy as jnp
from flax import struct
from jax.scipy.linalg import cho_solve, solve_triangular
from jaxtyping import Array, Float

from mcmctune.models.tuner import DEFAULT_NUGGET

logger = logging.getLogger(__name__)

LENGTH_SCALE_GRID = tuple(0.02 * 100.0 ** (i / 23) for i in range(24))
"""Candidate length scales, in units of the input domain width."""
NOISE_GRID = (1e-4, 1e-3, 1e-2, 3e-2, 1e-1, 3e-1)
"""Candidate observation noise variances, in standardized output units."""
SIGNAL_VARIANCE = 1.0


class SurrogateFitError(RuntimeError):
  """Raised when the surrogate cannot be fitted to the design set."""


def rbf_kernel(
  x1: Float[Array, "n"],
  x2: Float[Array, "m"],
  length_scale: Float,
  signal_variance: Float = SIGNAL_VARIANCE,
) -> Float[Array, "n m"]:
  """Squared-exponential kernel between two sets of scalar inputs.

  Example:
    >>> k = rbf_kernel(jnp.array([0.5]), jnp.array([0.5]), 1.0)
    >>> float(k[0, 0])
    1.0

  """
  sq_dist = (x1[:, None] - x2[None, :]) ** 2
  # k(x, x') = s² * exp(-(x - x')² / (2 * l²))
  return signal_variance * jnp.exp(-0.5 * sq_dist / (length_scale**2))


def log_marginal_likelihood(
  x: Float[Array, "n"],
  y: Float[Array, "n"],
  length_scale: Float,
  noise: Float,
  nugget: Float,
) -> Float[Array, ""]:
  """Log marginal likelihood of a zero-mean GP; ``-inf`` if the Cholesky fails."""
  n = x.shape[0]
  k = rbf_kernel(x, x, length_scale) + (noise + nugget) * jnp.eye(n)
  chol = jnp.linalg.cholesky(k)
  alpha = cho_solve((chol, True), y)
  data_fit = -0.5 * jnp.dot(y, alpha)
  complexity = jnp.sum(jnp.log(jnp.diag(chol)))
  lml = data_fit - complexity - 0.5 * n * math.log(2 * math.pi)
  return jnp.where(jnp.isfinite(lml), lml, -jnp.inf)


@struct.dataclass
class GPModel:
  """A fitted Gaussian Process over one scalar input.

  Inputs are mapped to the unit interval of ``[lower, upper]`` and outputs are
  standardized before fitting; predictions are returned in the original units.

  Attributes:
    x_train: Training inputs on the unit interval.
    y_train: Standardized training outputs.
    chol: Lower Cholesky factor of the regularized training covariance.
    alpha: ``K⁻¹ y_train``.
    lower: Lower end of the input domain.
    upper: Upper end of the input domain.
    y_mean: Mean removed from the outputs.
    y_scale: Scale the outputs were divided by.
    length_scale: Fitted length scale, in domain-width units.
    noise: Fitted observation noise variance, standardized units.
    nugget: Fixed variance always added to the covariance diagonal.

  """

  x_train: Array
  y_train: Array
  chol: Array
  alpha: Array
  lower: float = struct.field(pytree_node=False)
  upper: float = struct.field(pytree_node=False)
  y_mean: float = struct.field(pytree_node=False)
  y_scale: float = struct.field(pytree_node=False)
  length_scale: float = struct.field(pytree_node=False)
  noise: float = struct.field(pytree_node=False)
  nugget: float = struct.field(pytree_node=False, default=DEFAULT_NUGGET)
  signal_variance: float = struct.field(pytree_node=False, default=SIGNAL_VARIANCE)

  def to_unit(self, x: Array) -> Array:
    """Map inputs from ``[lower, upper]`` to ``[0, 1]``."""
    return (x - self.lower) / (self.upper - self.lower)

  def predict(self, x_new: float | Array) -> tuple[Array, Array]:
    """Posterior mean and variance at new inputs.

    Args:
      x_new: A scalar or a 1-D array of inputs.

    Returns:
      Tuple of (mean, variance), each of shape ``(m,)``.

    Example:
      >>> model = fit_gp_model(jnp.array([1.0, 2.0, 3.0]), jnp.array([0.0, 1.0, 0.0]), 1.0, 3.0)
      >>> mean, var = model.predict(2.5)
      >>> mean.shape == var.shape == (1,)
      True

    """
    u_new = self.to_unit(jnp.atleast_1d(jnp.asarray(x_new, dtype=self.x_train.dtype)))
    k_s = rbf_kernel(self.x_train, u_new, self.length_scale, self.signal_variance)

    # Mean: K_s^T * K^-1 * y
    mu = jnp.matmul(k_s.T, self.alpha)

    # Variance: k(x, x) - K_s^T * K^-1 * K_s
    v = solve_triangular(self.chol, k_s, lower=True)
    var = jnp.clip(self.signal_variance - jnp.sum(v**2, axis=0), 0.0)

    return mu * self.y_scale + self.y_mean, var * self.y_scale**2


def _standardize(y: Array) -> tuple[Array, float, float]:
  y_mean = float(jnp.mean(y))
  y_scale = float(jnp.std(y))
  if not math.isfinite(y_scale) or y_scale <= 0:
    y_scale = 1.0
  return (y - y_mean) / y_scale, y_mean, y_scale


def fit_gp_model(
  inputs: Float[Array, "n"],
  outputs: Float[Array, "n"],
  lower: float,
  upper: float,
  nugget: float = DEFAULT_NUGGET,
) -> GPModel:
  """Fit a GP to observed (input, output) pairs.

  The length scale and the noise variance maximize the log marginal
  likelihood over ``LENGTH_SCALE_GRID`` x ``NOISE_GRID``. ``nugget`` is added
  to the covariance diagonal on top of the fitted noise.

  Args:
    inputs: Observed inputs, shape ``(n,)``.
    outputs: Observed objective values, shape ``(n,)``.
    lower: Lower end of the input domain.
    upper: Upper end of the input domain.
    nugget: Fixed diagonal regularization, must be positive.

  Returns:
    The fitted GPModel.

  Raises:
    SurrogateFitError: If the data are empty, mismatched or not finite, or
      if the regularized covariance cannot be factorized.

  """
  x = jnp.ravel(jnp.asarray(inputs, dtype=jnp.float32))
  y = jnp.ravel(jnp.asarray(outputs, dtype=jnp.float32))
  if x.shape[0] == 0 or x.shape != y.shape:
    msg = f"Cannot fit a surrogate to inputs of shape {x.shape} and outputs of shape {y.shape}."
    raise SurrogateFitError(msg)
  if not bool(jnp.all(jnp.isfinite(x))) or not bool(jnp.all(jnp.isfinite(y))):
    msg = "Cannot fit a surrogate to non-finite observations."
    raise SurrogateFitError(msg)
  if not upper > lower:
    msg = f"Invalid input domain [{lower}, {upper}]."
    raise SurrogateFitError(msg)

  u = (x - lower) / (upper - lower)
  y_std, y_mean, y_scale = _standardize(y)

  length_scales, noises = jnp.meshgrid(jnp.array(LENGTH_SCALE_GRID), jnp.array(NOISE_GRID))
  lml = jax.vmap(log_marginal_likelihood, in_axes=(None, None, 0, 0, None))(
    u,
    y_std,
    length_scales.ravel(),
    noises.ravel(),
    nugget,
  )
  if not bool(jnp.any(jnp.isfinite(lml))):
    msg = "Surrogate covariance is not positive definite for any hyperparameter setting."
    raise SurrogateFitError(msg)
  best = int(jnp.argmax(lml))
  length_scale = float(length_scales.ravel()[best])
  noise = float(noises.ravel()[best])

  k = rbf_kernel(u, u, length_scale) + (noise + nugget) * jnp.eye(u.shape[0])
  chol = jnp.linalg.cholesky(k)
  if not bool(jnp.all(jnp.isfinite(chol))):
    msg = "Cholesky factorization of the surrogate covariance failed."
    raise SurrogateFitError(msg)
  alpha = cho_solve((chol, True), y_std)

  logger.debug(
    "Fitted GP on %d points: length_scale=%.4f noise=%.2e lml=%.3f",
    u.shape[0],
    length_scale,
    noise,
    float(lml[best]),
  )
  return GPModel(
    x_train=u,
    y_train=y_std,
    chol=chol,
    alpha=alpha,
    lower=float(lower),
    upper=float(upper),
    y_mean=y_mean,
    y_scale=y_scale,
    length_scale=length_scale,
    noise=noise,
    nugget=float(nugget),
  )
