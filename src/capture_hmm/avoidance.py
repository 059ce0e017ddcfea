"""Avoidance-learning model for repeated binary trials.

Each subject goes through a sequence of trials and either avoids the shock
(``y = 0``) or is shocked (``y = 1``). The probability of a shock on trial
``t`` depends on how many avoidances and shocks the subject experienced
before that trial::

    p[t] = inv_logit(beta[0] * n_avoid[t] + beta[1] * n_shock[t])

There is no intercept, so the first trial always has ``p = 0.5``.
"""

import jax
import jax.numpy as jnp
import numpy as np
from jax.typing import ArrayLike

from capture_hmm._validation import ensure_integer_array, ensure_positive_count
from capture_hmm.exceptions import ValidationError


def running_counts(y: ArrayLike) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Avoidances and shocks experienced before each trial.

    Parameters
    ----------
    y : array-like, shape (..., n_trials)
        Binary outcomes, 1 = shocked.

    Returns
    -------
    n_avoid : jnp.ndarray, shape (..., n_trials)
        ``sum_{s < t} (1 - y[s])``
    n_shock : jnp.ndarray, shape (..., n_trials)
        ``sum_{s < t} y[s]``

    Examples
    --------
    >>> n_avoid, n_shock = running_counts(jnp.array([0, 0, 0]))
    >>> n_avoid.tolist(), n_shock.tolist()
    ([0, 1, 2], [0, 0, 0])
    """
    y = jnp.asarray(y)
    avoided = 1 - y
    n_shock = jnp.cumsum(y, axis=-1) - y
    n_avoid = jnp.cumsum(avoided, axis=-1) - avoided
    return n_avoid, n_shock


running_counts = jax.jit(running_counts)


def avoidance_logits(
    beta: ArrayLike, n_avoid: ArrayLike, n_shock: ArrayLike
) -> jnp.ndarray:
    """Linear predictor ``beta[0] * n_avoid + beta[1] * n_shock``."""
    beta = jnp.asarray(beta)
    return beta[0] * n_avoid + beta[1] * n_shock


def avoidance_probability(
    beta: ArrayLike, n_avoid: ArrayLike, n_shock: ArrayLike
) -> jnp.ndarray:
    """Probability of a shock given the running counts.

    Parameters
    ----------
    beta : array-like, shape (2,)
        Weights of the avoidance and shock counts.
    n_avoid, n_shock : array-like
        Running counts from `running_counts`.

    Returns
    -------
    p : jnp.ndarray
        ``P(y[t] = 1)``, same shape as the counts.
    """
    return jax.nn.sigmoid(avoidance_logits(beta, n_avoid, n_shock))


avoidance_probability = jax.jit(avoidance_probability)


def avoidance_log_likelihood(y: ArrayLike, beta: ArrayLike) -> jnp.ndarray:
    """Bernoulli-logit log-likelihood of all trials.

    Parameters
    ----------
    y : array-like, shape (n_trials,) or (n_subjects, n_trials)
    beta : array-like, shape (2,)

    Returns
    -------
    log_likelihood : float
        ``sum(y * eta - log(1 + exp(eta)))`` over subjects and trials.
    """
    y = jnp.asarray(y)
    n_avoid, n_shock = running_counts(y)
    eta = avoidance_logits(beta, n_avoid, n_shock)
    return jnp.sum(y * eta - jax.nn.softplus(eta))


avoidance_log_likelihood = jax.jit(avoidance_log_likelihood)


def validate_avoidance_trials(y: ArrayLike) -> np.ndarray:
    """Check binary trial outcomes and return them as a 2-D ``np.int64`` array.

    Raises
    ------
    ValidationError
        If the outcomes are not 0/1 or the array is empty.
    """
    y = ensure_integer_array(y, "y")
    if y.ndim == 1:
        y = y[np.newaxis]
    if y.ndim != 2:
        raise ValidationError(
            "y must be a 1- or 2-dimensional array",
            expected="array with shape (n_subjects, n_trials)",
            got=f"array with shape {y.shape}",
        )
    ensure_positive_count(y.shape[0], "n_subjects")
    ensure_positive_count(y.shape[1], "n_trials")
    if not np.all((y == 0) | (y == 1)):
        raise ValidationError(
            "y must be binary",
            expected="values in {0, 1} (1 = shocked)",
            got=f"values {np.unique(y).tolist()}",
        )
    return y
