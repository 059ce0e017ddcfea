"""Type definitions for the capture_hmm package.

Type aliases for the arrays passed through the forward recursion, plus a
small validated value type for probability vectors.
"""

from __future__ import annotations

from dataclasses import dataclass

import jax.numpy as jnp
import numpy as np
from jax.typing import ArrayLike

from capture_hmm._validation import (
    ensure_all_finite,
    ensure_probability_distribution,
)
from capture_hmm.exceptions import ValidationError

CaptureHistories = np.ndarray
"""Integer array, shape (n_subjects, n_occasions), of observation symbols."""

TransitionTable = ArrayLike
"""Transition probabilities with rows over the next hidden state.

Shape (n_states, n_states), (n_occasions - 1, n_states, n_states) or
(n_subjects, n_occasions - 1, n_states, n_states).
"""

EmissionTable = ArrayLike
"""Emission probabilities with rows over observation symbols.

Shape (n_states, n_symbols), (n_occasions - 1, n_states, n_symbols) or
(n_subjects, n_occasions - 1, n_states, n_symbols).
"""

Rate = float | ArrayLike
"""A probability-valued parameter: scalar, per-state vector, or with a leading
occasion axis."""

StateNames = list[str] | None
"""Human-readable names for the hidden states, or None for defaults."""


@dataclass(frozen=True, eq=False)
class ProbabilityVector:
    """A discrete probability distribution checked at construction.

    Parameters
    ----------
    probabilities : array-like, shape (n,)
        Non-negative values summing to one.
    tolerance : float, optional
        Allowed deviation of the sum from one, by default 1e-9.

    Examples
    --------
    >>> movement = ProbabilityVector([0.7, 0.3])
    >>> len(movement)
    2
    >>> ProbabilityVector([0.7, 0.4])  # Raises ValidationError
    """

    probabilities: np.ndarray
    tolerance: float = 1e-9

    def __post_init__(self) -> None:
        probabilities = np.array(self.probabilities, dtype=float)
        if probabilities.ndim != 1 or probabilities.size == 0:
            raise ValidationError(
                "ProbabilityVector must be a non-empty 1-dimensional array",
                expected="array with shape (n,)",
                got=f"array with shape {probabilities.shape}",
            )
        ensure_all_finite(probabilities, "probabilities")
        ensure_probability_distribution(
            probabilities, "probabilities", tolerance=self.tolerance
        )
        probabilities.setflags(write=False)
        object.__setattr__(self, "probabilities", probabilities)

    def __len__(self) -> int:
        return self.probabilities.shape[0]

    def __array__(self, dtype=None, copy=None):
        return np.asarray(self.probabilities, dtype=dtype)

    def to_jax(self) -> jnp.ndarray:
        """Return the probabilities as a JAX array."""
        return jnp.asarray(self.probabilities)

    @classmethod
    def from_weights(cls, weights: ArrayLike) -> ProbabilityVector:
        """Normalize non-negative weights into a probability vector."""
        weights = np.asarray(weights, dtype=float)
        total = weights.sum()
        if not total > 0:
            raise ValidationError(
                "Weights must have a positive sum",
                got=f"sum = {total}",
            )
        return cls(weights / total)
