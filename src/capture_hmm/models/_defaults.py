"""Default prior settings for the estimators.

Each entry is a factory so that estimators never share a mutable default.
"""

from collections.abc import Callable
from typing import Any


def _resolve_param(value: Any, default_factory: Callable[[], Any]) -> Any:
    """Use the provided value, or create the default if it is None."""
    return default_factory() if value is None else value


class _ModelDefaults:
    """Factory for estimator defaults."""

    @staticmethod
    def multistate_defaults():
        """Vague priors of the multi-state capture-recapture model.

        Survival and detection get uniform priors on ``(low, high)``; each row
        of the movement table gets a symmetric Dirichlet prior.
        """
        return {
            "survival_prior": lambda: (0.0, 1.0),
            "detection_prior": lambda: (0.0, 1.0),
            "movement_concentration": lambda: 1.0,
        }

    @staticmethod
    def avoidance_defaults():
        """Weakly informative normal prior on both avoidance-learning weights."""
        return {
            "beta_prior": lambda: {"loc": 0.0, "scale": 100.0},
        }
