"""Simulate repeated avoidance trials."""

from dataclasses import dataclass

import numpy as np
from scipy.special import expit  # type: ignore[import-untyped]

BETA = np.array([-0.35, -0.2])
N_SUBJECTS = 30
N_TRIALS = 25


@dataclass
class SimulatedAvoidanceTrials:
    """Output of `simulate_avoidance_trials`.

    Attributes
    ----------
    y : np.ndarray, shape (n_subjects, n_trials)
        1 = shocked, 0 = avoided.
    shock_probability : np.ndarray, shape (n_subjects, n_trials)
        Probability of a shock on each trial given the subject's past.
    """

    y: np.ndarray
    shock_probability: np.ndarray


def simulate_avoidance_trials(
    beta: np.ndarray = BETA,
    n_subjects: int = N_SUBJECTS,
    n_trials: int = N_TRIALS,
    seed: int | None = 0,
) -> SimulatedAvoidanceTrials:
    """Simulate trials where the shock probability depends on past outcomes.

    Parameters
    ----------
    beta : np.ndarray, shape (2,), optional
        Weights of the running avoidance and shock counts.
    n_subjects : int, optional
        Default is 30.
    n_trials : int, optional
        Default is 25.
    seed : int | None, optional
        Seed for ``np.random.default_rng``. Default is 0.

    Returns
    -------
    simulated : SimulatedAvoidanceTrials
    """
    rng = np.random.default_rng(seed)
    beta = np.asarray(beta, dtype=float)

    y = np.zeros((n_subjects, n_trials), dtype=np.int64)
    shock_probability = np.zeros((n_subjects, n_trials))
    n_avoid = np.zeros((n_subjects,))
    n_shock = np.zeros((n_subjects,))

    for t in range(n_trials):
        shock_probability[:, t] = expit(beta[0] * n_avoid + beta[1] * n_shock)
        y[:, t] = rng.random(n_subjects) < shock_probability[:, t]
        n_shock += y[:, t]
        n_avoid += 1 - y[:, t]

    return SimulatedAvoidanceTrials(y=y, shock_probability=shock_probability)
