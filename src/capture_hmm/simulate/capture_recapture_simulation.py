"""Simulate multi-state capture histories.

Subjects are released (first detected) at a given occasion in a given live
state. From there the hidden state follows the transition table and each
later occasion emits one symbol through the emission table. Occasions before
release are coded with the not-observed symbol and hidden state -1.
"""

from dataclasses import dataclass

import numpy as np

from capture_hmm.discrete_state_transitions import (
    make_multistate_transition,
    make_two_site_movement,
)
from capture_hmm.observation_models import make_multistate_emission
from capture_hmm.types import ProbabilityVector

SURVIVAL = np.array([0.8, 0.7])
PSI_AB = 0.3
PSI_BA = 0.2
DETECTION = np.array([0.9, 0.85])
N_SUBJECTS = 100
N_OCCASIONS = 6


@dataclass
class SimulatedCaptureHistories:
    """Output of `simulate_capture_histories`.

    Attributes
    ----------
    observations : np.ndarray, shape (n_subjects, n_occasions)
        Observation symbols; the last symbol is "not observed".
    states : np.ndarray, shape (n_subjects, n_occasions)
        True hidden states; -1 before release.
    first_occasions : np.ndarray, shape (n_subjects,)
        Release occasion of each subject, which is also its first detection.
    transition : np.ndarray, shape (n_subjects, n_occasions - 1, n_states, n_states)
    emission : np.ndarray, shape (n_subjects, n_occasions - 1, n_states, n_symbols)
    """

    observations: np.ndarray
    states: np.ndarray
    first_occasions: np.ndarray
    transition: np.ndarray
    emission: np.ndarray


def two_site_tables(
    survival: np.ndarray = SURVIVAL,
    psi_ab: float = PSI_AB,
    psi_ba: float = PSI_BA,
    detection: np.ndarray = DETECTION,
) -> tuple[np.ndarray, np.ndarray]:
    """Transition and emission tables of the two-site survival model.

    States are 0 = site A, 1 = site B, 2 = dead. Symbols are 0 = seen at A,
    1 = seen at B, 2 = not seen.
    """
    transition = make_multistate_transition(
        survival, make_two_site_movement(psi_ab, psi_ba)
    )
    emission = make_multistate_emission(detection)
    return np.asarray(transition), np.asarray(emission)


def _sample_rows(rng: np.random.Generator, probabilities: np.ndarray) -> np.ndarray:
    """Draw one category per row by inverting the cumulative distribution."""
    cumulative = np.cumsum(probabilities, axis=-1)
    u = rng.random(probabilities.shape[0]) * cumulative[:, -1]
    draws = np.sum(u[:, np.newaxis] >= cumulative, axis=-1)
    return np.minimum(draws, probabilities.shape[-1] - 1)


def simulate_capture_histories(
    transition: np.ndarray,
    emission: np.ndarray,
    n_subjects: int = N_SUBJECTS,
    n_occasions: int = N_OCCASIONS,
    first_occasions: np.ndarray | None = None,
    first_states: np.ndarray | None = None,
    seed_symbols: np.ndarray | None = None,
    seed: int | None = 0,
    release_probabilities: ProbabilityVector | None = None,
) -> SimulatedCaptureHistories:
    """Simulate capture histories conditional on first capture.

    Parameters
    ----------
    transition : np.ndarray
        Shape (n_states, n_states), (n_occasions - 1, n_states, n_states) or
        (n_subjects, n_occasions - 1, n_states, n_states).
    emission : np.ndarray
        Same leading shapes as `transition`, last axis over symbols.
    n_subjects : int, optional
        Default is 100.
    n_occasions : int, optional
        Default is 6.
    first_occasions : np.ndarray, shape (n_subjects,), optional
        Release occasion per subject. Default is 0 for everyone.
    first_states : np.ndarray, shape (n_subjects,), optional
        Live state at release. Default is state 0 for everyone, or draws from
        `release_probabilities`.
    seed_symbols : np.ndarray, shape (n_states,), optional
        Symbol recorded at release for each state. Default ``arange(n_states)``.
    seed : int | None, optional
        Seed for ``np.random.default_rng``. Default is 0.
    release_probabilities : ProbabilityVector, optional
        Distribution of the live state at release, used when `first_states`
        is not given.

    Returns
    -------
    simulated : SimulatedCaptureHistories
    """
    rng = np.random.default_rng(seed)
    transition = np.asarray(transition, dtype=float)
    emission = np.asarray(emission, dtype=float)
    n_states = transition.shape[-1]
    n_symbols = emission.shape[-1]
    not_observed = n_symbols - 1
    n_steps = n_occasions - 1

    transition = np.broadcast_to(
        transition, (n_subjects, n_steps, n_states, n_states)
    )
    emission = np.broadcast_to(emission, (n_subjects, n_steps, n_states, n_symbols))

    if first_occasions is None:
        first_occasions = np.zeros((n_subjects,), dtype=np.int64)
    if first_states is None and release_probabilities is not None:
        first_states = rng.choice(
            len(release_probabilities),
            size=n_subjects,
            p=release_probabilities.probabilities,
        )
    if first_states is None:
        first_states = np.zeros((n_subjects,), dtype=np.int64)
    if seed_symbols is None:
        seed_symbols = np.arange(n_states)
    first_occasions = np.asarray(first_occasions, dtype=np.int64)
    first_states = np.asarray(first_states, dtype=np.int64)
    seed_symbols = np.asarray(seed_symbols, dtype=np.int64)

    states = np.full((n_subjects, n_occasions), -1, dtype=np.int64)
    observations = np.full((n_subjects, n_occasions), not_observed, dtype=np.int64)
    subjects = np.arange(n_subjects)

    for t in range(n_occasions):
        is_released = first_occasions == t
        states[is_released, t] = first_states[is_released]
        observations[is_released, t] = seed_symbols[first_states[is_released]]

        is_alive = first_occasions < t
        if t == 0 or not np.any(is_alive):
            continue
        alive = subjects[is_alive]
        previous = states[alive, t - 1]
        current = _sample_rows(rng, transition[alive, t - 1, previous])
        states[alive, t] = current
        observations[alive, t] = _sample_rows(rng, emission[alive, t - 1, current])

    return SimulatedCaptureHistories(
        observations=observations,
        states=states,
        first_occasions=first_occasions,
        transition=np.asarray(transition),
        emission=np.asarray(emission),
    )
