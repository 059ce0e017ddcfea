"""Brute-force reference computations by enumerating hidden state paths.

Only usable for a handful of states and occasions. Every path after the
first detection is scored explicitly, which makes these functions an
independent check of the recursions in ``capture_hmm.core``.
"""

import itertools

import numpy as np


def _per_occasion(table, n_steps):
    table = np.asarray(table, dtype=float)
    if table.ndim == 2:
        return np.broadcast_to(table, (n_steps, *table.shape))
    return table


def _first_detection(history, not_observed):
    detected = np.flatnonzero(np.asarray(history) != not_observed)
    return int(detected[0]) if detected.size else -1


def enumerate_paths(history, transition, emission, not_observed, seed_symbols=None):
    """Yield ``(path, probability)`` for every path from the first detection.

    ``path`` covers occasions ``first .. n_occasions - 1``.
    """
    history = np.asarray(history)
    n_occasions = history.shape[0]
    transition = _per_occasion(transition, n_occasions - 1)
    emission = _per_occasion(emission, n_occasions - 1)
    n_states = transition.shape[-1]
    if seed_symbols is None:
        seed_symbols = np.arange(n_states)

    first = _first_detection(history, not_observed)
    if first < 0:
        return

    for path in itertools.product(range(n_states), repeat=n_occasions - first):
        if seed_symbols[path[0]] != history[first]:
            continue
        probability = 1.0
        for offset in range(1, len(path)):
            t = first + offset
            probability *= (
                transition[t - 1, path[offset - 1], path[offset]]
                * emission[t - 1, path[offset], history[t]]
            )
        yield path, probability


def brute_force_likelihood(history, transition, emission, not_observed, seed_symbols=None):
    """Likelihood of one history, or 1.0 if it was never detected."""
    if _first_detection(history, not_observed) < 0:
        return 1.0
    return sum(
        probability
        for _, probability in enumerate_paths(
            history, transition, emission, not_observed, seed_symbols
        )
    )


def brute_force_posterior(history, transition, emission, not_observed, seed_symbols=None):
    """Posterior state marginals; rows before the first detection are zero."""
    history = np.asarray(history)
    n_states = np.asarray(transition).shape[-1]
    first = _first_detection(history, not_observed)
    posterior = np.zeros((history.shape[0], n_states))
    if first < 0:
        return posterior

    for path, probability in enumerate_paths(
        history, transition, emission, not_observed, seed_symbols
    ):
        for offset, state in enumerate(path):
            posterior[first + offset, state] += probability
    total = posterior[first].sum()
    return posterior / total


def brute_force_most_likely_path(
    history, transition, emission, not_observed, seed_symbols=None
):
    """Highest-probability path with -1 before the first detection."""
    history = np.asarray(history)
    first = _first_detection(history, not_observed)
    states = np.full(history.shape[0], -1)
    if first < 0:
        return states

    best_path, _ = max(
        enumerate_paths(history, transition, emission, not_observed, seed_symbols),
        key=lambda item: item[1],
    )
    states[first:] = best_path
    return states
