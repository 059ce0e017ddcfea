"""Emission tables for multi-state capture-recapture models.

Symbols ``0 .. n_live_states - 1`` mean "seen in live state s" and the last
symbol means "not observed". The dead state is never seen.
"""

import jax.numpy as jnp
from capture_hmm.discrete_state_transitions import _dead_rows
from capture_hmm.types import Rate


def make_multistate_emission(detection: Rate) -> jnp.ndarray:
    """Emission table for state-specific detection.

    Parameters
    ----------
    detection : array-like, shape (..., n_live_states)
        Probability of detecting a subject in each live state.

    Returns
    -------
    emission : jnp.ndarray, shape (..., n_live_states + 1, n_live_states + 1)
        ``emission[s, s] = p[s]``, ``emission[s, -1] = 1 - p[s]`` and the
        dead state emits "not observed" with probability one.

    Examples
    --------
    >>> emission = make_multistate_emission(jnp.array([0.9, 0.85]))
    >>> emission.shape
    (3, 3)
    """
    detection = jnp.atleast_1d(jnp.asarray(detection))
    n_live_states = detection.shape[-1]
    batch_shape = detection.shape[:-1]

    live_rows = jnp.concatenate(
        (
            detection[..., jnp.newaxis] * jnp.eye(n_live_states, dtype=detection.dtype),
            (1.0 - detection)[..., jnp.newaxis],
        ),
        axis=-1,
    )
    return jnp.concatenate(
        (live_rows, _dead_rows(n_live_states + 1, batch_shape, live_rows.dtype)),
        axis=-2,
    )


def make_cjs_emission(detection: Rate) -> jnp.ndarray:
    """Cormack-Jolly-Seber emission table.

    Parameters
    ----------
    detection : array-like, shape () or (n_occasions - 1,)

    Returns
    -------
    emission : jnp.ndarray, shape (..., 2, 2)
        ``[[p, 1 - p], [0, 1]]``: symbol 0 is "seen", symbol 1 "not seen".
    """
    return make_multistate_emission(jnp.asarray(detection)[..., jnp.newaxis])
