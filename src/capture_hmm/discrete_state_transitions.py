"""State-transition tables for multi-state capture-recapture models.

Live states ``0 .. n_live_states - 1`` are sites (or any other observable
state class); the last state is the absorbing dead state. Survival is applied
first and movement second, so ``transition[s, r] = phi[s] * psi[s, r]`` for
live ``s, r``.

All builders are written with ``jax.numpy`` so they can be called inside a
jitted log-density and differentiated with respect to the rates. Leading
(occasion) axes broadcast.
"""

import jax.numpy as jnp
from jax.typing import ArrayLike

from capture_hmm.types import Rate, TransitionTable


def _dead_rows(n_states: int, batch_shape: tuple, dtype) -> jnp.ndarray:
    """The absorbing dead-state row, broadcast over ``batch_shape``."""
    dead = jnp.zeros((1, n_states), dtype=dtype).at[0, -1].set(1.0)
    return jnp.broadcast_to(dead, (*batch_shape, 1, n_states))


def make_multistate_transition(survival: Rate, movement: ArrayLike) -> jnp.ndarray:
    """Transition table with survival, movement and an absorbing dead state.

    Parameters
    ----------
    survival : array-like, shape () or (..., n_live_states)
        Probability of surviving the interval, per live state.
    movement : array-like, shape (..., n_live_states, n_live_states)
        ``movement[s, r]`` is the probability of moving from live state ``s``
        to ``r`` given survival. Rows sum to one.

    Returns
    -------
    transition : jnp.ndarray, shape (..., n_live_states + 1, n_live_states + 1)

    Examples
    --------
    >>> movement = make_two_site_movement(0.3, 0.2)
    >>> transition = make_multistate_transition(jnp.array([0.8, 0.7]), movement)
    >>> transition.shape
    (3, 3)
    """
    movement = jnp.asarray(movement)
    survival = jnp.asarray(survival, dtype=movement.dtype)
    n_live_states = movement.shape[-1]
    if survival.ndim == 0:
        survival = jnp.broadcast_to(survival, (n_live_states,))

    batch_shape = jnp.broadcast_shapes(survival.shape[:-1], movement.shape[:-2])
    survival = jnp.broadcast_to(survival, (*batch_shape, n_live_states))
    movement = jnp.broadcast_to(movement, (*batch_shape, n_live_states, n_live_states))

    live_rows = jnp.concatenate(
        (
            survival[..., jnp.newaxis] * movement,
            (1.0 - survival)[..., jnp.newaxis],
        ),
        axis=-1,
    )
    return jnp.concatenate(
        (live_rows, _dead_rows(n_live_states + 1, batch_shape, live_rows.dtype)),
        axis=-2,
    )


def make_two_site_movement(psi_ab: Rate, psi_ba: Rate) -> jnp.ndarray:
    """Movement table between two sites A and B.

    Parameters
    ----------
    psi_ab : array-like, shape () or (n_occasions - 1,)
        Probability of moving from A to B.
    psi_ba : array-like, shape () or (n_occasions - 1,)
        Probability of moving from B to A.

    Returns
    -------
    movement : jnp.ndarray, shape (..., 2, 2)
    """
    psi_ab, psi_ba = jnp.broadcast_arrays(jnp.asarray(psi_ab), jnp.asarray(psi_ba))
    from_a = jnp.stack((1.0 - psi_ab, psi_ab), axis=-1)
    from_b = jnp.stack((psi_ba, 1.0 - psi_ba), axis=-1)
    return jnp.stack((from_a, from_b), axis=-2)


def make_cjs_transition(survival: Rate) -> jnp.ndarray:
    """Cormack-Jolly-Seber transition table: one live state and dead.

    Parameters
    ----------
    survival : array-like, shape () or (n_occasions - 1,)

    Returns
    -------
    transition : jnp.ndarray, shape (..., 2, 2)
        ``[[phi, 1 - phi], [0, 1]]``.
    """
    survival = jnp.asarray(survival)[..., jnp.newaxis]
    return make_multistate_transition(
        survival, jnp.ones((*survival.shape, 1), dtype=survival.dtype)
    )


def broadcast_over_occasions(table: TransitionTable, n_occasions: int) -> jnp.ndarray:
    """Repeat a time-homogeneous table once per step between occasions.

    Parameters
    ----------
    table : array-like, shape (n_rows, n_columns) or (n_occasions - 1, n_rows, n_columns)
    n_occasions : int

    Returns
    -------
    table : jnp.ndarray, shape (n_occasions - 1, n_rows, n_columns)
    """
    table = jnp.asarray(table)
    if table.ndim == 2:
        return jnp.broadcast_to(table, (n_occasions - 1, *table.shape))
    return table
