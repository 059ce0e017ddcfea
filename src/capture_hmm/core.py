"""Forward-algorithm likelihoods for discrete-state capture-recapture HMMs.

The hidden state of a subject evolves by a (possibly time-varying)
transition table and emits one observation symbol per occasion through an
emission table. The likelihood of a capture history is conditioned on the
first detection: the forward vector is seeded at that occasion with the
state implied by the observed symbol, and the hidden states of all later
occasions are summed out.

The jitted kernels in this module never raise, so they can be used inside a
sampler's log-density and differentiated with ``jax.grad``. The NumPy-level
drivers at the bottom (`compute_log_likelihoods`, `marginal_log_likelihood`)
validate their inputs and report degenerate results.
"""

import warnings
from functools import partial
from logging import getLogger

import jax
import jax.numpy as jnp
import numpy as np
from jax.typing import ArrayLike

from capture_hmm._validation import (
    ensure_absorbing_state,
    ensure_integer_array,
    ensure_stochastic_rows,
    ensure_symbols_in_alphabet,
    ensure_table_shape,
)
from capture_hmm.capture_histories import (
    NEVER_DETECTED,
    first_detections,
    validate_capture_histories,
)
from capture_hmm.exceptions import (
    ConfigurationError,
    DegenerateLikelihoodError,
    ValidationError,
)
from capture_hmm.types import EmissionTable, TransitionTable

logger = getLogger(__name__)

FORWARD_METHODS = ("scaled", "unscaled", "log")
UNDERFLOW_ACTIONS = ("raise", "warn")


def _divide_safe(numerator: ArrayLike, denominator: ArrayLike) -> jnp.ndarray:
    """Divides two arrays, while setting the result to 0.0
    if the denominator is 0.0.

    The denominator is replaced before dividing so that gradients stay
    finite where it is zero.
    """
    is_zero = denominator == 0.0
    safe_denominator = jnp.where(is_zero, 1.0, denominator)
    return jnp.where(is_zero, 0.0, numerator / safe_denominator)


def _safe_log(p: ArrayLike) -> jnp.ndarray:
    """Log of probabilities with -inf for zeros and a zero gradient there."""
    is_positive = p > 0
    return jnp.where(is_positive, jnp.log(jnp.where(is_positive, p, 1.0)), -jnp.inf)


def _normalize(u: ArrayLike, axis: int = 0) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Normalizes the values within the axis so that they sum to 1.

    All-zero slices stay zero.

    Returns
    -------
    normalized_u : jnp.ndarray
    c : jnp.ndarray
        Normalization constant (squeezed along normalized axis)
    """
    c = u.sum(axis=axis, keepdims=True)
    return _divide_safe(u, c), c.squeeze(axis)


def _logsumexp(a: ArrayLike, axis: int = 0) -> jnp.ndarray:
    """Log-sum-exp that returns -inf for all -inf slices with finite gradients."""
    a_max = jnp.max(a, axis=axis, keepdims=True)
    a_max = jax.lax.stop_gradient(jnp.where(jnp.isfinite(a_max), a_max, 0.0))
    total = jnp.sum(jnp.exp(a - a_max), axis=axis)
    return _safe_log(total) + a_max.squeeze(axis)


def _per_occasion(table: jnp.ndarray, n_steps: int) -> jnp.ndarray:
    """Broadcast a time-homogeneous table to one entry per step."""
    if table.ndim == 2:
        return jnp.broadcast_to(table, (n_steps, *table.shape))
    return table


def _seed(
    observations: jnp.ndarray,
    first_detection: ArrayLike,
    seed_symbols: jnp.ndarray,
    dtype,
) -> jnp.ndarray:
    """Indicator of the states whose detection symbol was observed first."""
    first_symbol = observations[jnp.maximum(first_detection, 0)]
    return (first_symbol == seed_symbols).astype(dtype)


def _prepare(observations, transition, emission, seed_symbols):
    observations = jnp.asarray(observations)
    transition = jnp.asarray(transition)
    emission = jnp.asarray(emission)
    dtype = jnp.result_type(transition, emission, jnp.float32)
    transition = transition.astype(dtype)
    emission = emission.astype(dtype)
    n_steps = observations.shape[0] - 1
    if seed_symbols is None:
        seed_symbols = jnp.arange(transition.shape[-1])
    return (
        observations,
        _per_occasion(transition, n_steps),
        _per_occasion(emission, n_steps),
        jnp.asarray(seed_symbols),
    )


def forward_unscaled(
    observations: ArrayLike,
    first_detection: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Reference forward recursion without rescaling.

    ``alpha[t, k] = sum_j alpha[t-1, j] * transition[t-1, j, k] *
    emission[t-1, k, y[t]]`` starting from the indicator seed at the first
    detection. The product of probabilities can underflow to zero for long
    histories; see `forward_scaled` and `forward_log`.

    Parameters
    ----------
    observations : jnp.ndarray, shape (n_occasions,)
        Observation symbols of one subject.
    first_detection : int
        Index of the first detection, or -1 if never detected.
    transition : jnp.ndarray, shape (n_states, n_states) or (n_occasions - 1, n_states, n_states)
        ``transition[t, j, k] = P(z_{t+1} = k | z_t = j)``.
    emission : jnp.ndarray, shape (n_states, n_symbols) or (n_occasions - 1, n_states, n_symbols)
        ``emission[t, k, y]`` is the probability of observing ``y`` at
        occasion ``t + 1`` in state ``k``.
    seed_symbols : jnp.ndarray, shape (n_states,), optional
        Symbol produced by a detection in each state. Defaults to
        ``arange(n_states)``.

    Returns
    -------
    log_likelihood : float
        ``log(sum_k alpha[-1, k])``; 0.0 if the subject was never detected.
    forward_probabilities : jnp.ndarray, shape (n_occasions, n_states)
        ``alpha``; rows before the first detection are zero.
    """
    observations, transition, emission, seed_symbols = _prepare(
        observations, transition, emission, seed_symbols
    )
    n_occasions = observations.shape[0]
    seed = _seed(observations, first_detection, seed_symbols, transition.dtype)
    alpha_0 = jnp.where(first_detection == 0, seed, 0.0)

    def _step(alpha_prev, args):
        t, transition_t, emission_t = args
        propagated = (alpha_prev @ transition_t) * emission_t[:, observations[t]]
        alpha = jnp.where(
            (t > first_detection) & (first_detection >= 0),
            propagated,
            jnp.where(t == first_detection, seed, 0.0),
        )
        return alpha, alpha

    _, alphas = jax.lax.scan(
        _step, alpha_0, (jnp.arange(1, n_occasions), transition, emission)
    )
    forward_probabilities = jnp.concatenate((alpha_0[jnp.newaxis], alphas))
    log_likelihood = jnp.where(
        first_detection >= 0, _safe_log(forward_probabilities[-1].sum()), 0.0
    )

    return log_likelihood, forward_probabilities


forward_unscaled = jax.jit(forward_unscaled)


def forward_scaled(
    observations: ArrayLike,
    first_detection: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
) -> tuple[jnp.ndarray, tuple[jnp.ndarray, jnp.ndarray]]:
    """Forward recursion renormalised at every occasion.

    The forward vector is divided by its sum after each step and the log of
    that sum is accumulated, so the unscaled forward vector is
    ``filtered_probs[t] * exp(cumsum(log_scales)[t])``.

    Parameters are as for `forward_unscaled`.

    Returns
    -------
    log_likelihood : float
        Sum of the log normalizers; 0.0 if the subject was never detected.
    outputs : tuple[jnp.ndarray, jnp.ndarray]
        - filtered_probs : shape (n_occasions, n_states)
            ``P(z_t | y_{first:t})``; rows before the first detection are zero.
        - log_scales : shape (n_occasions,)
            Log normalizer of each occasion; zero before the first detection.
    """
    observations, transition, emission, seed_symbols = _prepare(
        observations, transition, emission, seed_symbols
    )
    n_occasions = observations.shape[0]
    seed = _seed(observations, first_detection, seed_symbols, transition.dtype)
    seed_probs, seed_norm = _normalize(seed)
    log_seed_norm = _safe_log(seed_norm)

    is_seeded = first_detection == 0
    filtered_0 = jnp.where(is_seeded, seed_probs, 0.0)
    log_scale_0 = jnp.where(is_seeded, log_seed_norm, 0.0)

    def _step(filtered_prev, args):
        t, transition_t, emission_t = args
        propagated = (filtered_prev @ transition_t) * emission_t[:, observations[t]]
        filtered_next, norm = _normalize(propagated)

        is_active = (t > first_detection) & (first_detection >= 0)
        is_seed = t == first_detection
        filtered = jnp.where(
            is_active, filtered_next, jnp.where(is_seed, seed_probs, 0.0)
        )
        log_scale = jnp.where(
            is_active, _safe_log(norm), jnp.where(is_seed, log_seed_norm, 0.0)
        )
        return filtered, (filtered, log_scale)

    _, (filtered_probs, log_scales) = jax.lax.scan(
        _step, filtered_0, (jnp.arange(1, n_occasions), transition, emission)
    )
    filtered_probs = jnp.concatenate((filtered_0[jnp.newaxis], filtered_probs))
    log_scales = jnp.concatenate((log_scale_0[jnp.newaxis], log_scales))
    log_likelihood = jnp.where(first_detection >= 0, log_scales.sum(), 0.0)

    return log_likelihood, (filtered_probs, log_scales)


forward_scaled = jax.jit(forward_scaled)


def forward_log(
    observations: ArrayLike,
    first_detection: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Forward recursion carried out in log-space with log-sum-exp.

    Parameters are as for `forward_unscaled`.

    Returns
    -------
    log_likelihood : float
        0.0 if the subject was never detected.
    log_forward_probabilities : jnp.ndarray, shape (n_occasions, n_states)
        ``log(alpha)``; rows before the first detection are -inf.
    """
    observations, transition, emission, seed_symbols = _prepare(
        observations, transition, emission, seed_symbols
    )
    n_occasions = observations.shape[0]
    log_seed = _safe_log(
        _seed(observations, first_detection, seed_symbols, transition.dtype)
    )
    log_alpha_0 = jnp.where(first_detection == 0, log_seed, -jnp.inf)

    def _step(log_alpha_prev, args):
        t, transition_t, emission_t = args
        propagated = _logsumexp(
            log_alpha_prev[:, jnp.newaxis] + _safe_log(transition_t), axis=0
        ) + _safe_log(emission_t[:, observations[t]])
        log_alpha = jnp.where(
            (t > first_detection) & (first_detection >= 0),
            propagated,
            jnp.where(t == first_detection, log_seed, -jnp.inf),
        )
        return log_alpha, log_alpha

    _, log_alphas = jax.lax.scan(
        _step, log_alpha_0, (jnp.arange(1, n_occasions), transition, emission)
    )
    log_forward_probabilities = jnp.concatenate(
        (log_alpha_0[jnp.newaxis], log_alphas)
    )
    log_likelihood = jnp.where(
        first_detection >= 0, _logsumexp(log_forward_probabilities[-1]), 0.0
    )

    return log_likelihood, log_forward_probabilities


forward_log = jax.jit(forward_log)


def subject_log_likelihood(
    observations: ArrayLike,
    first_detection: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
    method: str = "scaled",
) -> jnp.ndarray:
    """Log-likelihood of one capture history, hidden states summed out.

    Parameters
    ----------
    observations : jnp.ndarray, shape (n_occasions,)
    first_detection : int
    transition, emission : jnp.ndarray
        See `forward_unscaled`.
    seed_symbols : jnp.ndarray, shape (n_states,), optional
    method : {"scaled", "unscaled", "log"}, optional
        Numerical scheme of the forward recursion, by default "scaled".

    Returns
    -------
    log_likelihood : float
    """
    if method == "scaled":
        forward = forward_scaled
    elif method == "unscaled":
        forward = forward_unscaled
    elif method == "log":
        forward = forward_log
    else:
        raise ConfigurationError(
            f"Unknown forward method '{method}'",
            hint=f"Use one of {', '.join(repr(m) for m in FORWARD_METHODS)}",
        )
    return forward(observations, first_detection, transition, emission, seed_symbols)[0]


subject_log_likelihood = jax.jit(subject_log_likelihood, static_argnames=("method",))


def _subject_axes(transition: jnp.ndarray, emission: jnp.ndarray) -> tuple:
    """vmap axes for (observations, first_detection, transition, emission)."""
    return (
        0,
        0,
        0 if transition.ndim == 4 else None,
        0 if emission.ndim == 4 else None,
    )


def subject_log_likelihoods(
    observations: ArrayLike,
    first_detections: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
    method: str = "scaled",
) -> jnp.ndarray:
    """Log-likelihood of every capture history.

    Parameters
    ----------
    observations : jnp.ndarray, shape (n_subjects, n_occasions)
    first_detections : jnp.ndarray, shape (n_subjects,)
        First-detection index per subject, -1 for never detected.
    transition : jnp.ndarray
        Shape (n_states, n_states), (n_occasions - 1, n_states, n_states) or
        (n_subjects, n_occasions - 1, n_states, n_states).
    emission : jnp.ndarray
        Shape (n_states, n_symbols), (n_occasions - 1, n_states, n_symbols) or
        (n_subjects, n_occasions - 1, n_states, n_symbols).
    seed_symbols : jnp.ndarray, shape (n_states,), optional
    method : {"scaled", "unscaled", "log"}, optional

    Returns
    -------
    log_likelihoods : jnp.ndarray, shape (n_subjects,)
        Zero for subjects that were never detected.
    """
    transition = jnp.asarray(transition)
    emission = jnp.asarray(emission)
    if seed_symbols is None:
        seed_symbols = jnp.arange(transition.shape[-1])

    return jax.vmap(
        partial(subject_log_likelihood, method=method),
        in_axes=(*_subject_axes(transition, emission), None),
    )(observations, first_detections, transition, emission, seed_symbols)


subject_log_likelihoods = jax.jit(
    subject_log_likelihoods, static_argnames=("method",)
)


def total_log_likelihood(
    observations: ArrayLike,
    first_detections: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
    method: str = "scaled",
) -> jnp.ndarray:
    """Sum of the per-subject log-likelihoods.

    This is the term an external sampler adds to its log-density. Parameters
    are as for `subject_log_likelihoods`.
    """
    return subject_log_likelihoods(
        observations,
        first_detections,
        transition,
        emission,
        seed_symbols,
        method=method,
    ).sum()


total_log_likelihood = jax.jit(total_log_likelihood, static_argnames=("method",))


def backward_probabilities(
    observations: ArrayLike,
    first_detection: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
) -> jnp.ndarray:
    """Backward recursion renormalised at every occasion.

    ``beta[t, j] ∝ sum_k transition[t, j, k] * emission[t, k, y[t+1]] *
    beta[t+1, k]`` with ``beta[-1] = 1``.

    Returns
    -------
    backward_probabilities : jnp.ndarray, shape (n_occasions, n_states)
        Rows before the first detection are zero.
    """
    observations, transition, emission, _ = _prepare(
        observations, transition, emission, None
    )
    n_occasions = observations.shape[0]
    n_states = transition.shape[-1]
    beta_last = jnp.where(
        first_detection >= 0, jnp.ones((n_states,), dtype=transition.dtype), 0.0
    )

    def _step(beta_next, args):
        t, transition_t, emission_t = args
        beta, _ = _normalize(
            transition_t @ (emission_t[:, observations[t + 1]] * beta_next)
        )
        beta = jnp.where(t >= first_detection, beta, 0.0)
        return beta, beta

    _, betas = jax.lax.scan(
        _step,
        beta_last,
        (jnp.arange(n_occasions - 1), transition, emission),
        reverse=True,
    )

    return jnp.concatenate((betas, beta_last[jnp.newaxis]))


backward_probabilities = jax.jit(backward_probabilities)


def smoother(
    observations: ArrayLike,
    first_detection: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
) -> jnp.ndarray:
    """Posterior state probabilities of one subject given its whole history.

    Returns
    -------
    posterior : jnp.ndarray, shape (n_occasions, n_states)
        ``P(z_t | y_{first:T})``; rows before the first detection are zero.
    """
    _, (filtered_probs, _) = forward_scaled(
        observations, first_detection, transition, emission, seed_symbols
    )
    backward_probs = backward_probabilities(
        observations, first_detection, transition, emission
    )
    posterior, _ = _normalize(filtered_probs * backward_probs, axis=-1)
    return posterior


smoother = jax.jit(smoother)


def sample_trajectory(
    key: jax.Array,
    observations: ArrayLike,
    first_detection: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
) -> jnp.ndarray:
    """Draw one latent state trajectory given the whole capture history.

    Forward filtering, then backward sampling from
    ``P(z_t = j | z_{t+1} = k, y) ∝ filtered[t, j] * transition[t, j, k]``.

    Returns
    -------
    states : jnp.ndarray, shape (n_occasions,)
        Sampled state per occasion; -1 before the first detection.
    """
    observations, transition, emission, seed_symbols = _prepare(
        observations, transition, emission, seed_symbols
    )
    n_occasions = observations.shape[0]
    _, (filtered_probs, _) = forward_scaled(
        observations, first_detection, transition, emission, seed_symbols
    )
    keys = jax.random.split(key, n_occasions)
    last_state = jax.random.categorical(keys[-1], _safe_log(filtered_probs[-1]))

    def _step(state_next, args):
        key_t, filtered_t, transition_t = args
        logits = _safe_log(filtered_t) + _safe_log(transition_t[:, state_next])
        state = jax.random.categorical(key_t, logits)
        return state, state

    _, states = jax.lax.scan(
        _step,
        last_state,
        (keys[:-1], filtered_probs[:-1], transition),
        reverse=True,
    )
    states = jnp.concatenate((states, last_state[jnp.newaxis]))
    is_tracked = (jnp.arange(n_occasions) >= first_detection) & (first_detection >= 0)

    return jnp.where(is_tracked, states, -1)


sample_trajectory = jax.jit(sample_trajectory)


def viterbi(
    observations: ArrayLike,
    first_detection: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
) -> jnp.ndarray:
    """Compute the most likely state sequence of one subject.

    Returns
    -------
    most_likely_states : jnp.ndarray, shape (n_occasions,)
        -1 before the first detection.
    """
    observations, transition, emission, seed_symbols = _prepare(
        observations, transition, emission, seed_symbols
    )
    n_occasions = observations.shape[0]
    log_seed = _safe_log(
        _seed(observations, first_detection, seed_symbols, transition.dtype)
    )
    delta_0 = jnp.where(first_detection == 0, log_seed, -jnp.inf)

    def _forward_pass(delta_prev, args):
        t, transition_t, emission_t = args
        scores = delta_prev[:, jnp.newaxis] + _safe_log(transition_t)
        best_prev_state = jnp.argmax(scores, axis=0)
        delta = jnp.max(scores, axis=0) + _safe_log(emission_t[:, observations[t]])
        delta = jnp.where(
            (t > first_detection) & (first_detection >= 0),
            delta,
            jnp.where(t == first_detection, log_seed, -jnp.inf),
        )
        return delta, best_prev_state

    delta_last, best_prev_states = jax.lax.scan(
        _forward_pass, delta_0, (jnp.arange(1, n_occasions), transition, emission)
    )
    last_state = jnp.argmax(delta_last)

    def _backward_pass(state, best_prev_state_t):
        prev_state = best_prev_state_t[state]
        return prev_state, prev_state

    _, states = jax.lax.scan(
        _backward_pass, last_state, best_prev_states, reverse=True
    )
    states = jnp.concatenate((states, last_state[jnp.newaxis]))
    is_tracked = (jnp.arange(n_occasions) >= first_detection) & (first_detection >= 0)

    return jnp.where(is_tracked, states, -1)


viterbi = jax.jit(viterbi)


def posterior_marginals(
    observations: ArrayLike,
    first_detections: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
) -> jnp.ndarray:
    """`smoother` for every subject.

    Returns
    -------
    posterior : jnp.ndarray, shape (n_subjects, n_occasions, n_states)
    """
    transition = jnp.asarray(transition)
    emission = jnp.asarray(emission)
    return jax.vmap(smoother, in_axes=(*_subject_axes(transition, emission), None))(
        observations, first_detections, transition, emission, seed_symbols
    )


def most_likely_states(
    observations: ArrayLike,
    first_detections: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
) -> jnp.ndarray:
    """`viterbi` for every subject.

    Returns
    -------
    states : jnp.ndarray, shape (n_subjects, n_occasions)
    """
    transition = jnp.asarray(transition)
    emission = jnp.asarray(emission)
    return jax.vmap(viterbi, in_axes=(*_subject_axes(transition, emission), None))(
        observations, first_detections, transition, emission, seed_symbols
    )


def sample_latent_states(
    key: jax.Array,
    observations: ArrayLike,
    first_detections: ArrayLike,
    transition: ArrayLike,
    emission: ArrayLike,
    seed_symbols: ArrayLike | None = None,
    n_samples: int = 1,
) -> jnp.ndarray:
    """Draw latent trajectories for every subject.

    Returns
    -------
    states : jnp.ndarray, shape (n_samples, n_subjects, n_occasions)
        -1 before each subject's first detection.
    """
    transition = jnp.asarray(transition)
    emission = jnp.asarray(emission)
    observations = jnp.asarray(observations)
    n_subjects = observations.shape[0]

    sample_subjects = jax.vmap(
        sample_trajectory,
        in_axes=(0, *_subject_axes(transition, emission), None),
    )
    keys = jax.random.split(key, n_samples * n_subjects)
    keys = keys.reshape((n_samples, n_subjects, *keys.shape[1:]))
    return jax.vmap(sample_subjects, in_axes=(0, None, None, None, None, None))(
        keys, observations, first_detections, transition, emission, seed_symbols
    )


def _check_method(method: str) -> None:
    if method not in FORWARD_METHODS:
        raise ConfigurationError(
            f"Unknown forward method '{method}'",
            hint=f"Use one of {', '.join(repr(m) for m in FORWARD_METHODS)}",
        )


def resolve_seed_symbols(
    seed_symbols: ArrayLike | None, n_states: int, n_symbols: int
) -> np.ndarray:
    """Default and check the detection symbol of each hidden state."""
    if seed_symbols is None:
        return np.arange(n_states)
    seed_symbols = ensure_integer_array(seed_symbols, "seed_symbols")
    if seed_symbols.shape != (n_states,):
        raise ValidationError(
            "seed_symbols needs one symbol per hidden state",
            expected=f"shape ({n_states},)",
            got=f"shape {seed_symbols.shape}",
        )
    ensure_symbols_in_alphabet(seed_symbols, "seed_symbols", n_symbols)
    return seed_symbols


def as_float_table(table: ArrayLike) -> np.ndarray:
    """Table as a NumPy array, keeping a floating dtype and promoting others."""
    table = np.asarray(table)
    if not np.issubdtype(table.dtype, np.floating):
        table = table.astype(float)
    return table


def row_sum_tolerance(tolerance: float, *tables: np.ndarray) -> float:
    """Row-sum tolerance no tighter than the rounding error of the tables.

    Tables built with JAX default to float32, whose row sums can be off by
    about 1e-7 even when the rates are exact.

    Examples
    --------
    >>> row_sum_tolerance(1e-9, np.eye(2))
    1e-09
    >>> row_sum_tolerance(1e-9, np.eye(2, dtype=np.float32)) > 1e-6
    True
    """
    eps = max(np.finfo(np.asarray(table).dtype).eps for table in tables)
    return max(tolerance, 16 * float(eps))


def validate_model_tables(
    transition: TransitionTable,
    emission: EmissionTable,
    n_subjects: int,
    n_occasions: int,
    tolerance: float = 1e-9,
    absorbing_state: int | None = None,
    not_observed: int | None = None,
) -> None:
    """Check shapes and row sums of the transition and emission tables.

    Parameters
    ----------
    transition : np.ndarray
    emission : np.ndarray
    n_subjects, n_occasions : int
    tolerance : float, optional
        Allowed deviation of each row sum from one, by default 1e-9. Widened
        to the rounding error of the table dtype for single-precision tables.
    absorbing_state : int, optional
        If given, also check that this state is absorbing and only emits
        ``not_observed``.
    not_observed : int, optional
        Defaults to the last symbol.

    Raises
    ------
    ValidationError
    DataError
    """
    transition = as_float_table(transition)
    emission = as_float_table(emission)
    n_states = transition.shape[-1]
    n_symbols = emission.shape[-1]
    tolerance = row_sum_tolerance(tolerance, transition, emission)

    ensure_table_shape(
        transition, "transition", n_states, n_states, n_subjects, n_occasions
    )
    ensure_table_shape(
        emission, "emission", n_states, n_symbols, n_subjects, n_occasions
    )
    ensure_stochastic_rows(transition, "transition", tolerance=tolerance)
    ensure_stochastic_rows(emission, "emission", tolerance=tolerance)

    if absorbing_state is not None:
        if not_observed is None:
            not_observed = n_symbols - 1
        ensure_absorbing_state(
            transition, emission, absorbing_state, not_observed, tolerance=tolerance
        )


def compute_log_likelihoods(
    observations: ArrayLike,
    transition: TransitionTable,
    emission: EmissionTable,
    not_observed: int | None = None,
    seed_symbols: ArrayLike | None = None,
    method: str = "scaled",
    tolerance: float = 1e-9,
    on_underflow: str = "raise",
    absorbing_state: int | None = None,
) -> np.ndarray:
    """Validated per-subject log-likelihoods.

    Parameters
    ----------
    observations : array-like, shape (n_occasions,) or (n_subjects, n_occasions)
    transition : array-like
        See `subject_log_likelihoods` for the accepted shapes.
    emission : array-like
    not_observed : int, optional
        The not-observed symbol, by default the last symbol.
    seed_symbols : array-like, shape (n_states,), optional
        Detection symbol of each state, by default ``arange(n_states)``.
    method : {"scaled", "unscaled", "log"}, optional
    tolerance : float, optional
        Row-sum tolerance of the tables, by default 1e-9.
    on_underflow : {"raise", "warn"}, optional
        What to do when a detected subject gets a non-finite log-likelihood.
    absorbing_state : int, optional
        Also check that this state is absorbing and unobservable.

    Returns
    -------
    log_likelihoods : np.ndarray, shape (n_subjects,)
        Zero for never-detected subjects.

    Raises
    ------
    ValidationError
        Invalid observations or tables.
    ConfigurationError
        Unknown ``method`` or ``on_underflow``.
    DegenerateLikelihoodError
        A detected subject's likelihood is zero or NaN (``on_underflow="raise"``).
    """
    _check_method(method)
    if on_underflow not in UNDERFLOW_ACTIONS:
        raise ConfigurationError(
            f"Unknown on_underflow action '{on_underflow}'",
            hint="Use 'raise' or 'warn'",
        )

    transition = as_float_table(transition)
    emission = as_float_table(emission)
    n_states = transition.shape[-1]
    n_symbols = emission.shape[-1]
    if not_observed is None:
        not_observed = n_symbols - 1

    observations = validate_capture_histories(observations, n_symbols, not_observed)
    n_subjects, n_occasions = observations.shape
    validate_model_tables(
        transition,
        emission,
        n_subjects,
        n_occasions,
        tolerance=tolerance,
        absorbing_state=absorbing_state,
        not_observed=not_observed,
    )
    seed_symbols = resolve_seed_symbols(seed_symbols, n_states, n_symbols)
    first = first_detections(observations, not_observed)
    logger.debug(
        "%d subjects over %d occasions, %d never detected",
        n_subjects,
        n_occasions,
        np.sum(first == NEVER_DETECTED),
    )

    log_likelihoods = np.asarray(
        subject_log_likelihoods(
            jnp.asarray(observations),
            jnp.asarray(first),
            jnp.asarray(transition),
            jnp.asarray(emission),
            jnp.asarray(seed_symbols),
            method=method,
        )
    )
    _report_degenerate(
        log_likelihoods,
        first,
        observations,
        transition,
        emission,
        seed_symbols,
        method,
        on_underflow,
    )

    return log_likelihoods


def _report_degenerate(
    log_likelihoods: np.ndarray,
    first: np.ndarray,
    observations: np.ndarray,
    transition: np.ndarray,
    emission: np.ndarray,
    seed_symbols: np.ndarray,
    method: str,
    on_underflow: str,
) -> None:
    """Raise or warn when a detected subject has a non-finite log-likelihood.

    Distinguishes histories that are impossible under the model (zero in
    log-space too) from underflow of the chosen method.
    """
    is_degenerate = (first != NEVER_DETECTED) & ~np.isfinite(log_likelihoods)
    if not np.any(is_degenerate):
        return

    subjects = np.flatnonzero(is_degenerate)
    if method == "log":
        log_space = log_likelihoods
    else:
        log_space = np.asarray(
            subject_log_likelihoods(
                jnp.asarray(observations),
                jnp.asarray(first),
                jnp.asarray(transition),
                jnp.asarray(emission),
                jnp.asarray(seed_symbols),
                method="log",
            )
        )
    underflowed = [int(s) for s in subjects if np.isfinite(log_space[s])]
    impossible = [int(s) for s in subjects if not np.isfinite(log_space[s])]

    problems, hints = [], []
    if underflowed:
        problems.append(
            f"Forward recursion ({method}) underflowed to zero probability "
            f"for subjects {underflowed}"
        )
        hints.append("Use method='scaled' or method='log' for long capture histories.")
    if impossible:
        problems.append(
            "Capture histories have zero probability under the given tables "
            f"for subjects {impossible}"
        )
        hints.append(
            "Check that no subject is observed after entering an absorbing "
            "state and that detection probabilities are not zero where a "
            "detection occurred."
        )
    message = "; ".join(problems)
    hint = " ".join(hints)
    subjects_found = sorted(underflowed + impossible)

    if on_underflow == "raise":
        raise DegenerateLikelihoodError(message, subjects=subjects_found, hint=hint)

    logger.warning(message)
    warnings.warn(message, RuntimeWarning)


def marginal_log_likelihood(
    observations: ArrayLike,
    transition: TransitionTable,
    emission: EmissionTable,
    not_observed: int | None = None,
    seed_symbols: ArrayLike | None = None,
    method: str = "scaled",
    tolerance: float = 1e-9,
    on_underflow: str = "raise",
    absorbing_state: int | None = None,
) -> float:
    """Validated total log-likelihood of all capture histories.

    See `compute_log_likelihoods` for the parameters.

    Returns
    -------
    log_likelihood : float
    """
    return float(
        np.sum(
            compute_log_likelihoods(
                observations,
                transition,
                emission,
                not_observed=not_observed,
                seed_symbols=seed_symbols,
                method=method,
                tolerance=tolerance,
                on_underflow=on_underflow,
                absorbing_state=absorbing_state,
            )
        )
    )
