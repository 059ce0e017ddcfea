"""Capture histories: validation and the first-detection scan.

A capture history is one row of integer observation symbols, one per
sampling occasion. The not-observed symbol marks occasions on which the
subject was not detected; the likelihood of a history is conditioned on its
first detection, so subjects that are never detected are excluded.
"""

import numpy as np

from capture_hmm._validation import (
    ensure_integer_array,
    ensure_positive_count,
    ensure_symbols_in_alphabet,
)
from capture_hmm.exceptions import ValidationError
from capture_hmm.types import CaptureHistories

NEVER_DETECTED = -1
"""Sentinel first-detection index for a subject that was never detected."""


def first_detection(history: np.ndarray, not_observed: int) -> int:
    """Index of the first occasion on which the subject was detected.

    Parameters
    ----------
    history : np.ndarray, shape (n_occasions,)
        Observation symbols of one subject.
    not_observed : int
        Symbol meaning "not detected".

    Returns
    -------
    first : int
        0-based occasion index, or ``NEVER_DETECTED`` if every entry is
        ``not_observed``.

    Examples
    --------
    >>> first_detection(np.array([2, 2, 0, 1]), not_observed=2)
    2
    >>> first_detection(np.array([2, 2, 2]), not_observed=2)
    -1
    """
    detected = np.flatnonzero(np.asarray(history) != not_observed)
    if detected.size == 0:
        return NEVER_DETECTED
    return int(detected[0])


def first_detections(observations: CaptureHistories, not_observed: int) -> np.ndarray:
    """First-detection index of every subject.

    Parameters
    ----------
    observations : np.ndarray, shape (n_subjects, n_occasions)
    not_observed : int

    Returns
    -------
    first : np.ndarray, shape (n_subjects,)
        0-based occasion index per subject; ``NEVER_DETECTED`` where the
        subject was never detected.
    """
    observations = np.atleast_2d(observations)
    is_detected = observations != not_observed
    first = np.argmax(is_detected, axis=1).astype(np.int64)
    first[~is_detected.any(axis=1)] = NEVER_DETECTED
    return first


def detected_subjects(observations: CaptureHistories, not_observed: int) -> np.ndarray:
    """Boolean mask of subjects detected at least once."""
    return first_detections(observations, not_observed) != NEVER_DETECTED


def validate_capture_histories(
    observations: np.ndarray, n_symbols: int, not_observed: int | None = None
) -> CaptureHistories:
    """Check capture histories and return them as a 2-D ``np.int64`` array.

    Parameters
    ----------
    observations : array-like, shape (n_occasions,) or (n_subjects, n_occasions)
    n_symbols : int
        Size of the observation alphabet.
    not_observed : int, optional
        The not-observed symbol; checked to lie in the alphabet.

    Returns
    -------
    observations : np.ndarray, shape (n_subjects, n_occasions)

    Raises
    ------
    ValidationError
        If the array is empty, has more than two dimensions, holds
        non-integer values or symbols outside ``0 .. n_symbols - 1``.
    """
    ensure_positive_count(n_symbols, "n_symbols")
    observations = ensure_integer_array(observations, "observations")
    if observations.ndim == 1:
        observations = observations[np.newaxis]
    if observations.ndim != 2:
        raise ValidationError(
            "observations must be a 1- or 2-dimensional array",
            expected="array with shape (n_subjects, n_occasions)",
            got=f"array with shape {observations.shape}",
        )
    n_subjects, n_occasions = observations.shape
    ensure_positive_count(n_subjects, "n_subjects")
    ensure_positive_count(n_occasions, "n_occasions")
    ensure_symbols_in_alphabet(observations, "observations", n_symbols)

    if not_observed is not None and not 0 <= not_observed < n_symbols:
        raise ValidationError(
            "not_observed must be a symbol of the observation alphabet",
            expected=f"0 <= not_observed < {n_symbols}",
            got=f"not_observed = {not_observed}",
        )

    return observations
