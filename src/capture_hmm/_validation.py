"""Internal validation utilities for parameter checking.

These functions are for internal use only (note the leading underscore in
module name). They operate on concrete NumPy arrays and raise the package's
exceptions; the jitted kernels in ``capture_hmm.core`` never call them.
"""

from typing import Any

import numpy as np

from capture_hmm.exceptions import DataError, ValidationError


def ensure_probability_distribution(
    arr: np.ndarray, name: str, tolerance: float = 1e-9
) -> None:
    """Verify array is a valid probability distribution (non-negative, sums to 1).

    Parameters
    ----------
    arr : np.ndarray, shape (n,)
    name : str
        Name of the array for error messages
    tolerance : float, optional
        Tolerance for sum check, by default 1e-9

    Raises
    ------
    ValidationError
        If array has negative entries or does not sum to 1.0 within tolerance

    Examples
    --------
    >>> ensure_probability_distribution(np.array([0.5, 0.5]), "probs")  # OK
    >>> ensure_probability_distribution(np.array([0.6, 0.6]), "probs")  # Raises
    """
    ensure_all_non_negative(arr, name)
    arr_sum = np.sum(arr)
    if not np.isclose(arr_sum, 1.0, rtol=0.0, atol=tolerance):
        raise ValidationError(
            f"{name} must be a valid probability distribution",
            expected="sum = 1.0",
            got=f"sum = {arr_sum:.6f}",
            hint=f"Normalize the array: {name} = {name} / {name}.sum()",
            example=f"    {name} = np.array([0.25, 0.25, 0.25, 0.25])  # sums to 1.0",
        )


def ensure_all_finite(arr: np.ndarray, name: str) -> None:
    """Verify all array elements are finite (no NaN or Inf).

    Raises
    ------
    DataError
        If array contains NaN or Inf values
    """
    if not np.all(np.isfinite(arr)):
        n_nan = np.sum(np.isnan(arr))
        n_inf = np.sum(np.isinf(arr))
        raise DataError(
            f"Found non-finite values in {name}",
            data_name=name,
            hint=f"Array contains {n_nan} NaN value(s) and {n_inf} Inf value(s). Check your data for missing or invalid values.",
        )


def ensure_all_non_negative(arr: np.ndarray, name: str) -> None:
    """Verify all array elements are non-negative.

    Raises
    ------
    ValidationError
        If array contains negative values
    """
    if np.any(arr < 0):
        n_negative = np.sum(arr < 0)
        min_val = np.min(arr)
        raise ValidationError(
            f"{name} must contain only non-negative values",
            expected="all values >= 0",
            got=f"{n_negative} negative value(s), minimum = {min_val:.6f}",
            hint="Probabilities cannot be negative; check how the table was assembled",
        )


def ensure_in_range(arr: np.ndarray, name: str, low: float, high: float) -> None:
    """Verify all array elements are within a range [low, high].

    Examples
    --------
    >>> ensure_in_range(np.array([0.5, 0.8]), "survival", 0.0, 1.0)  # OK
    >>> ensure_in_range(np.array([1.5]), "survival", 0.0, 1.0)  # Raises
    """
    arr = np.asarray(arr)
    ensure_all_finite(arr, name)
    if np.any(arr < low) or np.any(arr > high):
        min_val = np.min(arr)
        max_val = np.max(arr)
        raise ValidationError(
            f"{name} values must be in range [{low}, {high}]",
            expected=f"all values in [{low}, {high}]",
            got=f"values in [{min_val:.6f}, {max_val:.6f}]",
            hint=f"Use np.clip({name}, {low}, {high}) to clamp values to valid range",
        )


def ensure_stochastic_rows(
    table: np.ndarray, name: str, tolerance: float = 1e-9
) -> None:
    """Verify every row (last axis) of a table is a probability distribution.

    Works for a single matrix, a stack over occasions, or a stack over
    subjects and occasions.

    Parameters
    ----------
    table : np.ndarray, shape (..., n_rows, n_columns)
    name : str
        Name of the table for error messages
    tolerance : float, optional
        Tolerance for row sum check, by default 1e-9

    Raises
    ------
    ValidationError
        If any entry is negative or any row does not sum to 1.0 within tolerance

    Examples
    --------
    >>> ensure_stochastic_rows(np.eye(3), "transition")  # OK
    >>> bad = np.array([[0.5, 0.5], [0.6, 0.3]])  # Row 1 sums to 0.9
    >>> ensure_stochastic_rows(bad, "transition")  # Raises
    """
    table = np.asarray(table)
    ensure_all_finite(table, name)
    ensure_all_non_negative(table, name)

    row_sums = np.sum(table, axis=-1)
    bad_rows = ~np.isclose(row_sums, 1.0, rtol=0.0, atol=tolerance)

    if np.any(bad_rows):
        bad_indices = np.argwhere(bad_rows)
        bad_sums = row_sums[bad_rows]
        raise ValidationError(
            f"{name} must be row-stochastic (each row sums to 1)",
            expected=f"all row sums = 1.0 (within {tolerance})",
            got=f"{len(bad_indices)} row(s) with invalid sums: index {bad_indices[0].tolist()} sums to {bad_sums[0]:.12f}",
            hint=f"Normalize each row: {name} = {name} / {name}.sum(axis=-1, keepdims=True)",
        )


def ensure_integer_array(arr: Any, name: str) -> np.ndarray:
    """Verify value is an integer-valued array and return it as ``np.int64``.

    Raises
    ------
    ValidationError
        If the values are not integers
    """
    arr = np.asarray(arr)
    if arr.dtype.kind in "iu":
        return arr.astype(np.int64)
    if arr.dtype.kind == "f" and np.all(np.isfinite(arr)) and np.all(arr == np.round(arr)):
        return arr.astype(np.int64)
    raise ValidationError(
        f"{name} must contain integer symbols",
        expected="integer array",
        got=f"array with dtype {arr.dtype}",
        hint="Encode each observation as an integer index into the observation alphabet",
        example=f"    {name} = np.array([[0, 0, 2, 1]])",
    )


def ensure_symbols_in_alphabet(
    observations: np.ndarray, name: str, n_symbols: int
) -> None:
    """Verify every symbol is in ``0 .. n_symbols - 1``.

    Raises
    ------
    ValidationError
        If any symbol lies outside the alphabet
    """
    bad = (observations < 0) | (observations >= n_symbols)
    if np.any(bad):
        first_bad = np.argwhere(bad)[0].tolist()
        raise ValidationError(
            f"{name} contains symbols outside the observation alphabet",
            expected=f"symbols in [0, {n_symbols - 1}]",
            got=f"{np.sum(bad)} out-of-alphabet value(s), first at index {first_bad} = {observations[tuple(first_bad)]}",
            hint="Check the coding of the not-observed symbol and the number of emission columns",
        )


def ensure_positive_count(value: int, name: str) -> None:
    """Verify a count (subjects, occasions, states) is a positive integer.

    Examples
    --------
    >>> ensure_positive_count(3, "n_occasions")  # OK
    >>> ensure_positive_count(0, "n_occasions")  # Raises
    """
    if int(value) != value or value < 1:
        raise ValidationError(
            f"Invalid value for {name}",
            expected=f"{name} >= 1",
            got=f"{name} = {value}",
            hint="Counts must be positive integers",
        )


def ensure_table_shape(
    table: np.ndarray,
    name: str,
    n_rows: int,
    n_columns: int,
    n_subjects: int,
    n_occasions: int,
) -> None:
    """Verify a transition/emission table has one of the accepted shapes.

    Accepted: ``(n_rows, n_columns)``, ``(n_occasions - 1, n_rows, n_columns)``
    or ``(n_subjects, n_occasions - 1, n_rows, n_columns)``.

    Raises
    ------
    ValidationError
        If the shape is not accepted
    """
    accepted = [
        (n_rows, n_columns),
        (n_occasions - 1, n_rows, n_columns),
        (n_subjects, n_occasions - 1, n_rows, n_columns),
    ]
    if table.shape not in accepted:
        raise ValidationError(
            f"{name} has an unexpected shape",
            expected=" or ".join(str(shape) for shape in accepted),
            got=f"shape {table.shape}",
            hint="Time-varying tables need one entry per step between occasions (n_occasions - 1)",
        )


def ensure_absorbing_state(
    transition: np.ndarray,
    emission: np.ndarray,
    state: int,
    not_observed: int,
    tolerance: float = 1e-9,
) -> None:
    """Verify ``state`` is absorbing and only emits the not-observed symbol.

    Raises
    ------
    ValidationError
        If the state leaks transition mass or can be observed
    """
    stay = np.asarray(transition)[..., state, state]
    hidden = np.asarray(emission)[..., state, not_observed]
    if not np.allclose(stay, 1.0, rtol=0.0, atol=tolerance):
        raise ValidationError(
            f"State {state} must be absorbing",
            expected=f"transition[..., {state}, {state}] = 1.0",
            got=f"minimum self-transition {np.min(stay):.6f}",
            hint="A dead/unavailable state routes all transition mass to itself",
        )
    if not np.allclose(hidden, 1.0, rtol=0.0, atol=tolerance):
        raise ValidationError(
            f"State {state} must always emit the not-observed symbol",
            expected=f"emission[..., {state}, {not_observed}] = 1.0",
            got=f"minimum probability {np.min(hidden):.6f}",
            hint="A dead/unavailable state can never be detected",
        )
