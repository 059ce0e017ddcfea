"""Custom exceptions for capture_hmm.

Error messages should tell the caller what was expected, what was received,
and how to fix it.

Usage Guidelines
----------------
- **ValidationError**: Inputs don't meet requirements. Use when tables are not
  row-stochastic, shapes disagree, symbols fall outside the observation
  alphabet, or rate parameters leave [0, 1].

- **DataError**: Data values are problematic (NaN, Inf).

- **ConfigurationError**: Options are individually valid but incompatible, or
  an option value is not recognised (e.g. an unknown forward ``method``).

- **DegenerateLikelihoodError**: The forward recursion underflowed to zero
  (or produced NaN) for a detected subject. Raised instead of silently
  returning ``-inf``.

- **FittingError**: Sampling with the external inference engine failed.

All exceptions inherit from **CaptureHMMError**, allowing users to catch
any package-specific error with a single except clause.

Examples
--------
>>> from capture_hmm.exceptions import ValidationError, CaptureHMMError
>>> try:
...     raise ValidationError(
...         "transition must be row-stochastic",
...         expected="all row sums = 1.0",
...         got="row 2 sums to 0.9",
...         hint="Normalize each row",
...     )
... except CaptureHMMError as e:
...     print(type(e).__name__)
ValidationError
"""


class CaptureHMMError(Exception):
    """Base exception for all capture_hmm errors."""

    pass


class ValidationError(CaptureHMMError):
    """Raised when input validation fails.

    Parameters
    ----------
    message : str
        Description of what went wrong
    expected : str, optional
        What was expected
    got : str, optional
        What was actually received
    hint : str, optional
        Actionable suggestion for fixing the error
    example : str, optional
        Code snippet showing correct usage
    """

    def __init__(
        self,
        message: str,
        expected: str | None = None,
        got: str | None = None,
        hint: str | None = None,
        example: str | None = None,
    ):
        parts = [message]

        if expected is not None:
            parts.append(f"\nExpected: {expected}")

        if got is not None:
            parts.append(f"Got: {got}")

        if hint is not None:
            parts.append(f"\nHint: {hint}")

        if example is not None:
            parts.append(f"\nExample:\n{example}")

        super().__init__("\n".join(parts))


class ConfigurationError(CaptureHMMError):
    """Raised when configuration is invalid or inconsistent.

    Parameters
    ----------
    message : str
        Description of the configuration problem
    hint : str, optional
        Actionable suggestion for fixing the configuration

    Examples
    --------
    >>> raise ConfigurationError(
    ...     "Unknown forward method 'fast'",
    ...     hint="Use one of 'scaled', 'unscaled' or 'log'",
    ... )
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        if hint is not None:
            message = f"{message}\n\nHint: {hint}"
        super().__init__(message)


class DataError(CaptureHMMError):
    """Raised when input data has problems (NaN, Inf).

    Parameters
    ----------
    message : str
        Description of the data problem
    data_name : str, optional
        Name of the problematic data variable
    hint : str, optional
        Actionable suggestion for fixing the data issue
    """

    def __init__(
        self, message: str, data_name: str | None = None, hint: str | None = None
    ) -> None:
        if data_name is not None:
            message = f"{message} (data: {data_name})"
        if hint is not None:
            message = f"{message}\n\nHint: {hint}"
        super().__init__(message)


class DegenerateLikelihoodError(CaptureHMMError):
    """Raised when a detected subject's likelihood underflows to zero.

    The unscaled forward recursion multiplies one probability per occasion,
    so long capture histories can drop below the smallest representable
    float. The scaled and log-space methods avoid this.

    Parameters
    ----------
    message : str
        Description of the degenerate result
    subjects : sequence of int, optional
        Indices of the affected subjects
    hint : str, optional
        Actionable suggestion
    """

    def __init__(
        self,
        message: str,
        subjects: list[int] | None = None,
        hint: str | None = None,
    ) -> None:
        self.subjects = [] if subjects is None else list(subjects)
        if subjects is not None:
            shown = ", ".join(str(s) for s in self.subjects[:5])
            if len(self.subjects) > 5:
                shown += f", ... ({len(self.subjects) - 5} more)"
            message = f"{message} (subjects: {shown})"
        if hint is not None:
            message = f"{message}\n\nHint: {hint}"
        super().__init__(message)


class FittingError(CaptureHMMError):
    """Raised when posterior sampling fails.

    Parameters
    ----------
    message : str
        Description of what went wrong during fitting
    hint : str, optional
        Actionable suggestion for fixing the error
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        if hint is not None:
            message = f"{message}\n\nHint: {hint}"
        super().__init__(message)
