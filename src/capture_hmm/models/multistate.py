"""Multi-state capture-recapture estimator.

Subjects move between ``n_live_states`` live states (e.g. sites) and can die
between occasions. Detection depends on the current live state. With one
live state the model is the Cormack-Jolly-Seber model.
"""

from logging import getLogger

import jax
import jax.numpy as jnp
import numpy as np
import numpyro
import numpyro.distributions as dist
import xarray as xr
from jax.typing import ArrayLike

from capture_hmm._validation import (
    ensure_in_range,
    ensure_positive_count,
    ensure_stochastic_rows,
)
from capture_hmm.capture_histories import first_detections, validate_capture_histories
from capture_hmm.core import (
    FORWARD_METHODS,
    UNDERFLOW_ACTIONS,
    as_float_table,
    compute_log_likelihoods,
    most_likely_states,
    posterior_marginals,
    sample_latent_states,
    total_log_likelihood,
    validate_model_tables,
)
from capture_hmm.discrete_state_transitions import make_multistate_transition
from capture_hmm.exceptions import ConfigurationError, ValidationError
from capture_hmm.models._defaults import _ModelDefaults, _resolve_param
from capture_hmm.models.base import _BayesianModelBase
from capture_hmm.observation_models import make_multistate_emission
from capture_hmm.types import Rate, StateNames

logger = getLogger(__name__)

_DEFAULTS = _ModelDefaults.multistate_defaults()


class MultistateCaptureRecapture(_BayesianModelBase):
    """Multi-state survival model with a forward-algorithm likelihood.

    Hidden states are the live states ``0 .. n_live_states - 1`` followed by
    the absorbing dead state. Observation symbols are "seen in live state s"
    for each live state followed by "not observed".

    Parameters
    ----------
    n_live_states : int, optional
        Number of live states, by default 2.
    state_names : list of str, optional
        Names of the live states. Defaults to "A", "B", ...
    method : {"scaled", "unscaled", "log"}, optional
        Numerical scheme of the forward recursion, by default "scaled".
    time_varying : bool, optional
        Whether survival, movement and detection get one value per interval
        between occasions when fitting, by default False.
    tolerance : float, optional
        Row-sum tolerance of the tables, by default 1e-9.
    on_underflow : {"raise", "warn"}, optional
        Reaction to a detected subject with zero likelihood, by default "raise".
    survival_prior : tuple[float, float], optional
        Bounds of the uniform survival prior, by default (0, 1).
    detection_prior : tuple[float, float], optional
        Bounds of the uniform detection prior, by default (0, 1).
    movement_concentration : float, optional
        Concentration of the symmetric Dirichlet prior on each movement row,
        by default 1.0.

    Examples
    --------
    >>> model = MultistateCaptureRecapture(n_live_states=2)
    >>> movement = np.array([[0.7, 0.3], [0.2, 0.8]])
    >>> ll = model.log_likelihood(
    ...     np.array([[0, 0, 2, 1]]), survival=[0.8, 0.7], movement=movement,
    ...     detection=[0.9, 0.85])
    """

    def __init__(
        self,
        n_live_states: int = 2,
        state_names: StateNames = None,
        method: str = "scaled",
        time_varying: bool = False,
        tolerance: float = 1e-9,
        on_underflow: str = "raise",
        survival_prior: tuple[float, float] | None = None,
        detection_prior: tuple[float, float] | None = None,
        movement_concentration: float | None = None,
    ):
        self.n_live_states = n_live_states
        self.state_names = state_names
        self.method = method
        self.time_varying = time_varying
        self.tolerance = tolerance
        self.on_underflow = on_underflow
        self.survival_prior = survival_prior
        self.detection_prior = detection_prior
        self.movement_concentration = movement_concentration

    @property
    def n_states(self) -> int:
        """Live states plus the dead state."""
        return self.n_live_states + 1

    @property
    def not_observed(self) -> int:
        """The "not observed" symbol."""
        return self.n_live_states

    def _validate_config(self) -> None:
        ensure_positive_count(self.n_live_states, "n_live_states")
        if self.method not in FORWARD_METHODS:
            raise ConfigurationError(
                f"Unknown forward method '{self.method}'",
                hint=f"Use one of {', '.join(repr(m) for m in FORWARD_METHODS)}",
            )
        if self.on_underflow not in UNDERFLOW_ACTIONS:
            raise ConfigurationError(
                f"Unknown on_underflow action '{self.on_underflow}'",
                hint="Use 'raise' or 'warn'",
            )
        if self.state_names is not None and len(self.state_names) != self.n_live_states:
            raise ConfigurationError(
                f"Got {len(self.state_names)} state names for "
                f"{self.n_live_states} live states",
                hint="Name every live state; the dead state is added automatically",
            )

    def get_state_names(self) -> list[str]:
        """Names of all hidden states, dead state last."""
        if self.state_names is not None:
            live_names = list(self.state_names)
        elif self.n_live_states <= 26:
            live_names = [chr(ord("A") + i) for i in range(self.n_live_states)]
        else:
            live_names = [f"state_{i}" for i in range(self.n_live_states)]
        return [*live_names, "dead"]

    def _per_live_state(self, value: ArrayLike) -> jnp.ndarray:
        value = jnp.asarray(value)
        if value.ndim == 0:
            value = value[jnp.newaxis]
        return jnp.broadcast_to(value, (*value.shape[:-1], self.n_live_states))

    def make_tables(
        self,
        survival: Rate,
        movement: ArrayLike | None = None,
        detection: Rate = 1.0,
    ) -> tuple[jnp.ndarray, jnp.ndarray]:
        """Build the transition and emission tables from the rates.

        Parameters
        ----------
        survival : array-like, shape () or (..., n_live_states)
        movement : array-like, shape (..., n_live_states, n_live_states), optional
            Required with more than one live state.
        detection : array-like, shape () or (..., n_live_states)

        Returns
        -------
        transition : jnp.ndarray, shape (..., n_states, n_states)
        emission : jnp.ndarray, shape (..., n_states, n_states)
        """
        if movement is None:
            if self.n_live_states > 1:
                raise ConfigurationError(
                    "movement is required with more than one live state",
                    hint="Pass an (n_live_states, n_live_states) row-stochastic table",
                )
            movement = jnp.ones((1, 1))
        transition = make_multistate_transition(
            self._per_live_state(survival), movement
        )
        emission = make_multistate_emission(self._per_live_state(detection))
        return transition, emission

    def check_parameters(
        self,
        survival: Rate,
        movement: ArrayLike | None = None,
        detection: Rate = 1.0,
    ) -> None:
        """Check that the rates are probabilities.

        Raises
        ------
        ValidationError
        """
        ensure_in_range(np.asarray(survival, dtype=float), "survival", 0.0, 1.0)
        ensure_in_range(np.asarray(detection, dtype=float), "detection", 0.0, 1.0)
        if movement is not None:
            movement = np.asarray(movement, dtype=float)
            if movement.ndim < 2 or movement.shape[-2:] != (
                self.n_live_states,
                self.n_live_states,
            ):
                raise ValidationError(
                    "movement must have one row and column per live state",
                    expected=f"shape (..., {self.n_live_states}, {self.n_live_states})",
                    got=f"shape {movement.shape}",
                )
            ensure_stochastic_rows(movement, "movement", tolerance=self.tolerance)

    def _checked_inputs(
        self, observations, survival, movement, detection, validate_tables=True
    ):
        """Validated observations, first detections and tables as NumPy arrays.

        Tables keep the dtype JAX built them in. Pass ``validate_tables=False``
        when `_log_likelihoods` checks them next.
        """
        self._validate_config()
        self.check_parameters(survival, movement, detection)
        transition, emission = self.make_tables(survival, movement, detection)
        transition = as_float_table(transition)
        emission = as_float_table(emission)

        observations = validate_capture_histories(
            observations, self.n_states, self.not_observed
        )
        first = first_detections(observations, self.not_observed)
        if not validate_tables:
            return observations, first, transition, emission

        n_subjects, n_occasions = observations.shape
        validate_model_tables(
            transition,
            emission,
            n_subjects,
            n_occasions,
            tolerance=self.tolerance,
            absorbing_state=self.n_live_states,
            not_observed=self.not_observed,
        )
        return observations, first, transition, emission

    def _log_likelihoods(self, observations, transition, emission):
        logger.info("Computing log likelihood...")
        return compute_log_likelihoods(
            observations,
            transition,
            emission,
            not_observed=self.not_observed,
            method=self.method,
            tolerance=self.tolerance,
            on_underflow=self.on_underflow,
            absorbing_state=self.n_live_states,
        )

    def log_likelihood_per_subject(
        self,
        observations: ArrayLike,
        survival: Rate,
        movement: ArrayLike | None = None,
        detection: Rate = 1.0,
    ) -> np.ndarray:
        """Log-likelihood of each capture history.

        Parameters
        ----------
        observations : array-like, shape (n_subjects, n_occasions)
        survival, movement, detection : array-like
            See `make_tables`.

        Returns
        -------
        log_likelihoods : np.ndarray, shape (n_subjects,)
            Zero for subjects that were never detected.
        """
        observations, _, transition, emission = self._checked_inputs(
            observations, survival, movement, detection, validate_tables=False
        )
        return self._log_likelihoods(observations, transition, emission)

    def log_likelihood(
        self,
        observations: ArrayLike,
        survival: Rate,
        movement: ArrayLike | None = None,
        detection: Rate = 1.0,
    ) -> float:
        """Total log-likelihood of all capture histories."""
        return float(
            np.sum(
                self.log_likelihood_per_subject(
                    observations, survival, movement, detection
                )
            )
        )

    def predict(
        self,
        observations: ArrayLike,
        survival: Rate,
        movement: ArrayLike | None = None,
        detection: Rate = 1.0,
    ) -> xr.Dataset:
        """Posterior state probabilities and most likely states.

        Returns
        -------
        results : xr.Dataset
            ``posterior_state_probabilities`` (subject, occasion, state),
            ``most_likely_states`` (subject, occasion; -1 before first
            detection), ``log_likelihood`` and ``first_detection`` (subject).
        """
        observations, first, transition, emission = self._checked_inputs(
            observations, survival, movement, detection, validate_tables=False
        )
        log_likelihoods = self._log_likelihoods(observations, transition, emission)
        logger.info("Computing posterior...")
        posterior = np.asarray(
            posterior_marginals(
                jnp.asarray(observations),
                jnp.asarray(first),
                jnp.asarray(transition),
                jnp.asarray(emission),
            )
        )
        states = np.asarray(
            most_likely_states(
                jnp.asarray(observations),
                jnp.asarray(first),
                jnp.asarray(transition),
                jnp.asarray(emission),
            )
        )
        logger.info("Finished computing posterior...")

        return self._convert_results_to_xarray(
            posterior, states, log_likelihoods, first
        )

    def _convert_results_to_xarray(
        self,
        posterior: np.ndarray,
        states: np.ndarray,
        log_likelihoods: np.ndarray,
        first: np.ndarray,
    ) -> xr.Dataset:
        n_subjects, n_occasions, _ = posterior.shape
        coords = {
            "subject": np.arange(n_subjects),
            "occasion": np.arange(n_occasions),
            "state": self.get_state_names(),
        }
        attrs = {
            "marginal_log_likelihood": float(np.sum(log_likelihoods)),
            "method": self.method,
        }

        return xr.Dataset(
            data_vars={
                "posterior_state_probabilities": (
                    ("subject", "occasion", "state"),
                    posterior,
                ),
                "most_likely_states": (("subject", "occasion"), states),
                "log_likelihood": (("subject",), log_likelihoods),
                "first_detection": (("subject",), first),
            },
            coords=coords,
            attrs=attrs,
        )

    def sample_latent_states(
        self,
        observations: ArrayLike,
        survival: Rate,
        movement: ArrayLike | None = None,
        detection: Rate = 1.0,
        n_samples: int = 1,
        seed: int = 0,
    ) -> np.ndarray:
        """Draw latent state trajectories conditioned on the capture histories.

        Returns
        -------
        states : np.ndarray, shape (n_samples, n_subjects, n_occasions)
            -1 before each subject's first detection.
        """
        ensure_positive_count(n_samples, "n_samples")
        observations, first, transition, emission = self._checked_inputs(
            observations, survival, movement, detection
        )
        logger.info("Sampling latent states...")
        return np.asarray(
            sample_latent_states(
                jax.random.PRNGKey(seed),
                jnp.asarray(observations),
                jnp.asarray(first),
                jnp.asarray(transition),
                jnp.asarray(emission),
                n_samples=n_samples,
            )
        )

    def numpyro_model(
        self, observations: jnp.ndarray, first_detections: jnp.ndarray
    ) -> None:
        """NumPyro model: priors on the rates plus the forward log-likelihood.

        Parameters
        ----------
        observations : jnp.ndarray, shape (n_subjects, n_occasions)
        first_detections : jnp.ndarray, shape (n_subjects,)
        """
        n_occasions = observations.shape[1]
        batch_shape = (n_occasions - 1,) if self.time_varying else ()
        n_batch_dims = len(batch_shape)

        survival_low, survival_high = _resolve_param(
            self.survival_prior, _DEFAULTS["survival_prior"]
        )
        detection_low, detection_high = _resolve_param(
            self.detection_prior, _DEFAULTS["detection_prior"]
        )
        concentration = _resolve_param(
            self.movement_concentration, _DEFAULTS["movement_concentration"]
        )

        survival = numpyro.sample(
            "survival",
            dist.Uniform(survival_low, survival_high)
            .expand([*batch_shape, self.n_live_states])
            .to_event(n_batch_dims + 1),
        )
        detection = numpyro.sample(
            "detection",
            dist.Uniform(detection_low, detection_high)
            .expand([*batch_shape, self.n_live_states])
            .to_event(n_batch_dims + 1),
        )
        if self.n_live_states > 1:
            movement = numpyro.sample(
                "movement",
                dist.Dirichlet(concentration * jnp.ones((self.n_live_states,)))
                .expand([*batch_shape, self.n_live_states])
                .to_event(n_batch_dims + 1),
            )
        else:
            movement = None

        transition, emission = self.make_tables(survival, movement, detection)
        numpyro.factor(
            "log_likelihood",
            total_log_likelihood(
                observations,
                first_detections,
                transition,
                emission,
                method=self.method,
            ),
        )

    def fit(
        self,
        observations: ArrayLike,
        num_warmup: int = 500,
        num_samples: int = 500,
        num_chains: int = 1,
        seed: int = 0,
        **mcmc_kwargs,
    ):
        """Sample the posterior of the rates with NUTS.

        Parameters
        ----------
        observations : array-like, shape (n_subjects, n_occasions)
        num_warmup, num_samples, num_chains : int, optional
        seed : int, optional
        **mcmc_kwargs
            Passed to ``numpyro.infer.MCMC``.

        Returns
        -------
        self
        """
        self._validate_config()
        observations = validate_capture_histories(
            observations, self.n_states, self.not_observed
        )
        first = first_detections(observations, self.not_observed)
        logger.info("Fitting multistate capture-recapture model...")
        logger.debug(
            "%d subjects, %d occasions, %d never detected",
            observations.shape[0],
            observations.shape[1],
            np.sum(first < 0),
        )
        self._run_nuts(
            (jnp.asarray(observations), jnp.asarray(first)),
            num_warmup=num_warmup,
            num_samples=num_samples,
            num_chains=num_chains,
            seed=seed,
            **mcmc_kwargs,
        )
        return self
