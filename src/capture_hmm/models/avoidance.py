from logging import getLogger

import jax.numpy as jnp
import numpy as np
import numpyro
import numpyro.distributions as dist
from jax.typing import ArrayLike

from capture_hmm._validation import ensure_all_finite
from capture_hmm.avoidance import (
    avoidance_log_likelihood,
    avoidance_probability,
    running_counts,
    validate_avoidance_trials,
)
from capture_hmm.exceptions import ValidationError
from capture_hmm.models._defaults import _ModelDefaults, _resolve_param
from capture_hmm.models.base import _BayesianModelBase

logger = getLogger(__name__)

_DEFAULTS = _ModelDefaults.avoidance_defaults()


def _check_beta(beta: ArrayLike) -> np.ndarray:
    beta = np.asarray(beta, dtype=float)
    if beta.shape != (2,):
        raise ValidationError(
            "beta needs one weight for avoidances and one for shocks",
            expected="shape (2,)",
            got=f"shape {beta.shape}",
        )
    ensure_all_finite(beta, "beta")
    return beta


class AvoidanceLearningModel(_BayesianModelBase):
    """Bernoulli-logit model of learning to avoid a shock.

    Parameters
    ----------
    beta_prior : dict, optional
        ``loc`` and ``scale`` of the normal prior on both weights, by default
        ``{"loc": 0.0, "scale": 100.0}``.
    """

    def __init__(self, beta_prior: dict | None = None):
        self.beta_prior = beta_prior

    def log_likelihood(self, y: ArrayLike, beta: ArrayLike) -> float:
        """Log-likelihood of all trials.

        Parameters
        ----------
        y : array-like, shape (n_subjects, n_trials)
            1 = shocked, 0 = avoided.
        beta : array-like, shape (2,)

        Returns
        -------
        log_likelihood : float
        """
        y = validate_avoidance_trials(y)
        beta = _check_beta(beta)
        logger.info("Computing log likelihood...")
        return float(avoidance_log_likelihood(jnp.asarray(y), jnp.asarray(beta)))

    def predict_proba(self, y: ArrayLike, beta: ArrayLike) -> np.ndarray:
        """Shock probability of every trial given the subject's past trials.

        Returns
        -------
        shock_probability : np.ndarray, shape (n_subjects, n_trials)
        """
        y = validate_avoidance_trials(y)
        beta = _check_beta(beta)
        n_avoid, n_shock = running_counts(jnp.asarray(y))
        return np.asarray(avoidance_probability(jnp.asarray(beta), n_avoid, n_shock))

    def numpyro_model(self, y: jnp.ndarray) -> None:
        """NumPyro model: normal prior on ``beta`` plus the Bernoulli-logit term."""
        prior = _resolve_param(self.beta_prior, _DEFAULTS["beta_prior"])
        beta = numpyro.sample(
            "beta",
            dist.Normal(prior["loc"], prior["scale"]).expand([2]).to_event(1),
        )
        numpyro.factor("log_likelihood", avoidance_log_likelihood(y, beta))

    def fit(
        self,
        y: ArrayLike,
        num_warmup: int = 500,
        num_samples: int = 500,
        num_chains: int = 1,
        seed: int = 0,
        **mcmc_kwargs,
    ):
        """Sample the posterior of ``beta`` with NUTS.

        Returns
        -------
        self
        """
        y = validate_avoidance_trials(y)
        logger.info("Fitting avoidance-learning model...")
        logger.debug("%d subjects, %d trials", *y.shape)
        self._run_nuts(
            (jnp.asarray(y),),
            num_warmup=num_warmup,
            num_samples=num_samples,
            num_chains=num_chains,
            seed=seed,
            **mcmc_kwargs,
        )
        return self
