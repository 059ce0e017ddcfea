import copy
from logging import getLogger

import jax
import numpy as np
from numpyro.infer import MCMC, NUTS
from sklearn.base import BaseEstimator

from capture_hmm.exceptions import FittingError

logger = getLogger(__name__)


class _BayesianModelBase(BaseEstimator):
    """Base class for estimators fit by NUTS on a NumPyro model.

    Subclasses implement ``numpyro_model(*model_args)``.
    """

    def numpyro_model(self, *args, **kwargs) -> None:
        raise NotImplementedError

    def _run_nuts(
        self,
        model_args: tuple,
        num_warmup: int = 500,
        num_samples: int = 500,
        num_chains: int = 1,
        seed: int = 0,
        **mcmc_kwargs,
    ) -> MCMC:
        """Sample the posterior and store ``mcmc_`` and ``posterior_samples_``.

        Raises
        ------
        FittingError
            If any posterior draw is not finite.
        """
        logger.info("Running NUTS...")
        mcmc_kwargs.setdefault("progress_bar", False)
        kernel = NUTS(self.numpyro_model)
        mcmc = MCMC(
            kernel,
            num_warmup=num_warmup,
            num_samples=num_samples,
            num_chains=num_chains,
            **mcmc_kwargs,
        )
        mcmc.run(jax.random.PRNGKey(seed), *model_args)

        posterior_samples = {
            name: np.asarray(value) for name, value in mcmc.get_samples().items()
        }
        bad_sites = [
            name
            for name, value in posterior_samples.items()
            if not np.all(np.isfinite(value))
        ]
        if bad_sites:
            raise FittingError(
                f"NUTS produced non-finite draws for {', '.join(bad_sites)}",
                hint="Check that every detected history has non-zero probability "
                "under the prior support, or tighten the priors",
            )
        logger.info("Finished sampling...")

        self.mcmc_ = mcmc
        self.posterior_samples_ = posterior_samples
        return mcmc

    def posterior_mean(self) -> dict[str, np.ndarray]:
        """Posterior mean of every sampled site.

        Raises
        ------
        FittingError
            If the model has not been fit.
        """
        if not hasattr(self, "posterior_samples_"):
            raise FittingError(
                f"{type(self).__name__} has not been fit",
                hint="Call fit() first",
            )
        return {
            name: value.mean(axis=0) for name, value in self.posterior_samples_.items()
        }

    def copy(self):
        """Makes a copy of the estimator"""
        return copy.deepcopy(self)
