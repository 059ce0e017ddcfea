"""Shared test fixtures for capture_hmm tests.

This module provides:
1. float64 JAX arithmetic for the whole test-suite
2. The two-site survival scenario (parameters, tables, capture history)
3. Simulated capture histories and avoidance trials

Assertion helpers live in ``capture_hmm.tests._helpers`` and the
brute-force enumeration oracle in ``capture_hmm.tests._oracle``.
"""

import jax

jax.config.update("jax_enable_x64", True)

import numpy as np  # noqa: E402
import pytest  # noqa: E402

from capture_hmm.simulate.avoidance_simulation import (  # noqa: E402
    simulate_avoidance_trials,
)
from capture_hmm.simulate.capture_recapture_simulation import (  # noqa: E402
    simulate_capture_histories,
    two_site_tables,
)

# ==============================================================================
# TWO-SITE SURVIVAL SCENARIO
# ==============================================================================

SCENARIO_LIKELIHOOD = 0.01439424


@pytest.fixture
def two_site_parameters():
    """Survival, movement and detection rates of the two-site scenario.

    Returns:
        dict: 'survival', 'psi_ab', 'psi_ba', 'movement' and 'detection'.
    """
    return {
        "survival": np.array([0.8, 0.7]),
        "psi_ab": 0.3,
        "psi_ba": 0.2,
        "movement": np.array([[0.7, 0.3], [0.2, 0.8]]),
        "detection": np.array([0.9, 0.85]),
    }


@pytest.fixture
def two_site_model_tables():
    """Transition (3x3) and emission (3x3) tables of the two-site scenario.

    States: 0 = A, 1 = B, 2 = dead. Symbols: 0 = seen at A, 1 = seen at B,
    2 = not seen.
    """
    return two_site_tables()


@pytest.fixture
def scenario_history():
    """Seen at A, seen at A, not seen, seen at B.

    Its likelihood under the two-site tables is ``SCENARIO_LIKELIHOOD``.
    """
    return np.array([0, 0, 2, 1])


@pytest.fixture
def scenario_log_likelihood():
    return np.log(SCENARIO_LIKELIHOOD)


# ==============================================================================
# SIMULATED DATA
# ==============================================================================


@pytest.fixture
def simulated_histories(two_site_model_tables):
    """40 two-site capture histories over 6 occasions with staggered releases
    and two never-detected subjects appended."""
    transition, emission = two_site_model_tables
    rng = np.random.default_rng(1)
    n_subjects = 40
    simulated = simulate_capture_histories(
        transition,
        emission,
        n_subjects=n_subjects,
        n_occasions=6,
        first_occasions=rng.integers(0, 5, size=n_subjects),
        first_states=rng.integers(0, 2, size=n_subjects),
        seed=2,
    )
    never_detected = np.full((2, 6), 2)
    return np.concatenate((simulated.observations, never_detected))


@pytest.fixture
def simulated_trials():
    """Avoidance trials of 30 subjects over 25 trials."""
    return simulate_avoidance_trials(seed=3)
