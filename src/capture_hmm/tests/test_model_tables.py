"""Tests for the transition and emission table builders."""

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from capture_hmm.discrete_state_transitions import (
    broadcast_over_occasions,
    make_cjs_transition,
    make_multistate_transition,
    make_two_site_movement,
)
from capture_hmm.observation_models import make_cjs_emission, make_multistate_emission
from capture_hmm.tests._helpers import assert_stochastic_rows


@pytest.mark.unit
class TestMultistateTransition:
    def test_two_site_scenario(self, two_site_parameters):
        movement = make_two_site_movement(
            two_site_parameters["psi_ab"], two_site_parameters["psi_ba"]
        )

        transition = make_multistate_transition(
            two_site_parameters["survival"], movement
        )

        np.testing.assert_allclose(movement, two_site_parameters["movement"])
        np.testing.assert_allclose(
            transition,
            [[0.56, 0.24, 0.2], [0.14, 0.56, 0.3], [0.0, 0.0, 1.0]],
            atol=1e-12,
        )

    def test_dead_state_is_absorbing(self):
        transition = make_multistate_transition(
            jnp.array([0.5, 0.6, 0.7]), jnp.full((3, 3), 1 / 3)
        )

        np.testing.assert_array_equal(transition[-1], [0.0, 0.0, 0.0, 1.0])
        assert_stochastic_rows(transition)

    def test_scalar_survival_is_shared(self):
        transition = make_multistate_transition(0.9, make_two_site_movement(0.1, 0.1))

        np.testing.assert_allclose(transition[:2, -1], [0.1, 0.1])

    def test_time_varying_survival_broadcasts_over_static_movement(self):
        survival = jnp.array([[0.9, 0.8], [0.7, 0.6], [0.5, 0.4]])
        movement = make_two_site_movement(0.3, 0.2)

        transition = make_multistate_transition(survival, movement)

        assert transition.shape == (3, 3, 3)
        np.testing.assert_allclose(transition[2, :2, -1], [0.5, 0.6])
        assert_stochastic_rows(transition)

    def test_time_varying_movement(self):
        movement = make_two_site_movement(jnp.array([0.1, 0.2]), jnp.array([0.3, 0.4]))

        transition = make_multistate_transition(jnp.array([0.8, 0.7]), movement)

        assert movement.shape == (2, 2, 2)
        assert transition.shape == (2, 3, 3)
        np.testing.assert_allclose(transition[1, 0, 1], 0.8 * 0.2)
        assert_stochastic_rows(transition)

    def test_is_differentiable(self):
        def dead_probability(survival):
            transition = make_multistate_transition(
                survival, make_two_site_movement(0.3, 0.2)
            )
            return transition[:2, -1].sum()

        gradient = jax.grad(dead_probability)(jnp.array([0.8, 0.7]))

        np.testing.assert_allclose(gradient, [-1.0, -1.0])


@pytest.mark.unit
class TestCJS:
    def test_transition(self):
        transition = make_cjs_transition(0.8)

        np.testing.assert_allclose(transition, [[0.8, 0.2], [0.0, 1.0]])

    def test_time_varying_transition(self):
        transition = make_cjs_transition(jnp.array([0.8, 0.6, 0.4]))

        assert transition.shape == (3, 2, 2)
        np.testing.assert_allclose(transition[2], [[0.4, 0.6], [0.0, 1.0]])

    def test_emission(self):
        emission = make_cjs_emission(0.3)

        np.testing.assert_allclose(emission, [[0.3, 0.7], [0.0, 1.0]])

    def test_time_varying_emission(self):
        emission = make_cjs_emission(jnp.array([0.3, 0.5]))

        assert emission.shape == (2, 2, 2)
        assert_stochastic_rows(emission)


@pytest.mark.unit
class TestMultistateEmission:
    def test_two_site_scenario(self, two_site_parameters):
        emission = make_multistate_emission(two_site_parameters["detection"])

        np.testing.assert_allclose(
            emission,
            [[0.9, 0.0, 0.1], [0.0, 0.85, 0.15], [0.0, 0.0, 1.0]],
            atol=1e-12,
        )

    def test_time_varying_detection(self):
        detection = jnp.array([[0.9, 0.8], [0.1, 0.2]])

        emission = make_multistate_emission(detection)

        assert emission.shape == (2, 3, 3)
        np.testing.assert_allclose(emission[1, 1], [0.0, 0.2, 0.8])
        np.testing.assert_array_equal(emission[:, -1], [[0.0, 0.0, 1.0]] * 2)

    def test_extreme_rates_are_still_stochastic(self):
        emission = make_multistate_emission(jnp.array([0.0, 1.0, 0.5]))

        assert_stochastic_rows(emission)


@pytest.mark.unit
class TestBroadcastOverOccasions:
    def test_static_table(self):
        table = broadcast_over_occasions(jnp.eye(3), n_occasions=5)

        assert table.shape == (4, 3, 3)
        np.testing.assert_array_equal(table[3], np.eye(3))

    def test_time_varying_table_is_unchanged(self):
        table = jnp.ones((4, 2, 2)) / 2

        result = broadcast_over_occasions(table, n_occasions=5)

        assert result.shape == (4, 2, 2)
        np.testing.assert_array_equal(result, table)
