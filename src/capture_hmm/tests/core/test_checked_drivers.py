"""Tests for the validating NumPy-level drivers of the forward recursion."""

import numpy as np
import pytest

from capture_hmm.core import (
    as_float_table,
    compute_log_likelihoods,
    marginal_log_likelihood,
    resolve_seed_symbols,
    row_sum_tolerance,
    validate_model_tables,
)
from capture_hmm.exceptions import (
    CaptureHMMError,
    ConfigurationError,
    DataError,
    DegenerateLikelihoodError,
    ValidationError,
)
from capture_hmm.simulate.capture_recapture_simulation import two_site_tables


@pytest.mark.unit
class TestComputeLogLikelihoods:
    def test_scenario(self, two_site_model_tables, scenario_history, scenario_log_likelihood):
        transition, emission = two_site_model_tables

        log_likelihoods = compute_log_likelihoods(
            scenario_history[np.newaxis], transition, emission
        )

        assert log_likelihoods.shape == (1,)
        assert np.isclose(log_likelihoods[0], scenario_log_likelihood, rtol=1e-10)

    def test_single_history_is_promoted(
        self, two_site_model_tables, scenario_history, scenario_log_likelihood
    ):
        transition, emission = two_site_model_tables

        log_likelihoods = compute_log_likelihoods(scenario_history, transition, emission)

        assert log_likelihoods.shape == (1,)

    def test_never_detected_subject_contributes_zero(self, two_site_model_tables):
        transition, emission = two_site_model_tables

        log_likelihoods = compute_log_likelihoods(
            np.array([[2, 2, 2, 2], [0, 0, 2, 1]]), transition, emission
        )

        assert log_likelihoods[0] == 0.0

    @pytest.mark.parametrize("method", ["scaled", "unscaled", "log"])
    def test_marginal_log_likelihood_is_sum(
        self, method, two_site_model_tables, simulated_histories
    ):
        transition, emission = two_site_model_tables

        total = marginal_log_likelihood(
            simulated_histories, transition, emission, method=method
        )
        per_subject = compute_log_likelihoods(
            simulated_histories, transition, emission, method=method
        )

        assert isinstance(total, float)
        assert np.isclose(total, per_subject.sum(), rtol=1e-12)

    def test_absorbing_state_check_passes_for_builder_tables(
        self, two_site_model_tables, simulated_histories
    ):
        transition, emission = two_site_model_tables

        compute_log_likelihoods(
            simulated_histories, transition, emission, absorbing_state=2
        )


@pytest.mark.unit
class TestUnderflowReporting:
    n_occasions = 1200

    def long_history(self):
        transition, emission = two_site_tables(
            survival=np.array([0.9, 0.9]),
            psi_ab=0.0,
            psi_ba=0.0,
            detection=np.array([0.5, 0.5]),
        )
        return np.zeros((1, self.n_occasions), dtype=int), transition, emission

    def test_unscaled_underflow_raises(self):
        observations, transition, emission = self.long_history()

        with pytest.raises(DegenerateLikelihoodError, match="underflowed") as excinfo:
            compute_log_likelihoods(observations, transition, emission, method="unscaled")

        assert excinfo.value.subjects == [0]
        assert isinstance(excinfo.value, CaptureHMMError)

    def test_unscaled_underflow_warns(self):
        observations, transition, emission = self.long_history()

        with pytest.warns(RuntimeWarning, match="underflowed"):
            log_likelihoods = compute_log_likelihoods(
                observations,
                transition,
                emission,
                method="unscaled",
                on_underflow="warn",
            )

        assert np.isneginf(log_likelihoods[0])

    @pytest.mark.parametrize("method", ["scaled", "log"])
    def test_stable_methods_do_not_raise(self, method):
        observations, transition, emission = self.long_history()

        total = marginal_log_likelihood(observations, transition, emission, method=method)

        assert np.isclose(total, (self.n_occasions - 1) * np.log(0.45), rtol=1e-10)

    def test_impossible_history_is_reported(self):
        transition, emission = two_site_tables(
            survival=np.array([0.8, 0.7]),
            psi_ab=0.0,
            psi_ba=0.0,
            detection=np.array([0.9, 0.85]),
        )
        # Seen at A then at B without any movement
        observations = np.array([[2, 0, 1], [0, 0, 2]])

        with pytest.raises(DegenerateLikelihoodError, match="zero probability") as excinfo:
            compute_log_likelihoods(observations, transition, emission)

        assert excinfo.value.subjects == [0]

    def test_underflowed_and_impossible_subjects_are_both_reported(self):
        observations, transition, emission = self.long_history()
        # Seen at A then at B although movement is switched off
        impossible = np.full((1, self.n_occasions), 2)
        impossible[0, :2] = [0, 1]
        observations = np.concatenate((observations, impossible))

        with pytest.raises(DegenerateLikelihoodError) as excinfo:
            compute_log_likelihoods(observations, transition, emission, method="unscaled")

        message = str(excinfo.value)
        assert "underflowed to zero probability for subjects [0]" in message
        assert "zero probability under the given tables for subjects [1]" in message
        assert excinfo.value.subjects == [0, 1]

    def test_warning_lists_both_kinds_of_subjects(self):
        observations, transition, emission = self.long_history()
        impossible = np.full((1, self.n_occasions), 2)
        impossible[0, :2] = [0, 1]
        observations = np.concatenate((observations, impossible))

        with pytest.warns(RuntimeWarning, match=r"underflowed.*subjects \[0\].*subjects \[1\]"):
            log_likelihoods = compute_log_likelihoods(
                observations,
                transition,
                emission,
                method="unscaled",
                on_underflow="warn",
            )

        assert np.all(np.isneginf(log_likelihoods))


@pytest.mark.unit
class TestInputValidation:
    def test_rejects_unknown_method(self, two_site_model_tables, scenario_history):
        transition, emission = two_site_model_tables

        with pytest.raises(ConfigurationError, match="Unknown forward method"):
            compute_log_likelihoods(
                scenario_history, transition, emission, method="fast"
            )

    def test_rejects_unknown_underflow_action(
        self, two_site_model_tables, scenario_history
    ):
        transition, emission = two_site_model_tables

        with pytest.raises(ConfigurationError, match="on_underflow"):
            compute_log_likelihoods(
                scenario_history, transition, emission, on_underflow="ignore"
            )

    def test_rejects_non_stochastic_transition(
        self, two_site_model_tables, scenario_history
    ):
        transition, emission = two_site_model_tables
        transition = transition.copy()
        transition[0, 0] += 0.01

        with pytest.raises(ValidationError, match="row-stochastic"):
            compute_log_likelihoods(scenario_history, transition, emission)

    def test_rejects_negative_emission(self, two_site_model_tables, scenario_history):
        transition, emission = two_site_model_tables
        emission = emission.copy()
        emission[0] = [1.1, -0.1, 0.0]

        with pytest.raises(ValidationError, match="non-negative"):
            compute_log_likelihoods(scenario_history, transition, emission)

    def test_rejects_nan_in_table(self, two_site_model_tables, scenario_history):
        transition, emission = two_site_model_tables
        transition = transition.copy()
        transition[1, 1] = np.nan

        with pytest.raises(DataError, match="non-finite"):
            compute_log_likelihoods(scenario_history, transition, emission)

    def test_rejects_out_of_alphabet_symbol(self, two_site_model_tables):
        transition, emission = two_site_model_tables

        with pytest.raises(ValidationError, match="outside the observation alphabet"):
            compute_log_likelihoods(np.array([[0, 3, 2]]), transition, emission)

    def test_rejects_wrong_number_of_occasions(
        self, two_site_model_tables, scenario_history
    ):
        transition, emission = two_site_model_tables
        time_varying = np.broadcast_to(transition, (5, 3, 3))

        with pytest.raises(ValidationError, match="unexpected shape"):
            compute_log_likelihoods(scenario_history, time_varying, emission)

    def test_rejects_emission_with_wrong_number_of_rows(
        self, two_site_model_tables, scenario_history
    ):
        transition, emission = two_site_model_tables

        with pytest.raises(ValidationError, match="unexpected shape"):
            compute_log_likelihoods(scenario_history, transition, emission[:2])

    def test_rejects_leaky_absorbing_state(self, two_site_model_tables, scenario_history):
        transition, emission = two_site_model_tables
        transition = transition.copy()
        transition[2] = [0.1, 0.0, 0.9]

        with pytest.raises(ValidationError, match="absorbing"):
            compute_log_likelihoods(
                scenario_history, transition, emission, absorbing_state=2
            )

    def test_rejects_not_observed_outside_alphabet(
        self, two_site_model_tables, scenario_history
    ):
        transition, emission = two_site_model_tables

        with pytest.raises(ValidationError, match="not_observed"):
            compute_log_likelihoods(
                scenario_history, transition, emission, not_observed=3
            )


@pytest.mark.unit
class TestHelpers:
    def test_default_seed_symbols(self):
        np.testing.assert_array_equal(resolve_seed_symbols(None, 3, 3), [0, 1, 2])

    def test_seed_symbols_need_one_entry_per_state(self):
        with pytest.raises(ValidationError, match="one symbol per hidden state"):
            resolve_seed_symbols([0, 1], 3, 3)

    def test_seed_symbols_must_be_in_alphabet(self):
        with pytest.raises(ValidationError, match="outside the observation alphabet"):
            resolve_seed_symbols([0, 1, 5], 3, 3)

    def test_validate_model_tables_accepts_subject_varying_tables(
        self, two_site_model_tables
    ):
        transition, emission = two_site_model_tables
        n_subjects, n_occasions = 4, 6

        validate_model_tables(
            np.broadcast_to(transition, (n_subjects, n_occasions - 1, 3, 3)),
            np.broadcast_to(emission, (n_subjects, n_occasions - 1, 3, 3)),
            n_subjects,
            n_occasions,
        )


@pytest.mark.unit
class TestSinglePrecisionTables:
    def test_tolerance_follows_table_dtype(self):
        assert row_sum_tolerance(1e-9, np.eye(2)) == 1e-9
        assert row_sum_tolerance(1e-9, np.eye(2, dtype=np.float32)) == pytest.approx(
            16 * np.finfo(np.float32).eps
        )
        assert row_sum_tolerance(1e-3, np.eye(2, dtype=np.float32)) == 1e-3

    def test_integer_tables_are_promoted(self):
        assert as_float_table(np.eye(2, dtype=int)).dtype == np.float64
        assert as_float_table(np.eye(2, dtype=np.float32)).dtype == np.float32

    def test_float32_tables_are_accepted(
        self, two_site_model_tables, scenario_history, scenario_log_likelihood
    ):
        transition, emission = two_site_model_tables
        # Row sums of 0.8 * 0.7 + 0.8 * 0.3 + 0.2 in float32 are off by ~1e-8
        transition = transition.astype(np.float32)
        emission = emission.astype(np.float32)

        validate_model_tables(
            transition, emission, 1, 4, absorbing_state=2, not_observed=2
        )
        log_likelihoods = compute_log_likelihoods(
            scenario_history, transition, emission, absorbing_state=2
        )

        assert np.isclose(log_likelihoods[0], scenario_log_likelihood, rtol=1e-6)

    def test_float32_tables_still_need_stochastic_rows(self, two_site_model_tables):
        transition, emission = two_site_model_tables
        transition = transition.astype(np.float32)
        transition[0, 0] -= 1e-3

        with pytest.raises(ValidationError, match="row-stochastic"):
            validate_model_tables(transition, emission.astype(np.float32), 1, 4)
