"""
Tests for Baum-Welch training, supervised estimation and sampling.
"""

import pytest
import numpy as np

from hmm_engine.hmm import DiscreteHMM
from hmm_engine.hmm import model as model_module
from hmm_engine.config import set_config
from hmm_engine.exceptions import (
    EmptySequenceError,
    InvalidParametersError,
    NumericInstabilityError
)


def assert_stochastic(hmm):
    pi, A, B = hmm.get_parameters()
    assert abs(pi.sum() - 1.0) < 1e-6
    np.testing.assert_allclose(A.sum(axis=0), np.ones(hmm.n_states), atol=1e-6)
    np.testing.assert_allclose(B.sum(axis=1), np.ones(hmm.n_states), atol=1e-6)
    assert np.all(pi >= 0) and np.all(A >= 0) and np.all(B >= 0)


@pytest.fixture
def training_sequences():
    """Sequences sampled from a 3-state model."""
    source = DiscreteHMM.random(3, 4, random_state=100)
    return [source.generate(40, random_state=seed)[0] for seed in range(5)]


class TestTrainBasics:
    """Test the demo training scenario and returned statistics."""

    def test_demo_training_does_not_decrease_likelihood(self, demo_model, demo_observations):
        before = demo_model.log_likelihood(demo_observations)

        stats = demo_model.train([demo_observations])

        after = demo_model.log_likelihood(demo_observations)
        assert after >= before - 1e-9
        assert stats['initial_log_likelihood'] == pytest.approx(before)
        assert stats['final_log_likelihood'] == pytest.approx(after)
        assert demo_model.is_trained is True
        assert_stochastic(demo_model)

    def test_single_iteration_on_demo(self, demo_model, demo_observations):
        before = demo_model.log_likelihood(demo_observations)

        stats = demo_model.train([demo_observations], max_iterations=1)

        assert stats['iterations'] == 1
        assert stats['converged'] is False
        assert len(stats['log_likelihood_history']) == 2
        assert demo_model.log_likelihood(demo_observations) >= before - 1e-9

    def test_statistics_keys(self, demo_model, demo_observations):
        stats = demo_model.train([demo_observations], max_iterations=5)

        assert set(stats) == {
            'converged', 'iterations', 'initial_log_likelihood',
            'final_log_likelihood', 'log_likelihood_history', 'improvement_history'
        }
        assert len(stats['improvement_history']) == len(stats['log_likelihood_history']) - 1

    def test_zero_iterations_leaves_parameters_unchanged(self, demo_model, demo_observations):
        before = demo_model.get_parameters()

        stats = demo_model.train([demo_observations], max_iterations=0)

        for old, new in zip(before, demo_model.get_parameters()):
            np.testing.assert_array_equal(old, new)
        assert stats['iterations'] == 0
        assert stats['log_likelihood_history'] == [pytest.approx(demo_model.log_likelihood(demo_observations))]

    def test_training_can_be_repeated(self, demo_model, demo_observations):
        demo_model.train([demo_observations], max_iterations=3)
        middle = demo_model.log_likelihood(demo_observations)

        demo_model.train([demo_observations], max_iterations=3)

        assert demo_model.log_likelihood(demo_observations) >= middle - 1e-9

    def test_defaults_from_config(self, demo_model, demo_observations):
        set_config('training', 'max_iterations', 2)
        set_config('training', 'tolerance', 0.0)

        stats = demo_model.train([demo_observations])

        assert stats['iterations'] == 2


class TestConvergence:
    """Test EM monotonicity and the stopping rule."""

    def test_monotone_history(self, training_sequences):
        hmm = DiscreteHMM.random(3, 4, random_state=1)

        stats = hmm.train(training_sequences, max_iterations=25, tolerance=0.0)

        history = np.array(stats['log_likelihood_history'])
        assert len(history) == 26
        assert np.all(np.diff(history) >= -1e-8)

    def test_each_iteration_does_not_decrease(self, training_sequences):
        hmm = DiscreteHMM.random(3, 4, random_state=2)
        previous = sum(hmm.log_likelihood(seq) for seq in training_sequences)

        for _ in range(10):
            hmm.train(training_sequences, max_iterations=1)
            current = sum(hmm.log_likelihood(seq) for seq in training_sequences)
            assert current >= previous - 1e-8
            previous = current

    def test_converges_at_fixed_point(self):
        # With one state the first M-step reaches the empirical frequencies
        hmm = DiscreteHMM([1.0], [[1.0]], [[0.5, 0.5]])

        stats = hmm.train([[0, 0, 0, 1]], tolerance=1e-5)

        assert stats['converged'] is True
        assert stats['iterations'] == 2
        assert abs(stats['improvement_history'][-1]) < 1e-5
        np.testing.assert_array_almost_equal(hmm.emission[0].probabilities, [0.75, 0.25])

    def test_large_tolerance_stops_early(self, training_sequences):
        hmm = DiscreteHMM.random(3, 4, random_state=3)

        stats = hmm.train(training_sequences, max_iterations=100, tolerance=1e6)

        assert stats['converged'] is True
        assert stats['iterations'] == 1


class TestReestimation:
    """Test the M-step formulas."""

    def test_initial_is_average_of_first_posteriors(self, training_sequences):
        hmm = DiscreteHMM.random(3, 4, random_state=4)
        expected = np.mean([hmm.posteriors(seq)[0][0] for seq in training_sequences], axis=0)

        hmm.train(training_sequences, max_iterations=1)

        np.testing.assert_array_almost_equal(hmm.initial, expected)

    def test_unvisited_state_keeps_prior(self):
        # State 1 is unreachable: it can't start and state 0 never leaves
        initial = [1.0, 0.0]
        transition = np.array([
            [1.0, 0.5],
            [0.0, 0.5]
        ])
        emission = [[0.5, 0.5], [0.3, 0.7]]
        hmm = DiscreteHMM(initial, transition, emission)

        hmm.train([[0, 1, 0]], max_iterations=1)

        pi, A, B = hmm.get_parameters()
        np.testing.assert_array_almost_equal(pi, [1.0, 0.0])
        np.testing.assert_array_almost_equal(A[:, 1], [0.5, 0.5])
        np.testing.assert_array_almost_equal(A[:, 0], [1.0, 0.0])
        np.testing.assert_array_almost_equal(B[1], [0.3, 0.7])
        np.testing.assert_array_almost_equal(B[0], [2 / 3, 1 / 3])

    def test_regularization_keeps_probabilities_positive(self):
        hmm = DiscreteHMM([0.5, 0.5], np.ones((2, 2)) / 2, [[0.6, 0.4, 0.0], [0.4, 0.6, 0.0]])

        hmm.train([[0, 1, 0, 1]], max_iterations=3, regularization_alpha=0.01)

        assert np.all(hmm.get_parameters()[2] > 0)
        assert_stochastic(hmm)

    def test_probability_floor(self):
        hmm = DiscreteHMM([0.5, 0.5], np.ones((2, 2)) / 2, [[0.6, 0.4, 0.0], [0.4, 0.6, 0.0]])

        hmm.train([[0, 1, 0, 1]], max_iterations=3, probability_floor=1e-4)

        pi, A, B = hmm.get_parameters()
        assert np.all(B >= 1e-4 / (1 + 3e-4))
        assert_stochastic(hmm)

    @pytest.mark.slow
    def test_parallel_matches_sequential(self, training_sequences):
        sequential = DiscreteHMM.random(3, 4, random_state=8)
        parallel = DiscreteHMM.random(3, 4, random_state=8)

        sequential.train(training_sequences, max_iterations=5, n_jobs=1)
        parallel.train(training_sequences, max_iterations=5, n_jobs=2)

        for a, b in zip(sequential.get_parameters(), parallel.get_parameters()):
            np.testing.assert_allclose(a, b, rtol=1e-10)


class TestTrainErrors:
    """Errors are raised before any parameter changes."""

    def test_no_sequences(self, demo_model):
        with pytest.raises(InvalidParametersError, match="cannot be empty"):
            demo_model.train([])

    def test_empty_sequence(self, demo_model):
        with pytest.raises(EmptySequenceError, match="Sequence 1 is empty"):
            demo_model.train([[0, 1], []])

    def test_out_of_range_symbols(self, demo_model, demo_parameters):
        with pytest.raises(InvalidParametersError, match="Sequence 0"):
            demo_model.train([[0, 5]])

        np.testing.assert_array_equal(demo_model.initial, demo_parameters[0])
        assert demo_model.is_trained is False

    def test_negative_settings(self, demo_model, demo_observations):
        with pytest.raises(InvalidParametersError, match="max_iterations"):
            demo_model.train([demo_observations], max_iterations=-1)
        with pytest.raises(InvalidParametersError, match="tolerance"):
            demo_model.train([demo_observations], tolerance=-1.0)
        with pytest.raises(InvalidParametersError, match="n_jobs"):
            demo_model.train([demo_observations], n_jobs=0)

    def test_zero_jobs_rejected_before_training(self, demo_model):
        before = demo_model.get_parameters()

        with pytest.raises(InvalidParametersError, match="n_jobs"):
            demo_model.train([[0, 1], [1, 0]], max_iterations=1, n_jobs=0)

        assert demo_model.is_trained is False
        for old, new in zip(before, demo_model.get_parameters()):
            np.testing.assert_array_equal(old, new)

    def test_impossible_sequence(self):
        hmm = DiscreteHMM([0.5, 0.5], np.ones((2, 2)) / 2, [[1.0, 0.0], [1.0, 0.0]])
        before = hmm.get_parameters()

        with pytest.raises(NumericInstabilityError):
            hmm.train([[0, 0], [0, 1]])

        for old, new in zip(before, hmm.get_parameters()):
            np.testing.assert_array_equal(old, new)

    def test_failure_mid_training_rolls_back(self, monkeypatch, training_sequences):
        hmm = DiscreteHMM.random(3, 4, random_state=6)
        before = hmm.get_parameters()

        original = model_module.sequence_statistics
        calls = {'count': 0}

        def failing_statistics(*args):
            calls['count'] += 1
            if calls['count'] > 2 * len(training_sequences):
                raise NumericInstabilityError("injected failure")
            return original(*args)

        monkeypatch.setattr(model_module, 'sequence_statistics', failing_statistics)

        with pytest.raises(NumericInstabilityError, match="injected failure"):
            hmm.train(training_sequences, max_iterations=10, tolerance=0.0)

        for old, new in zip(before, hmm.get_parameters()):
            np.testing.assert_array_equal(old, new)
        assert hmm.is_trained is False


class TestSupervisedTraining:
    """Test maximum-likelihood estimation from labeled paths."""

    def test_counts_are_normalized(self, demo_model):
        sequences = [[0, 0, 1], [1, 1, 0]]
        paths = [[0, 0, 1], [1, 1, 0]]

        demo_model.train_supervised(sequences, paths)

        pi, A, B = demo_model.get_parameters()
        np.testing.assert_array_almost_equal(pi, [0.5, 0.5])
        np.testing.assert_array_almost_equal(A, [[0.5, 0.5], [0.5, 0.5]])
        np.testing.assert_array_almost_equal(B, [[1.0, 0.0], [0.0, 1.0]])
        assert demo_model.is_trained is True

    def test_unseen_state_keeps_prior(self, demo_model, demo_parameters):
        demo_model.train_supervised([[0, 1, 1]], [[0, 0, 0]])

        pi, A, B = demo_model.get_parameters()
        np.testing.assert_array_almost_equal(pi, [1.0, 0.0])
        np.testing.assert_array_almost_equal(A[:, 0], [1.0, 0.0])
        np.testing.assert_array_almost_equal(A[:, 1], demo_parameters[1][:, 1])
        np.testing.assert_array_almost_equal(B[0], [1 / 3, 2 / 3])
        np.testing.assert_array_almost_equal(B[1], demo_parameters[2][1])

    def test_path_length_mismatch(self, demo_model):
        with pytest.raises(InvalidParametersError, match="State path 0"):
            demo_model.train_supervised([[0, 1]], [[0]])

    def test_state_out_of_range(self, demo_model):
        with pytest.raises(InvalidParametersError, match="State path 0"):
            demo_model.train_supervised([[0, 1]], [[0, 2]])

    def test_path_count_mismatch(self, demo_model):
        with pytest.raises(InvalidParametersError, match="state paths"):
            demo_model.train_supervised([[0, 1], [1]], [[0, 1]])


class TestGenerate:
    """Test sampling from the model."""

    def test_shapes_and_ranges(self, demo_model):
        observations, states = demo_model.generate(50, random_state=0)

        assert observations.shape == (50,)
        assert states.shape == (50,)
        assert set(np.unique(observations)) <= {0, 1}
        assert set(np.unique(states)) <= {0, 1}

    def test_reproducible(self, demo_model):
        first = demo_model.generate(20, random_state=5)
        second = demo_model.generate(20, random_state=5)

        np.testing.assert_array_equal(first[0], second[0])
        np.testing.assert_array_equal(first[1], second[1])

    def test_deterministic_model(self):
        hmm = DiscreteHMM([0.0, 1.0], np.eye(2), [[1.0, 0.0], [0.0, 1.0]])

        observations, states = hmm.generate(5, random_state=0)

        np.testing.assert_array_equal(observations, np.ones(5))
        np.testing.assert_array_equal(states, np.ones(5))

    def test_start_state(self):
        hmm = DiscreteHMM([1.0, 0.0], np.eye(2), [[1.0, 0.0], [0.0, 1.0]])

        observations, states = hmm.generate(3, start_state=1, random_state=0)

        np.testing.assert_array_equal(states, [1, 1, 1])
        np.testing.assert_array_equal(observations, [1, 1, 1])

    def test_invalid_arguments(self, demo_model):
        with pytest.raises(InvalidParametersError, match="length"):
            demo_model.generate(0)
        with pytest.raises(InvalidParametersError, match="start_state"):
            demo_model.generate(3, start_state=2)
