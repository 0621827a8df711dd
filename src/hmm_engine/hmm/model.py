"""
Discrete Hidden Markov Model implementation.

This module implements a discrete HMM with an arbitrary number of hidden
states and observation symbols: parameter validation, Viterbi decoding,
forward-algorithm scoring and Baum-Welch re-estimation.

Conventions follow the transition layout ``transition[to, from]``: every
column of the transition matrix is a probability distribution over the next
state. Emission row ``i`` is the distribution over symbols in state ``i``.
"""

import numpy as np
from typing import Dict, List, Optional, Sequence, Tuple, Any
from joblib import Parallel, delayed

from .distribution import DiscreteDistribution
from .algorithms import (
    forward_scaled,
    log_likelihood_from_scale,
    sequence_statistics,
    viterbi_scaled,
    SequenceStatistics,
)
from ..config import get_config
from ..exceptions import InvalidParametersError, EmptySequenceError
from ..logger import get_logger

logger = get_logger(__name__)

_TRAINING_FALLBACKS = {
    'max_iterations': 1000,
    'tolerance': 1e-5,
    'regularization_alpha': 0.0,
    'probability_floor': 0.0,
    'n_jobs': 1,
}


def _training_setting(value: Any, key: str) -> Any:
    if value is not None:
        return value
    configured = get_config('training', key)
    return _TRAINING_FALLBACKS[key] if configured is None else configured


class DiscreteHMM:
    """
    Discrete Hidden Markov Model.

    The model owns three parameter sets:
    - initial: P(state i at t=0) [n_states]
    - transition: P(next state = to | state = from) [n_states, n_states],
      indexed ``transition[to, from]``
    - emission: one DiscreteDistribution per state over n_symbols symbols

    Parameters are validated on construction and replaced wholesale by
    ``train``, ``train_supervised`` and ``set_parameters``. A model is not
    safe for concurrent mutation; callers serialize access themselves.
    """

    def __init__(self, initial, transition, emission, tolerance: Optional[float] = None):
        """
        Initialize DiscreteHMM from explicit parameters.

        Args:
            initial: Initial state probabilities [n_states]
            transition: Transition matrix [n_states, n_states], ``transition[to, from]``
            emission: Sequence of DiscreteDistribution or array [n_states, n_symbols]
            tolerance: Allowed deviation from 1.0 for probability sums
                (default: ``hmm.validation_tolerance`` from config)

        Raises:
            InvalidParametersError: If shapes are inconsistent or any
                stochastic constraint is violated
        """
        if tolerance is None:
            tolerance = get_config('hmm', 'validation_tolerance') or 1e-6
        self.tolerance = tolerance

        pi, A, B = self._validate_parameters(initial, transition, emission, tolerance)

        self.n_states = pi.shape[0]
        self.n_symbols = B.shape[1]
        self._initial = pi
        self._transition = A
        self._emission = B
        self.is_trained = False

        logger.debug(f"Initialized DiscreteHMM with {self.n_states} states and {self.n_symbols} symbols")

    @classmethod
    def random(cls, n_states: int, n_symbols: int, random_state: Optional[int] = None) -> "DiscreteHMM":
        """
        Build a model with uniform initial probabilities and random
        transition and emission probabilities.

        Args:
            n_states: Number of hidden states
            n_symbols: Number of observation symbols
            random_state: Random seed for reproducible initialization
        """
        if n_states < 1 or n_symbols < 1:
            raise InvalidParametersError(
                f"n_states and n_symbols must be >= 1, got {n_states} and {n_symbols}"
            )

        rng = np.random.default_rng(random_state)

        initial = np.ones(n_states) / n_states

        transition = rng.random((n_states, n_states))
        transition = transition / transition.sum(axis=0, keepdims=True)

        emission = rng.random((n_states, n_symbols))
        emission = emission / emission.sum(axis=1, keepdims=True)

        return cls(initial, transition, emission)

    @staticmethod
    def _validate_parameters(initial, transition, emission,
                             tolerance: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Check shapes and stochastic properties and return float copies.

        Raises:
            InvalidParametersError: Naming the first violated constraint
        """
        try:
            pi = np.array(initial, dtype=float)
            A = np.array(transition, dtype=float)
            rows = [
                e.probabilities if isinstance(e, DiscreteDistribution) else np.array(e, dtype=float)
                for e in emission
            ]
        except (TypeError, ValueError) as e:
            raise InvalidParametersError(f"Parameters must be numeric arrays: {e}") from e

        # Dimensions
        if pi.ndim != 1 or pi.shape[0] < 1:
            raise InvalidParametersError(
                f"initial shape {pi.shape} doesn't match expected (n_states,) with n_states >= 1"
            )
        n_states = pi.shape[0]

        if A.shape != (n_states, n_states):
            raise InvalidParametersError(
                f"transition shape {A.shape} doesn't match expected ({n_states}, {n_states})"
            )

        if len(rows) != n_states:
            raise InvalidParametersError(
                f"emission has {len(rows)} distributions, expected {n_states}"
            )
        for i, row in enumerate(rows):
            if row.ndim != 1 or row.shape[0] < 1:
                raise InvalidParametersError(
                    f"emission distribution for state {i} must be a non-empty 1-D vector, got shape {row.shape}"
                )
        symbol_counts = {row.shape[0] for row in rows}
        if len(symbol_counts) != 1:
            raise InvalidParametersError(
                f"emission distributions have mismatched numbers of symbols: {sorted(symbol_counts)}"
            )
        B = np.vstack(rows)

        # Values
        for subject, values in (('Initial probabilities contain', pi),
                                ('Transition matrix contains', A),
                                ('Emission matrix contains', B)):
            if not np.all(np.isfinite(values)):
                raise InvalidParametersError(f"{subject} non-finite values")
            if np.any(values < 0):
                raise InvalidParametersError(f"{subject} negative values")

        if abs(pi.sum() - 1.0) > tolerance:
            raise InvalidParametersError(f"Initial probabilities sum to {pi.sum()}, expected 1.0")

        column_sums = A.sum(axis=0)
        if np.any(np.abs(column_sums - 1.0) > tolerance):
            raise InvalidParametersError(f"Transition matrix columns don't sum to 1.0: {column_sums}")

        row_sums = B.sum(axis=1)
        if np.any(np.abs(row_sums - 1.0) > tolerance):
            raise InvalidParametersError(f"Emission matrix rows don't sum to 1.0: {row_sums}")

        return pi, A, B

    @property
    def initial(self) -> np.ndarray:
        return self._initial.copy()

    @property
    def transition(self) -> np.ndarray:
        return self._transition.copy()

    @property
    def emission(self) -> List[DiscreteDistribution]:
        return [DiscreteDistribution(row, tolerance=self.tolerance) for row in self._emission]

    def get_parameters(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Get current model parameters.

        Returns:
            Tuple of (initial, transition, emission matrix) copies
        """
        return self._initial.copy(), self._transition.copy(), self._emission.copy()

    def set_parameters(self, initial, transition, emission) -> None:
        """
        Replace all parameters after validation.

        Raises:
            InvalidParametersError: If the new parameters are invalid or
                change the number of states or symbols; the model is left
                untouched in that case
        """
        pi, A, B = self._validate_parameters(initial, transition, emission, self.tolerance)

        if pi.shape[0] != self.n_states or B.shape[1] != self.n_symbols:
            raise InvalidParametersError(
                f"Parameters describe {pi.shape[0]} states and {B.shape[1]} symbols, "
                f"expected {self.n_states} and {self.n_symbols}"
            )

        self._initial, self._transition, self._emission = pi, A, B
        logger.debug("Model parameters updated and validated")

    def _validate_observations(self, observations, label: str = "Observation sequence") -> np.ndarray:
        """
        Convert an observation sequence to an integer array.

        Raises:
            EmptySequenceError: If the sequence is empty
            InvalidParametersError: If it is not 1-D, not integral or
                contains symbols outside [0, n_symbols)
        """
        try:
            obs = np.asarray(observations)
        except (TypeError, ValueError) as e:
            raise InvalidParametersError(f"{label} must be a flat sequence of symbols: {e}") from e

        if obs.ndim != 1:
            raise InvalidParametersError(f"{label} must be 1-D, got shape {obs.shape}")
        if obs.shape[0] == 0:
            raise EmptySequenceError(f"{label} is empty")

        if not np.issubdtype(obs.dtype, np.integer):
            if not np.issubdtype(obs.dtype, np.floating):
                raise InvalidParametersError(f"{label} must contain integer symbols, got dtype {obs.dtype}")
            if not np.all(np.isfinite(obs)) or np.any(obs != np.round(obs)):
                raise InvalidParametersError(f"{label} must contain integer symbols")
        obs = obs.astype(int)

        if obs.min() < 0 or obs.max() >= self.n_symbols:
            raise InvalidParametersError(
                f"{label} contains symbols outside [0, {self.n_symbols - 1}]"
            )

        return obs

    def log_likelihood(self, observations: Sequence[int]) -> float:
        """
        Compute log-likelihood of observation sequence using the forward algorithm.

        Args:
            observations: Sequence of observation indices [T]

        Returns:
            Natural log of P(observations | model)

        Raises:
            EmptySequenceError: If observations is empty
            InvalidParametersError: If observations contain invalid symbols
            NumericInstabilityError: If the sequence has zero probability
        """
        obs = self._validate_observations(observations)
        _, scale = forward_scaled(self._initial, self._transition, self._emission, obs)
        log_likelihood = log_likelihood_from_scale(scale)

        logger.debug(f"Forward pass completed: T={obs.shape[0]}, log_likelihood={log_likelihood:.6f}")
        return log_likelihood

    def viterbi(self, observations: Sequence[int]) -> Tuple[np.ndarray, float]:
        """
        Viterbi decoding.

        Args:
            observations: Sequence of observation indices [T]

        Returns:
            Tuple of (most likely state path [T], log joint probability of
            that path and the observations). Equal maxima resolve to the
            lowest state index.
        """
        obs = self._validate_observations(observations)
        return viterbi_scaled(self._initial, self._transition, self._emission, obs)

    def predict(self, observations: Sequence[int]) -> np.ndarray:
        """Most likely hidden state path for the observations."""
        path, _ = self.viterbi(observations)
        return path

    def posteriors(self, observations: Sequence[int]) -> Tuple[np.ndarray, float]:
        """
        Per-step state posteriors from forward-backward.

        Returns:
            Tuple of (gamma [T, n_states], log-likelihood)
        """
        obs = self._validate_observations(observations)
        stats = sequence_statistics(self._initial, self._transition, self._emission, obs)
        return stats.gamma, stats.log_likelihood

    def _validate_sequences(self, sequences) -> List[np.ndarray]:
        if len(sequences) == 0:
            raise InvalidParametersError("sequences cannot be empty")
        return [
            self._validate_observations(seq, label=f"Sequence {idx}")
            for idx, seq in enumerate(sequences)
        ]

    @staticmethod
    def _expectation(initial: np.ndarray, transition: np.ndarray, emission: np.ndarray,
                     sequences: List[np.ndarray], n_jobs: int) -> List[SequenceStatistics]:
        """E-step over all sequences, optionally in parallel."""
        if n_jobs == 1 or len(sequences) == 1:
            return [sequence_statistics(initial, transition, emission, obs) for obs in sequences]

        return Parallel(n_jobs=n_jobs)(
            delayed(sequence_statistics)(initial, transition, emission, obs) for obs in sequences
        )

    def _maximization(self, statistics: List[SequenceStatistics],
                      transition: np.ndarray, emission: np.ndarray,
                      regularization_alpha: float,
                      probability_floor: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        M-step: re-estimate all parameters from accumulated statistics.

        Columns and rows whose state was never occupied keep their
        previous values.
        """
        n_sequences = len(statistics)

        initial_counts = np.sum([s.initial_counts for s in statistics], axis=0)
        pi_new = (initial_counts + regularization_alpha) / (
            n_sequences + self.n_states * regularization_alpha
        )

        xi_total = np.sum([s.xi_sum for s in statistics], axis=0)
        departures = np.sum([s.departure_counts for s in statistics], axis=0)
        denominators = departures + self.n_states * regularization_alpha

        A_new = transition.copy()
        occupied = denominators > 0
        A_new[:, occupied] = (xi_total[:, occupied] + regularization_alpha) / denominators[occupied]

        all_observations = np.concatenate([s.observations for s in statistics])
        all_gamma = np.concatenate([s.gamma for s in statistics], axis=0)

        B_new = np.vstack([
            DiscreteDistribution(emission[i], tolerance=self.tolerance).estimate(
                all_observations,
                weights=all_gamma[:, i],
                pseudocount=regularization_alpha
            ).probabilities
            for i in range(self.n_states)
        ])

        if probability_floor > 0:
            pi_new = np.maximum(pi_new, probability_floor)
            pi_new = pi_new / pi_new.sum()

            A_new = np.maximum(A_new, probability_floor)
            A_new = A_new / A_new.sum(axis=0, keepdims=True)

            B_new = np.maximum(B_new, probability_floor)
            B_new = B_new / B_new.sum(axis=1, keepdims=True)

        return pi_new, A_new, B_new

    def train(self, sequences: Sequence[Sequence[int]],
              max_iterations: Optional[int] = None,
              tolerance: Optional[float] = None,
              n_jobs: Optional[int] = None,
              regularization_alpha: Optional[float] = None,
              probability_floor: Optional[float] = None,
              verbose: bool = False) -> Dict[str, Any]:
        """
        Train HMM using the Baum-Welch algorithm.

        EM only finds a local maximum of the likelihood; results depend on
        the starting parameters. Work happens on private copies that are
        committed once training finishes, so a failure leaves the model
        exactly as it was.

        Args:
            sequences: List of observation sequences for training
            max_iterations: Maximum number of EM iterations (default: config)
            tolerance: Stop when the absolute change in total log-likelihood
                is below this value (default: config)
            n_jobs: Parallel workers for the E-step (default: config, 1)
            regularization_alpha: Dirichlet pseudocount (default: config, 0.0)
            probability_floor: Minimum probability value (default: config, 0.0)
            verbose: Log training progress at INFO level

        Returns:
            Dictionary with training statistics:
            - 'converged': Whether training converged before the iteration cap
            - 'iterations': Number of re-estimation steps performed
            - 'initial_log_likelihood': Log-likelihood before training
            - 'final_log_likelihood': Log-likelihood of the final parameters
            - 'log_likelihood_history': Log-likelihood of each parameter set
            - 'improvement_history': Change between consecutive entries

        Raises:
            EmptySequenceError: If any sequence is empty
            InvalidParametersError: If sequences is empty, contains invalid
                symbols or a setting is out of range
            NumericInstabilityError: If a sequence has zero probability
        """
        max_iterations = _training_setting(max_iterations, 'max_iterations')
        tolerance = _training_setting(tolerance, 'tolerance')
        n_jobs = _training_setting(n_jobs, 'n_jobs')
        regularization_alpha = _training_setting(regularization_alpha, 'regularization_alpha')
        probability_floor = _training_setting(probability_floor, 'probability_floor')

        if max_iterations < 0:
            raise InvalidParametersError(f"max_iterations must be >= 0, got {max_iterations}")
        if tolerance < 0:
            raise InvalidParametersError(f"tolerance must be >= 0, got {tolerance}")
        if regularization_alpha < 0 or probability_floor < 0:
            raise InvalidParametersError("regularization_alpha and probability_floor must be >= 0")
        if n_jobs == 0:
            raise InvalidParametersError("n_jobs must be nonzero")

        observations_list = self._validate_sequences(sequences)
        log = logger.info if verbose else logger.debug

        initial, transition, emission = self.get_parameters()

        log_likelihood_history = []
        improvement_history = []
        converged = False
        iterations = 0

        log(f"Starting Baum-Welch with {len(observations_list)} sequences, "
            f"max_iterations={max_iterations}, tolerance={tolerance}")

        for iteration in range(max_iterations):
            statistics = self._expectation(initial, transition, emission, observations_list, n_jobs)
            current_log_likelihood = sum(s.log_likelihood for s in statistics)

            if log_likelihood_history:
                improvement = current_log_likelihood - log_likelihood_history[-1]
                improvement_history.append(improvement)
                log(f"Iteration {iteration}: log_likelihood={current_log_likelihood:.6f}, "
                    f"improvement={improvement:.6f}")

                # EM never decreases the likelihood without regularization
                if improvement < -1e-6:
                    logger.warning(f"Log-likelihood decreased by {-improvement:.6f} at iteration {iteration}")
            else:
                log(f"Initial log-likelihood: {current_log_likelihood:.6f}")

            log_likelihood_history.append(current_log_likelihood)

            if improvement_history and abs(improvement_history[-1]) < tolerance:
                converged = True
                log(f"Converged after {iterations} iterations")
                break

            initial, transition, emission = self._maximization(
                statistics, transition, emission,
                regularization_alpha=regularization_alpha,
                probability_floor=probability_floor
            )
            iterations += 1

        if not converged:
            final_statistics = self._expectation(initial, transition, emission, observations_list, n_jobs)
            final_log_likelihood = sum(s.log_likelihood for s in final_statistics)
            if log_likelihood_history:
                improvement_history.append(final_log_likelihood - log_likelihood_history[-1])
            log_likelihood_history.append(final_log_likelihood)
            if max_iterations > 0:
                log(f"Training stopped after {max_iterations} iterations without convergence")

        self._initial, self._transition, self._emission = initial, transition, emission
        self.is_trained = True

        training_stats = {
            'converged': converged,
            'iterations': iterations,
            'initial_log_likelihood': log_likelihood_history[0],
            'final_log_likelihood': log_likelihood_history[-1],
            'log_likelihood_history': log_likelihood_history,
            'improvement_history': improvement_history
        }

        logger.debug(f"Training completed: converged={converged}, iterations={iterations}")

        return training_stats

    def train_supervised(self, sequences: Sequence[Sequence[int]],
                         state_paths: Sequence[Sequence[int]]) -> None:
        """
        Maximum-likelihood estimation from labeled state paths.

        Counts initial states, transitions and emissions and normalizes
        them. States that never occur (or never transition) keep their
        previous parameters.

        Raises:
            EmptySequenceError: If any sequence is empty
            InvalidParametersError: If symbols or states are out of range or
                a state path doesn't match its sequence length
        """
        observations_list = self._validate_sequences(sequences)

        if len(state_paths) != len(observations_list):
            raise InvalidParametersError(
                f"Got {len(state_paths)} state paths for {len(observations_list)} sequences"
            )

        paths = []
        for idx, (obs, path) in enumerate(zip(observations_list, state_paths)):
            path = np.asarray(path)
            if path.shape != obs.shape:
                raise InvalidParametersError(
                    f"State path {idx} has shape {path.shape}, expected {obs.shape}"
                )
            if not np.issubdtype(path.dtype, np.integer) or path.min() < 0 or path.max() >= self.n_states:
                raise InvalidParametersError(
                    f"State path {idx} must contain integer states in [0, {self.n_states - 1}]"
                )
            paths.append(path.astype(int))

        initial_counts = np.zeros(self.n_states)
        transition_counts = np.zeros((self.n_states, self.n_states))
        for path in paths:
            initial_counts[path[0]] += 1
            np.add.at(transition_counts, (path[1:], path[:-1]), 1)

        pi_new = initial_counts / initial_counts.sum()

        A_new = self._transition.copy()
        departures = transition_counts.sum(axis=0)
        seen = departures > 0
        A_new[:, seen] = transition_counts[:, seen] / departures[seen]

        all_observations = np.concatenate(observations_list)
        all_states = np.concatenate(paths)
        B_new = np.vstack([
            DiscreteDistribution(self._emission[i], tolerance=self.tolerance).estimate(
                all_observations[all_states == i]
            ).probabilities
            for i in range(self.n_states)
        ])

        self._initial, self._transition, self._emission = pi_new, A_new, B_new
        self.is_trained = True

        logger.debug(f"Supervised training completed on {len(paths)} labeled sequences")

    def generate(self, length: int, start_state: Optional[int] = None,
                 random_state: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
        """
        Sample an observation sequence and the hidden states behind it.

        Args:
            length: Number of time steps (>= 1)
            start_state: Fixed first state (default: drawn from initial)
            random_state: Random seed

        Returns:
            Tuple of (observations [length], states [length])
        """
        if length < 1:
            raise InvalidParametersError(f"length must be >= 1, got {length}")
        if start_state is not None and not 0 <= start_state < self.n_states:
            raise InvalidParametersError(
                f"start_state {start_state} outside [0, {self.n_states - 1}]"
            )

        rng = np.random.default_rng(random_state)
        emissions = self.emission

        observations = np.zeros(length, dtype=int)
        states = np.zeros(length, dtype=int)

        if start_state is None:
            state = int(rng.choice(self.n_states, p=self._initial / self._initial.sum()))
        else:
            state = int(start_state)

        for t in range(length):
            states[t] = state
            observations[t] = emissions[state].sample(rng)
            column = self._transition[:, state]
            state = int(rng.choice(self.n_states, p=column / column.sum()))

        return observations, states

    def __repr__(self) -> str:
        """String representation of the HMM."""
        return f"DiscreteHMM(n_states={self.n_states}, n_symbols={self.n_symbols})"
