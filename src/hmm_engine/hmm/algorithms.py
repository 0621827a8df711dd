"""
Scaled forward, backward and Viterbi recurrences for discrete HMMs.

All functions take the model parameters as plain arrays:

- ``initial``: [n_states]
- ``transition``: [n_states, n_states], indexed ``transition[to, from]``
- ``emission``: [n_states, n_symbols]

Underflow is avoided by rescaling the forward (and Viterbi) vector to sum to
one at every time step and keeping the scale factors. The log-likelihood is
then ``sum(log(scale))``. The same strategy is used everywhere so that
scores, decodes and training statistics are directly comparable.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ..exceptions import NumericInstabilityError


def _check_scale(scale: float, t: int) -> None:
    if not np.isfinite(scale):
        raise NumericInstabilityError(f"Non-finite probability mass at time step {t}")
    if scale <= 0.0:
        raise NumericInstabilityError(
            f"Observation sequence has zero probability under the model (time step {t})"
        )


def forward_scaled(initial: np.ndarray, transition: np.ndarray, emission: np.ndarray,
                   observations: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Forward pass with per-step normalization.

    Returns:
        Tuple of:
        - alpha: Scaled forward probabilities [T, n_states], rows sum to 1
        - scale: Scaling coefficients [T]

    Raises:
        NumericInstabilityError: If the probability mass vanishes at some step
    """
    T = observations.shape[0]
    n_states = initial.shape[0]

    alpha = np.zeros((T, n_states))
    scale = np.zeros(T)

    alpha[0] = initial * emission[:, observations[0]]
    scale[0] = alpha[0].sum()
    _check_scale(scale[0], 0)
    alpha[0] /= scale[0]

    for t in range(1, T):
        # alpha'[i] = B[i, o_t] * sum_j transition[i, j] * alpha[j]
        alpha[t] = emission[:, observations[t]] * (transition @ alpha[t - 1])
        scale[t] = alpha[t].sum()
        _check_scale(scale[t], t)
        alpha[t] /= scale[t]

    return alpha, scale


def backward_scaled(transition: np.ndarray, emission: np.ndarray,
                    observations: np.ndarray, scale: np.ndarray) -> np.ndarray:
    """
    Backward pass using the scale factors of the matching forward pass.

    Returns:
        beta: Scaled backward probabilities [T, n_states]
    """
    T = observations.shape[0]
    n_states = transition.shape[0]

    beta = np.zeros((T, n_states))
    beta[T - 1] = 1.0

    for t in range(T - 2, -1, -1):
        # beta[t, i] = sum_j transition[j, i] * B[j, o_{t+1}] * beta[t+1, j]
        beta[t] = transition.T @ (emission[:, observations[t + 1]] * beta[t + 1])
        beta[t] /= scale[t + 1]

    return beta


def log_likelihood_from_scale(scale: np.ndarray) -> float:
    return float(np.sum(np.log(scale)))


@dataclass
class SequenceStatistics:
    """Expected counts gathered from one observation sequence (E-step)."""

    observations: np.ndarray
    gamma: np.ndarray            # [T, n_states]
    xi_sum: np.ndarray           # [n_states, n_states], indexed [to, from]
    log_likelihood: float

    @property
    def initial_counts(self) -> np.ndarray:
        return self.gamma[0]

    @property
    def departure_counts(self) -> np.ndarray:
        """Expected number of transitions leaving each state."""
        return self.gamma[:-1].sum(axis=0)


def sequence_statistics(initial: np.ndarray, transition: np.ndarray, emission: np.ndarray,
                        observations: np.ndarray) -> SequenceStatistics:
    """
    Run forward-backward on one sequence and collect gamma and summed xi.
    """
    alpha, scale = forward_scaled(initial, transition, emission, observations)
    beta = backward_scaled(transition, emission, observations, scale)

    T = observations.shape[0]
    n_states = initial.shape[0]

    gamma = alpha * beta
    gamma /= gamma.sum(axis=1, keepdims=True)

    xi_sum = np.zeros((n_states, n_states))
    for t in range(T - 1):
        arrival = emission[:, observations[t + 1]] * beta[t + 1]
        xi = np.outer(arrival, alpha[t]) * transition
        xi_total = xi.sum()
        if xi_total > 0:
            xi_sum += xi / xi_total

    if not (np.all(np.isfinite(gamma)) and np.all(np.isfinite(xi_sum))):
        raise NumericInstabilityError("Non-finite state occupancy in forward-backward")

    return SequenceStatistics(
        observations=observations,
        gamma=gamma,
        xi_sum=xi_sum,
        log_likelihood=log_likelihood_from_scale(scale)
    )


def viterbi_scaled(initial: np.ndarray, transition: np.ndarray, emission: np.ndarray,
                   observations: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Most likely state path.

    ``delta`` is renormalized after every step; the log of each
    normalizer is accumulated so the path probability can be recovered.
    Ties are resolved towards the lowest state index, both when choosing
    predecessors and when choosing the final state (``np.argmax``
    returns the first maximum).

    Returns:
        Tuple of (state path [T], log probability of the path and observations)
    """
    T = observations.shape[0]
    n_states = initial.shape[0]

    psi = np.zeros((T, n_states), dtype=int)

    delta = initial * emission[:, observations[0]]
    norm = delta.sum()
    _check_scale(norm, 0)
    delta = delta / norm
    log_scale = np.log(norm)

    rows = np.arange(n_states)
    for t in range(1, T):
        # candidates[i, j] = transition[i, j] * delta[j]
        candidates = transition * delta[np.newaxis, :]
        psi[t] = np.argmax(candidates, axis=1)
        delta = emission[:, observations[t]] * candidates[rows, psi[t]]

        norm = delta.sum()
        _check_scale(norm, t)
        delta = delta / norm
        log_scale += np.log(norm)

    path = np.zeros(T, dtype=int)
    path[T - 1] = int(np.argmax(delta))
    for t in range(T - 1, 0, -1):
        path[t - 1] = psi[t, path[t]]

    log_probability = float(log_scale + np.log(delta[path[T - 1]]))
    return path, log_probability
