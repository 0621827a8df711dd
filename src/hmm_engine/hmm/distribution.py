"""
Discrete emission distribution.

Each hidden state of a DiscreteHMM owns one DiscreteDistribution over the
observation alphabet.
"""

import numpy as np
from typing import Optional

from ..exceptions import InvalidParametersError


class DiscreteDistribution:
    """
    Probability distribution over the symbols ``0 .. n_symbols - 1``.

    Instances are treated as immutable: re-estimation returns a new
    distribution and ``probabilities`` always hands out a copy.
    """

    def __init__(self, probabilities, tolerance: float = 1e-6):
        """
        Create a distribution from a probability vector.

        Args:
            probabilities: Sequence of non-negative values summing to 1
            tolerance: Allowed deviation of the sum from 1.0

        Raises:
            InvalidParametersError: If the vector is empty, not 1-D,
                contains negative or non-finite values, or is not normalized
        """
        probs = np.asarray(probabilities, dtype=float)

        if probs.ndim != 1 or probs.size == 0:
            raise InvalidParametersError(
                f"Emission probabilities must be a non-empty 1-D vector, got shape {probs.shape}"
            )
        if not np.all(np.isfinite(probs)):
            raise InvalidParametersError("Emission probabilities contain non-finite values")
        if np.any(probs < 0):
            raise InvalidParametersError("Emission probabilities contain negative values")
        if abs(probs.sum() - 1.0) > tolerance:
            raise InvalidParametersError(
                f"Emission probabilities sum to {probs.sum()}, expected 1.0"
            )

        self._probabilities = probs.copy()

    @classmethod
    def uniform(cls, n_symbols: int) -> "DiscreteDistribution":
        """Uniform distribution over ``n_symbols`` symbols."""
        if n_symbols < 1:
            raise InvalidParametersError(f"n_symbols must be >= 1, got {n_symbols}")
        return cls(np.ones(n_symbols) / n_symbols)

    @property
    def n_symbols(self) -> int:
        return self._probabilities.shape[0]

    @property
    def probabilities(self) -> np.ndarray:
        return self._probabilities.copy()

    def probability(self, symbol: int) -> float:
        """P(symbol)."""
        return float(self._probabilities[self._check_symbol(symbol)])

    def log_probability(self, symbol: int) -> float:
        """Natural log of P(symbol); -inf for impossible symbols."""
        p = self._probabilities[self._check_symbol(symbol)]
        with np.errstate(divide='ignore'):
            return float(np.log(p))

    def estimate(self, observations, weights: Optional[np.ndarray] = None,
                 pseudocount: float = 0.0) -> "DiscreteDistribution":
        """
        Weighted maximum-likelihood re-estimation.

        Args:
            observations: Observed symbols
            weights: Per-observation weights (default: all ones)
            pseudocount: Added to every symbol count before normalizing

        Returns:
            New DiscreteDistribution. When the total weight is zero the
            current probabilities are kept.
        """
        observations = np.asarray(observations, dtype=int)
        if weights is None:
            weights = np.ones(observations.shape[0])
        weights = np.asarray(weights, dtype=float)

        if weights.shape != observations.shape:
            raise InvalidParametersError(
                f"weights shape {weights.shape} doesn't match observations shape {observations.shape}"
            )
        if observations.size and (observations.min() < 0 or observations.max() >= self.n_symbols):
            raise InvalidParametersError(
                f"Observations must be in range [0, {self.n_symbols - 1}]"
            )

        counts = np.bincount(observations, weights=weights, minlength=self.n_symbols)
        counts = counts + pseudocount
        total = counts.sum()

        if total <= 0:
            return DiscreteDistribution(self._probabilities)

        return DiscreteDistribution(counts / total)

    def sample(self, rng: np.random.Generator) -> int:
        """Draw one symbol."""
        return int(rng.choice(self.n_symbols, p=self._probabilities / self._probabilities.sum()))

    def _check_symbol(self, symbol: int) -> int:
        if not 0 <= symbol < self.n_symbols:
            raise InvalidParametersError(
                f"Symbol {symbol} outside range [0, {self.n_symbols - 1}]"
            )
        return int(symbol)

    def __len__(self) -> int:
        return self.n_symbols

    def __repr__(self) -> str:
        return f"DiscreteDistribution({np.array2string(self._probabilities, precision=4)})"
