"""
Hidden Markov Model module.

Discrete HMM implementation with Viterbi decoding, forward-algorithm scoring
and Baum-Welch training.
"""

from .distribution import DiscreteDistribution
from .model import DiscreteHMM

__all__ = [
    "DiscreteDistribution",
    "DiscreteHMM"
]
