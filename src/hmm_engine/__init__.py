"""
hmm-engine: Discrete Hidden Markov Models

A small Python library for discrete-emission Hidden Markov Models with
Viterbi decoding, forward-algorithm scoring and Baum-Welch training.
"""

__version__ = "0.1.0"

from .config import get_config, set_config
from .logger import get_logger
from .exceptions import (
    HMMEngineError,
    InvalidParametersError,
    EmptySequenceError,
    NumericInstabilityError
)
from .hmm import DiscreteDistribution, DiscreteHMM

__all__ = [
    "DiscreteHMM",
    "DiscreteDistribution",
    "HMMEngineError",
    "InvalidParametersError",
    "EmptySequenceError",
    "NumericInstabilityError",
    "get_config",
    "set_config",
    "get_logger",
    "__version__"
]
