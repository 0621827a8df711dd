"""
Exception hierarchy for the HMM engine.
"""


class HMMEngineError(Exception):
    """Base exception for the HMM engine."""
    pass


class InvalidParametersError(HMMEngineError, ValueError):
    """Dimension mismatch, negative or non-normalized probabilities, bad symbols."""
    pass


class EmptySequenceError(HMMEngineError, ValueError):
    """Zero-length observation sequence."""
    pass


class NumericInstabilityError(HMMEngineError, ArithmeticError):
    """Non-finite or vanishing probabilities despite rescaling."""
    pass
