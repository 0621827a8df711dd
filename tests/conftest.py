"""
Test configuration and fixtures for hmm-engine.

This file contains pytest configuration and shared fixtures
for testing the HMM engine.
"""

import pytest
import tempfile
import numpy as np
from pathlib import Path

from hmm_engine.config import reset_config
from hmm_engine.logger import configure_logging
from hmm_engine.hmm import DiscreteHMM


@pytest.fixture(autouse=True)
def fresh_config():
    """Restore the global configuration and log handlers after every test."""
    yield
    reset_config()
    configure_logging()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def demo_parameters():
    """Two-state, two-symbol parameters used by the demo program."""
    initial = np.array([0.5, 0.5])
    # transition[to, from]
    transition = np.array([
        [0.8, 0.3],
        [0.2, 0.7]
    ])
    emission = np.array([
        [0.9, 0.1],
        [0.2, 0.8]
    ])
    return initial, transition, emission


@pytest.fixture
def demo_model(demo_parameters):
    """DiscreteHMM built from the demo parameters."""
    return DiscreteHMM(*demo_parameters)


@pytest.fixture
def demo_observations():
    """Observation sequence used by the demo program."""
    return [0, 0, 1, 0, 1, 1]


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
