"""
Pytest fixtures for the CRC channel simulator tests.
"""

import pytest
import numpy as np
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))


class ScriptedRng:
    """Stand-in for numpy.random.Generator replaying fixed draws.

    data: bits returned by integers() for the data region
    draws: uniforms returned by random() for the channel
    """

    def __init__(self, data, draws):
        self.data = np.asarray(data, dtype=np.uint8)
        self.draws = np.asarray(draws, dtype=float)
        self.calls = []

    def integers(self, low, high, size=None, dtype=np.int64):
        self.calls.append(("integers", size))
        assert (low, high) == (0, 2)
        assert size == len(self.data)
        return self.data.astype(dtype)

    def random(self, size=None):
        self.calls.append(("random", size))
        assert size == len(self.draws)
        return self.draws.copy()


@pytest.fixture
def rng():
    """Seeded numpy generator"""
    return np.random.default_rng(2024)


@pytest.fixture
def scripted_rng():
    """Factory for ScriptedRng(data, draws)"""
    return ScriptedRng


@pytest.fixture
def reference_key():
    """Reference generator x^5 + x^4 + x^2 + 1"""
    return "110101"
