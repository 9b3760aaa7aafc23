"""
Pytest configuration and shared fixtures.
"""

import pytest

from classtweak.model import ClassTweaker
from classtweak.reader import ClassTweakerReader


# =============================================================================
# RULE FIXTURES
# =============================================================================

@pytest.fixture
def model():
    """An empty rule model."""
    return ClassTweaker()


@pytest.fixture
def load(model):
    """Read rule text into the `model` fixture and return the model."""
    def _load(text, source_id="test", namespace=None):
        ClassTweakerReader(model).read(text, namespace, source_id=source_id)
        return model
    return _load


@pytest.fixture
def tweaker_rules(load):
    """Parse classTweaker v1 body lines under a `named` header."""
    def _rules(*lines, source_id="test"):
        return load("classTweaker\tv1\tnamed\n" + "\n".join(lines) + "\n", source_id)
    return _rules


# =============================================================================
# TRANSFORM FIXTURES
# =============================================================================

@pytest.fixture
def generated():
    """A generated-class sink that records what it receives."""
    class Sink(dict):
        def __call__(self, name, data):
            self[name] = data
    return Sink()
