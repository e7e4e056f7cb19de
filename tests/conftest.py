"""
Shared pytest fixtures for pipechain tests.

Every test runs with the PIPECHAIN_* environment variables cleared so the
evaluator defaults apply unless a test sets them explicitly.
"""

import logging
import operator

import pytest

from pipechain.config import EvaluatorConfig
from pipechain.logging_config import LOGGER_NAME


PIPECHAIN_ENV_VARS = (
    "PIPECHAIN_PLACEHOLDER_POLICY",
    "PIPECHAIN_LOG_STEPS",
    "PIPECHAIN_DEBUG_LOG",
    "PIPECHAIN_LOG_DIR",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Remove pipechain environment variables for each test."""
    for name in PIPECHAIN_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def test_config():
    """Evaluator configuration independent of the environment."""
    return EvaluatorConfig.for_testing()


@pytest.fixture
def recorder():
    """A step function that records every value it receives."""
    class Recorder:
        def __init__(self):
            self.calls = []

        def __call__(self, value, *args, **kwargs):
            self.calls.append((value, args, kwargs))
            return value

    return Recorder()


@pytest.fixture
def namespace():
    """Names available to textual chains."""
    return {
        "x": 4,
        "add": operator.add,
        "mul": operator.mul,
        "sub": operator.sub,
        "pair": lambda a, b: (a, b),
        "divide": lambda a, b: a / b,
    }


@pytest.fixture
def chain_log(caplog):
    """Capture records from the package logger, which does not propagate."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.addHandler(caplog.handler)
    caplog.handler.setLevel(logging.DEBUG)
    yield caplog
    logger.removeHandler(caplog.handler)
