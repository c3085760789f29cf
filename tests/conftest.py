"""Shared fixtures: in-memory sinks, deterministic ids, exit stubs."""

import io
import os
import sys

import pytest
import structlog

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.common import new_logger
from tests.helpers import ExitRecorder, SequentialIDs


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def ids():
    return SequentialIDs()


@pytest.fixture
def exit_recorder():
    return ExitRecorder()


@pytest.fixture
def make_logger(stream, ids, exit_recorder):
    """Build a Logger writing to the test stream."""

    def _make(environment: str = "production", min_level="debug"):
        return new_logger(
            environment,
            min_level,
            stream=stream,
            id_provider=ids,
            exit_func=exit_recorder,
        )

    return _make


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()
