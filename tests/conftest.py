"""Shared test fixtures for the AIRA test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("DATA_BACKEND", "memory")
    os.environ.setdefault("AWS_REGION", "us-east-1")
    os.environ.setdefault("METRICS_ENABLED", "false")
    os.environ.setdefault("FIELD_API_TOKEN", "test-field-api-token")


@pytest.fixture
def backend():
    from aira.services.backend import InMemoryBackend

    return InMemoryBackend()


@pytest.fixture
def executor(backend):
    from aira.tools.executor import FunctionExecutor

    return FunctionExecutor(backend)


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock field-service API responses."""

    def _make(data, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make
