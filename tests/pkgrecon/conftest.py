"""Shared fixtures for pkgrecon tests."""

import pytest
import structlog


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session", autouse=True)
def _quiet_structlog():
    # Rendered log lines are returned instead of printed, keeping stdout clean.
    structlog.configure(logger_factory=structlog.ReturnLoggerFactory())
    yield
    structlog.reset_defaults()
