"""Pytest configuration and shared fixtures."""

import logging

import pytest
from fakes import FakeSSEServer

from mcp_sse_proxy.logging_config import LOGGER_NAME


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


@pytest.fixture
def fake_server() -> FakeSSEServer:
    """Remote endpoint that assigns session ``abc123`` and ends the stream."""
    return FakeSSEServer()


@pytest.fixture(autouse=True)
def reset_proxy_logger():
    """Undo ``setup_logging`` so caplog keeps seeing proxy records."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
