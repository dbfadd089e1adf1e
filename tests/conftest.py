"""
Pytest configuration and shared fixtures.
"""

import logging

import pytest

from src.infra.logging_config import LIBRARY_LOGGER_NAME, LOGGER_NAME


@pytest.fixture(autouse=True, scope="function")
def reset_logging():
    """
    Reset logger state after each test.

    setup_logging() disables propagation and attaches handlers bound to the
    streams of the test that called it; later tests start from a clean slate.
    """
    yield

    for name in (LOGGER_NAME, LIBRARY_LOGGER_NAME):
        configured = logging.getLogger(name)
        for handler in list(configured.handlers):
            configured.removeHandler(handler)
            handler.close()
        configured.propagate = True
        configured.setLevel(logging.NOTSET)
