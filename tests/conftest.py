# tests/conftest.py
import logging

import pytest

# Silence verbose library logging during test runs
logging.getLogger("dynamic_query").setLevel(logging.WARNING)


@pytest.fixture
def propagating_logs():
    """Lets caplog see records from the package logger (propagation is off by default)."""
    package_logger = logging.getLogger("dynamic_query")
    previous = package_logger.propagate
    package_logger.propagate = True
    try:
        yield package_logger
    finally:
        package_logger.propagate = previous
