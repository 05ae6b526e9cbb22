"""Global test configuration and fixtures"""

import logging

import pytest
import structlog


pytest_plugins = ["tests.fixtures.dm_fixtures"]


@pytest.fixture(autouse=True)
def quiet_structlog():
    """Keep structlog output out of test runs while still exercising log calls"""
    structlog.configure(
        processors=[structlog.processors.add_log_level, structlog.processors.KeyValueRenderer()],
        wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()
