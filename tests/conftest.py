"""Root test configuration."""

import logging

import pytest
import structlog

from infraphase.config.settings import Settings
from infraphase.orchestration.models import PollPolicy, RetryPolicy


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def fast_poll():
    """Poll policy small enough for unit tests."""
    return PollPolicy(interval_seconds=0.01, max_wait_seconds=0.5)


@pytest.fixture
def no_retry():
    return RetryPolicy(max_attempts=1, backoff_seconds=0.0, backoff_max_seconds=0.0)


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and the user's home."""
    return Settings(
        _env_file=None,
        poll_interval_seconds=0.01,
        max_wait_seconds=0.5,
        retry_backoff_seconds=0.0,
        retry_backoff_max_seconds=0.0,
        credentials_file=tmp_path / "secrets.yaml",
        log_json=False,
    )
