"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for fakes imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from fakes import FakeLoadMaster  # noqa: E402

from loadmaster_sync.config.models import RetryConfig  # noqa: E402
from loadmaster_sync.reconcilers import build_registry  # noqa: E402
from loadmaster_sync.state.manager import StateManager  # noqa: E402
from loadmaster_sync.utils.retry import RetryStrategy  # noqa: E402


@pytest.fixture
def fake():
    """A fresh in-memory appliance."""
    return FakeLoadMaster()


@pytest.fixture
def fast_retry():
    """Retry strategy that never sleeps."""
    return RetryStrategy(max_attempts=3, base_delay=0, max_delay=0, jitter=False)


@pytest.fixture
def retry_config():
    return RetryConfig(max_attempts=3, base_delay=0, max_delay=0, jitter=False)


@pytest.fixture
def registry(fake, retry_config):
    return build_registry(fake, retry_config)


@pytest.fixture
def state_manager(tmp_path):
    return StateManager(str(tmp_path / "state.json"))
