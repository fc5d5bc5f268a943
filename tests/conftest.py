"""Shared pytest fixtures for storyblok-sync tests."""

from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from storyblok_sync.config import Config

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Storyblok space",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Storyblok space"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        # --run-live given: do not skip live tests
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        access_token="test-token",
        region="eu",
        timeout=5.0,
        max_parallel_requests=2,
        per_page=2,
    )


@pytest.fixture
def mock_storyblok_client(mock_config):
    """Create a mock StoryblokClient instance for testing."""
    from storyblok_sync.core.client import StoryblokClient

    client = MagicMock(spec=StoryblokClient)
    client.config = mock_config
    return client


@pytest.fixture
def mock_json_response():
    """Factory fixture for creating requests.Response mocks."""

    def _create_response(body, status_code=200, headers=None):
        """Create a mock response returning *body* from ``.json()``."""
        from unittest.mock import Mock

        mock_response = Mock()
        mock_response.status_code = status_code
        mock_response.headers = headers or {}
        mock_response.json.return_value = body
        mock_response.text = str(body)
        mock_response.reason = "OK" if status_code < 400 else "Error"
        return mock_response

    return _create_response
