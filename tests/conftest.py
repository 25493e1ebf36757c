"""
Test configuration and fixtures for Dataset Pipeline.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from dataset_pipeline.core.config import Settings


class MockAsyncContextManager:
    """Mock async context manager for aiohttp responses."""

    def __init__(self, mock_response):
        self.mock_response = mock_response

    async def __aenter__(self):
        return self.mock_response

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


def make_response(status: int = 200, body: bytes = b"", text: str = "") -> Mock:
    """Create a mock aiohttp response."""
    response = Mock()
    response.status = status
    response.read = AsyncMock(return_value=body)
    response.text = AsyncMock(return_value=text)
    return response


def make_session(get_response=None, post_response=None) -> Mock:
    """Create a mock aiohttp session returning the given responses."""
    session = Mock()
    if get_response is not None:
        session.get = Mock(return_value=MockAsyncContextManager(get_response))
    if post_response is not None:
        session.post = Mock(return_value=MockAsyncContextManager(post_response))
    return session


@pytest.fixture
def options(tmp_path):
    """Run options with every directory under tmp_path."""
    return Settings(
        raw_data_dir=str(tmp_path / "raw"),
        normalized_data_dir=str(tmp_path / "norm"),
        download_dir=str(tmp_path / "dl"),
        archived_dir=str(tmp_path / "arch"),
        get_dataset_endpoint="https://data.example.com/datasets/latest",
        data_file="dataset.json",
        run_task_endpoint="https://tasks.example.com/run",
        requests_per_day=100,
        request_depths_per_day=3,
    )
