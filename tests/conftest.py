"""Test configuration and fixtures."""

import pytest

from config import PipelineSettings
from tests.fakes import FakeClient


@pytest.fixture
def settings():
    """Pipeline settings without retry delays."""
    return PipelineSettings(max_retries=2, retry_base_delay_ms=0)


@pytest.fixture
def fake_client():
    return FakeClient()
