"""
Shared test configuration for ScoutCore.

Fixtures build fast settings (no retry delays, short bridge waits) and the
collaborator doubles used across unit and integration tests.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio

from scoutcore.config import (
    ClassifierSettings,
    Config,
    HttpSettings,
    PipelineSettings,
    StrategySettings,
)
from scoutcore.transport import HttpClient

from tests.helpers import FakeBridge, FakeHttp

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")
    config.addinivalue_line("markers", "slow: Tests that take more than a few seconds")


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def http_settings() -> HttpSettings:
    return HttpSettings(timeout=2.0, max_retries=2, retry_delay=0.0)


@pytest.fixture
def strategy_settings() -> StrategySettings:
    return StrategySettings(
        api_timeout=1.0,
        navigation_timeout=0.5,
        script_timeout=0.5,
        dom_ready_attempts=3,
        dom_ready_interval=0.0,
        settle_delay=0.0,
        ai_timeout=0.5,
    )


@pytest.fixture
def fast_config(http_settings, strategy_settings) -> Config:
    return Config(
        http=http_settings,
        strategies=strategy_settings,
        classifier=ClassifierSettings(ai_timeout=0.5),
        pipeline=PipelineSettings(global_timeout=5.0),
    )


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def http_client(http_settings) -> AsyncGenerator[HttpClient, None]:
    client = HttpClient(http_settings)
    await client.initialize()
    yield client
    await client.close()


@pytest.fixture
def fake_http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def fake_bridge() -> FakeBridge:
    return FakeBridge()
