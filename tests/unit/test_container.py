"""
Tests for the dependency container wiring.
"""

import pytest

from scoutcore.ai import OpenRouterClient
from scoutcore.config import AISettings, RemoteSettings
from scoutcore.container import DependencyContainer
from scoutcore.remote import RemoteExtractionService

from tests.helpers import FakeAI, FakeBridge


@pytest.mark.unit
class TestDependencyContainer:
    @pytest.mark.asyncio
    async def test_builds_pipeline_once(self, fast_config):
        async with DependencyContainer(config=fast_config).lifecycle() as container:
            pipeline = await container.get_pipeline()

            assert await container.get_pipeline() is pipeline
            assert pipeline.remote is None
            assert pipeline.classifier.ai_client is None
            assert pipeline.executor.order == tuple(fast_config.strategies.order)
            assert len(pipeline.catalog) > 0

    @pytest.mark.asyncio
    async def test_bridge_session_uses_injected_bridge(self, fast_config):
        bridge = FakeBridge()
        async with DependencyContainer(config=fast_config, bridge=bridge).lifecycle() as container:
            session = await container.get_bridge_session()
            assert session.available
            assert session.bridge is bridge

    @pytest.mark.asyncio
    async def test_injected_ai_client_is_used(self, fast_config):
        ai = FakeAI('{"queryType": "news"}')
        async with DependencyContainer(config=fast_config, ai_client=ai).lifecycle() as container:
            pipeline = await container.get_pipeline()
            assert pipeline.classifier.ai_client is ai

    @pytest.mark.asyncio
    async def test_ai_client_built_from_config(self, fast_config):
        config = fast_config.model_copy(update={"ai": AISettings(enabled=True, api_keys=["k1"])})
        async with DependencyContainer(config=config).lifecycle() as container:
            assert isinstance(await container.get_ai_client(), OpenRouterClient)

    @pytest.mark.asyncio
    async def test_ai_enabled_without_keys(self, fast_config):
        config = fast_config.model_copy(update={"ai": AISettings(enabled=True)})
        async with DependencyContainer(config=config).lifecycle() as container:
            assert await container.get_ai_client() is None

    @pytest.mark.asyncio
    async def test_remote_service_wired_when_enabled(self, fast_config):
        config = fast_config.model_copy(update={"remote": RemoteSettings(enabled=True)})
        async with DependencyContainer(config=config).lifecycle() as container:
            pipeline = await container.get_pipeline()
            assert isinstance(pipeline.remote, RemoteExtractionService)

    @pytest.mark.asyncio
    async def test_shutdown_closes_http_client(self, fast_config):
        container = DependencyContainer(config=fast_config)
        await container.initialize()
        client = await container.get_http_client()
        assert client.session is not None

        await container.shutdown()

        assert client.session is None
        assert not container.is_running

    @pytest.mark.asyncio
    async def test_catalog_file(self, fast_config, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text(
            "targets:\n"
            "  - name: Local\n"
            "    url: https://local.example/{query}\n"
            "    categories: [general]\n"
        )
        config = fast_config.model_copy(update={"catalog_file": path})
        async with DependencyContainer(config=config).lifecycle() as container:
            pipeline = await container.get_pipeline()
            assert [t.name for t in pipeline.catalog.all_targets()] == ["Local"]
