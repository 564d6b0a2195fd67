"""
Dependency injection container for ScoutCore.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Dict, Generic, Optional, TypeVar
from uuid import uuid4

import structlog

from scoutcore.config import Config
from scoutcore.protocols import AICompletion, BrowserBridge

if TYPE_CHECKING:
    from scoutcore.bridge import BridgeSession
    from scoutcore.pipeline import Pipeline
    from scoutcore.transport import HttpClient

T = TypeVar("T")


class LazyInstance(Generic[T]):
    """Lazy-loaded instance with lifecycle management."""

    def __init__(self, factory: Callable[..., T], *args: Any, **kwargs: Any) -> None:
        self._factory = factory
        self._args = args
        self._kwargs = kwargs
        self._instance: Optional[T] = None
        self._initialized = False

    async def get(self) -> T:
        """Get or create the instance."""
        if not self._initialized:
            self._instance = self._factory(*self._args, **self._kwargs)
            if callable(getattr(self._instance, "initialize", None)):
                await self._instance.initialize()  # type: ignore
            self._initialized = True
        assert self._instance is not None
        return self._instance

    async def cleanup(self) -> None:
        """Clean up the instance."""
        if self._instance is not None and callable(getattr(self._instance, "close", None)):
            await self._instance.close()  # type: ignore
        self._instance = None
        self._initialized = False


class DependencyContainer:
    """
    Builds and owns the pipeline and its collaborators.

    The browser bridge and AI client are external collaborators: pass them in
    to use them. Without an AI client one is built from ``config.ai`` when
    enabled and keyed.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[Config] = None,
        bridge: Optional[BrowserBridge] = None,
        ai_client: Optional[AICompletion] = None,
    ) -> None:
        self.config_path = config_path
        self.config = config
        self.bridge = bridge
        self.ai_client = ai_client
        self.logger = structlog.get_logger(self.__class__.__name__)

        self._instances: Dict[str, LazyInstance[Any]] = {}
        self._instances_lock = asyncio.Lock()
        self._pipeline: Optional[Pipeline] = None

        self.container_id = str(uuid4())
        self.is_running = False

    async def initialize(self) -> None:
        """Load configuration and prepare lazy instances."""
        if self.config is None:
            self.load_config()
        self._create_instances()
        self.is_running = True
        self.logger.info(
            "Dependency container initialized",
            container_id=self.container_id,
            config_path=str(self.config_path) if self.config_path else "default",
        )

    def load_config(self) -> None:
        if self.config_path and self.config_path.exists():
            self.config = Config.from_yaml(self.config_path)
        else:
            self.config = Config()

    def _create_instances(self) -> None:
        if self.config is None:
            raise RuntimeError("Configuration must be loaded before creating instances")

        from scoutcore.bridge import BridgeSession
        from scoutcore.transport import HttpClient

        self._instances = {
            "http_client": LazyInstance(HttpClient, self.config.http),
            "bridge_session": LazyInstance(BridgeSession, self.bridge, self.config.strategies),
        }
        self._pipeline = None

    async def get_http_client(self) -> HttpClient:
        """Get the HTTP client instance."""
        async with self._instances_lock:
            return await self._instances["http_client"].get()  # type: ignore

    async def get_bridge_session(self) -> BridgeSession:
        """Get the browser bridge session."""
        async with self._instances_lock:
            return await self._instances["bridge_session"].get()  # type: ignore

    async def get_ai_client(self) -> Optional[AICompletion]:
        """Return the injected AI client, or build one from config when enabled."""
        if self.ai_client is not None:
            return self.ai_client
        assert self.config is not None
        if not self.config.ai.enabled or not self.config.ai.api_keys:
            return None

        from scoutcore.ai import OpenRouterClient

        self.ai_client = OpenRouterClient(self.config.ai, await self.get_http_client())
        return self.ai_client

    async def get_pipeline(self) -> Pipeline:
        """Build the pipeline once, wiring every collaborator from configuration."""
        if self._pipeline is not None:
            return self._pipeline
        if self.config is None:
            raise RuntimeError("Container not initialized")

        from scoutcore.catalog import SourceCatalog
        from scoutcore.classifier import QueryClassifier
        from scoutcore.consensus import ConsensusAggregator
        from scoutcore.executor import StrategyExecutor
        from scoutcore.fallback import EmergencyFallbackProvider
        from scoutcore.pipeline import Pipeline
        from scoutcore.progress import ProgressBus
        from scoutcore.remote import RemoteExtractionService

        config = self.config
        http = await self.get_http_client()
        session = await self.get_bridge_session()
        ai_client = await self.get_ai_client()

        catalog = SourceCatalog.from_yaml(config.catalog_file) if config.catalog_file else SourceCatalog.default()
        remote = None
        if config.remote.enabled:
            remote = RemoteExtractionService(http, config.remote, timeout=config.http.timeout)

        self._pipeline = Pipeline(
            classifier=QueryClassifier(ai_client, config.classifier),
            catalog=catalog,
            executor=StrategyExecutor.build(
                http, session if session.available else None, ai_client, config.strategies
            ),
            aggregator=ConsensusAggregator(config.consensus),
            fallback=EmergencyFallbackProvider(config.fallback),
            bus=ProgressBus(),
            settings=config.pipeline,
            remote=remote,
        )
        self.logger.info(
            "Pipeline assembled",
            targets=len(catalog),
            bridge=session.available,
            ai=ai_client is not None,
            remote=remote is not None,
        )
        return self._pipeline

    @asynccontextmanager
    async def lifecycle(self) -> AsyncIterator[DependencyContainer]:
        """Context manager for proper lifecycle management."""
        try:
            await self.initialize()
            yield self
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Graceful shutdown of all managed instances."""
        if not self.is_running:
            return
        self.logger.info("Shutting down dependency container", container_id=self.container_id)
        await self._cleanup_instances()
        self._pipeline = None
        self.is_running = False
        self.logger.info("Dependency container shutdown complete")

    async def _cleanup_instances(self) -> None:
        for name, instance in self._instances.items():
            try:
                await instance.cleanup()
            except Exception as e:
                self.logger.error("Error cleaning up instance", instance=name, error=str(e))
