"""
Serialised access to the embedded browser.

The browser surface is a single mutable resource: only one navigate/inject
sequence may be in flight at a time. ``BridgeSession`` holds one lock for
every sequence and routes replies from the message channel to per-request
futures.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Mapping, Optional

import structlog

from scoutcore.config.config import StrategySettings
from scoutcore.errors import BridgeUnavailable, StrategyFailure
from scoutcore.protocols import BrowserBridge, SelectorSpec

from .scripts import (
    EXTRACTION_ERROR,
    READY_STATE,
    VISIBLE_TEXT,
    build_extraction_script,
    build_ready_probe,
    build_visible_text_script,
)

logger = structlog.get_logger(__name__)


class BridgeSession:
    """Wraps a ``BrowserBridge`` with locking, request ids and bounded waits."""

    def __init__(self, bridge: Optional[BrowserBridge], settings: Optional[StrategySettings] = None) -> None:
        self.bridge = bridge
        self.settings = settings or StrategySettings()
        self.logger = logger.bind(component="BridgeSession")

        self._lock = asyncio.Lock()
        self._pending: Dict[str, asyncio.Future] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._current_url: Optional[str] = None
        self.sequences = 0

    @property
    def available(self) -> bool:
        return self.bridge is not None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def attach(self) -> None:
        """Subscribe to the bridge's message channel. Idempotent."""
        if self.bridge is None or self._unsubscribe is not None:
            return
        self._unsubscribe = self.bridge.on_message(self._on_message)
        self.logger.debug("Bridge session attached")

    async def close(self) -> None:
        """Release the subscription and fail any outstanding waits."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()
        self._current_url = None

    def _on_message(self, raw: Any) -> None:
        message = raw
        if isinstance(raw, (str, bytes)):
            try:
                message = json.loads(raw)
            except (TypeError, ValueError):
                self.logger.debug("Ignoring non-JSON bridge message")
                return
        if not isinstance(message, dict):
            return

        request_id = message.get("requestId")
        future = self._pending.pop(request_id, None) if isinstance(request_id, str) else None
        if future is None:
            self.logger.debug("Bridge message without a pending request", type=message.get("type"))
            return
        if not future.done():
            future.set_result(message)

    async def extract(
        self,
        url: str,
        rules: Mapping[str, SelectorSpec],
        ready_selector: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Navigate to ``url``, wait for readiness and run the selector rules."""
        async with self._sequence():
            await self._navigate(url)
            await self._wait_ready(ready_selector)
            message = await self._evaluate(
                lambda rid: build_extraction_script(rid, rules), self.settings.script_timeout
            )
        data = message.get("data")
        return dict(data) if isinstance(data, dict) else {}

    async def visible_text(self, url: str) -> str:
        """Return the visible text of ``url``, reusing the current page when already there."""
        async with self._sequence():
            if self._current_url != url:
                await self._navigate(url)
                await self._wait_ready(None)
            message = await self._evaluate(
                lambda rid: build_visible_text_script(rid, self.settings.max_visible_text),
                self.settings.script_timeout,
            )
        if message.get("type") != VISIBLE_TEXT:
            raise StrategyFailure(f"unexpected reply {message.get('type')!r} to visible text request")
        return str(message.get("text") or "")

    @asynccontextmanager
    async def _sequence(self) -> AsyncIterator[None]:
        if self.bridge is None:
            raise BridgeUnavailable("no browser bridge attached")
        self.attach()
        async with self._lock:
            self.sequences += 1
            yield

    async def _navigate(self, url: str) -> None:
        assert self.bridge is not None
        try:
            async with asyncio.timeout(self.settings.navigation_timeout):
                await self.bridge.navigate(url)
        except TimeoutError as e:
            self._current_url = None
            raise BridgeUnavailable(f"navigation to {url} timed out") from e
        self._current_url = url

    async def _wait_ready(self, ready_selector: Optional[str]) -> bool:
        """Poll for the ready selector, or wait the settle delay when there is none."""
        if not ready_selector:
            if self.settings.settle_delay > 0:
                await asyncio.sleep(self.settings.settle_delay)
            return True

        for attempt in range(1, self.settings.dom_ready_attempts + 1):
            try:
                message = await self._evaluate(
                    lambda rid: build_ready_probe(rid, ready_selector), self.settings.script_timeout
                )
            except (BridgeUnavailable, StrategyFailure) as e:
                self.logger.debug("Ready probe failed", attempt=attempt, error=str(e))
                message = {}
            if message.get("type") == READY_STATE and message.get("ready"):
                return True
            if attempt < self.settings.dom_ready_attempts:
                await asyncio.sleep(self.settings.dom_ready_interval)

        self.logger.info("Ready selector never matched, extracting anyway", selector=ready_selector)
        return False

    async def _evaluate(self, build: Callable[[str], str], timeout: float) -> Dict[str, Any]:
        assert self.bridge is not None
        request_id = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            async with asyncio.timeout(timeout):
                await self.bridge.inject_script(build(request_id))
                message = await future
        except TimeoutError as e:
            raise BridgeUnavailable(f"no reply from page within {timeout}s") from e
        finally:
            self._pending.pop(request_id, None)

        if message.get("type") == EXTRACTION_ERROR:
            raise StrategyFailure(f"page script error: {message.get('error')}")
        return message

