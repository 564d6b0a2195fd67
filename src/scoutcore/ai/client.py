"""
OpenAI-compatible chat completion client.

Implements the ``AICompletion`` protocol. Keys are rotated when the endpoint
answers 429, and every failure surfaces as ``AIUnavailable`` so callers can
degrade.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

import structlog

from scoutcore.config.config import AISettings
from scoutcore.errors import AIUnavailable
from scoutcore.protocols import HttpFetcher

logger = structlog.get_logger(__name__)


class OpenRouterClient:
    """Chat completions over HTTP with API-key rotation."""

    def __init__(self, settings: AISettings, http: HttpFetcher) -> None:
        self.settings = settings
        self.http = http
        self.logger = logger.bind(component="OpenRouterClient", model=settings.model)
        self._keys: List[str] = [k for k in settings.api_keys if k]
        self._key_index = 0
        self._lock = asyncio.Lock()

    @property
    def endpoint(self) -> str:
        return self.settings.base_url.rstrip("/") + "/chat/completions"

    @property
    def current_key(self) -> Optional[str]:
        if not self._keys:
            return None
        return self._keys[self._key_index % len(self._keys)]

    async def _rotate_key(self) -> None:
        async with self._lock:
            self._key_index = (self._key_index + 1) % max(len(self._keys), 1)
        self.logger.info("Rotated API key after rate limit", key_index=self._key_index)

    async def complete(self, prompt: str, timeout_ms: int) -> str:
        """
        Run one completion.

        Raises:
            AIUnavailable: on timeout, rate limits on every key, HTTP errors
                or a reply without content
        """
        if not self._keys:
            raise AIUnavailable("no API keys configured")

        timeout = max(timeout_ms, 1) / 1000
        try:
            async with asyncio.timeout(timeout):
                return await self._complete_with_rotation(prompt, timeout)
        except TimeoutError as e:
            raise AIUnavailable(f"completion timed out after {timeout_ms}ms") from e

    async def _complete_with_rotation(self, prompt: str, timeout: float) -> str:
        payload: Dict[str, Any] = {
            "model": self.settings.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        }

        # A 429 rotates the key here instead of being retried by the transport
        for _ in range(len(self._keys)):
            headers = {"Authorization": f"Bearer {self.current_key}"}
            response = await self.http.post_json(
                self.endpoint, payload, timeout=timeout, headers=headers, max_retries=0
            )
            if response.status == 429:
                await self._rotate_key()
                continue
            if not response.ok:
                raise AIUnavailable(f"completion endpoint returned HTTP {response.status}")
            return self._content(response.body)

        raise AIUnavailable("rate limited on every configured API key")

    @staticmethod
    def _content(body: bytes) -> str:
        try:
            data = json.loads(body)
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AIUnavailable(f"malformed completion response: {e}") from e
        if not isinstance(content, str) or not content.strip():
            raise AIUnavailable("empty completion")
        return content
