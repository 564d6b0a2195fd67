"""
HTTP client with bounded retries, per-domain concurrency and observability.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import aiohttp
import structlog

from scoutcore.config.config import HttpSettings
from scoutcore.protocols import HttpResponse

logger = structlog.get_logger(__name__)

RETRY_STATUSES = frozenset({429, 502, 503, 504})


class HttpClient:
    """
    aiohttp-backed client used by the direct API and proxy strategies, the
    AI client and the remote extraction service.

    Failed fetches never raise. Transport failures that outlast the retry
    budget come back as an ``HttpResponse`` with status 0; a retryable
    status that survives every retry is returned as is.
    """

    _last_loop_id: Optional[int] = None

    def __init__(self, settings: Optional[HttpSettings] = None) -> None:
        self.settings = settings or HttpSettings()

        # Per-domain semaphores for concurrency control
        self._domain_semaphores: Dict[str, asyncio.Semaphore] = {}
        self._semaphore_lock = asyncio.Lock()

        self.session: Optional[aiohttp.ClientSession] = None
        self._is_initialized = False
        self._in_flight_requests = 0
        self._total_requests = 0
        self._failed_requests = 0

        logger.debug(
            "HTTP client created",
            max_concurrency_per_domain=self.settings.max_concurrency_per_domain,
            max_retries=self.settings.max_retries,
        )

    async def _get_domain_semaphore(self, domain: str) -> asyncio.Semaphore:
        """Get or create semaphore for domain."""
        current_loop_id = id(asyncio.get_running_loop())

        # Semaphores are bound to the loop that created them
        if self._last_loop_id != current_loop_id:
            self._domain_semaphores.clear()
            self._semaphore_lock = asyncio.Lock()
            self._last_loop_id = current_loop_id

        async with self._semaphore_lock:
            if domain not in self._domain_semaphores:
                self._domain_semaphores[domain] = asyncio.Semaphore(self.settings.max_concurrency_per_domain)
            return self._domain_semaphores[domain]

    async def initialize(self) -> None:
        """Initialize the HTTP client session."""
        if self.session is None:
            connector = aiohttp.TCPConnector(
                limit=0,
                ttl_dns_cache=30,
                use_dns_cache=True,
                keepalive_timeout=30,
            )
            self.session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.settings.timeout),
                headers={"User-Agent": self.settings.user_agent},
            )
            self._is_initialized = True
            logger.info("HTTP client session initialized")

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        if self.session:
            await self.session.close()
            self.session = None
        self._domain_semaphores.clear()
        self._is_initialized = False
        logger.info("HTTP client closed")

    async def __aenter__(self) -> "HttpClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _error_response(self, url: str, start_time: float, attempts: int) -> HttpResponse:
        return HttpResponse(
            status=0,
            headers={},
            body=b"",
            start_ts=start_time,
            end_ts=time.time(),
            attempts=attempts,
            url=url,
            final_url=url,
        )

    async def fetch(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        max_retries: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        """
        GET a URL with retries on 429/5xx and timeouts.

        Args:
            url: URL to fetch
            timeout: Per-attempt timeout in seconds
            max_retries: Maximum retry attempts (None = use settings default)
            headers: Extra request headers

        Returns:
            HttpResponse with status, headers, body and timing info
        """
        return await self._request("GET", url, timeout=timeout, max_retries=max_retries, headers=headers)

    async def post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        *,
        timeout: float = 10.0,
        headers: Optional[Mapping[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> HttpResponse:
        """POST a JSON body. Same retry and error contract as ``fetch``."""
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})
        return await self._request(
            "POST",
            url,
            timeout=timeout,
            max_retries=max_retries,
            headers=request_headers,
            data=json.dumps(payload),
        )

    async def _request(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        max_retries: Optional[int],
        headers: Optional[Mapping[str, str]],
        data: Optional[str] = None,
    ) -> HttpResponse:
        if not self._is_initialized or self.session is None:
            raise RuntimeError("HTTP client not initialized. Call initialize() first.")

        start_time = time.time()
        parsed_url = urlparse(url)
        if not parsed_url.scheme or not parsed_url.netloc:
            logger.warning("Malformed URL", url=url)
            return self._error_response(url, start_time, attempts=1)

        domain = parsed_url.hostname or "unknown"
        if max_retries is None:
            max_retries = self.settings.max_retries

        self._total_requests += 1
        semaphore = await self._get_domain_semaphore(domain)

        async with semaphore:
            self._in_flight_requests += 1
            try:
                attempt = 0
                while attempt < max_retries + 1:
                    attempt += 1
                    try:
                        async with asyncio.timeout(timeout):
                            async with self.session.request(
                                method, url, headers=dict(headers or {}), data=data
                            ) as response:
                                if response.status in RETRY_STATUSES and attempt <= max_retries:
                                    logger.info(
                                        "Retrying request",
                                        url=url,
                                        status=response.status,
                                        attempt=attempt,
                                        max_retries=max_retries,
                                    )
                                    await self._retry_pause()
                                    continue

                                body = await response.read()
                                return HttpResponse(
                                    status=response.status,
                                    headers=dict(response.headers),
                                    body=body,
                                    start_ts=start_time,
                                    end_ts=time.time(),
                                    attempts=attempt,
                                    url=url,
                                    final_url=str(response.url),
                                )

                    except TimeoutError:
                        logger.warning(
                            "Request timed out", url=url, attempt=attempt, max_retries=max_retries, timeout=timeout
                        )
                    except aiohttp.ClientError as e:
                        logger.warning(
                            "Request failed", url=url, attempt=attempt, max_retries=max_retries, error=str(e)
                        )

                    if attempt < max_retries + 1:
                        await self._retry_pause()

                self._failed_requests += 1
                return self._error_response(url, start_time, attempts=attempt)
            finally:
                self._in_flight_requests -= 1

    async def _retry_pause(self) -> None:
        """Fixed small delay between attempts."""
        if self.settings.retry_delay > 0:
            await asyncio.sleep(self.settings.retry_delay)

    def get_stats(self) -> Dict[str, Any]:
        """Get current client statistics."""
        return {
            "in_flight_requests": self._in_flight_requests,
            "total_requests": self._total_requests,
            "failed_requests": self._failed_requests,
            "domain_semaphores": len(self._domain_semaphores),
        }
