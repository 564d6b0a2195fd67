"""
Server-side extraction service client.

Submits a query as a job and polls its status until it completes, fails or
the attempt budget runs out.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import quote

import structlog

from scoutcore.classifier.keywords import classify_by_keywords
from scoutcore.config.config import RemoteSettings
from scoutcore.errors import RemoteJobFailed
from scoutcore.protocols import ExtractionResult, HttpFetcher, HttpResponse, payload_from_fields, utc_timestamp

logger = structlog.get_logger(__name__)

RemoteProgress = Callable[[str, str, float], None]


class RemoteExtractionService:
    """REST job client: ``POST /scraping/extract`` then ``GET /scraping/job-status``."""

    def __init__(self, http: HttpFetcher, settings: RemoteSettings, timeout: float = 10.0) -> None:
        self.http = http
        self.settings = settings
        self.timeout = timeout
        self.logger = logger.bind(component="RemoteExtractionService")

    @property
    def base_url(self) -> str:
        return self.settings.base_url.rstrip("/")

    async def submit(self, query: str) -> str:
        response = await self.http.post_json(
            f"{self.base_url}/scraping/extract",
            {"query": query, "clientId": self.settings.client_id},
            timeout=self.timeout,
            # Submitting twice creates two jobs
            max_retries=0,
        )
        body = self._json(response, "submit")
        job_id = body.get("jobId")
        if not job_id:
            raise RemoteJobFailed("invalid response from server: no jobId")
        self.logger.info("Remote job submitted", job_id=job_id)
        return str(job_id)

    async def job_status(self, job_id: str) -> Dict[str, Any]:
        response = await self.http.fetch(
            f"{self.base_url}/scraping/job-status?jobId={quote(job_id, safe='')}",
            timeout=self.timeout,
        )
        return self._json(response, "job-status")

    async def extract(self, query: str, on_progress: Optional[RemoteProgress] = None) -> ExtractionResult:
        """
        Run a query server-side.

        Raises:
            RemoteJobFailed: when the job fails, returns garbage or does not
                finish within the poll budget
        """
        start = time.monotonic()
        job_id = await self.submit(query)

        for attempt in range(1, self.settings.poll_attempts + 1):
            status = await self.job_status(job_id)
            state = status.get("status")
            if on_progress is not None and status.get("message"):
                self._forward_progress(status, on_progress)

            if state == "completed":
                return self._to_result(query, status.get("result"), start)
            if state == "failed":
                raise RemoteJobFailed(str(status.get("error") or f"remote job {job_id} failed"))

            self.logger.debug("Remote job pending", job_id=job_id, attempt=attempt, status=state)
            if attempt < self.settings.poll_attempts:
                await asyncio.sleep(self.settings.poll_interval)

        raise RemoteJobFailed(f"remote job {job_id} did not complete after {self.settings.poll_attempts} polls")

    def _forward_progress(self, status: Mapping[str, Any], on_progress: RemoteProgress) -> None:
        try:
            progress = float(status.get("progress") or 0)
        except (TypeError, ValueError):
            self.logger.debug("Skipping remote progress with a non-numeric value", progress=status.get("progress"))
            return
        on_progress(str(status.get("step") or "remote"), str(status["message"]), progress)

    def _to_result(self, query: str, result: Any, start: float) -> ExtractionResult:
        if not isinstance(result, Mapping) or not result.get("success"):
            error = result.get("error") if isinstance(result, Mapping) else None
            raise RemoteJobFailed(str(error or "remote job returned no usable result"))

        data = result.get("data")
        source = str(result.get("source") or "Remote extraction")
        fields = data if isinstance(data, Mapping) else {"value": data}
        analysis = classify_by_keywords(query)
        payload = payload_from_fields(analysis.category, fields, source, analysis.entities)
        return ExtractionResult(
            success=True,
            data=payload,
            source=source,
            timestamp=utc_timestamp(),
            execution_time_ms=max(0, int((time.monotonic() - start) * 1000)),
            analysis=analysis,
        )

    @staticmethod
    def _json(response: HttpResponse, operation: str) -> Dict[str, Any]:
        if not response.ok:
            raise RemoteJobFailed(f"{operation} returned HTTP {response.status}")
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteJobFailed(f"{operation} returned invalid JSON") from e
        if not isinstance(body, dict):
            raise RemoteJobFailed(f"{operation} returned unexpected body")
        return body
