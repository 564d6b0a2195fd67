"""
Pipeline orchestration for ScoutCore.

One ``extract_data`` call walks classify -> target selection -> executing ->
aggregating, and degrades to emergency fallback data when no live source
succeeds. The orchestrator never raises to its caller (task cancellation
excepted): every failure ends up in the result's ``error`` field.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Coroutine, List, Optional, Tuple
from uuid import uuid4

import structlog

from scoutcore.catalog.catalog import SourceCatalog
from scoutcore.classifier.classifier import QueryClassifier
from scoutcore.config.config import PipelineSettings
from scoutcore.consensus import ConsensusAggregator, merge_consensus
from scoutcore.errors import NoSourcesAvailable, PipelineTimeout, ScoutError, TargetExhausted
from scoutcore.executor.executor import StrategyExecutor
from scoutcore.fallback import EmergencyFallbackProvider
from scoutcore.observability.metrics import increment, observe
from scoutcore.progress import ProgressBus, ProgressCallback
from scoutcore.protocols import (
    NUMERIC_CATEGORIES,
    ExtractionApproach,
    ExtractionResult,
    ExtractionTarget,
    QueryAnalysis,
    ResultStatus,
    SourceResult,
    utc_timestamp,
)
from scoutcore.remote import RemoteExtractionService

logger = structlog.get_logger(__name__)


class PipelinePhase(Enum):
    """Progress steps published on the bus, in the order a run reaches them."""

    INIT = "init"
    ANALYSIS = "analysis"
    TARGETS = "targets"
    SOURCE_CONNECT = "source-connect"
    EXTRACT = "extract"
    AGGREGATE = "aggregate"
    COMPLETE = "complete"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ExtractOptions:
    """Per-call options for ``Pipeline.extract_data``."""

    force_server_side: bool = False
    cancel_event: Optional[asyncio.Event] = None
    timeout: Optional[float] = None


@dataclass
class _RunState:
    """Mutable state of one run. Never shared between calls."""

    run_id: str
    query: str
    started: float
    analysis: Optional[QueryAnalysis] = None
    targets: Tuple[ExtractionTarget, ...] = ()
    successes: List[ExtractionResult] = field(default_factory=list)
    sources: List[SourceResult] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)

    def elapsed_ms(self) -> int:
        return max(0, int((time.monotonic() - self.started) * 1000))


class _Cancelled(Exception):
    """The caller's cancel event fired before the run finished."""


class Pipeline:
    """
    Adaptive extraction pipeline with graceful degradation.

    Collaborators are injected so tests can substitute doubles and
    independent runs can proceed concurrently.
    """

    def __init__(
        self,
        classifier: QueryClassifier,
        catalog: SourceCatalog,
        executor: StrategyExecutor,
        aggregator: Optional[ConsensusAggregator] = None,
        fallback: Optional[EmergencyFallbackProvider] = None,
        bus: Optional[ProgressBus] = None,
        settings: Optional[PipelineSettings] = None,
        remote: Optional[RemoteExtractionService] = None,
    ) -> None:
        self.classifier = classifier
        self.catalog = catalog
        self.executor = executor
        self.aggregator = aggregator or ConsensusAggregator()
        self.fallback = fallback or EmergencyFallbackProvider()
        self.bus = bus or ProgressBus()
        self.settings = settings or PipelineSettings()
        self.remote = remote
        self.logger = logger.bind(component="Pipeline")

    def on_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        """Subscribe to progress events. Returns an unsubscribe function."""
        return self.bus.subscribe(callback)

    async def extract_data(self, query: str, options: Optional[ExtractOptions] = None) -> ExtractionResult:
        """
        Extract data for a free-text query.

        Args:
            query: Free-text request ("USD to MXN", "bitcoin price", ...)
            options: Server-side forcing, cancellation and timeout overrides

        Returns:
            Exactly one ExtractionResult. Live data has status ``ok``;
            emergency data has ``success=True``, status ``degraded`` and an
            error describing the cause.
        """
        options = options or ExtractOptions()
        state = _RunState(run_id=uuid4().hex[:12], query=query, started=time.monotonic())

        with structlog.contextvars.bound_contextvars(run_id=state.run_id):
            result = await self._extract(state, options)

        increment("pipeline_runs", labels={"status": result.status.value})
        observe("pipeline_duration_seconds", time.monotonic() - state.started)
        self.logger.info(
            "Extraction finished",
            run_id=state.run_id,
            status=result.status.value,
            source=result.source,
            execution_time_ms=result.execution_time_ms,
            error=result.error,
        )
        return result

    async def _extract(self, state: _RunState, options: ExtractOptions) -> ExtractionResult:
        self._publish(PipelinePhase.INIT, "Starting extraction", 0)

        if not state.query or not state.query.strip():
            return ExtractionResult(
                success=False,
                data=None,
                source="none",
                timestamp=utc_timestamp(),
                execution_time_ms=state.elapsed_ms(),
                error="empty query",
                status=ResultStatus.FAILED,
            )

        if options.cancel_event is not None and options.cancel_event.is_set():
            return self._degrade(state, "cancelled")

        budget = options.timeout or self.settings.global_timeout
        try:
            async with asyncio.timeout(budget):
                result = await self._until_cancelled(self._execute(state, options), options.cancel_event)
        except TimeoutError:
            if state.successes:
                self.logger.info("Global timeout reached, aggregating partial results", successes=len(state.successes))
                result = self._aggregate(state)
            else:
                error = PipelineTimeout(f"global timeout of {budget}s exceeded")
                result = self._degrade(state, f"{type(error).__name__}: {error}")
        except _Cancelled:
            self.logger.info("Extraction cancelled by caller")
            result = self._degrade(state, "cancelled")
        except ScoutError as e:
            result = self._degrade(state, f"{type(e).__name__}: {e}")
        except Exception as e:
            self.logger.exception("Unexpected pipeline error", error=str(e))
            result = self._degrade(state, f"unexpected error: {e}")

        if not result.degraded:
            self._publish(PipelinePhase.COMPLETE, f"Data obtained from {result.source}", 100)
        return dataclasses.replace(result, timestamp=utc_timestamp(), execution_time_ms=state.elapsed_ms())

    async def _until_cancelled(
        self, coro: Coroutine[Any, Any, ExtractionResult], cancel_event: Optional[asyncio.Event]
    ) -> ExtractionResult:
        """Race the run against the caller's cancel event; the loser is cancelled."""
        if cancel_event is None:
            return await coro

        work = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (work, waiter):
                if not task.done():
                    task.cancel()
            await asyncio.gather(work, waiter, return_exceptions=True)

        if work.cancelled():
            raise _Cancelled()
        return work.result()

    async def _execute(self, state: _RunState, options: ExtractOptions) -> ExtractionResult:
        if options.force_server_side:
            if self.remote is None:
                raise NoSourcesAvailable("no server-side extraction service configured")
            return await self._run_remote(state)
        if self.remote is not None:
            return await self._race_remote(state)
        return await self._run_local(state)

    async def _race_remote(self, state: _RunState) -> ExtractionResult:
        """First successful result between client-side and server-side runs wins."""
        local = asyncio.create_task(self._run_local(state), name=f"local-{state.run_id}")
        remote = asyncio.create_task(self._run_remote(state), name=f"remote-{state.run_id}")
        pending = {local, remote}
        errors: List[str] = []
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    error = task.exception()
                    if error is None:
                        return task.result()
                    # Any branch error only loses that branch; the other may still succeed
                    label = "local" if task is local else "remote"
                    errors.append(f"{label}: {error}")
                    self.logger.info(
                        "Extraction branch failed", branch=label, error=str(error), error_type=type(error).__name__
                    )
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        raise TargetExhausted("; ".join(errors))

    async def _run_remote(self, state: _RunState) -> ExtractionResult:
        assert self.remote is not None
        self._publish(PipelinePhase.SOURCE_CONNECT, "Submitting server-side extraction", 30)
        result = await self.remote.extract(state.query, on_progress=self.bus.publish)
        if state.analysis is None:
            state.analysis = result.analysis
        return result

    async def _run_local(self, state: _RunState) -> ExtractionResult:
        self._publish(PipelinePhase.ANALYSIS, "Analyzing query", 10)
        analysis = await self.classifier.classify(state.query)
        state.analysis = analysis
        self._publish(PipelinePhase.ANALYSIS, f"Query classified as {analysis.category.value}", 20)

        state.targets = self.select_targets(analysis)
        if not state.targets:
            raise NoSourcesAvailable(f"no sources for category {analysis.category.value}")
        self._publish(PipelinePhase.TARGETS, f"{len(state.targets)} candidate sources selected", 25)

        total = len(state.targets)
        for index, target in enumerate(state.targets):
            self._publish(
                PipelinePhase.SOURCE_CONNECT,
                f"Connecting to {target.name}",
                30 + 55 * index / total,
            )
            result = await self.executor.execute(target, state.query, analysis)
            state.sources.extend(result.sources)

            if result.success:
                state.successes.append(result)
                self._publish(
                    PipelinePhase.EXTRACT,
                    f"Extracted data from {target.name}",
                    30 + 55 * (index + 1) / total,
                )
                if len(state.successes) >= self.settings.quorum:
                    break
            else:
                state.failures.append(result.error or f"{target.name}: failed")

        if not state.successes:
            raise TargetExhausted("; ".join(state.failures) or "all targets failed")

        return self._aggregate(state)

    def select_targets(self, analysis: QueryAnalysis) -> Tuple[ExtractionTarget, ...]:
        """Ranked targets for a category; API-capable ones first for the ``api`` approach."""
        targets = self.catalog.lookup(analysis.category)
        if analysis.extraction_approach is ExtractionApproach.API:
            targets = tuple(sorted(targets, key=lambda t: not t.supports_direct_api))
        if self.settings.max_targets is not None:
            targets = targets[: self.settings.max_targets]
        return targets

    def _aggregate(self, state: _RunState) -> ExtractionResult:
        self._publish(PipelinePhase.AGGREGATE, "Aggregating results", 90)
        first = state.successes[0]
        assert first.data is not None
        payload = first.data
        source = first.source

        category = state.analysis.category if state.analysis else None
        if category in NUMERIC_CATEGORIES:
            live = [s for s in state.sources if s.success]
            consensus = self.aggregator.consensus(live, category)
            if consensus.rate is not None:
                payload = merge_consensus(payload, consensus)
                source = consensus.source
            else:
                self.logger.warning("Consensus failed, using first result", error=consensus.error)

        return ExtractionResult(
            success=True,
            data=payload,
            source=source,
            timestamp=utc_timestamp(),
            execution_time_ms=state.elapsed_ms(),
            sources=tuple(state.sources),
            analysis=state.analysis,
        )

    def _degrade(self, state: _RunState, cause: str) -> ExtractionResult:
        self.logger.warning("Using emergency fallback", cause=cause)
        self._publish(PipelinePhase.FALLBACK, "Using emergency fallback data", 100)
        payload = self.fallback.fallback(state.query)
        return ExtractionResult(
            success=True,
            data=payload,
            source=payload.source,
            timestamp=utc_timestamp(),
            execution_time_ms=state.elapsed_ms(),
            error=cause,
            status=ResultStatus.DEGRADED,
            sources=tuple(state.sources),
            analysis=state.analysis,
        )

    def _publish(self, phase: PipelinePhase, message: str, progress: float) -> None:
        self.bus.publish(phase.value, message, progress)
