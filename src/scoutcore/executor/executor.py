"""
Ordered, short-circuiting strategy chain for one extraction target.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlparse

import structlog

from scoutcore.bridge.session import BridgeSession
from scoutcore.catalog.templates import build_context, render
from scoutcore.classifier.keywords import detect_category
from scoutcore.config.config import StrategySettings
from scoutcore.errors import StrategyFailure
from scoutcore.observability.metrics import increment, observe
from scoutcore.protocols import (
    NUMERIC_CATEGORIES,
    RATE_FIELDS,
    AICompletion,
    ExtractionResult,
    ExtractionTarget,
    GenericData,
    HttpFetcher,
    Payload,
    QueryAnalysis,
    QueryCategory,
    ResultStatus,
    SourceResult,
    payload_from_fields,
    utc_timestamp,
)

from .strategies import (
    AiDomStrategy,
    BrowserDomStrategy,
    DirectApiStrategy,
    ExtractionStrategy,
    ProxyStrategy,
    StrategyHit,
    StrategyRequest,
)

logger = structlog.get_logger(__name__)


def _host(url: str) -> str:
    return urlparse(url).hostname or url


class StrategyExecutor:
    """
    Runs extraction strategies against one target in a fixed order.

    Features:
    - Configurable strategy order, validated at construction
    - First success short-circuits the chain
    - Every failed attempt recorded as a SourceResult
    - Per-strategy performance metrics

    The executor never produces fallback data; an exhausted chain is
    reported as a failed ExtractionResult.
    """

    def __init__(
        self,
        strategies: Mapping[str, ExtractionStrategy],
        settings: Optional[StrategySettings] = None,
    ) -> None:
        self.settings = settings or StrategySettings()
        self.logger = logger.bind(component="StrategyExecutor")
        self._strategies: Dict[str, ExtractionStrategy] = dict(strategies)

        self._validate_order()

        self._strategy_metrics: Dict[str, Dict[str, float]] = {
            name: {"attempts": 0, "successes": 0, "total_time": 0.0} for name in self._strategies
        }

    @classmethod
    def build(
        cls,
        http: HttpFetcher,
        session: Optional[BridgeSession] = None,
        ai_client: Optional[AICompletion] = None,
        settings: Optional[StrategySettings] = None,
    ) -> "StrategyExecutor":
        """Wire the four standard strategies."""
        settings = settings or StrategySettings()
        proxy = ProxyStrategy(http, settings)
        strategies: Dict[str, ExtractionStrategy] = {
            "direct_api": DirectApiStrategy(http, settings),
            "browser_dom": BrowserDomStrategy(session),
            "proxy": proxy,
            "ai_dom": AiDomStrategy(session, http, ai_client, settings, proxy=proxy),
        }
        return cls(strategies, settings)

    def _validate_order(self) -> None:
        for name in self.settings.order:
            if name not in self._strategies:
                raise ValueError(
                    f"Invalid strategy '{name}' in order. Available strategies: {list(self._strategies.keys())}"
                )

    @property
    def order(self) -> Sequence[str]:
        return tuple(self.settings.order)

    async def execute(
        self,
        target: ExtractionTarget,
        query: str,
        analysis: Optional[QueryAnalysis] = None,
    ) -> ExtractionResult:
        """
        Extract data for ``query`` from one target.

        Args:
            target: Catalog entry to extract from
            query: Original query text
            analysis: Classification, used for category and URL placeholders

        Returns:
            ExtractionResult with one SourceResult per attempted strategy
        """
        start = time.monotonic()
        category = analysis.category if analysis else detect_category(query)
        context = build_context(query, analysis)
        request = StrategyRequest(
            query=query,
            category=category,
            context=context,
            url=render(target.url, context),
            analysis=analysis,
        )

        attempts: List[SourceResult] = []
        for name in self.settings.order:
            strategy = self._strategies[name]
            strategy_start = time.monotonic()
            self._strategy_metrics[name]["attempts"] += 1

            try:
                self.logger.debug("Attempting strategy", strategy=name, target=target.name)
                hit = await strategy.extract(target, request)
                payload = self._payload(target, request, hit)
            except Exception as e:
                error = e if isinstance(e, StrategyFailure) else StrategyFailure(str(e) or type(e).__name__)
                error.strategy = name
                error.target = target.name
                self._record(name, strategy_start, "failure")
                self.logger.info(
                    "Strategy failed",
                    event_type="strategy_failed",
                    strategy=name,
                    target=target.name,
                    error=str(error),
                    error_type=type(e).__name__,
                )
                attempts.append(
                    SourceResult(
                        source=_host(request.url),
                        url=request.url,
                        success=False,
                        error=str(error),
                        strategy=name,
                    )
                )
                continue

            self._record(name, strategy_start, "success")
            self._strategy_metrics[name]["successes"] += 1
            attempts.append(
                SourceResult(source=_host(hit.url), url=hit.url, success=True, data=payload, strategy=name)
            )
            self.logger.info(
                "Strategy succeeded",
                strategy=name,
                target=target.name,
                fields=sorted(hit.fields),
                elapsed=round(time.monotonic() - strategy_start, 3),
            )
            return ExtractionResult(
                success=True,
                data=payload,
                source=target.name,
                timestamp=utc_timestamp(),
                execution_time_ms=self._elapsed_ms(start),
                sources=tuple(attempts),
                analysis=analysis,
            )

        reasons = "; ".join(a.error for a in attempts if a.error) or "no strategies configured"
        self.logger.warning("All strategies failed", target=target.name, order=list(self.settings.order))
        return ExtractionResult(
            success=False,
            data=None,
            source=target.name,
            timestamp=utc_timestamp(),
            execution_time_ms=self._elapsed_ms(start),
            error=f"{target.name}: {reasons}",
            status=ResultStatus.FAILED,
            sources=tuple(attempts),
            analysis=analysis,
        )

    def _payload(self, target: ExtractionTarget, request: StrategyRequest, hit: StrategyHit) -> Payload:
        fields = apply_transforms(target, hit.fields)
        if not fields:
            raise StrategyFailure("empty result")

        category = request.category
        ctx = request.context
        if category is QueryCategory.EXCHANGE_RATE:
            fields.setdefault("base", ctx["base"])
            fields.setdefault("quote", ctx["quote"])
        elif category is QueryCategory.CRYPTO:
            fields.setdefault("coin", ctx["coin"])
        elif category is QueryCategory.WEATHER:
            fields.setdefault("location", ctx["city"])

        entities = request.analysis.entities if request.analysis else ()
        payload = payload_from_fields(category, fields, target.name, entities)
        if category in NUMERIC_CATEGORIES and isinstance(payload, GenericData):
            raise StrategyFailure(f"no numeric {RATE_FIELDS[category]} in result")
        if isinstance(payload, GenericData):
            payload = GenericData(fields=payload.fields, source=payload.source, query=request.query)
        return payload

    def _record(self, name: str, started: float, outcome: str) -> None:
        elapsed = time.monotonic() - started
        self._strategy_metrics[name]["total_time"] += elapsed
        increment("strategy_attempts", labels={"strategy": name, "outcome": outcome})
        observe("strategy_duration_seconds", elapsed, labels={"strategy": name})

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return max(0, int((time.monotonic() - start) * 1000))

    def get_metrics(self) -> Dict[str, Dict[str, float]]:
        """
        Get strategy performance metrics.

        Returns:
            Dictionary of metrics per strategy
        """
        metrics = {}
        for name, raw in self._strategy_metrics.items():
            attempts = raw["attempts"]
            successes = raw["successes"]
            total_time = raw["total_time"]
            metrics[name] = {
                "attempts": attempts,
                "successes": successes,
                "success_rate": successes / attempts if attempts > 0 else 0.0,
                "total_time": total_time,
                "avg_time": total_time / attempts if attempts > 0 else 0.0,
            }
        return metrics


def apply_transforms(target: ExtractionTarget, fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Run each field through its transform and drop empty values."""
    result: Dict[str, Any] = {}
    for name, value in fields.items():
        transform = target.value_transforms.get(name)
        if transform is not None:
            value = transform(value)
        if value is None or value == "" or value == []:
            continue
        result[name] = value
    return result
