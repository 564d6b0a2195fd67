"""
Core contracts and dataclasses for ScoutCore.

Every record that crosses a module boundary lives here: query analysis,
extraction targets, per-attempt source results, the pipeline's external
``ExtractionResult`` contract, consensus results and progress events, plus
the collaborator protocols (browser bridge, AI completion, HTTP fetcher)
that the core consumes but never implements.

Architecture Overview:
- Query Classifier -> Source Catalog -> Strategy Executor -> Orchestrator
- Consensus Aggregator for numeric categories
- Emergency Fallback Provider guarantees a usable result
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Protocol, Tuple, Union, runtime_checkable

from scoutcore.utils.numbers import parse_numeric

# ============================================================================
# Enums and Constants
# ============================================================================


class QueryCategory(Enum):
    """Categories a free-text query can be classified into."""

    EXCHANGE_RATE = "exchange_rate"
    WEATHER = "weather"
    CRYPTO = "crypto"
    NEWS = "news"
    PRODUCT = "product"
    GENERAL = "general"

    @classmethod
    def parse(cls, value: Any) -> Optional["QueryCategory"]:
        """Map loose AI output ("Exchange Rate", "crypto_price") onto a category."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
        aliases = {
            "exchange": cls.EXCHANGE_RATE,
            "currency": cls.EXCHANGE_RATE,
            "crypto_price": cls.CRYPTO,
            "cryptocurrency": cls.CRYPTO,
            "generic_search": cls.GENERAL,
            "search": cls.GENERAL,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            return None


NUMERIC_CATEGORIES = frozenset({QueryCategory.EXCHANGE_RATE, QueryCategory.CRYPTO, QueryCategory.WEATHER})

# Field carrying the quantitative value of each numeric category
RATE_FIELDS: Dict[QueryCategory, str] = {
    QueryCategory.EXCHANGE_RATE: "rate",
    QueryCategory.CRYPTO: "price",
    QueryCategory.WEATHER: "temperature_c",
}


class ExtractionApproach(Enum):
    """Preferred way of obtaining data for a query."""

    API = "api"
    DOM_SCRAPING = "dom_scraping"
    NLP = "nlp"

    @classmethod
    def parse(cls, value: Any, default: "ExtractionApproach") -> "ExtractionApproach":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized in ("dom", "scraping", "dom scraping"):
                return cls.DOM_SCRAPING
            for member in cls:
                if member.value == normalized:
                    return member
        return default


class ResultStatus(Enum):
    """Outcome of a pipeline run, distinguishing live from degraded data."""

    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


def utc_timestamp() -> str:
    """Current time as an ISO-8601 string in UTC."""
    return datetime.now(timezone.utc).isoformat()


# ============================================================================
# Query analysis and targets
# ============================================================================


@dataclass(frozen=True)
class QueryAnalysis:
    """Classification of a query. Produced once per query, never mutated."""

    category: QueryCategory
    entities: Tuple[str, ...] = ()
    suggested_sources: Tuple[str, ...] = ()
    extraction_approach: ExtractionApproach = ExtractionApproach.DOM_SCRAPING
    origin: Literal["ai", "ai_partial", "keywords"] = "keywords"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "entities": list(self.entities),
            "suggested_sources": list(self.suggested_sources),
            "extraction_approach": self.extraction_approach.value,
            "origin": self.origin,
        }


@dataclass(frozen=True)
class SelectorSpec:
    """How to read one field out of a page."""

    selector: str
    attribute: Optional[str] = None
    multiple: bool = False

    @classmethod
    def coerce(cls, value: Union[str, "SelectorSpec", Mapping[str, Any]]) -> "SelectorSpec":
        if isinstance(value, SelectorSpec):
            return value
        if isinstance(value, str):
            return cls(selector=value)
        return cls(
            selector=value["selector"],
            attribute=value.get("attribute"),
            multiple=bool(value.get("multiple", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"selector": self.selector, "attribute": self.attribute, "multiple": self.multiple}


ValueTransform = Callable[[Any], Any]


@dataclass(frozen=True)
class ExtractionTarget:
    """One concrete data source. Loaded from the catalog, never mutated."""

    name: str
    url: str
    categories: Tuple[QueryCategory, ...] = ()
    selector_rules: Mapping[str, SelectorSpec] = field(default_factory=dict)
    fallback_api_urls: Tuple[str, ...] = ()
    value_transforms: Mapping[str, ValueTransform] = field(default_factory=dict)
    ready_selector: Optional[str] = None
    api_fields: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("ExtractionTarget requires a name")
        rules = {key: SelectorSpec.coerce(spec) for key, spec in dict(self.selector_rules).items()}
        object.__setattr__(self, "selector_rules", MappingProxyType(rules))
        object.__setattr__(self, "value_transforms", MappingProxyType(dict(self.value_transforms)))
        object.__setattr__(self, "api_fields", MappingProxyType(dict(self.api_fields)))
        object.__setattr__(self, "fallback_api_urls", tuple(self.fallback_api_urls))
        object.__setattr__(self, "categories", tuple(self.categories))

    @property
    def supports_direct_api(self) -> bool:
        return bool(self.fallback_api_urls)


# ============================================================================
# Payloads (tagged union per category)
# ============================================================================


@dataclass(frozen=True)
class ExchangeRateData:
    base: str
    quote: str
    rate: float
    source: str
    additional_data: Optional[Dict[str, Any]] = None
    kind: Literal["exchange_rate"] = "exchange_rate"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WeatherData:
    location: str
    temperature_c: Optional[float]
    condition: Optional[str]
    source: str
    kind: Literal["weather"] = "weather"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CryptoData:
    coin: str
    currency: str
    price: float
    source: str
    change_24h: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None
    kind: Literal["crypto"] = "crypto"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GenericData:
    fields: Mapping[str, Any]
    source: str
    query: Optional[str] = None
    kind: Literal["generic"] = "generic"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "fields": dict(self.fields), "source": self.source, "query": self.query}


Payload = Union[ExchangeRateData, WeatherData, CryptoData, GenericData]


def _entity(entities: Tuple[str, ...], candidates: Tuple[str, ...], default: str, skip: int = 0) -> str:
    found = [e.upper() for e in entities if e.upper() in candidates]
    return found[skip] if len(found) > skip else default


CURRENCY_CODES = ("USD", "MXN", "EUR", "GBP", "JPY", "CAD", "BRL", "ARS", "COP", "CLP")
COIN_CODES = ("BTC", "ETH", "SOL", "XRP", "ADA", "DOGE", "LTC")


def payload_from_fields(
    category: QueryCategory,
    fields: Mapping[str, Any],
    source: str,
    entities: Tuple[str, ...] = (),
) -> Payload:
    """Build the payload variant for a category from a raw field record.

    Numeric categories fall back to ``GenericData`` when their key value
    cannot be parsed, so the consensus step simply skips them.
    """
    if category is QueryCategory.EXCHANGE_RATE:
        rate = parse_numeric(fields.get("rate"))
        if rate is not None:
            base = str(fields.get("base") or _entity(entities, CURRENCY_CODES, "USD"))
            quote = str(fields.get("quote") or _entity(entities, CURRENCY_CODES, "MXN", skip=1))
            return ExchangeRateData(base=base, quote=quote, rate=rate, source=source)
    elif category is QueryCategory.CRYPTO:
        price = parse_numeric(fields.get("price"))
        if price is not None:
            coin = str(fields.get("coin") or _coin_from_entities(entities))
            change = fields.get("change_24h")
            return CryptoData(
                coin=coin,
                currency=str(fields.get("currency") or "USD"),
                price=price,
                source=source,
                change_24h=str(change) if change is not None else None,
            )
    elif category is QueryCategory.WEATHER:
        temperature = parse_numeric(fields.get("temperature_c", fields.get("temperature")))
        if temperature is not None:
            location = fields.get("location") or next((e for e in entities if e.upper() not in CURRENCY_CODES), "")
            condition = fields.get("condition")
            return WeatherData(
                location=str(location),
                temperature_c=temperature,
                condition=str(condition) if condition else None,
                source=source,
            )
    return GenericData(fields=MappingProxyType(dict(fields)), source=source)


def _coin_from_entities(entities: Tuple[str, ...]) -> str:
    for entity in entities:
        upper = entity.upper()
        if upper in COIN_CODES:
            return upper
        if upper == "BITCOIN":
            return "BTC"
        if upper == "ETHEREUM":
            return "ETH"
    return "BTC"


def payload_to_dict(payload: Optional[Payload]) -> Optional[Dict[str, Any]]:
    return payload.to_dict() if payload is not None else None


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class SourceResult:
    """Outcome of one strategy attempt against one target."""

    source: str
    url: str
    success: bool
    data: Optional[Payload] = None
    error: Optional[str] = None
    strategy: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "url": self.url,
            "success": self.success,
            "data": payload_to_dict(self.data),
            "error": self.error,
            "strategy": self.strategy,
        }


@dataclass(frozen=True)
class ExtractionResult:
    """The pipeline's external contract: exactly one per ``extract_data`` call."""

    success: bool
    data: Optional[Payload]
    source: str
    timestamp: str
    execution_time_ms: int
    error: Optional[str] = None
    status: ResultStatus = ResultStatus.OK
    sources: Tuple[SourceResult, ...] = ()
    analysis: Optional[QueryAnalysis] = None

    def __post_init__(self) -> None:
        if self.execution_time_ms < 0:
            raise ValueError("execution_time_ms cannot be negative")
        if not self.success and not self.error:
            raise ValueError("A failed ExtractionResult must carry an error message")

    @property
    def degraded(self) -> bool:
        return self.status is ResultStatus.DEGRADED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "degraded": self.degraded,
            "data": payload_to_dict(self.data),
            "source": self.source,
            "timestamp": self.timestamp,
            "execution_time_ms": self.execution_time_ms,
            "error": self.error,
            "sources": [s.to_dict() for s in self.sources],
            "analysis": self.analysis.to_dict() if self.analysis else None,
        }

    def to_json(self, **kwargs: Any) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, **kwargs)


@dataclass(frozen=True)
class ConsensusResult:
    """Agreed numeric value derived from one or more source results."""

    rate: Optional[float]
    source: str
    timestamp: str
    error: Optional[str] = None
    additional_data: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ProgressEvent:
    """Transient progress notification; broadcast only, never stored."""

    step: str
    message: str
    progress: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "progress", min(100.0, max(0.0, float(self.progress))))


@dataclass(frozen=True)
class HttpResponse:
    """Response from an HTTP fetch with timing and attempt information."""

    status: int
    headers: Dict[str, str]
    body: bytes
    start_ts: float
    end_ts: float
    attempts: int
    url: str
    final_url: str

    @property
    def ok(self) -> bool:
        return self.status == 200

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)


# ============================================================================
# Collaborator protocols
# ============================================================================

MessageHandler = Callable[[Any], None]


@runtime_checkable
class BrowserBridge(Protocol):
    """Embedded browser session: one-directional commands, async replies."""

    async def navigate(self, url: str) -> None: ...

    async def inject_script(self, code: str) -> None: ...

    def on_message(self, handler: MessageHandler) -> Callable[[], None]: ...


@runtime_checkable
class AICompletion(Protocol):
    """Single blocking-with-timeout text completion."""

    async def complete(self, prompt: str, timeout_ms: int) -> str: ...


@runtime_checkable
class HttpFetcher(Protocol):
    """Plain HTTP access with bounded timeouts."""

    async def fetch(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        max_retries: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse: ...

    async def post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        *,
        timeout: float = 10.0,
        headers: Optional[Mapping[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> HttpResponse: ...
