"""
Static registry of extraction targets, keyed by query category.

The catalog is built once and exposed read-only. Order within a category is
rank order: the orchestrator attempts targets strictly in this order.
"""

from __future__ import annotations

from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import structlog
import yaml

from scoutcore.catalog.transforms import TRANSFORMS, percent_text, strip_text, to_float, top_five
from scoutcore.protocols import ExtractionTarget, QueryCategory, SelectorSpec

logger = structlog.get_logger(__name__)

_EXCHANGE = (QueryCategory.EXCHANGE_RATE,)
_CRYPTO = (QueryCategory.CRYPTO,)
_WEATHER = (QueryCategory.WEATHER,)
_NEWS = (QueryCategory.NEWS,)


def _default_targets() -> List[ExtractionTarget]:
    return [
        # Exchange rates
        ExtractionTarget(
            name="Open Exchange Rates API",
            url="https://open.er-api.com/v6/latest/{base}",
            categories=_EXCHANGE,
            fallback_api_urls=("https://open.er-api.com/v6/latest/{base}",),
            api_fields={"rate": "rates.{quote}"},
            value_transforms={"rate": to_float},
        ),
        ExtractionTarget(
            name="ExchangeRate-API",
            url="https://www.exchangerate-api.com/",
            categories=_EXCHANGE,
            fallback_api_urls=("https://api.exchangerate-api.com/v4/latest/{base}",),
            api_fields={"rate": "rates.{quote}"},
            value_transforms={"rate": to_float},
        ),
        ExtractionTarget(
            name="Yahoo Finance",
            url="https://finance.yahoo.com/quote/{base}{quote}=X",
            categories=_EXCHANGE,
            fallback_api_urls=("https://query1.finance.yahoo.com/v8/finance/chart/{base}{quote}=X",),
            api_fields={"rate": "chart.result.0.meta.regularMarketPrice"},
            selector_rules={"rate": 'fin-streamer[data-field="regularMarketPrice"]'},
            ready_selector='fin-streamer[data-field="regularMarketPrice"]',
            value_transforms={"rate": to_float},
        ),
        ExtractionTarget(
            name="Google Finance",
            url="https://www.google.com/finance/quote/{base}-{quote}",
            categories=_EXCHANGE,
            selector_rules={"rate": "div.YMlKec.fxKbKc"},
            ready_selector="div.YMlKec",
            value_transforms={"rate": to_float},
        ),
        # Crypto
        ExtractionTarget(
            name="CoinGecko API",
            url="https://www.coingecko.com/en/coins/{coin_id}",
            categories=_CRYPTO,
            fallback_api_urls=(
                "https://api.coingecko.com/api/v3/simple/price"
                "?ids={coin_id}&vs_currencies=usd&include_24hr_change=true",
            ),
            api_fields={"price": "{coin_id}.usd", "change_24h": "{coin_id}.usd_24h_change"},
            selector_rules={"price": 'span[data-converter-target="price"]'},
            value_transforms={"price": to_float, "change_24h": percent_text},
        ),
        ExtractionTarget(
            name="Coinbase",
            url="https://www.coinbase.com/price/{coin_id}",
            categories=_CRYPTO,
            fallback_api_urls=("https://api.coinbase.com/v2/prices/{coin}-USD/spot",),
            api_fields={"price": "data.amount", "currency": "data.currency"},
            value_transforms={"price": to_float},
        ),
        ExtractionTarget(
            name="Binance",
            url="https://www.binance.com/en/price/{coin_id}",
            categories=_CRYPTO,
            fallback_api_urls=("https://api.binance.com/api/v3/ticker/price?symbol={coin}USDT",),
            api_fields={"price": "price"},
            value_transforms={"price": to_float},
        ),
        ExtractionTarget(
            name="CoinMarketCap",
            url="https://coinmarketcap.com/currencies/{coin_id}/",
            categories=_CRYPTO,
            selector_rules={"price": 'span[data-test="text-cdp-price-display"]'},
            ready_selector='span[data-test="text-cdp-price-display"]',
            value_transforms={"price": to_float},
        ),
        # Weather
        ExtractionTarget(
            name="Open-Meteo",
            url="https://open-meteo.com/",
            categories=_WEATHER,
            fallback_api_urls=(
                "https://api.open-meteo.com/v1/forecast?latitude={lat}&longitude={lon}&current_weather=true",
            ),
            api_fields={"temperature_c": "current_weather.temperature"},
            value_transforms={"temperature_c": to_float},
        ),
        ExtractionTarget(
            name="wttr.in",
            url="https://wttr.in/{city}",
            categories=_WEATHER,
            fallback_api_urls=("https://wttr.in/{city}?format=j1",),
            api_fields={
                "temperature_c": "current_condition.0.temp_C",
                "condition": "current_condition.0.weatherDesc.0.value",
            },
            value_transforms={"temperature_c": to_float, "condition": strip_text},
        ),
        ExtractionTarget(
            name="Weather.com",
            url="https://weather.com/weather/today/l/{city}",
            categories=_WEATHER,
            selector_rules={
                "temperature_c": 'span[data-testid="TemperatureValue"]',
                "condition": 'div[data-testid="wxPhrase"]',
            },
            ready_selector='span[data-testid="TemperatureValue"]',
            value_transforms={"temperature_c": to_float, "condition": strip_text},
        ),
        # News
        ExtractionTarget(
            name="Google News",
            url="https://news.google.com/search?q={query}",
            categories=_NEWS,
            fallback_api_urls=("https://hn.algolia.com/api/v1/search?query={query}&tags=story",),
            api_fields={"headlines": "hits.*.title"},
            selector_rules={"headlines": SelectorSpec("article h3, article a.JtKRv", multiple=True)},
            value_transforms={"headlines": top_five},
        ),
        ExtractionTarget(
            name="BBC",
            url="https://www.bbc.com/news",
            categories=_NEWS,
            selector_rules={"headlines": SelectorSpec("h2", multiple=True)},
            value_transforms={"headlines": top_five},
        ),
        # Products
        ExtractionTarget(
            name="eBay",
            url="https://www.ebay.com/sch/i.html?_nkw={query}",
            categories=(QueryCategory.PRODUCT,),
            selector_rules={
                "title": ".s-item__title",
                "price": ".s-item__price",
                "results": SelectorSpec(".s-item__title", multiple=True),
            },
            value_transforms={"title": strip_text, "results": top_five},
        ),
        # General search
        ExtractionTarget(
            name="DuckDuckGo",
            url="https://html.duckduckgo.com/html/?q={query}",
            categories=(QueryCategory.GENERAL, QueryCategory.PRODUCT),
            fallback_api_urls=("https://api.duckduckgo.com/?q={query}&format=json&no_html=1",),
            api_fields={"heading": "Heading", "summary": "AbstractText", "link": "AbstractURL"},
            selector_rules={
                "results": SelectorSpec("a.result__a", multiple=True),
                "snippets": SelectorSpec(".result__snippet", multiple=True),
            },
            value_transforms={"results": top_five, "snippets": top_five},
        ),
        ExtractionTarget(
            name="Wikipedia",
            url="https://en.wikipedia.org/w/index.php?search={query}",
            categories=(QueryCategory.GENERAL,),
            fallback_api_urls=(
                "https://en.wikipedia.org/w/api.php?action=opensearch&search={query}&limit=3&format=json",
            ),
            api_fields={"titles": "1", "links": "3"},
            selector_rules={"summary": "#mw-content-text p"},
            value_transforms={"summary": strip_text},
        ),
    ]


class SourceCatalog:
    """
    Read-only mapping of query categories to ranked extraction targets.

    Targets are registered at construction time only. ``lookup`` returns the
    targets tagged with a category in rank order; ``general`` returns its own
    targets first followed by every other target.
    """

    def __init__(self, targets: Iterable[ExtractionTarget]) -> None:
        ordered: List[ExtractionTarget] = []
        seen: set = set()
        for target in targets:
            if target.name in seen:
                raise ValueError(f"Duplicate extraction target: {target.name}")
            seen.add(target.name)
            ordered.append(target)

        by_category: Dict[QueryCategory, Tuple[ExtractionTarget, ...]] = {}
        for category in QueryCategory:
            by_category[category] = tuple(t for t in ordered if category in t.categories)

        self._targets: Tuple[ExtractionTarget, ...] = tuple(ordered)
        self._by_category: Mapping[QueryCategory, Tuple[ExtractionTarget, ...]] = MappingProxyType(by_category)
        self._by_name: Mapping[str, ExtractionTarget] = MappingProxyType({t.name: t for t in ordered})

    @classmethod
    def default(cls) -> "SourceCatalog":
        return cls(_default_targets())

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "SourceCatalog":
        """Build a catalog from plain records, resolving transforms by name."""
        return cls(target_from_record(record) for record in records)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SourceCatalog":
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        records = data.get("targets", []) if isinstance(data, dict) else data
        catalog = cls.from_records(records)
        logger.info("catalog_loaded", path=str(path), targets=len(catalog))
        return catalog

    def lookup(self, category: QueryCategory) -> Tuple[ExtractionTarget, ...]:
        own = self._by_category.get(category, ())
        if category is not QueryCategory.GENERAL:
            return own
        own_names = {t.name for t in own}
        return own + tuple(t for t in self._targets if t.name not in own_names)

    def all_targets(self) -> Tuple[ExtractionTarget, ...]:
        return self._targets

    def categories(self) -> Tuple[QueryCategory, ...]:
        return tuple(c for c, targets in self._by_category.items() if targets)

    def get(self, name: str) -> Optional[ExtractionTarget]:
        return self._by_name.get(name)

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name


def target_from_record(record: Mapping[str, Any]) -> ExtractionTarget:
    categories = []
    for raw in record.get("categories", ()):
        category = QueryCategory.parse(raw)
        if category is None:
            raise ValueError(f"Unknown category {raw!r} for target {record.get('name')!r}")
        categories.append(category)

    transforms = {}
    for field_name, transform_name in dict(record.get("value_transforms", {})).items():
        if transform_name not in TRANSFORMS:
            raise ValueError(f"Unknown value transform: {transform_name}")
        transforms[field_name] = TRANSFORMS[transform_name]

    return ExtractionTarget(
        name=record["name"],
        url=record["url"],
        categories=tuple(categories),
        selector_rules=dict(record.get("selector_rules", {})),
        fallback_api_urls=tuple(record.get("fallback_api_urls", ())),
        value_transforms=transforms,
        ready_selector=record.get("ready_selector"),
        api_fields=dict(record.get("api_fields", {})),
    )
