"""
Deterministic keyword classification.

Pure, side-effect-free helpers used when the AI classifier is unavailable,
slow or returns garbage, by the emergency fallback provider, and by the
AI-assisted DOM strategy to read values out of free text.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any, Dict, List, Optional, Pattern, Tuple

from scoutcore.protocols import COIN_CODES, CURRENCY_CODES, ExtractionApproach, QueryAnalysis, QueryCategory

# Precedence order matters: the first category whose rule matches wins.
CATEGORY_PRECEDENCE: Tuple[QueryCategory, ...] = (
    QueryCategory.EXCHANGE_RATE,
    QueryCategory.CRYPTO,
    QueryCategory.WEATHER,
    QueryCategory.NEWS,
    QueryCategory.PRODUCT,
)

EXCHANGE_RATE_KEYWORDS = (
    "tipo de cambio",
    "exchange rate",
    "dolar",
    "cambios",
    "forex",
    "divisa",
    "currency exchange",
    "conversion rate",
)
CRYPTO_KEYWORDS = ("btc", "bitcoin", "crypto", "criptomoneda", "cripto", "ethereum", "coin price")
WEATHER_KEYWORDS = ("clima", "weather", "temperatura", "temperature", "forecast", "pronostico", "lluvia")
NEWS_KEYWORDS = ("noticia", "news", "actualidad", "headlines", "titulares")
PRODUCT_PRICE_WORDS = ("precio", "costo", "price", "cost")
PRODUCT_ITEM_WORDS = ("producto", "product", "articulo", "item", "comprar", "buy")

COIN_ALIASES: Dict[str, str] = {
    "bitcoin": "BTC",
    "btc": "BTC",
    "ethereum": "ETH",
    "eth": "ETH",
    "solana": "SOL",
    "dogecoin": "DOGE",
    "litecoin": "LTC",
    "ripple": "XRP",
    "cardano": "ADA",
}

# Longest aliases first so "mexico city" wins over "mexico"
CITY_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("ciudad de mexico", "Mexico City"),
    ("mexico city", "Mexico City"),
    ("buenos aires", "Buenos Aires"),
    ("guadalajara", "Guadalajara"),
    ("barcelona", "Barcelona"),
    ("monterrey", "Monterrey"),
    ("new york", "New York"),
    ("london", "London"),
    ("madrid", "Madrid"),
    ("bogota", "Bogota"),
    ("tokyo", "Tokyo"),
    ("paris", "Paris"),
    ("cdmx", "Mexico City"),
    ("mexico", "Mexico City"),
)

SUGGESTED_SOURCES: Dict[QueryCategory, Tuple[str, ...]] = {
    QueryCategory.EXCHANGE_RATE: ("Yahoo Finance", "Google Finance", "Open Exchange Rates API"),
    QueryCategory.CRYPTO: ("CoinMarketCap", "CoinGecko API", "Binance"),
    QueryCategory.WEATHER: ("OpenWeatherMap", "Weather.com", "AccuWeather"),
    QueryCategory.NEWS: ("Google News", "BBC", "CNN"),
    QueryCategory.PRODUCT: ("Amazon", "eBay", "Walmart"),
    QueryCategory.GENERAL: ("Google", "DuckDuckGo"),
}

STOPWORDS = frozenset(
    {"para", "como", "cual", "what", "which", "where", "when", "with", "today", "hoy", "the", "about", "sobre"}
)


def normalize_query(query: str) -> str:
    """Lowercase and strip accents so "Dólar" and "dolar" compare equal."""
    decomposed = unicodedata.normalize("NFKD", query.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).strip()


def _has_word(text: str, word: str) -> bool:
    return re.search(rf"(?<![a-z]){re.escape(word)}(?![a-z])", text) is not None


_CODES_ALT = "|".join(code.lower() for code in CURRENCY_CODES)


def _currency_positions(text: str) -> List[Tuple[int, str]]:
    found: Dict[str, int] = {}
    for code in CURRENCY_CODES:
        # Standalone code, or glued to another code as in "usdmxn"
        pattern = rf"(?:(?<![a-z])|(?<={_CODES_ALT})){code.lower()}(?:(?![a-z])|(?={_CODES_ALT}))"
        match = re.search(pattern, text)
        if match:
            found[code] = match.start()
    return sorted((pos, code) for code, pos in found.items())


def detect_category(query: str) -> QueryCategory:
    """Classify a query by keyword sets in fixed precedence order."""
    q = normalize_query(query)

    currencies = _currency_positions(q)
    if len(currencies) >= 2 or any(keyword in q for keyword in EXCHANGE_RATE_KEYWORDS):
        return QueryCategory.EXCHANGE_RATE

    if any(keyword in q for keyword in CRYPTO_KEYWORDS) or any(
        _has_word(q, alias) for alias in COIN_ALIASES if len(alias) <= 4
    ):
        return QueryCategory.CRYPTO

    if any(keyword in q for keyword in WEATHER_KEYWORDS):
        return QueryCategory.WEATHER

    if any(keyword in q for keyword in NEWS_KEYWORDS):
        return QueryCategory.NEWS

    if any(word in q for word in PRODUCT_PRICE_WORDS) and any(word in q for word in PRODUCT_ITEM_WORDS):
        return QueryCategory.PRODUCT

    return QueryCategory.GENERAL


def extract_entities(query: str) -> Tuple[str, ...]:
    """Pull currency codes (in order of appearance), coins and known cities."""
    q = normalize_query(query)
    entities: List[str] = [code for _, code in _currency_positions(q)]

    for alias, code in COIN_ALIASES.items():
        if (alias in q if len(alias) > 4 else _has_word(q, alias)) and code not in entities:
            entities.append(code)

    for alias, city in CITY_ALIASES:
        if alias in q and city not in entities:
            entities.append(city)
            break

    if not entities:
        words = [w for w in re.split(r"\s+", q) if len(w) > 3 and w not in STOPWORDS]
        if words:
            entities.append(words[0])

    return tuple(entities)


def suggested_sources_for(category: QueryCategory) -> Tuple[str, ...]:
    return SUGGESTED_SOURCES.get(category, SUGGESTED_SOURCES[QueryCategory.GENERAL])


def approach_for(category: QueryCategory) -> ExtractionApproach:
    if category in (QueryCategory.EXCHANGE_RATE, QueryCategory.CRYPTO):
        return ExtractionApproach.API
    return ExtractionApproach.DOM_SCRAPING


def classify_by_keywords(query: str) -> QueryAnalysis:
    """Full keyword analysis of a query. Deterministic for a given text."""
    category = detect_category(query)
    return QueryAnalysis(
        category=category,
        entities=extract_entities(query),
        suggested_sources=suggested_sources_for(category),
        extraction_approach=approach_for(category),
        origin="keywords",
    )


# ============================================================================
# Value extraction from unstructured text
# ============================================================================

_RATE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"1\s*[A-Z]{3}\s*=\s*(\d+(?:[.,]\d+)?)", re.IGNORECASE),
    re.compile(r"[A-Z]{3}\s*/\s*[A-Z]{3}[^\d]{0,20}(\d+[.,]\d+)", re.IGNORECASE),
    re.compile(r"(?:exchange rate|tipo de cambio|rate)[^\d]{0,40}(\d+[.,]\d+)", re.IGNORECASE),
)
_PRICE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\$\s?(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"),
    re.compile(r"(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)\s*(?:USD|dollars|dolares)", re.IGNORECASE),
)
_CHANGE_PATTERN = re.compile(r"([+-]\d+(?:[.,]\d+)?\s?%)")
_TEMPERATURE_PATTERN = re.compile(r"(-?\d+(?:[.,]\d+)?)\s*°\s*([CF])?", re.IGNORECASE)
_TEMPERATURE_WORD_PATTERN = re.compile(
    r"(?:temperature|temperatura)[^\d-]{0,20}(-?\d+(?:[.,]\d+)?)", re.IGNORECASE
)
CONDITIONS: Tuple[Tuple[str, str], ...] = (
    ("partly cloudy", "Partly Cloudy"),
    ("parcialmente nublado", "Partly Cloudy"),
    ("cloudy", "Cloudy"),
    ("nublado", "Cloudy"),
    ("sunny", "Sunny"),
    ("soleado", "Sunny"),
    ("clear", "Clear"),
    ("despejado", "Clear"),
    ("rain", "Rain"),
    ("lluvia", "Rain"),
    ("storm", "Storm"),
    ("tormenta", "Storm"),
    ("snow", "Snow"),
    ("fog", "Fog"),
)


def _first_match(patterns: Tuple[Pattern[str], ...], text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def extract_values_from_text(category: QueryCategory, text: str) -> Dict[str, Any]:
    """
    Read category-specific values out of free text with regexes.

    Returns an empty dict when nothing recognizable is found.
    """
    if not text or not text.strip():
        return {}

    fields: Dict[str, Any] = {}

    if category is QueryCategory.EXCHANGE_RATE:
        rate = _first_match(_RATE_PATTERNS, text)
        if rate is not None:
            fields["rate"] = rate

    elif category in (QueryCategory.CRYPTO, QueryCategory.PRODUCT):
        price = _first_match(_PRICE_PATTERNS, text)
        if price is not None:
            fields["price"] = price
        if category is QueryCategory.CRYPTO:
            change = _CHANGE_PATTERN.search(text)
            if change and fields:
                fields["change_24h"] = change.group(1).replace(" ", "")

    elif category is QueryCategory.WEATHER:
        match = _TEMPERATURE_PATTERN.search(text)
        value: Optional[float] = None
        if match:
            value = float(match.group(1).replace(",", "."))
            if (match.group(2) or "C").upper() == "F":
                value = round((value - 32) * 5 / 9, 1)
        else:
            word_match = _TEMPERATURE_WORD_PATTERN.search(text)
            if word_match:
                value = float(word_match.group(1).replace(",", "."))
        if value is not None:
            fields["temperature_c"] = value
            lowered = normalize_query(text)
            for needle, label in CONDITIONS:
                if needle in lowered:
                    fields["condition"] = label
                    break

    elif category is QueryCategory.NEWS:
        headlines = [line.strip() for line in text.splitlines() if 20 <= len(line.strip()) <= 200]
        if headlines:
            fields["headlines"] = headlines[:5]

    else:
        summary = " ".join(text.split())
        if summary:
            fields["summary"] = summary[:280]

    return fields
