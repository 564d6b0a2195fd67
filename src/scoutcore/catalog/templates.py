"""
URL and field-path templating from query entities.

Catalog URLs carry placeholders (``{base}``, ``{quote}``, ``{coin}``,
``{coin_id}``, ``{city}``, ``{lat}``, ``{lon}``, ``{query}``) that are filled
per query. Missing entities fall back to the defaults below.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Tuple
from urllib.parse import quote_plus

from scoutcore.protocols import COIN_CODES, CURRENCY_CODES, QueryAnalysis

COIN_IDS: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "XRP": "ripple",
    "ADA": "cardano",
    "DOGE": "dogecoin",
    "LTC": "litecoin",
}

CITY_COORDINATES: Dict[str, Tuple[float, float]] = {
    "Mexico City": (19.4326, -99.1332),
    "Guadalajara": (20.6597, -103.3496),
    "Monterrey": (25.6866, -100.3161),
    "Madrid": (40.4168, -3.7038),
    "Barcelona": (41.3874, 2.1686),
    "New York": (40.7128, -74.0060),
    "London": (51.5072, -0.1276),
    "Paris": (48.8566, 2.3522),
    "Tokyo": (35.6762, 139.6503),
    "Buenos Aires": (-34.6037, -58.3816),
    "Bogota": (4.7110, -74.0721),
}

DEFAULT_CONTEXT: Dict[str, str] = {
    "base": "USD",
    "quote": "MXN",
    "coin": "BTC",
    "coin_id": "bitcoin",
    "city": "Mexico City",
}


def build_context(query: str, analysis: Optional[QueryAnalysis] = None) -> Dict[str, str]:
    """Derive template values from a query and its analysis."""
    context = dict(DEFAULT_CONTEXT)
    context["query"] = query.strip()

    entities = [e.strip() for e in (analysis.entities if analysis else ()) if e.strip()]
    currencies = [e.upper() for e in entities if e.upper() in CURRENCY_CODES]
    if currencies:
        context["base"] = currencies[0]
        if len(currencies) > 1:
            context["quote"] = currencies[1]
        elif currencies[0] == context["quote"]:
            context["quote"] = "USD" if currencies[0] != "USD" else "MXN"

    coins = [e.upper() for e in entities if e.upper() in COIN_CODES]
    if coins:
        context["coin"] = coins[0]
        context["coin_id"] = COIN_IDS.get(coins[0], coins[0].lower())

    cities = [e for e in entities if e in CITY_COORDINATES]
    if cities:
        context["city"] = cities[0]

    lat, lon = CITY_COORDINATES.get(context["city"], CITY_COORDINATES["Mexico City"])
    context["lat"] = f"{lat:.4f}"
    context["lon"] = f"{lon:.4f}"
    return context


class _TemplateValues(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render(template: str, context: Mapping[str, str], *, url: bool = True) -> str:
    """Fill placeholders; values are URL-quoted unless ``url`` is False."""
    values = _TemplateValues({k: quote_plus(v) if url else v for k, v in context.items()})
    return template.format_map(values)
