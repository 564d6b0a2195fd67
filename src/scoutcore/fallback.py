"""
Emergency fallback data.

Pure and total: no I/O, cannot fail. Every payload is labelled with a source
containing "Emergency fallback" so callers can tell it from live data.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Optional

from scoutcore.classifier.keywords import classify_by_keywords
from scoutcore.config.config import FallbackSettings
from scoutcore.protocols import (
    COIN_CODES,
    CURRENCY_CODES,
    CryptoData,
    ExchangeRateData,
    GenericData,
    Payload,
    QueryCategory,
    WeatherData,
)

FALLBACK_SOURCE = "Emergency fallback"


class EmergencyFallbackProvider:
    """Deterministic, query-type-aware canned results."""

    def __init__(self, settings: Optional[FallbackSettings] = None) -> None:
        self.settings = settings or FallbackSettings()

    def fallback(self, query: str) -> Payload:
        analysis = classify_by_keywords(query)
        category = analysis.category
        source = f"{FALLBACK_SOURCE} (last known value)"

        if category is QueryCategory.EXCHANGE_RATE:
            currencies = [e for e in analysis.entities if e in CURRENCY_CODES]
            pair = tuple(currencies[:2])
            rate = self.settings.exchange_rate
            base, quote = "USD", "MXN"
            if pair == ("MXN", "USD"):
                base, quote, rate = "MXN", "USD", round(1 / rate, 4)
            return ExchangeRateData(
                base=base,
                quote=quote,
                rate=rate,
                source=source,
                additional_data={"note": "Static value, live sources unavailable", "query": query},
            )

        if category is QueryCategory.CRYPTO:
            coin = next((e for e in analysis.entities if e in COIN_CODES), "BTC")
            if coin != "BTC":
                source = f"{FALLBACK_SOURCE} (BTC reference, {coin} unavailable)"
            return CryptoData(
                coin="BTC",
                currency="USD",
                price=self.settings.crypto_price,
                source=source,
                change_24h=self.settings.crypto_change_24h,
                additional_data={"note": "Static value, live sources unavailable", "query": query},
            )

        if category is QueryCategory.WEATHER:
            return WeatherData(
                location=self.settings.location,
                temperature_c=self.settings.temperature_c,
                condition=self.settings.condition,
                source=source,
            )

        return GenericData(
            fields=MappingProxyType(
                {"message": f"No results available for: {query}", "category": category.value}
            ),
            source=FALLBACK_SOURCE,
            query=query,
        )
