"""
Cross-source consensus for quantitative categories.

Reduces the numeric values of several successful source results to one
agreed value with provenance.
"""

from __future__ import annotations

import dataclasses
import statistics
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from scoutcore.config.config import ConsensusSettings
from scoutcore.protocols import (
    RATE_FIELDS,
    ConsensusResult,
    CryptoData,
    ExchangeRateData,
    GenericData,
    Payload,
    QueryCategory,
    SourceResult,
    WeatherData,
    utc_timestamp,
)
from scoutcore.utils.numbers import parse_numeric, round_rate

logger = structlog.get_logger(__name__)


def rate_field(category: QueryCategory) -> str:
    """Name of the field carrying the value consensus is computed over."""
    return RATE_FIELDS.get(category, "rate")


def numeric_value(result: SourceResult, field_name: str) -> Optional[float]:
    """Parse the numeric value of a source result, or None when it has none."""
    payload = result.data
    if not result.success or payload is None:
        return None
    if isinstance(payload, GenericData):
        raw: Any = payload.fields.get(field_name)
    else:
        raw = getattr(payload, field_name, None)
    return parse_numeric(raw)


class ConsensusAggregator:
    """Averages numeric results from independent sources."""

    def __init__(self, settings: Optional[ConsensusSettings] = None) -> None:
        self.settings = settings or ConsensusSettings()
        self.logger = logger.bind(component="ConsensusAggregator")

    def consensus(
        self,
        results: Sequence[SourceResult],
        category: QueryCategory = QueryCategory.EXCHANGE_RATE,
    ) -> ConsensusResult:
        field_name = rate_field(category)
        valid: List[Tuple[str, float]] = []
        for result in results:
            value = numeric_value(result, field_name)
            if value is not None:
                valid.append((result.source, value))

        valid = self._reject_outliers(valid)

        if not valid:
            return ConsensusResult(
                rate=None,
                source="Consensus",
                timestamp=utc_timestamp(),
                error="no valid rates",
                additional_data={"attempted_sources": [r.source for r in results]},
            )

        contributors = [{"source": source, "rate": value} for source, value in valid]

        if len(valid) == 1:
            source, value = valid[0]
            return ConsensusResult(
                rate=value,
                source=f"Consensus (single source: {source})",
                timestamp=utc_timestamp(),
                additional_data={"sources": contributors, "count": 1},
            )

        mean = round_rate(statistics.fmean(v for _, v in valid), self.settings.decimals)
        self.logger.debug("Consensus computed", rate=mean, count=len(valid), field=field_name)
        return ConsensusResult(
            rate=mean,
            source="Consensus",
            timestamp=utc_timestamp(),
            additional_data={"sources": contributors, "count": len(valid)},
        )

    def _reject_outliers(self, values: List[Tuple[str, float]]) -> List[Tuple[str, float]]:
        max_deviation = self.settings.max_deviation
        if max_deviation is None or len(values) < 3:
            return values
        median = statistics.median(v for _, v in values)
        if median == 0:
            return values
        kept = [(s, v) for s, v in values if abs(v - median) / abs(median) <= max_deviation]
        dropped = [s for s, v in values if (s, v) not in kept]
        if dropped:
            self.logger.info("Dropped outlier values", sources=dropped, median=median)
        return kept


def merge_consensus(payload: Payload, consensus: ConsensusResult) -> Payload:
    """Carry a consensus value into the first successful payload."""
    if consensus.rate is None:
        return payload
    additional: Dict[str, Any] = dict(consensus.additional_data or {})
    if isinstance(payload, ExchangeRateData):
        return dataclasses.replace(payload, rate=consensus.rate, source=consensus.source, additional_data=additional)
    if isinstance(payload, CryptoData):
        return dataclasses.replace(payload, price=consensus.rate, source=consensus.source, additional_data=additional)
    if isinstance(payload, WeatherData):
        return dataclasses.replace(payload, temperature_c=consensus.rate, source=consensus.source)
    return payload
