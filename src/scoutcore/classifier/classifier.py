"""
Query classification with AI first and deterministic keywords as the floor.

The degradation chain is: AI JSON -> repaired JSON -> per-field regex
recovery -> keyword classifier. ``classify`` never raises.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from typing import Any, Dict, List, Optional

import structlog

from scoutcore.config.config import ClassifierSettings
from scoutcore.errors import ClassificationFailure
from scoutcore.observability.metrics import increment
from scoutcore.protocols import AICompletion, ExtractionApproach, QueryAnalysis, QueryCategory

from .keywords import approach_for, classify_by_keywords, detect_category, extract_entities, suggested_sources_for

logger = structlog.get_logger(__name__)

CLASSIFICATION_PROMPT = """Analyze this query: "{query}"

ONLY classify it into one of these categories: exchange_rate, weather, crypto, news, product, general.
Extract key entities (currencies, cities, terms).
Answer in JSON with this exact format:
{{
  "queryType": "category",
  "entities": ["entity1", "entity2"],
  "sources": ["source1", "source2"],
  "extractionApproach": "api or dom_scraping"
}}"""

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_BARE_JSON = re.compile(r"\{[\s\S]*\}")
_TIMEOUT_MARKER = re.compile(r'"timeout"\s*:\s*true')
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_UNQUOTED_VALUE = re.compile(r'("[A-Za-z_]+"\s*:\s*)([A-Za-z_][A-Za-z_ ]*[A-Za-z_])(\s*[,}])')
_UNQUOTED_KEY = re.compile(r"([{,]\s*)([A-Za-z_]+)(\s*:)")

_FIELD_PATTERNS = {
    "queryType": re.compile(r'"?queryType"?\s*:\s*"?([A-Za-z_ ]+)"?'),
    "entities": re.compile(r'"?entities"?\s*:\s*\[(.*?)\]', re.DOTALL),
    "sources": re.compile(r'"?sources"?\s*:\s*\[(.*?)\]', re.DOTALL),
    "extractionApproach": re.compile(r'"?extractionApproach"?\s*:\s*"?([A-Za-z_ ]+)"?'),
}


def extract_json_block(text: str) -> Optional[str]:
    """Return the JSON-looking part of an LLM reply, if any."""
    fenced = _FENCED_JSON.search(text)
    if fenced and "{" in fenced.group(1):
        return fenced.group(1).strip()
    bare = _BARE_JSON.search(text)
    return bare.group(0).strip() if bare else None


def repair_json(text: str) -> str:
    """Fix the usual LLM JSON mistakes: trailing commas, bare keys and values."""
    repaired = _TRAILING_COMMA.sub(r"\1", text)
    repaired = _UNQUOTED_KEY.sub(r'\1"\2"\3', repaired)
    repaired = _UNQUOTED_VALUE.sub(lambda m: f'{m.group(1)}"{m.group(2).strip()}"{m.group(3)}', repaired)
    return repaired


def parse_array(text: str) -> List[str]:
    """Parse the inside of a JSON array, tolerating missing quotes."""
    try:
        values = json.loads(f"[{text}]")
        return [str(v) for v in values if str(v).strip()]
    except json.JSONDecodeError:
        return [item.strip().strip("\"'") for item in text.split(",") if item.strip().strip("\"'")]


class QueryClassifier:
    """
    Decides a query's category and entities.

    The AI call is raced against a fixed timeout; any timeout, error or
    unusable reply falls through to the keyword classifier.
    """

    def __init__(self, ai_client: Optional[AICompletion], settings: Optional[ClassifierSettings] = None) -> None:
        self.ai_client = ai_client
        self.settings = settings or ClassifierSettings()
        self.logger = logger.bind(component="QueryClassifier")

    async def classify(self, query: str) -> QueryAnalysis:
        """Classify a query. Never raises (cancellation excepted)."""
        if self.ai_client is None or not self.settings.ai_enabled:
            return self._record(classify_by_keywords(query))

        start = time.monotonic()
        try:
            response = await self._ask_ai(query)
            analysis = self.parse_response(query, response)
        except ClassificationFailure as e:
            self.logger.info(
                "AI classification failed, using keywords",
                event_type="classification_failure",
                query=query,
                reason=str(e),
                elapsed=round(time.monotonic() - start, 3),
            )
            analysis = classify_by_keywords(query)

        return self._record(analysis)

    async def _ask_ai(self, query: str) -> str:
        assert self.ai_client is not None
        timeout = self.settings.ai_timeout
        prompt = CLASSIFICATION_PROMPT.format(query=query)
        try:
            async with asyncio.timeout(timeout):
                return await self.ai_client.complete(prompt, int(timeout * 1000))
        except TimeoutError as e:
            raise ClassificationFailure(f"AI classification timed out after {timeout}s") from e
        except Exception as e:
            raise ClassificationFailure(f"AI classification error: {e}") from e

    def parse_response(self, query: str, response: Any) -> QueryAnalysis:
        """
        Turn an AI reply into a QueryAnalysis.

        Raises:
            ClassificationFailure: when nothing usable can be recovered
        """
        if not isinstance(response, str) or not response.strip():
            raise ClassificationFailure("empty AI response")

        if _TIMEOUT_MARKER.search(response):
            raise ClassificationFailure("AI reported a timeout")

        block = extract_json_block(response)
        if block is None:
            raise ClassificationFailure("no JSON object in AI response")

        for candidate in (block, repair_json(block)):
            try:
                payload = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict):
                return self._from_payload(query, payload, origin="ai")

        self.logger.debug("AI JSON unparseable, recovering fields individually", query=query)
        return self._recover_fields(query, block)

    def _from_payload(self, query: str, payload: Dict[str, Any], origin: str) -> QueryAnalysis:
        category = QueryCategory.parse(payload.get("queryType", payload.get("category")))
        if category is None:
            self.logger.debug("AI returned unknown category", value=payload.get("queryType"))
            category = detect_category(query)
            origin = "ai_partial"

        entities = payload.get("entities")
        if isinstance(entities, list) and entities:
            entity_tuple = tuple(str(e) for e in entities if str(e).strip())
        else:
            entity_tuple = extract_entities(query)

        sources = payload.get("sources")
        if isinstance(sources, list) and sources:
            source_tuple = tuple(str(s) for s in sources if str(s).strip())
        else:
            source_tuple = suggested_sources_for(category)

        approach = ExtractionApproach.parse(payload.get("extractionApproach"), approach_for(category))

        return QueryAnalysis(
            category=category,
            entities=entity_tuple,
            suggested_sources=source_tuple,
            extraction_approach=approach,
            origin=origin,  # type: ignore[arg-type]
        )

    def _recover_fields(self, query: str, block: str) -> QueryAnalysis:
        recovered: Dict[str, Any] = {}
        for key, pattern in _FIELD_PATTERNS.items():
            match = pattern.search(block)
            if not match:
                continue
            value = match.group(1)
            recovered[key] = parse_array(value) if key in ("entities", "sources") else value.strip()

        if not recovered:
            raise ClassificationFailure("no fields recoverable from AI response")

        return self._from_payload(query, recovered, origin="ai_partial")

    def _record(self, analysis: QueryAnalysis) -> QueryAnalysis:
        increment("classifications", labels={"origin": analysis.origin})
        self.logger.debug(
            "Query classified",
            category=analysis.category.value,
            entities=list(analysis.entities),
            origin=analysis.origin,
        )
        return analysis
