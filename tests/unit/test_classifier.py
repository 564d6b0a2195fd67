"""
Tests for the AI-first query classifier and its degradation chain.
"""

import time

import pytest

from scoutcore.classifier import QueryClassifier
from scoutcore.classifier.classifier import extract_json_block, parse_array, repair_json
from scoutcore.config import ClassifierSettings
from scoutcore.errors import ClassificationFailure
from scoutcore.protocols import ExtractionApproach, QueryCategory

from tests.helpers import FakeAI


def make_classifier(ai, timeout=0.5):
    return QueryClassifier(ai, ClassifierSettings(ai_timeout=timeout))


@pytest.mark.unit
class TestJsonHelpers:
    def test_fenced_block_preferred(self):
        text = 'Sure!\n```json\n{"queryType": "news"}\n```\nAnything else?'
        assert extract_json_block(text) == '{"queryType": "news"}'

    def test_bare_block(self):
        assert extract_json_block('result: {"a": 1} done') == '{"a": 1}'

    def test_no_block(self):
        assert extract_json_block("I can't help with that") is None

    def test_repair_trailing_comma_and_bare_tokens(self):
        repaired = repair_json('{queryType: crypto, "entities": ["BTC",],}')
        assert repaired == '{"queryType": "crypto", "entities": ["BTC"]}'

    def test_parse_array_tolerates_missing_quotes(self):
        assert parse_array('"USD", "MXN"') == ["USD", "MXN"]
        assert parse_array("USD, MXN") == ["USD", "MXN"]


@pytest.mark.unit
class TestQueryClassifier:
    @pytest.mark.asyncio
    async def test_no_ai_client_uses_keywords(self):
        analysis = await make_classifier(None).classify("tipo de cambio usd a mxn")
        assert analysis.origin == "keywords"
        assert analysis.category is QueryCategory.EXCHANGE_RATE

    @pytest.mark.asyncio
    async def test_valid_ai_json(self):
        ai = FakeAI(
            '{"queryType": "crypto", "entities": ["BTC"], "sources": ["CoinGecko"], "extractionApproach": "api"}'
        )
        analysis = await make_classifier(ai).classify("bitcoin price")

        assert analysis.origin == "ai"
        assert analysis.category is QueryCategory.CRYPTO
        assert analysis.entities == ("BTC",)
        assert analysis.suggested_sources == ("CoinGecko",)
        assert analysis.extraction_approach is ExtractionApproach.API
        assert ai.prompts and "bitcoin price" in ai.prompts[0]

    @pytest.mark.asyncio
    async def test_fenced_json_with_trailing_comma(self):
        ai = FakeAI('```json\n{"queryType": "weather", "entities": ["Madrid"],}\n```')
        analysis = await make_classifier(ai).classify("clima en Madrid")

        assert analysis.origin == "ai"
        assert analysis.category is QueryCategory.WEATHER
        assert analysis.entities == ("Madrid",)
        assert analysis.extraction_approach is ExtractionApproach.DOM_SCRAPING

    @pytest.mark.asyncio
    async def test_malformed_json_recovered_per_field(self):
        ai = FakeAI("{queryType: exchange_rate, entities: [USD, MXN]}")
        analysis = await make_classifier(ai).classify("usd mxn")

        assert analysis.origin == "ai_partial"
        assert analysis.category is QueryCategory.EXCHANGE_RATE
        assert analysis.entities == ("USD", "MXN")

    @pytest.mark.asyncio
    async def test_unknown_category_uses_keyword_category(self):
        ai = FakeAI('{"queryType": "sports", "entities": []}')
        analysis = await make_classifier(ai).classify("bitcoin price")

        assert analysis.origin == "ai_partial"
        assert analysis.category is QueryCategory.CRYPTO
        assert analysis.entities == ("BTC",)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", ['{"timeout": true}', "I am unable to answer", "   "])
    async def test_unusable_reply_falls_back_to_keywords(self, reply):
        analysis = await make_classifier(FakeAI(reply)).classify("weather in Mexico City")
        assert analysis.origin == "keywords"
        assert analysis.category is QueryCategory.WEATHER

    @pytest.mark.asyncio
    async def test_ai_error_falls_back_to_keywords(self):
        ai = FakeAI([RuntimeError("boom")])
        analysis = await make_classifier(ai).classify("bitcoin price")
        assert analysis.origin == "keywords"
        assert analysis.category is QueryCategory.CRYPTO

    @pytest.mark.asyncio
    async def test_slow_ai_times_out(self):
        ai = FakeAI('{"queryType": "news"}', delay=2.0)
        start = time.monotonic()
        analysis = await make_classifier(ai, timeout=0.1).classify("USD/MXN exchange rate")

        assert time.monotonic() - start < 1.0
        assert analysis.origin == "keywords"
        assert analysis.category is QueryCategory.EXCHANGE_RATE

    def test_parse_response_raises_when_nothing_recoverable(self):
        classifier = make_classifier(None)
        with pytest.raises(ClassificationFailure):
            classifier.parse_response("q", "{not even close}")

    @pytest.mark.asyncio
    async def test_disabled_ai_is_not_called(self):
        ai = FakeAI('{"queryType": "news"}')
        classifier = QueryClassifier(ai, ClassifierSettings(ai_enabled=False))
        analysis = await classifier.classify("bitcoin price")
        assert analysis.origin == "keywords"
        assert ai.prompts == []
