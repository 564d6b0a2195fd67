"""
Tests for the OpenAI-compatible completion client.
"""

import json

import pytest
from aioresponses import aioresponses
from yarl import URL

from scoutcore.ai import OpenRouterClient
from scoutcore.config import AISettings
from scoutcore.errors import AIUnavailable

from tests.helpers import FakeHttp

ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"


def completion(content):
    return (200, json.dumps({"choices": [{"message": {"content": content}}]}))


@pytest.mark.unit
class TestOpenRouterClient:
    @pytest.mark.asyncio
    async def test_completion(self):
        http = FakeHttp({ENDPOINT: completion('{"queryType": "crypto"}')})
        client = OpenRouterClient(AISettings(enabled=True, api_keys=["k1"]), http)

        reply = await client.complete("classify this", 1000)

        assert reply == '{"queryType": "crypto"}'
        post = http.posts[0]
        assert post["headers"]["Authorization"] == "Bearer k1"
        assert post["payload"]["messages"] == [{"role": "user", "content": "classify this"}]
        assert post["payload"]["model"] == AISettings().model

    @pytest.mark.asyncio
    async def test_rotates_key_on_429(self):
        http = FakeHttp({ENDPOINT: [(429, b""), completion("ok")]})
        client = OpenRouterClient(AISettings(api_keys=["k1", "k2"]), http)

        assert await client.complete("p", 1000) == "ok"
        assert [p["headers"]["Authorization"] for p in http.posts] == ["Bearer k1", "Bearer k2"]
        assert client.current_key == "k2"

    @pytest.mark.asyncio
    async def test_every_key_rate_limited(self):
        http = FakeHttp({ENDPOINT: (429, b"")})
        client = OpenRouterClient(AISettings(api_keys=["k1", "k2"]), http)

        with pytest.raises(AIUnavailable, match="every configured API key"):
            await client.complete("p", 1000)
        assert len(http.posts) == 2

    @pytest.mark.asyncio
    async def test_no_keys(self):
        http = FakeHttp()
        with pytest.raises(AIUnavailable, match="no API keys"):
            await OpenRouterClient(AISettings(), http).complete("p", 1000)
        assert http.posts == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response,match",
        [
            ((500, b"boom"), "HTTP 500"),
            ((200, b"not json"), "malformed"),
            ((200, json.dumps({"choices": []})), "malformed"),
            (completion("   "), "empty completion"),
        ],
    )
    async def test_bad_responses(self, response, match):
        client = OpenRouterClient(AISettings(api_keys=["k1"]), FakeHttp({ENDPOINT: response}))
        with pytest.raises(AIUnavailable, match=match):
            await client.complete("p", 1000)

    @pytest.mark.asyncio
    async def test_timeout(self):
        http = FakeHttp({ENDPOINT: completion("late")}, delay=1.0)
        client = OpenRouterClient(AISettings(api_keys=["k1"]), http)

        with pytest.raises(AIUnavailable, match="timed out"):
            await client.complete("p", 50)

    def test_endpoint_strips_trailing_slash(self):
        client = OpenRouterClient(AISettings(base_url="https://llm.example/v1/"), FakeHttp())
        assert client.endpoint == "https://llm.example/v1/chat/completions"


@pytest.mark.unit
class TestOpenRouterClientOverHttp:
    @pytest.mark.asyncio
    async def test_rate_limit_rotates_key_without_transport_retries(self, http_client):
        client = OpenRouterClient(AISettings(api_keys=["k1", "k2"]), http_client)

        with aioresponses() as m:
            m.post(ENDPOINT, status=429, body="")
            m.post(ENDPOINT, status=200, payload={"choices": [{"message": {"content": "ok"}}]})

            reply = await client.complete("p", 2000)

            calls = m.requests[("POST", URL(ENDPOINT))]

        assert reply == "ok"
        assert [c.kwargs["headers"]["Authorization"] for c in calls] == ["Bearer k1", "Bearer k2"]

    @pytest.mark.asyncio
    async def test_completion_posts_without_transport_retries(self):
        http = FakeHttp({ENDPOINT: completion("ok")})
        await OpenRouterClient(AISettings(api_keys=["k1"]), http).complete("p", 1000)
        assert http.posts[0]["max_retries"] == 0
