"""
Tests for BridgeSession: reply routing, readiness polling and serialisation.
"""

import asyncio

import pytest

from scoutcore.bridge import BridgeSession, build_extraction_script
from scoutcore.errors import BridgeUnavailable, StrategyFailure
from scoutcore.protocols import SelectorSpec

from tests.helpers import FakeBridge

RULES = {"rate": SelectorSpec("span.rate")}


@pytest.mark.unit
class TestBridgeSession:
    @pytest.mark.asyncio
    async def test_extract_returns_page_record(self, strategy_settings):
        bridge = FakeBridge(pages={"https://fx.example/usd": {"rate": "17.26"}})
        session = BridgeSession(bridge, strategy_settings)

        data = await session.extract("https://fx.example/usd", RULES)

        assert data == {"rate": "17.26"}
        assert bridge.navigations == ["https://fx.example/usd"]
        assert session.sequences == 1
        assert len(bridge.handlers) == 1

    @pytest.mark.asyncio
    async def test_ready_selector_polled_then_extracts_anyway(self, strategy_settings):
        bridge = FakeBridge(pages={"https://fx.example": {"rate": "17.1"}}, ready=False)
        session = BridgeSession(bridge, strategy_settings)

        data = await session.extract("https://fx.example", RULES, ready_selector="span.rate")

        assert data == {"rate": "17.1"}
        probes = [s for s in bridge.scripts if "READY_STATE" in s and "EXTRACTION_RESULT" not in s]
        assert len(probes) == strategy_settings.dom_ready_attempts
        assert len(bridge.scripts) == strategy_settings.dom_ready_attempts + 1

    @pytest.mark.asyncio
    async def test_ready_selector_found_first_poll(self, strategy_settings):
        bridge = FakeBridge(pages={"https://fx.example": {"rate": "17.1"}}, ready=True)
        session = BridgeSession(bridge, strategy_settings)

        await session.extract("https://fx.example", RULES, ready_selector="span.rate")

        assert len(bridge.scripts) == 2

    @pytest.mark.asyncio
    async def test_silent_page_times_out(self, strategy_settings):
        settings = strategy_settings.model_copy(update={"script_timeout": 0.1})
        session = BridgeSession(FakeBridge(silent=True), settings)

        with pytest.raises(BridgeUnavailable, match="no reply"):
            await session.extract("https://fx.example", RULES)

        assert not session._pending

    @pytest.mark.asyncio
    async def test_navigation_timeout(self, strategy_settings):
        settings = strategy_settings.model_copy(update={"navigation_timeout": 0.05})
        session = BridgeSession(FakeBridge(nav_delay=1.0), settings)

        with pytest.raises(BridgeUnavailable, match="navigation"):
            await session.extract("https://slow.example", RULES)

    @pytest.mark.asyncio
    async def test_no_bridge(self, strategy_settings):
        session = BridgeSession(None, strategy_settings)
        assert not session.available
        with pytest.raises(BridgeUnavailable):
            await session.extract("https://fx.example", RULES)

    @pytest.mark.asyncio
    async def test_sequences_never_interleave(self, strategy_settings):
        bridge = FakeBridge(
            pages={"https://a.example": {"v": "1"}, "https://b.example": {"v": "2"}},
            nav_delay=0.02,
            reply_delay=0.01,
        )
        session = BridgeSession(bridge, strategy_settings)

        first, second = await asyncio.gather(
            session.extract("https://a.example", {"v": SelectorSpec("b")}),
            session.extract("https://b.example", {"v": SelectorSpec("b")}),
        )

        assert first == {"v": "1"}
        assert second == {"v": "2"}
        assert bridge.log == [
            ("navigate", "https://a.example"),
            ("extract", "https://a.example"),
            ("navigate", "https://b.example"),
            ("extract", "https://b.example"),
        ]
        assert bridge.max_active == 1
        assert not session.busy

    @pytest.mark.asyncio
    async def test_visible_text_reuses_current_page(self, strategy_settings):
        bridge = FakeBridge(texts={"https://w.example": "24°C Sunny"})
        session = BridgeSession(bridge, strategy_settings)

        assert await session.visible_text("https://w.example") == "24°C Sunny"
        assert await session.visible_text("https://w.example") == "24°C Sunny"
        assert bridge.navigations == ["https://w.example"]

    @pytest.mark.asyncio
    async def test_page_script_error_is_strategy_failure(self, strategy_settings):
        session = BridgeSession(FakeBridge(), strategy_settings)

        async def error_reply(code):
            request_id = code.split('requestId: "')[1].split('"')[0]
            asyncio.get_running_loop().call_soon(
                session._on_message,
                {"type": "EXTRACTION_ERROR", "requestId": request_id, "error": "boom"},
            )

        session.bridge.inject_script = error_reply
        with pytest.raises(StrategyFailure, match="boom"):
            await session.extract("https://fx.example", RULES)

    @pytest.mark.asyncio
    async def test_unrelated_and_malformed_messages_ignored(self, strategy_settings):
        bridge = FakeBridge(pages={"https://fx.example": {"rate": "17.2"}}, reply_delay=0.02)
        session = BridgeSession(bridge, strategy_settings)
        session.attach()

        session._on_message("not json")
        session._on_message({"type": "EXTRACTION_RESULT", "requestId": "unknown"})
        session._on_message(["list"])

        assert await session.extract("https://fx.example", RULES) == {"rate": "17.2"}

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self, strategy_settings):
        bridge = FakeBridge()
        session = BridgeSession(bridge, strategy_settings)
        session.attach()
        session.attach()
        assert len(bridge.handlers) == 1

        await session.close()
        assert bridge.handlers == []


@pytest.mark.unit
class TestScripts:
    def test_extraction_script_embeds_rules_and_request_id(self):
        script = build_extraction_script("abc123", {"rate": SelectorSpec("span.rate", attribute="data-v")})
        assert 'requestId: "abc123"' in script
        assert '"selector": "span.rate"' in script
        assert '"attribute": "data-v"' in script
        assert "ReactNativeWebView" in script
