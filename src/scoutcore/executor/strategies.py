"""
Extraction strategies tried against one target.

Each strategy returns a ``StrategyHit`` with a raw field record or raises;
the executor decides what counts as success.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
from urllib.parse import quote, urlparse

import structlog

from scoutcore.bridge.session import BridgeSession
from scoutcore.catalog.templates import render
from scoutcore.classifier.keywords import extract_values_from_text
from scoutcore.config.config import StrategySettings
from scoutcore.errors import AIUnavailable, BridgeUnavailable, StrategyFailure
from scoutcore.protocols import AICompletion, ExtractionTarget, HttpFetcher, QueryAnalysis, QueryCategory

from .html import select_fields, visible_text

logger = structlog.get_logger(__name__)

AI_EXTRACTION_PROMPT = """You read web pages for a data lookup.
Query: "{query}"
Category: {category}

From the page text below, reply with only the requested value on one line, in a
form such as "1 USD = 17.26 MXN", "$68,245.32 +1.2%" or "24°C Partly Cloudy".
For news, reply with up to five headlines, one per line.

PAGE TEXT:
{text}"""


@dataclass
class StrategyRequest:
    """Per-target inputs shared by every strategy in one chain."""

    query: str
    category: QueryCategory
    context: Dict[str, str]
    url: str
    analysis: Optional[QueryAnalysis] = None
    pages: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StrategyHit:
    fields: Dict[str, Any]
    url: str


@runtime_checkable
class ExtractionStrategy(Protocol):
    """One extraction technique tried against a target."""

    name: str

    async def extract(self, target: ExtractionTarget, request: StrategyRequest) -> StrategyHit: ...


_MISSING = object()


def resolve_path(data: Any, path: str) -> Any:
    """
    Walk a dotted path through decoded JSON.

    Integer segments index lists; ``*`` maps the rest of the path over a
    list. Returns None when any segment is missing.
    """
    current: Any = data
    parts = [p for p in path.split(".") if p]
    for index, part in enumerate(parts):
        if part == "*":
            if not isinstance(current, list):
                return None
            rest = ".".join(parts[index + 1 :])
            values = [resolve_path(item, rest) if rest else item for item in current]
            return [v for v in values if v is not None]
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, list) and part.lstrip("-").isdigit():
            position = int(part)
            current = current[position] if -len(current) <= position < len(current) else _MISSING
        else:
            return None
        if current is _MISSING:
            return None
    return current


def _host(url: str) -> str:
    return urlparse(url).hostname or url


class DirectApiStrategy:
    """GET each fallback API URL in order; the first usable body wins."""

    name = "direct_api"

    def __init__(self, http: HttpFetcher, settings: StrategySettings) -> None:
        self.http = http
        self.settings = settings

    async def extract(self, target: ExtractionTarget, request: StrategyRequest) -> StrategyHit:
        if not target.fallback_api_urls:
            raise StrategyFailure("no API endpoints configured", strategy=self.name, target=target.name)

        errors: List[str] = []
        for template in target.fallback_api_urls:
            url = render(template, request.context)
            response = await self.http.fetch(url, timeout=self.settings.api_timeout)
            if not response.ok:
                errors.append(f"{_host(url)} returned HTTP {response.status}")
                continue
            fields = self._parse(target, request, response.text())
            if fields:
                return StrategyHit(fields=fields, url=url)
            errors.append(f"{_host(url)} body had no usable fields")

        raise StrategyFailure("; ".join(errors), strategy=self.name, target=target.name)

    def _parse(self, target: ExtractionTarget, request: StrategyRequest, body: str) -> Dict[str, Any]:
        try:
            data = json.loads(body)
        except ValueError:
            return select_fields(body, target.selector_rules)

        fields: Dict[str, Any] = {}
        for name, template in target.api_fields.items():
            value = resolve_path(data, render(template, request.context, url=False))
            if value is not None and value != [] and value != "":
                fields[name] = value
        return fields


class BrowserDomStrategy:
    """Run the selector rules inside the embedded browser."""

    name = "browser_dom"

    def __init__(self, session: Optional[BridgeSession]) -> None:
        self.session = session

    async def extract(self, target: ExtractionTarget, request: StrategyRequest) -> StrategyHit:
        if self.session is None or not self.session.available:
            raise StrategyFailure("browser bridge not available", strategy=self.name, target=target.name)
        if not target.selector_rules:
            raise StrategyFailure("no selector rules", strategy=self.name, target=target.name)
        try:
            fields = await self.session.extract(request.url, target.selector_rules, target.ready_selector)
        except BridgeUnavailable as e:
            raise StrategyFailure(str(e), strategy=self.name, target=target.name) from e
        return StrategyHit(fields=fields, url=request.url)


class ProxyStrategy:
    """Fetch the page through a CORS-bypassing intermediary and apply the rules server-side."""

    name = "proxy"

    def __init__(self, http: HttpFetcher, settings: StrategySettings) -> None:
        self.http = http
        self.settings = settings

    def proxied(self, url: str) -> Optional[str]:
        template = self.settings.proxy_url_template
        if not template:
            return None
        return template.replace("{url}", quote(url, safe=""))

    async def extract(self, target: ExtractionTarget, request: StrategyRequest) -> StrategyHit:
        proxied = self.proxied(request.url)
        if proxied is None:
            raise StrategyFailure("no proxy configured", strategy=self.name, target=target.name)
        if not target.selector_rules:
            raise StrategyFailure("no selector rules", strategy=self.name, target=target.name)

        response = await self.http.fetch(proxied, timeout=self.settings.api_timeout)
        if not response.ok:
            raise StrategyFailure(
                f"proxy returned HTTP {response.status}", strategy=self.name, target=target.name
            )

        html = response.text()
        request.pages[request.url] = html
        return StrategyHit(fields=select_fields(html, target.selector_rules), url=request.url)


class AiDomStrategy:
    """
    Read the page's visible text and pull values out of it.

    With an AI client the text is summarised by the model first; the reply
    (or the raw text when there is no model) goes through the same value
    regexes the keyword classifier uses.
    """

    name = "ai_dom"

    def __init__(
        self,
        session: Optional[BridgeSession],
        http: HttpFetcher,
        ai_client: Optional[AICompletion],
        settings: StrategySettings,
        proxy: Optional[ProxyStrategy] = None,
    ) -> None:
        self.session = session
        self.http = http
        self.ai_client = ai_client
        self.settings = settings
        self.proxy = proxy or ProxyStrategy(http, settings)
        self.logger = logger.bind(component="AiDomStrategy")

    async def extract(self, target: ExtractionTarget, request: StrategyRequest) -> StrategyHit:
        text = await self._page_text(request)
        if not text.strip():
            raise StrategyFailure("page has no visible text", strategy=self.name, target=target.name)

        source_text = text
        if self.ai_client is not None:
            try:
                source_text = await self._ask_ai(request, text)
            except AIUnavailable as e:
                self.logger.info("AI extraction unavailable, reading page text directly", error=str(e))

        fields = extract_values_from_text(request.category, source_text)
        if not fields and source_text is not text:
            fields = extract_values_from_text(request.category, text)
        return StrategyHit(fields=fields, url=request.url)

    async def _page_text(self, request: StrategyRequest) -> str:
        limit = self.settings.max_visible_text
        if self.session is not None and self.session.available:
            try:
                return (await self.session.visible_text(request.url))[:limit]
            except (BridgeUnavailable, StrategyFailure) as e:
                self.logger.debug("Bridge visible text failed", url=request.url, error=str(e))

        html = request.pages.get(request.url)
        if html is None:
            proxied = self.proxy.proxied(request.url) or request.url
            response = await self.http.fetch(proxied, timeout=self.settings.api_timeout)
            if not response.ok:
                raise StrategyFailure(f"page fetch returned HTTP {response.status}", strategy=self.name)
            html = response.text()
            request.pages[request.url] = html
        return visible_text(html, limit)

    async def _ask_ai(self, request: StrategyRequest, text: str) -> str:
        assert self.ai_client is not None
        prompt = AI_EXTRACTION_PROMPT.format(query=request.query, category=request.category.value, text=text)
        timeout = self.settings.ai_timeout
        try:
            async with asyncio.timeout(timeout):
                return await self.ai_client.complete(prompt, int(timeout * 1000))
        except TimeoutError as e:
            raise AIUnavailable(f"AI extraction timed out after {timeout}s") from e
        except AIUnavailable:
            raise
        except Exception as e:
            raise AIUnavailable(f"AI extraction error: {e}") from e
