"""
Test doubles for the pipeline's external collaborators.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from scoutcore.errors import AIUnavailable
from scoutcore.protocols import HttpResponse

Responder = Callable[[str], Optional[Dict[str, Any]]]


class FakeBridge:
    """
    Browser bridge that answers injected scripts from canned page data.

    ``pages`` maps a URL to the field record the extraction script would
    post back. Visible-text requests are answered from ``texts``.
    """

    def __init__(
        self,
        pages: Optional[Mapping[str, Dict[str, Any]]] = None,
        texts: Optional[Mapping[str, str]] = None,
        ready: bool = True,
        reply_delay: float = 0.0,
        silent: bool = False,
        nav_delay: float = 0.0,
    ) -> None:
        self.pages = dict(pages or {})
        self.texts = dict(texts or {})
        self.ready = ready
        self.reply_delay = reply_delay
        self.silent = silent
        self.nav_delay = nav_delay
        self.log: List[tuple] = []
        self.navigations: List[str] = []
        self.scripts: List[str] = []
        self.handlers: List[Callable[[Any], None]] = []
        self.current_url: Optional[str] = None
        self.active = 0
        self.max_active = 0

    async def navigate(self, url: str) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self.navigations.append(url)
            self.log.append(("navigate", url))
            await asyncio.sleep(self.nav_delay)
            self.current_url = url
        finally:
            self.active -= 1

    async def inject_script(self, code: str) -> None:
        self.scripts.append(code)
        request_id = re.search(r"requestId: \"([0-9a-f]+)\"", code)
        if self.silent or request_id is None:
            return
        message = self._reply(code, request_id.group(1))
        asyncio.get_running_loop().call_later(self.reply_delay, self._deliver, json.dumps(message))

    def _reply(self, code: str, request_id: str) -> Dict[str, Any]:
        if "READY_STATE" in code:
            return {"type": "READY_STATE", "requestId": request_id, "ready": self.ready}
        if "VISIBLE_TEXT" in code:
            return {"type": "VISIBLE_TEXT", "requestId": request_id, "text": self.texts.get(self.current_url or "", "")}
        data = self.pages.get(self.current_url or "", {})
        self.log.append(("extract", self.current_url))
        return {"type": "EXTRACTION_RESULT", "requestId": request_id, "data": data, "url": self.current_url}

    def _deliver(self, message: str) -> None:
        for handler in list(self.handlers):
            handler(message)

    def on_message(self, handler: Callable[[Any], None]) -> Callable[[], None]:
        self.handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self.handlers:
                self.handlers.remove(handler)

        return unsubscribe


class FakeAI:
    """AI completion double returning scripted replies in order."""

    def __init__(self, replies: Union[str, Sequence[Union[str, Exception]]] = (), delay: float = 0.0) -> None:
        self.replies = [replies] if isinstance(replies, str) else list(replies)
        self.delay = delay
        self.prompts: List[str] = []

    async def complete(self, prompt: str, timeout_ms: int) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.replies:
            raise AIUnavailable("no scripted reply")
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeHttp:
    """
    HttpFetcher double keyed by URL prefix.

    Values are ``(status, body)`` tuples, a JSON-serialisable object (served
    with status 200) or an exception to raise. Unmatched URLs get status 0.
    """

    def __init__(self, routes: Optional[Mapping[str, Any]] = None, delay: float = 0.0) -> None:
        self.routes = dict(routes or {})
        self.delay = delay
        self.calls: List[str] = []
        self.posts: List[Dict[str, Any]] = []

    def _match(self, url: str) -> Any:
        for prefix, value in self.routes.items():
            if url.startswith(prefix):
                return value
        return (0, b"")

    def _response(self, url: str, value: Any) -> HttpResponse:
        if isinstance(value, Exception):
            raise value
        if isinstance(value, list) and value and isinstance(value[0], tuple):
            value = value.pop(0) if len(value) > 1 else value[0]
        if isinstance(value, tuple):
            status, body = value
        else:
            status, body = 200, value
        if not isinstance(body, (bytes, str)):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode()
        now = time.time()
        return HttpResponse(
            status=status, headers={}, body=body, start_ts=now, end_ts=now, attempts=1, url=url, final_url=url
        )

    async def fetch(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        max_retries: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._response(url, self._match(url))

    async def post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        *,
        timeout: float = 10.0,
        headers: Optional[Mapping[str, str]] = None,
        max_retries: Optional[int] = None,
    ) -> HttpResponse:
        self.calls.append(url)
        self.posts.append(
            {"url": url, "payload": dict(payload), "headers": dict(headers or {}), "max_retries": max_retries}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._response(url, self._match(url))
