# === FILE: spider_stream/crawler/collector.py ===
"""
Asynchronous traversal engine.

:class:`Collector` fetches URLs handed to :meth:`Collector.visit` with
aiohttp, bounded by a :class:`LimitRule`, and fires the registered hooks:

* ``on_request(request)``             – right before the request is sent, may abort it;
* ``on_response(response)``           – status < 400;
* ``on_html(selector, element)``      – for every element of an HTML body matching *selector*;
* ``on_error(response, exc)``         – status >= 400 or transport failure (``response.status == 0``).

Hooks may be plain functions or coroutine functions. The collector never
follows links by itself: whoever owns the hooks decides what to visit next.
"""
from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import random
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple, Union
from urllib.parse import urljoin, urlsplit

from aiohttp import ClientError, ClientSession, ClientTimeout
from bs4 import BeautifulSoup
from multidict import CIMultiDict

from spider_stream.crawler.models import HTMLElement, Request, Response
from spider_stream.errors import (
    AlreadyVisitedError,
    ForbiddenURLError,
    HTTPStatusError,
    InvalidURLError,
    MaxDepthError,
)
from spider_stream.logger import LOGGER_NAME

__all__ = ("Collector", "LimitRule", "DEFAULT_USER_AGENT")

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; spider_stream/0.1)"

_Hook = Callable[..., Union[None, Awaitable[None]]]


@dataclass(slots=True)
class LimitRule:
    """Parallelism and pacing applied to every request (0 parallelism = unbounded)."""

    parallelism: int = 0
    delay: float = 0.0
    random_delay: float = 0.0

    def wait_time(self) -> float:
        extra = random.uniform(0, self.random_delay) if self.random_delay > 0 else 0.0
        return self.delay + extra


class Collector:
    """Async fetcher with URL filters, rate limiting and event hooks."""
    _REDIRECT_STATUS = (301, 302, 303, 307, 308)
    MAX_REDIRECTS = 10

    def __init__(
        self,
        *,
        max_depth: int = 0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.max_depth = max_depth
        self.user_agent = user_agent
        self.url_filters: List[re.Pattern[str]] = []
        self.disallowed_url_filters: List[re.Pattern[str]] = []
        self.timeout: float = 10.0
        self.proxy: Optional[str] = None
        self.verify_ssl: bool = False
        # (current_url, next_url) -> follow?; None lets aiohttp follow every redirect
        self.redirect_policy: Optional[Callable[[str, str], bool]] = None
        self.limit_rule = LimitRule()
        self.session: Optional[ClientSession] = None
        self.requests_sent = 0
        self.logger = logging.getLogger(LOGGER_NAME)

        self._request_hooks: List[_Hook] = []
        self._response_hooks: List[_Hook] = []
        self._error_hooks: List[_Hook] = []
        self._html_hooks: List[Tuple[str, _Hook]] = []
        self._visited: Set[str] = set()
        self._tasks: Set[asyncio.Task[None]] = set()
        self._semaphore: Optional[asyncio.Semaphore] = None

    # ------------------------------------------------------------------ #
    # lifecycle                                                          #
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> Collector:
        self.session = ClientSession(
            timeout=ClientTimeout(total=self.timeout),
            raise_for_status=False,
        )
        if self.limit_rule.parallelism > 0:
            self._semaphore = asyncio.Semaphore(self.limit_rule.parallelism)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        for task in tuple(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self.session and not self.session.closed:
            await self.session.close()

    # ------------------------------------------------------------------ #
    # configuration                                                      #
    # ------------------------------------------------------------------ #

    def limit(self, rule: LimitRule) -> None:
        if rule.parallelism < 0 or rule.delay < 0 or rule.random_delay < 0:
            raise ValueError(f"invalid limit rule: {rule}")
        self.limit_rule = rule

    def on_request(self, hook: _Hook) -> None:
        self._request_hooks.append(hook)

    def on_response(self, hook: _Hook) -> None:
        self._response_hooks.append(hook)

    def on_error(self, hook: _Hook) -> None:
        self._error_hooks.append(hook)

    def on_html(self, selector: str, hook: _Hook) -> None:
        self._html_hooks.append((selector, hook))

    # ------------------------------------------------------------------ #
    # scheduling                                                         #
    # ------------------------------------------------------------------ #

    def visit(self, url: str, depth: int = 1, source: str = "body") -> None:
        """Schedule a fetch of *url*; raises a CollectorError subclass when refused."""
        if self.session is None:
            raise RuntimeError("Collector is not open")
        try:
            parsed = urlsplit(url)
        except ValueError as exc:
            raise InvalidURLError(url) from exc
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise InvalidURLError(url)
        if self.max_depth and depth > self.max_depth:
            raise MaxDepthError(url, depth)
        if not self.is_allowed(url):
            raise ForbiddenURLError(url)
        if url in self._visited:
            raise AlreadyVisitedError(url)
        self._visited.add(url)

        task = asyncio.get_running_loop().create_task(self._fetch(Request(url, depth, source=source)))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def is_allowed(self, url: str) -> bool:
        if any(p.search(url) for p in self.disallowed_url_filters):
            return False
        if self.url_filters and not any(p.search(url) for p in self.url_filters):
            return False
        return True

    @property
    def idle(self) -> bool:
        return not self._tasks

    async def wait(self) -> None:
        """Block until every scheduled fetch, including ones scheduled meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error("Fetch task failed", exc_info=task.exception())

    # ------------------------------------------------------------------ #
    # fetching                                                           #
    # ------------------------------------------------------------------ #

    def _slot(self) -> Any:
        return self._semaphore if self._semaphore is not None else contextlib.nullcontext()

    async def _fetch(self, request: Request) -> None:
        async with self._slot():
            wait = self.limit_rule.wait_time()
            if wait > 0:
                await asyncio.sleep(wait)
            request.headers.setdefault("User-Agent", self.user_agent)
            for hook in self._request_hooks:
                await self._call(hook, request)
            if request.aborted:
                self.logger.debug("Request aborted: %s", request.url)
                return
            self.requests_sent += 1
            try:
                response = await self._do(request)
            except (ClientError, asyncio.TimeoutError) as exc:
                for hook in self._error_hooks:
                    await self._call(hook, Response(request), exc)
                return

        if response.status >= 400:
            error = HTTPStatusError(response.status)
            for hook in self._error_hooks:
                await self._call(hook, response, error)
            return
        for hook in self._response_hooks:
            await self._call(hook, response)
        if self._html_hooks and response.is_html:
            soup = BeautifulSoup(response.text, "html.parser")
            for selector, hook in self._html_hooks:
                for tag in soup.select(selector):
                    await self._call(hook, HTMLElement(tag, request, response))

    async def _do(self, request: Request) -> Response:
        if self.session is None:
            raise RuntimeError("Collector is not open")
        url = request.url
        follow = self.redirect_policy is None
        for _ in range(self.MAX_REDIRECTS + 1):
            async with self.session.get(
                url,
                headers=request.headers,
                allow_redirects=follow,
                proxy=self.proxy,
                ssl=self.verify_ssl,
            ) as resp:
                body = await resp.read()
                if resp.history:
                    url = str(resp.url)
                location = resp.headers.get("Location")
                if not follow and resp.status in self._REDIRECT_STATUS and location:
                    target = urljoin(url, location)
                    self.logger.debug("Found redirect: %s", target)
                    if self.redirect_policy(url, target) and self.is_allowed(target):
                        self.logger.info("Redirecting to: %s", target)
                        url = target
                        continue
                request.url = url
                return Response(
                    request=request,
                    status=resp.status,
                    headers=CIMultiDict(resp.headers),
                    body=body,
                    charset=resp.charset,
                )
        raise ClientError(f"too many redirects: {request.url}")

    @staticmethod
    async def _call(hook: _Hook, *args: Any) -> None:
        result = hook(*args)
        if inspect.isawaitable(result):
            await result
