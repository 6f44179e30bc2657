# File: spider_stream/engine.py
"""spider_stream.engine: orchestration of a crawl session.

A :class:`Crawler` turns seeds into a :class:`CrawlSession`. The session
provisions a fresh :class:`~spider_stream.crawler.Collector`, registers its
hooks and streams every first-seen discovery on :attr:`CrawlSession.reports`
while local failures go to :attr:`CrawlSession.errors`. Both channels close
when the session is over; read them concurrently (see
:meth:`CrawlSession.collect`) or the crawl stalls once one of them is full.

Lifecycle::

    PROVISIONING -> RUNNING -> DRAINING -> CLOSED

:meth:`CrawlSession.cancel` moves a live session to CANCELLED instead of
CLOSED; it still drains and closes both streams.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import (
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    TypeVar,
)
from urllib.parse import urlsplit

from aiohttp import ClientError, ClientSession

from spider_stream.config import CrawlerConfig
from spider_stream.crawler.collector import Collector
from spider_stream.crawler.models import HTMLElement, Request, Response
from spider_stream.crawler.options import Configurator, apply_all, build_configurators
from spider_stream.dedup import StringFilter
from spider_stream.derive import derive_async
from spider_stream.errors import (
    CollectorError,
    ConfigurationError,
    MalformedSeedURLError,
    SuppressedTransportError,
    transport_error,
)
from spider_stream.logger import logger
from spider_stream.parser.other_sources import other_sources
from spider_stream.parser.robots_parser import robots_targets
from spider_stream.parser.sitemap_parser import sitemap_targets
from spider_stream.report import OutputType, Report, follow_ups, normalize
from spider_stream.utils import decode_chars, resolve_url

__all__ = ["Channel", "Phase", "SeedSource", "CrawlSession", "Crawler", "default_sources"]

T = TypeVar("T")

_CLOSED = object()


class Channel(Generic[T]):
    """Bounded multi-producer, single-consumer stream that can be closed."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, item: T) -> None:
        if self._closed:
            raise RuntimeError("send on closed channel")
        await self._queue.put(item)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # a full queue needs no marker: the consumer stops once it is drained
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]


class Phase(str, Enum):
    PROVISIONING = "provisioning"
    RUNNING = "running"
    DRAINING = "draining"
    CLOSED = "closed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SeedSource:
    """Supplementary seed provider: produces zero or more URLs for a seed."""

    name: str
    fetch: Callable[[ClientSession, str], Awaitable[List[str]]]


async def _historical_targets(session: ClientSession, target: str, include_subs: bool) -> List[str]:
    hostname = urlsplit(target).hostname
    if not hostname:
        return []
    return await other_sources(session, hostname, include_subs)


def default_sources(config: CrawlerConfig) -> List[SeedSource]:
    sources: List[SeedSource] = []
    if config.sitemap:
        sources.append(SeedSource("sitemap", sitemap_targets))
    if config.robots:
        sources.append(SeedSource("robots", robots_targets))
    if config.other_sources:
        sources.append(
            SeedSource("other-sources", partial(_historical_targets, include_subs=config.include_subs))
        )
    return sources


async def _iterate(sites: Iterable[str]) -> AsyncIterator[str]:
    for site in sites:
        yield site


async def _next_or_none(iterator: AsyncIterator[str]) -> Optional[str]:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return None


class CrawlSession:
    """One running crawl: two output channels plus cooperative cancellation."""

    def __init__(self, crawler: Crawler, seeds: AsyncIterable[str]) -> None:
        config = crawler.config
        self.reports: Channel[Report] = Channel(config.buffer_size)
        self.errors: Channel[Exception] = Channel(config.buffer_size)
        self.phase = Phase.PROVISIONING
        self._crawler = crawler
        self._seeds = seeds
        # emitted outputs, shared by every category
        self._seen = StringFilter()
        # URLs already handed to the collector
        self._submitted = StringFilter()
        self._done = asyncio.Event()
        self._discoveries: asyncio.Queue[Report] = asyncio.Queue(config.buffer_size)
        self._derivations: Set[asyncio.Task[None]] = set()
        self._collector: Optional[Collector] = None
        self._task = asyncio.get_running_loop().create_task(self._run())

    # ------------------------------------------------------------------ #
    # public API                                                         #
    # ------------------------------------------------------------------ #

    def cancel(self) -> None:
        """Stop crawling: hooks ignore new events and unsent requests are aborted."""
        if self.phase in (Phase.CLOSED, Phase.CANCELLED):
            return
        self._done.set()
        if self.phase in (Phase.RUNNING, Phase.DRAINING):
            self.phase = Phase.CANCELLED

    @property
    def cancelled(self) -> bool:
        return self._done.is_set()

    @property
    def requests_sent(self) -> int:
        return self._collector.requests_sent if self._collector is not None else 0

    async def wait(self) -> None:
        """Wait until both channels are closed."""
        await self._task

    async def collect(self) -> Tuple[List[Report], List[Exception]]:
        """Drain both channels concurrently until the session ends."""

        async def drain(channel: Channel[T]) -> List[T]:
            return [item async for item in channel]

        reports, errors = await asyncio.gather(drain(self.reports), drain(self.errors))
        await self.wait()
        return reports, errors

    # ------------------------------------------------------------------ #
    # lifecycle                                                          #
    # ------------------------------------------------------------------ #

    async def _run(self) -> None:
        try:
            try:
                collector = self._crawler.provision()
            except ConfigurationError as exc:
                logger.error("Crawl aborted: %s", exc)
                await self.errors.send(exc)
                return

            async with collector:
                self._collector = collector
                self._register_hooks(collector)
                self.phase = Phase.CANCELLED if self._done.is_set() else Phase.RUNNING
                consumer = asyncio.create_task(self._consume())
                try:
                    await self._feed()
                    if self.phase is Phase.RUNNING:
                        self.phase = Phase.DRAINING
                    await self._quiesce()
                finally:
                    consumer.cancel()
                    await asyncio.gather(consumer, return_exceptions=True)
        finally:
            for task in tuple(self._derivations):
                task.cancel()
            await asyncio.gather(*tuple(self._derivations), return_exceptions=True)
            if self.phase is not Phase.CANCELLED:
                self.phase = Phase.CLOSED
            self.reports.close()
            self.errors.close()

    async def _feed(self) -> None:
        iterator = self._seeds.__aiter__()
        while not self._done.is_set():
            site = await self._next_seed(iterator)
            if site is None:
                return
            await self._add_seed(site)

    async def _unless_cancelled(self, aw: Awaitable[T]) -> Optional[asyncio.Future[T]]:
        """Run *aw* until it finishes or the session is cancelled.

        Returns the finished future, or None when cancellation came first. In
        that case *aw* is cancelled and awaited, so it sends nothing more.
        """
        work = asyncio.ensure_future(aw)
        cancelled = asyncio.ensure_future(self._done.wait())
        try:
            await asyncio.wait({work, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (work, cancelled):
                if not fut.done():
                    fut.cancel()
        if self._done.is_set() or work.cancelled():
            await asyncio.gather(work, return_exceptions=True)
            return None
        return work

    async def _next_seed(self, iterator: AsyncIterator[str]) -> Optional[str]:
        """Next seed, or None once the input is exhausted or the session is cancelled."""
        next_site = await self._unless_cancelled(_next_or_none(iterator))
        return None if next_site is None else next_site.result()

    async def _add_seed(self, site: str) -> None:
        site = site.strip()
        if not site:
            return
        target = resolve_url(None, site)
        if not target:
            logger.warning("Skipping malformed seed: %s", site)
            await self.errors.send(MalformedSeedURLError(site))
            return
        self._submit(target, depth=1, seed=True)

        session = self._running_collector().session
        for source in self._crawler.sources:
            try:
                fetched = await self._unless_cancelled(source.fetch(session, target))
                if fetched is None:
                    return
                urls = fetched.result()
            except (ClientError, asyncio.TimeoutError, ValueError) as exc:
                logger.warning("Additional targets from %s failed for %s: %s", source.name, target, exc)
                continue
            for url in urls:
                resolved = resolve_url(target, url)
                if resolved:
                    self._submit(resolved, depth=1, source=source.name)

    async def _quiesce(self) -> None:
        """Wait for fetches, queued discoveries and derivations, until none spawns new work."""
        collector = self._running_collector()
        while True:
            await collector.wait()
            await self._discoveries.join()
            if self._derivations:
                await asyncio.gather(*tuple(self._derivations), return_exceptions=True)
                continue
            if collector.idle:
                return

    # ------------------------------------------------------------------ #
    # pipeline                                                           #
    # ------------------------------------------------------------------ #

    def _running_collector(self) -> Collector:
        if self._collector is None or self._collector.session is None:
            raise RuntimeError("session is not running")
        return self._collector

    def _submit(self, url: str, depth: int, source: str = "body", *, seed: bool = False) -> None:
        if self._done.is_set() or self._submitted.test_and_insert(url):
            return
        try:
            self._running_collector().visit(url, depth=depth, source=source)
        except CollectorError as exc:
            if seed:
                logger.warning("Seed not crawled: %s", exc)
            else:
                logger.debug("Not visiting: %s", exc)

    async def _consume(self) -> None:
        while True:
            report = await self._discoveries.get()
            try:
                await self._emit(report)
            finally:
                self._discoveries.task_done()

    async def _emit(self, report: Report) -> None:
        report = normalize(report)
        if not report.output or self._seen.test_and_insert(report.output):
            return
        await self.reports.send(report)
        for url in follow_ups(report.output_type, report.output):
            self._submit(url, depth=report.depth + 1)

    async def _discover(self, report: Report) -> None:
        await self._discoveries.put(report)

    def _schedule_derivation(self, report: Report) -> None:
        if not self._crawler.config.derive or not report.body:
            return
        task = asyncio.create_task(self._derive(report))
        self._derivations.add(task)
        task.add_done_callback(self._derivation_done)

    def _derivation_done(self, task: asyncio.Task[None]) -> None:
        self._derivations.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Derivation failed", exc_info=task.exception())

    async def _derive(self, report: Report) -> None:
        result = await derive_async(report)
        for derived in result.reports:
            await self._discover(derived)
        if result.error is not None:
            await self.errors.send(result.error)

    # ------------------------------------------------------------------ #
    # collector hooks                                                    #
    # ------------------------------------------------------------------ #

    def _register_hooks(self, c: Collector) -> None:
        c.on_html("[href]", self._on_href)
        c.on_html("form[action]", self._on_form)
        c.on_html('input[type="file"]', self._on_upload_form)
        c.on_html("[src]", self._on_src)
        c.on_response(self._on_response)
        c.on_error(self._on_error)
        c.on_request(self._on_request)

    def _element_report(self, e: HTMLElement, output: str, output_type: OutputType) -> Report:
        return Report(output, output_type, origin=e.request.url, depth=e.request.depth)

    async def _on_href(self, e: HTMLElement) -> None:
        if self._done.is_set():
            return
        await self._discover(self._element_report(e, e.attr("href"), OutputType.REFERENCE))

    async def _on_form(self, e: HTMLElement) -> None:
        if self._done.is_set():
            return
        await self._discover(self._element_report(e, e.request.url, OutputType.FORM))

    async def _on_upload_form(self, e: HTMLElement) -> None:
        if self._done.is_set():
            return
        await self._discover(self._element_report(e, e.request.url, OutputType.UPLOAD_FORM))

    async def _on_src(self, e: HTMLElement) -> None:
        if self._done.is_set():
            return
        await self._discover(self._element_report(e, e.attr("src"), OutputType.SCRIPT))

    def _page_report(self, response: Response, err: Optional[Exception] = None) -> Optional[Report]:
        body = decode_chars(response.text)
        if len(body) in self._crawler.config.filter_length:
            return None
        return Report(
            response.url,
            OutputType.PAGE,
            status_code=response.status,
            source=response.request.source,
            body=body,
            origin=response.url,
            err=err,
            length=len(body),
            depth=response.request.depth,
        )

    async def _on_response(self, response: Response) -> None:
        if self._done.is_set():
            return
        report = self._page_report(response)
        if report is not None:
            await self._discover(report)
            self._schedule_derivation(report)

    async def _on_error(self, response: Response, exc: BaseException) -> None:
        if self._done.is_set():
            return
        error = transport_error(response.url, response.status, exc)
        if isinstance(error, SuppressedTransportError):
            logger.debug("Ignoring %s", error)
            return
        if response.status:
            report = self._page_report(response, err=error)
            if report is not None:
                await self._discover(report)
                self._schedule_derivation(report)
        await self.errors.send(error)

    def _on_request(self, request: Request) -> None:
        if self._done.is_set():
            logger.info("Cancelling request, crawl is shutting down: %s", request.url)
            request.abort()
            return
        logger.info("New request: %s", request.url)


class Crawler:
    """Factory of crawl sessions sharing one configuration.

    Every session gets its own collector and its own dedup state, so several
    sessions may run side by side.
    """

    def __init__(
        self,
        config: Optional[CrawlerConfig] = None,
        *,
        configurators: Optional[Sequence[Configurator]] = None,
        sources: Optional[Sequence[SeedSource]] = None,
    ) -> None:
        self.config = config or CrawlerConfig()
        self.configurators: List[Configurator] = (
            list(configurators) if configurators is not None else build_configurators(self.config)
        )
        self.sources: List[SeedSource] = list(sources) if sources is not None else default_sources(self.config)

    def provision(self) -> Collector:
        """Build and configure a new collector; raises ConfigurationError."""
        return apply_all(Collector(max_depth=self.config.max_depth), self.configurators)

    def start(self, *sites: str) -> CrawlSession:
        """Crawl a fixed list of seeds."""
        return CrawlSession(self, _iterate(sites))

    def stream_crawl(self, sites: AsyncIterable[str]) -> CrawlSession:
        """Crawl seeds as they arrive; the input ends when *sites* is exhausted."""
        return CrawlSession(self, sites)
