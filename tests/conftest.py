# File: tests/conftest.py
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

import pytest
import pytest_asyncio
from aiohttp import web

from spider_stream.config import CrawlerConfig

#: pages linked from /many, each one answered after SLOW_SLEEP seconds
SLOW_PAGES: int = 20
SLOW_SLEEP: float = 0.3

ROOT_HTML = """
<html><body>
  <a href="/page1">Page1</a>
  <a href="#top">Top</a>
  <a href="mailto:admin@example.com">Mail</a>
  <form action="/login"><input type="file" name="upload"></form>
  <script src="/static/app.min.js"></script>
  <img src="/logo.png">
  <p>assets live on backup-files.s3.amazonaws.com</p>
</body></html>
"""


def build_site() -> web.Application:
    """Small site exercising every discovery category and error status."""
    app = web.Application()

    async def root(_):
        return web.Response(text=ROOT_HTML, content_type="text/html")

    async def page1(_):
        return web.Response(text='<a href="/page2">Page2</a>', content_type="text/html")

    async def page2(_):
        return web.Response(text="<p>end</p>", content_type="text/html")

    async def script(_):
        return web.Response(text="var a = 1;", content_type="application/javascript")

    async def forbidden(_):
        return web.Response(status=403, text="<p>denied</p>", content_type="text/html")

    async def limited(_):
        return web.Response(status=429, text="slow down")

    async def broken(_):
        return web.Response(status=500, text="oops")

    async def many(_):
        links = "".join(f'<a href="/slow/{i}">S{i}</a>' for i in range(SLOW_PAGES))
        return web.Response(text=links, content_type="text/html")

    async def slow(request):
        await asyncio.sleep(SLOW_SLEEP)
        return web.Response(text=f"<p>slow {request.match_info['n']}</p>", content_type="text/html")

    async def echo_headers(request):
        rows = "".join(f"<p>{k}={v}</p>" for k, v in request.headers.items())
        return web.Response(text=rows, content_type="text/html")

    app.router.add_get("/", root)
    app.router.add_get("/page1", page1)
    app.router.add_get("/page2", page2)
    app.router.add_get("/static/app.min.js", script)
    app.router.add_get("/forbidden", forbidden)
    app.router.add_get("/limited", limited)
    app.router.add_get("/broken", broken)
    app.router.add_get("/many", many)
    app.router.add_get("/slow/{n}", slow)
    app.router.add_get("/headers", echo_headers)
    return app


@pytest_asyncio.fixture
async def serve(unused_tcp_port_factory) -> AsyncIterator[Callable[[web.Application], Awaitable[str]]]:
    """Return a starter: ``base = await serve(app)``; every server is cleaned up afterwards."""
    runners: list[web.AppRunner] = []

    async def start(app: web.Application) -> str:
        runner = web.AppRunner(app)
        await runner.setup()
        port = unused_tcp_port_factory()
        site = web.TCPSite(runner, "localhost", port)
        await site.start()
        runners.append(runner)
        return f"http://localhost:{port}"

    try:
        yield start
    finally:
        for runner in runners:
            await runner.cleanup()


@pytest_asyncio.fixture
async def site(serve) -> str:
    """Base URL of the test site built by :func:`build_site`."""
    return await serve(build_site())


@pytest.fixture()
def quiet_config() -> CrawlerConfig:
    """Two levels deep, literal UA, no derivation (localhost has no registrable domain)."""
    return CrawlerConfig(max_depth=2, user_agent="TestAgent/1.0", derive=False, timeout=5)


@pytest.fixture()
def slow_sleep() -> float:
    """Seconds every ``/slow/{n}`` page takes to answer."""
    return SLOW_SLEEP
