# File: tests/test_collector.py
from __future__ import annotations

import asyncio
import re
import time

import pytest
from aiohttp import ClientError, web

from spider_stream.crawler import Collector, LimitRule
from spider_stream.crawler.options import apply_all, with_cookie, with_header, with_http_client
from spider_stream.errors import (
    AlreadyVisitedError,
    ForbiddenURLError,
    HTTPStatusError,
    InvalidURLError,
    MaxDepthError,
)


@pytest.mark.asyncio()
async def test_hooks_fire_in_order(site: str):
    events = []

    async with Collector(max_depth=1) as c:
        c.on_request(lambda r: events.append(("request", r.url)))
        c.on_response(lambda r: events.append(("response", r.status)))

        async def on_anchor(e):
            events.append(("href", e.attr("href")))

        c.on_html("a[href]", on_anchor)
        c.visit(f"{site}/page1")
        await c.wait()

    assert events == [
        ("request", f"{site}/page1"),
        ("response", 200),
        ("href", "/page2"),
    ]
    assert c.requests_sent == 1


@pytest.mark.asyncio()
async def test_html_hooks_skip_non_html(site: str):
    matched = []
    async with Collector() as c:
        c.on_html("*", matched.append)
        c.visit(f"{site}/static/app.min.js")
        await c.wait()
    assert matched == []


@pytest.mark.asyncio()
async def test_visit_refusals(site: str):
    async with Collector(max_depth=2) as c:
        c.disallowed_url_filters.append(re.compile(r"/forbidden"))
        with pytest.raises(InvalidURLError):
            c.visit("ftp://files.test/")
        with pytest.raises(InvalidURLError):
            c.visit("not a url")
        with pytest.raises(MaxDepthError):
            c.visit(f"{site}/page1", depth=3)
        with pytest.raises(ForbiddenURLError):
            c.visit(f"{site}/forbidden")
        c.visit(f"{site}/page2")
        with pytest.raises(AlreadyVisitedError):
            c.visit(f"{site}/page2")
        await c.wait()


def test_visit_requires_open_collector():
    with pytest.raises(RuntimeError):
        Collector().visit("https://x.test/")


@pytest.mark.asyncio()
async def test_error_status_goes_to_error_hooks(site: str):
    errors = []
    responses = []
    async with Collector() as c:
        c.on_response(responses.append)
        c.on_error(lambda r, exc: errors.append((r.status, r.text, exc)))
        c.visit(f"{site}/forbidden")
        await c.wait()

    assert responses == []
    ((status, body, exc),) = errors
    assert status == 403
    assert "denied" in body
    assert isinstance(exc, HTTPStatusError)
    assert exc.status_code == 403


@pytest.mark.asyncio()
async def test_transport_failure_has_status_zero(unused_tcp_port_factory):
    errors = []
    async with Collector() as c:
        c.on_error(lambda r, exc: errors.append((r.status, exc)))
        c.visit(f"http://localhost:{unused_tcp_port_factory()}/")
        await c.wait()

    ((status, exc),) = errors
    assert status == 0
    assert isinstance(exc, (ClientError, asyncio.TimeoutError))


@pytest.mark.asyncio()
async def test_aborted_request_is_not_sent(site: str):
    responses = []
    async with Collector() as c:
        c.on_request(lambda r: r.abort())
        c.on_response(responses.append)
        c.visit(f"{site}/page1")
        await c.wait()
    assert responses == []
    assert c.requests_sent == 0


@pytest.mark.asyncio()
async def test_parallelism_is_bounded(site: str, slow_sleep: float):
    c = Collector()
    c.limit(LimitRule(parallelism=2))
    async with c:
        start = time.perf_counter()
        for i in range(4):
            c.visit(f"{site}/slow/{i}")
        await c.wait()
        elapsed = time.perf_counter() - start

    # four slow pages through two slots take at least two rounds
    assert elapsed >= slow_sleep * 2 * 0.9


def test_negative_limit_rejected():
    with pytest.raises(ValueError):
        Collector().limit(LimitRule(delay=-1))


@pytest.mark.asyncio()
async def test_configured_headers_reach_server(site: str):
    c = apply_all(Collector(user_agent="Agent/1.0"), [with_header("X-Test: 1"), with_cookie("a=b")])
    bodies = []
    async with c:
        c.on_response(lambda r: bodies.append(r.text))
        c.visit(f"{site}/headers")
        await c.wait()

    (body,) = bodies
    assert "X-Test=1" in body
    assert "Cookie=a=b" in body
    assert "User-Agent=Agent/1.0" in body


@pytest.fixture()
def redirect_app() -> web.Application:
    app = web.Application()

    async def hop(_):
        raise web.HTTPFound("/final")

    async def away(request):
        # same server, different host name
        raise web.HTTPFound(f"http://127.0.0.1:{request.url.port}/final")

    async def final(_):
        return web.Response(text="<p>final</p>", content_type="text/html")

    app.router.add_get("/hop", hop)
    app.router.add_get("/away", away)
    app.router.add_get("/final", final)
    return app


@pytest.mark.asyncio()
async def test_same_host_redirect_policy(serve, redirect_app):
    base = await serve(redirect_app)
    seen = {}
    c = apply_all(Collector(), [with_http_client(no_redirect=True)])
    async with c:
        c.on_response(lambda r: seen.setdefault(r.request.depth, (r.status, r.url)))
        c.visit(f"{base}/hop", depth=1)
        c.visit(f"{base}/away", depth=2)
        await c.wait()

    assert seen[1] == (200, f"{base}/final")
    # cross-host redirect is not followed, the 302 itself is the response
    assert seen[2] == (302, f"{base}/away")


@pytest.mark.asyncio()
async def test_redirects_followed_without_policy(serve, redirect_app):
    base = await serve(redirect_app)
    urls = []
    async with Collector() as c:
        c.on_response(lambda r: urls.append((r.status, r.url)))
        c.visit(f"{base}/away")
        await c.wait()
    assert urls == [(200, f"http://127.0.0.1:{base.rsplit(':', 1)[1]}/final")]
