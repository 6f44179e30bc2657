# File: tests/test_options.py
import pytest

from spider_stream.config import DEFAULT_TIMEOUT, CrawlerConfig
from spider_stream.crawler import Collector, Request
from spider_stream.crawler.options import (
    DEFAULT_DISALLOWED_REGEX,
    apply_all,
    build_configurators,
    with_burp_file,
    with_cookie,
    with_default_disallowed_regexp,
    with_header,
    with_http_client,
    with_limit,
    with_regexp_filter,
    with_scope,
    with_user_agent,
    with_whitelist_domain,
)
from spider_stream.errors import ConfigurationError

RAW_REQUEST = (
    "GET /account HTTP/1.1\r\n"
    "Host: target.test\r\n"
    "Cookie: session=abc\r\n"
    "Authorization: Bearer t0ken\r\n"
    "Content-Length: 0\r\n"
    "\r\n"
)


def fire_request_hooks(collector: Collector, url: str = "https://target.test/") -> Request:
    request = Request(url)
    for hook in collector._request_hooks:
        hook(request)
    return request


def test_scope_and_whitelist_filters():
    c = apply_all(Collector(), [with_scope(r"/api/"), with_whitelist_domain("target.test")])
    assert c.is_allowed("https://target.test/api/users")
    assert c.is_allowed("http://target.test/")
    assert not c.is_allowed("https://other.test/home")


def test_whitelist_domain_is_escaped():
    c = apply_all(Collector(), [with_whitelist_domain("a.test")])
    assert not c.is_allowed("https://abtest.example/")


def test_default_disallowed_blocks_media():
    c = apply_all(Collector(), [with_default_disallowed_regexp()])
    assert not c.is_allowed("https://x.test/logo.PNG")
    assert not c.is_allowed("https://x.test/style.css?v=3")
    assert c.is_allowed("https://x.test/app.js")
    assert c.is_allowed("https://x.test/pngs/index.html")
    assert DEFAULT_DISALLOWED_REGEX in [p.pattern for p in c.disallowed_url_filters]


def test_bad_regex_is_configuration_error():
    with pytest.raises(ConfigurationError):
        apply_all(Collector(), [with_regexp_filter("(")])


def test_negative_limit_is_configuration_error():
    with pytest.raises(ConfigurationError):
        apply_all(Collector(), [with_limit(-1)])


def test_http_client_settings():
    c = apply_all(
        Collector(),
        [with_http_client(proxy="http://127.0.0.1:8080", timeout=0, no_redirect=True, verify_ssl=True)],
    )
    assert c.proxy == "http://127.0.0.1:8080"
    assert c.timeout == 10
    assert c.verify_ssl is True
    assert c.redirect_policy("http://x.test/a", "https://x.test/b")
    assert not c.redirect_policy("http://x.test/a", "https://evil.test/")


def test_invalid_proxy():
    with pytest.raises(ConfigurationError):
        apply_all(Collector(), [with_http_client(proxy="not a proxy")])


def test_header_parsing():
    c = apply_all(Collector(), [with_header("X-Test: 1", "X-Other:two")])
    request = fire_request_hooks(c)
    assert request.headers["X-Test"] == "1"
    assert request.headers["x-other"] == "two"


def test_invalid_header():
    with pytest.raises(ConfigurationError):
        apply_all(Collector(), [with_header("no colon here")])


def test_cookie():
    c = apply_all(Collector(), [with_cookie("a=b")])
    assert fire_request_hooks(c).headers["Cookie"] == "a=b"


def test_burp_file(tmp_path):
    raw = tmp_path / "request.txt"
    raw.write_bytes(RAW_REQUEST.encode())
    c = apply_all(Collector(), [with_burp_file(raw)])
    headers = fire_request_hooks(c).headers
    assert headers["Cookie"] == "session=abc"
    assert headers["Authorization"] == "Bearer t0ken"
    assert "Host" not in headers
    assert "Content-Length" not in headers


def test_burp_file_missing(tmp_path):
    with pytest.raises(ConfigurationError):
        apply_all(Collector(), [with_burp_file(tmp_path / "nope.txt")])


def test_burp_file_bad_request_line(tmp_path):
    raw = tmp_path / "request.txt"
    raw.write_text("garbage\r\n\r\n")
    with pytest.raises(ConfigurationError):
        apply_all(Collector(), [with_burp_file(raw)])


def test_literal_user_agent():
    c = apply_all(Collector(), [with_user_agent("Agent/1.0")])
    assert c.user_agent == "Agent/1.0"
    assert c._request_hooks == []


@pytest.mark.parametrize("mode", ["web", "mobi"])
def test_rotating_user_agent(mode):
    c = apply_all(Collector(), [with_user_agent(mode)])
    agent = fire_request_hooks(c).headers["User-Agent"]
    assert agent.startswith("Mozilla/5.0")
    if mode == "mobi":
        assert "Mobile" in agent or "iPad" in agent


def test_build_configurators_order():
    steps = build_configurators(CrawlerConfig())
    # default blocklist, limit, http client, user agent
    assert len(steps) == 4

    cfg = CrawlerConfig(
        scope=["a", "b"],
        whitelist_domain="x.test",
        disallowed=["c"],
        cookie="k=v",
        headers=["X: 1"],
    )
    assert len(build_configurators(cfg)) == 10


def test_build_configurators_applies_limit():
    c = apply_all(Collector(), build_configurators(CrawlerConfig(concurrent=3, delay=0.5, random_delay=1.0)))
    assert c.limit_rule.parallelism == 3
    assert c.limit_rule.delay == 0.5
    assert 0.5 <= c.limit_rule.wait_time() <= 1.5


@pytest.mark.parametrize("timeout, expected", [(0, DEFAULT_TIMEOUT), (3, 3)])
def test_build_configurators_timeout(timeout, expected):
    c = apply_all(Collector(), build_configurators(CrawlerConfig(timeout=timeout)))
    assert c.timeout == expected
