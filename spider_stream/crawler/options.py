# spider_stream/crawler/options.py
"""
Collector configuration steps.

Each ``with_*`` function returns a *configurator*: a callable that mutates a
:class:`~spider_stream.crawler.collector.Collector` or raises. A crawl
session applies its configurators in order while provisioning; the first
one that raises aborts the session with a ConfigurationError.
"""
from __future__ import annotations

import random
import re
from http.client import parse_headers
from io import BytesIO
from pathlib import Path
from typing import Callable, List, Sequence, Union
from urllib.parse import urlsplit

from spider_stream.config import DEFAULT_TIMEOUT, CrawlerConfig
from spider_stream.crawler.collector import Collector, LimitRule
from spider_stream.crawler.models import Request
from spider_stream.errors import ConfigurationError
from spider_stream.logger import logger

Configurator = Callable[[Collector], None]

__all__ = (
    "Configurator",
    "DEFAULT_DISALLOWED_REGEX",
    "with_regexp_filter",
    "with_scope",
    "with_whitelist_domain",
    "with_disallowed_regex_filter",
    "with_default_disallowed_regexp",
    "with_limit",
    "with_http_client",
    "with_burp_file",
    "with_cookie",
    "with_header",
    "with_user_agent",
    "build_configurators",
    "apply_all",
)

DEFAULT_DISALLOWED_REGEX = (
    r"(?i)\.(png|apng|bmp|gif|ico|cur|jpg|jpeg|jfif|pjp|pjpeg|svg|tif|tiff|webp|xbm|3gp|aac|flac|mpg|mpeg"
    r"|mp3|mp4|m4a|m4v|m4p|oga|ogg|ogv|mov|wav|webm|eot|woff|woff2|ttf|otf|css)(?:\?|#|$)"
)

_WEB_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36 Edg/124.0.2478.51",
)

_MOBILE_AGENTS = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.4 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Mobile Safari/537.36",
    "Mozilla/5.0 (Linux; Android 13; SM-S918B) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Mobile Safari/537.36",
    "Mozilla/5.0 (iPad; CPU OS 17_4 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.4 Mobile/15E148 Safari/604.1",
)

# Headers that describe the imported request itself rather than the client.
_SKIPPED_RAW_HEADERS = frozenset(("host", "content-length", "connection"))


def _compile(pattern: str, kind: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f"failed to compile {kind} filter {pattern!r}: {exc}") from exc


def with_regexp_filter(pattern: str) -> Configurator:
    """Allow-list: once any is set, a URL must match at least one."""
    def configure(c: Collector) -> None:
        c.url_filters.append(_compile(pattern, "regex"))
    return configure


def with_scope(scope: str) -> Configurator:
    return with_regexp_filter(scope)


def with_whitelist_domain(domain: str) -> Configurator:
    return with_regexp_filter("http(s)?://" + re.escape(domain))


def with_disallowed_regex_filter(pattern: str) -> Configurator:
    def configure(c: Collector) -> None:
        c.disallowed_url_filters.append(_compile(pattern, "disallowed regex"))
    return configure


def with_default_disallowed_regexp() -> Configurator:
    return with_disallowed_regex_filter(DEFAULT_DISALLOWED_REGEX)


def with_limit(parallelism: int, delay: float = 0.0, random_delay: float = 0.0) -> Configurator:
    def configure(c: Collector) -> None:
        try:
            c.limit(LimitRule(parallelism=parallelism, delay=delay, random_delay=random_delay))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
    return configure


def _same_host_redirect(current: str, target: str) -> bool:
    # http -> https upgrades and same-host hops only
    return urlsplit(current).hostname == urlsplit(target).hostname


def with_http_client(
    *,
    proxy: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    no_redirect: bool = False,
    verify_ssl: bool = False,
) -> Configurator:
    """Transport settings: proxy, timeout (0 → DEFAULT_TIMEOUT), redirect policy, TLS checks."""
    def configure(c: Collector) -> None:
        if proxy:
            parsed = urlsplit(proxy)
            if parsed.scheme not in ("http", "https") or not parsed.hostname:
                raise ConfigurationError(f"invalid proxy URL: {proxy!r}")
            logger.info("Proxy: %s", proxy)
            c.proxy = proxy
        if timeout == 0:
            logger.info("Timeout is 0, falling back to %d seconds", DEFAULT_TIMEOUT)
            c.timeout = DEFAULT_TIMEOUT
        else:
            c.timeout = timeout
        if no_redirect:
            c.redirect_policy = _same_host_redirect
        c.verify_ssl = verify_ssl
    return configure


def with_burp_file(path: Union[str, Path]) -> Configurator:
    """Replay headers and cookies of a raw HTTP request saved to *path*."""
    def configure(c: Collector) -> None:
        try:
            raw = Path(path).read_bytes()
        except OSError as exc:
            raise ConfigurationError(f"failed to open raw request file {path}: {exc}") from exc
        request_line, _, rest = raw.replace(b"\r\n", b"\n").partition(b"\n")
        if len(request_line.split()) != 3:
            raise ConfigurationError(f"failed to parse raw request in {path}: bad request line")
        message = parse_headers(BytesIO(rest.replace(b"\n", b"\r\n")))
        headers = [
            (k.strip(), v.strip()) for k, v in message.items() if k.strip().lower() not in _SKIPPED_RAW_HEADERS
        ]

        def apply(r: Request) -> None:
            for key, value in headers:
                r.headers[key] = value

        c.on_request(apply)
    return configure


def with_cookie(cookie: str) -> Configurator:
    def configure(c: Collector) -> None:
        c.on_request(lambda r: r.headers.add("Cookie", cookie))
    return configure


def with_header(*headers: str) -> Configurator:
    """Headers given as ``"Name: value"`` strings."""
    def configure(c: Collector) -> None:
        parsed = []
        for header in headers:
            key, sep, value = header.partition(":")
            if not sep or not key.strip():
                raise ConfigurationError(f"invalid header {header!r}, expected 'Name: value'")
            parsed.append((key.strip(), value.strip()))

        def apply(r: Request) -> None:
            for key, value in parsed:
                r.headers[key] = value

        c.on_request(apply)
    return configure


def with_user_agent(user_agent: str) -> Configurator:
    """``"web"`` / ``"mobi"`` rotate random desktop / mobile agents, anything else is used verbatim."""
    def configure(c: Collector) -> None:
        mode = user_agent.lower()
        if mode in ("web", "mobi"):
            pool = _WEB_AGENTS if mode == "web" else _MOBILE_AGENTS

            def rotate(r: Request) -> None:
                r.headers["User-Agent"] = random.choice(pool)

            c.on_request(rotate)
        else:
            c.user_agent = user_agent
    return configure


def build_configurators(config: CrawlerConfig) -> List[Configurator]:
    """Ordered configuration steps for *config*."""
    steps: List[Configurator] = [with_scope(s) for s in config.scope]
    if config.whitelist_domain:
        steps.append(with_whitelist_domain(config.whitelist_domain))
    if config.default_disallowed:
        steps.append(with_default_disallowed_regexp())
    steps.extend(with_disallowed_regex_filter(d) for d in config.disallowed)
    steps.append(with_limit(config.concurrent, config.delay, config.random_delay))
    steps.append(
        with_http_client(
            proxy=config.proxy,
            timeout=config.effective_timeout,
            no_redirect=config.no_redirect,
            verify_ssl=config.verify_ssl,
        )
    )
    if config.burp_file is not None:
        steps.append(with_burp_file(config.burp_file))
    if config.cookie:
        steps.append(with_cookie(config.cookie))
    if config.headers:
        steps.append(with_header(*config.headers))
    steps.append(with_user_agent(config.user_agent))
    return steps


def apply_all(collector: Collector, steps: Sequence[Configurator]) -> Collector:
    """Apply *steps* in order; any failure surfaces as ConfigurationError."""
    for step in steps:
        try:
            step(collector)
        except ConfigurationError:
            raise
        except Exception as exc:
            raise ConfigurationError(f"failed to configure collector: {exc}") from exc
    return collector
