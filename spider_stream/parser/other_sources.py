# File: spider_stream/parser/other_sources.py
"""spider_stream.parser.other_sources: previously observed URLs from public web archives.

Providers are queried concurrently; a provider that fails is logged and
skipped, the others still contribute.
"""

from __future__ import annotations

import asyncio
import json
from typing import Awaitable, Callable, List

from aiohttp import ClientSession

from spider_stream.logger import logger
from spider_stream.utils import remove_duplicates

WAYBACK_URL = "http://web.archive.org/cdx/search/cdx"
COMMONCRAWL_INDEX_URL = "http://index.commoncrawl.org/collinfo.json"
OTX_URL = "https://otx.alienvault.com/api/v1/indicators/hostname/{domain}/url_list"
OTX_MAX_PAGES = 5

Provider = Callable[[ClientSession, str, bool], Awaitable[List[str]]]


async def wayback_urls(session: ClientSession, domain: str, include_subs: bool) -> List[str]:
    """URLs from the Wayback Machine CDX API."""
    prefix = "*." if include_subs else ""
    params = {"url": f"{prefix}{domain}/*", "output": "json", "fl": "original", "collapse": "urlkey"}
    async with session.get(WAYBACK_URL, params=params) as resp:
        resp.raise_for_status()
        rows = await resp.json(content_type=None)
    # first row is the header: ["original"]
    return [row[0] for row in (rows or [])[1:] if row]


async def commoncrawl_urls(session: ClientSession, domain: str, include_subs: bool) -> List[str]:
    """URLs from the most recent Common Crawl index."""
    async with session.get(COMMONCRAWL_INDEX_URL) as resp:
        resp.raise_for_status()
        indexes = await resp.json(content_type=None)
    if not indexes:
        return []
    prefix = "*." if include_subs else ""
    params = {"url": f"{prefix}{domain}/*", "output": "json"}
    async with session.get(indexes[0]["cdx-api"], params=params) as resp:
        if resp.status == 404:
            return []
        resp.raise_for_status()
        text = await resp.text()
    urls: List[str] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        url = json.loads(line).get("url")
        if url:
            urls.append(url)
    return urls


async def otx_urls(session: ClientSession, domain: str, include_subs: bool) -> List[str]:
    """URLs from AlienVault OTX; the API has no subdomain wildcard, so *include_subs* is unused."""
    urls: List[str] = []
    endpoint = OTX_URL.format(domain=domain)
    for page in range(1, OTX_MAX_PAGES + 1):
        async with session.get(endpoint, params={"limit": "50", "page": str(page)}) as resp:
            resp.raise_for_status()
            data = await resp.json(content_type=None)
        urls.extend(entry["url"] for entry in data.get("url_list", []) if entry.get("url"))
        if not data.get("has_next"):
            break
    return urls


PROVIDERS: List[Provider] = [wayback_urls, commoncrawl_urls, otx_urls]


async def other_sources(session: ClientSession, domain: str, include_subs: bool = False) -> List[str]:
    """Query every provider for *domain* and merge their URLs."""
    results = await asyncio.gather(
        *(provider(session, domain, include_subs) for provider in PROVIDERS),
        return_exceptions=True,
    )
    urls: List[str] = []
    for provider, result in zip(PROVIDERS, results):
        if isinstance(result, BaseException):
            logger.warning("Historical URL source %s failed for %s: %s", provider.__name__, domain, result)
            continue
        urls.extend(u.strip() for u in result if u and u.strip())
    return remove_duplicates(urls)
