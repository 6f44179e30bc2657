# File: spider_stream/parser/sitemap_parser.py
"""spider_stream.parser.sitemap_parser: sitemap.xml parsing and discovery of page URLs."""

from __future__ import annotations

from typing import List

from aiohttp import ClientError, ClientSession
from lxml import etree

from spider_stream.logger import logger
from spider_stream.utils import base_url, remove_duplicates

SITEMAP_PATHS = (
    "/sitemap.xml",
    "/sitemap_news.xml",
    "/sitemap_index.xml",
    "/sitemap-index.xml",
    "/sitemapindex.xml",
    "/sitemap-news.xml",
    "/post-sitemap.xml",
    "/page-sitemap.xml",
    "/portfolio-sitemap.xml",
    "/home_slider-sitemap.xml",
    "/category-sitemap.xml",
    "/author-sitemap.xml",
)


def parse_sitemap(xml_content: str) -> List[str]:
    """Parse sitemap XML and return the URLs found in its ``<loc>`` tags.

    Args:
        xml_content: content of a sitemap.xml (urlset or sitemapindex).

    Returns:
        List of URLs; empty when the document is not XML at all.
    """
    parser = etree.XMLParser(ns_clean=True, recover=True)
    try:
        root = etree.fromstring(xml_content.encode("utf-8"), parser=parser)
    except etree.XMLSyntaxError:
        return []
    if root is None:
        return []
    locs = root.findall(".//{*}loc")
    return [loc.text.strip() for loc in locs if loc.text]


async def sitemap_targets(session: ClientSession, target: str) -> List[str]:
    """Probe the well-known sitemap locations of *target* and collect their URLs."""
    root = base_url(target)
    found: List[str] = []
    for path in SITEMAP_PATHS:
        url = root + path
        try:
            async with session.get(url) as resp:
                if resp.status != 200:
                    continue
                text = await resp.text(errors="replace")
        except ClientError as exc:
            logger.debug("Sitemap %s unavailable: %s", url, exc)
            continue
        urls = parse_sitemap(text)
        if urls:
            logger.info("Found sitemap: %s (%d URLs)", url, len(urls))
        found.extend(urls)
    return remove_duplicates(found)
