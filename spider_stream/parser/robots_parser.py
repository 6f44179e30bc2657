# File: spider_stream/parser/robots_parser.py
"""spider_stream.parser.robots_parser: robots.txt parsing and extraction of crawl targets."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from aiohttp import ClientSession

from spider_stream.logger import logger
from spider_stream.utils import base_url, remove_duplicates, resolve_url


@dataclass
class RobotsRules:
    """Every Allow/Disallow path of a robots.txt, whatever user agent it applies to."""

    allowed: List[str] = field(default_factory=list)
    disallowed: List[str] = field(default_factory=list)

    @property
    def paths(self) -> List[str]:
        return remove_duplicates(self.allowed + self.disallowed)


def parse_robots(text: str) -> RobotsRules:
    """Parse robots.txt content.

    Disallowed paths are just as interesting as allowed ones when the goal
    is discovery, so the user-agent grouping is ignored and empty values
    (``Disallow:`` meaning "allow all") are skipped.
    """
    rules = RobotsRules()
    for directive, value in _prepare_lines(text):
        if not value:
            continue
        if directive == "allow":
            rules.allowed.append(value)
        elif directive == "disallow":
            rules.disallowed.append(value)
    return rules


def _prepare_lines(text: str) -> List[Tuple[str, str]]:
    """Strip comments and split every line into (directive, value)."""
    lines: List[Tuple[str, str]] = []
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        key, val = (part.strip() for part in line.split(":", 1))
        lines.append((key.lower(), val))
    return lines


async def robots_targets(session: ClientSession, target: str) -> List[str]:
    """Fetch ``/robots.txt`` of *target* and resolve its paths into absolute URLs.

    Transport errors propagate; the caller decides how loud to be about them.
    """
    root = base_url(target)
    robots_url = root + "/robots.txt"
    async with session.get(robots_url) as resp:
        if resp.status != 200:
            logger.debug("robots.txt %s -> HTTP %s", robots_url, resp.status)
            return []
        text = await resp.text(errors="replace")
    logger.info("Found robots.txt: %s", robots_url)
    urls = (resolve_url(root + "/", path) for path in parse_robots(text).paths)
    return [u for u in urls if u]
