"""spider_stream.parser: supplementary seed sources (sitemaps, robots.txt, web archives)."""

from .other_sources import other_sources
from .robots_parser import RobotsRules, parse_robots, robots_targets
from .sitemap_parser import parse_sitemap, sitemap_targets

__all__ = [
    "RobotsRules",
    "parse_robots",
    "robots_targets",
    "parse_sitemap",
    "sitemap_targets",
    "other_sources",
]
