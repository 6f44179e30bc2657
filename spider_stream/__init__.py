# spider_stream/__init__.py
"""
spider_stream package initializer.
Defines package version and exposes the crawl API.
"""
__version__ = "0.1.0"

from spider_stream.config import CrawlerConfig, load_config
from spider_stream.engine import Channel, Crawler, CrawlSession, Phase
from spider_stream.report import OutputType, Report

__all__ = [
    "__version__",
    "Channel",
    "Crawler",
    "CrawlSession",
    "CrawlerConfig",
    "OutputType",
    "Phase",
    "Report",
    "load_config",
]
