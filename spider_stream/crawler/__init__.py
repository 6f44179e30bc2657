"""spider_stream.crawler: the traversal engine and its configuration steps."""

from .collector import DEFAULT_USER_AGENT, Collector, LimitRule
from .models import HTMLElement, Request, Response

__all__ = ["Collector", "LimitRule", "DEFAULT_USER_AGENT", "HTMLElement", "Request", "Response"]
