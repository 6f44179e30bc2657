# spider_stream/crawler/models.py
"""
Data models passed to collector hooks.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from bs4.element import Tag
from multidict import CIMultiDict


@dataclass(slots=True)
class Request:
    """An outbound request; hooks may edit headers or abort it before it is sent."""

    url: str
    depth: int = 1
    source: str = "body"
    headers: CIMultiDict[str] = field(default_factory=CIMultiDict)
    aborted: bool = False

    def abort(self) -> None:
        self.aborted = True


@dataclass(slots=True)
class Response:
    """Result of a fetch. ``status`` is 0 when no HTTP response was received."""

    request: Request
    status: int = 0
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    charset: Optional[str] = None

    @property
    def url(self) -> str:
        return self.request.url

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "").lower()

    @property
    def is_html(self) -> bool:
        return "html" in self.content_type

    @property
    def text(self) -> str:
        try:
            return self.body.decode(self.charset or "utf-8", errors="replace")
        except LookupError:
            # unknown charset announced by the server
            return self.body.decode("utf-8", errors="replace")


@dataclass(slots=True)
class HTMLElement:
    """An element matched by an ``on_html`` selector."""

    tag: Tag
    request: Request
    response: Response

    def attr(self, name: str) -> str:
        """Attribute value, or ``""`` when absent."""
        value = self.tag.get(name)
        if value is None:
            return ""
        if isinstance(value, list):
            return " ".join(value)
        return str(value)
