# spider_stream/errors.py
"""
Exception hierarchy for spider_stream.

Fatal errors (:class:`ConfigurationError`) end a crawl session before any
request is sent. Every other error is local: it is put on the session's
error stream while the crawl carries on.
"""
from __future__ import annotations

from typing import Optional

__all__ = (
    "SpiderStreamError",
    "ConfigurationError",
    "MalformedSeedURLError",
    "DomainResolutionError",
    "TransportError",
    "SuppressedTransportError",
    "ReportedTransportError",
    "CollectorError",
    "InvalidURLError",
    "ForbiddenURLError",
    "AlreadyVisitedError",
    "MaxDepthError",
    "HTTPStatusError",
    "transport_error",
    "is_suppressed_status",
)


class SpiderStreamError(Exception):
    """Base class for every error raised by spider_stream."""


class ConfigurationError(SpiderStreamError):
    """A collector configuration step failed; the session is aborted."""


class MalformedSeedURLError(SpiderStreamError, ValueError):
    """A seed URL could not be parsed into an absolute http(s) URL."""

    def __init__(self, url: str) -> None:
        super().__init__(f"malformed seed URL: {url!r}")
        self.url = url


class DomainResolutionError(SpiderStreamError):
    """The registrable domain of a host could not be computed."""

    def __init__(self, hostname: str, reason: str) -> None:
        super().__init__(f"cannot compute base domain of {hostname!r}: {reason}")
        self.hostname = hostname


class TransportError(SpiderStreamError):
    """A fetch failed, either at the transport level or with an HTTP error status."""

    def __init__(self, url: str, status_code: int = 0, cause: Optional[BaseException] = None) -> None:
        detail = f"HTTP {status_code}" if status_code else "request failed"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(f"{url}: {detail}")
        self.url = url
        self.status_code = status_code
        self.cause = cause


class SuppressedTransportError(TransportError):
    """Expected noise (404, 429, 5xx); never put on the error stream."""


class ReportedTransportError(TransportError):
    """Any other fetch failure; forwarded on the error stream."""


class HTTPStatusError(SpiderStreamError):
    """Raised by the collector for responses with a status >= 400."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"unexpected status {status_code}")
        self.status_code = status_code


# --------------------------------------------------------------------------- #
# Collector visit refusals                                                    #
# --------------------------------------------------------------------------- #


class CollectorError(SpiderStreamError):
    """The collector refused to schedule a URL."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message}: {url}")
        self.url = url


class InvalidURLError(CollectorError):
    def __init__(self, url: str) -> None:
        super().__init__(url, "invalid URL")


class ForbiddenURLError(CollectorError):
    def __init__(self, url: str) -> None:
        super().__init__(url, "URL filtered out")


class AlreadyVisitedError(CollectorError):
    def __init__(self, url: str) -> None:
        super().__init__(url, "URL already visited")


class MaxDepthError(CollectorError):
    def __init__(self, url: str, depth: int) -> None:
        super().__init__(url, f"max depth exceeded ({depth})")
        self.depth = depth


def is_suppressed_status(status_code: int) -> bool:
    """404, 429 and any 5xx are treated as expected noise."""
    return status_code in (404, 429) or status_code >= 500


def transport_error(url: str, status_code: int, cause: Optional[BaseException] = None) -> TransportError:
    """Classify a failed fetch into its suppressed or reported flavour."""
    if is_suppressed_status(status_code):
        return SuppressedTransportError(url, status_code, cause)
    return ReportedTransportError(url, status_code, cause)
