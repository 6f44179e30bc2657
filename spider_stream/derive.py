# spider_stream/derive.py
"""
Derivation of secondary artifacts from fetched page bodies.

Two scans run over the body of a :class:`~spider_stream.report.Report`:

* subdomains of the page's registrable domain (``old.example.com`` found on
  ``www.example.com``), emitted as ``OutputType.DOMAIN``;
* AWS S3 bucket endpoints, emitted as ``OutputType.CLOUD_BUCKET``.

The subdomain scan needs the public-suffix-aware base domain of the page
host. When it cannot be computed the scan fails with
:class:`~spider_stream.errors.DomainResolutionError`, but the bucket scan
still runs and :func:`derive` returns its results together with the error.
"""
from __future__ import annotations

import asyncio
import re
from functools import lru_cache
from typing import List, NamedTuple, Optional
from urllib.parse import urlsplit

import tldextract

from spider_stream.errors import DomainResolutionError
from spider_stream.report import OutputType, Report
from spider_stream.utils import remove_duplicates

__all__ = (
    "DerivationResult",
    "base_domain",
    "find_subdomains",
    "find_buckets",
    "subdomains",
    "cloud_buckets",
    "derive",
    "derive_async",
)

# Bundled public suffix snapshot, no network fetch at runtime.
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())

_LABELS = r"(?:[a-z0-9_](?:[a-z0-9_-]{0,61}[a-z0-9])?\.)+"

_S3_RE = re.compile(
    r"[a-z0-9.-]+\.s3\.amazonaws\.com"
    r"|[a-z0-9.-]+\.s3[.-][a-z0-9-]+\.amazonaws\.com"
    r"|[a-z0-9.-]+\.s3-website[.-](?:eu|ap|us|ca|sa|cn)[a-z0-9-]*"
    r"|//s3\.amazonaws\.com/[a-z0-9._-]+"
    r"|//s3[.-][a-z0-9-]+\.amazonaws\.com/[a-z0-9._-]+"
    r"|s3://[a-z0-9._-]+",
    re.IGNORECASE,
)


class DerivationResult(NamedTuple):
    """Derived reports, plus the error that cut the subdomain scan short (if any)."""

    reports: List[Report]
    error: Optional[DomainResolutionError] = None


def base_domain(hostname: str) -> str:
    """Return the registrable domain (eTLD+1) of *hostname*."""
    if not hostname:
        raise DomainResolutionError(hostname, "empty host")
    parts = _EXTRACT(hostname)
    if not parts.suffix:
        raise DomainResolutionError(hostname, "unknown public suffix or IP address")
    if not parts.domain:
        raise DomainResolutionError(hostname, "host is a public suffix")
    return f"{parts.domain}.{parts.suffix}".lower()


@lru_cache(maxsize=256)
def _subdomain_re(domain: str) -> re.Pattern[str]:
    # the host must end right after the base domain, not continue into another label
    return re.compile(_LABELS + re.escape(domain) + r"(?!\.?[a-z0-9_-])", re.IGNORECASE)


def find_subdomains(text: str, domain: str) -> List[str]:
    """Host names in *text* that are strict subdomains of *domain*."""
    return remove_duplicates(m.group(0).lower() for m in _subdomain_re(domain).finditer(text))


def find_buckets(text: str) -> List[str]:
    """S3 bucket endpoints referenced in *text*."""
    return remove_duplicates(m.group(0).lstrip("/") for m in _S3_RE.finditer(text))


def subdomains(report: Report) -> List[Report]:
    """DOMAIN reports for each subdomain of the page's base domain found in its body."""
    if not report.body:
        return []
    hostname = urlsplit(report.origin or "").hostname or ""
    domain = base_domain(hostname)
    return [report.derived(host, OutputType.DOMAIN) for host in find_subdomains(report.body, domain)]


def cloud_buckets(report: Report) -> List[Report]:
    """CLOUD_BUCKET reports for each bucket endpoint found in the body."""
    if not report.body:
        return []
    return [report.derived(bucket, OutputType.CLOUD_BUCKET) for bucket in find_buckets(report.body)]


def derive(report: Report) -> DerivationResult:
    """Run both scans; a failed subdomain scan never hides bucket results."""
    error: Optional[DomainResolutionError] = None
    try:
        domains = subdomains(report)
    except DomainResolutionError as exc:
        error = exc
        domains = []
    return DerivationResult(domains + cloud_buckets(report), error)


async def derive_async(report: Report) -> DerivationResult:
    """:func:`derive` in a worker thread so page fetching keeps going meanwhile."""
    return await asyncio.to_thread(derive, report)
