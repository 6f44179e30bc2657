# spider_stream/report.py
"""
Discovery records produced by a crawl session.

A :class:`Report` is one artifact (URL, form, script, domain, bucket) with
its category and provenance. Reports are frozen: normalization and
derivation build new instances with :func:`dataclasses.replace`.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from spider_stream.utils import get_ext_type, resolve_url

__all__ = ("OutputType", "Report", "normalize", "follow_ups")


class OutputType(str, Enum):
    """Closed set of artifact categories, valued by their wire names."""

    REFERENCE = "ref"
    SCRIPT = "src"
    UPLOAD_FORM = "upload-form"
    FORM = "form"
    PAGE = "url"
    CLOUD_BUCKET = "aws-s3"
    DOMAIN = "domain"

    @property
    def is_url(self) -> bool:
        return self not in (OutputType.CLOUD_BUCKET, OutputType.DOMAIN)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Report:
    """One discovered artifact."""

    output: str
    output_type: OutputType
    status_code: int = 0
    source: str = "body"
    body: str = field(default="", repr=False, compare=False)
    origin: Optional[str] = None
    err: Optional[Exception] = field(default=None, compare=False)
    length: int = 0
    depth: int = 1

    def derived(self, output: str, output_type: OutputType) -> Report:
        """Child record sharing this record's provenance."""
        return replace(self, output=output, output_type=output_type, err=None, length=0)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form; ``body`` and ``err`` are left out."""
        return {
            "source": self.source,
            "type": self.output_type.value,
            "status": self.status_code,
            "output": self.output,
            "length": self.length,
            "input": self.origin,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def __str__(self) -> str:
        return f"[{self.output_type}] - [code-{self.status_code}] - {self.output}"


def _clean_domain(value: str) -> str:
    host = value.strip().lower()
    while host.startswith(("*.", ".")):
        host = host[1:] if host.startswith(".") else host[2:]
    return host.rstrip(".")


def _clean_bucket(value: str) -> str:
    return value.strip().lstrip("/").lower()


def normalize(report: Report) -> Report:
    """Canonicalize ``report.output`` for its category; ``""`` marks a drop."""
    if report.output_type.is_url:
        output = resolve_url(report.origin, report.output)
    elif report.output_type is OutputType.DOMAIN:
        output = _clean_domain(report.output)
    else:
        output = _clean_bucket(report.output)
    if output == report.output:
        return report
    return replace(report, output=output)


_CRAWLABLE_EXTENSIONS = (".js", ".xml", ".json")
_TERMINAL = frozenset(
    (
        OutputType.FORM,
        OutputType.UPLOAD_FORM,
        OutputType.PAGE,
        OutputType.CLOUD_BUCKET,
        OutputType.DOMAIN,
    )
)


def follow_ups(output_type: OutputType, output: str) -> List[str]:
    """URLs a freshly emitted record puts back into the frontier.

    Anchors are re-submitted as-is; scripts and data files are fetched too,
    and a ``.min.js`` asset additionally yields a guess at its un-minified
    source (a 404 on it is expected). Every other category is terminal.
    """
    if output_type is OutputType.REFERENCE:
        return [output]
    if output_type is OutputType.SCRIPT:
        if get_ext_type(output) not in _CRAWLABLE_EXTENSIONS:
            return []
        urls = [output]
        if ".min.js" in output:
            urls.append(output.replace(".min.js", ".js"))
        return urls
    if output_type in _TERMINAL:
        return []
    raise ValueError(f"unknown output type: {output_type!r}")
