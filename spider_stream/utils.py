# File: spider_stream/utils.py
"""spider_stream.utils: URL resolution and small text helpers shared by the pipeline."""

from __future__ import annotations

import posixpath
from typing import Iterable, List, Optional, Sequence
from urllib.parse import unquote, urljoin, urlsplit, urlunsplit

__all__: Sequence[str] = (
    "resolve_url",
    "get_ext_type",
    "decode_chars",
    "base_url",
    "remove_duplicates",
)

_DROPPED_SCHEMES = ("javascript:", "mailto:", "tel:")
_WEB_SCHEMES = ("http", "https")


def resolve_url(origin: Optional[str], raw: str) -> str:
    """Resolve *raw* against *origin* into an absolute http(s) URL.

    Returns ``""`` when the reference must be dropped: script/mail/phone
    links, pure fragments, non-web schemes and anything that fails to parse.
    The result is a fixed point: resolving it again yields the same string.
    """
    ref = raw.strip()
    if not ref or ref.startswith("#") or ref.lower().startswith(_DROPPED_SCHEMES):
        return ""
    try:
        parsed = urlsplit(ref)
        if parsed.scheme:
            absolute = ref
        elif origin:
            absolute = urljoin(origin, ref)
        else:
            return ""
        result = urlsplit(absolute)
        # accessing .port validates it
        result.port
    except ValueError:
        return ""
    if result.scheme.lower() not in _WEB_SCHEMES or not result.hostname:
        return ""
    return urlunsplit((result.scheme.lower(), result.netloc.lower(), result.path, result.query, ""))


def get_ext_type(url: str) -> str:
    """Return the lower-cased file extension of the URL path (``".js"``), or ``""``."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return ""
    return posixpath.splitext(path)[1].lower()


def decode_chars(text: str) -> str:
    """Undo percent-encoding and the JSON escapes commonly found in page bodies."""
    text = unquote(text)
    return text.replace("\\u002f", "/").replace("\\u002F", "/").replace("\\u0026", "&")


def base_url(url: str) -> str:
    """Return ``scheme://netloc`` of *url*."""
    parsed = urlsplit(url)
    return urlunsplit((parsed.scheme, parsed.netloc, "", "", ""))


def remove_duplicates(items: Iterable[str]) -> List[str]:
    """Drop duplicates while keeping first-seen order."""
    return list(dict.fromkeys(items))
