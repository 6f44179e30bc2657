# spider_stream/dedup.py
"""
"Seen before" set shared by everything that runs inside one crawl session.
"""
from __future__ import annotations

import threading
from typing import Iterable, Set


class StringFilter:
    """Thread-safe set of strings with an atomic test-and-insert.

    There is no eviction: the filter grows for the lifetime of the session.
    """

    def __init__(self, initial: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._seen: Set[str] = set(initial)

    def test_and_insert(self, key: str) -> bool:
        """Return ``True`` if *key* was already present, otherwise insert it and return ``False``."""
        with self._lock:
            if key in self._seen:
                return True
            self._seen.add(key)
            return False

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._seen

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)
