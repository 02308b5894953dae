"""
Thread-safe set of URLs already scheduled for a visit.
"""
from __future__ import annotations

import threading
from typing import Set


class VisitedSet:
    """Grows monotonically for the lifetime of one crawl run."""

    __slots__ = ("_urls", "_lock")

    def __init__(self) -> None:
        self._urls: Set[str] = set()
        self._lock = threading.Lock()

    def try_mark(self, url: str) -> bool:
        """Record ``url`` and return True, or return False if it was already recorded."""
        with self._lock:
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)
