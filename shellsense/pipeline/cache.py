"""Suggestion cache keyed by context fingerprint, bounded by age and size."""

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from shellsense.pipeline.models import CommandSuggestion


@dataclass
class CacheEntry:
    suggestions: List[CommandSuggestion]
    timestamp: float


class SuggestionCache:
    """
    TTL + keep-most-recent-N cache.

    Never holds more than max_entries after a put, and never returns an
    entry older than ttl_seconds.
    """

    def __init__(self, ttl_seconds: float = 300.0, max_entries: int = 50,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[List[CommandSuggestion]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._entries[key]
            return None
        return list(entry.suggestions)

    def put(self, key: str, suggestions: List[CommandSuggestion]) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(list(suggestions), self._clock())
        self._prune()

    def invalidate(self, key: Optional[str]) -> None:
        if key is not None:
            self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp > self.ttl_seconds

    def _prune(self) -> None:
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]

        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            oldest = sorted(self._entries, key=lambda k: self._entries[k].timestamp)[:overflow]
            for key in oldest:
                del self._entries[key]
