"""Revision-tagged result cache.

Entries are checked against the current revision on every read; an entry
computed for an older revision is treated as absent and dropped. There is
no partial invalidation: any edit makes every entry stale at once.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CachedResult(Generic[T]):
    value: T
    source_revision: int

    def is_valid(self, revision: int) -> bool:
        return self.source_revision == revision


class ResultCache:
    """Cache of derived results keyed by caller-chosen hashable keys."""

    def __init__(self, revision_source: Callable[[], int]) -> None:
        self._revision_source = revision_source
        self._entries: dict[Hashable, CachedResult[Any]] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.lookup(key) is not None

    def lookup(self, key: Hashable) -> CachedResult[Any] | None:
        """Valid entry for ``key`` at the current revision, else None."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        revision = self._revision_source()
        if not entry.is_valid(revision):
            del self._entries[key]
            self.misses += 1
            logger.debug(
                "cache_entry_stale",
                key=str(key),
                source_revision=entry.source_revision,
                revision=revision,
            )
            return None
        self.hits += 1
        return entry

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self.lookup(key)
        return default if entry is None else entry.value

    def put(self, key: Hashable, value: Any, revision: int) -> bool:
        """Store ``value`` computed against ``revision``.

        Returns False (and stores nothing) when the buffer has already moved
        past ``revision``.
        """
        current = self._revision_source()
        if revision != current:
            logger.debug("cache_put_rejected", key=str(key), revision=revision, current=current)
            return False
        self._entries[key] = CachedResult(value=value, source_revision=revision)
        return True

    def get_or_compute(self, key: Hashable, compute: Callable[[], T]) -> T:
        entry = self.lookup(key)
        if entry is not None:
            return entry.value  # type: ignore[no-any-return]
        revision = self._revision_source()
        value = compute()
        self.put(key, value, revision)
        return value

    def invalidate(self) -> None:
        """Drop every entry."""
        if self._entries:
            logger.debug(
                "cache_invalidated",
                entries=len(self._entries),
                hits=self.hits,
                misses=self.misses,
            )
        self._entries.clear()
