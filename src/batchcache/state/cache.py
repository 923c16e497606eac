"""
Entry Cache - tri-state storage of identifier values.

Tracks identifiers from first request through resolution and
provides query capabilities for the batcher.
"""

from typing import Any, Dict, List, Optional, Set

import structlog

from batchcache.core.entry import CacheEntry, EntryState

logger = structlog.get_logger(__name__)


class EntryCache:
    """
    Holds one CacheEntry per requested identifier.

    Identifiers without an entry are ABSENT. Entries are indexed by state
    so pending/resolved counts do not require a scan.

    Not thread-safe: owned by the batcher's event loop.
    """

    def __init__(self):
        self._entries: Dict[int, CacheEntry] = {}
        self._by_state: Dict[EntryState, Set[int]] = {
            EntryState.PENDING: set(),
            EntryState.RESOLVED: set(),
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identifier: int) -> bool:
        return identifier in self._entries

    def get(self, identifier: int) -> Optional[CacheEntry]:
        """Get the entry for an identifier, or None if absent."""
        return self._entries.get(identifier)

    def state_of(self, identifier: int) -> EntryState:
        entry = self._entries.get(identifier)
        return entry.state if entry else EntryState.ABSENT

    def is_pending(self, identifier: int) -> bool:
        return identifier in self._by_state[EntryState.PENDING]

    def is_resolved(self, identifier: int) -> bool:
        return identifier in self._by_state[EntryState.RESOLVED]

    def value_of(self, identifier: int) -> Any:
        """
        Get the resolved value for an identifier.

        Raises:
            KeyError: If the identifier is not resolved
        """
        entry = self._entries.get(identifier)
        if entry is None or not entry.is_resolved:
            raise KeyError(identifier)
        return entry.value

    def mark_pending(self, identifier: int, batch_id: Optional[str] = None) -> CacheEntry:
        """
        Move an identifier from ABSENT to PENDING.

        Raises:
            InvalidTransition: If the identifier is already pending or resolved
        """
        entry = self._entries.get(identifier)
        if entry is None:
            entry = CacheEntry(identifier=identifier)
        entry.mark_pending(batch_id)
        self._entries[identifier] = entry
        self._by_state[EntryState.PENDING].add(identifier)
        return entry

    def mark_resolved(self, identifier: int, value: Any) -> CacheEntry:
        """
        Store a resolved value.

        Raises:
            InvalidTransition: If the identifier is already resolved
        """
        entry = self._entries.get(identifier)
        if entry is None:
            entry = CacheEntry(identifier=identifier)
        entry.mark_resolved(value)
        self._entries[identifier] = entry
        self._by_state[EntryState.PENDING].discard(identifier)
        self._by_state[EntryState.RESOLVED].add(identifier)
        return entry

    def identifiers_in(self, state: EntryState) -> List[int]:
        """Get identifiers currently in PENDING or RESOLVED state."""
        return sorted(self._by_state.get(state, ()))

    def clear(self) -> int:
        """
        Discard every entry.

        Returns:
            Number of entries discarded
        """
        count = len(self._entries)
        self._entries.clear()
        for ids in self._by_state.values():
            ids.clear()
        if count:
            logger.debug("cache_cleared", count=count)
        return count

    def get_stats(self) -> dict:
        """Get cache statistics."""
        return {
            "entries": len(self._entries),
            "pending": len(self._by_state[EntryState.PENDING]),
            "resolved": len(self._by_state[EntryState.RESOLVED]),
        }
