"""
Core batch cache components.

This module contains the cache entry and batch models and the
Batcher engine that coalesces fetches into resolver calls.
"""

from batchcache.core.entry import CacheEntry, EntryState, InvalidTransition
from batchcache.core.batch import Batch, BatchStatus
from batchcache.core.batcher import Batcher, FetchTimeout

__all__ = [
    "CacheEntry",
    "EntryState",
    "InvalidTransition",
    "Batch",
    "BatchStatus",
    "Batcher",
    "FetchTimeout",
]
