"""
Batch Cache

A request-batching cache for ordered identifier lists.
Nearby fetches are coalesced into single upstream calls, concurrent requests
for the same identifier are deduplicated and every result is cached.
"""

__version__ = "0.1.0"

from batchcache.core.batcher import Batcher, FetchTimeout
from batchcache.core.entry import EntryState, CacheEntry
from batchcache.core.batch import Batch, BatchStatus
from batchcache.resolver.interface import Resolver, ResolverFailure, ResolverResult

__all__ = [
    "Batcher",
    "FetchTimeout",
    "EntryState",
    "CacheEntry",
    "Batch",
    "BatchStatus",
    "Resolver",
    "ResolverFailure",
    "ResolverResult",
]
