"""
State Management module.

Holds cached entries and the handlers waiting on pending identifiers.
"""

from batchcache.state.cache import EntryCache
from batchcache.state.handlers import FetchHandle, HandlerRegistry

__all__ = [
    "EntryCache",
    "FetchHandle",
    "HandlerRegistry",
]
