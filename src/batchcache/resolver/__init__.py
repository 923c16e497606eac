"""
Resolver Integration Layer.

Provides the upstream contract used by the Batcher and an HTTP implementation.
"""

from batchcache.resolver.interface import CallableResolver, Resolver, ResolverFailure, ResolverResult
from batchcache.resolver.http import HttpResolver

__all__ = [
    "Resolver",
    "CallableResolver",
    "ResolverFailure",
    "ResolverResult",
    "HttpResolver",
]
