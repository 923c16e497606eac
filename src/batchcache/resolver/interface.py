"""
Abstract interface for upstream batch resolution.

Defines the contract every resolver must implement: turn a batch of
identifiers into a mapping of identifier to value.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence


class ResolverFailure(Exception):
    """Raised when a resolver produces no result for a batch."""

    def __init__(self, message: str, identifiers: Optional[Sequence[int]] = None):
        super().__init__(message)
        self.identifiers = list(identifiers or [])


@dataclass
class ResolverResult:
    """
    Outcome of one resolver call.

    Exactly one of ``values`` and ``error`` is set.
    """

    values: Optional[Mapping[int, Any]] = None
    error: Optional[ResolverFailure] = None
    missing: List[int] = field(default_factory=list)

    @classmethod
    def ok(cls, values: Mapping[int, Any], requested: Sequence[int] = ()) -> "ResolverResult":
        return cls(values=values, missing=[i for i in requested if i not in values])

    @classmethod
    def failure(cls, error: ResolverFailure) -> "ResolverResult":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None


class Resolver(ABC):
    """
    Abstract upstream resolver.

    Implementations receive 1..window_size identifiers without duplicates
    and return values for a subset (ideally all) of them. Identifiers left
    out of the mapping stay pending in the batcher.
    """

    @abstractmethod
    async def resolve(self, batch: List[int]) -> Mapping[int, Any]:
        """
        Resolve a batch of identifiers.

        Args:
            batch: Identifiers to resolve, in request order

        Returns:
            Mapping of identifier to value

        Raises:
            ResolverFailure: If nothing could be resolved
        """
        pass

    async def run(self, batch: List[int]) -> ResolverResult:
        """
        Resolve a batch and capture the outcome as a ResolverResult.

        Any exception raised by ``resolve`` is reported as a failure.
        """
        try:
            values = await self.resolve(list(batch))
        except ResolverFailure as e:
            if not e.identifiers:
                e.identifiers = list(batch)
            return ResolverResult.failure(e)
        except Exception as e:
            failure = ResolverFailure(f"Resolver raised {type(e).__name__}: {e}", batch)
            failure.__cause__ = e
            return ResolverResult.failure(failure)

        if values is None:
            return ResolverResult.failure(ResolverFailure("Resolver returned no result", batch))
        if not isinstance(values, Mapping):
            return ResolverResult.failure(
                ResolverFailure(f"Resolver returned {type(values).__name__}, expected a mapping", batch)
            )
        return ResolverResult.ok(values, batch)


class CallableResolver(Resolver):
    """Adapts a plain ``async def resolve(batch)`` function to the Resolver interface."""

    def __init__(self, func: Callable[[List[int]], Awaitable[Mapping[int, Any]]]):
        self._func = func

    async def resolve(self, batch: List[int]) -> Mapping[int, Any]:
        return await self._func(batch)

    def __repr__(self) -> str:
        name = getattr(self._func, "__name__", repr(self._func))
        return f"CallableResolver({name})"
