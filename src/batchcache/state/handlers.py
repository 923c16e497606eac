"""
Pending handler registry.

Keeps every continuation waiting on an identifier, in registration order,
until the identifier resolves or the caller gives up on it.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

Continuation = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]


@dataclass(eq=False)
class FetchHandle:
    """
    A caller's registration for one identifier.

    Returned by ``Batcher.fetch``. ``cancel()`` drops the continuation
    without aborting the batch that covers the identifier.

    Attributes:
        identifier: Identifier being awaited
        continuation: Called once with the resolved value
        on_error: Optional failure channel (resolver failure or timeout)
        registered_at: When the handle was created
        done: Whether the continuation or error callback has run
        cancelled: Whether the caller cancelled the handle
    """

    identifier: int
    continuation: Continuation
    on_error: Optional[ErrorCallback] = None
    registered_at: datetime = field(default_factory=datetime.utcnow)
    done: bool = False
    cancelled: bool = False
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)
    registry: Optional["HandlerRegistry"] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return not (self.done or self.cancelled)

    def cancel(self) -> bool:
        """
        Stop waiting for the value.

        Returns:
            True if the handle was still waiting, False otherwise
        """
        if not self.active:
            return False
        self.cancelled = True
        self._stop_timer()
        if self.registry is not None:
            self.registry.remove(self)
        logger.debug("fetch_cancelled", identifier=self.identifier)
        return True

    def deliver(self, value: Any) -> None:
        """Invoke the continuation with the resolved value."""
        if not self.active:
            return
        self.done = True
        self._stop_timer()
        try:
            self.continuation(value)
        except Exception as e:
            logger.error(
                "continuation_failed",
                identifier=self.identifier,
                error=str(e),
            )

    def deliver_error(self, error: Exception) -> bool:
        """
        Invoke the error callback, if one was supplied.

        Returns:
            True if the error was delivered
        """
        if not self.active or self.on_error is None:
            return False
        self.done = True
        self._stop_timer()
        try:
            self.on_error(error)
        except Exception as e:
            logger.error(
                "error_callback_failed",
                identifier=self.identifier,
                error=str(e),
            )
        return True

    def _stop_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class HandlerRegistry:
    """
    Maps identifiers to the ordered handles waiting on them.

    Not thread-safe: owned by the batcher's event loop.
    """

    def __init__(self):
        self._handlers: Dict[int, List[FetchHandle]] = {}

    def register(self, handle: FetchHandle) -> None:
        """Append a handle to its identifier's list."""
        handle.registry = self
        self._handlers.setdefault(handle.identifier, []).append(handle)

    def take(self, identifier: int) -> List[FetchHandle]:
        """
        Remove and return every handle waiting on an identifier.

        The identifier's list is left empty.
        """
        return self._handlers.pop(identifier, [])

    def take_with_error_channel(self, identifier: int) -> List[FetchHandle]:
        """
        Remove and return only the handles that supplied ``on_error``.

        Handles without a failure channel stay registered.
        """
        handles = self._handlers.pop(identifier, [])
        taken = [h for h in handles if h.on_error is not None]
        remaining = [h for h in handles if h.on_error is None]
        if remaining:
            self._handlers[identifier] = remaining
        return taken

    def remove(self, handle: FetchHandle) -> bool:
        """Remove a single handle; True if it was registered."""
        handles = self._handlers.get(handle.identifier)
        if not handles or handle not in handles:
            return False
        handles.remove(handle)
        return True

    def waiting(self, identifier: int) -> int:
        """Number of handles waiting on an identifier."""
        return len(self._handlers.get(identifier, ()))

    def waiting_identifiers(self) -> List[int]:
        """Identifiers with at least one waiting handle."""
        return sorted(i for i, handles in self._handlers.items() if handles)

    def get_stats(self) -> dict:
        """Get registry statistics."""
        return {
            "waiting_identifiers": len(self.waiting_identifiers()),
            "waiting_handlers": sum(len(h) for h in self._handlers.values()),
        }
