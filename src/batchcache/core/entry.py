"""
Cache entry model.

Tracks the lifecycle of a single identifier within one universe.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class EntryState(str, Enum):
    """State of an identifier in the cache."""
    ABSENT = "absent"       # Never requested
    PENDING = "pending"     # Included in an in-flight batch
    RESOLVED = "resolved"   # Value available


class InvalidTransition(Exception):
    """Raised when an entry would move backwards in its lifecycle."""

    def __init__(self, identifier: int, current: EntryState, target: EntryState):
        super().__init__(
            f"Identifier {identifier} cannot move from {current.value} to {target.value}"
        )
        self.identifier = identifier
        self.current = current
        self.target = target


@dataclass
class CacheEntry:
    """
    Cache slot for one identifier.

    The state is explicit, so a resolved value of ``False``, ``0`` or ``None``
    is never mistaken for the pending marker.

    Attributes:
        identifier: The identifier this entry belongs to
        state: Current lifecycle state
        value: Resolved value (only meaningful when state is RESOLVED)
        batch_id: ID of the batch that marked this entry pending
        updated_at: Timestamp of the last transition
    """

    identifier: int
    state: EntryState = EntryState.ABSENT
    value: Any = None
    batch_id: Optional[str] = None
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        """Normalize state given as a plain string."""
        if isinstance(self.state, str):
            self.state = EntryState(self.state)

    @property
    def is_pending(self) -> bool:
        return self.state == EntryState.PENDING

    @property
    def is_resolved(self) -> bool:
        return self.state == EntryState.RESOLVED

    def mark_pending(self, batch_id: Optional[str] = None) -> None:
        """Mark entry as part of an in-flight batch."""
        if self.state != EntryState.ABSENT:
            raise InvalidTransition(self.identifier, self.state, EntryState.PENDING)
        self.state = EntryState.PENDING
        self.batch_id = batch_id
        self.updated_at = datetime.utcnow()

    def mark_resolved(self, value: Any) -> None:
        """
        Store the resolved value.

        Absent entries may resolve directly when a resolver returns keys it
        was not asked for.
        """
        if self.state == EntryState.RESOLVED:
            raise InvalidTransition(self.identifier, self.state, EntryState.RESOLVED)
        self.state = EntryState.RESOLVED
        self.value = value
        self.updated_at = datetime.utcnow()

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "identifier": self.identifier,
            "state": self.state.value,
            "value": self.value if self.is_resolved else None,
            "batch_id": self.batch_id,
            "updated_at": self.updated_at.isoformat(),
        }
