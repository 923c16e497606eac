"""
Batch model.

Represents a group of identifiers sent to the resolver in a single call.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Set


class BatchStatus(str, Enum):
    """Status of a batch."""
    IN_FLIGHT = "in_flight"     # Resolver call outstanding
    COMPLETED = "completed"     # Every identifier came back
    PARTIAL = "partial"         # Some identifiers missing from the response
    FAILED = "failed"           # Resolver reported no result


@dataclass
class Batch:
    """
    Represents one resolver call.

    Attributes:
        batch_id: Unique identifier for the batch
        identifiers: Identifiers sent to the resolver, in request order
        generation: Universe generation the batch was built under
        status: Current processing status
        resolved: Identifiers present in the resolver response
        created_at: When the batch was dispatched
        completed_at: When the resolver returned
    """

    identifiers: List[int] = field(default_factory=list)
    batch_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    generation: int = 0
    status: BatchStatus = BatchStatus.IN_FLIGHT
    resolved: Set[int] = field(default_factory=set)

    # Timestamps
    created_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    # Error tracking
    error_message: Optional[str] = None

    def __post_init__(self):
        """Validate after initialization."""
        if isinstance(self.status, str):
            self.status = BatchStatus(self.status)

    @property
    def size(self) -> int:
        """Get the number of identifiers in this batch."""
        return len(self.identifiers)

    @property
    def missing(self) -> List[int]:
        """Identifiers that were requested but not resolved."""
        return [i for i in self.identifiers if i not in self.resolved]

    @property
    def is_done(self) -> bool:
        return self.status != BatchStatus.IN_FLIGHT

    def mark_completed(self, resolved_ids: Iterable[int]) -> None:
        """Record the resolver response; PARTIAL if anything is missing."""
        self.resolved.update(resolved_ids)
        self.status = BatchStatus.PARTIAL if self.missing else BatchStatus.COMPLETED
        self.completed_at = datetime.utcnow()

    def mark_failed(self, error: str) -> None:
        """Mark batch as failed."""
        self.status = BatchStatus.FAILED
        self.error_message = error
        self.completed_at = datetime.utcnow()

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "batch_id": self.batch_id,
            "identifiers": list(self.identifiers),
            "generation": self.generation,
            "status": self.status.value,
            "size": self.size,
            "missing": self.missing,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
        }

    def __repr__(self) -> str:
        return f"Batch(id={self.batch_id[:8]}..., status={self.status.value}, size={self.size})"
