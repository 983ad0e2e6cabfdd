"""Execution environment: transaction context, events and object store."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from quantumvm.types import ID_LENGTH, ObjectID, SilverAddress


@dataclass(frozen=True)
class Event:
    """An event emitted during execution."""

    event_type: str
    data: bytes
    sender: SilverAddress


@dataclass(frozen=True)
class TransactionContext:
    """Facts about the running transaction that code may read."""

    sender: SilverAddress = field(default_factory=lambda: SilverAddress(bytes(ID_LENGTH)))
    timestamp: int = 0
    digest: bytes = bytes(ID_LENGTH)

    def __post_init__(self) -> None:
        digest = bytes(self.digest)
        if len(digest) != ID_LENGTH:
            raise ValueError(f"digest must be {ID_LENGTH} bytes, got {len(digest)}")
        object.__setattr__(self, "digest", digest)
        if self.timestamp < 0:
            raise ValueError(f"timestamp must not be negative: {self.timestamp}")


class AccessMode(enum.Enum):
    """How an object was accessed."""

    READ = "Read"
    WRITE = "Write"


@dataclass
class Runtime:
    """Mutable state shared by one execution: events, object accesses and objects."""

    tx_context: TransactionContext = field(default_factory=TransactionContext)
    events: list[Event] = field(default_factory=list)
    accessed_objects: dict[ObjectID, AccessMode] = field(default_factory=dict)
    object_store: dict[ObjectID, bytes] = field(default_factory=dict)

    @classmethod
    def with_context(cls, tx_context: TransactionContext) -> Runtime:
        """A fresh runtime for the given transaction."""
        return cls(tx_context=tx_context)

    def emit_event(self, event_type: str, data: bytes) -> None:
        """Record an event sent by the transaction's sender."""
        self.events.append(Event(event_type, bytes(data), self.tx_context.sender))

    def record_object_access(self, object_id: ObjectID, mode: AccessMode) -> None:
        """Note an access; a write access is never downgraded to a read."""
        if mode is AccessMode.WRITE or object_id not in self.accessed_objects:
            self.accessed_objects[object_id] = mode

    def clear(self) -> None:
        """Forget events, accesses and stored objects."""
        self.events.clear()
        self.accessed_objects.clear()
        self.object_store.clear()

    def read_object(self, object_id: ObjectID) -> bytes | None:
        """The stored data of an object, or None if it does not exist."""
        self.record_object_access(object_id, AccessMode.READ)
        return self.object_store.get(object_id)

    def write_object(self, object_id: ObjectID, data: bytes) -> None:
        """Store data for an object, replacing what was there."""
        self.record_object_access(object_id, AccessMode.WRITE)
        self.object_store[object_id] = bytes(data)

    def object_exists(self, object_id: ObjectID) -> bool:
        """Whether the object is in the store."""
        return object_id in self.object_store

    def delete_object(self, object_id: ObjectID) -> bytes | None:
        """Remove an object, returning its data, or None if it did not exist."""
        self.record_object_access(object_id, AccessMode.WRITE)
        return self.object_store.pop(object_id, None)