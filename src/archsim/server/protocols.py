"""Server protocols - runtime event types and the EventSink interface.

These protocols define the contract between the server and transport layers.
A deployment emits, in order:

- STATUS (runtime_started)
- ORDER, once per node of the execution order
- EXECUTE, once per node touched by the dry run
- exactly one terminal event: COMPLETE or ERROR
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class EventType(Enum):
    """Types of events emitted while starting the runtime."""

    STATUS = "status"
    ORDER = "order"
    EXECUTE = "execute"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (EventType.COMPLETE, EventType.ERROR)


@dataclass(frozen=True)
class RuntimeEvent:
    """Event emitted by the progress emitter.

    Attributes:
        type: The event type.
        data: Event payload (JSON-serializable).
        node_id: Associated node ID (if applicable).
        timestamp: When the event occurred.
    """

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    node_id: str | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        payload = {"type": self.type.value, **self.data}
        if self.node_id:
            payload["nodeId"] = self.node_id
        return payload

    def to_sse(self) -> str:
        """Format as one Server-Sent Events frame."""
        return f"event: {self.type.value}\ndata: {json.dumps(self.to_dict())}\n\n"


class EventSink(Protocol):
    """Protocol for event consumers.

    The emitter pushes events through this interface. It is synchronous:
    core work never awaits, and transports buffer or forward as they see fit.
    """

    def emit(self, event: RuntimeEvent) -> None:
        """Emit an event.

        Args:
            event: The event to emit.
        """
        ...


class ListSink:
    """EventSink that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[RuntimeEvent] = []

    def emit(self, event: RuntimeEvent) -> None:
        self.events.append(event)
