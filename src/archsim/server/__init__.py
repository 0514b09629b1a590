"""Server - Runtime engine and progress events over core.

The server layer wraps core primitives with:
- Ownership of the active graph state
- Deploy and dispatch operations with JSON-shaped outcomes
- Progress events for streamed deployments

This layer knows about core, but not about:
- Specific transports (HTTP)
- Frontends (CLI)

Classes:
    RuntimeEngine: Deploys graphs and dispatches simulated requests.
    ProgressEmitter: Turns a runtime start into a stream of events.
    EventSink: Protocol for event consumers.
    RuntimeEvent: Event message type.

Example:
    >>> from archsim.server import RuntimeEngine
    >>>
    >>> engine = RuntimeEngine()
    >>> for event in engine.stream_start(graphs):
    ...     print(event.to_sse())
"""

from archsim.server.emitter import ProgressEmitter
from archsim.server.engine import DispatchOutcome, DispatchResult, RuntimeEngine
from archsim.server.protocols import EventSink, EventType, ListSink, RuntimeEvent

__all__ = [
    "DispatchOutcome",
    "DispatchResult",
    "EventSink",
    "EventType",
    "ListSink",
    "ProgressEmitter",
    "RuntimeEngine",
    "RuntimeEvent",
]
