"""Progress emitter - runtime start as a stream of events.

Wraps the planner so a deployment can be observed step by step:

    status   {"message": "runtime_started"}
    order    {"index", "total", "node", "message"}   (one per node)
    execute  {"index", "total", "node", "message"}   (before each node of the dry run)
    complete {"executionOrder", "totalNodes"}
    error    {"error": "runtime_start_failed", "message", "details"?}

Exactly one terminal event (complete or error) ends every stream. Payload
indices are 1-based for display. A node that fails its dry run ends the
stream with an error event right after its execute event, and the commit
callback is not called. The emitter performs no I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import Any

from archsim.core.budget import Budget
from archsim.core.dry_run import DryRunExecutor
from archsim.core.errors import ArchsimError, StepExecutionError
from archsim.core.graph.model import GraphCollection, Node
from archsim.core.planner import ExecutionOrder, ExecutionPlanner
from archsim.core.queues import InMemoryQueueBroker
from archsim.server.protocols import EventSink, EventType, RuntimeEvent

logger = logging.getLogger(__name__)

CommitCallback = Callable[[GraphCollection, ExecutionOrder], None]


def _progress(event_type: EventType, verb: str, node: Node, index: int, total: int) -> RuntimeEvent:
    summary = node.summary()
    return RuntimeEvent(
        type=event_type,
        node_id=node.id,
        data={
            "index": index + 1,
            "total": total,
            "node": summary.to_dict(),
            "message": f"{verb} {index + 1}/{total}: {summary.kind.value}:{summary.label}",
        },
    )


class ProgressEmitter:
    """Streams the events of one runtime start.

    Example:
        >>> emitter = ProgressEmitter()
        >>> [event.type.value for event in emitter.events(graphs)]
        ['status', 'order', 'order', 'execute', 'execute', 'complete']
    """

    def __init__(
        self,
        planner: ExecutionPlanner | None = None,
        budget: Budget | None = None,
        queues: InMemoryQueueBroker | None = None,
    ):
        self.planner = planner or ExecutionPlanner()
        self.budget = budget
        self.queues = queues

    def events(
        self,
        collection: GraphCollection,
        commit: CommitCallback | None = None,
    ) -> Iterator[RuntimeEvent]:
        """Yield the events of a runtime start.

        Args:
            collection: Graphs to start.
            commit: Called with the collection and its order after every
                node passed the dry run, before the complete event. A
                failure in commit ends the stream with an error event.

        Yields:
            RuntimeEvent, ending with exactly one complete or error event.
        """
        yield RuntimeEvent(type=EventType.STATUS, data={"message": "runtime_started"})

        try:
            order = self.planner.plan(collection)
        except Exception as err:
            logger.warning("runtime_start_failed: %s", err)
            yield self._error(err)
            return

        total = len(order)
        for entry in order:
            yield _progress(EventType.ORDER, "Order", entry.node, entry.index, total)

        executor = DryRunExecutor(collection, budget=self.budget, queues=self.queues)
        for entry in order:
            yield _progress(EventType.EXECUTE, "Executing", entry.node, entry.index, total)
            try:
                executor.execute(entry.node)
            except StepExecutionError as err:
                logger.warning(
                    "runtime_start_failed: node=%s step=%s code=%s: %s",
                    err.node_id,
                    err.step_id,
                    err.reason,
                    err,
                )
                yield self._error(err, node_id=entry.node.id)
                return
            except Exception as err:
                logger.exception("runtime_start_failed: node=%s", entry.node.id)
                yield self._error(err, node_id=entry.node.id)
                return

        if commit is not None:
            try:
                commit(collection, order)
            except Exception as err:
                logger.exception("runtime_commit_failed")
                yield self._error(err)
                return

        yield RuntimeEvent(
            type=EventType.COMPLETE,
            data={"executionOrder": order.to_list(), "totalNodes": total},
        )

    def run(
        self,
        collection: GraphCollection,
        sink: EventSink,
        commit: CommitCallback | None = None,
    ) -> RuntimeEvent:
        """Push every event to sink and return the terminal one."""
        last: RuntimeEvent | None = None
        for event in self.events(collection, commit=commit):
            sink.emit(event)
            last = event
        assert last is not None and last.type.is_terminal
        return last

    def _error(self, err: Exception, node_id: str | None = None) -> RuntimeEvent:
        data: dict[str, Any] = {
            "error": "runtime_start_failed",
            "message": str(err) or type(err).__name__,
        }
        if isinstance(err, ArchsimError):
            data["details"] = err.to_dict()
        return RuntimeEvent(type=EventType.ERROR, node_id=node_id, data=data)
