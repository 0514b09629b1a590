"""Dry run - executes a planned graph once before it goes live.

Nodes run in execution order:
- process: the function block is interpreted with an empty scope and
  condition steps skipped. Unresolved refs and invalid steps still fail.
- queue: ingestion queues receive the last process output, consumer
  queues get a worker registered and are drained.
- database: the declared tables are checked.

Other kinds (API bindings, infra, service boundaries) have nothing to run.
The first StepExecutionError ends the dry run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from archsim.core.budget import Budget
from archsim.core.graph.model import DatabaseData, GraphCollection, Node, NodeKind
from archsim.core.interpreter import StepInterpreter
from archsim.core.planner import ExecutionOrder
from archsim.core.queues import InMemoryQueueBroker, QueueJob, queue_name, resolve_queue_modes

logger = logging.getLogger(__name__)

ExecuteHook = Callable[[Node, int, int], None]


class DryRunExecutor:
    """Runs each node of a collection once.

    Example:
        >>> executor = DryRunExecutor(graphs)
        >>> outputs = executor.run(plan(graphs))
        >>> outputs["health-fn"]
        {'ok': True}
    """

    def __init__(
        self,
        collection: GraphCollection,
        budget: Budget | None = None,
        queues: InMemoryQueueBroker | None = None,
    ):
        self.collection = collection
        self.queues = queues if queues is not None else InMemoryQueueBroker()
        self.interpreter = StepInterpreter(collection, budget=budget, queues=self.queues)
        self._last_output: Any = None
        self._handlers: dict[NodeKind, Callable[[Node], Any]] = {
            NodeKind.PROCESS: self._process,
            NodeKind.QUEUE: self._queue,
            NodeKind.DATABASE: self._database,
        }

    def run(self, order: ExecutionOrder, on_execute: ExecuteHook | None = None) -> dict[str, Any]:
        """Execute every node of order.

        Args:
            order: Execution order of this executor's collection.
            on_execute: Called with (node, index, total) before each node
                runs. index is 0-based.

        Returns:
            Output per node id. Nodes with nothing to run map to None.

        Raises:
            StepExecutionError: A function block failed.
        """
        total = len(order)
        outputs: dict[str, Any] = {}
        for entry in order:
            if on_execute is not None:
                on_execute(entry.node, entry.index, total)
            outputs[entry.node.id] = self.execute(entry.node)
        logger.debug("dry_run_complete: nodes=%d", total)
        return outputs

    def execute(self, node: Node) -> Any:
        """Execute one node and return its output."""
        handler = self._handlers.get(node.kind)
        if handler is None:
            return None
        return handler(node)

    def _process(self, node: Node) -> Any:
        result = self.interpreter.run(node, strict=False)
        self._last_output = result.response.body
        logger.debug(
            "dry_run_process: node=%s status=%d steps=%d",
            node.id,
            result.response.status,
            result.steps_executed,
        )
        return result.response.body

    def _queue(self, node: Node) -> dict[str, Any]:
        name = queue_name(node)
        modes = resolve_queue_modes(self.collection, node)
        output: dict[str, Any] = {
            "queue": name,
            "ingestion": modes.ingestion,
            "consumer": modes.consumer,
            "jobId": None,
            "processed": 0,
        }
        if modes.ingestion:
            last = self._last_output
            payload = last if isinstance(last, dict) else {"value": last}
            output["jobId"] = self.queues.enqueue(name, payload).id
        if modes.consumer:
            self.queues.register_worker(name, _log_job)
            output["processed"] = self.queues.drain(name)
        logger.debug(
            "dry_run_queue: queue=%s ingestion=%s consumer=%s processed=%d",
            name,
            modes.ingestion,
            modes.consumer,
            output["processed"],
        )
        return output

    def _database(self, node: Node) -> dict[str, Any]:
        data = node.data
        tables = list(data.tables) if isinstance(data, DatabaseData) else []
        if not tables:
            logger.info("dry_run_database_without_tables: node=%s", node.id)
        return {"database": node.id, "tables": tables}


def _log_job(job: QueueJob) -> None:
    logger.info("queue_job_processed: queue=%s job=%s", job.queue, job.id)
