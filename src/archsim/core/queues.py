"""In-memory queue simulation.

Queue nodes in a graph are backed by an InMemoryQueueBroker while the
runtime is active. Jobs are plain JSON payloads. A queue with a registered
worker processes each job as soon as it is enqueued; without a worker jobs
wait until drain() is called after a worker is registered.

A queue node plays one or both of two roles:
- ingestion: something other than a queue feeds it (an API, a function)
- consumer: it feeds a function block or an API binding

resolve_queue_modes() derives the roles from the graph's edges.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from archsim.core.graph.model import GraphCollection, Node, NodeKind

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 1000

_CONSUMER_TARGET_KINDS = frozenset({NodeKind.PROCESS, NodeKind.API_BINDING})


@dataclass(frozen=True)
class QueueJob:
    """One enqueued message.

    Attributes:
        id: Broker-assigned job id ("job-1", "job-2", ...).
        queue: Name of the queue the job was sent to.
        payload: JSON payload.
    """

    id: str
    queue: str
    payload: dict[str, Any]


@dataclass(frozen=True)
class QueueModes:
    """Roles a queue node plays in its graph."""

    ingestion: bool
    consumer: bool


@dataclass
class QueueStats:
    """Counters for one queue."""

    pending: int = 0
    processed: int = 0
    failed: int = 0
    dropped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "pending": self.pending,
            "processed": self.processed,
            "failed": self.failed,
            "dropped": self.dropped,
        }


WorkerHandler = Callable[[QueueJob], Any]


@dataclass
class _Queue:
    jobs: deque[QueueJob]
    stats: QueueStats = field(default_factory=QueueStats)
    worker: WorkerHandler | None = None


def queue_name(node: Node) -> str:
    """Name a queue node is addressed by: its label, else its id."""
    return node.label.strip() or node.id


def resolve_queue_modes(collection: GraphCollection, node: Node) -> QueueModes:
    """Work out whether a queue node ingests, consumes or both.

    A queue ingests when any incoming edge comes from something other than
    a queue. It consumes when any outgoing edge reaches a function block or
    an API binding. A queue wired to neither plays both roles.
    """
    sources = [collection.get_node(edge.source) for edge in collection.incoming(node.id)]
    targets = [collection.get_node(edge.target) for edge in collection.outgoing(node.id)]
    ingestion = any(
        source is not None and source.kind is not NodeKind.QUEUE for source in sources
    )
    consumer = any(
        target is not None and target.kind in _CONSUMER_TARGET_KINDS for target in targets
    )
    if not ingestion and not consumer:
        return QueueModes(ingestion=True, consumer=True)
    return QueueModes(ingestion=ingestion, consumer=consumer)


class InMemoryQueueBroker:
    """Process-local queue broker.

    Thread-safe: request handlers and the deploy dry run may share one
    broker. Worker handlers run outside the lock.

    Example:
        >>> broker = InMemoryQueueBroker()
        >>> broker.enqueue("orders", {"id": 1}).id
        'job-1'
        >>> broker.register_worker("orders", handle_order)
        >>> broker.drain("orders")
        1
    """

    kind = "memory"

    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING):
        self.max_pending = max_pending
        self._queues: dict[str, _Queue] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _queue(self, name: str) -> _Queue:
        queue = self._queues.get(name)
        if queue is None:
            queue = _Queue(jobs=deque())
            self._queues[name] = queue
        return queue

    def enqueue(self, name: str, payload: dict[str, Any]) -> QueueJob:
        """Add a job to a queue and process it now if a worker is registered.

        When the queue already holds max_pending jobs the oldest is dropped.
        """
        with self._lock:
            queue = self._queue(name)
            job = QueueJob(id=f"job-{next(self._ids)}", queue=name, payload=dict(payload))
            if len(queue.jobs) >= self.max_pending:
                dropped = queue.jobs.popleft()
                queue.stats.dropped += 1
                logger.warning("queue_job_dropped: queue=%s job=%s", name, dropped.id)
            queue.jobs.append(job)
            queue.stats.pending = len(queue.jobs)
            has_worker = queue.worker is not None

        logger.debug("queue_job_enqueued: queue=%s job=%s", name, job.id)
        if has_worker:
            self.drain(name)
        return job

    def register_worker(self, name: str, handler: WorkerHandler) -> None:
        """Set the handler that processes jobs of a queue. Replaces any previous one."""
        with self._lock:
            self._queue(name).worker = handler
        logger.debug("queue_worker_registered: queue=%s", name)

    def drain(self, name: str) -> int:
        """Process every pending job of a queue.

        Returns:
            Number of jobs handed to the worker. 0 when the queue has no
            worker. A job whose handler raises counts as processed and is
            recorded as failed.
        """
        count = 0
        while True:
            with self._lock:
                queue = self._queues.get(name)
                if queue is None or queue.worker is None or not queue.jobs:
                    break
                job = queue.jobs.popleft()
                queue.stats.pending = len(queue.jobs)
                handler = queue.worker

            failed = False
            try:
                handler(job)
            except Exception:
                failed = True
                logger.exception("queue_worker_failed: queue=%s job=%s", name, job.id)

            with self._lock:
                queue.stats.processed += 1
                if failed:
                    queue.stats.failed += 1
            count += 1

        if count:
            logger.debug("queue_drained: queue=%s jobs=%d", name, count)
        return count

    def pending(self, name: str) -> list[QueueJob]:
        """Jobs waiting in a queue, oldest first."""
        with self._lock:
            queue = self._queues.get(name)
            return list(queue.jobs) if queue else []

    def stats(self, name: str) -> QueueStats:
        """Snapshot of a queue's counters."""
        with self._lock:
            queue = self._queues.get(name)
            if queue is None:
                return QueueStats()
            return QueueStats(**queue.stats.to_dict())

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._queues)
