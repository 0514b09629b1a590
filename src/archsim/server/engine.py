"""RuntimeEngine - deploys graphs and dispatches simulated requests.

RuntimeEngine is the server-layer adapter that:
- Owns the active graph state (explicitly, not as a module global)
- Deploys collections (plan, dry run, install only when both succeed)
- Owns the in-memory queue broker that queue nodes run on
- Gates requests on service boundary policy
- Routes requests and shapes every outcome into a status + JSON body

Core work is synchronous and in-memory; transports call straight into it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from archsim.config import RuntimeConfig
from archsim.core.boundary import ServiceBoundaryAnalyzer
from archsim.core.design import DesignReport, analyze_design
from archsim.core.dry_run import DryRunExecutor
from archsim.core.errors import ArchsimError
from archsim.core.graph.model import GraphCollection
from archsim.core.graph.state import ActiveGraphState
from archsim.core.planner import ExecutionOrder, ExecutionPlanner
from archsim.core.queues import InMemoryQueueBroker
from archsim.core.router import FlowResult, RequestRouter, normalize_path
from archsim.server.emitter import ProgressEmitter
from archsim.server.protocols import RuntimeEvent

logger = logging.getLogger(__name__)

NOT_INITIALIZED_MESSAGE = "No active runtime graph is loaded. Start the runtime first."
BOUNDARY_VIOLATION_MESSAGE = "Runtime request blocked by Service Boundary policy violations."


class DispatchOutcome(Enum):
    """How a simulated request ended."""

    OK = "ok"
    NOT_INITIALIZED = "not_initialized"
    BOUNDARY_VIOLATION = "boundary_violation"
    ROUTE_NOT_FOUND = "route_not_found"
    EXECUTION_FAILED = "execution_failed"


@dataclass(frozen=True)
class DispatchResult:
    """Result of dispatching one simulated request.

    Attributes:
        outcome: Which branch of the dispatch produced the result.
        status: HTTP status to answer with.
        body: JSON body to answer with.
        flow: The routed flow (OK outcomes only).
    """

    outcome: DispatchOutcome
    status: int
    body: dict[str, Any] = field(default_factory=dict)
    flow: FlowResult | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is DispatchOutcome.OK

    def to_response(self) -> tuple[int, dict[str, Any]]:
        return self.status, self.body


class RuntimeEngine:
    """Deploys architecture graphs and serves simulated requests.

    Example:
        >>> engine = RuntimeEngine()
        >>> engine.deploy_payload(payload).node_ids
        ['health-api', 'health-fn']
        >>> result = engine.dispatch("GET", "/health")
        >>> result.status, result.body
        (200, {'ok': True})
    """

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        state: ActiveGraphState | None = None,
    ):
        self.config = config or RuntimeConfig()
        self.state = state or ActiveGraphState()
        self.planner = ExecutionPlanner()
        self.analyzer = ServiceBoundaryAnalyzer()
        self.queues = InMemoryQueueBroker()
        budget = self.config.budget()
        self.router = RequestRouter(budget=budget, planner=self.planner, queues=self.queues)
        self.emitter = ProgressEmitter(planner=self.planner, budget=budget, queues=self.queues)

    @property
    def initialized(self) -> bool:
        return self.state.current() is not None

    # -------------------------------------------------------------------------
    # Deployment
    # -------------------------------------------------------------------------

    def deploy(self, collection: GraphCollection) -> ExecutionOrder:
        """Plan, dry-run and install a collection.

        Raises:
            CyclicGraphError: If the collection has no topological order.
            StepExecutionError: If a function block fails its dry run.

        Either way the previously active graph stays installed.
        """
        order = self.planner.plan(collection)
        DryRunExecutor(collection, budget=self.router.budget, queues=self.queues).run(order)
        self.state.install(collection)
        logger.info("graph_deployed: nodes=%d", len(order))
        return order

    def deploy_payload(self, payload: Any) -> ExecutionOrder:
        """Parse a JSON payload and deploy it.

        Raises:
            MalformedGraphError: If the payload does not parse.
            CyclicGraphError: If the graphs contain a cycle.
            StepExecutionError: If a function block fails its dry run.
        """
        return self.deploy(GraphCollection.from_dict(payload))

    def stream_start(self, collection: GraphCollection) -> Iterator[RuntimeEvent]:
        """Deploy with progress events. Installs only after a successful dry run."""

        def commit(graphs: GraphCollection, order: ExecutionOrder) -> None:
            self.state.install(graphs)
            logger.info("graph_deployed: nodes=%d (streamed)", len(order))

        return self.emitter.events(collection, commit=commit)

    def report(self) -> DesignReport | None:
        """Design report of the active graph, or None before the first deploy."""
        graphs = self.state.current()
        return analyze_design(graphs) if graphs is not None else None

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def dispatch(
        self,
        method: str,
        path: str,
        payload: Any = None,
        query: Mapping[str, Any] | None = None,
        debug: bool = False,
    ) -> DispatchResult:
        """Dispatch one simulated request against the active graph.

        The snapshot is read once, so a deploy landing mid-request never
        mixes two graphs.

        Args:
            method: HTTP method.
            path: Request path (relative to the simulated API root).
            payload: Parsed JSON body, if any.
            query: Query string values.
            debug: Add a "_runtime" block describing the routed flow.

        Returns:
            DispatchResult with the status and body to answer with.
        """
        method = method.upper()
        snapshot = self.state.snapshot()
        if snapshot is None:
            return DispatchResult(
                outcome=DispatchOutcome.NOT_INITIALIZED,
                status=503,
                body={"error": "runtime_not_initialized", "message": NOT_INITIALIZED_MESSAGE},
            )

        graphs = snapshot.graphs
        report = self.analyzer.analyze(graphs)
        if report.blocking:
            logger.info("request_blocked: %s %s issues=%d", method, path, len(report.errors))
            return DispatchResult(
                outcome=DispatchOutcome.BOUNDARY_VIOLATION,
                status=403,
                body={
                    "error": "service_boundary_violation",
                    "message": BOUNDARY_VIOLATION_MESSAGE,
                    "issues": [issue.to_dict() for issue in report.errors],
                },
            )

        try:
            flow = self.router.execute_rest_request(graphs, method, path, payload=payload, query=query)
        except ArchsimError as err:
            logger.error("request_failed: %s %s: %s", method, path, err)
            return DispatchResult(
                outcome=DispatchOutcome.EXECUTION_FAILED,
                status=500,
                body={"error": "runtime_execution_failed", "message": str(err)},
            )

        if flow is None:
            return DispatchResult(
                outcome=DispatchOutcome.ROUTE_NOT_FOUND,
                status=404,
                body={
                    "error": "route_not_found",
                    "method": method,
                    "path": normalize_path(path),
                    "activeGraphUpdatedAt": snapshot.updated_at_iso,
                },
            )

        body = dict(flow.response.body)
        if debug:
            body["_runtime"] = {
                "apiNode": flow.api_node.to_dict(),
                "finalNode": flow.final_node.to_dict(),
                "executionOrder": [node.to_dict() for node in flow.execution_order],
            }
        logger.debug("request_served: %s %s -> %d", method, path, flow.response.status)
        return DispatchResult(
            outcome=DispatchOutcome.OK,
            status=flow.response.status,
            body=body,
            flow=flow,
        )
