"""Core - Pure simulation logic for architecture graphs.

This module contains no knowledge of:
- Servers, transports, or networking
- Event streaming
- How it will be used

Architecture:
    graph/      Typed graph model and the active graph state
    planner     Deterministic topological ordering
    boundary    Service ownership and isolation analysis
    design      Deploy readiness report
    interpreter Function-block step interpreter
    queues      In-memory queue broker and queue roles
    dry_run     Executes a planned graph once before it goes live
    router      REST route matching and request execution
    types       Pure data types

Example:
    >>> from archsim.core import GraphCollection, RequestRouter, plan
    >>>
    >>> graphs = GraphCollection.from_dict(payload)
    >>> plan(graphs).node_ids
    ['health-api', 'health-fn']
    >>> RequestRouter().execute_rest_request(graphs, "GET", "/health").response.body
    {'ok': True}
"""

from archsim.core.boundary import BoundaryReport, ServiceBoundaryAnalyzer, ServiceSummary
from archsim.core.budget import Budget, ResourceUsage
from archsim.core.design import DesignReport, WorkflowStage, analyze_design
from archsim.core.dry_run import DryRunExecutor
from archsim.core.errors import (
    ArchsimError,
    BudgetExceededError,
    CyclicGraphError,
    MalformedGraphError,
    StepExecutionError,
)
from archsim.core.graph import (
    ActiveGraphState,
    ActiveSnapshot,
    Edge,
    ExecutionNode,
    Graph,
    GraphCollection,
    Node,
    NodeKind,
    Step,
    StepKind,
)
from archsim.core.interpreter import InterpretResult, StepInterpreter
from archsim.core.planner import ExecutionOrder, ExecutionPlanner, OrderedNode, plan
from archsim.core.queues import InMemoryQueueBroker, QueueJob, QueueModes, resolve_queue_modes
from archsim.core.router import FlowResult, RequestRouter, normalize_path
from archsim.core.types import HttpResponse, Issue, Severity

__all__ = [
    "ActiveGraphState",
    "ActiveSnapshot",
    "ArchsimError",
    "BoundaryReport",
    "Budget",
    "BudgetExceededError",
    "CyclicGraphError",
    "DesignReport",
    "DryRunExecutor",
    "Edge",
    "ExecutionNode",
    "ExecutionOrder",
    "ExecutionPlanner",
    "FlowResult",
    "Graph",
    "GraphCollection",
    "HttpResponse",
    "InMemoryQueueBroker",
    "InterpretResult",
    "Issue",
    "MalformedGraphError",
    "Node",
    "NodeKind",
    "OrderedNode",
    "QueueJob",
    "QueueModes",
    "RequestRouter",
    "ResourceUsage",
    "ServiceBoundaryAnalyzer",
    "ServiceSummary",
    "Severity",
    "Step",
    "StepExecutionError",
    "StepInterpreter",
    "StepKind",
    "WorkflowStage",
    "analyze_design",
    "normalize_path",
    "plan",
    "resolve_queue_modes",
]
