"""Graph model and active graph state.

Classes:
    GraphCollection: All design tabs treated as one logical backend.
    Graph: One tab (nodes in authoring order, edges).
    Node / Edge / Step: Typed vertices, relations and function-block steps.
    ActiveGraphState: Copy-on-write holder of the deployed collection.
"""

from archsim.core.graph.model import (
    COMPUTE_RESOURCE_TYPES,
    ApiBindingData,
    ApiProtocol,
    DatabaseData,
    Edge,
    ExecutionNode,
    Graph,
    GraphCollection,
    InfraData,
    Node,
    NodeData,
    NodeKind,
    ProcessData,
    QueueData,
    ServiceBoundaryData,
    Step,
    StepKind,
)
from archsim.core.graph.state import ActiveGraphState, ActiveSnapshot

__all__ = [
    "COMPUTE_RESOURCE_TYPES",
    "ActiveGraphState",
    "ActiveSnapshot",
    "ApiBindingData",
    "ApiProtocol",
    "DatabaseData",
    "Edge",
    "ExecutionNode",
    "Graph",
    "GraphCollection",
    "InfraData",
    "Node",
    "NodeData",
    "NodeKind",
    "ProcessData",
    "QueueData",
    "ServiceBoundaryData",
    "Step",
    "StepKind",
]
