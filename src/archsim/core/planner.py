"""Execution planner - deterministic topological order of a GraphCollection.

Kahn's algorithm over every node of the collection. Among nodes that are
ready at the same time, the one authored first wins (position in the
flattened tab/node sequence), so the same input always yields the same order.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from archsim.core.errors import CyclicGraphError
from archsim.core.graph.model import GraphCollection, Node

logger = logging.getLogger(__name__)

OrderCallback = Callable[[Node, int, int], None]


@dataclass(frozen=True)
class OrderedNode:
    """A node and its 0-based position in an execution order."""

    node: Node
    index: int


@dataclass(frozen=True)
class ExecutionOrder:
    """Topological sequence covering every node of the planned collection."""

    entries: tuple[OrderedNode, ...]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def __getitem__(self, index: int) -> OrderedNode:
        return self.entries[index]

    @property
    def nodes(self) -> list[Node]:
        return [entry.node for entry in self.entries]

    @property
    def node_ids(self) -> list[str]:
        return [entry.node.id for entry in self.entries]

    def to_list(self) -> list[dict[str, Any]]:
        """JSON projection: [{"id", "kind", "label"}, ...]."""
        return [entry.node.summary().to_dict() for entry in self.entries]


class ExecutionPlanner:
    """Computes execution orders.

    Example:
        >>> planner = ExecutionPlanner()
        >>> order = planner.plan(graphs, on_order=lambda node, i, total: print(i, node.id))
        >>> order.node_ids
        ['create-user', 'save-user', 'users-db']
    """

    def plan(
        self,
        collection: GraphCollection,
        on_order: OrderCallback | None = None,
    ) -> ExecutionOrder:
        """Compute the topological order of all nodes.

        Args:
            collection: Graphs to order (nodes of all tabs).
            on_order: Called once per node after the order is complete,
                as on_order(node, index, total), in output order.

        Returns:
            The execution order.

        Raises:
            CyclicGraphError: If the edges contain a cycle. No callback has
                been invoked in that case.
        """
        nodes = collection.nodes
        position = {node.id: i for i, node in enumerate(nodes)}

        for edge in collection.unresolved_edges:
            logger.warning(
                "edge_dropped: %s -> %s (unknown endpoint)", edge.source, edge.target
            )

        successors: dict[str, list[str]] = {node.id: [] for node in nodes}
        in_degree: dict[str, int] = {node.id: 0 for node in nodes}
        for edge in collection.resolved_edges:
            successors[edge.source].append(edge.target)
            in_degree[edge.target] += 1

        ready = [position[node_id] for node_id, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)

        ordered: list[Node] = []
        while ready:
            current = nodes[heapq.heappop(ready)]
            ordered.append(current)
            for target in successors[current.id]:
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    heapq.heappush(ready, position[target])

        if len(ordered) != len(nodes):
            unresolved = [node.id for node in nodes if in_degree[node.id] > 0]
            raise CyclicGraphError(unresolved)

        order = ExecutionOrder(
            entries=tuple(OrderedNode(node=node, index=i) for i, node in enumerate(ordered))
        )
        logger.debug("plan_computed: nodes=%d edges=%d", len(order), len(collection.resolved_edges))

        if on_order:
            total = len(order)
            for entry in order:
                on_order(entry.node, entry.index, total)

        return order


def plan(collection: GraphCollection, on_order: OrderCallback | None = None) -> ExecutionOrder:
    """Convenience wrapper around ExecutionPlanner().plan()."""
    return ExecutionPlanner().plan(collection, on_order=on_order)
