"""Request router - matches simulated REST requests to API bindings.

Route templates are matched segment by segment. Parameter segments may be
written as ":id", "{id}" or "[id]"; "[...rest]" captures one or more
remaining segments. When several bindings match, the most specific wins:
more literal segments first, then fewer catch-alls, then authoring order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, cast
from urllib.parse import unquote

from archsim.core.budget import Budget
from archsim.core.errors import StepExecutionError
from archsim.core.graph.model import (
    ApiBindingData,
    ApiProtocol,
    ExecutionNode,
    GraphCollection,
    Node,
    NodeKind,
)
from archsim.core.interpreter import StepInterpreter
from archsim.core.planner import ExecutionPlanner
from archsim.core.queues import InMemoryQueueBroker
from archsim.core.types import HttpResponse

logger = logging.getLogger(__name__)

# Canvas block types that count as REST endpoints (None = not set by the editor)
REST_BLOCK_TYPES = frozenset({None, "api_rest", "api_binding"})

_PARAM_PATTERNS = (
    re.compile(r"^:(?P<name>[A-Za-z_][\w-]*)$"),
    re.compile(r"^\{(?P<name>[A-Za-z_][\w-]*)\}$"),
    re.compile(r"^\[(?P<name>[A-Za-z_][\w-]*)\]$"),
)
_CATCH_ALL = re.compile(r"^\[\.\.\.(?P<name>[A-Za-z_][\w-]*)\]$")


def normalize_path(path: str) -> str:
    """Normalize a request path or route template.

    Adds the leading slash, collapses repeated slashes and drops the
    trailing one. The query string, if any, is removed.

    Example:
        >>> normalize_path("users//42/")
        '/users/42'
    """
    path = path.split("?", 1)[0].strip()
    segments = [segment for segment in path.split("/") if segment]
    return "/" + "/".join(segments)


@dataclass(frozen=True)
class RouteSegment:
    """One parsed segment of a route template."""

    value: str
    param: str | None = None
    catch_all: bool = False

    @property
    def is_literal(self) -> bool:
        return self.param is None


@dataclass(frozen=True)
class RouteTemplate:
    """A parsed route template.

    Example:
        >>> template = RouteTemplate.parse("/users/:id")
        >>> template.match("/users/42")
        {'id': '42'}
    """

    raw: str
    segments: tuple[RouteSegment, ...]

    @classmethod
    def parse(cls, route: str) -> RouteTemplate:
        segments: list[RouteSegment] = []
        for part in normalize_path(route).split("/")[1:]:
            catch_all = _CATCH_ALL.match(part)
            if catch_all:
                segments.append(RouteSegment(part, param=catch_all["name"], catch_all=True))
                continue
            for pattern in _PARAM_PATTERNS:
                match = pattern.match(part)
                if match:
                    segments.append(RouteSegment(part, param=match["name"]))
                    break
            else:
                segments.append(RouteSegment(part))
        return cls(raw=route, segments=tuple(segments))

    @property
    def literal_count(self) -> int:
        return sum(1 for segment in self.segments if segment.is_literal)

    @property
    def catch_all_count(self) -> int:
        return sum(1 for segment in self.segments if segment.catch_all)

    def match(self, path: str) -> dict[str, str] | None:
        """Match a normalized path, returning decoded params or None."""
        parts = [unquote(part) for part in normalize_path(path).split("/")[1:]]
        params: dict[str, str] = {}

        for i, segment in enumerate(self.segments):
            if segment.catch_all:
                # Must be last and consume at least one segment
                rest = parts[i:]
                if i != len(self.segments) - 1 or not rest:
                    return None
                params[segment.param or ""] = "/".join(rest)
                return params
            if i >= len(parts):
                return None
            if segment.is_literal:
                if segment.value != parts[i]:
                    return None
            else:
                params[segment.param or ""] = parts[i]

        if len(parts) != len(self.segments):
            return None
        return params


@dataclass(frozen=True)
class RouteMatch:
    """A binding matched to a request."""

    node: Node
    params: dict[str, str]
    template: RouteTemplate


@dataclass(frozen=True)
class FlowResult:
    """Outcome of a simulated request.

    Attributes:
        response: Status and JSON body returned to the caller.
        api_node: The matched API binding.
        final_node: Function block that produced the response.
        execution_order: Planner order of the collection.
        params: Route parameters extracted from the path.
    """

    response: HttpResponse
    api_node: ExecutionNode
    final_node: ExecutionNode
    execution_order: list[ExecutionNode] = field(default_factory=list)
    params: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "response": self.response.to_dict(),
            "apiNode": self.api_node.to_dict(),
            "finalNode": self.final_node.to_dict(),
            "executionOrder": [node.to_dict() for node in self.execution_order],
            "params": self.params,
        }


def _is_rest_binding(node: Node) -> bool:
    data = node.data
    return (
        node.kind is NodeKind.API_BINDING
        and isinstance(data, ApiBindingData)
        and data.protocol is ApiProtocol.REST
        and node.type in REST_BLOCK_TYPES
        and bool(data.method)
        and bool(data.route)
    )


class RequestRouter:
    """Routes simulated REST requests and interprets the bound function block.

    Example:
        >>> router = RequestRouter(budget=Budget(max_steps=100))
        >>> result = router.execute_rest_request(graphs, "GET", "/users/42")
        >>> result.response.status, result.params
        (200, {'id': '42'})
    """

    def __init__(
        self,
        budget: Budget | None = None,
        planner: ExecutionPlanner | None = None,
        queues: InMemoryQueueBroker | None = None,
    ):
        self.budget = budget or Budget()
        self.planner = planner or ExecutionPlanner()
        self.queues = queues

    def match(self, collection: GraphCollection, method: str, path: str) -> RouteMatch | None:
        """Find the most specific REST binding for method and path."""
        method = method.upper()
        candidates: list[tuple[tuple[int, int, int], RouteMatch]] = []

        for position, node in enumerate(collection.nodes):
            if not _is_rest_binding(node):
                continue
            data = cast(ApiBindingData, node.data)
            if data.method != method:
                continue
            template = RouteTemplate.parse(data.route or "/")
            params = template.match(path)
            if params is None:
                continue
            rank = (-template.literal_count, template.catch_all_count, position)
            candidates.append((rank, RouteMatch(node=node, params=params, template=template)))

        if not candidates:
            return None
        candidates.sort(key=lambda candidate: candidate[0])
        return candidates[0][1]

    def execute_rest_request(
        self,
        graphs: GraphCollection,
        method: str,
        path: str,
        payload: Any = None,
        query: Mapping[str, Any] | None = None,
    ) -> FlowResult | None:
        """Match a request and interpret the bound function block.

        Args:
            graphs: Active collection.
            method: HTTP method (case-insensitive).
            path: Request path.
            payload: Parsed JSON body, if any.
            query: Query string values.

        Returns:
            FlowResult, or None when no binding matches or the binding's
            function block does not resolve. Step failures come back as a
            500 FlowResult.

        Raises:
            CyclicGraphError: If the collection cannot be ordered.
        """
        route = self.match(graphs, method, path)
        if route is None:
            logger.debug("route_not_matched: %s %s", method.upper(), path)
            return None

        # match() only returns REST bindings
        data = cast(ApiBindingData, route.node.data)
        process = graphs.get_node(data.process_ref) if data.process_ref else None
        if process is None or process.kind is not NodeKind.PROCESS:
            logger.debug("binding_unbound: api=%s process_ref=%s", route.node.id, data.process_ref)
            return None

        order = self.planner.plan(graphs)
        interpreter = StepInterpreter(graphs, budget=self.budget, queues=self.queues)

        try:
            result = interpreter.run(
                process,
                params=route.params,
                query=query,
                body=payload,
                success_status=data.success_status,
            )
            response = result.response
            final_node = result.final_node
        except StepExecutionError as err:
            logger.warning(
                "step_failed: node=%s step=%s code=%s: %s",
                err.node_id,
                err.step_id,
                err.reason,
                err,
            )
            body = err.to_dict()
            body["path"] = normalize_path(path)
            response = HttpResponse(status=500, body=body)
            final_node = graphs.get_node(err.node_id) if err.node_id else None
            final_node = final_node or process

        return FlowResult(
            response=response,
            api_node=route.node.summary(),
            final_node=final_node.summary(),
            execution_order=[entry.node.summary() for entry in order],
            params=route.params,
        )


def execute_rest_request(
    graphs: GraphCollection,
    method: str,
    path: str,
    payload: Any = None,
    query: Mapping[str, Any] | None = None,
) -> FlowResult | None:
    """Convenience wrapper around RequestRouter().execute_rest_request()."""
    return RequestRouter().execute_rest_request(graphs, method, path, payload=payload, query=query)
