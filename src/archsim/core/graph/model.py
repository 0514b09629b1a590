"""Typed graph model - nodes, edges, graphs and the per-tab collection.

Pure data with validation predicates and read-only traversal helpers.
Editor payloads are validated by the pydantic models in the payload schema
section and converted into the frozen dataclasses used everywhere else.
Any validation failure surfaces as MalformedGraphError with the location
of the offending value.

Payload shape (one entry per design tab, in declaration order):

    {
        "api": {
            "nodes": [{"id": "get-user", "type": "api_rest",
                       "data": {"kind": "api_binding", "label": "Get user",
                                "protocol": "rest", "method": "GET",
                                "route": "/users/:id", "processRef": "load-user"}}],
            "edges": [{"source": "get-user", "target": "load-user"}],
        },
        "functions": {...},
    }

Keys are camelCase as the editor sends them; snake_case is accepted too.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from archsim.core.errors import MalformedGraphError


class NodeKind(Enum):
    """Kinds of architecture blocks on the canvas."""

    API_BINDING = "api_binding"
    PROCESS = "process"  # function block
    DATABASE = "database"
    QUEUE = "queue"
    INFRA = "infra"
    SERVICE_BOUNDARY = "service_boundary"


class ApiProtocol(Enum):
    """Protocols an API binding can expose."""

    REST = "rest"
    WS = "ws"
    SOCKET_IO = "socket.io"
    WEBRTC = "webrtc"
    GRAPHQL = "graphql"
    GRPC = "grpc"
    SSE = "sse"
    WEBHOOK = "webhook"


class StepKind(Enum):
    """Kinds of steps inside a function block."""

    RETURN = "return"
    CALL_FUNCTION = "call_function"
    QUERY = "query"
    BRANCH = "branch"
    CONDITION = "condition"
    TRANSFORM = "transform"
    COMPUTE = "compute"
    EXTERNAL_CALL = "external_call"
    REF = "ref"  # editor name for call_function
    DB_OPERATION = "db_operation"  # editor name for query


# Infra resource types that can host a service
COMPUTE_RESOURCE_TYPES = frozenset({"ec2", "lambda", "eks", "hpc"})


# =============================================================================
# Kind-specific data
# =============================================================================


@dataclass(frozen=True)
class ApiBindingData:
    """API binding: an externally reachable endpoint.

    Attributes:
        protocol: Wire protocol (only REST bindings are routable).
        method: HTTP method (upper case) for REST bindings.
        route: Path template, e.g. "/users/:id".
        process_ref: Id of the function block this binding invokes.
        success_status: Declared success status code, if any.
    """

    protocol: ApiProtocol
    method: str | None = None
    route: str | None = None
    process_ref: str | None = None
    success_status: int | None = None


@dataclass(frozen=True)
class Step:
    """A single step of a function block.

    Attributes:
        id: Step identifier (unique within its function block).
        kind: What the step does.
        ref: Referenced node id (function, database, infra) where relevant.
        config: Step-specific structured payload.
        description: Free-form note from the editor.
    """

    id: str
    kind: StepKind
    ref: str | None = None
    config: dict[str, Any] = field(default_factory=dict)
    description: str | None = None

    @classmethod
    def from_dict(cls, raw: Any, path: str) -> Step:
        """Validate one raw step (used for nested branch steps).

        Raises:
            MalformedGraphError: If raw is not a valid step.
        """
        try:
            return StepPayload.model_validate(raw).to_step()
        except ValidationError as err:
            raise _malformed(err, path) from err


def walk_steps(steps: tuple[Step, ...] | list[Step]) -> Iterator[Step]:
    """Yield steps depth-first, descending into branch then/else lists.

    Nested entries that do not parse are skipped here; the interpreter
    reports them as step errors when it reaches them.
    """
    for step in steps:
        yield step
        if step.kind is not StepKind.BRANCH:
            continue
        for arm in ("then", "else"):
            nested = step.config.get(arm)
            if not isinstance(nested, list):
                continue
            for i, raw in enumerate(nested):
                try:
                    child = Step.from_dict(raw, f"{step.id}.{arm}[{i}]")
                except MalformedGraphError:
                    continue
                yield from walk_steps([child])


@dataclass(frozen=True)
class ProcessData:
    """Function block: an ordered list of steps."""

    steps: tuple[Step, ...] = ()


@dataclass(frozen=True)
class DatabaseData:
    """Data model block."""

    db_type: str = "sql"
    tables: tuple[str, ...] = ()


@dataclass(frozen=True)
class QueueData:
    """Message queue block."""

    delivery: str = "at_least_once"


@dataclass(frozen=True)
class InfraData:
    """Infrastructure resource block."""

    resource_type: str = "generic"

    @property
    def is_compute(self) -> bool:
        """Whether this resource can host a service."""
        return self.resource_type in COMPUTE_RESOURCE_TYPES


@dataclass(frozen=True)
class ServiceBoundaryData:
    """Service boundary: declares ownership of APIs, functions and data."""

    api_refs: tuple[str, ...] = ()
    function_refs: tuple[str, ...] = ()
    data_refs: tuple[str, ...] = ()
    compute_ref: str | None = None
    allow_direct_db_access: bool = False


NodeData = Union[
    ApiBindingData,
    ProcessData,
    DatabaseData,
    QueueData,
    InfraData,
    ServiceBoundaryData,
]


# =============================================================================
# Payload schema
# =============================================================================


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
OptionalStr = Annotated[Union[str, None], AfterValidator(_blank_to_none)]

_KIND_TAGS = frozenset(kind.value for kind in NodeKind)


class _Payload(BaseModel):
    """Base for editor payload models.

    Fields are read by their camelCase alias or their own name. Unknown keys
    (canvas positions, styling) are kept and ignored.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)


class SuccessResponsePayload(_Payload):
    status_code: int | None = None


class ResponsesPayload(_Payload):
    success: SuccessResponsePayload | None = None


class _BlockPayload(_Payload):
    label: str = ""

    @field_validator("label", mode="before")
    @classmethod
    def label_default(cls, v: Any) -> Any:
        return "" if v is None else v


class ApiBindingPayload(_BlockPayload):
    """data of an api_binding node."""

    kind: Literal["api_binding"]
    protocol: ApiProtocol = ApiProtocol.REST
    method: OptionalStr = None
    route: OptionalStr = None
    process_ref: OptionalStr = None
    responses: ResponsesPayload | None = None

    def to_data(self) -> ApiBindingData:
        success = self.responses.success if self.responses else None
        return ApiBindingData(
            protocol=self.protocol,
            method=self.method.upper() if self.method else None,
            route=self.route,
            process_ref=self.process_ref,
            success_status=success.status_code if success else None,
        )


class StepPayload(_Payload):
    """One function-block step. config stays free-form per step kind."""

    id: NonEmptyStr
    kind: StepKind
    ref: OptionalStr = None
    config: dict[str, Any] = Field(default_factory=dict)
    description: OptionalStr = None

    @field_validator("config", mode="before")
    @classmethod
    def config_default(cls, v: Any) -> Any:
        return {} if v is None else v

    def to_step(self) -> Step:
        return Step(
            id=self.id,
            kind=self.kind,
            ref=self.ref,
            config=dict(self.config),
            description=self.description,
        )


class ProcessPayload(_BlockPayload):
    """data of a process (function block) node."""

    kind: Literal["process"]
    steps: list[StepPayload] = Field(default_factory=list)

    @field_validator("steps", mode="before")
    @classmethod
    def steps_default(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_data(self) -> ProcessData:
        return ProcessData(steps=tuple(step.to_step() for step in self.steps))


class DatabasePayload(_BlockPayload):
    """data of a database node. Tables are names or {"name": ...} objects."""

    kind: Literal["database"]
    db_type: str = "sql"
    tables: list[str] = Field(default_factory=list)

    @field_validator("db_type", mode="before")
    @classmethod
    def db_type_default(cls, v: Any) -> Any:
        return v or "sql"

    @field_validator("tables", mode="before")
    @classmethod
    def table_names(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [item.get("name") if isinstance(item, Mapping) else item for item in v]
        return v

    def to_data(self) -> DatabaseData:
        names = (name.strip() for name in self.tables)
        return DatabaseData(db_type=self.db_type, tables=tuple(name for name in names if name))


class QueuePayload(_BlockPayload):
    kind: Literal["queue"]
    delivery: OptionalStr = None

    def to_data(self) -> QueueData:
        return QueueData(delivery=self.delivery or "at_least_once")


class InfraPayload(_BlockPayload):
    kind: Literal["infra"]
    resource_type: OptionalStr = None

    def to_data(self) -> InfraData:
        return InfraData(resource_type=self.resource_type or "generic")


class CommunicationPayload(_Payload):
    allow_direct_db_access: bool = False


class ServiceBoundaryPayload(_BlockPayload):
    """data of a service_boundary node."""

    kind: Literal["service_boundary"]
    api_refs: list[str] = Field(default_factory=list)
    function_refs: list[str] = Field(default_factory=list)
    data_refs: list[str] = Field(default_factory=list)
    compute_ref: OptionalStr = None
    communication: CommunicationPayload = Field(default_factory=CommunicationPayload)

    @field_validator("api_refs", "function_refs", "data_refs", mode="before")
    @classmethod
    def refs_default(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("communication", mode="before")
    @classmethod
    def communication_default(cls, v: Any) -> Any:
        return {} if v is None else v

    def to_data(self) -> ServiceBoundaryData:
        def refs(values: list[str]) -> tuple[str, ...]:
            return tuple(value.strip() for value in values if value.strip())

        return ServiceBoundaryData(
            api_refs=refs(self.api_refs),
            function_refs=refs(self.function_refs),
            data_refs=refs(self.data_refs),
            compute_ref=self.compute_ref,
            allow_direct_db_access=self.communication.allow_direct_db_access,
        )


BlockPayload = Annotated[
    Union[
        ApiBindingPayload,
        ProcessPayload,
        DatabasePayload,
        QueuePayload,
        InfraPayload,
        ServiceBoundaryPayload,
    ],
    Field(discriminator="kind"),
]


class NodePayload(_Payload):
    """An editor node: {"id", "type"?, "data": {"kind", "label", ...}}.

    A flat {"id", "kind", "label", ...} object is accepted as well and
    validated as if its fields were nested under "data".
    """

    id: NonEmptyStr
    type: OptionalStr = None
    data: BlockPayload

    @model_validator(mode="before")
    @classmethod
    def nest_flat_node(cls, v: Any) -> Any:
        if not isinstance(v, Mapping) or "data" in v:
            return v
        nested: dict[str, Any] = {"data": dict(v)}
        for key in ("id", "type"):
            if key in v:
                nested[key] = v[key]
        return nested

    def to_node(self) -> Node:
        return Node(
            id=self.id,
            kind=NodeKind(self.data.kind),
            label=self.data.label.strip(),
            data=self.data.to_data(),
            type=self.type,
        )


class EdgePayload(_Payload):
    source: NonEmptyStr
    target: NonEmptyStr

    def to_edge(self) -> Edge:
        return Edge(source=self.source, target=self.target)


class GraphPayload(_Payload):
    """One design tab."""

    nodes: list[NodePayload] = Field(default_factory=list)
    edges: list[EdgePayload] = Field(default_factory=list)

    @field_validator("nodes", "edges", mode="before")
    @classmethod
    def list_default(cls, v: Any) -> Any:
        return [] if v is None else v

    def to_graph(self) -> Graph:
        return Graph(
            nodes=tuple(node.to_node() for node in self.nodes),
            edges=tuple(edge.to_edge() for edge in self.edges),
        )


def _error_path(prefix: str, loc: tuple[int | str, ...]) -> str:
    """Render a pydantic error location as a dotted path.

    The node kind that a tagged union inserts after "data" is dropped:
    ("nodes", 0, "data", "process", "steps", 0, "kind") becomes
    "<prefix>.nodes[0].data.steps[0].kind".
    """
    path = prefix
    previous: int | str | None = None
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif not (previous == "data" and part in _KIND_TAGS):
            path += f".{part}"
        previous = part
    return path


def _malformed(err: ValidationError, prefix: str) -> MalformedGraphError:
    errors = err.errors(include_url=False)
    first = errors[0]
    message = first["msg"]
    if len(errors) > 1:
        message += f" (and {len(errors) - 1} more)"
    return MalformedGraphError(message, _error_path(prefix, first["loc"]))


# =============================================================================
# Nodes, edges, graphs
# =============================================================================


@dataclass(frozen=True)
class ExecutionNode:
    """Lightweight projection of a node used in orders, events and results."""

    id: str
    kind: NodeKind
    label: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "kind": self.kind.value, "label": self.label}


@dataclass(frozen=True)
class Node:
    """A typed vertex of the design graph.

    Attributes:
        id: Unique id within its graph.
        kind: Node kind (selects the type of `data`).
        label: Display label from the editor (may be empty).
        data: Kind-specific payload.
        type: Canvas block type (e.g. "api_rest"), if the editor set one.
    """

    id: str
    kind: NodeKind
    label: str
    data: NodeData
    type: str | None = None

    @property
    def display_label(self) -> str:
        return self.label or self.id

    def summary(self) -> ExecutionNode:
        return ExecutionNode(id=self.id, kind=self.kind, label=self.display_label)


@dataclass(frozen=True)
class Edge:
    """Directed relation: source execution enables/precedes target."""

    source: str
    target: str


@dataclass(frozen=True)
class Graph:
    """One design tab: nodes in authoring order plus directed edges."""

    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()


@dataclass(frozen=True)
class GraphCollection:
    """All design tabs, treated as one logical backend.

    Tabs keep their declaration order. Node lookups span every tab; when the
    same id appears in several tabs the first occurrence wins.

    Example:
        >>> graphs = GraphCollection.from_dict(payload)
        >>> graphs.validate()
        []
        >>> [n.id for n in graphs.nodes_of_kind(NodeKind.API_BINDING)]
        ['get-user']
    """

    graphs: dict[str, Graph] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Any) -> GraphCollection:
        """Parse a collection payload, optionally wrapped as {"graphs": {...}}.

        Raises:
            MalformedGraphError: If the payload does not fit the typed shape
                or no tab contains nodes.
        """
        if not isinstance(payload, Mapping):
            raise MalformedGraphError(f"expected an object, got {type(payload).__name__}", "payload")
        if "graphs" in payload and isinstance(payload["graphs"], Mapping):
            payload = payload["graphs"]

        graphs: dict[str, Graph] = {}
        for tab, raw_graph in payload.items():
            if raw_graph is None:
                continue
            try:
                graph = GraphPayload.model_validate(raw_graph)
            except ValidationError as err:
                raise _malformed(err, f"graphs.{tab}") from err
            graphs[str(tab)] = graph.to_graph()

        if not any(graph.nodes for graph in graphs.values()):
            raise MalformedGraphError("at least one graph tab with nodes is required", "graphs")

        return cls(graphs=graphs)

    @property
    def tabs(self) -> list[str]:
        return list(self.graphs)

    @cached_property
    def nodes(self) -> tuple[Node, ...]:
        """Unique nodes flattened across tabs in authoring order."""
        seen: set[str] = set()
        ordered: list[Node] = []
        for graph in self.graphs.values():
            for node in graph.nodes:
                if node.id not in seen:
                    seen.add(node.id)
                    ordered.append(node)
        return tuple(ordered)

    @property
    def edges(self) -> tuple[Edge, ...]:
        """Every declared edge across tabs, resolvable or not."""
        return tuple(edge for graph in self.graphs.values() for edge in graph.edges)

    @cached_property
    def _node_index(self) -> dict[str, int]:
        return {node.id: i for i, node in enumerate(self.nodes)}

    @cached_property
    def resolved_edges(self) -> tuple[Edge, ...]:
        """Edges whose endpoints both exist, deduplicated, in declaration order."""
        index = self._node_index
        seen: set[Edge] = set()
        resolved: list[Edge] = []
        for edge in self.edges:
            if edge.source in index and edge.target in index and edge not in seen:
                seen.add(edge)
                resolved.append(edge)
        return tuple(resolved)

    @property
    def unresolved_edges(self) -> tuple[Edge, ...]:
        index = self._node_index
        return tuple(e for e in self.edges if e.source not in index or e.target not in index)

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes)

    def get_node(self, node_id: str) -> Node | None:
        position = self._node_index.get(node_id)
        return None if position is None else self.nodes[position]

    def position(self, node_id: str) -> int:
        """Authoring position of a node (flattened across tabs).

        Raises:
            KeyError: If the node does not exist.
        """
        return self._node_index[node_id]

    def nodes_of_kind(self, kind: NodeKind) -> list[Node]:
        return [node for node in self.nodes if node.kind is kind]

    def outgoing(self, node_id: str) -> list[Edge]:
        return [edge for edge in self.resolved_edges if edge.source == node_id]

    def incoming(self, node_id: str) -> list[Edge]:
        return [edge for edge in self.resolved_edges if edge.target == node_id]

    def find_by_reference(self, reference: str, kind: NodeKind) -> Node | None:
        """Resolve a step reference by node id, then by label."""
        node = self.get_node(reference)
        if node is not None and node.kind is kind:
            return node
        for candidate in self.nodes:
            if candidate.kind is kind and candidate.label == reference:
                return candidate
        return None

    def validate(self) -> list[str]:
        """Check structural well-formedness.

        Checks for:
        - Duplicate node ids within one graph
        - Edges whose source or target does not resolve

        Returns:
            List of problems (empty if well-formed).
        """
        errors: list[str] = []

        for tab, graph in self.graphs.items():
            seen: set[str] = set()
            for node in graph.nodes:
                if node.id in seen:
                    errors.append(f"Graph '{tab}' has duplicate node id '{node.id}'")
                seen.add(node.id)

        for edge in self.unresolved_edges:
            missing = [end for end in (edge.source, edge.target) if end not in self._node_index]
            errors.append(
                f"Edge {edge.source} -> {edge.target} references unknown node(s): "
                f"{', '.join(missing)}"
            )

        return errors
