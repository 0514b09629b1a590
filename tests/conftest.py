"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from archsim.core.graph.model import GraphCollection


def api(
    node_id: str,
    method: str,
    route: str,
    process_ref: str | None,
    label: str = "",
    block_type: str | None = "api_rest",
    **data: Any,
) -> dict[str, Any]:
    """Editor payload of a REST API binding."""
    node: dict[str, Any] = {
        "id": node_id,
        "data": {
            "kind": "api_binding",
            "label": label or f"{method} {route}",
            "protocol": "rest",
            "method": method,
            "route": route,
            "processRef": process_ref,
            **data,
        },
    }
    if block_type:
        node["type"] = block_type
    return node


def process(node_id: str, steps: list[dict[str, Any]], label: str = "") -> dict[str, Any]:
    """Editor payload of a function block."""
    return {"id": node_id, "data": {"kind": "process", "label": label or node_id, "steps": steps}}


def database(node_id: str, label: str = "", tables: list[str] | None = None) -> dict[str, Any]:
    return {
        "id": node_id,
        "data": {"kind": "database", "label": label or node_id, "tables": tables or []},
    }


def infra(node_id: str, resource_type: str = "ec2", label: str = "") -> dict[str, Any]:
    return {
        "id": node_id,
        "data": {"kind": "infra", "label": label or node_id, "resourceType": resource_type},
    }


def queue(node_id: str, label: str = "") -> dict[str, Any]:
    return {"id": node_id, "data": {"kind": "queue", "label": label or node_id}}


def service(
    node_id: str,
    api_refs: list[str] | None = None,
    function_refs: list[str] | None = None,
    data_refs: list[str] | None = None,
    compute_ref: str | None = None,
    allow_direct_db_access: bool = False,
) -> dict[str, Any]:
    return {
        "id": node_id,
        "data": {
            "kind": "service_boundary",
            "label": node_id,
            "apiRefs": api_refs or [],
            "functionRefs": function_refs or [],
            "dataRefs": data_refs or [],
            "computeRef": compute_ref,
            "communication": {"allowDirectDbAccess": allow_direct_db_access},
        },
    }


def edge(source: str, target: str) -> dict[str, str]:
    return {"source": source, "target": target}


def step(step_id: str, kind: str, ref: str | None = None, **config: Any) -> dict[str, Any]:
    raw: dict[str, Any] = {"id": step_id, "kind": kind}
    if ref is not None:
        raw["ref"] = ref
    if config:
        raw["config"] = config
    return raw


def collection(**tabs: dict[str, Any]) -> GraphCollection:
    """Parse tab payloads into a GraphCollection."""
    return GraphCollection.from_dict(tabs)


class GraphBuilder:
    """Payload builders, exposed to tests through the `build` fixture."""

    api = staticmethod(api)
    process = staticmethod(process)
    database = staticmethod(database)
    infra = staticmethod(infra)
    queue = staticmethod(queue)
    service = staticmethod(service)
    edge = staticmethod(edge)
    step = staticmethod(step)
    collection = staticmethod(collection)


@pytest.fixture
def build() -> type[GraphBuilder]:
    return GraphBuilder


@pytest.fixture
def health_payload() -> dict[str, Any]:
    """Single-route graph answering POST /mock/health."""
    return {
        "graphs": {
            "api": {
                "nodes": [
                    api("health-api", "POST", "/mock/health", "health-fn"),
                    process(
                        "health-fn",
                        [step("respond", "return", body={"ok": True, "source": "mock-graph"})],
                    ),
                ],
                "edges": [edge("health-api", "health-fn")],
            }
        }
    }


@pytest.fixture
def users_payload() -> dict[str, Any]:
    """Users service spread over several tabs, with one service boundary."""
    return {
        "graphs": {
            "api": {
                "nodes": [
                    api("get-user", "GET", "/users/:id", "load-user"),
                    api("get-active", "GET", "/users/active", "list-active"),
                    api("create-user", "POST", "/users", "save-user", responses={"success": {"statusCode": 201}}),
                ],
                "edges": [
                    edge("get-user", "load-user"),
                    edge("get-active", "list-active"),
                    edge("create-user", "save-user"),
                ],
            },
            "functions": {
                "nodes": [
                    process(
                        "load-user",
                        [
                            step("load", "query", "users-db", operation="select", where={"id": "$params.id"}),
                            step("respond", "return", body={"id": "$params.id", "found": "$steps.load.where.id"}),
                        ],
                    ),
                    process(
                        "list-active",
                        [step("respond", "return", body={"active": True})],
                    ),
                    process(
                        "save-user",
                        [
                            step("validate", "condition", requiredFields=["name"]),
                            step("insert", "db_operation", "Users", operation="create"),
                            step("respond", "return", body="$steps.insert.record"),
                        ],
                    ),
                ],
                "edges": [
                    edge("load-user", "users-db"),
                    edge("save-user", "users-db"),
                ],
            },
            "database": {
                "nodes": [database("users-db", label="Users", tables=["users"])],
                "edges": [edge("users-db", "app-host")],
            },
            "infra": {
                "nodes": [infra("app-host", "ec2")],
                "edges": [],
            },
            "services": {
                "nodes": [
                    service(
                        "users-svc",
                        api_refs=["get-user", "get-active", "create-user"],
                        function_refs=["load-user", "list-active", "save-user"],
                        data_refs=["users-db"],
                        compute_ref="app-host",
                    )
                ],
                "edges": [],
            },
        }
    }


@pytest.fixture
def health_graphs(health_payload) -> GraphCollection:
    return GraphCollection.from_dict(health_payload)


@pytest.fixture
def users_graphs(users_payload) -> GraphCollection:
    return GraphCollection.from_dict(users_payload)
