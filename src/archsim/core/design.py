"""Design-system report - deploy readiness of an architecture graph.

Combines runtime dependency checks (API -> Function -> Data -> Infra) with
the service boundary analysis into one report the editor can show before
deploying: layer counts, the guided workflow stages, and the blockers.

The report is advisory. Only service boundary errors gate simulated requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from archsim.core.boundary import BoundaryReport, ServiceBoundaryAnalyzer
from archsim.core.graph.model import (
    ApiBindingData,
    GraphCollection,
    InfraData,
    NodeKind,
    ProcessData,
    StepKind,
    walk_steps,
)
from archsim.core.types import Issue, Severity, make_issue

StageStatus = Literal["complete", "incomplete", "blocked"]

DEPENDENCY_DIRECTION = "API -> Functional -> Data -> Infra"

SERVICE_RULES = (
    "Each service owns its API, functions, and data",
    "No direct DB sharing across services",
    "Cross-service communication only via API, queue, or event bus",
)

_EXTERNAL_TARGET_KINDS = frozenset({NodeKind.INFRA, NodeKind.QUEUE, NodeKind.API_BINDING})


@dataclass(frozen=True)
class WorkflowStage:
    id: str
    title: str
    status: StageStatus
    detail: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "status": self.status, "detail": self.detail}


@dataclass(frozen=True)
class DesignReport:
    """Deploy readiness report for a collection.

    Attributes:
        layer_counts: Number of nodes per architecture layer.
        runtime_issues: Dependency findings (unbound APIs, missing refs).
        boundary: Service boundary analysis.
        stages: Guided workflow stages with their status.
        ready: Whether the design can be deployed.
    """

    layer_counts: dict[str, int]
    runtime_issues: tuple[Issue, ...]
    boundary: BoundaryReport
    stages: tuple[WorkflowStage, ...]
    ready: bool

    @property
    def issues(self) -> list[Issue]:
        return [*self.runtime_issues, *self.boundary.issues]

    @property
    def blockers(self) -> list[str]:
        return [issue.title for issue in self.issues if issue.is_error]

    def to_dict(self) -> dict[str, Any]:
        errors = [issue for issue in self.issues if issue.severity is Severity.ERROR]
        warnings = [issue for issue in self.issues if issue.severity is Severity.WARNING]
        return {
            "runtimeModel": {
                "dependencyDirection": DEPENDENCY_DIRECTION,
                "layerCounts": self.layer_counts,
                "issues": [issue.to_dict() for issue in self.runtime_issues],
            },
            "workflowModel": {
                "orderedSteps": [stage.title.split(". ", 1)[-1] for stage in self.stages],
                "stages": [stage.to_dict() for stage in self.stages],
            },
            "serviceModel": {
                "rules": list(SERVICE_RULES),
                "services": [service.to_dict() for service in self.boundary.services],
                "issues": [issue.to_dict() for issue in self.boundary.issues],
            },
            "deploy": {
                "ready": self.ready,
                "blockers": self.blockers,
                "errorCount": len(errors),
                "warningCount": len(warnings),
            },
        }


def _runtime_issues(collection: GraphCollection) -> list[Issue]:
    issues: list[Issue] = []

    for api in collection.nodes_of_kind(NodeKind.API_BINDING):
        data = api.data
        if not isinstance(data, ApiBindingData):
            continue
        if not data.process_ref:
            issues.append(
                make_issue(
                    Severity.ERROR,
                    "api.unbound_function",
                    f"API \"{api.display_label}\" is not bound to a function block",
                    [api.id],
                )
            )
            continue
        target = collection.get_node(data.process_ref)
        if target is None or target.kind is not NodeKind.PROCESS:
            issues.append(
                make_issue(
                    Severity.ERROR,
                    "api.invalid_function_ref",
                    f"API \"{api.display_label}\" points to missing function \"{data.process_ref}\"",
                    [api.id, data.process_ref],
                )
            )

    for fn in collection.nodes_of_kind(NodeKind.PROCESS):
        data = fn.data
        if not isinstance(data, ProcessData):
            continue
        for step in walk_steps(data.steps):
            if not step.ref:
                continue

            if step.kind in (StepKind.QUERY, StepKind.DB_OPERATION):
                if collection.find_by_reference(step.ref, NodeKind.DATABASE) is None:
                    issues.append(
                        make_issue(
                            Severity.ERROR,
                            "function.unresolved_data_dependency",
                            f"Function \"{fn.display_label}\" references missing data model \"{step.ref}\"",
                            [fn.id, step.ref],
                        )
                    )

            elif step.kind in (StepKind.CALL_FUNCTION, StepKind.REF):
                target = collection.get_node(step.ref)
                if target is None or target.kind is not NodeKind.PROCESS:
                    issues.append(
                        make_issue(
                            Severity.ERROR,
                            "function.unresolved_function_ref",
                            f"Function \"{fn.display_label}\" calls unknown function \"{step.ref}\"",
                            [fn.id, step.ref],
                        )
                    )

            elif step.kind is StepKind.EXTERNAL_CALL:
                target = collection.get_node(step.ref)
                if target is None or target.kind not in _EXTERNAL_TARGET_KINDS:
                    issues.append(
                        make_issue(
                            Severity.ERROR,
                            "function.unresolved_infra_dependency",
                            f"Function \"{fn.display_label}\" references missing infra resource \"{step.ref}\"",
                            [fn.id, step.ref],
                        )
                    )

    databases = collection.nodes_of_kind(NodeKind.DATABASE)
    has_compute = any(
        isinstance(node.data, InfraData) and node.data.is_compute
        for node in collection.nodes_of_kind(NodeKind.INFRA)
    )
    if databases and not has_compute:
        issues.append(
            make_issue(
                Severity.ERROR,
                "data.no_compute_host",
                "Data layer exists but no compute infrastructure host is configured",
                [db.id for db in databases],
            )
        )

    return issues


def analyze_design(collection: GraphCollection) -> DesignReport:
    """Build the design-system report for a collection."""
    boundary = ServiceBoundaryAnalyzer().analyze(collection)
    runtime_issues = _runtime_issues(collection)

    apis = collection.nodes_of_kind(NodeKind.API_BINDING)
    functions = collection.nodes_of_kind(NodeKind.PROCESS)
    databases = collection.nodes_of_kind(NodeKind.DATABASE)
    infra = collection.nodes_of_kind(NodeKind.INFRA)
    queues = collection.nodes_of_kind(NodeKind.QUEUE)
    boundaries = collection.nodes_of_kind(NodeKind.SERVICE_BOUNDARY)

    unbound_codes = {"api.unbound_function", "api.invalid_function_ref"}
    has_apis = bool(apis)
    all_apis_bound = has_apis and not any(i.code in unbound_codes for i in runtime_issues)
    has_logic = any(isinstance(fn.data, ProcessData) and fn.data.steps for fn in functions)
    has_data = bool(databases)
    has_infra = bool(infra)
    has_compute = any(isinstance(node.data, InfraData) and node.data.is_compute for node in infra)
    services_assigned = bool(boundaries) and not any(
        issue.code.endswith("_unowned") for issue in boundary.issues
    )
    error_free = not any(issue.is_error for issue in [*runtime_issues, *boundary.issues])

    ready = (
        error_free
        and all_apis_bound
        and has_logic
        and has_data
        and has_compute
        and services_assigned
    )

    def stage(stage_id: str, title: str, status: StageStatus, done: str, todo: str) -> WorkflowStage:
        return WorkflowStage(stage_id, title, status, done if status == "complete" else todo)

    stages = (
        stage(
            "create_api",
            "1. Create API",
            "complete" if has_apis else "incomplete",
            "API contracts are defined",
            "Add at least one API block",
        ),
        stage(
            "attach_function",
            "2. Attach Function",
            "complete" if all_apis_bound else "blocked" if has_apis else "incomplete",
            "All APIs are bound to function blocks",
            "Each API must reference a function block",
        ),
        stage(
            "define_function_logic",
            "3. Define Function Logic",
            "complete" if has_logic else "incomplete",
            "Function blocks define their steps",
            "Add steps to at least one function block",
        ),
        stage(
            "define_database",
            "4. Define Database",
            "complete" if has_data else "incomplete",
            "Data models are defined",
            "Add database models",
        ),
        stage(
            "configure_infra",
            "5. Configure Infrastructure",
            "complete" if has_compute else "blocked" if has_infra else "incomplete",
            "Infrastructure and compute hosts are configured",
            "Configure infra and at least one compute host",
        ),
        stage(
            "assign_services",
            "6. Assign Services",
            "complete" if services_assigned and not boundary.blocking else "blocked",
            "Service ownership and compute assignments are valid",
            "Assign API/functions/data to service boundaries and bind compute",
        ),
        stage(
            "deploy",
            "7. Deploy",
            "complete" if ready else "blocked",
            "All dependency and ownership checks passed",
            "Resolve blocking validation issues before deploy",
        ),
    )

    return DesignReport(
        layer_counts={
            "api": len(apis),
            "functional": len(functions),
            "data": len(databases),
            "infra": len(infra) + len(queues),
            "serviceBoundaries": len(boundaries),
        },
        runtime_issues=tuple(runtime_issues),
        boundary=boundary,
        stages=stages,
        ready=ready,
    )
