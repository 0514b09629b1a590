"""Service boundary analyzer - ownership and isolation policy checks.

A service boundary declares which APIs, function blocks and data models it
owns and which compute resource hosts it. The analyzer reports:

- broken declarations (missing refs, missing compute host)
- shared ownership (one resource claimed by two services)
- isolation breaches (an API invoking another service's function, a function
  calling or querying another service's function/data directly)

Only ERROR findings are load-bearing: they block simulated requests.
WARNING and INFO findings are advisory.

The analysis is a pure function of the graph: no I/O, deterministic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from archsim.core.graph.model import (
    ApiBindingData,
    GraphCollection,
    InfraData,
    Node,
    NodeKind,
    ProcessData,
    ServiceBoundaryData,
    StepKind,
    walk_steps,
)
from archsim.core.types import Issue, Severity, make_issue

logger = logging.getLogger(__name__)

_CALL_KINDS = frozenset({StepKind.CALL_FUNCTION, StepKind.REF})
_QUERY_KINDS = frozenset({StepKind.QUERY, StepKind.DB_OPERATION})


@dataclass(frozen=True)
class ServiceSummary:
    """What one service boundary declares."""

    id: str
    label: str
    api_count: int
    function_count: int
    data_count: int
    compute_ref: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "apiCount": self.api_count,
            "functionCount": self.function_count,
            "dataCount": self.data_count,
            "computeRef": self.compute_ref,
        }


@dataclass(frozen=True)
class BoundaryReport:
    """Result of a boundary analysis."""

    issues: tuple[Issue, ...] = ()
    services: tuple[ServiceSummary, ...] = field(default_factory=tuple)

    @property
    def errors(self) -> list[Issue]:
        return [issue for issue in self.issues if issue.is_error]

    @property
    def blocking(self) -> bool:
        return any(issue.is_error for issue in self.issues)

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [issue.to_dict() for issue in self.issues],
            "services": [service.to_dict() for service in self.services],
        }


class ServiceBoundaryAnalyzer:
    """Checks service ownership and isolation rules.

    Example:
        >>> report = ServiceBoundaryAnalyzer().analyze(graphs)
        >>> [issue.code for issue in report.errors]
        ['service.compute_missing']
    """

    def analyze(self, collection: GraphCollection) -> BoundaryReport:
        boundaries = collection.nodes_of_kind(NodeKind.SERVICE_BOUNDARY)
        apis = collection.nodes_of_kind(NodeKind.API_BINDING)
        functions = collection.nodes_of_kind(NodeKind.PROCESS)
        databases = collection.nodes_of_kind(NodeKind.DATABASE)

        services = tuple(
            ServiceSummary(
                id=node.id,
                label=node.display_label,
                api_count=len(node.data.api_refs),
                function_count=len(node.data.function_refs),
                data_count=len(node.data.data_refs),
                compute_ref=node.data.compute_ref,
            )
            for node in boundaries
            if isinstance(node.data, ServiceBoundaryData)
        )

        if not boundaries:
            issue = make_issue(
                Severity.INFO,
                "service.none_defined",
                "No service boundaries are defined; ownership rules are not enforced",
            )
            return BoundaryReport(issues=(issue,), services=services)

        issues: list[Issue] = []
        api_owner: dict[str, str] = {}
        function_owner: dict[str, str] = {}
        data_owner: dict[str, str] = {}

        for boundary in boundaries:
            issues.extend(self._check_declaration(collection, boundary))
            data = boundary.data
            if not isinstance(data, ServiceBoundaryData):
                continue
            issues.extend(
                self._claim(collection, boundary, data.api_refs, NodeKind.API_BINDING, "api", api_owner)
            )
            issues.extend(
                self._claim(
                    collection, boundary, data.function_refs, NodeKind.PROCESS, "function", function_owner
                )
            )
            issues.extend(
                self._claim(collection, boundary, data.data_refs, NodeKind.DATABASE, "data", data_owner)
            )

        for resources, owners, noun in (
            (apis, api_owner, "api"),
            (functions, function_owner, "function"),
            (databases, data_owner, "data"),
        ):
            for resource in resources:
                if resource.id not in owners:
                    issues.append(
                        make_issue(
                            Severity.WARNING,
                            f"service.{noun}_unowned",
                            f"{_NOUNS[noun]} \"{resource.display_label}\" is not assigned to any service",
                            [resource.id],
                        )
                    )

        issues.extend(self._check_api_bindings(apis, api_owner, function_owner))
        issues.extend(self._check_function_isolation(collection, functions, function_owner, data_owner))

        report = BoundaryReport(issues=tuple(issues), services=services)
        if report.blocking:
            logger.debug("boundary_violations: count=%d", len(report.errors))
        return report

    def _check_declaration(self, collection: GraphCollection, boundary: Node) -> list[Issue]:
        data = boundary.data
        issues: list[Issue] = []
        if not isinstance(data, ServiceBoundaryData):
            return issues

        if data.allow_direct_db_access:
            issues.append(
                make_issue(
                    Severity.ERROR,
                    "service.direct_db_disallowed",
                    f"Service \"{boundary.display_label}\" enables direct DB sharing, which is disallowed",
                    [boundary.id],
                    detail="Use API, queue, or event bus communication.",
                )
            )

        compute = collection.get_node(data.compute_ref) if data.compute_ref else None
        if compute is None or not isinstance(compute.data, InfraData) or not compute.data.is_compute:
            issues.append(
                make_issue(
                    Severity.ERROR,
                    "service.compute_missing",
                    f"Service \"{boundary.display_label}\" must bind to a valid compute resource",
                    [boundary.id, data.compute_ref or ""],
                )
            )

        return issues

    def _claim(
        self,
        collection: GraphCollection,
        boundary: Node,
        refs: tuple[str, ...],
        kind: NodeKind,
        noun: str,
        owners: dict[str, str],
    ) -> list[Issue]:
        """Record ownership of refs, reporting missing and shared resources."""
        issues: list[Issue] = []
        for ref in refs:
            node = collection.get_node(ref)
            if node is None or node.kind is not kind:
                issues.append(
                    make_issue(
                        Severity.ERROR,
                        f"service.{noun}_missing",
                        f"Service \"{boundary.display_label}\" references missing "
                        f"{_NOUNS[noun].lower()} \"{ref}\"",
                        [boundary.id, ref],
                    )
                )
                continue

            existing = owners.get(ref)
            if existing and existing != boundary.id:
                issues.append(
                    make_issue(
                        Severity.ERROR,
                        f"service.{noun}_shared",
                        f"{_NOUNS[noun]} \"{ref}\" is shared across services ({existing}, {boundary.id})",
                        [ref, existing, boundary.id],
                    )
                )
            else:
                owners[ref] = boundary.id
        return issues

    def _check_api_bindings(
        self,
        apis: list[Node],
        api_owner: dict[str, str],
        function_owner: dict[str, str],
    ) -> list[Issue]:
        issues: list[Issue] = []
        for api in apis:
            data = api.data
            if not isinstance(data, ApiBindingData):
                continue
            source_service = api_owner.get(api.id)
            target_service = function_owner.get(data.process_ref or "")
            if source_service and target_service and source_service != target_service:
                issues.append(
                    make_issue(
                        Severity.ERROR,
                        "service.api_function_cross_boundary",
                        f"API \"{api.display_label}\" invokes function \"{data.process_ref}\" "
                        f"owned by another service ({source_service} -> {target_service})",
                        [api.id, data.process_ref or "", source_service, target_service],
                    )
                )
        return issues

    def _check_function_isolation(
        self,
        collection: GraphCollection,
        functions: list[Node],
        function_owner: dict[str, str],
        data_owner: dict[str, str],
    ) -> list[Issue]:
        issues: list[Issue] = []
        for fn in functions:
            source_service = function_owner.get(fn.id)
            if not source_service:
                continue
            data = fn.data
            if not isinstance(data, ProcessData):
                continue

            for step in walk_steps(data.steps):
                if not step.ref:
                    continue

                if step.kind in _CALL_KINDS:
                    target_service = function_owner.get(step.ref)
                    if target_service and target_service != source_service:
                        issues.append(
                            make_issue(
                                Severity.ERROR,
                                "service.cross_function_ref",
                                "Cross-service direct function access is disallowed "
                                f"({source_service} -> {target_service})",
                                [fn.id, step.ref, source_service, target_service],
                                detail="Use API, queue, or event bus communication.",
                            )
                        )

                elif step.kind in _QUERY_KINDS:
                    database = collection.find_by_reference(step.ref, NodeKind.DATABASE)
                    target_service = data_owner.get(database.id) if database else None
                    if target_service and target_service != source_service:
                        issues.append(
                            make_issue(
                                Severity.ERROR,
                                "service.cross_data_access",
                                f"Function \"{fn.display_label}\" accesses data \"{database.id}\" "
                                f"owned by another service ({source_service} -> {target_service})",
                                [fn.id, database.id, source_service, target_service],
                                detail="Route data access through the owning service's API or a queue.",
                            )
                        )
        return issues


_NOUNS = {"api": "API", "function": "Function", "data": "Data model"}


def analyze(collection: GraphCollection) -> BoundaryReport:
    """Convenience wrapper around ServiceBoundaryAnalyzer().analyze()."""
    return ServiceBoundaryAnalyzer().analyze(collection)
