"""Error types for the simulation runtime.

Structural errors (malformed or cyclic graphs) are fatal to the operation
that found them. Step errors stay local to one simulated request.
Routing misses and policy violations are values, not exceptions.
"""

from __future__ import annotations

from typing import Any


class ArchsimError(Exception):
    """Base error for archsim operations.

    Attributes:
        code: Machine-readable error code.
    """

    code = "archsim_error"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable error payload."""
        return {"error": self.code, "message": str(self)}


class MalformedGraphError(ArchsimError):
    """Raised when a payload cannot be parsed into a GraphCollection.

    Attributes:
        path: Dotted location of the offending value (e.g. graphs.api.nodes[0]).
    """

    code = "invalid_graph_payload"

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.path:
            data["path"] = self.path
        return data


class CyclicGraphError(ArchsimError):
    """Raised when no topological order exists.

    Attributes:
        node_ids: Nodes left with unresolved dependencies.
    """

    code = "cyclic_graph"

    def __init__(self, node_ids: list[str]):
        self.node_ids = list(node_ids)
        preview = ", ".join(self.node_ids[:10])
        if len(self.node_ids) > 10:
            preview += ", ..."
        super().__init__(f"Graph contains a cycle among {len(self.node_ids)} nodes: {preview}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["nodes"] = self.node_ids
        return data


class StepExecutionError(ArchsimError):
    """Raised when a single function-block step cannot be executed.

    Attributes:
        node_id: The function block (process node) being interpreted.
        step_id: The failing step.
        reason: Short machine-readable reason (e.g. "missing_ref").
    """

    code = "step_execution_failed"

    def __init__(
        self,
        message: str,
        node_id: str | None = None,
        step_id: str | None = None,
        reason: str = "invalid_step",
    ):
        self.node_id = node_id
        self.step_id = step_id
        self.reason = reason
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"code": self.reason, "node": self.node_id, "step": self.step_id})
        return data


class BudgetExceededError(StepExecutionError):
    """Raised when interpretation exceeds its execution budget."""

    def __init__(self, message: str, node_id: str | None = None, step_id: str | None = None):
        super().__init__(message, node_id=node_id, step_id=step_id, reason="budget_exceeded")
