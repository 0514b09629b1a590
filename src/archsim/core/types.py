"""Pure data types shared across archsim.core.

Simple dataclasses with no behavior coupling; safe to serialize and pass around.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Severity(Enum):
    """Severity of an analyzer finding. Only ERROR blocks execution."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Issue:
    """A finding about the design graph. Never mutates the graph.

    Attributes:
        severity: How serious the finding is.
        code: Machine-readable code, e.g. "service.api_shared".
        title: Human-readable summary.
        detail: Optional longer explanation.
        target: Primary node id the finding is about.
        refs: Every node id involved, primary first.
    """

    severity: Severity
    code: str
    title: str
    detail: str | None = None
    target: str | None = None
    refs: tuple[str, ...] = ()

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "severity": self.severity.value,
            "code": self.code,
            "title": self.title,
            "refs": list(self.refs),
        }
        if self.detail:
            data["detail"] = self.detail
        if self.target:
            data["target"] = self.target
        return data


def make_issue(
    severity: Severity,
    code: str,
    title: str,
    refs: list[str] | tuple[str, ...] = (),
    detail: str | None = None,
) -> Issue:
    """Build an Issue whose target is the first non-empty ref."""
    cleaned = tuple(ref for ref in refs if ref)
    return Issue(
        severity=severity,
        code=code,
        title=title,
        detail=detail,
        target=cleaned[0] if cleaned else None,
        refs=cleaned,
    )


@dataclass(frozen=True)
class HttpResponse:
    """A simulated HTTP response: status code plus JSON-shaped body."""

    status: int = 200
    body: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "body": self.body}
