"""Step interpreter - runs the steps of a function block.

A function block (process node) is an ordered list of steps. The interpreter
walks them over a scope:

    {
        "params": {...},   # route parameters
        "query": {...},    # query string
        "body": {...},     # request body (or call input for nested calls)
        "input": {...},    # same object as body, named for step configs
        "steps": {...},    # outputs of earlier steps, keyed by step id
        "vars": {...},     # values assigned by transform/compute steps
    }

String values starting with "$" are scope lookups ("$params.id",
"$steps.load.rows.0"); "$$" escapes a literal "$".

Interpretation is synchronous and in-memory. Databases, queues and infra
are simulated, so no step performs I/O. An external_call to a queue node
enqueues on the in-memory broker when the interpreter is given one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, cast

from archsim.core.budget import Budget, ResourceUsage
from archsim.core.errors import BudgetExceededError, MalformedGraphError, StepExecutionError
from archsim.core.graph.model import (
    DatabaseData,
    GraphCollection,
    Node,
    NodeKind,
    ProcessData,
    Step,
    StepKind,
)
from archsim.core.queues import InMemoryQueueBroker, queue_name
from archsim.core.types import HttpResponse

logger = logging.getLogger(__name__)

DB_OPERATIONS = ("select", "create", "update", "delete")

_EXTERNAL_TARGET_KINDS = frozenset({NodeKind.INFRA, NodeKind.QUEUE, NodeKind.API_BINDING})


@dataclass
class StepContext:
    """Context passed through step interpretation.

    StepContext is immutable by convention - use with_* methods to create
    modified copies for nested calls.

    Attributes:
        node: The function block being interpreted.
        scope: Lookup scope for "$" expressions.
        usage: Resource usage shared by the whole request.
        depth: Current call_function nesting depth (0 for the bound block).
        success_status: Status a bare return step answers with.
        strict: When False, condition steps are skipped instead of
            answering 400. Used by the deploy dry run, which has no input.
    """

    node: Node
    scope: dict[str, Any]
    usage: ResourceUsage
    depth: int = 0
    success_status: int | None = None
    strict: bool = True

    def with_call(self, node: Node, payload: Any) -> StepContext:
        """Create a context for a nested call into another function block."""
        scope = new_scope(
            params=self.scope.get("params"),
            query=self.scope.get("query"),
            body=payload,
        )
        return replace(self, node=node, scope=scope, depth=self.depth + 1, success_status=None)


@dataclass(frozen=True)
class StepOutcome:
    """Result of one step.

    Attributes:
        output: Value stored under steps.<id>.
        response: Set when the step halts the block with a response.
        responder: Id of the function block that produced the response.
    """

    output: Any = None
    response: HttpResponse | None = None
    responder: str | None = None


@dataclass(frozen=True)
class InterpretResult:
    """Response of a function block and the block that produced it."""

    response: HttpResponse
    final_node: Node
    steps_executed: int = 0
    outputs: dict[str, Any] = field(default_factory=dict)


def new_scope(
    params: Mapping[str, Any] | None = None,
    query: Mapping[str, Any] | None = None,
    body: Any = None,
) -> dict[str, Any]:
    """Build an interpretation scope. body and input name the same object."""
    payload = body if body is not None else {}
    return {
        "params": dict(params or {}),
        "query": dict(query or {}),
        "body": payload,
        "input": payload,
        "steps": {},
        "vars": {},
    }


def lookup(scope: Mapping[str, Any], path: str) -> Any:
    """Read a dotted path from the scope. Missing values resolve to None.

    Example:
        >>> lookup({"params": {"id": "42"}}, "params.id")
        '42'
    """
    current: Any = scope
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
        if current is None:
            return None
    return current


def resolve(value: Any, scope: Mapping[str, Any]) -> Any:
    """Resolve "$" expressions anywhere inside value."""
    if isinstance(value, str):
        if value.startswith("$$"):
            return value[1:]
        if value.startswith("$") and len(value) > 1:
            return lookup(scope, value[1:])
        return value
    if isinstance(value, Mapping):
        return {key: resolve(item, scope) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve(item, scope) for item in value]
    return value


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str | list | dict):
        return len(value) > 0
    return True


class StepInterpreter:
    """Interprets function blocks of one collection.

    Example:
        >>> interpreter = StepInterpreter(graphs, budget=Budget(max_steps=50))
        >>> result = interpreter.run(graphs.get_node("load-user"), params={"id": "42"})
        >>> result.response.status
        200
    """

    def __init__(
        self,
        collection: GraphCollection,
        budget: Budget | None = None,
        queues: InMemoryQueueBroker | None = None,
    ):
        self.collection = collection
        self.budget = budget or Budget()
        self.queues = queues
        self._handlers: dict[StepKind, Callable[[Step, StepContext], StepOutcome]] = {
            StepKind.RETURN: self._return,
            StepKind.CALL_FUNCTION: self._call_function,
            StepKind.REF: self._call_function,
            StepKind.QUERY: self._query,
            StepKind.DB_OPERATION: self._query,
            StepKind.BRANCH: self._branch,
            StepKind.CONDITION: self._condition,
            StepKind.TRANSFORM: self._transform,
            StepKind.COMPUTE: self._transform,
            StepKind.EXTERNAL_CALL: self._external_call,
        }

    def run(
        self,
        node: Node,
        params: Mapping[str, Any] | None = None,
        query: Mapping[str, Any] | None = None,
        body: Any = None,
        success_status: int | None = None,
        strict: bool = True,
    ) -> InterpretResult:
        """Interpret a function block for one request.

        Args:
            node: Process node to run.
            params: Route parameters.
            query: Query string values.
            body: Request body.
            success_status: Status for return steps without an explicit one.
            strict: Enforce condition steps. False skips them.

        Returns:
            The response and the block that produced it. A block that never
            reaches a return step answers 200 with an empty body.

        Raises:
            StepExecutionError: A step could not be executed or the budget
                was exceeded.
        """
        context = StepContext(
            node=node,
            scope=new_scope(params=params, query=query, body=body),
            usage=ResourceUsage(),
            success_status=success_status,
            strict=strict,
        )
        try:
            outcome = self._run_block(context)
        except RecursionError as err:
            # Deeply nested branch steps can outrun the interpreter stack
            raise BudgetExceededError(
                "Nesting limit exceeded: interpreter stack exhausted", node_id=node.id
            ) from err
        response = outcome.response or HttpResponse(status=200, body={})
        final_node = self.collection.get_node(outcome.responder) if outcome.responder else None
        logger.debug(
            "block_interpreted: node=%s status=%d steps=%d",
            node.id,
            response.status,
            context.usage.steps_executed,
        )
        return InterpretResult(
            response=response,
            final_node=final_node or node,
            steps_executed=context.usage.steps_executed,
            outputs=dict(context.scope["steps"]),
        )

    # -------------------------------------------------------------------------
    # Block and step execution
    # -------------------------------------------------------------------------

    def _run_block(self, context: StepContext) -> StepOutcome:
        data = context.node.data
        if not isinstance(data, ProcessData):
            raise StepExecutionError(
                f"Node '{context.node.id}' is not a function block",
                node_id=context.node.id,
                reason="not_a_function",
            )
        return self._run_steps(list(data.steps), context)

    def _run_steps(self, steps: list[Step], context: StepContext) -> StepOutcome:
        for step in steps:
            outcome = self._run_step(step, context)
            context.scope["steps"][step.id] = outcome.output
            if outcome.response is not None:
                return outcome
        return StepOutcome()

    def _run_step(self, step: Step, context: StepContext) -> StepOutcome:
        context.usage.steps_executed += 1
        self._check_budget(context, step)
        handler = self._handlers[step.kind]
        return handler(step, context)

    def _check_budget(self, context: StepContext, step: Step | None = None) -> None:
        exceeded, reason = context.usage.exceeds(self.budget)
        if exceeded:
            raise BudgetExceededError(
                reason or "Budget exceeded",
                node_id=context.node.id,
                step_id=step.id if step else None,
            )

    def _fail(self, context: StepContext, step: Step, message: str, reason: str) -> StepExecutionError:
        return StepExecutionError(message, node_id=context.node.id, step_id=step.id, reason=reason)

    # -------------------------------------------------------------------------
    # Step handlers
    # -------------------------------------------------------------------------

    def _return(self, step: Step, context: StepContext) -> StepOutcome:
        config = step.config
        if "body" in config or "value" in config:
            raw = config["body"] if "body" in config else config["value"]
            value = resolve(raw, context.scope)
            body = value if isinstance(value, dict) else {"value": value}
        elif isinstance(context.scope["input"], dict):
            body = dict(context.scope["input"])
        else:
            body = {}

        status = resolve(config.get("status"), context.scope)
        if status is None:
            status = context.success_status or 200
        if isinstance(status, bool) or not isinstance(status, int) or not 100 <= status <= 599:
            raise self._fail(context, step, f"Invalid response status {status!r}", "invalid_status")

        response = HttpResponse(status=status, body=body)
        return StepOutcome(output=response.to_dict(), response=response, responder=context.node.id)

    def _call_function(self, step: Step, context: StepContext) -> StepOutcome:
        if not step.ref:
            raise self._fail(context, step, "call step has no function ref", "missing_ref")
        target = self.collection.get_node(step.ref)
        if target is None or target.kind is not NodeKind.PROCESS:
            raise self._fail(
                context, step, f"Referenced function '{step.ref}' does not exist", "unresolved_ref"
            )

        if "input" in step.config:
            payload = resolve(step.config["input"], context.scope)
        else:
            payload = context.scope["body"]

        nested = context.with_call(target, payload)
        context.usage.call_depth = nested.depth
        try:
            self._check_budget(nested)
            outcome = self._run_block(nested)
        finally:
            context.usage.call_depth = context.depth

        if outcome.response is None:
            return StepOutcome(output={})
        return StepOutcome(output=outcome.response.body)

    def _query(self, step: Step, context: StepContext) -> StepOutcome:
        if not step.ref:
            raise self._fail(context, step, "query step has no data model ref", "missing_ref")
        database = self.collection.find_by_reference(step.ref, NodeKind.DATABASE)
        if database is None:
            raise self._fail(
                context, step, f"Referenced data model '{step.ref}' does not exist", "unresolved_ref"
            )

        operation = str(step.config.get("operation", "select")).lower()
        if operation not in DB_OPERATIONS:
            raise self._fail(
                context,
                step,
                f"Unknown operation '{operation}' (expected one of: {', '.join(DB_OPERATIONS)})",
                "invalid_operation",
            )

        data = cast(DatabaseData, database.data)
        table = step.config.get("table") or (data.tables[0] if data.tables else None)
        if table is not None and data.tables and table not in data.tables:
            raise self._fail(
                context, step, f"Data model '{database.id}' has no table '{table}'", "unknown_table"
            )

        output: dict[str, Any] = {
            "database": database.id,
            "table": table,
            "operation": operation,
        }
        where = resolve(step.config.get("where"), context.scope)
        values = resolve(step.config.get("values", step.config.get("data")), context.scope)

        if operation == "select":
            output["where"] = where or {}
            output["rows"] = []
        elif operation == "create":
            source = context.scope["input"]
            record = values if isinstance(values, dict) else dict(source) if isinstance(source, dict) else {}
            output["record"] = record
            output["affected"] = 1
        elif operation == "update":
            output["where"] = where or {}
            output["values"] = values or {}
            output["affected"] = 1
        else:
            output["where"] = where or {}
            output["affected"] = 1

        return StepOutcome(output=output)

    def _branch(self, step: Step, context: StepContext) -> StepOutcome:
        if "if" not in step.config:
            raise self._fail(context, step, "branch step requires 'if'", "invalid_config")

        value = resolve(step.config["if"], context.scope)
        if "equals" in step.config:
            taken = value == resolve(step.config["equals"], context.scope)
        else:
            taken = bool(value)

        arm = "then" if taken else "else"
        raw_steps = step.config.get(arm) or []
        if not isinstance(raw_steps, list):
            raise self._fail(context, step, f"branch '{arm}' must be a list of steps", "invalid_config")
        try:
            nested = [
                Step.from_dict(raw, f"{context.node.id}.{step.id}.{arm}[{i}]")
                for i, raw in enumerate(raw_steps)
            ]
        except MalformedGraphError as err:
            raise self._fail(context, step, str(err), "invalid_config") from err

        outcome = self._run_steps(nested, context)
        if outcome.response is not None:
            return StepOutcome(
                output={"branch": arm}, response=outcome.response, responder=outcome.responder
            )
        return StepOutcome(output={"branch": arm})

    def _condition(self, step: Step, context: StepContext) -> StepOutcome:
        if not context.strict:
            return StepOutcome(output={"valid": True, "skipped": True})
        required = step.config.get("requiredFields", step.config.get("required_fields", []))
        if not isinstance(required, list):
            raise self._fail(context, step, "'requiredFields' must be a list", "invalid_config")

        source = context.scope["input"]
        missing = [
            str(name)
            for name in required
            if not isinstance(source, Mapping) or not _is_present(source.get(name))
        ]
        if missing:
            response = HttpResponse(
                status=400,
                body={
                    "error": "validation_failed",
                    "missing": missing,
                    "step": step.id,
                },
            )
            return StepOutcome(
                output={"valid": False, "missing": missing},
                response=response,
                responder=context.node.id,
            )
        return StepOutcome(output={"valid": True})

    def _transform(self, step: Step, context: StepContext) -> StepOutcome:
        assign = step.config.get("assign", {})
        if not isinstance(assign, Mapping):
            raise self._fail(context, step, "'assign' must be an object", "invalid_config")
        values = {name: resolve(expression, context.scope) for name, expression in assign.items()}
        context.scope["vars"].update(values)
        return StepOutcome(output=values)

    def _external_call(self, step: Step, context: StepContext) -> StepOutcome:
        if not step.ref:
            raise self._fail(context, step, "external call has no target ref", "missing_ref")
        target = self.collection.get_node(step.ref)
        if target is None or target.kind not in _EXTERNAL_TARGET_KINDS:
            raise self._fail(
                context, step, f"Referenced resource '{step.ref}' does not exist", "unresolved_ref"
            )
        payload = resolve(step.config.get("payload"), context.scope)
        output: dict[str, Any] = {
            "target": target.id,
            "kind": target.kind.value,
            "payload": payload,
            "acknowledged": True,
        }
        if target.kind is NodeKind.QUEUE and self.queues is not None:
            message = payload if isinstance(payload, dict) else {"value": payload}
            job = self.queues.enqueue(queue_name(target), message)
            output["queue"] = job.queue
            output["jobId"] = job.id
        return StepOutcome(output=output)
