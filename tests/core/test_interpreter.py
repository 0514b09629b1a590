"""Tests for the step interpreter."""

import pytest

from archsim.core.budget import CALL_DEPTH_CEILING, Budget
from archsim.core.errors import BudgetExceededError, StepExecutionError
from archsim.core.interpreter import StepInterpreter, lookup, resolve
from archsim.core.queues import InMemoryQueueBroker


def _run(build, steps, extra_nodes=(), **kwargs):
    graphs = build.collection(fn={"nodes": [build.process("main", steps), *extra_nodes]})
    interpreter = StepInterpreter(
        graphs, budget=kwargs.pop("budget", None), queues=kwargs.pop("queues", None)
    )
    return interpreter.run(graphs.get_node("main"), **kwargs)


class TestExpressions:
    """Tests for scope lookups."""

    def test_lookup_nested_and_list_index(self):
        """Dotted paths walk mappings and list indices."""
        scope = {"steps": {"load": {"rows": [{"id": 7}]}}}
        assert lookup(scope, "steps.load.rows.0.id") == 7
        assert lookup(scope, "steps.load.rows.5") is None
        assert lookup(scope, "steps.missing.value") is None

    def test_resolve_recurses(self):
        """Expressions inside objects and lists are resolved."""
        scope = {"params": {"id": "42"}}
        assert resolve({"id": "$params.id", "tags": ["$params.id", "x"]}, scope) == {
            "id": "42",
            "tags": ["42", "x"],
        }

    def test_double_dollar_escapes(self):
        """$$ yields a literal dollar string."""
        assert resolve("$$params.id", {"params": {"id": "42"}}) == "$params.id"
        assert resolve("$", {}) == "$"


class TestReturn:
    """Tests for return steps."""

    def test_literal_body(self, build):
        """config.body becomes the response body."""
        result = _run(build, [build.step("r", "return", body={"ok": True})])
        assert result.response.status == 200
        assert result.response.body == {"ok": True}

    def test_value_is_wrapped(self, build):
        """Non-object values are wrapped as {"value": v}."""
        result = _run(build, [build.step("r", "return", value="$params.id")], params={"id": "9"})
        assert result.response.body == {"value": "9"}

    def test_echoes_input(self, build):
        """Without body or value, the input object is echoed."""
        result = _run(build, [build.step("r", "return")], body={"name": "Ada"})
        assert result.response.body == {"name": "Ada"}

    def test_explicit_status_wins(self, build):
        """config.status overrides the binding's success status."""
        result = _run(
            build,
            [build.step("r", "return", status=202, body={})],
            success_status=201,
        )
        assert result.response.status == 202

    def test_success_status_default(self, build):
        """The binding's success status applies to bare returns."""
        result = _run(build, [build.step("r", "return", body={})], success_status=201)
        assert result.response.status == 201

    def test_invalid_status(self, build):
        """Out-of-range statuses are step errors."""
        with pytest.raises(StepExecutionError) as exc_info:
            _run(build, [build.step("r", "return", status=42)])
        assert exc_info.value.reason == "invalid_status"
        assert exc_info.value.step_id == "r"
        assert exc_info.value.node_id == "main"

    def test_first_return_halts(self, build):
        """Steps after a return never run."""
        result = _run(
            build,
            [
                build.step("r1", "return", body={"first": True}),
                build.step("r2", "return", body={"second": True}),
            ],
        )
        assert result.response.body == {"first": True}
        assert "r2" not in result.outputs

    def test_no_return_answers_empty(self, build):
        """A block without a return answers 200 {}."""
        result = _run(build, [build.step("t", "transform", assign={"x": 1})])
        assert result.response.to_dict() == {"status": 200, "body": {}}
        assert result.final_node.id == "main"


class TestCallFunction:
    """Tests for call_function / ref steps."""

    def test_callee_output_and_caller_continues(self, build):
        """The callee's body is the step output; the caller keeps going."""
        callee = build.process(
            "double", [build.step("r", "return", body={"n": "$input.n", "doubled": True})]
        )
        result = _run(
            build,
            [
                build.step("call", "call_function", "double", input={"n": "$body.n"}),
                build.step("r", "return", body={"result": "$steps.call"}),
            ],
            extra_nodes=[callee],
            body={"n": 3},
        )
        assert result.response.body == {"result": {"n": 3, "doubled": True}}
        assert result.final_node.id == "main"

    def test_default_input_is_current_body(self, build):
        """Without config.input the callee receives the caller's body."""
        callee = build.process("echo", [build.step("r", "return")])
        result = _run(
            build,
            [build.step("call", "ref", "echo"), build.step("r", "return", value="$steps.call.name")],
            extra_nodes=[callee],
            body={"name": "Ada"},
        )
        assert result.response.body == {"value": "Ada"}

    def test_unknown_function(self, build):
        """Calls to missing functions fail with the step context."""
        with pytest.raises(StepExecutionError) as exc_info:
            _run(build, [build.step("call", "call_function", "ghost")])
        assert exc_info.value.reason == "unresolved_ref"
        assert exc_info.value.to_dict()["step"] == "call"

    def test_recursion_hits_call_depth(self, build):
        """Unbounded recursion is stopped by the call depth budget."""
        with pytest.raises(BudgetExceededError) as exc_info:
            _run(
                build,
                [build.step("again", "call_function", "main")],
                budget=Budget(max_call_depth=3),
            )
        assert exc_info.value.reason == "budget_exceeded"
        assert "Call depth" in str(exc_info.value)

    def test_unlimited_depth_stops_at_ceiling(self, build):
        """max_call_depth=None still stops self-recursion with a budget error."""
        with pytest.raises(BudgetExceededError) as exc_info:
            _run(
                build,
                [build.step("again", "call_function", "main")],
                budget=Budget(max_steps=None, max_call_depth=None),
            )
        assert exc_info.value.reason == "budget_exceeded"
        assert f"/{CALL_DEPTH_CEILING}" in str(exc_info.value)


class TestQuery:
    """Tests for query / db_operation steps."""

    def test_select_by_label(self, build):
        """Databases resolve by label; select is the default operation."""
        result = _run(
            build,
            [build.step("q", "query", "Users", where={"id": "$params.id"})],
            extra_nodes=[build.database("users-db", label="Users", tables=["users"])],
            params={"id": "1"},
        )
        assert result.outputs["q"] == {
            "database": "users-db",
            "table": "users",
            "operation": "select",
            "where": {"id": "1"},
            "rows": [],
        }

    def test_create_uses_input(self, build):
        """create records the input object when no values are given."""
        result = _run(
            build,
            [build.step("q", "db_operation", "db", operation="create")],
            extra_nodes=[build.database("db")],
            body={"name": "Ada"},
        )
        assert result.outputs["q"]["record"] == {"name": "Ada"}
        assert result.outputs["q"]["affected"] == 1

    def test_unknown_operation(self, build):
        """Only select/create/update/delete are simulated."""
        with pytest.raises(StepExecutionError, match="Unknown operation"):
            _run(
                build,
                [build.step("q", "query", "db", operation="truncate")],
                extra_nodes=[build.database("db")],
            )

    def test_unknown_table(self, build):
        """A declared table list restricts the table."""
        with pytest.raises(StepExecutionError) as exc_info:
            _run(
                build,
                [build.step("q", "query", "db", table="orders")],
                extra_nodes=[build.database("db", tables=["users"])],
            )
        assert exc_info.value.reason == "unknown_table"

    def test_missing_database(self, build):
        """Queries against missing data models fail."""
        with pytest.raises(StepExecutionError, match="does not exist"):
            _run(build, [build.step("q", "query", "ghost")])


class TestBranchAndCondition:
    """Tests for branch and condition steps."""

    def _branch(self, build):
        return build.step(
            "route",
            "branch",
            **{
                "if": "$body.kind",
                "equals": "vip",
                "then": [build.step("vip", "return", body={"tier": "vip"})],
                "else": [build.step("mark", "transform", assign={"tier": "standard"})],
            },
        )

    def test_then_arm_return_halts(self, build):
        """A return inside the taken arm halts the block."""
        result = _run(
            build,
            [self._branch(build), build.step("after", "return", body={"after": True})],
            body={"kind": "vip"},
        )
        assert result.response.body == {"tier": "vip"}
        assert result.outputs["route"] == {"branch": "then"}

    def test_else_arm_continues(self, build):
        """Without a return in the arm, the block continues."""
        result = _run(
            build,
            [self._branch(build), build.step("after", "return", body={"tier": "$vars.tier"})],
            body={"kind": "basic"},
        )
        assert result.response.body == {"tier": "standard"}

    def test_branch_requires_if(self, build):
        """Branches need a condition."""
        with pytest.raises(StepExecutionError) as exc_info:
            _run(build, [build.step("b", "branch", then=[])])
        assert exc_info.value.reason == "invalid_config"

    def test_malformed_nested_step(self, build):
        """Unparseable nested steps are step errors, not crashes."""
        with pytest.raises(StepExecutionError):
            _run(build, [build.step("b", "branch", **{"if": True, "then": [{"kind": "return"}]})])

    def test_condition_failure_is_400(self, build):
        """Missing required fields answer 400 validation_failed."""
        result = _run(
            build,
            [
                build.step("check", "condition", requiredFields=["name", "email"]),
                build.step("r", "return", body={"ok": True}),
            ],
            body={"name": "Ada", "email": ""},
        )
        assert result.response.status == 400
        assert result.response.body == {
            "error": "validation_failed",
            "missing": ["email"],
            "step": "check",
        }

    def test_relaxed_condition_is_skipped(self, build):
        """With strict=False a failing condition is recorded as skipped."""
        result = _run(
            build,
            [
                build.step("check", "condition", requiredFields=["name"]),
                build.step("r", "return", body={"ok": True}),
            ],
            strict=False,
        )
        assert result.response.status == 200
        assert result.outputs["check"] == {"valid": True, "skipped": True}

    def test_condition_passes(self, build):
        """Present fields let the block continue."""
        result = _run(
            build,
            [build.step("check", "condition", requiredFields=["name"]), build.step("r", "return")],
            body={"name": "Ada"},
        )
        assert result.response.status == 200


class TestExternalCall:
    """Tests for external_call steps."""

    def test_acknowledges_queue(self, build):
        """Calls to queues or infra are simulated acknowledgements."""
        result = _run(
            build,
            [build.step("publish", "external_call", "events", payload={"id": "$body.id"})],
            extra_nodes=[build.queue("events")],
            body={"id": 5},
        )
        assert result.outputs["publish"] == {
            "target": "events",
            "kind": "queue",
            "payload": {"id": 5},
            "acknowledged": True,
        }

    def test_enqueues_on_broker(self, build):
        """With a broker, calls to a queue node enqueue the payload."""
        broker = InMemoryQueueBroker()
        result = _run(
            build,
            [build.step("publish", "external_call", "events", payload={"id": "$body.id"})],
            extra_nodes=[build.queue("events", label="Order events")],
            body={"id": 5},
            queues=broker,
        )
        assert result.outputs["publish"]["jobId"] == "job-1"
        assert result.outputs["publish"]["queue"] == "Order events"
        [job] = broker.pending("Order events")
        assert job.payload == {"id": 5}

    def test_scalar_payload_is_wrapped(self, build):
        """Non-object payloads are enqueued as {"value": v}."""
        broker = InMemoryQueueBroker()
        _run(
            build,
            [build.step("publish", "external_call", "events", payload="$body.id")],
            extra_nodes=[build.queue("events")],
            body={"id": 5},
            queues=broker,
        )
        assert broker.pending("events")[0].payload == {"value": 5}

    def test_rejects_non_infra_target(self, build):
        """A database is not an external call target."""
        with pytest.raises(StepExecutionError):
            _run(
                build,
                [build.step("publish", "external_call", "db")],
                extra_nodes=[build.database("db")],
            )


class TestBudget:
    """Tests for step budgets."""

    def test_step_limit(self, build):
        """Exceeding max_steps fails with budget_exceeded."""
        steps = [build.step(f"t{i}", "transform", assign={"i": i}) for i in range(5)]
        with pytest.raises(BudgetExceededError) as exc_info:
            _run(build, steps, budget=Budget(max_steps=3))
        assert exc_info.value.step_id == "t3"

    def test_within_limit(self, build):
        """Exactly max_steps steps are allowed."""
        steps = [build.step(f"t{i}", "transform", assign={"i": i}) for i in range(3)]
        result = _run(build, steps, budget=Budget(max_steps=3))
        assert result.steps_executed == 3

    def test_deep_branch_nesting_is_step_error(self, build):
        """Nesting deeper than the interpreter stack is a step error, not a crash."""
        step = build.step("leaf", "return", body={"ok": True})
        for depth in range(3000):
            step = build.step(f"b{depth}", "branch", **{"if": True, "then": [step]})

        with pytest.raises(StepExecutionError) as exc_info:
            _run(build, [step], budget=Budget(max_steps=None))
        assert exc_info.value.node_id == "main"
