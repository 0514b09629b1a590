"""Tests for the deploy dry run."""

import pytest

from archsim.core.dry_run import DryRunExecutor
from archsim.core.errors import StepExecutionError
from archsim.core.planner import plan
from archsim.core.queues import InMemoryQueueBroker


def _broken(build):
    """A function block whose refs resolve to nothing."""
    return build.collection(
        api={
            "nodes": [
                build.api("a", "GET", "/broken", "fn"),
                build.process(
                    "fn",
                    [
                        build.step("call", "call_function", "does-not-exist"),
                        build.step("load", "query", "no-db"),
                    ],
                ),
            ],
            "edges": [build.edge("a", "fn")],
        }
    )


class TestRun:
    """Tests for DryRunExecutor.run."""

    def test_outputs_per_node(self, health_graphs):
        """Function blocks run once; API bindings have nothing to run."""
        outputs = DryRunExecutor(health_graphs).run(plan(health_graphs))
        assert outputs == {"health-api": None, "health-fn": {"ok": True, "source": "mock-graph"}}

    def test_hook_sees_every_node_before_it_runs(self, health_graphs):
        """on_execute gets (node, index, total) in execution order."""
        calls = []
        DryRunExecutor(health_graphs).run(
            plan(health_graphs),
            on_execute=lambda node, index, total: calls.append((node.id, index, total)),
        )
        assert calls == [("health-api", 0, 2), ("health-fn", 1, 2)]

    def test_unresolved_refs_fail(self, build):
        """A broken function block stops the dry run at that block."""
        graphs = _broken(build)
        calls = []
        with pytest.raises(StepExecutionError) as exc_info:
            DryRunExecutor(graphs).run(
                plan(graphs), on_execute=lambda node, index, total: calls.append(node.id)
            )

        assert exc_info.value.node_id == "fn"
        assert exc_info.value.reason == "unresolved_ref"
        assert calls == ["a", "fn"]

    def test_conditions_are_relaxed(self, users_graphs):
        """Condition steps do not fail a dry run that has no input."""
        outputs = DryRunExecutor(users_graphs).run(plan(users_graphs))
        assert outputs["save-user"] == {}
        assert outputs["users-db"] == {"database": "users-db", "tables": ["users"]}


class TestQueues:
    """Tests for queue nodes during a dry run."""

    def test_ingestion_queue_receives_last_output(self, build):
        """The previous function block's output is enqueued."""
        graphs = build.collection(
            api={
                "nodes": [
                    build.process("producer", [build.step("r", "return", body={"order": 7})]),
                    build.queue("orders"),
                    build.queue("archive"),
                ],
                "edges": [build.edge("producer", "orders"), build.edge("orders", "archive")],
            }
        )
        broker = InMemoryQueueBroker()
        outputs = DryRunExecutor(graphs, queues=broker).run(plan(graphs))

        assert outputs["orders"]["ingestion"] is True
        assert outputs["orders"]["consumer"] is False
        assert outputs["orders"]["jobId"] == "job-1"
        assert [job.payload for job in broker.pending("orders")] == [{"order": 7}]

    def test_consumer_queue_is_drained(self, build):
        """A queue feeding a function block gets a worker and is drained."""
        graphs = build.collection(
            api={
                "nodes": [
                    build.queue("inbox"),
                    build.process("handler", [build.step("r", "return")]),
                ],
                "edges": [build.edge("inbox", "handler")],
            }
        )
        broker = InMemoryQueueBroker()
        broker.enqueue("inbox", {"id": 1})
        outputs = DryRunExecutor(graphs, queues=broker).run(plan(graphs))

        assert outputs["inbox"]["consumer"] is True
        assert outputs["inbox"]["processed"] == 1
        assert broker.pending("inbox") == []

    def test_standalone_queue_round_trips_one_job(self, build):
        """A queue with no edges ingests and consumes its own job."""
        graphs = build.collection(api={"nodes": [build.queue("solo")]})
        broker = InMemoryQueueBroker()
        outputs = DryRunExecutor(graphs, queues=broker).run(plan(graphs))

        assert outputs["solo"]["jobId"] == "job-1"
        assert outputs["solo"]["processed"] == 1
        assert broker.stats("solo").processed == 1
