"""Tests for the progress emitter."""

import json

import pytest

from archsim.core.queues import InMemoryQueueBroker
from archsim.server.emitter import ProgressEmitter
from archsim.server.protocols import EventType, ListSink, RuntimeEvent


class TestEvents:
    """Tests for ProgressEmitter.events."""

    def test_sequence(self, health_graphs):
        """status, order per node, execute per node, one complete."""
        events = list(ProgressEmitter().events(health_graphs))

        assert [e.type for e in events] == [
            EventType.STATUS,
            EventType.ORDER,
            EventType.ORDER,
            EventType.EXECUTE,
            EventType.EXECUTE,
            EventType.COMPLETE,
        ]
        assert events[0].data == {"message": "runtime_started"}

    def test_progress_payloads_are_one_based(self, health_graphs):
        """Display indices start at 1 and messages name kind and label."""
        events = list(ProgressEmitter().events(health_graphs))
        order = [e for e in events if e.type is EventType.ORDER]
        execute = [e for e in events if e.type is EventType.EXECUTE]

        assert order[0].data["index"] == 1
        assert order[0].data["total"] == 2
        assert order[0].data["message"] == "Order 1/2: api_binding:POST /mock/health"
        assert execute[1].data["message"] == "Executing 2/2: process:health-fn"
        assert execute[1].node_id == "health-fn"

    def test_complete_payload(self, health_graphs):
        """complete carries the order and node count."""
        complete = list(ProgressEmitter().events(health_graphs))[-1]
        assert complete.data["totalNodes"] == 2
        assert [n["id"] for n in complete.data["executionOrder"]] == ["health-api", "health-fn"]

    def test_cycle_ends_with_single_error(self, build):
        """A cyclic graph emits status then exactly one error."""
        graphs = build.collection(
            api={
                "nodes": [build.queue("a"), build.queue("b")],
                "edges": [build.edge("a", "b"), build.edge("b", "a")],
            }
        )
        events = list(ProgressEmitter().events(graphs))

        assert [e.type for e in events] == [EventType.STATUS, EventType.ERROR]
        assert events[-1].data["error"] == "runtime_start_failed"
        assert "cycle" in events[-1].data["message"]

    def test_commit_runs_before_complete(self, health_graphs):
        """commit sees the collection and its order before complete is emitted."""
        committed = []
        events = ProgressEmitter().events(
            health_graphs, commit=lambda graphs, order: committed.append(order.node_ids)
        )

        for event in events:
            if event.type is EventType.EXECUTE:
                assert committed == []
            if event.type is EventType.COMPLETE:
                assert committed == [["health-api", "health-fn"]]

    def test_commit_failure_is_error_event(self, health_graphs):
        """A failing commit turns into the terminal error event."""

        def commit(graphs, order):
            raise RuntimeError("disk full")

        events = list(ProgressEmitter().events(health_graphs, commit=commit))
        assert events[-1].type is EventType.ERROR
        assert events[-1].data["message"] == "disk full"
        assert sum(1 for e in events if e.type.is_terminal) == 1


    def test_broken_block_ends_with_error_and_skips_commit(self, build):
        """A function block that fails its dry run is the single terminal error."""
        graphs = build.collection(
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
        committed = []
        events = list(
            ProgressEmitter().events(graphs, commit=lambda g, order: committed.append(order))
        )

        assert [e.type for e in events] == [
            EventType.STATUS,
            EventType.ORDER,
            EventType.ORDER,
            EventType.EXECUTE,
            EventType.EXECUTE,
            EventType.ERROR,
        ]
        error = events[-1]
        assert error.node_id == "fn"
        assert error.data["error"] == "runtime_start_failed"
        assert "does-not-exist" in error.data["message"]
        assert error.data["details"]["code"] == "unresolved_ref"
        assert committed == []

    def test_dry_run_relaxes_conditions(self, users_graphs):
        """Condition steps never fail a streamed start."""
        events = list(ProgressEmitter().events(users_graphs))
        assert events[-1].type is EventType.COMPLETE

    def test_dry_run_uses_shared_broker(self, build):
        """Queue nodes run on the broker the emitter was given."""
        graphs = build.collection(
            api={
                "nodes": [
                    build.process("producer", [build.step("r", "return", body={"n": 1})]),
                    build.queue("jobs"),
                    build.queue("sink"),
                ],
                "edges": [build.edge("producer", "jobs"), build.edge("jobs", "sink")],
            }
        )
        broker = InMemoryQueueBroker()
        events = list(ProgressEmitter(queues=broker).events(graphs))

        assert events[-1].type is EventType.COMPLETE
        assert [job.payload for job in broker.pending("jobs")] == [{"n": 1}]


class TestRun:
    """Tests for ProgressEmitter.run."""

    def test_pushes_to_sink(self, health_graphs):
        """Every event reaches the sink; the terminal one is returned."""
        sink = ListSink()
        last = ProgressEmitter().run(health_graphs, sink)

        assert last.type is EventType.COMPLETE
        assert sink.events[-1] is last
        assert len(sink.events) == 6


class TestRuntimeEvent:
    """Tests for RuntimeEvent serialisation."""

    def test_to_sse(self):
        """SSE frames carry the event name and a JSON data line."""
        event = RuntimeEvent(type=EventType.STATUS, data={"message": "runtime_started"})
        frame = event.to_sse()

        assert frame.startswith("event: status\ndata: ")
        assert frame.endswith("\n\n")
        payload = json.loads(frame.split("data: ", 1)[1])
        assert payload == {"type": "status", "message": "runtime_started"}

    @pytest.mark.parametrize("event_type", [EventType.COMPLETE, EventType.ERROR])
    def test_terminal_types(self, event_type):
        assert event_type.is_terminal
