"""Tests for chain traversal."""

import asyncio

import pytest

from retro.scripting.executor import ChainOutcome, NodeExecutor
from retro.scripting.facade import FacadeAdapter, RecordingFacade
from retro.scripting.graph import parse_graph
from retro.scripting.handlers import register_builtin_handlers
from retro.scripting.registry import ScriptContext
from retro.scripting.state import InterpreterState


class Tracker:
    """Action handler that records the nodes it ran."""

    def __init__(self):
        self.ran = []

    def __call__(self, ctx, node):
        self.ran.append(node.id)


@pytest.fixture
def registry():
    return register_builtin_handlers()


@pytest.fixture
def tracker(registry):
    tracker = Tracker()
    registry.register_action("Track", tracker)
    return tracker


@pytest.fixture
def recorder():
    return RecordingFacade()


@pytest.fixture
def run_chain(registry, recorder):
    """Run the chain of one Event node to completion."""
    executor = NodeExecutor(registry)

    def run(doc, event_id="E", state=None):
        graph = parse_graph(doc)
        ctx = ScriptContext(state=state or InterpreterState(), facade=FacadeAdapter(recorder), graph=graph)
        return asyncio.run(executor.execute_event_chain(ctx, graph, graph.get_node(event_id)))

    return run


class TestTraversal:

    def test_linear_chain(self, builder, run_chain, tracker):
        doc = (builder("g")
               .event("E", "OnStart")
               .action("A1", "Track")
               .action("A2", "Track")
               .link("E", "A1")
               .link("A1", "A2")
               .build())

        result = run_chain(doc)

        assert result.outcome == ChainOutcome.COMPLETED
        assert result.visited == ["E", "A1", "A2"]
        assert tracker.ran == ["A1", "A2"]

    @pytest.mark.parametrize("flag_set,expected", [(True, ["T"]), (False, ["F"])])
    def test_condition_branches(self, builder, run_chain, tracker, flag_set, expected):
        doc = (builder("g")
               .event("E", "OnStart")
               .condition("C", "HasFlag", flagId="torch")
               .action("T", "Track")
               .action("F", "Track")
               .link("E", "C")
               .link("C", "T", "flow_true")
               .link("C", "F", "flow_false")
               .build())
        state = InterpreterState()
        state.set_flag("torch", flag_set)

        run_chain(doc, state=state)

        assert tracker.ran == expected

    def test_missing_condition_handler_takes_false_branch(self, builder, run_chain, tracker):
        doc = (builder("g")
               .event("E", "OnStart")
               .condition("C", "IsFullMoon")
               .action("T", "Track")
               .action("F", "Track")
               .link("E", "C")
               .link("C", "T", "flow_true")
               .link("C", "F", "flow_false")
               .build())

        result = run_chain(doc)

        assert tracker.ran == ["F"]
        assert result.outcome == ChainOutcome.COMPLETED

    def test_missing_action_handler_ends_chain(self, builder, run_chain, tracker):
        doc = (builder("g")
               .event("E", "OnStart")
               .action("A1", "Teleportalize")
               .action("A2", "Track")
               .link("E", "A1")
               .link("A1", "A2")
               .build())

        result = run_chain(doc)

        assert result.outcome == ChainOutcome.MISSING_HANDLER
        assert result.failed_node == "A1"
        assert tracker.ran == []

    def test_handler_error_ends_chain(self, builder, run_chain, registry, tracker):
        def explode(ctx, node):
            raise RuntimeError("boom")

        registry.register_action("Explode", explode)
        doc = (builder("g")
               .event("E", "OnStart")
               .action("A1", "Explode")
               .action("A2", "Track")
               .link("E", "A1")
               .link("A1", "A2")
               .build())

        result = run_chain(doc)

        assert result.outcome == ChainOutcome.ERROR
        assert result.failed_node == "A1"
        assert "RuntimeError" in result.error
        assert tracker.ran == []

    def test_condition_error_ends_chain(self, builder, run_chain, registry, tracker):
        registry.register_condition("Broken", lambda ctx, node: 1 / 0)
        doc = (builder("g")
               .event("E", "OnStart")
               .condition("C", "Broken")
               .action("F", "Track")
               .link("E", "C")
               .link("C", "F", "flow_false")
               .build())

        result = run_chain(doc)

        assert result.outcome == ChainOutcome.ERROR
        assert tracker.ran == []

    def test_async_condition_is_rejected(self, builder, run_chain, registry):
        async def slow_check(ctx, node):
            return True

        registry.register_condition("Slow", slow_check)
        doc = builder("g").event("E", "OnStart").condition("C", "Slow").link("E", "C").build()

        result = run_chain(doc)

        assert result.outcome == ChainOutcome.ERROR
        assert "TypeError" in result.error

    def test_cycle_runs_each_node_once(self, builder, run_chain, tracker):
        doc = (builder("g")
               .event("E", "OnStart")
               .action("A1", "Track")
               .action("A2", "Track")
               .link("E", "A1")
               .link("A1", "A2")
               .link("A2", "A1")
               .build())

        result = run_chain(doc)

        assert result.outcome == ChainOutcome.CYCLE
        assert tracker.ran == ["A1", "A2"]

    def test_first_edge_wins(self, builder, run_chain, tracker):
        doc = (builder("g")
               .event("E", "OnStart")
               .action("A1", "Track")
               .action("A2", "Track")
               .link("E", "A1")
               .link("E", "A2")
               .build())

        run_chain(doc)

        assert tracker.ran == ["A1"]

    def test_dangling_edge_ends_quietly(self, builder, run_chain):
        doc = builder("g").event("E", "OnStart").link("E", "Ghost").build()

        result = run_chain(doc)

        assert result.outcome == ChainOutcome.COMPLETED
        assert result.visited == ["E"]

    def test_async_action_is_awaited(self, builder, run_chain, registry):
        order = []

        async def fade(ctx, node):
            order.append("fade-start")
            await asyncio.sleep(0)
            order.append("fade-end")

        registry.register_action("Fade", fade)
        registry.register_action("After", lambda ctx, node: order.append("after"))
        doc = (builder("g")
               .event("E", "OnStart")
               .action("A1", "Fade")
               .action("A2", "After")
               .link("E", "A1")
               .link("A1", "A2")
               .build())

        run_chain(doc)

        assert order == ["fade-start", "fade-end", "after"]

    def test_facade_effects(self, builder, run_chain, recorder):
        doc = (builder("g")
               .event("E", "OnStart")
               .action("A", "openGate", gateId="g1")
               .link("E", "A")
               .build())

        run_chain(doc)

        assert recorder.calls_to("open_gate") == [("g1",)]

    def test_result_record(self, builder, run_chain):
        record = run_chain(builder("g").event("E", "OnStart").build()).to_record()

        assert record["type"] == "chain"
        assert record["graph"] == "g"
        assert record["event"] == "E"
        assert record["outcome"] == "completed"
