"""
Tests for GraphExecutor execution paths: routing, validation, failure,
retry and step streaming.
"""

import pytest

from stepgraph.errors import (
    GraphValidationError,
    StepGraphError,
    StepLimitExceeded,
    UnmappedDecision,
)
from stepgraph.graph import END, START, Channel, GraphBuilder, NodeResult, StateSchema
from stepgraph.schemas import RunStatus
from stepgraph.storage import InMemoryCheckpointStore


def log_schema() -> StateSchema:
    return StateSchema([Channel.appending("log", str), Channel("count", int, default=lambda: 0)])


def logging_node(name: str):
    def step(ctx):
        return NodeResult(update={"log": name})

    return step


def linear_builder() -> GraphBuilder:
    builder = GraphBuilder("linear", log_schema())
    for name in ("a", "b", "c"):
        builder.add_node(name, logging_node(name))
    builder.add_edge(START, "a")
    builder.add_edge("a", "b")
    builder.add_edge("b", "c")
    builder.add_edge("c", END)
    return builder


class TestUnconditionalPath:
    @pytest.mark.asyncio
    async def test_single_fixed_path(self):
        executor = linear_builder().compile()

        result = await executor.invoke("t-1")

        assert result.success is True
        assert result.path == ["a", "b", "c"]
        assert result.steps_executed == 3
        assert result.state["log"] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_same_path_on_every_thread(self):
        executor = linear_builder().compile()

        first = await executor.invoke("t-1")
        second = await executor.invoke("t-2")

        assert first.path == second.path
        assert first.state == second.state

    @pytest.mark.asyncio
    async def test_checkpoint_after_every_transition(self):
        store = InMemoryCheckpointStore()
        executor = linear_builder().compile(checkpoint_store=store)

        await executor.invoke("t-1")

        checkpoints = await store.list("t-1")
        assert [c.checkpoint_type for c in checkpoints] == [
            "start",
            "transition",
            "transition",
            "transition",
        ]
        assert [c.next_node for c in checkpoints] == ["a", "b", "c", END]
        assert [c.sequence for c in checkpoints] == [0, 1, 2, 3]
        assert checkpoints[-1].status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_node_without_edge_ends_run(self):
        builder = GraphBuilder("solo", log_schema())
        builder.add_node("only", logging_node("only"))
        builder.set_entry("only")

        result = await builder.compile().invoke("t-1")

        assert result.success is True
        assert result.path == ["only"]


class TestCheckpointReplay:
    @pytest.mark.asyncio
    async def test_restore_plus_update_equals_next_checkpoint(self):
        store = InMemoryCheckpointStore()
        executor = linear_builder().compile(checkpoint_store=store)

        events = [event async for event in executor.stream_steps("t-1", {"count": 7})]
        checkpoints = await store.list("t-1")
        schema = executor.schema

        assert len(checkpoints) == len(events) + 1
        for before, event, after in zip(checkpoints, events, checkpoints[1:], strict=False):
            replayed = schema.apply(schema.restore(before.state), event.update)
            assert replayed == schema.restore(after.state)


class TestRouting:
    def goto_builder(self, target: str) -> GraphBuilder:
        builder = GraphBuilder("goto", log_schema())
        builder.add_node("decide", lambda ctx: NodeResult(goto=target), ends=["left", "right"])
        builder.add_node("left", logging_node("left"))
        builder.add_node("right", logging_node("right"))
        builder.set_entry("decide")
        builder.add_edge("left", END)
        builder.add_edge("right", END)
        return builder

    @pytest.mark.asyncio
    async def test_goto_selects_declared_successor(self):
        result = await self.goto_builder("right").compile().invoke("t-1")

        assert result.path == ["decide", "right"]
        assert result.state["log"] == ["right"]

    @pytest.mark.asyncio
    async def test_goto_outside_ends_fails(self):
        builder = GraphBuilder("goto", log_schema())
        builder.add_node("decide", lambda ctx: NodeResult(goto="right"), ends=["left"])
        builder.add_node("left", logging_node("left"))
        builder.add_node("right", logging_node("right"))
        builder.set_entry("decide")
        builder.add_edge("left", "right")

        result = await builder.compile().invoke("t-1")

        assert result.status == RunStatus.FAILED
        assert isinstance(result.exception, UnmappedDecision)
        assert result.exception.valid == ["left"]

    @pytest.mark.asyncio
    async def test_goto_to_undeclared_node_is_unmapped(self):
        builder = GraphBuilder("goto", log_schema())
        builder.add_node("decide", lambda ctx: NodeResult(goto="nowhere"), ends=["done"])
        builder.add_node("done", logging_node("done"))
        builder.set_entry("decide")

        result = await builder.compile().invoke("t-1")

        assert result.status == RunStatus.FAILED
        assert isinstance(result.exception, UnmappedDecision)
        assert result.failed_node == "decide"

    @pytest.mark.asyncio
    async def test_conditional_edge_uses_path_map(self):
        builder = GraphBuilder("cond", log_schema())
        builder.add_node("start", lambda ctx: NodeResult(update={"count": 2}))
        builder.add_node("even", logging_node("even"))
        builder.add_node("odd", logging_node("odd"))
        builder.set_entry("start")
        builder.add_conditional_edges(
            "start",
            lambda state: state["count"] % 2 == 0,
            {True: "even", False: "odd"},
        )

        result = await builder.compile().invoke("t-1")

        assert result.path == ["start", "even"]

    @pytest.mark.asyncio
    async def test_async_router_without_path_map(self):
        async def pick(state):
            return "b"

        builder = GraphBuilder("open", log_schema())
        builder.add_node("a", logging_node("a"))
        builder.add_node("b", logging_node("b"))
        builder.set_entry("a")
        builder.add_conditional_edges("a", pick)

        result = await builder.compile().invoke("t-1")

        assert result.path == ["a", "b"]

    @pytest.mark.asyncio
    async def test_unmapped_decision_fails_run(self):
        builder = GraphBuilder("cond", log_schema())
        builder.add_node("start", logging_node("start"))
        builder.add_node("next", logging_node("next"))
        builder.set_entry("start")
        builder.add_conditional_edges("start", lambda state: "maybe", {"yes": "next"})

        result = await builder.compile().invoke("t-1")

        assert result.status == RunStatus.FAILED
        assert isinstance(result.exception, UnmappedDecision)
        assert result.exception.decision == "maybe"
        assert result.exception.valid == ["yes"]


class TestValidation:
    def test_edge_to_unknown_node(self):
        builder = GraphBuilder("bad", log_schema())
        builder.add_node("a", logging_node("a"))
        builder.set_entry("a")
        builder.add_edge("a", "ghost")

        with pytest.raises(GraphValidationError) as exc_info:
            builder.compile()
        assert any("ghost" in e for e in exc_info.value.errors)

    def test_missing_entry_node(self):
        builder = GraphBuilder("bad", log_schema())
        builder.add_node("a", logging_node("a"))

        with pytest.raises(GraphValidationError):
            builder.build()

    def test_unreachable_node(self):
        builder = linear_builder()
        builder.add_node("island", logging_node("island"))

        with pytest.raises(GraphValidationError) as exc_info:
            builder.build()
        assert "Node 'island' is unreachable from entry" in exc_info.value.errors

    def test_two_edges_from_one_source(self):
        builder = linear_builder()
        builder.add_edge("a", "c")

        with pytest.raises(GraphValidationError):
            builder.build()

    def test_unknown_ends(self):
        builder = GraphBuilder("bad", log_schema())
        builder.add_node("a", logging_node("a"), ends=["ghost"])
        builder.set_entry("a")

        with pytest.raises(GraphValidationError):
            builder.build()


class TestFailureAndRetry:
    @pytest.mark.asyncio
    async def test_node_error_fails_run_with_last_checkpoint(self):
        def explode(ctx):
            raise RuntimeError("boom")

        store = InMemoryCheckpointStore()
        builder = GraphBuilder("fail", log_schema())
        builder.add_node("a", logging_node("a"))
        builder.add_node("explode", explode)
        builder.add_edge(START, "a")
        builder.add_edge("a", "explode")
        executor = builder.compile(checkpoint_store=store)

        result = await executor.invoke("t-1")

        assert result.status == RunStatus.FAILED
        assert result.error == "boom"
        assert result.failed_node == "explode"
        assert result.path == ["a"]

        latest = await store.load("t-1")
        assert latest.status == RunStatus.FAILED
        assert latest.checkpoint_type == "failure"
        assert latest.next_node == "explode"
        assert result.last_checkpoint == (await store.list("t-1"))[-2].checkpoint_id

    @pytest.mark.asyncio
    async def test_retry_reenters_at_last_good_checkpoint(self):
        attempts = []

        def flaky(ctx):
            attempts.append(1)
            if len(attempts) == 1:
                raise ConnectionError("transient")
            return NodeResult(update={"log": "flaky"})

        builder = GraphBuilder("retry", log_schema())
        builder.add_node("a", logging_node("a"))
        builder.add_node("flaky", flaky)
        builder.add_node("b", logging_node("b"))
        builder.add_edge(START, "a")
        builder.add_edge("a", "flaky")
        builder.add_edge("flaky", "b")
        executor = builder.compile()

        failed = await executor.invoke("t-1")
        assert failed.status == RunStatus.FAILED

        result = await executor.retry("t-1")

        assert result.success is True
        assert result.path == ["a", "flaky", "b"]
        assert result.steps_executed == 2
        assert result.state["log"] == ["a", "flaky", "b"]

    @pytest.mark.asyncio
    async def test_retry_requires_failed_thread(self):
        executor = linear_builder().compile()
        await executor.invoke("t-1")

        with pytest.raises(StepGraphError):
            await executor.retry("t-1")

    @pytest.mark.asyncio
    async def test_max_steps_guard(self):
        builder = GraphBuilder("loop", log_schema())
        builder.add_node("spin", logging_node("spin"))
        builder.set_entry("spin")
        builder.add_edge("spin", "spin")
        builder.set_max_steps(5)

        result = await builder.compile().invoke("t-1")

        assert result.status == RunStatus.FAILED
        assert isinstance(result.exception, StepLimitExceeded)
        assert result.path == ["spin"] * 5

    @pytest.mark.asyncio
    async def test_schema_violation_fails_run(self):
        builder = GraphBuilder("bad-update", log_schema())
        builder.add_node("a", lambda ctx: NodeResult(update={"count": "many"}))
        builder.set_entry("a")

        result = await builder.compile().invoke("t-1")

        assert result.status == RunStatus.FAILED
        assert "count" in result.error


class TestStreamSteps:
    @pytest.mark.asyncio
    async def test_one_event_per_node(self):
        executor = linear_builder().compile()

        events = [event async for event in executor.stream_steps("t-1")]

        assert [e.node_id for e in events] == ["a", "b", "c"]
        assert [e.update for e in events] == [{"log": "a"}, {"log": "b"}, {"log": "c"}]
        assert [e.next_node for e in events] == ["b", "c", END]
        assert [e.is_terminal for e in events] == [False, False, True]
        assert events[-1].result.success is True

    @pytest.mark.asyncio
    async def test_failure_event_is_terminal(self):
        def explode(ctx):
            raise ValueError("bad input")

        builder = GraphBuilder("fail", log_schema())
        builder.add_node("explode", explode)
        builder.set_entry("explode")

        events = [event async for event in builder.compile().stream_steps("t-1")]

        assert len(events) == 1
        assert events[0].status == RunStatus.FAILED
        assert events[0].error == "bad input"
