"""Tests for the agent/tools/finalize loop and its ToolBudget."""

import pytest

from stepgraph.errors import SchemaViolation
from stepgraph.graph.edge import END
from stepgraph.graph.messages import ToolCall, assistant, user
from stepgraph.graph.tool_loop import FINALIZE_INSTRUCTION, ToolBudget, create_tool_agent
from stepgraph.llm.mock import MockLLMProvider
from stepgraph.graph.state import Channel
from stepgraph.runner import ToolRegistry, ToolResult


def counting_registry(calls: list[str]) -> ToolRegistry:
    def lookup(key: str) -> str:
        """Look up a key."""
        calls.append(key)
        return f"value of {key}"

    def task(description: str, subagent_type: str) -> str:
        calls.append(f"task:{description}")
        return f"done {description}"

    registry = ToolRegistry()
    registry.register_function(lookup)
    registry.register_function(task)
    return registry


def multi_call(*calls: ToolCall):
    return assistant(tool_calls=list(calls))


class TestToolBudget:
    def test_unlimited_allows_everything(self):
        calls = [ToolCall(name="lookup"), ToolCall(name="task")]
        assert ToolBudget().split(calls, used=100) == (calls, [])

    def test_total_limit_counts_prior_calls(self):
        calls = [ToolCall(name="lookup") for _ in range(3)]
        allowed, refused = ToolBudget(max_tool_calls=4).split(calls, used=2)
        assert (len(allowed), len(refused)) == (2, 1)
        assert refused == calls[2:]

    def test_delegations_per_turn(self):
        calls = [
            ToolCall(name="task"),
            ToolCall(name="lookup"),
            ToolCall(name="task"),
            ToolCall(name="task"),
        ]
        allowed, refused = ToolBudget(max_delegations_per_turn=2).split(calls, used=0)
        assert [c.name for c in allowed] == ["task", "lookup", "task"]
        assert refused == [calls[3]]

    def test_refusal_text(self):
        budget = ToolBudget(max_tool_calls=5, max_delegations_per_turn=2)
        assert "2 delegations per turn" in budget.refusal(ToolCall(name="task"))
        assert "limit of 5 tool calls" in budget.refusal(ToolCall(name="lookup"))


class TestToolLoop:
    @pytest.mark.asyncio
    async def test_answer_without_tools(self):
        llm = MockLLMProvider(["Paris."])
        agent = create_tool_agent("qa", llm, counting_registry([]))

        result = await agent.invoke("t1", {"messages": [user("Capital of France?")]})

        assert result.success
        assert result.path == ["agent"]
        assert result.state["messages"][-1].content == "Paris."
        assert llm.calls[0]["tools"] == ["lookup", "task"]

    @pytest.mark.asyncio
    async def test_tool_round_trip(self):
        calls: list[str] = []
        llm = MockLLMProvider([MockLLMProvider.tool_call("lookup", key="a"), "Found it."])
        agent = create_tool_agent("qa", llm, counting_registry(calls), system_prompt="Be brief")

        result = await agent.invoke("t1", {"messages": [user("What is a?")]})

        assert result.path == ["agent", "tools", "agent"]
        assert calls == ["a"]
        roles = [m.role for m in result.state["messages"]]
        assert roles == ["user", "assistant", "tool", "assistant"]
        assert result.state["messages"][2].content == "value of a"
        assert result.state["tool_calls_used"] == 1
        assert llm.calls[1]["system"] == "Be brief"

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_model(self):
        llm = MockLLMProvider([MockLLMProvider.tool_call("ghost"), "Sorry."])
        agent = create_tool_agent("qa", llm, counting_registry([]))

        result = await agent.invoke("t1", {"messages": [user("hi")]})

        assert result.success
        tool_message = result.state["messages"][2]
        assert tool_message.is_error
        assert "Unknown tool 'ghost'" in tool_message.content

    @pytest.mark.asyncio
    async def test_budget_exhaustion_routes_to_finalize(self):
        calls: list[str] = []
        llm = MockLLMProvider(
            [
                multi_call(ToolCall(name="lookup", arguments={"key": "a"})),
                multi_call(
                    ToolCall(name="lookup", arguments={"key": "b"}),
                    ToolCall(name="lookup", arguments={"key": "c"}),
                ),
                "Final answer from what I have.",
            ]
        )
        agent = create_tool_agent(
            "qa", llm, counting_registry(calls), budget=ToolBudget(max_tool_calls=2)
        )

        result = await agent.invoke("t1", {"messages": [user("Collect a, b, c")]})

        assert result.success
        assert result.path == ["agent", "tools", "agent", "tools", "finalize"]
        assert calls == ["a", "b"]
        assert result.state["tool_calls_used"] == 2
        assert result.state["budget_exhausted"] is True

        messages = result.state["messages"]
        refused = messages[-3]
        assert refused.is_error and "limit of 2 tool calls" in refused.content
        assert messages[-2] == user(FINALIZE_INSTRUCTION)
        assert messages[-1].content == "Final answer from what I have."
        assert llm.calls[-1]["tools"] == []

    @pytest.mark.asyncio
    async def test_delegations_beyond_turn_limit_are_refused(self):
        calls: list[str] = []
        llm = MockLLMProvider(
            [
                multi_call(
                    *(
                        ToolCall(
                            name="task",
                            arguments={"description": d, "subagent_type": "research-agent"},
                        )
                        for d in ("one", "two", "three")
                    )
                ),
                "Summary.",
            ]
        )
        agent = create_tool_agent(
            "qa",
            llm,
            counting_registry(calls),
            budget=ToolBudget(max_tool_calls=10, max_delegations_per_turn=2),
        )

        result = await agent.invoke("t1", {"messages": [user("Research")]})

        assert calls == ["task:one", "task:two"]
        assert result.path[-1] == "finalize"
        tool_messages = [m for m in result.state["messages"] if m.role == "tool"]
        assert [m.is_error for m in tool_messages] == [False, False, True]

    @pytest.mark.asyncio
    async def test_counters_are_checkpointed(self):
        llm = MockLLMProvider([MockLLMProvider.tool_call("lookup", key="a"), "ok"])
        agent = create_tool_agent("qa", llm, counting_registry([]))

        await agent.invoke("t1", {"messages": [user("go")]})
        snapshot = await agent.get_snapshot("t1")
        checkpoint = await agent.get_state("t1")

        assert snapshot["tool_calls_used"] == 1
        assert checkpoint.next_node == END


def note_registry() -> ToolRegistry:
    def note(text: str) -> ToolResult:
        """Record a note."""
        return ToolResult(tool_call_id="", content="noted", update={"notes": text})

    def remind(text: str) -> ToolResult:
        """Add a reminder to the conversation."""
        return ToolResult(tool_call_id="", content="ok", update={"messages": [user(text)]})

    registry = ToolRegistry()
    registry.register_function(note)
    registry.register_function(remind)
    return registry


class TestToolStateUpdates:
    @pytest.mark.asyncio
    async def test_conflicting_writes_in_one_turn_fail(self):
        llm = MockLLMProvider(
            [
                multi_call(
                    ToolCall(name="note", arguments={"text": "first"}),
                    ToolCall(name="note", arguments={"text": "second"}),
                ),
                "unreachable",
            ]
        )
        agent = create_tool_agent(
            "qa", llm, note_registry(), extra_channels=(Channel("notes", str, default=lambda: ""),)
        )

        result = await agent.invoke("t1", {"messages": [user("take notes")]})

        assert not result.success
        assert result.failed_node == "tools"
        assert isinstance(result.exception, SchemaViolation)
        assert result.exception.channel == "notes"

    @pytest.mark.asyncio
    async def test_single_write_is_applied(self):
        llm = MockLLMProvider([MockLLMProvider.tool_call("note", text="only"), "done"])
        agent = create_tool_agent(
            "qa", llm, note_registry(), extra_channels=(Channel("notes", str, default=lambda: ""),)
        )

        result = await agent.invoke("t1", {"messages": [user("take notes")]})

        assert result.success
        assert result.state["notes"] == "only"

    @pytest.mark.asyncio
    async def test_tool_messages_follow_tool_results(self):
        llm = MockLLMProvider(
            [
                multi_call(
                    ToolCall(name="remind", arguments={"text": "remember the milk"}),
                    ToolCall(name="note", arguments={"text": "x"}),
                ),
                "done",
            ]
        )
        agent = create_tool_agent(
            "qa", llm, note_registry(), extra_channels=(Channel("notes", str, default=lambda: ""),)
        )

        result = await agent.invoke("t1", {"messages": [user("go")]})

        assert result.success
        roles = [m.role for m in result.state["messages"]]
        assert roles == ["user", "assistant", "tool", "tool", "user", "assistant"]
        assert result.state["messages"][4].content == "remember the milk"
