"""Tests for isolated, bounded sub-agent delegation."""

import asyncio

import pytest

from stepgraph.errors import UnknownSubagentType
from stepgraph.graph.executor import ExecutionResult
from stepgraph.graph.messages import ToolCall, assistant, user
from stepgraph.llm.mock import MockLLMProvider
from stepgraph.runner import ToolRegistry
from stepgraph.runtime import (
    DelegationRequest,
    DelegationStatus,
    SubagentDelegator,
    SubagentSpec,
    create_task_tool,
    tool_agent_factory,
)
from stepgraph.schemas.run import RunStatus

RESEARCHER = SubagentSpec(
    name="research-agent",
    description="Researches one topic",
    prompt="You research things.",
    tools=["web_search"],
)


class FakeAgent:
    """Stands in for a compiled sub-agent and tracks concurrent invocations."""

    def __init__(self, fail_on: str | None = None, delay: float = 0.01):
        self.fail_on = fail_on
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.inputs: list[dict] = []

    async def invoke(self, thread_id, input_data):
        self.inputs.append(input_data)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            description = input_data["messages"][0].content
            if description == self.fail_on:
                raise RuntimeError("search backend down")
            return ExecutionResult(
                thread_id=thread_id,
                status=RunStatus.COMPLETED,
                state={"messages": [user(description), assistant(f"report on {description}")]},
            )
        finally:
            self.active -= 1


def search_registry() -> ToolRegistry:
    def web_search(query: str) -> str:
        return f"results for {query}"

    def write_file(file_path: str, content: str) -> str:
        return "written"

    registry = ToolRegistry()
    registry.register_function(web_search)
    registry.register_function(write_file)
    return registry


class TestIsolation:
    @pytest.mark.asyncio
    async def test_subagent_sees_only_the_description(self):
        llm = MockLLMProvider(default="MCP is a protocol.")
        delegator = SubagentDelegator([RESEARCHER], tool_agent_factory(llm, search_registry()))

        text = await delegator.delegate("Research MCP", "research-agent")

        assert text == "MCP is a protocol."
        [call] = llm.calls
        assert call["messages"] == [user("Research MCP")]
        assert call["system"] == "You research things."
        assert call["tools"] == ["web_search"]

    @pytest.mark.asyncio
    async def test_each_delegation_gets_a_fresh_thread(self):
        llm = MockLLMProvider(default="done")
        delegator = SubagentDelegator([RESEARCHER], tool_agent_factory(llm, search_registry()))

        await delegator.delegate("first", "research-agent")
        await delegator.delegate("second", "research-agent")

        assert [len(c["messages"]) for c in llm.calls] == [1, 1]
        first, second = delegator.records
        assert first.thread_id != second.thread_id
        assert first.status == second.status == DelegationStatus.COMPLETED


class TestBoundedConcurrency:
    @pytest.mark.asyncio
    async def test_at_most_max_concurrent_run_at_once(self):
        agent = FakeAgent()
        delegator = SubagentDelegator([RESEARCHER], lambda spec: agent, max_concurrent=2)

        records = await delegator.delegate_many(
            [DelegationRequest(f"topic {i}", "research-agent") for i in range(5)]
        )

        assert agent.peak == 2
        assert [r.result for r in records] == [f"report on topic {i}" for i in range(5)]
        assert all(r.status == DelegationStatus.COMPLETED for r in records)

    @pytest.mark.asyncio
    async def test_concurrent_task_tool_calls_share_the_bound(self):
        agent = FakeAgent()
        delegator = SubagentDelegator([RESEARCHER], lambda spec: agent, max_concurrent=1)
        task = create_task_tool(delegator)

        results = await asyncio.gather(
            *(task(description=d, subagent_type="research-agent") for d in ("a", "b", "c"))
        )

        assert agent.peak == 1
        assert results == ["report on a", "report on b", "report on c"]

    def test_max_concurrent_must_be_positive(self):
        with pytest.raises(ValueError):
            SubagentDelegator([RESEARCHER], lambda spec: FakeAgent(), max_concurrent=0)


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_becomes_text_and_siblings_finish(self):
        agent = FakeAgent(fail_on="b")
        delegator = SubagentDelegator([RESEARCHER], lambda spec: agent)

        records = await delegator.delegate_many(
            [DelegationRequest(d, "research-agent") for d in ("a", "b", "c")]
        )

        assert [r.status for r in records] == [
            DelegationStatus.COMPLETED,
            DelegationStatus.FAILED,
            DelegationStatus.COMPLETED,
        ]
        assert records[1].result.startswith("Error: sub-agent research-agent failed")
        assert "search backend down" in records[1].result

    @pytest.mark.asyncio
    async def test_unknown_subagent_type_raises(self):
        delegator = SubagentDelegator([RESEARCHER], lambda spec: FakeAgent())

        with pytest.raises(UnknownSubagentType) as exc_info:
            await delegator.delegate("x", "critic")

        assert exc_info.value.valid == ["research-agent"]
        assert str(exc_info.value) == (
            "invoked agent of type critic, the only allowed types are [`research-agent`]"
        )

    @pytest.mark.asyncio
    async def test_unknown_subagent_in_batch_fails_only_that_record(self):
        delegator = SubagentDelegator([RESEARCHER], lambda spec: FakeAgent())

        records = await delegator.delegate_many(
            [DelegationRequest("a", "research-agent"), DelegationRequest("b", "critic")]
        )

        assert records[0].status == DelegationStatus.COMPLETED
        assert records[1].status == DelegationStatus.FAILED
        assert "critic" in records[1].result

    @pytest.mark.asyncio
    async def test_unknown_subagent_through_task_tool_is_error_result(self):
        delegator = SubagentDelegator([RESEARCHER], lambda spec: FakeAgent())
        registry = ToolRegistry()
        registry.register_function(create_task_tool(delegator))

        result = await registry.dispatch(
            ToolCall(name="task", arguments={"description": "x", "subagent_type": "critic"})
        )

        assert result.is_error
        assert "only allowed types" in result.content


def test_task_tool_lists_subagents():
    delegator = SubagentDelegator([RESEARCHER], lambda spec: FakeAgent())
    registry = ToolRegistry()
    registry.register_function(create_task_tool(delegator))

    [definition] = registry.get_tools()

    assert definition.name == "task"
    assert "- research-agent: Researches one topic" in definition.description
    assert definition.parameters["required"] == ["description", "subagent_type"]
