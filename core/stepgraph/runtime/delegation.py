"""
Sub-agent Delegator - Isolated, bounded fan-out of sub-tasks.

A parent agent hands a task description to a named sub-agent. The sub-agent
runs its own graph on a brand-new thread whose state holds exactly one user
message (the description); it never sees the parent's history or a
sibling's state. Only its terminal text comes back.

Concurrency is bounded by a semaphore: with ``max_concurrent=B`` and K > B
requests, B run at once and the rest wait their turn; nothing is rejected.
Sub-agent failures are returned as text so one failed delegation never
aborts its siblings or the parent.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from stepgraph.errors import UnknownSubagentType
from stepgraph.graph.executor import ExecutionResult, GraphExecutor
from stepgraph.graph.messages import user
from stepgraph.graph.tool_loop import ToolBudget, create_tool_agent
from stepgraph.llm.provider import LLMProvider
from stepgraph.runner.tool_registry import ToolRegistry, tool

logger = logging.getLogger(__name__)

TASK_DESCRIPTION_PREFIX = """Delegate a task to a specialized sub-agent with isolated context.

This creates a fresh context for the sub-agent containing only the task description,
preventing context pollution from the parent agent's conversation history.

Available sub-agents:
{other_agents}

Parameters:
- description: Clear, specific task or research question for the sub-agent
- subagent_type: Type of sub-agent to use (e.g., "research-agent")"""


@dataclass
class SubagentSpec:
    """
    A named sub-agent.

    ``tools`` restricts the capabilities the sub-agent may call; None means
    every tool of the shared registry.
    """

    name: str
    description: str
    prompt: str
    tools: list[str] | None = None


class DelegationStatus(StrEnum):
    PENDING = "pending"  # Waiting for a concurrency slot
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class DelegationRecord:
    """One delegated task and how it resolved."""

    description: str
    subagent_type: str
    id: str = field(default_factory=lambda: f"task_{uuid.uuid4().hex[:8]}")
    status: DelegationStatus = DelegationStatus.PENDING
    result: str | None = None
    thread_id: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None


@dataclass
class DelegationRequest:
    description: str
    subagent_type: str


AgentFactory = Callable[[SubagentSpec], GraphExecutor]


def tool_agent_factory(
    llm: LLMProvider,
    registry: ToolRegistry,
    budget: ToolBudget | None = None,
    **options: Any,
) -> AgentFactory:
    """Factory building each sub-agent as a tool-call agent over ``registry``."""

    def build(spec: SubagentSpec) -> GraphExecutor:
        tools = registry if spec.tools is None else registry.subset(spec.tools)
        return create_tool_agent(
            f"subagent-{spec.name}",
            llm,
            tools,
            system_prompt=spec.prompt,
            budget=budget,
            **options,
        )

    return build


def final_text(result: ExecutionResult) -> str:
    """The last message's text of a finished run."""
    messages = (result.state or {}).get("messages") or []
    if not messages:
        return "No result returned"
    return messages[-1].content or "No result returned"


class SubagentDelegator:
    """
    Runs sub-agents in isolation with bounded concurrency.

    Example:
        delegator = SubagentDelegator(
            [research_agent],
            tool_agent_factory(llm, registry),
            max_concurrent=3,
        )
        text = await delegator.delegate("Research MCP", "research-agent")
    """

    def __init__(
        self,
        subagents: list[SubagentSpec],
        agent_factory: AgentFactory,
        max_concurrent: int = 4,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.subagents = {spec.name: spec for spec in subagents}
        self.agent_factory = agent_factory
        self.max_concurrent = max_concurrent
        self.records: list[DelegationRecord] = []
        self._agents: dict[str, GraphExecutor] = {}
        self._semaphore = asyncio.Semaphore(max_concurrent)

    def _agent(self, subagent_type: str) -> GraphExecutor:
        if subagent_type not in self.subagents:
            raise UnknownSubagentType(subagent_type, list(self.subagents))
        if subagent_type not in self._agents:
            self._agents[subagent_type] = self.agent_factory(self.subagents[subagent_type])
        return self._agents[subagent_type]

    async def delegate(self, description: str, subagent_type: str) -> str:
        """Run one sub-agent on ``description`` and return its final text.

        Raises:
            UnknownSubagentType: ``subagent_type`` is not registered
        """
        agent = self._agent(subagent_type)
        record = DelegationRecord(description=description, subagent_type=subagent_type)
        self.records.append(record)
        return await self._run(agent, record)

    async def delegate_many(self, requests: list[DelegationRequest]) -> list[DelegationRecord]:
        """Run all requests concurrently (bounded); records come back in request order."""
        records = [
            DelegationRecord(description=r.description, subagent_type=r.subagent_type)
            for r in requests
        ]
        self.records.extend(records)

        async def run_one(record: DelegationRecord) -> None:
            try:
                agent = self._agent(record.subagent_type)
            except UnknownSubagentType as e:
                record.status = DelegationStatus.FAILED
                record.result = f"Error: {e}"
                record.completed_at = datetime.now()
                return
            await self._run(agent, record)

        await asyncio.gather(*(run_one(record) for record in records))
        return records

    async def _run(self, agent: GraphExecutor, record: DelegationRecord) -> str:
        async with self._semaphore:
            record.status = DelegationStatus.RUNNING
            record.thread_id = f"{record.subagent_type}-{uuid.uuid4().hex[:12]}"
            logger.info(f"   ⑂ Delegating {record.id} to {record.subagent_type}")
            try:
                result = await agent.invoke(
                    record.thread_id, {"messages": [user(record.description)]}
                )
            except Exception as e:
                logger.error(f"   ✗ Sub-agent {record.subagent_type} crashed: {e}")
                result = None
                record.result = f"Error: sub-agent {record.subagent_type} failed: {e}"

        if result is not None:
            if result.success:
                record.result = final_text(result)
            elif result.interrupted:
                record.result = (
                    f"Error: sub-agent {record.subagent_type} suspended waiting for input"
                )
            else:
                record.result = f"Error: sub-agent {record.subagent_type} failed: {result.error}"

        failed = result is None or not result.success
        record.status = DelegationStatus.FAILED if failed else DelegationStatus.COMPLETED
        record.completed_at = datetime.now()
        logger.info(f"   ✓ {record.id} {record.status}")
        return record.result

    def describe(self) -> str:
        return "\n".join(f"- {s.name}: {s.description}" for s in self.subagents.values())


def create_task_tool(delegator: SubagentDelegator) -> Callable:
    """The ``task`` tool: delegation exposed to a parent tool-call agent."""

    @tool(
        name="task",
        description=TASK_DESCRIPTION_PREFIX.format(other_agents=delegator.describe()),
    )
    async def task(description: str, subagent_type: str) -> str:
        return await delegator.delegate(description, subagent_type)

    return task
