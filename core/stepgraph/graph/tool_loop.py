"""
Tool-Call Loop - The recurring "ask model, maybe call tools, loop" graph.

    agent ──(tool calls)──▶ tools ──▶ agent ... ──(no tool calls)──▶ END
                              │
                              └──(budget exceeded)──▶ finalize ──▶ END

The ``tools`` node dispatches one turn's calls concurrently through the
ToolRegistry. A ToolBudget bounds the total number of tool calls in a run and
the number of delegations per turn. Counters live in state so they survive
checkpoints. Calls beyond a limit are answered with refusal tool results, a
finalization instruction is appended, and the run routes to ``finalize``:
one last model call without tools.
"""

import logging
from dataclasses import dataclass
from typing import Any

from stepgraph.errors import MissingToolCall, SchemaViolation
from stepgraph.graph.builder import GraphBuilder
from stepgraph.graph.edge import END
from stepgraph.graph.executor import GraphExecutor
from stepgraph.graph.messages import ToolCall, last_message, tool_result, user
from stepgraph.graph.node import NodeContext, NodeResult
from stepgraph.graph.state import Channel, messages_schema
from stepgraph.llm.provider import LLMProvider
from stepgraph.llm.retry import retry_async
from stepgraph.runner.tool_registry import ToolRegistry
from stepgraph.storage.checkpoint_store import CheckpointStore

logger = logging.getLogger(__name__)

FINALIZE_INSTRUCTION = (
    "The tool budget for this task is exhausted. Do not request any more tools. "
    "Write your final answer now using only the information already gathered."
)


@dataclass
class ToolBudget:
    """Limits enforced before each tool dispatch. ``None`` disables a limit."""

    max_tool_calls: int | None = None
    max_delegations_per_turn: int | None = None
    delegation_tool: str = "task"

    def split(self, calls: list[ToolCall], used: int) -> tuple[list[ToolCall], list[ToolCall]]:
        """Partition one turn's calls into (allowed, refused), preserving order."""
        allowed: list[ToolCall] = []
        refused: list[ToolCall] = []
        delegations = 0
        for call in calls:
            if self.max_tool_calls is not None and used + len(allowed) >= self.max_tool_calls:
                refused.append(call)
                continue
            if call.name == self.delegation_tool:
                if (
                    self.max_delegations_per_turn is not None
                    and delegations >= self.max_delegations_per_turn
                ):
                    refused.append(call)
                    continue
                delegations += 1
            allowed.append(call)
        return allowed, refused

    def refusal(self, call: ToolCall) -> str:
        if call.name == self.delegation_tool and self.max_delegations_per_turn is not None:
            return (
                f"Refused: at most {self.max_delegations_per_turn} delegations per turn "
                f"(or {self.max_tool_calls} tool calls in total) are allowed."
            )
        return f"Refused: the limit of {self.max_tool_calls} tool calls has been reached."


def tool_agent_schema(*extra: Channel):
    """Messages plus the budget counters the tools node maintains."""
    return messages_schema(
        Channel("tool_calls_used", int, default=lambda: 0),
        Channel("budget_exhausted", bool, default=lambda: False),
        *extra,
    )


def build_tool_agent(
    graph_id: str,
    llm: LLMProvider,
    registry: ToolRegistry,
    system_prompt: str = "",
    budget: ToolBudget | None = None,
    extra_channels: tuple[Channel, ...] = (),
    temperature: float | None = None,
    max_tokens: int = 2048,
    llm_retries: int = 3,
    retry_delay: float = 1.0,
) -> GraphBuilder:
    """Assemble the agent/tools/finalize graph without compiling it."""
    budget = budget or ToolBudget()
    tools = registry.get_tools()

    async def call_model(ctx: NodeContext, with_tools: bool) -> NodeResult:
        response = await retry_async(
            lambda: llm.acomplete(
                list(ctx.state["messages"]),
                tools=tools if with_tools else None,
                system=system_prompt,
                temperature=temperature,
                max_tokens=max_tokens,
            ),
            service=f"{graph_id}.llm",
            max_attempts=llm_retries,
            base_delay=retry_delay,
        )
        if response.tool_calls:
            logger.info(f"   Model requested: {', '.join(c.name for c in response.tool_calls)}")
        return NodeResult(update={"messages": [response.message]})

    async def agent(ctx: NodeContext) -> NodeResult:
        """Call the model with the available tools."""
        return await call_model(ctx, with_tools=True)

    async def finalize(ctx: NodeContext) -> NodeResult:
        """Final model call without tools."""
        return await call_model(ctx, with_tools=False)

    async def run_tools(ctx: NodeContext) -> NodeResult:
        """Dispatch the requested tool calls, enforcing the budget."""
        message = last_message(ctx.state["messages"])
        if message is None or not message.has_tool_calls:
            raise MissingToolCall(f"'{ctx.node_id}' reached without a pending tool call")

        used = ctx.state["tool_calls_used"]
        allowed, refused = budget.split(message.tool_calls, used)

        results = await registry.dispatch_all(allowed, ctx.state)
        by_id = {r.tool_call_id: r for r in results}

        update: dict[str, Any] = {}
        messages = []
        extra = []
        for call in message.tool_calls:
            if call.id in by_id:
                result = by_id[call.id]
                messages.append(result.to_message())
                extra.extend(result.update.get("messages", []))
                for key, value in result.update.items():
                    if key == "messages":
                        continue
                    if key in update:
                        raise SchemaViolation(
                            key, f"written by more than one tool call in turn of '{ctx.node_id}'"
                        )
                    update[key] = value
            else:
                messages.append(
                    tool_result(call.id, budget.refusal(call), name=call.name, is_error=True)
                )
        # Tool-contributed messages follow the whole block of tool results.
        messages.extend(extra)

        update["tool_calls_used"] = used + len(allowed)
        if not refused:
            update["messages"] = messages
            return NodeResult(update=update)

        logger.warning(
            f"   Tool budget exceeded: refused {len(refused)} call(s): "
            f"{', '.join(c.name for c in refused)}"
        )
        update["messages"] = [*messages, user(FINALIZE_INSTRUCTION)]
        update["budget_exhausted"] = True
        return NodeResult(update=update, goto="finalize")

    def route_agent(state) -> str:
        message = last_message(state["messages"])
        return "tools" if message is not None and message.has_tool_calls else END

    builder = GraphBuilder(graph_id, tool_agent_schema(*extra_channels))
    builder.add_node("agent", agent)
    builder.add_node("tools", run_tools, ends=["agent", "finalize"], tools=[t.name for t in tools])
    builder.add_node("finalize", finalize)
    builder.set_entry("agent")
    builder.add_conditional_edges("agent", route_agent, {"tools": "tools", END: END})
    builder.add_edge("tools", "agent")
    builder.add_edge("finalize", END)
    return builder


def create_tool_agent(
    graph_id: str,
    llm: LLMProvider,
    registry: ToolRegistry,
    system_prompt: str = "",
    budget: ToolBudget | None = None,
    checkpoint_store: CheckpointStore | None = None,
    extra_channels: tuple[Channel, ...] = (),
    **options: Any,
) -> GraphExecutor:
    """
    Build and compile a tool-call agent.

    Example:
        executor = create_tool_agent(
            "supervisor",
            llm=LiteLLMProvider(model="gpt-4o-mini"),
            registry=registry,
            system_prompt=SUPERVISOR_PROMPT,
            budget=ToolBudget(max_tool_calls=20, max_delegations_per_turn=3),
        )
        result = await executor.invoke("t-1", {"messages": [user("Research X")]})
    """
    builder = build_tool_agent(
        graph_id,
        llm,
        registry,
        system_prompt=system_prompt,
        budget=budget,
        extra_channels=extra_channels,
        **options,
    )
    return builder.compile(checkpoint_store=checkpoint_store)

