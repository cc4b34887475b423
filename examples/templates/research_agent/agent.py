"""Agent construction for the Research Agent."""

import uuid

from stepgraph.graph import GraphExecutor, ToolBudget, build_tool_agent
from stepgraph.graph.executor import ExecutionResult
from stepgraph.graph.messages import user
from stepgraph.llm import LLMProvider
from stepgraph.runner import ToolRegistry
from stepgraph.runtime import SubagentDelegator, create_task_tool, tool_agent_factory
from stepgraph.storage import CheckpointStore
from stepgraph.toolkits import FileTable, create_file_tools, create_todo_tools, think_tool, todos_channel

from .config import ResearchAgentConfig, default_config, metadata
from .nodes import create_web_search_tool, research_subagent, supervisor_prompt


class ResearchAgent:
    """
    Research Agent - a supervisor tool agent over isolated researchers.

    Supervisor tools: task, think_tool, write_todos, read_todos, ls,
    read_file, write_file. Each ``task`` call runs a ``research-agent`` on a
    fresh thread with only ``web_search`` and ``think_tool``.

    The FileTable is shared by explicit handle: the supervisor writes as
    "main", researchers as "research-agent".
    """

    def __init__(
        self,
        config: ResearchAgentConfig | None = None,
        llm: LLMProvider | None = None,
        files: FileTable | None = None,
        checkpoint_store: CheckpointStore | None = None,
    ):
        self.config = config or default_config
        self.llm = llm
        self.files = files if files is not None else FileTable()
        self.checkpoint_store = checkpoint_store
        self.delegator: SubagentDelegator | None = None
        self._executor: GraphExecutor | None = None

    def _build(self) -> tuple[ToolRegistry, SubagentDelegator]:
        if self.llm is None:
            self.llm = self.config.create_llm()

        research_tools = ToolRegistry()
        research_tools.register_function(create_web_search_tool(self.files))
        research_tools.register_function(think_tool)

        delegator = SubagentDelegator(
            [research_subagent()],
            tool_agent_factory(
                self.llm,
                research_tools,
                budget=ToolBudget(max_tool_calls=self.config.max_subagent_tool_calls),
                max_tokens=self.config.max_tokens,
            ),
            max_concurrent=self.config.max_concurrent_research_units,
        )

        tools = ToolRegistry()
        tools.register_function(create_task_tool(delegator))
        tools.register_function(think_tool)
        for fn in create_todo_tools() + create_file_tools(self.files, owner="main"):
            tools.register_function(fn)
        return tools, delegator

    def executor(self) -> GraphExecutor:
        if self._executor is None:
            tools, self.delegator = self._build()
            budget = ToolBudget(
                max_tool_calls=self.config.max_tool_calls,
                max_delegations_per_turn=self.config.max_concurrent_research_units,
            )
            builder = build_tool_agent(
                "research-supervisor",
                self.llm,
                tools,
                system_prompt=supervisor_prompt(
                    self.config.max_concurrent_research_units,
                    self.config.max_researcher_iterations,
                ),
                budget=budget,
                extra_channels=(todos_channel(),),
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
            self._executor = builder.compile(checkpoint_store=self.checkpoint_store)
        return self._executor

    async def run(self, request: str, thread_id: str | None = None) -> ExecutionResult:
        thread_id = thread_id or f"research-{uuid.uuid4().hex[:8]}"
        return await self.executor().invoke(thread_id, {"messages": [user(request)]})

    def info(self) -> dict:
        tools, delegator = self._build()
        return {
            "name": metadata.name,
            "version": metadata.version,
            "description": metadata.description,
            "tools": tools.get_registered_names(),
            "subagents": list(delegator.subagents),
            "max_concurrent_research_units": self.config.max_concurrent_research_units,
            "max_tool_calls": self.config.max_tool_calls,
        }


default_agent = ResearchAgent()
