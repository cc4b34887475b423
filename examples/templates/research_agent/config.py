"""Runtime configuration for the Research Agent."""

from dataclasses import dataclass

from stepgraph.config import RuntimeConfig


@dataclass(kw_only=True)
class ResearchAgentConfig(RuntimeConfig):
    max_concurrent_research_units: int = 3
    max_researcher_iterations: int = 3
    max_tool_calls: int = 20
    max_subagent_tool_calls: int = 5


default_config = ResearchAgentConfig()


@dataclass
class AgentMetadata:
    name: str = "Research Agent"
    version: str = "1.0.0"
    description: str = (
        "Plan research with a todo list, delegate focused questions to isolated "
        "research sub-agents, keep findings in a virtual file table and answer."
    )


metadata = AgentMetadata()
