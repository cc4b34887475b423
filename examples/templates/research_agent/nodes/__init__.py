"""Prompts, sub-agents and tools of the Research Agent."""

import re
from collections.abc import Callable
from datetime import date

from stepgraph.runner import tool
from stepgraph.runtime import SubagentSpec
from stepgraph.toolkits import TODO_USAGE_INSTRUCTIONS, FileTable

SEARCH_RESULT = """The Model Context Protocol (MCP) is an open standard protocol developed
by Anthropic to enable seamless integration between AI models and external systems like
tools, databases, and other services. It acts as a standardized communication layer,
allowing AI models to access and utilize data from various sources in a consistent and
efficient manner. Essentially, MCP simplifies the process of connecting AI assistants
to external services by providing a unified language for data exchange."""

RESEARCH_INSTRUCTIONS = """You are a researcher. Research the topic provided to you. For context, today's date is {date}.
IMPORTANT: Just make a single call to the web_search tool and use the result provided by the tool to answer the provided topic.
Use think_tool after the search to reflect on what you found before answering."""

FILE_USAGE_INSTRUCTIONS = """You have access to a virtual file system to help you retain and save context.

## Workflow Process
1. **Orient**: Use ls() to see existing files before starting work
2. **Save**: Use write_file() to store the user's request so that we can keep it for later
3. **Research**: Proceed with research. The search tool will write files.
4. **Read**: Once you are satisfied with the collected sources, read the files and use them to answer the user's question directly."""

SUBAGENT_USAGE_INSTRUCTIONS = """You can delegate tasks to sub-agents.

<Task>
Your role is to coordinate research by delegating specific research tasks to sub-agents.
</Task>

<Available Tools>
1. **task(description, subagent_type)**: Delegate research tasks to specialized sub-agents
   - description: Clear, specific research question or task
   - subagent_type: Type of agent to use (e.g., "research-agent")
2. **think_tool(reflection)**: Reflect on the results of each delegated task and plan next steps.
   - reflection: Your detailed reflection on the results of the task and next steps.

**PARALLEL RESEARCH**: When you identify multiple independent research directions, make multiple **task**
tool calls in a single response to enable parallel execution. Use at most {max_concurrent} parallel agents per iteration.
</Available Tools>

<Hard Limits>
- **Bias towards focused research** - Use single agent for simple questions, multiple only when clearly
beneficial or when you have multiple independent research directions based on the user's request.
- **Stop when adequate** - Don't over-research; stop when you have sufficient information
- **Limit iterations** - Stop after {max_iterations} task delegations if you haven't found adequate sources
</Hard Limits>

**Important Reminders:**
- Each **task** call creates a dedicated research agent with isolated context
- Sub-agents can't see each other's work - provide complete standalone instructions
- Use clear, specific language - avoid acronyms or abbreviations in task descriptions"""

RESEARCHER = "research-agent"
RESEARCHER_OWNER = "research-agent"


def supervisor_prompt(max_concurrent: int, max_iterations: int) -> str:
    return "\n\n".join(
        [
            "You are a research assistant that uses tools to gather information and answer questions.",
            "# TODO MANAGEMENT\n" + TODO_USAGE_INSTRUCTIONS,
            "# FILE SYSTEM USAGE\n" + FILE_USAGE_INSTRUCTIONS,
            "# SUB-AGENT DELEGATION\n"
            + SUBAGENT_USAGE_INSTRUCTIONS.format(
                max_concurrent=max_concurrent, max_iterations=max_iterations
            ),
        ]
    )


def research_subagent() -> SubagentSpec:
    return SubagentSpec(
        name=RESEARCHER,
        description=(
            "Delegate research to the sub-agent researcher. "
            "Only give this researcher one topic at a time."
        ),
        prompt=RESEARCH_INSTRUCTIONS.format(date=date.today().isoformat()),
        tools=["web_search", "think_tool"],
    )


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")[:40] or "query"


def create_web_search_tool(table: FileTable, owner: str = RESEARCHER_OWNER) -> Callable:
    """Canned web search; each result is also saved to the file table."""

    @tool(name="web_search", description="Search the web for information on a specific topic.")
    def web_search(query: str) -> str:
        filename = f"search_{_slug(query)}.md"
        table.write(
            filename,
            f"# Search Result\n\n**Query:** {query}\n\n## Content\n{SEARCH_RESULT}\n",
            owner=owner,
        )
        return f"{SEARCH_RESULT}\n\nFile saved: {filename}"

    return web_search


__all__ = [
    "SEARCH_RESULT",
    "RESEARCHER",
    "supervisor_prompt",
    "research_subagent",
    "create_web_search_tool",
]
