"""
CLI entry point for the Research Agent.

    python -m research_agent run "Give me an overview of Model Context Protocol (MCP)."
"""

import asyncio
import json
import sys

import click

from stepgraph.llm import MockLLMProvider
from stepgraph.observability import configure_logging

from .agent import ResearchAgent, default_agent
from .config import metadata
from .nodes import RESEARCHER


def setup_logging(verbose=False, debug=False, json_logs=False):
    """Configure logging for execution visibility."""
    level = "DEBUG" if debug else "INFO" if verbose else "WARNING"
    configure_logging(level=level, format="json" if json_logs else "human")


def mock_llm(request: str) -> MockLLMProvider:
    """Supervisor delegates once; the researcher searches once; both answer."""
    return MockLLMProvider(
        [
            MockLLMProvider.tool_call("task", description=request, subagent_type=RESEARCHER),
            MockLLMProvider.tool_call("web_search", query=request),
            "MCP is an open protocol that standardizes how models reach tools and data.",
            "Summary: MCP is an open standard connecting AI models to external systems.",
        ]
    )


@click.group()
@click.version_option(version=metadata.version)
def cli():
    """Research Agent - Delegate research to isolated sub-agents."""
    pass


@cli.command()
@click.argument("request")
@click.option("--mock", is_flag=True, help="Run with a scripted model")
@click.option("--quiet", "-q", is_flag=True, help="Only output result JSON")
@click.option("--verbose", "-v", is_flag=True, help="Show execution details")
@click.option("--debug", is_flag=True, help="Show debug logging")
@click.option("--json-logs", is_flag=True, help="Emit structured JSON logs")
def run(request, mock, quiet, verbose, debug, json_logs):
    """Research REQUEST."""
    if not quiet:
        setup_logging(verbose=verbose, debug=debug, json_logs=json_logs)

    agent = ResearchAgent(llm=mock_llm(request) if mock else None)
    result = asyncio.run(agent.run(request))

    messages = result.state["messages"] if result.state else []
    output_data = {
        "success": result.success,
        "thread_id": result.thread_id,
        "steps_executed": result.steps_executed,
        "answer": messages[-1].content if messages else None,
        "files": agent.files.ls(),
        "delegations": [
            {"id": r.id, "status": r.status, "thread_id": r.thread_id}
            for r in agent.delegator.records
        ],
    }
    if result.error:
        output_data["error"] = result.error

    click.echo(json.dumps(output_data, indent=2, default=str))
    sys.exit(0 if result.success else 1)


@cli.command()
@click.option("--json", "output_json", is_flag=True)
def info(output_json):
    """Show agent information."""
    info_data = default_agent.info()
    if output_json:
        click.echo(json.dumps(info_data, indent=2))
    else:
        click.echo(f"Agent: {info_data['name']}")
        click.echo(f"Version: {info_data['version']}")
        click.echo(f"Description: {info_data['description']}")
        click.echo(f"\nTools: {', '.join(info_data['tools'])}")
        click.echo(f"Sub-agents: {', '.join(info_data['subagents'])}")


if __name__ == "__main__":
    cli()
