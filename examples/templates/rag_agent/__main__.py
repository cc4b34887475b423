"""
CLI entry point for the RAG Agent.

    python -m rag_agent run "What is new in Deno 2.1?"
    python -m rag_agent run --mock "How do npm specifiers work?"
"""

import asyncio
import json
import sys
from pathlib import Path

import click

from stepgraph.llm import MockLLMProvider
from stepgraph.observability import configure_logging
from stepgraph.retrieval import Chunk, InMemoryVectorIndex
from stepgraph.storage import FileCheckpointStore

from .agent import RagAgent, default_agent, mock_llm
from .config import RagAgentConfig, metadata

SAMPLE_CHUNKS = [
    "Deno 2.1 adds first-class Wasm imports and long-term support releases.",
    "npm specifiers let Deno programs import npm packages without a package.json.",
    "Drizzle ORM works with Deno and Postgres for building database apps.",
]


def setup_logging(verbose=False, debug=False, json_logs=False):
    """Configure logging for execution visibility."""
    level = "DEBUG" if debug else "INFO" if verbose else "WARNING"
    configure_logging(level=level, format="json" if json_logs else "human")


@click.group()
@click.version_option(version=metadata.version)
def cli():
    """RAG Agent - Answer questions from a retrieved, graded corpus."""
    pass


@cli.command()
@click.argument("question")
@click.option("--max-rewrites", type=int, default=None, help="Rewrite cap before answering anyway")
@click.option("--url", "urls", multiple=True, help="Corpus URL (repeatable)")
@click.option("--store", type=click.Path(path_type=Path), default=None, help="Checkpoint directory")
@click.option("--mock", is_flag=True, help="Run with a scripted model and a built-in corpus")
@click.option("--quiet", "-q", is_flag=True, help="Only output result JSON")
@click.option("--verbose", "-v", is_flag=True, help="Show execution details")
@click.option("--debug", is_flag=True, help="Show debug logging")
@click.option("--json-logs", is_flag=True, help="Emit structured JSON logs")
def run(question, max_rewrites, urls, store, mock, quiet, verbose, debug, json_logs):
    """Answer QUESTION."""
    if not quiet:
        setup_logging(verbose=verbose, debug=debug, json_logs=json_logs)

    config = default_agent.config
    if max_rewrites is not None or urls:
        config = RagAgentConfig(
            max_rewrites=config.max_rewrites if max_rewrites is None else max_rewrites,
            urls=list(urls) or config.urls,
        )
    checkpoint_store = FileCheckpointStore(store) if store else None

    async def execute():
        llm = index = None
        if mock:
            llm = mock_llm(question)
            index = InMemoryVectorIndex(MockLLMProvider())
            await index.add([Chunk(content=text) for text in SAMPLE_CHUNKS])
        agent = RagAgent(config, llm=llm, index=index, checkpoint_store=checkpoint_store)
        return await agent.run(question)

    result = asyncio.run(execute())

    output_data = {
        "success": result.success,
        "thread_id": result.thread_id,
        "path": result.path,
        "answer": result.state.get("answer") if result.state else None,
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
        click.echo(f"\nNodes: {', '.join(info_data['nodes'])}")
        click.echo(f"Entry: {info_data['entry_node']}")
        click.echo(f"Max rewrites: {info_data['max_rewrites']}")


@cli.command()
def validate():
    """Validate agent structure."""
    validation = default_agent.validate()
    if validation["valid"]:
        click.echo("Agent is valid")
    else:
        click.echo("Agent has errors:")
        for error in validation["errors"]:
            click.echo(f"  ERROR: {error}")
    sys.exit(0 if validation["valid"] else 1)


@cli.command()
@click.option("--mock", is_flag=True, help="Use a scripted model and the built-in corpus")
@click.option("--verbose", "-v", is_flag=True)
def shell(mock, verbose):
    """Interactive question answering session."""
    asyncio.run(_interactive_shell(mock, verbose))


async def _interactive_shell(mock=False, verbose=False):
    """Async interactive shell."""
    setup_logging(verbose=verbose)

    click.echo("=== RAG Agent ===")
    click.echo("Ask a question (or 'quit' to exit):\n")

    index = None
    if mock:
        index = InMemoryVectorIndex(MockLLMProvider())
        await index.add([Chunk(content=text) for text in SAMPLE_CHUNKS])

    while True:
        try:
            question = await asyncio.get_event_loop().run_in_executor(None, input, "> ")
        except (KeyboardInterrupt, EOFError):
            click.echo("\nGoodbye!")
            break
        if question.lower() in ["quit", "exit", "q"]:
            click.echo("Goodbye!")
            break
        if not question.strip():
            continue

        agent = RagAgent(llm=mock_llm(question) if mock else None, index=index)
        result = await agent.run(question)
        index = agent.index
        if result.success:
            last = result.state["messages"][-1]
            click.echo(f"\n{result.state.get('answer') or last.content}\n")
        else:
            click.echo(f"\nFailed: {result.error}\n")


if __name__ == "__main__":
    cli()
