"""
CLI entry point for the Email Triage Agent.

    python -m email_triage run "My car has blown up!" --sender customer@test.com
    python -m email_triage review email-1 --approve --edit "Approved by Human: ..."
"""

import asyncio
import json
import sys
from pathlib import Path

import click

from stepgraph.graph.interrupt import format_for_display
from stepgraph.llm import MockLLMProvider
from stepgraph.observability import configure_logging
from stepgraph.schemas import RunStatus
from stepgraph.storage import FileCheckpointStore

from .agent import EmailTriageAgent, default_agent
from .config import EmailTriageConfig, metadata


def setup_logging(verbose=False, debug=False, json_logs=False):
    """Configure logging for execution visibility."""
    level = "DEBUG" if debug else "INFO" if verbose else "WARNING"
    configure_logging(level=level, format="json" if json_logs else "human")


def make_agent(store: Path | None, mock: bool = False) -> EmailTriageAgent:
    config = EmailTriageConfig(storage_path=store) if store else default_agent.config
    llm = None
    if mock:
        llm = MockLLMProvider(
            [
                {
                    "intent": "complex",
                    "urgency": "critical",
                    "topic": "vehicle",
                    "summary": "Customer reports a destroyed car",
                },
                "We are sorry to hear that. A specialist will contact you today.",
            ]
        )
    return EmailTriageAgent(config, llm=llm, checkpoint_store=FileCheckpointStore(config.storage_path))


def emit(result) -> None:
    output_data = {
        "thread_id": result.thread_id,
        "status": result.status,
        "path": result.path,
    }
    if result.interrupted:
        output_data["review"] = result.interrupt_payload
    elif result.state is not None:
        output_data["draft_response"] = result.state.get("draft_response")
        output_data["sent"] = result.state.get("sent")
    if result.error:
        output_data["error"] = result.error
    click.echo(json.dumps(output_data, indent=2, default=str))


@click.group()
@click.version_option(version=metadata.version)
def cli():
    """Email Triage Agent - Classify email, draft replies, review urgent ones."""
    pass


@cli.command()
@click.argument("email_content")
@click.option("--sender", required=True, help="Sender address")
@click.option("--email-id", default=None)
@click.option("--store", type=click.Path(path_type=Path), default=None, help="Checkpoint directory")
@click.option("--mock", is_flag=True, help="Run with a scripted model")
@click.option("--verbose", "-v", is_flag=True, help="Show execution details")
@click.option("--debug", is_flag=True, help="Show debug logging")
@click.option("--json-logs", is_flag=True, help="Emit structured JSON logs")
def run(email_content, sender, email_id, store, mock, verbose, debug, json_logs):
    """Triage EMAIL_CONTENT."""
    setup_logging(verbose=verbose, debug=debug, json_logs=json_logs)
    agent = make_agent(store, mock)
    result = asyncio.run(agent.run(email_content, sender, email_id=email_id))
    emit(result)
    if result.interrupted:
        click.echo(f"\nWaiting for review:\n{format_for_display(result.interrupt_payload)}", err=True)
    sys.exit(1 if result.status == RunStatus.FAILED else 0)


@cli.command()
@click.argument("thread_id")
@click.option("--approve/--reject", default=True)
@click.option("--edit", "edited_response", default=None, help="Replacement text for the draft")
@click.option("--store", type=click.Path(path_type=Path), default=None, help="Checkpoint directory")
@click.option("--verbose", "-v", is_flag=True)
def review(thread_id, approve, edited_response, store, verbose):
    """Resume THREAD_ID with a review decision."""
    setup_logging(verbose=verbose)
    agent = make_agent(store)
    decision = {"approved": approve, "edited_response": edited_response}
    result = asyncio.run(agent.review(thread_id, decision))
    emit(result)
    sys.exit(1 if result.status == RunStatus.FAILED else 0)


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
        click.echo(f"Pause: {', '.join(info_data['pause_nodes'])}")


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


if __name__ == "__main__":
    cli()
