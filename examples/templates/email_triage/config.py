"""Runtime configuration for the Email Triage Agent."""

from dataclasses import dataclass
from pathlib import Path

from stepgraph.config import RuntimeConfig


@dataclass(kw_only=True)
class EmailTriageConfig(RuntimeConfig):
    temperature: float = 0.0
    storage_path: Path = Path.home() / ".stepgraph" / "agents" / "email_triage"


default_config = EmailTriageConfig()


@dataclass
class AgentMetadata:
    name: str = "Email Triage"
    version: str = "1.0.0"
    description: str = (
        "Classify a customer email, open a ticket or look up documentation, draft a "
        "reply, and hold high-urgency or complex drafts for human approval."
    )


metadata = AgentMetadata()
