"""
Email Triage Agent - Classify customer email and draft replies.

Bugs open a ticket, everything else is answered from documentation; urgent
or complex drafts wait for human approval before they are sent.
"""

from .agent import EmailTriageAgent, build_graph, default_agent, triage_schema
from .config import AgentMetadata, EmailTriageConfig, default_config, metadata
from .nodes import EmailClassification

__version__ = "1.0.0"

__all__ = [
    "EmailTriageAgent",
    "EmailClassification",
    "build_graph",
    "triage_schema",
    "default_agent",
    "EmailTriageConfig",
    "AgentMetadata",
    "default_config",
    "metadata",
]
