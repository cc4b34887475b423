"""
Research Agent - Supervisor with isolated research sub-agents.

Keeps a todo plan, delegates focused questions to research sub-agents that
run in fresh contexts, stores findings in a virtual file table and answers.
"""

from .agent import ResearchAgent, default_agent
from .config import AgentMetadata, ResearchAgentConfig, default_config, metadata

__version__ = "1.0.0"

__all__ = [
    "ResearchAgent",
    "default_agent",
    "ResearchAgentConfig",
    "AgentMetadata",
    "default_config",
    "metadata",
]
