"""
RAG Agent - Retrieval-then-generate with a relevance gate.

Retrieve from a small web corpus, grade the retrieved context against the
question, reformulate the question when the context misses, and answer.
"""

from .agent import RagAgent, build_graph, default_agent, rag_schema
from .config import AgentMetadata, RagAgentConfig, default_config, metadata

__version__ = "1.0.0"

__all__ = [
    "RagAgent",
    "build_graph",
    "rag_schema",
    "default_agent",
    "RagAgentConfig",
    "AgentMetadata",
    "default_config",
    "metadata",
]
