"""
stepgraph - Agents as graphs of steps over shared, evolving state.

A workflow engine for small language-model agents: conditional routing,
cycles, durable checkpoints, suspend/resume and isolated sub-agent
delegation.
"""

from stepgraph.errors import StepGraphError
from stepgraph.graph import (
    END,
    START,
    Channel,
    ExecutionResult,
    GraphBuilder,
    GraphExecutor,
    NodeContext,
    NodeResult,
    StateSchema,
    messages_schema,
)
from stepgraph.storage import FileCheckpointStore, InMemoryCheckpointStore

__version__ = "0.1.0"

__all__ = [
    "START",
    "END",
    "Channel",
    "StateSchema",
    "messages_schema",
    "NodeContext",
    "NodeResult",
    "GraphBuilder",
    "GraphExecutor",
    "ExecutionResult",
    "InMemoryCheckpointStore",
    "FileCheckpointStore",
    "StepGraphError",
]
