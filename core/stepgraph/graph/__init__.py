"""Graph structures: state, nodes, edges, execution and the tool-call loop."""

from stepgraph.graph.messages import Message, ToolCall, assistant, system, tool_result, user
from stepgraph.graph.state import Channel, StateSchema, StateSnapshot, apply, messages_schema
from stepgraph.graph.interrupt import ApprovalRequest, ApprovalResponse, Interrupt
from stepgraph.graph.node import (
    FunctionNode,
    NodeContext,
    NodeProtocol,
    NodeRegistry,
    NodeResult,
    NodeSpec,
    SequentialNode,
)
from stepgraph.graph.edge import END, START, EdgeCondition, EdgeSpec, GraphSpec
from stepgraph.graph.checkpoint_config import CheckpointConfig
from stepgraph.graph.executor import ExecutionResult, GraphExecutor, StepEvent
from stepgraph.graph.builder import GraphBuilder
from stepgraph.graph.tool_loop import ToolBudget, build_tool_agent, create_tool_agent

__all__ = [
    # Messages
    "Message",
    "ToolCall",
    "user",
    "system",
    "assistant",
    "tool_result",
    # State
    "Channel",
    "StateSchema",
    "StateSnapshot",
    "apply",
    "messages_schema",
    # Interrupts
    "Interrupt",
    "ApprovalRequest",
    "ApprovalResponse",
    # Node
    "NodeSpec",
    "NodeContext",
    "NodeResult",
    "NodeProtocol",
    "NodeRegistry",
    "FunctionNode",
    "SequentialNode",
    # Edge
    "START",
    "END",
    "EdgeSpec",
    "EdgeCondition",
    "GraphSpec",
    # Execution
    "CheckpointConfig",
    "GraphExecutor",
    "ExecutionResult",
    "StepEvent",
    "GraphBuilder",
    # Tool-call loop
    "ToolBudget",
    "build_tool_agent",
    "create_tool_agent",
]
