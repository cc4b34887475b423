"""
Node Protocol - The building block of agent graphs.

A node is a unit of work that reads the current state snapshot and returns
a NodeResult: a partial update and, optionally, a routing command (``goto``).
There is one result shape; the executor never special-cases node output.

Nodes are declared (NodeSpec) separately from their implementation
(NodeProtocol), and implementations are looked up in a NodeRegistry by id:

    registry = NodeRegistry()
    registry.register("grade", grade_documents)          # plain function
    registry.register("review", SequentialNode([draft, ask_human, finish]))

Step functions take a NodeContext and may be sync or async.
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from stepgraph.graph.interrupt import Interrupt, NodeInterrupt
from stepgraph.graph.state import StateSnapshot, apply

logger = logging.getLogger(__name__)


class NodeSpec(BaseModel):
    """
    Declarative description of a node.

    Examples:
        NodeSpec(id="agent", description="Decide whether to retrieve")

        # Node that routes itself with goto
        NodeSpec(
            id="write_response",
            description="Draft a reply and pick the review path",
            ends=["human_review", "send_reply"],
        )
    """

    id: str
    name: str = ""
    description: str = ""
    node_type: str = "function"
    ends: list[str] = Field(
        default_factory=list,
        description="Successors this node may route to with goto (empty = any)",
    )
    tools: list[str] = Field(default_factory=list, description="Tools this node may call")

    model_config = {"extra": "allow"}

    def model_post_init(self, __context: Any) -> None:
        if not self.name:
            self.name = self.id


@dataclass
class NodeResult:
    """
    The single result shape of every node: ``{update, goto?}``.

    Attributes:
        update: Partial state update, folded in through channel reducers
        goto: Explicit next node; overrides the node's declared edge
    """

    update: dict[str, Any] = field(default_factory=dict)
    goto: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.update, Mapping):
            raise TypeError(f"NodeResult.update must be a mapping, got {type(self.update)!r}")
        if self.goto is not None and not isinstance(self.goto, str):
            raise TypeError(f"NodeResult.goto must be a node id, got {self.goto!r}")


SubstepHook = Callable[["NodeContext"], Awaitable[None]]


@dataclass
class NodeContext:
    """
    Everything a node sees while it runs.

    ``state`` is the snapshot the node was invoked with (for sequential
    nodes it advances as earlier sub-steps apply their updates).
    ``scratch`` is node-local working data that survives checkpoints
    between sub-steps and is discarded when the node finishes.
    ``resources`` holds explicit resource handles (LLM, file table, ...).
    """

    node_id: str
    thread_id: str
    state: StateSnapshot
    substep: int = 0
    scratch: dict[str, Any] = field(default_factory=dict)
    resume_values: list[Any] = field(default_factory=list)
    resources: dict[str, Any] = field(default_factory=dict)
    on_substep: SubstepHook | None = None
    _interrupt_index: int = 0

    def interrupt(self, payload: Any) -> Any:
        """Suspend the run, or return the resume value if one was supplied."""
        index = self._interrupt_index
        self._interrupt_index += 1
        if index < len(self.resume_values):
            logger.info(f"   ↩ Resuming '{self.node_id}' at sub-step {self.substep}")
            return self.resume_values[index]
        raise NodeInterrupt(
            Interrupt(payload=payload, node_id=self.node_id, substep=self.substep, index=index)
        )

    def resource(self, name: str) -> Any:
        """Look up a resource handle passed to the executor."""
        if name not in self.resources:
            raise KeyError(f"Node '{self.node_id}' needs resource '{name}' which was not provided")
        return self.resources[name]

    async def advance(self, substep: int) -> None:
        """Move to the next sub-step and let the executor checkpoint."""
        self.substep = substep
        self.resume_values = []
        self._interrupt_index = 0
        if self.on_substep is not None:
            await self.on_substep(self)


StepFunction = Callable[[NodeContext], "NodeResult | None | Awaitable[NodeResult | None]"]


async def call_step(fn: StepFunction, ctx: NodeContext) -> NodeResult:
    result = fn(ctx)
    if inspect.isawaitable(result):
        result = await result
    if result is None:
        return NodeResult()
    if not isinstance(result, NodeResult):
        raise TypeError(
            f"Node '{ctx.node_id}' returned {type(result).__name__}; step functions must "
            "return NodeResult or None"
        )
    return result


class NodeProtocol(ABC):
    """Interface all node implementations satisfy."""

    @abstractmethod
    async def execute(self, ctx: NodeContext) -> NodeResult:
        """Run the node against ``ctx.state``."""

    @property
    def substep_count(self) -> int:
        return 1


class FunctionNode(NodeProtocol):
    """A node made of a single step function."""

    def __init__(self, fn: StepFunction):
        self.fn = fn

    async def execute(self, ctx: NodeContext) -> NodeResult:
        return await call_step(self.fn, ctx)

    def __repr__(self) -> str:
        return f"FunctionNode({getattr(self.fn, '__name__', self.fn)!r})"


class SequentialNode(NodeProtocol):
    """
    A node split into ordered sub-steps.

    Each sub-step may return a NodeResult. Its update is applied to
    ``ctx.state`` before the next sub-step runs; a ``goto`` ends the node
    early. Between sub-steps the executor writes a checkpoint, so a resume
    re-enters at the sub-step that suspended instead of the node's start.
    """

    def __init__(self, steps: list[StepFunction]):
        if not steps:
            raise ValueError("SequentialNode needs at least one sub-step")
        self.steps = steps

    @property
    def substep_count(self) -> int:
        return len(self.steps)

    async def execute(self, ctx: NodeContext) -> NodeResult:
        last = len(self.steps) - 1
        for index in range(ctx.substep, len(self.steps)):
            result = await call_step(self.steps[index], ctx)
            if index == last or result.goto is not None:
                return result
            if result.update:
                ctx.state = apply(ctx.state, result.update)
            await ctx.advance(index + 1)
        return NodeResult()


def as_node(impl: NodeProtocol | StepFunction | list[StepFunction]) -> NodeProtocol:
    if isinstance(impl, NodeProtocol):
        return impl
    if isinstance(impl, list):
        return SequentialNode(impl)
    if callable(impl):
        return FunctionNode(impl)
    raise TypeError(f"Cannot use {impl!r} as a node implementation")


class NodeRegistry:
    """Named step implementations, looked up by node id."""

    def __init__(self, nodes: Mapping[str, Any] | None = None):
        self._nodes: dict[str, NodeProtocol] = {}
        for node_id, impl in (nodes or {}).items():
            self.register(node_id, impl)

    def register(self, node_id: str, impl: NodeProtocol | StepFunction | list) -> None:
        if node_id in self._nodes:
            raise ValueError(f"Node '{node_id}' is already registered")
        self._nodes[node_id] = as_node(impl)

    def get(self, node_id: str) -> NodeProtocol:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise KeyError(
                f"No implementation registered for node '{node_id}'. "
                f"Registered: {sorted(self._nodes)}"
            ) from None

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def ids(self) -> list[str]:
        return list(self._nodes)
