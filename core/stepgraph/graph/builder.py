"""
GraphBuilder - Incremental graph construction.

Collects node declarations with their implementations, edges and the entry
point, then validates the whole graph and compiles it into an executor:

    builder = GraphBuilder("rag-graph", messages_schema())
    builder.add_node("agent", call_agent)
    builder.add_node("retrieve", retrieve)
    builder.add_edge(START, "agent")
    builder.add_conditional_edges("agent", should_retrieve, {"retrieve": "retrieve", END: END})
    builder.add_edge("retrieve", "agent")
    executor = builder.compile(checkpoint_store=InMemoryCheckpointStore())

Validation errors are collected and raised together as GraphValidationError.
"""

from collections.abc import Hashable, Mapping
from typing import Any

from stepgraph.errors import GraphValidationError
from stepgraph.graph.checkpoint_config import CheckpointConfig
from stepgraph.graph.edge import START, EdgeCondition, EdgeSpec, GraphSpec, Router
from stepgraph.graph.executor import GraphExecutor
from stepgraph.graph.node import NodeProtocol, NodeRegistry, NodeSpec, StepFunction
from stepgraph.graph.state import StateSchema
from stepgraph.storage.checkpoint_store import CheckpointStore


class GraphBuilder:
    """Builds a GraphSpec and its NodeRegistry side by side."""

    def __init__(self, graph_id: str, schema: StateSchema, description: str = ""):
        self.graph_id = graph_id
        self.schema = schema
        self.description = description
        self.entry_node: str | None = None
        self.max_steps: int | None = None
        self._nodes: list[NodeSpec] = []
        self._edges: list[EdgeSpec] = []
        self._registry = NodeRegistry()
        self._errors: list[str] = []

    def add_node(
        self,
        node_id: str,
        impl: NodeProtocol | StepFunction | list[StepFunction],
        *,
        ends: list[str] | None = None,
        description: str = "",
        tools: list[str] | None = None,
    ) -> "GraphBuilder":
        """Declare a node. ``impl`` may be a step function, a list of sub-steps or a node."""
        if node_id in (START,):
            self._errors.append(f"'{node_id}' is reserved")
            return self
        if node_id in self._registry:
            self._errors.append(f"Node '{node_id}' added twice")
            return self
        self._nodes.append(
            NodeSpec(
                id=node_id,
                description=description or (getattr(impl, "__doc__", None) or "").strip(),
                node_type="sequential" if isinstance(impl, list) else "function",
                ends=list(ends or []),
                tools=list(tools or []),
            )
        )
        self._registry.register(node_id, impl)
        return self

    def add_edge(self, source: str, target: str) -> "GraphBuilder":
        """Unconditional edge. ``add_edge(START, node)`` sets the entry node."""
        if source == START:
            return self.set_entry(target)
        self._edges.append(
            EdgeSpec(id=f"{source}->{target}", source=source, target=target)
        )
        return self

    def add_conditional_edges(
        self,
        source: str,
        router: Router,
        path_map: Mapping[Hashable, str] | None = None,
    ) -> "GraphBuilder":
        """Route from ``source`` by calling ``router`` with the new snapshot.

        With ``path_map`` the router's decision is looked up there; without
        it the router must return a node id or END.
        """
        self._edges.append(
            EdgeSpec(
                id=f"{source}->?",
                source=source,
                condition=EdgeCondition.CONDITIONAL,
                router=router,
                path_map=dict(path_map) if path_map is not None else None,
                description=getattr(router, "__name__", ""),
            )
        )
        return self

    def set_entry(self, node_id: str) -> "GraphBuilder":
        self.entry_node = node_id
        return self

    def set_max_steps(self, max_steps: int | None) -> "GraphBuilder":
        self.max_steps = max_steps
        return self

    def build(self) -> tuple[GraphSpec, NodeRegistry]:
        """Validate and return the graph with its registry.

        Raises:
            GraphValidationError: the graph is structurally invalid
        """
        errors = list(self._errors)
        if self.entry_node is None:
            errors.append("No entry node set")
        graph = GraphSpec(
            id=self.graph_id,
            description=self.description,
            entry_node=self.entry_node or "",
            nodes=list(self._nodes),
            edges=list(self._edges),
            schema=self.schema,
            max_steps=self.max_steps,
        )
        errors.extend(e for e in graph.validate() if e not in errors)
        if errors:
            raise GraphValidationError(errors)
        return graph, self._registry

    def compile(
        self,
        checkpoint_store: CheckpointStore | None = None,
        resources: dict[str, Any] | None = None,
        checkpoint_config: CheckpointConfig | None = None,
    ) -> GraphExecutor:
        graph, registry = self.build()
        return GraphExecutor(
            graph,
            registry,
            checkpoint_store=checkpoint_store,
            resources=resources,
            checkpoint_config=checkpoint_config,
        )
