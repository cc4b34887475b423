"""
Edge Protocol - How nodes connect in a graph.

Edges define:
1. Source and target nodes
2. Conditions for traversal

Edge Types:
- always: Always traverse to the single target after the source completes
- conditional: Call a router with the new snapshot; the decision it returns
  is looked up in ``path_map`` to find the successor. A decision with no
  mapping is an error (UnmappedDecision), never a silent stop.

Each node has at most one outgoing edge. A node may also return an explicit
``goto`` which takes precedence over its edge.
"""

import inspect
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from stepgraph.errors import UnmappedDecision
from stepgraph.graph.node import NodeSpec
from stepgraph.graph.state import StateSchema, StateSnapshot

START = "__start__"
END = "__end__"


class EdgeCondition(StrEnum):
    """When an edge should be traversed."""

    ALWAYS = "always"  # Fixed successor
    CONDITIONAL = "conditional"  # Router decides


Router = Callable[[StateSnapshot], Any]


class EdgeSpec(BaseModel):
    """
    Specification for an edge leaving a node.

    Examples:
        # Unconditional
        EdgeSpec(id="retrieve-to-grade", source="retrieve", target="grade_relevance")

        # Conditional with a decision -> node mapping
        EdgeSpec(
            id="grade-router",
            source="grade_relevance",
            condition=EdgeCondition.CONDITIONAL,
            router=check_relevance,
            path_map={"yes": "generate", "no": "rewrite"},
        )

        # Conditional where the router returns node ids directly
        EdgeSpec(
            id="agent-router",
            source="agent",
            condition=EdgeCondition.CONDITIONAL,
            router=should_retrieve,
        )
    """

    id: str
    source: str = Field(description="Source node ID")
    target: str | None = Field(default=None, description="Target node ID for ALWAYS edges")

    condition: EdgeCondition = EdgeCondition.ALWAYS
    router: Router | None = Field(default=None, exclude=True)
    path_map: dict[Any, str] | None = Field(
        default=None,
        description="Decision -> target node. None means the router returns node IDs.",
    )

    description: str = ""

    model_config = {"extra": "allow"}

    def targets(self) -> list[str]:
        """All nodes this edge can lead to, as far as statically known."""
        if self.condition == EdgeCondition.ALWAYS:
            return [self.target] if self.target else []
        if self.path_map:
            return list(dict.fromkeys(self.path_map.values()))
        return []

    async def resolve(self, state: StateSnapshot, node_ids: set[str]) -> str:
        """Pick the successor for ``state``.

        Raises:
            UnmappedDecision: the router returned a decision with no successor
        """
        if self.condition == EdgeCondition.ALWAYS:
            return self.target or END

        decision = self.router(state)
        if inspect.isawaitable(decision):
            decision = await decision

        if self.path_map is not None:
            try:
                return self.path_map[decision]
            except (KeyError, TypeError):
                raise UnmappedDecision(
                    self.source, decision, [str(k) for k in self.path_map]
                ) from None

        if decision == END or decision in node_ids:
            return decision
        raise UnmappedDecision(self.source, decision, sorted(node_ids) + [END])


class GraphSpec(BaseModel):
    """
    Complete specification of an agent graph.

    Contains all nodes, edges, the state schema and the entry node.

        GraphSpec(
            id="rag-graph",
            schema=messages_schema(),
            entry_node="agent",
            nodes=[...],
            edges=[...],
        )
    """

    id: str
    version: str = "1.0.0"

    entry_node: str = Field(description="ID of the first node to execute")
    nodes: list[NodeSpec] = Field(default_factory=list)
    edges: list[EdgeSpec] = Field(default_factory=list)
    state_schema: StateSchema = Field(alias="schema")

    # Optional guard; the engine does not cap cycles unless this is set.
    max_steps: int | None = Field(default=None, description="Maximum node executions per run")

    description: str = ""

    model_config = {"extra": "allow", "arbitrary_types_allowed": True, "populate_by_name": True}

    def get_node(self, node_id: str) -> NodeSpec | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def get_edge(self, node_id: str) -> EdgeSpec | None:
        """The outgoing edge of a node, if it has one."""
        for edge in self.edges:
            if edge.source == node_id:
                return edge
        return None

    def successors(self, node_id: str) -> list[str]:
        """Statically known successors (edge targets plus declared ends)."""
        result: list[str] = []
        edge = self.get_edge(node_id)
        if edge is not None:
            result.extend(edge.targets())
        node = self.get_node(node_id)
        if node is not None:
            result.extend(node.ends)
        return list(dict.fromkeys(result))

    def validate(self) -> list[str]:
        """Validate the graph structure."""
        errors = []
        node_ids = self.node_ids()
        valid_targets = node_ids | {END}

        if len(node_ids) != len(self.nodes):
            errors.append("Duplicate node IDs")

        if self.entry_node not in node_ids:
            errors.append(f"Entry node '{self.entry_node}' not found")

        seen_sources: set[str] = set()
        for edge in self.edges:
            if edge.source not in node_ids:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if edge.source in seen_sources:
                errors.append(f"Node '{edge.source}' has more than one outgoing edge")
            seen_sources.add(edge.source)

            if edge.condition == EdgeCondition.ALWAYS:
                if edge.target not in valid_targets:
                    errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")
            else:
                if edge.router is None:
                    errors.append(f"Conditional edge '{edge.id}' has no router")
                for target in (edge.path_map or {}).values():
                    if target not in valid_targets:
                        errors.append(f"Edge '{edge.id}' maps to missing target '{target}'")

        for node in self.nodes:
            for end in node.ends:
                if end not in valid_targets:
                    errors.append(f"Node '{node.id}' declares unknown successor '{end}'")

        # Reachability only follows what is statically known; conditional
        # edges without a path_map may reach any node.
        open_routers = any(
            e.condition == EdgeCondition.CONDITIONAL and e.path_map is None for e in self.edges
        )
        if not open_routers and self.entry_node in node_ids:
            reachable = set()
            to_visit = [self.entry_node]
            while to_visit:
                current = to_visit.pop()
                if current in reachable or current == END:
                    continue
                reachable.add(current)
                to_visit.extend(self.successors(current))
            for node in self.nodes:
                if node.id not in reachable:
                    errors.append(f"Node '{node.id}' is unreachable from entry")

        return errors
