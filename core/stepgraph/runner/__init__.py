"""Capability dispatch for tool-call agents."""

from stepgraph.runner.tool_registry import ToolRegistry, ToolResult, tool

__all__ = ["ToolRegistry", "ToolResult", "tool"]
