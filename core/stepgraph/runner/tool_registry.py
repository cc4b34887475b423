"""Tool registration and dispatch for tool-call agents."""

import asyncio
import inspect
import json
import logging
import types
import typing
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from stepgraph.errors import UnknownTool
from stepgraph.graph.messages import Message, ToolCall, tool_result
from stepgraph.llm.provider import Tool

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    """
    Result of executing a tool.

    ``update`` is an optional partial state update the tool contributes
    (e.g. a new todo list); the tools node folds it in with the tool messages.
    """

    tool_call_id: str
    content: str
    name: str | None = None
    is_error: bool = False
    update: dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> Message:
        return tool_result(self.tool_call_id, self.content, name=self.name, is_error=self.is_error)


@dataclass
class RegisteredTool:
    """A tool with its executor function."""

    tool: Tool
    executor: Callable[[dict, dict], Any]


_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


def _json_type(annotation: Any) -> dict[str, Any]:
    """JSON-schema fragment for a parameter annotation."""
    origin = typing.get_origin(annotation)
    if origin in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        return _json_type(args[0]) if args else {"type": "string"}
    if origin is typing.Literal:
        return {"type": "string", "enum": list(typing.get_args(annotation))}
    if origin in (list, tuple, set):
        args = typing.get_args(annotation)
        schema: dict[str, Any] = {"type": "array"}
        if args:
            schema["items"] = _json_type(args[0])
        return schema
    if origin is dict:
        return {"type": "object"}
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation.model_json_schema()
    return {"type": _JSON_TYPES.get(annotation, "string")}


class ToolRegistry:
    """
    Static name -> handler mapping for the capabilities an agent may call.

    Handlers may be sync or async. Functions registered with
    ``register_function`` can also declare the context parameters below;
    they are injected at call time and hidden from the model-facing schema.
    """

    # Injected into handlers that accept them; never shown to the model.
    CONTEXT_PARAMS = frozenset({"state", "tool_call_id"})

    def __init__(self):
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        tool: Tool,
        executor: Callable[[dict], Any],
    ) -> None:
        """
        Register a single tool with its executor.

        Args:
            name: Tool name (must match tool.name)
            tool: Tool definition
            executor: Function that takes the tool input dict and returns a result
        """
        self._tools[name] = RegisteredTool(tool=tool, executor=lambda inputs, _ctx: executor(inputs))

    def register_function(
        self,
        func: Callable,
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        """
        Register a function as a tool, generating the Tool definition from its signature.

        Args:
            func: Function to register (``@tool`` metadata is honoured)
            name: Tool name (defaults to the function name)
            description: Tool description (defaults to the docstring)
        """
        metadata = getattr(func, "_tool_metadata", {})
        tool_name = name or metadata.get("name") or func.__name__
        tool_desc = (
            description
            or metadata.get("description")
            or inspect.getdoc(func)
            or f"Execute {tool_name}"
        )

        sig = inspect.signature(func)
        hints = typing.get_type_hints(func)
        properties: dict[str, Any] = {}
        required: list[str] = []
        context_params: set[str] = set()

        for param_name, param in sig.parameters.items():
            if param_name in ("self", "cls"):
                continue
            if param_name in self.CONTEXT_PARAMS:
                context_params.add(param_name)
                continue
            properties[param_name] = _json_type(hints.get(param_name, str))
            if param.default is inspect.Parameter.empty:
                required.append(param_name)

        tool = Tool(
            name=tool_name,
            description=tool_desc,
            parameters={"type": "object", "properties": properties, "required": required},
        )

        def executor(inputs: dict, context: dict) -> Any:
            injected = {k: v for k, v in context.items() if k in context_params}
            return func(**inputs, **injected)

        self._tools[tool_name] = RegisteredTool(tool=tool, executor=executor)

    def get_tools(self) -> list[Tool]:
        """All registered Tool definitions, in registration order."""
        return [rt.tool for rt in self._tools.values()]

    def get_registered_names(self) -> list[str]:
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def subset(self, names: list[str]) -> "ToolRegistry":
        """A registry restricted to ``names``; unknown names raise UnknownTool."""
        restricted = ToolRegistry()
        for name in names:
            if name not in self._tools:
                raise UnknownTool(name, self.get_registered_names())
            restricted._tools[name] = self._tools[name]
        return restricted

    async def execute(self, call: ToolCall, state: Mapping[str, Any] | None = None) -> ToolResult:
        """Run the handler for ``call``.

        Raises:
            UnknownTool: no handler registered under ``call.name``
        """
        registered = self._tools.get(call.name)
        if registered is None:
            raise UnknownTool(call.name, self.get_registered_names())

        context = {"state": state, "tool_call_id": call.id}
        result = registered.executor(dict(call.arguments), context)
        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, ToolResult):
            result.tool_call_id = call.id
            result.name = result.name or call.name
            return result
        return ToolResult(
            tool_call_id=call.id,
            name=call.name,
            content=result if isinstance(result, str) else json.dumps(result, default=str),
        )

    async def dispatch(self, call: ToolCall, state: Mapping[str, Any] | None = None) -> ToolResult:
        """Like ``execute`` but turns any failure into an error result for the model."""
        try:
            return await self.execute(call, state)
        except UnknownTool as e:
            logger.warning(f"   ✗ {e}")
            return ToolResult(tool_call_id=call.id, name=call.name, content=str(e), is_error=True)
        except Exception as e:
            logger.error(f"   ✗ Tool '{call.name}' failed: {e}")
            return ToolResult(
                tool_call_id=call.id,
                name=call.name,
                content=json.dumps({"error": str(e)}),
                is_error=True,
            )

    async def dispatch_all(
        self, calls: list[ToolCall], state: Mapping[str, Any] | None = None
    ) -> list[ToolResult]:
        """Dispatch one turn's tool calls concurrently; results keep call order."""
        return list(await asyncio.gather(*(self.dispatch(call, state) for call in calls)))


def tool(
    description: str | None = None,
    name: str | None = None,
) -> Callable:
    """
    Decorator to attach tool metadata to a function.

    Usage:
        @tool(description="Search the indexed blog posts")
        def retrieve_blog_posts(query: str) -> str:
            ...
    """

    def decorator(func: Callable) -> Callable:
        func._tool_metadata = {
            "name": name or func.__name__,
            "description": description or func.__doc__,
        }
        return func

    return decorator
