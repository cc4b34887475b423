"""Todo-list and reflection tools for planning agents."""

from collections.abc import Callable, Mapping
from typing import Any, Literal

from pydantic import BaseModel, TypeAdapter

from stepgraph.graph.state import Channel
from stepgraph.runner.tool_registry import ToolResult, tool

WRITE_TODOS_DESCRIPTION = """Create and manage a structured task list for tracking progress.

- Keep one list of todo objects (content, status)
- Status must be: pending, in_progress, or completed
- Only one task in_progress at a time; mark tasks completed as soon as they are done
- Always send the full updated list when making changes

Returns the updated todo list."""

TODO_USAGE_INSTRUCTIONS = """Based upon the user's request:
1. Use the write_todos tool to create a TODO list at the start of a user request.
2. After you accomplish a TODO, use read_todos to remind yourself of the plan.
3. Reflect on what you've done and the TODO.
4. Mark your task as completed, and proceed to the next TODO.
5. Continue this process until you have completed all TODOs."""


class Todo(BaseModel):
    content: str
    status: Literal["pending", "in_progress", "completed"] = "pending"


_todo_list = TypeAdapter(list[Todo])

# State channel the todo tools read and replace
TODOS_CHANNEL = "todos"


def todos_channel() -> Channel:
    return Channel(TODOS_CHANNEL, list[Todo], default=list)


def format_todos(todos: list[Todo]) -> str:
    if not todos:
        return "No todos currently in the list."
    marks = {"pending": "⏳", "in_progress": "🔄", "completed": "✅"}
    lines = ["Current TODO List:"]
    for i, todo in enumerate(todos, 1):
        lines.append(f"{i}. {marks[todo.status]} {todo.content} ({todo.status})")
    return "\n".join(lines)


def create_todo_tools() -> list[Callable]:
    """``write_todos`` and ``read_todos`` over the ``todos`` state channel."""

    @tool(name="write_todos", description=WRITE_TODOS_DESCRIPTION)
    def write_todos(todos: list[Todo]) -> ToolResult:
        validated = _todo_list.validate_python(todos)
        return ToolResult(
            tool_call_id="",
            content=f"Updated todo list to {_todo_list.dump_json(validated).decode()}",
            update={TODOS_CHANNEL: validated},
        )

    @tool(name="read_todos", description="Read the current TODO list from the agent state.")
    def read_todos(state: Mapping[str, Any] | None = None) -> str:
        return format_todos(list((state or {}).get(TODOS_CHANNEL) or []))

    return [write_todos, read_todos]


@tool(
    name="think_tool",
    description="Tool for strategic reflection on research progress and decision-making.",
)
def think_tool(reflection: str) -> str:
    """Record a reflection; the reflection itself is the value."""
    return f"Reflection recorded: {reflection}"
