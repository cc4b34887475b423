"""Ready-made tools: virtual file table, todo list and reflection."""

from stepgraph.toolkits.files import FileTable, create_file_tools
from stepgraph.toolkits.todos import (
    TODO_USAGE_INSTRUCTIONS,
    Todo,
    create_todo_tools,
    format_todos,
    think_tool,
    todos_channel,
)

__all__ = [
    "FileTable",
    "create_file_tools",
    "Todo",
    "TODO_USAGE_INSTRUCTIONS",
    "create_todo_tools",
    "format_todos",
    "think_tool",
    "todos_channel",
]
