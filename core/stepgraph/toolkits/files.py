"""
Virtual file table shared between an agent and its tools.

The table is an explicit resource handle handed to the tool factory, not a
module global. Writes replace the whole value. Each path has a single
owner: the first writer claims it, and a write by anyone else raises
FileOwnershipError, which the tool layer reports back to the model.
"""

import logging
from collections.abc import Callable

from stepgraph.errors import FileOwnershipError
from stepgraph.runner.tool_registry import tool

logger = logging.getLogger(__name__)

LS_DESCRIPTION = """List all files in the virtual filesystem.

Shows what files currently exist in agent memory. Use this to orient yourself
before other file operations. No parameters required."""

READ_FILE_DESCRIPTION = """Read content from a file in the virtual filesystem with optional pagination.

Returns file content with line numbers (like `cat -n`) and supports reading
large files in chunks to avoid context overflow.

Parameters:
- file_path (required): Path to the file you want to read
- offset (optional, default=0): Line number to start reading from
- limit (optional, default=2000): Maximum number of lines to read"""

WRITE_FILE_DESCRIPTION = """Create a new file or completely overwrite an existing file in the virtual filesystem.

Parameters:
- file_path (required): Path where the file should be created/overwritten
- content (required): The complete content to write to the file

Important: This replaces the entire file content."""

MAX_LINE_CHARS = 2000


class FileTable:
    """In-memory path -> content map with per-path ownership."""

    def __init__(self):
        self._files: dict[str, str] = {}
        self._owners: dict[str, str] = {}

    def write(self, path: str, content: str, owner: str = "main") -> None:
        current = self._owners.get(path)
        if current is not None and current != owner:
            raise FileOwnershipError(
                f"File '{path}' is owned by '{current}'; '{owner}' cannot overwrite it"
            )
        self._owners[path] = owner
        self._files[path] = content
        logger.debug(f"{owner} wrote {path} ({len(content)} chars)")

    def read(self, path: str) -> str:
        if path not in self._files:
            raise FileNotFoundError(path)
        return self._files[path]

    def ls(self) -> list[str]:
        return list(self._files)

    def owner_of(self, path: str) -> str | None:
        return self._owners.get(path)

    def __contains__(self, path: str) -> bool:
        return path in self._files

    def __len__(self) -> int:
        return len(self._files)

    def to_dict(self) -> dict[str, str]:
        return dict(self._files)


def create_file_tools(table: FileTable, owner: str = "main") -> list[Callable]:
    """``ls``, ``read_file`` and ``write_file`` bound to ``table`` as ``owner``."""

    @tool(name="ls", description=LS_DESCRIPTION)
    def ls() -> str:
        names = table.ls()
        return ", ".join(names) if names else "No files in the virtual filesystem"

    @tool(name="read_file", description=READ_FILE_DESCRIPTION)
    def read_file(file_path: str, offset: int = 0, limit: int = 2000) -> str:
        if file_path not in table:
            return f"Error: File '{file_path}' not found"
        content = table.read(file_path)
        if not content:
            return "System reminder: File exists but has empty contents"

        lines = content.split("\n")
        if offset >= len(lines):
            return f"Error: Line offset {offset} exceeds file length ({len(lines)} lines)"
        end = min(offset + limit, len(lines))
        return "\n".join(
            f"{i + 1:>6}\t{lines[i][:MAX_LINE_CHARS]}" for i in range(offset, end)
        )

    @tool(name="write_file", description=WRITE_FILE_DESCRIPTION)
    def write_file(file_path: str, content: str) -> str:
        table.write(file_path, content, owner=owner)
        return f"Updated file {file_path} with {len(content)} characters"

    return [ls, read_file, write_file]
