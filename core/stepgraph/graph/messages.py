"""Message history entries shared by graph nodes, tools and LLM providers."""

from __future__ import annotations

import json
import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field


def new_tool_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


class ToolCall(BaseModel):
    """A capability invocation requested by the model."""

    id: str = Field(default_factory=new_tool_call_id)
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    def to_llm_dict(self) -> dict[str, Any]:
        """OpenAI-format tool call."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": json.dumps(self.arguments)},
        }


class Message(BaseModel):
    """A single entry in a message-history channel.

    Attributes:
        role: One of "system", "user", "assistant", or "tool".
        content: Message text.
        tool_calls: Tool calls requested by an assistant message.
        tool_call_id: For tool messages, the id of the call being answered.
        name: For tool messages, the tool that produced the content.
        is_error: When True and role is "tool", ``to_llm_dict`` prepends "ERROR: ".
    """

    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None
    is_error: bool = False

    model_config = {"frozen": True}

    @property
    def has_tool_calls(self) -> bool:
        return self.role == "assistant" and bool(self.tool_calls)

    def to_llm_dict(self) -> dict[str, Any]:
        """Convert to OpenAI-format message dict."""
        if self.role in ("user", "system"):
            return {"role": self.role, "content": self.content}

        if self.role == "assistant":
            d: dict[str, Any] = {"role": "assistant", "content": self.content}
            if self.tool_calls:
                d["tool_calls"] = [tc.to_llm_dict() for tc in self.tool_calls]
            return d

        # role == "tool"
        content = f"ERROR: {self.content}" if self.is_error else self.content
        d = {"role": "tool", "tool_call_id": self.tool_call_id, "content": content}
        if self.name:
            d["name"] = self.name
        return d


def user(content: str) -> Message:
    return Message(role="user", content=content)


def system(content: str) -> Message:
    return Message(role="system", content=content)


def assistant(content: str = "", tool_calls: list[ToolCall] | None = None) -> Message:
    return Message(role="assistant", content=content, tool_calls=tool_calls or [])


def tool_result(
    tool_call_id: str, content: str, name: str | None = None, is_error: bool = False
) -> Message:
    return Message(
        role="tool", content=content, tool_call_id=tool_call_id, name=name, is_error=is_error
    )


def last_message(messages: list[Message]) -> Message | None:
    return messages[-1] if messages else None


def latest_tool_results(messages: list[Message]) -> list[Message]:
    """The most recent run of consecutive tool-role messages, oldest first."""
    block: list[Message] = []
    for message in reversed(messages):
        if message.role == "tool":
            block.append(message)
        elif block:
            break
    return block[::-1]


def first_user_message(messages: list[Message]) -> Message | None:
    for message in messages:
        if message.role == "user":
            return message
    return None
