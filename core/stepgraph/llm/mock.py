"""Scripted LLM provider for tests and offline runs."""

import hashlib
import json
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from stepgraph.graph.messages import Message, ToolCall, assistant
from stepgraph.llm.provider import LLMProvider, LLMResponse, Tool

Reply = str | Message | BaseModel | dict | Callable[[list[Message]], "Reply"]


class MockLLMProvider(LLMProvider):
    """
    Replays a fixed script of replies, one per ``acomplete`` call.

    Each scripted reply may be:
    - a string: plain assistant text
    - a Message: returned as is (use it for tool calls)
    - a pydantic model or dict: serialized as JSON (structured output)
    - a callable: called with the messages, its return value is used

    Every call is recorded in ``calls`` for assertions.
    """

    def __init__(self, replies: list[Reply] | None = None, default: Reply | None = None):
        self.replies = list(replies or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []

    @staticmethod
    def tool_call(name: str, **arguments: Any) -> Message:
        """An assistant message requesting one tool call."""
        return assistant(tool_calls=[ToolCall(name=name, arguments=arguments)])

    async def acomplete(
        self,
        messages: list[Message],
        tools: list[Tool] | None = None,
        system: str = "",
        temperature: float | None = None,
        max_tokens: int = 1024,
        response_format: dict[str, Any] | None = None,
    ) -> LLMResponse:
        self.calls.append(
            {
                "messages": list(messages),
                "tools": [t.name for t in tools or []],
                "system": system,
                "response_format": response_format,
            }
        )
        if self.replies:
            reply = self.replies.pop(0)
        elif self.default is not None:
            reply = self.default
        else:
            raise RuntimeError(f"MockLLMProvider script exhausted after {len(self.calls) - 1} calls")

        if callable(reply):
            reply = reply(messages)

        if isinstance(reply, Message):
            message = reply
        elif isinstance(reply, BaseModel):
            message = assistant(reply.model_dump_json())
        elif isinstance(reply, dict):
            message = assistant(json.dumps(reply))
        else:
            message = assistant(str(reply))
        return LLMResponse(message=message, model="mock", stop_reason="stop")

    async def aembed(self, text: str) -> list[float]:
        """Deterministic pseudo-embedding derived from a hash of the text."""
        digest = hashlib.sha256(text.lower().encode()).digest()
        return [b / 255 for b in digest[:16]]
