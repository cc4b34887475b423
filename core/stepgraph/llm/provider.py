"""LLM Provider abstraction for pluggable LLM backends."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import BaseModel

from stepgraph.graph.messages import Message, ToolCall

M = TypeVar("M", bound=BaseModel)


@dataclass
class Tool:
    """A tool the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_llm_dict(self) -> dict[str, Any]:
        """OpenAI-format function tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {"type": "object", "properties": {}},
            },
        }


@dataclass
class LLMResponse:
    """Response from an LLM call."""

    message: Message
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""
    raw_response: Any = None

    @property
    def content(self) -> str:
        return self.message.content

    @property
    def tool_calls(self) -> list[ToolCall]:
        return self.message.tool_calls


class LLMProvider(ABC):
    """
    Abstract LLM provider - plug in any LLM backend.

    Implementations should handle:
    - API authentication
    - Request/response formatting
    - Token counting

    Transient failures are retried by callers through ``retry_async``.
    """

    @abstractmethod
    async def acomplete(
        self,
        messages: list[Message],
        tools: list[Tool] | None = None,
        system: str = "",
        temperature: float | None = None,
        max_tokens: int = 1024,
        response_format: dict[str, Any] | None = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation history
            tools: Available tools for the LLM to use
            system: System prompt
            temperature: Sampling temperature (None uses the provider default)
            max_tokens: Maximum tokens to generate
            response_format: Optional structured output format, e.g.
                {"type": "json_schema", "json_schema": {"name": "...", "schema": {...}}}

        Returns:
            LLMResponse whose message may carry tool calls
        """

    async def aembed(self, text: str) -> list[float]:
        """Embed ``text`` as a vector."""
        raise NotImplementedError(f"{type(self).__name__} does not support embeddings")

    async def astructured(
        self,
        messages: list[Message],
        output_model: type[M],
        system: str = "",
        temperature: float | None = 0.0,
    ) -> M:
        """Ask for JSON matching ``output_model`` and validate the reply with it."""
        response = await self.acomplete(
            messages,
            system=system,
            temperature=temperature,
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": output_model.__name__,
                    "schema": output_model.model_json_schema(),
                },
            },
        )
        return output_model.model_validate_json(_strip_code_fence(response.content))


def _strip_code_fence(text: str) -> str:
    """Models sometimes wrap JSON in ```json fences."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        stripped = stripped.rsplit("```", 1)[0]
    return stripped.strip() or json.dumps({})
