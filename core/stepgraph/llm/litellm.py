"""LiteLLM provider - one interface over OpenAI, Anthropic, Gemini and local models."""

import json
import logging
from typing import Any

import litellm

from stepgraph.graph.messages import Message, ToolCall, assistant
from stepgraph.llm.provider import LLMProvider, LLMResponse, Tool

logger = logging.getLogger(__name__)


class LiteLLMProvider(LLMProvider):
    """
    LLM provider backed by ``litellm.acompletion``.

    Example:
        llm = LiteLLMProvider(model="gpt-4o-mini")
        llm = LiteLLMProvider(model="claude-haiku-4-5-20251001", api_key=key)
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        api_base: str | None = None,
        embedding_model: str = "text-embedding-3-small",
        temperature: float | None = None,
        **extra_kwargs: Any,
    ):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.embedding_model = embedding_model
        self.temperature = temperature
        self.extra_kwargs = extra_kwargs

    def _common_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = dict(self.extra_kwargs)
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        return kwargs

    async def acomplete(
        self,
        messages: list[Message],
        tools: list[Tool] | None = None,
        system: str = "",
        temperature: float | None = None,
        max_tokens: int = 1024,
        response_format: dict[str, Any] | None = None,
    ) -> LLMResponse:
        payload = [m.to_llm_dict() for m in messages]
        if system:
            payload.insert(0, {"role": "system", "content": system})

        kwargs = self._common_kwargs()
        kwargs["max_tokens"] = max_tokens
        temperature = temperature if temperature is not None else self.temperature
        if temperature is not None:
            kwargs["temperature"] = temperature
        if tools:
            kwargs["tools"] = [t.to_llm_dict() for t in tools]
        if response_format:
            kwargs["response_format"] = response_format

        logger.debug(f"LLM call: model={self.model} messages={len(payload)} tools={len(tools or [])}")
        response = await litellm.acompletion(model=self.model, messages=payload, **kwargs)

        choice = response.choices[0]
        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=_parse_arguments(tc.function.arguments),
            )
            for tc in (choice.message.tool_calls or [])
        ]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            message=assistant(choice.message.content or "", tool_calls),
            model=getattr(response, "model", self.model) or self.model,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            stop_reason=choice.finish_reason or "",
            raw_response=response,
        )

    async def aembed(self, text: str) -> list[float]:
        response = await litellm.aembedding(
            model=self.embedding_model, input=[text], **self._common_kwargs()
        )
        item = response.data[0]
        return list(item["embedding"] if isinstance(item, dict) else item.embedding)


def _parse_arguments(raw: str | dict | None) -> dict[str, Any]:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Tool call arguments are not valid JSON: {raw[:200]}")
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"value": parsed}
