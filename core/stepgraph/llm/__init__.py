"""LLM provider abstraction."""

from stepgraph.llm.litellm import LiteLLMProvider
from stepgraph.llm.mock import MockLLMProvider
from stepgraph.llm.provider import LLMProvider, LLMResponse, Tool
from stepgraph.llm.retry import retry_async

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "Tool",
    "LiteLLMProvider",
    "MockLLMProvider",
    "retry_async",
]
