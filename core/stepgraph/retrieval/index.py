"""Vector index interface, an in-memory implementation and the retriever tool."""

import asyncio
import logging
import math
from collections.abc import Callable
from typing import Protocol

from stepgraph.llm.provider import LLMProvider
from stepgraph.llm.retry import retry_async
from stepgraph.retrieval.loaders import Chunk
from stepgraph.runner.tool_registry import tool

logger = logging.getLogger(__name__)


class VectorIndex(Protocol):
    async def search(self, query: str, top_k: int = 4) -> list[Chunk]: ...


def cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=False))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorIndex:
    """Brute-force cosine search over embeddings from an LLMProvider."""

    def __init__(self, embedder: LLMProvider):
        self.embedder = embedder
        self._entries: list[tuple[list[float], Chunk]] = []

    async def add(self, chunks: list[Chunk]) -> None:
        vectors = await asyncio.gather(
            *(retry_async(lambda c=c: self.embedder.aembed(c.content), service="embeddings") for c in chunks)
        )
        self._entries.extend(zip(vectors, chunks, strict=True))
        logger.info(f"Indexed {len(chunks)} chunks ({len(self._entries)} total)")

    async def search(self, query: str, top_k: int = 4) -> list[Chunk]:
        query_vector = await retry_async(lambda: self.embedder.aembed(query), service="embeddings")
        scored = sorted(
            ((cosine(query_vector, vec), chunk) for vec, chunk in self._entries),
            key=lambda pair: pair[0],
            reverse=True,
        )
        return [chunk.model_copy(update={"score": score}) for score, chunk in scored[:top_k]]

    def __len__(self) -> int:
        return len(self._entries)


def create_retriever_tool(
    index: VectorIndex,
    name: str,
    description: str,
    top_k: int = 2,
) -> Callable:
    """A tool that searches ``index`` and returns the chunks joined by blank lines."""

    @tool(name=name, description=description)
    async def retrieve(query: str) -> str:
        chunks = await retry_async(lambda: index.search(query, top_k), service=name)
        return "\n\n".join(chunk.content for chunk in chunks)

    return retrieve
