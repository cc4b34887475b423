"""Retrieval interfaces consumed by RAG graphs."""

from stepgraph.retrieval.index import (
    InMemoryVectorIndex,
    VectorIndex,
    create_retriever_tool,
)
from stepgraph.retrieval.loaders import (
    Chunk,
    Document,
    Loader,
    Splitter,
    TextSplitter,
    WebLoader,
    extract_text,
)

__all__ = [
    "Chunk",
    "Document",
    "Loader",
    "Splitter",
    "TextSplitter",
    "WebLoader",
    "VectorIndex",
    "InMemoryVectorIndex",
    "create_retriever_tool",
    "extract_text",
]
