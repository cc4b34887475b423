"""
Corpus ingestion: loading documents and splitting them into chunks.

Loader and Splitter are the narrow interfaces the RAG pipeline consumes;
WebLoader and TextSplitter are the default implementations.
"""

import logging
from typing import Any, Protocol

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_SCRAPE_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; stepgraph/0.1; +https://example.invalid)",
    "Accept": "text/html,application/xhtml+xml",
}


class Document(BaseModel):
    """A loaded source document."""

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class Chunk(BaseModel):
    """A piece of a document, the unit of retrieval."""

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float | None = None


class Loader(Protocol):
    async def load(self) -> list[Document]: ...


class Splitter(Protocol):
    def split(self, documents: list[Document]) -> list[Chunk]: ...


class WebLoader:
    """Fetch pages with httpx and keep their main text."""

    def __init__(self, urls: list[str], timeout: float = 30.0):
        self.urls = urls
        self.timeout = timeout

    async def load(self) -> list[Document]:
        documents = []
        async with httpx.AsyncClient(
            timeout=self.timeout, follow_redirects=True, headers=_SCRAPE_HEADERS
        ) as client:
            for url in self.urls:
                resp = await client.get(url)
                resp.raise_for_status()
                documents.append(Document(content=extract_text(resp.text), metadata={"source": url}))
                logger.info(f"Loaded {url} ({len(documents[-1].content)} chars)")
        return documents


def extract_text(html: str) -> str:
    """Visible article text of an HTML page."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "footer", "header", "aside", "noscript"]):
        tag.decompose()
    main = soup.find("article") or soup.find("main") or soup.find("body") or soup
    return " ".join(main.get_text(separator=" ", strip=True).split())


class TextSplitter:
    """
    Recursive character splitter.

    Splits on the coarsest separator that yields pieces under ``chunk_size``
    and glues neighbouring pieces back together with ``chunk_overlap``
    characters carried over.
    """

    def __init__(
        self,
        chunk_size: int = 500,
        chunk_overlap: int = 50,
        separators: tuple[str, ...] = ("\n\n", "\n", ". ", " ", ""),
    ):
        if chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = separators

    def split(self, documents: list[Document]) -> list[Chunk]:
        chunks = []
        for doc in documents:
            for i, text in enumerate(self.split_text(doc.content)):
                chunks.append(Chunk(content=text, metadata={**doc.metadata, "chunk": i}))
        return chunks

    def split_text(self, text: str) -> list[str]:
        pieces = self._pieces(text, self.separators)
        chunks: list[str] = []
        current = ""
        for piece in pieces:
            if current and len(current) + len(piece) > self.chunk_size:
                chunks.append(current.strip())
                current = self._overlap(current, room=self.chunk_size - len(piece))
            current += piece
        if current.strip():
            chunks.append(current.strip())
        return [c for c in chunks if c]

    def _overlap(self, current: str, room: int) -> str:
        # Carried text plus the next piece must still fit in one chunk.
        size = min(self.chunk_overlap, room)
        return current[-size:] if size > 0 else ""

    def _pieces(self, text: str, separators: tuple[str, ...]) -> list[str]:
        if len(text) <= self.chunk_size:
            return [text]
        sep, rest = separators[0], separators[1:]
        if sep == "":
            return [text[i : i + self.chunk_size] for i in range(0, len(text), self.chunk_size)]
        parts = text.split(sep)
        pieces = []
        for i, part in enumerate(parts):
            part = part + sep if i < len(parts) - 1 else part
            if len(part) > self.chunk_size and rest:
                pieces.extend(self._pieces(part, rest))
            else:
                pieces.append(part)
        return pieces
