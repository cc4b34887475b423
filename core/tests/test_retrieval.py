"""Tests for text extraction, chunking, the in-memory index and the retriever tool."""

import pytest

from stepgraph.llm.mock import MockLLMProvider
from stepgraph.retrieval import (
    Chunk,
    Document,
    InMemoryVectorIndex,
    TextSplitter,
    create_retriever_tool,
    extract_text,
)
from stepgraph.runner import ToolRegistry

PAGE = """
<html>
  <head><style>body { color: red; }</style><script>track()</script></head>
  <body>
    <nav>Home | Blog</nav>
    <article><h1>Deno 2</h1><p>Deno 2 is   backwards compatible
    with Node.</p></article>
    <footer>Copyright</footer>
  </body>
</html>
"""


def test_extract_text_keeps_article():
    assert extract_text(PAGE) == "Deno 2 Deno 2 is backwards compatible with Node."


def test_extract_text_without_article_uses_body():
    assert extract_text("<body><p>Hello</p><aside>ad</aside></body>") == "Hello"


class TestTextSplitter:
    def test_splits_on_words_with_overlap(self):
        splitter = TextSplitter(chunk_size=20, chunk_overlap=5)

        assert splitter.split_text("aaaa bbbb cccc dddd eeee ffff") == [
            "aaaa bbbb cccc dddd",
            "dddd eeee ffff",
        ]

    def test_overlap_never_pushes_chunk_past_size(self):
        words = [letter * 18 for letter in "abcdef"]
        chunks = TextSplitter(chunk_size=20, chunk_overlap=5).split_text(" ".join(words))

        assert max(len(c) for c in chunks) <= 20
        assert all(any(word in c for c in chunks) for word in words)

    def test_short_text_is_one_chunk(self):
        assert TextSplitter(chunk_size=100, chunk_overlap=10).split_text("tiny") == ["tiny"]

    def test_paragraphs_preferred(self):
        text = "first paragraph here\n\nsecond paragraph here"
        chunks = TextSplitter(chunk_size=25, chunk_overlap=0).split_text(text)
        assert chunks == ["first paragraph here", "second paragraph here"]

    def test_split_documents_carries_metadata(self):
        docs = [Document(content="aaaa bbbb cccc dddd eeee ffff", metadata={"source": "u"})]
        chunks = TextSplitter(chunk_size=20, chunk_overlap=5).split(docs)

        assert [c.metadata for c in chunks] == [
            {"source": "u", "chunk": 0},
            {"source": "u", "chunk": 1},
        ]

    def test_overlap_must_be_smaller(self):
        with pytest.raises(ValueError):
            TextSplitter(chunk_size=10, chunk_overlap=10)


def sample_chunks() -> list[Chunk]:
    return [
        Chunk(content="Deno 2 supports npm packages.", metadata={"source": "a"}),
        Chunk(content="Fresh is a web framework.", metadata={"source": "b"}),
        Chunk(content="JSR is a package registry.", metadata={"source": "c"}),
    ]


class TestInMemoryVectorIndex:
    @pytest.mark.asyncio
    async def test_exact_match_ranks_first(self):
        index = InMemoryVectorIndex(MockLLMProvider())
        await index.add(sample_chunks())

        hits = await index.search("JSR is a package registry.", top_k=2)

        assert len(index) == 3
        assert len(hits) == 2
        assert hits[0].content == "JSR is a package registry."
        assert hits[0].score == pytest.approx(1.0)
        assert hits[0].score >= hits[1].score

    @pytest.mark.asyncio
    async def test_search_returns_copies(self):
        chunks = sample_chunks()
        index = InMemoryVectorIndex(MockLLMProvider())
        await index.add(chunks)

        await index.search("anything")

        assert all(c.score is None for c in chunks)

    @pytest.mark.asyncio
    async def test_empty_index(self):
        assert await InMemoryVectorIndex(MockLLMProvider()).search("q") == []


class TestRetrieverTool:
    @pytest.mark.asyncio
    async def test_joins_top_chunks(self):
        index = InMemoryVectorIndex(MockLLMProvider())
        await index.add(sample_chunks())
        retrieve = create_retriever_tool(index, "retrieve_blog_posts", "Search the blog", top_k=2)

        text = await retrieve("Fresh is a web framework.")

        first, second = text.split("\n\n")
        assert first == "Fresh is a web framework."
        assert second in {c.content for c in sample_chunks()}

    def test_tool_definition(self):
        index = InMemoryVectorIndex(MockLLMProvider())
        registry = ToolRegistry()
        registry.register_function(create_retriever_tool(index, "retrieve_blog_posts", "Search the blog"))

        [definition] = registry.get_tools()

        assert definition.name == "retrieve_blog_posts"
        assert definition.description == "Search the blog"
        assert definition.parameters["required"] == ["query"]
