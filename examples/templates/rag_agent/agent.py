"""Agent graph construction for the RAG Agent."""

import logging
import uuid

from stepgraph.errors import GraphValidationError
from stepgraph.graph import END, GraphBuilder, GraphExecutor, messages_schema
from stepgraph.graph.executor import ExecutionResult
from stepgraph.graph.messages import user
from stepgraph.graph.state import Channel
from stepgraph.llm import LLMProvider, MockLLMProvider
from stepgraph.retrieval import (
    InMemoryVectorIndex,
    TextSplitter,
    VectorIndex,
    WebLoader,
    create_retriever_tool,
)
from stepgraph.runner import ToolRegistry
from stepgraph.storage import CheckpointStore, InMemoryCheckpointStore

from .config import RagAgentConfig, default_config, metadata
from .nodes import (
    AGENT_NODE,
    DECISION_GIVE_UP,
    DECISION_NOT_RELEVANT,
    DECISION_RELEVANT,
    GENERATE_NODE,
    GRADE_NODE,
    GRADE_TOOL,
    RETRIEVE_NODE,
    RETRIEVER_DESCRIPTION,
    RETRIEVER_TOOL,
    REWRITE_NODE,
    call_agent,
    generate,
    grade_relevance,
    make_relevance_router,
    retrieve,
    rewrite,
    should_retrieve,
)

logger = logging.getLogger(__name__)


def rag_schema():
    return messages_schema(
        Channel("rewrites", int, default=lambda: 0),
        Channel("answer", str | None),
    )


def build_graph(config: RagAgentConfig) -> GraphBuilder:
    """The retrieval-grading-rewrite loop."""
    builder = GraphBuilder("rag-agent-graph", rag_schema(), description=metadata.description)
    builder.add_node(AGENT_NODE, call_agent, tools=[RETRIEVER_TOOL])
    builder.add_node(RETRIEVE_NODE, retrieve, tools=[RETRIEVER_TOOL])
    builder.add_node(GRADE_NODE, grade_relevance, tools=[GRADE_TOOL])
    builder.add_node(REWRITE_NODE, rewrite)
    builder.add_node(GENERATE_NODE, generate)

    builder.set_entry(AGENT_NODE)
    builder.add_conditional_edges(
        AGENT_NODE, should_retrieve, {RETRIEVE_NODE: RETRIEVE_NODE, END: END}
    )
    builder.add_edge(RETRIEVE_NODE, GRADE_NODE)
    builder.add_conditional_edges(
        GRADE_NODE,
        make_relevance_router(config.max_rewrites),
        {
            DECISION_RELEVANT: GENERATE_NODE,
            DECISION_NOT_RELEVANT: REWRITE_NODE,
            DECISION_GIVE_UP: GENERATE_NODE,
        },
    )
    builder.add_edge(REWRITE_NODE, AGENT_NODE)
    builder.add_edge(GENERATE_NODE, END)
    return builder


class RagAgent:
    """
    RAG Agent - retrieval-then-generate with a relevance gate.

    Flow: agent -> retrieve -> grade_relevance -> (generate | rewrite -> agent)

    The vector index is built by ``ingest`` from ``config.urls`` unless one
    is passed in.
    """

    def __init__(
        self,
        config: RagAgentConfig | None = None,
        llm: LLMProvider | None = None,
        index: VectorIndex | None = None,
        checkpoint_store: CheckpointStore | None = None,
    ):
        self.config = config or default_config
        self.llm = llm
        self.index = index
        self.checkpoint_store = checkpoint_store or InMemoryCheckpointStore()
        self._executor: GraphExecutor | None = None

    async def ingest(self, urls: list[str] | None = None) -> VectorIndex:
        """Load, split and index the corpus."""
        documents = await WebLoader(urls or self.config.urls).load()
        logger.info(f"Loaded {len(documents)} documents")
        chunks = TextSplitter(self.config.chunk_size, self.config.chunk_overlap).split(documents)
        logger.info(f"Split blog posts into {len(chunks)} sub-documents.")
        index = InMemoryVectorIndex(self._llm())
        await index.add(chunks)
        self.index = index
        return index

    def _llm(self) -> LLMProvider:
        if self.llm is None:
            self.llm = self.config.create_llm()
        return self.llm

    async def executor(self) -> GraphExecutor:
        if self._executor is None:
            if self.index is None:
                await self.ingest()
            tools = ToolRegistry()
            tools.register_function(
                create_retriever_tool(
                    self.index, RETRIEVER_TOOL, RETRIEVER_DESCRIPTION, top_k=self.config.top_k
                )
            )
            self._executor = build_graph(self.config).compile(
                checkpoint_store=self.checkpoint_store,
                resources={"llm": self._llm(), "tools": tools, "config": self.config},
            )
        return self._executor

    async def run(self, question: str, thread_id: str | None = None) -> ExecutionResult:
        executor = await self.executor()
        thread_id = thread_id or f"rag-{uuid.uuid4().hex[:8]}"
        return await executor.invoke(thread_id, {"messages": [user(question)]})

    def info(self) -> dict:
        graph, _ = build_graph(self.config).build()
        return {
            "name": metadata.name,
            "version": metadata.version,
            "description": metadata.description,
            "nodes": [n.id for n in graph.nodes],
            "edges": [e.id for e in graph.edges],
            "entry_node": graph.entry_node,
            "max_rewrites": self.config.max_rewrites,
        }

    def validate(self) -> dict:
        try:
            build_graph(self.config).build()
        except GraphValidationError as e:
            return {"valid": False, "errors": e.errors, "warnings": []}
        return {"valid": True, "errors": [], "warnings": []}


def mock_llm(question: str) -> MockLLMProvider:
    """Scripted model for offline runs: retrieve once, judge relevant, answer."""
    return MockLLMProvider(
        [
            MockLLMProvider.tool_call(RETRIEVER_TOOL, query=question),
            MockLLMProvider.tool_call(GRADE_TOOL, binary_score=DECISION_RELEVANT),
            "Mock answer based on the retrieved context.",
        ]
    )


default_agent = RagAgent()
