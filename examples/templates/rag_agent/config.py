"""Runtime configuration for the RAG Agent."""

from dataclasses import dataclass, field

from stepgraph.config import RuntimeConfig


@dataclass(kw_only=True)
class RagAgentConfig(RuntimeConfig):
    """
    RAG settings on top of the shared runtime config.

    ``max_rewrites`` has no default: how many times a question may be
    reformulated before answering from the best context at hand is a
    decision every deployment makes explicitly.
    """

    max_rewrites: int
    temperature: float = 0.0
    urls: list[str] = field(
        default_factory=lambda: [
            "https://deno.com/blog/not-using-npm-specifiers-doing-it-wrong",
            "https://deno.com/blog/v2.1",
            "https://deno.com/blog/build-database-app-drizzle",
        ]
    )
    chunk_size: int = 500
    chunk_overlap: int = 50
    top_k: int = 2

    def __post_init__(self) -> None:
        if self.max_rewrites < 0:
            raise ValueError("max_rewrites must be >= 0")


default_config = RagAgentConfig(max_rewrites=3)


@dataclass
class AgentMetadata:
    name: str = "RAG Agent"
    version: str = "1.0.0"
    description: str = (
        "Answer questions about a small web corpus: retrieve, grade the retrieved "
        "context for relevance, reformulate the question when it misses, then answer."
    )


metadata = AgentMetadata()
