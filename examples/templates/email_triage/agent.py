"""Agent graph construction for the Email Triage Agent."""

import uuid
from typing import Any

from stepgraph.errors import GraphValidationError
from stepgraph.graph import END, Channel, GraphBuilder, GraphExecutor, StateSchema
from stepgraph.graph.executor import ExecutionResult
from stepgraph.llm import LLMProvider
from stepgraph.storage import CheckpointStore, FileCheckpointStore

from .config import EmailTriageConfig, default_config, metadata
from .nodes import (
    EmailClassification,
    bug_tracking,
    classify_intent,
    human_review,
    read_email,
    route_by_intent,
    search_documentation,
    send_reply,
    write_response,
)

INTENT_ROUTES = {
    "bug": "bug_tracking",
    "question": "search_documentation",
    "billing": "search_documentation",
    "feature": "search_documentation",
    "complex": "search_documentation",
}


def triage_schema() -> StateSchema:
    return StateSchema(
        [
            Channel("email_content", str, default=str),
            Channel("sender_email", str, default=str),
            Channel("email_id", str, default=str),
            Channel("classification", EmailClassification | None),
            Channel("ticket_id", str | None),
            Channel("search_results", list[str], default=list),
            Channel("draft_response", str | None),
            Channel("review_status", str | None),
            Channel("sent", bool, default=lambda: False),
        ]
    )


def build_graph() -> GraphBuilder:
    builder = GraphBuilder("email-triage-graph", triage_schema(), description=metadata.description)
    builder.add_node("read_email", read_email)
    builder.add_node("classify_intent", classify_intent)
    builder.add_node("search_documentation", search_documentation)
    builder.add_node("bug_tracking", bug_tracking)
    builder.add_node("write_response", write_response, ends=["human_review", "send_reply"])
    builder.add_node(
        "human_review",
        human_review,
        ends=["send_reply", END],
        description="Hold the draft for human approval",
    )
    builder.add_node("send_reply", send_reply)

    builder.set_entry("read_email")
    builder.add_edge("read_email", "classify_intent")
    builder.add_conditional_edges("classify_intent", route_by_intent, INTENT_ROUTES)
    builder.add_edge("search_documentation", "write_response")
    builder.add_edge("bug_tracking", "write_response")
    builder.add_edge("send_reply", END)
    return builder


class EmailTriageAgent:
    """
    Email Triage Agent - classify, branch, draft, and review.

    Flow: read_email -> classify_intent -> (bug_tracking | search_documentation)
          -> write_response -> [human_review] -> send_reply

    Drafts for high/critical urgency or complex intent suspend at
    human_review; ``review`` resumes the thread with the human's decision,
    which may arrive from a different process as long as the checkpoint
    store is shared.
    """

    def __init__(
        self,
        config: EmailTriageConfig | None = None,
        llm: LLMProvider | None = None,
        checkpoint_store: CheckpointStore | None = None,
    ):
        self.config = config or default_config
        self.llm = llm
        self.checkpoint_store = checkpoint_store
        self._executor: GraphExecutor | None = None

    def executor(self) -> GraphExecutor:
        if self._executor is None:
            if self.llm is None:
                self.llm = self.config.create_llm()
            if self.checkpoint_store is None:
                self.checkpoint_store = FileCheckpointStore(self.config.storage_path)
            self._executor = build_graph().compile(
                checkpoint_store=self.checkpoint_store,
                resources={"llm": self.llm, "config": self.config},
            )
        return self._executor

    async def run(
        self,
        email_content: str,
        sender_email: str,
        email_id: str | None = None,
        thread_id: str | None = None,
    ) -> ExecutionResult:
        email_id = email_id or uuid.uuid4().hex[:8]
        return await self.executor().invoke(
            thread_id or f"email-{email_id}",
            {
                "email_content": email_content,
                "sender_email": sender_email,
                "email_id": email_id,
            },
        )

    async def review(self, thread_id: str, decision: Any) -> ExecutionResult:
        """Resume a suspended thread with ``{approved, edited_response?}``."""
        return await self.executor().resume(thread_id, decision)

    def info(self) -> dict:
        graph, _ = build_graph().build()
        return {
            "name": metadata.name,
            "version": metadata.version,
            "description": metadata.description,
            "nodes": [n.id for n in graph.nodes],
            "edges": [e.id for e in graph.edges],
            "entry_node": graph.entry_node,
            "pause_nodes": ["human_review"],
        }

    def validate(self) -> dict:
        try:
            build_graph().build()
        except GraphValidationError as e:
            return {"valid": False, "errors": e.errors, "warnings": []}
        return {"valid": True, "errors": [], "warnings": []}


default_agent = EmailTriageAgent()
