"""Node definitions for the Email Triage Agent."""

import logging
import random
from typing import Literal

from pydantic import BaseModel, Field

from stepgraph.graph import END, ApprovalRequest, ApprovalResponse, NodeContext, NodeResult
from stepgraph.graph.messages import user
from stepgraph.llm.retry import retry_async

logger = logging.getLogger(__name__)

REVIEW_URGENCIES = ("high", "critical")


class EmailClassification(BaseModel):
    """Structured verdict for one customer email."""

    intent: Literal["question", "bug", "billing", "feature", "complex"]
    urgency: Literal["low", "medium", "high", "critical"]
    topic: str
    summary: str = Field(description="One-sentence summary of the email")


CLASSIFY_PROMPT = """Analyze this customer email and classify it:
Email: {email}
From: {sender}
Provide classification, including intent, urgency, topic, and summary."""

DRAFT_PROMPT = """Draft a response to: {email}
Intent: {intent}
Docs:
{docs}
Guidelines:
- Be professional and helpful
- Address their specific concern
- Use documentation when relevant
- Be brief"""


def needs_review(classification: EmailClassification) -> bool:
    return classification.urgency in REVIEW_URGENCIES or classification.intent == "complex"


def read_email(ctx: NodeContext) -> None:
    logger.info(f"Processing: {ctx.state['sender_email']}")


async def classify_intent(ctx: NodeContext) -> NodeResult:
    """Classify the email with structured output."""
    llm = ctx.resource("llm")
    prompt = CLASSIFY_PROMPT.format(email=ctx.state["email_content"], sender=ctx.state["sender_email"])
    classification = await retry_async(
        lambda: llm.astructured([user(prompt)], EmailClassification),
        service="classify_intent.llm",
    )
    logger.info(f"   Intent: {classification.intent}, urgency: {classification.urgency}")
    return NodeResult(update={"classification": classification})


def route_by_intent(state) -> str:
    return state["classification"].intent


def search_documentation(ctx: NodeContext) -> NodeResult:
    """Look up documentation for the classified topic."""
    classification = ctx.state["classification"]
    return NodeResult(
        update={
            "search_results": [
                f"Doc for {classification.intent}: Info about {classification.topic}",
                f"Standard procedure for {classification.topic}",
            ]
        }
    )


def bug_tracking(ctx: NodeContext) -> NodeResult:
    """Open a bug ticket."""
    ticket_id = f"BUG_{random.randint(0, 9999)}"
    logger.info(f"   Created ticket {ticket_id}")
    return NodeResult(update={"ticket_id": ticket_id})


async def write_response(ctx: NodeContext) -> NodeResult:
    """Draft a reply and pick the review path."""
    llm = ctx.resource("llm")
    classification = ctx.state["classification"]
    docs = "\n".join(f"- {doc}" for doc in ctx.state["search_results"])
    prompt = DRAFT_PROMPT.format(
        email=ctx.state["email_content"], intent=classification.intent, docs=docs
    )
    response = await retry_async(
        lambda: llm.acomplete([user(prompt)], max_tokens=ctx.resource("config").max_tokens),
        service="write_response.llm",
    )

    goto = "human_review" if needs_review(classification) else "send_reply"
    logger.info(f"   Routing to {goto}")
    return NodeResult(update={"draft_response": response.content}, goto=goto)


def request_review(ctx: NodeContext) -> NodeResult:
    return NodeResult(update={"review_status": "pending"})


def await_decision(ctx: NodeContext) -> NodeResult:
    """Suspend for a human decision on the draft, then route on it."""
    draft = ctx.state["draft_response"]
    decision = ApprovalResponse.from_value(
        ctx.interrupt(ApprovalRequest(action="Review Draft", draft=draft).to_dict())
    )
    if decision.approved:
        return NodeResult(
            update={
                "draft_response": decision.edited_response or draft,
                "review_status": "approved",
            },
            goto="send_reply",
        )
    logger.info("   Draft rejected")
    return NodeResult(update={"review_status": "rejected"}, goto=END)


human_review = [request_review, await_decision]


def send_reply(ctx: NodeContext) -> NodeResult:
    logger.info(f"Final Text: {ctx.state['draft_response']}")
    return NodeResult(update={"sent": True})


__all__ = [
    "EmailClassification",
    "needs_review",
    "read_email",
    "classify_intent",
    "route_by_intent",
    "search_documentation",
    "bug_tracking",
    "write_response",
    "human_review",
    "send_reply",
]
