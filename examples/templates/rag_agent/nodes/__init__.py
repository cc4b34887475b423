"""Node definitions for the RAG Agent.

Flow:
    agent ──(tool call)──▶ retrieve ──▶ grade_relevance ──(yes)──▶ generate ──▶ END
      ▲  └──(no tool call)──▶ END              │
      └──────────── rewrite ◀──────────(no)────┘
"""

import logging

from stepgraph.errors import MissingContext, MissingToolCall
from stepgraph.graph import END, NodeContext, NodeResult
from stepgraph.graph.messages import (
    Message,
    first_user_message,
    last_message,
    latest_tool_results,
    user,
)
from stepgraph.llm.provider import Tool
from stepgraph.llm.retry import retry_async

logger = logging.getLogger(__name__)

# Node names
AGENT_NODE = "agent"
RETRIEVE_NODE = "retrieve"
GRADE_NODE = "grade_relevance"
REWRITE_NODE = "rewrite"
GENERATE_NODE = "generate"

# Tool names
RETRIEVER_TOOL = "retrieve_blog_posts"
GRADE_TOOL = "give_relevance_score"

# Decisions
DECISION_RELEVANT = "yes"
DECISION_NOT_RELEVANT = "no"
DECISION_GIVE_UP = "give_up"

RETRIEVER_DESCRIPTION = "Search and return information about Deno from various blog posts."

GRADE_PROMPT = f"""You are a grader assessing relevance of retrieved docs to a user question.
Here are the retrieved docs:

-------

{{context}}

-------

Here is the user question: {{question}}

If the content of the docs are relevant to the users question, score them as relevant.
Give a binary score '{DECISION_RELEVANT}' or '{DECISION_NOT_RELEVANT}' score to indicate whether the docs are relevant to the question.
{DECISION_RELEVANT}: The docs are relevant to the question.
{DECISION_NOT_RELEVANT}: The docs are not relevant to the question."""

REWRITE_PROMPT = """Look at the input and try to reason about the underlying semantic intent / meaning.

Here is the initial question:

-------

{question}

-------

Formulate an improved question:"""

GENERATE_PROMPT = """You are an assistant for question-answering tasks. Use the following pieces of retrieved context to answer the question. If you don't know the answer, just say that you don't know. Use three sentences maximum and keep the answer concise.

Here is the initial question:

-------

{question}

-------

Here is the context that you should use to answer the question:

-------

{context}

-------

Answer:"""

GRADE_TOOL_SPEC = Tool(
    name=GRADE_TOOL,
    description="Give a relevance score to the retrieved documents.",
    parameters={
        "type": "object",
        "properties": {
            "binary_score": {
                "type": "string",
                "enum": [DECISION_RELEVANT, DECISION_NOT_RELEVANT],
                "description": "Relevance score 'yes' or 'no'",
            }
        },
        "required": ["binary_score"],
    },
)


def is_grading_message(message: Message) -> bool:
    return message.has_tool_calls and message.tool_calls[0].name == GRADE_TOOL


def question_of(ctx: NodeContext) -> str:
    first = first_user_message(ctx.state["messages"])
    return first.content if first else ""


def retrieved_context(ctx: NodeContext) -> str:
    """Every search result of the latest retrieval turn."""
    return "\n\n".join(m.content for m in latest_tool_results(ctx.state["messages"]))


async def call_llm(ctx: NodeContext, messages: list[Message], tools: list[Tool] | None = None):
    llm = ctx.resource("llm")
    config = ctx.resource("config")
    return await retry_async(
        lambda: llm.acomplete(
            messages,
            tools=tools,
            temperature=0.0,
            max_tokens=config.max_tokens,
        ),
        service=f"{ctx.node_id}.llm",
    )


async def call_agent(ctx: NodeContext) -> NodeResult:
    """Decide whether retrieval is warranted; grading artifacts are hidden."""
    logger.info("---CALL AGENT---")
    history = [m for m in ctx.state["messages"] if not is_grading_message(m)]
    tools = ctx.resource("tools").get_tools()
    response = await call_llm(ctx, history, tools=tools)
    return NodeResult(update={"messages": [response.message]})


def should_retrieve(state) -> str:
    message = last_message(state["messages"])
    if message is not None and message.has_tool_calls:
        logger.info("---DECISION: RETRIEVE---")
        return RETRIEVE_NODE
    return END


async def retrieve(ctx: NodeContext) -> NodeResult:
    """Run the requested search calls and append their results."""
    message = last_message(ctx.state["messages"])
    if message is None or not message.has_tool_calls:
        raise MissingToolCall(f"'{ctx.node_id}' requires the most recent message to contain tool calls.")
    results = await ctx.resource("tools").dispatch_all(message.tool_calls, ctx.state)
    return NodeResult(update={"messages": [r.to_message() for r in results]})


async def grade_relevance(ctx: NodeContext) -> NodeResult:
    """Ask for a binary relevance verdict, recorded as a grading tool call."""
    logger.info("---GET RELEVANCE---")
    prompt = GRADE_PROMPT.format(context=retrieved_context(ctx), question=question_of(ctx))
    response = await call_llm(ctx, [user(prompt)], tools=[GRADE_TOOL_SPEC])
    return NodeResult(update={"messages": [response.message]})


def make_relevance_router(max_rewrites: int):
    """Router for grade_relevance; gives up rewriting after ``max_rewrites``."""

    def check_relevance(state) -> str:
        logger.info("---CHECK RELEVANCE---")
        message = last_message(state["messages"])
        if message is None or message.role != "assistant":
            raise MissingToolCall(
                f"'{GRADE_NODE}' requires the most recent message to be an assistant message."
            )
        if not message.tool_calls:
            raise MissingToolCall(
                f"'{GRADE_NODE}' requires the most recent message to contain tool calls."
            )

        if message.tool_calls[0].arguments.get("binary_score") == DECISION_RELEVANT:
            logger.info("---DECISION: DOCS RELEVANT---")
            return DECISION_RELEVANT
        if state["rewrites"] >= max_rewrites:
            logger.info(f"---DECISION: NOT RELEVANT, {max_rewrites} rewrites used, GENERATING---")
            return DECISION_GIVE_UP
        logger.info("---DECISION: DOCS NOT RELEVANT---")
        return DECISION_NOT_RELEVANT

    return check_relevance


async def rewrite(ctx: NodeContext) -> NodeResult:
    """Reformulate the original question."""
    logger.info("---TRANSFORM QUERY---")
    response = await call_llm(ctx, [user(REWRITE_PROMPT.format(question=question_of(ctx)))])
    return NodeResult(
        update={
            "messages": [user(response.content)],
            "rewrites": ctx.state["rewrites"] + 1,
        }
    )


async def generate(ctx: NodeContext) -> NodeResult:
    """Answer the original question from the latest retrieved content."""
    logger.info("---GENERATE---")
    context = retrieved_context(ctx)
    if not context:
        raise MissingContext("No tool message found in the conversation history")
    prompt = GENERATE_PROMPT.format(question=question_of(ctx), context=context)
    response = await call_llm(ctx, [user(prompt)])
    return NodeResult(update={"messages": [response.message], "answer": response.content})


__all__ = [
    "AGENT_NODE",
    "RETRIEVE_NODE",
    "GRADE_NODE",
    "REWRITE_NODE",
    "GENERATE_NODE",
    "RETRIEVER_TOOL",
    "GRADE_TOOL",
    "RETRIEVER_DESCRIPTION",
    "DECISION_RELEVANT",
    "DECISION_NOT_RELEVANT",
    "DECISION_GIVE_UP",
    "call_agent",
    "should_retrieve",
    "retrieve",
    "grade_relevance",
    "make_relevance_router",
    "rewrite",
    "generate",
]
