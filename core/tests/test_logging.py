"""Tests for trace context propagation and log formatting."""

import asyncio
import json
import logging

import pytest

from stepgraph.observability import (
    HumanReadableFormatter,
    StructuredFormatter,
    clear_trace_context,
    get_trace_context,
    set_trace_context,
    trace_scope,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_trace_context()
    yield
    clear_trace_context()


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("stepgraph.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_trace_scope_nests_and_restores():
    set_trace_context(thread_id="t-1")
    with trace_scope(graph_id="rag"):
        with trace_scope(node_id="agent"):
            assert get_trace_context() == {"thread_id": "t-1", "graph_id": "rag", "node_id": "agent"}
        assert get_trace_context() == {"thread_id": "t-1", "graph_id": "rag"}
    assert get_trace_context() == {"thread_id": "t-1"}


@pytest.mark.asyncio
async def test_concurrent_tasks_keep_their_own_context():
    seen = {}

    async def run(thread_id: str) -> None:
        with trace_scope(thread_id=thread_id):
            await asyncio.sleep(0)
            seen[thread_id] = get_trace_context()["thread_id"]

    await asyncio.gather(run("a"), run("b"))

    assert seen == {"a": "a", "b": "b"}


def test_structured_formatter_includes_context_and_extras():
    with trace_scope(thread_id="t-1", node_id="grade_relevance"):
        line = StructuredFormatter().format(
            make_record("\x1b[32mgraded\x1b[0m", event="node_complete", latency_ms=12)
        )

    entry = json.loads(line)
    assert entry["message"] == "graded"
    assert entry["level"] == "info"
    assert entry["thread_id"] == "t-1"
    assert entry["node_id"] == "grade_relevance"
    assert entry["event"] == "node_complete"
    assert entry["latency_ms"] == 12
    assert "model" not in entry


def test_human_formatter_prefix():
    with trace_scope(thread_id="thread-0123456789", graph_id="rag", node_id="agent"):
        line = HumanReadableFormatter().format(make_record("hello"))

    assert "[thread:23456789 | graph:rag | node:agent] hello" in line
