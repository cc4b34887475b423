"""
Observability: structured logging with automatic trace context.

Records emitted while a run is in progress carry its thread id, graph id and
current node id without any manual passing.
"""

from stepgraph.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
    trace_scope,
)

__all__ = [
    "configure_logging",
    "get_trace_context",
    "set_trace_context",
    "clear_trace_context",
    "trace_scope",
    "StructuredFormatter",
    "HumanReadableFormatter",
]
