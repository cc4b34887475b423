"""
Error taxonomy for graph execution.

Programmer errors (SchemaViolation, UnmappedDecision, GraphValidationError)
fail a run immediately and are never retried by the engine. Transient
failures of external services surface as ExternalServiceFailure after the
caller's own bounded retry.
"""

from typing import Any


class StepGraphError(Exception):
    """Base class for all engine errors."""


class GraphValidationError(StepGraphError):
    """Raised when a graph definition is structurally invalid."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Invalid graph: {'; '.join(errors)}")


class SchemaViolation(StepGraphError):
    """An update does not fit the declared state schema."""

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(f"Channel '{channel}': {message}")


class UnmappedDecision(StepGraphError):
    """A router returned a decision with no successor mapped to it."""

    def __init__(self, node_id: str, decision: Any, valid: list[str]):
        self.node_id = node_id
        self.decision = decision
        self.valid = valid
        super().__init__(
            f"Router for node '{node_id}' returned unmapped decision {decision!r}. "
            f"Valid decisions: {valid}"
        )


class MissingToolCall(StepGraphError):
    """The latest message was expected to carry a tool-call decision."""


class MissingContext(StepGraphError):
    """A node needed retrieved context that is not present in history."""


class UnknownSubagentType(StepGraphError):
    """Delegation was requested for a sub-agent that is not registered."""

    def __init__(self, subagent_type: str, valid: list[str]):
        self.subagent_type = subagent_type
        self.valid = valid
        allowed = ", ".join(f"`{name}`" for name in valid)
        super().__init__(
            f"invoked agent of type {subagent_type}, the only allowed types are [{allowed}]"
        )


class UnknownTool(StepGraphError):
    """A tool call named a capability that has no registered handler."""

    def __init__(self, name: str, valid: list[str]):
        self.name = name
        self.valid = valid
        super().__init__(f"Unknown tool '{name}'. Available tools: {valid}")


class NoPendingInterrupt(StepGraphError):
    """resume() was called on a thread that is not suspended."""

    def __init__(self, thread_id: str, status: str):
        self.thread_id = thread_id
        self.status = status
        super().__init__(
            f"Thread '{thread_id}' has no pending interrupt (last checkpoint status: {status})"
        )


class CheckpointNotFound(StepGraphError):
    """No checkpoint has been stored for the thread."""

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"No checkpoint found for thread '{thread_id}'")


class ExternalServiceFailure(StepGraphError):
    """An external service (model, index, backend) failed after retries."""

    def __init__(self, service: str, attempts: int, cause: BaseException | None = None):
        self.service = service
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"{service} failed after {attempts} attempt(s): {cause}")


class FileOwnershipError(StepGraphError):
    """A second writer tried to overwrite a file key owned by someone else."""


class StepLimitExceeded(StepGraphError):
    """The optional per-run step guard was hit."""
