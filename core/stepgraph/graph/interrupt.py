"""
Interrupt Controller - Voluntary suspension points inside node execution.

A node suspends by calling ``ctx.interrupt(payload)``. The first time the
call is reached it raises NodeInterrupt; the executor persists an
INTERRUPTED checkpoint (node, sub-step index, snapshot, payload) and hands
the payload to the caller. ``GraphExecutor.resume(thread_id, value)`` loads
that checkpoint and re-enters the node at the recorded sub-step, where the
same ``ctx.interrupt(...)`` call now returns ``value``.

Sub-steps are the unit of re-entry: work done in earlier sub-steps is not
repeated, but the sub-step that suspended runs again up to its interrupt
call, so code before the call inside that sub-step must be side-effect free.

The approval helpers below define the payload/resume shape used by
human-review nodes.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Interrupt:
    """A pending suspension: what the node asked for and where it stopped."""

    payload: Any
    node_id: str
    substep: int = 0
    index: int = 0  # n-th interrupt call within the sub-step

    def to_dict(self) -> dict[str, Any]:
        return {
            "payload": self.payload,
            "node_id": self.node_id,
            "substep": self.substep,
            "index": self.index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Interrupt":
        return cls(
            payload=data.get("payload"),
            node_id=data["node_id"],
            substep=data.get("substep", 0),
            index=data.get("index", 0),
        )


class NodeInterrupt(Exception):  # noqa: N818
    """Raised from ``ctx.interrupt`` to unwind the node; not an error."""

    def __init__(self, interrupt: Interrupt):
        self.interrupt = interrupt
        super().__init__(f"Interrupted at {interrupt.node_id}[{interrupt.substep}]")


@dataclass
class ApprovalRequest:
    """
    Formal request for a human decision at a review node.

    This is what the node passes to ``ctx.interrupt``.
    """

    action: str
    draft: str
    context: dict[str, Any] = field(default_factory=dict)
    instructions: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {"action": self.action, "draft": self.draft}
        if self.context:
            d["context"] = self.context
        if self.instructions:
            d["instructions"] = self.instructions
        return d


@dataclass
class ApprovalResponse:
    """
    Human's answer to an ApprovalRequest.

    This is what gets passed back as the resume value.
    """

    approved: bool
    edited_response: str | None = None
    comment: str = ""

    @classmethod
    def from_value(cls, value: Any) -> "ApprovalResponse":
        """Accept an ApprovalResponse, a dict, or a bare bool."""
        if isinstance(value, ApprovalResponse):
            return value
        if isinstance(value, bool):
            return cls(approved=value)
        if isinstance(value, dict):
            return cls(
                approved=bool(value.get("approved", False)),
                edited_response=value.get("edited_response") or value.get("editedResponse"),
                comment=value.get("comment", ""),
            )
        raise TypeError(f"Cannot interpret resume value of type {type(value).__name__}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "approved": self.approved,
            "edited_response": self.edited_response,
            "comment": self.comment,
        }


def format_for_display(payload: Any) -> str:
    """Render an interrupt payload for a console prompt."""
    if not isinstance(payload, dict):
        return str(payload)
    parts = []
    if payload.get("action"):
        parts.append(f"Action: {payload['action']}")
    if payload.get("instructions"):
        parts.append(payload["instructions"])
    if payload.get("draft"):
        parts.append(f"\nDraft:\n{payload['draft']}")
    for key, value in payload.get("context", {}).items():
        parts.append(f"  {key}: {value}")
    return "\n".join(parts)
