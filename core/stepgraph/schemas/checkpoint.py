"""
Checkpoint Schema - Execution state snapshots for resumability.

A checkpoint is written before the entry node runs, after every transition
and between the sub-steps of sequential nodes. The newest checkpoint of a
thread supersedes the older ones: resume, retry and get_state all read it.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from stepgraph.schemas.run import RunStatus


class Checkpoint(BaseModel):
    """
    Single checkpoint in a thread's execution timeline.

    ``next_node`` is the cursor: the node that runs when execution picks up
    from here (``__end__`` once the run completed). ``substep`` and
    ``scratch`` locate the cursor inside a sequential node.
    """

    # Identity
    checkpoint_id: str  # Format: cp_{sequence}_{type}_{node}
    checkpoint_type: str  # "start" | "transition" | "substep" | "interrupt" | "failure"
    thread_id: str
    graph_id: str = ""
    sequence: int = 0

    # Timestamps
    created_at: str  # ISO 8601 format

    # Cursor
    status: RunStatus = RunStatus.RUNNING
    current_node: str | None = None
    next_node: str | None = None
    substep: int = 0
    scratch: dict[str, Any] = Field(default_factory=dict)
    execution_path: list[str] = Field(default_factory=list)

    # State snapshot, in the schema's dumped (JSON) form
    state: dict[str, Any] = Field(default_factory=dict)

    # Suspension
    pending_interrupt: dict[str, Any] | None = None
    resume_values: list[Any] = Field(default_factory=list)

    # Failure
    error: str | None = None

    description: str = ""

    model_config = {"extra": "allow"}

    @classmethod
    def create(
        cls,
        checkpoint_type: str,
        thread_id: str,
        sequence: int,
        state: dict[str, Any],
        next_node: str | None,
        status: RunStatus = RunStatus.RUNNING,
        graph_id: str = "",
        current_node: str | None = None,
        substep: int = 0,
        scratch: dict[str, Any] | None = None,
        execution_path: list[str] | None = None,
        pending_interrupt: dict[str, Any] | None = None,
        resume_values: list[Any] | None = None,
        error: str | None = None,
        description: str = "",
    ) -> "Checkpoint":
        """
        Create a new checkpoint with generated ID and timestamp.

        Args:
            checkpoint_type: Why the checkpoint was taken
            thread_id: Thread this checkpoint belongs to
            sequence: Monotonic position in the thread's timeline
            state: Dumped state snapshot
            next_node: Node to execute when picking up from here
            status: Run status at checkpoint time
            current_node: Node that just ran (or is suspended)
            substep: Sub-step index inside ``next_node``
            scratch: Node-local working data for the sub-step
            execution_path: Node IDs executed so far
            pending_interrupt: Interrupt payload and location, if suspended
            resume_values: Resume values already supplied to the sub-step
            error: Error message for failure checkpoints

        Returns:
            New Checkpoint instance
        """
        anchor = current_node or next_node or "start"
        if not description:
            description = f"{checkpoint_type.replace('_', ' ').title()}: {anchor}"

        return cls(
            checkpoint_id=f"cp_{sequence:05d}_{checkpoint_type}_{anchor}",
            checkpoint_type=checkpoint_type,
            thread_id=thread_id,
            graph_id=graph_id,
            sequence=sequence,
            created_at=datetime.now().isoformat(),
            status=status,
            current_node=current_node,
            next_node=next_node,
            substep=substep,
            scratch=scratch or {},
            execution_path=list(execution_path or []),
            state=state,
            pending_interrupt=pending_interrupt,
            resume_values=list(resume_values or []),
            error=error,
            description=description,
        )


class CheckpointSummary(BaseModel):
    """
    Lightweight checkpoint metadata for index listings.

    Used in the checkpoint index to provide fast scanning without
    loading full checkpoint data.
    """

    checkpoint_id: str
    checkpoint_type: str
    sequence: int = 0
    created_at: str
    status: RunStatus = RunStatus.RUNNING
    current_node: str | None = None
    next_node: str | None = None
    description: str = ""

    model_config = {"extra": "allow"}

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> "CheckpointSummary":
        """Create summary from full checkpoint."""
        return cls(
            checkpoint_id=checkpoint.checkpoint_id,
            checkpoint_type=checkpoint.checkpoint_type,
            sequence=checkpoint.sequence,
            created_at=checkpoint.created_at,
            status=checkpoint.status,
            current_node=checkpoint.current_node,
            next_node=checkpoint.next_node,
            description=checkpoint.description,
        )


class CheckpointIndex(BaseModel):
    """
    Manifest of all checkpoints for a thread.

    Provides fast lookup without loading full checkpoint files.
    """

    thread_id: str
    checkpoints: list[CheckpointSummary] = Field(default_factory=list)
    latest_checkpoint_id: str | None = None
    total_checkpoints: int = 0

    model_config = {"extra": "allow"}

    def add_checkpoint(self, checkpoint: Checkpoint) -> None:
        """Add a checkpoint to the index."""
        self.checkpoints.append(CheckpointSummary.from_checkpoint(checkpoint))
        self.latest_checkpoint_id = checkpoint.checkpoint_id
        self.total_checkpoints = len(self.checkpoints)
