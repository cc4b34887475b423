"""
Run Schema - Lifecycle status of a single thread of execution.

A run is created on first invocation of a thread, advanced node by node by
the executor and persisted through checkpoints until explicitly purged.
"""

from enum import StrEnum


class RunStatus(StrEnum):
    """Status of a run."""

    RUNNING = "running"
    INTERRUPTED = "interrupted"  # Suspended, waiting for a resume value
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)
