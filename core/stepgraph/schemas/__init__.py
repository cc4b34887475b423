"""Schemas for runs and checkpoints."""

from stepgraph.schemas.checkpoint import Checkpoint, CheckpointIndex, CheckpointSummary
from stepgraph.schemas.run import RunStatus

__all__ = ["Checkpoint", "CheckpointIndex", "CheckpointSummary", "RunStatus"]
