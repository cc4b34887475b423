"""
Checkpoint Configuration - Controls checkpoint behavior during execution.
"""

from dataclasses import dataclass


@dataclass
class CheckpointConfig:
    """
    Configuration for checkpoint behavior during graph execution.

    The initial checkpoint and the one after every transition are always
    written: resume and retry depend on them. What can be tuned is the
    finer-grained checkpointing inside sequential nodes.
    """

    # Checkpoint between the sub-steps of sequential nodes
    checkpoint_on_substep: bool = True

    # Write a failure record so retry() can find the last good cursor
    checkpoint_on_failure: bool = True

    def should_checkpoint_substep(self) -> bool:
        return self.checkpoint_on_substep


DEFAULT_CHECKPOINT_CONFIG = CheckpointConfig()

# Only node-boundary checkpoints; an interrupted sequential node restarts at
# the sub-step recorded by its interrupt checkpoint.
MINIMAL_CHECKPOINT_CONFIG = CheckpointConfig(checkpoint_on_substep=False)
