"""Runtime helpers layered on the executor: sub-agent delegation."""

from stepgraph.runtime.delegation import (
    DelegationRecord,
    DelegationRequest,
    DelegationStatus,
    SubagentDelegator,
    SubagentSpec,
    create_task_tool,
    tool_agent_factory,
)

__all__ = [
    "DelegationRecord",
    "DelegationRequest",
    "DelegationStatus",
    "SubagentDelegator",
    "SubagentSpec",
    "create_task_tool",
    "tool_agent_factory",
]
