"""
Graph Executor - Runs agent graphs over checkpointed state.

The executor:
1. Builds the initial snapshot and writes a checkpoint before the entry node
2. Invokes each node with the current snapshot and folds its update in
3. Resolves the successor (explicit goto, else the node's edge, else END)
4. Checkpoints after every transition and between sub-steps
5. Stops at END (COMPLETED), at an interrupt (INTERRUPTED) or on the
   first node error (FAILED); errors are never retried by the engine

Example:
    executor = GraphExecutor(graph, registry, checkpoint_store=InMemoryCheckpointStore())

    result = await executor.invoke("thread-1", {"messages": [user("hi")]})
    if result.interrupted:
        result = await executor.resume("thread-1", {"approved": True})
"""

import logging
import time
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from stepgraph.errors import (
    GraphValidationError,
    NoPendingInterrupt,
    StepGraphError,
    StepLimitExceeded,
    UnmappedDecision,
)
from stepgraph.graph.checkpoint_config import DEFAULT_CHECKPOINT_CONFIG, CheckpointConfig
from stepgraph.graph.edge import END, GraphSpec
from stepgraph.graph.interrupt import Interrupt, NodeInterrupt
from stepgraph.graph.node import NodeContext, NodeRegistry, NodeResult, NodeSpec
from stepgraph.graph.state import StateSchema, StateSnapshot, apply
from stepgraph.observability import trace_scope
from stepgraph.schemas.checkpoint import Checkpoint
from stepgraph.schemas.run import RunStatus
from stepgraph.storage.checkpoint_store import CheckpointStore, InMemoryCheckpointStore


@dataclass
class ExecutionResult:
    """Result of driving a thread until it completes, fails or suspends."""

    thread_id: str
    status: RunStatus
    state: StateSnapshot | None = None
    interrupt: Interrupt | None = None
    path: list[str] = field(default_factory=list)  # Node IDs traversed, whole run
    steps_executed: int = 0  # Nodes run by this call
    error: str | None = None
    exception: BaseException | None = None
    failed_node: str | None = None
    last_checkpoint: str | None = None  # Last good checkpoint ID
    latency_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def interrupted(self) -> bool:
        return self.status == RunStatus.INTERRUPTED

    @property
    def interrupt_payload(self) -> Any:
        return self.interrupt.payload if self.interrupt else None


@dataclass
class StepEvent:
    """
    One entry of ``stream_steps``: a node and the partial update it returned.

    The last event of a traversal has a terminal ``status`` and carries the
    ExecutionResult.
    """

    node_id: str
    update: dict[str, Any] = field(default_factory=dict)
    next_node: str | None = None
    status: RunStatus = RunStatus.RUNNING
    interrupt: Interrupt | None = None
    error: str | None = None
    result: ExecutionResult | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != RunStatus.RUNNING


@dataclass
class _Cursor:
    """Mutable bookkeeping for one traversal."""

    thread_id: str
    sequence: int
    path: list[str]
    last_good: Checkpoint | None = None
    steps: int = 0


class GraphExecutor:
    """
    Executes agent graphs.

    One executor serves any number of threads; runs on distinct thread ids
    share nothing but the checkpoint store and the resource handles.

    Example:
        executor = GraphExecutor(
            graph=graph_spec,
            registry=NodeRegistry({"agent": call_model, "tools": run_tools}),
            checkpoint_store=FileCheckpointStore("~/.stepgraph/threads"),
            resources={"llm": LiteLLMProvider()},
        )
    """

    def __init__(
        self,
        graph: GraphSpec,
        registry: NodeRegistry,
        checkpoint_store: CheckpointStore | None = None,
        resources: dict[str, Any] | None = None,
        checkpoint_config: CheckpointConfig | None = None,
    ):
        errors = graph.validate()
        missing = [n.id for n in graph.nodes if n.id not in registry]
        errors.extend(f"Node '{node_id}' has no implementation" for node_id in missing)
        if errors:
            raise GraphValidationError(errors)

        self.graph = graph
        self.registry = registry
        self.checkpoint_store = checkpoint_store or InMemoryCheckpointStore()
        self.resources = resources or {}
        self.checkpoint_config = checkpoint_config or DEFAULT_CHECKPOINT_CONFIG
        self.logger = logging.getLogger(__name__)
        self._node_ids = graph.node_ids()

    @property
    def schema(self) -> StateSchema:
        return self.graph.state_schema

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def invoke(
        self, thread_id: str, initial_state: Mapping[str, Any] | None = None
    ) -> ExecutionResult:
        """Start a fresh run on ``thread_id`` and drive it to a stop."""
        return await self._collect(self.stream_steps(thread_id, initial_state))

    async def stream_steps(
        self, thread_id: str, initial_state: Mapping[str, Any] | None = None
    ) -> AsyncIterator[StepEvent]:
        """Start a fresh run and yield one StepEvent per executed node."""
        state = self.schema.initial(initial_state or {})
        sequence = await self._next_sequence(thread_id)
        cursor = _Cursor(thread_id=thread_id, sequence=sequence, path=[])

        with trace_scope(thread_id=thread_id, graph_id=self.graph.id):
            self.logger.info(f"🚀 Starting run on thread {thread_id}")
            self.logger.info(f"   Entry node: {self.graph.entry_node}")
            await self._save(
                cursor,
                "start",
                state,
                next_node=self.graph.entry_node,
            )
            async for event in self._drive(cursor, self.graph.entry_node, state):
                yield event

    async def resume(self, thread_id: str, resume_value: Any) -> ExecutionResult:
        """Continue an INTERRUPTED thread, feeding ``resume_value`` to the suspension point.

        Raises:
            CheckpointNotFound: nothing stored for the thread
            NoPendingInterrupt: the latest checkpoint is not INTERRUPTED
        """
        return await self._collect(self.stream_resume(thread_id, resume_value))

    async def stream_resume(self, thread_id: str, resume_value: Any) -> AsyncIterator[StepEvent]:
        checkpoint = await self.checkpoint_store.load(thread_id)
        if checkpoint.status != RunStatus.INTERRUPTED:
            raise NoPendingInterrupt(thread_id, checkpoint.status)

        state = self.schema.restore(checkpoint.state)
        cursor = _Cursor(
            thread_id=thread_id,
            sequence=checkpoint.sequence + 1,
            path=list(checkpoint.execution_path),
            last_good=checkpoint,
        )
        with trace_scope(thread_id=thread_id, graph_id=self.graph.id):
            self.logger.info(
                f"🔄 Resuming from: {checkpoint.next_node} (sub-step {checkpoint.substep})"
            )
            async for event in self._drive(
                cursor,
                checkpoint.next_node,
                state,
                substep=checkpoint.substep,
                scratch=checkpoint.scratch,
                resume_values=[*checkpoint.resume_values, resume_value],
            ):
                yield event

    async def retry(self, thread_id: str) -> ExecutionResult:
        """Re-enter a FAILED thread at its last good checkpoint.

        Raises:
            CheckpointNotFound: nothing stored for the thread
            StepGraphError: the thread is not in FAILED state
        """
        checkpoint = await self.checkpoint_store.load(thread_id)
        if checkpoint.status != RunStatus.FAILED:
            raise StepGraphError(
                f"Thread '{thread_id}' cannot be retried (last checkpoint status: "
                f"{checkpoint.status})"
            )

        state = self.schema.restore(checkpoint.state)
        cursor = _Cursor(
            thread_id=thread_id,
            sequence=checkpoint.sequence + 1,
            path=list(checkpoint.execution_path),
            last_good=checkpoint,
        )
        with trace_scope(thread_id=thread_id, graph_id=self.graph.id):
            self.logger.info(f"🔁 Retrying from: {checkpoint.next_node}")
            return await self._collect(
                self._drive(
                    cursor,
                    checkpoint.next_node,
                    state,
                    substep=checkpoint.substep,
                    scratch=checkpoint.scratch,
                    resume_values=checkpoint.resume_values,
                )
            )

    async def get_state(self, thread_id: str) -> Checkpoint:
        """Latest checkpoint of the thread.

        Raises:
            CheckpointNotFound: nothing stored for the thread
        """
        return await self.checkpoint_store.load(thread_id)

    async def get_snapshot(self, thread_id: str) -> StateSnapshot:
        """State snapshot stored in the thread's latest checkpoint."""
        checkpoint = await self.checkpoint_store.load(thread_id)
        return self.schema.restore(checkpoint.state)

    # ------------------------------------------------------------------
    # Execution loop
    # ------------------------------------------------------------------

    async def _drive(
        self,
        cursor: _Cursor,
        current: str,
        state: StateSnapshot,
        substep: int = 0,
        scratch: dict[str, Any] | None = None,
        resume_values: list[Any] | None = None,
    ) -> AsyncIterator[StepEvent]:
        start = time.time()
        scratch = dict(scratch or {})
        resume_values = list(resume_values or [])

        while True:
            node_spec = self.graph.get_node(current)
            ctx = NodeContext(
                node_id=current,
                thread_id=cursor.thread_id,
                state=state,
                substep=substep,
                scratch=scratch,
                resume_values=resume_values,
                resources=self.resources,
                on_substep=self._substep_hook(cursor),
            )

            with trace_scope(node_id=current):
                try:
                    if self.graph.max_steps is not None and len(cursor.path) >= self.graph.max_steps:
                        raise StepLimitExceeded(
                            f"Run exceeded max_steps={self.graph.max_steps} before '{current}'"
                        )

                    self.logger.info(f"\n▶ Step {len(cursor.path) + 1}: {node_spec.name}")
                    if substep:
                        self.logger.info(f"   Entering at sub-step {substep}")

                    impl = self.registry.get(current)
                    cursor.steps += 1
                    result = await impl.execute(ctx)
                    new_state = apply(ctx.state, result.update)
                    next_node = await self._next_node(node_spec, result, new_state)

                except NodeInterrupt as ni:
                    checkpoint = await self._save(
                        cursor,
                        "interrupt",
                        ctx.state,
                        next_node=current,
                        current_node=current,
                        status=RunStatus.INTERRUPTED,
                        substep=ctx.substep,
                        scratch=ctx.scratch,
                        pending_interrupt=ni.interrupt.to_dict(),
                        resume_values=ctx.resume_values,
                    )
                    self.logger.info(f"⏸ Interrupted at {current} (sub-step {ctx.substep})")
                    result = ExecutionResult(
                        thread_id=cursor.thread_id,
                        status=RunStatus.INTERRUPTED,
                        state=ctx.state,
                        interrupt=ni.interrupt,
                        path=list(cursor.path),
                        steps_executed=cursor.steps,
                        last_checkpoint=checkpoint.checkpoint_id,
                        latency_ms=int((time.time() - start) * 1000),
                    )
                    yield StepEvent(
                        node_id=current,
                        status=RunStatus.INTERRUPTED,
                        interrupt=ni.interrupt,
                        result=result,
                    )
                    return

                except Exception as e:
                    self.logger.error(f"   ✗ Failed at {current}: {e}")
                    await self._save_failure(cursor, current, e)
                    result = ExecutionResult(
                        thread_id=cursor.thread_id,
                        status=RunStatus.FAILED,
                        state=state,
                        path=list(cursor.path),
                        steps_executed=cursor.steps,
                        error=str(e),
                        exception=e,
                        failed_node=current,
                        last_checkpoint=(
                            cursor.last_good.checkpoint_id if cursor.last_good else None
                        ),
                        latency_ms=int((time.time() - start) * 1000),
                    )
                    yield StepEvent(
                        node_id=current,
                        status=RunStatus.FAILED,
                        error=str(e),
                        result=result,
                    )
                    return

            cursor.path.append(current)
            status = RunStatus.COMPLETED if next_node == END else RunStatus.RUNNING
            checkpoint = await self._save(
                cursor,
                "transition",
                new_state,
                next_node=next_node,
                current_node=current,
                status=status,
            )

            if status == RunStatus.COMPLETED:
                self.logger.info("\n✓ Execution complete!")
                self.logger.info(f"   Steps: {len(cursor.path)}")
                self.logger.info(f"   Path: {' → '.join(cursor.path)}")
                yield StepEvent(
                    node_id=current,
                    update=dict(result.update),
                    next_node=END,
                    status=RunStatus.COMPLETED,
                    result=ExecutionResult(
                        thread_id=cursor.thread_id,
                        status=RunStatus.COMPLETED,
                        state=new_state,
                        path=list(cursor.path),
                        steps_executed=cursor.steps,
                        last_checkpoint=checkpoint.checkpoint_id,
                        latency_ms=int((time.time() - start) * 1000),
                    ),
                )
                return

            self.logger.info(f"   → Next: {next_node}")
            yield StepEvent(node_id=current, update=dict(result.update), next_node=next_node)

            current = next_node
            state = new_state
            substep = 0
            scratch = {}
            resume_values = []

    async def _next_node(self, node_spec: NodeSpec, result: NodeResult, state: StateSnapshot) -> str:
        """An explicit goto wins, else the node's edge, else END."""
        if result.goto is not None:
            allowed = node_spec.ends or sorted(self._node_ids) + [END]
            if result.goto not in allowed or (
                result.goto != END and result.goto not in self._node_ids
            ):
                raise UnmappedDecision(node_spec.id, result.goto, list(allowed))
            self.logger.info(f"   → Routing via goto: {result.goto}")
            return result.goto

        edge = self.graph.get_edge(node_spec.id)
        if edge is None:
            return END
        return await edge.resolve(state, self._node_ids)

    # ------------------------------------------------------------------
    # Checkpointing
    # ------------------------------------------------------------------

    async def _next_sequence(self, thread_id: str) -> int:
        if not await self.checkpoint_store.exists(thread_id):
            return 0
        latest = await self.checkpoint_store.load(thread_id)
        return latest.sequence + 1

    async def _save(
        self,
        cursor: _Cursor,
        checkpoint_type: str,
        state: StateSnapshot,
        next_node: str,
        current_node: str | None = None,
        status: RunStatus = RunStatus.RUNNING,
        substep: int = 0,
        scratch: dict[str, Any] | None = None,
        pending_interrupt: dict[str, Any] | None = None,
        resume_values: list[Any] | None = None,
    ) -> Checkpoint:
        checkpoint = Checkpoint.create(
            checkpoint_type=checkpoint_type,
            thread_id=cursor.thread_id,
            graph_id=self.graph.id,
            sequence=cursor.sequence,
            state=self.schema.dump(state),
            next_node=next_node,
            current_node=current_node,
            status=status,
            substep=substep,
            scratch=scratch,
            execution_path=cursor.path,
            pending_interrupt=pending_interrupt,
            resume_values=resume_values,
        )
        await self.checkpoint_store.save(cursor.thread_id, checkpoint)
        cursor.sequence += 1
        cursor.last_good = checkpoint
        return checkpoint

    async def _save_failure(self, cursor: _Cursor, node_id: str, error: Exception) -> None:
        """Record the failure on top of the last good cursor, leaving that cursor intact."""
        if not self.checkpoint_config.checkpoint_on_failure or cursor.last_good is None:
            return
        good = cursor.last_good
        checkpoint = Checkpoint.create(
            checkpoint_type="failure",
            thread_id=cursor.thread_id,
            graph_id=self.graph.id,
            sequence=cursor.sequence,
            state=good.state,
            next_node=good.next_node,
            current_node=node_id,
            status=RunStatus.FAILED,
            substep=good.substep,
            scratch=good.scratch,
            execution_path=good.execution_path,
            resume_values=good.resume_values,
            error=f"{type(error).__name__}: {error}",
        )
        await self.checkpoint_store.save(cursor.thread_id, checkpoint)
        cursor.sequence += 1

    def _substep_hook(self, cursor: _Cursor):
        async def on_substep(ctx: NodeContext) -> None:
            if not self.checkpoint_config.should_checkpoint_substep():
                return
            await self._save(
                cursor,
                "substep",
                ctx.state,
                next_node=ctx.node_id,
                current_node=ctx.node_id,
                substep=ctx.substep,
                scratch=ctx.scratch,
            )
            self.logger.debug(f"   💾 Checkpoint before sub-step {ctx.substep} of {ctx.node_id}")

        return on_substep

    @staticmethod
    async def _collect(events: AsyncIterator[StepEvent]) -> ExecutionResult:
        result = None
        async for event in events:
            if event.result is not None:
                result = event.result
        return result
