"""
Checkpoint Store - Durable per-thread checkpoint history.

The executor saves a checkpoint after every transition; the newest one for
a thread is what resume, retry and get_state read. Checkpoints are never
deleted automatically, only by an explicit ``purge(thread_id)``.

Backends:
- InMemoryCheckpointStore: process-local, values deep-copied on the way in
  and out so callers cannot mutate stored history
- FileCheckpointStore: one directory per thread with atomic writes and an
  index for fast lookup

One writer per thread is assumed; concurrent runs under distinct thread ids
never share a record.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import quote

from stepgraph.errors import CheckpointNotFound
from stepgraph.schemas.checkpoint import Checkpoint, CheckpointIndex
from stepgraph.utils.io import atomic_write

logger = logging.getLogger(__name__)


class CheckpointStore(ABC):
    """Interface for checkpoint backends."""

    @abstractmethod
    async def save(self, thread_id: str, checkpoint: Checkpoint) -> None:
        """Append ``checkpoint`` to the thread's history."""

    @abstractmethod
    async def load(self, thread_id: str) -> Checkpoint:
        """Newest checkpoint of the thread.

        Raises:
            CheckpointNotFound: nothing stored for the thread
        """

    @abstractmethod
    async def list(self, thread_id: str) -> list[Checkpoint]:
        """The thread's checkpoint history, oldest first."""

    @abstractmethod
    async def purge(self, thread_id: str) -> int:
        """Delete all checkpoints of the thread. Returns how many were removed."""

    async def exists(self, thread_id: str) -> bool:
        try:
            await self.load(thread_id)
        except CheckpointNotFound:
            return False
        return True


class InMemoryCheckpointStore(CheckpointStore):
    """Checkpoints held in process memory."""

    def __init__(self):
        self._threads: dict[str, list[Checkpoint]] = {}

    async def save(self, thread_id: str, checkpoint: Checkpoint) -> None:
        self._threads.setdefault(thread_id, []).append(checkpoint.model_copy(deep=True))
        logger.debug(f"Saved checkpoint {checkpoint.checkpoint_id} for thread {thread_id}")

    async def load(self, thread_id: str) -> Checkpoint:
        history = self._threads.get(thread_id)
        if not history:
            raise CheckpointNotFound(thread_id)
        return history[-1].model_copy(deep=True)

    async def list(self, thread_id: str) -> list[Checkpoint]:
        return [cp.model_copy(deep=True) for cp in self._threads.get(thread_id, [])]

    async def purge(self, thread_id: str) -> int:
        removed = len(self._threads.pop(thread_id, []))
        if removed:
            logger.info(f"Purged {removed} checkpoints for thread {thread_id}")
        return removed

    def thread_ids(self) -> list[str]:
        return list(self._threads)


def encode_thread_id(thread_id: str) -> str:
    """
    One-to-one, filesystem-safe directory name for a thread id.

    Dots are escaped too, so "." and ".." become plain names inside the store.
    The raw id is kept in the thread's index.json.
    """
    if not thread_id:
        raise ValueError("thread_id must be a non-empty string")
    return quote(thread_id, safe="").replace(".", "%2E")


class FileCheckpointStore(CheckpointStore):
    """
    Checkpoints stored as JSON files.

    Directory structure:
        {base_path}/
            {encoded thread_id}/                # see encode_thread_id
                index.json                        # Checkpoint manifest
                cp_{sequence}_{type}_{node}.json  # Individual checkpoints
    """

    def __init__(self, base_path: Path | str):
        self.base_path = Path(base_path)
        self._locks: dict[str, asyncio.Lock] = {}

    def _thread_dir(self, thread_id: str) -> Path:
        thread_dir = self.base_path / encode_thread_id(thread_id)
        if thread_dir.resolve().parent != self.base_path.resolve():
            raise ValueError(f"Thread id {thread_id!r} escapes the store directory")
        return thread_dir

    def _lock(self, thread_id: str) -> asyncio.Lock:
        if thread_id not in self._locks:
            self._locks[thread_id] = asyncio.Lock()
        return self._locks[thread_id]

    async def save(self, thread_id: str, checkpoint: Checkpoint) -> None:
        """
        Atomically save checkpoint and update index.

        The checkpoint file is persisted before the index points at it, so a
        crash between the two writes leaves the previous checkpoint current.
        """
        thread_dir = self._thread_dir(thread_id)

        def _write():
            thread_dir.mkdir(parents=True, exist_ok=True)
            with atomic_write(thread_dir / f"{checkpoint.checkpoint_id}.json") as f:
                f.write(checkpoint.model_dump_json(indent=2))

            index_path = thread_dir / "index.json"
            if index_path.exists():
                index = CheckpointIndex.model_validate_json(index_path.read_text())
            else:
                index = CheckpointIndex(thread_id=thread_id)
            index.add_checkpoint(checkpoint)
            with atomic_write(index_path) as f:
                f.write(index.model_dump_json(indent=2))

        async with self._lock(thread_id):
            await asyncio.to_thread(_write)
        logger.debug(f"Saved checkpoint {checkpoint.checkpoint_id} for thread {thread_id}")

    async def load_index(self, thread_id: str) -> CheckpointIndex | None:
        index_path = self._thread_dir(thread_id) / "index.json"

        def _read() -> CheckpointIndex | None:
            if not index_path.exists():
                return None
            return CheckpointIndex.model_validate_json(index_path.read_text())

        return await asyncio.to_thread(_read)

    async def _read_checkpoint(self, thread_id: str, checkpoint_id: str) -> Checkpoint:
        path = self._thread_dir(thread_id) / f"{checkpoint_id}.json"

        def _read() -> Checkpoint:
            return Checkpoint.model_validate_json(path.read_text())

        try:
            return await asyncio.to_thread(_read)
        except FileNotFoundError:
            logger.warning(f"Checkpoint file not found: {path}")
            raise CheckpointNotFound(thread_id) from None

    async def load(self, thread_id: str) -> Checkpoint:
        index = await self.load_index(thread_id)
        if not index or not index.latest_checkpoint_id:
            raise CheckpointNotFound(thread_id)
        return await self._read_checkpoint(thread_id, index.latest_checkpoint_id)

    async def list(self, thread_id: str) -> list[Checkpoint]:
        index = await self.load_index(thread_id)
        if not index:
            return []
        return [await self._read_checkpoint(thread_id, s.checkpoint_id) for s in index.checkpoints]

    async def purge(self, thread_id: str) -> int:
        index = await self.load_index(thread_id)
        removed = index.total_checkpoints if index else 0
        thread_dir = self._thread_dir(thread_id)

        async with self._lock(thread_id):
            await asyncio.to_thread(shutil.rmtree, thread_dir, True)

        if removed:
            logger.info(f"Purged {removed} checkpoints for thread {thread_id}")
        return removed
