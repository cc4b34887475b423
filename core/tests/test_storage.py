"""Tests for the checkpoint stores: in-memory and file-backed."""

import json
from pathlib import Path

import pytest

from stepgraph.errors import CheckpointNotFound
from stepgraph.schemas import Checkpoint, CheckpointSummary, RunStatus
from stepgraph.storage import FileCheckpointStore, InMemoryCheckpointStore
from stepgraph.storage.checkpoint_store import encode_thread_id
from stepgraph.utils.io import atomic_write

# === HELPER FUNCTIONS ===


def create_checkpoint(
    thread_id: str = "t-1",
    sequence: int = 0,
    checkpoint_type: str = "transition",
    next_node: str = "agent",
    status: RunStatus = RunStatus.RUNNING,
    state: dict | None = None,
) -> Checkpoint:
    return Checkpoint.create(
        checkpoint_type=checkpoint_type,
        thread_id=thread_id,
        sequence=sequence,
        state=state if state is not None else {"count": sequence},
        next_node=next_node,
        status=status,
        execution_path=["agent"] * sequence,
    )


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        return InMemoryCheckpointStore()
    return FileCheckpointStore(tmp_path)


# === SHARED CONTRACT ===


class TestCheckpointStoreContract:
    @pytest.mark.asyncio
    async def test_load_returns_latest(self, store):
        await store.save("t-1", create_checkpoint(sequence=0))
        await store.save("t-1", create_checkpoint(sequence=1, next_node="tools"))

        latest = await store.load("t-1")

        assert latest.sequence == 1
        assert latest.next_node == "tools"

    @pytest.mark.asyncio
    async def test_load_missing_thread(self, store):
        with pytest.raises(CheckpointNotFound):
            await store.load("nope")

    @pytest.mark.asyncio
    async def test_list_oldest_first(self, store):
        for i in range(3):
            await store.save("t-1", create_checkpoint(sequence=i))

        history = await store.list("t-1")

        assert [c.sequence for c in history] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_threads_do_not_interfere(self, store):
        await store.save("t-1", create_checkpoint("t-1", next_node="a"))
        await store.save("t-2", create_checkpoint("t-2", next_node="b"))

        assert (await store.load("t-1")).next_node == "a"
        assert (await store.load("t-2")).next_node == "b"

    @pytest.mark.asyncio
    async def test_similar_thread_ids_stay_distinct(self, store):
        await store.save("user@x.com", create_checkpoint("user@x.com", next_node="a"))
        await store.save("user_x.com", create_checkpoint("user_x.com", next_node="b"))

        first = await store.load("user@x.com")
        second = await store.load("user_x.com")
        assert (first.thread_id, first.next_node) == ("user@x.com", "a")
        assert (second.thread_id, second.next_node) == ("user_x.com", "b")
        assert len(await store.list("user@x.com")) == 1

    @pytest.mark.asyncio
    async def test_purge(self, store):
        await store.save("t-1", create_checkpoint(sequence=0))
        await store.save("t-1", create_checkpoint(sequence=1))

        removed = await store.purge("t-1")

        assert removed == 2
        assert await store.exists("t-1") is False
        assert await store.list("t-1") == []

    @pytest.mark.asyncio
    async def test_stored_values_are_isolated(self, store):
        checkpoint = create_checkpoint(state={"items": [1]})
        await store.save("t-1", checkpoint)
        checkpoint.state["items"].append(2)

        loaded = await store.load("t-1")
        loaded.state["items"].append(3)

        assert (await store.load("t-1")).state == {"items": [1]}


# === FILE BACKEND ===


class TestFileCheckpointStore:
    @pytest.mark.asyncio
    async def test_layout(self, tmp_path: Path):
        store = FileCheckpointStore(tmp_path)
        checkpoint = create_checkpoint(sequence=0)
        await store.save("t-1", checkpoint)

        thread_dir = tmp_path / "t-1"
        assert (thread_dir / f"{checkpoint.checkpoint_id}.json").exists()
        index = json.loads((thread_dir / "index.json").read_text())
        assert index["latest_checkpoint_id"] == checkpoint.checkpoint_id
        assert index["total_checkpoints"] == 1

    @pytest.mark.asyncio
    async def test_unsafe_thread_id_is_encoded(self, tmp_path: Path):
        store = FileCheckpointStore(tmp_path)
        await store.save("../escape", create_checkpoint("../escape"))

        assert [p.name for p in tmp_path.iterdir()] == ["%2E%2E%2Fescape"]
        assert (await store.load("../escape")).thread_id == "../escape"
        index = json.loads((tmp_path / "%2E%2E%2Fescape" / "index.json").read_text())
        assert index["thread_id"] == "../escape"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("thread_id", [".", ".."])
    async def test_dot_thread_ids_stay_inside_store(self, tmp_path: Path, thread_id: str):
        root = tmp_path / "store"
        bystander = tmp_path / "unrelated.txt"
        bystander.write_text("keep me")
        store = FileCheckpointStore(root)
        await store.save("t-1", create_checkpoint("t-1"))
        await store.save(thread_id, create_checkpoint(thread_id))

        assert sorted(p.name for p in tmp_path.iterdir()) == ["store", "unrelated.txt"]
        assert await store.purge(thread_id) == 1

        assert bystander.read_text() == "keep me"
        assert (await store.load("t-1")).thread_id == "t-1"
        with pytest.raises(CheckpointNotFound):
            await store.load(thread_id)

    def test_encoding_is_one_to_one(self):
        assert encode_thread_id("user@x.com") != encode_thread_id("user_x.com")
        assert encode_thread_id("a/b") != encode_thread_id("a_b")
        assert encode_thread_id(".") == "%2E"
        with pytest.raises(ValueError):
            encode_thread_id("")

    @pytest.mark.asyncio
    async def test_survives_new_instance(self, tmp_path: Path):
        await FileCheckpointStore(tmp_path).save(
            "t-1", create_checkpoint(status=RunStatus.INTERRUPTED)
        )

        loaded = await FileCheckpointStore(tmp_path).load("t-1")

        assert loaded.status == RunStatus.INTERRUPTED


class TestCheckpointSchema:
    def test_checkpoint_id_format(self):
        checkpoint = create_checkpoint(sequence=12, checkpoint_type="substep", next_node="review")
        assert checkpoint.checkpoint_id == "cp_00012_substep_review"

    def test_summary(self):
        checkpoint = create_checkpoint(sequence=2, status=RunStatus.FAILED)
        summary = CheckpointSummary.from_checkpoint(checkpoint)
        assert summary.checkpoint_id == checkpoint.checkpoint_id
        assert summary.status == RunStatus.FAILED

    def test_run_status_terminal(self):
        assert RunStatus.COMPLETED.is_terminal
        assert not RunStatus.INTERRUPTED.is_terminal


class TestAtomicWrite:
    def test_replaces_file(self, tmp_path: Path):
        target = tmp_path / "data.json"
        target.write_text("old")

        with atomic_write(target) as f:
            f.write("new")

        assert target.read_text() == "new"
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]

    def test_error_keeps_original(self, tmp_path: Path):
        target = tmp_path / "data.json"
        target.write_text("old")

        with pytest.raises(RuntimeError):
            with atomic_write(target) as f:
                f.write("partial")
                raise RuntimeError("crash")

        assert target.read_text() == "old"
        assert [p.name for p in tmp_path.iterdir()] == ["data.json"]
