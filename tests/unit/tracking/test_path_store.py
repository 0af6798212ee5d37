"""Unit tests for the durable path log and its file-backed store."""

import asyncio
import json

import pytest

from geotrack.tracking.tracking_core.errors import StorageFailure
from geotrack.tracking.tracking_core.path_store import PathStore
from geotrack.tracking.tracking_core.storage import JsonFileKeyValueStore
from geotrack.tracking.tracking_core.types import Position
from tests.infrastructure.mocks.position_mocks import MemoryKeyValueStore, make_position


def run_async(coro):
    """Run async coroutine synchronously for testing."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestJsonFileKeyValueStore:
    """One JSON file per key, atomic replace."""

    def test_missing_key_returns_none(self, tmp_path):
        store = JsonFileKeyValueStore(tmp_path / "store")
        assert run_async(store.get("tracked_path")) is None

    def test_set_then_get(self, tmp_path):
        async def _test():
            store = JsonFileKeyValueStore(tmp_path / "store")
            await store.set("tracked_path", b"[1, 2]")
            return await store.get("tracked_path")

        assert run_async(_test()) == b"[1, 2]"
        assert (tmp_path / "store" / "tracked_path.json").read_bytes() == b"[1, 2]"

    def test_set_leaves_no_temp_files(self, tmp_path):
        async def _test():
            store = JsonFileKeyValueStore(tmp_path)
            await store.set("k", b"one")
            await store.set("k", b"two")

        run_async(_test())
        assert sorted(p.name for p in tmp_path.iterdir()) == ["k.json"]

    def test_delete_missing_is_not_an_error(self, tmp_path):
        store = JsonFileKeyValueStore(tmp_path)
        run_async(store.delete("absent"))

    def test_unsafe_key_rejected(self, tmp_path):
        store = JsonFileKeyValueStore(tmp_path)
        with pytest.raises(ValueError):
            store.path_for("../escape")

    def test_write_failure_raises_storage_failure(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        store = JsonFileKeyValueStore(blocker / "store")
        with pytest.raises(StorageFailure):
            run_async(store.set("tracked_path", b"[]"))

    def test_unflushed_write_raises_storage_failure(self, tmp_path, monkeypatch):
        def broken_fsync(fd):
            raise OSError(5, "Input/output error")

        monkeypatch.setattr("geotrack.core.file_sync_utils.os.fsync", broken_fsync)
        monkeypatch.setattr("geotrack.core.file_sync_utils._msvcrt", None)
        store = JsonFileKeyValueStore(tmp_path)
        with pytest.raises(StorageFailure):
            run_async(store.set("tracked_path", b"[]"))
        assert list(tmp_path.iterdir()) == []


class TestPathStore:
    """append / load_all / clear semantics."""

    def test_load_all_empty_when_missing(self):
        store = PathStore(MemoryKeyValueStore())
        assert run_async(store.load_all()) == []

    def test_round_trip_preserves_order(self, tmp_path):
        points = [make_position(22.0 + i * 0.001, 73.0, timestamp=i) for i in range(5)]

        async def _write():
            store = PathStore(JsonFileKeyValueStore(tmp_path))
            for point in points:
                await store.append(point)

        async def _read():
            # A new store instance mimics a fresh process
            return await PathStore(JsonFileKeyValueStore(tmp_path)).load_all()

        run_async(_write())
        assert run_async(_read()) == points

    def test_serialized_key_names(self):
        backend = MemoryKeyValueStore()
        run_async(PathStore(backend).append(make_position(1.5, 2.5, timestamp=42, accuracy=None)))

        stored = json.loads(backend.data["tracked_path"])
        assert stored == [{"lat": 1.5, "lng": 2.5, "timestamp": 42, "accuracy": None}]

    def test_concurrent_appends_keep_call_order(self):
        backend = MemoryKeyValueStore()
        points = [make_position(float(i), 0.0, timestamp=i) for i in range(10)]

        async def _test():
            store = PathStore(backend)
            await asyncio.gather(*(store.append(p) for p in points))
            return await PathStore(backend).load_all()

        assert run_async(_test()) == points

    def test_malformed_payload_yields_empty_path(self):
        backend = MemoryKeyValueStore({"tracked_path": b"{not json"})
        assert run_async(PathStore(backend).load_all()) == []

    def test_non_list_payload_yields_empty_path(self):
        backend = MemoryKeyValueStore({"tracked_path": b'{"lat": 1}'})
        assert run_async(PathStore(backend).load_all()) == []

    def test_malformed_records_skipped(self):
        payload = json.dumps([
            {"lat": 1.0, "lng": 2.0, "timestamp": 1},
            {"lat": "north", "lng": 2.0, "timestamp": 2},
            {"lng": 2.0, "timestamp": 3},
            "garbage",
            {"lat": 3.0, "lng": 4.0, "timestamp": 4, "accuracy": 7.5},
        ]).encode()
        backend = MemoryKeyValueStore({"tracked_path": payload})

        path = run_async(PathStore(backend).load_all())
        assert path == [
            Position(1.0, 2.0, 1, None),
            Position(3.0, 4.0, 4, 7.5),
        ]

    def test_unreadable_backend_yields_empty_path(self):
        backend = MemoryKeyValueStore()
        backend.fail_reads = True
        assert run_async(PathStore(backend).load_all()) == []

    def test_unreadable_log_is_not_overwritten(self):
        stored = [make_position(float(i), 0.0, timestamp=i) for i in range(3)]
        backend = MemoryKeyValueStore({
            "tracked_path": json.dumps([p.to_dict() for p in stored]).encode(),
        })
        late = make_position(9.0, 0.0, timestamp=9)

        async def _test():
            store = PathStore(backend)
            backend.fail_reads = True
            assert await store.load_all() == []
            with pytest.raises(StorageFailure):
                await store.append(late)
            assert backend.set_calls == 0

            backend.fail_reads = False
            return await PathStore(backend).load_all()

        assert run_async(_test()) == stored

    def test_points_held_while_unreadable_are_written_after_recovery(self):
        stored = make_position(1.0, 0.0, timestamp=1)
        backend = MemoryKeyValueStore({"tracked_path": json.dumps([stored.to_dict()]).encode()})
        held = make_position(2.0, 0.0, timestamp=2)
        after = make_position(3.0, 0.0, timestamp=3)

        async def _test():
            store = PathStore(backend)
            backend.fail_reads = True
            with pytest.raises(StorageFailure):
                await store.append(held)

            backend.fail_reads = False
            await store.append(after)
            return await PathStore(backend).load_all()

        assert run_async(_test()) == [stored, held, after]


    def test_failed_append_raises_and_next_write_persists_point(self):
        backend = MemoryKeyValueStore()
        first = make_position(1.0, 1.0, timestamp=1)
        second = make_position(2.0, 2.0, timestamp=2)

        async def _test():
            store = PathStore(backend)
            backend.fail_writes = True
            with pytest.raises(StorageFailure):
                await store.append(first)
            # A fresh process would not see the failed point yet
            assert await PathStore(backend).load_all() == []

            backend.fail_writes = False
            await store.append(second)
            return await PathStore(backend).load_all()

        assert run_async(_test()) == [first, second]

    def test_append_after_load_extends_existing_log(self):
        existing = make_position(1.0, 1.0, timestamp=1)
        backend = MemoryKeyValueStore({
            "tracked_path": json.dumps([existing.to_dict()]).encode(),
        })
        new_point = make_position(2.0, 2.0, timestamp=2)

        async def _test():
            store = PathStore(backend)
            await store.append(new_point)
            return await store.load_all()

        assert run_async(_test()) == [existing, new_point]

    def test_clear_erases_log(self):
        backend = MemoryKeyValueStore()

        async def _test():
            store = PathStore(backend)
            await store.append(make_position(1.0, 1.0))
            await store.clear()
            return await store.load_all()

        assert run_async(_test()) == []
        assert "tracked_path" not in backend.data
