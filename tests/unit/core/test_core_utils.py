"""Unit tests for the logging and asyncio helpers."""

import asyncio
import logging

import pytest

from geotrack.core.asyncio_utils import cancel_tasks, create_logged_task, drain_tasks
from geotrack.core.file_sync_utils import atomic_write_bytes
from geotrack.core.logging_config import configure_logging
from geotrack.core.logging_utils import StructuredLogger, ensure_structured_logger, get_module_logger


class TestStructuredLogger:

    def test_namespace_and_component(self):
        logger = get_module_logger("tracking.controller")
        assert logger.name == "geotrack.tracking.controller"
        assert logger.component == "controller"

    def test_existing_namespace_kept(self):
        assert get_module_logger("geotrack.core").name == "geotrack.core"

    def test_prefixes_component(self, caplog):
        logger = get_module_logger("Widget")
        with caplog.at_level(logging.INFO, logger="geotrack.Widget"):
            logger.info("value is %d", 3)
        assert "[Widget] value is 3" in caplog.text

    def test_bad_format_args_do_not_raise(self, caplog):
        logger = get_module_logger("Widget")
        with caplog.at_level(logging.INFO, logger="geotrack.Widget"):
            logger.info("value is %d", "three")
        assert "args=three" in caplog.text

    def test_bind_appends_context(self, caplog):
        logger = get_module_logger("Widget").bind(port="/dev/ttyUSB0")
        with caplog.at_level(logging.INFO, logger="geotrack.Widget"):
            logger.info("connected")
        assert "[Widget] connected (port=/dev/ttyUSB0)" in caplog.text
        assert logger.context == {"port": "/dev/ttyUSB0"}

    def test_ensure_wraps_plain_logger(self):
        wrapped = ensure_structured_logger(logging.getLogger("plain"))
        assert isinstance(wrapped, StructuredLogger)
        assert ensure_structured_logger(wrapped) is wrapped
        assert ensure_structured_logger(None, fallback_name="Fallback").name == "geotrack.Fallback"


class TestConfigureLogging:

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)
        logging.captureWarnings(False)

    def test_file_handler_created(self, tmp_path):
        log_file = tmp_path / "logs" / "geotrack.log"
        configure_logging("debug", force=True, console=False, log_file=log_file)

        get_module_logger("Test").info("hello file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logging.getLogger().level == logging.DEBUG
        assert "[Test] hello file" in log_file.read_text(encoding="utf-8")
        assert logging.getLogger("aiohttp.access").level == logging.WARNING

    def test_separate_file_level(self, tmp_path):
        log_file = tmp_path / "geotrack.log"
        configure_logging("warning", force=True, console=True, log_file=log_file, file_level="debug")

        get_module_logger("Test").debug("fix detail")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logging.getLogger().level == logging.DEBUG
        console = [h for h in logging.getLogger().handlers if not isinstance(h, logging.FileHandler)]
        assert console[0].level == logging.WARNING
        assert "fix detail" in log_file.read_text(encoding="utf-8")

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError):
            configure_logging("chatty", force=True)


class TestAsyncioUtils:

    @pytest.mark.asyncio
    async def test_logged_task_tracks_pending(self):
        pending = set()

        async def work():
            await asyncio.sleep(0)
            return 42

        task = create_logged_task(work(), context="work", pending=pending)
        assert task in pending
        assert task.get_name() == "work"
        assert await task == 42
        await asyncio.sleep(0)
        assert pending == set()

    @pytest.mark.asyncio
    async def test_logged_task_logs_failure(self, caplog):
        async def boom():
            raise RuntimeError("kaput")

        with caplog.at_level(logging.ERROR):
            task = create_logged_task(boom(), logger=get_module_logger("Tasks"), context="boom")
            await asyncio.wait([task])
            await asyncio.sleep(0)

        assert "Unhandled exception in boom" in caplog.text

    @pytest.mark.asyncio
    async def test_cancel_tasks(self):
        task = asyncio.create_task(asyncio.sleep(10))
        done = asyncio.create_task(asyncio.sleep(0))
        await done

        await cancel_tasks({task, done})

        assert task.cancelled()
        assert not done.cancelled()

    @pytest.mark.asyncio
    async def test_drain_waits_for_tasks_added_while_waiting(self):
        pending = set()
        finished = []

        async def second():
            await asyncio.sleep(0.01)
            finished.append("second")

        async def first():
            await asyncio.sleep(0)
            create_logged_task(second(), pending=pending)
            finished.append("first")

        create_logged_task(first(), pending=pending)
        await drain_tasks(pending)

        assert finished == ["first", "second"]
        assert pending == set()


class TestAtomicWrite:

    def test_creates_parent_and_writes(self, tmp_path):
        target = tmp_path / "nested" / "state.json"

        atomic_write_bytes(target, b'{"a": 1}')

        assert target.read_bytes() == b'{"a": 1}'

    def test_replaces_existing_without_leftovers(self, tmp_path):
        target = tmp_path / "state.json"
        target.write_bytes(b"old")

        atomic_write_bytes(target, b"new", sync_directory=False)

        assert target.read_bytes() == b"new"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]

    def test_failed_write_keeps_target(self, tmp_path, monkeypatch):
        target = tmp_path / "state.json"
        target.write_bytes(b"old")

        def refuse(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("geotrack.core.file_sync_utils.os.replace", refuse)
        with pytest.raises(OSError):
            atomic_write_bytes(target, b"new")

        assert target.read_bytes() == b"old"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]

    def test_fsync_failure_raises_and_keeps_target(self, tmp_path, monkeypatch):
        target = tmp_path / "state.json"
        target.write_bytes(b"old")

        def broken_fsync(fd):
            raise OSError(5, "Input/output error")

        monkeypatch.setattr("geotrack.core.file_sync_utils.os.fsync", broken_fsync)
        monkeypatch.setattr("geotrack.core.file_sync_utils._msvcrt", None)
        with pytest.raises(OSError, match="flush"):
            atomic_write_bytes(target, b"new")

        assert target.read_bytes() == b"old"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]
