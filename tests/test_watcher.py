"""Tests for the directory watcher."""

import os
import threading
import time
from pathlib import Path
from unittest.mock import Mock

import pytest
from watchdog.events import DirModifiedEvent, FileModifiedEvent, FileMovedEvent

from pysnsync.sync import (
    LocalFileSystem,
    ScriptWatcher,
    SyncDirection,
    SyncEngine,
    SyncResult,
    WatchSettings,
    watch_scripts,
)
from pysnsync.sync.watcher import _is_hidden, _ScriptEventHandler, _WriteStabilizer


def wait_until(predicate, timeout=5.0):
    """Poll predicate until it is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _result_for(request, success=True):
    return SyncResult(
        script_name=request.script_name,
        script_type=request.script_type,
        file_path=request.file_path,
        direction=request.direction,
        success=success,
        sys_id="abc123",
        message="ok",
    )


@pytest.fixture
def engine():
    """Create a mock engine whose syncs always succeed."""
    engine = Mock(spec=SyncEngine)
    engine.fs = LocalFileSystem()
    engine.sync.side_effect = _result_for
    return engine


@pytest.fixture
def script_file(tmp_path):
    """Create a validly named script file."""
    path = tmp_path / "Util.sys_script_include.js"
    path.write_text("code();")
    return path


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestDispatch:
    """Tests for ScriptWatcher.dispatch."""

    def test_duplicate_events_sync_once(self, engine, tmp_path, script_file):
        """Test that a second event for an in-flight path is dropped."""
        on_sync = Mock()
        watcher = ScriptWatcher(
            engine, tmp_path, on_sync=on_sync, settings=WatchSettings(cooldown=60)
        )

        assert watcher.dispatch(script_file) is True
        assert watcher.dispatch(script_file) is False
        watcher.stop()

        assert engine.sync.call_count == 1
        on_sync.assert_called_once()
        result = on_sync.call_args[0][0]
        assert result.success is True
        assert result.script_name == "Util"

    def test_watch_sync_always_pushes(self, engine, tmp_path, script_file):
        """Test that watch-triggered requests are pushes."""
        watcher = ScriptWatcher(engine, tmp_path, instance="dev")

        watcher.dispatch(script_file)
        watcher.stop()

        request = engine.sync.call_args[0][0]
        assert request.direction is SyncDirection.PUSH
        assert request.file_path == Path(os.path.abspath(script_file))
        assert request.instance == "dev"

    def test_invalid_name_is_ignored(self, engine, tmp_path):
        """Test that files outside the naming convention never sync."""
        on_sync = Mock()
        watcher = ScriptWatcher(engine, tmp_path, on_sync=on_sync)

        assert watcher.dispatch(tmp_path / "notes.txt") is False
        assert watcher.dispatch(tmp_path / "Util.unknown_type.js") is False
        watcher.stop()

        engine.sync.assert_not_called()
        on_sync.assert_not_called()

    def test_type_filter(self, engine, tmp_path):
        """Test that only the selected types are synced."""
        watcher = ScriptWatcher(engine, tmp_path, script_types=["sys_script"])

        assert watcher.dispatch(tmp_path / "Util.sys_script_include.js") is False
        assert watcher.dispatch(tmp_path / "Rule.sys_script.js") is True
        watcher.stop()

        assert engine.sync.call_count == 1

    def test_different_paths_sync_independently(self, engine, tmp_path):
        """Test that the in-flight guard is per path."""
        watcher = ScriptWatcher(engine, tmp_path, settings=WatchSettings(cooldown=60))

        assert watcher.dispatch(tmp_path / "A.sys_script.js") is True
        assert watcher.dispatch(tmp_path / "B.sys_script.js") is True
        watcher.stop()

        assert engine.sync.call_count == 2

    def test_path_released_after_cooldown(self, engine, tmp_path, script_file):
        """Test that a path can sync again once the cooldown passes."""
        synced = threading.Event()
        watcher = ScriptWatcher(
            engine,
            tmp_path,
            on_sync=lambda result: synced.set(),
            settings=WatchSettings(cooldown=0.05),
        )
        path = os.path.abspath(script_file)

        try:
            assert watcher.dispatch(script_file) is True
            assert synced.wait(5)
            assert wait_until(lambda: path not in watcher.in_flight)
            assert watcher.dispatch(script_file) is True
        finally:
            watcher.stop()

        assert engine.sync.call_count == 2

    def test_path_blocked_during_cooldown(self, engine, tmp_path, script_file):
        """Test that a finished sync keeps the path blocked for the cooldown."""
        synced = threading.Event()
        watcher = ScriptWatcher(
            engine,
            tmp_path,
            on_sync=lambda result: synced.set(),
            settings=WatchSettings(cooldown=60),
        )

        try:
            watcher.dispatch(script_file)
            assert synced.wait(5)
            assert os.path.abspath(script_file) in watcher.in_flight
            assert watcher.dispatch(script_file) is False
        finally:
            watcher.stop()

    def test_engine_exception_reports_failure(self, engine, tmp_path, script_file):
        """Test that an exception from the engine becomes a failed result."""
        engine.sync.side_effect = RuntimeError("boom")
        on_sync = Mock()
        watcher = ScriptWatcher(engine, tmp_path, on_sync=on_sync)

        watcher.dispatch(script_file)
        watcher.stop()

        on_sync.assert_called_once()
        result = on_sync.call_args[0][0]
        assert result.success is False
        assert result.error == "boom"
        assert result.direction is SyncDirection.PUSH

    def test_failing_callback_does_not_block_path(
        self, engine, tmp_path, script_file
    ):
        """Test that an on_sync exception still releases the path."""
        calls = []

        def on_sync(result):
            calls.append(result)
            raise ValueError("callback broke")

        watcher = ScriptWatcher(
            engine, tmp_path, on_sync=on_sync, settings=WatchSettings(cooldown=0.05)
        )
        path = os.path.abspath(script_file)

        try:
            watcher.dispatch(script_file)
            assert wait_until(lambda: len(calls) == 1)
            assert wait_until(lambda: path not in watcher.in_flight)
            assert watcher.dispatch(script_file) is True
            assert wait_until(lambda: len(calls) == 2)
        finally:
            watcher.stop()

    def test_auto_sync_disabled(self, engine, tmp_path, script_file):
        """Test that changes are only noted when auto sync is off."""
        on_sync = Mock()
        watcher = ScriptWatcher(
            engine,
            tmp_path,
            auto_sync=False,
            on_sync=on_sync,
            settings=WatchSettings(cooldown=60),
        )

        try:
            assert watcher.dispatch(script_file) is True
            assert watcher.dispatch(script_file) is False
        finally:
            watcher.stop()

        engine.sync.assert_not_called()
        on_sync.assert_not_called()


class TestStop:
    """Tests for stopping the watcher."""

    def test_stop_clears_in_flight(self, engine, tmp_path, script_file):
        """Test that stop releases every path."""
        synced = threading.Event()
        watcher = ScriptWatcher(
            engine,
            tmp_path,
            on_sync=lambda result: synced.set(),
            settings=WatchSettings(cooldown=60),
        )

        watcher.dispatch(script_file)
        assert synced.wait(5)
        watcher.stop()

        assert watcher.in_flight == set()

    def test_dispatch_after_stop_is_dropped(self, engine, tmp_path, script_file):
        """Test that no syncs start once stopped."""
        watcher = ScriptWatcher(engine, tmp_path)
        watcher.stop()

        assert watcher.dispatch(script_file) is False
        engine.sync.assert_not_called()

    def test_stop_is_idempotent(self, engine, tmp_path):
        """Test that stopping twice is harmless."""
        watcher = ScriptWatcher(engine, tmp_path)
        watcher.stop()
        watcher.stop()

        assert watcher.is_running is False

    def test_cannot_restart(self, engine, tmp_path):
        """Test that a stopped watcher refuses to start again."""
        watcher = ScriptWatcher(engine, tmp_path)
        watcher.stop()

        with pytest.raises(RuntimeError):
            watcher.start()


class TestObserverHealth:
    """Tests for reporting a dead observer."""

    def test_dead_observer_reported_once(self, engine, tmp_path):
        """Test that a stopped observer thread goes to on_error once."""
        on_error = Mock()
        watcher = ScriptWatcher(engine, tmp_path, on_error=on_error)
        watcher._observer = Mock()
        watcher._observer.is_alive.return_value = False

        watcher._check_observer()
        watcher._check_observer()
        watcher.stop()

        on_error.assert_called_once()
        assert isinstance(on_error.call_args[0][0], RuntimeError)

    def test_failing_error_callback_is_contained(self, engine, tmp_path):
        """Test that a broken on_error does not propagate."""
        watcher = ScriptWatcher(
            engine, tmp_path, on_error=Mock(side_effect=ValueError("nope"))
        )

        watcher._report_error(RuntimeError("observer died"))
        watcher.stop()


class TestWriteStabilizer:
    """Tests for the write stabilization buffer."""

    def test_path_settles_after_window(self, script_file):
        """Test that an unchanged file is released after the window."""
        clock = FakeClock()
        stabilizer = _WriteStabilizer(0.5, clock=clock)
        path = str(script_file)

        stabilizer.track(path)
        assert stabilizer.collect_settled() == []

        clock.now = 0.6
        assert stabilizer.collect_settled() == [path]
        assert len(stabilizer) == 0

    def test_change_restarts_window(self, script_file):
        """Test that a file still being written is held back."""
        clock = FakeClock()
        stabilizer = _WriteStabilizer(0.5, clock=clock)
        path = str(script_file)

        stabilizer.track(path)
        clock.now = 0.4
        script_file.write_text("code(); more();")
        assert stabilizer.collect_settled() == []

        clock.now = 0.8
        assert stabilizer.collect_settled() == []

        clock.now = 1.0
        assert stabilizer.collect_settled() == [path]

    def test_new_event_restarts_window(self, script_file):
        """Test that tracking again pushes the deadline out."""
        clock = FakeClock()
        stabilizer = _WriteStabilizer(0.5, clock=clock)
        path = str(script_file)

        stabilizer.track(path)
        clock.now = 0.4
        stabilizer.track(path)
        clock.now = 0.6
        assert stabilizer.collect_settled() == []
        assert len(stabilizer) == 1

    def test_deleted_file_is_dropped(self, script_file):
        """Test that files removed before settling are forgotten."""
        clock = FakeClock()
        stabilizer = _WriteStabilizer(0.5, clock=clock)

        stabilizer.track(str(script_file))
        script_file.unlink()
        clock.now = 1.0

        assert stabilizer.collect_settled() == []
        assert len(stabilizer) == 0


class TestEventHandler:
    """Tests for filtering raw filesystem events."""

    def test_file_events_are_forwarded(self, tmp_path):
        """Test that modified files reach the callback."""
        changes = []
        handler = _ScriptEventHandler(tmp_path, changes.append)
        path = str(tmp_path / "Util.sys_script.js")

        handler.dispatch(FileModifiedEvent(path))

        assert changes == [path]

    def test_move_uses_destination(self, tmp_path):
        """Test that rename-on-save reports the final name."""
        changes = []
        handler = _ScriptEventHandler(tmp_path, changes.append)
        dest = str(tmp_path / "Util.sys_script.js")

        handler.dispatch(FileMovedEvent(str(tmp_path / "Util.tmp"), dest))

        assert changes == [dest]

    def test_hidden_paths_are_skipped(self, tmp_path):
        """Test that dot files and dot directories are ignored."""
        changes = []
        handler = _ScriptEventHandler(tmp_path, changes.append)

        handler.dispatch(FileModifiedEvent(str(tmp_path / ".git" / "index")))
        handler.dispatch(FileModifiedEvent(str(tmp_path / ".Util.sys_script.js")))

        assert changes == []

    def test_directory_events_are_skipped(self, tmp_path):
        """Test that directory events are ignored."""
        changes = []
        handler = _ScriptEventHandler(tmp_path, changes.append)

        handler.dispatch(DirModifiedEvent(str(tmp_path / "sub")))

        assert changes == []


class TestIsHidden:
    """Tests for _is_hidden."""

    @pytest.mark.parametrize(
        "relative, expected",
        [
            ("Util.sys_script.js", False),
            ("sub/Util.sys_script.js", False),
            (".Util.sys_script.js", True),
            (".git/HEAD", True),
            ("sub/.cache/Util.sys_script.js", True),
        ],
    )
    def test_is_hidden(self, tmp_path, relative, expected):
        """Test hidden detection relative to the watched root."""
        assert _is_hidden(str(tmp_path / relative), tmp_path) is expected

    def test_dot_in_root_is_ignored(self, tmp_path):
        """Test that a hidden watched directory does not hide its files."""
        root = tmp_path / ".scripts"
        assert _is_hidden(str(root / "Util.sys_script.js"), root) is False


class TestWatchScripts:
    """End-to-end tests with a real filesystem observer."""

    def test_edit_is_pushed(self, engine, tmp_path):
        """Test that writing a script file triggers one push."""
        results = []
        synced = threading.Event()

        def on_sync(result):
            results.append(result)
            synced.set()

        watcher = watch_scripts(
            engine,
            tmp_path,
            on_sync=on_sync,
            settings=WatchSettings(stability_window=0.2, poll_interval=0.05),
        )
        try:
            assert watcher.is_running
            (tmp_path / "notes.txt").write_text("ignored")
            (tmp_path / "Util.sys_script_include.js").write_text("code();")

            assert synced.wait(10)
        finally:
            watcher.stop()

        assert len(results) == 1
        assert results[0].script_name == "Util"
        assert results[0].direction is SyncDirection.PUSH

    def test_missing_directory_is_created(self, engine, tmp_path):
        """Test that starting on a missing directory creates it."""
        directory = tmp_path / "scripts"

        with ScriptWatcher(engine, directory) as watcher:
            assert watcher.is_running
            assert directory.is_dir()
