"""Directory watcher that pushes script files as they are edited."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from .engine import SyncDirection, SyncEngine, SyncRequest, SyncResult
from .naming import FileNameToken, parse_file_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchSettings:
    """Timing knobs for the watcher."""

    stability_window: float = 0.5
    """Seconds a file must stay unchanged before it is synced"""

    poll_interval: float = 0.1
    """Seconds between stability checks"""

    cooldown: float = 1.0
    """Seconds a path stays blocked after its sync finished"""

    max_workers: int = 4
    """Syncs of different files that may run at the same time"""


def _is_hidden(path: str, root: Path) -> bool:
    """Return True if any component below root starts with a dot."""
    try:
        parts = Path(path).relative_to(root).parts
    except ValueError:
        parts = Path(path).parts
    return any(part.startswith(".") for part in parts)


def _stat_signature(path: str) -> tuple[int, int] | None:
    try:
        stat = os.stat(path)
    except OSError:
        return None
    return (stat.st_size, stat.st_mtime_ns)


class _WriteStabilizer:
    """Holds changed paths back until they stop changing."""

    def __init__(
        self,
        stability_window: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = stability_window
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: dict[str, tuple[tuple[int, int] | None, float]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def track(self, path: str) -> None:
        """Register a change and restart the quiet period for path."""
        with self._lock:
            self._pending[path] = (_stat_signature(path), self._clock())

    def collect_settled(self) -> list[str]:
        """Return and forget paths that stayed unchanged for the window."""
        now = self._clock()
        settled: list[str] = []
        with self._lock:
            for path, (signature, since) in list(self._pending.items()):
                current = _stat_signature(path)
                if current is None:
                    # Deleted or renamed away before it settled
                    del self._pending[path]
                elif current != signature:
                    self._pending[path] = (current, now)
                elif now - since >= self._window:
                    del self._pending[path]
                    settled.append(path)
        return settled

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()


class _ScriptEventHandler(FileSystemEventHandler):
    """Forwards file create/modify events below root, skipping hidden paths."""

    def __init__(self, root: Path, on_change: Callable[[str], None]) -> None:
        super().__init__()
        self._root = root
        self._on_change = on_change

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle(event, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors that save via temp file + rename only produce a move
        self._handle(event, event.dest_path)

    def _handle(self, event: FileSystemEvent, path: str | bytes) -> None:
        if event.is_directory:
            return
        path = os.path.abspath(os.fsdecode(path))
        if _is_hidden(path, self._root):
            return
        self._on_change(path)


class ScriptWatcher:
    """Watches a directory and pushes script files after they change.

    Changes are only acted on once a file has been quiet for the stability
    window. Each path has at most one sync running or pending: events for a
    path that is in flight, or that finished less than ``cooldown`` seconds
    ago, are dropped. Watch-triggered syncs always push.

    Every accepted sync reports exactly one SyncResult through ``on_sync``.
    Problems with the watching itself go to ``on_error`` and the log.

    Examples:
        >>> watcher = ScriptWatcher(engine, "scripts", on_sync=print)
        >>> watcher.start()
        >>> ...
        >>> watcher.stop()
    """

    def __init__(
        self,
        engine: SyncEngine,
        directory: str | Path,
        script_types: Iterable[str] | None = None,
        auto_sync: bool = True,
        on_sync: Callable[[SyncResult], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        instance: str | None = None,
        settings: WatchSettings | None = None,
    ) -> None:
        """Initialize the watcher. Nothing is observed until start().

        Args:
            engine: Sync engine used to push changed files
            directory: Directory to watch recursively
            script_types: Only react to these type identifiers (default: all)
            auto_sync: Push changed files; when False changes are only logged
            on_sync: Called with the result of every sync
            on_error: Called with errors from the watching machinery
            instance: Name of the instance, recorded on each result
            settings: Timing settings (defaults to WatchSettings())
        """
        self.engine = engine
        self.directory = Path(directory).resolve()
        self.script_types = set(script_types) if script_types is not None else None
        self.auto_sync = auto_sync
        self.instance = instance
        self.settings = settings or WatchSettings()
        self._on_sync = on_sync
        self._on_error = on_error

        self._lock = threading.Lock()
        self._in_flight: set[str] = set()
        self._timers: set[threading.Timer] = set()
        self._closed = False
        self._stopping = threading.Event()
        self._stabilizer = _WriteStabilizer(self.settings.stability_window)
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.max_workers,
            thread_name_prefix="pysnsync-sync",
        )
        self._observer: BaseObserver | None = None
        self._poller: threading.Thread | None = None
        self._observer_failed = False

    def __enter__(self) -> ScriptWatcher:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    @property
    def in_flight(self) -> set[str]:
        """Absolute paths currently syncing or cooling down."""
        with self._lock:
            return set(self._in_flight)

    @property
    def is_running(self) -> bool:
        return self._observer is not None and not self._closed

    def start(self) -> None:
        """Begin watching the directory recursively."""
        if self._closed:
            raise RuntimeError("Watcher has been stopped and cannot be restarted")
        if self._observer is not None:
            return

        self.engine.fs.make_dirs(self.directory)
        handler = _ScriptEventHandler(self.directory, self._stabilizer.track)
        observer = Observer()
        observer.schedule(handler, str(self.directory), recursive=True)
        observer.start()
        self._observer = observer

        self._poller = threading.Thread(
            target=self._poll_loop, name="pysnsync-stabilizer", daemon=True
        )
        self._poller.start()
        logger.info("Watching %s for script changes", self.directory)

    def stop(self) -> None:
        """Stop watching, wait for running syncs and release resources."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._stopping.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
        if self._poller is not None:
            self._poller.join(timeout=5)
        self._executor.shutdown(wait=True)

        with self._lock:
            for timer in self._timers:
                timer.cancel()
            self._timers.clear()
            self._in_flight.clear()
        self._stabilizer.clear()

        if self._observer is not None:
            logger.info("Stopped watching %s", self.directory)

    def dispatch(self, path: str | Path) -> bool:
        """Handle a settled change to path.

        Args:
            path: File that changed

        Returns:
            True if the change was accepted, False if it was dropped
            (unrecognised name, filtered type, or already in flight)
        """
        path = os.path.abspath(os.fspath(path))
        token = parse_file_name(os.path.basename(path))
        if not token.is_valid:
            return False
        if (
            self.script_types is not None
            and token.script_type not in self.script_types
        ):
            return False

        with self._lock:
            if self._closed:
                return False
            if path in self._in_flight:
                logger.debug("Skipping %s, sync already in flight", path)
                return False
            self._in_flight.add(path)
            if self.auto_sync:
                self._executor.submit(self._run_sync, path, token)

        if not self.auto_sync:
            logger.info("Detected change in %s (auto sync disabled)", path)
            self._schedule_release(path)
        return True

    def _run_sync(self, path: str, token: FileNameToken) -> None:
        request = SyncRequest(
            script_name=token.script_name,
            script_type=token.script_type,
            file_path=Path(path),
            direction=SyncDirection.PUSH,
            instance=self.instance,
        )
        try:
            try:
                result = self.engine.sync(request)
            except Exception as e:
                logger.warning("Unexpected error syncing %s: %s", path, e)
                result = SyncResult.failure(request, e, SyncDirection.PUSH)
            self._notify(result)
        finally:
            self._schedule_release(path)

    def _notify(self, result: SyncResult) -> None:
        if self._on_sync is None:
            return
        try:
            self._on_sync(result)
        except Exception:
            logger.exception("on_sync callback failed for %s", result.file_path)

    def _schedule_release(self, path: str) -> None:
        """Unblock path once the cooldown has passed."""
        timer: threading.Timer

        def release() -> None:
            with self._lock:
                self._in_flight.discard(path)
                self._timers.discard(timer)

        timer = threading.Timer(self.settings.cooldown, release)
        timer.daemon = True
        with self._lock:
            if self._closed:
                self._in_flight.discard(path)
                return
            self._timers.add(timer)
        timer.start()

    def _poll_loop(self) -> None:
        while not self._stopping.wait(self.settings.poll_interval):
            try:
                self._check_observer()
                for path in self._stabilizer.collect_settled():
                    self.dispatch(path)
            except Exception as e:
                self._report_error(e)

    def _check_observer(self) -> None:
        observer = self._observer
        if observer is None or self._stopping.is_set():
            return
        if self._observer_failed or observer.is_alive():
            return
        self._observer_failed = True
        self._report_error(
            RuntimeError(f"File observer for {self.directory} stopped unexpectedly")
        )

    def _report_error(self, error: Exception) -> None:
        logger.error("Watcher error: %s", error)
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception("on_error callback failed")


def watch_scripts(
    engine: SyncEngine,
    directory: str | Path,
    script_types: Iterable[str] | None = None,
    auto_sync: bool = True,
    on_sync: Callable[[SyncResult], None] | None = None,
    on_error: Callable[[Exception], None] | None = None,
    instance: str | None = None,
    settings: WatchSettings | None = None,
) -> ScriptWatcher:
    """Create and start a ScriptWatcher. The caller must stop() it."""
    watcher = ScriptWatcher(
        engine,
        directory,
        script_types=script_types,
        auto_sync=auto_sync,
        on_sync=on_sync,
        on_error=on_error,
        instance=instance,
        settings=settings,
    )
    watcher.start()
    return watcher
