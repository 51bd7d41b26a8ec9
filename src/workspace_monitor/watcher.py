"""Workspace change detection by marker-file mtime polling.

Only the files that influence detection or compose state are watched, and
only directly inside each top-level project directory. Nothing below that
depth is ever visited, so node_modules, .git, dist and build trees inside
projects cost nothing.

Design:
1. **Mtime polling** (no inotify dependency): one stat() per marker file
   per project per poll.
2. **Daemon thread**: a stop Event doubles as the poll sleep so stop()
   returns within one join.
3. **Debounce per project**: a burst of edits schedules one rescan.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from .constants import DEFAULT_WATCH_POLL_INTERVAL, THREAD_JOIN_TIMEOUT, WATCHED_FILES
from .errors import WatchError
from .logging import get_logger
from .paths import is_ignored_dir

logger = get_logger(__name__)

ADDED = "added"
CHANGED = "changed"
REMOVED = "removed"

Snapshot = dict[str, float]
ChangeCallback = Callable[[str, str], None]


def snapshot_markers(
    workspace: str | Path,
    monitor_dir_name: str,
    watched_files: Iterable[str] = WATCHED_FILES,
) -> Snapshot:
    """Map path -> mtime for every watched file one level below workspace.

    Raises:
        OSError: If the workspace itself cannot be listed.
    """
    snapshot: Snapshot = {}
    watched = tuple(watched_files)
    for entry in Path(workspace).iterdir():
        if is_ignored_dir(entry.name, monitor_dir_name):
            continue
        try:
            if not entry.is_dir():
                continue
        except OSError:
            continue
        for name in watched:
            marker = entry / name
            try:
                snapshot[str(marker)] = marker.stat().st_mtime
            except OSError:
                # Missing or unreadable marker: absent from snapshot
                continue
    return snapshot


def diff_snapshots(old: Snapshot, new: Snapshot) -> list[tuple[str, str]]:
    """List (path, event) pairs between two snapshots, sorted by path."""
    changes: list[tuple[str, str]] = []
    for path in sorted(old.keys() | new.keys()):
        if path not in old:
            changes.append((path, ADDED))
        elif path not in new:
            changes.append((path, REMOVED))
        elif old[path] != new[path]:
            changes.append((path, CHANGED))
    return changes


class PollingWatcher:
    """Polls the workspace for marker file changes on a daemon thread."""

    def __init__(
        self,
        workspace: str | Path,
        on_change: ChangeCallback,
        *,
        monitor_dir_name: str,
        interval: float = DEFAULT_WATCH_POLL_INTERVAL,
    ) -> None:
        self.workspace = Path(workspace)
        self.on_change = on_change
        self.monitor_dir_name = monitor_dir_name
        self.interval = interval
        self._snapshot: Snapshot = {}
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Take the baseline snapshot and start polling.

        Raises:
            WatchError: If the workspace cannot be listed.
        """
        try:
            self._snapshot = snapshot_markers(self.workspace, self.monitor_dir_name)
        except OSError as e:
            raise WatchError(f"Cannot watch workspace {self.workspace}: {e}") from e

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            name="workspace-monitor-watcher",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Watching %s (%d marker files, poll every %.1fs)",
            self.workspace,
            len(self._snapshot),
            self.interval,
        )

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=THREAD_JOIN_TIMEOUT)
            self._thread = None

    def poll_once(self) -> list[tuple[str, str]]:
        """Compare the workspace with the last snapshot and report changes."""
        try:
            current = snapshot_markers(self.workspace, self.monitor_dir_name)
        except OSError as e:
            logger.error("Cannot list workspace %s: %s", self.workspace, e)
            return []

        changes = diff_snapshots(self._snapshot, current)
        self._snapshot = current
        for path, event in changes:
            try:
                self.on_change(path, event)
            except Exception:
                logger.exception("File change handler failed for %s", path)
        return changes

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.poll_once()


class Debouncer:
    """Per-key trailing-edge debounce on top of threading.Timer.

    Each trigger() replaces the pending timer for its key, so a burst of
    triggers results in one callback, ``delay`` seconds after the last one.
    """

    def __init__(self, delay: float, callback: Callable[..., Any]) -> None:
        self.delay = delay
        self.callback = callback
        self._lock = threading.Lock()
        self._timers: dict[str, threading.Timer] = {}

    def trigger(self, key: str, *args: Any) -> None:
        timer = threading.Timer(self.delay, self._fire, args=(key, *args))
        timer.daemon = True
        with self._lock:
            previous = self._timers.get(key)
            if previous is not None:
                previous.cancel()
            self._timers[key] = timer
        timer.start()

    def pending(self) -> list[str]:
        with self._lock:
            return sorted(self._timers)

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def _fire(self, key: str, *args: Any) -> None:
        with self._lock:
            if self._timers.get(key) is not threading.current_thread():
                return  # Superseded by a later trigger
            del self._timers[key]
        try:
            self.callback(key, *args)
        except Exception:
            logger.exception("Debounced callback failed for %s", key)
