"""Workspace monitor: scan loop, file watch and container convergence.

For every top-level workspace directory a scan runs
detect -> store -> compose file -> container, strictly in that order.
Scans are triggered three ways: once at start(), periodically, and
(debounced) when a marker file of one project changes. Scans of the
same project are serialized by a per-project lock; different projects
may scan concurrently.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .config import MonitorConfig, get_container_name
from .constants import COMPOSE_FILENAME, DEFAULT_LOG_LINES, THREAD_JOIN_TIMEOUT, WATCHED_FILES
from .detector import ProjectInfo, detect_project
from .docker import DockerManager
from .errors import MonitorError
from .events import LOG, PROJECT_ADDED, PROJECT_SKIPPED, PROJECT_UPDATED, SCAN_COMPLETE, EventBus
from .generator import ComposeGenerator
from .logging import get_logger
from .paths import is_ignored_dir
from .watcher import Debouncer, PollingWatcher

logger = get_logger(__name__)

Detector = Callable[[str | Path], ProjectInfo | None]

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class WorkspaceMonitor:
    """Keeps every detected workspace project's container in line with its files."""

    def __init__(
        self,
        config: MonitorConfig,
        *,
        docker: DockerManager | None = None,
        detector: Detector = detect_project,
        generator: ComposeGenerator | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.config = config
        self.workspace_path = Path(config.workspace_path)
        self.docker = docker or DockerManager(config.compose_command)
        self.detector = detector
        self.generator = generator or ComposeGenerator(
            config.domain,
            config.network,
            workspace_path=config.workspace_path,
            host_workspace_path=config.host_workspace_path,
        )
        self.events = events or EventBus()

        self._projects: dict[str, ProjectInfo] = {}
        self._registry_lock = threading.Lock()
        self._project_locks: dict[str, threading.Lock] = {}

        self._watcher: PollingWatcher | None = None
        self._debouncer = Debouncer(config.debounce_seconds, self._rescan_from_watch)
        self._stop_event = threading.Event()
        self._scan_thread: threading.Thread | None = None
        self._running = False
        self._started_at: float | None = None

    # ── Lifecycle ────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Initial full scan, then file watch and periodic rescans.

        Raises:
            MonitorError: If already running.
            WatchError: If the workspace cannot be watched.
        """
        if self._running:
            raise MonitorError("Monitor is already running")

        logger.info("Initializing workspace monitor for %s", self.workspace_path)
        self.scan_workspace()

        self._watcher = PollingWatcher(
            self.workspace_path,
            self.handle_file_change,
            monitor_dir_name=self.config.monitor_dir_name,
            interval=self.config.watch_poll_interval,
        )
        self._watcher.start()

        self._stop_event.clear()
        self._scan_thread = threading.Thread(
            target=self._scan_loop,
            name="workspace-monitor-scanner",
            daemon=True,
        )
        self._scan_thread.start()
        self._running = True
        self._started_at = time.time()
        self._log("info", "Workspace monitor started")

    def stop(self) -> None:
        """Stop watching and rescanning. In-flight scans run to completion."""
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        self._debouncer.cancel_all()
        self._stop_event.set()
        if self._scan_thread is not None:
            self._scan_thread.join(timeout=THREAD_JOIN_TIMEOUT)
            self._scan_thread = None
        if self._running:
            self._running = False
            self._log("info", "Workspace monitor stopped")

    def _scan_loop(self) -> None:
        while not self._stop_event.wait(self.config.scan_interval):
            self.scan_workspace()

    # ── Triggers ─────────────────────────────────────────────────

    def handle_file_change(self, filepath: str, event: str) -> None:
        """Schedule a debounced rescan of the project owning a changed marker file."""
        path = Path(filepath)
        if path.name not in WATCHED_FILES:
            return

        try:
            relative = path.parent.relative_to(self.workspace_path)
        except ValueError:
            return
        # Only files directly inside a top-level project directory
        if len(relative.parts) != 1:
            return
        project_name = relative.parts[0]
        if is_ignored_dir(project_name, self.config.monitor_dir_name):
            return

        logger.info("Project file %s: %s", event, filepath)
        self._debouncer.trigger(project_name, str(path.parent))

    def _rescan_from_watch(self, project_name: str, project_path: str) -> None:
        self.scan_project(project_path, project_name)

    # ── Scanning ─────────────────────────────────────────────────

    def scan_workspace(self) -> int:
        """Scan every top-level project directory once. Returns registry size."""
        logger.info("Scanning workspace for projects...")
        try:
            entries = sorted(self.workspace_path.iterdir())
        except OSError as e:
            logger.error("Error scanning workspace %s: %s", self.workspace_path, e)
            return len(self._projects)

        for entry in entries:
            if is_ignored_dir(entry.name, self.config.monitor_dir_name):
                continue
            try:
                if not entry.is_dir():
                    continue
            except OSError:
                continue
            self.scan_project(str(entry), entry.name)

        count = len(self._projects)
        logger.info("Scan complete. Found %d projects", count)
        self._publish(SCAN_COMPLETE, {"projects": count})
        return count

    def scan_project(self, project_path: str, project_name: str) -> ProjectInfo | None:
        """Detect one project and converge its compose file and container.

        Never raises; failures are logged and retried on the next scan.
        """
        with self._project_lock(project_name):
            try:
                info = self.detector(project_path)
                if info is None:
                    logger.debug("No project detected in %s", project_path)
                    self._publish(PROJECT_SKIPPED, {"name": project_name, "path": project_path})
                    return None

                logger.info("Detected %s project: %s", info.type.value, project_name)
                is_new = self._store(project_name, info)
                self._publish(
                    PROJECT_ADDED if is_new else PROJECT_UPDATED,
                    self._project_view(project_name, info),
                )

                self.ensure_compose(project_name, info)
                self.manage_container(project_name, info)
                return info
            except Exception:
                logger.exception("Error scanning project %s", project_name)
                return None

    def ensure_compose(self, project_name: str, info: ProjectInfo) -> bool:
        """Create or reconcile the project's compose file. Returns True if written."""
        compose_path = Path(info.path) / COMPOSE_FILENAME
        try:
            if not compose_path.exists():
                self._log("info", f"Creating {COMPOSE_FILENAME} for {project_name}", project_name)
                compose_path.write_text(
                    self.generator.generate(project_name, info), encoding="utf-8"
                )
                return True

            current = compose_path.read_text(encoding="utf-8")
            updated = self.generator.update(project_name, info, current)
            if updated != current:
                self._log("info", f"Updating {COMPOSE_FILENAME} for {project_name}", project_name)
                compose_path.write_text(updated, encoding="utf-8")
                return True
            return False
        except (OSError, UnicodeDecodeError) as e:
            self._log(
                "error",
                f"Error managing {COMPOSE_FILENAME} for {project_name}: {e}",
                project_name,
            )
            return False

    def manage_container(self, project_name: str, info: ProjectInfo) -> bool:
        """Start a missing container or restart a stale one. Returns True if acted."""
        container_name = get_container_name(project_name)

        if not self.docker.is_container_running(container_name):
            self._log("info", f"Starting container for {project_name}", project_name)
            if not self.docker.start_project(info.path, project_name):
                self._log("error", f"Failed to start container for {project_name}", project_name)
            return True

        if self.docker.check_if_restart_needed(container_name, info):
            self._log("info", f"Restarting container for {project_name}", project_name)
            if not self.docker.restart_project(info.path, project_name):
                self._log("error", f"Failed to restart container for {project_name}", project_name)
            return True

        return False

    # ── Registry ─────────────────────────────────────────────────

    def _project_lock(self, project_name: str) -> threading.Lock:
        with self._registry_lock:
            return self._project_locks.setdefault(project_name, threading.Lock())

    def _store(self, project_name: str, info: ProjectInfo) -> bool:
        """Replace the registry entry wholesale. Returns True on first detection."""
        with self._registry_lock:
            is_new = project_name not in self._projects
            self._projects[project_name] = info
        return is_new

    def get_project(self, project_name: str) -> ProjectInfo | None:
        with self._registry_lock:
            return self._projects.get(project_name)

    def projects(self) -> dict[str, ProjectInfo]:
        """Snapshot copy of the registry."""
        with self._registry_lock:
            return dict(self._projects)

    @staticmethod
    def _project_view(project_name: str, info: ProjectInfo) -> dict[str, Any]:
        return {
            "name": project_name,
            "container_name": get_container_name(project_name),
            **info.to_dict(),
        }

    def status(self) -> dict[str, Any]:
        """Current state for a status endpoint."""
        return {
            "status": "running" if self._running else "stopped",
            "uptime": time.time() - self._started_at if self._running and self._started_at else 0.0,
            "config": {
                "workspace_path": self.config.workspace_path,
                "domain": self.config.domain,
                "network": self.config.network,
                "scan_interval": self.config.scan_interval,
            },
            "projects": [
                self._project_view(name, info) for name, info in sorted(self.projects().items())
            ],
        }

    def recent_logs(self, limit: int = 100) -> list[dict[str, Any]]:
        return [event["data"] for event in self.events.recent(LOG, limit)]

    def get_project_logs(self, project_name: str, lines: int = DEFAULT_LOG_LINES) -> str:
        return self.docker.get_container_logs(get_container_name(project_name), lines)

    # ── Events ───────────────────────────────────────────────────

    def _publish(self, event_type: str, data: dict[str, Any]) -> None:
        try:
            self.events.publish(event_type, data)
        except Exception:
            logger.exception("Failed to publish %s", event_type)

    def _log(self, level: str, message: str, project: str | None = None) -> None:
        """Log and publish a ``log`` event for the dashboard."""
        logger.log(_LOG_LEVELS[level], message)
        self._publish(
            LOG,
            {"timestamp": time.time(), "level": level, "message": message, "project": project},
        )
