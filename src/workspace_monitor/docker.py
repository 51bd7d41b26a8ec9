"""Docker operations for workspace-monitor.

All process spawning lives here. Public DockerManager operations never
raise: CLI failures are logged and translated into False / None / "" so
one broken project cannot stop a workspace scan.
"""

from __future__ import annotations

import os
import re
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from .constants import (
    COMPOSE_COMMAND_TIMEOUT,
    COMPOSE_FILENAME,
    COMPOSE_TRANSITIONAL_MARKERS,
    DEFAULT_COMPOSE_COMMAND,
    DEFAULT_LOG_LINES,
    DOCKER_COMMAND_TIMEOUT,
    DOCKER_ZERO_TIME,
)
from .errors import ContainerError, DockerError, DockerNotFoundError, DockerTimeoutError
from .logging import get_logger

logger = get_logger(__name__)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .detector import ProjectInfo

__all__ = [
    "DockerError",
    "DockerNotFoundError",
    "DockerTimeoutError",
    "ContainerError",
    "DockerManager",
    "safe_docker_run",
    "is_transitional_failure",
    "parse_docker_timestamp",
]

# 2024-05-01T10:20:30.123456789Z -> groups: base, fraction, zone
_TIMESTAMP_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)


def safe_docker_run(
    cmd: Sequence[str],
    *,
    cwd: str | Path | None = None,
    timeout: float | None = DOCKER_COMMAND_TIMEOUT,
    check: bool = False,
) -> subprocess.CompletedProcess[str]:
    """Run a Docker command with consistent error handling.

    Args:
        cmd: Command to run (should start with 'docker').
        cwd: Working directory (compose commands run in the project dir).
        timeout: Command timeout in seconds, None for no limit.
        check: Raise CalledProcessError on non-zero exit.

    Returns:
        CompletedProcess with command result.

    Raises:
        DockerNotFoundError: If docker command is not found.
        DockerTimeoutError: If command times out.
        subprocess.CalledProcessError: If check=True and command fails.
    """
    cmd_str = " ".join(cmd[:4]) + ("..." if len(cmd) > 4 else "")
    logger.debug("Running Docker command: %s (cwd=%s)", cmd_str, cwd or os.getcwd())
    try:
        result = subprocess.run(
            list(cmd),
            capture_output=True,
            text=True,
            check=check,
            timeout=timeout,
            cwd=cwd,
        )
        logger.debug("Docker command completed: exit=%d", result.returncode)
        return result
    except FileNotFoundError as e:
        logger.error("Docker not found in PATH: %s", cmd_str)
        raise DockerNotFoundError(f"Docker not found in PATH. Command: {cmd_str}") from e
    except subprocess.TimeoutExpired as e:
        logger.error("Docker command timed out after %ss: %s", timeout, cmd_str)
        raise DockerTimeoutError(
            f"Docker command timed out after {timeout}s. Command: {cmd_str}"
        ) from e


def is_transitional_failure(stderr: str) -> bool:
    """Check if a non-zero compose exit only reports teardown progress."""
    return any(marker in stderr for marker in COMPOSE_TRANSITIONAL_MARKERS)


def parse_docker_timestamp(value: str) -> datetime:
    """Parse Docker's RFC 3339 timestamps (nanosecond precision) into aware UTC.

    Raises:
        ValueError: If value is not a timestamp or is Docker's zero time.
    """
    value = value.strip()
    if value == DOCKER_ZERO_TIME:
        raise ValueError("container has never started")
    match = _TIMESTAMP_RE.match(value)
    if not match:
        raise ValueError(f"Unrecognized Docker timestamp: {value!r}")

    base, fraction, zone = match.groups()
    # datetime only holds microseconds
    micros = (fraction or "0")[:6].ljust(6, "0")
    zone = "+00:00" if zone == "Z" else zone
    parsed = datetime.fromisoformat(f"{base}.{micros}{zone}")
    return parsed.astimezone(timezone.utc)


class DockerManager:
    """Imperative wrapper over the docker and docker compose CLIs."""

    def __init__(self, compose_command: Sequence[str] = DEFAULT_COMPOSE_COMMAND) -> None:
        self.compose_command = tuple(compose_command)

    def list_running_containers(self) -> list[str]:
        """Names of running containers.

        Raises:
            DockerError: If the docker CLI is missing, times out, or fails.
        """
        result = safe_docker_run(["docker", "ps", "--format", "{{.Names}}"])
        if result.returncode != 0:
            raise DockerError(result.stderr.strip() or "docker ps failed")
        return [name for name in result.stdout.strip().split("\n") if name]

    def is_container_running(self, container_name: str) -> bool:
        """Check if a container is running. Any failure counts as not running."""
        try:
            return container_name in self.list_running_containers()
        except DockerError as e:
            logger.error("Error checking container status for %s: %s", container_name, e)
            return False

    def run_compose(self, project_path: str | Path, args: Sequence[str]) -> str:
        """Run a compose subcommand inside the project directory.

        Non-zero exits whose stderr only shows stop/remove progress are
        treated as success (compose reports those during teardown).

        Returns:
            Command output (stdout, or stderr for tolerated failures).

        Raises:
            DockerError: If the CLI is missing or times out.
            ContainerError: If the command fails.
        """
        result = safe_docker_run(
            [*self.compose_command, *args],
            cwd=project_path,
            timeout=COMPOSE_COMMAND_TIMEOUT,
        )
        if result.returncode == 0:
            return result.stdout
        if is_transitional_failure(result.stderr):
            logger.debug("Tolerating compose exit=%d: %s", result.returncode, result.stderr.strip())
            return result.stderr
        raise ContainerError(result.stderr.strip() or result.stdout.strip() or "compose failed")

    def start_project(self, project_path: str | Path, project_name: str) -> bool:
        """Bring a project's compose stack up, rebuilding images."""
        logger.info("Starting project %s at %s", project_name, project_path)
        try:
            self.run_compose(project_path, ["up", "-d", "--build"])
        except DockerError as e:
            logger.error("Error starting project %s: %s", project_name, e)
            return False
        logger.info("Successfully started %s", project_name)
        return True

    def stop_project(self, project_path: str | Path, project_name: str) -> bool:
        """Take a project's compose stack down."""
        logger.info("Stopping project %s", project_name)
        try:
            self.run_compose(project_path, ["down"])
        except DockerError as e:
            logger.error("Error stopping project %s: %s", project_name, e)
            return False
        logger.info("Successfully stopped %s", project_name)
        return True

    def restart_project(self, project_path: str | Path, project_name: str) -> bool:
        """Stop then start. Start is attempted even if stop failed."""
        logger.info("Restarting project %s", project_name)
        if not self.stop_project(project_path, project_name):
            logger.warning("Stop failed for %s, starting anyway", project_name)
        return self.start_project(project_path, project_name)

    def get_container_started_at(self, container_name: str) -> datetime | None:
        """Start time of a container, or None if it does not exist or never started.

        Raises:
            DockerError: If the docker CLI is missing or times out.
        """
        result = safe_docker_run(
            ["docker", "inspect", container_name, "--format", "{{.State.StartedAt}}"]
        )
        if result.returncode != 0 or not result.stdout.strip():
            return None
        try:
            return parse_docker_timestamp(result.stdout)
        except ValueError as e:
            logger.debug("No usable start time for %s: %s", container_name, e)
            return None

    def check_if_restart_needed(self, container_name: str, info: ProjectInfo) -> bool:
        """Decide whether a container is stale relative to its compose file.

        True if the container is missing or the compose file was modified
        strictly after the container started. A missing compose file or an
        unavailable docker CLI never forces a restart.
        """
        try:
            started_at = self.get_container_started_at(container_name)
        except DockerError as e:
            logger.error("Error checking restart status for %s: %s", container_name, e)
            return False

        if started_at is None:
            return True

        compose_path = Path(info.path) / COMPOSE_FILENAME
        try:
            mtime = compose_path.stat().st_mtime
        except OSError as e:
            logger.debug("Cannot check compose file for %s: %s", container_name, e)
            return False

        modified_at = datetime.fromtimestamp(mtime, tz=timezone.utc)
        if modified_at > started_at:
            logger.info("Compose file modified for %s, restart needed", container_name)
            return True
        return False

    def get_container_logs(self, container_name: str, lines: int = DEFAULT_LOG_LINES) -> str:
        """Tail of a container's logs (stdout and stderr), "" on any error."""
        try:
            result = safe_docker_run(["docker", "logs", "--tail", str(lines), container_name])
        except DockerError as e:
            logger.error("Error getting logs for %s: %s", container_name, e)
            return ""
        if result.returncode != 0:
            logger.error("Error getting logs for %s: %s", container_name, result.stderr.strip())
            return ""
        return result.stdout + result.stderr
