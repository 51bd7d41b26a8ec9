"""Configuration management for workspace-monitor."""

from __future__ import annotations

import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from .constants import (
    CONTAINER_PREFIX,
    DEFAULT_COMPOSE_COMMAND,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_DOMAIN,
    DEFAULT_MONITOR_DIR,
    DEFAULT_NETWORK,
    DEFAULT_SCAN_INTERVAL,
    DEFAULT_WATCH_POLL_INTERVAL,
    DEFAULT_WORKSPACE_PATH,
)
from .errors import ConfigError

# SCAN_INTERVAL values above this are taken as milliseconds (SCAN_INTERVAL=30000)
_MILLISECONDS_THRESHOLD = 1000


class ProjectType(str, Enum):
    """Project types the detector recognizes.

    Closed set: every member needs a service builder in generator.py.
    """

    NODE = "node"
    STATIC = "static"
    PHP = "php"
    PYTHON = "python"
    GO = "go"
    RUBY = "ruby"


class Framework(str, Enum):
    """Refinement of NODE projects; only affects port and start command."""

    REACT = "react"
    VUE = "vue"
    NEXT = "next"
    EXPRESS = "express"
    STATIC = "static"  # http-server served through npm


# Default container port and start command per project type
TYPE_DEFAULTS: dict[ProjectType, tuple[int, str | None]] = {
    ProjectType.NODE: (3000, None),
    ProjectType.STATIC: (3000, "npx http-server -p 3000 --cors -c-1"),
    ProjectType.PHP: (80, None),
    ProjectType.PYTHON: (8000, "python app.py"),
    ProjectType.GO: (8080, "go run main.go"),
    ProjectType.RUBY: (3000, "bundle exec rails server"),
}


@dataclass(frozen=True)
class MonitorConfig:
    """workspace-monitor configuration model."""

    workspace_path: str = DEFAULT_WORKSPACE_PATH
    domain: str = DEFAULT_DOMAIN
    network: str = DEFAULT_NETWORK
    scan_interval: float = DEFAULT_SCAN_INTERVAL

    # Host-side path of workspace_path, used for compose volume sources
    host_workspace_path: str | None = None

    monitor_dir_name: str = DEFAULT_MONITOR_DIR
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    watch_poll_interval: float = DEFAULT_WATCH_POLL_INTERVAL
    compose_command: tuple[str, ...] = DEFAULT_COMPOSE_COMMAND

    def validate(self) -> MonitorConfig:
        """Check values that would otherwise fail deep inside a scan.

        Raises:
            ConfigError: If any value is unusable.
        """
        if not self.workspace_path:
            raise ConfigError("workspace_path cannot be empty")
        if not self.domain.strip():
            raise ConfigError("domain cannot be empty")
        if not self.network.strip():
            raise ConfigError("network cannot be empty")
        if self.scan_interval <= 0:
            raise ConfigError(f"scan_interval must be positive, got {self.scan_interval}")
        if self.debounce_seconds < 0:
            raise ConfigError(f"debounce_seconds cannot be negative, got {self.debounce_seconds}")
        if self.watch_poll_interval <= 0:
            raise ConfigError(
                f"watch_poll_interval must be positive, got {self.watch_poll_interval}"
            )
        if not self.compose_command:
            raise ConfigError("compose_command cannot be empty")
        return self


def parse_scan_interval(value: str | float) -> float:
    """Parse a scan interval in seconds, accepting legacy millisecond values.

    Raises:
        ConfigError: If value is not a number.
    """
    try:
        interval = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid scan interval: {value!r}") from e
    if interval > _MILLISECONDS_THRESHOLD:
        interval /= 1000
    return interval


def load_config_from_env(environ: Mapping[str, str] | None = None) -> MonitorConfig:
    """Build a MonitorConfig from environment variables, falling back to defaults."""
    env = os.environ if environ is None else environ

    compose_command = DEFAULT_COMPOSE_COMMAND
    if env.get("COMPOSE_COMMAND"):
        compose_command = tuple(shlex.split(env["COMPOSE_COMMAND"]))

    config = MonitorConfig(
        workspace_path=env.get("WORKSPACE_PATH") or DEFAULT_WORKSPACE_PATH,
        domain=env.get("DOMAIN") or DEFAULT_DOMAIN,
        network=env.get("NETWORK") or DEFAULT_NETWORK,
        scan_interval=parse_scan_interval(env.get("SCAN_INTERVAL") or DEFAULT_SCAN_INTERVAL),
        host_workspace_path=env.get("HOST_WORKSPACE_PATH") or None,
        compose_command=compose_command,
    )
    return config.validate()


def get_container_name(project_name: str) -> str:
    """Get the container name for a project.

    Also used as the Traefik router and service name.
    """
    return f"{CONTAINER_PREFIX}{project_name}"
