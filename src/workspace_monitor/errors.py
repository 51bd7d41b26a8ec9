"""Unified exception hierarchy for workspace-monitor.

All custom exceptions inherit from MonitorError for consistent error handling.
Most of them never leave the component that raised them: the detector,
the compose generator and the Docker manager translate them into
None / unchanged text / False at their public boundary. Only
WorkspaceMonitor.start() lets them escape, and the CLI converts that
into a non-zero exit.

Dependency direction:
    This module has NO internal dependencies (leaf module).
    It may be imported by: all other workspace_monitor modules.
    It should NOT import from any other workspace_monitor modules.
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base exception for all workspace-monitor errors."""


class ConfigError(MonitorError):
    """Configuration-related errors.

    Examples:
        - Non-numeric SCAN_INTERVAL
        - Empty domain or network name
        - Non-positive scan interval
    """


class WatchError(MonitorError):
    """Raised when the workspace cannot be watched (fatal at startup)."""


class ComposeError(MonitorError):
    """Compose document errors.

    Examples:
        - Existing docker-compose.yml is not valid YAML
        - Document has no services mapping
    """


class DockerError(MonitorError):
    """Docker operation errors.

    Base class for all Docker-related exceptions.
    """


class DockerNotFoundError(DockerError):
    """Raised when Docker is not installed or not in PATH."""


class DockerTimeoutError(DockerError):
    """Raised when a Docker operation times out."""


class ContainerError(DockerError):
    """Raised when a compose or container operation fails."""
