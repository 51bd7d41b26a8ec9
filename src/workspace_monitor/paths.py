"""Path utilities for compose volume mounts and workspace traversal.

The monitor usually runs in a container that sees the workspace under a
different mount point than the Docker host does. Volume sources in the
generated compose files must name the host path, so the workspace prefix
is rewritten before it lands in a volume spec.
"""

from __future__ import annotations

from pathlib import Path


def _normalize_path_separators(path_str: str) -> str:
    """Normalize path separators to forward slashes and remove duplicates.

    Args:
        path_str: Path string to normalize.

    Returns:
        Normalized path with single forward slashes.
    """
    normalized = path_str.replace("\\", "/")
    while "//" in normalized:
        normalized = normalized.replace("//", "/")
    # Remove trailing slash (unless it's root)
    if len(normalized) > 1:
        normalized = normalized.rstrip("/")
    return normalized


def to_host_path(
    path: str | Path,
    workspace_path: str | Path | None,
    host_workspace_path: str | Path | None,
) -> str:
    """Map a path under the monitor's workspace to the Docker host's view.

    Args:
        path: Project path as seen by the monitor.
        workspace_path: Workspace root as seen by the monitor.
        host_workspace_path: Workspace root as seen by the Docker host.

    Returns:
        Host path if path is under workspace_path and a host path is set,
        otherwise path unchanged (normalized).

    Examples:
        >>> to_host_path("/workspaces/blog", "/workspaces", "/home/me/workspaces")
        '/home/me/workspaces/blog'
        >>> to_host_path("/workspaces-old/blog", "/workspaces", "/home/me/workspaces")
        '/workspaces-old/blog'
        >>> to_host_path("/workspaces/blog", "/workspaces", None)
        '/workspaces/blog'
    """
    path_str = _normalize_path_separators(str(path))
    if not workspace_path or not host_workspace_path:
        return path_str

    root = _normalize_path_separators(str(workspace_path))
    host_root = _normalize_path_separators(str(host_workspace_path))

    if path_str == root:
        return host_root
    # Prefix match on a path boundary only
    prefix = root if root.endswith("/") else f"{root}/"
    if path_str.startswith(prefix):
        return f"{host_root.rstrip('/')}/{path_str[len(prefix):]}"
    return path_str


def is_ignored_dir(name: str, monitor_dir_name: str) -> bool:
    """Check if a top-level workspace entry must never be scanned or watched.

    Only dot directories and the monitor's own directory are skipped; a
    project may be called build or dist like any other.
    """
    return name.startswith(".") or name == monitor_dir_name
