"""Project type detection for workspace directories."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import TYPE_DEFAULTS, Framework, ProjectType
from .constants import NOMONITOR_MARKER
from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class ProjectInfo:
    """Result of project detection. Rebuilt from scratch on every scan."""

    path: str
    type: ProjectType
    port: int
    command: str | None = None
    framework: Framework | None = None
    has_dockerfile: bool = False
    has_compose: bool = False
    package_json: dict[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view (enum values as plain strings)."""
        return {
            "path": self.path,
            "type": self.type.value,
            "framework": self.framework.value if self.framework else None,
            "port": self.port,
            "command": self.command,
            "has_dockerfile": self.has_dockerfile,
            "has_compose": self.has_compose,
        }


# Marker file name -> presence flag it sets
MARKER_FILES: dict[str, str] = {
    "package.json": "package_json",
    "docker-compose.yml": "compose",
    "docker-compose.yaml": "compose",
    "Dockerfile": "dockerfile",
    "index.html": "index",
    "index.php": "php",
    "requirements.txt": "python",
    "setup.py": "python",
    "Gemfile": "ruby",
    "go.mod": "go",
}

# Dependency signature -> (framework, port, default command); first match wins
NODE_FRAMEWORKS: list[tuple[tuple[str, ...], Framework, int, str]] = [
    (("react", "react-dom"), Framework.REACT, 3000, "npm start"),
    (("vue",), Framework.VUE, 8080, "npm run serve"),
    (("next",), Framework.NEXT, 3000, "npm run dev"),
    (("express",), Framework.EXPRESS, 3000, "npm start"),
    (("http-server",), Framework.STATIC, 3000, "npm start"),
]

# package.json script -> command; first match wins, overrides framework defaults
NODE_SCRIPTS: list[tuple[str, str]] = [
    ("start", "npm start"),
    ("dev", "npm run dev"),
    ("serve", "npm run serve"),
]


def read_package_json(path: Path) -> dict[str, Any]:
    """Read a package manifest, returning {} on any read or parse failure."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("Error reading package.json at %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.error("Ignoring package.json at %s: not a JSON object", path)
        return {}
    return data


def _scan_markers(directory: Path) -> set[str]:
    """Collect presence flags for marker files directly inside directory."""
    flags: set[str] = set()
    for entry in directory.iterdir():
        flag = MARKER_FILES.get(entry.name)
        if flag and entry.is_file():
            flags.add(flag)
    return flags


def _resolve_type(flags: set[str]) -> ProjectType | None:
    """Apply the fixed type precedence to the presence flags."""
    if "package_json" in flags:
        return ProjectType.NODE
    if "index" in flags and "php" not in flags:
        return ProjectType.STATIC
    if "php" in flags:
        return ProjectType.PHP
    if "python" in flags:
        return ProjectType.PYTHON
    if "go" in flags:
        return ProjectType.GO
    if "ruby" in flags:
        return ProjectType.RUBY
    return None


def _apply_node_manifest(info: ProjectInfo, manifest: dict[str, Any]) -> None:
    """Refine a NODE project from its declared dependencies and scripts."""
    dependencies = manifest.get("dependencies")
    if isinstance(dependencies, dict):
        for names, framework, port, command in NODE_FRAMEWORKS:
            if any(dependencies.get(name) for name in names):
                info.framework = framework
                info.port = port
                info.command = command
                break

    scripts = manifest.get("scripts")
    if isinstance(scripts, dict):
        for script, command in NODE_SCRIPTS:
            if scripts.get(script):
                info.command = command
                break


def detect_project(directory: str | Path) -> ProjectInfo | None:
    """Detect the project type of a workspace directory.

    Only immediate children are inspected. Returns None when the directory
    opts out with a .nomonitor file, matches no known project layout, or
    cannot be read at all (logged, never raised).
    """
    directory = Path(directory)
    try:
        if (directory / NOMONITOR_MARKER).exists():
            logger.debug("Skipping %s - %s file found", directory, NOMONITOR_MARKER)
            return None
        flags = _scan_markers(directory)
    except OSError as e:
        logger.error("Error detecting project at %s: %s", directory, e)
        return None

    project_type = _resolve_type(flags)
    if project_type is None:
        return None

    port, command = TYPE_DEFAULTS[project_type]
    info = ProjectInfo(
        path=str(directory),
        type=project_type,
        port=port,
        command=command,
        has_dockerfile="dockerfile" in flags,
        has_compose="compose" in flags,
    )

    if project_type is ProjectType.NODE:
        info.package_json = read_package_json(directory / "package.json")
        _apply_node_manifest(info, info.package_json)

    return info
