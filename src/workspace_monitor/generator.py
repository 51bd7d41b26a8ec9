"""docker-compose.yml generation and reconciliation for workspace projects.

Generated files carry Traefik labels that route
``https://<domain>/<project>`` to the project's container. The files are
monitor-owned but hand-editable: update() only ever rewrites the labels of
the project's service, and only when the routing rule has drifted.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import yaml

from .config import ProjectType, get_container_name
from .constants import (
    COMPOSE_VERSION,
    DEFAULT_SERVICE_PORT,
    RESTART_POLICY,
    TRAEFIK_CERT_RESOLVER,
    TRAEFIK_HTTP_ENTRYPOINT,
    TRAEFIK_HTTPS_ENTRYPOINT,
    WWW_PROJECT,
)
from .detector import ProjectInfo
from .errors import ComposeError
from .logging import get_logger
from .paths import to_host_path

logger = get_logger(__name__)

# Service key some hand-written compose files use instead of the project name
LEGACY_SERVICE_KEY = "static-server"

HTTP_SERVER_INSTALL = "npm install -g http-server"


def _node_service(service: dict[str, Any], name: str, info: ProjectInfo, src: str) -> None:
    service["image"] = "node:20-alpine"
    service["working_dir"] = "/app"
    if name == WWW_PROJECT:
        # The landing site only exposes its build output
        service["volumes"] = [
            f"{src}/public:/app/public:ro",
            f"{src}/package.json:/app/package.json:ro",
        ]
        service["command"] = (
            f'sh -c "{HTTP_SERVER_INSTALL} && http-server public -p 3000 --cors -c-1"'
        )
    else:
        service["volumes"] = [f"{src}:/app:ro", "/app/node_modules"]
        service["command"] = f'sh -c "npm install && {info.command or "npm start"}"'
    service["environment"] = {"NODE_ENV": "production", "PORT": info.port}


def _static_service(service: dict[str, Any], name: str, info: ProjectInfo, src: str) -> None:
    service["image"] = "node:20-alpine"
    service["working_dir"] = "/app"
    service["volumes"] = [f"{src}:/app:ro"]
    service["command"] = f'sh -c "{HTTP_SERVER_INSTALL} && http-server -p 3000 --cors -c-1"'


def _php_service(service: dict[str, Any], name: str, info: ProjectInfo, src: str) -> None:
    service["image"] = "php:8.2-apache"
    service["volumes"] = [f"{src}:/var/www/html:ro"]


def _python_service(service: dict[str, Any], name: str, info: ProjectInfo, src: str) -> None:
    service["image"] = "python:3.11-slim"
    service["working_dir"] = "/app"
    service["volumes"] = [f"{src}:/app:ro"]
    command = info.command or "python app.py"
    service["command"] = f'sh -c "pip install -r requirements.txt && {command}"'


def _go_service(service: dict[str, Any], name: str, info: ProjectInfo, src: str) -> None:
    service["image"] = "golang:1.21-alpine"
    service["working_dir"] = "/app"
    service["volumes"] = [f"{src}:/app:ro"]
    service["command"] = info.command or "go run main.go"


def _ruby_service(service: dict[str, Any], name: str, info: ProjectInfo, src: str) -> None:
    service["image"] = "ruby:3.2-slim"
    service["working_dir"] = "/app"
    service["volumes"] = [f"{src}:/app:ro"]
    service["command"] = 'sh -c "bundle install && bundle exec rails server -b 0.0.0.0"'


ServiceBuilder = Callable[[dict[str, Any], str, ProjectInfo, str], None]

SERVICE_BUILDERS: dict[ProjectType, ServiceBuilder] = {
    ProjectType.NODE: _node_service,
    ProjectType.STATIC: _static_service,
    ProjectType.PHP: _php_service,
    ProjectType.PYTHON: _python_service,
    ProjectType.GO: _go_service,
    ProjectType.RUBY: _ruby_service,
}

_missing_builders = set(ProjectType) - set(SERVICE_BUILDERS)
if _missing_builders:  # pragma: no cover - guards against a new ProjectType
    raise RuntimeError(f"No compose service builder for: {sorted(t.value for t in _missing_builders)}")


def dump_compose(document: dict[str, Any]) -> str:
    """Serialize a compose document: block style, key order kept, no wrapping."""
    return yaml.safe_dump(
        document,
        default_flow_style=False,
        sort_keys=False,
        width=1000000,
        allow_unicode=True,
    )


def load_compose(text: str) -> dict[str, Any]:
    """Parse compose text into a mapping with a services mapping.

    Raises:
        ComposeError: If text is not YAML or lacks a services mapping.
    """
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ComposeError(f"Invalid YAML: {e}") from e
    if not isinstance(document, dict):
        raise ComposeError("Compose document is not a mapping")
    services = document.get("services")
    if not isinstance(services, dict) or not services:
        raise ComposeError("Compose document has no services")
    return document


def _rule_labels(labels: Any) -> list[str]:
    """Values of all router rule labels, for list- or mapping-style labels."""
    pairs: list[tuple[str, str]] = []
    if isinstance(labels, dict):
        pairs = [(str(k), str(v)) for k, v in labels.items()]
    elif isinstance(labels, list):
        for label in labels:
            key, sep, value = str(label).partition("=")
            if sep:
                pairs.append((key, value))
    return [value for key, value in pairs if key.endswith(".rule")]


class ComposeGenerator:
    """Builds and reconciles per-project compose documents."""

    def __init__(
        self,
        domain: str,
        network: str,
        workspace_path: str | None = None,
        host_workspace_path: str | None = None,
    ) -> None:
        self.domain = domain
        self.network = network
        self.workspace_path = workspace_path
        self.host_workspace_path = host_workspace_path

    def routing_rule(self, project_name: str) -> str:
        """Traefik rule for a project.

        www serves the domain root and root-level files (favicon.ico,
        robots.txt, ...); every other project lives under /<name>.
        ``$$`` is compose's escape for a literal ``$``.
        """
        if project_name == WWW_PROJECT:
            return (
                f"Host(`{self.domain}`) && "
                r"(Path(`/`) || PathRegexp(`^/[^/]+\.[^/]+$$`))"
            )
        return f"Host(`{self.domain}`) && PathPrefix(`/{project_name}`)"

    def generate_labels(
        self, project_name: str, info: ProjectInfo, routing_rule: str
    ) -> list[str]:
        """Traefik labels: HTTP router, HTTPS router, strip-prefix middleware, service port."""
        router = get_container_name(project_name)
        port = info.port or DEFAULT_SERVICE_PORT

        labels = [
            "traefik.enable=true",
            f"traefik.docker.network={self.network}",
            f"traefik.http.routers.{router}.rule={routing_rule}",
            f"traefik.http.routers.{router}.entrypoints={TRAEFIK_HTTP_ENTRYPOINT}",
            f"traefik.http.routers.{router}-secure.rule={routing_rule}",
            f"traefik.http.routers.{router}-secure.entrypoints={TRAEFIK_HTTPS_ENTRYPOINT}",
            f"traefik.http.routers.{router}-secure.tls=true",
            f"traefik.http.routers.{router}-secure.tls.certresolver={TRAEFIK_CERT_RESOLVER}",
        ]

        if project_name != WWW_PROJECT:
            labels.append(
                f"traefik.http.middlewares.{router}-strip.stripprefix.prefixes=/{project_name}"
            )
            labels.append(f"traefik.http.routers.{router}-secure.middlewares={router}-strip")

        labels.append(f"traefik.http.services.{router}.loadbalancer.server.port={port}")
        return labels

    def build_compose(self, project_name: str, info: ProjectInfo) -> dict[str, Any]:
        """Compose document for a project as a plain mapping."""
        service: dict[str, Any] = {
            "container_name": get_container_name(project_name),
            "networks": [self.network],
            "restart": RESTART_POLICY,
            "labels": self.generate_labels(
                project_name, info, self.routing_rule(project_name)
            ),
        }

        src = to_host_path(info.path, self.workspace_path, self.host_workspace_path)
        SERVICE_BUILDERS[info.type](service, project_name, info, src)

        if info.has_dockerfile:
            service.pop("image", None)
            service["build"] = "."

        return {
            "version": COMPOSE_VERSION,
            "services": {project_name: service},
            "networks": {self.network: {"external": True}},
        }

    def generate(self, project_name: str, info: ProjectInfo) -> str:
        """Compose file text for a project that has none yet."""
        return dump_compose(self.build_compose(project_name, info))

    def update(self, project_name: str, info: ProjectInfo, current_content: str) -> str:
        """Reconcile an existing compose file with freshly detected info.

        Returns current_content itself when the routing rule already matches
        or the document cannot be understood. Otherwise only the labels of
        the project's service are regenerated; every other key is kept.
        """
        try:
            document = load_compose(current_content)
            services = document["services"]
            service = (
                services.get(project_name)
                or services.get(LEGACY_SERVICE_KEY)
                or next(iter(services.values()))
            )
            if not isinstance(service, dict):
                raise ComposeError("Service definition is not a mapping")

            rule = self.routing_rule(project_name)
            if rule in _rule_labels(service.get("labels")):
                return current_content

            logger.info("Updating routing rules for %s", project_name)
            service["labels"] = self.generate_labels(project_name, info, rule)
            return dump_compose(document)
        except ComposeError as e:
            logger.error("Error updating compose file for %s: %s", project_name, e)
            return current_content
