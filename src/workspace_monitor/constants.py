"""Constants module for workspace-monitor.

All timeout values and shared constants are defined here (SSOT).
"""

from __future__ import annotations

# === Docker Timeouts (seconds) ===
DOCKER_COMMAND_TIMEOUT = 30  # Quick docker commands (ps, inspect, logs)
COMPOSE_COMMAND_TIMEOUT = None  # compose up/down run until the CLI returns
DEFAULT_LOG_LINES = 50

# Docker reports this for containers that were created but never started
DOCKER_ZERO_TIME = "0001-01-01T00:00:00Z"

# compose emits non-zero exits during teardown; these stderr fragments mean "benign"
COMPOSE_TRANSITIONAL_MARKERS = ("Stopping", "Removing")

# === Monitor Defaults ===
DEFAULT_WORKSPACE_PATH = "/workspaces"
DEFAULT_DOMAIN = "localhost"
DEFAULT_NETWORK = "traefik-network"
DEFAULT_SCAN_INTERVAL = 30.0  # Periodic full rescan (seconds)
DEFAULT_DEBOUNCE_SECONDS = 1.0  # File change -> targeted rescan delay
DEFAULT_WATCH_POLL_INTERVAL = 2.0  # Marker file mtime polling
DEFAULT_MONITOR_DIR = "monitor"  # The monitor's own directory under the workspace
DEFAULT_COMPOSE_COMMAND = ("docker", "compose")
THREAD_JOIN_TIMEOUT = 5.0
EVENT_BUFFER_SIZE = 500
SUBSCRIBER_QUEUE_SIZE = 200

# === Project Files ===
COMPOSE_FILENAME = "docker-compose.yml"
NOMONITOR_MARKER = ".nomonitor"
CONTAINER_PREFIX = "workspace-"
WWW_PROJECT = "www"

# Changes to these files (directly inside a project) trigger a rescan
WATCHED_FILES = ("package.json", "docker-compose.yml", "Dockerfile", "index.html")

# === Traefik ===
TRAEFIK_HTTP_ENTRYPOINT = "web"
TRAEFIK_HTTPS_ENTRYPOINT = "websecure"
TRAEFIK_CERT_RESOLVER = "letsencrypt"
DEFAULT_SERVICE_PORT = 3000

# === Compose ===
COMPOSE_VERSION = "3.8"
RESTART_POLICY = "unless-stopped"
