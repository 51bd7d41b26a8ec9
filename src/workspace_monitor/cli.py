"""CLI for workspace-monitor."""

from __future__ import annotations

import signal
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import MonitorConfig, get_container_name, load_config_from_env, parse_scan_interval
from .constants import COMPOSE_FILENAME, DEFAULT_LOG_LINES
from .detector import ProjectInfo, detect_project
from .docker import DockerManager
from .errors import MonitorError
from .generator import ComposeGenerator
from .logging import get_logger, set_debug
from .monitor import WorkspaceMonitor
from .paths import is_ignored_dir

console = Console(stderr=True)
logger = get_logger(__name__)


def _build_config(
    workspace: str | None,
    domain: str | None,
    network: str | None,
    scan_interval: str | None,
    host_path: str | None,
) -> MonitorConfig:
    """Environment config overridden by explicit CLI options.

    Raises:
        ConfigError: If a value is invalid.
    """
    config = load_config_from_env()
    overrides: dict[str, Any] = {}
    if workspace:
        overrides["workspace_path"] = workspace
    if domain:
        overrides["domain"] = domain
    if network:
        overrides["network"] = network
    if scan_interval:
        overrides["scan_interval"] = parse_scan_interval(scan_interval)
    if host_path:
        overrides["host_workspace_path"] = host_path
    return replace(config, **overrides).validate()


def _projects_table(rows: list[tuple[str, ProjectInfo]]) -> Table:
    table = Table(title="Workspace projects")
    table.add_column("Project", style="cyan")
    table.add_column("Type")
    table.add_column("Framework")
    table.add_column("Port", justify="right")
    table.add_column("Command")
    table.add_column("Container", style="dim")
    for name, info in rows:
        table.add_row(
            name,
            info.type.value,
            info.framework.value if info.framework else "-",
            str(info.port),
            info.command or "-",
            get_container_name(name),
        )
    return table


def config_options(func: Any) -> Any:
    """Options shared by commands that build a MonitorConfig."""
    options = [
        click.option("--workspace", "-w", help="Workspace root (env: WORKSPACE_PATH)"),
        click.option("--domain", "-d", help="Public domain for routing rules (env: DOMAIN)"),
        click.option("--network", "-n", help="External Traefik network (env: NETWORK)"),
        click.option("--host-path", help="Workspace root as seen by the Docker host"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option(__version__, prog_name="workspace-monitor")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Detect workspace projects and keep their containers running."""
    if debug:
        set_debug(True)


@cli.command()
@config_options
@click.option("--scan-interval", help="Seconds between full rescans (env: SCAN_INTERVAL)")
def run(
    workspace: str | None,
    domain: str | None,
    network: str | None,
    host_path: str | None,
    scan_interval: str | None,
) -> None:
    """Run the monitor until interrupted."""
    try:
        config = _build_config(workspace, domain, network, scan_interval, host_path)
        monitor = WorkspaceMonitor(config)
        logger.info("Starting Workspace Monitor Service")
        monitor.start()
    except MonitorError as e:
        logger.error("Failed to start monitor: %s", e)
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    shutdown = threading.Event()

    def _handle_signal(signum: int, frame: Any) -> None:
        logger.info("Shutting down monitor...")
        shutdown.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    console.print(
        f"[green]Monitoring[/green] {config.workspace_path} "
        f"[dim](domain={config.domain}, every {config.scan_interval:g}s)[/dim]"
    )
    while not shutdown.wait(1.0):
        pass
    monitor.stop()


@cli.command()
@config_options
@click.option("--dry-run", is_flag=True, help="Only detect; write no files and start nothing")
def scan(
    workspace: str | None,
    domain: str | None,
    network: str | None,
    host_path: str | None,
    dry_run: bool,
) -> None:
    """Scan the workspace once and converge every project."""
    try:
        config = _build_config(workspace, domain, network, None, host_path)
    except MonitorError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    root = Path(config.workspace_path)
    if not root.is_dir():
        console.print(f"[red]Error: workspace {root} is not a directory[/red]")
        sys.exit(1)

    if dry_run:
        rows: list[tuple[str, ProjectInfo]] = []
        for entry in sorted(root.iterdir()):
            if entry.is_dir() and not is_ignored_dir(entry.name, config.monitor_dir_name):
                info = detect_project(entry)
                if info is not None:
                    rows.append((entry.name, info))
    else:
        monitor = WorkspaceMonitor(config)
        monitor.scan_workspace()
        rows = sorted(monitor.projects().items())

    if not rows:
        console.print("[yellow]No projects found[/yellow]")
        return
    Console().print(_projects_table(rows))


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False))
def detect(path: str) -> None:
    """Show what the detector makes of a directory."""
    directory = Path(path).resolve()
    info = detect_project(directory)
    if info is None:
        console.print(f"[yellow]{directory} is not a recognized project[/yellow]")
        return
    Console().print(_projects_table([(directory.name, info)]))


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.option("--name", help="Project name (default: directory name)")
@click.option("--domain", "-d", help="Public domain for routing rules (env: DOMAIN)")
@click.option("--network", "-n", help="External Traefik network (env: NETWORK)")
@click.option("--write", is_flag=True, help=f"Create or reconcile {COMPOSE_FILENAME} in PATH")
def compose(
    path: str,
    name: str | None,
    domain: str | None,
    network: str | None,
    write: bool,
) -> None:
    """Print (or write) the compose file for a project directory."""
    directory = Path(path).resolve()
    project_name = name or directory.name
    try:
        config = _build_config(None, domain, network, None, None)
    except MonitorError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    info = detect_project(directory)
    if info is None:
        console.print(f"[red]Error: {directory} is not a recognized project[/red]")
        sys.exit(1)

    generator = ComposeGenerator(
        config.domain,
        config.network,
        workspace_path=config.workspace_path,
        host_workspace_path=config.host_workspace_path,
    )

    if write:
        monitor = WorkspaceMonitor(config, generator=generator)
        if monitor.ensure_compose(project_name, info):
            console.print(f"[green]Wrote {directory / COMPOSE_FILENAME}[/green]")
        else:
            console.print(f"[dim]{COMPOSE_FILENAME} already up to date[/dim]")
        return

    click.echo(generator.generate(project_name, info), nl=False)


@cli.command()
@click.argument("name")
@click.option("--lines", "-l", default=DEFAULT_LOG_LINES, show_default=True, help="Lines to show")
def logs(name: str, lines: int) -> None:
    """Show the container logs of a project."""
    output = DockerManager().get_container_logs(get_container_name(name), lines)
    if not output:
        console.print(f"[yellow]No logs for {get_container_name(name)}[/yellow]")
        return
    click.echo(output, nl=not output.endswith("\n"))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
