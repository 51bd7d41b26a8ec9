"""Tests for docker module.

Tests all Docker operations with mocked subprocess calls.
"""

from __future__ import annotations

import os
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest

from workspace_monitor.config import ProjectType
from workspace_monitor.detector import ProjectInfo
from workspace_monitor.docker import (
    ContainerError,
    DockerError,
    DockerManager,
    DockerNotFoundError,
    DockerTimeoutError,
    is_transitional_failure,
    parse_docker_timestamp,
    safe_docker_run,
)


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


def _info(path: Path) -> ProjectInfo:
    return ProjectInfo(path=str(path), type=ProjectType.STATIC, port=3000)


def _set_mtime(path: Path, when: datetime) -> None:
    ts = when.timestamp()
    os.utime(path, (ts, ts))


class TestSafeDockerRun:
    """Tests for safe_docker_run function."""

    def test_success(self) -> None:
        """Test successful command execution."""
        with patch("workspace_monitor.docker.subprocess.run") as mock_run:
            mock_run.return_value = _completed(stdout="output")
            result = safe_docker_run(["docker", "ps"])
            assert result.returncode == 0
            assert result.stdout == "output"
            mock_run.assert_called_once()

    def test_cwd_and_timeout_passed(self, tmp_path: Path) -> None:
        """Test cwd and timeout reach subprocess."""
        with patch("workspace_monitor.docker.subprocess.run") as mock_run:
            mock_run.return_value = _completed()
            safe_docker_run(["docker", "compose", "up"], cwd=tmp_path, timeout=None)
            kwargs = mock_run.call_args.kwargs
            assert kwargs["cwd"] == tmp_path
            assert kwargs["timeout"] is None
            assert kwargs["capture_output"] is True
            assert kwargs["text"] is True

    def test_docker_not_found(self) -> None:
        """Test FileNotFoundError raises DockerNotFoundError."""
        with patch("workspace_monitor.docker.subprocess.run") as mock_run:
            mock_run.side_effect = FileNotFoundError("docker not found")
            with pytest.raises(DockerNotFoundError) as exc_info:
                safe_docker_run(["docker", "ps"])
            assert "Docker not found in PATH" in str(exc_info.value)

    def test_timeout(self) -> None:
        """Test TimeoutExpired raises DockerTimeoutError."""
        with patch("workspace_monitor.docker.subprocess.run") as mock_run:
            mock_run.side_effect = subprocess.TimeoutExpired(cmd="docker", timeout=30)
            with pytest.raises(DockerTimeoutError) as exc_info:
                safe_docker_run(["docker", "ps"], timeout=30)
            assert "timed out after 30s" in str(exc_info.value)

    def test_errors_share_base(self) -> None:
        assert issubclass(DockerNotFoundError, DockerError)
        assert issubclass(DockerTimeoutError, DockerError)
        assert issubclass(ContainerError, DockerError)


class TestHelpers:
    """Tests for output parsing helpers."""

    @pytest.mark.parametrize(
        "stderr",
        ["Stopping workspace-blog ... done", " Container x  Removing\n", "Removing network"],
    )
    def test_transitional(self, stderr: str) -> None:
        assert is_transitional_failure(stderr) is True

    def test_not_transitional(self) -> None:
        assert is_transitional_failure("no such service: blog") is False

    def test_parse_nanoseconds(self) -> None:
        parsed = parse_docker_timestamp("2024-05-01T10:20:30.123456789Z\n")
        assert parsed == datetime(2024, 5, 1, 10, 20, 30, 123456, tzinfo=timezone.utc)

    def test_parse_without_fraction(self) -> None:
        parsed = parse_docker_timestamp("2024-05-01T10:20:30Z")
        assert parsed == datetime(2024, 5, 1, 10, 20, 30, tzinfo=timezone.utc)

    def test_parse_offset(self) -> None:
        parsed = parse_docker_timestamp("2024-05-01T12:20:30.5+02:00")
        assert parsed == datetime(2024, 5, 1, 10, 20, 30, 500000, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["0001-01-01T00:00:00Z", "", "yesterday"])
    def test_parse_rejects(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_docker_timestamp(value)


class TestIsContainerRunning:
    """Tests for is_container_running."""

    def test_running(self) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed(stdout="traefik\nworkspace-blog\n")
            assert DockerManager().is_container_running("workspace-blog") is True

    def test_not_running(self) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed(stdout="traefik\nworkspace-blog-old\n")
            assert DockerManager().is_container_running("workspace-blog") is False

    def test_cli_failure_is_not_running(self) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed(returncode=1, stderr="daemon down")
            assert DockerManager().is_container_running("workspace-blog") is False

    def test_docker_missing_is_not_running(self) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.side_effect = DockerNotFoundError("not found")
            assert DockerManager().is_container_running("workspace-blog") is False


class TestComposeOperations:
    """Tests for start/stop/restart."""

    def test_start_runs_up_build_in_project_dir(self, tmp_path: Path) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed(stdout="Started")
            assert DockerManager().start_project(tmp_path, "blog") is True
            args, kwargs = mock_run.call_args
            assert args[0] == ["docker", "compose", "up", "-d", "--build"]
            assert kwargs["cwd"] == tmp_path
            assert kwargs["timeout"] is None

    def test_custom_compose_command(self, tmp_path: Path) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed()
            DockerManager(("docker-compose",)).stop_project(tmp_path, "blog")
            assert mock_run.call_args[0][0] == ["docker-compose", "down"]

    def test_start_failure(self, tmp_path: Path) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed(returncode=1, stderr="build failed")
            assert DockerManager().start_project(tmp_path, "blog") is False

    def test_start_docker_missing(self, tmp_path: Path) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.side_effect = DockerNotFoundError("not found")
            assert DockerManager().start_project(tmp_path, "blog") is False

    def test_stop_tolerates_transitional_exit(self, tmp_path: Path) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed(returncode=1, stderr="Removing workspace-blog")
            assert DockerManager().stop_project(tmp_path, "blog") is True

    def test_run_compose_returns_stderr_when_tolerated(self, tmp_path: Path) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed(returncode=1, stderr="Stopping x")
            assert DockerManager().run_compose(tmp_path, ["down"]) == "Stopping x"

    def test_run_compose_raises(self, tmp_path: Path) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed(returncode=2, stderr="bad file")
            with pytest.raises(ContainerError, match="bad file"):
                DockerManager().run_compose(tmp_path, ["up"])

    def test_stop_failure(self, tmp_path: Path) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed(returncode=1, stderr="permission denied")
            assert DockerManager().stop_project(tmp_path, "blog") is False

    def test_restart_is_stop_then_start(self, tmp_path: Path) -> None:
        manager = DockerManager()
        with (
            patch.object(manager, "stop_project", return_value=True) as mock_stop,
            patch.object(manager, "start_project", return_value=True) as mock_start,
        ):
            parent = MagicMock()
            parent.attach_mock(mock_stop, "stop")
            parent.attach_mock(mock_start, "start")
            assert manager.restart_project(tmp_path, "blog") is True
            assert parent.mock_calls == [call.stop(tmp_path, "blog"), call.start(tmp_path, "blog")]

    def test_restart_starts_even_if_stop_fails(self, tmp_path: Path) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.side_effect = [
                _completed(returncode=1, stderr="cannot stop"),
                _completed(stdout="up"),
            ]
            assert DockerManager().restart_project(tmp_path, "blog") is True
            commands = [c.args[0] for c in mock_run.call_args_list]
            assert commands == [
                ["docker", "compose", "down"],
                ["docker", "compose", "up", "-d", "--build"],
            ]


class TestCheckIfRestartNeeded:
    """Tests for the staleness check."""

    STARTED = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)

    def _inspect(self, stdout: str = "2024-05-01T10:00:00.000000000Z", returncode: int = 0):
        return patch(
            "workspace_monitor.docker.safe_docker_run",
            return_value=_completed(returncode=returncode, stdout=stdout),
        )

    def test_missing_container(self, tmp_path: Path) -> None:
        with self._inspect(stdout="", returncode=1):
            assert DockerManager().check_if_restart_needed("workspace-x", _info(tmp_path)) is True

    def test_never_started_container(self, tmp_path: Path) -> None:
        with self._inspect(stdout="0001-01-01T00:00:00Z"):
            assert DockerManager().check_if_restart_needed("workspace-x", _info(tmp_path)) is True

    def test_compose_newer(self, tmp_path: Path) -> None:
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services: {}")
        _set_mtime(compose, datetime(2024, 5, 1, 10, 0, 5, tzinfo=timezone.utc))
        with self._inspect():
            assert DockerManager().check_if_restart_needed("workspace-x", _info(tmp_path)) is True

    def test_compose_equal(self, tmp_path: Path) -> None:
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services: {}")
        _set_mtime(compose, self.STARTED)
        with self._inspect():
            assert DockerManager().check_if_restart_needed("workspace-x", _info(tmp_path)) is False

    def test_compose_older(self, tmp_path: Path) -> None:
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services: {}")
        _set_mtime(compose, datetime(2024, 4, 30, tzinfo=timezone.utc))
        with self._inspect():
            assert DockerManager().check_if_restart_needed("workspace-x", _info(tmp_path)) is False

    def test_compose_missing(self, tmp_path: Path) -> None:
        with self._inspect():
            assert DockerManager().check_if_restart_needed("workspace-x", _info(tmp_path)) is False

    def test_docker_unavailable(self, tmp_path: Path) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.side_effect = DockerTimeoutError("timeout")
            assert DockerManager().check_if_restart_needed("workspace-x", _info(tmp_path)) is False

    def test_inspect_command(self, tmp_path: Path) -> None:
        with self._inspect() as mock_run:
            DockerManager().check_if_restart_needed("workspace-x", _info(tmp_path))
            assert mock_run.call_args[0][0] == [
                "docker",
                "inspect",
                "workspace-x",
                "--format",
                "{{.State.StartedAt}}",
            ]


class TestGetContainerLogs:
    """Tests for get_container_logs."""

    def test_logs(self) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed(stdout="line1\n", stderr="warn\n")
            assert DockerManager().get_container_logs("workspace-x", 10) == "line1\nwarn\n"
            assert mock_run.call_args[0][0] == ["docker", "logs", "--tail", "10", "workspace-x"]

    def test_logs_failure(self) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.return_value = _completed(returncode=1, stderr="No such container")
            assert DockerManager().get_container_logs("workspace-x") == ""

    def test_logs_docker_missing(self) -> None:
        with patch("workspace_monitor.docker.safe_docker_run") as mock_run:
            mock_run.side_effect = DockerNotFoundError("missing")
            assert DockerManager().get_container_logs("workspace-x") == ""
