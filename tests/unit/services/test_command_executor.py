"""Tests for host and container command execution."""

import subprocess
from pathlib import Path
from unittest.mock import Mock, patch

from cortex.config import CommandDefinition
from cortex.services.command_executor import (
    NO_EXIT_CODE,
    ContainerCommandExecutor,
    HostCommandExecutor,
)
from cortex.services.docker_compose import DockerCompose

COMPOSE_FILE = Path("/project/docker-compose.yml")


def command(text, timeout=60, **kwargs):
    return CommandDefinition(
        command=text, description="test", timeout=timeout, **kwargs
    )


class TestHostCommandExecutor:
    """Test execution through the host shell."""

    def test_successful_command(self, tmp_path):
        lines = []
        result = HostCommandExecutor(tmp_path).execute(
            command("echo hello; echo world"), lines.append
        )

        assert result.successful
        assert result.exit_code == 0
        assert result.output == "hello\nworld\n"
        assert lines == ["hello", "world"]
        assert result.execution_time >= 0

    def test_runs_in_working_directory(self, tmp_path):
        result = HostCommandExecutor(tmp_path).execute(command("pwd"))
        assert Path(result.output.strip()).resolve() == tmp_path.resolve()

    def test_failure_keeps_exit_code_and_stderr(self, tmp_path):
        result = HostCommandExecutor(tmp_path).execute(
            command("echo oops >&2; exit 3")
        )

        assert not result.successful
        assert result.exit_code == 3
        assert "oops" in result.error_output
        assert not result.timed_out

    def test_timeout_is_unsuccessful(self, tmp_path):
        with patch(
            "cortex.services.command_executor.subprocess.run",
            side_effect=subprocess.TimeoutExpired("sleep 10", 1, output=b"partial\n"),
        ):
            result = HostCommandExecutor(tmp_path).execute(command("sleep 10", 1))

        assert not result.successful
        assert result.timed_out
        assert result.exit_code == NO_EXIT_CODE
        assert result.output == "partial\n"

    def test_passes_timeout_and_shell(self, tmp_path):
        completed = subprocess.CompletedProcess("ls", 0, stdout="", stderr="")
        with patch(
            "cortex.services.command_executor.subprocess.run", return_value=completed
        ) as mock_run:
            HostCommandExecutor(tmp_path).execute(command("ls", 42))

        kwargs = mock_run.call_args.kwargs
        assert kwargs["shell"] is True
        assert kwargs["timeout"] == 42
        assert kwargs["cwd"] == str(tmp_path)


class TestContainerCommandExecutor:
    """Test execution inside a service container."""

    def setup_method(self):
        self.docker_compose = Mock(spec=DockerCompose)
        self.executor = ContainerCommandExecutor(
            self.docker_compose, COMPOSE_FILE, "app", "cortex-a-b"
        )

    def test_successful_command(self):
        self.docker_compose.exec.return_value = subprocess.CompletedProcess(
            [], 0, stdout="Migrated\n", stderr=""
        )
        lines = []

        result = self.executor.execute(command("php artisan migrate", 120), lines.append)

        assert result.successful
        assert lines == ["Migrated"]
        self.docker_compose.exec.assert_called_once_with(
            COMPOSE_FILE,
            "app",
            "php artisan migrate",
            timeout=120,
            namespace="cortex-a-b",
        )

    def test_failed_command(self):
        self.docker_compose.exec.return_value = subprocess.CompletedProcess(
            [], 1, stdout="", stderr="service \"app\" is not running"
        )

        result = self.executor.execute(command("true"))

        assert not result.successful
        assert result.exit_code == 1
        assert "is not running" in result.error_output

    def test_timeout(self):
        self.docker_compose.exec.side_effect = subprocess.TimeoutExpired("x", 5)

        result = self.executor.execute(command("sleep 100", 5))

        assert result.timed_out
        assert not result.successful
        assert result.exit_code == NO_EXIT_CODE

    def test_missing_compose_binary(self):
        self.docker_compose.exec.side_effect = FileNotFoundError("docker")

        result = self.executor.execute(command("true"))

        assert not result.successful
        assert "docker" in result.error_output
