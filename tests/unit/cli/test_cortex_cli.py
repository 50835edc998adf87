"""Tests for the cortex command line interface."""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from cortex import __version__
from cortex.cli import cli
from cortex.errors import AlreadyRunningError, ServiceNotHealthyError
from cortex.services.instance_manager import InstanceStatus, ServiceStatus
from cortex.services.lock_file import LockFileData
from cortex.services.setup_orchestrator import SetupResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def manager(cortex_config):
    """InstanceManager double handed out by the CLI."""
    with patch("cortex.cli.InstanceManager") as manager_class:
        instance = manager_class.return_value
        instance.config = cortex_config
        yield instance


def invoke(runner, project_dir, *args):
    return runner.invoke(cli, ["--path", str(project_dir)] + list(args))


class TestCliBasics:
    """Test group-level behavior."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ["up", "down", "status", "show-url", "shell", "run"]:
            assert command in result.output

    def test_missing_config_fails(self, runner, tmp_path):
        result = invoke(runner, tmp_path, "status")
        assert result.exit_code == 1
        assert "cortex.yml not found" in result.output

    def test_invalid_config_fails(self, runner, project_dir):
        (project_dir / "cortex.yml").write_text("version: '1.0'\n")
        result = invoke(runner, project_dir, "status")
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output


class TestUpCommand:
    """Test `cortex up`."""

    def test_passes_flags(self, runner, project_dir, manager):
        manager.up.return_value = SetupResult(
            elapsed_seconds=12.3, namespace="agent7", port_offset=1000
        )
        manager.show_url.return_value = "http://localhost:1080"

        result = invoke(
            runner,
            project_dir,
            "up",
            "--namespace",
            "agent7",
            "--port-offset",
            "1000",
            "--no-wait",
            "--skip-init",
        )

        assert result.exit_code == 0, result.output
        manager.up.assert_called_once_with(
            namespace="agent7",
            port_offset=1000,
            avoid_conflicts=False,
            no_host_mapping=False,
            skip_wait=True,
            skip_init=True,
        )
        assert "Environment ready in 12.3s" in result.output
        assert "+1000" in result.output
        assert "http://localhost:1080" in result.output

    def test_avoid_conflicts_and_no_host_mapping(self, runner, project_dir, manager):
        manager.up.return_value = SetupResult(
            elapsed_seconds=1.0, namespace="ns", port_offset=0
        )

        result = invoke(
            runner, project_dir, "up", "--avoid-conflicts", "--no-host-mapping"
        )

        assert result.exit_code == 0, result.output
        kwargs = manager.up.call_args.kwargs
        assert kwargs["avoid_conflicts"] is True
        assert kwargs["no_host_mapping"] is True
        manager.show_url.assert_not_called()

    def test_already_running(self, runner, project_dir, manager):
        manager.up.side_effect = AlreadyRunningError(
            "Environment already running. Use 'cortex down' to stop it first."
        )

        result = invoke(runner, project_dir, "up")

        assert result.exit_code == 1
        assert "❌ Environment already running" in result.output

    def test_failure_is_logged_to_working_dir(self, runner, project_dir, manager):
        manager.up.side_effect = ServiceNotHealthyError(
            "Service 'db' did not become healthy within 60s", service="db", timeout=60
        )

        result = invoke(runner, project_dir, "up")

        assert result.exit_code == 1
        logs = list((project_dir / ".cortex").glob("error_*.log"))
        assert len(logs) == 1
        content = logs[0].read_text()
        assert "ServiceNotHealthyError" in content
        assert '"command": "up"' in content

    def test_non_integer_offset_rejected(self, runner, project_dir, manager):
        result = invoke(runner, project_dir, "up", "--port-offset", "abc")
        assert result.exit_code == 2
        manager.up.assert_not_called()


class TestOtherCommands:
    """Test down, status, show-url, shell and run."""

    def test_down(self, runner, project_dir, manager):
        result = invoke(runner, project_dir, "down", "--volumes")

        assert result.exit_code == 0, result.output
        manager.down.assert_called_once_with(remove_volumes=True)
        assert "volumes removed" in result.output

    def test_status_table(self, runner, project_dir, manager):
        manager.status.return_value = InstanceStatus(
            namespace="agent7",
            lock=LockFileData(
                namespace="agent7", port_offset=1000, started_at="2025-01-01T10:00:00"
            ),
            services=[
                ServiceStatus("app", "running", "running"),
                ServiceStatus("db", "running", "healthy"),
            ],
        )

        result = invoke(runner, project_dir, "status")

        assert result.exit_code == 0, result.output
        assert "Namespace: agent7" in result.output
        assert "+1000" in result.output
        assert "healthy" in result.output

    def test_status_not_running(self, runner, project_dir, manager):
        manager.status.return_value = InstanceStatus(namespace="ns", lock=None)

        result = invoke(runner, project_dir, "status")

        assert result.exit_code == 0
        assert "No services are currently running" in result.output

    def test_show_url_is_plain(self, runner, project_dir, manager):
        manager.show_url.return_value = "http://localhost:1080"

        result = invoke(runner, project_dir, "show-url")

        assert result.exit_code == 0
        assert result.output == "http://localhost:1080\n"

    def test_shell_exit_code_propagates(self, runner, project_dir, manager):
        manager.shell.return_value = 130
        result = invoke(runner, project_dir, "shell")
        assert result.exit_code == 130

    def test_run_without_name_lists_commands(self, runner, project_dir, manager):
        manager.list_commands.return_value = {"test": "Run the test suite"}

        result = invoke(runner, project_dir, "run")

        assert result.exit_code == 0, result.output
        assert "test" in result.output
        assert "Run the test suite" in result.output
        manager.run_command.assert_not_called()

    def test_run_without_name_and_no_commands(self, runner, project_dir, manager):
        manager.list_commands.return_value = {}

        result = invoke(runner, project_dir, "run")

        assert result.exit_code == 0, result.output
        assert "No commands defined" in result.output

    def test_run_named_command(self, runner, project_dir, manager):
        manager.run_command.return_value = 4.2

        result = invoke(runner, project_dir, "run", "test")

        assert result.exit_code == 0, result.output
        manager.run_command.assert_called_once_with("test")
        assert "4.2s" in result.output
