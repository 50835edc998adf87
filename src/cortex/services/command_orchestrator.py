"""Runs the named commands declared under `commands:` in cortex.yml."""

import logging
import time
from typing import Dict, Optional

from rich.console import Console

from ..config import CortexConfig
from ..errors import CommandFailedError, ConfigurationError
from .command_executor import ContainerCommandExecutor
from .docker_compose import DockerCompose

logger = logging.getLogger(__name__)


class CommandOrchestrator:
    """Executes project commands in the primary service container."""

    def __init__(self, docker_compose: DockerCompose, console: Optional[Console] = None):
        self.docker_compose = docker_compose
        self.console = console or Console()

    def list_available_commands(self, config: CortexConfig) -> Dict[str, str]:
        """Command name -> description."""
        return {name: cmd.description for name, cmd in config.commands.items()}

    def run(
        self,
        command_name: str,
        config: CortexConfig,
        namespace: Optional[str] = None,
    ) -> float:
        """
        Run a named command and return its execution time.

        Raises:
            ConfigurationError: If the command is not declared
            CommandFailedError: If the command exits unsuccessfully
        """
        cmd = config.commands.get(command_name)
        if cmd is None:
            raise ConfigurationError(
                f"Command '{command_name}' not found in cortex.yml"
            )

        start_time = time.time()
        self.console.print(f"▶ Running: {command_name}", style="bold cyan")
        self.console.print(f"  • {cmd.description}", markup=False)

        executor = ContainerCommandExecutor(
            self.docker_compose,
            config.docker.compose_file,
            config.docker.primary_service,
            namespace,
        )
        result = executor.execute(
            cmd,
            lambda line: self.console.print(
                f"  │ {line}", style="dim", markup=False, highlight=False
            ),
        )

        if not result.successful:
            if "is not running" in result.error_output or "is not running" in result.output:
                message = "Services are not running. Start them with 'cortex up' first."
            else:
                message = f"Command '{command_name}' failed with exit code {result.exit_code}"
            raise CommandFailedError(
                message, phase="command", command=cmd.command, result=result
            )

        return time.time() - start_time
