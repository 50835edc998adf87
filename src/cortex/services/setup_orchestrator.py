"""Phased bring-up of a cortex instance.

Phases run strictly in order and never retry:

    pre-start -> services starting -> waiting for health -> initializing -> ready

Host and container commands fail fast unless marked ``ignore_failure``;
a failed `compose up` or health wait aborts the whole sequence.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from ..config import CommandDefinition, CortexConfig, ServiceWaitConfig
from ..errors import CommandFailedError
from .command_executor import ContainerCommandExecutor, HostCommandExecutor
from .docker_compose import DockerCompose
from .health_checker import HealthChecker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SetupResult:
    """Outcome of a successful bring-up."""

    elapsed_seconds: float
    namespace: Optional[str]
    port_offset: int


class SetupOrchestrator:
    """Runs the bring-up phases for one instance."""

    def __init__(
        self,
        docker_compose: DockerCompose,
        host_executor: HostCommandExecutor,
        health_checker: HealthChecker,
        console: Optional[Console] = None,
    ):
        self.docker_compose = docker_compose
        self.host_executor = host_executor
        self.health_checker = health_checker
        self.console = console or Console()

    def setup(
        self,
        config: CortexConfig,
        skip_wait: bool = False,
        skip_init: bool = False,
        namespace: Optional[str] = None,
        port_offset: int = 0,
    ) -> SetupResult:
        """
        Orchestrate the full setup flow.

        Raises:
            CommandFailedError: If a pre-start/initialize command fails
                without ``ignore_failure``, or compose up fails
            ServiceNotHealthyError: If a waited-for service never gets healthy
        """
        start_time = time.time()
        compose_file = config.docker.compose_file

        if config.setup.pre_start:
            self._run_pre_start_commands(config.setup.pre_start)

        self._start_services(compose_file, namespace)

        if skip_wait:
            logger.debug("Health checks skipped")
        elif config.docker.wait_for:
            self._wait_for_services(compose_file, config.docker.wait_for, namespace)

        if skip_init:
            logger.debug("Initialize commands skipped")
        elif config.setup.initialize:
            self._run_initialize_commands(
                config.setup.initialize,
                ContainerCommandExecutor(
                    self.docker_compose,
                    compose_file,
                    config.docker.primary_service,
                    namespace,
                ),
            )

        return SetupResult(
            elapsed_seconds=time.time() - start_time,
            namespace=namespace,
            port_offset=port_offset,
        )

    def _section(self, title: str) -> None:
        self.console.print()
        self.console.print(f"▶ {title}", style="bold cyan")

    def _print_output_line(self, line: str) -> None:
        self.console.print(f"  │ {line}", style="dim", markup=False, highlight=False)

    def _run_pre_start_commands(self, commands: List[CommandDefinition]) -> None:
        self._section("Pre-start commands")
        for cmd in commands:
            self.console.print(f"  • {cmd.description}", markup=False)
            result = self.host_executor.execute(cmd, self._print_output_line)
            self._check_result(cmd, result, phase="pre_start")

    def _start_services(self, compose_file: Path, namespace: Optional[str]) -> None:
        self._section("Starting Docker services")
        if namespace is not None:
            self.console.print(f"  Using namespace: {namespace}", markup=False)

        # Failure propagates; the override file is left in place for diagnosis
        self.docker_compose.up(compose_file, namespace)
        self.console.print("  ✅ Docker services started", style="green")

    def _wait_for_services(
        self,
        compose_file: Path,
        wait_for: List[ServiceWaitConfig],
        namespace: Optional[str],
    ) -> None:
        self._section("Waiting for services")
        for wait_config in wait_for:
            start_time = time.time()
            with self.console.status(f"Waiting for {wait_config.service}..."):
                self.health_checker.wait_for_health(
                    compose_file, wait_config.service, wait_config.timeout, namespace
                )
            self.console.print(
                f"  ✅ {wait_config.service} (healthy after "
                f"{time.time() - start_time:.1f}s)",
                style="green",
                markup=False,
            )

    def _run_initialize_commands(
        self,
        commands: List[CommandDefinition],
        executor: ContainerCommandExecutor,
    ) -> None:
        self._section("Initialize commands")
        for cmd in commands:
            self.console.print(f"  • {cmd.description}", markup=False)
            result = executor.execute(cmd, self._print_output_line)
            self._check_result(cmd, result, phase="initialize")

    def _check_result(self, cmd: CommandDefinition, result, phase: str) -> None:
        if result.successful:
            return

        if cmd.ignore_failure:
            logger.info(f"Ignoring failed {phase} command: {cmd.command}")
            self.console.print(
                f"  ⚠️  Command failed (ignored): {cmd.command}",
                style="yellow",
                markup=False,
            )
            return

        reason = (
            f"timed out after {cmd.timeout}s"
            if result.timed_out
            else f"exit code {result.exit_code}"
        )
        where = "Host" if phase == "pre_start" else "Container"
        raise CommandFailedError(
            f"{where} command failed ({reason}): {cmd.command}",
            phase=phase,
            command=cmd.command,
            result=result,
        )
