"""Execution of configured commands on the host or inside a container."""

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from ..config import CommandDefinition
from .docker_compose import DockerCompose

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], None]

# Reported when the process was killed or never started
NO_EXIT_CODE = -1


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a single command execution."""

    exit_code: int
    output: str
    error_output: str
    successful: bool
    execution_time: float
    timed_out: bool = False


def _decode(stream: Union[str, bytes, None]) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream


def _emit_lines(output_callback: Optional[OutputCallback], *streams: str) -> None:
    if output_callback is None:
        return
    for stream in streams:
        for line in stream.splitlines():
            if line.strip():
                output_callback(line)


class HostCommandExecutor:
    """Runs commands through the host shell."""

    def __init__(self, working_dir: Path):
        self.working_dir = working_dir

    def execute(
        self,
        cmd: CommandDefinition,
        output_callback: Optional[OutputCallback] = None,
    ) -> ExecutionResult:
        """Run ``cmd`` in the working directory; a timeout kills the process."""
        start_time = time.time()
        logger.debug(f"Host command: {cmd.command} (timeout {cmd.timeout}s)")

        try:
            process = subprocess.run(
                cmd.command,
                shell=True,
                cwd=str(self.working_dir),
                capture_output=True,
                text=True,
                timeout=cmd.timeout,
            )
        except subprocess.TimeoutExpired as e:
            output, error_output = _decode(e.stdout), _decode(e.stderr)
            _emit_lines(output_callback, output, error_output)
            logger.warning(f"Host command timed out after {cmd.timeout}s: {cmd.command}")
            return ExecutionResult(
                exit_code=NO_EXIT_CODE,
                output=output,
                error_output=error_output,
                successful=False,
                execution_time=time.time() - start_time,
                timed_out=True,
            )

        _emit_lines(output_callback, process.stdout, process.stderr)
        return ExecutionResult(
            exit_code=process.returncode,
            output=process.stdout,
            error_output=process.stderr,
            successful=process.returncode == 0,
            execution_time=time.time() - start_time,
        )


class ContainerCommandExecutor:
    """Runs commands inside a compose service container via `exec -T`."""

    def __init__(
        self,
        docker_compose: DockerCompose,
        compose_file: Path,
        service: str,
        namespace: Optional[str] = None,
    ):
        self.docker_compose = docker_compose
        self.compose_file = compose_file
        self.service = service
        self.namespace = namespace

    def execute(
        self,
        cmd: CommandDefinition,
        output_callback: Optional[OutputCallback] = None,
    ) -> ExecutionResult:
        """Run ``cmd`` in the service container; a timeout kills the process."""
        start_time = time.time()
        logger.debug(
            f"Container command in {self.service}: {cmd.command} (timeout {cmd.timeout}s)"
        )

        try:
            process = self.docker_compose.exec(
                self.compose_file,
                self.service,
                cmd.command,
                timeout=cmd.timeout,
                namespace=self.namespace,
            )
        except subprocess.TimeoutExpired as e:
            output, error_output = _decode(e.stdout), _decode(e.stderr)
            _emit_lines(output_callback, output, error_output)
            logger.warning(
                f"Container command timed out after {cmd.timeout}s: {cmd.command}"
            )
            return ExecutionResult(
                exit_code=NO_EXIT_CODE,
                output=output,
                error_output=error_output,
                successful=False,
                execution_time=time.time() - start_time,
                timed_out=True,
            )
        except FileNotFoundError as e:
            return ExecutionResult(
                exit_code=NO_EXIT_CODE,
                output="",
                error_output=str(e),
                successful=False,
                execution_time=time.time() - start_time,
            )

        _emit_lines(output_callback, process.stdout, process.stderr)
        return ExecutionResult(
            exit_code=process.returncode,
            output=process.stdout,
            error_output=process.stderr,
            successful=process.returncode == 0,
            execution_time=time.time() - start_time,
        )
