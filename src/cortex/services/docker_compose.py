"""Thin wrapper around the docker compose CLI used by cortex."""

import json
import logging
import re
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from ..errors import DockerComposeError
from .compose_override import get_override_file_path

logger = logging.getLogger(__name__)

# "0.0.0.0:8080->80/tcp, [::]:8080->80/tcp, 0.0.0.0:9000-9002->9000-9002/tcp"
_PUBLISHED_PORT_PATTERN = re.compile(r":(\d+)(?:-(\d+))?->")


def parse_published_ports(ports_output: str) -> Set[int]:
    """Extract host-side ports from `docker ps --format {{.Ports}}` output."""
    ports: Set[int] = set()
    for start, end in _PUBLISHED_PORT_PATTERN.findall(ports_output):
        first = int(start)
        ports.update(range(first, int(end or first) + 1))
    return ports


def parse_ps_output(output: str) -> Dict[str, Dict[str, Any]]:
    """Parse `compose ps --format json` output into a service -> data map.

    Compose v2.21+ prints one JSON object per line; older v2 releases print a
    single JSON array.
    """
    output = output.strip()
    if not output:
        return {}

    entries: List[Any] = []
    if output.startswith("["):
        try:
            parsed = json.loads(output)
            if isinstance(parsed, list):
                entries = parsed
        except json.JSONDecodeError:
            logger.debug("Unparsable compose ps array output")
    else:
        for line in output.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug(f"Skipping unparsable compose ps line: {line}")

    services: Dict[str, Dict[str, Any]] = {}
    for entry in entries:
        if isinstance(entry, dict) and entry.get("Service"):
            services[str(entry["Service"])] = entry
    return services


class DockerCompose:
    """Runs compose commands with the instance namespace and override applied."""

    UP_TIMEOUT = 300
    DOWN_TIMEOUT = 120
    QUERY_TIMEOUT = 30

    def __init__(
        self,
        compose_command: Optional[List[str]] = None,
        container_engine: str = "docker",
    ):
        self._compose_command = compose_command
        self.container_engine = container_engine

    def get_compose_command(self) -> List[str]:
        """Get the compose command, preferring the `docker compose` plugin."""
        if self._compose_command is not None:
            return list(self._compose_command)

        # Try docker compose (new syntax)
        try:
            result = subprocess.run(
                [self.container_engine, "compose", "version"],
                capture_output=True,
                timeout=5,
            )
            if result.returncode == 0:
                self._compose_command = [self.container_engine, "compose"]
                return list(self._compose_command)
        except (subprocess.TimeoutExpired, FileNotFoundError):
            pass

        # Fall back to docker-compose (old syntax)
        try:
            result = subprocess.run(
                ["docker-compose", "--version"], capture_output=True, timeout=5
            )
            if result.returncode == 0:
                self._compose_command = ["docker-compose"]
                return list(self._compose_command)
        except (subprocess.TimeoutExpired, FileNotFoundError):
            pass

        # Last resort fallback, the failure surfaces on first use
        logger.warning("Neither 'docker compose' nor 'docker-compose' detected")
        return [self.container_engine, "compose"]

    def build_base_command(
        self, compose_file: Path, namespace: Optional[str] = None
    ) -> List[str]:
        """Compose invocation prefix: files, override (if present) and project."""
        command = self.get_compose_command() + ["-f", str(compose_file)]

        override_file = get_override_file_path(compose_file)
        if override_file.exists():
            command += ["-f", str(override_file)]

        if namespace is not None:
            command += ["-p", namespace]

        return command

    def up(self, compose_file: Path, namespace: Optional[str] = None) -> None:
        """
        Start the compose services detached.

        Raises:
            DockerComposeError: If compose exits non-zero or times out
        """
        command = self.build_base_command(compose_file, namespace) + ["up", "-d"]
        self._run_checked(command, "up", self.UP_TIMEOUT)

    def down(
        self,
        compose_file: Path,
        remove_volumes: bool = False,
        namespace: Optional[str] = None,
    ) -> None:
        """
        Stop and remove the compose services.

        Raises:
            DockerComposeError: If compose exits non-zero or times out
        """
        command = self.build_base_command(compose_file, namespace) + ["down"]
        if remove_volumes:
            command.append("-v")
        self._run_checked(command, "down", self.DOWN_TIMEOUT)

    def _run_checked(self, command: List[str], action: str, timeout: int) -> None:
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command, capture_output=True, text=True, timeout=timeout
            )
        except subprocess.TimeoutExpired:
            raise DockerComposeError(
                f"Docker Compose '{action}' timed out after {timeout}s", action=action
            )
        except FileNotFoundError as e:
            raise DockerComposeError(
                f"Docker Compose is not available: {e}", action=action
            )

        if result.returncode != 0:
            raise DockerComposeError(
                f"Failed to run Docker Compose '{action}': {result.stderr.strip()}",
                action=action,
                stderr=result.stderr,
            )

    def ps(
        self, compose_file: Path, namespace: Optional[str] = None
    ) -> Dict[str, Dict[str, Any]]:
        """List running services as a service name -> compose ps entry map."""
        command = self.build_base_command(compose_file, namespace) + [
            "ps",
            "--format",
            "json",
        ]
        try:
            result = subprocess.run(
                command, capture_output=True, text=True, timeout=self.QUERY_TIMEOUT
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.debug(f"compose ps failed: {e}")
            return {}

        if result.returncode != 0:
            return {}
        return parse_ps_output(result.stdout)

    def is_running(self, compose_file: Path, namespace: Optional[str] = None) -> bool:
        """Check if any service of the instance is running."""
        return bool(self.ps(compose_file, namespace))

    def container_id(
        self, compose_file: Path, service: str, namespace: Optional[str] = None
    ) -> Optional[str]:
        """Get the container id backing a service, or None."""
        command = self.build_base_command(compose_file, namespace) + [
            "ps",
            "-q",
            service,
        ]
        try:
            result = subprocess.run(
                command, capture_output=True, text=True, timeout=self.QUERY_TIMEOUT
            )
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return None

        if result.returncode != 0:
            return None
        lines = result.stdout.strip().splitlines()
        return lines[0].strip() if lines else None

    def inspect_state(self, container_id: str) -> Optional[str]:
        """Health status if the container defines a health check, else run state."""
        try:
            result = subprocess.run(
                [
                    self.container_engine,
                    "inspect",
                    "--format",
                    "{{if .State.Health}}{{.State.Health.Status}}{{else}}{{.State.Status}}{{end}}",
                    container_id,
                ],
                capture_output=True,
                text=True,
                timeout=self.QUERY_TIMEOUT,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return None

        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def list_project_containers(self, namespace: str) -> List[str]:
        """Names of all containers (running or stopped) of a compose project."""
        try:
            result = subprocess.run(
                [
                    self.container_engine,
                    "ps",
                    "-a",
                    "--filter",
                    f"label=com.docker.compose.project={namespace}",
                    "--format",
                    "{{.Names}}",
                ],
                capture_output=True,
                text=True,
                timeout=self.QUERY_TIMEOUT,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError):
            return []

        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def get_used_host_ports(self) -> Set[int]:
        """Host ports published by every running container on this host.

        Asks the engine rather than probing sockets: cortex may itself run
        inside a container and would not see the host's port table.
        """
        try:
            result = subprocess.run(
                [self.container_engine, "ps", "--format", "{{.Ports}}"],
                capture_output=True,
                text=True,
                timeout=self.QUERY_TIMEOUT,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.warning(f"Could not query published ports: {e}")
            return set()

        if result.returncode != 0:
            logger.warning(f"Could not query published ports: {result.stderr.strip()}")
            return set()
        return parse_published_ports(result.stdout)

    def exec(
        self,
        compose_file: Path,
        service: str,
        command: str,
        timeout: int,
        namespace: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        """Run a shell command inside a service container (non-interactive).

        Raises:
            subprocess.TimeoutExpired: If the command exceeds ``timeout``
        """
        full_command = self.build_base_command(compose_file, namespace) + [
            "exec",
            "-T",
            service,
            "sh",
            "-c",
            command,
        ]
        return subprocess.run(
            full_command, capture_output=True, text=True, timeout=timeout
        )

    def exec_interactive(
        self,
        compose_file: Path,
        service: str,
        command: List[str],
        namespace: Optional[str] = None,
    ) -> int:
        """Run an interactive command in a service container, inheriting the TTY."""
        full_command = self.build_base_command(compose_file, namespace) + [
            "exec",
            service,
        ] + list(command)

        return subprocess.call(full_command)
