"""
Instance lifecycle operations: up, down, status, show-url, shell and run.

All operations are scoped to one working directory. The lock file in that
directory carries the namespace and port offset chosen by `up`, so every
later command talks to the same compose project with the same override.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

from rich.console import Console

from ..config import CortexConfig
from ..errors import (
    AlreadyRunningError,
    ComposeFileNotFoundError,
    DockerComposeError,
    InvalidPortOffsetError,
)
from .command_executor import HostCommandExecutor
from .command_orchestrator import CommandOrchestrator
from .compose_override import MAX_PORT, ComposeOverrideGenerator
from .docker_compose import DockerCompose
from .health_checker import HealthChecker
from .lock_file import LOCK_FILENAME, LockFile, LockFileData
from .namespace_resolver import NamespaceResolver
from .port_offset_manager import PortOffsetManager
from .setup_orchestrator import SetupOrchestrator, SetupResult

logger = logging.getLogger(__name__)

STALE_CONTAINER_TIMEOUT = 30


@dataclass(frozen=True)
class ServiceStatus:
    service: str
    state: str
    health: str


@dataclass(frozen=True)
class InstanceStatus:
    namespace: str
    lock: Optional[LockFileData]
    services: List[ServiceStatus] = field(default_factory=list)

    @property
    def running(self) -> bool:
        return bool(self.services)


class InstanceManager:
    """Caller-facing lifecycle of the instance living in ``working_dir``."""

    def __init__(
        self,
        working_dir: Path,
        config: CortexConfig,
        console: Optional[Console] = None,
        docker_compose: Optional[DockerCompose] = None,
        health_checker: Optional[HealthChecker] = None,
        port_offset_manager: Optional[PortOffsetManager] = None,
        override_generator: Optional[ComposeOverrideGenerator] = None,
        namespace_resolver: Optional[NamespaceResolver] = None,
        lock_file: Optional[LockFile] = None,
        setup_orchestrator: Optional[SetupOrchestrator] = None,
    ):
        self.working_dir = working_dir
        self.config = config
        self.console = console or Console()
        self.docker_compose = docker_compose or DockerCompose()
        self.health_checker = health_checker or HealthChecker(self.docker_compose)
        self.port_offset_manager = port_offset_manager or PortOffsetManager(
            self.docker_compose
        )
        self.override_generator = override_generator or ComposeOverrideGenerator()
        self.namespace_resolver = namespace_resolver or NamespaceResolver()
        self.lock_file = lock_file or LockFile(working_dir)
        self.setup_orchestrator = setup_orchestrator or SetupOrchestrator(
            self.docker_compose,
            HostCommandExecutor(working_dir),
            self.health_checker,
            self.console,
        )

    @property
    def compose_file(self) -> Path:
        return self.config.docker.compose_file

    def up(
        self,
        namespace: Optional[str] = None,
        port_offset: Optional[int] = None,
        avoid_conflicts: bool = False,
        no_host_mapping: bool = False,
        skip_wait: bool = False,
        skip_init: bool = False,
    ) -> SetupResult:
        """
        Bring the instance up and record its isolation parameters.

        Raises:
            AlreadyRunningError: If a lock file already exists here
            InvalidNamespaceError: If ``namespace`` is not a valid DNS label
            InvalidPortOffsetError: If ``port_offset`` is negative or moves a
                declared port beyond 65535
            NoOffsetAvailableError: If conflict avoidance finds no free range
            ComposeFileNotFoundError: If the compose file is missing
            CommandFailedError: If a setup command or compose up fails
            ServiceNotHealthyError: If a waited-for service never gets healthy
        """
        if self.lock_file.exists():
            raise AlreadyRunningError(
                f"Environment already running in {self.working_dir} "
                f"({LOCK_FILENAME} exists). Use 'cortex down' to stop it first."
            )

        if not self.compose_file.exists():
            raise ComposeFileNotFoundError(
                f"Compose file not found: {self.compose_file}"
            )

        resolved_namespace = self._resolve_namespace(namespace)
        self._cleanup_stale_containers(resolved_namespace)

        offset = self._resolve_port_offset(port_offset, avoid_conflicts, no_host_mapping)

        self.override_generator.generate(
            self.compose_file, offset, resolved_namespace, no_host_mapping
        )

        result = self.setup_orchestrator.setup(
            self.config,
            skip_wait=skip_wait,
            skip_init=skip_init,
            namespace=resolved_namespace,
            port_offset=offset,
        )

        self.lock_file.write(
            LockFileData(
                namespace=resolved_namespace,
                port_offset=offset if offset > 0 else None,
                no_host_mapping=no_host_mapping,
            )
        )
        logger.info(f"Instance details saved to {self.lock_file.lock_path}")
        return result

    def _resolve_namespace(self, namespace: Optional[str]) -> str:
        if namespace is not None:
            self.namespace_resolver.validate(namespace)
            return namespace

        return self.namespace_resolver.derive_from_directory(self.working_dir)

    def _resolve_port_offset(
        self,
        port_offset: Optional[int],
        avoid_conflicts: bool,
        no_host_mapping: bool,
    ) -> int:
        if port_offset is not None and port_offset < 0:
            raise InvalidPortOffsetError("Port offset must be a non-negative integer")

        if no_host_mapping:
            if port_offset:
                logger.info("Port offset ignored: no host ports are mapped")
            return 0

        if port_offset is not None:
            self._check_offset_in_range(port_offset)
            return port_offset

        if not avoid_conflicts:
            return 0

        base_ports = self.port_offset_manager.extract_base_ports(self.compose_file)
        if not base_ports:
            return 0

        with self.console.status("Scanning for available ports..."):
            offset = self.port_offset_manager.find_available_offset(base_ports)

        if offset > 0:
            self.console.print(f"Port offset allocated: +{offset}", style="cyan")
        return offset

    def _check_offset_in_range(self, offset: int) -> None:
        base_ports = self.port_offset_manager.extract_base_ports(self.compose_file)
        if base_ports and max(base_ports) + offset > MAX_PORT:
            raise InvalidPortOffsetError(
                f"Port offset {offset} moves port {max(base_ports)} beyond {MAX_PORT}"
            )

    def _cleanup_stale_containers(self, namespace: str) -> None:
        """Remove containers left by an `up` that failed before writing the lock."""
        stale = self.docker_compose.list_project_containers(namespace)
        if not stale:
            return

        self.console.print(
            f"⚠️  Found {len(stale)} containers from a previous failed run. Cleaning up...",
            style="yellow",
        )
        try:
            self.docker_compose.down(self.compose_file, False, namespace)
        except DockerComposeError as e:
            self.console.print(
                f"⚠️  Could not fully clean up containers: {e}",
                style="yellow",
                markup=False,
            )
            return
        finally:
            self.override_generator.cleanup(self.compose_file)

        removed = self.health_checker.wait_for_condition(
            lambda: not self.docker_compose.list_project_containers(namespace),
            timeout=STALE_CONTAINER_TIMEOUT,
            operation_name=f"stale containers of {namespace} removed",
        )
        if not removed:
            self.console.print(
                f"⚠️  Containers of {namespace} still present after "
                f"{STALE_CONTAINER_TIMEOUT}s, continuing anyway",
                style="yellow",
                markup=False,
            )

    def _active_namespace(self, lock: Optional[LockFileData]) -> str:
        if lock is not None and lock.namespace:
            return lock.namespace
        return self.namespace_resolver.derive_from_directory(self.working_dir)

    def down(self, remove_volumes: bool = False) -> None:
        """
        Stop the instance. Override and lock file are removed even on failure.

        Raises:
            DockerComposeError: If compose down fails
        """
        namespace = self._active_namespace(self.lock_file.read())
        try:
            self.docker_compose.down(self.compose_file, remove_volumes, namespace)
        finally:
            self.override_generator.cleanup(self.compose_file)
            self.lock_file.delete()

    def status(self) -> InstanceStatus:
        """Recorded instance details plus state and health of each service."""
        lock = self.lock_file.read()
        namespace = self._active_namespace(lock)

        services = []
        for service, data in self.docker_compose.ps(self.compose_file, namespace).items():
            services.append(
                ServiceStatus(
                    service=service,
                    state=str(data.get("State", "unknown")),
                    health=self.health_checker.get_health_status(
                        self.compose_file, service, namespace
                    ),
                )
            )
        return InstanceStatus(namespace=namespace, lock=lock, services=services)

    def show_url(self) -> str:
        """The application URL with the instance's port offset applied."""
        app_url = self.config.docker.app_url
        lock = self.lock_file.read()
        if lock is not None and lock.no_host_mapping:
            return app_url

        base_port = self.port_offset_manager.get_primary_service_port(
            self.compose_file, self.config.docker.primary_service
        )
        if base_port is None:
            return app_url

        offset = (lock.port_offset or 0) if lock is not None else 0
        return build_url_with_port(app_url, base_port + offset)

    def shell(self) -> int:
        """Open an interactive bash shell in the primary service container."""
        service = self.config.docker.primary_service
        prompt = f"{service}:\\w\\$ "
        return self.docker_compose.exec_interactive(
            self.compose_file,
            service,
            ["/bin/sh", "-c", f"export PS1='{prompt}'; exec /bin/bash -i"],
            namespace=self._active_namespace(self.lock_file.read()),
        )

    def list_commands(self) -> Dict[str, str]:
        """Declared command names with their descriptions."""
        orchestrator = CommandOrchestrator(self.docker_compose, self.console)
        return orchestrator.list_available_commands(self.config)

    def run_command(self, command_name: str) -> float:
        """Run a command declared under `commands:`; returns elapsed seconds."""
        orchestrator = CommandOrchestrator(self.docker_compose, self.console)
        return orchestrator.run(
            command_name,
            self.config,
            namespace=self._active_namespace(self.lock_file.read()),
        )


def build_url_with_port(base_url: str, port: int) -> str:
    """Replace (or add) the port of a URL, keeping scheme, host and path."""
    parts = urlsplit(base_url)
    scheme = parts.scheme or "http"
    host = parts.hostname or "localhost"
    if ":" in host:
        host = f"[{host}]"
    return urlunsplit((scheme, f"{host}:{port}", parts.path, parts.query, parts.fragment))
