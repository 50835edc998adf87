"""
Port offset allocation for running several instances side by side.

Every host port a compose file publishes is shifted by the same offset, so an
instance keeps its internal layout (app on base+offset, db on base+offset, ...)
while moving to a range no running container occupies.

Key points:
- Offset 0 is tried first, so the first instance gets the declared ports
- The scan is coarse (fixed step within a bounded range) to keep startup fast
- Bound ports come from the container engine, queried once per search
"""

import logging
import time
from pathlib import Path
from typing import Callable, Iterable, Optional, Set, Union

from ..errors import NoOffsetAvailableError
from ..utils.yaml_utils import load_compose_services
from .compose_override import MAX_PORT, parse_host_port
from .docker_compose import DockerCompose

logger = logging.getLogger(__name__)


class PortOffsetManager:
    """Finds a port offset that avoids host port collisions."""

    DEFAULT_SCAN_START = 8000
    DEFAULT_SCAN_END = 9000
    DEFAULT_SCAN_STEP = 100
    DEFAULT_SETTLE_DELAY = 1.0

    def __init__(
        self,
        docker_compose: Optional[DockerCompose] = None,
        scan_start: int = DEFAULT_SCAN_START,
        scan_end: int = DEFAULT_SCAN_END,
        scan_step: int = DEFAULT_SCAN_STEP,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.docker_compose = docker_compose or DockerCompose()
        self.scan_start = scan_start
        self.scan_end = scan_end
        self.scan_step = scan_step
        self.settle_delay = settle_delay
        self._sleep = sleep

    def extract_base_ports(self, compose_file: Union[str, Path]) -> Set[int]:
        """
        Extract the distinct host ports a compose file would bind.

        Unparsable mappings (ranges, variables, container-only long form) are
        skipped. A missing or unreadable file yields an empty set.
        """
        ports: Set[int] = set()
        for definition in load_compose_services(Path(compose_file)).values():
            for port_mapping in definition.get("ports") or []:
                port = parse_host_port(port_mapping)
                if port is not None:
                    ports.add(port)
        return ports

    def get_primary_service_port(
        self, compose_file: Union[str, Path], service: str
    ) -> Optional[int]:
        """First resolvable host port published by ``service``, if any."""
        definition = load_compose_services(Path(compose_file)).get(service, {})
        for port_mapping in definition.get("ports") or []:
            port = parse_host_port(port_mapping)
            if port is not None:
                return port
        return None

    def find_available_offset(self, base_ports: Iterable[int]) -> int:
        """
        Find the smallest candidate offset where all shifted ports are free.

        Args:
            base_ports: Host ports declared by the compose file

        Returns:
            0 if the declared ports are free (or there are none), otherwise
            the first free offset of the coarse scan

        Raises:
            NoOffsetAvailableError: If every candidate offset collides
        """
        base_ports = set(base_ports)
        if not base_ports:
            return 0

        # A just-stopped instance may not have released its ports yet
        if self.settle_delay > 0:
            self._sleep(self.settle_delay)

        used_ports = self.docker_compose.get_used_host_ports()
        logger.debug(f"Host ports in use: {sorted(used_ports)}")

        if self._are_ports_available(base_ports, 0, used_ports):
            return 0

        for offset in range(self.scan_start, self.scan_end + 1, self.scan_step):
            if self._are_ports_available(base_ports, offset, used_ports):
                logger.info(f"Selected port offset +{offset}")
                return offset

        raise NoOffsetAvailableError(
            f"No available port offset found in range "
            f"{self.scan_start}-{self.scan_end}. Please stop other services "
            f"or specify a custom --port-offset."
        )

    def _are_ports_available(
        self, base_ports: Set[int], offset: int, used_ports: Set[int]
    ) -> bool:
        for base_port in base_ports:
            port = base_port + offset
            if port > MAX_PORT or port in used_ports:
                return False
        return True
