"""Health checking utilities for compose services."""

import logging
import time
from pathlib import Path
from typing import Callable, Dict, Optional

from ..errors import ServiceNotHealthyError
from .docker_compose import DockerCompose

logger = logging.getLogger(__name__)

HEALTH_STATES = ("healthy", "unhealthy", "starting", "running", "exited", "unknown")
READY_STATES = ("healthy", "running")


class HealthChecker:
    """Polls container health through the container engine."""

    def __init__(
        self,
        docker_compose: Optional[DockerCompose] = None,
        poll_interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.docker_compose = docker_compose or DockerCompose()
        self.poll_interval = poll_interval
        self.default_polling = {
            "initial_interval": 0.5,
            "backoff_factor": 1.2,
            "max_interval": 2.0,
        }
        self._sleep = sleep
        self._clock = clock

    def get_health_status(
        self, compose_file: Path, service: str, namespace: Optional[str] = None
    ) -> str:
        """
        Get the health status of a service's container.

        Returns:
            One of 'healthy', 'unhealthy', 'starting', 'running', 'exited',
            'unknown'. Containers without a health check report their run
            state; 'unknown' means no container or a failed inspection.
        """
        container_id = self.docker_compose.container_id(
            compose_file, service, namespace
        )
        if not container_id:
            return "unknown"

        state = self.docker_compose.inspect_state(container_id)
        if state is None:
            return "unknown"
        if state not in HEALTH_STATES:
            logger.debug(f"Container state '{state}' for {service} mapped to unknown")
            return "unknown"
        return state

    def is_healthy(
        self, compose_file: Path, service: str, namespace: Optional[str] = None
    ) -> bool:
        """A service without a health check counts as healthy once running."""
        return self.get_health_status(compose_file, service, namespace) in READY_STATES

    def wait_for_health(
        self,
        compose_file: Path,
        service: str,
        timeout: int,
        namespace: Optional[str] = None,
    ) -> None:
        """
        Block until a service is healthy.

        Raises:
            ServiceNotHealthyError: If the service is not healthy within
                ``timeout`` seconds
        """
        start_time = self._clock()

        while True:
            if self.is_healthy(compose_file, service, namespace):
                logger.debug(
                    f"{service} healthy after {self._clock() - start_time:.1f}s"
                )
                return

            if self._clock() - start_time >= timeout:
                logs_hint = f"docker compose -f {compose_file}"
                if namespace:
                    logs_hint += f" -p {namespace}"
                raise ServiceNotHealthyError(
                    f"Service '{service}' did not become healthy within {timeout}s. "
                    f"Check logs with: {logs_hint} logs {service}",
                    service=service,
                    timeout=timeout,
                )

            self._sleep(self.poll_interval)

    def wait_for_condition(
        self,
        check_func: Callable[[], bool],
        timeout: float,
        interval: Optional[float] = None,
        backoff: Optional[float] = None,
        max_interval: Optional[float] = None,
        operation_name: str = "condition",
    ) -> bool:
        """
        Wait for a condition to be true with exponential backoff.

        Args:
            check_func: Function that returns True when condition is met
            timeout: Maximum time to wait in seconds
            interval: Initial polling interval in seconds
            backoff: Backoff multiplier for exponential backoff
            max_interval: Maximum polling interval in seconds
            operation_name: Name for logging/debugging

        Returns:
            True if condition was met, False if timeout occurred
        """
        polling: Dict[str, float] = self.default_polling
        interval = interval or polling["initial_interval"]
        backoff = backoff or polling["backoff_factor"]
        max_interval = max_interval or polling["max_interval"]

        start_time = self._clock()
        current_interval = interval
        attempt = 0

        while self._clock() - start_time < timeout:
            try:
                if check_func():
                    logger.debug(
                        f"{operation_name} completed in "
                        f"{self._clock() - start_time:.2f}s after {attempt + 1} attempts"
                    )
                    return True
            except Exception as e:
                logger.debug(f"{operation_name} check failed: {e}")

            self._sleep(current_interval)
            current_interval = min(current_interval * backoff, max_interval)
            attempt += 1

        logger.debug(
            f"{operation_name} timed out after {self._clock() - start_time:.2f}s "
            f"({attempt} attempts)"
        )
        return False
