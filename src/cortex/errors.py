"""Exception taxonomy for cortex operations.

Every error here is terminal for the operation in progress; nothing is
retried internally. The CLI turns them into a red message and exit code 1.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .services.command_executor import ExecutionResult


class CortexError(Exception):
    """Base exception for all cortex errors."""

    pass


class ConfigurationError(CortexError):
    """Raised when cortex.yml is missing, unreadable or invalid."""

    pass


class InvalidNamespaceError(CortexError):
    """Raised when a namespace is not a valid DNS label."""

    pass


class InvalidPortOffsetError(CortexError):
    """Raised when an explicit port offset is negative."""

    pass


class NoOffsetAvailableError(CortexError):
    """Raised when every candidate port offset collides with a bound port."""

    pass


class ComposeFileNotFoundError(CortexError):
    """Raised when the base compose file does not exist."""

    pass


class AlreadyRunningError(CortexError):
    """Raised by `up` when a lock file already exists in the directory."""

    pass


class ServiceNotHealthyError(CortexError):
    """Raised when a service does not report healthy within its timeout."""

    def __init__(self, message: str, service: str, timeout: int):
        super().__init__(message)
        self.service = service
        self.timeout = timeout


class CommandFailedError(CortexError):
    """Raised when a host or container command exits unsuccessfully."""

    def __init__(
        self,
        message: str,
        phase: str,
        command: Optional[str] = None,
        result: Optional["ExecutionResult"] = None,
    ):
        super().__init__(message)
        self.phase = phase
        self.command = command
        self.result = result


class DockerComposeError(CommandFailedError):
    """Raised when a compose invocation (up/down) fails."""

    def __init__(self, message: str, action: str, stderr: str = ""):
        super().__init__(message, phase="services", command=action)
        self.action = action
        self.stderr = stderr
