"""Namespace derivation and validation for cortex instances."""

import logging
import re
from pathlib import Path
from typing import Union

from ..errors import InvalidNamespaceError

logger = logging.getLogger(__name__)

NAMESPACE_PREFIX = "cortex"
MAX_NAMESPACE_LENGTH = 63

_NAMESPACE_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")


class NamespaceResolver:
    """Resolves the container namespace for a working directory.

    The namespace is used as the compose project name and as the prefix of
    explicit ``container_name`` values, so it must be a valid DNS label.
    """

    def __init__(self, prefix: str = NAMESPACE_PREFIX):
        self.prefix = prefix

    def derive_from_directory(self, directory: Union[str, Path]) -> str:
        """Derive a namespace from the last two segments of a directory path.

        Examples:
            /workspace/agent-1/project -> cortex-agent-1-project
            /home/user/myapp           -> cortex-user-myapp
        """
        segments = [part for part in str(directory).split("/") if part]
        segments = [self._sanitize_segment(part) for part in segments[-2:]]
        segments = [part for part in segments if part]

        namespace = "-".join([self.prefix] + segments)

        # Truncation may leave a trailing hyphen behind
        if len(namespace) > MAX_NAMESPACE_LENGTH:
            namespace = namespace[:MAX_NAMESPACE_LENGTH].rstrip("-")

        logger.debug(f"Derived namespace '{namespace}' from {directory}")
        return namespace

    def _sanitize_segment(self, segment: str) -> str:
        """Lower-case a path segment and replace anything but [a-z0-9] with '-'."""
        sanitized = re.sub(r"[^a-z0-9]", "-", segment.lower())
        sanitized = re.sub(r"-{2,}", "-", sanitized)
        return sanitized.strip("-")

    def validate(self, namespace: str) -> None:
        """
        Validate a user-supplied namespace.

        Raises:
            InvalidNamespaceError: If the namespace is not a valid DNS label
        """
        if not _NAMESPACE_PATTERN.match(namespace):
            raise InvalidNamespaceError(
                f"Invalid namespace '{namespace}'. Must contain only lowercase "
                f"letters, numbers, and hyphens, and must start and end with a "
                f"letter or number."
            )

        if len(namespace) > MAX_NAMESPACE_LENGTH:
            raise InvalidNamespaceError(
                f"Namespace '{namespace}' is too long. "
                f"Maximum {MAX_NAMESPACE_LENGTH} characters."
            )
