"""Compose override generation for instance isolation.

The override file sits next to the base compose file and is layered on top
of it with a second ``-f``. Its presence is meaningful: no override file
means the instance runs with the declared ports and container names.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from ..errors import ComposeFileNotFoundError
from ..utils.yaml_utils import (
    OVERRIDE_TAG,
    RESET_TAG,
    TaggedValue,
    dump_yaml_with_header,
    load_compose_services,
)

logger = logging.getLogger(__name__)

OVERRIDE_FILENAME = "docker-compose.override.yml"

MAX_PORT = 65535

OVERRIDE_HEADER = """# Generated by Cortex CLI - DO NOT EDIT MANUALLY
#
# Applies instance isolation on top of {compose_file}:
#   namespace:       {namespace}
#   port offset:     {offset}
#   no host mapping: {no_host_mapping}
#
# This file is recreated by 'cortex up' and removed by 'cortex down'.

"""


def get_override_file_path(compose_file: Union[str, Path]) -> Path:
    """Path of the override file colocated with a compose file."""
    return Path(compose_file).parent / OVERRIDE_FILENAME


def _split_short_form(
    mapping: str,
) -> Optional[Tuple[str, str, Optional[str], str]]:
    """Split a short-form port mapping into (interface, host, container, proto).

    Supported shapes: "80", "8080:80", "127.0.0.1:8080:80", "[::1]:8080:80",
    each optionally followed by "/tcp" or "/udp". The interface part keeps its
    trailing colon so the mapping can be rebuilt verbatim.
    """
    body, proto = mapping, ""
    if "/" in body:
        body, protocol = body.rsplit("/", 1)
        proto = f"/{protocol}"

    interface = ""
    if body.startswith("["):
        end = body.find("]:")
        if end == -1:
            return None
        interface = body[: end + 2]
        body = body[end + 2 :]

    parts = body.split(":")
    if len(parts) == 1:
        return interface, parts[0], None, proto
    if len(parts) == 2:
        return interface, parts[0], parts[1], proto
    if len(parts) == 3 and not interface:
        return f"{parts[0]}:", parts[1], parts[2], proto
    return None


def _to_port(value: Any) -> Optional[int]:
    port: Optional[int] = None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        port = value
    elif isinstance(value, str) and value.strip().isdigit():
        port = int(value.strip())
    if port is None or not 1 <= port <= MAX_PORT:
        return None
    return port


def parse_host_port(port_mapping: Any) -> Optional[int]:
    """
    Parse the host-side port out of a compose port mapping.

    Supports:
      - "80:80", "8080:80", "127.0.0.1:8080:80", optional "/proto"
      - "8080" or 8080 (single port)
      - {"target": 80, "published": 8080}

    Returns:
        Host port, or None when it does not resolve to an integer
        (ranges, variables, missing ``published``)
    """
    if isinstance(port_mapping, dict):
        return _to_port(port_mapping.get("published"))

    if isinstance(port_mapping, int):
        return _to_port(port_mapping)

    if isinstance(port_mapping, str):
        parts = _split_short_form(port_mapping.strip())
        if parts is None:
            return None
        return _to_port(parts[1])

    return None


def shift_port_mapping(port_mapping: Any, offset: int) -> Any:
    """Add ``offset`` to the host side of a mapping, keeping everything else.

    Entries whose host port cannot be resolved are returned unchanged. A
    single-port entry becomes an explicit "<host+offset>:<port>" mapping so
    the container side keeps its original port.
    """
    if isinstance(port_mapping, dict):
        published = _to_port(port_mapping.get("published"))
        if published is None:
            return port_mapping
        shifted = dict(port_mapping)
        shifted["published"] = published + offset
        return shifted

    if isinstance(port_mapping, int) and not isinstance(port_mapping, bool):
        port = _to_port(port_mapping)
        if port is None:
            return port_mapping
        return f"{port + offset}:{port}"

    if isinstance(port_mapping, str):
        parts = _split_short_form(port_mapping.strip())
        if parts is None:
            return port_mapping
        interface, host, container, proto = parts
        host_port = _to_port(host)
        if host_port is None:
            return port_mapping
        if container is None:
            container = str(host_port)
        return f"{interface}{host_port + offset}:{container}{proto}"

    return port_mapping


class ComposeOverrideGenerator:
    """Synthesizes the isolation override for a compose file."""

    def generate(
        self,
        compose_file: Union[str, Path],
        offset: int = 0,
        namespace: Optional[str] = None,
        no_host_mapping: bool = False,
    ) -> Optional[Path]:
        """
        Write the override file for the given isolation parameters.

        Args:
            compose_file: Base compose file
            offset: Amount added to every host port (0 keeps declared ports)
            namespace: Prefix for explicit container names
            no_host_mapping: Drop all host port bindings (wins over offset)

        Returns:
            Path of the written override, or None when no isolation applies

        Raises:
            ComposeFileNotFoundError: If the compose file doesn't exist
        """
        compose_path = Path(compose_file)
        if not compose_path.exists():
            raise ComposeFileNotFoundError(f"Compose file not found: {compose_path}")

        if offset == 0 and namespace is None and not no_host_mapping:
            logger.debug("No isolation requested, skipping override generation")
            return None

        override_services: Dict[str, Dict[str, Any]] = {}
        for name, definition in load_compose_services(compose_path).items():
            service_override = self._build_service_override(
                definition, offset, namespace, no_host_mapping
            )
            if service_override:
                override_services[name] = service_override

        override_path = get_override_file_path(compose_path)
        header = OVERRIDE_HEADER.format(
            compose_file=compose_path.name,
            namespace=namespace or "-",
            offset=f"+{offset}" if offset else "0",
            no_host_mapping="yes" if no_host_mapping else "no",
        )
        dump_yaml_with_header({"services": override_services}, override_path, header)

        logger.info(
            f"Generated compose override {override_path} "
            f"({len(override_services)} services)"
        )
        return override_path

    def _build_service_override(
        self,
        definition: Dict[str, Any],
        offset: int,
        namespace: Optional[str],
        no_host_mapping: bool,
    ) -> Dict[str, Any]:
        service_override: Dict[str, Any] = {}

        ports = definition.get("ports")
        if "ports" in definition and isinstance(ports, (list, type(None))):
            if no_host_mapping:
                service_override["ports"] = TaggedValue(RESET_TAG, [])
            elif offset != 0 and ports:
                service_override["ports"] = TaggedValue(
                    OVERRIDE_TAG, [shift_port_mapping(p, offset) for p in ports]
                )

        container_name = definition.get("container_name")
        if namespace is not None and container_name:
            service_override["container_name"] = f"{namespace}-{container_name}"

        return service_override

    def cleanup(self, compose_file: Union[str, Path]) -> bool:
        """Delete the override file; returns True if one was removed."""
        override_path = get_override_file_path(compose_file)
        try:
            override_path.unlink()
        except FileNotFoundError:
            return False

        logger.info(f"Removed compose override {override_path}")
        return True
