"""YAML utilities for compose documents and cortex override files.

Compose (v2.24+) understands two merge-control tags on override files:

- ``!override`` replaces the base value instead of merging it (lists are
  otherwise concatenated across files).
- ``!reset`` removes the base value entirely.

PyYAML knows neither, so a loader and dumper pair is provided here that
round-trips them through :class:`TaggedValue`.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml  # type: ignore

logger = logging.getLogger(__name__)

OVERRIDE_TAG = "!override"
RESET_TAG = "!reset"


class TaggedValue:
    """A YAML node value carrying a compose merge-control tag."""

    def __init__(self, tag: str, value: Any):
        self.tag = tag
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TaggedValue):
            return NotImplemented
        return self.tag == other.tag and self.value == other.value

    def __repr__(self) -> str:
        return f"TaggedValue({self.tag!r}, {self.value!r})"


class ComposeLoader(yaml.SafeLoader):
    """Safe loader that accepts compose merge-control tags."""

    pass


_INT_TAG = "tag:yaml.org,2002:int"

# Compose parses YAML 1.2, where "2222:22" is a string rather than a base-60 int
ComposeLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _INT_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
ComposeLoader.add_implicit_resolver(
    _INT_TAG,
    re.compile(
        r"""^(?:[-+]?0b[0-1_]+
        |[-+]?0[0-7_]+
        |[-+]?(?:0|[1-9][0-9_]*)
        |[-+]?0x[0-9a-fA-F_]+)$""",
        re.X,
    ),
    list("-+0123456789"),
)


class ComposeDumper(yaml.SafeDumper):
    """Safe dumper that emits compose merge-control tags."""

    pass


def _construct_tagged(loader: yaml.SafeLoader, node: yaml.Node) -> TaggedValue:
    value: Any
    if isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    elif isinstance(node, yaml.MappingNode):
        value = loader.construct_mapping(node, deep=True)
    else:
        value = loader.construct_scalar(node)
    return TaggedValue(node.tag, value)


def _represent_tagged(dumper: yaml.SafeDumper, data: TaggedValue) -> yaml.Node:
    if isinstance(data.value, (list, tuple)):
        return dumper.represent_sequence(data.tag, list(data.value))
    if isinstance(data.value, dict):
        return dumper.represent_mapping(data.tag, data.value)
    return dumper.represent_scalar(data.tag, str(data.value))


for _tag in (OVERRIDE_TAG, RESET_TAG):
    ComposeLoader.add_constructor(_tag, _construct_tagged)
ComposeDumper.add_representer(TaggedValue, _represent_tagged)


def load_yaml_file(path: Path) -> Dict[str, Any]:
    """
    Load a YAML mapping from disk.

    Args:
        path: File to read

    Returns:
        Parsed mapping, or an empty dict for an empty document

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If parsing fails
        ValueError: If the document is not a mapping
    """
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.load(f, Loader=ComposeLoader)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML file {path}: {e}")
        raise

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a mapping at the top of {path}, got {type(data).__name__}"
        )
    return data


def load_compose_services(compose_file: Path) -> Dict[str, Dict[str, Any]]:
    """Return the ``services`` map of a compose file, or {} if unusable."""
    try:
        document = load_yaml_file(compose_file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.debug(f"Cannot read services from {compose_file}: {e}")
        return {}

    services = document.get("services")
    if not isinstance(services, dict):
        return {}
    return {
        name: definition
        for name, definition in services.items()
        if isinstance(definition, dict)
    }


def dump_yaml_with_header(
    data: Dict[str, Any], path: Path, header: Optional[str] = None
) -> None:
    """Write ``data`` as YAML, preceded by an optional comment header."""
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        if header:
            f.write(header)
        yaml.dump(
            data,
            f,
            Dumper=ComposeDumper,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
