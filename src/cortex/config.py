"""Configuration management for Cortex (cortex.yml)."""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml  # type: ignore
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .utils.yaml_utils import load_yaml_file

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "cortex.yml"


class CommandDefinition(BaseModel):
    """A shell command run on the host or inside the primary container."""

    command: str = Field(description="Shell command text")
    description: str = Field(description="Human readable description")
    timeout: int = Field(
        default=60, gt=0, strict=True, description="Timeout in seconds"
    )
    # Accepted for compatibility, never applied: re-running `up` is the recovery path
    retry: int = Field(default=0, ge=0, strict=True, description="Retry count")
    ignore_failure: bool = Field(
        default=False,
        strict=True,
        description="Continue with the next command when this one fails",
    )


class ServiceWaitConfig(BaseModel):
    """A service that must report healthy before initialization starts."""

    service: str = Field(description="Compose service name")
    timeout: int = Field(gt=0, strict=True, description="Health timeout in seconds")


class DockerConfig(BaseModel):
    """Compose project settings."""

    compose_file: Path = Field(description="Compose file, relative to cortex.yml")
    primary_service: str = Field(description="Service used for exec and shell")
    app_url: str = Field(description="URL the application is reachable at")
    wait_for: List[ServiceWaitConfig] = Field(default_factory=list)


class SetupConfig(BaseModel):
    """Commands run around service start."""

    pre_start: List[CommandDefinition] = Field(default_factory=list)
    initialize: List[CommandDefinition] = Field(default_factory=list)


class CortexConfig(BaseModel):
    """Main configuration for Cortex."""

    # Sections handled by other tools (e.g. n8n) may live in the same file
    model_config = ConfigDict(extra="ignore")

    version: str = Field(description="Configuration format version")
    docker: DockerConfig
    setup: SetupConfig = Field(default_factory=SetupConfig)
    commands: Dict[str, CommandDefinition] = Field(default_factory=dict)

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v):
        """Accept unquoted numeric versions such as `version: 1.0`."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


def _format_validation_error(error: ValidationError) -> str:
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        messages.append(f"{location}: {detail['msg']}")
    return "; ".join(messages)


class ConfigManager:
    """Locates and loads cortex.yml."""

    MAX_SEARCH_DEPTH = 10

    def __init__(self, config_path: Path):
        self.config_path = config_path
        self._config: Optional[CortexConfig] = None

    @classmethod
    def find_config_file(cls, start_dir: Path) -> Path:
        """Find cortex.yml in ``start_dir`` or one of its parents.

        Raises:
            ConfigurationError: If no cortex.yml is found
        """
        current = start_dir.resolve()
        for _ in range(cls.MAX_SEARCH_DEPTH):
            config_path = current / CONFIG_FILENAME
            if config_path.exists():
                return config_path
            if current.parent == current:
                break
            current = current.parent

        raise ConfigurationError(
            f"{CONFIG_FILENAME} not found in {start_dir} or any parent directory"
        )

    @classmethod
    def create_with_backtrack(cls, start_dir: Path) -> "ConfigManager":
        """Create a ConfigManager for the cortex.yml governing ``start_dir``."""
        return cls(cls.find_config_file(start_dir))

    def load(self) -> CortexConfig:
        """Load and validate the configuration.

        The compose file path is resolved relative to the config file.

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid
        """
        try:
            data = load_yaml_file(self.config_path)
        except FileNotFoundError:
            raise ConfigurationError(
                f"Configuration file not found: {self.config_path}"
            )
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML: {e}") from e
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        try:
            config = CortexConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {self.config_path}: "
                f"{_format_validation_error(e)}"
            ) from e

        compose_file = config.docker.compose_file
        if not compose_file.is_absolute():
            config.docker.compose_file = (
                self.config_path.parent / compose_file
            ).resolve()

        logger.debug(f"Loaded configuration from {self.config_path}")
        self._config = config
        return config

    def get_config(self) -> CortexConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load()
        return self._config
