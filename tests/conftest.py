"""
Shared pytest fixtures for Cortex tests.

Provides a throwaway project directory with a compose file and cortex.yml,
plus the loaded configuration for it. Nothing here talks to Docker.
"""

from pathlib import Path
from unittest.mock import Mock

import pytest

from cortex.config import ConfigManager, CortexConfig
from cortex.services.docker_compose import DockerCompose
from cortex.utils.exception_logger import ExceptionLogger

COMPOSE_YAML = """\
services:
  app:
    image: php:8.2-apache
    container_name: app
    ports:
      - "80:80"
    depends_on:
      - db
  db:
    image: mysql:8
    container_name: db
    ports:
      - "3306:3306"
  worker:
    image: php:8.2-cli
"""

CORTEX_YAML = """\
version: "1.0"
docker:
  compose_file: docker-compose.yml
  primary_service: app
  app_url: http://localhost:80
  wait_for:
    - service: db
      timeout: 60
setup:
  pre_start:
    - command: echo building
      description: Build assets
  initialize:
    - command: php artisan migrate
      description: Run migrations
      timeout: 120
commands:
  test:
    command: vendor/bin/phpunit
    description: Run the test suite
    timeout: 300
"""


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Project directory containing docker-compose.yml and cortex.yml."""
    project = tmp_path / "agent-1" / "shop"
    project.mkdir(parents=True)
    (project / "docker-compose.yml").write_text(COMPOSE_YAML)
    (project / "cortex.yml").write_text(CORTEX_YAML)
    return project


@pytest.fixture
def cortex_config(project_dir: Path) -> CortexConfig:
    """Configuration loaded from the project directory."""
    return ConfigManager(project_dir / "cortex.yml").load()


@pytest.fixture
def mock_docker_compose() -> Mock:
    """DockerCompose double with a quiet, empty engine."""
    docker_compose = Mock(spec=DockerCompose)
    docker_compose.list_project_containers.return_value = []
    docker_compose.get_used_host_ports.return_value = set()
    docker_compose.ps.return_value = {}
    return docker_compose


@pytest.fixture(autouse=True)
def reset_exception_logger():
    """The CLI keeps one process-wide failure log; isolate it per test."""
    ExceptionLogger.reset()
    yield
    ExceptionLogger.reset()
