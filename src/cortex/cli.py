"""Command line interface for Cortex."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import ConfigManager
from .errors import CortexError
from .services.instance_manager import InstanceManager
from .utils.exception_logger import ExceptionLogger

logger = logging.getLogger(__name__)

console = Console()

STATE_STYLES = {"running": "green", "exited": "red"}
HEALTH_STYLES = {
    "healthy": "green",
    "running": "green",
    "unhealthy": "red",
    "starting": "yellow",
}


def _working_dir(ctx: click.Context) -> Path:
    return ctx.obj["working_dir"]


def _create_instance_manager(ctx: click.Context) -> InstanceManager:
    """Load cortex.yml for the working directory and build the manager."""
    working_dir = _working_dir(ctx)
    config_manager = ConfigManager.create_with_backtrack(working_dir)
    config = config_manager.load()
    logger.debug(f"Loaded configuration from {config_manager.config_path}")
    return InstanceManager(working_dir, config, console=console)


def _fail(ctx: click.Context, error: Exception, command: str) -> None:
    """Report an error, record it in the failure log and exit 1."""
    console.print(f"❌ {error}", style="red", markup=False)

    exception_logger = ExceptionLogger.get_instance()
    if exception_logger is not None:
        log_path = exception_logger.log_exception(
            error,
            context={"command": command, "working_dir": str(_working_dir(ctx))},
        )
        if log_path is not None and ctx.obj.get("verbose"):
            console.print(f"Details written to {log_path}", style="dim", markup=False)

    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option(
    "--path",
    "-p",
    type=click.Path(exists=True, file_okay=False),
    help="Working directory of the instance (default: current directory)",
)
@click.version_option(version=__version__, prog_name="cortex")
@click.pass_context
def cli(ctx, verbose: bool, path: Optional[str]):
    """Run isolated instances of a compose-based development environment.

    \b
    Each directory is one instance. Several checkouts of the same project
    can run side by side: cortex prefixes container names with a namespace
    and, when asked, shifts every published host port by an offset.

    \b
    EXAMPLES:
      cortex up                      # Start with declared ports
      cortex up --avoid-conflicts    # Pick a free port range automatically
      cortex up --port-offset 1000   # Shift every host port by 1000
      cortex status                  # Services, health and instance details
      cortex show-url                # Application URL for this instance
      cortex down                    # Stop and clean up
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    working_dir = Path(path).resolve() if path else Path.cwd()
    ctx.obj["working_dir"] = working_dir

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
    )

    ExceptionLogger.initialize(working_dir)


@cli.command()
@click.option("--namespace", help="Custom container namespace")
@click.option(
    "--port-offset", type=int, help="Port offset to add to all exposed host ports"
)
@click.option(
    "--avoid-conflicts",
    is_flag=True,
    help="Automatically pick a port offset that avoids bound host ports",
)
@click.option(
    "--no-host-mapping",
    is_flag=True,
    help="Publish no host ports at all (internal networking only)",
)
@click.option("--no-wait", "skip_wait", is_flag=True, help="Skip health checks")
@click.option("--skip-init", is_flag=True, help="Skip initialize commands")
@click.pass_context
def up(
    ctx,
    namespace: Optional[str],
    port_offset: Optional[int],
    avoid_conflicts: bool,
    no_host_mapping: bool,
    skip_wait: bool,
    skip_init: bool,
):
    """Set up and start the development environment.

    \b
    PHASES:
      1. Pre-start commands (host)
      2. docker compose up, with namespace and override applied
      3. Wait for configured services to become healthy (--no-wait skips)
      4. Initialize commands in the primary container (--skip-init skips)

    The chosen namespace and port offset are saved to .cortex.lock so that
    'down', 'status' and 'show-url' address the same instance.
    """
    try:
        manager = _create_instance_manager(ctx)
        result = manager.up(
            namespace=namespace,
            port_offset=port_offset,
            avoid_conflicts=avoid_conflicts,
            no_host_mapping=no_host_mapping,
            skip_wait=skip_wait,
            skip_init=skip_init,
        )
    except CortexError as e:
        _fail(ctx, e, "up")
        return

    console.print()
    console.print(
        f"✨ Environment ready in {result.elapsed_seconds:.1f}s!", style="bold magenta"
    )
    if result.port_offset:
        console.print(f"Port offset: +{result.port_offset}", style="cyan")
    if not no_host_mapping and manager.config.docker.app_url:
        console.print(f"→ Access at: {manager.show_url()}", style="cyan", markup=False)


@cli.command()
@click.option("--volumes", is_flag=True, help="Remove volumes as well")
@click.pass_context
def down(ctx, volumes: bool):
    """Tear down the development environment.

    The compose override and .cortex.lock are removed even if stopping the
    services fails, so no stale isolation state is left behind.
    """
    try:
        manager = _create_instance_manager(ctx)
        with console.status("Stopping services..."):
            manager.down(remove_volumes=volumes)
    except CortexError as e:
        _fail(ctx, e, "down")
        return

    if volumes:
        console.print("✅ Docker services stopped and volumes removed", style="green")
    else:
        console.print("✅ Docker services stopped", style="green")


@cli.command()
@click.pass_context
def status(ctx):
    """Show service state and health for this instance."""
    try:
        manager = _create_instance_manager(ctx)
        instance = manager.status()
    except CortexError as e:
        _fail(ctx, e, "status")
        return

    if instance.lock is not None:
        console.print(f"Namespace: {instance.namespace}", markup=False)
        if instance.lock.port_offset:
            console.print(f"Port offset: +{instance.lock.port_offset}")
        if instance.lock.no_host_mapping:
            console.print("Host ports: not mapped")
        console.print(f"Started: {instance.lock.started_at}", markup=False)
        console.print()

    if not instance.running:
        console.print("⚠️  No services are currently running", style="yellow")
        console.print("💡 Run 'cortex up' to start the environment", style="dim")
        return

    table = Table(title="Environment Status")
    table.add_column("Service", style="cyan")
    table.add_column("Status")
    table.add_column("Health")

    for service in instance.services:
        table.add_row(
            service.service,
            f"[{STATE_STYLES.get(service.state, 'yellow')}]{service.state}[/]",
            f"[{HEALTH_STYLES.get(service.health, 'bright_black')}]{service.health}[/]",
        )

    console.print(table)


@cli.command("show-url")
@click.pass_context
def show_url(ctx):
    """Print the application URL (plain, for piping)."""
    try:
        manager = _create_instance_manager(ctx)
        url = manager.show_url()
    except CortexError as e:
        _fail(ctx, e, "show-url")
        return

    click.echo(url)


@cli.command()
@click.pass_context
def shell(ctx):
    """Open an interactive shell in the primary service container."""
    try:
        manager = _create_instance_manager(ctx)
        exit_code = manager.shell()
    except CortexError as e:
        _fail(ctx, e, "shell")
        return

    sys.exit(exit_code)


@cli.command()
@click.argument("name", required=False)
@click.pass_context
def run(ctx, name: Optional[str]):
    """Run a command declared under 'commands:' in cortex.yml.

    Without NAME, lists the available commands.
    """
    try:
        manager = _create_instance_manager(ctx)
        if name is None:
            commands = manager.list_commands()
            if not commands:
                console.print("No commands defined in cortex.yml", style="yellow")
                return
            table = Table(title="Available Commands")
            table.add_column("Name", style="cyan")
            table.add_column("Description")
            for command_name, description in commands.items():
                table.add_row(command_name, description)
            console.print(table)
            return

        elapsed = manager.run_command(name)
    except CortexError as e:
        _fail(ctx, e, f"run {name}" if name else "run")
        return

    console.print(f"✅ Command completed successfully ({elapsed:.1f}s)", style="green")


def main():
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n❌ Interrupted by user", style="red")
        sys.exit(1)
    except Exception as e:
        console.print(f"❌ Unexpected error: {str(e)}", style="red", markup=False)
        sys.exit(1)


if __name__ == "__main__":
    main()
