"""Docker installation CLI command."""
from typing import List, Optional

import typer
from rich.console import Console

from piprov.core.errors import ProvisionError

# Module-level console instance (will be set by register function)
console: Console = Console()


def docker(
    users: Optional[List[str]] = typer.Argument(None, help="Users to add to the docker group (default: you)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
):
    """Install Docker Engine and the Compose plugin (Ubuntu 22.04).

    Examples:
        piprov docker                  # Add the current user to the docker group
        piprov docker alice bob        # Add alice and bob
        sudo piprov docker github      # As root a username is required
    """
    from piprov.cli_support import get_runner, handle_cli_error, make_confirm, print_info, print_success, print_warning
    from piprov.services.docker import DockerSetup

    try:
        runner = get_runner()
        result = DockerSetup(users or [], runner=runner, confirm=make_confirm(yes, runner.mock)).run()
    except ProvisionError as e:
        handle_cli_error(e, console)
        return

    if result.cancelled:
        print_warning(console, "Installation cancelled")
        return

    if result.installed:
        print_success(console, "Docker and Docker Compose installation completed")
        print_info(console, result.docker_version)
        print_info(console, result.compose_version)
    else:
        print_info(console, "Docker installation skipped")

    if result.group.added:
        print_success(console, f"Added to docker group: {', '.join(result.group.added)}")
        print_warning(console, "Log out and back in (or restart) for group changes to take effect")
    if result.group.failed:
        print_warning(console, f"Not added to docker group: {', '.join(result.group.failed)}")


def register_docker_commands(app: typer.Typer, shared_console: Console):
    """Register the docker command with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(docker)
