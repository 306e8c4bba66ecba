"""Node.js (nvm) and PM2 CLI commands."""
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from piprov.core.errors import ProvisionError

# Module-level console instance (will be set by register function)
console: Console = Console()


def node(
    node_version: Optional[str] = typer.Option(
        None, "--node-version", "-n", help="Release to install (default from the compatibility table)"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Accept fallbacks and other prompts"),
):
    """Install nvm and a Node.js release that runs on this host.

    Checks the GLIBCXX version of libstdc++ first. If the requested release
    cannot run, libstdc++ is upgraded, an older LTS release is offered, or
    Node.js is built from source.
    """
    from piprov.cli_support import get_runner, handle_cli_error, make_confirm, print_info, print_success, print_warning
    from piprov.services.node import NodeSetup

    try:
        runner = get_runner()
        setup = NodeSetup(node_version, runner=runner, confirm=make_confirm(yes, runner.mock))
        result = setup.run()
    except (ProvisionError, ValueError, OSError) as e:
        handle_cli_error(e, console)
        return

    print_success(console, f"Node.js {result.version} is installed")
    if result.selection and result.selection.switched:
        print_warning(console, f"Installed {result.version} instead of {result.selection.target} "
                               f"(GLIBCXX {result.selection.detected})")
    if result.from_source:
        print_info(console, "Built from source")
    print_info(console, f"node {result.node_version} / npm {result.npm_version} / nvm {result.nvm_version}")
    if result.profiles:
        print_info(console, f"Shell profiles: {', '.join('~/' + p.name for p in result.profiles)}")
    if result.other_users:
        print_info(console, f"NVM also configured for: {', '.join(result.other_users)}")
    print_info(console, "Open a new terminal or run: source ~/.bashrc")


def pm2(
    project_path: Path = typer.Argument(..., help="Project directory containing ecosystem.config.js"),
    app_name: Optional[str] = typer.Option(None, "--app-name", "-a", help="PM2 process name (default: directory name)"),
    strict: bool = typer.Option(False, "--strict", help="Fail when monitoring setup fails"),
):
    """Run a Node.js project under PM2 and start it on boot.

    Examples:
        piprov pm2 /home/pi/my-bot
        sudo piprov pm2 /home/pi/my-bot --app-name telegram-bot
    """
    from piprov.cli_support import get_runner, handle_cli_error, print_info, print_success, print_warning
    from piprov.services.pm2 import Pm2Setup

    try:
        result = Pm2Setup(project_path, app_name=app_name, runner=get_runner(), strict=strict).run()
    except ProvisionError as e:
        handle_cli_error(e, console)
        return

    print_success(console, "PM2 setup completed")
    for warning in result.warnings:
        print_warning(console, warning)
    print_info(console, f"Logs: pm2 logs {result.app_name}")
    print_info(console, f"Restart: pm2 restart {result.app_name}")
    print_info(console, "Monitor: pm2 monit")


def register_node_commands(app: typer.Typer, shared_console: Console):
    """Register node and pm2 commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(node)
    app.command()(pm2)
